"""Topology data consumed by the renderer.

The objects here are read-only snapshots supplied by whatever parsed the
hardware description. Core ``i`` always sits at row ``i // columns`` and
column ``i % columns``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

from .errors import TopologyMismatchError


class Direction(Enum):
    NORTH = "North"
    EAST = "East"
    SOUTH = "South"
    WEST = "West"

    @classmethod
    def parse(cls, value: str) -> "Direction":
        for direction in cls:
            if direction.value.lower() == str(value).strip().lower():
                return direction
        raise TopologyMismatchError(f'unknown direction "{value}"')

    def opposite(self) -> "Direction":
        if self is Direction.NORTH:
            return Direction.SOUTH
        if self is Direction.EAST:
            return Direction.WEST
        if self is Direction.SOUTH:
            return Direction.NORTH
        if self is Direction.WEST:
            return Direction.EAST
        raise ValueError(f"unhandled direction {self!r}")


# Canonical iteration order for everything that walks a core's directions.
DIRECTIONS: Tuple[Direction, ...] = (
    Direction.NORTH,
    Direction.EAST,
    Direction.SOUTH,
    Direction.WEST,
)


@dataclass(frozen=True)
class Channel:
    direction: Direction
    bandwidth: int
    current_load: int = 0
    attributes: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Task:
    id: int
    computation_cost: int


class BorderKind(Enum):
    SINK = "Sink"
    SOURCE = "Source"


@dataclass(frozen=True)
class BorderEntry:
    kind: BorderKind
    task_id: int

    @classmethod
    def sink(cls, task_id: int) -> "BorderEntry":
        return cls(BorderKind.SINK, task_id)

    @classmethod
    def source(cls, task_id: int) -> "BorderEntry":
        return cls(BorderKind.SOURCE, task_id)


@dataclass(frozen=True)
class Router:
    attributes: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Core:
    id: int
    attributes: Dict[str, str] = field(default_factory=dict)
    router: Router = field(default_factory=Router)
    channels: Dict[Direction, Channel] = field(default_factory=dict)
    allocated_task: Optional[int] = None


@dataclass(frozen=True)
class RoutingEntry:
    """Directions of one core whose output or source channel carries load."""

    out: FrozenSet[Direction] = frozenset()
    source: FrozenSet[Direction] = frozenset()


RoutingMap = Dict[int, RoutingEntry]


@dataclass
class Topology:
    rows: int
    columns: int
    cores: List[Core]
    tasks: Dict[int, Task] = field(default_factory=dict)
    borders: Optional[Dict[int, Dict[Direction, BorderEntry]]] = None
    sources: Dict[int, int] = field(default_factory=dict)
    routing: Dict[str, RoutingMap] = field(default_factory=dict)

    def position(self, core_id: int) -> Tuple[int, int]:
        return core_id // self.columns, core_id % self.columns

    def route(self, algorithm: str) -> RoutingMap:
        try:
            return self.routing[algorithm]
        except KeyError:
            raise TopologyMismatchError(
                f'no routing data for algorithm "{algorithm}"'
            ) from None

    def task_for(self, core: Core) -> Optional[Task]:
        if core.allocated_task is None:
            return None
        task = self.tasks.get(core.allocated_task)
        if task is None:
            raise TopologyMismatchError(
                f"core {core.id} has task {core.allocated_task} allocated but the task is not in the task graph",
                core_id=core.id,
                task_id=core.allocated_task,
            )
        return task

    def border_entries(self, core_id: int) -> Dict[Direction, BorderEntry]:
        if not self.borders:
            return {}
        return self.borders.get(core_id, {})

    def validate(self) -> None:
        if self.rows <= 0 or self.columns <= 0:
            raise TopologyMismatchError(
                f"grid must have at least one row and column (got {self.rows}x{self.columns})"
            )
        if len(self.cores) != self.rows * self.columns:
            raise TopologyMismatchError(
                f"expected {self.rows * self.columns} cores for a {self.rows}x{self.columns} grid, got {len(self.cores)}"
            )
        for index, core in enumerate(self.cores):
            if core.id != index:
                raise TopologyMismatchError(
                    f"core at index {index} has id {core.id}; ids must match list order",
                    core_id=core.id,
                )
            for direction, channel in core.channels.items():
                if channel.direction is not direction:
                    raise TopologyMismatchError(
                        f"core {core.id} stores a {channel.direction.value} channel under {direction.value}",
                        core_id=core.id,
                        direction=direction,
                    )


def topology_from_dict(payload: Mapping[str, Any]) -> Topology:
    """Build a :class:`Topology` from its JSON representation."""
    payload = _mapping(payload, "topology")
    try:
        rows = int(payload["rows"])
        columns = int(payload["columns"])
        raw_cores = list(payload["cores"])
    except (KeyError, TypeError, ValueError) as exc:
        raise TopologyMismatchError(f"topology is missing rows/columns/cores: {exc}") from exc

    cores: List[Core] = []
    for index, raw_core in enumerate(raw_cores):
        raw_core = _mapping(raw_core, f"core {index}")
        channels: Dict[Direction, Channel] = {}
        raw_channels = _mapping(raw_core.get("channels") or {}, f"channels of core {index}")
        for raw_direction, raw_channel in raw_channels.items():
            direction = Direction.parse(raw_direction)
            raw_channel = _mapping(raw_channel, f"{direction.value} channel of core {index}")
            channels[direction] = Channel(
                direction=direction,
                bandwidth=int(raw_channel.get("bandwidth", 0)),
                current_load=int(raw_channel.get("load", 0)),
                attributes=_string_bag(raw_channel.get("attributes")),
            )
        raw_router = _mapping(raw_core.get("router") or {}, f"router of core {index}")
        task = raw_core.get("task")
        cores.append(
            Core(
                id=index,
                attributes=_string_bag(raw_core.get("attributes")),
                router=Router(_string_bag(raw_router.get("attributes"))),
                channels=channels,
                allocated_task=int(task) if task is not None else None,
            )
        )

    tasks: Dict[int, Task] = {}
    for raw in payload.get("tasks") or []:
        raw = _mapping(raw, "task")
        tasks[int(raw["id"])] = Task(int(raw["id"]), int(raw.get("cost", 0)))

    borders: Optional[Dict[int, Dict[Direction, BorderEntry]]] = None
    if payload.get("borders") is not None:
        borders = {}
        for raw_core_id, raw_entries in _mapping(payload["borders"], "borders").items():
            entries: Dict[Direction, BorderEntry] = {}
            for raw_direction, raw_entry in _mapping(raw_entries, f"borders of core {raw_core_id}").items():
                entries[Direction.parse(raw_direction)] = _border_entry(raw_entry)
            borders[int(raw_core_id)] = entries

    raw_sources = _mapping(payload.get("sources") or {}, "sources")
    sources = {int(k): int(v) for k, v in raw_sources.items()}

    routing: Dict[str, RoutingMap] = {}
    for algorithm, raw_map in _mapping(payload.get("routing") or {}, "routing").items():
        routing_map: RoutingMap = {}
        for raw_core_id, raw_entry in _mapping(raw_map, f"routing for {algorithm}").items():
            raw_entry = _mapping(raw_entry, f"{algorithm} routing entry of core {raw_core_id}")
            routing_map[int(raw_core_id)] = RoutingEntry(
                out=frozenset(Direction.parse(d) for d in raw_entry.get("out", [])),
                source=frozenset(Direction.parse(d) for d in raw_entry.get("source", [])),
            )
        routing[algorithm] = routing_map

    topology = Topology(
        rows=rows,
        columns=columns,
        cores=cores,
        tasks=tasks,
        borders=borders,
        sources=sources,
        routing=routing,
    )
    topology.validate()
    return topology


def _mapping(raw: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(raw, Mapping):
        raise TopologyMismatchError(f"{what} must be a JSON object, got {type(raw).__name__}")
    return raw


def _border_entry(raw: Any) -> BorderEntry:
    raw = _mapping(raw, "border entry")
    if "sink" in raw:
        return BorderEntry.sink(int(raw["sink"]))
    if "source" in raw:
        return BorderEntry.source(int(raw["source"]))
    raise TopologyMismatchError(f"border entry must name a sink or a source, got {dict(raw)!r}")


def _string_bag(raw: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    if not raw:
        return {}
    raw = _mapping(raw, "attributes")
    return {str(k): str(v) for k, v in raw.items()}
