"""Connection paths between routers and towards the grid boundary."""
from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Tuple

from .errors import ConnectionLookupError
from .geometry import (
    CONNECTION_LENGTH,
    GridLayout,
    HALF_SIDE,
    MARKER_HEIGHT,
    ProcessingGroup,
    ROUTER_OFFSET,
    SIDE_LENGTH,
    STROKE,
)
from .svg import q
from .topology import DIRECTIONS, Direction, Topology

MARKER_ID = "arrowHead"
EDGE_DATA_CLASS = "edgeData"

# Perpendicular distance between the two paths of a boundary link.
OUTPUT_LINK_OFFSET = 15
# Interior North/East paths are shifted this far so they never share an
# anchor with the neighbour's South/West path.
LINK_GAP = 25

EDGE_NE_LENGTH = SIDE_LENGTH
EDGE_SW_LENGTH = SIDE_LENGTH + ROUTER_OFFSET
# Edge paths start this far from the router so their arrowheads end on it.
EDGE_NE_REACH = EDGE_NE_LENGTH + MARKER_HEIGHT
EDGE_SW_REACH = EDGE_SW_LENGTH + MARKER_HEIGHT

EDGE_ANCHOR_X = 63
EDGE_ANCHOR_Y = 38


class ConnectionRole(Enum):
    OUT = "Out"
    SOURCE = "Source"


class EdgePosition(Enum):
    INTERIOR = "interior"
    SIDE = "side"
    CORNER = "corner"


@dataclass(frozen=True)
class Connection:
    """One drawn path; ``(x, y)`` is where the path starts."""

    core_id: int
    direction: Direction
    role: ConnectionRole
    x: int
    y: int
    relative: str
    edge: bool = False

    @property
    def key(self) -> Tuple[int, Direction, ConnectionRole]:
        return self.core_id, self.direction, self.role

    @property
    def d(self) -> str:
        return f"M{self.x},{self.y} {self.relative}"

    def to_element(self) -> ET.Element:
        attrs = {
            "d": self.d,
            "fill": "none",
            "stroke": "black",
            "stroke-width": str(STROKE),
            "marker-end": f"url(#{MARKER_ID})",
        }
        if self.edge:
            attrs["class"] = EDGE_DATA_CLASS
        return ET.Element(q("path"), attrs)


class ConnectionIndex:
    """Arena of connection records with a ``(core, direction, role)`` lookup."""

    def __init__(self) -> None:
        self._records: List[Connection] = []
        self._lookup: Dict[Tuple[int, Direction, ConnectionRole], int] = {}

    def register(self, connection: Connection) -> int:
        if connection.key in self._lookup:
            raise ConnectionLookupError(
                connection.core_id,
                connection.direction,
                connection.role,
                reason="was registered twice",
            )
        self._records.append(connection)
        self._lookup[connection.key] = len(self._records) - 1
        return self._lookup[connection.key]

    def get(self, core_id: int, direction: Direction, role: ConnectionRole) -> Connection:
        try:
            return self._records[self._lookup[(core_id, direction, role)]]
        except KeyError:
            raise ConnectionLookupError(core_id, direction, role) from None

    def __contains__(self, key: Tuple[int, Direction, ConnectionRole]) -> bool:
        return key in self._lookup

    def __iter__(self) -> Iterator[Connection]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def out_entries(self) -> List[Connection]:
        return [record for record in self._records if record.role is ConnectionRole.OUT]

    def source_entries(self) -> List[Connection]:
        return [record for record in self._records if record.role is ConnectionRole.SOURCE]


def classify_position(
    row: int, column: int, rows: int, columns: int
) -> Tuple[EdgePosition, Tuple[Direction, ...]]:
    """Return where a core sits and which of its directions face off-grid.

    Boundary directions come back verticals first, North before South and
    East before West, so corner output is stable.
    """
    facing: List[Direction] = []
    if row == 0:
        facing.append(Direction.NORTH)
    if row == rows - 1:
        facing.append(Direction.SOUTH)
    if column == columns - 1:
        facing.append(Direction.EAST)
    if column == 0:
        facing.append(Direction.WEST)
    if not facing:
        return EdgePosition.INTERIOR, ()
    if len(facing) == 1:
        return EdgePosition.SIDE, tuple(facing)
    return EdgePosition.CORNER, tuple(facing)


def inner_connection(group: ProcessingGroup, direction: Direction) -> Connection:
    cx, cy = group.router_centre
    if direction is Direction.NORTH:
        return Connection(
            group.core_id, direction, ConnectionRole.OUT, cx + LINK_GAP, cy - HALF_SIDE, f"v-{CONNECTION_LENGTH}"
        )
    if direction is Direction.EAST:
        return Connection(
            group.core_id, direction, ConnectionRole.OUT, cx + HALF_SIDE, cy - LINK_GAP, f"h{CONNECTION_LENGTH}"
        )
    if direction is Direction.SOUTH:
        return Connection(
            group.core_id, direction, ConnectionRole.OUT, cx, cy + HALF_SIDE, f"v{CONNECTION_LENGTH}"
        )
    if direction is Direction.WEST:
        return Connection(
            group.core_id, direction, ConnectionRole.OUT, cx - HALF_SIDE, cy, f"h-{CONNECTION_LENGTH}"
        )
    raise ValueError(f"unhandled direction {direction!r}")


def edge_connections(group: ProcessingGroup, direction: Direction) -> Tuple[Connection, Connection]:
    """Build the ``(output, input)`` pair for a boundary-facing direction."""
    rx, ry = group.router_x, group.router_y
    core_id = group.core_id
    offset = OUTPUT_LINK_OFFSET

    if direction is Direction.NORTH:
        sx, sy = rx + EDGE_ANCHOR_X, ry - ROUTER_OFFSET
        out = Connection(core_id, direction, ConnectionRole.OUT, sx + offset, sy, f"v-{EDGE_NE_LENGTH}", True)
        source = Connection(
            core_id, direction, ConnectionRole.SOURCE, sx - offset, sy - EDGE_NE_REACH, f"v{EDGE_NE_LENGTH}", True
        )
    elif direction is Direction.EAST:
        sx, sy = rx + SIDE_LENGTH, ry - EDGE_ANCHOR_Y
        out = Connection(core_id, direction, ConnectionRole.OUT, sx, sy + offset, f"h{EDGE_NE_LENGTH}", True)
        source = Connection(
            core_id, direction, ConnectionRole.SOURCE, sx + EDGE_NE_REACH, sy - offset, f"h-{EDGE_NE_LENGTH}", True
        )
    elif direction is Direction.SOUTH:
        sx, sy = rx + EDGE_ANCHOR_X, ry + (SIDE_LENGTH - ROUTER_OFFSET)
        out = Connection(core_id, direction, ConnectionRole.OUT, sx - offset, sy, f"v{EDGE_SW_LENGTH}", True)
        source = Connection(
            core_id, direction, ConnectionRole.SOURCE, sx + offset, sy + EDGE_SW_REACH, f"v-{EDGE_SW_LENGTH}", True
        )
    elif direction is Direction.WEST:
        sx, sy = rx, ry - EDGE_ANCHOR_Y
        out = Connection(core_id, direction, ConnectionRole.OUT, sx, sy + offset, f"h-{EDGE_SW_LENGTH}", True)
        source = Connection(
            core_id, direction, ConnectionRole.SOURCE, sx - EDGE_SW_REACH, sy - offset, f"h{EDGE_SW_LENGTH}", True
        )
    else:
        raise ValueError(f"unhandled direction {direction!r}")
    return out, source


def build_connections(
    topology: Topology, layout: GridLayout, groups: List[ProcessingGroup]
) -> ConnectionIndex:
    index = ConnectionIndex()
    for core, group in zip(topology.cores, groups):
        _position, facing = classify_position(group.row, group.column, layout.rows, layout.columns)
        for direction in DIRECTIONS:
            if direction not in core.channels:
                continue
            if direction in facing:
                for connection in edge_connections(group, direction):
                    index.register(connection)
            else:
                index.register(inner_connection(group, direction))
    return index
