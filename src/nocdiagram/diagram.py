"""Full topology render and the partial update engine built on top of it."""
from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from copy import deepcopy
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .borders import GLYPH_MARGIN, BorderGlyph, build_glyphs
from .bounds import BoundsSnapshot, CanvasBounds, Offsets, task_overflow
from .connections import EDGE_DATA_CLASS, MARKER_ID, ConnectionIndex, build_connections
from .encoding import TEXT_BACKGROUND_ID, Overlay, encode_core
from .errors import TopologyMismatchError
from .geometry import (
    BASE_FILL_CLASS,
    MARKER_HEIGHT,
    STROKE,
    GridLayout,
    ProcessingGroup,
    TaskBadge,
)
from .settings import BaseConfiguration, Configuration, ProcessedBaseConfiguration
from .svg import fmt, fragment, pretty_xml, q
from .text import TEXT_MEASURER, TextMeasurer
from .topology import DIRECTIONS, Topology

logger = logging.getLogger(__name__)

DEFAULT_FILL = "#e5e5e5"
BASE_STYLE = f".{BASE_FILL_CLASS}{{fill: {DEFAULT_FILL};}}"
HIDE_EDGE_DATA_STYLE = f".{EDGE_DATA_CLASS}{{display: none;}}"
MARKER_PATH = "M0,0 M0,0 V14 L14,7 Z"
CLIP_PATH_ID = "crop"
EXPORT_GUIDE_STROKE = "#ff0000"


class EngineState(Enum):
    COMMITTED = "committed"
    PENDING = "pending"


@dataclass(frozen=True)
class UpdateResult:
    """Fragments a front-end swaps into the document it already shows.

    ``bounds`` is only set when the viewBox grew, ``tasks`` only when task
    badges were toggled and ``svg`` only when the update forced a full
    re-render.
    """

    style: str
    overlay: str
    bounds: Optional[str] = None
    tasks: Optional[str] = None
    svg: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "styleFragment": self.style,
            "overlayFragment": self.overlay,
            "boundsString": self.bounds,
            "tasksFragment": self.tasks,
            "svg": self.svg,
        }


@dataclass
class _Document:
    topology: Topology
    base_configuration: BaseConfiguration
    base: ProcessedBaseConfiguration
    layout: GridLayout
    groups: List[ProcessingGroup]
    connections: ConnectionIndex
    glyphs: List[BorderGlyph]
    badges: Dict[int, TaskBadge]
    bounds: CanvasBounds
    style: str = ""
    overlay: List[ET.Element] = field(default_factory=list)


def stylesheet(rules: Iterable[str], show_border_routers: bool) -> str:
    css = BASE_STYLE
    if not show_border_routers:
        css += HIDE_EDGE_DATA_STYLE
    return css + "".join(rules)


def _build_document(
    topology: Topology, base_configuration: BaseConfiguration, measurer: TextMeasurer
) -> _Document:
    topology.validate()
    base = ProcessedBaseConfiguration.from_base(base_configuration)
    layout = GridLayout.for_grid(topology.rows, topology.columns)
    groups = [ProcessingGroup.build(layout, core.id) for core in topology.cores]
    connections = build_connections(topology, layout, groups)

    badges: Dict[int, TaskBadge] = {}
    for core, group in zip(topology.cores, groups):
        task = topology.task_for(core)
        if task is not None:
            badges[core.id] = TaskBadge.build(task, group, base, measurer=measurer)

    glyphs = build_glyphs(topology, groups, base, measurer)

    bounds = layout.base_bounds()
    left, bottom = task_overflow(bounds, [badge.bbox() for badge in badges.values()], STROKE)
    bounds.extend_left(left)
    bounds.extend_bottom(bottom)
    # Boundary link paths need the same margin as the glyphs at their ends.
    if glyphs or any(connection.edge for connection in connections):
        bounds.extend_all(GLYPH_MARGIN)
    if glyphs:
        offsets = Offsets()
        offsets.update_all(glyph.bbox() for glyph in glyphs)
        offsets.apply(bounds)

    logger.debug(
        "rendered %dx%d grid: %d connections, %d task badges, %d glyphs, viewBox %s",
        topology.rows,
        topology.columns,
        len(connections),
        len(badges),
        len(glyphs),
        bounds,
    )
    return _Document(
        topology=topology,
        base_configuration=base_configuration,
        base=base,
        layout=layout,
        groups=groups,
        connections=connections,
        glyphs=glyphs,
        badges=badges,
        bounds=bounds,
        style=stylesheet((), False),
    )


def _structure(topology: Topology) -> Tuple[Any, ...]:
    """Everything in a topology that changes geometry rather than labels."""
    return (
        topology.rows,
        topology.columns,
        tuple(
            (tuple(d for d in DIRECTIONS if d in core.channels), core.allocated_task)
            for core in topology.cores
        ),
        topology.borders,
        tuple(sorted(topology.tasks.items())),
    )


def _marker() -> ET.Element:
    marker = ET.Element(
        q("marker"),
        {
            "id": MARKER_ID,
            "orient": "auto",
            "markerWidth": str(MARKER_HEIGHT),
            "markerHeight": str(MARKER_HEIGHT),
            "refY": str(MARKER_HEIGHT // 2),
        },
    )
    ET.SubElement(marker, q("path"), {"d": MARKER_PATH, "fill": "black"})
    return marker


def _text_background() -> ET.Element:
    text_filter = ET.Element(
        q("filter"), {"id": TEXT_BACKGROUND_ID, "x": "0", "y": "0", "width": "1", "height": "1"}
    )
    ET.SubElement(text_filter, q("feFlood"), {"flood-color": DEFAULT_FILL})
    ET.SubElement(text_filter, q("feComposite"), {"in": "SourceGraphic", "operator": "or"})
    return text_filter


def _serialise(document: _Document, clip_points: Optional[str]) -> str:
    root = ET.Element(
        q("svg"),
        {
            "viewBox": str(document.bounds),
            "preserveAspectRatio": "xMidYMid meet",
            "class": "mx-auto",
        },
    )
    defs = ET.SubElement(root, q("defs"))
    defs.append(_marker())
    defs.append(_text_background())
    for group in document.groups:
        defs.extend(group.clip_paths())
    if clip_points is not None:
        clip = ET.SubElement(defs, q("clipPath"), {"id": CLIP_PATH_ID})
        ET.SubElement(clip, q("polygon"), {"points": clip_points})

    style = ET.SubElement(root, q("style"))
    style.text = document.style

    main_attrs = {"id": "mainGroup"}
    if clip_points is not None:
        main_attrs["clip-path"] = f"url(#{CLIP_PATH_ID})"
    main = ET.SubElement(root, q("g"), main_attrs)

    processing = ET.SubElement(main, q("g"), {"id": "processingGroup"})
    for group in document.groups:
        processing.append(group.to_element())
    for badge in document.badges.values():
        processing.append(badge.to_element())

    connections = ET.SubElement(main, q("g"), {"id": "connectionsGroup"})
    for connection in document.connections:
        connections.append(connection.to_element())

    sinks_sources = ET.SubElement(main, q("g"), {"id": "sinksSources"})
    for glyph in document.glyphs:
        sinks_sources.append(glyph.to_element())

    information = ET.SubElement(main, q("g"), {"id": "information"})
    information.extend([deepcopy(element) for element in document.overlay])

    ET.SubElement(
        root,
        q("rect"),
        {"id": "events", "width": "100%", "height": "100%", "fill": "none", "stroke": "none"},
    )
    ET.SubElement(
        root,
        q("rect"),
        {
            "id": "exportingAid",
            "width": "100%",
            "height": "100%",
            "fill": "none",
            "stroke": EXPORT_GUIDE_STROKE,
            "stroke-width": str(STROKE),
        },
    )
    return pretty_xml(root)


class TopologyDiagram:
    """A rendered topology that accepts display-configuration updates.

    Constructing the diagram performs the full render. Later calls to
    :meth:`update` recompute only the stylesheet, overlay, task badges and
    viewBox; a failed update leaves the diagram exactly as it was.
    """

    def __init__(
        self,
        topology: Topology,
        base_configuration: Optional[BaseConfiguration] = None,
        *,
        measurer: TextMeasurer = TEXT_MEASURER,
    ) -> None:
        self._measurer = measurer
        self._document = _build_document(topology, base_configuration or BaseConfiguration(), measurer)
        self._clip_points: Optional[str] = None
        self.configuration = Configuration()
        self.state = EngineState.COMMITTED

    @classmethod
    def render(
        cls,
        topology: Topology,
        configuration: Optional[Configuration] = None,
        base_configuration: Optional[BaseConfiguration] = None,
        *,
        measurer: TextMeasurer = TEXT_MEASURER,
    ) -> "TopologyDiagram":
        diagram = cls(topology, base_configuration, measurer=measurer)
        if configuration is not None:
            diagram.update(configuration)
        return diagram

    @property
    def topology(self) -> Topology:
        return self._document.topology

    @property
    def base_configuration(self) -> BaseConfiguration:
        return self._document.base_configuration

    @property
    def bounds(self) -> CanvasBounds:
        return self._document.bounds

    @property
    def connections(self) -> ConnectionIndex:
        return self._document.connections

    @property
    def groups(self) -> Tuple[ProcessingGroup, ...]:
        return tuple(self._document.groups)

    @property
    def glyphs(self) -> Tuple[BorderGlyph, ...]:
        return tuple(self._document.glyphs)

    @property
    def task_badges(self) -> Tuple[TaskBadge, ...]:
        return tuple(self._document.badges.values())

    @property
    def style(self) -> str:
        return self._document.style

    def overlay_fragment(self) -> str:
        return fragment(self._document.overlay)

    def tasks_fragment(self) -> str:
        return fragment(badge.to_element() for badge in self._document.badges.values())

    def to_svg(self) -> str:
        return _serialise(self._document, self._clip_points)

    def set_clip_polygon(self, points: Sequence[Tuple[float, float]]) -> None:
        """Clip the main group to a freeform polygon, e.g. for partial exports."""
        if len(points) < 3:
            raise ValueError(f"a clip polygon needs at least 3 points, got {len(points)}")
        self._clip_points = " ".join(f"{fmt(x)},{fmt(y)}" for x, y in points)

    def clear_clip_polygon(self) -> None:
        self._clip_points = None

    def toggle_tasks(self, task_ids: Optional[Iterable[int]] = None) -> UpdateResult:
        """Switch badges between plain and with-cost; ``None`` toggles all."""
        if task_ids is None:
            task_ids = [badge.task_id for badge in self._document.badges.values()]
        return self.update(self.configuration, toggle_tasks=task_ids)

    def update(
        self,
        configuration: Configuration,
        *,
        topology: Optional[Topology] = None,
        base_configuration: Optional[BaseConfiguration] = None,
        toggle_tasks: Optional[Iterable[int]] = None,
    ) -> UpdateResult:
        if self.state is EngineState.PENDING:
            raise RuntimeError("an update is already in progress on this diagram")
        snapshot = self._document.bounds.snapshot()
        self.state = EngineState.PENDING
        try:
            result = self._apply(configuration, topology, base_configuration, toggle_tasks, snapshot)
        except Exception:
            self._document.bounds.restore(snapshot)
            logger.warning("update rolled back, viewBox restored to %s", self._document.bounds)
            raise
        finally:
            self.state = EngineState.COMMITTED
        return result

    def _apply(
        self,
        configuration: Configuration,
        topology: Optional[Topology],
        base_configuration: Optional[BaseConfiguration],
        toggle_tasks: Optional[Iterable[int]],
        snapshot: BoundsSnapshot,
    ) -> UpdateResult:
        current = self._document
        document = current
        rebuilt = False
        if (base_configuration is not None and base_configuration != current.base_configuration) or (
            topology is not None and _structure(topology) != _structure(current.topology)
        ):
            document = _build_document(
                topology or current.topology,
                base_configuration or current.base_configuration,
                self._measurer,
            )
            rebuilt = True
            with_cost = {badge.task_id for badge in current.badges.values() if badge.with_cost}
            document.badges = {
                core_id: badge.toggled(self._measurer) if badge.task_id in with_cost else badge
                for core_id, badge in document.badges.items()
            }
        elif topology is not None:
            topology.validate()
            document = replace(document, topology=topology)

        badges = document.badges
        toggled = False
        if toggle_tasks is not None:
            badges = self._toggled_badges(badges, toggle_tasks)
            toggled = True
        left, bottom = task_overflow(document.bounds, [badge.bbox() for badge in badges.values()], STROKE)
        document.bounds.extend_left(left)
        document.bounds.extend_bottom(bottom)

        overlay = Overlay()
        for core, group in zip(document.topology.cores, document.groups):
            overlay.extend(
                encode_core(
                    core,
                    group,
                    document.topology,
                    document.connections,
                    configuration,
                    document.base,
                    self._measurer,
                )
            )
        offsets = Offsets()
        offsets.update_all(overlay.boxes)
        offsets.apply(document.bounds)

        document = replace(
            document,
            badges=badges,
            style=stylesheet(overlay.css_rules, configuration.show_border_routers()),
            overlay=overlay.elements,
        )

        bounds_changed = rebuilt or document.bounds.snapshot() != snapshot
        result = UpdateResult(
            style=document.style,
            overlay=fragment(document.overlay),
            bounds=str(document.bounds) if bounds_changed else None,
            tasks=fragment(badge.to_element() for badge in badges.values()) if toggled or rebuilt else None,
            svg=_serialise(document, self._clip_points) if rebuilt else None,
        )

        self._document = document
        self.configuration = configuration
        logger.debug(
            "committed update: %d fill rules, %d overlay elements, viewBox %s%s",
            len(overlay.css_rules),
            len(overlay.elements),
            document.bounds,
            " (full re-render)" if rebuilt else "",
        )
        return result

    def _toggled_badges(self, badges: Dict[int, TaskBadge], task_ids: Iterable[int]) -> Dict[int, TaskBadge]:
        wanted = set(task_ids)
        known = {badge.task_id for badge in badges.values()}
        missing = sorted(wanted - known)
        if missing:
            raise TopologyMismatchError(
                f"cannot toggle task {missing[0]}: it is not allocated to any core",
                task_id=missing[0],
            )
        return {
            core_id: badge.toggled(self._measurer) if badge.task_id in wanted else badge
            for core_id, badge in badges.items()
        }


def render_svg(
    topology: Topology,
    configuration: Optional[Configuration] = None,
    base_configuration: Optional[BaseConfiguration] = None,
) -> str:
    """Render a topology straight to an SVG document string."""
    return TopologyDiagram.render(topology, configuration, base_configuration).to_svg()
