"""Sink and source badges drawn beyond the boundary routers."""
from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .bounds import Box
from .connections import EDGE_DATA_CLASS, EdgePosition, classify_position
from .geometry import MARKER_HEIGHT, SIDE_LENGTH, STROKE, ProcessingGroup
from .settings import ProcessedBaseConfiguration
from .svg import q
from .text import TEXT_MEASURER, TextLabel, TextMeasurer
from .topology import BorderEntry, BorderKind, Direction, Topology

GLYPH_SIZE = 70
GLYPH_RADIUS = 15
SOURCE_FILL = "#fbbf24"
SINK_FILL = "#fb923c"
PLACEHOLDER_FILL = "#e5e5e5"

# Room reserved on every side of the grid once any glyph exists.
GLYPH_MARGIN = SIDE_LENGTH + GLYPH_SIZE + STROKE + MARKER_HEIGHT

_NORTH_DELTA = (28, -259)
_SOUTH_DELTA = (28, 214)
_EAST_DELTA = (214, -73)
_WEST_DELTA = (-259, -73)


def glyph_delta(direction: Direction) -> Tuple[int, int]:
    """Offset from the router origin to the glyph's top-left corner."""
    if direction is Direction.NORTH:
        return _NORTH_DELTA
    if direction is Direction.SOUTH:
        return _SOUTH_DELTA
    if direction is Direction.EAST:
        return _EAST_DELTA
    if direction is Direction.WEST:
        return _WEST_DELTA
    raise ValueError(f"unhandled direction {direction!r}")


@dataclass(frozen=True)
class BorderGlyph:
    core_id: int
    direction: Direction
    entry: Optional[BorderEntry]
    x: int
    y: int
    width: int
    label: Optional[TextLabel]

    @property
    def height(self) -> int:
        return GLYPH_SIZE

    @property
    def fill(self) -> str:
        if self.entry is None:
            return PLACEHOLDER_FILL
        if self.entry.kind is BorderKind.SOURCE:
            return SOURCE_FILL
        return SINK_FILL

    def bbox(self) -> Box:
        return self.x, self.y, self.x + self.width, self.y + GLYPH_SIZE

    def to_element(self) -> ET.Element:
        group = ET.Element(q("g"), {"class": EDGE_DATA_CLASS})
        ET.SubElement(
            group,
            q("rect"),
            {
                "x": str(self.x),
                "y": str(self.y),
                "width": str(self.width),
                "height": str(GLYPH_SIZE),
                "rx": str(GLYPH_RADIUS),
                "fill": self.fill,
                "stroke": "black",
                "stroke-width": str(STROKE),
            },
        )
        if self.label is not None:
            group.append(self.label.to_element())
        return group


def build_glyph(
    group: ProcessingGroup,
    direction: Direction,
    entry: Optional[BorderEntry],
    base: ProcessedBaseConfiguration,
    measurer: TextMeasurer = TEXT_MEASURER,
) -> BorderGlyph:
    dx, dy = glyph_delta(direction)
    x, y = group.router_x + dx, group.router_y + dy
    label_text = f"T{entry.task_id}" if entry is not None else None
    width = GLYPH_SIZE
    if label_text is not None:
        width = max(GLYPH_SIZE, measurer.measure(label_text, base.task_font_size) + base.task_text_padding)
    # Wider badges grow away from the router: centred above and below,
    # outward to the sides.
    extra = width - GLYPH_SIZE
    if direction in (Direction.NORTH, Direction.SOUTH):
        x -= extra // 2
    elif direction is Direction.WEST:
        x -= extra
    label = None
    if label_text is not None:
        label = TextLabel(
            x + width // 2,
            y + GLYPH_SIZE // 2,
            label_text,
            base.task_font_size,
            anchor="middle",
            baseline="central",
        )
    return BorderGlyph(group.core_id, direction, entry, x, y, width, label)


def build_glyphs(
    topology: Topology,
    groups: List[ProcessingGroup],
    base: ProcessedBaseConfiguration,
    measurer: TextMeasurer = TEXT_MEASURER,
) -> List[BorderGlyph]:
    """One glyph per boundary-facing direction of every boundary core.

    Nothing is built when the topology carries no boundary map at all.
    """
    if topology.borders is None:
        return []
    glyphs: List[BorderGlyph] = []
    for group in groups:
        position, facing = classify_position(group.row, group.column, topology.rows, topology.columns)
        if position is EdgePosition.INTERIOR:
            continue
        entries = topology.border_entries(group.core_id)
        for direction in facing:
            glyphs.append(build_glyph(group, direction, entries.get(direction), base, measurer))
    return glyphs
