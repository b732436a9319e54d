"""Fixed block grid: where every core, router and task badge sits."""
from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import List, Tuple

from .bounds import Box, CanvasBounds
from .settings import ProcessedBaseConfiguration
from .svg import q
from .text import TEXT_MEASURER, TextLabel, TextMeasurer
from .topology import Task

SIDE_LENGTH = 100
HALF_SIDE = SIDE_LENGTH // 2
ROUTER_OFFSET = SIDE_LENGTH * 3 // 4
HALF_ROUTER_OFFSET = ROUTER_OFFSET // 2
BLOCK_LENGTH = SIDE_LENGTH + ROUTER_OFFSET
CONNECTION_LENGTH = 150
MARKER_HEIGHT = 14
BLOCK_DISTANCE = CONNECTION_LENGTH - ROUTER_OFFSET + MARKER_HEIGHT
BLOCK_STEP = BLOCK_LENGTH + BLOCK_DISTANCE
STROKE = 1

CORE_PATH = "l0,100 l100,0 l0,-75 l-25,-25 l-75,0 Z"
ROUTER_PATH = "l0,-75 l100,0 l0,100 l-75,0 Z"
# Text areas, one pixel inside the stroke of the shapes above.
CORE_CLIP_PATH = "l0,100 l98,0 l0,-75 l-25,-25 l-75,0 Z"
ROUTER_CLIP_PATH = "l0,74 l25,25 l73,0 l0,-100 Z"

BASE_FILL_CLASS = "baseFill"

TASK_RECT_X_OFFSET = 10
TASK_RECT_RADIUS = 10
TASK_RECT_FILL = "#bfdbfe"

Point = Tuple[int, int]


def core_element_id(core_id: int) -> str:
    return f"c{core_id}"


def router_element_id(core_id: int) -> str:
    return f"r{core_id}"


def core_clip_id(core_id: int) -> str:
    return f"coreClip{core_id}"


def router_clip_id(core_id: int) -> str:
    return f"routerClip{core_id}"


def _span(count: int) -> int:
    return count * BLOCK_LENGTH + max(count - 1, 0) * BLOCK_DISTANCE + 2 * STROKE


@dataclass(frozen=True)
class GridLayout:
    """Grid dimensions, centred on the origin."""

    rows: int
    columns: int
    width: int
    height: int
    top_left: Point

    @classmethod
    def for_grid(cls, rows: int, columns: int) -> "GridLayout":
        width = _span(columns)
        height = _span(rows)
        return cls(rows, columns, width, height, (-(width // 2), -(height // 2)))

    def core_origin(self, row: int, column: int) -> Point:
        """Top-left corner of the core polygon."""
        left, top = self.top_left
        return (
            column * BLOCK_STEP + left + STROKE,
            row * BLOCK_STEP + ROUTER_OFFSET + top + STROKE,
        )

    def router_origin(self, row: int, column: int) -> Point:
        """Bottom-left corner of the router polygon."""
        x, y = self.core_origin(row, column)
        return x + ROUTER_OFFSET, y

    def base_bounds(self) -> CanvasBounds:
        return CanvasBounds(self.top_left[0], self.top_left[1], self.width, self.height)


def _path(x: int, y: int, relative: str, **attrs: str) -> ET.Element:
    return ET.Element(q("path"), {"d": f"M{x},{y} {relative}", **attrs})


@dataclass(frozen=True)
class ProcessingGroup:
    core_id: int
    row: int
    column: int
    core_x: int
    core_y: int
    router_x: int
    router_y: int

    @classmethod
    def build(cls, layout: GridLayout, core_id: int) -> "ProcessingGroup":
        row, column = divmod(core_id, layout.columns)
        core_x, core_y = layout.core_origin(row, column)
        router_x, router_y = layout.router_origin(row, column)
        return cls(core_id, row, column, core_x, core_y, router_x, router_y)

    @property
    def router_centre(self) -> Point:
        return self.router_x + HALF_SIDE, self.router_y - (SIDE_LENGTH - ROUTER_OFFSET)

    @property
    def core_label_origin(self) -> Point:
        return self.core_x + STROKE, self.core_y + STROKE

    @property
    def router_label_origin(self) -> Point:
        return self.router_x + STROKE, self.router_y - ROUTER_OFFSET + STROKE

    def core_path(self) -> str:
        return f"M{self.core_x},{self.core_y} {CORE_PATH}"

    def router_path(self) -> str:
        return f"M{self.router_x},{self.router_y} {ROUTER_PATH}"

    def to_element(self) -> ET.Element:
        group = ET.Element(q("g"), {"id": f"g{self.core_id}"})
        group.append(
            _path(
                self.core_x,
                self.core_y,
                CORE_PATH,
                id=core_element_id(self.core_id),
                **{"class": BASE_FILL_CLASS, "stroke": "black", "stroke-width": str(STROKE)},
            )
        )
        group.append(
            _path(
                self.router_x,
                self.router_y,
                ROUTER_PATH,
                id=router_element_id(self.core_id),
                **{"class": BASE_FILL_CLASS, "stroke": "black", "stroke-width": str(STROKE)},
            )
        )
        return group

    def clip_paths(self) -> List[ET.Element]:
        core_clip = ET.Element(q("clipPath"), {"id": core_clip_id(self.core_id)})
        core_clip.append(_path(self.core_x, self.core_y, CORE_CLIP_PATH))
        router_clip = ET.Element(q("clipPath"), {"id": router_clip_id(self.core_id)})
        router_clip.append(
            _path(self.router_x, self.router_y - ROUTER_OFFSET, ROUTER_CLIP_PATH)
        )
        return [core_clip, router_clip]


@dataclass(frozen=True)
class TaskBadge:
    """Rounded badge naming the task allocated to a core.

    The badge hangs off the bottom-left corner of its core. The with-cost
    variant stacks ``[cost]`` below the task name and widens to the longer
    of the two labels.
    """

    task_id: int
    cost: int
    core_x: int
    core_y: int
    with_cost: bool
    x: int
    y: int
    width: int
    height: int
    labels: Tuple[TextLabel, ...]
    base: ProcessedBaseConfiguration

    @classmethod
    def build(
        cls,
        task: Task,
        group: ProcessingGroup,
        base: ProcessedBaseConfiguration,
        with_cost: bool = False,
        measurer: TextMeasurer = TEXT_MEASURER,
    ) -> "TaskBadge":
        return cls._place(task.id, task.computation_cost, group.core_x, group.core_y, base, with_cost, measurer)

    @classmethod
    def _place(
        cls,
        task_id: int,
        cost: int,
        core_x: int,
        core_y: int,
        base: ProcessedBaseConfiguration,
        with_cost: bool,
        measurer: TextMeasurer,
    ) -> "TaskBadge":
        task_text = f"T{task_id}"
        cost_text = f"[{cost}]"
        text_width = measurer.measure(task_text, base.task_font_size)
        if with_cost:
            text_width = max(text_width, measurer.measure(cost_text, base.task_font_size))
            height = base.task_rect_with_cost_height
        else:
            height = base.task_rect_height
        width = text_width + base.task_text_padding

        right = core_x + TASK_RECT_X_OFFSET - STROKE
        centre_y = core_y + SIDE_LENGTH - STROKE
        x = right - width
        y = centre_y - height // 2
        centre_x = x + width // 2

        if with_cost:
            offset = base.task_font_px // 2 + STROKE
            labels: Tuple[TextLabel, ...] = (
                TextLabel(centre_x, centre_y - offset, task_text, base.task_font_size, "middle", "central"),
                TextLabel(centre_x, centre_y + offset, cost_text, base.task_font_size, "middle", "central"),
            )
        else:
            labels = (TextLabel(centre_x, centre_y, task_text, base.task_font_size, "middle", "central"),)
        return cls(task_id, cost, core_x, core_y, with_cost, x, y, width, height, labels, base)

    def toggled(self, measurer: TextMeasurer = TEXT_MEASURER) -> "TaskBadge":
        return self._place(
            self.task_id,
            self.cost,
            self.core_x,
            self.core_y,
            self.base,
            not self.with_cost,
            measurer,
        )

    def bbox(self) -> Box:
        return self.x, self.y, self.x + self.width, self.y + self.height

    def to_element(self) -> ET.Element:
        group = ET.Element(q("g"), {"id": f"t{self.task_id}"})
        ET.SubElement(
            group,
            q("rect"),
            {
                "x": str(self.x),
                "y": str(self.y),
                "width": str(self.width),
                "height": str(self.height),
                "rx": str(TASK_RECT_RADIUS),
                "fill": TASK_RECT_FILL,
                "stroke": "black",
                "stroke-width": str(STROKE),
            },
        )
        for label in self.labels:
            group.append(label.to_element())
        return group

