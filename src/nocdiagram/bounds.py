"""Canvas bounds that only ever grow, plus the overflow accumulator."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

Box = Tuple[int, int, int, int]


@dataclass(frozen=True)
class BoundsSnapshot:
    x: int
    y: int
    width: int
    height: int


class CanvasBounds:
    """The document viewBox.

    Every mutator grows the rectangle; the only way back is
    :meth:`restore` with a snapshot taken earlier.
    """

    def __init__(self, x: int, y: int, width: int, height: int) -> None:
        self.x = x
        self.y = y
        self.width = max(width, 0)
        self.height = max(height, 0)

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def extend_left(self, amount: int) -> None:
        amount = max(amount, 0)
        self.x -= amount
        self.width += amount

    def extend_top(self, amount: int) -> None:
        amount = max(amount, 0)
        self.y -= amount
        self.height += amount

    def extend_right(self, amount: int) -> None:
        self.width += max(amount, 0)

    def extend_bottom(self, amount: int) -> None:
        self.height += max(amount, 0)

    def extend_all(self, margin: int) -> None:
        self.extend_left(margin)
        self.extend_top(margin)
        self.extend_right(margin)
        self.extend_bottom(margin)

    def cover(self, box: Box) -> bool:
        """Grow until ``box`` is inside; returns whether anything changed."""
        left, top, right, bottom = box
        before = self.snapshot()
        self.extend_left(self.x - left)
        self.extend_top(self.y - top)
        self.extend_right(right - self.right)
        self.extend_bottom(bottom - self.bottom)
        return self.snapshot() != before

    def snapshot(self) -> BoundsSnapshot:
        return BoundsSnapshot(self.x, self.y, self.width, self.height)

    def restore(self, snapshot: BoundsSnapshot) -> None:
        self.x = snapshot.x
        self.y = snapshot.y
        self.width = snapshot.width
        self.height = snapshot.height

    def __str__(self) -> str:
        return f"{self.x} {self.y} {self.width} {self.height}"

    def __repr__(self) -> str:
        return f"CanvasBounds({self})"


class Offsets:
    """Running union of element boxes seen during a placement pass."""

    def __init__(self) -> None:
        self.box: Optional[Box] = None

    def update(self, box: Box) -> None:
        if self.box is None:
            self.box = box
            return
        self.box = (
            min(self.box[0], box[0]),
            min(self.box[1], box[1]),
            max(self.box[2], box[2]),
            max(self.box[3], box[3]),
        )

    def update_all(self, boxes: Iterable[Box]) -> None:
        for box in boxes:
            self.update(box)

    def apply(self, bounds: CanvasBounds) -> bool:
        if self.box is None:
            return False
        return bounds.cover(self.box)


def task_overflow(bounds: CanvasBounds, badge_boxes: Iterable[Box], stroke: int) -> Tuple[int, int]:
    """Largest leftward and downward overflow of task badges, stroke included.

    Badges hang off the left and bottom of their core, so only those two
    sides can spill past the base grid.
    """
    left = 0
    bottom = 0
    for box_left, _top, _right, box_bottom in badge_boxes:
        left = max(left, bounds.x - box_left)
        bottom = max(bottom, box_bottom - bounds.bottom)
    return (left + stroke if left > 0 else 0, bottom + stroke if bottom > 0 else 0)
