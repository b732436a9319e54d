"""Text labels and their measured extents."""
from __future__ import annotations

import math
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from PIL import ImageFont

from .settings import CHAR_WIDTH_RATIO
from .svg import q

FONT_FAMILY = "Roboto Mono"
DEFAULT_TEXT_FILL = "black"


class TextMeasurer:
    """Caches Pillow fonts and exposes width helpers."""

    FONT_CANDIDATES = (
        "RobotoMono-Regular.ttf",
        "DejaVuSansMono.ttf",
        "LiberationMono-Regular.ttf",
        "Menlo.ttc",
        "consola.ttf",
    )

    def __init__(self) -> None:
        self._font_cache: Dict[int, Optional["ImageFont.FreeTypeFont"]] = {}

    def font(self, size: float) -> Optional["ImageFont.FreeTypeFont"]:
        key_size = max(1, int(round(size)))
        if key_size in self._font_cache:
            return self._font_cache[key_size]
        font: Optional["ImageFont.FreeTypeFont"] = None
        for candidate in self.FONT_CANDIDATES:
            try:
                font = ImageFont.truetype(candidate, key_size)
                break
            except OSError:
                continue
        self._font_cache[key_size] = font
        return font

    def measure(self, text: str, size: float) -> int:
        font = self.font(size)
        if font is None:
            return heuristic_width(text, size)
        return int(math.ceil(font.getlength(text)))


def heuristic_width(text: str, size: float) -> int:
    return int(math.ceil(len(text) * size * CHAR_WIDTH_RATIO))


TEXT_MEASURER = TextMeasurer()


@dataclass(frozen=True)
class TextLabel:
    x: int
    y: int
    text: str
    font_size: float
    anchor: str = "start"
    baseline: str = "text-before-edge"
    fill: str = DEFAULT_TEXT_FILL
    css_class: Optional[str] = None

    def to_element(self) -> ET.Element:
        attrs = {
            "x": str(self.x),
            "y": str(self.y),
            "font-size": f"{_fmt_size(self.font_size)}px",
            "font-family": FONT_FAMILY,
            "text-anchor": self.anchor,
            "dominant-baseline": self.baseline,
            "fill": self.fill,
        }
        if self.css_class:
            attrs["class"] = self.css_class
        element = ET.Element(q("text"), attrs)
        element.text = self.text
        return element

    def bbox(self, measurer: TextMeasurer = TEXT_MEASURER) -> Tuple[int, int, int, int]:
        """Return ``(left, top, right, bottom)`` of the rendered label."""
        width = measurer.measure(self.text, self.font_size)
        height = int(math.ceil(self.font_size))
        if self.anchor == "middle":
            left = self.x - width // 2
        elif self.anchor == "end":
            left = self.x - width
        else:
            left = self.x
        if self.baseline in ("middle", "central"):
            top = self.y - height // 2
        elif self.baseline == "text-after-edge":
            top = self.y - height
        else:
            top = self.y
        return left, top, left + width, top + height


def _fmt_size(value: float) -> str:
    if math.isclose(value, round(value)):
        return str(int(round(value)))
    return f"{value:.2f}".rstrip("0").rstrip(".")
