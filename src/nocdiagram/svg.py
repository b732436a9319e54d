"""ElementTree helpers shared by every layer."""
from __future__ import annotations

import math
import xml.etree.ElementTree as ET
from typing import Iterable

SVG_NS = "http://www.w3.org/2000/svg"
ET.register_namespace("", SVG_NS)


def q(tag: str) -> str:
    return f"{{{SVG_NS}}}{tag}"


def fmt(value: float) -> str:
    if math.isclose(value, round(value)):
        return str(int(round(value)))
    return f"{value:.3f}".rstrip("0").rstrip(".")


def pretty_xml(element: ET.Element) -> str:
    ET.indent(element, space="    ")
    return ET.tostring(element, encoding="unicode")


def fragment(elements: Iterable[ET.Element]) -> str:
    """Serialise sibling elements without a wrapping parent."""
    return "".join(ET.tostring(element, encoding="unicode") for element in elements)
