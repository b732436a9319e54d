"""Display configuration: per-attribute field variants and base appearance."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import ConfigurationShapeError

logger = logging.getLogger(__name__)

ID_KEY = "@id"
COORDINATES_KEY = "@coordinates"
ROUTING_KEY = "@routing"
BORDER_ROUTERS_KEY = "@borderRouters"

DEFAULT_ATTRIBUTE_FONT_SIZE = 16.0
MINIMUM_ATTRIBUTE_FONT_SIZE = 10.0
MAXIMUM_ATTRIBUTE_FONT_SIZE = 24.0
DEFAULT_TASK_FONT_SIZE = 22.0
MINIMUM_TASK_FONT_SIZE = 16.0
MAXIMUM_TASK_FONT_SIZE = 32.0

CHAR_V_PADDING = 3
# Average monospace glyph width relative to the font size.
CHAR_WIDTH_RATIO = 13.3 / 22.0


@dataclass(frozen=True)
class ColourThresholds:
    """Four ascending bounds and the colour of each bucket.

    With bounds ``(10, 20, 30, 40)`` a value of 9 maps to the first colour,
    11 to the second, 35 to the fourth and anything above 40 to the fourth.
    """

    bounds: Tuple[float, float, float, float]
    colours: Tuple[str, str, str, str]


class FieldConfiguration:
    """Base class of every configuration variant."""

    type_name = "FieldConfiguration"


@dataclass(frozen=True)
class TextField(FieldConfiguration):
    display: str
    colour: Optional[str] = None
    type_name = "Text"


@dataclass(frozen=True)
class ColouredTextField(FieldConfiguration):
    display: str
    thresholds: ColourThresholds
    type_name = "ColouredText"


@dataclass(frozen=True)
class FillField(FieldConfiguration):
    thresholds: ColourThresholds
    type_name = "Fill"


class Orientation(Enum):
    TOP = "T"
    BOTTOM = "B"


@dataclass(frozen=True)
class CoordinatesField(FieldConfiguration):
    orientation: Orientation = Orientation.TOP
    type_name = "Coordinates"


class LoadDisplay(Enum):
    PERCENTAGE = "Percentage"
    FRACTION = "Fraction"


@dataclass(frozen=True)
class RoutingField(FieldConfiguration):
    algorithm: str
    load_display: LoadDisplay
    thresholds: ColourThresholds
    display: str
    type_name = "Routing"


@dataclass(frozen=True)
class BooleanField(FieldConfiguration):
    value: bool
    type_name = "Boolean"


@dataclass
class Configuration:
    """Ordered attribute-key to field-variant maps for each element kind.

    Dict insertion order is the render order of the labels, so callers must
    build these maps in the order they want labels stacked.
    """

    core_config: Dict[str, FieldConfiguration] = field(default_factory=dict)
    router_config: Dict[str, FieldConfiguration] = field(default_factory=dict)
    channel_config: Dict[str, FieldConfiguration] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not (self.core_config or self.router_config or self.channel_config)

    def coordinates(self) -> Optional[CoordinatesField]:
        return _reserved(self.core_config, COORDINATES_KEY, CoordinatesField)

    def routing(self) -> Optional[RoutingField]:
        return _reserved(self.channel_config, ROUTING_KEY, RoutingField)

    def show_border_routers(self) -> bool:
        flag = _reserved(self.channel_config, BORDER_ROUTERS_KEY, BooleanField)
        return bool(flag and flag.value)

    def channel_attributes(self) -> Dict[str, FieldConfiguration]:
        return {
            key: value
            for key, value in self.channel_config.items()
            if key not in (ROUTING_KEY, BORDER_ROUTERS_KEY)
        }


def _reserved(config: Mapping[str, FieldConfiguration], key: str, expected: type):
    value = config.get(key)
    if value is None:
        return None
    if not isinstance(value, expected):
        raise ConfigurationShapeError(
            key,
            f"expected a {expected.type_name} variant, got {value.type_name}",
            expected=expected.type_name,
        )
    return value


@dataclass
class BaseConfiguration:
    """Font sizes that change geometry; values are clamped to their range."""

    attribute_font_size: float = DEFAULT_ATTRIBUTE_FONT_SIZE
    task_font_size: float = DEFAULT_TASK_FONT_SIZE

    def __post_init__(self) -> None:
        self.attribute_font_size = _clamp(
            float(self.attribute_font_size),
            MINIMUM_ATTRIBUTE_FONT_SIZE,
            MAXIMUM_ATTRIBUTE_FONT_SIZE,
        )
        self.task_font_size = _clamp(
            float(self.task_font_size), MINIMUM_TASK_FONT_SIZE, MAXIMUM_TASK_FONT_SIZE
        )

    @staticmethod
    def schema() -> Dict[str, Dict[str, Any]]:
        """Describe the configurable fields for front-ends."""
        return {
            "attributeFontSize": {
                "type": "FontSize",
                "default": DEFAULT_ATTRIBUTE_FONT_SIZE,
                "display": "Attribute font size",
                "min": MINIMUM_ATTRIBUTE_FONT_SIZE,
                "max": MAXIMUM_ATTRIBUTE_FONT_SIZE,
            },
            "taskFontSize": {
                "type": "FontSize",
                "default": DEFAULT_TASK_FONT_SIZE,
                "display": "Task font size",
                "min": MINIMUM_TASK_FONT_SIZE,
                "max": MAXIMUM_TASK_FONT_SIZE,
            },
        }


@dataclass(frozen=True)
class ProcessedBaseConfiguration:
    """Pixel values derived once from a :class:`BaseConfiguration`."""

    attribute_font_size: float
    attribute_font_px: int
    line_height: int
    task_font_size: float
    task_font_px: int
    task_text_padding: int
    task_rect_height: int
    task_rect_with_cost_height: int

    @classmethod
    def from_base(cls, base: BaseConfiguration) -> "ProcessedBaseConfiguration":
        attribute_px = int(round(base.attribute_font_size))
        task_px = int(round(base.task_font_size))
        return cls(
            attribute_font_size=base.attribute_font_size,
            attribute_font_px=attribute_px,
            line_height=attribute_px + CHAR_V_PADDING,
            task_font_size=base.task_font_size,
            task_font_px=task_px,
            task_text_padding=int(round(base.task_font_size * CHAR_WIDTH_RATIO * 2)),
            task_rect_height=task_px + 4 * CHAR_V_PADDING,
            task_rect_with_cost_height=2 * task_px + 5 * CHAR_V_PADDING,
        )


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def base_configuration_from_dict(payload: Optional[Mapping[str, Any]]) -> BaseConfiguration:
    if not payload:
        return BaseConfiguration()
    return BaseConfiguration(
        attribute_font_size=float(
            payload.get("attributeFontSize", DEFAULT_ATTRIBUTE_FONT_SIZE)
        ),
        task_font_size=float(payload.get("taskFontSize", DEFAULT_TASK_FONT_SIZE)),
    )


def configuration_from_dict(payload: Mapping[str, Any]) -> Configuration:
    """Parse the JSON configuration shape, keeping key order."""
    return Configuration(
        core_config=_field_map(payload.get("coreConfig")),
        router_config=_field_map(payload.get("routerConfig")),
        channel_config=_field_map(payload.get("channelConfig")),
    )


def _field_map(raw: Optional[Mapping[str, Any]]) -> Dict[str, FieldConfiguration]:
    if not raw:
        return {}
    return {key: field_configuration_from_dict(key, value) for key, value in raw.items()}


def field_configuration_from_dict(key: str, raw: Mapping[str, Any]) -> FieldConfiguration:
    if not isinstance(raw, Mapping):
        raise ConfigurationShapeError(key, f"expected an object, got {type(raw).__name__}")
    kind = raw.get("type")
    if kind == "Text":
        return TextField(display=_display(key, raw), colour=raw.get("colour"))
    if kind == "ColouredText":
        return ColouredTextField(display=_display(key, raw), thresholds=_thresholds(key, raw))
    if kind == "Fill":
        return FillField(thresholds=_thresholds(key, raw))
    if kind == "Coordinates":
        return CoordinatesField(orientation=_orientation(key, raw.get("orientation")))
    if kind == "Routing":
        load_raw = raw.get("loadConfiguration")
        try:
            load_display = LoadDisplay(load_raw)
        except ValueError:
            raise ConfigurationShapeError(
                key, f'unknown loadConfiguration "{load_raw}"', expected="Percentage|Fraction"
            ) from None
        algorithm = raw.get("algorithm")
        if not isinstance(algorithm, str) or not algorithm:
            raise ConfigurationShapeError(key, "Routing requires an algorithm name")
        return RoutingField(
            algorithm=algorithm,
            load_display=load_display,
            thresholds=_thresholds(key, raw),
            display=_display(key, raw),
        )
    if kind == "Boolean":
        value = raw.get("value")
        if not isinstance(value, bool):
            raise ConfigurationShapeError(key, "Boolean requires a true/false value")
        return BooleanField(value=value)
    raise ConfigurationShapeError(key, f'unknown field type "{kind}"')


def _display(key: str, raw: Mapping[str, Any]) -> str:
    display = raw.get("display")
    if not isinstance(display, str):
        raise ConfigurationShapeError(key, f"{raw.get('type')} requires a display name")
    return display


def _orientation(key: str, raw: Any) -> Orientation:
    value = str(raw or "").strip().lower()
    if value in ("t", "top"):
        return Orientation.TOP
    if value in ("b", "bottom"):
        return Orientation.BOTTOM
    # TODO: reject unknown orientations once front-ends stop sending free text.
    logger.warning(
        'configuration key "%s": unknown coordinates orientation %r, using top-to-bottom',
        key,
        raw,
    )
    return Orientation.TOP


def _thresholds(key: str, raw: Mapping[str, Any]) -> ColourThresholds:
    settings = raw.get("colourSettings")
    if not isinstance(settings, Mapping):
        raise ConfigurationShapeError(key, "colourSettings is required", expected="ColourSettings")
    bounds = settings.get("bounds")
    colours = settings.get("colours")
    if not isinstance(bounds, (list, tuple)) or len(bounds) != 4:
        raise ConfigurationShapeError(key, "colourSettings.bounds must hold 4 numbers")
    if not isinstance(colours, (list, tuple)) or len(colours) != 4:
        raise ConfigurationShapeError(key, "colourSettings.colours must hold 4 colours")
    try:
        numeric = tuple(float(b) if isinstance(b, float) else int(b) for b in bounds)
    except (TypeError, ValueError):
        raise ConfigurationShapeError(key, f"colourSettings.bounds are not numeric: {bounds!r}") from None
    if any(a > b for a, b in zip(numeric, numeric[1:])):
        raise ConfigurationShapeError(key, f"colourSettings.bounds must be ascending: {list(bounds)!r}")
    return ColourThresholds(bounds=numeric, colours=tuple(str(c) for c in colours))


__all__ = [
    "ID_KEY",
    "COORDINATES_KEY",
    "ROUTING_KEY",
    "BORDER_ROUTERS_KEY",
    "ColourThresholds",
    "FieldConfiguration",
    "TextField",
    "ColouredTextField",
    "FillField",
    "Orientation",
    "CoordinatesField",
    "LoadDisplay",
    "RoutingField",
    "BooleanField",
    "Configuration",
    "BaseConfiguration",
    "ProcessedBaseConfiguration",
    "base_configuration_from_dict",
    "configuration_from_dict",
    "field_configuration_from_dict",
]
