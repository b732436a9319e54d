"""Turn attribute values into label text, text colour and fill rules."""
from __future__ import annotations

import logging
import math
import xml.etree.ElementTree as ET
from bisect import bisect_left
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .bounds import Box
from .connections import (
    EDGE_DATA_CLASS,
    Connection,
    ConnectionIndex,
    ConnectionRole,
)
from .errors import ConfigurationShapeError, TopologyMismatchError
from .geometry import (
    HALF_SIDE,
    SIDE_LENGTH,
    ProcessingGroup,
    core_clip_id,
    core_element_id,
    router_clip_id,
    router_element_id,
)
from .settings import (
    COORDINATES_KEY,
    ID_KEY,
    ColouredTextField,
    ColourThresholds,
    Configuration,
    CoordinatesField,
    FieldConfiguration,
    FillField,
    LoadDisplay,
    Orientation,
    ProcessedBaseConfiguration,
    RoutingField,
    TextField,
)
from .svg import q
from .text import DEFAULT_TEXT_FILL, TEXT_MEASURER, TextLabel, TextMeasurer
from .topology import DIRECTIONS, BorderKind, Channel, Core, Direction, Topology

logger = logging.getLogger(__name__)

TEXT_BACKGROUND_ID = "textBackground"
SATURATED_BUCKET = 3

# Distance from a path's start to its label, half the path plus half a marker.
INTERIOR_LABEL_DELTA = 82
EDGE_SHORT_LABEL_DELTA = 57
EDGE_LONG_LABEL_DELTA = 94
LABEL_SIDE_OFFSET = 5


def bucket_index(bounds: Sequence[float], value: float) -> int:
    """Index of the first bound that is ``>= value``, capped at the last bucket."""
    return min(bisect_left(bounds, value), SATURATED_BUCKET)


def bucket_colour(thresholds: ColourThresholds, value: float) -> str:
    return thresholds.colours[bucket_index(thresholds.bounds, value)]


def parse_numeric(value: str) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return number


def load_percentage(load: int, bandwidth: int) -> int:
    """``100 * load / bandwidth`` rounded half up; ``bandwidth`` must be > 0."""
    return (200 * load + bandwidth) // (2 * bandwidth)


@dataclass
class Overlay:
    """Everything one encoding pass produces for the information layer."""

    elements: List[ET.Element] = field(default_factory=list)
    css_rules: List[str] = field(default_factory=list)
    boxes: List[Box] = field(default_factory=list)

    def add_label(self, label: TextLabel, measurer: TextMeasurer, *, counts_for_bounds: bool = True) -> None:
        self.elements.append(label.to_element())
        if counts_for_bounds:
            self.boxes.append(label.bbox(measurer))

    def extend(self, other: "Overlay") -> None:
        self.elements.extend(other.elements)
        self.css_rules.extend(other.css_rules)
        self.boxes.extend(other.boxes)


def element_labels(
    config: Mapping[str, FieldConfiguration],
    attributes: Mapping[str, str],
    element_id: int,
    css_id: str,
    origin: Tuple[int, int],
    base: ProcessedBaseConfiguration,
) -> Tuple[List[TextLabel], List[str]]:
    """Stack the labels of one core or router, first matched key on top.

    Keys with no matching attribute are skipped and take no line. ``Fill``
    keys add a stylesheet rule for ``css_id`` instead of a line.
    """
    labels: List[TextLabel] = []
    rules: List[str] = []
    x, y = origin
    for key, field_config in config.items():
        if key == COORDINATES_KEY:
            continue
        if key == ID_KEY:
            value: Optional[str] = str(element_id)
        else:
            value = attributes.get(key)
        if value is None:
            continue

        if isinstance(field_config, TextField):
            colour = field_config.colour or DEFAULT_TEXT_FILL
            text = f"{field_config.display}: {value}"
        elif isinstance(field_config, ColouredTextField):
            number = parse_numeric(value)
            colour = DEFAULT_TEXT_FILL if number is None else bucket_colour(field_config.thresholds, number)
            text = f"{field_config.display}: {value}"
        elif isinstance(field_config, FillField):
            number = parse_numeric(value)
            if number is None:
                logger.debug("skipping fill for %s: %r is not numeric", css_id, value)
                continue
            rules.append(f"\n#{css_id} {{fill: {bucket_colour(field_config.thresholds, number)};}}")
            continue
        else:
            raise ConfigurationShapeError(
                key,
                f"{field_config.type_name} cannot label a core or router",
                expected="Text|ColouredText|Fill",
            )

        labels.append(
            TextLabel(x, y + len(labels) * base.line_height, text, base.attribute_font_size, fill=colour)
        )
    return labels, rules


def coordinates_label(
    field_config: FieldConfiguration,
    group: ProcessingGroup,
    rows: int,
    base: ProcessedBaseConfiguration,
) -> TextLabel:
    if not isinstance(field_config, CoordinatesField):
        raise ConfigurationShapeError(
            COORDINATES_KEY,
            f"expected a Coordinates variant, got {field_config.type_name}",
            expected="Coordinates",
        )
    if field_config.orientation is Orientation.BOTTOM:
        text = f"({group.column + 1},{rows - group.row})"
    else:
        text = f"({group.column + 1},{group.row + 1})"
    return TextLabel(
        group.core_x + HALF_SIDE,
        group.core_y + SIDE_LENGTH,
        text,
        base.attribute_font_size,
        anchor="middle",
    )


def _label_delta(connection: Connection, direction: Direction) -> int:
    if not connection.edge:
        return INTERIOR_LABEL_DELTA
    if direction in (Direction.SOUTH, Direction.WEST):
        return EDGE_LONG_LABEL_DELTA
    return EDGE_SHORT_LABEL_DELTA


def _label_position(
    x: int, y: int, direction: Direction, delta: int, secondary: bool, line_height: int
) -> Tuple[int, int, str, str]:
    """Where a channel label goes relative to its path start.

    Vertical paths get labels beside them, horizontal paths above them; the
    secondary slot goes one line below, or under the path.
    """
    if direction is Direction.NORTH:
        return x + LABEL_SIDE_OFFSET, y - delta + (line_height if secondary else 0), "start", "middle"
    if direction is Direction.SOUTH:
        return x - LABEL_SIDE_OFFSET, y + delta + (line_height if secondary else 0), "end", "middle"
    if direction is Direction.EAST:
        if secondary:
            return x + delta, y + 1, "middle", "text-before-edge"
        return x + delta, y - 1, "middle", "text-after-edge"
    if direction is Direction.WEST:
        if secondary:
            return x - delta, y + 1, "middle", "text-before-edge"
        return x - delta, y - 1, "middle", "text-after-edge"
    raise ValueError(f"unhandled direction {direction!r}")


def channel_label(
    connection: Connection,
    text: str,
    colour: str,
    base: ProcessedBaseConfiguration,
    *,
    secondary: bool = False,
) -> TextLabel:
    """Label along an output path."""
    x, y, anchor, baseline = _label_position(
        connection.x,
        connection.y,
        connection.direction,
        _label_delta(connection, connection.direction),
        secondary,
        base.line_height,
    )
    return TextLabel(
        x,
        y,
        text,
        base.attribute_font_size,
        anchor=anchor,
        baseline=baseline,
        fill=colour,
        css_class=EDGE_DATA_CLASS if connection.edge else None,
    )


def _load_text_and_colour(field_config: RoutingField, load: int, bandwidth: int) -> Tuple[str, str]:
    if bandwidth == 0:
        return (
            f"{field_config.display}: {load}/{bandwidth}",
            field_config.thresholds.colours[SATURATED_BUCKET],
        )
    percentage = load_percentage(load, bandwidth)
    colour = bucket_colour(field_config.thresholds, percentage)
    if field_config.load_display is LoadDisplay.PERCENTAGE:
        return f"{field_config.display}: {percentage}%", colour
    return f"{field_config.display}: {load}/{bandwidth}", colour


def link_load_label(
    field_config: RoutingField,
    channel: Channel,
    connection: Connection,
    base: ProcessedBaseConfiguration,
) -> TextLabel:
    text, colour = _load_text_and_colour(field_config, channel.current_load, channel.bandwidth)
    return channel_label(connection, text, colour, base)


def source_load_label(
    field_config: RoutingField,
    load: int,
    bandwidth: int,
    connection: Connection,
    base: ProcessedBaseConfiguration,
) -> TextLabel:
    """Label along an input path; it reads as a link in the opposite direction."""
    text, colour = _load_text_and_colour(field_config, load, bandwidth)
    flipped = connection.direction.opposite()
    delta = EDGE_SHORT_LABEL_DELTA if flipped in (Direction.SOUTH, Direction.WEST) else EDGE_LONG_LABEL_DELTA
    x, y, anchor, baseline = _label_position(
        connection.x, connection.y, flipped, delta, False, base.line_height
    )
    return TextLabel(
        x,
        y,
        text,
        base.attribute_font_size,
        anchor=anchor,
        baseline=baseline,
        fill=colour,
        css_class=EDGE_DATA_CLASS,
    )


def channel_labels(
    config: Mapping[str, FieldConfiguration],
    channel: Channel,
    connection: Connection,
    base: ProcessedBaseConfiguration,
    first_slot: int = 0,
) -> List[TextLabel]:
    """Fill the remaining label slots of an interior channel."""
    labels: List[TextLabel] = []
    slot = first_slot
    for key, field_config in config.items():
        if slot >= 2:
            break
        value = channel.attributes.get(key)
        if value is None:
            continue
        if isinstance(field_config, TextField):
            colour = field_config.colour or DEFAULT_TEXT_FILL
        elif isinstance(field_config, ColouredTextField):
            number = parse_numeric(value)
            colour = DEFAULT_TEXT_FILL if number is None else bucket_colour(field_config.thresholds, number)
        else:
            raise ConfigurationShapeError(
                key,
                f"{field_config.type_name} cannot label a channel",
                expected="Text|ColouredText",
            )
        labels.append(
            channel_label(
                connection,
                f"{field_config.display}: {value}",
                colour,
                base,
                secondary=slot == 1,
            )
        )
        slot += 1
    return labels


def _loaded_directions(topology: Topology, routing: RoutingField, core: Core) -> Tuple[Tuple[Direction, ...], Tuple[Direction, ...]]:
    entry = topology.route(routing.algorithm).get(core.id)
    if entry is None:
        return (), ()
    out = tuple(d for d in DIRECTIONS if d in entry.out)
    source = tuple(d for d in DIRECTIONS if d in entry.source)
    return out, source


def _source_connection(connections: ConnectionIndex, core: Core, direction: Direction) -> Connection:
    # Source paths exist only for wired directions facing off the grid.
    if (core.id, direction, ConnectionRole.SOURCE) not in connections:
        raise TopologyMismatchError(
            f"core {core.id} routes source traffic {direction.value} but that direction "
            "is not a wired boundary link",
            core_id=core.id,
            direction=direction,
        )
    return connections.get(core.id, direction, ConnectionRole.SOURCE)


def _source_load(topology: Topology, core: Core, direction: Direction) -> Tuple[int, int]:
    entry = topology.border_entries(core.id).get(direction)
    if entry is None or entry.kind is not BorderKind.SOURCE:
        raise TopologyMismatchError(
            f"core {core.id} routes source traffic {direction.value} but has no source there",
            core_id=core.id,
            direction=direction,
        )
    if entry.task_id not in topology.sources:
        raise TopologyMismatchError(
            f"no load recorded for source task {entry.task_id} of core {core.id}",
            core_id=core.id,
            direction=direction,
            task_id=entry.task_id,
        )
    return topology.sources[entry.task_id], _channel(core, direction).bandwidth


def _channel(core: Core, direction: Direction) -> Channel:
    channel = core.channels.get(direction)
    if channel is None:
        raise TopologyMismatchError(
            f"core {core.id} has no {direction.value} channel",
            core_id=core.id,
            direction=direction,
        )
    return channel


def encode_core(
    core: Core,
    group: ProcessingGroup,
    topology: Topology,
    connections: ConnectionIndex,
    configuration: Configuration,
    base: ProcessedBaseConfiguration,
    measurer: TextMeasurer = TEXT_MEASURER,
) -> Overlay:
    """Produce the overlay for one core: its labels, coordinates and link loads."""
    overlay = Overlay()

    core_labels, core_rules = element_labels(
        configuration.core_config,
        core.attributes,
        core.id,
        core_element_id(core.id),
        group.core_label_origin,
        base,
    )
    router_labels, router_rules = element_labels(
        configuration.router_config,
        core.router.attributes,
        core.id,
        router_element_id(core.id),
        group.router_label_origin,
        base,
    )
    overlay.css_rules.extend(core_rules)
    overlay.css_rules.extend(router_rules)
    # Labels are clipped to their shape, so they never move the bounds.
    overlay.elements.extend(
        _clipped_group(core_labels, core_clip_id(core.id), bool(core_rules))
        + _clipped_group(router_labels, router_clip_id(core.id), bool(router_rules))
    )

    coordinates = configuration.coordinates()
    if coordinates is not None:
        overlay.add_label(coordinates_label(coordinates, group, topology.rows, base), measurer)

    routing = configuration.routing()
    used_slots: Dict[Direction, int] = {}
    if routing is not None:
        out_directions, source_directions = _loaded_directions(topology, routing, core)
        for direction in out_directions:
            channel = _channel(core, direction)
            connection = connections.get(core.id, direction, ConnectionRole.OUT)
            overlay.add_label(link_load_label(routing, channel, connection, base), measurer)
            used_slots[direction] = 1
        for direction in source_directions:
            connection = _source_connection(connections, core, direction)
            load, bandwidth = _source_load(topology, core, direction)
            overlay.add_label(source_load_label(routing, load, bandwidth, connection, base), measurer)

    attributes_config = configuration.channel_attributes()
    if attributes_config:
        for direction in DIRECTIONS:
            channel = core.channels.get(direction)
            if channel is None or not channel.attributes:
                continue
            connection = connections.get(core.id, direction, ConnectionRole.OUT)
            if connection.edge:
                continue
            for label in channel_labels(
                attributes_config, channel, connection, base, used_slots.get(direction, 0)
            ):
                overlay.add_label(label, measurer)

    return overlay


def _clipped_group(labels: List[TextLabel], clip_id: str, filled: bool) -> List[ET.Element]:
    if not labels:
        return []
    attrs = {"clip-path": f"url(#{clip_id})"}
    if filled:
        attrs["filter"] = f"url(#{TEXT_BACKGROUND_ID})"
    group = ET.Element(q("g"), attrs)
    for label in labels:
        group.append(label.to_element())
    return [group]
