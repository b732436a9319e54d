from __future__ import annotations

import unittest
import xml.etree.ElementTree as ET

from support import MEASURER, grid_topology

from nocdiagram.diagram import EngineState, TopologyDiagram, UpdateResult, render_svg
from nocdiagram.errors import ConfigurationShapeError, TopologyMismatchError
from nocdiagram.settings import (
    BaseConfiguration,
    BooleanField,
    ColourThresholds,
    Configuration,
    CoordinatesField,
    FillField,
    LoadDisplay,
    Orientation,
    RoutingField,
    TextField,
)
from nocdiagram.svg import q
from nocdiagram.topology import BorderEntry, Direction, RoutingEntry

THRESHOLDS = ColourThresholds((25, 50, 75, 100), ("green", "yellow", "orange", "red"))


def _routing(algorithm: str = "RowFirst") -> RoutingField:
    return RoutingField(algorithm, LoadDisplay.PERCENTAGE, THRESHOLDS, "Load")


def _topology(**kwargs):
    defaults = dict(
        load=40,
        allocations={0: 1, 3: 2},
        tasks={1: 400, 2: 7},
        borders={1: {Direction.NORTH: BorderEntry.sink(5), Direction.EAST: BorderEntry.source(9)}},
        sources={9: 30},
        routing={
            "RowFirst": {
                0: RoutingEntry(out=frozenset({Direction.EAST})),
                1: RoutingEntry(out=frozenset({Direction.SOUTH}), source=frozenset({Direction.EAST})),
            }
        },
        core_attributes={0: {"temp": "80"}, 1: {"temp": "20"}},
    )
    defaults.update(kwargs)
    return grid_topology(2, 2, **defaults)


def _diagram(topology=None, **kwargs) -> TopologyDiagram:
    return TopologyDiagram(topology or _topology(), measurer=MEASURER, **kwargs)


class FullRenderTests(unittest.TestCase):
    def test_document_structure(self) -> None:
        root = ET.fromstring(_diagram().to_svg())
        self.assertEqual(root.tag, q("svg"))
        self.assertEqual(root.get("preserveAspectRatio"), "xMidYMid meet")
        children = [child.tag for child in root]
        self.assertEqual(children, [q("defs"), q("style"), q("g"), q("rect"), q("rect")])
        main = root.find(q("g"))
        self.assertEqual(main.get("id"), "mainGroup")
        self.assertEqual(
            [group.get("id") for group in main],
            ["processingGroup", "connectionsGroup", "sinksSources", "information"],
        )
        self.assertEqual([rect.get("id") for rect in root.findall(q("rect"))], ["events", "exportingAid"])
        defs = root.find(q("defs"))
        self.assertIsNotNone(defs.find(f"{q('marker')}[@id='arrowHead']"))
        self.assertIsNotNone(defs.find(f"{q('filter')}[@id='textBackground']"))
        self.assertEqual(len(defs.findall(q("clipPath"))), 8)

    def test_rendering_is_deterministic(self) -> None:
        configuration = Configuration(
            core_config={"temp": FillField(THRESHOLDS), "@coordinates": CoordinatesField(Orientation.TOP)},
            channel_config={"@routing": _routing()},
        )
        first = TopologyDiagram.render(_topology(), configuration, measurer=MEASURER).to_svg()
        second = TopologyDiagram.render(_topology(), configuration, measurer=MEASURER).to_svg()
        self.assertEqual(first, second)

    def test_corner_glyphs_in_document(self) -> None:
        root = ET.fromstring(_diagram().to_svg())
        sinks_sources = root.find(f".//{q('g')}[@id='sinksSources']")
        texts = [text.text for text in sinks_sources.iter(q("text"))]
        self.assertEqual(texts, ["T5", "T9"])
        # Every other boundary direction gets an empty placeholder.
        self.assertEqual(len(list(sinks_sources)), 8)

    def test_glyphs_reserve_margin_on_every_side(self) -> None:
        with_glyphs = _diagram()
        without = _diagram(_topology(borders=None, routing={}, boundary_channels=False))
        self.assertLessEqual(with_glyphs.bounds.x, without.bounds.x - 185)
        self.assertLessEqual(with_glyphs.bounds.y, without.bounds.y - 185)
        self.assertGreaterEqual(with_glyphs.bounds.width, without.bounds.width + 370)

    def test_boundary_links_lie_inside_bounds_without_border_map(self) -> None:
        diagram = _diagram(grid_topology(1, 1))
        diagram.update(Configuration(channel_config={"@borderRouters": BooleanField(True)}))
        bounds = diagram.bounds
        edges = [connection for connection in diagram.connections if connection.edge]
        self.assertEqual(len(edges), 8)
        for connection in edges:
            with self.subTest(direction=connection.direction, role=connection.role):
                self.assertTrue(bounds.x <= connection.x <= bounds.right)
                self.assertTrue(bounds.y <= connection.y <= bounds.bottom)
        self.assertEqual(str(bounds), "-273 -273 547 547")

    def test_task_badges_extend_bounds_left_and_down(self) -> None:
        plain = _diagram(grid_topology(1, 1, boundary_channels=False))
        with_task = _diagram(grid_topology(1, 1, allocations={0: 1}, tasks={1: 0}, boundary_channels=False))
        self.assertEqual(str(plain.bounds), "-88 -88 177 177")
        self.assertEqual(str(with_task.bounds), "-126 -88 215 193")

    def test_missing_task_fails_the_render(self) -> None:
        with self.assertRaises(TopologyMismatchError):
            _diagram(grid_topology(1, 1, allocations={0: 42}))

    def test_render_svg_helper(self) -> None:
        svg = render_svg(grid_topology(1, 2))
        self.assertTrue(svg.startswith("<svg"))
        self.assertIn('id="mainGroup"', svg)


class PartialUpdateTests(unittest.TestCase):
    def test_update_returns_fragments(self) -> None:
        diagram = _diagram()
        result = diagram.update(
            Configuration(
                core_config={"temp": FillField(THRESHOLDS)},
                channel_config={"@routing": _routing()},
            )
        )
        self.assertIsInstance(result, UpdateResult)
        self.assertIn("#c0 {fill: red;}", result.style)
        self.assertIn("#c1 {fill: green;}", result.style)
        self.assertIn(".edgeData{display: none;}", result.style)
        self.assertIn("Load: 40%", result.overlay)
        self.assertIn("Load: 30%", result.overlay)
        self.assertIsNone(result.tasks)
        self.assertIsNone(result.svg)
        self.assertEqual(
            set(result.to_dict()),
            {"styleFragment", "overlayFragment", "boundsString", "tasksFragment", "svg"},
        )
        self.assertIs(diagram.state, EngineState.COMMITTED)

    def test_border_routers_flag_shows_edge_data(self) -> None:
        diagram = _diagram()
        result = diagram.update(Configuration(channel_config={"@borderRouters": BooleanField(True)}))
        self.assertNotIn("edgeData", result.style)

    def test_bounds_string_only_when_bounds_grow(self) -> None:
        diagram = _diagram(grid_topology(1, 1, boundary_channels=False))
        self.assertIsNone(diagram.update(Configuration()).bounds)
        result = diagram.update(Configuration(core_config={"@coordinates": CoordinatesField(Orientation.TOP)}))
        self.assertEqual(result.bounds, "-88 -88 177 192")
        self.assertIsNone(
            diagram.update(Configuration(core_config={"@coordinates": CoordinatesField(Orientation.TOP)})).bounds
        )

    def test_bounds_never_shrink_across_updates(self) -> None:
        diagram = _diagram()
        configurations = [
            Configuration(channel_config={"@routing": _routing()}),
            Configuration(),
            Configuration(core_config={"@coordinates": CoordinatesField(Orientation.BOTTOM)}),
            Configuration(core_config={"temp": TextField("A very long temperature label")}),
            Configuration(),
        ]
        width, height = diagram.bounds.width, diagram.bounds.height
        for configuration in configurations:
            diagram.update(configuration)
            self.assertGreaterEqual(diagram.bounds.width, width)
            self.assertGreaterEqual(diagram.bounds.height, height)
            width, height = diagram.bounds.width, diagram.bounds.height

    def test_failed_update_rolls_back(self) -> None:
        diagram = _diagram()
        good = Configuration(
            core_config={"temp": FillField(THRESHOLDS), "@coordinates": CoordinatesField(Orientation.TOP)}
        )
        diagram.update(good)
        before_svg = diagram.to_svg()
        before_bounds = str(diagram.bounds)

        bad = Configuration(
            core_config={"@coordinates": CoordinatesField(Orientation.BOTTOM)},
            channel_config={"@routing": _routing("Missing")},
        )
        with self.assertRaises(TopologyMismatchError):
            diagram.update(bad, toggle_tasks=[1])

        self.assertEqual(str(diagram.bounds), before_bounds)
        self.assertEqual(diagram.to_svg(), before_svg)
        self.assertIs(diagram.configuration, good)
        self.assertIs(diagram.state, EngineState.COMMITTED)

        # A corrected retry sees no residue of the failed attempt.
        result = diagram.update(Configuration(channel_config={"@routing": _routing()}))
        self.assertIn("Load: 40%", result.overlay)

    def test_shape_error_rolls_back(self) -> None:
        diagram = _diagram()
        before = str(diagram.bounds)
        with self.assertRaises(ConfigurationShapeError):
            diagram.update(Configuration(core_config={"@coordinates": TextField("oops")}))
        self.assertEqual(str(diagram.bounds), before)

    def test_update_while_pending_is_rejected(self) -> None:
        diagram = _diagram()
        diagram.state = EngineState.PENDING
        with self.assertRaises(RuntimeError):
            diagram.update(Configuration())

    def test_toggle_tasks_twice_is_identity(self) -> None:
        diagram = _diagram()
        original = diagram.task_badges
        first = diagram.toggle_tasks()
        self.assertIn("[400]", first.tasks)
        self.assertTrue(all(badge.with_cost for badge in diagram.task_badges))
        second = diagram.toggle_tasks()
        self.assertNotIn("[400]", second.tasks)
        self.assertEqual(diagram.task_badges, original)

    def test_toggle_single_task(self) -> None:
        diagram = _diagram()
        result = diagram.update(Configuration(), toggle_tasks=[2])
        self.assertIn("[7]", result.tasks)
        self.assertNotIn("[400]", result.tasks)

    def test_toggle_unknown_task_is_rejected(self) -> None:
        diagram = _diagram()
        with self.assertRaises(TopologyMismatchError) as ctx:
            diagram.toggle_tasks([99])
        self.assertEqual(ctx.exception.task_id, 99)

    def test_base_configuration_change_rerenders(self) -> None:
        diagram = _diagram()
        diagram.toggle_tasks([1])
        result = diagram.update(Configuration(), base_configuration=BaseConfiguration(20, 30))
        self.assertIsNotNone(result.svg)
        self.assertIsNotNone(result.bounds)
        self.assertIn("[400]", result.tasks)
        self.assertEqual(diagram.base_configuration.task_font_size, 30)

    def test_load_only_topology_change_keeps_geometry(self) -> None:
        diagram = _diagram()
        configuration = Configuration(channel_config={"@routing": _routing()})
        diagram.update(configuration)
        result = diagram.update(configuration, topology=_topology(load=90))
        self.assertIsNone(result.svg)
        self.assertIn("Load: 90%", result.overlay)

    def test_clip_polygon(self) -> None:
        diagram = _diagram()
        diagram.set_clip_polygon([(0, 0), (10.5, 0), (10, 10)])
        root = ET.fromstring(diagram.to_svg())
        polygon = root.find(f"{q('defs')}/{q('clipPath')}[@id='crop']/{q('polygon')}")
        self.assertEqual(polygon.get("points"), "0,0 10.5,0 10,10")
        self.assertEqual(root.find(q("g")).get("clip-path"), "url(#crop)")
        diagram.clear_clip_polygon()
        self.assertNotIn('id="crop"', diagram.to_svg())
        with self.assertRaises(ValueError):
            diagram.set_clip_polygon([(0, 0), (1, 1)])


if __name__ == "__main__":
    unittest.main()
