from __future__ import annotations

import io
import json
import sys
import tempfile
import unittest
import xml.etree.ElementTree as ET
from pathlib import Path
from unittest import mock

TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from nocdiagram import cli
from nocdiagram.resources import load_example_configuration, load_example_topology


class CLIAcceptanceTests(unittest.TestCase):
    def run_cli(self, argv: list[str], stdin_text: str = "") -> tuple[int, str, str]:
        stdout = io.StringIO()
        stderr = io.StringIO()
        stdin = io.StringIO(stdin_text)
        with mock.patch("sys.stdout", stdout), mock.patch("sys.stderr", stderr), mock.patch("sys.stdin", stdin):
            code = cli.main(argv)
        return code, stdout.getvalue(), stderr.getvalue()

    def _write_inputs(self, td: str, configuration: dict | None = None) -> tuple[Path, Path]:
        topology = Path(td) / "mesh.json"
        topology.write_text(json.dumps(load_example_topology()))
        config = Path(td) / "config.json"
        config.write_text(json.dumps(configuration or load_example_configuration()))
        return topology, config

    def test_requires_subcommand(self) -> None:
        code, _out, err = self.run_cli([])
        self.assertEqual(code, 2)
        self.assertIn("E_ARGS", err)
        self.assertIn("subcommand", err)

    def test_unknown_flag_is_usage_error(self) -> None:
        code, _out, err = self.run_cli(["render", "--bogus"])
        self.assertEqual(code, 2)
        self.assertIn("E_ARGS", err)

    def test_render_file_writes_svg(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            topology, config = self._write_inputs(td)
            code, out, err = self.run_cli(["render", str(topology), "--config", str(config)])
            self.assertEqual(code, 0, err)
            target = Path(td) / "mesh.svg"
            self.assertTrue(target.exists())
            self.assertIn("Wrote", out)
            root = ET.fromstring(target.read_text())
            self.assertEqual(root.tag, "{http://www.w3.org/2000/svg}svg")
            self.assertIn("Load: 30%", target.read_text())

    def test_render_text_to_stdout(self) -> None:
        source = json.dumps(load_example_topology())
        code, out, err = self.run_cli(["render", "--text", source, "--with-cost", "--task-font-size", "40"])
        self.assertEqual(code, 0, err)
        self.assertTrue(out.startswith("<svg"))
        self.assertIn("[40]", out)
        self.assertIn('font-size="32px"', out)

    def test_render_from_stdin(self) -> None:
        code, out, err = self.run_cli(["render"], stdin_text=json.dumps(load_example_topology()))
        self.assertEqual(code, 0, err)
        self.assertIn('id="mainGroup"', out)

    def test_stdout_and_output_conflict(self) -> None:
        code, _out, err = self.run_cli(["render", "--text", "{}", "--stdout", "-o", "x.svg"])
        self.assertEqual(code, 2)
        self.assertIn("mutually exclusive", err)

    def test_update_prints_fragments(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            topology, config = self._write_inputs(td)
            code, out, err = self.run_cli(["update", str(topology), "--config", str(config), "--toggle-tasks"])
            self.assertEqual(code, 0, err)
            payload = json.loads(out)
            self.assertEqual(
                set(payload),
                {"styleFragment", "overlayFragment", "boundsString", "tasksFragment", "svg"},
            )
            self.assertIn("#c1 {fill:", payload["styleFragment"])
            self.assertNotIn("edgeData", payload["styleFragment"])
            self.assertIn("Load: 20/0", payload["overlayFragment"])
            self.assertIn("[60]", payload["tasksFragment"])
            self.assertIsNone(payload["svg"])

    def test_invalid_json_reports_position(self) -> None:
        code, _out, err = self.run_cli(["--error-format", "json", "render", "--text", '{"rows": 2,'])
        self.assertEqual(code, 2)
        payload = json.loads(err.strip().splitlines()[-1])
        self.assertFalse(payload["ok"])
        self.assertEqual(payload["code"], "E_PARSE_JSON")
        self.assertEqual(payload["line"], 1)

    def test_missing_input_file(self) -> None:
        code, _out, err = self.run_cli(["render", "/definitely/not/here.json"])
        self.assertEqual(code, 2)
        self.assertIn("E_IO_READ", err)

    def test_configuration_shape_error(self) -> None:
        configuration = {"coreConfig": {"@coordinates": {"type": "Text", "display": "oops"}}}
        with tempfile.TemporaryDirectory() as td:
            topology, config = self._write_inputs(td, configuration)
            code, _out, err = self.run_cli(["render", str(topology), "-c", str(config), "--stdout"])
            self.assertEqual(code, 3)
            self.assertIn("E_CONFIGURATION_SHAPE", err)
            self.assertIn("@coordinates", err)

    def test_unknown_routing_algorithm(self) -> None:
        configuration = load_example_configuration()
        configuration["channelConfig"]["@routing"]["algorithm"] = "Diagonal"
        with tempfile.TemporaryDirectory() as td:
            topology, config = self._write_inputs(td, configuration)
            code, _out, err = self.run_cli(
                ["--error-format", "json", "update", str(topology), "--config", str(config)]
            )
            self.assertEqual(code, 3)
            payload = json.loads(err.strip().splitlines()[-1])
            self.assertEqual(payload["code"], "E_TOPOLOGY_MISMATCH")
            self.assertIn("Diagonal", payload["message"])

    def test_non_object_core_is_an_input_error(self) -> None:
        topology = load_example_topology()
        topology["cores"][1] = ["not", "a", "core"]
        code, _out, err = self.run_cli(
            ["--error-format", "json", "render", "--text", json.dumps(topology), "--stdout"]
        )
        self.assertEqual(code, 3)
        payload = json.loads(err.strip().splitlines()[-1])
        self.assertEqual(payload["code"], "E_TOPOLOGY_MISMATCH")
        self.assertIn("core 1", payload["message"])

    def test_base_config_schema(self) -> None:
        code, out, err = self.run_cli(["base-config"])
        self.assertEqual(code, 0, err)
        schema = json.loads(out)
        self.assertEqual(schema["attributeFontSize"]["min"], 10.0)
        self.assertEqual(schema["taskFontSize"]["default"], 22.0)

    def test_example_outputs_round_trip_through_render(self) -> None:
        code, out, err = self.run_cli(["example", "topology"])
        self.assertEqual(code, 0, err)
        self.assertEqual(json.loads(out)["rows"], 2)
        code, out, err = self.run_cli(["render", "--text", out])
        self.assertEqual(code, 0, err)


if __name__ == "__main__":
    unittest.main()
