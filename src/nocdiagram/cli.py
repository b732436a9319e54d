"""Command-line interface for rendering and updating topology diagrams."""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import traceback
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from .diagram import TopologyDiagram
from .errors import ConfigurationShapeError, ConnectionLookupError, NocDiagramError, TopologyMismatchError
from .resources import load_example_configuration, load_example_topology
from .settings import BaseConfiguration, Configuration, configuration_from_dict
from .topology import topology_from_dict

SUBCOMMANDS = "render, update, base-config, example"


@dataclass
class CliError(Exception):
    code: str
    message: str
    hint: Optional[str] = None
    exit_code: int = 1
    file: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None
    retryable: bool = True


class UsageError(Exception):
    pass


class FriendlyArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # pragma: no cover - argparse callback
        raise UsageError(message)


def _add_base_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--attribute-font-size", type=float, help="Label font size in px (10-24)")
    parser.add_argument("--task-font-size", type=float, help="Task badge font size in px (16-32)")


def _build_parser() -> argparse.ArgumentParser:
    parser = FriendlyArgumentParser(
        prog="nocdiagram",
        description="Render many-core topologies to SVG and compute partial updates.",
    )
    parser.add_argument("--error-format", choices=["text", "json"], default="text")
    parser.add_argument("--debug", action="store_true")

    subparsers = parser.add_subparsers(dest="command")

    render_parser = subparsers.add_parser("render", help="Render a topology JSON file to SVG")
    render_parser.add_argument("input", nargs="?", help="Topology .json file")
    render_parser.add_argument("--text", help="Raw topology JSON")
    render_parser.add_argument("-c", "--config", help="Display configuration .json file")
    render_parser.add_argument("--stdout", action="store_true", help="Write SVG to stdout")
    render_parser.add_argument("-o", "--output", help="Output .svg path")
    render_parser.add_argument("--with-cost", action="store_true", help="Show task costs in badges")
    _add_base_arguments(render_parser)

    update_parser = subparsers.add_parser(
        "update", help="Print the fragments that change between two configurations"
    )
    update_parser.add_argument("input", nargs="?", help="Topology .json file")
    update_parser.add_argument("--text", help="Raw topology JSON")
    update_parser.add_argument("-c", "--config", required=True, help="New display configuration .json file")
    update_parser.add_argument("--previous", help="Configuration the document was rendered with")
    update_parser.add_argument(
        "--toggle-tasks",
        nargs="*",
        type=int,
        metavar="TASK_ID",
        help="Toggle cost display for these tasks (all tasks when no id is given)",
    )
    _add_base_arguments(update_parser)

    subparsers.add_parser("base-config", help="Print the base configuration schema as JSON")

    example_parser = subparsers.add_parser("example", help="Print a bundled example input")
    example_parser.add_argument("kind", choices=["topology", "configuration"])

    return parser


def _read_input(path: Optional[str], text: Optional[str]) -> tuple[str, str, Optional[Path]]:
    if path and text is not None:
        raise CliError(
            "E_ARGS",
            "--text cannot be combined with file input",
            hint="Use either FILE or --text.",
            exit_code=2,
        )

    if text is not None:
        return text, "<text>", None

    if path:
        input_path = Path(path)
        return _read_file(input_path), str(input_path), input_path

    if sys.stdin.isatty():
        raise CliError(
            "E_ARGS",
            "no input provided",
            hint="Use a subcommand with FILE, --text, or pipe stdin.",
            exit_code=2,
        )

    data = sys.stdin.read()
    if not data.strip():
        raise CliError(
            "E_ARGS",
            "stdin was empty",
            hint="Pipe topology JSON into stdin.",
            exit_code=2,
        )
    return data, "<stdin>", None


def _read_file(path: Path) -> str:
    if not path.exists():
        raise CliError(
            "E_IO_READ",
            f"input file not found: {path}",
            exit_code=2,
            file=str(path),
        )
    try:
        return path.read_text()
    except OSError as exc:
        raise CliError(
            "E_IO_READ",
            f"failed to read input file: {path}",
            hint=str(exc),
            exit_code=2,
            file=str(path),
        )


def _parse_json(source: str, source_name: str) -> Dict[str, Any]:
    try:
        payload = json.loads(source)
    except json.JSONDecodeError as exc:
        raise CliError(
            "E_PARSE_JSON",
            f"failed to parse JSON: {exc.msg}",
            hint="Ensure the input is a single well-formed JSON object.",
            exit_code=2,
            file=source_name,
            line=exc.lineno,
            column=exc.colno,
        )
    if not isinstance(payload, dict):
        raise CliError(
            "E_PARSE_JSON",
            f"expected a JSON object, got {type(payload).__name__}",
            exit_code=2,
            file=source_name,
        )
    return payload


def _load_configuration(path: Optional[str]) -> Optional[Configuration]:
    if not path:
        return None
    config_path = Path(path)
    return configuration_from_dict(_parse_json(_read_file(config_path), str(config_path)))


def _base_configuration(args: argparse.Namespace) -> BaseConfiguration:
    defaults = BaseConfiguration()
    return BaseConfiguration(
        attribute_font_size=(
            args.attribute_font_size if args.attribute_font_size is not None else defaults.attribute_font_size
        ),
        task_font_size=args.task_font_size if args.task_font_size is not None else defaults.task_font_size,
    )


def _write_text(path: Path, content: str) -> None:
    try:
        path.write_text(content)
    except OSError as exc:
        raise CliError(
            "E_IO_WRITE",
            f"failed to write output file: {path}",
            hint=str(exc),
            exit_code=4,
            file=str(path),
        )


def _error_from_exception(exc: Exception) -> CliError:
    if isinstance(exc, CliError):
        return exc
    if isinstance(exc, ConfigurationShapeError):
        return CliError(
            exc.code,
            str(exc),
            hint="Check the field type used for this key in the display configuration.",
            exit_code=3,
        )
    if isinstance(exc, TopologyMismatchError):
        return CliError(
            exc.code,
            str(exc),
            hint="Check that routing, borders and sources agree with the wired channels.",
            exit_code=3,
        )
    if isinstance(exc, ConnectionLookupError):
        return CliError(
            exc.code,
            str(exc),
            hint="This is an internal inconsistency; re-run with --debug and report it.",
            exit_code=1,
            retryable=False,
        )
    if isinstance(exc, NocDiagramError):
        return CliError(exc.code, str(exc), exit_code=3)
    if isinstance(exc, (ValueError, KeyError, TypeError)):
        return CliError(
            "E_INPUT",
            str(exc) or exc.__class__.__name__,
            hint="Check the topology and configuration JSON shapes.",
            exit_code=3,
        )
    return CliError(
        "E_INTERNAL",
        str(exc) or exc.__class__.__name__,
        hint="Re-run with --debug to see traceback.",
        exit_code=1,
        retryable=False,
    )


def _emit_error(err: CliError, *, error_format: str) -> None:
    if error_format == "json":
        payload = {
            "ok": False,
            "code": err.code,
            "message": err.message,
            "file": err.file,
            "line": err.line,
            "column": err.column,
            "hint": err.hint,
            "retryable": err.retryable,
        }
        sys.stderr.write(json.dumps(payload) + "\n")
        return

    sys.stderr.write(f"error[{err.code}]: {err.message}\n")
    if err.hint:
        sys.stderr.write(f"hint: {err.hint}\n")


def _handle_render(args: argparse.Namespace) -> int:
    if args.stdout and args.output:
        raise CliError(
            "E_ARGS",
            "--stdout and --output are mutually exclusive",
            hint="Choose either --stdout or --output.",
            exit_code=2,
        )

    source, source_name, source_path = _read_input(args.input, args.text)
    topology = topology_from_dict(_parse_json(source, source_name))
    diagram = TopologyDiagram.render(
        topology, _load_configuration(args.config), _base_configuration(args)
    )
    if args.with_cost:
        diagram.toggle_tasks()
    svg_text = diagram.to_svg()

    if args.stdout or source_path is None:
        sys.stdout.write(svg_text)
        if not svg_text.endswith("\n"):
            sys.stdout.write("\n")
        return 0

    output_path = Path(args.output) if args.output else source_path.with_suffix(".svg")
    _write_text(output_path, svg_text)
    print(f"Wrote {output_path}")
    return 0


def _handle_update(args: argparse.Namespace) -> int:
    source, source_name, _source_path = _read_input(args.input, args.text)
    topology = topology_from_dict(_parse_json(source, source_name))
    diagram = TopologyDiagram.render(
        topology, _load_configuration(args.previous), _base_configuration(args)
    )
    toggle = None
    if args.toggle_tasks is not None:
        toggle = args.toggle_tasks or [badge.task_id for badge in diagram.task_badges]
    result = diagram.update(_load_configuration(args.config), toggle_tasks=toggle)
    sys.stdout.write(json.dumps(result.to_dict(), indent=2) + "\n")
    return 0


def main(argv: Optional[Iterable[str]] = None) -> int:
    raw_argv = list(argv) if argv is not None else sys.argv[1:]
    parser = _build_parser()

    if not raw_argv:
        err = CliError(
            "E_ARGS",
            "missing subcommand",
            hint=f"Use one of: {SUBCOMMANDS}.",
            exit_code=2,
        )
        _emit_error(err, error_format="text")
        return err.exit_code

    debug_enabled = "--debug" in raw_argv or os.getenv("NOCDIAGRAM_DEBUG") == "1"
    logging.basicConfig(
        level=logging.DEBUG if debug_enabled else logging.WARNING,
        stream=sys.stderr,
        format="%(levelname)s %(name)s: %(message)s",
        force=True,
    )
    error_format = "text"
    if "--error-format" in raw_argv:
        idx = raw_argv.index("--error-format")
        if idx + 1 < len(raw_argv):
            error_format = raw_argv[idx + 1]

    try:
        args = parser.parse_args(raw_argv)
        error_format = args.error_format

        if args.command == "render":
            return _handle_render(args)
        if args.command == "update":
            return _handle_update(args)
        if args.command == "base-config":
            print(json.dumps(BaseConfiguration.schema(), indent=2))
            return 0
        if args.command == "example":
            payload = load_example_topology() if args.kind == "topology" else load_example_configuration()
            print(json.dumps(payload, indent=2))
            return 0

        raise CliError(
            "E_ARGS",
            "missing subcommand",
            hint=f"Use one of: {SUBCOMMANDS}.",
            exit_code=2,
        )
    except UsageError as exc:
        err = CliError(
            "E_ARGS",
            str(exc),
            hint=f"Use subcommands: {SUBCOMMANDS}.",
            exit_code=2,
        )
        _emit_error(err, error_format=error_format)
        return err.exit_code
    except Exception as exc:  # pragma: no cover - exercised in integration tests
        err = _error_from_exception(exc)
        _emit_error(err, error_format=error_format)
        if debug_enabled:
            traceback.print_exc(file=sys.stderr)
        return err.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
