from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

from paap_doctor import __version__ as TOOL_VERSION
from paap_doctor.config import CONFIG_ENV_VAR, Settings, load_settings, settings_to_dict
from paap_doctor.contracts import CONTRACT_VERSIONS, build_run_summary, wrap_payload
from paap_doctor.data_model import DataModel
from paap_doctor.detection import detect_file_kind
from paap_doctor.errors import IOFailure, RecognitionError
from paap_doctor.records import extract_items
from paap_doctor.registry import build_registry
from paap_doctor.reporter import build_analysis_report

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_NOT_RECOGNIZED = 2
EXIT_IO_FAILURE = 3

LOG_LEVEL_ENV_VAR = "PAAP_DOCTOR_LOG_LEVEL"
DEFAULT_CONFIG_PATH = "paap-doctor.json"
PREVIEW_ROWS = 10


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class PaapDoctorArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def write_text(path: Path, payload: str) -> None:
    ensure_parent(path)
    path.write_text(payload, encoding="utf-8")


def write_json(path: Path, payload: Any) -> None:
    write_text(path, json_dumps(payload))


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def classify_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, RecognitionError):
        return EXIT_NOT_RECOGNIZED
    if isinstance(exc, (IOFailure, ImportError)):
        return EXIT_IO_FAILURE
    return EXIT_COMMAND_ERROR


def configure_logging(verbose: int, quiet: bool) -> None:
    level = logging.WARNING
    if quiet:
        level = logging.ERROR
    elif verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    override = os.environ.get(LOG_LEVEL_ENV_VAR)
    if override:
        level = getattr(logging, override.upper(), level)
    logging.basicConfig(level=level, stream=sys.stderr, format="%(levelname)s %(name)s: %(message)s")


def resolve_settings(args: argparse.Namespace) -> Settings:
    try:
        return load_settings(getattr(args, "config", None))
    except ValueError as exc:
        raise CliError(f"Invalid configuration: {exc}", EXIT_COMMAND_ERROR) from exc


def require_input(path_text: str) -> Path:
    path = Path(path_text)
    if not path.exists():
        raise CliError(f"File not found: {path}", EXIT_IO_FAILURE)
    return path


# ══════════════════════════════════════════════════════════════════════════════
# RENDERING
# ══════════════════════════════════════════════════════════════════════════════

def render_detect_text(payload: dict[str, Any]) -> str:
    lines = [
        "paap-doctor detect",
        f"File: {payload.get('file', '[unknown]')}",
        f"Format: {payload.get('detected_format', '[unknown]')}",
        f"Detected type: {payload['detected_type']} ({payload['confidence_score']}% confidence)",
        f"Recommended import: {payload['recommended_import']}",
    ]
    for entry in payload.get("sheets", []):
        lines.append(
            f"- {entry['sheet']}: {entry['cpv_code_cells']} code cell(s), "
            f"{entry['registry_keyword_cells']} registry keyword(s), "
            f"{entry['procurement_keyword_cells']} procurement keyword(s)"
        )
    return "\n".join(lines) + "\n"


def render_registry_text(payload: dict[str, Any]) -> str:
    lines = [
        "paap-doctor registry",
        f"File: {payload['file']}",
        f"CPV codes: {payload['code_count']}",
    ]
    for entry in payload["sheets"]:
        lines.append(f"- {entry['sheet']}: {entry['codes']} code(s) via {entry['strategy'] or 'no strategy'}")
    if payload["preview"]:
        lines.append("First entries:")
        lines.extend(
            f"  {entry['code']} | {entry['romanian_name']} | {entry['english_name']}" for entry in payload["preview"]
        )
    if payload["warnings"]:
        lines.append("Warnings:")
        lines.extend(f"- {warning}" for warning in payload["warnings"])
    return "\n".join(lines) + "\n"


def render_items_text(payload: dict[str, Any]) -> str:
    lines = [
        "paap-doctor items",
        f"File: {payload['file']}",
        f"Procurement items: {payload['item_count']}",
    ]
    for entry in payload["sheets"]:
        if entry["strategy"] is None:
            lines.append(f"- {entry['sheet']}: no usable columns")
            continue
        columns = ", ".join(f"{name}={index}" for name, index in sorted(entry["column_map"].items()))
        lines.append(
            f"- {entry['sheet']}: {entry['items']} item(s) via {entry['strategy']} layout, "
            f"data from row {entry['data_start_row']} [{columns}]"
        )
    if payload["preview"]:
        lines.append("First items:")
        lines.extend(
            f"  #{item['row_number']}: {item['object_name']} | {item['cpv_field'] or '-'} | {item['value_without_tva']:,.2f}"
            for item in payload["preview"]
        )
    if payload["warnings"]:
        lines.append("Warnings:")
        lines.extend(f"- {warning}" for warning in payload["warnings"])
    return "\n".join(lines) + "\n"


def render_search_text(payload: dict[str, Any]) -> str:
    lines = [
        "paap-doctor search",
        f"Query: {payload['query']!r}",
        f"Matches: {payload['match_count']}",
    ]
    lines.extend(
        f"  #{item['row_number']}: {item['object_name']} | {item['cpv_field'] or '-'} | {item['value_without_tva']:,.2f}"
        for item in payload["matches"]
    )
    return "\n".join(lines) + "\n"


# ══════════════════════════════════════════════════════════════════════════════
# COMMANDS
# ══════════════════════════════════════════════════════════════════════════════

def build_model(args: argparse.Namespace, settings: Settings, input_path: Path) -> tuple[DataModel, list[str]]:
    model = DataModel(settings=settings.analytics)
    warnings: list[str] = []
    if getattr(args, "cpv", None):
        registry = model.load_cpv_file(require_input(args.cpv), settings.extraction)
        warnings.extend(registry.warnings)
    extraction = model.load_procurement_file(input_path, settings.extraction)
    warnings.extend(extraction.warnings)
    return model, warnings


def run_detect(args: argparse.Namespace) -> int:
    settings = resolve_settings(args)
    input_path = require_input(args.input)
    detection = detect_file_kind(input_path, settings.extraction)
    if args.json:
        summary = build_run_summary(
            command="detect",
            input_path=input_path,
            metrics={"confidence_score": detection["confidence_score"]},
            warnings=detection["warnings"],
        )
        maybe_emit_json_stdout(wrap_payload("paap_doctor.detect", detection, summary), True)
    else:
        emit_human(render_detect_text(detection).rstrip(), quiet=args.quiet)
    return EXIT_SUCCESS


def run_registry(args: argparse.Namespace) -> int:
    settings = resolve_settings(args)
    input_path = require_input(args.input)
    build = build_registry(input_path, settings.extraction)
    output_path = Path(args.output) if args.output else None
    codes = [build.codes[code] for code in sorted(build.codes)]
    payload = {
        "file": str(input_path),
        "code_count": len(codes),
        "sheets": build.summary()["sheets"],
        "preview": [entry.to_dict() for entry in codes[:PREVIEW_ROWS]],
        "warnings": list(build.warnings),
    }
    if output_path:
        write_json(output_path, {"codes": [entry.to_dict() for entry in codes]})
    if args.json:
        summary = build_run_summary(
            command="registry",
            input_path=input_path,
            output_path=output_path,
            metrics={"code_count": len(codes)},
            warnings=build.warnings,
        )
        maybe_emit_json_stdout(wrap_payload("paap_doctor.registry", payload, summary), True)
    else:
        emit_human(render_registry_text(payload).rstrip(), quiet=args.quiet)
        if output_path:
            emit_human(f"Registry written: {output_path}", quiet=args.quiet)
    return EXIT_SUCCESS


def run_items(args: argparse.Namespace) -> int:
    settings = resolve_settings(args)
    input_path = require_input(args.input)
    result = extract_items(input_path, settings.extraction)
    output_path = Path(args.output) if args.output else None
    payload = {
        "file": str(input_path),
        "item_count": len(result.items),
        "sheets": [extraction.summary() for extraction in result.sheets],
        "preview": [item.to_dict() for item in result.items[:PREVIEW_ROWS]],
        "warnings": list(result.warnings),
    }
    if output_path:
        write_json(output_path, {"items": [item.to_dict() for item in result.items]})
    if args.json:
        summary = build_run_summary(
            command="items",
            input_path=input_path,
            output_path=output_path,
            metrics={"item_count": len(result.items), "sheet_count": len(result.sheets)},
            warnings=result.warnings,
        )
        maybe_emit_json_stdout(wrap_payload("paap_doctor.items", payload, summary), True)
    else:
        emit_human(render_items_text(payload).rstrip(), quiet=args.quiet)
        if output_path:
            emit_human(f"Items written: {output_path}", quiet=args.quiet)
    return EXIT_SUCCESS


def run_report(args: argparse.Namespace) -> int:
    settings = resolve_settings(args)
    input_path = require_input(args.input)
    model, warnings = build_model(args, settings, input_path)
    report = build_analysis_report(model, settings.analytics)
    output_path = Path(args.output) if args.output else None
    summary = build_run_summary(
        command="report",
        input_path=input_path,
        output_path=output_path,
        metrics=model.get_statistics(),
        warnings=warnings,
    )
    payload = wrap_payload("paap_doctor.report", report.to_dict(), summary)

    if output_path:
        if args.format == "json":
            write_json(output_path, payload)
        else:
            write_text(output_path, report.render())
    if args.json:
        maybe_emit_json_stdout(payload, True)
    elif output_path:
        emit_human(f"Report written: {output_path}", quiet=args.quiet)
    elif args.format == "json":
        print(json_dumps(payload))
    else:
        print(report.render(), end="")
    return EXIT_SUCCESS


def run_search(args: argparse.Namespace) -> int:
    settings = resolve_settings(args)
    input_path = require_input(args.input)
    model, warnings = build_model(args, settings, input_path)
    matches = model.search(args.query)
    payload = {
        "query": args.query,
        "match_count": len(matches),
        "matches": [item.to_dict() for item in matches],
    }
    if args.json:
        summary = build_run_summary(
            command="search",
            input_path=input_path,
            metrics={"match_count": len(matches), "item_count": len(model.items)},
            warnings=warnings,
        )
        maybe_emit_json_stdout(wrap_payload("paap_doctor.search", payload, summary), True)
    else:
        emit_human(render_search_text(payload).rstrip(), quiet=args.quiet)
    return EXIT_SUCCESS


def run_config_init(args: argparse.Namespace) -> int:
    config_path = Path(args.path)
    if config_path.exists() and not args.force:
        eprint(f"Refusing to overwrite existing config: {config_path}")
        return EXIT_COMMAND_ERROR
    write_json(config_path, settings_to_dict())
    emit_human(f"Config written: {config_path}", quiet=args.quiet)
    emit_human(f"Use it with --config {config_path} or {CONFIG_ENV_VAR}={config_path}", quiet=args.quiet)
    return EXIT_SUCCESS


def run_version(args: argparse.Namespace) -> int:
    if args.json:
        maybe_emit_json_stdout({"tool": "paap-doctor", "version": TOOL_VERSION, "contracts": CONTRACT_VERSIONS}, True)
    else:
        print(TOOL_VERSION)
    return EXIT_SUCCESS


# ══════════════════════════════════════════════════════════════════════════════
# PARSER
# ══════════════════════════════════════════════════════════════════════════════

def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    parser.add_argument("--config", help=f"Settings JSON path (default: ${CONFIG_ENV_VAR})")
    parser.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logs (-vv for debug)")


def build_parser() -> argparse.ArgumentParser:
    parser = PaapDoctorArgumentParser(
        prog="paap-doctor",
        description="CPV registry and annual procurement plan (PAAP) spreadsheet analysis.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    detect = subparsers.add_parser("detect", help="Guess whether a file is a CPV registry or a PAAP plan.")
    detect.add_argument("input", help="Input file path")
    add_common_arguments(detect)

    registry = subparsers.add_parser("registry", help="Load a CPV code registry.")
    registry.add_argument("input", help="CPV registry file path")
    registry.add_argument("--output", help="Write every code to this JSON file")
    add_common_arguments(registry)

    items = subparsers.add_parser("items", help="Extract procurement items from a PAAP file.")
    items.add_argument("input", help="PAAP file path")
    items.add_argument("--output", help="Write every item to this JSON file")
    add_common_arguments(items)

    report = subparsers.add_parser("report", help="Generate the comprehensive procurement analysis.")
    report.add_argument("input", help="PAAP file path")
    report.add_argument("--cpv", help="CPV registry file used for category names")
    report.add_argument("--format", choices=["text", "json"], default="text", help="Output format when --json is not used")
    report.add_argument("--output", help="Explicit report output path")
    add_common_arguments(report)

    search = subparsers.add_parser("search", help="Search procurement items by name or CPV.")
    search.add_argument("input", help="PAAP file path")
    search.add_argument("query", help="Case-insensitive search text")
    search.add_argument("--cpv", help="CPV registry file; code names become searchable")
    add_common_arguments(search)

    config = subparsers.add_parser("config", help="Generate configuration.")
    config_subparsers = config.add_subparsers(dest="config_command", required=True)
    config_init = config_subparsers.add_parser("init", help="Write the default settings as JSON.")
    config_init.add_argument("--path", default=DEFAULT_CONFIG_PATH, help="Config output path")
    config_init.add_argument("--force", action="store_true", help="Overwrite an existing file")
    add_common_arguments(config_init)

    version = subparsers.add_parser("version", help="Print version")
    add_common_arguments(version)
    return parser


COMMANDS = {
    "detect": run_detect,
    "registry": run_registry,
    "items": run_items,
    "report": run_report,
    "search": run_search,
    "version": run_version,
}


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        configure_logging(args.verbose, args.quiet)
        if args.command == "config":
            if args.config_command == "init":
                return run_config_init(args)
        handler = COMMANDS.get(args.command)
        if handler is None:
            raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
        return handler(args)
    except CliError as exc:
        eprint(str(exc))
        return exc.code
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


if __name__ == "__main__":
    raise SystemExit(main())
