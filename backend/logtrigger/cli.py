"""logtrigger command-line interface.

Usage:
    logtrigger test TRIGGER LOG [LOG ...] [--timestamp-format FMT] [--json]
    logtrigger validate TRIGGER [--json]
    logtrigger describe TRIGGER

Trigger files are YAML or JSON mappings. ``test`` exits 0 when the trigger
fires and 1 when it does not; ``validate`` exits 0 when the trigger is valid
and 1 otherwise. Unreadable input exits 2.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from logtrigger.config import LOG_LEVELS, get_settings
from logtrigger.exceptions import ErrorDetail, LogTriggerException, TriggerFileError
from logtrigger.engine.results import TriggerTestResult
from logtrigger.engine.timestamps import format_elapsed
from logtrigger.schemas.trigger import LogFile, TriggerConfig
from logtrigger.services.describer import describe_trigger
from logtrigger.services.recipe_validator import get_recipe_validator
from logtrigger.services.trigger_tester import get_trigger_tester

logger = logging.getLogger(__name__)


def load_trigger(path: str) -> dict[str, Any]:
    """Load a trigger configuration from a YAML or JSON file.

    Raises:
        TriggerFileError: If the file cannot be read, is not a mapping, or
            does not parse as a trigger configuration
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise TriggerFileError(path, e.strerror or str(e)) from e

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise TriggerFileError(path, f"invalid YAML/JSON: {e}") from e

    if not isinstance(data, dict):
        raise TriggerFileError(path, "expected a mapping at the top level")

    try:
        TriggerConfig.model_validate(data)
    except ValidationError as e:
        raise TriggerFileError(
            path,
            "invalid trigger configuration",
            details=[
                ErrorDetail(
                    field=".".join(str(loc) for loc in error["loc"]),
                    message=error["msg"],
                    code=error["type"],
                )
                for error in e.errors()
            ],
        ) from e
    return data


def load_log(path: str) -> LogFile:
    """Read a log file; undecodable bytes are replaced."""
    try:
        content = Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise TriggerFileError(path, e.strerror or str(e)) from e
    return LogFile(name=Path(path).name, content=content)


def format_result(result: TriggerTestResult) -> str:
    """Human-readable report of an evaluation."""
    lines = [
        f"Triggered: {'yes' if result.triggered else 'no'}",
        result.final_result.message,
    ]

    for step in result.steps:
        if step.cancelled:
            state = "cancelled"
        elif step.timed_out:
            state = "timed out"
        elif step.fired:
            state = "fired"
        else:
            state = "waiting"
        lines.append(
            f"  {step.name} [{step.type.value}] {step.match_count}/{step.required_times} "
            f"{state} {step.next_action} ({step.tested_line_count} lines tested)"
        )
        if step.duration_check is not None and step.duration_check.message:
            elapsed = format_elapsed(step.duration_check.elapsed)
            suffix = f" (elapsed {elapsed})" if elapsed else ""
            lines.append(f"    {step.duration_check.message}{suffix}")
        for rejected in step.rejected_matches:
            failed = ", ".join(
                f"{c.var_name}={c.extracted_value}" for c in rejected.failed_conditions
            )
            lines.append(f"    rejected line {rejected.line_number}: {failed}")
        for error in step.regex_errors:
            lines.append(f"    regex error: {error}")

    if result.limitation is not None:
        for number, firing in enumerate(result.firings, start=1):
            state = "suppressed" if firing.suppressed else "fired"
            lines.append(f"  Firing {number}: {state} at {firing.firing_timestamp}")

    if result.multi_instances is not None:
        for instance in result.multi_instances:
            lines.append(
                f"  Instance {instance.id} key={instance.captured_key!r} "
                f"line {instance.start_line_number}: {instance.status.value}"
            )

    return "\n".join(lines)


def cmd_test(args: argparse.Namespace) -> int:
    trigger = load_trigger(args.trigger)
    logs = [load_log(path) for path in args.logs]
    tester = get_trigger_tester()

    if len(logs) == 1:
        result = tester.evaluate(trigger, logs[0].content, args.timestamp_format)
    else:
        result = tester.evaluate_files(trigger, logs, args.timestamp_format)

    print(result.to_json() if args.json else format_result(result))
    return 0 if result.triggered else 1


def cmd_validate(args: argparse.Namespace) -> int:
    trigger = load_trigger(args.trigger)
    result = get_recipe_validator().validate(trigger)

    if args.json:
        print(result.model_dump_json(indent=2))
    else:
        print("valid" if result.valid else "invalid")
        for issue in result.errors + result.warnings:
            print(f"  {issue.severity}: {issue.field}: {issue.message}")
    return 0 if result.valid else 1


def cmd_describe(args: argparse.Namespace) -> int:
    print(describe_trigger(load_trigger(args.trigger)))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="logtrigger",
        description="Evaluate multi-step log trigger recipes",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        type=str.upper,
        choices=LOG_LEVELS,
        help="Logging level (default from settings)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    test_parser = subparsers.add_parser("test", help="Evaluate a trigger against log files")
    test_parser.add_argument("trigger", help="Trigger file (YAML or JSON)")
    test_parser.add_argument("logs", nargs="+", help="Log file(s), evaluated as one log in order")
    test_parser.add_argument(
        "--timestamp-format",
        default=None,
        help="Timestamp format of the log lines, e.g. 'yyyy-MM-dd HH:mm:ss.SSS'",
    )
    test_parser.add_argument("--json", action="store_true", help="Print the full result as JSON")
    test_parser.set_defaults(func=cmd_test)

    validate_parser = subparsers.add_parser("validate", help="Check a trigger configuration")
    validate_parser.add_argument("trigger", help="Trigger file (YAML or JSON)")
    validate_parser.add_argument("--json", action="store_true", help="Print issues as JSON")
    validate_parser.set_defaults(func=cmd_validate)

    describe_parser = subparsers.add_parser("describe", help="Describe a trigger in plain English")
    describe_parser.add_argument("trigger", help="Trigger file (YAML or JSON)")
    describe_parser.set_defaults(func=cmd_describe)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, args.log_level or settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        return args.func(args)
    except LogTriggerException as e:
        logger.debug("%s failed: %s", args.command, e.code)
        print(str(e), file=sys.stderr)
        return e.exit_code


if __name__ == "__main__":
    sys.exit(main())
