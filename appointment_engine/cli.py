"""
Command-line tools for inspecting templates without a database.

Usage:
    python -m appointment_engine.cli preview --template tpl.json --start 2025-03-03 --end 2025-03-09
    python -m appointment_engine.cli preview --template tpl.json --exceptions exc.json --show-blocked
    python -m appointment_engine.cli validate --template tpl.json
"""

import argparse
import json
import logging
import sys
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Optional

import pydantic

from appointment_engine.logging_context import LOG_FORMAT, operation_handler
from appointment_engine.scheduling.exception_overlay import ExceptionOverlay
from appointment_engine.scheduling.slot_generator import SlotGenerator, validate_template_boundaries
from appointment_engine.scheduling.time_blocks import validate_template
from appointment_engine.schemas.exception_schema import ScheduleException
from appointment_engine.schemas.template_schema import WeeklyTemplate
from appointment_engine.utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)


def _load_template(path: Path) -> WeeklyTemplate:
    return WeeklyTemplate.model_validate_json(path.read_text(encoding="utf-8"))


def _load_exceptions(path: Optional[Path]) -> list[ScheduleException]:
    if path is None:
        return []
    raw = json.loads(path.read_text(encoding="utf-8"))
    return [ScheduleException.model_validate(item) for item in raw]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Preview and validate weekly availability templates."
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging output.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    preview = sub.add_parser("preview", help="Print the slots a template would generate.")
    preview.add_argument("--template", type=Path, required=True, help="Template JSON file.")
    preview.add_argument(
        "--exceptions", type=Path, default=None, help="JSON list of schedule exceptions."
    )
    preview.add_argument("--start", type=date.fromisoformat, default=None,
                         help="First local date (default: today).")
    preview.add_argument("--end", type=date.fromisoformat, default=None,
                         help="Last local date (default: start + 6 days).")
    preview.add_argument("--now", type=datetime.fromisoformat, default=None,
                         help="Reference instant for notice cutoffs (default: current time).")
    preview.add_argument("--show-blocked", action="store_true",
                         help="Include slots suppressed by exceptions, marked blocked.")
    preview.add_argument("--check-boundaries", action="store_true",
                         help="Report slots with inconsistent length or spacing.")
    preview.add_argument("--output", type=Path, default=None,
                         help="Write JSON here instead of stdout.")

    validate = sub.add_parser("validate", help="Check a template's time blocks.")
    validate.add_argument("--template", type=Path, required=True, help="Template JSON file.")
    return parser


def _preview(args: argparse.Namespace) -> int:
    template = _load_template(args.template)
    exceptions = _load_exceptions(args.exceptions)
    now = ensure_utc(args.now) if args.now else utc_now()
    start = args.start or now.astimezone(template.zone).date()
    end = args.end or start + timedelta(days=6)

    candidates = list(SlotGenerator(clock=lambda: now).generate(template, start, end, now=now))
    horizon = datetime.combine(end + timedelta(days=2), datetime.min.time(), tzinfo=now.tzinfo)
    slots = list(ExceptionOverlay().apply_exceptions(
        candidates, exceptions, horizon, materialize_blocked=args.show_blocked,
    ))
    logger.info("Template %s: %d slots between %s and %s", template.id, len(slots), start, end)

    if args.check_boundaries:
        report = validate_template_boundaries(slots, template)
        for slot in report.invalid:
            logger.warning("Inconsistent slot %s %s", slot.date, slot.local_start)

    output = json.dumps([slot.model_dump(mode="json") for slot in slots], indent=2)
    if args.output:
        args.output.write_text(output, encoding="utf-8")
        logger.info("Slots written to %s", args.output)
    else:
        sys.stdout.write(output + "\n")
    return 0


def _validate(args: argparse.Namespace) -> int:
    template = _load_template(args.template)
    errors = validate_template(template)
    for error in errors:
        sys.stdout.write(f"{error}\n")
    if errors:
        return 1
    sys.stdout.write(f"Template {template.id} is valid.\n")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=[operation_handler()],
    )

    if not args.template.exists():
        logger.error("Template file not found: %s", args.template)
        return 1
    try:
        if args.command == "preview":
            return _preview(args)
        return _validate(args)
    except (pydantic.ValidationError, json.JSONDecodeError) as exc:
        logger.error("Could not read input: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
