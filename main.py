"""
Appointment engine entry point.

Runs the background jobs once against a template file, or forwards to the
template tools in ``appointment_engine.cli``.

Usage:
    Preview slots:   python main.py preview --template tpl.json
    Validate:        python main.py validate --template tpl.json
    Run jobs once:   python main.py jobs --template tpl.json
"""

import logging
import sys
from pathlib import Path

from appointment_engine.config import settings

logger = logging.getLogger(__name__)


def _run_jobs_once(template_path: Path) -> int:
    """Generate slots for one template into a fresh in-memory store and clean up."""
    from appointment_engine.jobs.slot_cleanup import cleanup_old_slots
    from appointment_engine.jobs.slot_generation import run_slot_generation
    from appointment_engine.schemas.template_schema import WeeklyTemplate
    from appointment_engine.store import InMemorySchedulingStore

    store = InMemorySchedulingStore()
    store.save_template(
        WeeklyTemplate.model_validate_json(template_path.read_text(encoding="utf-8"))
    )
    report = run_slot_generation(store)
    cleanup = cleanup_old_slots(store)
    logger.info(
        "%s: %d slots created, %d removed, %d failed templates",
        settings.service_name, report.created, cleanup.total, len(report.failed_templates),
    )
    return 0 if report.success else 1


if __name__ == "__main__":
    if len(sys.argv) > 3 and sys.argv[1] == "jobs" and sys.argv[2] == "--template":
        sys.exit(_run_jobs_once(Path(sys.argv[3])))

    from appointment_engine.cli import main

    sys.exit(main(sys.argv[1:]))
