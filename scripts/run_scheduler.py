#!/usr/bin/env python3
"""
Operate the recurring-transaction scheduler.

Usage:
    python3 scripts/run_scheduler.py serve
    python3 scripts/run_scheduler.py tick
    python3 scripts/run_scheduler.py run recurring.catch_up
    python3 scripts/run_scheduler.py preview
    python3 scripts/run_scheduler.py dead-letters --task-type recurring.catch_up

Examples:
    # Background loop against Postgres
    python3 scripts/run_scheduler.py --db-url postgresql+psycopg://penny@localhost/penny serve

    # What would a catch-up create right now? (read-only)
    python3 scripts/run_scheduler.py preview

    # Override file merged over the packaged defaults
    python3 scripts/run_scheduler.py --config ops/penny.yaml tick
"""

import argparse
import json
import signal
import sys
import threading
from dataclasses import asdict
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from penny_batch.orchestrator import BatchOrchestrator  # noqa: E402
from penny_batch.services.run_recorder import RunRecorder  # noqa: E402
from penny_config import get_active_config  # noqa: E402
from penny_kernel.db.engine import (  # noqa: E402
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from penny_kernel.domain.clock import SystemClock  # noqa: E402
from penny_kernel.logging_config import configure_logging, get_logger  # noqa: E402
from penny_kernel.selectors.recurring_selector import RecurringSelector  # noqa: E402

logger = get_logger("scripts.run_scheduler")


def _dump(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def _run_summary(run) -> dict:
    summary = asdict(run)
    summary.pop("job_results")
    return summary


def cmd_serve(orchestrator: BatchOrchestrator, args) -> int:
    scheduler = orchestrator.create_scheduler()
    stop = threading.Event()

    def _handle(signum, frame):
        logger.info("shutdown_signal", extra={"signal": signum})
        stop.set()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)

    scheduler.start()
    try:
        stop.wait()
    finally:
        scheduler.stop()
    return 0


def cmd_tick(orchestrator: BatchOrchestrator, args) -> int:
    runs = orchestrator.create_scheduler().tick()
    _dump([_run_summary(r) for r in runs])
    return 0


def cmd_run(orchestrator: BatchOrchestrator, args) -> int:
    run = orchestrator.create_scheduler(install_schedules=False).run_task(args.task_type)
    _dump(_run_summary(run))
    return 0 if run.dead_lettered == 0 and run.fatal == 0 else 1


def cmd_preview(orchestrator: BatchOrchestrator, args) -> int:
    config = args.config_obj
    with session_scope() as session:
        preview = RecurringSelector(
            session, preview_dates=config.scheduler.preview_dates,
        ).preview(
            orchestrator.clock.now(),
            max_occurrences=config.scheduler.max_occurrences,
        )
    _dump(
        {
            "total_recurring": preview.total_recurring,
            "needing_catch_up": preview.needing_catch_up,
            "total_missed": preview.total_missed,
            "with_errors": preview.with_errors,
            "templates": [asdict(t) for t in preview.templates],
        }
    )
    return 0


def cmd_dead_letters(orchestrator: BatchOrchestrator, args) -> int:
    with session_scope() as session:
        letters = RunRecorder(session).dead_letters(args.task_type, args.limit)
    _dump([asdict(d) for d in letters])
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Recurring-transaction scheduler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--config", type=Path, help="YAML override file")
    parser.add_argument("--db-url", help="Database URL (overrides config and env)")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING, ...")
    parser.add_argument(
        "--create-tables", action="store_true",
        help="Create missing tables before running",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("serve", help="Run the scheduler loop until SIGINT/SIGTERM")
    sub.add_parser("tick", help="Fire every due schedule once")
    run = sub.add_parser("run", help="Fire one task now, ignoring its schedule")
    run.add_argument("task_type")
    sub.add_parser("preview", help="Print the catch-up dry run as JSON")
    dead = sub.add_parser("dead-letters", help="List jobs that exhausted retries")
    dead.add_argument("--task-type")
    dead.add_argument("--limit", type=int, default=100)
    return parser


COMMANDS = {
    "serve": cmd_serve,
    "tick": cmd_tick,
    "run": cmd_run,
    "preview": cmd_preview,
    "dead-letters": cmd_dead_letters,
}


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    config = get_active_config(args.config)
    configure_logging(level=(args.log_level or config.log_level).upper())
    args.config_obj = config

    engine = init_engine_from_url(
        args.db_url or config.database.url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
        pool_timeout=config.database.pool_timeout,
        pool_recycle=config.database.pool_recycle,
    )
    try:
        if args.create_tables:
            import penny_batch.models  # noqa: F401

            create_tables(engine)

        orchestrator = BatchOrchestrator(
            config=config,
            session_factory=get_session_factory(),
            clock=SystemClock(),
        )
        return COMMANDS[args.command](orchestrator, args)
    finally:
        reset_engine()


if __name__ == "__main__":
    sys.exit(main())
