"""
Command-line entrypoint for catalog maintenance.

Usage:
    python -m printsync sync                    # run one full sync now
    python -m printsync recover [--threshold-minutes 10]
    python -m printsync cancel LOG_ID
    python -m printsync status [--limit 5]
    python -m printsync [schedule]              # start the scheduler (nightly sync + sweep)
    uvicorn printsync.api.main:app --host 0.0.0.0 --port 8000  # starts API
"""
import argparse
import asyncio
import logging
import sys
from typing import List, Optional

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


def _cmd_sync(args) -> int:
    from printsync.db.engine import get_engine
    from printsync.store.sync_logs import SyncAlreadyRunningError
    from printsync.sync.maintenance import run_catalog_sync

    try:
        result = asyncio.run(run_catalog_sync(get_engine(), operation=args.operation))
    except SyncAlreadyRunningError as exc:
        logger.error("%s", exc)
        return 1
    return 0 if result.ok else 1


def _cmd_recover(args) -> int:
    from printsync.db.engine import get_engine
    from printsync.sync.maintenance import recover_stuck

    cancelled = recover_stuck(get_engine(), minutes=args.threshold_minutes)
    print(f"Cancelled {len(cancelled)} stuck sync run(s){': ' if cancelled else ''}"
          f"{', '.join(str(i) for i in cancelled)}")
    return 0


def _cmd_cancel(args) -> int:
    from printsync.db.engine import get_engine
    from printsync.store.sync_logs import SyncLogNotFoundError
    from printsync.sync.maintenance import cancel_sync

    try:
        cancelled = cancel_sync(get_engine(), args.log_id)
    except SyncLogNotFoundError as exc:
        logger.error("%s", exc)
        return 1
    if cancelled:
        print(f"Sync log {args.log_id} flagged as cancelled")
    else:
        print(f"Sync log {args.log_id} had already finished")
    return 0


def _cmd_status(args) -> int:
    from printsync.db.engine import get_engine
    from printsync.store.sync_logs import SyncLogRepository

    logs = SyncLogRepository(get_engine()).list_recent(limit=args.limit)
    if not logs:
        print("No sync has run yet")
    for log in logs:
        print(
            f"#{log.id} {log.operation:<15} {log.status:<20} {log.progress:>3}% "
            f"started {log.started_at:%Y-%m-%d %H:%M:%S} "
            f"products +{log.products_created}/~{log.products_updated}/-{log.products_deleted} "
            f"warnings {len(log.warnings or [])}"
            + (f" error: {log.error_message}" if log.error_message else "")
        )
    return 0


def _cmd_schedule(args) -> int:
    asyncio.run(_run_scheduler())
    return 0


async def _run_scheduler() -> None:
    from printsync.config import get_settings
    from printsync.db.engine import get_engine
    from printsync.scheduler.jobs import build_scheduler

    settings = get_settings()
    scheduler = build_scheduler(get_engine())
    scheduler.start()
    logger.info(
        "Scheduler started (nightly sync at %02d:00 UTC, stuck-run sweep every %d min)",
        settings.catalog_sync_hour,
        settings.stuck_sweep_interval_minutes,
    )
    try:
        await asyncio.Event().wait()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down...")
    finally:
        scheduler.shutdown()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="printsync", description="Printful catalog sync")
    sub = parser.add_subparsers(dest="command")

    p_sync = sub.add_parser("sync", help="Run one full catalog sync now")
    p_sync.add_argument("--operation", default="cli_sync", help="Label stored on the sync log")
    p_sync.set_defaults(func=_cmd_sync)

    p_recover = sub.add_parser("recover", help="Cancel sync runs stuck past the threshold")
    p_recover.add_argument(
        "--threshold-minutes",
        type=int,
        default=None,
        help="Override STUCK_SYNC_THRESHOLD_MINUTES (default: 10)",
    )
    p_recover.set_defaults(func=_cmd_recover)

    p_cancel = sub.add_parser("cancel", help="Flag a running sync as cancelled")
    p_cancel.add_argument("log_id", type=int)
    p_cancel.set_defaults(func=_cmd_cancel)

    p_status = sub.add_parser("status", help="Show recent sync runs")
    p_status.add_argument("--limit", type=int, default=5)
    p_status.set_defaults(func=_cmd_status)

    p_schedule = sub.add_parser("schedule", help="Run the scheduler (default)")
    p_schedule.set_defaults(func=_cmd_schedule)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command is None:
        return _cmd_schedule(args)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
