"""
APScheduler jobs for background catalog maintenance.

  catalog_sync     nightly full sync at CATALOG_SYNC_HOUR (UTC)
  stuck_run_sweep  every STUCK_SWEEP_INTERVAL_MINUTES, cancels runs older than
                   STUCK_SWEEP_THRESHOLD_MINUTES

Every sync also recovers stuck runs before it starts; the sweep keeps the
admin view honest between nightly runs. Job bodies never raise so the
scheduler stays alive.
"""
import logging
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from printsync.config import get_settings

logger = logging.getLogger(__name__)


def build_scheduler(engine) -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Args:
        engine: SQLAlchemy engine to pass to the jobs.

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    settings = get_settings()
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        _nightly_sync,
        trigger="cron",
        hour=settings.catalog_sync_hour,
        minute=0,
        id="catalog_sync",
        replace_existing=True,
        kwargs={"engine": engine},
    )
    scheduler.add_job(
        _sweep_stuck_runs,
        trigger="interval",
        minutes=settings.stuck_sweep_interval_minutes,
        id="stuck_run_sweep",
        replace_existing=True,
        kwargs={"engine": engine},
    )

    return scheduler


async def _nightly_sync(engine) -> None:
    """Nightly job: full catalog sync. Skips quietly if a run is active."""
    from printsync.store.sync_logs import SyncAlreadyRunningError
    from printsync.sync.maintenance import run_catalog_sync

    logger.info("Nightly catalog sync starting at %s", datetime.utcnow().isoformat())

    try:
        result = await run_catalog_sync(engine, operation="scheduled_sync")
        logger.info("Nightly catalog sync %s finished: %s", result.log_id, result.status)
    except SyncAlreadyRunningError as exc:
        logger.info("Nightly catalog sync skipped: %s", exc)
    except Exception as exc:
        logger.error("Nightly catalog sync failed: %s", exc)


async def _sweep_stuck_runs(engine) -> None:
    """Periodic job: cancel runs stuck past the configured threshold."""
    from printsync.sync.maintenance import recover_stuck

    try:
        recover_stuck(engine, minutes=get_settings().stuck_sweep_threshold_minutes)
    except Exception as exc:
        logger.error("Stuck-run sweep failed: %s", exc)
