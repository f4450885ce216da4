"""
Maintenance entry points shared by the CLI, the HTTP API and the scheduler.

Each function is a thin wrapper over the orchestrator, the SyncLog
repository or stuck-run recovery, reading defaults from Settings.
"""
import logging
from datetime import timedelta
from typing import List, Optional

from printsync.config import Settings, get_settings
from printsync.models.sync import SyncLog
from printsync.printful.client import PrintfulClient
from printsync.store.sync_logs import SyncLogRepository
from printsync.sync.orchestrator import CatalogSyncService, SyncResult
from printsync.sync.recovery import recover_stuck_runs

logger = logging.getLogger(__name__)


def stuck_threshold(settings: Optional[Settings] = None,
                    minutes: Optional[int] = None) -> timedelta:
    """The canonical stuck-run threshold, optionally overridden in minutes."""
    settings = settings or get_settings()
    if minutes is None:
        minutes = settings.stuck_sync_threshold_minutes
    return timedelta(minutes=minutes)


def recover_stuck(engine, minutes: Optional[int] = None,
                  settings: Optional[Settings] = None) -> List[int]:
    """Cancel stuck runs; returns the cancelled log ids."""
    cancelled = recover_stuck_runs(engine, stuck_threshold(settings, minutes))
    if cancelled:
        logger.info("Recovered %d stuck sync runs: %s", len(cancelled), cancelled)
    return cancelled


def queue_sync(engine, operation: str = "manual_sync",
               settings: Optional[Settings] = None) -> SyncLog:
    """
    Pre-create a queued SyncLog so a caller can hand its id out at once.

    Stuck runs are recovered first so a crashed run cannot hold the slot.

    Raises:
        SyncAlreadyRunningError: if a live run is still active.
    """
    recover_stuck(engine, settings=settings)
    return SyncLogRepository(engine).create(operation, current_step="Sync queued")


def cancel_sync(engine, log_id: int, reason: str = "Cancelled by request") -> bool:
    return SyncLogRepository(engine).cancel(log_id, reason)


async def run_catalog_sync(
    engine,
    existing_log_id: Optional[int] = None,
    client: Optional[PrintfulClient] = None,
    settings: Optional[Settings] = None,
    operation: str = "full_sync",
) -> SyncResult:
    """
    Run one catalog sync with a client built from settings (or the one given).

    Raises:
        SyncAlreadyRunningError: no existing log was given and a run is active.
    """
    settings = settings or get_settings()
    owns_client = client is None
    client = client or PrintfulClient.from_settings(settings)
    try:
        service = CatalogSyncService(
            client=client,
            engine=engine,
            stuck_threshold=stuck_threshold(settings),
            operation=operation,
        )
        return await service.run(existing_log_id=existing_log_id)
    finally:
        if owns_client:
            await client.close()
