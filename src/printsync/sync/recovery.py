"""
Stuck-run recovery.

A run that crashes hard (process killed, container recycled) never reaches
its finalize step and leaves its SyncLog in a non-terminal status, holding
the active slot. recover_stuck_runs() finds such logs by age and cancels
them so the next run can start.

It runs at the start of every sync and as a standalone maintenance
operation (CLI `recover`, POST /sync/recover, scheduled sweep). Each
cancellation is a conditional UPDATE on the log still being non-terminal,
so calling it again, or concurrently with a run that just finished, never
re-touches a log.
"""
import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from sqlalchemy import update
from sqlmodel import Session, select

from printsync.models.sync import ACTIVE_STATUSES, SyncLog, SyncStatus

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = timedelta(minutes=10)


def find_stuck_runs(engine, threshold: timedelta, now: Optional[datetime] = None) -> List[SyncLog]:
    """Return non-terminal logs started before `now - threshold`."""
    now = now or datetime.utcnow()
    cutoff = now - threshold
    with Session(engine) as s:
        return list(
            s.exec(
                select(SyncLog)
                .where(SyncLog.status.in_(ACTIVE_STATUSES))
                .where(SyncLog.started_at < cutoff)
                .order_by(SyncLog.started_at)
            ).all()
        )


def recover_stuck_runs(
    engine,
    threshold: timedelta = DEFAULT_THRESHOLD,
    now: Optional[datetime] = None,
    exclude_ids: Iterable[int] = (),
) -> List[int]:
    """
    Cancel every SyncLog stuck in a non-terminal status past `threshold`.

    Args:
        engine: SQLAlchemy engine.
        threshold: Age after which a non-terminal run counts as stuck.
        now: Reference time (defaults to utcnow; injectable for tests).
        exclude_ids: Logs never to touch (the caller's own run).

    Returns:
        Ids of the logs this call cancelled, oldest first.
    """
    now = now or datetime.utcnow()
    excluded = set(exclude_ids)
    minutes = threshold.total_seconds() / 60
    cancelled: List[int] = []

    for log in find_stuck_runs(engine, threshold, now=now):
        if log.id in excluded:
            continue
        message = (
            f"Sync cancelled by stuck-run recovery: still '{log.status}' "
            f"after {minutes:g} minutes"
        )
        duration_ms = max(0, int((now - log.started_at).total_seconds() * 1000))
        with engine.begin() as conn:
            result = conn.execute(
                update(SyncLog)
                .where(SyncLog.id == log.id)
                .where(SyncLog.status.in_(ACTIVE_STATUSES))
                .values(
                    status=SyncStatus.CANCELLED.value,
                    error_message=message,
                    current_step="Cancelled by stuck-run recovery",
                    completed_at=now,
                    duration_ms=duration_ms,
                    active_slot=None,
                    last_updated=now,
                )
            )
            changed = result.rowcount
        if changed:
            cancelled.append(log.id)
            logger.warning(
                "Cancelled stuck sync log %s (status %s, started %s)",
                log.id, log.status, log.started_at.isoformat(),
            )

    if not cancelled:
        logger.debug("No stuck sync runs found")
    return cancelled
