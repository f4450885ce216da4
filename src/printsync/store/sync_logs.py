"""
SyncLogRepository: persistence for SyncLog rows.

Owns the single-writer rule: a new log takes the unique `active_slot`,
and any write that moves a log into a terminal status releases it. If the
slot is already held, create() raises SyncAlreadyRunningError instead of
letting two runs interleave.

Writes never move a log *out* of a terminal status. An external cancel
therefore wins over a concurrent progress update from the run itself.
"""
import logging
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from printsync.models.sync import (
    ACTIVE_SLOT,
    ACTIVE_STATUSES,
    SyncLog,
    SyncStatus,
    is_terminal,
)

logger = logging.getLogger(__name__)


class SyncAlreadyRunningError(RuntimeError):
    """Raised when a run is requested while another SyncLog is active."""

    def __init__(self, active_log_id: Optional[int] = None):
        msg = "Another catalog sync is already in progress"
        if active_log_id is not None:
            msg += f" (sync log {active_log_id})"
        super().__init__(msg)
        self.active_log_id = active_log_id


class SyncLogNotFoundError(LookupError):
    """Raised when a SyncLog id does not exist."""

    def __init__(self, log_id: int):
        super().__init__(f"Sync log {log_id} not found")
        self.log_id = log_id


class SyncLogRepository:
    def __init__(self, engine):
        self.engine = engine

    def create(self, operation: str = "full_sync", current_step: Optional[str] = None) -> SyncLog:
        """
        Insert a new queued SyncLog holding the active slot.

        Raises:
            SyncAlreadyRunningError: if another log holds the slot.
        """
        log = SyncLog(
            operation=operation,
            status=SyncStatus.QUEUED.value,
            current_step=current_step or "Queued",
            progress=0,
            active_slot=ACTIVE_SLOT,
        )
        with Session(self.engine) as s:
            s.add(log)
            try:
                s.commit()
            except IntegrityError:
                s.rollback()
                active = self._first_active(s)
                raise SyncAlreadyRunningError(active.id if active else None)
            s.refresh(log)
        logger.info("Created sync log %s (%s)", log.id, operation)
        return log

    def get(self, log_id: int) -> Optional[SyncLog]:
        with Session(self.engine) as s:
            return s.get(SyncLog, log_id)

    def require(self, log_id: int) -> SyncLog:
        log = self.get(log_id)
        if log is None:
            raise SyncLogNotFoundError(log_id)
        return log

    def get_status(self, log_id: int) -> Optional[str]:
        log = self.get(log_id)
        return log.status if log else None

    def update(self, log_id: int, **fields: Any) -> SyncLog:
        """
        Apply field updates to a SyncLog and bump `last_updated`.

        A status change away from a terminal status is dropped. Entering a
        terminal status releases the active slot.

        Raises:
            SyncLogNotFoundError: if the log does not exist.
        """
        with Session(self.engine) as s:
            log = s.get(SyncLog, log_id)
            if log is None:
                raise SyncLogNotFoundError(log_id)

            new_status = fields.get("status")
            if new_status is not None and is_terminal(log.status) and new_status != log.status:
                logger.info(
                    "Sync log %s is already %s; ignoring status %s",
                    log_id, log.status, new_status,
                )
                fields = {k: v for k, v in fields.items() if k != "status"}

            for k, v in fields.items():
                if k == "warnings" and v is not None:
                    v = list(v)
                setattr(log, k, v)
            if is_terminal(log.status):
                log.active_slot = None
            log.last_updated = datetime.utcnow()
            s.add(log)
            s.commit()
            s.refresh(log)
            return log

    def cancel(self, log_id: int, reason: str = "Cancelled by request") -> bool:
        """
        Flag a run as cancelled. The orchestrator observes this before its
        next item; an in-flight remote call is not interrupted.

        Returns:
            True if the log was non-terminal and is now cancelled, False if
            it had already finished.

        Raises:
            SyncLogNotFoundError: if the log does not exist.
        """
        now = datetime.utcnow()
        with Session(self.engine) as s:
            log = s.get(SyncLog, log_id)
            if log is None:
                raise SyncLogNotFoundError(log_id)
            if is_terminal(log.status):
                return False
            log.status = SyncStatus.CANCELLED.value
            log.error_message = reason
            log.current_step = "Cancellation requested"
            log.completed_at = now
            log.duration_ms = _elapsed_ms(log.started_at, now)
            log.active_slot = None
            log.last_updated = now
            s.add(log)
            s.commit()
        logger.info("Cancelled sync log %s: %s", log_id, reason)
        return True

    def list_active(self) -> List[SyncLog]:
        with Session(self.engine) as s:
            return list(
                s.exec(
                    select(SyncLog)
                    .where(SyncLog.status.in_(ACTIVE_STATUSES))
                    .order_by(SyncLog.started_at)
                ).all()
            )

    def list_recent(self, limit: int = 10, include_active: bool = True) -> List[SyncLog]:
        with Session(self.engine) as s:
            stmt = select(SyncLog)
            if not include_active:
                stmt = stmt.where(SyncLog.status.not_in(ACTIVE_STATUSES))
            stmt = stmt.order_by(SyncLog.started_at.desc(), SyncLog.id.desc()).limit(limit)
            return list(s.exec(stmt).all())

    def latest(self) -> Optional[SyncLog]:
        logs = self.list_recent(limit=1)
        return logs[0] if logs else None

    @staticmethod
    def _first_active(s: Session) -> Optional[SyncLog]:
        return s.exec(select(SyncLog).where(SyncLog.active_slot == ACTIVE_SLOT)).first()


def _elapsed_ms(started_at: Optional[datetime], now: datetime) -> int:
    if started_at is None:
        return 0
    return max(0, int((now - started_at).total_seconds() * 1000))
