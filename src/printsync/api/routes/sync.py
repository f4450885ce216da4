"""Sync trigger, status, cancel and recovery routes."""
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlmodel import Session, select

from printsync.db.engine import get_engine, get_session
from printsync.models.sync import ACTIVE_STATUSES, SyncLog
from printsync.store.sync_logs import (
    SyncAlreadyRunningError,
    SyncLogNotFoundError,
    SyncLogRepository,
)
from printsync.sync.maintenance import (
    cancel_sync,
    queue_sync,
    recover_stuck,
    run_catalog_sync,
)

logger = logging.getLogger(__name__)

router = APIRouter()


class SyncTriggerRequest(BaseModel):
    operation: str = "manual_sync"


class SyncStatusResponse(BaseModel):
    id: Optional[int]
    status: str
    current_step: Optional[str]
    progress: int
    total_products: int
    current_product_index: int
    current_product_name: Optional[str]
    estimated_time_remaining_ms: Optional[int]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    error_message: Optional[str]
    warnings: List[str]


class RecoverRequest(BaseModel):
    threshold_minutes: Optional[int] = None


async def _do_sync(log_id: int) -> None:
    """Background task: run the sync against the pre-created log."""
    try:
        await run_catalog_sync(get_engine(), existing_log_id=log_id)
    except Exception:
        logger.exception("Background catalog sync for log %s failed", log_id)


@router.post("/trigger", status_code=202)
async def trigger_sync(
    background_tasks: BackgroundTasks,
    request: Optional[SyncTriggerRequest] = None,
    engine=Depends(get_engine),
):
    """
    Queue a full catalog sync and return its log id immediately.
    Returns 409 if another sync is still active.
    """
    operation = request.operation if request else "manual_sync"
    try:
        log = queue_sync(engine, operation=operation)
    except SyncAlreadyRunningError as exc:
        raise HTTPException(
            status_code=409,
            detail={"error": str(exc), "active_sync_id": exc.active_log_id},
        )
    background_tasks.add_task(_do_sync, log.id)
    return {"message": "Sync started", "sync_log_id": log.id}


@router.get("/status", response_model=SyncStatusResponse)
def sync_status(session: Session = Depends(get_session)):
    """Return the live state of the most recent sync run."""
    log = session.exec(
        select(SyncLog).order_by(SyncLog.started_at.desc(), SyncLog.id.desc())
    ).first()
    if not log:
        return SyncStatusResponse(
            id=None,
            status="never_run",
            current_step=None,
            progress=0,
            total_products=0,
            current_product_index=0,
            current_product_name=None,
            estimated_time_remaining_ms=None,
            started_at=None,
            completed_at=None,
            error_message=None,
            warnings=[],
        )
    return SyncStatusResponse(
        id=log.id,
        status=log.status,
        current_step=log.current_step,
        progress=log.progress,
        total_products=log.total_products,
        current_product_index=log.current_product_index,
        current_product_name=log.current_product_name,
        estimated_time_remaining_ms=log.estimated_time_remaining_ms,
        started_at=log.started_at,
        completed_at=log.completed_at,
        error_message=log.error_message,
        warnings=list(log.warnings or []),
    )


@router.get("/logs", response_model=List[SyncLog])
def list_logs(
    limit: int = Query(10, ge=1, le=100),
    active: Optional[bool] = None,
    session: Session = Depends(get_session),
):
    """Recent sync logs, newest first. `active=true` returns only running ones."""
    stmt = select(SyncLog)
    if active is True:
        stmt = stmt.where(SyncLog.status.in_(ACTIVE_STATUSES))
    elif active is False:
        stmt = stmt.where(SyncLog.status.not_in(ACTIVE_STATUSES))
    stmt = stmt.order_by(SyncLog.started_at.desc(), SyncLog.id.desc()).limit(limit)
    return session.exec(stmt).all()


@router.get("/logs/{log_id}", response_model=SyncLog)
def get_log(log_id: int, session: Session = Depends(get_session)):
    log = session.get(SyncLog, log_id)
    if log is None:
        raise HTTPException(status_code=404, detail=f"Sync log {log_id} not found")
    return log


@router.post("/logs/{log_id}/cancel")
def cancel_log(log_id: int, engine=Depends(get_engine)):
    """Flag a run as cancelled; it stops before its next product."""
    try:
        cancelled = cancel_sync(engine, log_id)
    except SyncLogNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    status = SyncLogRepository(engine).get_status(log_id)
    return {"sync_log_id": log_id, "cancelled": cancelled, "status": status}


@router.post("/recover")
def recover(request: Optional[RecoverRequest] = None, engine=Depends(get_engine)):
    """Cancel runs stuck in a non-terminal status past the threshold."""
    minutes = request.threshold_minutes if request else None
    cancelled_ids = recover_stuck(engine, minutes=minutes)
    return {"cancelled_ids": cancelled_ids, "count": len(cancelled_ids)}
