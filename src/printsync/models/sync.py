"""Sync run log model.

One SyncLog row per catalog sync run. It is the only state an observer
(admin UI, CLI `status`) can read, and the only channel for cancelling a
run: flipping `status` to "cancelled" is observed by the orchestrator
before its next item.
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


class SyncStatus(str, Enum):
    QUEUED = "queued"
    FETCHING_PRODUCTS = "fetching_products"
    PROCESSING_PRODUCTS = "processing_products"
    FINALIZING = "finalizing"
    SUCCESS = "success"
    PARTIAL = "partial"
    ERROR = "error"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({
    SyncStatus.SUCCESS.value,
    SyncStatus.PARTIAL.value,
    SyncStatus.ERROR.value,
    SyncStatus.CANCELLED.value,
})

ACTIVE_STATUSES = frozenset({
    SyncStatus.QUEUED.value,
    SyncStatus.FETCHING_PRODUCTS.value,
    SyncStatus.PROCESSING_PRODUCTS.value,
    SyncStatus.FINALIZING.value,
})

# Value held in SyncLog.active_slot while a run is non-terminal. The column
# is unique, so at most one log can hold it at a time.
ACTIVE_SLOT = "active"

COUNTER_FIELDS = (
    "products_processed",
    "products_created",
    "products_updated",
    "products_deleted",
    "variants_processed",
    "variants_created",
    "variants_updated",
    "variants_deleted",
)


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


class SyncLog(SQLModel, table=True):
    """Records one catalog sync run: phase, progress, counters and outcome."""

    id: Optional[int] = Field(default=None, primary_key=True)
    operation: str = "full_sync"
    status: str = Field(default=SyncStatus.QUEUED.value, index=True)
    current_step: Optional[str] = None
    progress: int = 0  # 0-100

    total_products: int = 0
    current_product_index: int = 0
    current_product_name: Optional[str] = None
    estimated_time_remaining_ms: Optional[int] = None

    products_processed: int = 0
    products_created: int = 0
    products_updated: int = 0
    products_deleted: int = 0
    variants_processed: int = 0
    variants_created: int = 0
    variants_updated: int = 0
    variants_deleted: int = 0

    error_message: Optional[str] = None
    warnings: List[str] = Field(default_factory=list, sa_column=Column(JSON))

    started_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    last_updated: datetime = Field(default_factory=datetime.utcnow)

    # Single-writer lock: ACTIVE_SLOT while non-terminal, NULL afterwards.
    # No column default: SyncLogRepository.create() takes the slot explicitly.
    active_slot: Optional[str] = Field(default=None, unique=True, index=True)
