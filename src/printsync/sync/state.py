"""Run state threaded through every phase of a catalog sync."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from printsync.models.sync import COUNTER_FIELDS, SyncStatus


@dataclass
class SyncStats:
    products_processed: int = 0
    products_created: int = 0
    products_updated: int = 0
    products_deleted: int = 0
    variants_processed: int = 0
    variants_created: int = 0
    variants_updated: int = 0
    variants_deleted: int = 0

    def as_fields(self) -> Dict[str, int]:
        """Counters keyed by their SyncLog column names."""
        return {name: getattr(self, name) for name in COUNTER_FIELDS}


@dataclass
class ItemResult:
    """Outcome of processing one remote product."""

    remote_id: str
    created: bool
    variants_created: int = 0
    variants_updated: int = 0
    variant_remote_ids: List[str] = field(default_factory=list)

    @property
    def variants_processed(self) -> int:
        return self.variants_created + self.variants_updated


@dataclass
class RunState:
    """
    Everything one run knows about itself.

    Phases read and mutate this value instead of instance fields, so each
    phase can be driven on its own in tests.
    """

    log_id: int
    started_at: datetime = field(default_factory=datetime.utcnow)
    started_clock: float = 0.0
    status: str = SyncStatus.QUEUED.value
    progress: int = 0
    total_products: int = 0
    items_done: int = 0
    stats: SyncStats = field(default_factory=SyncStats)
    warnings: List[str] = field(default_factory=list)
    error_message: Optional[str] = None

    # Remote ids from the listing, in remote order.
    remote_ids: List[str] = field(default_factory=list)
    # Just-fetched variant ids of every product processed successfully.
    remote_variant_ids: Dict[str, List[str]] = field(default_factory=dict)

    cancelled_stuck_ids: List[int] = field(default_factory=list)
    deletions_started: bool = False

    def counters(self) -> Dict[str, Any]:
        return self.stats.as_fields()
