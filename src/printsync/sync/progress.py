"""
Progress model for a catalog sync run.

Each phase owns a fixed band of the 0-100 scale (PHASE_BANDS). The tracker
turns "phase + item index" into a progress value, an ETA and counter
totals, and returns plain dicts of SyncLog fields for the orchestrator to
persist. It keeps no state of its own beyond the RunState it is handed,
except the clock used for elapsed time.

Progress never goes backwards within a run: every value is clamped to the
highest one already reported.
"""
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from printsync.sync.state import ItemResult, RunState

FETCH = "fetch"
PROCESS = "process"
PRUNE_PRODUCTS = "prune_products"
PRUNE_VARIANTS = "prune_variants"
FINALIZE = "finalize"

# phase -> (start %, end %)
PHASE_BANDS: Dict[str, tuple] = {
    FETCH: (0, 15),
    PROCESS: (15, 85),
    PRUNE_PRODUCTS: (85, 90),
    PRUNE_VARIANTS: (90, 95),
    FINALIZE: (95, 100),
}


def band_start(phase: str) -> int:
    return PHASE_BANDS[phase][0]


def band_end(phase: str) -> int:
    return PHASE_BANDS[phase][1]


def item_progress(index: int, total: int) -> int:
    """Progress for item `index` of `total` inside the processing band."""
    start, end = PHASE_BANDS[PROCESS]
    if total <= 0:
        return end
    return start + round((end - start) * min(index, total) / total)


def estimate_time_remaining(elapsed_ms: float, processed: int, total: int) -> Optional[int]:
    """Linear ETA in milliseconds; None until at least one item is done."""
    if processed <= 0:
        return None
    remaining = max(total - processed, 0)
    return int(elapsed_ms / processed * remaining)


class ProgressTracker:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock

    def start(self, state: RunState) -> None:
        """Stamp the run's start on the tracker clock."""
        state.started_clock = self._clock()

    def elapsed_ms(self, state: RunState) -> int:
        return max(0, int((self._clock() - state.started_clock) * 1000))

    def _advance(self, state: RunState, value: int) -> int:
        state.progress = max(state.progress, min(value, 100))
        return state.progress

    def enter_phase(self, state: RunState, phase: str, step: str,
                    status: Optional[str] = None) -> Dict[str, Any]:
        """Move to the start of a phase band."""
        update: Dict[str, Any] = {
            "current_step": step,
            "progress": self._advance(state, band_start(phase)),
        }
        if status is not None:
            state.status = status
            update["status"] = status
        return update

    def initialize(self, state: RunState, total_items: int) -> Dict[str, Any]:
        """The listing is done: fetch band complete, processing about to start."""
        state.total_products = total_items
        return {
            "total_products": total_items,
            "current_product_index": 0,
            "progress": self._advance(state, band_end(FETCH)),
            "current_step": f"Found {total_items} products",
        }

    def start_item(self, state: RunState, index: int, name: str) -> Dict[str, Any]:
        eta = estimate_time_remaining(
            self.elapsed_ms(state), state.items_done, state.total_products
        )
        return {
            "current_product_index": index,
            "current_product_name": name,
            "current_step": f"Processing product {index + 1} of {state.total_products}: {name}",
            "progress": self._advance(state, item_progress(index, state.total_products)),
            "estimated_time_remaining_ms": eta,
        }

    def complete_item(self, state: RunState, result: ItemResult) -> Dict[str, Any]:
        """Fold one successful item into the running totals."""
        stats = state.stats
        stats.products_processed += 1
        if result.created:
            stats.products_created += 1
        else:
            stats.products_updated += 1
        stats.variants_processed += result.variants_processed
        stats.variants_created += result.variants_created
        stats.variants_updated += result.variants_updated
        return self._item_done(state)

    def fail_item(self, state: RunState, message: str) -> Dict[str, Any]:
        """A failed item still advances the bar; it is recorded as a warning."""
        self.add_warning(state, message)
        update = self._item_done(state)
        update["warnings"] = list(state.warnings)
        return update

    def _item_done(self, state: RunState) -> Dict[str, Any]:
        state.items_done += 1
        update = state.counters()
        update["progress"] = self._advance(
            state, item_progress(state.items_done, state.total_products)
        )
        update["estimated_time_remaining_ms"] = estimate_time_remaining(
            self.elapsed_ms(state), state.items_done, state.total_products
        )
        return update

    def add_warning(self, state: RunState, message: str) -> None:
        state.warnings.append(message)

    def complete(self, state: RunState, status: str,
                 error_message: Optional[str] = None) -> Dict[str, Any]:
        state.status = status
        state.error_message = error_message
        update = state.counters()
        update.update({
            "status": status,
            "progress": self._advance(state, 100),
            "completed_at": datetime.utcnow(),
            "duration_ms": self.elapsed_ms(state),
            "estimated_time_remaining_ms": None,
            "warnings": list(state.warnings),
        })
        if error_message is not None:
            update["error_message"] = error_message
        return update
