"""
Catalog sync orchestrator: reconciles the Printful catalog into the local DB.

Flow for one run:
  1. Recover stuck runs, then create (or adopt) the SyncLog
  2. fetching_products:   page through the remote catalog (fatal on error)
  3. processing_products: per product, in remote order, fetch detail and
                          upsert product + variants (create/update only)
  4. finalizing:          delete obsolete products, then obsolete variants
                          of the products processed this run
  5. success / partial / error / cancelled

Create-before-delete: nothing is deleted until every create/update of the
run has been committed. A crash during step 4 leaves stale rows behind,
never missing ones.

Each phase is a module-level function over a SyncContext (collaborators)
and a RunState (everything the run has learned so far). Progress writes
are best-effort and never abort the run.
"""
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional

from printsync.models.sync import SyncLog, SyncStatus
from printsync.printful.normalizer import (
    normalize_sync_product,
    normalize_sync_variant,
    remote_id_of,
)
from printsync.store.catalog_store import CatalogStore
from printsync.store.sync_logs import SyncLogRepository
from printsync.sync.progress import (
    FETCH,
    FINALIZE,
    PROCESS,
    PRUNE_PRODUCTS,
    PRUNE_VARIANTS,
    ProgressTracker,
)
from printsync.sync.reconcile import reconcile
from printsync.sync.recovery import DEFAULT_THRESHOLD, recover_stuck_runs
from printsync.sync.state import ItemResult, RunState, SyncStats

logger = logging.getLogger(__name__)


class CatalogFetchError(RuntimeError):
    """The remote catalog listing failed; nothing was written."""


class SyncCancelled(Exception):
    """Raised inside a run when its SyncLog has been flagged cancelled."""


@dataclass
class SyncContext:
    """Collaborators of one run."""

    client: Any  # PrintfulClient or anything with the same coroutines
    engine: Any
    store: CatalogStore
    logs: SyncLogRepository
    tracker: ProgressTracker = field(default_factory=ProgressTracker)
    stuck_threshold: timedelta = DEFAULT_THRESHOLD
    operation: str = "full_sync"


@dataclass
class SyncResult:
    log_id: int
    status: str
    stats: SyncStats
    warnings: List[str] = field(default_factory=list)
    error_message: Optional[str] = None
    duration_ms: Optional[int] = None
    cancelled_stuck_ids: List[int] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status in (SyncStatus.SUCCESS.value, SyncStatus.PARTIAL.value)


def build_context(client, engine, **kwargs) -> SyncContext:
    return SyncContext(
        client=client,
        engine=engine,
        store=kwargs.pop("store", None) or CatalogStore(engine),
        logs=kwargs.pop("logs", None) or SyncLogRepository(engine),
        **kwargs,
    )


# ─── Entry point ──────────────────────────────────────────────────────────────

async def run_sync(ctx: SyncContext, existing_log_id: Optional[int] = None) -> SyncResult:
    """
    Run one full catalog sync.

    Args:
        ctx: Collaborators (client, store, log repository, tracker).
        existing_log_id: A SyncLog pre-created by the caller (e.g. an HTTP
            trigger that returns the id immediately). When None, a new log
            is created after stuck-run recovery.

    Returns:
        SyncResult mirroring the final SyncLog.

    Raises:
        SyncAlreadyRunningError: a new log was needed but another run is active.
        SyncLogNotFoundError: `existing_log_id` does not exist.
    """
    stuck: Optional[List[int]] = None
    if existing_log_id is None:
        stuck = _recover(ctx)
        log = ctx.logs.create(ctx.operation, current_step="Initializing catalog sync")
    else:
        log = ctx.logs.require(existing_log_id)

    state = RunState(log_id=log.id, started_at=log.started_at)
    ctx.tracker.start(state)
    logger.info("Catalog sync started (log %s)", state.log_id)

    final_log: Optional[SyncLog] = None
    try:
        if stuck is None:
            stuck = _recover(ctx, exclude_ids=[state.log_id])
        state.cancelled_stuck_ids = stuck

        summaries = await fetch_phase(ctx, state)
        await process_phase(ctx, state, summaries)
        prune_products_phase(ctx, state)
        prune_variants_phase(ctx, state)
        final_log = finalize(ctx, state)

    except SyncCancelled:
        logger.warning(
            "Catalog sync %s cancelled after %d of %d products",
            state.log_id, state.items_done, state.total_products,
        )
        final_log = publish(ctx, state, ctx.tracker.complete(state, SyncStatus.CANCELLED.value))

    except Exception as exc:
        message = str(exc) or exc.__class__.__name__
        logger.exception("Catalog sync %s failed: %s", state.log_id, message)
        if state.deletions_started:
            logger.error(
                "Failure happened while pruning; every remote product was already "
                "committed locally, only the removal of obsolete rows is incomplete"
            )
        final_log = publish(
            ctx, state, ctx.tracker.complete(state, SyncStatus.ERROR.value, message)
        )

    result = _result(ctx, state, final_log)
    _log_summary(result)
    return result


def _recover(ctx: SyncContext, exclude_ids=()) -> List[int]:
    return recover_stuck_runs(ctx.engine, ctx.stuck_threshold, exclude_ids=exclude_ids)


# ─── Phases ───────────────────────────────────────────────────────────────────

async def fetch_phase(ctx: SyncContext, state: RunState) -> List[Dict[str, Any]]:
    """Fetch every remote product summary. Any failure here is fatal."""
    check_cancelled(ctx, state)
    publish(ctx, state, ctx.tracker.enter_phase(
        state, FETCH, "Fetching products from Printful",
        status=SyncStatus.FETCHING_PRODUCTS.value,
    ))

    try:
        summaries = await ctx.client.fetch_all_products()
    except Exception as exc:
        raise CatalogFetchError(f"Failed to fetch remote catalog: {exc}") from exc

    state.remote_ids = []
    for summary in summaries:
        try:
            state.remote_ids.append(remote_id_of(summary))
        except KeyError:
            continue

    publish(ctx, state, ctx.tracker.initialize(state, len(summaries)))

    plan = reconcile(state.remote_ids, ctx.store.get_all_products())
    logger.info(
        "Remote catalog: %d products (%d new, %d existing, %d obsolete locally)",
        len(summaries), len(plan.to_create), len(plan.to_update), len(plan.to_delete),
    )
    return summaries


async def process_phase(ctx: SyncContext, state: RunState,
                        summaries: List[Dict[str, Any]]) -> None:
    """Create/update every remote product in order. Never deletes."""
    publish(ctx, state, ctx.tracker.enter_phase(
        state, PROCESS, f"Processing {len(summaries)} products",
        status=SyncStatus.PROCESSING_PRODUCTS.value,
    ))

    for index, summary in enumerate(summaries):
        check_cancelled(ctx, state)
        name = summary.get("name") or f"#{summary.get('id')}"
        publish(ctx, state, ctx.tracker.start_item(state, index, name))

        try:
            result = await process_item(ctx, summary)
        except Exception as exc:
            message = f"Failed to process product {name} ({summary.get('id')}): {exc}"
            logger.warning(message)
            publish(ctx, state, ctx.tracker.fail_item(state, message))
            continue

        state.remote_variant_ids[result.remote_id] = result.variant_remote_ids
        publish(ctx, state, ctx.tracker.complete_item(state, result))
        logger.info(
            "Processed %s (%s, %d variants)",
            name, "created" if result.created else "updated", result.variants_processed,
        )


async def process_item(ctx: SyncContext, summary: Dict[str, Any]) -> ItemResult:
    """Fetch one product's detail and upsert it with its variants."""
    remote_id = remote_id_of(summary)
    detail = await ctx.client.get_product(remote_id)

    product_fields = normalize_sync_product(detail.product or summary)
    variant_fields = [normalize_sync_variant(v) for v in detail.variants]
    variant_ids = [v["remote_id"] for v in variant_fields]

    existed = ctx.store.get_product_by_remote_id(product_fields["remote_id"]) is not None
    product = ctx.store.upsert_product(product_fields)

    plan = reconcile(variant_ids, ctx.store.get_variants(product.id))
    ctx.store.upsert_variants(product.id, variant_fields)

    return ItemResult(
        remote_id=product.remote_id,
        created=not existed,
        variants_created=len(plan.to_create),
        variants_updated=len(plan.to_update),
        variant_remote_ids=variant_ids,
    )


def prune_products_phase(ctx: SyncContext, state: RunState) -> None:
    """Delete local products whose remote id was absent from this run's fetch."""
    check_cancelled(ctx, state)
    publish(ctx, state, ctx.tracker.enter_phase(
        state, PRUNE_PRODUCTS, "Removing obsolete products",
        status=SyncStatus.FINALIZING.value,
    ))

    plan = reconcile(state.remote_ids, ctx.store.get_all_products())
    state.deletions_started = True
    for product_id in plan.to_delete:
        state.stats.variants_deleted += ctx.store.delete_product(product_id)
        state.stats.products_deleted += 1
        logger.info("Deleted obsolete product %s", product_id)

    publish(ctx, state, state.counters())


def prune_variants_phase(ctx: SyncContext, state: RunState) -> None:
    """Delete variants missing from the just-fetched list of their product."""
    publish(ctx, state, ctx.tracker.enter_phase(
        state, PRUNE_VARIANTS, "Removing obsolete variants",
    ))

    state.deletions_started = True
    for remote_id, variant_ids in state.remote_variant_ids.items():
        product = ctx.store.get_product_by_remote_id(remote_id)
        if product is None:
            continue
        removed = ctx.store.delete_obsolete_variants(product.id, variant_ids)
        if removed:
            state.stats.variants_deleted += removed
            logger.info("Deleted %d obsolete variants of product %s", removed, remote_id)

    publish(ctx, state, state.counters())


def finalize(ctx: SyncContext, state: RunState) -> Optional[SyncLog]:
    publish(ctx, state, ctx.tracker.enter_phase(state, FINALIZE, "Finalizing"))
    status = SyncStatus.PARTIAL.value if state.warnings else SyncStatus.SUCCESS.value
    return publish(ctx, state, ctx.tracker.complete(state, status))


# ─── Log persistence ─────────────────────────────────────────────────────────

def check_cancelled(ctx: SyncContext, state: RunState) -> None:
    """Raise SyncCancelled if the run's log was flagged cancelled out-of-band."""
    try:
        status = ctx.logs.get_status(state.log_id)
    except Exception:
        logger.warning(
            "Could not read status of sync log %s; continuing", state.log_id, exc_info=True
        )
        return
    if status == SyncStatus.CANCELLED.value:
        raise SyncCancelled()


def publish(ctx: SyncContext, state: RunState, update: Dict[str, Any]) -> Optional[SyncLog]:
    """
    Persist a SyncLog update. Never raises.

    On failure a minimal update (status + step) is tried once; if that
    fails too the run carries on without it.
    """
    try:
        return ctx.logs.update(state.log_id, **update)
    except Exception:
        logger.exception("Failed to update sync progress for log %s", state.log_id)

    fallback = {
        "status": update.get("status", state.status),
        "current_step": update.get("current_step") or "Processing (progress update failed)",
    }
    try:
        return ctx.logs.update(state.log_id, **fallback)
    except Exception:
        logger.error(
            "Fallback progress update failed for sync log %s", state.log_id, exc_info=True
        )
        return None


def _result(ctx: SyncContext, state: RunState, final_log: Optional[SyncLog]) -> SyncResult:
    status = final_log.status if final_log is not None else state.status
    error_message = final_log.error_message if final_log is not None else state.error_message
    return SyncResult(
        log_id=state.log_id,
        status=status,
        stats=state.stats,
        warnings=list(state.warnings),
        error_message=error_message,
        duration_ms=ctx.tracker.elapsed_ms(state),
        cancelled_stuck_ids=list(state.cancelled_stuck_ids),
    )


def _log_summary(result: SyncResult) -> None:
    s = result.stats
    logger.info(
        "Catalog sync %s finished: %s in %.1fs | products %d created, %d updated, "
        "%d deleted | variants %d created, %d updated, %d deleted | %d warnings",
        result.log_id, result.status, (result.duration_ms or 0) / 1000,
        s.products_created, s.products_updated, s.products_deleted,
        s.variants_created, s.variants_updated, s.variants_deleted,
        len(result.warnings),
    )
    for warning in result.warnings:
        logger.warning("  %s", warning)


# ─── Service facade ──────────────────────────────────────────────────────────

class CatalogSyncService:
    """Runs catalog syncs for one Printful client against one database."""

    def __init__(self, client, engine, *, stuck_threshold: timedelta = DEFAULT_THRESHOLD,
                 operation: str = "full_sync", **kwargs):
        """
        Args:
            client: PrintfulClient instance (or AsyncMock in tests).
            engine: SQLAlchemy engine (SQLModel create_engine result).
            stuck_threshold: Age after which a non-terminal log is cancelled.
            operation: Label stored on new SyncLogs.
            **kwargs: Optional `store`, `logs` or `tracker` overrides.
        """
        self.client = client
        self.engine = engine
        self.stuck_threshold = stuck_threshold
        self.operation = operation
        self._overrides = kwargs

    def context(self) -> SyncContext:
        return build_context(
            self.client,
            self.engine,
            stuck_threshold=self.stuck_threshold,
            operation=self.operation,
            **dict(self._overrides),
        )

    async def run(self, existing_log_id: Optional[int] = None) -> SyncResult:
        return await run_sync(self.context(), existing_log_id)
