"""
Remote vs. local reconciliation.

Pure functions, no I/O. The same diff is used at product level (all remote
products vs. all local products) and at variant level (one product's
remote variants vs. its local variants).

Matching is by remote id only. Local primary keys are regenerated
independently of the remote system and are never compared with anything;
they only identify which rows to delete.
"""
from dataclasses import dataclass
from typing import Any, Iterable, NamedTuple, Tuple


class LocalRef(NamedTuple):
    """Minimal view of a persisted row: its local id and its remote id."""

    id: Any
    remote_id: str


@dataclass(frozen=True)
class ReconcilePlan:
    to_create: Tuple[str, ...]  # remote ids with no local row
    to_update: Tuple[str, ...]  # remote ids that already have a local row
    to_delete: Tuple[Any, ...]  # local ids whose remote id is gone

    @property
    def is_empty(self) -> bool:
        return not (self.to_create or self.to_update or self.to_delete)


def reconcile(remote_ids: Iterable[Any], local_items: Iterable[Any]) -> ReconcilePlan:
    """
    Classify remote ids into create/update and local rows into delete.

    Args:
        remote_ids: Remote identifiers from the current fetch. Any iterable;
            duplicates collapse, ids are compared as text.
        local_items: Objects with `id` and `remote_id` attributes
            (Product, Variant or LocalRef).

    Returns:
        ReconcilePlan. `to_create`/`to_update` follow first-seen remote
        order and `to_delete` follows local order, but membership never
        depends on the order of either input.
    """
    local_by_remote = {}
    for item in local_items:
        local_by_remote.setdefault(str(item.remote_id), []).append(item.id)

    seen = set()
    to_create = []
    to_update = []
    for rid in remote_ids:
        key = str(rid)
        if key in seen:
            continue
        seen.add(key)
        if key in local_by_remote:
            to_update.append(key)
        else:
            to_create.append(key)

    to_delete = [
        local_id
        for remote_id, local_ids in local_by_remote.items()
        if remote_id not in seen
        for local_id in local_ids
    ]
    return ReconcilePlan(
        to_create=tuple(to_create),
        to_update=tuple(to_update),
        to_delete=tuple(to_delete),
    )
