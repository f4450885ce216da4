"""
Printful API response normalizer.

Converts raw dicts from the Printful store-products endpoints into clean
field dicts that map directly onto the Product and Variant columns. No DB
access here; callers (the sync orchestrator) handle persistence.

Printful returns two shapes for the same product:

  GET /store/products list items ("sync product" summaries):
    {"id": 301, "external_id": "...", "name": "...", "variants": 3,
     "synced": 3, "thumbnail_url": "...", "is_ignored": false}

  GET /store/products/{id} detail:
    {"sync_product": {...same as above...},
     "sync_variants": [{"id": 4001, "retail_price": "24.00", ...}, ...]}

Remote ids are numeric in Printful but are stored as text locally so the
same reconciliation code handles products and variants.
"""
from typing import Any, Dict, List, Optional

# availability_status values that mean the variant cannot be ordered
_UNAVAILABLE_STATUSES = {"discontinued", "out_of_stock", "temporary_out_of_stock"}


def remote_id_of(raw: Dict[str, Any]) -> str:
    """Return the Printful id of a product or variant dict as text.

    Raises:
        KeyError: if the dict has no id (a malformed item).
    """
    value = raw["id"]
    if value is None or value == "":
        raise KeyError("id")
    return str(value)


def _str_or_none(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def normalize_sync_product(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Normalize a Printful sync product into Product model fields.

    `is_active` is deliberately absent: visibility is a local decision and a
    sync never overwrites it.

    Args:
        raw: A list item or the `sync_product` part of a detail response.

    Returns:
        Dict with keys matching Product model columns.
    """
    tags = raw.get("tags") or []
    metadata = raw.get("metadata") or {}
    return {
        "remote_id": remote_id_of(raw),
        "external_id": _str_or_none(raw.get("external_id")),
        "name": raw.get("name") or f"Product {raw['id']}",
        "thumbnail_url": raw.get("thumbnail_url") or None,
        "tags": [str(t) for t in tags] if isinstance(tags, list) else [],
        "remote_metadata": metadata if isinstance(metadata, dict) else {},
        "is_ignored": bool(raw.get("is_ignored", False)),
    }


def _normalize_file(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": raw.get("id"),
        "type": raw.get("type") or "default",
        "url": raw.get("url"),
        "preview_url": raw.get("preview_url"),
    }


def _in_stock(raw: Dict[str, Any]) -> bool:
    if "in_stock" in raw:
        return bool(raw["in_stock"])
    status = raw.get("availability_status")
    return status not in _UNAVAILABLE_STATUSES


def normalize_sync_variant(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Normalize a Printful sync variant into Variant model fields.

    `product_id` is not included; the store sets it when upserting.

    Args:
        raw: One entry of `sync_variants` from a detail response.

    Returns:
        Dict with keys matching Variant model columns.
    """
    files: List[Dict[str, Any]] = [
        _normalize_file(f) for f in (raw.get("files") or []) if isinstance(f, dict)
    ]
    options = [o for o in (raw.get("options") or []) if isinstance(o, dict)]
    price = raw.get("retail_price")
    return {
        "remote_id": remote_id_of(raw),
        "external_id": _str_or_none(raw.get("external_id")),
        "name": raw.get("name") or f"Variant {raw['id']}",
        "retail_price": str(price) if price is not None else "0.00",
        "currency": raw.get("currency") or "USD",
        "size": raw.get("size") or None,
        "color": raw.get("color") or None,
        "is_enabled": bool(raw.get("is_enabled", True)),
        "in_stock": _in_stock(raw),
        "is_ignored": bool(raw.get("is_ignored", False)),
        "files": files,
        "options": options,
    }
