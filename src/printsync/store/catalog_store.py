"""
CatalogStore: local Product/Variant persistence used by the sync.

Every public method opens its own Session and commits before returning, so
each call is one transaction. Nothing spans a whole sync run; the
orchestrator relies on call ordering (all upserts before any delete), not
on a long transaction.

Upserts never delete. Pruning happens only through delete_product() and
delete_obsolete_variants(), which the orchestrator calls after every
create/update of the run has been committed.
"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlmodel import Session, select

from printsync.models.catalog import Product, Variant
from printsync.sync.reconcile import reconcile


class CatalogStore:
    """SQLModel-backed local catalog keyed by remote id."""

    def __init__(self, engine):
        """
        Args:
            engine: SQLAlchemy engine (SQLModel create_engine result).
        """
        self.engine = engine

    def get_all_products(self) -> List[Product]:
        with Session(self.engine) as s:
            return list(s.exec(select(Product).order_by(Product.id)).all())

    def get_product_by_remote_id(self, remote_id: str) -> Optional[Product]:
        with Session(self.engine) as s:
            return s.exec(
                select(Product).where(Product.remote_id == str(remote_id))
            ).first()

    def get_variants(self, product_id: int) -> List[Variant]:
        with Session(self.engine) as s:
            return list(
                s.exec(
                    select(Variant)
                    .where(Variant.product_id == product_id)
                    .order_by(Variant.id)
                ).all()
            )

    def upsert_product(self, fields: Dict[str, Any]) -> Product:
        """Create or update a Product from normalized fields. Returns the row."""
        now = datetime.utcnow()
        with Session(self.engine) as s:
            existing = s.exec(
                select(Product).where(Product.remote_id == fields["remote_id"])
            ).first()

            if existing:
                for k, v in fields.items():
                    setattr(existing, k, v)
                existing.synced_at = now
                existing.updated_at = now
                s.add(existing)
                s.commit()
                s.refresh(existing)
                return existing

            product = Product(**fields, synced_at=now, created_at=now, updated_at=now)
            s.add(product)
            s.commit()
            s.refresh(product)
            return product

    def upsert_variants(
        self, product_id: int, variant_fields: Iterable[Dict[str, Any]]
    ) -> List[Variant]:
        """
        Create or update variants of one product. Never deletes.

        Args:
            product_id: Local id of the owning Product.
            variant_fields: Normalized variant dicts (see normalizer).

        Returns:
            The upserted Variant rows in input order.
        """
        now = datetime.utcnow()
        with Session(self.engine) as s:
            existing = {
                v.remote_id: v
                for v in s.exec(
                    select(Variant).where(Variant.product_id == product_id)
                ).all()
            }
            rows = []
            for fields in variant_fields:
                variant = existing.get(fields["remote_id"])
                if variant is not None:
                    for k, v in fields.items():
                        setattr(variant, k, v)
                    variant.synced_at = now
                    variant.updated_at = now
                else:
                    variant = Variant(
                        product_id=product_id,
                        **fields,
                        synced_at=now,
                        created_at=now,
                        updated_at=now,
                    )
                    existing[variant.remote_id] = variant
                s.add(variant)
                rows.append(variant)
            s.commit()
            for variant in rows:
                s.refresh(variant)
            return rows

    def delete_product(self, product_id: int) -> int:
        """Delete a product and its variants in one transaction.

        Returns:
            Number of variants deleted with it.
        """
        with Session(self.engine) as s:
            variants = s.exec(
                select(Variant).where(Variant.product_id == product_id)
            ).all()
            for variant in variants:
                s.delete(variant)
            s.flush()
            product = s.get(Product, product_id)
            if product is not None:
                s.delete(product)
            s.commit()
            return len(variants)

    def delete_obsolete_variants(
        self, product_id: int, current_remote_variant_ids: Iterable[str]
    ) -> int:
        """
        Delete variants of a product whose remote id is not in the current set.

        Returns:
            Number of variants deleted.
        """
        with Session(self.engine) as s:
            local = s.exec(select(Variant).where(Variant.product_id == product_id)).all()
            plan = reconcile(current_remote_variant_ids, local)
            obsolete = set(plan.to_delete)
            for variant in local:
                if variant.id in obsolete:
                    s.delete(variant)
            s.commit()
            return len(obsolete)
