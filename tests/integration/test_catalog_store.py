"""Integration tests for CatalogStore against in-memory SQLite."""
import pytest
from sqlmodel import Session, select

from printsync.models.catalog import Product, Variant
from printsync.store.catalog_store import CatalogStore


@pytest.fixture
def store(engine):
    return CatalogStore(engine)


def _variant(remote_id: str, price: str = "10.00") -> dict:
    return {"remote_id": remote_id, "name": f"V{remote_id}", "retail_price": price, "currency": "USD"}


class TestProducts:
    def test_upsert_creates_then_updates_same_row(self, store):
        created = store.upsert_product({"remote_id": "301", "name": "Tee"})
        updated = store.upsert_product({"remote_id": "301", "name": "Tee v2"})
        assert updated.id == created.id
        assert updated.name == "Tee v2"
        assert len(store.get_all_products()) == 1

    def test_lookup_by_remote_id(self, store):
        store.upsert_product({"remote_id": "301", "name": "Tee"})
        assert store.get_product_by_remote_id("301").name == "Tee"
        assert store.get_product_by_remote_id(301).name == "Tee"
        assert store.get_product_by_remote_id("999") is None

    def test_update_keeps_local_is_active(self, store, engine):
        product = store.upsert_product({"remote_id": "301", "name": "Tee"})
        with Session(engine) as s:
            row = s.get(Product, product.id)
            row.is_active = False
            s.add(row)
            s.commit()
        store.upsert_product({"remote_id": "301", "name": "Tee"})
        assert store.get_product_by_remote_id("301").is_active is False

    def test_delete_product_removes_variants(self, store, seeded_product, engine):
        deleted = store.delete_product(seeded_product.id)
        assert deleted == 2
        with Session(engine) as s:
            assert s.exec(select(Product)).all() == []
            assert s.exec(select(Variant)).all() == []

    def test_delete_missing_product_is_noop(self, store):
        assert store.delete_product(12345) == 0


class TestVariants:
    def test_upsert_never_deletes(self, store, seeded_product):
        store.upsert_variants(seeded_product.id, [_variant("4003")])
        remote_ids = sorted(v.remote_id for v in store.get_variants(seeded_product.id))
        assert remote_ids == ["4001", "4002", "4003"]

    def test_upsert_updates_in_place(self, store, seeded_product):
        before = {v.remote_id: v.id for v in store.get_variants(seeded_product.id)}
        rows = store.upsert_variants(seeded_product.id, [_variant("4001", "30.00")])
        assert rows[0].id == before["4001"]
        assert rows[0].retail_price == "30.00"

    def test_delete_obsolete_variants(self, store, seeded_product):
        removed = store.delete_obsolete_variants(seeded_product.id, ["4001", "4999"])
        assert removed == 1
        assert [v.remote_id for v in store.get_variants(seeded_product.id)] == ["4001"]

    def test_delete_obsolete_scoped_to_product(self, store, seeded_product):
        other = store.upsert_product({"remote_id": "302", "name": "Mug"})
        store.upsert_variants(other.id, [_variant("4001")])
        store.delete_obsolete_variants(other.id, [])
        assert len(store.get_variants(seeded_product.id)) == 2
        assert store.get_variants(other.id) == []
