"""Shared test fixtures."""
from pathlib import Path
from typing import Generator

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Import all models so SQLModel.metadata knows about them
from printsync.models.catalog import Product, Variant  # noqa: F401
from printsync.models.sync import SyncLog  # noqa: F401

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    """Provides a DB session connected to in-memory SQLite."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="seeded_product")
def seeded_product_fixture(test_session: Session) -> Product:
    """A persisted Product with two variants."""
    product = Product(remote_id="301", name="Classic Tee", tags=["tee"])
    test_session.add(product)
    test_session.commit()
    test_session.refresh(product)
    for remote_id, size in (("4001", "S"), ("4002", "M")):
        test_session.add(Variant(
            product_id=product.id,
            remote_id=remote_id,
            name=f"Classic Tee / {size}",
            retail_price="24.00",
            currency="USD",
            size=size,
        ))
    test_session.commit()
    test_session.refresh(product)
    return product
