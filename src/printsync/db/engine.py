"""SQLModel engine singleton and session dependency."""
from typing import Generator

from sqlmodel import Session, SQLModel, create_engine

from printsync.config import get_settings

_engine = None


def make_engine(database_url: str):
    """Create an engine and bring its schema up to date."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False  # sync runs off the request thread
    engine = create_engine(database_url, connect_args=connect_args)
    # Import all models so metadata is populated before create_all
    from printsync.models.catalog import Product, Variant  # noqa
    from printsync.models.sync import SyncLog  # noqa
    SQLModel.metadata.create_all(engine)
    from printsync.db.migrations import run_migrations
    run_migrations(engine)
    return engine


def get_engine():
    """Return the module-level engine, creating it on first call."""
    global _engine
    if _engine is None:
        _engine = make_engine(get_settings().database_url)
    return _engine


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a DB session."""
    with Session(get_engine()) as session:
        yield session
