"""Tests for database migration helpers."""
import pytest
from sqlalchemy import inspect, text
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from printsync.db.engine import make_engine
from printsync.db.migrations import SYNCLOG_COLUMNS, run_migrations
from printsync.models.sync import SyncLog
from printsync.store.sync_logs import SyncAlreadyRunningError, SyncLogRepository


def _memory_engine():
    return create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture(name="migration_engine")
def migration_engine_fixture():
    """In-memory SQLite engine with full schema, for testing migrations."""
    engine = _memory_engine()
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="legacy_engine")
def legacy_engine_fixture():
    """A synclog table as it looked before live progress and the run lock."""
    engine = _memory_engine()
    with engine.connect() as conn:
        conn.execute(text(
            "CREATE TABLE synclog ("
            " id INTEGER PRIMARY KEY,"
            " operation VARCHAR NOT NULL DEFAULT 'full_sync',"
            " status VARCHAR NOT NULL,"
            " products_processed INTEGER NOT NULL DEFAULT 0,"
            " products_created INTEGER NOT NULL DEFAULT 0,"
            " products_updated INTEGER NOT NULL DEFAULT 0,"
            " products_deleted INTEGER NOT NULL DEFAULT 0,"
            " variants_processed INTEGER NOT NULL DEFAULT 0,"
            " variants_created INTEGER NOT NULL DEFAULT 0,"
            " variants_updated INTEGER NOT NULL DEFAULT 0,"
            " variants_deleted INTEGER NOT NULL DEFAULT 0,"
            " error_message VARCHAR,"
            " started_at TIMESTAMP NOT NULL,"
            " completed_at TIMESTAMP,"
            " duration_ms INTEGER)"
        ))
        conn.execute(text(
            "INSERT INTO synclog (status, started_at) VALUES ('running', '2025-06-01 03:00:00')"
        ))
        conn.execute(text(
            "INSERT INTO synclog (status, started_at) VALUES ('success', '2025-05-31 03:00:00')"
        ))
        conn.commit()
    yield engine
    engine.dispose()


class TestRunMigrations:
    def test_run_migrations_does_not_raise(self, migration_engine):
        """Migration should complete without errors on a fresh DB."""
        run_migrations(migration_engine)

    def test_run_migrations_is_idempotent(self, migration_engine):
        """Running migrations twice must not raise (columns already exist)."""
        run_migrations(migration_engine)
        run_migrations(migration_engine)

    def test_legacy_table_gets_progress_columns(self, legacy_engine):
        run_migrations(legacy_engine)
        columns = {c["name"] for c in inspect(legacy_engine).get_columns("synclog")}
        for column, _ in SYNCLOG_COLUMNS:
            assert column in columns

    def test_legacy_running_status_renamed(self, legacy_engine):
        run_migrations(legacy_engine)
        with legacy_engine.connect() as conn:
            statuses = [
                row[0] for row in conn.execute(text("SELECT status FROM synclog ORDER BY id"))
            ]
        assert statuses == ["processing_products", "success"]

    def test_legacy_warnings_backfilled(self, legacy_engine):
        run_migrations(legacy_engine)
        with legacy_engine.connect() as conn:
            warnings = [row[0] for row in conn.execute(text("SELECT warnings FROM synclog"))]
        assert warnings == ["[]", "[]"]

    def test_legacy_progress_derived_from_status(self, legacy_engine):
        run_migrations(legacy_engine)
        with legacy_engine.connect() as conn:
            rows = conn.execute(text(
                "SELECT current_step, progress FROM synclog ORDER BY id"
            )).all()
        assert [tuple(row) for row in rows] == [
            ("Processing...", 50),
            ("Sync completed successfully", 100),
        ]

    def test_legacy_last_updated_from_timestamps(self, legacy_engine):
        run_migrations(legacy_engine)
        with legacy_engine.connect() as conn:
            values = [
                str(row[0])
                for row in conn.execute(text("SELECT last_updated FROM synclog ORDER BY id"))
            ]
        assert values[0].startswith("2025-06-01 03:00:00")
        assert values[1].startswith("2025-05-31 03:00:00")

    def test_progress_backfill_leaves_current_rows_alone(self, migration_engine):
        with Session(migration_engine) as s:
            s.add(SyncLog(status="error", current_step="Failed on product 3", progress=42))
            s.commit()

        run_migrations(migration_engine)

        with Session(migration_engine) as s:
            log = s.get(SyncLog, 1)
            assert log.current_step == "Failed on product 3"
            assert log.progress == 42

    def test_legacy_migration_is_idempotent(self, legacy_engine):
        run_migrations(legacy_engine)
        run_migrations(legacy_engine)

    def test_active_slot_unique_after_migration(self, legacy_engine):
        run_migrations(legacy_engine)
        indexes = inspect(legacy_engine).get_indexes("synclog")
        slot_index = next(i for i in indexes if i["name"] == "ix_synclog_active_slot")
        assert slot_index["unique"]


class TestMakeEngine:
    def test_fresh_database_is_usable(self, tmp_path):
        engine = make_engine(f"sqlite:///{tmp_path / 'catalog.db'}")
        repo = SyncLogRepository(engine)
        log = repo.create()
        with pytest.raises(SyncAlreadyRunningError):
            repo.create()
        with Session(engine) as s:
            assert s.get(SyncLog, log.id).status == "queued"
        engine.dispose()
