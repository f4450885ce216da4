"""Tests for SyncLogRepository: single-writer slot, terminal guard, cancel."""
from datetime import datetime, timedelta

import pytest
from sqlmodel import Session

from printsync.models.sync import ACTIVE_SLOT, SyncLog
from printsync.store.sync_logs import (
    SyncAlreadyRunningError,
    SyncLogNotFoundError,
    SyncLogRepository,
)


@pytest.fixture
def repo(engine):
    return SyncLogRepository(engine)


class TestCreate:
    def test_new_log_is_queued_and_holds_slot(self, repo):
        log = repo.create("manual_sync")
        assert log.id is not None
        assert log.status == "queued"
        assert log.progress == 0
        assert log.operation == "manual_sync"
        assert log.active_slot == ACTIVE_SLOT
        assert log.warnings == []

    def test_second_create_while_active_raises(self, repo):
        first = repo.create()
        with pytest.raises(SyncAlreadyRunningError) as exc_info:
            repo.create()
        assert exc_info.value.active_log_id == first.id
        assert str(first.id) in str(exc_info.value)

    def test_create_after_terminal_succeeds(self, repo):
        first = repo.create()
        repo.update(first.id, status="success")
        second = repo.create()
        assert second.id != first.id

    def test_create_after_cancel_succeeds(self, repo):
        first = repo.create()
        assert repo.cancel(first.id)
        assert repo.create().id != first.id


class TestUpdate:
    def test_updates_fields_and_last_updated(self, repo):
        log = repo.create()
        before = log.last_updated
        updated = repo.update(log.id, progress=40, current_step="Processing", total_products=3)
        assert updated.progress == 40
        assert updated.current_step == "Processing"
        assert updated.total_products == 3
        assert updated.last_updated >= before

    def test_terminal_status_releases_slot(self, repo):
        log = repo.create()
        updated = repo.update(log.id, status="partial")
        assert updated.active_slot is None

    def test_status_never_leaves_terminal(self, repo):
        log = repo.create()
        repo.cancel(log.id)
        updated = repo.update(log.id, status="processing_products", progress=60)
        assert updated.status == "cancelled"
        # other fields still land
        assert updated.progress == 60
        assert updated.active_slot is None

    def test_warnings_are_copied(self, repo):
        log = repo.create()
        warnings = ["first"]
        repo.update(log.id, warnings=warnings)
        warnings.append("second")
        assert repo.get(log.id).warnings == ["first"]

    def test_missing_log_raises(self, repo):
        with pytest.raises(SyncLogNotFoundError):
            repo.update(999, progress=1)


class TestCancel:
    def test_cancel_active(self, repo):
        log = repo.create()
        assert repo.cancel(log.id, reason="Stopped by admin") is True
        cancelled = repo.get(log.id)
        assert cancelled.status == "cancelled"
        assert cancelled.error_message == "Stopped by admin"
        assert cancelled.completed_at is not None
        assert cancelled.duration_ms is not None
        assert cancelled.active_slot is None

    def test_cancel_finished_is_noop(self, repo):
        log = repo.create()
        repo.update(log.id, status="success")
        assert repo.cancel(log.id) is False
        assert repo.get_status(log.id) == "success"

    def test_cancel_missing_raises(self, repo):
        with pytest.raises(SyncLogNotFoundError):
            repo.cancel(42)


class TestQueries:
    def test_require_missing_raises(self, repo):
        with pytest.raises(SyncLogNotFoundError):
            repo.require(5)

    def test_get_status_missing_is_none(self, repo):
        assert repo.get_status(5) is None

    def test_list_recent_newest_first(self, repo, engine):
        base = datetime(2026, 1, 1, 3, 0)
        with Session(engine) as s:
            for i, status in enumerate(["success", "error", "partial"]):
                s.add(SyncLog(
                    status=status,
                    started_at=base + timedelta(days=i),
                    active_slot=None,
                ))
            s.commit()
        logs = repo.list_recent(limit=2)
        assert [log.status for log in logs] == ["partial", "error"]
        assert repo.latest().status == "partial"

    def test_list_active_and_exclusion(self, repo):
        done = repo.create()
        repo.update(done.id, status="success")
        running = repo.create()
        assert [log.id for log in repo.list_active()] == [running.id]
        assert [log.id for log in repo.list_recent(include_active=False)] == [done.id]

    def test_latest_none_when_empty(self, repo):
        assert repo.latest() is None
