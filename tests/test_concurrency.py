"""
Optimistic concurrency tests.

Covers the version generator, the explicit version check and the
compare-and-swap flush that turns a lost race into a ConflictError.
"""

import pytest
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from nippo.core.exceptions import ConflictError
from nippo.models import db
from nippo.models.report import Report
from nippo.models.work_item import WorkItem
from nippo.services import concurrency
from nippo.services import report_lifecycle as lc
from nippo.services import work_item_service as wis
from nippo.services.concurrency import check_version, flush_versioned, next_version

from tests.factories import actor_of


class TestNextVersion:
    def test_insert_uses_clock(self, monkeypatch):
        monkeypatch.setattr(concurrency, "_now_ms", lambda: 1_700_000_000_000)
        assert next_version(None) == 1_700_000_000_000

    def test_strictly_greater_when_clock_behind(self, monkeypatch):
        monkeypatch.setattr(concurrency, "_now_ms", lambda: 100)
        assert next_version(500) == 501

    def test_clock_wins_when_ahead(self, monkeypatch):
        monkeypatch.setattr(concurrency, "_now_ms", lambda: 900)
        assert next_version(500) == 900

    def test_monotonic_over_many_calls(self):
        v = next_version(None)
        for _ in range(50):
            nv = next_version(v)
            assert nv > v
            v = nv


class TestCheckVersion:
    def test_none_expected_skips(self):
        check_version(42, None)

    def test_match_passes(self):
        check_version(42, 42)

    def test_mismatch_raises_with_stored(self):
        with pytest.raises(ConflictError) as exc:
            check_version(42, 41, resource="Report", resource_id=7)
        assert exc.value.stored_version == 42
        assert exc.value.resource_id == 7


class _Entity:
    def __init__(self, entity_id, version):
        self.id = entity_id
        self.version = version


class _FakeStore:
    """Store double whose flush loses the race."""

    def __init__(self, fail=True, stored=99):
        self.fail = fail
        self.stored = stored
        self.rolled_back = False

    def flush(self):
        if self.fail:
            raise StaleDataError("0 rows matched")

    def rollback(self):
        self.rolled_back = True

    def current_version(self, model, pk):
        return self.stored


class TestFlushVersioned:
    def test_returns_new_version(self):
        entity = _Entity(1, 5)
        assert flush_versioned(_FakeStore(fail=False), entity) == 5

    def test_stale_flush_becomes_conflict(self):
        store = _FakeStore(stored=1234)
        with pytest.raises(ConflictError) as exc:
            flush_versioned(store, _Entity(3, 1000))
        assert store.rolled_back
        assert exc.value.stored_version == 1234
        assert exc.value.resource == "_Entity"


class TestCompetingSessions:
    """A second session commits between this session's read and its write."""

    def _report(self, store, author):
        with store.transaction():
            report = lc.create_report(store, actor_of(author), "2024-05-01", "Daily", "Content")
        return store.get_report(report.id, author.org_id)

    def test_report_write_loses_to_committed_rival(self, store, author):
        report = self._report(store, author)
        seen = report.version

        with Session(db.engine) as other:
            rival = other.get(Report, report.id)
            rival.title = "Committed elsewhere"
            other.commit()
            winner = rival.version
        assert winner > seen

        with pytest.raises(ConflictError) as exc:
            with store.transaction():
                lc.update_report(store, actor_of(author), report.id, seen, {"title": "Mine"})
        assert exc.value.stored_version == winner
        assert store.get_report(report.id, author.org_id).title == "Committed elsewhere"

    def test_work_item_write_loses_to_committed_rival(self, store, author, project, category):
        report = self._report(store, author)
        with store.transaction():
            item = wis.create_work_item(store, actor_of(author), report.id, project.id, category.id, "Build", 60)
        item = store.get_work_item(item.id, author.org_id)
        assert item.version == 1

        with Session(db.engine) as other:
            rival = other.get(WorkItem, item.id)
            rival.duration_minutes = 30
            other.commit()

        with pytest.raises(ConflictError) as exc:
            with store.transaction():
                wis.update_work_item(store, actor_of(author), item.id, {"duration_minutes": 90}, expected_version=1)
        assert exc.value.stored_version == 2
