"""Saving a report and its work items as one unit."""

import pytest

from nippo.core.exceptions import ConflictError, NotFoundError, ValidationError
from nippo.models.report import Approval, Report, ReportStatus
from nippo.models.work_item import WorkItem
from nippo.services import report_lifecycle as lc
from nippo.services.report_save_service import save_report_with_work_items
from nippo.services.work_item_service import create_work_item

from tests.factories import actor_of, make_org, make_project, make_rule


REPORT = {"report_date": "2024-05-01", "title": "Daily", "content": "Worked on things."}


def _item(project, category, minutes=60, **extra):
    item = {
        "project_id": project.id,
        "work_category_id": category.id,
        "description": "Build",
        "duration_minutes": minutes,
    }
    item.update(extra)
    return item


def _save(store, profile, report_data=REPORT, work_items=(), **kwargs):
    with store.transaction():
        return save_report_with_work_items(store, actor_of(profile), dict(report_data), list(work_items), **kwargs)


class TestCreate:
    def test_new_draft_with_items(self, store, author, project, category):
        report = _save(store, author, work_items=[_item(project, category), _item(project, category, 30)])
        assert report.status is ReportStatus.DRAFT
        assert sorted(i.duration_minutes for i in store.work_items_for(report.id)) == [30, 60]

    def test_submit_routes_from_the_saved_items(self, store, session, author, manager, project, category):
        make_rule(project, manager)
        report = _save(store, author, work_items=[_item(project, category)], status="submitted")
        assert report.status is ReportStatus.SUBMITTED
        assert [a.manager_id for a in session.query(Approval).filter_by(report_id=report.id)] == [manager.id]

    def test_bad_item_rolls_back_everything(self, store, session, author, project, category):
        with pytest.raises(ValidationError):
            _save(store, author, work_items=[_item(project, category), _item(project, category, 0)])
        assert session.query(Report).count() == 0
        assert session.query(WorkItem).count() == 0


class TestUpdate:
    def _draft(self, store, author, project, category):
        report = _save(store, author, work_items=[_item(project, category)])
        return report, store.work_items_for(report.id)[0]

    def test_reconciles_items(self, store, author, project, category):
        report, kept = self._draft(store, author, project, category)
        with store.transaction():
            dropped = create_work_item(store, actor_of(author), report.id, project.id, category.id, "Old", 15)
        dropped_id = dropped.id

        report = _save(
            store, author,
            {"title": "Revised"},
            [
                {"id": kept.id, "duration_minutes": 120, "version": kept.version},
                {"id": dropped_id, "deleted": True},
                _item(project, category, 45),
            ],
            report_id=report.id, expected_version=report.version,
        )
        assert report.title == "Revised"
        items = store.work_items_for(report.id)
        assert sorted(i.duration_minutes for i in items) == [45, 120]
        assert dropped_id not in [i.id for i in items]

    def test_version_is_required(self, store, author, project, category):
        report, _ = self._draft(store, author, project, category)
        with pytest.raises(ValidationError):
            _save(store, author, {"title": "Blind"}, report_id=report.id)

    def test_stale_version_leaves_items_untouched(self, store, author, project, category):
        report, kept = self._draft(store, author, project, category)
        stale = report.version
        with store.transaction():
            lc.update_report(store, actor_of(author), report.id, stale, {"title": "Elsewhere"})

        with pytest.raises(ConflictError):
            _save(store, author, {"title": "Mine"}, [{"id": kept.id, "duration_minutes": 5}],
                  report_id=report.id, expected_version=stale)
        assert store.work_items_for(report.id)[0].duration_minutes == 60

    def test_item_of_another_report(self, store, author, project, category):
        report, _ = self._draft(store, author, project, category)
        other = _save(store, author, {**REPORT, "report_date": "2024-05-02"}, [_item(project, category)])
        foreign_item = store.work_items_for(other.id)[0]
        with pytest.raises(NotFoundError):
            _save(store, author, {}, [{"id": foreign_item.id, "deleted": True}],
                  report_id=report.id, expected_version=report.version)

    def test_rejected_report_reworked_and_resubmitted(self, store, author, manager, project, category):
        make_rule(project, manager)
        report = _save(store, author, work_items=[_item(project, category)], status="submitted")
        with store.transaction():
            report = lc.reject_report(store, actor_of(manager), report.id, "Add the afternoon")

        report = _save(store, author, {"content": "Now complete."}, [_item(project, category, 240)],
                       report_id=report.id, expected_version=report.version, status="submitted")
        assert report.status is ReportStatus.SUBMITTED
        assert report.submission_round == 2
        assert len(store.work_items_for(report.id)) == 2


class TestValidation:
    @pytest.mark.parametrize("status", ["approved", "rejected", "bogus"])
    def test_only_draft_or_submitted(self, store, author, status):
        with pytest.raises(ValidationError):
            _save(store, author, status=status)

    def test_unknown_report_field(self, store, author):
        with pytest.raises(ValidationError):
            _save(store, author, {**REPORT, "author_id": 1})

    def test_delete_needs_an_id(self, store, author):
        with pytest.raises(ValidationError):
            _save(store, author, work_items=[{"deleted": True}])

    def test_project_of_other_org(self, store, session, author):
        foreign = make_project(make_org("Foreign"), "Theirs")
        with pytest.raises(NotFoundError):
            _save(store, author, work_items=[_item(foreign, foreign.categories[0])])
        assert session.query(Report).filter_by(author_id=author.id).count() == 0
