"""
Audit log and comment editing tests.

Audit rows are append-only: the ORM refuses to update or delete them, and
every successful mutation leaves exactly one row behind.
"""

import pytest

from nippo.core.exceptions import AuthorizationError, ImmutableRecordError, NotFoundError, ValidationError
from nippo.models.audit import AuditLog, write_audit
from nippo.models.report import Comment, CommentType
from nippo.services import comment_service
from nippo.services import report_lifecycle as lc
from nippo.services.audit_events import ReportDeleted

from tests.factories import actor_of, make_org, make_user


class TestWriteAudit:
    def test_unknown_action_is_rejected(self, session, org):
        with pytest.raises(ValueError):
            write_audit(session, action="report_teleported", org_id=org.id, actor_id=None)

    def test_row_is_written(self, session, org, author):
        log = write_audit(session, action="report_created", org_id=org.id, actor_id=author.id,
                          payload={"report_id": 1})
        session.commit()
        assert log.id is not None
        assert log.to_dict()["payload"] == {"report_id": 1}

    def test_event_payload_carries_fields(self, store, session, org, author):
        store.record_event(author.id, org.id, ReportDeleted(report_id=7, status="draft"))
        session.commit()
        log = session.query(AuditLog).one()
        assert log.action == "report_deleted"
        assert log.payload == {"report_id": 7, "status": "draft"}


class TestImmutability:
    def _log(self, session, org):
        log = write_audit(session, action="report_created", org_id=org.id, actor_id=None)
        session.commit()
        return log

    def test_update_is_refused(self, session, org):
        log = self._log(session, org)
        log.action = "report_deleted"
        with pytest.raises(ImmutableRecordError):
            session.flush()
        session.rollback()

    def test_delete_is_refused(self, session, org):
        log = self._log(session, org)
        session.delete(log)
        with pytest.raises(ImmutableRecordError):
            session.flush()
        session.rollback()


class TestMutationsAreAudited:
    def test_one_row_per_mutation(self, store, session, author, manager):
        actor = actor_of(author)
        with store.transaction():
            report = lc.create_report(store, actor, "2024-05-01", "Daily", "Content")
        with store.transaction():
            lc.update_report(store, actor, report.id, report.version, {"status": "submitted"})
        with store.transaction():
            lc.approve_report(store, actor_of(manager), report.id)

        actions = [row.action for row in session.query(AuditLog).order_by(AuditLog.id)]
        assert actions == ["report_created", "report_updated", "report_approved"]

    def test_failed_mutation_leaves_no_row(self, store, session, author):
        actor = actor_of(author)
        with pytest.raises(ValidationError):
            with store.transaction():
                lc.create_report(store, actor, "not-a-date", "Daily", "Content")
        assert session.query(AuditLog).count() == 0


# ── Comment editing ──────────────────────────────────────────────────────────


@pytest.fixture()
def comment(store, author, manager):
    with store.transaction():
        report = lc.create_report(store, actor_of(author), "2024-05-01", "Daily", "Content")
    with store.transaction():
        return lc.add_comment(store, actor_of(manager), report.id, "First thoughts")


class TestCommentEditing:
    def test_author_edits(self, store, session, manager, comment):
        with store.transaction():
            updated = comment_service.update_comment(store, actor_of(manager), comment.id, " Revised ")
        assert updated.content == "Revised"
        assert session.query(AuditLog).filter_by(action="comment_updated").count() == 1

    def test_someone_else_cannot_edit(self, store, admin, comment):
        with pytest.raises(AuthorizationError):
            comment_service.update_comment(store, actor_of(admin), comment.id, "Overwrite")

    def test_admin_may_delete(self, store, session, admin, comment):
        comment_id = comment.id
        with store.transaction():
            comment_service.delete_comment(store, actor_of(admin), comment_id)
        assert session.get(Comment, comment_id) is None

    def test_plain_user_cannot_delete_others(self, store, author, comment):
        with pytest.raises(AuthorizationError):
            comment_service.delete_comment(store, actor_of(author), comment.id)

    def test_system_comments_are_append_only(self, store, session, author, manager):
        with store.transaction():
            report = lc.create_report(store, actor_of(author), "2024-05-02", "Daily", "Content")
        with store.transaction():
            lc.update_report(store, actor_of(author), report.id, report.version, {"status": "submitted"})
        system = session.query(Comment).filter_by(report_id=report.id, type=CommentType.SYSTEM).one()
        with pytest.raises(ValidationError):
            comment_service.delete_comment(store, actor_of(manager), system.id)

    def test_other_org_cannot_reach_comment(self, store, comment):
        outsider = make_user(make_org("Far away"), "admin")
        with pytest.raises(NotFoundError):
            comment_service.delete_comment(store, actor_of(outsider), comment.id)
