"""
Entity Store.

A thin adapter over a SQLAlchemy session. Services receive a ``Store``
explicitly instead of reaching for ``db.session``; blueprints build one per
request and tests build one over the test session.

Usage:
    store = Store(db.session)
    with store.transaction():
        report = report_lifecycle.create_report(store, actor, ...)
"""

import logging
from contextlib import contextmanager

from sqlalchemy import select

from nippo.core.exceptions import NotFoundError
from nippo.models.audit import write_audit
from nippo.models.auth import Organization, UserProfile
from nippo.models.project import ApprovalFlowRule
from nippo.models.report import Approval, Comment, Report
from nippo.models.work_item import WorkItem
from nippo.services.helpers.scoped_queries import get_scoped, get_scoped_or_none

logger = logging.getLogger(__name__)


class Store:
    def __init__(self, session):
        self.session = session

    # ── Transaction control ──────────────────────────────────────────────

    @contextmanager
    def transaction(self):
        """Commit on success, roll back and re-raise on any exception."""
        try:
            yield self
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def add(self, entity):
        self.session.add(entity)
        return entity

    def delete(self, entity):
        self.session.delete(entity)

    def flush(self):
        self.session.flush()

    def rollback(self):
        self.session.rollback()

    def scalars(self, stmt):
        return self.session.execute(stmt).scalars().all()

    def rows(self, stmt):
        return self.session.execute(stmt).all()

    def scalar(self, stmt):
        return self.session.execute(stmt).scalar()

    # ── Lookups ──────────────────────────────────────────────────────────

    def get_scoped(self, model, pk, **scope):
        return get_scoped(self.session, model, pk, **scope)

    def get_scoped_or_none(self, model, pk, **scope):
        return get_scoped_or_none(self.session, model, pk, **scope)

    def current_version(self, model, pk):
        """Read the committed version straight from the table."""
        return self.session.execute(
            select(model.version).where(model.id == pk)
        ).scalar_one_or_none()

    def get_report(self, report_id, org_id, *, include_deleted=False) -> Report:
        report = self.get_scoped(Report, report_id, org_id=org_id)
        if report.is_deleted and not include_deleted:
            raise NotFoundError(resource="Report", resource_id=report_id)
        return report

    def find_active_report(self, author_id, report_date, *, exclude_id=None):
        stmt = select(Report).where(
            Report.author_id == author_id,
            Report.report_date == report_date,
            Report.is_deleted.is_(False),
        )
        if exclude_id is not None:
            stmt = stmt.where(Report.id != exclude_id)
        return self.session.execute(stmt).scalars().first()

    def get_organization(self, org_id):
        if org_id is None:
            return None
        return self.session.execute(
            select(Organization).where(Organization.id == org_id)
        ).scalar_one_or_none()

    def profile_by_identity(self, identity_ref):
        return self.session.execute(
            select(UserProfile).where(UserProfile.external_identity_ref == identity_ref)
        ).scalar_one_or_none()

    def profiles_by_ids(self, ids):
        if not ids:
            return []
        return self.scalars(select(UserProfile).where(UserProfile.id.in_(list(ids))))

    def approvals_for_round(self, report_id, round_no):
        return self.scalars(
            select(Approval)
            .where(Approval.report_id == report_id, Approval.round == round_no)
            .order_by(Approval.id)
        )

    def specific_rule(self, project_id, applicant_id):
        return self.session.execute(
            select(ApprovalFlowRule).where(
                ApprovalFlowRule.project_id == project_id,
                ApprovalFlowRule.applicant_id == applicant_id,
            )
        ).scalars().first()

    def generic_rules(self, project_id):
        return self.scalars(
            select(ApprovalFlowRule)
            .where(
                ApprovalFlowRule.project_id == project_id,
                ApprovalFlowRule.applicant_id.is_(None),
            )
            .order_by(ApprovalFlowRule.id)
        )

    def work_items_for(self, report_id):
        return self.scalars(
            select(WorkItem).where(WorkItem.report_id == report_id).order_by(WorkItem.id)
        )

    def get_comment(self, comment_id, org_id) -> Comment:
        """Load a comment through its report so the org scope and soft delete apply."""
        comment = self.session.execute(
            select(Comment)
            .join(Report, Report.id == Comment.report_id)
            .where(
                Comment.id == comment_id,
                Report.org_id == org_id,
                Report.is_deleted.is_(False),
            )
        ).scalar_one_or_none()
        if comment is None:
            raise NotFoundError(resource="Comment", resource_id=comment_id)
        return comment

    def get_work_item(self, work_item_id, org_id) -> WorkItem:
        """Load a work item through its report so the org scope applies."""
        item = self.session.execute(
            select(WorkItem)
            .join(Report, Report.id == WorkItem.report_id)
            .where(WorkItem.id == work_item_id, Report.org_id == org_id)
        ).scalar_one_or_none()
        if item is None:
            raise NotFoundError(resource="WorkItem", resource_id=work_item_id)
        return item

    def comments_for(self, report_id):
        return self.scalars(
            select(Comment).where(Comment.report_id == report_id).order_by(Comment.id)
        )

    # ── Audit ────────────────────────────────────────────────────────────

    def record_event(self, actor_id, org_id, event):
        """Append one audit row for *event* inside the current transaction."""
        log = write_audit(
            self.session,
            action=event.action,
            org_id=org_id,
            actor_id=actor_id,
            payload=event.to_payload(),
        )
        logger.debug("audit %s by actor=%s org=%s", event.action, actor_id, org_id)
        return log
