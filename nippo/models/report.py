"""
Nippo Report Service
Report domain models.

Models:
    - Report: the daily report and its status state machine.
    - Approval: one row per resolved approver per submission round.
    - Comment: user / system / ai comments attached to a report.
"""

from datetime import UTC, datetime
from enum import Enum

from nippo.models import db
from nippo.models.auth import enum_values
from nippo.models.base import OrgModel
from nippo.models.soft_delete import SoftDeleteMixin
from nippo.services.concurrency import next_version


def _utcnow():
    return datetime.now(UTC)


def _iso(value):
    return value.isoformat() if value else None


# ── Enumerations ─────────────────────────────────────────────────────────────

class ReportStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class CommentType(str, Enum):
    USER = "user"
    SYSTEM = "system"
    AI = "ai"


# Statuses in which the author may still edit content or delete the report.
EDITABLE_STATUSES = frozenset({ReportStatus.DRAFT, ReportStatus.REJECTED})

# Status changes that may be requested through update_report. Approve and
# reject have their own operations; nothing leaves APPROVED.
UPDATE_TRANSITIONS: dict[ReportStatus, frozenset[ReportStatus]] = {
    ReportStatus.DRAFT: frozenset({ReportStatus.SUBMITTED}),
    ReportStatus.REJECTED: frozenset({ReportStatus.DRAFT, ReportStatus.SUBMITTED}),
    ReportStatus.SUBMITTED: frozenset(),
    ReportStatus.APPROVED: frozenset(),
}


# ═════════════════════════════════════════════════════════════════════════════
# REPORT
# ═════════════════════════════════════════════════════════════════════════════

class Report(SoftDeleteMixin, OrgModel):
    """
    A daily report.

    ``version`` is the optimistic-lock token and is exposed to clients as
    ``updated_at``. It is bumped by the mapper on every UPDATE of the row.
    """

    __tablename__ = "reports"

    id = db.Column(db.Integer, primary_key=True)
    author_id = db.Column(
        db.Integer, db.ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    report_date = db.Column(db.String(10), nullable=False, comment="YYYY-MM-DD")
    title = db.Column(db.String(200), nullable=False)
    content = db.Column(db.Text, nullable=False)
    status = db.Column(
        db.Enum(ReportStatus, native_enum=False, length=20, values_callable=enum_values),
        nullable=False,
        default=ReportStatus.DRAFT,
    )
    working_hours = db.Column(
        db.JSON, nullable=True,
        comment="{start_hour, start_minute, end_hour, end_minute}",
    )
    report_metadata = db.Column("metadata", db.JSON, nullable=False, default=dict)

    submitted_at = db.Column(db.DateTime(timezone=True))
    approved_at = db.Column(db.DateTime(timezone=True))
    rejected_at = db.Column(db.DateTime(timezone=True))
    rejection_reason = db.Column(db.String(500))
    last_decided_at = db.Column(db.DateTime(timezone=True))
    submission_round = db.Column(db.Integer, nullable=False, default=0)

    version = db.Column(db.BigInteger, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        OrgModel.org_composite_index("reports", "status", "report_date"),
        OrgModel.org_composite_index("reports", "author_id"),
        # One live report per author per day; soft-deleted rows are exempt.
        db.Index(
            "uq_reports_author_date_active", "author_id", "report_date",
            unique=True,
            sqlite_where=db.text("is_deleted = 0"),
            postgresql_where=db.text("is_deleted = false"),
        ),
    )

    __mapper_args__ = {
        "version_id_col": version,
        "version_id_generator": next_version,
    }

    @property
    def is_editable(self) -> bool:
        return self.status in EDITABLE_STATUSES

    def to_dict(self):
        return {
            "id": self.id,
            "org_id": self.org_id,
            "author_id": self.author_id,
            "report_date": self.report_date,
            "title": self.title,
            "content": self.content,
            "status": self.status.value,
            "working_hours": self.working_hours,
            "metadata": self.report_metadata or {},
            "submitted_at": _iso(self.submitted_at),
            "approved_at": _iso(self.approved_at),
            "rejected_at": _iso(self.rejected_at),
            "rejection_reason": self.rejection_reason,
            "last_decided_at": _iso(self.last_decided_at),
            "submission_round": self.submission_round,
            "is_deleted": self.is_deleted,
            "created_at": _iso(self.created_at),
            "updated_at": self.version,
        }

    def __repr__(self):
        return f"<Report {self.id}: {self.report_date} {self.status} v{self.version}>"


# ═════════════════════════════════════════════════════════════════════════════
# APPROVAL
# ═════════════════════════════════════════════════════════════════════════════

class Approval(db.Model):
    """
    One approver's decision for one submission round.

    Carries its own version column so two managers deciding in parallel
    only contend on their own rows.
    """

    __tablename__ = "approvals"
    __table_args__ = (
        db.UniqueConstraint("report_id", "round", "manager_id", name="uq_approval_round_manager"),
        db.Index("ix_approvals_manager_status", "manager_id", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    report_id = db.Column(
        db.Integer, db.ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    manager_id = db.Column(
        db.Integer, db.ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False,
    )
    round = db.Column(db.Integer, nullable=False, default=1)
    status = db.Column(
        db.Enum(ApprovalStatus, native_enum=False, length=20, values_callable=enum_values),
        nullable=False,
        default=ApprovalStatus.PENDING,
    )
    comment = db.Column(db.String(1000))
    approved_at = db.Column(db.DateTime(timezone=True))
    decided_at = db.Column(db.DateTime(timezone=True))
    version = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    __mapper_args__ = {"version_id_col": version}

    def to_dict(self):
        return {
            "id": self.id,
            "report_id": self.report_id,
            "manager_id": self.manager_id,
            "round": self.round,
            "status": self.status.value,
            "comment": self.comment,
            "approved_at": _iso(self.approved_at),
            "decided_at": _iso(self.decided_at),
            "version": self.version,
            "created_at": _iso(self.created_at),
        }


# ═════════════════════════════════════════════════════════════════════════════
# COMMENT
# ═════════════════════════════════════════════════════════════════════════════

class Comment(db.Model):
    """User, system or AI comment. System and AI comments have no author."""

    __tablename__ = "comments"
    __table_args__ = (
        db.Index("ix_comments_report_type", "report_id", "type"),
    )

    id = db.Column(db.Integer, primary_key=True)
    report_id = db.Column(
        db.Integer, db.ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    author_id = db.Column(
        db.Integer, db.ForeignKey("user_profiles.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    type = db.Column(
        db.Enum(CommentType, native_enum=False, length=10, values_callable=enum_values),
        nullable=False,
        default=CommentType.USER,
    )
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True))

    def to_dict(self):
        return {
            "id": self.id,
            "report_id": self.report_id,
            "author_id": self.author_id,
            "type": self.type.value,
            "content": self.content,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
