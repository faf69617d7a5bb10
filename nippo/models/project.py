"""
Project master data and approval routing.

Models:
    - Project: org-scoped project that work items are booked against.
    - WorkCategory: category within a project.
    - ApprovalFlowRule: who approves reports touching a project.
"""

from datetime import UTC, datetime

from nippo.models import db
from nippo.models.base import OrgModel


class Project(OrgModel):
    __tablename__ = "projects"
    __table_args__ = (
        db.UniqueConstraint("org_id", "name", name="uq_project_org_name"),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(UTC))

    categories = db.relationship(
        "WorkCategory", backref="project", lazy="select",
        cascade="all, delete-orphan", order_by="WorkCategory.id",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class WorkCategory(db.Model):
    __tablename__ = "work_categories"
    __table_args__ = (
        db.UniqueConstraint("project_id", "name", name="uq_work_category_project_name"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(UTC))

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
        }


class ApprovalFlowRule(OrgModel):
    """
    Approval routing rule.

    A rule with ``applicant_id`` set is *specific* and wins over every
    *generic* rule (``applicant_id`` NULL) of the same project.
    """

    __tablename__ = "approval_flow_rules"
    __table_args__ = (
        db.Index("ix_approval_flow_rules_project_applicant", "project_id", "applicant_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False,
    )
    approver_id = db.Column(
        db.Integer, db.ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False,
    )
    applicant_id = db.Column(
        db.Integer, db.ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=True,
    )
    approval_level = db.Column(db.Integer)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(UTC))

    @property
    def is_specific(self) -> bool:
        return self.applicant_id is not None

    def to_dict(self):
        return {
            "id": self.id,
            "org_id": self.org_id,
            "project_id": self.project_id,
            "approver_id": self.approver_id,
            "applicant_id": self.applicant_id,
            "approval_level": self.approval_level,
            "is_specific": self.is_specific,
        }
