"""
Soft Delete Mixin.

Adds ``is_deleted`` flag, ``deleted_at`` timestamp and ``deleted_by`` actor
columns. Models that include this mixin are marked as deleted rather than
physically removed.

Usage:
    class Report(SoftDeleteMixin, OrgModel):
        ...

    report.soft_delete(actor.id)
    report.restore()
"""

from datetime import UTC, datetime

from nippo.models import db


class SoftDeleteMixin:
    """Mixin that adds soft delete support to any SQLAlchemy model."""

    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, default=None)
    deleted_by = db.Column(db.Integer, nullable=True, default=None)

    def soft_delete(self, actor_id=None):
        """Mark this record as deleted."""
        self.is_deleted = True
        self.deleted_at = datetime.now(UTC)
        self.deleted_by = actor_id

    def restore(self):
        """Restore a soft-deleted record."""
        self.is_deleted = False
        self.deleted_at = None
        self.deleted_by = None
