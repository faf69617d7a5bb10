"""
Nippo Report Service
Audit domain model.

Models:
    - AuditLog: immutable, append-only audit trail for every mutation.
"""

from datetime import UTC, datetime

from sqlalchemy import event

from nippo.core.exceptions import ImmutableRecordError
from nippo.models import db

# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ACTIONS = {
    # Report lifecycle
    "report_created",
    "report_updated",
    "report_approved",
    "report_rejected",
    "report_deleted",
    "report_restored",
    # Comments
    "comment_added",
    "comment_updated",
    "comment_deleted",
    # Work items
    "work_item_created",
    "work_item_updated",
    "work_item_deleted",
    # Master data and routing
    "project_created",
    "work_category_created",
    "approval_flow_set",
    "approval_flow_removed",
    # Users
    "profile_provisioned",
    "role_changed",
    # Failures
    "mutation_failed",
}


class AuditLog(db.Model):
    """
    Immutable audit trail.

    One row per successful mutation. ``payload`` carries the event-specific
    fields (changed fields, old/new status, rejection reason, ...).
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_org_ts", "org_id", "created_at"),
        db.Index("idx_audit_actor", "actor_id"),
        db.Index("idx_audit_action", "action"),
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    actor_id = db.Column(
        db.Integer,
        db.ForeignKey("user_profiles.id", ondelete="SET NULL"),
        nullable=True,
        comment="NULL for system entries",
    )
    action = db.Column(
        db.String(60), nullable=False,
        comment="report_created | report_approved | comment_added | …",
    )
    payload = db.Column(db.JSON, nullable=False, default=dict)

    # Timestamp (immutable)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "actor_id": self.actor_id,
            "action": self.action,
            "payload": self.payload or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} by {self.actor_id}>"


@event.listens_for(AuditLog, "before_update")
def _forbid_audit_update(mapper, connection, target):
    raise ImmutableRecordError("AuditLog", target.id)


@event.listens_for(AuditLog, "before_delete")
def _forbid_audit_delete(mapper, connection, target):
    raise ImmutableRecordError("AuditLog", target.id)


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    session,
    *,
    action: str,
    org_id: int | None,
    actor_id: int | None,
    payload: dict | None = None,
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control.

    Returns the (flushed) AuditLog instance.
    """
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action: {action}")

    log = AuditLog(
        org_id=org_id,
        actor_id=actor_id,
        action=action,
        payload=payload or {},
    )
    session.add(log)
    session.flush()
    return log
