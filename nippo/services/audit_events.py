"""
Typed audit events.

Each mutation builds one of these and hands it to ``Store.record_event``;
the event names its own action and renders its JSON payload. Keeping the
shape in one place means an audit row can never carry a free-form dict
that drifts from what the reader side expects.
"""

from dataclasses import asdict, dataclass, field
from typing import ClassVar


@dataclass(frozen=True)
class AuditEvent:
    action: ClassVar[str] = ""

    def to_payload(self) -> dict:
        return asdict(self)


# ── Report lifecycle ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ReportCreated(AuditEvent):
    action: ClassVar[str] = "report_created"
    report_id: int
    report_date: str
    version: int


@dataclass(frozen=True)
class ReportUpdated(AuditEvent):
    action: ClassVar[str] = "report_updated"
    report_id: int
    changed_fields: list[str]
    old_status: str
    new_status: str
    version: int
    approver_ids: list[int] = field(default_factory=list)


@dataclass(frozen=True)
class ReportApproved(AuditEvent):
    action: ClassVar[str] = "report_approved"
    report_id: int
    approval_id: int
    fully_approved: bool
    version: int
    comment: str | None = None


@dataclass(frozen=True)
class ReportRejected(AuditEvent):
    action: ClassVar[str] = "report_rejected"
    report_id: int
    approval_id: int | None
    reason: str
    version: int


@dataclass(frozen=True)
class ReportDeleted(AuditEvent):
    action: ClassVar[str] = "report_deleted"
    report_id: int
    status: str


@dataclass(frozen=True)
class ReportRestored(AuditEvent):
    action: ClassVar[str] = "report_restored"
    report_id: int
    status: str
    version: int


# ── Comments ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CommentAdded(AuditEvent):
    action: ClassVar[str] = "comment_added"
    report_id: int
    comment_id: int


@dataclass(frozen=True)
class CommentUpdated(AuditEvent):
    action: ClassVar[str] = "comment_updated"
    report_id: int
    comment_id: int


@dataclass(frozen=True)
class CommentDeleted(AuditEvent):
    action: ClassVar[str] = "comment_deleted"
    report_id: int
    comment_id: int


# ── Work items ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class WorkItemCreated(AuditEvent):
    action: ClassVar[str] = "work_item_created"
    report_id: int
    work_item_id: int
    project_id: int
    duration_minutes: int


@dataclass(frozen=True)
class WorkItemUpdated(AuditEvent):
    action: ClassVar[str] = "work_item_updated"
    report_id: int
    work_item_id: int
    changed_fields: list[str]


@dataclass(frozen=True)
class WorkItemDeleted(AuditEvent):
    action: ClassVar[str] = "work_item_deleted"
    report_id: int
    work_item_id: int


# ── Master data, routing, users ──────────────────────────────────────────────

@dataclass(frozen=True)
class ProjectCreated(AuditEvent):
    action: ClassVar[str] = "project_created"
    project_id: int
    name: str


@dataclass(frozen=True)
class ProjectUpdated(AuditEvent):
    action: ClassVar[str] = "project_updated"
    project_id: int
    changed_fields: list[str]


@dataclass(frozen=True)
class ProjectDeleted(AuditEvent):
    action: ClassVar[str] = "project_deleted"
    project_id: int
    name: str
    removed_categories: int
    removed_rules: int


@dataclass(frozen=True)
class WorkCategoryCreated(AuditEvent):
    action: ClassVar[str] = "work_category_created"
    project_id: int
    work_category_id: int
    name: str


@dataclass(frozen=True)
class WorkCategoryUpdated(AuditEvent):
    action: ClassVar[str] = "work_category_updated"
    project_id: int
    work_category_id: int
    name: str


@dataclass(frozen=True)
class WorkCategoryDeleted(AuditEvent):
    action: ClassVar[str] = "work_category_deleted"
    project_id: int
    work_category_id: int


@dataclass(frozen=True)
class ApprovalFlowSet(AuditEvent):
    action: ClassVar[str] = "approval_flow_set"
    rule_id: int
    project_id: int
    approver_id: int
    applicant_id: int | None
    created: bool


@dataclass(frozen=True)
class ApprovalFlowRemoved(AuditEvent):
    action: ClassVar[str] = "approval_flow_removed"
    rule_id: int
    project_id: int


@dataclass(frozen=True)
class ProfileProvisioned(AuditEvent):
    action: ClassVar[str] = "profile_provisioned"
    user_id: int
    role: str


@dataclass(frozen=True)
class RoleChanged(AuditEvent):
    action: ClassVar[str] = "role_changed"
    user_id: int
    old_role: str
    new_role: str


@dataclass(frozen=True)
class MutationFailed(AuditEvent):
    action: ClassVar[str] = "mutation_failed"
    endpoint: str | None
    method: str
    error_type: str
    message: str
