"""
Report Lifecycle Engine.

Owns the report state machine and composes the guard, the concurrency
controller, the approval flow resolver and the audit log:

    draft     --submit-->          submitted
    submitted --approve (all)-->   approved
    submitted --reject(reason)-->  rejected
    rejected  --edit-->            draft
    rejected  --resubmit-->        submitted
    draft | rejected --delete-->   (soft-deleted)
    (soft-deleted) --restore-->    previous status   [admin]

Every function takes an explicit ``Store`` and expects to run inside
``store.transaction()``; the caller owns commit and rollback.

Lookups happen before any attribute is mutated so that no autoflush can
push a half-applied write outside ``flush_versioned``.
"""

import logging
import re
from datetime import UTC, date, datetime

from sqlalchemy.exc import IntegrityError

from nippo.core.exceptions import AuthorizationError, ValidationError
from nippo.models.auth import Role
from nippo.models.report import (
    EDITABLE_STATUSES,
    UPDATE_TRANSITIONS,
    Approval,
    ApprovalStatus,
    Comment,
    CommentType,
    Report,
    ReportStatus,
)
from nippo.services import audit_events as ev
from nippo.services.approval_flow_service import resolve_report_approvers
from nippo.services.auth_guard import require_ownership_or_manager, require_role
from nippo.services.concurrency import check_version, flush_versioned

logger = logging.getLogger(__name__)

TITLE_MAX = 200
CONTENT_MAX = 10000
REASON_MAX = 500
COMMENT_MAX = 1000

PATCHABLE_FIELDS = frozenset({"report_date", "title", "content", "working_hours", "metadata", "status"})
CONTENT_FIELDS = PATCHABLE_FIELDS - {"status"}

MOODS = frozenset({"positive", "neutral", "negative"})
DIFFICULTIES = frozenset({"easy", "medium", "hard"})
METADATA_TEXT_KEYS = frozenset({"location", "template"})
METADATA_LIST_KEYS = frozenset({"tags", "achievements", "challenges", "learnings", "next_action_items"})
METADATA_KEYS = frozenset({"mood", "difficulty"}) | METADATA_TEXT_KEYS | METADATA_LIST_KEYS

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _now():
    return datetime.now(UTC)


# ── Field validation ─────────────────────────────────────────────────────────

def validate_report_date(value) -> str:
    if not isinstance(value, str) or not _DATE_RE.match(value):
        raise ValidationError("report_date must be YYYY-MM-DD", details={"report_date": "invalid format"})
    try:
        date.fromisoformat(value)
    except ValueError:
        raise ValidationError("report_date is not a calendar date", details={"report_date": "invalid date"})
    return value


def clean_text(value, field: str, max_len: int) -> str:
    """Trim *value* and enforce 1..max_len characters."""
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", details={field: "not a string"})
    value = value.strip()
    if not value:
        raise ValidationError(f"{field} is required", details={field: "required"})
    if len(value) > max_len:
        raise ValidationError(
            f"{field} must be at most {max_len} characters",
            details={field: f"max {max_len} characters"},
        )
    return value


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_working_hours(value):
    if value is None:
        return None
    keys = ("start_hour", "start_minute", "end_hour", "end_minute")
    if not isinstance(value, dict) or set(value) != set(keys):
        raise ValidationError(
            "working_hours needs start_hour, start_minute, end_hour and end_minute",
            details={"working_hours": "invalid shape"},
        )
    if not all(_is_int(value[k]) for k in keys):
        raise ValidationError("working_hours values must be integers", details={"working_hours": "not integers"})
    if not (0 <= value["start_hour"] <= 23 and 0 <= value["end_hour"] <= 23):
        raise ValidationError("hours must be within 0-23", details={"working_hours": "hour out of range"})
    if not (0 <= value["start_minute"] <= 59 and 0 <= value["end_minute"] <= 59):
        raise ValidationError("minutes must be within 0-59", details={"working_hours": "minute out of range"})
    start = value["start_hour"] * 60 + value["start_minute"]
    end = value["end_hour"] * 60 + value["end_minute"]
    if end <= start:
        raise ValidationError("working_hours must end after they start", details={"working_hours": "end before start"})
    return {k: value[k] for k in keys}


def merge_metadata(current: dict | None, patch) -> dict:
    """Merge *patch* into *current*. A ``None`` value removes the key."""
    if patch is None:
        return dict(current or {})
    if not isinstance(patch, dict):
        raise ValidationError("metadata must be an object", details={"metadata": "not an object"})
    unknown = set(patch) - METADATA_KEYS
    if unknown:
        raise ValidationError(
            f"Unknown metadata keys: {', '.join(sorted(unknown))}",
            details={"metadata": sorted(unknown)},
        )

    merged = dict(current or {})
    for key, value in patch.items():
        if value is None:
            merged.pop(key, None)
            continue
        if key == "mood" and value not in MOODS:
            raise ValidationError("mood must be positive, neutral or negative", details={"metadata.mood": value})
        if key == "difficulty" and value not in DIFFICULTIES:
            raise ValidationError("difficulty must be easy, medium or hard", details={"metadata.difficulty": value})
        if key in METADATA_TEXT_KEYS and not isinstance(value, str):
            raise ValidationError(f"{key} must be a string", details={f"metadata.{key}": "not a string"})
        if key in METADATA_LIST_KEYS and (
            not isinstance(value, list) or not all(isinstance(v, str) for v in value)
        ):
            raise ValidationError(f"{key} must be a list of strings", details={f"metadata.{key}": "not a list"})
        merged[key] = value
    return merged


def _parse_status(value) -> ReportStatus:
    try:
        return ReportStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown status '{value}'", details={"status": "unknown"})


def _ensure_date_free(store, author_id, report_date, exclude_id=None):
    if store.find_active_report(author_id, report_date, exclude_id=exclude_id) is not None:
        raise ValidationError(
            f"A report for {report_date} already exists",
            details={"report_date": "duplicate"},
        )


def _system_comment(store, report_id, content):
    return store.add(Comment(report_id=report_id, author_id=None, type=CommentType.SYSTEM, content=content))


# ═════════════════════════════════════════════════════════════════════════════
# CREATE / UPDATE
# ═════════════════════════════════════════════════════════════════════════════

def create_report(store, actor, report_date, title, content, working_hours=None, metadata=None) -> Report:
    """Create a draft report authored by *actor*."""
    require_role(actor, Role.USER, actor.org_id)
    report_date = validate_report_date(report_date)
    title = clean_text(title, "title", TITLE_MAX)
    content = clean_text(content, "content", CONTENT_MAX)
    working_hours = validate_working_hours(working_hours)
    metadata = merge_metadata({}, metadata)
    _ensure_date_free(store, actor.id, report_date)

    report = store.add(Report(
        org_id=actor.org_id,
        author_id=actor.id,
        report_date=report_date,
        title=title,
        content=content,
        status=ReportStatus.DRAFT,
        working_hours=working_hours,
        report_metadata=metadata,
        submission_round=0,
    ))
    try:
        store.flush()
    except IntegrityError:
        # Lost the race against a concurrent create for the same date.
        raise ValidationError(
            f"A report for {report_date} already exists",
            details={"report_date": "duplicate"},
        )

    store.record_event(actor.id, actor.org_id, ev.ReportCreated(
        report_id=report.id, report_date=report_date, version=report.version,
    ))
    logger.info("Report %s created for %s", report.id, report_date,
                extra={"org_id": actor.org_id, "actor_id": actor.id, "report_id": report.id})
    return report


def update_report(store, actor, report_id, expected_version, patch) -> Report:
    """Patch a report and optionally move it through an allowed transition.

    Raises:
        NotFoundError: missing, deleted or other-org report.
        AuthorizationError: neither author nor manager+.
        ConflictError: *expected_version* is stale, or a concurrent write won.
        ValidationError: missing version, bad field, forbidden transition or
            non-editable status.
    """
    if expected_version is None:
        raise ValidationError(
            "expected_updated_at is required to update a report",
            details={"expected_updated_at": "required"},
        )
    if not isinstance(patch, dict):
        raise ValidationError("patch must be an object")
    unknown = set(patch) - PATCHABLE_FIELDS
    if unknown:
        raise ValidationError(
            f"Unknown fields: {', '.join(sorted(unknown))}",
            details={k: "unknown field" for k in sorted(unknown)},
        )

    report = store.get_report(report_id, actor.org_id)
    require_ownership_or_manager(actor, report.author_id, report.org_id)
    check_version(report.version, expected_version, resource="Report", resource_id=report.id)

    old_status = report.status
    target = _parse_status(patch["status"]) if "status" in patch else old_status
    if target != old_status and target not in UPDATE_TRANSITIONS[old_status]:
        raise ValidationError(
            f"Cannot move report from {old_status.value} to {target.value}",
            details={"status": f"{old_status.value} -> {target.value} not allowed"},
        )
    if set(patch) & CONTENT_FIELDS and old_status not in EDITABLE_STATUSES:
        raise ValidationError(
            f"Report is {old_status.value} and can no longer be edited",
            details={"status": old_status.value},
        )

    # Validate and resolve everything before touching the entity.
    values = {}
    if "report_date" in patch:
        values["report_date"] = validate_report_date(patch["report_date"])
        if values["report_date"] != report.report_date:
            _ensure_date_free(store, report.author_id, values["report_date"], exclude_id=report.id)
    if "title" in patch:
        values["title"] = clean_text(patch["title"], "title", TITLE_MAX)
    if "content" in patch:
        values["content"] = clean_text(patch["content"], "content", CONTENT_MAX)
    if "working_hours" in patch:
        values["working_hours"] = validate_working_hours(patch["working_hours"])
    if "metadata" in patch:
        values["report_metadata"] = merge_metadata(report.report_metadata, patch["metadata"])

    submitting = target is ReportStatus.SUBMITTED and old_status is not ReportStatus.SUBMITTED
    approvers = resolve_report_approvers(store, report) if submitting else []

    changed = [
        ("metadata" if attr == "report_metadata" else attr)
        for attr, value in values.items()
        if getattr(report, attr) != value
    ]
    for attr, value in values.items():
        setattr(report, attr, value)

    if target != old_status:
        changed.append("status")
        report.status = target
        report.rejection_reason = None
        report.rejected_at = None
    if submitting:
        report.submitted_at = _now()
        report.submission_round = (report.submission_round or 0) + 1
        for approver in approvers:
            store.add(Approval(
                report_id=report.id,
                manager_id=approver.id,
                round=report.submission_round,
                status=ApprovalStatus.PENDING,
            ))
        if approvers:
            _system_comment(store, report.id, f"Report submitted for approval ({len(approvers)} approver(s)).")
        else:
            _system_comment(store, report.id, "Report submitted. No approver is configured for this report.")

    new_version = flush_versioned(store, report)

    if submitting and not approvers:
        logger.warning(
            "Report %s submitted with no resolved approvers", report.id,
            extra={"org_id": report.org_id, "report_id": report.id},
        )
    store.record_event(actor.id, actor.org_id, ev.ReportUpdated(
        report_id=report.id,
        changed_fields=changed,
        old_status=old_status.value,
        new_status=report.status.value,
        version=new_version,
        approver_ids=[a.id for a in approvers],
    ))
    logger.info(
        "Report %s updated (%s) %s -> %s v%s", report.id, ",".join(changed) or "-",
        old_status.value, report.status.value, new_version,
        extra={"org_id": actor.org_id, "actor_id": actor.id, "report_id": report.id},
    )
    return report


# ═════════════════════════════════════════════════════════════════════════════
# APPROVE / REJECT
# ═════════════════════════════════════════════════════════════════════════════

def _load_for_decision(store, actor, report_id) -> Report:
    report = store.get_report(report_id, actor.org_id)
    require_role(actor, Role.MANAGER, report.org_id)
    if actor.id == report.author_id:
        raise AuthorizationError("Authors cannot approve or reject their own reports")
    if report.status is not ReportStatus.SUBMITTED:
        raise ValidationError(
            f"Report is {report.status.value}, not submitted",
            details={"status": report.status.value},
        )
    return report


def _own_pending_row(store, approvals, actor) -> Approval | None:
    """Return the row *actor* decides for the round, or None when the round has no rows.

    An admin who holds no row of their own may decide a pending row whose
    approver has since been deactivated, so the report cannot be stranded.
    """
    if not approvals:
        return None
    mine = next((a for a in approvals if a.manager_id == actor.id), None)
    if mine is None and actor.is_admin:
        pending = [a for a in approvals if a.status is ApprovalStatus.PENDING]
        inactive = {p.id for p in store.profiles_by_ids({a.manager_id for a in pending}) if not p.is_active}
        mine = next((a for a in pending if a.manager_id in inactive), None)
        if mine is not None:
            logger.info(
                "Admin %s deciding approval %s on behalf of inactive approver %s",
                actor.id, mine.id, mine.manager_id,
                extra={"org_id": actor.org_id, "actor_id": actor.id, "report_id": mine.report_id},
            )
    if mine is None:
        raise AuthorizationError("You are not an approver for this report")
    if mine.status is not ApprovalStatus.PENDING:
        raise ValidationError(
            f"You have already {mine.status.value} this report",
            details={"approval": mine.status.value},
        )
    return mine


def approve_report(store, actor, report_id, comment=None) -> Report:
    """Record *actor*'s approval; the report is approved once nobody is pending."""
    report = _load_for_decision(store, actor, report_id)
    if comment is not None:
        comment = comment.strip() if isinstance(comment, str) else comment
        comment = clean_text(comment, "comment", COMMENT_MAX) if comment else None

    approvals = store.approvals_for_round(report.id, report.submission_round)
    mine = _own_pending_row(store, approvals, actor)
    now = _now()

    if mine is None:
        # No approver configured for this round; any manager+ may approve.
        mine = store.add(Approval(
            report_id=report.id,
            manager_id=actor.id,
            round=report.submission_round,
        ))
    mine.status = ApprovalStatus.APPROVED
    mine.approved_at = now
    mine.decided_at = now
    mine.comment = comment

    still_pending = [a for a in approvals if a is not mine and a.status is ApprovalStatus.PENDING]
    fully_approved = not still_pending

    report.last_decided_at = now
    if fully_approved:
        report.status = ReportStatus.APPROVED
        report.approved_at = now
        _system_comment(store, report.id, "Report approved.")
    else:
        total = len(approvals)
        _system_comment(store, report.id, f"Approval recorded ({total - len(still_pending)}/{total}).")
    if comment:
        store.add(Comment(report_id=report.id, author_id=actor.id, type=CommentType.USER, content=comment))

    new_version = flush_versioned(store, report)
    store.record_event(actor.id, actor.org_id, ev.ReportApproved(
        report_id=report.id,
        approval_id=mine.id,
        fully_approved=fully_approved,
        version=new_version,
        comment=comment,
    ))
    logger.info(
        "Report %s approved by %s (fully_approved=%s)", report.id, actor.id, fully_approved,
        extra={"org_id": actor.org_id, "actor_id": actor.id, "report_id": report.id},
    )
    return report


def reject_report(store, actor, report_id, reason) -> Report:
    """Reject the report outright. One rejection is enough."""
    report = _load_for_decision(store, actor, report_id)
    reason = clean_text(reason if reason is not None else "", "reason", REASON_MAX)

    approvals = store.approvals_for_round(report.id, report.submission_round)
    mine = _own_pending_row(store, approvals, actor)
    now = _now()

    if mine is not None:
        mine.status = ApprovalStatus.REJECTED
        mine.decided_at = now
        mine.comment = reason

    report.status = ReportStatus.REJECTED
    report.rejection_reason = reason
    report.rejected_at = now
    report.last_decided_at = now
    _system_comment(store, report.id, f"Report rejected: {reason}")

    new_version = flush_versioned(store, report)
    store.record_event(actor.id, actor.org_id, ev.ReportRejected(
        report_id=report.id,
        approval_id=mine.id if mine is not None else None,
        reason=reason,
        version=new_version,
    ))
    logger.info(
        "Report %s rejected by %s", report.id, actor.id,
        extra={"org_id": actor.org_id, "actor_id": actor.id, "report_id": report.id},
    )
    return report


# ═════════════════════════════════════════════════════════════════════════════
# DELETE / RESTORE
# ═════════════════════════════════════════════════════════════════════════════

def delete_report(store, actor, report_id) -> Report:
    report = store.get_report(report_id, actor.org_id)
    require_ownership_or_manager(actor, report.author_id, report.org_id)
    if report.status not in EDITABLE_STATUSES:
        raise ValidationError(
            f"A {report.status.value} report cannot be deleted",
            details={"status": report.status.value},
        )

    report.soft_delete(actor.id)
    flush_versioned(store, report)
    store.record_event(actor.id, actor.org_id, ev.ReportDeleted(
        report_id=report.id, status=report.status.value,
    ))
    logger.info("Report %s deleted", report.id,
                extra={"org_id": actor.org_id, "actor_id": actor.id, "report_id": report.id})
    return report


def restore_report(store, actor, report_id) -> Report:
    """Undo a soft delete. Admin only."""
    require_role(actor, Role.ADMIN, actor.org_id)
    report = store.get_report(report_id, actor.org_id, include_deleted=True)
    if not report.is_deleted:
        raise ValidationError("Report is not deleted", details={"is_deleted": False})
    _ensure_date_free(store, report.author_id, report.report_date, exclude_id=report.id)

    report.restore()
    try:
        new_version = flush_versioned(store, report)
    except IntegrityError:
        raise ValidationError(
            f"A report for {report.report_date} already exists",
            details={"report_date": "duplicate"},
        )
    store.record_event(actor.id, actor.org_id, ev.ReportRestored(
        report_id=report.id, status=report.status.value, version=new_version,
    ))
    logger.info("Report %s restored", report.id,
                extra={"org_id": actor.org_id, "actor_id": actor.id, "report_id": report.id})
    return report


# ═════════════════════════════════════════════════════════════════════════════
# COMMENTS
# ═════════════════════════════════════════════════════════════════════════════

def add_comment(store, actor, report_id, content) -> Comment:
    """Add a user comment. Any org member who can read the report may comment.

    The report version is not touched.
    """
    require_role(actor, Role.USER, actor.org_id)
    report = store.get_report(report_id, actor.org_id)
    content = clean_text(content, "content", COMMENT_MAX)

    comment = store.add(Comment(
        report_id=report.id,
        author_id=actor.id,
        type=CommentType.USER,
        content=content,
    ))
    store.flush()
    store.record_event(actor.id, actor.org_id, ev.CommentAdded(report_id=report.id, comment_id=comment.id))
    logger.info("Comment %s added to report %s", comment.id, report.id,
                extra={"org_id": actor.org_id, "actor_id": actor.id, "report_id": report.id})
    return comment
