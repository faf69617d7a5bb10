"""
Approval Flow Resolver and rule administration.

Resolution precedence for a (project, applicant) pair:
    1. a specific rule naming the applicant  → exactly that approver
    2. otherwise every generic rule          → all of their approvers
    3. otherwise                             → nobody

Rule administration is admin-only and audited.
"""

import logging

from sqlalchemy import select

from nippo.core.exceptions import ValidationError
from nippo.models.auth import Role, UserProfile
from nippo.models.project import ApprovalFlowRule, Project
from nippo.services import audit_events as ev
from nippo.services.auth_guard import require_role

logger = logging.getLogger(__name__)


def _active(profiles):
    return [p for p in profiles if p is not None and p.is_active]


def find_approvers(store, project_id: int, applicant_id: int) -> list[UserProfile]:
    """Return the approvers configured for *applicant_id* on *project_id*."""
    specific = store.specific_rule(project_id, applicant_id)
    if specific is not None:
        return _active(store.profiles_by_ids([specific.approver_id]))

    approver_ids = []
    for rule in store.generic_rules(project_id):
        if rule.approver_id not in approver_ids:
            approver_ids.append(rule.approver_id)
    if not approver_ids:
        return []

    by_id = {p.id: p for p in store.profiles_by_ids(approver_ids)}
    return _active(by_id.get(i) for i in approver_ids)


def resolve_report_approvers(store, report) -> list[UserProfile]:
    """Union of approvers over every project the report has work items on.

    The author is never their own approver.
    """
    project_ids = []
    for item in store.work_items_for(report.id):
        if item.project_id not in project_ids:
            project_ids.append(item.project_id)

    approvers: list[UserProfile] = []
    seen = set()
    for project_id in project_ids:
        for profile in find_approvers(store, project_id, report.author_id):
            if profile.id == report.author_id or profile.id in seen:
                continue
            seen.add(profile.id)
            approvers.append(profile)
    return approvers


# ── Rule administration ──────────────────────────────────────────────────────

def list_rules(store, actor, project_id: int) -> list[ApprovalFlowRule]:
    require_role(actor, Role.USER, actor.org_id)
    project = store.get_scoped(Project, project_id, org_id=actor.org_id)
    return store.scalars(
        select(ApprovalFlowRule)
        .where(ApprovalFlowRule.project_id == project.id)
        .order_by(ApprovalFlowRule.applicant_id.is_(None), ApprovalFlowRule.id)
    )


def set_rule(store, actor, project_id: int, approver_id: int,
             applicant_id: int | None = None, approval_level: int | None = None) -> ApprovalFlowRule:
    """Create or replace a routing rule.

    Specific rules are unique per (project, applicant); generic rules are
    unique per (project, approver).
    """
    require_role(actor, Role.ADMIN, actor.org_id)
    project = store.get_scoped(Project, project_id, org_id=actor.org_id)
    approver = store.get_scoped(UserProfile, approver_id, org_id=actor.org_id)
    if not Role(approver.role).at_least(Role.MANAGER):
        raise ValidationError(
            "Approver must be a manager or admin",
            details={"approver_id": "role below manager"},
        )
    if applicant_id is not None:
        store.get_scoped(UserProfile, applicant_id, org_id=actor.org_id)
        if applicant_id == approver_id:
            raise ValidationError(
                "An applicant cannot approve their own reports",
                details={"approver_id": "same as applicant"},
            )

    if applicant_id is not None:
        rule = store.specific_rule(project.id, applicant_id)
    else:
        rule = next((r for r in store.generic_rules(project.id) if r.approver_id == approver_id), None)

    created = rule is None
    if created:
        rule = store.add(ApprovalFlowRule(
            org_id=actor.org_id,
            project_id=project.id,
            applicant_id=applicant_id,
        ))
    rule.approver_id = approver_id
    rule.approval_level = approval_level
    store.flush()

    store.record_event(actor.id, actor.org_id, ev.ApprovalFlowSet(
        rule_id=rule.id,
        project_id=project.id,
        approver_id=approver_id,
        applicant_id=applicant_id,
        created=created,
    ))
    logger.info(
        "Approval flow %s: project=%s approver=%s applicant=%s",
        "created" if created else "updated", project.id, approver_id, applicant_id,
        extra={"org_id": actor.org_id, "actor_id": actor.id},
    )
    return rule


def remove_rule(store, actor, rule_id: int) -> None:
    require_role(actor, Role.ADMIN, actor.org_id)
    rule = store.get_scoped(ApprovalFlowRule, rule_id, org_id=actor.org_id)
    project_id = rule.project_id
    store.delete(rule)
    store.flush()
    store.record_event(actor.id, actor.org_id, ev.ApprovalFlowRemoved(rule_id=rule_id, project_id=project_id))
    logger.info("Approval flow %s removed from project %s", rule_id, project_id,
                extra={"org_id": actor.org_id, "actor_id": actor.id})
