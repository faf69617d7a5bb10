"""
Work Item Sub-ledger.

Line items nested under a report. They have no approval semantics of their
own: every call authorizes against the parent report's author and org, and
project / category references must stay inside that org. Items can only
change while the report is a draft or rejected; approvers are routed from
them at submit time.
"""

import logging

from nippo.core.exceptions import ValidationError
from nippo.models.project import Project, WorkCategory
from nippo.models.report import EDITABLE_STATUSES
from nippo.models.work_item import MAX_DURATION_MINUTES, WorkItem
from nippo.services import audit_events as ev
from nippo.services.auth_guard import require_org_member, require_ownership_or_manager
from nippo.services.concurrency import check_version, flush_versioned

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({"project_id", "work_category_id", "description", "duration_minutes"})


def _load_parent(store, actor, report_id):
    report = store.get_report(report_id, actor.org_id, include_deleted=True)
    require_ownership_or_manager(actor, report.author_id, report.org_id)
    if report.is_deleted:
        raise ValidationError("Work items of a deleted report cannot be changed", details={"report": "deleted"})
    if report.status not in EDITABLE_STATUSES:
        raise ValidationError(
            f"Work items of a {report.status.value} report cannot be changed",
            details={"report": report.status.value},
        )
    return report


def _validate_refs(store, org_id, project_id, work_category_id):
    for field, value in (("project_id", project_id), ("work_category_id", work_category_id)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"{field} must be an integer", details={field: "required"})
    project = store.get_scoped(Project, project_id, org_id=org_id)
    store.get_scoped(WorkCategory, work_category_id, project_id=project.id)


def _validate_description(value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("description is required", details={"description": "required"})
    return value.strip()


def _validate_duration(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= MAX_DURATION_MINUTES:
        raise ValidationError(
            f"duration_minutes must be an integer between 1 and {MAX_DURATION_MINUTES}",
            details={"duration_minutes": "out of range"},
        )
    return value


def list_work_items(store, actor, report_id) -> list[WorkItem]:
    report = store.get_report(report_id, actor.org_id)
    require_org_member(actor, report.org_id)
    return store.work_items_for(report.id)


def create_work_item(store, actor, report_id, project_id, work_category_id,
                     description, duration_minutes) -> WorkItem:
    report = _load_parent(store, actor, report_id)
    _validate_refs(store, report.org_id, project_id, work_category_id)
    item = store.add(WorkItem(
        report_id=report.id,
        project_id=project_id,
        work_category_id=work_category_id,
        description=_validate_description(description),
        duration_minutes=_validate_duration(duration_minutes),
    ))
    store.flush()
    store.record_event(actor.id, actor.org_id, ev.WorkItemCreated(
        report_id=report.id,
        work_item_id=item.id,
        project_id=project_id,
        duration_minutes=item.duration_minutes,
    ))
    logger.info("Work item %s added to report %s", item.id, report.id,
                extra={"org_id": actor.org_id, "actor_id": actor.id, "report_id": report.id})
    return item


def update_work_item(store, actor, work_item_id, updates, expected_version=None) -> WorkItem:
    if not isinstance(updates, dict):
        raise ValidationError("updates must be an object")
    unknown = set(updates) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(
            f"Unknown fields: {', '.join(sorted(unknown))}",
            details={k: "unknown field" for k in sorted(unknown)},
        )

    item = store.get_work_item(work_item_id, actor.org_id)
    report = _load_parent(store, actor, item.report_id)
    check_version(item.version, expected_version, resource="WorkItem", resource_id=item.id)

    project_id = updates.get("project_id", item.project_id)
    category_id = updates.get("work_category_id", item.work_category_id)
    if "project_id" in updates or "work_category_id" in updates:
        _validate_refs(store, report.org_id, project_id, category_id)

    values = {"project_id": project_id, "work_category_id": category_id}
    if "description" in updates:
        values["description"] = _validate_description(updates["description"])
    if "duration_minutes" in updates:
        values["duration_minutes"] = _validate_duration(updates["duration_minutes"])

    changed = [k for k, v in values.items() if getattr(item, k) != v]
    for key, value in values.items():
        setattr(item, key, value)

    flush_versioned(store, item)
    store.record_event(actor.id, actor.org_id, ev.WorkItemUpdated(
        report_id=report.id, work_item_id=item.id, changed_fields=changed,
    ))
    return item


def delete_work_item(store, actor, work_item_id) -> None:
    item = store.get_work_item(work_item_id, actor.org_id)
    report = _load_parent(store, actor, item.report_id)
    store.delete(item)
    store.flush()
    store.record_event(actor.id, actor.org_id, ev.WorkItemDeleted(report_id=report.id, work_item_id=work_item_id))
    logger.info("Work item %s deleted from report %s", work_item_id, report.id,
                extra={"org_id": actor.org_id, "actor_id": actor.id, "report_id": report.id})
