"""
Save a report together with its work items in one transaction.

The editor sends the whole form at once: the report fields, the list of
line items (new, changed or flagged for deletion) and the status the user
asked for. Everything goes through the same lifecycle and sub-ledger
functions as the single-entity endpoints, so every step is authorized,
validated and audited on its own; the caller's ``store.transaction()``
makes the whole save succeed or fail as one.

Order matters: report fields first, then the line items, then the status
change. Submitting last means approvers are routed from the final set of
items, and items are never touched after the report is locked.
"""

import logging

from nippo.core.exceptions import NotFoundError, ValidationError
from nippo.models.report import ReportStatus
from nippo.services import report_lifecycle as lifecycle
from nippo.services import work_item_service

logger = logging.getLogger(__name__)

REPORT_FIELDS = frozenset({"report_date", "title", "content", "working_hours", "metadata"})
ITEM_FIELDS = frozenset({"project_id", "work_category_id", "description", "duration_minutes"})
SAVE_STATUSES = frozenset({ReportStatus.DRAFT, ReportStatus.SUBMITTED})


def _parse_save_status(status):
    if status is None:
        return None
    try:
        target = ReportStatus(status)
    except ValueError:
        target = None
    if target not in SAVE_STATUSES:
        raise ValidationError("status must be draft or submitted", details={"status": status})
    return target


def _check_items(work_items):
    if not isinstance(work_items, list) or not all(isinstance(i, dict) for i in work_items):
        raise ValidationError("work_items must be a list of objects", details={"work_items": "invalid"})
    for index, item in enumerate(work_items):
        unknown = set(item) - ITEM_FIELDS - {"id", "version", "deleted"}
        if unknown:
            raise ValidationError(
                f"Unknown work item fields: {', '.join(sorted(unknown))}",
                details={f"work_items[{index}]": sorted(unknown)},
            )
        if item.get("deleted") and item.get("id") is None:
            raise ValidationError("Only saved work items can be deleted", details={f"work_items[{index}]": "no id"})


def _apply_items(store, actor, report, work_items):
    for item in work_items:
        item_id = item.get("id")
        if item_id is not None:
            existing = store.get_work_item(item_id, actor.org_id)
            if existing.report_id != report.id:
                raise NotFoundError(resource="WorkItem", resource_id=item_id)
            if item.get("deleted"):
                work_item_service.delete_work_item(store, actor, item_id)
            else:
                work_item_service.update_work_item(
                    store, actor, item_id,
                    {k: v for k, v in item.items() if k in ITEM_FIELDS},
                    expected_version=item.get("version"),
                )
        else:
            work_item_service.create_work_item(
                store, actor, report.id,
                project_id=item.get("project_id"),
                work_category_id=item.get("work_category_id"),
                description=item.get("description"),
                duration_minutes=item.get("duration_minutes"),
            )


def save_report_with_work_items(store, actor, report_data, work_items, report_id=None,
                                expected_version=None, status=None):
    """Create or update a report and reconcile its work items.

    Args:
        report_data: report fields (``report_date``, ``title``, ``content``,
            ``working_hours``, ``metadata``).
        work_items: dicts with the item fields; ``id`` targets a saved item,
            ``deleted: true`` removes it, no ``id`` adds a new one.
        report_id: the report to update; ``None`` creates a new draft.
        expected_version: required when *report_id* is given.
        status: ``"draft"`` or ``"submitted"``; ``None`` keeps the status.

    Returns the saved ``Report``.
    """
    if not isinstance(report_data, dict):
        raise ValidationError("report must be an object", details={"report": "not an object"})
    unknown = set(report_data) - REPORT_FIELDS
    if unknown:
        raise ValidationError(
            f"Unknown fields: {', '.join(sorted(unknown))}",
            details={k: "unknown field" for k in sorted(unknown)},
        )
    _check_items(work_items)
    target = _parse_save_status(status)

    if report_id is None:
        report = lifecycle.create_report(
            store, actor,
            report_date=report_data.get("report_date"),
            title=report_data.get("title"),
            content=report_data.get("content"),
            working_hours=report_data.get("working_hours"),
            metadata=report_data.get("metadata"),
        )
    else:
        report = lifecycle.update_report(store, actor, report_id, expected_version, dict(report_data))

    _apply_items(store, actor, report, work_items)

    if target is not None and target is not report.status:
        report = lifecycle.update_report(store, actor, report.id, report.version, {"status": target.value})

    logger.info(
        "Report %s saved with %d work item change(s), status %s", report.id, len(work_items),
        report.status.value,
        extra={"org_id": actor.org_id, "actor_id": actor.id, "report_id": report.id},
    )
    return report
