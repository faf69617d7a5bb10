"""
Read side for reports, approvals and the audit log.

Nothing here mutates state. Every query is scoped to the actor's org.
"""

import logging
from datetime import UTC, date, datetime, timedelta

from sqlalchemy import func, or_, select

from nippo.core.exceptions import AuthorizationError, ValidationError
from nippo.models.audit import AuditLog
from nippo.models.auth import Role, UserProfile
from nippo.models.report import Approval, ApprovalStatus, Report, ReportStatus
from nippo.services.auth_guard import require_org_member, require_role
from nippo.services.report_lifecycle import validate_report_date

logger = logging.getLogger(__name__)

SORT_FIELDS = {
    "report_date": Report.report_date,
    "created_at": Report.created_at,
    "updated_at": Report.version,
}
MAX_LIMIT = 100
SEARCH_LIMIT = 100
SEARCH_QUERY_MAX = 200
DASHBOARD_DAYS = 30


def get_report_detail(store, actor, report_id) -> dict:
    """Report plus comments, current-round approvals and work items."""
    report = store.get_report(report_id, actor.org_id)
    require_org_member(actor, report.org_id)
    data = report.to_dict()
    data["comments"] = [c.to_dict() for c in store.comments_for(report.id)]
    data["approvals"] = [a.to_dict() for a in store.approvals_for_round(report.id, report.submission_round)]
    data["work_items"] = [w.to_dict() for w in store.work_items_for(report.id)]
    return data


def list_reports(store, actor, status=None, author_id=None, start_date=None, end_date=None,
                 include_deleted=False, sort_by="report_date", sort_order="desc",
                 limit=20, cursor=None) -> dict:
    """List reports of the actor's org.

    Pagination is keyset-by-id: ``cursor`` is the id of the last report of
    the previous page and pages follow id order within the chosen sort.
    """
    require_role(actor, Role.USER, actor.org_id)
    if author_id is not None and author_id != actor.id and not actor.is_manager:
        raise AuthorizationError("Only managers may list other users' reports", required_role=Role.MANAGER.value)
    if include_deleted and not actor.is_manager:
        raise AuthorizationError("Only managers may list deleted reports", required_role=Role.MANAGER.value)
    if sort_by not in SORT_FIELDS:
        raise ValidationError(f"Cannot sort by '{sort_by}'", details={"sort_by": sorted(SORT_FIELDS)})
    if sort_order not in ("asc", "desc"):
        raise ValidationError("sort_order must be asc or desc", details={"sort_order": sort_order})
    limit = max(1, min(int(limit), MAX_LIMIT))

    stmt = select(Report).where(Report.org_id == actor.org_id)
    if not include_deleted:
        stmt = stmt.where(Report.is_deleted.is_(False))
    if status is not None:
        try:
            stmt = stmt.where(Report.status == ReportStatus(status))
        except ValueError:
            raise ValidationError(f"Unknown status '{status}'", details={"status": "unknown"})
    if author_id is not None:
        stmt = stmt.where(Report.author_id == author_id)
    if start_date is not None:
        stmt = stmt.where(Report.report_date >= validate_report_date(start_date))
    if end_date is not None:
        stmt = stmt.where(Report.report_date <= validate_report_date(end_date))

    total_count = store.scalar(select(func.count()).select_from(stmt.subquery()))

    column = SORT_FIELDS[sort_by]
    if sort_order == "desc":
        stmt = stmt.order_by(column.desc(), Report.id.desc())
    else:
        stmt = stmt.order_by(column.asc(), Report.id.asc())

    if cursor is not None:
        last = store.get_scoped_or_none(Report, cursor, org_id=actor.org_id)
        if last is None:
            raise ValidationError("Invalid cursor", details={"cursor": cursor})
        pivot = getattr(last, column.key)
        if sort_order == "desc":
            stmt = stmt.where((column < pivot) | ((column == pivot) & (Report.id < last.id)))
        else:
            stmt = stmt.where((column > pivot) | ((column == pivot) & (Report.id > last.id)))

    rows = store.scalars(stmt.limit(limit + 1))
    has_more = len(rows) > limit
    rows = rows[:limit]
    return {
        "reports": [r.to_dict() for r in rows],
        "has_more": has_more,
        "next_cursor": rows[-1].id if has_more and rows else None,
        "total_count": total_count,
    }


def search_reports(store, actor, query) -> list[dict]:
    """Reports of the actor's org whose title or content contains *query*.

    Matching is case-insensitive LIKE, so it runs the same on SQLite and
    PostgreSQL. Newest report date first, capped at ``SEARCH_LIMIT``.
    """
    require_role(actor, Role.USER, actor.org_id)
    if not isinstance(query, str) or not query.strip():
        return []
    q = f"%{query.strip()[:SEARCH_QUERY_MAX]}%"

    stmt = (
        select(Report, UserProfile)
        .outerjoin(UserProfile, UserProfile.id == Report.author_id)
        .where(
            Report.org_id == actor.org_id,
            Report.is_deleted.is_(False),
            or_(Report.title.ilike(q), Report.content.ilike(q)),
        )
        .order_by(Report.report_date.desc(), Report.id.desc())
        .limit(SEARCH_LIMIT)
    )
    results = []
    for report, author in store.rows(stmt):
        row = report.to_dict()
        row["author"] = (
            {"id": author.id, "display_name": author.display_name, "role": author.role.value}
            if author is not None else None
        )
        results.append(row)
    return results


def dashboard_stats(store, actor, days=DASHBOARD_DAYS, today: date | None = None) -> list[dict]:
    """Per-day submitted / approved counts for the last *days* days.

    Days are report dates, oldest first, with every day present (zeros
    filled). ``submitted`` counts everything that has been sent for
    approval, so an approved report counts in both columns.
    """
    require_role(actor, Role.USER, actor.org_id)
    today = today or datetime.now(UTC).date()
    since = today - timedelta(days=days)

    rows = store.rows(
        select(Report.report_date, Report.status, func.count(Report.id))
        .where(
            Report.org_id == actor.org_id,
            Report.is_deleted.is_(False),
            Report.report_date >= since.isoformat(),
            Report.report_date <= today.isoformat(),
            Report.status.in_([ReportStatus.SUBMITTED, ReportStatus.APPROVED]),
        )
        .group_by(Report.report_date, Report.status)
    )
    by_day = {}
    for report_date, status, count in rows:
        day = by_day.setdefault(report_date, {"submitted": 0, "approved": 0})
        day["submitted"] += count
        if status is ReportStatus.APPROVED:
            day["approved"] += count

    stats = []
    for offset in range(days + 1):
        key = (since + timedelta(days=offset)).isoformat()
        counts = by_day.get(key, {"submitted": 0, "approved": 0})
        stats.append({"date": key, **counts})
    return stats


def list_pending_approvals(store, actor) -> list[dict]:
    """Pending current-round approvals assigned to *actor*."""
    require_role(actor, Role.MANAGER, actor.org_id)
    stmt = (
        select(Approval, Report)
        .join(Report, Report.id == Approval.report_id)
        .where(
            Approval.manager_id == actor.id,
            Approval.status == ApprovalStatus.PENDING,
            Approval.round == Report.submission_round,
            Report.org_id == actor.org_id,
            Report.status == ReportStatus.SUBMITTED,
            Report.is_deleted.is_(False),
        )
        .order_by(Report.submitted_at, Approval.id)
    )
    results = []
    for approval, report in store.rows(stmt):
        row = approval.to_dict()
        row["report"] = report.to_dict()
        results.append(row)
    return results


def list_audit_logs(store, actor, action=None, page=1, per_page=50) -> dict:
    require_role(actor, Role.ADMIN, actor.org_id)
    page = max(1, int(page))
    per_page = max(1, min(int(per_page), 200))

    stmt = select(AuditLog).where(AuditLog.org_id == actor.org_id)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    total = store.scalar(select(func.count()).select_from(stmt.subquery()))
    rows = store.scalars(
        stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return {
        "items": [r.to_dict() for r in rows],
        "total": total,
        "page": page,
        "per_page": per_page,
        "pages": (total + per_page - 1) // per_page,
    }
