"""
Report lifecycle blueprint.

Routes:
  GET    /reports                         – list reports (filters, cursor)
  POST   /reports                         – create draft
  POST   /reports/save                    – create or update a report with its work items
  GET    /reports/search                  – substring search over title and content
  GET    /reports/dashboard               – daily submitted / approved counts
  GET    /reports/<rid>                   – detail (comments, approvals, work items)
  PATCH  /reports/<rid>                   – update / submit / back to draft
  DELETE /reports/<rid>                   – soft delete
  POST   /reports/<rid>/approve           – approve (manager+)
  POST   /reports/<rid>/reject            – reject (manager+)
  POST   /reports/<rid>/restore           – undo soft delete (admin)
  POST   /reports/<rid>/comments          – add comment
  PUT    /comments/<cid>                  – edit own comment
  DELETE /comments/<cid>                  – delete comment
"""

from flask import Blueprint, abort, jsonify, request

from nippo.blueprints import current_actor, get_store, json_body, optional_int, query_int, required_int
from nippo.services import comment_service, report_lifecycle, report_queries, report_save_service

report_bp = Blueprint("reports", __name__, url_prefix="/api/v1")


# ═════════════════════════════════════════════════════════════════════════════
# REPORTS
# ═════════════════════════════════════════════════════════════════════════════

@report_bp.route("/reports", methods=["GET"])
def list_reports():
    store = get_store()
    actor = current_actor(store)
    include_deleted = request.args.get("include_deleted", "false").lower() == "true"
    result = report_queries.list_reports(
        store, actor,
        status=request.args.get("status") or None,
        author_id=query_int("author_id"),
        start_date=request.args.get("start_date") or None,
        end_date=request.args.get("end_date") or None,
        include_deleted=include_deleted,
        sort_by=request.args.get("sort_by", "report_date"),
        sort_order=request.args.get("sort_order", "desc"),
        limit=query_int("limit", 20),
        cursor=query_int("cursor"),
    )
    return jsonify(result)


@report_bp.route("/reports", methods=["POST"])
def create_report():
    """Body: { report_date, title, content, working_hours?, metadata? }"""
    store = get_store()
    actor = current_actor(store)
    data = json_body()
    with store.transaction():
        report = report_lifecycle.create_report(
            store, actor,
            report_date=data.get("report_date"),
            title=data.get("title"),
            content=data.get("content"),
            working_hours=data.get("working_hours"),
            metadata=data.get("metadata"),
        )
    return jsonify({"id": report.id, "updated_at": report.version}), 201


@report_bp.route("/reports/save", methods=["POST"])
def save_report():
    """Body: { report_id?, expected_updated_at?, report: {...}, work_items: [...], status? }

    ``expected_updated_at`` is required whenever ``report_id`` is given.
    """
    store = get_store()
    actor = current_actor(store)
    data = json_body()
    report_id = optional_int(data, "report_id")
    expected = required_int(data, "expected_updated_at") if report_id is not None else None
    with store.transaction():
        report = report_save_service.save_report_with_work_items(
            store, actor,
            report_data=data.get("report", {}),
            work_items=data.get("work_items", []),
            report_id=report_id,
            expected_version=expected,
            status=data.get("status"),
        )
    status_code = 201 if report_id is None else 200
    return jsonify({"id": report.id, "updated_at": report.version, "status": report.status.value}), status_code


@report_bp.route("/reports/search", methods=["GET"])
def search_reports():
    store = get_store()
    actor = current_actor(store)
    return jsonify(report_queries.search_reports(store, actor, request.args.get("q", "")))


@report_bp.route("/reports/dashboard", methods=["GET"])
def dashboard():
    store = get_store()
    actor = current_actor(store)
    return jsonify(report_queries.dashboard_stats(store, actor))


@report_bp.route("/reports/<int:rid>", methods=["GET"])
def get_report(rid):
    store = get_store()
    actor = current_actor(store)
    return jsonify(report_queries.get_report_detail(store, actor, rid))


@report_bp.route("/reports/<int:rid>", methods=["PATCH"])
def update_report(rid):
    """Body: { expected_updated_at, report_date?, title?, content?, working_hours?, metadata?, status? }"""
    store = get_store()
    actor = current_actor(store)
    data = json_body()
    expected = required_int(data, "expected_updated_at")
    patch = {k: v for k, v in data.items() if k != "expected_updated_at"}
    with store.transaction():
        report = report_lifecycle.update_report(store, actor, rid, expected, patch)
    return jsonify({"updated_at": report.version, "status": report.status.value})


@report_bp.route("/reports/<int:rid>", methods=["DELETE"])
def delete_report(rid):
    store = get_store()
    actor = current_actor(store)
    with store.transaction():
        report_lifecycle.delete_report(store, actor, rid)
    return jsonify({"success": True})


@report_bp.route("/reports/<int:rid>/approve", methods=["POST"])
def approve_report(rid):
    """Body: { comment? }"""
    store = get_store()
    actor = current_actor(store)
    data = json_body()
    comment = data.get("comment")
    if comment is not None and not isinstance(comment, str):
        abort(400, description="comment must be a string")
    with store.transaction():
        report = report_lifecycle.approve_report(store, actor, rid, comment=comment)
    return jsonify({"success": True, "status": report.status.value, "updated_at": report.version})


@report_bp.route("/reports/<int:rid>/reject", methods=["POST"])
def reject_report(rid):
    """Body: { reason }"""
    store = get_store()
    actor = current_actor(store)
    data = json_body()
    reason = data.get("reason")
    if reason is not None and not isinstance(reason, str):
        abort(400, description="reason must be a string")
    with store.transaction():
        report = report_lifecycle.reject_report(store, actor, rid, reason)
    return jsonify({"success": True, "status": report.status.value, "updated_at": report.version})


@report_bp.route("/reports/<int:rid>/restore", methods=["POST"])
def restore_report(rid):
    store = get_store()
    actor = current_actor(store)
    with store.transaction():
        report = report_lifecycle.restore_report(store, actor, rid)
    return jsonify({"success": True, "updated_at": report.version})


# ═════════════════════════════════════════════════════════════════════════════
# COMMENTS
# ═════════════════════════════════════════════════════════════════════════════

@report_bp.route("/reports/<int:rid>/comments", methods=["POST"])
def add_comment(rid):
    """Body: { content }"""
    store = get_store()
    actor = current_actor(store)
    data = json_body()
    with store.transaction():
        comment = report_lifecycle.add_comment(store, actor, rid, data.get("content"))
    return jsonify({"id": comment.id}), 201


@report_bp.route("/comments/<int:cid>", methods=["PUT"])
def update_comment(cid):
    store = get_store()
    actor = current_actor(store)
    data = json_body()
    with store.transaction():
        comment = comment_service.update_comment(store, actor, cid, data.get("content"))
    return jsonify(comment.to_dict())


@report_bp.route("/comments/<int:cid>", methods=["DELETE"])
def delete_comment(cid):
    store = get_store()
    actor = current_actor(store)
    with store.transaction():
        comment_service.delete_comment(store, actor, cid)
    return jsonify({"success": True})
