"""
Work item blueprint.

Routes:
  GET    /reports/<rid>/work-items   – list line items of a report
  POST   /reports/<rid>/work-items   – add a line item
  PUT    /work-items/<wid>           – update a line item
  DELETE /work-items/<wid>           – delete a line item
"""

from flask import Blueprint, jsonify

from nippo.blueprints import current_actor, get_store, json_body, optional_int
from nippo.services import work_item_service

work_item_bp = Blueprint("work_items", __name__, url_prefix="/api/v1")


@work_item_bp.route("/reports/<int:rid>/work-items", methods=["GET"])
def list_work_items(rid):
    store = get_store()
    actor = current_actor(store)
    items = work_item_service.list_work_items(store, actor, rid)
    return jsonify([i.to_dict() for i in items])


@work_item_bp.route("/reports/<int:rid>/work-items", methods=["POST"])
def create_work_item(rid):
    """Body: { project_id, work_category_id, description, duration_minutes }"""
    store = get_store()
    actor = current_actor(store)
    data = json_body()
    with store.transaction():
        item = work_item_service.create_work_item(
            store, actor, rid,
            project_id=data.get("project_id"),
            work_category_id=data.get("work_category_id"),
            description=data.get("description"),
            duration_minutes=data.get("duration_minutes"),
        )
    return jsonify(item.to_dict()), 201


@work_item_bp.route("/work-items/<int:wid>", methods=["PUT"])
def update_work_item(wid):
    """Body: { expected_version?, project_id?, work_category_id?, description?, duration_minutes? }"""
    store = get_store()
    actor = current_actor(store)
    data = json_body()
    expected = optional_int(data, "expected_version")
    updates = {k: v for k, v in data.items() if k != "expected_version"}
    with store.transaction():
        item = work_item_service.update_work_item(store, actor, wid, updates, expected_version=expected)
    return jsonify(item.to_dict())


@work_item_bp.route("/work-items/<int:wid>", methods=["DELETE"])
def delete_work_item(wid):
    store = get_store()
    actor = current_actor(store)
    with store.transaction():
        work_item_service.delete_work_item(store, actor, wid)
    return jsonify({"success": True})
