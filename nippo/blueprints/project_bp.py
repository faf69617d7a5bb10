"""
Project master data and approval routing blueprint.

Routes:
  GET    /projects                                – list projects
  POST   /projects                                – create project (admin)
  PATCH  /projects/<pid>                          – rename / describe project (admin)
  DELETE /projects/<pid>                          – delete unused project (admin)
  GET    /projects/<pid>/work-categories          – list categories
  POST   /projects/<pid>/work-categories          – create category (admin)
  PATCH  /work-categories/<cid>                   – rename category (admin)
  DELETE /work-categories/<cid>                   – delete unused category (admin)
  GET    /projects/<pid>/approval-flows           – list routing rules
  POST   /projects/<pid>/approval-flows           – create / replace rule (admin)
  DELETE /approval-flows/<fid>                    – remove rule (admin)
"""

from flask import Blueprint, jsonify

from nippo.blueprints import current_actor, get_store, json_body, optional_int, required_int
from nippo.services import approval_flow_service, project_service

project_bp = Blueprint("projects", __name__, url_prefix="/api/v1")


# ═════════════════════════════════════════════════════════════════════════════
# PROJECTS & CATEGORIES
# ═════════════════════════════════════════════════════════════════════════════

@project_bp.route("/projects", methods=["GET"])
def list_projects():
    store = get_store()
    actor = current_actor(store)
    return jsonify([p.to_dict() for p in project_service.list_projects(store, actor)])


@project_bp.route("/projects", methods=["POST"])
def create_project():
    """Body: { name, description? }"""
    store = get_store()
    actor = current_actor(store)
    data = json_body()
    with store.transaction():
        project = project_service.create_project(
            store, actor, data.get("name"), description=data.get("description"),
        )
    return jsonify(project.to_dict()), 201


@project_bp.route("/projects/<int:pid>", methods=["PATCH"])
def update_project(pid):
    """Body: { name?, description? }"""
    store = get_store()
    actor = current_actor(store)
    data = json_body()
    with store.transaction():
        project = project_service.update_project(
            store, actor, pid, name=data.get("name"), description=data.get("description"),
        )
    return jsonify(project.to_dict())


@project_bp.route("/projects/<int:pid>", methods=["DELETE"])
def delete_project(pid):
    store = get_store()
    actor = current_actor(store)
    with store.transaction():
        project_service.delete_project(store, actor, pid)
    return jsonify({"success": True})


@project_bp.route("/projects/<int:pid>/work-categories", methods=["GET"])
def list_work_categories(pid):
    store = get_store()
    actor = current_actor(store)
    return jsonify([c.to_dict() for c in project_service.list_work_categories(store, actor, pid)])


@project_bp.route("/projects/<int:pid>/work-categories", methods=["POST"])
def create_work_category(pid):
    """Body: { name }"""
    store = get_store()
    actor = current_actor(store)
    data = json_body()
    with store.transaction():
        category = project_service.create_work_category(store, actor, pid, data.get("name"))
    return jsonify(category.to_dict()), 201


@project_bp.route("/work-categories/<int:cid>", methods=["PATCH"])
def update_work_category(cid):
    """Body: { name }"""
    store = get_store()
    actor = current_actor(store)
    data = json_body()
    with store.transaction():
        category = project_service.update_work_category(store, actor, cid, data.get("name"))
    return jsonify(category.to_dict())


@project_bp.route("/work-categories/<int:cid>", methods=["DELETE"])
def delete_work_category(cid):
    store = get_store()
    actor = current_actor(store)
    with store.transaction():
        project_service.delete_work_category(store, actor, cid)
    return jsonify({"success": True})


# ═════════════════════════════════════════════════════════════════════════════
# APPROVAL FLOW RULES
# ═════════════════════════════════════════════════════════════════════════════

@project_bp.route("/projects/<int:pid>/approval-flows", methods=["GET"])
def list_approval_flows(pid):
    store = get_store()
    actor = current_actor(store)
    return jsonify([r.to_dict() for r in approval_flow_service.list_rules(store, actor, pid)])


@project_bp.route("/projects/<int:pid>/approval-flows", methods=["POST"])
def set_approval_flow(pid):
    """Body: { approver_id, applicant_id?, approval_level? }"""
    store = get_store()
    actor = current_actor(store)
    data = json_body()
    approver_id = required_int(data, "approver_id")
    applicant_id = optional_int(data, "applicant_id")
    approval_level = optional_int(data, "approval_level")
    with store.transaction():
        rule = approval_flow_service.set_rule(
            store, actor, pid, approver_id,
            applicant_id=applicant_id, approval_level=approval_level,
        )
    return jsonify(rule.to_dict()), 201


@project_bp.route("/approval-flows/<int:fid>", methods=["DELETE"])
def remove_approval_flow(fid):
    store = get_store()
    actor = current_actor(store)
    with store.transaction():
        approval_flow_service.remove_rule(store, actor, fid)
    return jsonify({"success": True})
