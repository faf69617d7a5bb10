"""
Approvals inbox, user administration and audit log.

Routes:
  GET  /approvals/pending        – my pending approvals (manager+)
  POST /users/provision          – first sign-in: create my profile
  PUT  /users/<uid>/role         – change a member's role (admin)
  GET  /audit                    – audit log (admin)
"""

from flask import Blueprint, abort, g, jsonify, request

from nippo.blueprints import current_actor, get_store, json_body, query_int
from nippo.core.exceptions import AuthenticationError
from nippo.services import report_queries, user_service

approval_bp = Blueprint("approvals", __name__, url_prefix="/api/v1/approvals")
user_bp = Blueprint("users", __name__, url_prefix="/api/v1/users")
audit_bp = Blueprint("audit", __name__, url_prefix="/api/v1/audit")


@approval_bp.route("/pending", methods=["GET"])
def pending_approvals():
    store = get_store()
    actor = current_actor(store)
    return jsonify(report_queries.list_pending_approvals(store, actor))


@user_bp.route("/provision", methods=["POST"])
def provision():
    """Create the caller's profile from the token identity and org claim.

    Body: { display_name? }
    """
    identity = getattr(g, "jwt_identity", None)
    if not identity:
        raise AuthenticationError()
    data = json_body()
    store = get_store()
    with store.transaction():
        profile = user_service.provision_profile(
            store, identity, getattr(g, "jwt_org_id", None),
            display_name=data.get("display_name"),
        )
    return jsonify(profile.to_dict()), 201


@user_bp.route("/<int:uid>/role", methods=["PUT"])
def change_role(uid):
    """Body: { role }"""
    store = get_store()
    actor = current_actor(store)
    data = json_body()
    if not isinstance(data.get("role"), str):
        abort(400, description="role is required")
    with store.transaction():
        profile = user_service.change_role(store, actor, uid, data["role"])
    return jsonify(profile.to_dict())


@audit_bp.route("", methods=["GET"])
def list_audit():
    store = get_store()
    actor = current_actor(store)
    result = report_queries.list_audit_logs(
        store, actor,
        action=request.args.get("action") or None,
        page=query_int("page", 1),
        per_page=query_int("per_page", 50),
    )
    return jsonify(result)
