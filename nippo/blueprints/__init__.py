"""
Nippo Report Service
Blueprint helpers shared by every API module.
"""

from flask import abort, g, request

from nippo.models import db
from nippo.services.auth_guard import authenticate
from nippo.store import Store


def get_store() -> Store:
    return Store(db.session)


def current_actor(store):
    """Resolve the JWT identity into an Actor and remember it on ``g``."""
    actor = getattr(g, "actor", None)
    if actor is None:
        actor = authenticate(store, getattr(g, "jwt_identity", None))
        g.actor = actor
    return actor


def json_body() -> dict:
    """Return the JSON object body or abort with 400."""
    data = request.get_json(silent=True)
    if data is None and not request.data:
        return {}
    if not isinstance(data, dict):
        abort(400, description="Request body must be a JSON object")
    return data


def optional_int(data: dict, key: str):
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        abort(400, description=f"{key} must be an integer")
    return value


def required_int(data: dict, key: str) -> int:
    if data.get(key) is None:
        abort(400, description=f"{key} is required")
    return optional_int(data, key)


def query_int(name: str, default=None):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        abort(400, description=f"{name} must be an integer")
