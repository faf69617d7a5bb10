"""Standardised API error responses.

Usage
-----
    from nippo.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Report not found")
    return api_error(E.VALIDATION_REQUIRED, "title is required")
    return api_error(E.CONFLICT_VERSION, "Stale write", details={"stored_version": v})

Service exceptions never reach the blueprints' own code paths: the handlers
installed by ``register_error_handlers`` map each one to a status and code.
"""

from __future__ import annotations

import logging

from flask import g, jsonify, request

from nippo.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants."""

    # Validation – HTTP 400 / 422
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Auth – HTTP 401 / 403
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict – HTTP 409
    CONFLICT_VERSION = "ERR_CONFLICT_VERSION"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 422,
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT_VERSION: 409,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (field errors, stored version, ...).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def _record_failed_mutation(exc: Exception) -> None:
    """Write a best-effort ``mutation_failed`` audit row in its own transaction.

    Never raises: the caller is already answering with the original error.
    """
    actor = getattr(g, "actor", None)
    if actor is None or request.method not in _MUTATING_METHODS:
        return

    from nippo.models import db
    from nippo.services.audit_events import MutationFailed
    from nippo.store import Store

    try:
        store = Store(db.session)
        with store.transaction():
            store.record_event(
                actor.id,
                actor.org_id,
                MutationFailed(
                    endpoint=request.endpoint,
                    method=request.method,
                    error_type=type(exc).__name__,
                    message=str(exc)[:500],
                ),
            )
    except Exception:
        logger.exception("Could not record failed mutation for %s %s", request.method, request.path)


def register_error_handlers(app):
    """Map service exceptions to the standard error envelope."""

    @app.errorhandler(AuthenticationError)
    def _unauthenticated(exc):
        return api_error(E.UNAUTHENTICATED, str(exc))

    @app.errorhandler(AuthorizationError)
    def _forbidden(exc):
        _record_failed_mutation(exc)
        details = {"required_role": exc.required_role} if exc.required_role else None
        return api_error(E.FORBIDDEN, str(exc), details=details)

    @app.errorhandler(NotFoundError)
    def _not_found(exc):
        _record_failed_mutation(exc)
        return api_error(E.NOT_FOUND, f"{exc.resource} not found")

    @app.errorhandler(ValidationError)
    def _invalid(exc):
        _record_failed_mutation(exc)
        return api_error(E.VALIDATION_INVALID, str(exc), details=exc.details)

    @app.errorhandler(ConflictError)
    def _conflict(exc):
        _record_failed_mutation(exc)
        return api_error(
            E.CONFLICT_VERSION,
            str(exc),
            details={"stored_version": exc.stored_version},
        )

    @app.errorhandler(400)
    def _bad_request(e):
        return api_error(E.VALIDATION_REQUIRED, e.description or "Bad request")

    @app.errorhandler(404)
    def _route_not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)

    @app.errorhandler(429)
    def _rate_limited(e):
        return api_error(E.VALIDATION_INVALID, "Too many requests", status=429,
                         details={"retry_after": e.description})

    @app.errorhandler(500)
    def _server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")
