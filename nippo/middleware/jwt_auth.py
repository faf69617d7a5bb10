"""
JWT Auth Middleware - Parses JWT from Authorization header, sets g.jwt_*.

The middleware only decodes the token. Turning the identity reference into
an Actor (and rejecting unknown or inactive profiles) is the job of
``nippo.services.auth_guard.authenticate``, called by the blueprints.

    Authorization: Bearer <token>  →  g.jwt_identity, g.jwt_org_id
"""

import logging

import jwt as pyjwt
from flask import g, request

from nippo.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_identity = None
        g.jwt_org_id = None
        g.actor = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return  # No JWT; the guard answers 401

        token = auth_header[7:]

        try:
            payload = decode_access_token(token)
            g.jwt_identity = payload.get("sub")
            g.jwt_org_id = payload.get("org_id")
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired access token on %s", path)
        except pyjwt.InvalidTokenError as exc:
            logger.info("Invalid access token on %s: %s", path, exc)
