"""
JWT Auth Middleware — parses the Bearer token and sets g.jwt_*.

    Authorization: Bearer <token>  →  g.jwt_user_id (int), g.jwt_role

Requests without a valid token continue with no identity; endpoints that
need one (closure submit) reject them, role decorators pass them through.
"""

import logging

import jwt as pyjwt
from flask import g, request

from coursedesk.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_user_id = None
        g.jwt_role = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]

        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            logger.debug("Expired access token on %s", path)
            return
        except pyjwt.InvalidTokenError:
            logger.debug("Invalid access token on %s", path)
            return

        try:
            g.jwt_user_id = int(payload.get("sub"))
        except (TypeError, ValueError):
            logger.debug("Access token with non-numeric subject on %s", path)
            return
        g.jwt_role = payload.get("role")
