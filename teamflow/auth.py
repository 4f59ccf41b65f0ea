"""
TeamFlow
Caller identity.

Authentication happens upstream (API gateway / session service).  The
gateway forwards the authenticated user's opaque id in ``X-User-Id``; this
module only requires that header on API routes and exposes it as
``g.actor_id``.  Authorization is decided per team by the services.

Public paths (no identity required):
    /api/v1/health/*
"""

import logging

from flask import g, request

from teamflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)

USER_HEADER = "X-User-Id"

_PUBLIC_PREFIXES = ("/api/v1/health",)


def current_actor_id() -> str | None:
    """The authenticated user id for the current request."""
    return getattr(g, "actor_id", None)


def init_auth(app):
    """Register the identity guard for /api/ routes."""

    @app.before_request
    def _require_identity():
        if not request.path.startswith("/api/"):
            return None
        if request.path.startswith(_PUBLIC_PREFIXES):
            return None
        actor_id = (request.headers.get(USER_HEADER) or "").strip()
        if not actor_id:
            logger.debug("Rejected %s %s: missing %s", request.method, request.path, USER_HEADER)
            return api_error(E.UNAUTHENTICATED, f"{USER_HEADER} header is required")
        g.actor_id = actor_id
        return None
