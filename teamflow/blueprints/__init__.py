"""
TeamFlow
Blueprint registry helpers.

Layer contract for every blueprint:
    - Parse + shape-check the request (missing fields → 400).
    - Call exactly one service function with ``current_actor_id()``.
    - Never touch db.session; services own transactions.
    - Domain errors propagate to the handlers registered here.
"""

import logging

from flask import request

from teamflow.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StateError,
    ValidationError,
)
from teamflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def json_body() -> dict:
    """Request JSON object, or {} for an empty / non-object body."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def missing_fields(data: dict, *fields: str):
    """Return a 400 response naming the first absent field, else None."""
    for name in fields:
        value = data.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            return api_error(E.VALIDATION_REQUIRED, f"{name} is required")
    return None


def register_error_handlers(app):
    """Map the domain exception hierarchy to HTTP responses."""

    @app.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_CONSTRAINT, str(error), details=error.details)

    @app.errorhandler(AuthorizationError)
    def _handle_authorization(error: AuthorizationError):
        logger.info("Denied: %s", error, extra={"team_id": error.team_id, "actor_id": error.user_id})
        return api_error(E.FORBIDDEN, str(error))

    @app.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, f"{error.resource} not found")

    @app.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(error))

    @app.errorhandler(StateError)
    def _handle_state(error: StateError):
        return api_error(E.CONFLICT_STATE, str(error), details={
            "current_status": error.current_status,
            "target_status": error.target_status,
        })

    @app.errorhandler(404)
    def _handle_404(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def _handle_405(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def _handle_429(e):
        return {"error": "Rate limit exceeded", "detail": str(e.description)}, 429

    @app.errorhandler(500)
    def _handle_500(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")
