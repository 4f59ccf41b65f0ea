"""
TeamFlow-wide exception hierarchy.

Services raise exactly one of these per failed operation; the app factory
registers one handler per type so that every blueprint gets the same HTTP
status and error body.

Retry semantics:
  ValidationError     caller must fix the input          422
  AuthorizationError  actor lacks the capability         403
  NotFoundError       referenced entity absent           404
  ConflictError       duplicate or concurrent write      409 (retry after re-read)
  StateError          illegal state transition           409

Usage:
    from teamflow.core.exceptions import NotFoundError, StateError

    raise NotFoundError(resource="Approval", resource_id=approval_id)
    raise StateError("Approval", approval.id, current="approved", target="rejected")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Team", "Invitation").
        resource_id: The id that was looked up.
        team_id: Optional scope that was enforced, for logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        team_id: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.team_id = team_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if team_id is not None:
            msg += f" (team={team_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is malformed or violates a business rule.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown; keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class AuthorizationError(Exception):
    """Raised when the actor's team role does not grant the capability."""

    def __init__(self, user_id: str, action: str, team_id: str | None = None):
        scope = f" in team {team_id}" if team_id else ""
        super().__init__(f"User {user_id} is not allowed to '{action}'{scope}")
        self.user_id = user_id
        self.action = action
        self.team_id = team_id


class ConflictError(Exception):
    """Raised on a duplicate active state or a lost optimistic-concurrency race.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
        reason: Free-form message; overrides the default duplicate wording.
    """

    def __init__(
        self,
        resource: str,
        field: str | None = None,
        value: str | None = None,
        *,
        reason: str | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        if reason:
            msg = reason
        else:
            msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class StateError(Exception):
    """Raised when a transition is not allowed from the entity's current status."""

    def __init__(
        self,
        resource: str,
        resource_id: str | None,
        *,
        current: str,
        target: str | None = None,
        reason: str | None = None,
    ) -> None:
        msg = f"Cannot move {resource} {resource_id} from '{current}'"
        if target:
            msg += f" to '{target}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
        self.resource = resource
        self.resource_id = resource_id
        self.current_status = current
        self.target_status = target
