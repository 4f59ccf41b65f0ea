"""
Team Role-Based Access Control.

``capability(role, action)`` is the single policy decision point: a pure
lookup in ``CAPABILITY_MATRIX`` with no I/O.  Unknown roles and unknown
actions are denied.

``require_capability`` resolves the actor's membership and raises
``AuthorizationError`` when the capability is missing.  Every mutating
service operation calls it before touching state.

Usage:
    from teamflow.services.permission import capability, require_capability

    if capability("editor", CONTENT_EDIT):
        ...

    membership = require_capability(team_id, actor_id, TEAM_MANAGE)
"""

from teamflow.core.exceptions import AuthorizationError
from teamflow.models.team import (
    ROLE_ADMIN,
    ROLE_EDITOR,
    ROLE_OWNER,
    ROLE_VIEWER,
    Membership,
)

# ── Capabilities ─────────────────────────────────────────────────────────────

TEAM_MANAGE = "team.manage"
TEAM_UPDATE = "team.update"
TEAM_DELETE = "team.delete"
TEAM_TRANSFER_OWNERSHIP = "team.transfer_ownership"
CONTENT_EDIT = "content.edit"
CONTENT_APPROVE = "content.approve"
CONTENT_COMMENT = "content.comment"
CONTENT_VIEW = "content.view"

CAPABILITIES = frozenset({
    TEAM_MANAGE, TEAM_UPDATE, TEAM_DELETE, TEAM_TRANSFER_OWNERSHIP,
    CONTENT_EDIT, CONTENT_APPROVE, CONTENT_COMMENT, CONTENT_VIEW,
})

CAPABILITY_MATRIX: dict[str, frozenset[str]] = {
    ROLE_OWNER: CAPABILITIES,
    ROLE_ADMIN: frozenset({
        TEAM_MANAGE, TEAM_UPDATE,
        CONTENT_EDIT, CONTENT_APPROVE, CONTENT_COMMENT, CONTENT_VIEW,
    }),
    ROLE_EDITOR: frozenset({CONTENT_EDIT, CONTENT_COMMENT, CONTENT_VIEW}),
    ROLE_VIEWER: frozenset({CONTENT_COMMENT, CONTENT_VIEW}),
}


def capability(role: str | None, action: str) -> bool:
    """Return True if ``role`` grants ``action``.  Fails closed."""
    return action in CAPABILITY_MATRIX.get(role, frozenset())


def role_capabilities(role: str | None) -> frozenset[str]:
    """All capabilities granted to a role (empty for unknown roles)."""
    return CAPABILITY_MATRIX.get(role, frozenset())


def get_membership(team_id: str, user_id: str) -> Membership | None:
    return Membership.query.filter_by(team_id=team_id, user_id=user_id).first()


def require_capability(team_id: str, user_id: str, action: str) -> Membership:
    """
    Assert the actor holds ``action`` in the team.

    Returns:
        The actor's Membership, so callers can reuse the role.

    Raises:
        AuthorizationError: actor is not a member, or the role lacks the action.
    """
    membership = get_membership(team_id, user_id) if user_id else None
    role = membership.role if membership else None
    if not capability(role, action):
        raise AuthorizationError(user_id, action, team_id)
    return membership
