"""
Team & Membership Service.

Owns the team lifecycle, invitations and the role roster.

Business rules:
    - A team is created with exactly one owner membership.
    - The owner count never drops to zero: demoting or removing the last
      owner fails with ValidationError and leaves state untouched.
    - Only owners grant or revoke the owner role; admins manage everyone else.
    - Invitations never carry the owner role and expire after
      INVITATION_TTL_HOURS.  Expiry is applied lazily on read.
    - Every roster change touches the Team row (optimistic version), so
      concurrent roster edits on the same team cannot both commit.
    - Each successful mutation writes exactly one ActivityRecord in the same
      transaction.
"""

from __future__ import annotations

import logging

from email_validator import EmailNotValidError, validate_email
from flask import current_app
from sqlalchemy import func

from teamflow.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StateError,
    ValidationError,
)
from teamflow.models import db
from teamflow.models.activity import SYSTEM_ACTOR, write_activity
from teamflow.models.team import (
    INVITABLE_ROLES,
    INVITATION_ACCEPTED,
    INVITATION_EXPIRED,
    INVITATION_PENDING,
    INVITATION_REVOKED,
    INVITATION_STATUSES,
    ROLE_ADMIN,
    ROLE_OWNER,
    ROLES,
    TEAM_NAME_MAX,
    Invitation,
    Membership,
    Team,
)
from teamflow.services.helpers.transaction import transaction
from teamflow.services.notification import notify
from teamflow.services.permission import (
    CONTENT_VIEW,
    TEAM_DELETE,
    TEAM_MANAGE,
    TEAM_TRANSFER_OWNERSHIP,
    TEAM_UPDATE,
    get_membership,
    require_capability,
)
from teamflow.utils.helpers import clean_id, clean_text, utcnow

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────────


def _clean_name(name: str | None) -> str:
    name = clean_text(name, "name") or ""
    if not name:
        raise ValidationError("Team name is required", details={"name": "required"})
    if len(name) > TEAM_NAME_MAX:
        raise ValidationError(
            f"Team name must be at most {TEAM_NAME_MAX} characters",
            details={"name": "too_long"},
        )
    return name


def _normalise_email(email: str | None) -> str:
    try:
        valid = validate_email(clean_text(email, "email") or "", check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", details={"email": "invalid"}) from e
    return valid.normalized.lower()


def _owner_count(team_id: str) -> int:
    return Membership.query.filter_by(team_id=team_id, role=ROLE_OWNER).count()


def _get_team_or_404(team_id: str) -> Team:
    team = db.session.get(Team, team_id)
    if not team:
        raise NotFoundError(resource="Team", resource_id=team_id)
    return team


def _get_member_or_404(team_id: str, user_id: str) -> Membership:
    membership = get_membership(team_id, user_id)
    if not membership:
        raise NotFoundError(resource="Membership", resource_id=user_id, team_id=team_id)
    return membership


def _invitation_ttl_hours() -> int:
    return int(current_app.config.get("INVITATION_TTL_HOURS", 168))


def _expire_if_stale(invitation: Invitation, now) -> bool:
    """Move a pending invitation past its TTL to ``expired``.

    Caller owns the transaction.  Returns True if the row changed.
    """
    if invitation.status != INVITATION_PENDING or not invitation.is_past_ttl(now):
        return False
    invitation.status = INVITATION_EXPIRED
    invitation.resolved_at = now
    invitation.team.touch()
    write_activity(
        team_id=invitation.team_id,
        actor_id=SYSTEM_ACTOR,
        action="invitation.expired",
        entity_type="invitation",
        entity_id=invitation.id,
        metadata={"email": invitation.email, "expires_at": invitation.expires_at},
    )
    logger.info("Invitation %s expired", invitation.id, extra={"team_id": invitation.team_id})
    return True


# ── Team lifecycle ─────────────────────────────────────────────────────────────


def create_team(
    owner_id: str,
    name: str,
    description: str | None = None,
    owner_email: str | None = None,
) -> Team:
    """Create a team and its owner membership in one transaction."""
    if not owner_id:
        raise ValidationError("owner_id is required", details={"owner_id": "required"})
    clean_name = _clean_name(name)
    description = clean_text(description, "description")
    email = _normalise_email(owner_email) if owner_email else None

    with transaction("Team"):
        team = Team(name=clean_name, description=description, created_by=owner_id)
        db.session.add(team)
        db.session.flush()
        db.session.add(Membership(team_id=team.id, user_id=owner_id, email=email, role=ROLE_OWNER))
        write_activity(
            team_id=team.id,
            actor_id=owner_id,
            action="team.created",
            entity_type="team",
            entity_id=team.id,
            metadata={"name": clean_name},
        )

    logger.info("Team %s created by %s", team.id, owner_id, extra={"team_id": team.id})
    return team


def update_team(
    actor_id: str,
    team_id: str,
    *,
    name: str | None = None,
    description: str | None = None,
) -> Team:
    """Rename or re-describe a team.  Fields left as None are unchanged."""
    team = _get_team_or_404(team_id)
    require_capability(team_id, actor_id, TEAM_UPDATE)

    description = clean_text(description, "description")
    changes = {}
    if name is not None:
        clean_name = _clean_name(name)
        if clean_name != team.name:
            changes["name"] = {"old": team.name, "new": clean_name}
            team.name = clean_name
    if description is not None and description != team.description:
        changes["description"] = {"old": team.description, "new": description}
        team.description = description
    if not changes:
        return team

    with transaction("Team"):
        team.touch()
        write_activity(
            team_id=team.id,
            actor_id=actor_id,
            action="team.updated",
            entity_type="team",
            entity_id=team.id,
            metadata=changes,
        )
    return team


def delete_team(actor_id: str, team_id: str) -> None:
    """Hard-delete a team and everything it owns, including its activity log."""
    team = _get_team_or_404(team_id)
    require_capability(team_id, actor_id, TEAM_DELETE)

    with transaction("Team"):
        db.session.delete(team)

    logger.info("Team %s deleted by %s", team_id, actor_id, extra={"team_id": team_id})


def get_team(actor_id: str, team_id: str) -> Team:
    team = _get_team_or_404(team_id)
    require_capability(team_id, actor_id, CONTENT_VIEW)
    return team


def list_teams_for_user(user_id: str) -> list[dict]:
    """Teams the user belongs to, newest first, with the user's role and head-count."""
    member_counts = (
        db.session.query(Membership.team_id, func.count(Membership.id).label("member_count"))
        .group_by(Membership.team_id)
        .subquery()
    )
    rows = (
        db.session.query(Team, Membership.role, member_counts.c.member_count)
        .join(Membership, Membership.team_id == Team.id)
        .join(member_counts, member_counts.c.team_id == Team.id)
        .filter(Membership.user_id == user_id)
        .order_by(Team.created_at.desc(), Team.id)
        .all()
    )
    result = []
    for team, role, count in rows:
        d = team.to_dict()
        d["member_role"] = role
        d["member_count"] = count
        result.append(d)
    return result


def get_member_role(team_id: str, user_id: str) -> str | None:
    membership = get_membership(team_id, user_id)
    return membership.role if membership else None


def list_members(actor_id: str, team_id: str) -> list[Membership]:
    _get_team_or_404(team_id)
    require_capability(team_id, actor_id, CONTENT_VIEW)
    return (
        Membership.query.filter_by(team_id=team_id)
        .order_by(Membership.joined_at, Membership.id)
        .all()
    )


# ── Invitations ────────────────────────────────────────────────────────────────


def invite_member(actor_id: str, team_id: str, email: str, role: str) -> Invitation:
    """
    Offer a seat to an email address.

    Raises:
        AuthorizationError: actor lacks team.manage.
        ValidationError: role is owner/unknown, or email malformed.
        ConflictError: email already a member or holds a live pending invitation.
    """
    team = _get_team_or_404(team_id)
    require_capability(team_id, actor_id, TEAM_MANAGE)

    role = clean_text(role, "role")
    if role == ROLE_OWNER:
        raise ValidationError("Invitations cannot grant the owner role", details={"role": "owner"})
    if role not in INVITABLE_ROLES:
        raise ValidationError(
            f"role must be one of {sorted(INVITABLE_ROLES)}", details={"role": "invalid"},
        )
    email = _normalise_email(email)
    now = utcnow()

    if Membership.query.filter_by(team_id=team_id, email=email).first():
        raise ConflictError("Membership", "email", email)

    with transaction("Invitation"):
        for pending in Invitation.query.filter_by(
            team_id=team_id, email=email, status=INVITATION_PENDING,
        ).all():
            if not _expire_if_stale(pending, now):
                raise ConflictError("Invitation", "email", email)

        invitation = Invitation(
            team_id=team_id,
            email=email,
            role=role,
            status=INVITATION_PENDING,
            invited_by=actor_id,
            created_at=now,
            expires_at=Invitation.expiry_from(now, _invitation_ttl_hours()),
        )
        db.session.add(invitation)
        team.touch()
        db.session.flush()
        write_activity(
            team_id=team_id,
            actor_id=actor_id,
            action="member.invited",
            entity_type="invitation",
            entity_id=invitation.id,
            metadata={"email": email, "role": role},
        )

    logger.info("Invitation %s sent to %s as %s", invitation.id, email, role,
                extra={"team_id": team_id, "actor_id": actor_id})
    notify("invitation.created", {
        "team_id": team_id,
        "invitation_id": invitation.id,
        "email": email,
        "role": role,
        "invited_by": actor_id,
    })
    return invitation


def accept_invitation(invitation_id: str, user_id: str, *, now=None) -> Membership:
    """
    Redeem a pending invitation for ``user_id``.

    A pending invitation past its TTL is moved to ``expired`` (and that
    change is committed) before the call fails with StateError.
    """
    if not user_id:
        raise ValidationError("user_id is required", details={"user_id": "required"})
    invitation = db.session.get(Invitation, invitation_id)
    if not invitation:
        raise NotFoundError(resource="Invitation", resource_id=invitation_id)
    now = now or utcnow()

    if invitation.status == INVITATION_PENDING and invitation.is_past_ttl(now):
        with transaction("Invitation"):
            _expire_if_stale(invitation, now)
        raise StateError("Invitation", invitation.id, current=INVITATION_EXPIRED,
                         target=INVITATION_ACCEPTED, reason="invitation has expired")
    if invitation.status != INVITATION_PENDING:
        raise StateError("Invitation", invitation.id, current=invitation.status,
                         target=INVITATION_ACCEPTED)
    if get_membership(invitation.team_id, user_id):
        raise ConflictError("Membership", "user_id", user_id)

    with transaction("Membership"):
        membership = Membership(
            team_id=invitation.team_id,
            user_id=user_id,
            email=invitation.email,
            role=invitation.role,
            invited_by=invitation.invited_by,
            joined_at=now,
        )
        db.session.add(membership)
        invitation.status = INVITATION_ACCEPTED
        invitation.accepted_by = user_id
        invitation.resolved_at = now
        invitation.team.touch()
        db.session.flush()
        write_activity(
            team_id=invitation.team_id,
            actor_id=user_id,
            action="invitation.accepted",
            entity_type="invitation",
            entity_id=invitation.id,
            metadata={"membership_id": membership.id, "role": membership.role},
        )

    logger.info("User %s joined team %s as %s", user_id, invitation.team_id, membership.role,
                extra={"team_id": invitation.team_id})
    return membership


def revoke_invitation(actor_id: str, invitation_id: str) -> Invitation:
    invitation = db.session.get(Invitation, invitation_id)
    if not invitation:
        raise NotFoundError(resource="Invitation", resource_id=invitation_id)
    require_capability(invitation.team_id, actor_id, TEAM_MANAGE)
    if invitation.status != INVITATION_PENDING:
        raise StateError("Invitation", invitation.id, current=invitation.status,
                         target=INVITATION_REVOKED)

    with transaction("Invitation"):
        invitation.status = INVITATION_REVOKED
        invitation.resolved_at = utcnow()
        invitation.team.touch()
        write_activity(
            team_id=invitation.team_id,
            actor_id=actor_id,
            action="invitation.revoked",
            entity_type="invitation",
            entity_id=invitation.id,
            metadata={"email": invitation.email},
        )
    return invitation


def list_invitations(
    actor_id: str,
    team_id: str,
    status: str | None = None,
    *,
    now=None,
) -> list[Invitation]:
    """Invitations for a team, newest first.  Stale pending rows are expired first."""
    _get_team_or_404(team_id)
    require_capability(team_id, actor_id, TEAM_MANAGE)
    if status is not None and status not in INVITATION_STATUSES:
        raise ValidationError(
            f"status must be one of {sorted(INVITATION_STATUSES)}", details={"status": "invalid"},
        )
    now = now or utcnow()

    stale = [
        inv for inv in Invitation.query.filter_by(team_id=team_id, status=INVITATION_PENDING).all()
        if inv.is_past_ttl(now)
    ]
    if stale:
        with transaction("Invitation"):
            for inv in stale:
                _expire_if_stale(inv, now)

    q = Invitation.query.filter_by(team_id=team_id)
    if status:
        q = q.filter_by(status=status)
    return q.order_by(Invitation.created_at.desc(), Invitation.id).all()


# ── Roster ─────────────────────────────────────────────────────────────────────


def update_member_role(actor_id: str, team_id: str, target_user_id: str, new_role: str) -> Membership:
    """
    Change a member's role.

    Raises:
        AuthorizationError: actor lacks team.manage, or a non-owner touches the owner role.
        NotFoundError: target is not a member.
        ValidationError: unknown role, or the change would leave no owner.
    """
    team = _get_team_or_404(team_id)
    actor = require_capability(team_id, actor_id, TEAM_MANAGE)
    target = _get_member_or_404(team_id, target_user_id)

    new_role = clean_text(new_role, "role")
    if new_role not in ROLES:
        raise ValidationError(f"role must be one of {sorted(ROLES)}", details={"role": "invalid"})
    if ROLE_OWNER in (new_role, target.role) and actor.role != ROLE_OWNER:
        raise AuthorizationError(actor_id, "grant or revoke owner role", team_id)
    if target.role == new_role:
        return target
    if target.role == ROLE_OWNER and _owner_count(team_id) <= 1:
        raise ValidationError(
            "Cannot demote the last owner of the team", details={"role": "last_owner"},
        )

    old_role = target.role
    with transaction("Team"):
        target.role = new_role
        team.touch()
        write_activity(
            team_id=team_id,
            actor_id=actor_id,
            action="member.role_updated",
            entity_type="membership",
            entity_id=target.id,
            metadata={"user_id": target_user_id, "old_role": old_role, "new_role": new_role},
        )

    logger.info("Role of %s in team %s changed %s → %s", target_user_id, team_id, old_role, new_role,
                extra={"team_id": team_id, "actor_id": actor_id})
    return target


def remove_member(actor_id: str, team_id: str, target_user_id: str) -> None:
    """
    Remove a member.  Any member may remove themself (leave the team).

    Raises:
        AuthorizationError: actor lacks team.manage, or an admin targets an owner.
        NotFoundError: target is not a member.
        ValidationError: target is the sole owner.
    """
    team = _get_team_or_404(team_id)
    if actor_id == target_user_id:
        actor = get_membership(team_id, actor_id)
        if actor is None:
            raise AuthorizationError(actor_id, TEAM_MANAGE, team_id)
    else:
        actor = require_capability(team_id, actor_id, TEAM_MANAGE)
    target = _get_member_or_404(team_id, target_user_id)

    if target.role == ROLE_OWNER and actor.role != ROLE_OWNER:
        raise AuthorizationError(actor_id, "remove an owner", team_id)
    if target.role == ROLE_OWNER and _owner_count(team_id) <= 1:
        raise ValidationError(
            "Cannot remove the sole owner of the team", details={"user_id": "last_owner"},
        )

    with transaction("Team"):
        membership_id, removed_role = target.id, target.role
        db.session.delete(target)
        team.touch()
        write_activity(
            team_id=team_id,
            actor_id=actor_id,
            action="member.removed",
            entity_type="membership",
            entity_id=membership_id,
            metadata={"user_id": target_user_id, "role": removed_role},
        )

    logger.info("User %s removed from team %s", target_user_id, team_id,
                extra={"team_id": team_id, "actor_id": actor_id})


def transfer_ownership(actor_id: str, team_id: str, new_owner_id: str) -> Membership:
    """
    Hand ownership to another member.

    The new owner is promoted before the actor is demoted to admin, inside one
    transaction, so the team is never without an owner.
    """
    team = _get_team_or_404(team_id)
    actor = require_capability(team_id, actor_id, TEAM_TRANSFER_OWNERSHIP)
    new_owner_id = clean_id(new_owner_id, "user_id")
    if new_owner_id == actor_id:
        raise ValidationError("Cannot transfer ownership to yourself",
                              details={"user_id": "self"})
    target = _get_member_or_404(team_id, new_owner_id)

    with transaction("Team"):
        target.role = ROLE_OWNER
        db.session.flush()
        actor.role = ROLE_ADMIN
        team.touch()
        write_activity(
            team_id=team_id,
            actor_id=actor_id,
            action="team.ownership_transferred",
            entity_type="team",
            entity_id=team_id,
            metadata={"from_user_id": actor_id, "to_user_id": new_owner_id},
        )

    logger.info("Ownership of team %s transferred %s → %s", team_id, actor_id, new_owner_id,
                extra={"team_id": team_id})
    return target
