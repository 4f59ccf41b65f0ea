"""
Approval Workflow Service.

Gatekeeping before a post may publish.

Design decisions:
    - pending → approved | rejected; both are terminal.
    - One pending approval per (team_id, post_id).  The service checks first;
      the partial unique index turns a racing duplicate into ConflictError.
    - A new approval may be requested after the previous one is resolved, so
      the latest row per post is the post's current approval state.
    - Approving records a decision only.  Publishing is done by the content
      service, which reads ``get_post_approval_status``.
    - Two approvers deciding the same approval race on the row version; the
      loser gets ConflictError.
"""

from __future__ import annotations

import logging

from teamflow.core.exceptions import ConflictError, NotFoundError, StateError, ValidationError
from teamflow.models import db
from teamflow.models.activity import write_activity
from teamflow.models.collaboration import (
    APPROVAL_APPROVED,
    APPROVAL_DECISIONS,
    APPROVAL_PENDING,
    APPROVAL_STATUSES,
    Approval,
)
from teamflow.models.team import Team
from teamflow.services.helpers.transaction import transaction
from teamflow.services.notification import notify
from teamflow.services.permission import (
    CONTENT_APPROVE,
    CONTENT_EDIT,
    CONTENT_VIEW,
    require_capability,
)
from teamflow.utils.helpers import clean_id, clean_text, utcnow

logger = logging.getLogger(__name__)


def _get_team_or_404(team_id: str) -> Team:
    team = db.session.get(Team, team_id)
    if not team:
        raise NotFoundError(resource="Team", resource_id=team_id)
    return team


def _pending_for_post(team_id: str, post_id: str) -> Approval | None:
    return Approval.query.filter_by(
        team_id=team_id, post_id=post_id, status=APPROVAL_PENDING,
    ).first()


# ── Commands ──────────────────────────────────────────────────────────────────


def request_approval(actor_id: str, team_id: str, post_id: str) -> Approval:
    """
    Open an approval for a post.

    Raises:
        AuthorizationError: actor lacks content.edit.
        ValidationError: post_id missing.
        ConflictError: the post already has a pending approval in this team.
    """
    _get_team_or_404(team_id)
    require_capability(team_id, actor_id, CONTENT_EDIT)
    post_id = clean_id(post_id, "post_id")

    existing = _pending_for_post(team_id, post_id)
    if existing:
        raise ConflictError(
            "Approval",
            reason=f"Post {post_id} already has a pending approval ({existing.id})",
        )

    with transaction("Approval"):
        approval = Approval(
            team_id=team_id,
            post_id=post_id,
            requester_id=actor_id,
            status=APPROVAL_PENDING,
            created_at=utcnow(),
        )
        db.session.add(approval)
        db.session.flush()
        write_activity(
            team_id=team_id,
            actor_id=actor_id,
            action="approval.requested",
            entity_type="approval",
            entity_id=approval.id,
            metadata={"post_id": post_id},
        )

    logger.info("Approval %s requested for post %s", approval.id, post_id,
                extra={"team_id": team_id, "actor_id": actor_id})
    return approval


def update_approval(
    actor_id: str,
    approval_id: str,
    decision: str,
    feedback: str | None = None,
) -> Approval:
    """
    Approve or reject a pending approval.

    Raises:
        NotFoundError: approval absent.
        AuthorizationError: actor lacks content.approve.
        ValidationError: decision is not approved/rejected.
        StateError: approval already resolved.
        ConflictError: another approver resolved it concurrently.
    """
    approval = db.session.get(Approval, approval_id)
    if not approval:
        raise NotFoundError(resource="Approval", resource_id=approval_id)
    require_capability(approval.team_id, actor_id, CONTENT_APPROVE)

    decision = clean_text(decision, "decision")
    feedback = clean_text(feedback, "feedback")
    if decision not in APPROVAL_DECISIONS:
        raise ValidationError(
            f"decision must be one of {sorted(APPROVAL_DECISIONS)}",
            details={"decision": "invalid"},
        )
    if approval.status != APPROVAL_PENDING:
        raise StateError("Approval", approval.id, current=approval.status, target=decision,
                         reason="approval already resolved")

    with transaction("Approval"):
        approval.status = decision
        approval.approver_id = actor_id
        approval.feedback = feedback
        approval.resolved_at = utcnow()
        write_activity(
            team_id=approval.team_id,
            actor_id=actor_id,
            action=f"approval.{decision}",
            entity_type="approval",
            entity_id=approval.id,
            metadata={"post_id": approval.post_id, "feedback": feedback},
        )

    logger.info("Approval %s %s by %s", approval.id, decision, actor_id,
                extra={"team_id": approval.team_id, "actor_id": actor_id})
    notify("approval.resolved", {
        "team_id": approval.team_id,
        "approval_id": approval.id,
        "post_id": approval.post_id,
        "status": approval.status,
        "requester_id": approval.requester_id,
        "approver_id": actor_id,
    })
    return approval


# ── Queries ───────────────────────────────────────────────────────────────────


def list_approvals(
    actor_id: str,
    team_id: str,
    *,
    status: str | None = None,
    post_id: str | None = None,
) -> list[Approval]:
    """Approvals in a team, newest first."""
    _get_team_or_404(team_id)
    require_capability(team_id, actor_id, CONTENT_VIEW)
    if status is not None and status not in APPROVAL_STATUSES:
        raise ValidationError(
            f"status must be one of {sorted(APPROVAL_STATUSES)}", details={"status": "invalid"},
        )
    q = Approval.query.filter_by(team_id=team_id)
    if status:
        q = q.filter_by(status=status)
    if post_id:
        q = q.filter_by(post_id=str(post_id))
    return q.order_by(Approval.created_at.desc(), Approval.id).all()


def pending_approvals(actor_id: str, team_id: str) -> list[Approval]:
    return list_approvals(actor_id, team_id, status=APPROVAL_PENDING)


def get_post_approval_status(actor_id: str, team_id: str, post_id: str) -> dict:
    """
    Current approval state of a post.

    Returns:
        {"post_id", "status", "approval", "publishable"}; status is None
        when approval was never requested.
    """
    _get_team_or_404(team_id)
    require_capability(team_id, actor_id, CONTENT_VIEW)
    latest = (
        Approval.query.filter_by(team_id=team_id, post_id=str(post_id))
        .order_by(Approval.created_at.desc())
        .first()
    )
    return {
        "post_id": str(post_id),
        "status": latest.status if latest else None,
        "approval": latest.to_dict() if latest else None,
        "publishable": bool(latest and latest.status == APPROVAL_APPROVED),
    }
