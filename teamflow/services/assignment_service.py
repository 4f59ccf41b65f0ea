"""
Assignment Lifecycle Service.

Manages work items on posts with:
  - Transition validation (pending → in_progress → completed)
  - Assignee / manager authorization for status changes
  - Derived ``overdue`` status, computed on read and never stored
  - Activity log entry per mutation

2 valid transitions:
  start     pending      → in_progress
  complete  in_progress  → completed

An assignment past its due date is still in its stored state, so an overdue
in_progress assignment can be completed like any other.

Usage:
    from teamflow.services.assignment_service import update_assignment_status

    assignment = update_assignment_status(actor_id="u-1", assignment_id="abc",
                                          new_status="in_progress")
"""

import logging

from sqlalchemy import or_

from teamflow.core.exceptions import AuthorizationError, NotFoundError, StateError, ValidationError
from teamflow.models import db
from teamflow.models.activity import write_activity
from teamflow.models.collaboration import (
    ASSIGNMENT_COMPLETED,
    ASSIGNMENT_IN_PROGRESS,
    ASSIGNMENT_OVERDUE,
    ASSIGNMENT_PENDING,
    ASSIGNMENT_STORED_STATUSES,
    Assignment,
)
from teamflow.models.team import Team
from teamflow.services import approval_service
from teamflow.services.helpers.transaction import transaction
from teamflow.services.notification import notify
from teamflow.services.permission import (
    CONTENT_EDIT,
    CONTENT_VIEW,
    TEAM_MANAGE,
    capability,
    get_membership,
    require_capability,
)
from teamflow.utils.helpers import as_utc, clean_id, clean_text, parse_datetime, utcnow

logger = logging.getLogger(__name__)


# Stored status → statuses it may move to
ASSIGNMENT_TRANSITIONS = {
    ASSIGNMENT_PENDING: {ASSIGNMENT_IN_PROGRESS},
    ASSIGNMENT_IN_PROGRESS: {ASSIGNMENT_COMPLETED},
    ASSIGNMENT_COMPLETED: set(),
}


def validate_assignment_transition(current: str, target: str) -> dict:
    """Validate whether ``current → target`` is a legal edge."""
    allowed = ASSIGNMENT_TRANSITIONS.get(current, set())
    if target not in allowed:
        return {"valid": False, "from": current, "to": target,
                "reason": f"Cannot move from '{current}' to '{target}'"}
    return {"valid": True, "from": current, "to": target, "reason": None}


def _get_team_or_404(team_id: str) -> Team:
    team = db.session.get(Team, team_id)
    if not team:
        raise NotFoundError(resource="Team", resource_id=team_id)
    return team


def _coerce_due_date(due_date):
    try:
        return parse_datetime(due_date)
    except ValueError as exc:
        raise ValidationError(str(exc), details={"due_date": "invalid"}) from exc


# ── Commands ──────────────────────────────────────────────────────────────────


def create_assignment(
    actor_id: str,
    team_id: str,
    post_id: str,
    assignee_id: str,
    due_date=None,
    notes: str | None = None,
) -> Assignment:
    """
    Assign a post to a team member.

    Raises:
        AuthorizationError: actor lacks content.edit.
        ValidationError: missing post_id, or assignee is not a team member.
    """
    team = _get_team_or_404(team_id)
    require_capability(team_id, actor_id, CONTENT_EDIT)

    post_id = clean_id(post_id, "post_id")
    assignee_id = clean_id(assignee_id, "assignee_id", required=False)
    notes = clean_text(notes, "notes")
    if not assignee_id or get_membership(team_id, assignee_id) is None:
        raise ValidationError(
            "Assignee must be a member of the team", details={"assignee_id": "not_a_member"},
        )
    due = _coerce_due_date(due_date)

    with transaction("Assignment"):
        now = utcnow()
        # Conditional on the roster the assignee check saw
        team.touch()
        assignment = Assignment(
            team_id=team_id,
            post_id=post_id,
            assignee_id=assignee_id,
            assigner_id=actor_id,
            due_date=due,
            notes=notes,
            status=ASSIGNMENT_PENDING,
            created_at=now,
            updated_at=now,
        )
        db.session.add(assignment)
        db.session.flush()
        write_activity(
            team_id=team_id,
            actor_id=actor_id,
            action="assignment.created",
            entity_type="assignment",
            entity_id=assignment.id,
            metadata={"post_id": assignment.post_id, "assigned_to": assignee_id},
        )

    logger.info("Assignment %s created for post %s → %s", assignment.id, post_id, assignee_id,
                extra={"team_id": team_id, "actor_id": actor_id})
    notify("assignment.created", {
        "team_id": team_id,
        "assignment_id": assignment.id,
        "post_id": assignment.post_id,
        "assignee_id": assignee_id,
        "due_date": due.isoformat() if due else None,
    })
    return assignment


def update_assignment_status(actor_id: str, assignment_id: str, new_status: str) -> Assignment:
    """
    Execute an assignment lifecycle transition.

    Only the assignee (while still a member) or a member holding team.manage
    may move an assignment.

    Raises:
        NotFoundError, AuthorizationError, ValidationError, StateError
    """
    assignment = db.session.get(Assignment, assignment_id)
    if not assignment:
        raise NotFoundError(resource="Assignment", resource_id=assignment_id)

    membership = get_membership(assignment.team_id, actor_id) if actor_id else None
    is_assignee = membership is not None and actor_id == assignment.assignee_id
    if not (is_assignee or capability(membership.role if membership else None, TEAM_MANAGE)):
        raise AuthorizationError(actor_id, "update assignment status", assignment.team_id)

    new_status = clean_text(new_status, "status")
    if new_status == ASSIGNMENT_OVERDUE:
        raise ValidationError("'overdue' is derived from the due date and cannot be set",
                              details={"status": "derived"})
    if new_status not in ASSIGNMENT_STORED_STATUSES:
        raise ValidationError(
            f"status must be one of {sorted(ASSIGNMENT_STORED_STATUSES)}",
            details={"status": "invalid"},
        )

    validation = validate_assignment_transition(assignment.status, new_status)
    if not validation["valid"]:
        raise StateError("Assignment", assignment.id, current=assignment.status,
                         target=new_status, reason=validation["reason"])

    previous_status = assignment.status
    with transaction("Assignment"):
        assignment.status = new_status
        assignment.updated_at = utcnow()
        write_activity(
            team_id=assignment.team_id,
            actor_id=actor_id,
            action="assignment.status_updated",
            entity_type="assignment",
            entity_id=assignment.id,
            metadata={"from": previous_status, "to": new_status},
        )

    logger.info("Assignment %s: %s → %s", assignment.id, previous_status, new_status,
                extra={"team_id": assignment.team_id, "actor_id": actor_id})
    return assignment


# ── Queries ───────────────────────────────────────────────────────────────────


def list_assignments(
    actor_id: str,
    team_id: str,
    *,
    assignee_id: str | None = None,
    status: str | None = None,
    now=None,
) -> list[Assignment]:
    """
    Assignments in a team, newest first.

    ``status`` filters on the reported status, so ``overdue`` is accepted and
    ``pending``/``in_progress`` exclude overdue rows.
    """
    _get_team_or_404(team_id)
    require_capability(team_id, actor_id, CONTENT_VIEW)
    valid = ASSIGNMENT_STORED_STATUSES | {ASSIGNMENT_OVERDUE}
    if status is not None and status not in valid:
        raise ValidationError(f"status must be one of {sorted(valid)}", details={"status": "invalid"})
    now = as_utc(now) or utcnow()

    q = Assignment.query.filter_by(team_id=team_id)
    if assignee_id:
        q = q.filter_by(assignee_id=assignee_id)
    if status == ASSIGNMENT_OVERDUE:
        return _overdue_query(q, now)
    if status:
        q = q.filter_by(status=status)
    items = q.order_by(Assignment.created_at.desc(), Assignment.id).all()
    if status in (ASSIGNMENT_PENDING, ASSIGNMENT_IN_PROGRESS):
        items = [a for a in items if not a.is_overdue(now)]
    return items


def assignments_for_user(actor_id: str, team_id: str, user_id: str) -> list[Assignment]:
    return list_assignments(actor_id, team_id, assignee_id=user_id)


def overdue_assignments(actor_id: str, team_id: str, now=None) -> list[Assignment]:
    """Unfinished assignments whose due date has passed."""
    return list_assignments(actor_id, team_id, status=ASSIGNMENT_OVERDUE, now=now)


def _overdue_query(q, now) -> list[Assignment]:
    candidates = (
        q.filter(
            Assignment.due_date.isnot(None),
            or_(Assignment.status == ASSIGNMENT_PENDING, Assignment.status == ASSIGNMENT_IN_PROGRESS),
        )
        .order_by(Assignment.created_at.desc(), Assignment.id)
        .all()
    )
    # Compared in Python: SQLite stores naive timestamps
    return [a for a in candidates if a.is_overdue(now)]


def pending_approvals(actor_id: str, team_id: str):
    """Approvals awaiting a decision; see approval_service."""
    return approval_service.pending_approvals(actor_id, team_id)
