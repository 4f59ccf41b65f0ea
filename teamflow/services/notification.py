"""
TeamFlow
Notification port.

Delivery (email, push, in-app) belongs to another service.  This module only
hands events to whatever notifier the app has registered, after the
triggering transaction has committed.  A failing notifier is logged and never
fails the operation that triggered it.

Events:
    invitation.created   {team_id, invitation_id, email, role, invited_by}
    assignment.created   {team_id, assignment_id, post_id, assignee_id, due_date}
    approval.resolved    {team_id, approval_id, post_id, status, requester_id, approver_id}

Usage:
    app.extensions[NOTIFIER_KEY] = MyNotifier()
    notify("approval.resolved", {...})
"""

import logging
from typing import Protocol

from flask import current_app, has_app_context

logger = logging.getLogger(__name__)

NOTIFIER_KEY = "teamflow.notifier"

NOTIFICATION_EVENTS = {"invitation.created", "assignment.created", "approval.resolved"}


class Notifier(Protocol):
    def send(self, event: str, payload: dict) -> None: ...


class LoggingNotifier:
    """Default notifier: records the event in the application log."""

    def send(self, event: str, payload: dict) -> None:
        logger.info("Notification %s: %s", event, payload,
                    extra={"event_type": event, "team_id": payload.get("team_id")})


def get_notifier() -> Notifier | None:
    if not has_app_context():
        return None
    return current_app.extensions.get(NOTIFIER_KEY)


def notify(event: str, payload: dict) -> bool:
    """
    Fire-and-forget delivery of a committed event.

    Returns True if the notifier accepted the event, False if none is
    registered or it raised.
    """
    notifier = get_notifier()
    if notifier is None:
        return False
    try:
        notifier.send(event, payload)
        return True
    except Exception:
        logger.warning("Notifier failed for %s; continuing", event, exc_info=True,
                       extra={"event_type": event, "team_id": payload.get("team_id")})
        return False
