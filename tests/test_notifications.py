"""
Notification port tests.

Tests cover:
  - Events emitted after commit for invitation, assignment, approval resolution
  - No event for failed operations
  - A failing notifier never fails the triggering operation
"""
import pytest

from conftest import EDITOR, OWNER, VIEWER
from teamflow.core.exceptions import AuthorizationError
from teamflow.models.collaboration import Approval
from teamflow.services import approval_service, assignment_service, team_service
from teamflow.services.notification import NOTIFIER_KEY, notify


class TestEvents:
    def test_invitation_created(self, team, notifications) -> None:
        inv = team_service.invite_member(OWNER, team.id, "u2@acme.io", "editor")
        assert notifications.sent == [("invitation.created", {
            "team_id": team.id,
            "invitation_id": inv.id,
            "email": "u2@acme.io",
            "role": "editor",
            "invited_by": OWNER,
        })]

    def test_assignment_created(self, staffed_team, notifications) -> None:
        a = assignment_service.create_assignment(OWNER, staffed_team.id, "post-1", EDITOR)
        event, payload = notifications.sent[0]
        assert event == "assignment.created"
        assert payload["assignment_id"] == a.id
        assert payload["assignee_id"] == EDITOR
        assert payload["due_date"] is None

    def test_approval_resolved(self, staffed_team, notifications) -> None:
        ap = approval_service.request_approval(EDITOR, staffed_team.id, "post-1")
        approval_service.update_approval(OWNER, ap.id, "approved")
        assert notifications.events() == ["approval.resolved"]
        payload = notifications.sent[0][1]
        assert payload["status"] == "approved"
        assert payload["requester_id"] == EDITOR
        assert payload["approver_id"] == OWNER

    def test_failed_operation_sends_nothing(self, staffed_team, notifications) -> None:
        with pytest.raises(AuthorizationError):
            team_service.invite_member(VIEWER, staffed_team.id, "u2@acme.io", "viewer")
        assert notifications.sent == []


class _ExplodingNotifier:
    def send(self, event, payload):
        raise ConnectionError("mail relay down")


class TestBestEffort:
    def test_notifier_failure_does_not_fail_operation(self, app, staffed_team, monkeypatch) -> None:
        monkeypatch.setitem(app.extensions, NOTIFIER_KEY, _ExplodingNotifier())
        ap = approval_service.request_approval(EDITOR, staffed_team.id, "post-1")
        resolved = approval_service.update_approval(OWNER, ap.id, "rejected")
        assert resolved.status == "rejected"
        assert Approval.query.filter_by(status="rejected").count() == 1

    def test_notify_reports_outcome(self, app, monkeypatch, notifications) -> None:
        assert notify("approval.resolved", {"team_id": "t"}) is True
        monkeypatch.setitem(app.extensions, NOTIFIER_KEY, _ExplodingNotifier())
        assert notify("approval.resolved", {"team_id": "t"}) is False

    def test_no_notifier_registered(self, app, monkeypatch) -> None:
        monkeypatch.delitem(app.extensions, NOTIFIER_KEY)
        assert notify("approval.resolved", {"team_id": "t"}) is False
