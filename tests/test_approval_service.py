"""
Approval workflow tests.

Tests cover:
  - Request: capability, one pending approval per post, re-request after resolution
  - Decide: capability, approve/reject, terminal states, feedback
  - Post approval status (publishability)
  - Concurrent deciders: the losing write gets ConflictError
  - Pending index rejects a racing duplicate request
"""
import pytest
import sqlalchemy as sa

from conftest import ADMIN, EDITOR, OUTSIDER, OWNER, VIEWER
from teamflow.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StateError,
    ValidationError,
)
from teamflow.models import db
from teamflow.models.activity import ActivityRecord
from teamflow.models.collaboration import Approval
from teamflow.services import approval_service
from teamflow.utils.helpers import as_utc, utcnow


@pytest.fixture()
def approval(staffed_team):
    return approval_service.request_approval(EDITOR, staffed_team.id, "post-1")


# ═════════════════════════════════════════════════════════════════════════
# REQUEST
# ═════════════════════════════════════════════════════════════════════════

class TestRequestApproval:
    def test_editor_requests(self, staffed_team) -> None:
        a = approval_service.request_approval(EDITOR, staffed_team.id, "post-1")
        assert a.status == "pending"
        assert a.requester_id == EDITOR
        assert a.resolved_at is None
        record = ActivityRecord.query.filter_by(action="approval.requested").one()
        assert record.entity_id == a.id

    def test_viewer_cannot_request(self, staffed_team) -> None:
        with pytest.raises(AuthorizationError):
            approval_service.request_approval(VIEWER, staffed_team.id, "post-1")

    def test_second_pending_conflicts_then_rerequest_after_reject(self, staffed_team) -> None:
        """Only one pending approval per post; a resolved one frees the slot."""
        first = approval_service.request_approval(EDITOR, staffed_team.id, "post-1")
        with pytest.raises(ConflictError):
            approval_service.request_approval(EDITOR, staffed_team.id, "post-1")

        approval_service.update_approval(OWNER, first.id, "rejected", feedback="Tone is off")
        third = approval_service.request_approval(EDITOR, staffed_team.id, "post-1")

        assert third.id != first.id
        assert third.status == "pending"
        assert Approval.query.filter_by(post_id="post-1").count() == 2

    def test_other_post_is_independent(self, approval, staffed_team) -> None:
        other = approval_service.request_approval(EDITOR, staffed_team.id, "post-2")
        assert other.status == "pending"

    def test_racing_duplicate_hits_unique_index(self, approval, staffed_team, monkeypatch) -> None:
        # Simulate a writer that passed the pre-check before the first commit landed
        monkeypatch.setattr(approval_service, "_pending_for_post", lambda team_id, post_id: None)
        with pytest.raises(ConflictError):
            approval_service.request_approval(EDITOR, staffed_team.id, "post-1")
        assert Approval.query.filter_by(status="pending").count() == 1

    def test_missing_post_id(self, staffed_team) -> None:
        with pytest.raises(ValidationError):
            approval_service.request_approval(EDITOR, staffed_team.id, "")

    def test_unknown_team(self) -> None:
        with pytest.raises(NotFoundError):
            approval_service.request_approval(EDITOR, "missing", "post-1")


# ═════════════════════════════════════════════════════════════════════════
# DECIDE
# ═════════════════════════════════════════════════════════════════════════

class TestUpdateApproval:
    def test_editor_denied_owner_approves(self, approval) -> None:
        with pytest.raises(AuthorizationError):
            approval_service.update_approval(EDITOR, approval.id, "approved")
        assert db.session.get(Approval, approval.id).status == "pending"

        before = utcnow()
        resolved = approval_service.update_approval(OWNER, approval.id, "approved")

        assert resolved.status == "approved"
        assert resolved.approver_id == OWNER
        assert as_utc(resolved.resolved_at) >= before

    def test_admin_rejects_with_feedback(self, approval) -> None:
        resolved = approval_service.update_approval(ADMIN, approval.id, "rejected", feedback="Needs sources")
        assert resolved.status == "rejected"
        assert resolved.feedback == "Needs sources"
        record = ActivityRecord.query.filter_by(action="approval.rejected").one()
        assert record.entity_id == approval.id
        assert record.details["feedback"] == "Needs sources"

    def test_resolved_is_terminal(self, approval) -> None:
        approval_service.update_approval(OWNER, approval.id, "approved")
        with pytest.raises(StateError):
            approval_service.update_approval(OWNER, approval.id, "rejected")
        assert db.session.get(Approval, approval.id).status == "approved"

    def test_invalid_decision(self, approval) -> None:
        with pytest.raises(ValidationError):
            approval_service.update_approval(OWNER, approval.id, "pending")

    def test_outsider_denied(self, approval) -> None:
        with pytest.raises(AuthorizationError):
            approval_service.update_approval(OUTSIDER, approval.id, "approved")

    def test_unknown_approval(self, staffed_team) -> None:
        with pytest.raises(NotFoundError):
            approval_service.update_approval(OWNER, "missing", "approved")

    def test_requester_with_approve_right_may_self_approve(self, staffed_team) -> None:
        a = approval_service.request_approval(ADMIN, staffed_team.id, "post-9")
        assert approval_service.update_approval(ADMIN, a.id, "approved").status == "approved"

    def test_concurrent_decision_conflicts(self, approval) -> None:
        """Second approver acting on a stale read loses."""
        row = db.session.get(Approval, approval.id)
        db.session.execute(
            sa.update(Approval.__table__)
            .where(Approval.__table__.c.id == row.id)
            .values(version=row.version + 1)
        )
        with pytest.raises(ConflictError):
            approval_service.update_approval(ADMIN, approval.id, "approved")

        row = db.session.get(Approval, approval.id)
        assert row.status == "pending"
        assert row.approver_id is None
        assert ActivityRecord.query.filter_by(action="approval.approved").count() == 0

    def test_activity_failure_rolls_back_decision(self, approval, monkeypatch) -> None:
        def _broken(**kwargs):
            raise RuntimeError("activity store unavailable")

        monkeypatch.setattr(approval_service, "write_activity", _broken)
        with pytest.raises(RuntimeError):
            approval_service.update_approval(OWNER, approval.id, "approved")
        assert db.session.get(Approval, approval.id).status == "pending"


# ═════════════════════════════════════════════════════════════════════════
# QUERIES
# ═════════════════════════════════════════════════════════════════════════

class TestApprovalQueries:
    def test_post_status_lifecycle(self, staffed_team) -> None:
        status = approval_service.get_post_approval_status(VIEWER, staffed_team.id, "post-1")
        assert status == {"post_id": "post-1", "status": None, "approval": None, "publishable": False}

        a = approval_service.request_approval(EDITOR, staffed_team.id, "post-1")
        status = approval_service.get_post_approval_status(VIEWER, staffed_team.id, "post-1")
        assert status["status"] == "pending"
        assert status["publishable"] is False

        approval_service.update_approval(OWNER, a.id, "approved")
        status = approval_service.get_post_approval_status(VIEWER, staffed_team.id, "post-1")
        assert status["status"] == "approved"
        assert status["publishable"] is True
        assert status["approval"]["id"] == a.id

    def test_pending_approvals(self, staffed_team) -> None:
        a1 = approval_service.request_approval(EDITOR, staffed_team.id, "post-1")
        a2 = approval_service.request_approval(EDITOR, staffed_team.id, "post-2")
        approval_service.update_approval(OWNER, a1.id, "approved")
        pending = approval_service.pending_approvals(VIEWER, staffed_team.id)
        assert [a.id for a in pending] == [a2.id]

    def test_list_filters(self, staffed_team) -> None:
        a1 = approval_service.request_approval(EDITOR, staffed_team.id, "post-1")
        approval_service.request_approval(EDITOR, staffed_team.id, "post-2")
        approval_service.update_approval(OWNER, a1.id, "rejected")
        rejected = approval_service.list_approvals(VIEWER, staffed_team.id, status="rejected")
        by_post = approval_service.list_approvals(VIEWER, staffed_team.id, post_id="post-2")
        assert [a.id for a in rejected] == [a1.id]
        assert [a.post_id for a in by_post] == ["post-2"]

    def test_list_rejects_unknown_status(self, staffed_team) -> None:
        with pytest.raises(ValidationError):
            approval_service.list_approvals(VIEWER, staffed_team.id, status="maybe")

    def test_outsider_cannot_read(self, staffed_team) -> None:
        with pytest.raises(AuthorizationError):
            approval_service.get_post_approval_status(OUTSIDER, staffed_team.id, "post-1")
