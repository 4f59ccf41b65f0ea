"""
Activity log tests.

Tests cover:
  - One record per successful mutation, none for failed ones
  - Newest-first listing with keyset cursor pagination
  - Page size defaults, caps and validation; malformed cursors
  - entity_type filter and per-entity history
  - Append-only enforcement and writer validation
"""
import pytest

from conftest import EDITOR, OUTSIDER, OWNER, VIEWER
from teamflow.core.exceptions import AuthorizationError, ValidationError
from teamflow.models import db
from teamflow.models.activity import ActivityRecord, write_activity
from teamflow.services import activity_service, approval_service, assignment_service, comment_service, team_service


def _comment_burst(team_id, n):
    for i in range(n):
        comment_service.create_comment(EDITOR, team_id, "post-1", f"note {i}")


# ═════════════════════════════════════════════════════════════════════════
# ONE RECORD PER MUTATION
# ═════════════════════════════════════════════════════════════════════════

class TestRecordPerMutation:
    def test_every_mutation_appends_exactly_one(self, staffed_team) -> None:
        team_id = staffed_team.id
        expected = ["team.created"]

        def _check():
            actions = [r.action for r in ActivityRecord.query.filter_by(team_id=team_id)
                       .order_by(ActivityRecord.id).all()]
            assert actions == expected

        inv = team_service.invite_member(OWNER, team_id, "u9@acme.io", "viewer")
        expected.append("member.invited")
        _check()
        team_service.accept_invitation(inv.id, "u-9")
        expected.append("invitation.accepted")
        _check()
        a = assignment_service.create_assignment(OWNER, team_id, "post-1", EDITOR)
        expected.append("assignment.created")
        _check()
        assignment_service.update_assignment_status(EDITOR, a.id, "in_progress")
        expected.append("assignment.status_updated")
        _check()
        ap = approval_service.request_approval(EDITOR, team_id, "post-1")
        expected.append("approval.requested")
        _check()
        approval_service.update_approval(OWNER, ap.id, "approved")
        expected.append("approval.approved")
        _check()
        team_service.update_member_role(OWNER, team_id, "u-9", "editor")
        expected.append("member.role_updated")
        _check()
        team_service.remove_member(OWNER, team_id, "u-9")
        expected.append("member.removed")
        _check()

    def test_failed_operations_append_nothing(self, staffed_team) -> None:
        before = ActivityRecord.query.count()
        with pytest.raises(AuthorizationError):
            approval_service.request_approval(VIEWER, staffed_team.id, "post-1")
        with pytest.raises(ValidationError):
            team_service.update_member_role(OWNER, staffed_team.id, OWNER, "viewer")
        assert ActivityRecord.query.count() == before

    def test_actor_and_entity_recorded(self, staffed_team) -> None:
        ap = approval_service.request_approval(EDITOR, staffed_team.id, "post-1")
        record = ActivityRecord.query.filter_by(entity_id=ap.id).one()
        assert record.actor_id == EDITOR
        assert record.entity_type == "approval"
        assert record.to_dict()["metadata"] == {"post_id": "post-1"}


# ═════════════════════════════════════════════════════════════════════════
# LISTING & PAGINATION
# ═════════════════════════════════════════════════════════════════════════

class TestListActivity:
    def test_newest_first(self, staffed_team) -> None:
        _comment_burst(staffed_team.id, 3)
        page = activity_service.list_activity(VIEWER, staffed_team.id)
        ids = [r.id for r in page.items]
        assert ids == sorted(ids, reverse=True)
        assert page.items[-1].action == "team.created"
        assert page.next_cursor is None

    def test_cursor_walks_every_record_once(self, staffed_team) -> None:
        _comment_burst(staffed_team.id, 6)  # 7 records with team.created
        seen, cursor = [], None
        for _ in range(10):
            page = activity_service.list_activity(VIEWER, staffed_team.id, limit=3, cursor=cursor)
            seen.extend(r.id for r in page.items)
            cursor = page.next_cursor
            if cursor is None:
                break
        all_ids = [r.id for r in ActivityRecord.query.filter_by(team_id=staffed_team.id).all()]
        assert seen == sorted(all_ids, reverse=True)
        assert len(seen) == 7

    def test_cursor_is_stable_while_new_rows_arrive(self, staffed_team) -> None:
        _comment_burst(staffed_team.id, 4)
        first = activity_service.list_activity(VIEWER, staffed_team.id, limit=2)
        _comment_burst(staffed_team.id, 2)
        second = activity_service.list_activity(VIEWER, staffed_team.id, limit=2, cursor=first.next_cursor)
        assert max(r.id for r in second.items) < min(r.id for r in first.items)

    def test_exact_page_has_no_cursor(self, staffed_team) -> None:
        _comment_burst(staffed_team.id, 1)
        page = activity_service.list_activity(VIEWER, staffed_team.id, limit=2)
        assert len(page.items) == 2
        assert page.next_cursor is None

    def test_entity_type_filter(self, staffed_team) -> None:
        _comment_burst(staffed_team.id, 2)
        approval_service.request_approval(EDITOR, staffed_team.id, "post-1")
        page = activity_service.list_activity(VIEWER, staffed_team.id, entity_type="comment")
        assert {r.entity_type for r in page.items} == {"comment"}
        assert len(page.items) == 2

    def test_unknown_entity_type(self, staffed_team) -> None:
        with pytest.raises(ValidationError):
            activity_service.list_activity(VIEWER, staffed_team.id, entity_type="post")

    def test_limit_capped(self, app, staffed_team, monkeypatch) -> None:
        monkeypatch.setitem(app.config, "ACTIVITY_PAGE_MAX", 2)
        _comment_burst(staffed_team.id, 3)
        page = activity_service.list_activity(VIEWER, staffed_team.id, limit=50)
        assert len(page.items) == 2
        assert page.next_cursor is not None

    def test_default_limit_from_config(self, app, staffed_team, monkeypatch) -> None:
        monkeypatch.setitem(app.config, "ACTIVITY_PAGE_SIZE", 1)
        _comment_burst(staffed_team.id, 1)
        assert len(activity_service.list_activity(VIEWER, staffed_team.id).items) == 1

    @pytest.mark.parametrize("limit", [0, -5, "ten"])
    def test_invalid_limit(self, staffed_team, limit) -> None:
        with pytest.raises(ValidationError):
            activity_service.list_activity(VIEWER, staffed_team.id, limit=limit)

    @pytest.mark.parametrize("cursor", ["not-base64!!", "Zm9vYmFy"])
    def test_malformed_cursor(self, staffed_team, cursor) -> None:
        with pytest.raises(ValidationError):
            activity_service.list_activity(VIEWER, staffed_team.id, cursor=cursor)

    def test_outsider_cannot_read(self, staffed_team) -> None:
        with pytest.raises(AuthorizationError):
            activity_service.list_activity(OUTSIDER, staffed_team.id)

    def test_entity_history_oldest_first(self, staffed_team) -> None:
        ap = approval_service.request_approval(EDITOR, staffed_team.id, "post-1")
        approval_service.update_approval(OWNER, ap.id, "rejected")
        history = activity_service.list_entity_activity(VIEWER, staffed_team.id, "approval", ap.id)
        assert [r.action for r in history] == ["approval.requested", "approval.rejected"]


# ═════════════════════════════════════════════════════════════════════════
# APPEND-ONLY
# ═════════════════════════════════════════════════════════════════════════

class TestAppendOnly:
    def test_update_rejected(self, team) -> None:
        record = ActivityRecord.query.filter_by(team_id=team.id).first()
        record.action = "team.updated"
        with pytest.raises(RuntimeError):
            db.session.commit()
        db.session.rollback()
        assert ActivityRecord.query.filter_by(team_id=team.id).first().action == "team.created"

    def test_writer_rejects_unknown_action(self, team) -> None:
        with pytest.raises(ValueError):
            write_activity(team_id=team.id, actor_id=OWNER, action="team.exploded",
                           entity_type="team", entity_id=team.id)

    def test_writer_rejects_unknown_entity_type(self, team) -> None:
        with pytest.raises(ValueError):
            write_activity(team_id=team.id, actor_id=OWNER, action="team.updated",
                           entity_type="planet", entity_id=team.id)
