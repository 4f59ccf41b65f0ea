"""
TeamFlow
Activity domain model.

Models:
    - ActivityRecord: immutable, append-only log of every mutating operation
      inside a team.  Rows disappear only when their whole team is deleted.
"""

import json

from sqlalchemy import event

from teamflow.models import db
from teamflow.utils.helpers import isoformat, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

ACTIVITY_ENTITY_TYPES = {
    "team", "membership", "invitation",
    "assignment", "approval", "comment",
}

ACTIVITY_ACTIONS = {
    # Team & membership
    "team.created",
    "team.updated",
    "team.ownership_transferred",
    "member.invited",
    "member.role_updated",
    "member.removed",
    "invitation.accepted",
    "invitation.revoked",
    "invitation.expired",
    # Assignment lifecycle
    "assignment.created",
    "assignment.status_updated",
    # Approval lifecycle
    "approval.requested",
    "approval.approved",
    "approval.rejected",
    # Discussion
    "comment.created",
}

SYSTEM_ACTOR = "system"


class ActivityRecord(db.Model):
    """
    One row per successful mutation.

    ``id`` is an autoincrement sequence; ordering is (created_at, id) so that
    rows written in the same instant keep insertion order.
    """

    __tablename__ = "activity_records"
    __table_args__ = (
        db.Index("idx_activity_team_created", "team_id", "created_at", "id"),
        db.Index("idx_activity_entity", "entity_type", "entity_id"),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    team_id = db.Column(
        db.String(36),
        db.ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    actor_id = db.Column(db.String(64), nullable=False)
    action = db.Column(
        db.String(60), nullable=False,
        comment="assignment.created | approval.approved | member.removed | …",
    )
    entity_type = db.Column(db.String(30), nullable=False)
    entity_id = db.Column(db.String(36), nullable=False)
    metadata_json = db.Column("metadata", db.Text, nullable=False, default="{}")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    # ── Helpers ──────────────────────────────────────────────────────────

    @property
    def details(self) -> dict:
        """Deserialise the stored metadata mapping."""
        try:
            return json.loads(self.metadata_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "team_id": self.team_id,
            "actor_id": self.actor_id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "metadata": self.details,
            "created_at": isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<ActivityRecord {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


@event.listens_for(ActivityRecord, "before_update")
def _reject_activity_update(mapper, connection, target):
    raise RuntimeError(f"ActivityRecord {target.id} is append-only")


# ── Writer ───────────────────────────────────────────────────────────────────

def write_activity(
    *,
    team_id: str,
    actor_id: str,
    action: str,
    entity_type: str,
    entity_id: str,
    metadata: dict | None = None,
) -> ActivityRecord:
    """
    Append a single activity row.  Uses ``flush`` so the caller's
    transaction owns the commit; any failure here rolls back the primary
    mutation with it.

    Only services call this.  There is no HTTP route that writes activity.
    """
    if action not in ACTIVITY_ACTIONS:
        raise ValueError(f"Unknown activity action: {action}")
    if entity_type not in ACTIVITY_ENTITY_TYPES:
        raise ValueError(f"Unknown activity entity_type: {entity_type}")

    record = ActivityRecord(
        team_id=team_id,
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        metadata_json=json.dumps(metadata or {}, default=str),
        created_at=utcnow(),
    )
    db.session.add(record)
    db.session.flush()
    return record
