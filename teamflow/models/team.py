"""
TeamFlow
Team domain model.

Models:
    - Team: aggregate root for memberships, invitations, assignments,
      approvals, comments and the team's activity log
    - Membership: (team, user) pair with a role
    - Invitation: pending seat offered to an email address
"""

from datetime import timedelta

from teamflow.models import db
from teamflow.utils.helpers import as_utc, isoformat, new_id, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

ROLE_OWNER = "owner"
ROLE_ADMIN = "admin"
ROLE_EDITOR = "editor"
ROLE_VIEWER = "viewer"

ROLES = frozenset({ROLE_OWNER, ROLE_ADMIN, ROLE_EDITOR, ROLE_VIEWER})
INVITABLE_ROLES = frozenset({ROLE_ADMIN, ROLE_EDITOR, ROLE_VIEWER})

INVITATION_PENDING = "pending"
INVITATION_ACCEPTED = "accepted"
INVITATION_REVOKED = "revoked"
INVITATION_EXPIRED = "expired"

INVITATION_STATUSES = frozenset({
    INVITATION_PENDING, INVITATION_ACCEPTED, INVITATION_REVOKED, INVITATION_EXPIRED,
})

TEAM_NAME_MAX = 120


class Team(db.Model):
    """
    A collaboration workspace.

    ``version`` is the optimistic-concurrency token: every membership change
    touches the team row, so two actors racing on the same team's roster
    cannot both commit.
    """

    __tablename__ = "teams"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(TEAM_NAME_MAX), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    version = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    memberships = db.relationship(
        "Membership", backref="team",
        cascade="all, delete-orphan",
    )
    invitations = db.relationship(
        "Invitation", backref="team",
        cascade="all, delete-orphan",
    )
    assignments = db.relationship(
        "Assignment", backref="team",
        cascade="all, delete-orphan",
    )
    approvals = db.relationship(
        "Approval", backref="team",
        cascade="all, delete-orphan",
    )
    comments = db.relationship(
        "TeamComment", backref="team",
        cascade="all, delete-orphan",
    )
    activity = db.relationship(
        "ActivityRecord", backref="team",
        cascade="all, delete-orphan",
    )

    def touch(self):
        """Mark the aggregate as modified so the version check runs on flush."""
        self.updated_at = utcnow()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_by": self.created_by,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<Team {self.id}: {self.name}>"


class Membership(db.Model):
    """A user's seat in a team."""

    __tablename__ = "memberships"
    __table_args__ = (
        db.UniqueConstraint("team_id", "user_id", name="uq_membership_team_user"),
        db.Index("idx_membership_team_role", "team_id", "role"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    team_id = db.Column(
        db.String(36),
        db.ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = db.Column(db.String(64), nullable=False, index=True)
    email = db.Column(db.String(254), nullable=True, comment="Captured from the accepted invitation")
    role = db.Column(db.String(20), nullable=False)
    invited_by = db.Column(db.String(64), nullable=True)
    joined_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "team_id": self.team_id,
            "user_id": self.user_id,
            "email": self.email,
            "role": self.role,
            "invited_by": self.invited_by,
            "joined_at": isoformat(self.joined_at),
        }

    def __repr__(self):
        return f"<Membership {self.team_id}/{self.user_id}: {self.role}>"


class Invitation(db.Model):
    """
    Offer of a seat to an email address.

    pending → accepted | revoked | expired. Terminal states are final.
    Expiry is evaluated on read against ``expires_at``.
    """

    __tablename__ = "invitations"
    __table_args__ = (
        db.Index("idx_invitation_team_email_status", "team_id", "email", "status"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    team_id = db.Column(
        db.String(36),
        db.ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    email = db.Column(db.String(254), nullable=False)
    role = db.Column(db.String(20), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=INVITATION_PENDING)
    invited_by = db.Column(db.String(64), nullable=False)
    accepted_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @staticmethod
    def expiry_from(created_at, ttl_hours: int):
        return as_utc(created_at) + timedelta(hours=ttl_hours)

    def is_past_ttl(self, now=None) -> bool:
        now = as_utc(now) or utcnow()
        return now >= as_utc(self.expires_at)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "team_id": self.team_id,
            "email": self.email,
            "role": self.role,
            "status": self.status,
            "invited_by": self.invited_by,
            "accepted_by": self.accepted_by,
            "created_at": isoformat(self.created_at),
            "expires_at": isoformat(self.expires_at),
            "resolved_at": isoformat(self.resolved_at),
        }

    def __repr__(self):
        return f"<Invitation {self.id}: {self.email} ({self.status})>"
