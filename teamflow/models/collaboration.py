"""
TeamFlow
Content collaboration domain model.

Models:
    - Assignment: who must work on which post, by when
    - Approval: gate a post must pass before it may publish
    - TeamComment: discussion on a post, one level of replies

``post_id`` is an opaque reference to content owned by another service.
"""

from teamflow.models import db
from teamflow.utils.helpers import as_utc, isoformat, new_id, utcnow

# ── Constants ────────────────────────────────────────────────────────────────

ASSIGNMENT_PENDING = "pending"
ASSIGNMENT_IN_PROGRESS = "in_progress"
ASSIGNMENT_COMPLETED = "completed"
ASSIGNMENT_OVERDUE = "overdue"  # derived on read, never stored

ASSIGNMENT_STORED_STATUSES = frozenset({
    ASSIGNMENT_PENDING, ASSIGNMENT_IN_PROGRESS, ASSIGNMENT_COMPLETED,
})

APPROVAL_PENDING = "pending"
APPROVAL_APPROVED = "approved"
APPROVAL_REJECTED = "rejected"

APPROVAL_STATUSES = frozenset({APPROVAL_PENDING, APPROVAL_APPROVED, APPROVAL_REJECTED})
APPROVAL_DECISIONS = frozenset({APPROVAL_APPROVED, APPROVAL_REJECTED})

COMMENT_MAX_LENGTH = 5000


class Assignment(db.Model):
    """
    A unit of work on a post.

    Stored status moves pending → in_progress → completed.  ``effective_status``
    reports ``overdue`` for unfinished work past its due date.
    """

    __tablename__ = "assignments"
    __table_args__ = (
        db.Index("idx_assignment_team_post", "team_id", "post_id"),
        db.Index("idx_assignment_team_assignee", "team_id", "assignee_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    team_id = db.Column(
        db.String(36),
        db.ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    post_id = db.Column(db.String(64), nullable=False)
    assignee_id = db.Column(db.String(64), nullable=False)
    assigner_id = db.Column(db.String(64), nullable=False)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default=ASSIGNMENT_PENDING)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    version = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def is_overdue(self, now=None) -> bool:
        if self.due_date is None or self.status == ASSIGNMENT_COMPLETED:
            return False
        now = as_utc(now) or utcnow()
        return now > as_utc(self.due_date)

    def effective_status(self, now=None) -> str:
        return ASSIGNMENT_OVERDUE if self.is_overdue(now) else self.status

    def to_dict(self, now=None) -> dict:
        return {
            "id": self.id,
            "team_id": self.team_id,
            "post_id": self.post_id,
            "assignee_id": self.assignee_id,
            "assigner_id": self.assigner_id,
            "due_date": isoformat(self.due_date),
            "notes": self.notes,
            "status": self.effective_status(now),
            "stored_status": self.status,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<Assignment {self.id}: post={self.post_id} {self.status}>"


class Approval(db.Model):
    """
    Publication gate for a post.

    pending → approved | rejected.  At most one pending row per
    (team_id, post_id); the partial unique index backs the service check.
    """

    __tablename__ = "approvals"
    __table_args__ = (
        db.Index("idx_approval_team_post", "team_id", "post_id"),
        db.Index(
            "uq_approval_team_post_pending",
            "team_id",
            "post_id",
            unique=True,
            sqlite_where=db.text("status = 'pending'"),
            postgresql_where=db.text("status = 'pending'"),
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    team_id = db.Column(
        db.String(36),
        db.ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    post_id = db.Column(db.String(64), nullable=False)
    requester_id = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=APPROVAL_PENDING)
    approver_id = db.Column(db.String(64), nullable=True)
    feedback = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "team_id": self.team_id,
            "post_id": self.post_id,
            "requester_id": self.requester_id,
            "status": self.status,
            "approver_id": self.approver_id,
            "feedback": self.feedback,
            "created_at": isoformat(self.created_at),
            "resolved_at": isoformat(self.resolved_at),
        }

    def __repr__(self):
        return f"<Approval {self.id}: post={self.post_id} {self.status}>"


class TeamComment(db.Model):
    """Comment on a post inside a team; replies point at a top-level comment."""

    __tablename__ = "team_comments"
    __table_args__ = (
        db.Index("idx_comment_team_post", "team_id", "post_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    team_id = db.Column(
        db.String(36),
        db.ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    post_id = db.Column(db.String(64), nullable=False)
    user_id = db.Column(db.String(64), nullable=False)
    content = db.Column(db.Text, nullable=False)
    parent_id = db.Column(
        db.String(36),
        db.ForeignKey("team_comments.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    replies = db.relationship(
        "TeamComment",
        backref=db.backref("parent", remote_side=[id]),
        cascade="all, delete-orphan",
        order_by="TeamComment.created_at",
    )

    def to_dict(self, include_replies: bool = False) -> dict:
        d = {
            "id": self.id,
            "team_id": self.team_id,
            "post_id": self.post_id,
            "user_id": self.user_id,
            "content": self.content,
            "parent_id": self.parent_id,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }
        if include_replies:
            d["replies"] = [r.to_dict() for r in self.replies]
        return d

    def __repr__(self):
        return f"<TeamComment {self.id}: post={self.post_id}>"
