"""
Team comment service: discussion threads on posts.

Threads are one level deep: a reply must point at a top-level comment on the
same post in the same team.
"""

import logging

from teamflow.core.exceptions import NotFoundError, ValidationError
from teamflow.models import db
from teamflow.models.activity import write_activity
from teamflow.models.collaboration import COMMENT_MAX_LENGTH, TeamComment
from teamflow.models.team import Team
from teamflow.services.helpers.transaction import transaction
from teamflow.services.permission import CONTENT_COMMENT, CONTENT_VIEW, require_capability
from teamflow.utils.helpers import clean_id, clean_text, utcnow

logger = logging.getLogger(__name__)


def create_comment(
    actor_id: str,
    team_id: str,
    post_id: str,
    content: str,
    parent_id: str | None = None,
) -> TeamComment:
    if not db.session.get(Team, team_id):
        raise NotFoundError(resource="Team", resource_id=team_id)
    require_capability(team_id, actor_id, CONTENT_COMMENT)

    post_id = clean_id(post_id, "post_id")
    parent_id = clean_id(parent_id, "parent_id", required=False)
    content = clean_text(content, "content")
    if not content:
        raise ValidationError("content is required", details={"content": "required"})
    if len(content) > COMMENT_MAX_LENGTH:
        raise ValidationError(
            f"content must be at most {COMMENT_MAX_LENGTH} characters",
            details={"content": "too_long"},
        )

    if parent_id:
        parent = db.session.get(TeamComment, parent_id)
        if not parent or parent.team_id != team_id:
            raise NotFoundError(resource="TeamComment", resource_id=parent_id, team_id=team_id)
        if parent.post_id != post_id:
            raise ValidationError("Reply must be on the same post as its parent",
                                  details={"parent_id": "other_post"})
        if parent.parent_id is not None:
            raise ValidationError("Replies cannot be nested", details={"parent_id": "nested"})

    with transaction("TeamComment"):
        now = utcnow()
        comment = TeamComment(
            team_id=team_id,
            post_id=post_id,
            user_id=actor_id,
            content=content,
            parent_id=parent_id,
            created_at=now,
            updated_at=now,
        )
        db.session.add(comment)
        db.session.flush()
        write_activity(
            team_id=team_id,
            actor_id=actor_id,
            action="comment.created",
            entity_type="comment",
            entity_id=comment.id,
            metadata={"post_id": comment.post_id, "content": content[:100], "parent_id": parent_id},
        )
    return comment


def list_comments(actor_id: str, team_id: str, post_id: str | None = None) -> list[TeamComment]:
    """Top-level comments, oldest first; replies hang off ``comment.replies``."""
    if not db.session.get(Team, team_id):
        raise NotFoundError(resource="Team", resource_id=team_id)
    require_capability(team_id, actor_id, CONTENT_VIEW)
    q = TeamComment.query.filter_by(team_id=team_id, parent_id=None)
    if post_id:
        q = q.filter_by(post_id=str(post_id))
    return q.order_by(TeamComment.created_at, TeamComment.id).all()
