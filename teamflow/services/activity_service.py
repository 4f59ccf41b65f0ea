"""
Activity Log read side.

Writes go through ``teamflow.models.activity.write_activity`` from inside
service transactions; this module only reads.

Pagination is keyset-based: the cursor encodes the (created_at, id) of the
last row returned, so a page request is restartable and stable while new
rows are appended at the head.

Usage:
    page = list_activity(actor_id, team_id, limit=20)
    more = list_activity(actor_id, team_id, limit=20, cursor=page.next_cursor)
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app
from sqlalchemy import and_, or_

from teamflow.core.exceptions import NotFoundError, ValidationError
from teamflow.models import db
from teamflow.models.activity import ACTIVITY_ENTITY_TYPES, ActivityRecord
from teamflow.models.team import Team
from teamflow.services.permission import CONTENT_VIEW, require_capability
from teamflow.utils.helpers import as_utc


@dataclass
class ActivityPage:
    items: list[ActivityRecord] = field(default_factory=list)
    next_cursor: str | None = None

    def to_dict(self) -> dict:
        return {
            "items": [r.to_dict() for r in self.items],
            "next_cursor": self.next_cursor,
        }


def encode_cursor(record: ActivityRecord) -> str:
    raw = f"{as_utc(record.created_at).isoformat()}|{record.id}"
    return base64.urlsafe_b64encode(raw.encode()).decode()


def decode_cursor(cursor: str) -> tuple[datetime, int]:
    try:
        raw = base64.urlsafe_b64decode(cursor.encode()).decode()
        ts, record_id = raw.rsplit("|", 1)
        return as_utc(datetime.fromisoformat(ts)), int(record_id)
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise ValidationError("Malformed activity cursor", details={"cursor": "invalid"}) from exc


def _resolve_limit(limit) -> int:
    default = int(current_app.config.get("ACTIVITY_PAGE_SIZE", 50))
    maximum = int(current_app.config.get("ACTIVITY_PAGE_MAX", 200))
    if limit is None:
        return default
    try:
        limit = int(limit)
    except (TypeError, ValueError) as exc:
        raise ValidationError("limit must be an integer", details={"limit": "invalid"}) from exc
    if limit < 1:
        raise ValidationError("limit must be positive", details={"limit": "invalid"})
    return min(limit, maximum)


def list_activity(
    actor_id: str,
    team_id: str,
    limit: int | None = None,
    cursor: str | None = None,
    *,
    entity_type: str | None = None,
) -> ActivityPage:
    """Newest-first page of a team's activity."""
    if not db.session.get(Team, team_id):
        raise NotFoundError(resource="Team", resource_id=team_id)
    require_capability(team_id, actor_id, CONTENT_VIEW)
    if entity_type is not None and entity_type not in ACTIVITY_ENTITY_TYPES:
        raise ValidationError(
            f"entity_type must be one of {sorted(ACTIVITY_ENTITY_TYPES)}",
            details={"entity_type": "invalid"},
        )
    size = _resolve_limit(limit)

    q = ActivityRecord.query.filter_by(team_id=team_id)
    if entity_type:
        q = q.filter_by(entity_type=entity_type)
    if cursor:
        after_ts, after_id = decode_cursor(cursor)
        q = q.filter(or_(
            ActivityRecord.created_at < after_ts,
            and_(ActivityRecord.created_at == after_ts, ActivityRecord.id < after_id),
        ))

    rows = (
        q.order_by(ActivityRecord.created_at.desc(), ActivityRecord.id.desc())
        .limit(size + 1)
        .all()
    )
    has_more = len(rows) > size
    items = rows[:size]
    return ActivityPage(
        items=items,
        next_cursor=encode_cursor(items[-1]) if has_more and items else None,
    )


def list_entity_activity(actor_id: str, team_id: str, entity_type: str, entity_id: str) -> list[ActivityRecord]:
    """Full history of one entity, oldest first."""
    if not db.session.get(Team, team_id):
        raise NotFoundError(resource="Team", resource_id=team_id)
    require_capability(team_id, actor_id, CONTENT_VIEW)
    return (
        ActivityRecord.query.filter_by(team_id=team_id, entity_type=entity_type, entity_id=str(entity_id))
        .order_by(ActivityRecord.created_at, ActivityRecord.id)
        .all()
    )
