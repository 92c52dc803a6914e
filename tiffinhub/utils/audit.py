from __future__ import annotations

from typing import Any

from ..extensions import db
from ..models import ActivityLog


def log_activity(user, action_type: str, entity_type: str | None = None, entity_id: str | None = None,
                 description: str | None = None, metadata: Any | None = None) -> ActivityLog:
    """Stage an activity log row for ``user``; the caller commits."""
    entry = ActivityLog(
        created_by=user.id,
        user_email=user.email,
        user_name=user.full_name,
        action_type=action_type,
        entity_type=entity_type,
        entity_id=entity_id,
        description=description,
        meta=metadata,
    )
    db.session.add(entry)
    return entry
