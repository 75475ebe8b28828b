# Overview: Append-only, bounded audit trail of user actions.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import ActivityLog, ACTIVITY_ENTITIES
from aromalab.time_utils import utcnow
"""
Activity Log Invariants (authoritative)

- Append-only: entries are never edited.
- Newest first: ordering is timestamp DESC, id DESC.
- Bounded: after every append only the ACTIVITY_LOG_LIMIT most recent
  entries are kept; the oldest are dropped.
- user_name is a snapshot taken at write time.
- Entries written with commit=False join the caller's transaction, so a
  domain change and its audit entry are applied together.
"""


ACTION_CREATE = "Création"
ACTION_UPDATE = "Modification"
ACTION_DELETE = "Suppression"
ACTION_ADD_STOCK = "Ajout stock"
ACTION_COMPLETE = "Complétion"
ACTION_CANCEL = "Annulation"

DEFAULT_ACTIVITY_LOG_LIMIT = 100


def _limit() -> int:
    return int(current_app.config.get("ACTIVITY_LOG_LIMIT", DEFAULT_ACTIVITY_LOG_LIMIT))


def _newest_first(query):
    return query.order_by(ActivityLog.timestamp.desc(), ActivityLog.id.desc())


def _trim(limit: int) -> int:
    """Drop everything older than the `limit` most recent entries."""
    keep_ids = [
        row.id
        for row in _newest_first(db.session.query(ActivityLog.id)).limit(limit).all()
    ]
    if not keep_ids:
        return 0
    return db.session.query(ActivityLog).filter(
        ActivityLog.id.notin_(keep_ids)
    ).delete(synchronize_session=False)


def log_activity(
    actor,
    *,
    action: str,
    entity: str,
    entity_id: int | None,
    details: str | None = None,
    commit: bool = True,
) -> ActivityLog:
    """
    Append an activity entry stamped with the acting user.

    actor is a SessionContext (anything exposing user_id and user_name).
    Raises ValueError for an unknown entity kind.
    """
    if entity not in ACTIVITY_ENTITIES:
        raise ValueError(f"entity must be one of: {', '.join(ACTIVITY_ENTITIES)}")

    entry = ActivityLog(
        user_id=actor.user_id,
        user_name=actor.user_name,
        action=action,
        entity=entity,
        entity_id=entity_id,
        details=details,
        timestamp=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()

    _trim(_limit())

    if commit:
        db.session.commit()
    return entry


def list_activity(
    *,
    entity: str | None = None,
    search: str | None = None,
    limit: int | None = None,
) -> list[ActivityLog]:
    """
    Return activity entries, newest first.

    search matches action, details and user name (case-insensitive).
    """
    q = db.session.query(ActivityLog)

    if entity:
        q = q.filter(ActivityLog.entity == entity)

    if search and search.strip():
        pattern = f"%{search.strip()}%"
        q = q.filter(
            db.or_(
                ActivityLog.action.ilike(pattern),
                ActivityLog.details.ilike(pattern),
                ActivityLog.user_name.ilike(pattern),
            )
        )

    q = _newest_first(q)
    if limit is not None:
        q = q.limit(limit)
    return q.all()
