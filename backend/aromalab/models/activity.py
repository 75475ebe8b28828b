from __future__ import annotations

from ..extensions import db
from aromalab.time_utils import to_utc_z


ACTIVITY_ENTITIES = ("material", "formula", "order", "user")


class ActivityLog(db.Model):
    """
    Append-only audit trail of user actions.

    WHY user_name is denormalized: the entry must keep reading correctly
    after the user is renamed or deleted.

    RETENTION: activity_service keeps only the most recent entries
    (ACTIVITY_LOG_LIMIT, default 100).
    """
    __tablename__ = "activity_logs"
    __table_args__ = (
        db.CheckConstraint(
            "entity IN ('material', 'formula', 'order', 'user')",
            name="ck_activity_logs_entity",
        ),
        db.Index("ix_activity_logs_timestamp", "timestamp"),
        db.Index("ix_activity_logs_entity", "entity", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, nullable=True)
    user_name = db.Column(db.String(255), nullable=False)

    action = db.Column(db.String(64), nullable=False)
    entity = db.Column(db.String(16), nullable=False)
    entity_id = db.Column(db.Integer, nullable=True)
    details = db.Column(db.Text, nullable=True)

    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "action": self.action,
            "entity": self.entity,
            "entity_id": self.entity_id,
            "details": self.details,
            "timestamp": to_utc_z(self.timestamp),
        }
