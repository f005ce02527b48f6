"""Notification sink.

Workflow actions queue notifications while the transaction is open and
dispatch them once it has committed. Delivery failures are logged and never
undo the transition that triggered them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

from flask import current_app

from research_portal.db_models import Notification, User, db

logger = logging.getLogger(__name__)

SINK_EXTENSION_KEY = "notification_sink"


@dataclass(frozen=True)
class PendingNotification:
    user_id: int
    type: str
    title: str
    message: str
    metadata: dict = field(default_factory=dict)


class NotificationSink(Protocol):
    def notify(
        self, user_id: int, type: str, title: str, message: str, metadata: dict | None = None
    ):
        ...


class DatabaseNotificationSink:
    """Stores notifications in the `notifications` table."""

    def notify(
        self, user_id: int, type: str, title: str, message: str, metadata: dict | None = None
    ) -> Notification:
        metadata = metadata or {}
        note = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            reference_type="research_contribution" if "contribution_id" in metadata else None,
            reference_id=metadata.get("contribution_id"),
            extra=metadata,
        )
        db.session.add(note)
        db.session.commit()
        return note


def get_sink() -> NotificationSink:
    sink = current_app.extensions.get(SINK_EXTENSION_KEY)
    if sink is None:
        sink = DatabaseNotificationSink()
        current_app.extensions[SINK_EXTENSION_KEY] = sink
    return sink


def dispatch(pending: list[PendingNotification]) -> list:
    """Deliver queued notifications; returns what the sink produced."""
    delivered = []
    sink = get_sink()
    for item in pending:
        try:
            created = sink.notify(
                item.user_id, item.type, item.title, item.message, item.metadata
            )
        except Exception as e:
            db.session.rollback()
            logger.exception(
                "Notification %s to user %s failed: %s", item.type, item.user_id, e
            )
            continue
        if created is not None:
            delivered.append(created)
    return delivered


def approver_ids() -> list[int]:
    rows = User.query.filter_by(can_approve=True, is_active=True).all()
    return [u.id for u in rows]
