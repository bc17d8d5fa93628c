import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from worklog.models.event_outbox import EventOutbox
from worklog.services.change_notifier import ChangeNotification, ChangeNotifier, Scope
from worklog.services.change_notifier import notifier as default_notifier

logger = logging.getLogger(__name__)


def publish_entry_change(row: EventOutbox, hub: ChangeNotifier) -> int:
    payload: Any = row.payload or {}
    if not isinstance(payload, dict):
        raise ValueError(f"Malformed payload for event_outbox_id={row.id}")

    entry_id = str(payload.get("entry_id") or row.entry_id)
    raw_scopes = payload.get("scopes") or [["user", row.user_id]]

    delivered = 0
    for kind, ref in raw_scopes:
        notification = ChangeNotification(
            scope=Scope(str(kind), str(ref)),
            entry_id=entry_id,
            event_type=row.event_type,
        )
        delivered += hub.publish(notification)

    return delivered


def make_entry_change_handler(hub: ChangeNotifier):
    def handler(row: EventOutbox, db: Session) -> None:
        _ = db
        publish_entry_change(row, hub)

    return handler


def handle_time_entry_changed(row: EventOutbox, db: Session, hub: Optional[ChangeNotifier] = None) -> None:
    _ = db
    delivered = publish_entry_change(row, hub or default_notifier)
    logger.debug(
        "Time entry change dispatched",
        extra={"event_outbox_id": row.id, "event_type": row.event_type, "subscribers": delivered},
    )
