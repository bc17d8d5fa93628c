from __future__ import annotations

import logging
from typing import Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from worklog.models.event_outbox import EventOutbox
from worklog.models.time_entry import AssociationKind, TimeEntry
from worklog.services.registries import get_task

logger = logging.getLogger(__name__)

TIME_ENTRY_CREATED = "TIME_ENTRY_CREATED"
TIME_ENTRY_CLOSED = "TIME_ENTRY_CLOSED"
TIME_ENTRY_FINALIZED = "TIME_ENTRY_FINALIZED"
TIME_ENTRY_UPDATED = "TIME_ENTRY_UPDATED"

ENTRY_EVENT_TYPES = (
    TIME_ENTRY_CREATED,
    TIME_ENTRY_CLOSED,
    TIME_ENTRY_FINALIZED,
    TIME_ENTRY_UPDATED,
)


def entry_scopes(db: Session, entry: TimeEntry) -> list[list[str]]:
    """Scopes whose viewers must re-fetch after a change to `entry`."""
    scopes = [["user", str(entry.user_id)]]

    kind = AssociationKind(entry.association_kind)
    if kind is AssociationKind.TASK:
        scopes.append(["task", str(entry.association_id)])
        task = get_task(db, entry.association_id)
        if task is not None and task.project_id is not None:
            scopes.append(["project", str(task.project_id)])
    elif kind is AssociationKind.PROJECT:
        scopes.append(["project", str(entry.association_id)])

    return scopes


def _idempotency_key(entry: TimeEntry, event_type: str) -> str:
    if event_type == TIME_ENTRY_UPDATED:
        # edits may happen any number of times
        return f"time_entry:{entry.id}:updated:{uuid4()}"
    return f"time_entry:{entry.id}:{event_type.lower()}"


def record_entry_event(
    db: Session,
    entry: TimeEntry,
    event_type: str,
    *,
    extra_scopes: Optional[list[list[str]]] = None,
) -> EventOutbox:
    """
    Write the change event into the outbox inside the caller's transaction,
    so the event exists if and only if the entry change commits.

    `extra_scopes` covers scopes the entry left, e.g. after an edit moved it
    from one task to another.
    """
    if event_type not in ENTRY_EVENT_TYPES:
        raise ValueError(f"Unknown time entry event: {event_type}")

    scopes = entry_scopes(db, entry)
    for scope in extra_scopes or []:
        if list(scope) not in scopes:
            scopes.append(list(scope))

    row = EventOutbox(
        user_id=str(entry.user_id),
        entry_id=str(entry.id),
        event_type=event_type,
        idempotency_key=_idempotency_key(entry, event_type),
        payload={
            "entry_id": str(entry.id),
            "user_id": str(entry.user_id),
            "scopes": scopes,
        },
    )
    db.add(row)
    db.flush()

    logger.debug(
        "Time entry event recorded",
        extra={"event_type": event_type, "entry_id": str(entry.id)},
    )
    return row
