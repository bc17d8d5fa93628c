"""
Timer lifecycle for a single user:

    Idle -> Running -> PendingClassification -> Idle

The persisted entry is the state. An open entry (no end_time) means Running;
a closed timer entry without finalized_at means PendingClassification.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from worklog.core.clock import as_utc, utcnow
from worklog.core.errors import ConflictError, EntryValidationError, InvalidStateError
from worklog.database import SessionLocal
from worklog.models.time_entry import Association, EntryOrigin, TimeEntry
from worklog.services import entry_events
from worklog.services.entry_store import get_entry, get_open_entry
from worklog.services.registries import association_label, require_association, require_company

logger = logging.getLogger(__name__)

ACTIVE_TIMER_EXISTS = "Active timer already exists for user"


def default_description(label: Optional[str]) -> str:
    if label:
        return f"Worked with {label}"
    return "Worked"


def _require_owner(entry: TimeEntry, user_id: str) -> None:
    if str(entry.user_id) != str(user_id):
        raise InvalidStateError("Time entry belongs to another user")


def start_timer(
    user_id: str,
    association: Optional[Association] = None,
    *,
    company_id: Optional[str] = None,
    description: str = "",
    now: Optional[datetime] = None,
    db: Optional[Session] = None,
) -> TimeEntry:
    """
    Open a new entry for the user.

    If db is provided, this function will NOT commit/close. Caller owns the transaction.
    If db is None, this function manages its own session + commit.
    """
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    association = association or Association.none()
    started_at = as_utc(now) or utcnow()

    try:
        require_association(db, association)
        require_company(db, company_id)

        if get_open_entry(db, user_id) is not None:
            raise ConflictError(ACTIVE_TIMER_EXISTS)

        entry = TimeEntry(
            id=str(uuid4()),
            user_id=str(user_id),
            start_time=started_at,
            end_time=None,
            description=description or "",
            company_id=company_id,
            is_billable=False,
            origin=EntryOrigin.TIMER.value,
            finalized_at=None,
            created_at=started_at,
            updated_at=started_at,
        )
        entry.association = association

        db.add(entry)
        try:
            db.flush()
        except IntegrityError as exc:
            # another request opened a timer between the check and the insert;
            # the partial unique index rejected this one
            raise ConflictError(ACTIVE_TIMER_EXISTS) from exc

        entry_events.record_entry_event(db, entry, entry_events.TIME_ENTRY_CREATED)

        if owns_db:
            db.commit()

        logger.info(
            "Timer started",
            extra={"user_id": str(user_id), "entry_id": entry.id, "association": association.kind.value},
        )
        return entry
    except ConflictError:
        if owns_db:
            db.rollback()
        logger.info("Timer start rejected; timer already running", extra={"user_id": str(user_id)})
        raise
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def stop_timer(
    user_id: str,
    entry_id: str,
    *,
    now: Optional[datetime] = None,
    db: Optional[Session] = None,
) -> TimeEntry:
    """
    Close the user's running entry. Blank descriptions are replaced with one
    derived from the association ("Worked with <task title>").
    """
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        entry = get_entry(db, entry_id, for_update=True)
        _require_owner(entry, user_id)
        if not entry.is_open:
            raise InvalidStateError("Time entry is not running")

        started_at = as_utc(entry.start_time)
        ended_at = as_utc(now) or utcnow()
        if ended_at <= started_at:
            ended_at = started_at + timedelta(microseconds=1)

        entry.end_time = ended_at
        if not (entry.description or "").strip():
            entry.description = default_description(association_label(db, entry.association))
        entry.updated_at = utcnow()

        db.flush()
        entry_events.record_entry_event(db, entry, entry_events.TIME_ENTRY_CLOSED)

        if owns_db:
            db.commit()

        logger.info(
            "Timer stopped",
            extra={
                "user_id": str(user_id),
                "entry_id": entry.id,
                "duration_seconds": entry.duration_seconds(),
            },
        )
        return entry
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def finalize_entry(
    user_id: str,
    entry_id: str,
    is_billable: bool,
    *,
    db: Optional[Session] = None,
) -> TimeEntry:
    """
    Record the billable classification of a stopped timer entry.

    Skipping this step is allowed; the entry then simply stays non-billable.
    """
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        entry = get_entry(db, entry_id, for_update=True)
        _require_owner(entry, user_id)
        if entry.is_open:
            raise InvalidStateError("Time entry is still running")
        if entry.origin != EntryOrigin.TIMER.value:
            raise InvalidStateError("Manual entries are classified when created")
        if entry.is_finalized:
            raise InvalidStateError("Time entry is already finalized")
        if is_billable and entry.company_id is None:
            raise EntryValidationError("Billable entries require a company", field="is_billable")

        entry.is_billable = bool(is_billable)
        entry.finalized_at = utcnow()
        entry.updated_at = entry.finalized_at

        db.flush()
        entry_events.record_entry_event(db, entry, entry_events.TIME_ENTRY_FINALIZED)

        if owns_db:
            db.commit()

        logger.info(
            "Timer entry finalized",
            extra={"user_id": str(user_id), "entry_id": entry.id, "is_billable": entry.is_billable},
        )
        return entry
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def get_active_entry(user_id: str, *, db: Optional[Session] = None) -> Optional[TimeEntry]:
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        return get_open_entry(db, user_id)
    finally:
        if owns_db:
            db.close()
