from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from worklog.core.clock import as_utc, utcnow
from worklog.core.errors import EntryValidationError, InvalidStateError
from worklog.database import SessionLocal
from worklog.models.time_entry import Association, EntryOrigin, TimeEntry
from worklog.services import entry_events
from worklog.services.entry_store import get_entry
from worklog.services.registries import require_association, require_company

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ManualEntryFields:
    description: str
    start_time: Optional[datetime]
    end_time: Optional[datetime]
    association: Association = field(default_factory=Association.none)
    company_id: Optional[str] = None
    is_billable: bool = False


@dataclass(frozen=True)
class _CleanFields:
    description: str
    start_time: datetime
    end_time: datetime
    association: Association
    company_id: Optional[str]
    is_billable: bool


def validate_fields(fields: ManualEntryFields) -> _CleanFields:
    description = (fields.description or "").strip()
    if not description:
        raise EntryValidationError("Description is required", field="description")
    if fields.start_time is None:
        raise EntryValidationError("Start time is required", field="start_time")
    if fields.end_time is None:
        raise EntryValidationError("End time is required", field="end_time")

    start_time = as_utc(fields.start_time)
    end_time = as_utc(fields.end_time)
    if end_time <= start_time:
        raise EntryValidationError("End time must be after start time", field="end_time")

    company_id = fields.company_id or None
    is_billable = bool(fields.is_billable)
    if is_billable and company_id is None:
        # billing needs a company context; drop the flag rather than reject
        logger.info("Billable flag dropped for entry without company")
        is_billable = False

    return _CleanFields(
        description=description,
        start_time=start_time,
        end_time=end_time,
        association=fields.association or Association.none(),
        company_id=company_id,
        is_billable=is_billable,
    )


def _apply(entry: TimeEntry, clean: _CleanFields) -> None:
    entry.description = clean.description
    entry.start_time = clean.start_time
    entry.end_time = clean.end_time
    entry.association = clean.association
    entry.company_id = clean.company_id
    entry.is_billable = clean.is_billable


def create_manual_entry(
    user_id: str,
    fields: ManualEntryFields,
    *,
    db: Optional[Session] = None,
) -> TimeEntry:
    """
    Insert an already closed entry. Billable status is part of the input, so
    the entry is finalized on creation.

    If db is provided, this function will NOT commit/close. Caller owns the transaction.
    """
    clean = validate_fields(fields)

    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        require_association(db, clean.association)
        require_company(db, clean.company_id)

        now = utcnow()
        entry = TimeEntry(
            id=str(uuid4()),
            user_id=str(user_id),
            origin=EntryOrigin.MANUAL.value,
            finalized_at=now,
            created_at=now,
            updated_at=now,
        )
        _apply(entry, clean)

        db.add(entry)
        db.flush()
        entry_events.record_entry_event(db, entry, entry_events.TIME_ENTRY_CREATED)

        if owns_db:
            db.commit()

        logger.info(
            "Manual time entry created",
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


def update_manual_entry(
    user_id: str,
    entry_id: str,
    fields: ManualEntryFields,
    *,
    db: Optional[Session] = None,
) -> TimeEntry:
    """Replace every mutable field of a manual entry. Not a patch."""
    clean = validate_fields(fields)

    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        entry = get_entry(db, entry_id, for_update=True)
        if str(entry.user_id) != str(user_id):
            raise InvalidStateError("Time entry belongs to another user")
        if entry.origin != EntryOrigin.MANUAL.value:
            raise InvalidStateError("Timer entries cannot be edited")

        require_association(db, clean.association)
        require_company(db, clean.company_id)

        previous_scopes = entry_events.entry_scopes(db, entry)
        _apply(entry, clean)
        entry.updated_at = utcnow()

        db.flush()
        entry_events.record_entry_event(
            db,
            entry,
            entry_events.TIME_ENTRY_UPDATED,
            extra_scopes=previous_scopes,
        )

        if owns_db:
            db.commit()

        logger.info("Manual time entry updated", extra={"user_id": str(user_id), "entry_id": entry.id})
        return entry
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()
