from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from worklog.database import SessionLocal
from worklog.models.event_outbox import EventOutbox
from worklog.models.time_entry import EntryOrigin, TimeEntry


def _entry(**overrides) -> TimeEntry:
    start = datetime(2026, 4, 1, 8, 0, tzinfo=timezone.utc)
    values = dict(
        id=str(uuid4()),
        user_id="u-ck",
        start_time=start,
        end_time=start + timedelta(hours=1),
        description="Constraint check",
        association_kind="none",
        association_id=None,
        company_id=None,
        is_billable=False,
        origin=EntryOrigin.MANUAL.value,
        created_at=start,
        updated_at=start,
    )
    values.update(overrides)
    return TimeEntry(**values)


def _assert_rejected(row) -> None:
    db = SessionLocal()
    try:
        db.add(row)
        with pytest.raises(IntegrityError):
            db.commit()
    finally:
        db.rollback()
        db.close()


def test_check_constraint_blocks_end_before_start():
    start = datetime(2026, 4, 1, 8, 0, tzinfo=timezone.utc)
    _assert_rejected(_entry(start_time=start, end_time=start - timedelta(minutes=5)))


def test_check_constraint_blocks_zero_length_entry():
    start = datetime(2026, 4, 1, 8, 0, tzinfo=timezone.utc)
    _assert_rejected(_entry(start_time=start, end_time=start))


def test_check_constraint_blocks_billable_without_company():
    _assert_rejected(_entry(is_billable=True, company_id=None))


def test_check_constraint_blocks_association_kind_without_id():
    _assert_rejected(_entry(association_kind="task", association_id=None))


def test_check_constraint_blocks_unassociated_entry_with_id():
    _assert_rejected(_entry(association_kind="none", association_id="t-1"))


def test_check_constraint_blocks_unknown_origin():
    _assert_rejected(_entry(origin="imported"))


def test_valid_billable_entry_is_accepted():
    db = SessionLocal()
    try:
        db.add(_entry(is_billable=True, company_id="c-1", association_kind="project", association_id="p-1"))
        db.commit()
    finally:
        db.close()


def test_outbox_idempotency_key_is_unique_per_event_type():
    db = SessionLocal()
    try:
        for _ in range(2):
            db.add(
                EventOutbox(
                    user_id="u-ck",
                    entry_id="e-1",
                    event_type="TIME_ENTRY_CLOSED",
                    idempotency_key="time_entry:e-1:time_entry_closed",
                    payload={"scopes": []},
                )
            )
        with pytest.raises(IntegrityError):
            db.commit()
    finally:
        db.rollback()
        db.close()
