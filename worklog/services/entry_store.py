from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from worklog.core.clock import as_utc
from worklog.core.errors import EntryValidationError, NotFoundError
from worklog.database import SessionLocal
from worklog.models.time_entry import AssociationKind, TimeEntry
from worklog.services.registries import task_ids_for_project


@dataclass(frozen=True)
class EntryFilter:
    user_id: Optional[str] = None
    task_id: Optional[str] = None
    project_id: Optional[str] = None
    campaign_id: Optional[str] = None
    started_from: Optional[datetime] = None
    started_before: Optional[datetime] = None

    @property
    def targets_work_item(self) -> bool:
        return any(v is not None for v in (self.task_id, self.project_id, self.campaign_id))


def get_entry(db: Session, entry_id: str, *, for_update: bool = False) -> TimeEntry:
    q = db.query(TimeEntry).filter(TimeEntry.id == str(entry_id))
    if for_update:
        q = q.with_for_update()
    entry = q.first()
    if entry is None:
        raise NotFoundError(f"Time entry not found: {entry_id}")
    return entry


def get_open_entry(db: Session, user_id: str) -> Optional[TimeEntry]:
    return (
        db.query(TimeEntry)
        .filter(
            TimeEntry.user_id == str(user_id),
            TimeEntry.end_time.is_(None),
        )
        .first()
    )


def _associated_with(kind: AssociationKind, ref_ids):
    return and_(
        TimeEntry.association_kind == kind.value,
        TimeEntry.association_id.in_(list(ref_ids)),
    )


def project_entry_clause(db: Session, project_id: str):
    """Entries logged on the project directly or on one of its tasks."""
    clauses = [_associated_with(AssociationKind.PROJECT, [str(project_id)])]
    task_ids = task_ids_for_project(db, project_id)
    if task_ids:
        clauses.append(_associated_with(AssociationKind.TASK, task_ids))
    return or_(*clauses)


def _check_range(entry_filter: EntryFilter) -> None:
    lo, hi = entry_filter.started_from, entry_filter.started_before
    if lo is not None and hi is not None and as_utc(hi) <= as_utc(lo):
        raise EntryValidationError("started_before must be after started_from", field="started_before")


def list_entries(
    entry_filter: EntryFilter,
    *,
    db: Optional[Session] = None,
    limit: Optional[int] = None,
    offset: int = 0,
) -> list[TimeEntry]:
    """
    Entries matching every given filter, newest first.

    A project filter also matches entries logged against the project's tasks.
    The start-time range is half-open: started_from <= start_time < started_before.
    """
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        _check_range(entry_filter)
        q = db.query(TimeEntry)

        if entry_filter.user_id is not None:
            q = q.filter(TimeEntry.user_id == str(entry_filter.user_id))
        if entry_filter.task_id is not None:
            q = q.filter(_associated_with(AssociationKind.TASK, [str(entry_filter.task_id)]))
        if entry_filter.campaign_id is not None:
            q = q.filter(_associated_with(AssociationKind.CAMPAIGN, [str(entry_filter.campaign_id)]))
        if entry_filter.project_id is not None:
            q = q.filter(project_entry_clause(db, entry_filter.project_id))
        if entry_filter.started_from is not None:
            q = q.filter(TimeEntry.start_time >= as_utc(entry_filter.started_from))
        if entry_filter.started_before is not None:
            q = q.filter(TimeEntry.start_time < as_utc(entry_filter.started_before))

        q = q.order_by(TimeEntry.start_time.desc(), TimeEntry.id.asc()).offset(int(offset))
        if limit is not None:
            q = q.limit(int(limit))
        return q.all()
    finally:
        if owns_db:
            db.close()
