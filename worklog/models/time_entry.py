from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Index, String, Text, text

from worklog.core.clock import as_utc
from worklog.database import Base


class AssociationKind(str, Enum):
    NONE = "none"
    TASK = "task"
    CAMPAIGN = "campaign"
    PROJECT = "project"


@dataclass(frozen=True)
class Association:
    """What an entry was logged against. Exactly one kind holds at a time."""

    kind: AssociationKind = AssociationKind.NONE
    ref_id: Optional[str] = None

    def __post_init__(self):
        if self.kind is AssociationKind.NONE and self.ref_id is not None:
            raise ValueError("Unassociated entries cannot carry a reference id")
        if self.kind is not AssociationKind.NONE and not self.ref_id:
            raise ValueError(f"{self.kind.value} association requires an id")

    @classmethod
    def none(cls) -> "Association":
        return cls()

    @classmethod
    def task(cls, task_id: str) -> "Association":
        return cls(AssociationKind.TASK, str(task_id))

    @classmethod
    def campaign(cls, campaign_id: str) -> "Association":
        return cls(AssociationKind.CAMPAIGN, str(campaign_id))

    @classmethod
    def project(cls, project_id: str) -> "Association":
        return cls(AssociationKind.PROJECT, str(project_id))

    @property
    def is_none(self) -> bool:
        return self.kind is AssociationKind.NONE


class EntryOrigin(str, Enum):
    TIMER = "timer"
    MANUAL = "manual"


class TimeEntry(Base):
    __tablename__ = "time_entries"

    id = Column(String, primary_key=True, index=True)

    user_id = Column(String, nullable=False, index=True)

    start_time = Column(DateTime(timezone=True), nullable=False, index=True)
    end_time = Column(DateTime(timezone=True), nullable=True)

    description = Column(Text, nullable=False, default="")

    association_kind = Column(String, nullable=False, default=AssociationKind.NONE.value)
    association_id = Column(String, nullable=True)

    company_id = Column(String, nullable=True, index=True)
    is_billable = Column(Boolean, nullable=False, default=False)

    origin = Column(String, nullable=False)
    finalized_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        # a user can only ever have one running timer
        Index(
            "uq_time_entries_open_per_user",
            "user_id",
            unique=True,
            postgresql_where=text("end_time IS NULL"),
            sqlite_where=text("end_time IS NULL"),
        ),
        Index("ix_time_entries_association", "association_kind", "association_id"),
        CheckConstraint(
            "end_time IS NULL OR end_time > start_time",
            name="ck_time_entries_end_after_start",
        ),
        CheckConstraint(
            "is_billable = false OR company_id IS NOT NULL",
            name="ck_time_entries_billable_requires_company",
        ),
        CheckConstraint(
            "(association_kind = 'none' AND association_id IS NULL)"
            " OR (association_kind IN ('task', 'campaign', 'project') AND association_id IS NOT NULL)",
            name="ck_time_entries_association",
        ),
        CheckConstraint("origin IN ('timer', 'manual')", name="ck_time_entries_origin"),
    )

    @property
    def association(self) -> Association:
        return Association(AssociationKind(self.association_kind), self.association_id)

    @association.setter
    def association(self, value: Association) -> None:
        self.association_kind = value.kind.value
        self.association_id = value.ref_id

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    @property
    def is_finalized(self) -> bool:
        return self.finalized_at is not None

    def duration_seconds(self, now: Optional[datetime] = None) -> Optional[float]:
        """Seconds between start and end; for open entries only when `now` is given."""
        end = self.end_time if self.end_time is not None else now
        if end is None:
            return None
        return (as_utc(end) - as_utc(self.start_time)).total_seconds()
