from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

from worklog.core.clock import as_utc
from worklog.models.time_entry import Association, AssociationKind, TimeEntry
from worklog.services.billing_calculator import PeriodTotals
from worklog.services.display import elapsed_seconds, format_duration, round_hours
from worklog.services.manual_entry_service import ManualEntryFields


class AssociationIn(BaseModel):
    """One target only: {"kind": "task", "id": "..."}; kind "none" takes no id."""

    kind: Literal["none", "task", "campaign", "project"] = "none"
    id: Optional[str] = None

    @model_validator(mode="after")
    def _id_matches_kind(self):
        if self.kind == "none" and self.id is not None:
            raise ValueError("association of kind 'none' cannot have an id")
        if self.kind != "none" and not self.id:
            raise ValueError(f"association of kind '{self.kind}' requires an id")
        return self

    def to_domain(self) -> Association:
        return Association(AssociationKind(self.kind), self.id)


class AssociationOut(BaseModel):
    kind: str
    id: Optional[str]


class StartTimerRequest(BaseModel):
    association: Optional[AssociationIn] = None
    company_id: Optional[str] = None
    description: str = ""


class FinalizeRequest(BaseModel):
    is_billable: bool = False


class ManualEntryRequest(BaseModel):
    description: str = ""
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    association: Optional[AssociationIn] = None
    company_id: Optional[str] = None
    is_billable: bool = False

    def to_fields(self) -> ManualEntryFields:
        association = self.association.to_domain() if self.association else Association.none()
        return ManualEntryFields(
            description=self.description,
            start_time=self.start_time,
            end_time=self.end_time,
            association=association,
            company_id=self.company_id,
            is_billable=self.is_billable,
        )


class TimeEntryResponse(BaseModel):
    id: str
    user_id: str
    start_time: datetime
    end_time: Optional[datetime]
    description: str
    association: AssociationOut
    company_id: Optional[str]
    is_billable: bool
    origin: str
    is_running: bool
    is_finalized: bool
    elapsed_seconds: int
    elapsed_display: str = Field(description="HH:MM:SS, informational only")
    created_at: datetime
    updated_at: datetime


def to_response(entry: TimeEntry, now: Optional[datetime] = None) -> TimeEntryResponse:
    seconds = elapsed_seconds(entry, now)
    return TimeEntryResponse(
        id=entry.id,
        user_id=entry.user_id,
        start_time=as_utc(entry.start_time),
        end_time=as_utc(entry.end_time),
        description=entry.description or "",
        association=AssociationOut(kind=entry.association_kind, id=entry.association_id),
        company_id=entry.company_id,
        is_billable=bool(entry.is_billable),
        origin=entry.origin,
        is_running=entry.is_open,
        is_finalized=entry.is_finalized,
        elapsed_seconds=seconds,
        elapsed_display=format_duration(seconds),
        created_at=as_utc(entry.created_at),
        updated_at=as_utc(entry.updated_at),
    )


class PeriodHoursResponse(BaseModel):
    period: str
    hours: float
    hours_display: str
    entry_count: int


def to_period_response(totals: PeriodTotals) -> PeriodHoursResponse:
    return PeriodHoursResponse(
        period=totals.period,
        hours=float(totals.hours),
        hours_display=f"{round_hours(totals.hours)}h",
        entry_count=totals.entry_count,
    )
