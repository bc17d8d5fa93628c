from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Tuple, Union

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from worklog.core.errors import EntryValidationError
from worklog.database import SessionLocal
from worklog.models.time_entry import AssociationKind, TimeEntry
from worklog.services.billing_calculator import (
    BillingTotals,
    DirectPredicate,
    UserTotals,
    calculate_billing,
    project_direct,
)
from worklog.services.entry_store import project_entry_clause
from worklog.services.registries import get_project, hourly_rates, task_project_map

logger = logging.getLogger(__name__)

Number = Union[int, float, Decimal]

HUNDRED = Decimal(100)


@dataclass(frozen=True)
class ProjectFinancialSummary:
    project_id: str
    project_value: Optional[Decimal]
    total_hours: Decimal
    total_cost: Decimal
    direct_hours: Decimal
    task_hours: Decimal
    profit: Decimal
    profit_percentage: Decimal
    entry_count: int = 0
    by_user: Tuple[UserTotals, ...] = ()

    @property
    def is_profit(self) -> bool:
        return self.profit >= 0


def _to_decimal(value: Optional[Number]) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def summarize_financials(
    project_id: str,
    project_value: Optional[Number],
    totals: BillingTotals,
) -> ProjectFinancialSummary:
    """
    profit = value - cost, margin = profit / value * 100.

    A missing or non-positive value gives a 0 margin rather than a division
    error. NaN and infinite values are rejected.
    """
    value = _to_decimal(project_value)
    if value is not None and not value.is_finite():
        raise EntryValidationError("Project value must be a finite number", field="project_value")
    base = value if value is not None else Decimal(0)

    profit = base - totals.total_cost
    if base > 0:
        profit_percentage = profit / base * HUNDRED
    else:
        profit_percentage = Decimal(0)

    return ProjectFinancialSummary(
        project_id=str(project_id),
        project_value=value,
        total_hours=totals.total_hours,
        total_cost=totals.total_cost,
        direct_hours=totals.direct_hours,
        task_hours=totals.task_hours,
        profit=profit,
        profit_percentage=profit_percentage,
        entry_count=totals.entry_count,
        by_user=totals.by_user,
    )


def _company_direct(project_id: str, company_id: str) -> DirectPredicate:
    on_project = project_direct(project_id)

    def predicate(entry: TimeEntry) -> bool:
        if on_project(entry):
            return True
        return (
            entry.association_kind in (AssociationKind.NONE.value, AssociationKind.CAMPAIGN.value)
            and entry.company_id is not None
            and str(entry.company_id) == str(company_id)
        )

    return predicate


def compute_project_financials(
    project_id: str,
    project_value: Optional[Number],
    *,
    db: Optional[Session] = None,
    include_company_entries: bool = False,
) -> ProjectFinancialSummary:
    """
    Recompute the project's financial summary from the stored entries.

    Nothing is cached; two calls over the same entries give the same result.
    With `include_company_entries`, unassociated and campaign entries booked
    on the project's company also count as direct hours.
    """
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        clause = project_entry_clause(db, project_id)
        is_direct = None

        if include_company_entries:
            project = get_project(db, project_id)
            if project is not None and project.company_id is not None:
                is_direct = _company_direct(project_id, project.company_id)
                clause = or_(
                    clause,
                    and_(
                        TimeEntry.association_kind.in_(
                            [AssociationKind.NONE.value, AssociationKind.CAMPAIGN.value]
                        ),
                        TimeEntry.company_id == str(project.company_id),
                    ),
                )

        entries = (
            db.query(TimeEntry)
            .filter(clause)
            .filter(TimeEntry.end_time.isnot(None))
            .all()
        )

        rates = hourly_rates(db, (e.user_id for e in entries))
        task_ids = [
            e.association_id for e in entries if e.association_kind == AssociationKind.TASK.value
        ]
        totals = calculate_billing(
            entries,
            rates,
            project_id=str(project_id),
            task_project_ids=task_project_map(db, task_ids),
            is_direct=is_direct,
        )

        summary = summarize_financials(project_id, project_value, totals)
        logger.debug(
            "Project financials computed",
            extra={
                "project_id": str(project_id),
                "entry_count": summary.entry_count,
                "total_cost": str(summary.total_cost),
            },
        )
        return summary
    finally:
        if owns_db:
            db.close()
