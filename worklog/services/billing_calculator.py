from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Callable, Dict, Iterable, Mapping, Optional, Tuple

from worklog.core.clock import as_utc
from worklog.models.time_entry import AssociationKind, TimeEntry

SECONDS_PER_HOUR = Decimal(3600)
ZERO = Decimal(0)

DirectPredicate = Callable[[TimeEntry], bool]


@dataclass(frozen=True)
class UserTotals:
    user_id: str
    hours: Decimal
    cost: Decimal
    entries: int


@dataclass(frozen=True)
class BillingTotals:
    total_hours: Decimal
    total_cost: Decimal
    direct_hours: Decimal
    task_hours: Decimal
    entry_count: int
    by_user: Tuple[UserTotals, ...] = ()


def _exact_seconds(delta: timedelta) -> Decimal:
    return Decimal(delta.days * 86400 + delta.seconds) + Decimal(delta.microseconds) / Decimal(1_000_000)


def entry_hours(entry: TimeEntry) -> Optional[Decimal]:
    """Unrounded hours of a closed entry; None while the entry is open."""
    if entry.end_time is None:
        return None
    return _exact_seconds(as_utc(entry.end_time) - as_utc(entry.start_time)) / SECONDS_PER_HOUR


def project_direct(project_id: str) -> DirectPredicate:
    def predicate(entry: TimeEntry) -> bool:
        return (
            entry.association_kind == AssociationKind.PROJECT.value
            and str(entry.association_id) == str(project_id)
        )

    return predicate


def calculate_billing(
    entries: Iterable[TimeEntry],
    rates: Mapping[str, Decimal],
    *,
    project_id: str,
    task_project_ids: Mapping[str, Optional[str]],
    is_direct: Optional[DirectPredicate] = None,
) -> BillingTotals:
    """
    Hours and labour cost of a project's closed entries.

    An entry is task-derived when it is logged on a task that belongs to
    `project_id`, and direct when `is_direct` says so (by default: logged on
    the project itself). Anything else does not count. Open entries
    contribute nothing until stopped. Users without a rate cost 0.
    """
    if is_direct is None:
        is_direct = project_direct(project_id)

    direct_hours = ZERO
    task_hours = ZERO
    total_cost = ZERO
    entry_count = 0
    per_user: Dict[str, list] = {}

    # fixed order so Decimal sums are reproducible whatever order the rows came in
    for entry in sorted(entries, key=lambda e: str(e.id)):
        hours = entry_hours(entry)
        if hours is None:
            continue

        is_task = (
            entry.association_kind == AssociationKind.TASK.value
            and task_project_ids.get(str(entry.association_id)) == str(project_id)
        )
        if is_task:
            task_hours += hours
        elif is_direct(entry):
            direct_hours += hours
        else:
            continue

        user_id = str(entry.user_id)
        cost = hours * Decimal(rates.get(user_id, ZERO) or ZERO)
        total_cost += cost
        entry_count += 1

        bucket = per_user.setdefault(user_id, [ZERO, ZERO, 0])
        bucket[0] += hours
        bucket[1] += cost
        bucket[2] += 1

    by_user = tuple(
        UserTotals(user_id=user_id, hours=h, cost=c, entries=n)
        for user_id, (h, c, n) in sorted(per_user.items())
    )

    return BillingTotals(
        total_hours=direct_hours + task_hours,
        total_cost=total_cost,
        direct_hours=direct_hours,
        task_hours=task_hours,
        entry_count=entry_count,
        by_user=by_user,
    )


@dataclass(frozen=True)
class PeriodTotals:
    period: str
    hours: Decimal
    entry_count: int


def hours_by_month(entries: Iterable[TimeEntry]) -> Tuple[PeriodTotals, ...]:
    """
    Closed-entry hours grouped by the UTC month of start_time ("YYYY-MM"),
    oldest month first. An entry crossing midnight at month end counts fully
    in the month it started.
    """
    buckets: Dict[str, list] = {}
    for entry in sorted(entries, key=lambda e: str(e.id)):
        hours = entry_hours(entry)
        if hours is None:
            continue
        period = as_utc(entry.start_time).strftime("%Y-%m")
        bucket = buckets.setdefault(period, [ZERO, 0])
        bucket[0] += hours
        bucket[1] += 1

    return tuple(
        PeriodTotals(period=period, hours=h, entry_count=n)
        for period, (h, n) in sorted(buckets.items())
    )
