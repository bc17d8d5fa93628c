from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from worklog.models.time_entry import Association, EntryOrigin, TimeEntry
from worklog.services.billing_calculator import calculate_billing, entry_hours, hours_by_month

T0 = datetime(2026, 5, 4, 8, 0, tzinfo=timezone.utc)


def _entry(user_id, association, *, hours=None, seconds=None, company_id=None, entry_id=None):
    end = None
    if hours is not None:
        end = T0 + timedelta(hours=hours)
    elif seconds is not None:
        end = T0 + timedelta(seconds=seconds)
    row = TimeEntry(
        id=entry_id or str(uuid4()),
        user_id=user_id,
        start_time=T0,
        end_time=end,
        description="work",
        company_id=company_id,
        is_billable=False,
        origin=EntryOrigin.MANUAL.value,
    )
    row.association = association
    return row


def test_hours_times_rate():
    entries = [_entry("alice", Association.project("p-1"), hours=10)]

    totals = calculate_billing(
        entries,
        {"alice": Decimal("100")},
        project_id="p-1",
        task_project_ids={},
    )

    assert totals.total_hours == Decimal(10)
    assert totals.total_cost == Decimal(1000)
    assert totals.entry_count == 1


def test_direct_and_task_hours_are_added():
    entries = [
        _entry("alice", Association.task("t-1"), hours=1),
        _entry("alice", Association.task("t-2"), hours=2),
        _entry("bob", Association.project("p-1"), hours=2),
    ]

    totals = calculate_billing(
        entries,
        {},
        project_id="p-1",
        task_project_ids={"t-1": "p-1", "t-2": "p-1"},
    )

    assert totals.task_hours == Decimal(3)
    assert totals.direct_hours == Decimal(2)
    assert totals.total_hours == Decimal(5)


def test_entries_outside_project_are_ignored():
    entries = [
        _entry("alice", Association.task("t-other"), hours=4),
        _entry("alice", Association.project("p-2"), hours=4),
        _entry("alice", Association.none(), hours=4),
        _entry("alice", Association.campaign("c-1"), hours=4),
    ]

    totals = calculate_billing(
        entries,
        {"alice": Decimal("50")},
        project_id="p-1",
        task_project_ids={"t-other": "p-2"},
    )

    assert totals.total_hours == 0
    assert totals.total_cost == 0
    assert totals.entry_count == 0


def test_open_entries_contribute_nothing():
    entries = [
        _entry("alice", Association.project("p-1"), hours=2),
        _entry("bob", Association.project("p-1")),
    ]

    totals = calculate_billing(
        entries,
        {"alice": Decimal("10"), "bob": Decimal("10")},
        project_id="p-1",
        task_project_ids={},
    )

    assert totals.total_hours == Decimal(2)
    assert totals.total_cost == Decimal(20)
    assert [u.user_id for u in totals.by_user] == ["alice"]


def test_user_without_rate_costs_nothing_but_hours_count():
    entries = [
        _entry("alice", Association.project("p-1"), hours=3),
        _entry("nobody", Association.project("p-1"), hours=5),
    ]

    totals = calculate_billing(
        entries,
        {"alice": Decimal("200")},
        project_id="p-1",
        task_project_ids={},
    )

    assert totals.total_hours == Decimal(8)
    assert totals.total_cost == Decimal(600)
    nobody = next(u for u in totals.by_user if u.user_id == "nobody")
    assert nobody.hours == Decimal(5)
    assert nobody.cost == 0


def test_empty_entry_set():
    totals = calculate_billing([], {}, project_id="p-1", task_project_ids={})

    assert totals.total_hours == 0
    assert totals.total_cost == 0
    assert totals.entry_count == 0
    assert totals.by_user == ()


def test_hours_are_not_rounded_per_entry():
    # three 20-minute entries must sum to exactly one hour
    entries = [_entry("alice", Association.project("p-1"), seconds=1200) for _ in range(3)]

    totals = calculate_billing(
        entries,
        {"alice": Decimal("90")},
        project_id="p-1",
        task_project_ids={},
    )

    assert totals.total_hours.quantize(Decimal("0.000001")) == Decimal("1.000000")
    assert totals.total_cost.quantize(Decimal("0.01")) == Decimal("90.00")


def test_result_does_not_depend_on_input_order():
    entries = [
        _entry("alice", Association.project("p-1"), seconds=1000 + i * 7, entry_id=f"e-{i:02d}")
        for i in range(12)
    ]
    rates = {"alice": Decimal("33.33")}

    forward = calculate_billing(entries, rates, project_id="p-1", task_project_ids={})
    backward = calculate_billing(list(reversed(entries)), rates, project_id="p-1", task_project_ids={})

    assert forward == backward


def test_custom_direct_predicate():
    entries = [
        _entry("alice", Association.none(), hours=1, company_id="co-1"),
        _entry("alice", Association.none(), hours=1, company_id="co-2"),
    ]

    totals = calculate_billing(
        entries,
        {},
        project_id="p-1",
        task_project_ids={},
        is_direct=lambda e: e.company_id == "co-1",
    )

    assert totals.direct_hours == Decimal(1)


def test_entry_hours():
    assert entry_hours(_entry("alice", Association.none(), seconds=5400)) == Decimal("1.5")
    assert entry_hours(_entry("alice", Association.none())) is None


def _at(start, hours=None):
    row = _entry("alice", Association.none())
    row.start_time = start
    row.end_time = None if hours is None else start + timedelta(hours=hours)
    return row


def test_hours_by_month_groups_on_start_month():
    entries = [
        _at(datetime(2026, 7, 30, 9, 0, tzinfo=timezone.utc), 2),
        _at(datetime(2026, 7, 31, 22, 0, tzinfo=timezone.utc), 4),
        _at(datetime(2026, 8, 3, 9, 0, tzinfo=timezone.utc), 1.5),
        _at(datetime(2026, 8, 4, 9, 0, tzinfo=timezone.utc)),
    ]

    totals = hours_by_month(entries)

    assert [(t.period, t.hours, t.entry_count) for t in totals] == [
        ("2026-07", Decimal(6), 2),
        ("2026-08", Decimal("1.5"), 1),
    ]


def test_hours_by_month_empty():
    assert hours_by_month([]) == ()
