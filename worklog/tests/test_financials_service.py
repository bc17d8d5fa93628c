from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from worklog.core.errors import EntryValidationError
from worklog.models.time_entry import Association
from worklog.services import timer_service
from worklog.services.billing_calculator import BillingTotals
from worklog.services.financials_service import compute_project_financials, summarize_financials
from worklog.services.manual_entry_service import ManualEntryFields, create_manual_entry

T0 = datetime(2026, 6, 1, 9, 0, tzinfo=timezone.utc)


def _log(user_id, association, hours, *, company_id=None, offset_hours=0):
    start = T0 + timedelta(hours=offset_hours)
    return create_manual_entry(
        user_id,
        ManualEntryFields(
            description="Logged work",
            start_time=start,
            end_time=start + timedelta(hours=hours),
            association=association,
            company_id=company_id,
        ),
    )


def _totals(cost) -> BillingTotals:
    return BillingTotals(
        total_hours=Decimal(0),
        total_cost=Decimal(cost),
        direct_hours=Decimal(0),
        task_hours=Decimal(0),
        entry_count=0,
    )


def test_profit_and_percentage():
    summary = summarize_financials("p-1", Decimal("5000"), _totals(1000))

    assert summary.profit == Decimal(4000)
    assert summary.profit_percentage == Decimal(80)
    assert summary.is_profit is True


def test_loss_is_negative_profit():
    summary = summarize_financials("p-1", 500, _totals(1000))

    assert summary.profit == Decimal(-500)
    assert summary.profit_percentage == Decimal(-100)
    assert summary.is_profit is False


def test_zero_or_missing_value_gives_zero_percentage():
    zero = summarize_financials("p-1", 0, _totals(250))
    missing = summarize_financials("p-1", None, _totals(250))

    assert zero.profit_percentage == 0
    assert zero.profit == Decimal(-250)
    assert missing.profit_percentage == 0
    assert missing.project_value is None
    assert missing.profit == Decimal(-250)


def test_project_without_entries_keeps_full_value(project_factory):
    project = project_factory(value=5000)

    summary = compute_project_financials(project.id, project.value)

    assert summary.total_hours == 0
    assert summary.total_cost == 0
    assert summary.profit == Decimal(5000)
    assert summary.profit_percentage == Decimal(100)


def test_compute_project_financials_from_entries(project_factory, task_factory, employee_factory):
    employee_factory(user_id="alice", hourly_salary=100)
    project = project_factory(value=5000)
    task_a = task_factory(project_id=project.id, title="Wireframes")
    task_b = task_factory(project_id=project.id, title="Copy")

    _log("alice", Association.task(task_a.id), 1)
    _log("alice", Association.task(task_b.id), 2, offset_hours=2)
    _log("alice", Association.project(project.id), 2, offset_hours=5)

    summary = compute_project_financials(project.id, project.value)

    assert summary.task_hours == Decimal(3)
    assert summary.direct_hours == Decimal(2)
    assert summary.total_hours == Decimal(5)
    assert summary.total_cost == Decimal(500)
    assert summary.profit == Decimal(4500)
    assert summary.profit_percentage == Decimal(90)
    assert summary.entry_count == 3


def test_entries_of_other_projects_are_excluded(project_factory, task_factory, employee_factory):
    employee_factory(user_id="bob", hourly_salary=80)
    project = project_factory(value=1000)
    other = project_factory(value=1000, name="Other")
    other_task = task_factory(project_id=other.id)

    _log("bob", Association.project(other.id), 4)
    _log("bob", Association.task(other_task.id), 4, offset_hours=5)

    summary = compute_project_financials(project.id, project.value)

    assert summary.total_hours == 0
    assert summary.profit == Decimal(1000)


def test_running_timer_is_excluded_until_stopped(project_factory, employee_factory):
    employee_factory(user_id="carol", hourly_salary=60)
    project = project_factory(value=1000)

    entry = timer_service.start_timer(
        "carol",
        Association.project(project.id),
        now=datetime.now(timezone.utc) - timedelta(hours=1),
    )
    running = compute_project_financials(project.id, project.value)
    assert running.total_hours == 0

    timer_service.stop_timer("carol", entry.id)
    stopped = compute_project_financials(project.id, project.value)
    assert stopped.total_hours > Decimal("0.99")
    assert stopped.entry_count == 1


def test_recomputation_is_idempotent(project_factory, task_factory, employee_factory):
    employee_factory(user_id="dave", hourly_salary="42.50")
    project = project_factory(value=900)
    task = task_factory(project_id=project.id)
    for i in range(5):
        _log("dave", Association.task(task.id), 0.25 + i / 7, offset_hours=i * 3)

    first = compute_project_financials(project.id, project.value)
    second = compute_project_financials(project.id, project.value)

    assert first == second


def test_company_entries_count_only_when_requested(
    company_factory, project_factory, campaign_factory, employee_factory
):
    employee_factory(user_id="erin", hourly_salary=100)
    company = company_factory()
    project = project_factory(company_id=company.id, value=2000)
    campaign = campaign_factory(company_id=company.id)

    _log("erin", Association.none(), 1, company_id=company.id)
    _log("erin", Association.campaign(campaign.id), 2, company_id=company.id, offset_hours=2)
    _log("erin", Association.project(project.id), 1, company_id=company.id, offset_hours=5)

    default = compute_project_financials(project.id, project.value)
    widened = compute_project_financials(project.id, project.value, include_company_entries=True)

    assert default.direct_hours == Decimal(1)
    assert widened.direct_hours == Decimal(4)
    assert widened.total_cost == Decimal(400)


@pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf"), Decimal("NaN")])
def test_non_finite_value_is_rejected(value):
    with pytest.raises(EntryValidationError) as exc:
        summarize_financials("p-1", value, _totals(100))
    assert exc.value.field == "project_value"


def test_inactive_employee_rate_still_applies(project_factory, employee_factory):
    employee_factory(user_id="former", hourly_salary=50, is_active=False)
    project = project_factory(value=1000)

    _log("former", Association.project(project.id), 4)

    summary = compute_project_financials(project.id, project.value)
    assert summary.total_cost == Decimal(200)
