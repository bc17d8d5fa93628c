from typing import Optional

from pydantic import BaseModel

from worklog.services.display import round_hours
from worklog.services.financials_service import ProjectFinancialSummary


class UserHours(BaseModel):
    user_id: str
    hours: float
    cost: float
    entries: int


class ProjectFinancialsResponse(BaseModel):
    project_id: str
    project_value: Optional[float]
    total_hours: float
    total_cost: float
    direct_hours: float
    task_hours: float
    profit: float
    profit_percentage: float
    is_profit: bool
    entry_count: int
    total_hours_display: str
    by_user: list[UserHours]


def to_response(summary: ProjectFinancialSummary) -> ProjectFinancialsResponse:
    return ProjectFinancialsResponse(
        project_id=summary.project_id,
        project_value=None if summary.project_value is None else float(summary.project_value),
        total_hours=float(summary.total_hours),
        total_cost=float(summary.total_cost),
        direct_hours=float(summary.direct_hours),
        task_hours=float(summary.task_hours),
        profit=float(summary.profit),
        profit_percentage=float(summary.profit_percentage),
        is_profit=summary.is_profit,
        entry_count=summary.entry_count,
        total_hours_display=f"{round_hours(summary.total_hours)}h",
        by_user=[
            UserHours(user_id=u.user_id, hours=float(u.hours), cost=float(u.cost), entries=u.entries)
            for u in summary.by_user
        ],
    )
