"""
Read-only lookups against the records owned by other parts of the product
(employees, companies, projects, tasks, campaigns). Time tracking never
writes to these tables.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Dict, Iterable, Optional

from sqlalchemy.orm import Session

from worklog.core.errors import NotFoundError
from worklog.models.campaign import Campaign
from worklog.models.company import Company
from worklog.models.employee import Employee
from worklog.models.project import Project
from worklog.models.task import Task
from worklog.models.time_entry import Association, AssociationKind

_ASSOCIATION_MODELS = {
    AssociationKind.TASK: Task,
    AssociationKind.CAMPAIGN: Campaign,
    AssociationKind.PROJECT: Project,
}


def get_project(db: Session, project_id: str) -> Optional[Project]:
    return db.query(Project).filter(Project.id == str(project_id)).first()


def get_task(db: Session, task_id: str) -> Optional[Task]:
    return db.query(Task).filter(Task.id == str(task_id)).first()


def company_exists(db: Session, company_id: str) -> bool:
    return db.query(Company.id).filter(Company.id == str(company_id)).first() is not None


def require_company(db: Session, company_id: Optional[str]) -> None:
    if company_id is not None and not company_exists(db, company_id):
        raise NotFoundError(f"Company not found: {company_id}")


def require_association(db: Session, association: Association) -> None:
    if association.is_none:
        return
    model = _ASSOCIATION_MODELS[association.kind]
    found = db.query(model.id).filter(model.id == association.ref_id).first()
    if found is None:
        raise NotFoundError(f"{association.kind.value.capitalize()} not found: {association.ref_id}")


def association_label(db: Session, association: Association) -> Optional[str]:
    """Human name of the association target: task title, project or campaign name."""
    if association.is_none:
        return None
    model = _ASSOCIATION_MODELS[association.kind]
    row = db.query(model).filter(model.id == association.ref_id).first()
    if row is None:
        return None
    if association.kind is AssociationKind.TASK:
        return row.title
    return row.name


def task_ids_for_project(db: Session, project_id: str) -> list[str]:
    rows = db.query(Task.id).filter(Task.project_id == str(project_id)).all()
    return [r[0] for r in rows]


def task_project_map(db: Session, task_ids: Iterable[str]) -> Dict[str, Optional[str]]:
    ids = sorted({str(t) for t in task_ids})
    if not ids:
        return {}
    rows = db.query(Task.id, Task.project_id).filter(Task.id.in_(ids)).all()
    return {r[0]: r[1] for r in rows}


def hourly_rates(db: Session, user_ids: Iterable[str]) -> Dict[str, Decimal]:
    """
    Current hourly rate per user. Inactive employees keep their rate so hours
    logged before they left are still costed; users without a row are absent.
    """
    ids = sorted({str(u) for u in user_ids})
    if not ids:
        return {}
    rows = (
        db.query(Employee.user_id, Employee.hourly_salary)
        .filter(Employee.user_id.in_(ids))
        .all()
    )
    return {r[0]: Decimal(r[1] or 0) for r in rows}
