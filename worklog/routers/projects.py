from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from worklog.core.authorization import Role, require_role
from worklog.core.errors import EntryValidationError
from worklog.database import SessionLocal
from worklog.schemas.financials import ProjectFinancialsResponse, to_response
from worklog.services.financials_service import compute_project_financials
from worklog.services.registries import get_project

router = APIRouter(prefix="/projects", tags=["Projects"])


@router.get("/{project_id}/financials", response_model=ProjectFinancialsResponse)
def get_project_financials(
    project_id: str,
    project_value: Optional[float] = Query(
        default=None,
        allow_inf_nan=False,
        description="Contracted value; defaults to the value stored on the project.",
    ),
    include_company_entries: bool = False,
    _role=Depends(require_role(Role.MANAGER)),
):
    db = SessionLocal()
    try:
        project = get_project(db, project_id)
        if project is None:
            raise HTTPException(status_code=404, detail="Project not found")

        value = project_value if project_value is not None else project.value
        summary = compute_project_financials(
            project_id,
            value,
            db=db,
            include_company_entries=include_company_entries,
        )
        return to_response(summary)
    except EntryValidationError as exc:
        raise HTTPException(
            status_code=exc.status_code,
            detail={"message": str(exc), "field": exc.field},
        ) from exc
    finally:
        db.close()
