from __future__ import annotations

import asyncio
import json
from dataclasses import replace
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import StreamingResponse

from worklog.core.authorization import Role, has_role
from worklog.core.errors import EntryValidationError, NotFoundError, TimeEntryError
from worklog.database import SessionLocal
from worklog.deps.auth import require_auth
from worklog.schemas.time_entry import (
    FinalizeRequest,
    ManualEntryRequest,
    PeriodHoursResponse,
    StartTimerRequest,
    TimeEntryResponse,
    to_period_response,
    to_response,
)
from worklog.services import manual_entry_service, timer_service
from worklog.services.billing_calculator import hours_by_month
from worklog.services.change_notifier import Scope, notifier
from worklog.services.entry_store import EntryFilter, get_entry, list_entries

router = APIRouter(
    prefix="/time_entries",
    tags=["Time Entries"],
)

HEARTBEAT_SECONDS = 15.0


def _http_error(exc: TimeEntryError) -> HTTPException:
    if isinstance(exc, EntryValidationError):
        return HTTPException(status_code=exc.status_code, detail={"message": str(exc), "field": exc.field})
    return HTTPException(status_code=exc.status_code, detail=str(exc))


def _visible_filter(request: Request, caller_id: str, entry_filter: EntryFilter) -> EntryFilter:
    """
    Without a task, project or campaign filter a listing covers the caller's
    own entries. Other users' entries by user id are for managers only.
    """
    if entry_filter.user_id is None and not entry_filter.targets_work_item:
        return replace(entry_filter, user_id=caller_id)
    if (
        entry_filter.user_id is not None
        and str(entry_filter.user_id) != str(caller_id)
        and not has_role(request, Role.MANAGER)
    ):
        raise HTTPException(status_code=403, detail="Cannot list another user's entries")
    return entry_filter


@router.get("", response_model=list[TimeEntryResponse])
def list_time_entries(
    request: Request,
    user_id: Optional[str] = None,
    task_id: Optional[str] = None,
    project_id: Optional[str] = None,
    campaign_id: Optional[str] = None,
    started_from: Optional[datetime] = None,
    started_before: Optional[datetime] = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    caller_id: str = Depends(require_auth),
):
    entry_filter = _visible_filter(
        request,
        caller_id,
        EntryFilter(
            user_id=user_id,
            task_id=task_id,
            project_id=project_id,
            campaign_id=campaign_id,
            started_from=started_from,
            started_before=started_before,
        ),
    )
    try:
        rows = list_entries(entry_filter, limit=limit, offset=offset)
    except TimeEntryError as exc:
        raise _http_error(exc) from exc
    return [to_response(r) for r in rows]


@router.get("/monthly_hours", response_model=list[PeriodHoursResponse])
def monthly_hours(
    request: Request,
    user_id: Optional[str] = None,
    task_id: Optional[str] = None,
    project_id: Optional[str] = None,
    campaign_id: Optional[str] = None,
    started_from: Optional[datetime] = None,
    started_before: Optional[datetime] = None,
    caller_id: str = Depends(require_auth),
):
    """Closed-entry hours per month for the same filters as the listing."""
    entry_filter = _visible_filter(
        request,
        caller_id,
        EntryFilter(
            user_id=user_id,
            task_id=task_id,
            project_id=project_id,
            campaign_id=campaign_id,
            started_from=started_from,
            started_before=started_before,
        ),
    )
    try:
        rows = list_entries(entry_filter)
    except TimeEntryError as exc:
        raise _http_error(exc) from exc
    return [to_period_response(t) for t in hours_by_month(rows)]


@router.post("/timer/start", response_model=TimeEntryResponse)
def start_timer_endpoint(
    payload: StartTimerRequest,
    user_id: str = Depends(require_auth),
):
    association = payload.association.to_domain() if payload.association else None

    db = SessionLocal()
    try:
        entry = timer_service.start_timer(
            user_id=user_id,
            association=association,
            company_id=payload.company_id,
            description=payload.description,
            db=db,
        )
        db.commit()
        return to_response(entry)
    except TimeEntryError as exc:
        db.rollback()
        raise _http_error(exc) from exc
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@router.get("/active", response_model=TimeEntryResponse)
def get_active_time_entry(user_id: str = Depends(require_auth)):
    entry = timer_service.get_active_entry(user_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="No running timer")
    return to_response(entry)


@router.get("/stream")
async def stream_changes(
    request: Request,
    scope: str = Query(..., description="user:<id>, task:<id> or project:<id>"),
    _user_id: str = Depends(require_auth),
):
    """
    Server-sent events; each event means "re-fetch this scope". Payloads are
    hints, not data to apply.
    """
    try:
        parsed = Scope.parse(scope)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    subscription = notifier.subscribe(parsed)

    async def events():
        try:
            yield f"event: ready\ndata: {json.dumps({'scope': str(parsed)})}\n\n"
            while not await request.is_disconnected():
                try:
                    note = await asyncio.wait_for(subscription.get(), timeout=HEARTBEAT_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                data = {"scope": str(note.scope), "entry_id": note.entry_id, "event_type": note.event_type}
                yield f"event: change\ndata: {json.dumps(data)}\n\n"
        finally:
            subscription.close()

    return StreamingResponse(events(), media_type="text/event-stream")


@router.post("", response_model=TimeEntryResponse)
def create_manual_entry_endpoint(
    payload: ManualEntryRequest,
    user_id: str = Depends(require_auth),
):
    db = SessionLocal()
    try:
        entry = manual_entry_service.create_manual_entry(user_id, payload.to_fields(), db=db)
        db.commit()
        return to_response(entry)
    except TimeEntryError as exc:
        db.rollback()
        raise _http_error(exc) from exc
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@router.get("/{entry_id}", response_model=TimeEntryResponse)
def get_time_entry(request: Request, entry_id: str, caller_id: str = Depends(require_auth)):
    db = SessionLocal()
    try:
        entry = get_entry(db, entry_id)
        if str(entry.user_id) != str(caller_id) and not has_role(request, Role.MANAGER):
            # indistinguishable from a missing entry
            raise NotFoundError(f"Time entry not found: {entry_id}")
        return to_response(entry)
    except TimeEntryError as exc:
        raise _http_error(exc) from exc
    finally:
        db.close()


@router.put("/{entry_id}", response_model=TimeEntryResponse)
def update_manual_entry_endpoint(
    entry_id: str,
    payload: ManualEntryRequest,
    user_id: str = Depends(require_auth),
):
    db = SessionLocal()
    try:
        entry = manual_entry_service.update_manual_entry(user_id, entry_id, payload.to_fields(), db=db)
        db.commit()
        return to_response(entry)
    except TimeEntryError as exc:
        db.rollback()
        raise _http_error(exc) from exc
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@router.post("/{entry_id}/stop", response_model=TimeEntryResponse)
def stop_timer_endpoint(entry_id: str, user_id: str = Depends(require_auth)):
    db = SessionLocal()
    try:
        entry = timer_service.stop_timer(user_id, entry_id, db=db)
        db.commit()
        return to_response(entry)
    except TimeEntryError as exc:
        db.rollback()
        raise _http_error(exc) from exc
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@router.post("/{entry_id}/finalize", response_model=TimeEntryResponse)
def finalize_entry_endpoint(
    entry_id: str,
    payload: FinalizeRequest,
    user_id: str = Depends(require_auth),
):
    db = SessionLocal()
    try:
        entry = timer_service.finalize_entry(user_id, entry_id, payload.is_billable, db=db)
        db.commit()
        return to_response(entry)
    except TimeEntryError as exc:
        db.rollback()
        raise _http_error(exc) from exc
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
