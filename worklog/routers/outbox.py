from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from worklog.core.authorization import Role, require_role
from worklog.core.clock import as_utc
from worklog.database import SessionLocal
from worklog.models.event_outbox import EventOutbox

router = APIRouter(prefix="/outbox", tags=["Outbox"])


class OutboxRow(BaseModel):
    id: int
    user_id: str
    entry_id: str
    event_type: str
    processed: bool
    retry_count: int
    created_at: str
    processed_at: Optional[str]


class OutboxListResponse(BaseModel):
    limit: int
    offset: int
    rows: list[OutboxRow]


@router.get("", response_model=OutboxListResponse)
def list_outbox(
    processed: Optional[bool] = None,
    entry_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0, le=1_000_000),
    _role=Depends(require_role(Role.MANAGER)),
):
    db: Session = SessionLocal()
    try:
        q = db.query(EventOutbox)

        if processed is not None:
            q = q.filter(EventOutbox.processed == bool(processed))
        if entry_id is not None:
            q = q.filter(EventOutbox.entry_id == str(entry_id))

        rows = (
            q.order_by(EventOutbox.id.asc())
            .limit(int(limit))
            .offset(int(offset))
            .all()
        )

        return {
            "limit": int(limit),
            "offset": int(offset),
            "rows": [
                {
                    "id": r.id,
                    "user_id": r.user_id,
                    "entry_id": r.entry_id,
                    "event_type": r.event_type,
                    "processed": r.processed,
                    "retry_count": r.retry_count,
                    "created_at": as_utc(r.created_at).isoformat(),
                    "processed_at": None if r.processed_at is None else as_utc(r.processed_at).isoformat(),
                }
                for r in rows
            ],
        }
    finally:
        db.close()
