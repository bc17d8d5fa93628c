import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

from worklog.core.clock import as_utc, utcnow
from worklog.database import SessionLocal
from worklog.models.event_outbox import EventOutbox

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutboxProcessResult:
    processed: int
    failed: int


OutboxHandler = Callable[[EventOutbox, Session], None]


def _retry_wait(retry_count: int) -> timedelta:
    """Exponential backoff: 0s before the first retry, then 2s, 4s, 8s ... capped at 60s."""
    n = int(retry_count) if retry_count is not None else 0
    if n <= 0:
        return timedelta(seconds=0)

    seconds = 2**n
    if seconds > 60:
        seconds = 60
    return timedelta(seconds=seconds)


def _due(created_at: datetime, retry_count: int, now: datetime) -> bool:
    return as_utc(now) >= (as_utc(created_at) + _retry_wait(retry_count))


def _default_handlers() -> Dict[str, OutboxHandler]:
    from worklog.services.entry_events import ENTRY_EVENT_TYPES
    from worklog.services.outbox_handlers import handle_time_entry_changed

    return {event_type: handle_time_entry_changed for event_type in ENTRY_EVENT_TYPES}


def process_outbox_batch(
    *,
    db: Optional[Session] = None,
    now: Optional[datetime] = None,
    batch_size: int = 50,
    max_retries: int = 10,
    handlers: Optional[Dict[str, OutboxHandler]] = None,
) -> OutboxProcessResult:
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    if now is None:
        now = utcnow()

    if handlers is None:
        handlers = _default_handlers()

    processed = 0
    failed = 0

    try:
        candidates = (
            db.query(EventOutbox)
            .filter(EventOutbox.processed.is_(False))
            .order_by(EventOutbox.id.asc())
            .with_for_update(skip_locked=True)
            .limit(int(batch_size) * 4)
            .all()
        )
        # backoff is checked here rather than in SQL so it works on every backend;
        # not-due rows are skipped before the batch limit so they cannot starve due ones
        rows = [r for r in candidates if _due(r.created_at, r.retry_count, now)][: int(batch_size)]

        for row in rows:
            handler = handlers.get(row.event_type)

            try:
                if handler is None:
                    raise ValueError(f"Unknown event_type: {row.event_type}")

                handler(row, db)

                row.processed = True
                row.processed_at = now
                db.flush()
                processed += 1

            except Exception:
                row.retry_count = int(row.retry_count or 0) + 1

                if int(row.retry_count) >= int(max_retries):
                    row.processed = True
                    row.processed_at = now

                db.flush()
                failed += 1
                logger.exception(
                    "Outbox row processing failed",
                    extra={
                        "event_outbox_id": row.id,
                        "event_type": row.event_type,
                        "retry_count": int(row.retry_count),
                        "max_retries": int(max_retries),
                    },
                )

        if owns_db:
            db.commit()

        return OutboxProcessResult(processed=processed, failed=failed)

    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()
