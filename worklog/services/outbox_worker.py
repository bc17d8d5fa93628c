import asyncio
import logging
import os

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session

from worklog.core.clock import utcnow
from worklog.database import SessionLocal
from worklog.services.outbox_processor import process_outbox_batch

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return int(v)
    except ValueError:
        return default


def outbox_worker_enabled() -> bool:
    # Disable by default under pytest to keep tests deterministic.
    if os.getenv("PYTEST_CURRENT_TEST"):
        return False
    v = os.getenv("OUTBOX_WORKER_ENABLED")
    if v is None:
        return True
    return v.strip() not in {"0", "false", "False", "no", "NO"}


def _safe_rollback(db: Session) -> None:
    try:
        db.rollback()
    except Exception:
        logger.debug("Rollback after failed tick failed", exc_info=True)


def _dispose_pool(db: Session) -> None:
    try:
        engine = db.get_bind()
        if engine is not None and hasattr(engine, "dispose"):
            engine.dispose()
    except Exception:
        logger.debug("Engine dispose failed", exc_info=True)


async def outbox_worker_loop(*, poll_seconds: float = 1.0, batch_size: int = 50) -> None:
    """
    Dispatch pending time entry events to this process's change subscribers.

    Never crashes the server on database failures; a tick that fails is
    logged and retried on the next poll.
    """
    logger.info(
        "Outbox worker started",
        extra={"poll_seconds": float(poll_seconds), "batch_size": int(batch_size)},
    )

    while True:
        work_db: Session = SessionLocal()
        try:
            result = process_outbox_batch(db=work_db, now=utcnow(), batch_size=batch_size)
            work_db.commit()
            if result.processed or result.failed:
                logger.debug(
                    "Outbox tick",
                    extra={"processed": result.processed, "failed": result.failed},
                )

        except asyncio.CancelledError:
            logger.info("Outbox worker cancelled; shutting down")
            raise

        except (OperationalError, DBAPIError):
            _safe_rollback(work_db)
            # connection died; make the next tick start from fresh connections
            _dispose_pool(work_db)
            logger.exception(
                "Outbox worker tick failed",
                extra={"component": "outbox_worker", "reason": "dbapi_error"},
            )

        except Exception:
            _safe_rollback(work_db)
            logger.exception(
                "Outbox worker tick failed",
                extra={"component": "outbox_worker", "reason": "unexpected"},
            )

        finally:
            work_db.close()

        await asyncio.sleep(poll_seconds)


def start_outbox_worker_task() -> asyncio.Task | None:
    if not outbox_worker_enabled():
        logger.info("Outbox worker disabled")
        return None

    poll_seconds = float(os.getenv("OUTBOX_POLL_SECONDS", "1.0"))
    batch_size = _env_int("OUTBOX_BATCH_SIZE", 50)
    return asyncio.create_task(outbox_worker_loop(poll_seconds=poll_seconds, batch_size=batch_size))
