from contextlib import asynccontextmanager
import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from worklog.core.logging import configure_logging
from worklog.services.outbox_worker import start_outbox_worker_task
from worklog import models  # noqa: F401
from worklog.routers.auth import router as auth_router
from worklog.routers.outbox import router as outbox_router
from worklog.routers.projects import router as projects_router
from worklog.routers.time_entries import router as time_entries_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()

    task = start_outbox_worker_task()
    try:
        yield
    finally:
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("Outbox worker failed during shutdown")


app = FastAPI(
    title="Worklog",
    description="Time tracking and project billing",
    version="1.0.0",
    lifespan=lifespan,
)


@app.middleware("http")
async def catch_unhandled_exceptions(request: Request, call_next):
    try:
        return await call_next(request)
    except Exception:
        logger.exception("Unhandled exception", extra={"path": request.url.path})
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


app.include_router(auth_router)
app.include_router(time_entries_router)
app.include_router(projects_router)
app.include_router(outbox_router)


@app.get("/")
def root():
    return {"status": "Worklog running"}


@app.get("/health")
def health():
    return {
        "status": "ok",
        "version": "1.0.0",
    }
