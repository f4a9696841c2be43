"""Entry point for the medication reminder call service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api.dependencies import shutdown_orchestrator
from api.routes import router as api_router
from calls.errors import CallWorkflowError
from config.settings import get_settings
from db.base import dispose_db, init_db

LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield
    await shutdown_orchestrator()
    await dispose_db()


settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title="Medication Reminder Calls",
    description="Automated voice calls confirming medication adherence, with SMS fallback.",
    lifespan=lifespan,
)
app.include_router(api_router, prefix="/api")


@app.exception_handler(CallWorkflowError)
async def call_workflow_error_handler(request: Request, exc: CallWorkflowError) -> JSONResponse:
    if exc.status_code >= 500:
        LOGGER.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
