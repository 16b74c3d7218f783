"""FastAPI application entry point.

This module wires together the API routers, configures middleware and
startup tasks, and exposes the ASGI application object used by the
server.  Every failure is rendered as ``{"success": false, "error": ...}``
by the handlers registered at the bottom of the file.
"""

import os
import logging
import asyncio
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from budget_app.routes import (
    auth,
    users,
    settings,
    households,
    child_accounts,
    approvals,
    allowances,
    chores,
    notifications,
)
from budget_app.database import create_db_and_tables, async_session
from budget_app.crud import (
    ensure_permissions_exist,
    process_allowance_payments,
    delete_expired_notifications,
    get_settings,
)
from budget_app.acl import ALL_PERMISSIONS
from budget_app.exceptions import BudgetAppError

# The log level can be controlled with an environment variable so
# deployments can adjust verbosity without code changes.
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=getattr(logging, LOG_LEVEL))
logger = logging.getLogger(__name__)

AUTOMATION_INTERVAL_SECONDS = int(os.getenv("AUTOMATION_INTERVAL_SECONDS", "86400"))

app = FastAPI(title="Household Budget API")

# CORS setup
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def on_startup():
    """Initialize the database and kick off background tasks."""

    await create_db_and_tables()
    async with async_session() as session:
        # Ensure any new permissions are inserted into the database on startup.
        await ensure_permissions_exist(session, ALL_PERMISSIONS)
    asyncio.create_task(daily_automation_task())


async def run_daily_automation() -> None:
    """Pay due allowances, then drop expired notifications."""

    async with async_session() as session:
        paid = await process_allowance_payments(session)
        removed = await delete_expired_notifications(session)
    logger.info(
        "Daily automation paid %s allowances and removed %s notifications",
        paid,
        removed,
    )


async def daily_automation_task():
    """Background coroutine that repeats the daily automation forever."""

    logger.info("Starting daily automation task")
    while True:
        try:
            await run_daily_automation()
        except Exception as exc:
            logger.exception("Daily automation failed: %s", exc)
        await asyncio.sleep(AUTOMATION_INTERVAL_SECONDS)


app.include_router(auth.router)
app.include_router(users.router)
app.include_router(settings.router)
app.include_router(households.router)
app.include_router(child_accounts.router)
app.include_router(approvals.router)
app.include_router(allowances.router)
app.include_router(chores.router)
app.include_router(notifications.router)


@app.get("/")
async def read_root():
    async with async_session() as session:
        s = await get_settings(session)
        name = s.site_name
    return {"message": f"Welcome to {name} API"}


@app.exception_handler(BudgetAppError)
async def budget_app_error_handler(request: Request, exc: BudgetAppError):
    logger.info(
        "%s on %s: %s", type(exc).__name__, request.url.path, exc.message
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": "Invalid request",
            "details": jsonable_encoder(exc.errors()),
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all exception handler that logs the stack trace once."""
    logger.exception("Unhandled error during request %s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "An unexpected error occurred"},
    )
