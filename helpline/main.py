from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from helpline import db
from helpline.config import AppInfo, get_settings
from helpline.core.logging import get_logger, setup_logging
from helpline.core.runtime_state import set_scheduler_active
import helpline.models  # registers the tables
from helpline.routers import get_api_router, health
from helpline.services.cron import (
    DISPATCH_NOTIFICATIONS_JOB,
    EXPIRE_BEACONS_JOB,
    dispatch_notifications_once,
    expire_beacons_once,
)
from helpline.services.rate_limit import get_rate_limit_store
from helpline.services.scheduler_lock import (
    refresh_scheduler_lock,
    release_scheduler_lock,
    try_acquire_scheduler_lock,
)
from helpline.utils.errors import error_response, validation_details

logger = get_logger(__name__)
scheduler: AsyncIOScheduler | None = None
ALLOWED_CREATE_ENV = {"dev", "local", "test"}


def _current_settings():
    return get_settings()


def _configure_middlewares(fastapi_app: FastAPI) -> None:
    """Configure middleware using a fresh snapshot of the settings."""

    runtime_settings = _current_settings()
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=runtime_settings.CORS_ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-App-Version"],
        expose_headers=["Retry-After", "Content-Disposition"],
    )

    if runtime_settings.PROMETHEUS_ENABLED:
        from starlette_exporter import PrometheusMiddleware, handle_metrics

        fastapi_app.add_middleware(PrometheusMiddleware)
        fastapi_app.add_route("/metrics", handle_metrics)

    if runtime_settings.SENTRY_DSN:
        import sentry_sdk

        sentry_sdk.init(dsn=runtime_settings.SENTRY_DSN, traces_sample_rate=0.2)


def _stop_scheduler() -> None:
    global scheduler
    if scheduler is not None:
        scheduler.shutdown(wait=False)
        scheduler = None
    set_scheduler_active(False)


async def _scheduler_heartbeat() -> bool:
    """Renew the sweep lease; stop the sweeps here once another replica holds it."""

    if await asyncio.to_thread(refresh_scheduler_lock):
        return True
    logger.warning("Scheduler lease lost; stopping sweeps on this replica.")
    _stop_scheduler()
    return False


def _start_scheduler(settings: Any) -> AsyncIOScheduler:
    sweeps = AsyncIOScheduler()
    sweeps.start()
    sweeps.add_job(
        expire_beacons_once,
        "interval",
        seconds=settings.BEACON_SWEEP_SECONDS,
        id=EXPIRE_BEACONS_JOB,
        replace_existing=True,
    )
    sweeps.add_job(
        dispatch_notifications_once,
        "interval",
        seconds=settings.NOTIFY_SWEEP_SECONDS,
        id=DISPATCH_NOTIFICATIONS_JOB,
        replace_existing=True,
    )
    sweeps.add_job(
        _scheduler_heartbeat,
        "interval",
        seconds=60,
        id="scheduler-lock-heartbeat",
        replace_existing=True,
    )
    return sweeps


@asynccontextmanager
async def lifespan(app: FastAPI):
    global scheduler
    setup_logging()
    settings = _current_settings()
    logger.info("Application startup", extra={"env": settings.app_env})
    if settings.app_env.lower() not in ALLOWED_CREATE_ENV and settings.JWT_SECRET == "change-me":
        logger.error("JWT_SECRET is not configured", extra={"env": settings.app_env})
        raise RuntimeError("JWT_SECRET must be set outside dev/test environments.")

    db.init_engine()  # sync, idempotent
    env_lower = settings.app_env.lower()
    if settings.ALLOW_DB_CREATE_ALL and env_lower in ALLOWED_CREATE_ENV:
        logger.warning(
            "Running Base.metadata.create_all() because HELPLINE_ENV=%s and ALLOW_DB_CREATE_ALL=True",
            settings.app_env,
        )
        db.create_all()
    else:
        logger.info(
            "Skipping create_all(); use Alembic migrations. HELPLINE_ENV=%s, ALLOW_DB_CREATE_ALL=%s",
            settings.app_env,
            settings.ALLOW_DB_CREATE_ALL,
        )
    get_rate_limit_store()

    # Multi-replica deployments: the DB lease picks one runner for the sweeps.
    set_scheduler_active(False)
    lock_acquired = False
    if settings.SCHEDULER_ENABLED:
        lock_acquired = try_acquire_scheduler_lock()
        if lock_acquired:
            scheduler = _start_scheduler(settings)
            set_scheduler_active(True)
        else:
            logger.warning(
                "Scheduler disabled because lock is already held by another instance.",
                extra={"env": settings.app_env},
            )
    try:
        yield
    finally:
        _stop_scheduler()
        if lock_acquired:
            release_scheduler_lock()
        db.close_engine()
        logger.info("Application shutdown", extra={"env": settings.app_env})


app_info = AppInfo()

app = FastAPI(title=app_info.name, version=app_info.version, lifespan=lifespan)

_configure_middlewares(app)
app.include_router(health.router)
app.include_router(get_api_router())


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception", exc_info=exc)
    payload = error_response("INTERNAL_SERVER_ERROR", "An unexpected error occurred.")
    return JSONResponse(status_code=500, content=payload)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict) and "error" in detail:
        content: dict[str, Any] = detail
    else:
        content = error_response("HTTP_ERROR", str(detail))
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    payload = error_response(
        "VALIDATION_ERROR",
        "Request validation failed.",
        validation_details(exc.errors()),
    )
    return JSONResponse(status_code=400, content=payload)


__all__ = ["app"]
