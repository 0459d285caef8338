"""
Module: main.py
Description: FastAPI application entry point for the scheduler.

Builds the application, and on startup wires the core: one Redis
client shared by the record store, the timer store and the expiration
worker, the webhook sender, the retry state machine and the schedule
service. The expiration worker runs for the lifetime of the app.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from redis_scheduler.config.settings import Settings, get_settings
from redis_scheduler.delivery.push import WebhookSender
from redis_scheduler.delivery.retry import RetryStateMachine
from redis_scheduler.delivery.worker import ExpirationWorker
from redis_scheduler.handlers.schedules import router as schedules_router
from redis_scheduler.handlers.system import router as system_router
from redis_scheduler.models.response import failure
from redis_scheduler.scheduler import ScheduleService
from redis_scheduler.storage.connection import create_redis_client
from redis_scheduler.storage.keys import KeyCodec
from redis_scheduler.storage.records import RecordStore
from redis_scheduler.storage.timers import TimerStore
from redis_scheduler.utils.logger import configure_logging, get_logger

logger = get_logger(__name__)


def _format_validation_error(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error.get("loc", ()) if p != "body")
        message = error.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts)


def register_exception_handlers(app: FastAPI) -> None:
    """Render every error in the {"status", "error"} envelope."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """
        Global HTTP exception handler.

        Unknown routes come through here as well, as a 404.
        """
        message = exc.detail
        if exc.status_code == 404 and message == "Not Found":
            message = "Route not found."

        logger.warning(
            "HTTP exception occurred",
            status_code=exc.status_code,
            detail=message,
            path=request.url.path,
            method=request.method
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=failure(str(message), exc.status_code)
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content=failure(f"Invalid input: {_format_validation_error(exc)}", 400)
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """
        Global exception handler for unhandled errors.

        Logs unexpected exceptions and returns a generic error response.
        """
        logger.error(
            "Unhandled exception occurred",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
            method=request.method
        )
        return JSONResponse(
            status_code=500,
            content=failure("Internal server error.", 500)
        )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Settings are resolved at startup rather than import time, so a
    missing required variable fails the process when it starts.

    Args:
        settings: Explicit settings (tests); defaults to environment settings
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        config = settings or get_settings()
        configure_logging(config.log_level)

        logger.info(
            "Starting scheduler",
            version=config.app_version,
            max_retries=config.retries,
            retry_interval=config.retry_time
        )

        client = await create_redis_client(
            config.redis_url,
            configure_keyspace_events=config.configure_keyspace_events
        )
        codec = KeyCodec(config.key_namespace)
        records = RecordStore(client, codec)
        timers = TimerStore(client, codec)
        sender = WebhookSender(config.api_auth, timeout_seconds=config.delivery_timeout)

        state_machine = RetryStateMachine(
            records,
            timers,
            sender,
            codec,
            max_retries=config.retries,
            retry_interval=config.retry_time
        )
        worker = ExpirationWorker(
            timers,
            codec,
            state_machine,
            max_concurrency=config.max_concurrent_deliveries,
            shutdown_grace_seconds=config.shutdown_grace_seconds
        )
        service = ScheduleService(records, timers, codec)

        app.state.codec = codec
        app.state.service = service
        app.state.worker = worker

        try:
            # Repaired timers fire after a delay, by which time the worker is subscribed
            await worker.start()
            if config.repair_timers_on_startup:
                await service.repair_timers()

            yield
        finally:
            logger.info("Shutting down scheduler")
            await worker.stop()
            await sender.aclose()
            await client.aclose()

    app = FastAPI(
        title="Redis Scheduler",
        description="Delayed webhook delivery driven by Redis key expiry",
        version="1.0.0",
        lifespan=lifespan
    )

    if settings is not None:
        app.dependency_overrides[get_settings] = lambda: settings

    register_exception_handlers(app)
    app.include_router(system_router)
    app.include_router(schedules_router)

    return app
