"""
Module: dependencies.py
Description: FastAPI dependencies resolving the shared core objects.

The application lifespan builds the schedule service, key codec and
expiration worker once and stores them on app.state; handlers receive
them through these functions so tests can swap them with
app.dependency_overrides.
"""

from typing import Optional

from fastapi import Request

from redis_scheduler.delivery.worker import ExpirationWorker
from redis_scheduler.scheduler import ScheduleService
from redis_scheduler.storage.keys import KeyCodec


def get_schedule_service(request: Request) -> ScheduleService:
    """Dependency to get the schedule service."""
    return request.app.state.service


def get_codec(request: Request) -> KeyCodec:
    """Dependency to get the key codec."""
    return request.app.state.codec


def get_worker(request: Request) -> Optional[ExpirationWorker]:
    """Dependency to get the expiration worker, if one is running."""
    return getattr(request.app.state, "worker", None)
