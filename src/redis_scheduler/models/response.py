"""
Module: response.py
Description: API response models for the scheduler.

Every response body is an envelope carrying the HTTP status and either
a result under "data" or a short message under "error".

Key Components:
- ScheduleInfo / ScheduleView: Schedule as returned by GET endpoints
- build_view(): Assemble a view from a record and its timer's remaining TTL
- success() / failure(): Envelope builders

Dependencies: pydantic, datetime, typing
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from redis_scheduler.models.schedule import Schedule


class ScheduleInfo(BaseModel):
    """Schedule metadata returned next to the payload."""

    key: str = Field(..., description="Timer key identifying the schedule")
    type: str = Field(..., description="Schedule type")
    ttl: int = Field(..., description="Requested delay in seconds")
    retry: int = Field(..., description="Failed delivery attempts so far")
    webhook: str = Field(..., description="Webhook URL")
    expires: Optional[datetime] = Field(
        default=None,
        description="When the timer fires next; null while a delivery is in flight"
    )


class ScheduleView(BaseModel):
    """A schedule as returned by the API."""

    info: ScheduleInfo
    data: Any = None


def build_view(
    timer_key: str,
    schedule_type: str,
    schedule: Schedule,
    remaining_seconds: Optional[int]
) -> ScheduleView:
    expires = None
    if remaining_seconds is not None:
        expires = datetime.now(timezone.utc) + timedelta(seconds=remaining_seconds)

    return ScheduleView(
        info=ScheduleInfo(
            key=timer_key,
            type=schedule_type,
            ttl=schedule.ttl,
            retry=schedule.retry,
            webhook=schedule.webhook,
            expires=expires
        ),
        data=schedule.data
    )


def success(data: Any, status: int = 200) -> Dict[str, Any]:
    return {"status": status, "data": data}


def failure(message: str, status: int) -> Dict[str, Any]:
    return {"status": status, "error": message}
