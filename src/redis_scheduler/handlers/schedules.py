"""
Module: schedules.py
Description: Schedule creation, retrieval, update and deletion handlers.

Implements the schedule endpoints:
- POST /schedule: Create a schedule (record + timer)
- GET /schedule/{key}: Read one schedule
- PATCH /schedule/{key}: Update fields and re-arm the timer
- DELETE /schedule/{key}: Cancel a schedule before it fires
- GET /schedules: List schedules, optionally by type
- DELETE /schedules: Purge every schedule

{key} is either the timer key returned at creation or a bare id of
the default type. All responses use the {"status", "data"|"error"}
envelope.

Dependencies: FastAPI, redis, typing
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi import status as status_codes
from redis.exceptions import RedisError

from redis_scheduler.auth.token import require_api_token
from redis_scheduler.handlers.dependencies import get_codec, get_schedule_service
from redis_scheduler.models.request import CreateScheduleRequest, UpdateScheduleRequest
from redis_scheduler.models.response import build_view, success
from redis_scheduler.scheduler import ScheduleService
from redis_scheduler.storage.keys import KeyCodec, ScheduleKey
from redis_scheduler.storage.records import RecordDecodeError
from redis_scheduler.utils.logger import get_logger

router = APIRouter(tags=["schedules"], dependencies=[Depends(require_api_token)])
logger = get_logger(__name__)

NOT_FOUND = "Schedule not found."


def _resolve_key(reference: str, codec: KeyCodec) -> ScheduleKey:
    try:
        return codec.parse_reference(reference)
    except ValueError as e:
        raise HTTPException(
            status_code=status_codes.HTTP_400_BAD_REQUEST,
            detail=f"Invalid input: {e}"
        )


def _store_failure(action: str, error: Exception) -> HTTPException:
    logger.error(
        f"Failed to {action}",
        error=str(error),
        error_type=type(error).__name__
    )
    return HTTPException(
        status_code=status_codes.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}."
    )


@router.post("/schedule")
async def create_schedule(
    request: CreateScheduleRequest,
    schedule_type: Optional[str] = Query(default=None, alias="type"),
    service: ScheduleService = Depends(get_schedule_service),
    codec: KeyCodec = Depends(get_codec)
):
    """
    Schedule a webhook delivery.

    Example:
        POST /schedule?type=email
        {"webhook": "https://example.com/hook", "ttl": 60, "data": {"user": 42}}

        Response (200):
        {"status": 200, "data": {"key": "rsch-ref:email:Yq3vZ0c8b1Xk2pQ9mN4r7w"}}
    """
    try:
        key = await service.create(
            schedule_type,
            webhook=request.webhook,
            ttl=request.ttl,
            data=request.data
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status_codes.HTTP_400_BAD_REQUEST,
            detail=f"Invalid input: {e}"
        )
    except RedisError as e:
        raise _store_failure("save schedule", e)

    return success({"key": codec.timer_key(key)})


@router.get("/schedule/{key}")
async def get_schedule(
    key: str,
    service: ScheduleService = Depends(get_schedule_service),
    codec: KeyCodec = Depends(get_codec)
):
    """Return one schedule with its next firing time."""
    schedule_key = _resolve_key(key, codec)

    try:
        schedule = await service.get(schedule_key)
        if schedule is None:
            raise HTTPException(status_code=status_codes.HTTP_404_NOT_FOUND, detail=NOT_FOUND)
        remaining = await service.remaining_seconds(schedule_key)
    except RecordDecodeError as e:
        raise _store_failure("decode schedule data", e)
    except RedisError as e:
        raise _store_failure("retrieve schedule", e)

    view = build_view(codec.timer_key(schedule_key), schedule_key.type, schedule, remaining)
    return success(view.model_dump(mode="json"))


@router.patch("/schedule/{key}")
async def patch_schedule(
    key: str,
    request: UpdateScheduleRequest,
    service: ScheduleService = Depends(get_schedule_service),
    codec: KeyCodec = Depends(get_codec)
):
    """
    Update a schedule's webhook, ttl or data.

    The timer is re-armed to the schedule's ttl even when the body is empty.
    """
    schedule_key = _resolve_key(key, codec)

    try:
        schedule = await service.patch(
            schedule_key,
            webhook=request.webhook,
            ttl=request.ttl,
            data=request.data
        )
    except RecordDecodeError as e:
        raise _store_failure("decode schedule data", e)
    except RedisError as e:
        raise _store_failure("update schedule", e)

    if schedule is None:
        raise HTTPException(status_code=status_codes.HTTP_404_NOT_FOUND, detail=NOT_FOUND)

    return success("Schedule updated successfully.")


@router.delete("/schedule/{key}")
async def delete_schedule(
    key: str,
    service: ScheduleService = Depends(get_schedule_service),
    codec: KeyCodec = Depends(get_codec)
):
    """Cancel a schedule and remove its record."""
    schedule_key = _resolve_key(key, codec)

    try:
        deleted = await service.delete(schedule_key)
    except RecordDecodeError as e:
        raise _store_failure("decode schedule data", e)
    except RedisError as e:
        raise _store_failure("delete schedule", e)

    if not deleted:
        raise HTTPException(status_code=status_codes.HTTP_404_NOT_FOUND, detail=NOT_FOUND)

    return success("Schedule deleted successfully.")


@router.get("/schedules")
async def list_schedules(
    schedule_type: Optional[str] = Query(default=None, alias="type"),
    service: ScheduleService = Depends(get_schedule_service),
    codec: KeyCodec = Depends(get_codec)
):
    """List schedules, all types unless ?type= is given."""
    try:
        entries = await service.list(schedule_type)
        views = []
        for schedule_key, schedule in entries:
            remaining = await service.remaining_seconds(schedule_key)
            view = build_view(codec.timer_key(schedule_key), schedule_key.type, schedule, remaining)
            views.append(view.model_dump(mode="json"))
    except ValueError as e:
        raise HTTPException(
            status_code=status_codes.HTTP_400_BAD_REQUEST,
            detail=f"Invalid input: {e}"
        )
    except RedisError as e:
        raise _store_failure("retrieve schedules", e)

    return success(views)


@router.delete("/schedules")
async def purge_schedules(
    service: ScheduleService = Depends(get_schedule_service)
):
    """Delete every schedule in the key namespace."""
    try:
        deleted = await service.purge()
    except RedisError as e:
        raise _store_failure("purge schedules", e)

    return success({"deleted": deleted})
