"""
Module: system.py
Description: Service info and statistics handlers.

- GET /: Liveness message, no authentication
- GET /stats: Key counts, in-flight deliveries, uptime and process usage
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi import status as status_codes
from redis.exceptions import RedisError

from redis_scheduler.auth.token import require_api_token
from redis_scheduler.delivery.worker import ExpirationWorker
from redis_scheduler.handlers.dependencies import get_schedule_service, get_worker
from redis_scheduler.models.response import success
from redis_scheduler.scheduler import ScheduleService
from redis_scheduler.utils.logger import get_logger

router = APIRouter(tags=["system"])
logger = get_logger(__name__)


@router.get("/")
async def info():
    return success("Scheduler service is running.")


@router.get("/stats", dependencies=[Depends(require_api_token)])
async def stats(
    service: ScheduleService = Depends(get_schedule_service),
    worker: Optional[ExpirationWorker] = Depends(get_worker)
):
    """
    Return scheduler statistics.

    Example:
        GET /stats

        Response (200):
        {
            "status": 200,
            "data": {
                "total_redis_keys": 12,
                "schedules": 6,
                "running_schedules": 5,
                "in_flight_deliveries": 1,
                "worker_running": true,
                "uptime_seconds": 3600.125,
                "cpu_usage": 0.5,
                "ram_usage": "58.21MB",
                "ram_usage_bytes": 61038592
            }
        }
    """
    try:
        data = await service.stats()
    except RedisError as e:
        logger.error("Failed to collect stats", error=str(e))
        raise HTTPException(
            status_code=status_codes.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to collect stats."
        )

    data["in_flight_deliveries"] = worker.in_flight if worker else 0
    data["worker_running"] = worker.is_running if worker else False
    return success(data)
