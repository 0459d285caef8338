"""
Module: models
Description: Package initialization for Pydantic data models.

- Schedule: Stored schedule record
- CreateScheduleRequest / UpdateScheduleRequest: API request bodies
- ScheduleView: API representation of a schedule
"""

from .schedule import Schedule
from .request import CreateScheduleRequest, UpdateScheduleRequest
from .response import ScheduleInfo, ScheduleView

__all__ = [
    "Schedule",
    "CreateScheduleRequest",
    "UpdateScheduleRequest",
    "ScheduleInfo",
    "ScheduleView",
]
