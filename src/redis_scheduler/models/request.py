"""
Module: request.py
Description: API request models for the scheduler.

Validates incoming create and patch bodies before anything touches
Redis. The retry counter is deliberately absent from both models:
it is owned by the retry state machine and cannot be set by clients.

Key Components:
- CreateScheduleRequest: Body of POST /schedule
- UpdateScheduleRequest: Body of PATCH /schedule/{key}

Dependencies: pydantic, typing
"""

from typing import Any, Optional

from pydantic import BaseModel, Field, ConfigDict, field_validator


def _validate_webhook_url(v: str) -> str:
    if not v or not isinstance(v, str):
        raise ValueError("webhook must be a non-empty string")
    if not v.startswith(('http://', 'https://')):
        raise ValueError("webhook must be a valid HTTP/HTTPS URL")
    return v


class CreateScheduleRequest(BaseModel):
    """
    Request model for creating a schedule.

    Attributes:
        webhook: URL to POST the payload to (required)
        ttl: Delay in seconds before the first delivery (required, >= 1)
        data: Payload to deliver (required, any non-null JSON value)
    """

    model_config = ConfigDict(
        str_strip_whitespace=True,
        extra="ignore"
    )

    webhook: str = Field(
        ...,
        min_length=1,
        description="Webhook URL"
    )
    ttl: int = Field(
        ...,
        ge=1,
        description="Delay in seconds"
    )
    data: Any = Field(
        ...,
        description="Payload to deliver"
    )

    @field_validator('webhook')
    @classmethod
    def validate_webhook(cls, v: str) -> str:
        return _validate_webhook_url(v)

    @field_validator('data')
    @classmethod
    def validate_data(cls, v: Any) -> Any:
        """Reject an explicit null payload."""
        if v is None:
            raise ValueError("data is required")
        return v


class UpdateScheduleRequest(BaseModel):
    """
    Request model for patching a schedule.

    Every field is optional; omitted or null fields keep their stored
    value. An empty body is valid and only re-arms the timer.
    """

    model_config = ConfigDict(
        str_strip_whitespace=True,
        extra="ignore"
    )

    webhook: Optional[str] = Field(
        default=None,
        description="New webhook URL"
    )
    ttl: Optional[int] = Field(
        default=None,
        ge=1,
        description="New delay in seconds; the timer is re-armed to it"
    )
    data: Optional[Any] = Field(
        default=None,
        description="New payload"
    )

    @field_validator('webhook')
    @classmethod
    def validate_webhook(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        return _validate_webhook_url(v)
