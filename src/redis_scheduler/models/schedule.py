"""
Module: schedule.py
Description: Schedule record model.

Defines the record stored under a schedule's record key: the webhook
destination, the requested delay, the failed-attempt counter and the
opaque payload forwarded to the webhook.

Dependencies: pydantic, typing
"""

from typing import Any

from pydantic import BaseModel, Field, ConfigDict

from redis_scheduler.config.settings import UNLIMITED_RETRIES


class Schedule(BaseModel):
    """
    Persistent schedule record.

    Attributes:
        webhook: Destination URL for the delivery
        ttl: Requested delay in seconds (also the timer length after a patch)
        retry: Number of failed delivery attempts so far
        data: Opaque JSON payload posted verbatim to the webhook
    """

    model_config = ConfigDict(
        validate_assignment=True
    )

    webhook: str = Field(
        ...,
        min_length=1,
        description="Webhook URL"
    )
    ttl: int = Field(
        ...,
        ge=1,
        description="Delay in seconds before the first delivery"
    )
    retry: int = Field(
        default=0,
        ge=0,
        description="Failed delivery attempts so far"
    )
    data: Any = Field(
        default=None,
        description="Payload forwarded to the webhook"
    )

    def to_json(self) -> str:
        """Serialize the record for storage."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw: Any) -> "Schedule":
        """
        Parse a stored record.

        Raises:
            pydantic.ValidationError: If the value is not a valid record
        """
        return cls.model_validate_json(raw)

    def retries_exhausted(self, max_retries: int) -> bool:
        """True once the retry counter has reached a finite maximum."""
        if max_retries == UNLIMITED_RETRIES:
            return False
        return self.retry >= max_retries

    def increment_retry(self) -> None:
        """Record one more failed delivery attempt."""
        self.retry += 1
