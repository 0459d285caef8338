"""
Module: push.py
Description: Webhook delivery over HTTP.

Posts a schedule's payload to its webhook with a fixed timeout and the
process-wide Authorization header. The result is a plain success flag:
only an exact 200 counts as delivered, and every other status,
transport error or timeout is a failure for retry purposes.
"""

from typing import Any, Optional

import httpx

from redis_scheduler.utils.logger import get_logger

logger = get_logger(__name__)


class WebhookSender:
    """
    HTTP client for delivering schedule payloads.

    One pooled httpx.AsyncClient is shared by all concurrent deliveries
    and must be closed with aclose() at shutdown.
    """

    def __init__(
        self,
        auth_token: str,
        timeout_seconds: float = 10,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize webhook sender.

        Args:
            auth_token: Value sent as the Authorization header
            timeout_seconds: HTTP timeout in seconds for each delivery
            client: Optional preconfigured client (tests)

        Raises:
            ValueError: If auth_token is empty
        """
        if not auth_token or not isinstance(auth_token, str):
            raise ValueError("auth_token must be a non-empty string")

        self.auth_token = auth_token
        self.timeout = httpx.Timeout(timeout_seconds, connect=timeout_seconds)
        self.client = client or httpx.AsyncClient(timeout=self.timeout)

        logger.info(
            "Webhook sender initialized",
            timeout_seconds=timeout_seconds
        )

    async def send(self, webhook: str, data: Any, schedule_key: Optional[str] = None) -> bool:
        """
        Deliver a payload via HTTP POST.

        Args:
            webhook: Destination URL
            data: JSON-serializable payload, sent as the request body
            schedule_key: Schedule identity for log context

        Returns:
            True if the webhook answered 200, False otherwise
        """
        try:
            logger.debug(
                "Attempting webhook delivery",
                schedule_key=schedule_key,
                webhook=webhook
            )

            response = await self.client.post(
                webhook,
                json=data,
                headers={
                    'Authorization': self.auth_token,
                    'Content-Type': 'application/json'
                },
                timeout=self.timeout
            )

            if response.status_code != httpx.codes.OK:
                logger.warning(
                    "Webhook delivery HTTP error",
                    schedule_key=schedule_key,
                    status_code=response.status_code,
                    response=response.text[:500]  # Truncate large responses
                )
                return False

            logger.info(
                "Webhook delivered successfully",
                schedule_key=schedule_key,
                status_code=response.status_code,
                response_time_ms=response.elapsed.total_seconds() * 1000
            )
            return True

        except httpx.TimeoutException:
            logger.warning(
                "Webhook delivery timeout",
                schedule_key=schedule_key,
                webhook=webhook
            )
            return False

        except httpx.TransportError as e:
            logger.warning(
                "Webhook delivery network error",
                schedule_key=schedule_key,
                error=str(e)
            )
            return False

        except Exception as e:
            logger.error(
                "Webhook delivery failed",
                schedule_key=schedule_key,
                error=str(e),
                error_type=type(e).__name__
            )
            return False

    async def aclose(self) -> None:
        await self.client.aclose()
