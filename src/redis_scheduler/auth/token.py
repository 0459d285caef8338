"""
Module: token.py
Description: Shared-token authentication for the scheduler API.

Every protected request must carry the configured API_AUTH value,
verbatim, in its Authorization header. The same token is sent to
webhooks so receivers can verify that a call came from this service.

Dependencies: FastAPI, hmac
"""

import hmac
from typing import Optional

from fastapi import Depends, Header, HTTPException
from fastapi import status as status_codes

from redis_scheduler.config.settings import Settings, get_settings
from redis_scheduler.utils.logger import get_logger

logger = get_logger(__name__)


def verify_token(provided: Optional[str], expected: str) -> bool:
    """Constant-time comparison of the provided header against the token."""
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


async def require_api_token(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings)
) -> None:
    """
    FastAPI dependency rejecting requests without the API token.

    Raises:
        HTTPException: 401 if the Authorization header is missing or wrong
    """
    if not verify_token(authorization, settings.api_auth):
        logger.warning("API token authentication failed", header_present=bool(authorization))
        raise HTTPException(
            status_code=status_codes.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized."
        )
