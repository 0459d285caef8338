"""
Server runner.

Loads settings from the environment (or .env), then serves the
application with uvicorn on the configured PORT.

Usage:
    redis-scheduler
    redis-scheduler --host 0.0.0.0
    redis-scheduler --reload  # Auto-reload on code changes
"""

import argparse
import sys

import uvicorn
from pydantic import ValidationError

from redis_scheduler.config.settings import get_settings
from redis_scheduler.utils.logger import configure_logging, get_logger

logger = get_logger(__name__)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Run the Redis webhook scheduler"
    )
    parser.add_argument(
        "--host",
        type=str,
        default="0.0.0.0",
        help="Host to bind to (default: 0.0.0.0)"
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload on code changes (development only)"
    )
    args = parser.parse_args(argv)

    try:
        settings = get_settings()
    except ValidationError as e:
        missing = sorted({str(err["loc"][0]).upper() for err in e.errors() if err.get("loc")})
        logger.error(
            "Invalid or missing configuration",
            variables=missing,
            error_count=e.error_count()
        )
        return 1

    configure_logging(settings.log_level)
    logger.info("Starting server", host=args.host, port=settings.port)

    uvicorn.run(
        "redis_scheduler.main:create_app",
        factory=True,
        host=args.host,
        port=settings.port,
        reload=args.reload,
        log_level=settings.log_level.lower()
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
