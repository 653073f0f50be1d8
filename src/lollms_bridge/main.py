"""Command-line entry point: check connectivity to the configured backend."""

import asyncio
import logging
import sys

from lollms_bridge import __version__
from lollms_bridge.config import Settings, get_settings
from lollms_bridge.core.client import ChatClient
from lollms_bridge.models.results import ConnectionTestResult
from lollms_bridge.utils.logging import configure_logging

logger = logging.getLogger(__name__)


async def check_connection(settings: Settings) -> ConnectionTestResult:
    """Run a connection test against the backend described by ``settings``."""
    async with ChatClient.from_settings(settings) as client:
        result = await client.test_connection()
        if result.success:
            context = await client.get_context_size()
            source = "estimated" if context.is_estimation else "reported"
            logger.info(f"Context size: {context.context_size} ({source})")
        return result


def main(settings: Settings | None = None) -> int:
    """Load settings, configure logging and print a connection summary.

    Returns:
        Process exit code: 0 on success, 1 on connection failure, 2 on bad config.
    """
    if settings is None:
        settings = get_settings()

    configure_logging(
        level=settings.logging.level,
        format=settings.logging.format,
    )

    logger.info(
        "Starting lollms-bridge connection check",
        extra={
            "backend": settings.backend.backend_kind.value,
            "url": settings.backend.base_url,
        },
    )
    logger.debug(f"lollms-bridge {__version__}")

    try:
        settings.validate_required()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return 2

    result = asyncio.run(check_connection(settings))
    print(result.message)
    if result.details:
        print(result.details)
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
