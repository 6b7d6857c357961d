"""Produce today's batch once from the command line, without the HTTP server."""

from __future__ import annotations

import asyncio
import logging

from rebus.config.settings import get_settings
from rebus.monitoring.logging import configure_logging
from rebus.services.container import build_services

logger = logging.getLogger(__name__)


async def main() -> None:
    settings = get_settings()
    configure_logging(settings)
    services = await build_services(settings)
    try:
        generated = await services.scheduler.trigger_today()
    finally:
        await services.close()
    logger.info("Puzzles generated" if generated else "Puzzles already exist for today")


if __name__ == "__main__":
    asyncio.run(main())
