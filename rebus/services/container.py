"""Construction of the long-lived service graph."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncEngine

from rebus.config.settings import Settings
from rebus.db.session import create_engine, create_session_factory, init_db
from rebus.imggen.job_client import ImageJobClient
from rebus.nlp.prompt_source import PromptSource
from rebus.services.production import BatchProducer
from rebus.services.repository import PuzzleRepository
from rebus.storage.backend import LocalImageStore
from rebus.workers.scheduler import DailyScheduler

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Services:
    """Everything the HTTP layer and the scheduler share."""

    settings: Settings
    repository: PuzzleRepository
    image_store: LocalImageStore
    scheduler: DailyScheduler
    prompt_source: PromptSource | None = None
    image_client: ImageJobClient | None = None
    engine: AsyncEngine | None = None

    async def close(self) -> None:
        """Stop the scheduler and release HTTP and database resources."""

        await self.scheduler.stop()
        if self.prompt_source is not None:
            await self.prompt_source.close()
        if self.image_client is not None:
            await self.image_client.close()
        if self.engine is not None:
            await self.engine.dispose()


async def build_services(settings: Settings) -> Services:
    """Initialise dependencies from settings and create the database schema."""

    if not settings.prompt_api_key:
        raise RuntimeError("PROMPT_API_KEY is not configured.")
    if not settings.replicate_api_token:
        raise RuntimeError("REPLICATE_API_TOKEN is not configured.")

    engine = create_engine(settings.database_url)
    await init_db(engine)
    repository = PuzzleRepository(create_session_factory(engine))
    image_store = LocalImageStore(Path(settings.images_root), settings.image_url_prefix)

    prompt_source = PromptSource(settings)
    image_client = ImageJobClient(settings)
    producer = BatchProducer(prompt_source, image_client, image_store, repository)
    scheduler = DailyScheduler(
        repository,
        producer,
        hour=settings.batch_job_hour,
        minute=settings.batch_job_minute,
    )
    logger.info("Services initialised; images stored under %s", image_store.root)
    return Services(
        settings=settings,
        repository=repository,
        image_store=image_store,
        scheduler=scheduler,
        prompt_source=prompt_source,
        image_client=image_client,
        engine=engine,
    )
