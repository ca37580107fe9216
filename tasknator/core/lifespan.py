import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from tasknator.config import get_settings
from tasknator.core.database import dispose_db_engine
from tasknator.core.logging import initialize_logging
from tasknator.services.queue.factory import build_queue_client


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging and the shared queue connection; release both on shutdown."""
  settings = get_settings()
  logger = logging.getLogger("tasknator.core.lifespan")

  initialize_logging(settings)
  # One broker connection per process, shared by every producer call.
  app.state.queue = build_queue_client(settings)
  logger.info("Startup complete env=%s queue_backend=%s", settings.environment, settings.queue_backend)

  try:
    yield
  finally:
    await app.state.queue.close()
    await dispose_db_engine()
    logger.info("Shutdown complete")
