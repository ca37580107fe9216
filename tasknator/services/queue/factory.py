from __future__ import annotations

import logging

from tasknator.config import Settings
from tasknator.services.queue.interface import QueueClient
from tasknator.services.queue.memory import InMemoryQueueClient
from tasknator.services.queue.redis_broker import RedisQueueClient, build_redis_connection

logger = logging.getLogger(__name__)


def build_queue_client(settings: Settings) -> QueueClient:
  """Factory to build the configured queue client and its shared broker connection."""
  if settings.queue_backend == "memory":
    if settings.environment == "production":
      raise ValueError("TASKNATOR_QUEUE_BACKEND=memory is process-local and cannot be used in production.")
    logger.warning("Using the in-memory job queue: jobs stay in this process and are never delivered to separate worker processes")
    return InMemoryQueueClient(lease_ms=settings.queue_lease_ms)
  return RedisQueueClient(build_redis_connection(settings), prefix=settings.queue_prefix, lease_ms=settings.queue_lease_ms)
