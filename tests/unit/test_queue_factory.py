"""Queue backend selection tests."""

from __future__ import annotations

import logging
from dataclasses import replace
from unittest.mock import MagicMock

import pytest

from tasknator.config import get_settings
from tasknator.jobs.models import JobKind
from tasknator.services.queue import factory
from tasknator.services.queue.factory import build_queue_client
from tasknator.services.queue.memory import InMemoryQueueClient
from tasknator.services.queue.redis_broker import RedisQueueClient


def test_memory_backend_warns_that_jobs_stay_in_process(caplog: pytest.LogCaptureFixture) -> None:
  settings = replace(get_settings(), queue_backend="memory", environment="development")
  with caplog.at_level(logging.WARNING, logger="tasknator.services.queue.factory"):
    client = build_queue_client(settings)
  assert isinstance(client, InMemoryQueueClient)
  assert "never delivered to separate worker processes" in caplog.text


def test_memory_backend_is_refused_in_production() -> None:
  settings = replace(get_settings(), queue_backend="memory", environment="production")
  with pytest.raises(ValueError, match="process-local"):
    build_queue_client(settings)


def test_redis_backend_uses_prefix_and_lease(monkeypatch: pytest.MonkeyPatch) -> None:
  connection = MagicMock()
  monkeypatch.setattr(factory, "build_redis_connection", lambda _settings: connection)
  settings = replace(get_settings(), queue_backend="redis", queue_prefix="tn", queue_lease_ms=60_000)

  client = build_queue_client(settings)

  assert isinstance(client, RedisQueueClient)
  assert client._key(JobKind.EXPORT, "wait") == "tn:export:wait"
  assert client._lease_ms == 60_000
  connection.register_script.assert_called_once()
