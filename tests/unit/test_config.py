"""Environment parsing tests for service settings."""

from __future__ import annotations

import pytest

from tasknator import config
from tasknator.config import _parse_emails, _parse_max_retries, _parse_origins


@pytest.fixture
def fresh_settings():
  config.get_settings.cache_clear()
  yield config.get_settings
  config.get_settings.cache_clear()


@pytest.mark.parametrize(("raw", "expected"), [(None, None), ("", None), ("null", None), ("-1", None), ("0", 0), ("20", 20)])
def test_parse_max_retries(raw: str | None, expected: int | None) -> None:
  assert _parse_max_retries(raw) == expected


def test_parse_max_retries_rejects_garbage() -> None:
  with pytest.raises(ValueError, match="must be an integer"):
    _parse_max_retries("lots")


def test_parse_origins_rejects_wildcard() -> None:
  with pytest.raises(ValueError):
    _parse_origins("http://a.example,*")
  assert _parse_origins(" http://a.example , http://b.example ") == ("http://a.example", "http://b.example")


def test_parse_emails_normalizes_case() -> None:
  assert _parse_emails("Ops@Example.com, ,root@example.com") == frozenset({"ops@example.com", "root@example.com"})


def test_settings_from_environment(monkeypatch: pytest.MonkeyPatch, fresh_settings) -> None:
  monkeypatch.setenv("TASKNATOR_QUEUE_BACKEND", "redis")
  monkeypatch.setenv("TASKNATOR_REDIS_URL", "redis://broker:6379/1")
  monkeypatch.setenv("TASKNATOR_REDIS_MAX_RETRIES_PER_REQUEST", "null")
  monkeypatch.setenv("S3_PUBLIC_URL", "https://cdn.example.com/")
  monkeypatch.setenv("TASKNATOR_QUEUE_PREFIX", "tn:")

  settings = fresh_settings()

  assert settings.queue_backend == "redis"
  assert settings.redis_url == "redis://broker:6379/1"
  assert settings.redis_max_retries_per_request is None
  assert settings.s3_public_url == "https://cdn.example.com"
  assert settings.queue_prefix == "tn"


def test_unknown_queue_backend_is_rejected(monkeypatch: pytest.MonkeyPatch, fresh_settings) -> None:
  monkeypatch.setenv("TASKNATOR_QUEUE_BACKEND", "kafka")
  with pytest.raises(ValueError, match="TASKNATOR_QUEUE_BACKEND"):
    fresh_settings()


def test_queue_lease_defaults_and_validation(monkeypatch: pytest.MonkeyPatch, fresh_settings) -> None:
  monkeypatch.delenv("TASKNATOR_QUEUE_LEASE_MS", raising=False)
  assert fresh_settings().queue_lease_ms == 300_000

  config.get_settings.cache_clear()
  monkeypatch.setenv("TASKNATOR_QUEUE_LEASE_MS", "0")
  with pytest.raises(ValueError, match="TASKNATOR_QUEUE_LEASE_MS"):
    fresh_settings()
