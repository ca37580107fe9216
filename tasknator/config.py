"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from tasknator.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

DEFAULT_REDIS_URL = "redis://localhost:6379"
DEFAULT_EXPORT_BUCKET = "tasknator-exports"
DEFAULT_QUEUE_LEASE_MS = 300_000
_QUEUE_BACKENDS = {"redis", "memory"}


@dataclass(frozen=True)
class Settings:
  """Typed settings for the Tasknator service and job workers."""

  environment: str
  debug: bool
  allowed_origins: tuple[str, ...]
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  redis_url: str
  redis_max_retries_per_request: int | None
  queue_backend: str
  queue_prefix: str
  queue_lease_ms: int
  s3_endpoint: str | None
  s3_region: str
  s3_bucket: str
  s3_access_key_id: str | None
  s3_secret_access_key: str | None
  s3_public_url: str | None
  auth_email_header: str
  admin_emails: frozenset[str]


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    return ("http://localhost:3000",)

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("TASKNATOR_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("TASKNATOR_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _parse_emails(raw: str | None) -> frozenset[str]:
  """Parse a comma-separated list of emails into a normalized set."""
  if not raw:
    return frozenset()
  return frozenset(item.strip().lower() for item in raw.split(",") if item.strip())


def _parse_max_retries(raw: str | None) -> int | None:
  """Parse the per-request retry budget; empty, `null` or negative means unlimited."""
  if raw is None or raw.strip().lower() in {"", "null", "none", "unlimited"}:
    return None

  try:
    value = int(raw)
  except ValueError as exc:
    raise ValueError("TASKNATOR_REDIS_MAX_RETRIES_PER_REQUEST must be an integer or `null`.") from exc
  if value < 0:
    return None

  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("TASKNATOR_ENV", "development").lower()
  debug = _parse_bool(os.getenv("TASKNATOR_DEBUG"))

  log_max_bytes = int(os.getenv("TASKNATOR_LOG_MAX_BYTES", "5242880"))  # 5MB default
  if log_max_bytes <= 0:
    raise ValueError("TASKNATOR_LOG_MAX_BYTES must be a positive integer.")

  log_backup_count = int(os.getenv("TASKNATOR_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("TASKNATOR_LOG_BACKUP_COUNT must be zero or a positive integer.")

  queue_backend = (os.getenv("TASKNATOR_QUEUE_BACKEND") or "redis").strip().lower()
  if queue_backend not in _QUEUE_BACKENDS:
    raise ValueError("TASKNATOR_QUEUE_BACKEND must be 'redis' or 'memory'.")

  queue_prefix = (os.getenv("TASKNATOR_QUEUE_PREFIX") or "tasknator").strip().strip(":")
  if not queue_prefix:
    raise ValueError("TASKNATOR_QUEUE_PREFIX must not be empty.")

  # A reserved job whose worker has not settled it within the lease is treated as stalled.
  queue_lease_ms = int(os.getenv("TASKNATOR_QUEUE_LEASE_MS", str(DEFAULT_QUEUE_LEASE_MS)))
  if queue_lease_ms <= 0:
    raise ValueError("TASKNATOR_QUEUE_LEASE_MS must be a positive integer.")

  s3_public_url = _optional_str(os.getenv("S3_PUBLIC_URL"))
  s3_endpoint = _optional_str(os.getenv("S3_ENDPOINT"))

  return Settings(
    environment=environment,
    debug=debug,
    allowed_origins=_parse_origins(os.getenv("TASKNATOR_ALLOWED_ORIGINS")),
    log_dir=(os.getenv("TASKNATOR_LOG_DIR") or "logs").strip(),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("TASKNATOR_LOG_HTTP_4XX")),
    pg_dsn=os.getenv("TASKNATOR_PG_DSN") or os.getenv("DATABASE_URL"),
    redis_url=_optional_str(os.getenv("TASKNATOR_REDIS_URL")) or _optional_str(os.getenv("REDIS_URL")) or DEFAULT_REDIS_URL,
    redis_max_retries_per_request=_parse_max_retries(os.getenv("TASKNATOR_REDIS_MAX_RETRIES_PER_REQUEST")),
    queue_backend=queue_backend,
    queue_prefix=queue_prefix,
    queue_lease_ms=queue_lease_ms,
    s3_endpoint=s3_endpoint.rstrip("/") if s3_endpoint else None,
    s3_region=(os.getenv("S3_REGION") or "auto").strip(),
    s3_bucket=(os.getenv("S3_BUCKET") or DEFAULT_EXPORT_BUCKET).strip(),
    s3_access_key_id=_optional_str(os.getenv("S3_ACCESS_KEY_ID")),
    s3_secret_access_key=_optional_str(os.getenv("S3_SECRET_ACCESS_KEY")),
    s3_public_url=s3_public_url.rstrip("/") if s3_public_url else None,
    auth_email_header=(os.getenv("TASKNATOR_AUTH_EMAIL_HEADER") or "x-forwarded-email").strip().lower(),
    admin_emails=_parse_emails(os.getenv("TASKNATOR_ADMIN_EMAILS")),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  # Keep database configuration isolated so migrations and offline scripts don't require unrelated env vars.
  debug = _parse_bool(os.getenv("TASKNATOR_DEBUG"))
  pg_dsn = os.getenv("TASKNATOR_PG_DSN") or os.getenv("DATABASE_URL")
  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn)


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value
