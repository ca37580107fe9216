"""Background worker that drains one job queue and dispatches to registered processors."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
from collections.abc import Sequence
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tasknator.config import Settings, get_settings
from tasknator.core.database import dispose_db_engine, get_session_factory
from tasknator.core.logging import initialize_logging
from tasknator.jobs.dispatch import JobProcessorHandler, JobProcessorRegistry, process_job
from tasknator.jobs.models import JobEnvelope, JobKind
from tasknator.services.export_storage_client import build_export_storage_client
from tasknator.services.exports import ExportJobProcessor
from tasknator.services.job_records import mark_job_failed
from tasknator.services.queue.factory import build_queue_client
from tasknator.services.queue.interface import QueueClient

logger = logging.getLogger(__name__)

DEFAULT_POLL_TIMEOUT_SECONDS = 5.0
DEFAULT_ERROR_BACKOFF_SECONDS = 1.0


def _error_message(exc: BaseException) -> str:
  message = str(exc)
  if message:
    return f"{type(exc).__name__}: {message}"
  return type(exc).__name__


class JobWorker:
  """Reserve, process, and settle jobs of a single kind."""

  def __init__(self, *, queue: QueueClient, registry: JobProcessorRegistry, kind: JobKind, session_factory: async_sessionmaker[AsyncSession] | None = None, poll_timeout: float = DEFAULT_POLL_TIMEOUT_SECONDS, error_backoff: float = DEFAULT_ERROR_BACKOFF_SECONDS) -> None:
    # Fail at construction rather than on the first job.
    registry.resolve(kind)
    self._queue = queue
    self._registry = registry
    self._kind = kind
    self._session_factory = session_factory
    self._poll_timeout = poll_timeout
    self._error_backoff = error_backoff

  @property
  def kind(self) -> JobKind:
    return self._kind

  async def run_once(self) -> bool:
    """Process at most one job. Returns False when the queue was idle."""
    envelope = await self._queue.reserve(self._kind, timeout=self._poll_timeout)
    if envelope is None:
      return False

    try:
      result = await process_job(envelope, self._registry)
    except Exception as exc:  # noqa: BLE001
      logger.error("%s job %s failed on attempt %s/%s", self._kind.value, envelope.job_id, envelope.attempt, envelope.policy.attempts, exc_info=True)
      error = _error_message(exc)
      outcome = await self._queue.fail(envelope, error)
      if outcome == "failed":
        await self._record_dead_job(envelope, error)
      return True

    await self._queue.complete(envelope, result)
    return True

  async def _record_dead_job(self, envelope: JobEnvelope, error: str) -> None:
    """Mirror a dead job onto its JobRecord so status polling terminates."""
    if self._session_factory is None:
      logger.warning("No database configured; dead job %s not recorded on its job record", envelope.job_id)
      return
    try:
      async with self._session_factory() as session:
        await mark_job_failed(session, envelope.job_id, error=error)
    except Exception:  # noqa: BLE001
      logger.error("Failed to mark job record %s as failed", envelope.job_id, exc_info=True)

  async def run(self, stop_event: asyncio.Event) -> None:
    """Process jobs until `stop_event` is set."""
    logger.info("Worker started for %s jobs", self._kind.value)
    while not stop_event.is_set():
      try:
        await self.run_once()
      except Exception:  # noqa: BLE001
        # Broker errors while reserving or settling leave the job leased; the stalled sweep redelivers it.
        logger.error("%s worker iteration failed; retrying in %ss", self._kind.value, self._error_backoff, exc_info=True)
        with contextlib.suppress(TimeoutError):
          await asyncio.wait_for(stop_event.wait(), timeout=self._error_backoff)
    logger.info("Worker for %s jobs stopped", self._kind.value)


def build_default_registry(settings: Settings, session_factory: async_sessionmaker[AsyncSession]) -> JobProcessorRegistry:
  """Register the processors this service implements."""
  handlers: dict[JobKind, JobProcessorHandler] = {JobKind.EXPORT: ExportJobProcessor(session_factory=session_factory, storage=build_export_storage_client(settings))}
  return JobProcessorRegistry(handlers)


def _build_parser() -> argparse.ArgumentParser:
  parser = argparse.ArgumentParser(description="Run a Tasknator background job worker.")
  parser.add_argument("--kind", required=True, choices=[kind.value for kind in JobKind], help="Job queue to consume.")
  parser.add_argument("--poll-timeout", type=float, default=DEFAULT_POLL_TIMEOUT_SECONDS, help="Seconds to block waiting for a job.")
  return parser


async def _run(kind: JobKind, *, poll_timeout: float) -> None:
  settings = get_settings()
  session_factory = get_session_factory()
  if session_factory is None:
    raise RuntimeError("TASKNATOR_PG_DSN must be configured to run workers.")

  registry = build_default_registry(settings, session_factory)
  if kind not in registry.kinds:
    raise RuntimeError(f"No processor registered for {kind.value} jobs; registered kinds: {', '.join(k.value for k in registry.kinds)}")

  queue = build_queue_client(settings)
  worker = JobWorker(queue=queue, registry=registry, kind=kind, session_factory=session_factory, poll_timeout=poll_timeout)
  stop_event = asyncio.Event()
  loop = asyncio.get_running_loop()
  for signum in (signal.SIGINT, signal.SIGTERM):
    loop.add_signal_handler(signum, stop_event.set)

  try:
    await worker.run(stop_event)
  finally:
    await queue.close()
    await dispose_db_engine()


def main(argv: Sequence[str] | None = None) -> None:
  args: Any = _build_parser().parse_args(argv)
  initialize_logging(get_settings(), process_name=f"worker_{args.kind}")
  asyncio.run(_run(JobKind(args.kind), poll_timeout=args.poll_timeout))


if __name__ == "__main__":
  main()
