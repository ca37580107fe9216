from __future__ import annotations

from typing import Any, Protocol

from tasknator.jobs.models import FailOutcome, JobData, JobEnvelope, JobHandle, JobKind, RetryPolicy


class QueueClient(Protocol):
  """Interface for durable per-kind job queues."""

  async def enqueue(self, kind: JobKind, name: str, payload: JobData, policy: RetryPolicy, *, job_id: str | None = None) -> JobHandle:
    """Durably enqueue a job and return its handle once the broker accepted it."""
    ...

  async def reserve(self, kind: JobKind, timeout: float = 0) -> JobEnvelope | None:
    """Move the next ready job of `kind` to active and return it, or None when idle."""
    ...

  async def complete(self, envelope: JobEnvelope, result: dict[str, Any] | None = None) -> None:
    """Mark an active job as successfully processed."""
    ...

  async def fail(self, envelope: JobEnvelope, error: str) -> FailOutcome:
    """Record a failed attempt and either schedule a retry or mark the job dead.

    Returns `lease_lost` without touching the job when this reservation is no longer the current one.
    """
    ...

  async def failed_jobs(self, kind: JobKind) -> list[str]:
    """Return ids of dead jobs awaiting operator attention."""
    ...

  async def close(self) -> None:
    """Release broker resources owned by the client."""
    ...
