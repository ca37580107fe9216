from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from tasknator.config import DEFAULT_QUEUE_LEASE_MS
from tasknator.jobs.models import STALLED_REASON, FailOutcome, JobData, JobEnvelope, JobHandle, JobKind, RetryPolicy, encode_payload, kind_for_payload
from tasknator.services.queue.interface import QueueClient
from tasknator.utils.ids import generate_job_id

logger = logging.getLogger(__name__)

_POLL_INTERVAL_SECONDS = 0.05


def _now_ms() -> int:
  return int(time.time() * 1000)


@dataclass
class _StoredJob:
  job_id: str
  kind: JobKind
  name: str
  payload: bytes
  policy: RetryPolicy
  timestamp_ms: int
  attempts_made: int = 0
  state: str = "waiting"
  failed_reason: str | None = None
  result: dict[str, Any] | None = None
  lock_token: str | None = None


@dataclass
class _KindQueue:
  wait: deque[str] = field(default_factory=deque)
  # job id -> lease deadline in ms
  active: dict[str, int] = field(default_factory=dict)
  delayed: dict[str, int] = field(default_factory=dict)
  completed: list[str] = field(default_factory=list)
  failed: list[str] = field(default_factory=list)


class InMemoryQueueClient(QueueClient):
  """Process-local queue with the same retry and lease semantics as the Redis broker.

  Intended for local development and tests; jobs do not survive a restart and are invisible to other processes.
  """

  def __init__(self, *, lease_ms: int = DEFAULT_QUEUE_LEASE_MS, clock: Callable[[], int] = _now_ms) -> None:
    self._lease_ms = lease_ms
    self._clock = clock
    self._jobs: dict[str, _StoredJob] = {}
    self._queues: dict[JobKind, _KindQueue] = {kind: _KindQueue() for kind in JobKind}

  async def enqueue(self, kind: JobKind, name: str, payload: JobData, policy: RetryPolicy, *, job_id: str | None = None) -> JobHandle:
    """Store the job and append it to the kind's wait queue."""
    if kind_for_payload(payload) is not kind:
      raise TypeError(f"Payload {type(payload).__name__} does not belong to the {kind.value} queue.")

    job_id = job_id or generate_job_id()
    self._jobs[job_id] = _StoredJob(job_id=job_id, kind=kind, name=name, payload=encode_payload(payload), policy=policy, timestamp_ms=self._clock())
    self._queues[kind].wait.appendleft(job_id)
    logger.info("Enqueued %s job %s (%s) in memory", kind.value, job_id, name)
    return JobHandle(job_id=job_id, kind=kind, name=name)

  def _promote_delayed(self, kind: JobKind, now: int) -> None:
    queue = self._queues[kind]
    due = sorted((ready_at, job_id) for job_id, ready_at in queue.delayed.items() if ready_at <= now)
    for _ready_at, job_id in due:
      del queue.delayed[job_id]
      self._jobs[job_id].state = "waiting"
      queue.wait.appendleft(job_id)

  def _sweep_stalled(self, kind: JobKind, now: int) -> None:
    """Count the lost attempt of every expired lease and requeue or fail the job."""
    queue = self._queues[kind]
    stalled = sorted((deadline, job_id) for job_id, deadline in queue.active.items() if deadline <= now)
    for _deadline, job_id in stalled:
      del queue.active[job_id]
      job = self._jobs[job_id]
      job.attempts_made += 1
      job.failed_reason = STALLED_REASON
      job.lock_token = None
      if job.attempts_made < job.policy.attempts:
        job.state = "waiting"
        queue.wait.appendleft(job_id)
        continue
      job.state = "failed"
      queue.failed.append(job_id)
      logger.error("%s job %s stalled on its final attempt and is dead; operator attention required", kind.value, job_id)

  def _pop_ready(self, kind: JobKind) -> JobEnvelope | None:
    now = self._clock()
    self._promote_delayed(kind, now)
    self._sweep_stalled(kind, now)
    queue = self._queues[kind]
    if not queue.wait:
      return None
    job_id = queue.wait.pop()
    queue.active[job_id] = now + self._lease_ms
    job = self._jobs[job_id]
    job.state = "active"
    job.lock_token = uuid.uuid4().hex
    return JobEnvelope(job_id=job.job_id, kind=job.kind, name=job.name, payload=job.payload, policy=job.policy, attempts_made=job.attempts_made, timestamp_ms=job.timestamp_ms, lock_token=job.lock_token)

  async def reserve(self, kind: JobKind, timeout: float = 0) -> JobEnvelope | None:
    """Return the oldest ready job, polling until `timeout` seconds have elapsed."""
    deadline = time.monotonic() + timeout
    while True:
      envelope = self._pop_ready(kind)
      if envelope is not None or time.monotonic() >= deadline:
        return envelope
      await asyncio.sleep(_POLL_INTERVAL_SECONDS)

  def _lease_lost(self, envelope: JobEnvelope) -> bool:
    if envelope.lock_token is None or self._jobs[envelope.job_id].lock_token == envelope.lock_token:
      return False
    logger.warning("Lease on %s job %s expired before it was settled; leaving it to its current owner", envelope.kind.value, envelope.job_id)
    return True

  async def complete(self, envelope: JobEnvelope, result: dict[str, Any] | None = None) -> None:
    if self._lease_lost(envelope):
      return
    queue = self._queues[envelope.kind]
    queue.active.pop(envelope.job_id, None)
    queue.completed.append(envelope.job_id)
    job = self._jobs[envelope.job_id]
    job.state = "completed"
    job.result = result
    job.lock_token = None

  async def fail(self, envelope: JobEnvelope, error: str) -> FailOutcome:
    """Apply the job's retry policy after a failed attempt."""
    if self._lease_lost(envelope):
      return "lease_lost"
    queue = self._queues[envelope.kind]
    job = self._jobs[envelope.job_id]
    queue.active.pop(envelope.job_id, None)
    job.attempts_made = envelope.attempts_made + 1
    job.failed_reason = error
    job.lock_token = None

    if job.attempts_made < job.policy.attempts:
      delay = job.policy.delay_for(job.attempts_made)
      if delay > 0:
        job.state = "delayed"
        queue.delayed[job.job_id] = self._clock() + delay
      else:
        job.state = "waiting"
        queue.wait.appendleft(job.job_id)
      logger.warning("Attempt %s/%s of %s job %s failed; retrying in %sms: %s", job.attempts_made, job.policy.attempts, job.kind.value, job.job_id, delay, error)
      return "retrying"

    job.state = "failed"
    queue.failed.append(job.job_id)
    logger.error("%s job %s exhausted %s attempts and is dead; operator attention required: %s", job.kind.value, job.job_id, job.policy.attempts, error)
    return "failed"

  async def failed_jobs(self, kind: JobKind) -> list[str]:
    return list(self._queues[kind].failed)

  async def close(self) -> None:
    return None

  def state_of(self, job_id: str) -> str:
    """Return the lifecycle state of a job (for diagnostics and tests)."""
    return self._jobs[job_id].state

  def delayed_until(self, job_id: str) -> int | None:
    """Return the ready-at time in ms for a delayed job."""
    return self._queues[self._jobs[job_id].kind].delayed.get(job_id)

  def lease_deadline(self, job_id: str) -> int | None:
    """Return the lease deadline in ms for an active job."""
    return self._queues[self._jobs[job_id].kind].active.get(job_id)
