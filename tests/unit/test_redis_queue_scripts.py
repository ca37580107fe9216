"""Redis broker tests that execute the reserve script against an in-process Redis server."""

from __future__ import annotations

import logging

import fakeredis
import pytest

from tasknator.jobs.models import JOB_NAMES, JOB_RETRY_POLICIES, AuditJobData, ExportJobData, JobKind
from tasknator.services.queue.redis_broker import RedisQueueClient


class FakeClock:
  def __init__(self, now: int = 1_000) -> None:
    self.now = now

  def __call__(self) -> int:
    return self.now


@pytest.fixture
async def connection():
  redis = fakeredis.FakeAsyncRedis()
  yield redis
  await redis.aclose()


@pytest.fixture
def clock() -> FakeClock:
  return FakeClock()


async def _enqueue_audit(client: RedisQueueClient) -> None:
  data = AuditJobData(audit_run_id="audit-1", business_profile_id="biz-1", workspace_id="ws-1")
  await client.enqueue(JobKind.AUDIT, JOB_NAMES[JobKind.AUDIT], data, JOB_RETRY_POLICIES[JobKind.AUDIT], job_id="job-1")


async def _enqueue_export(client: RedisQueueClient, job_id: str = "job-1") -> None:
  data = ExportJobData(repair_plan_id="plan-1", format="zip", workspace_id="ws-1")
  await client.enqueue(JobKind.EXPORT, JOB_NAMES[JobKind.EXPORT], data, JOB_RETRY_POLICIES[JobKind.EXPORT], job_id=job_id)


@pytest.mark.anyio
async def test_failed_audit_is_promoted_after_backoff(connection, clock: FakeClock) -> None:
  """A failed audit sits in the delayed set for 5s, then comes back with the same payload bytes."""
  client = RedisQueueClient(connection, prefix="tn", clock=clock)
  await _enqueue_audit(client)

  first = await client.reserve(JobKind.AUDIT)
  assert await client.fail(first, "Timeout") == "retrying"
  assert await connection.zscore("tn:audit:delayed", "job-1") == 6_000

  clock.now = 5_999
  assert await client.reserve(JobKind.AUDIT) is None

  clock.now = 6_000
  retry = await client.reserve(JobKind.AUDIT)
  assert retry.job_id == "job-1"
  assert retry.attempts_made == 1
  assert retry.payload == first.payload
  assert await connection.zcard("tn:audit:delayed") == 0
  assert await connection.hget("tn:audit:job:job-1", "state") == b"active"


@pytest.mark.anyio
async def test_reserve_leases_in_the_active_set(connection, clock: FakeClock) -> None:
  client = RedisQueueClient(connection, prefix="tn", lease_ms=30_000, clock=clock)
  await _enqueue_export(client)

  envelope = await client.reserve(JobKind.EXPORT)

  assert await connection.zscore("tn:export:active", "job-1") == 31_000
  assert await connection.hget("tn:export:job:job-1", "lockToken") == envelope.lock_token.encode()
  assert await connection.hget("tn:export:job:job-1", "processedOn") == b"1000"

  await client.complete(envelope, {"url": "https://cdn.example.com/x.zip"})
  assert await connection.zcard("tn:export:active") == 0
  assert await connection.zrange("tn:export:completed", 0, -1) == [b"job-1"]


@pytest.mark.anyio
async def test_stalled_job_is_redelivered_then_failed(connection, clock: FakeClock, caplog: pytest.LogCaptureFixture) -> None:
  """A reservation never settled by its worker counts as an attempt once the lease runs out."""
  client = RedisQueueClient(connection, prefix="tn", lease_ms=1_000, clock=clock)
  await _enqueue_export(client)

  first = await client.reserve(JobKind.EXPORT)
  clock.now = 2_000
  second = await client.reserve(JobKind.EXPORT)
  assert second.job_id == "job-1"
  assert second.attempts_made == 1
  assert second.lock_token != first.lock_token
  assert await client.fail(first, "late failure from the old worker") == "lease_lost"

  clock.now = 3_000
  with caplog.at_level(logging.ERROR):
    assert await client.reserve(JobKind.EXPORT) is None

  assert await client.failed_jobs(JobKind.EXPORT) == ["job-1"]
  assert await connection.hget("tn:export:job:job-1", "state") == b"failed"
  assert await connection.hget("tn:export:job:job-1", "attemptsMade") == b"2"
  assert "stalled on its final attempt" in caplog.text


@pytest.mark.anyio
async def test_unreadable_job_is_failed_and_the_next_one_served(connection, clock: FakeClock) -> None:
  client = RedisQueueClient(connection, prefix="tn", clock=clock)
  await _enqueue_export(client, "job-bad")
  await _enqueue_export(client, "job-good")
  await connection.hset("tn:export:job:job-bad", "opts", b"{not json")

  envelope = await client.reserve(JobKind.EXPORT)

  assert envelope.job_id == "job-good"
  assert await client.failed_jobs(JobKind.EXPORT) == ["job-bad"]
  assert await connection.zscore("tn:export:active", "job-bad") is None
  assert (await connection.hget("tn:export:job:job-bad", "failedReason")).startswith(b"Unreadable job data")
