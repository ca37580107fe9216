"""Redis-backed durable job queues, one logical queue per job kind.

Key layout per kind (`{prefix}:{kind}:...`):
- `job:{id}` hash with name, data, opts, maxAttempts, attemptsMade, timestamp, state, processedOn, lockToken
- `wait` list of ready job ids (LPUSH on enqueue, consumed from the right)
- `active` sorted set of reserved ids scored by their lease deadline in ms
- `delayed` sorted set scored by the ready-at time in ms
- `completed` / `failed` sorted sets scored by the finish time in ms
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from typing import Any

import msgspec
from redis.asyncio import Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from tasknator.config import DEFAULT_QUEUE_LEASE_MS, Settings
from tasknator.jobs.models import STALLED_REASON, FailOutcome, JobData, JobEnvelope, JobHandle, JobKind, RetryPolicy, decode_policy, encode_payload, encode_policy, kind_for_payload
from tasknator.services.queue.interface import QueueClient
from tasknator.utils.ids import generate_job_id

logger = logging.getLogger(__name__)

_SWEEP_BATCH = 100
_POLL_INTERVAL_SECONDS = 0.25

# One atomic step per reservation:
# 1. due delayed ids go back to the wait list;
# 2. active ids whose lease expired count an attempt and are requeued, or failed once attempts run out;
# 3. the oldest waiting id is leased to the caller.
# Returns {id or "", flat hash fields, ids that died while stalled}.
_RESERVE_LUA = """
local now = ARGV[1]
local batch = ARGV[2]
local prefix = ARGV[3]

local due = redis.call("ZRANGEBYSCORE", KEYS[1], "-inf", now, "LIMIT", "0", batch)
for _, id in ipairs(due) do
  redis.call("ZREM", KEYS[1], id)
  redis.call("LPUSH", KEYS[2], id)
  redis.call("HSET", prefix .. id, "state", "waiting")
end

local dead = {}
local stalled = redis.call("ZRANGEBYSCORE", KEYS[3], "-inf", now, "LIMIT", "0", batch)
for _, id in ipairs(stalled) do
  redis.call("ZREM", KEYS[3], id)
  local key = prefix .. id
  if redis.call("EXISTS", key) == 1 then
    local made = redis.call("HINCRBY", key, "attemptsMade", "1")
    local max = tonumber(redis.call("HGET", key, "maxAttempts") or "1")
    redis.call("HDEL", key, "lockToken")
    if made < max then
      redis.call("HSET", key, "state", "waiting", "failedReason", ARGV[6])
      redis.call("LPUSH", KEYS[2], id)
    else
      redis.call("HSET", key, "state", "failed", "failedReason", ARGV[6], "finishedOn", now)
      redis.call("ZADD", KEYS[4], now, id)
      table.insert(dead, id)
    end
  end
end

local id = redis.call("RPOP", KEYS[2])
if not id then
  return {"", {}, dead}
end
local key = prefix .. id
if redis.call("EXISTS", key) == 0 then
  return {id, {}, dead}
end
redis.call("ZADD", KEYS[3], ARGV[4], id)
redis.call("HSET", key, "state", "active", "processedOn", now, "lockToken", ARGV[5])
return {id, redis.call("HGETALL", key), dead}
"""


def _now_ms() -> int:
  return int(time.time() * 1000)


def _text(raw: bytes | str) -> str:
  return raw.decode("utf-8") if isinstance(raw, bytes) else raw


def _bytes(raw: bytes | str) -> bytes:
  return raw if isinstance(raw, bytes) else raw.encode("utf-8")


def _field(fields: dict[Any, Any], name: str) -> Any:
  """Read a hash field regardless of whether the connection decodes responses."""
  if name in fields:
    return fields[name]
  return fields.get(name.encode("utf-8"))


def _pairs(flat: list[Any]) -> dict[Any, Any]:
  return dict(zip(flat[::2], flat[1::2], strict=True))


def build_redis_connection(settings: Settings) -> Redis:
  """Create the single shared broker connection for this process."""
  # A negative retry count means "retry forever" so transient disconnects never fail a command prematurely.
  retries = -1 if settings.redis_max_retries_per_request is None else settings.redis_max_retries_per_request
  retry = Retry(ExponentialBackoff(cap=2.0, base=0.05), retries)
  return Redis.from_url(settings.redis_url, decode_responses=False, retry=retry, retry_on_error=[RedisConnectionError, RedisTimeoutError], socket_connect_timeout=5, socket_keepalive=True, health_check_interval=30)


class RedisQueueClient(QueueClient):
  """Durable job queues multiplexed over one shared Redis connection.

  Each reservation holds a lease of `lease_ms`. A job whose worker dies before settling it is picked up by
  the next `reserve` on that queue once the lease expires: the lost attempt is counted and the job is
  either redelivered or moved to the failed set.
  """

  def __init__(self, connection: Redis, *, prefix: str = "tasknator", lease_ms: int = DEFAULT_QUEUE_LEASE_MS, clock: Callable[[], int] = _now_ms) -> None:
    self._redis = connection
    self._prefix = prefix
    self._lease_ms = lease_ms
    self._clock = clock
    self._reserve_script = connection.register_script(_RESERVE_LUA)

  def _key(self, kind: JobKind, suffix: str) -> str:
    return f"{self._prefix}:{kind.value}:{suffix}"

  def _job_key(self, kind: JobKind, job_id: str) -> str:
    return self._key(kind, f"job:{job_id}")

  async def enqueue(self, kind: JobKind, name: str, payload: JobData, policy: RetryPolicy, *, job_id: str | None = None) -> JobHandle:
    """Store the job and push it to the wait list inside one MULTI/EXEC transaction."""
    if kind_for_payload(payload) is not kind:
      raise TypeError(f"Payload {type(payload).__name__} does not belong to the {kind.value} queue.")

    job_id = job_id or generate_job_id()
    fields = {"name": name, "data": encode_payload(payload), "opts": encode_policy(policy), "maxAttempts": policy.attempts, "attemptsMade": 0, "timestamp": self._clock(), "state": "waiting"}
    async with self._redis.pipeline(transaction=True) as pipe:
      pipe.hset(self._job_key(kind, job_id), mapping=fields)
      pipe.lpush(self._key(kind, "wait"), job_id)
      # EXEC raising here means the broker did not accept the job; let the caller decide.
      await pipe.execute()

    logger.info("Enqueued %s job %s (%s) attempts=%s", kind.value, job_id, name, policy.attempts)
    return JobHandle(job_id=job_id, kind=kind, name=name)

  async def _reserve_step(self, kind: JobKind) -> tuple[bool, JobEnvelope | None]:
    """Run one promote, sweep and lease step. Returns whether an id was popped and its envelope."""
    now = self._clock()
    token = uuid.uuid4().hex
    keys = [self._key(kind, "delayed"), self._key(kind, "wait"), self._key(kind, "active"), self._key(kind, "failed")]
    raw_id, raw_fields, dead_ids = await self._reserve_script(keys=keys, args=[now, _SWEEP_BATCH, self._key(kind, "job:"), now + self._lease_ms, token, STALLED_REASON])

    for dead_id in dead_ids or []:
      logger.error("%s job %s stalled on its final attempt and is dead; operator attention required", kind.value, _text(dead_id))

    job_id = _text(raw_id)
    if not job_id:
      return False, None

    fields = _pairs(list(raw_fields or []))
    if not fields:
      logger.warning("Job %s reserved from %s queue has no data; dropping", job_id, kind.value)
      return True, None

    try:
      missing = [name for name in ("name", "data", "opts") if _field(fields, name) is None]
      if missing:
        raise ValueError(f"missing fields {', '.join(missing)}")
      envelope = JobEnvelope(
        job_id=job_id,
        kind=kind,
        name=_text(_field(fields, "name")),
        payload=_bytes(_field(fields, "data")),
        policy=decode_policy(_field(fields, "opts")),
        attempts_made=int(_field(fields, "attemptsMade") or 0),
        timestamp_ms=int(_field(fields, "timestamp") or 0),
        lock_token=token,
      )
      envelope.decode()
    except (msgspec.DecodeError, ValueError) as exc:
      await self._dead_letter(kind, job_id, f"Unreadable job data: {exc}")
      return True, None

    return True, envelope

  async def _dead_letter(self, kind: JobKind, job_id: str, reason: str) -> None:
    now = self._clock()
    async with self._redis.pipeline(transaction=True) as pipe:
      pipe.zrem(self._key(kind, "active"), job_id)
      pipe.hset(self._job_key(kind, job_id), mapping={"state": "failed", "failedReason": reason, "finishedOn": now})
      pipe.zadd(self._key(kind, "failed"), {job_id: now})
      await pipe.execute()
    logger.error("%s job %s moved to failed without processing; operator attention required: %s", kind.value, job_id, reason)

  async def reserve(self, kind: JobKind, timeout: float = 0) -> JobEnvelope | None:
    """Lease the oldest waiting job, polling until `timeout` seconds have elapsed."""
    deadline = time.monotonic() + timeout
    while True:
      popped, envelope = await self._reserve_step(kind)
      if envelope is not None:
        return envelope
      # A dropped or unreadable job does not end the wait; try the next one right away.
      if popped:
        continue
      remaining = deadline - time.monotonic()
      if remaining <= 0:
        return None
      await asyncio.sleep(min(_POLL_INTERVAL_SECONDS, remaining))

  async def _lease_lost(self, envelope: JobEnvelope) -> bool:
    if envelope.lock_token is None:
      return False
    current = await self._redis.hget(self._job_key(envelope.kind, envelope.job_id), "lockToken")
    if current is not None and _text(current) == envelope.lock_token:
      return False
    logger.warning("Lease on %s job %s expired before it was settled; leaving it to its current owner", envelope.kind.value, envelope.job_id)
    return True

  async def complete(self, envelope: JobEnvelope, result: dict[str, Any] | None = None) -> None:
    """Remove the job from the active set and record it as completed."""
    if await self._lease_lost(envelope):
      return
    now = self._clock()
    async with self._redis.pipeline(transaction=True) as pipe:
      pipe.zrem(self._key(envelope.kind, "active"), envelope.job_id)
      pipe.hset(self._job_key(envelope.kind, envelope.job_id), mapping={"state": "completed", "finishedOn": now, "returnvalue": msgspec.json.encode(result)})
      pipe.hdel(self._job_key(envelope.kind, envelope.job_id), "lockToken")
      pipe.zadd(self._key(envelope.kind, "completed"), {envelope.job_id: now})
      await pipe.execute()
    logger.info("Completed %s job %s on attempt %s", envelope.kind.value, envelope.job_id, envelope.attempt)

  async def fail(self, envelope: JobEnvelope, error: str) -> FailOutcome:
    """Schedule a redelivery with exponential backoff or move the job to the failed set."""
    if await self._lease_lost(envelope):
      return "lease_lost"
    attempts_made = envelope.attempts_made + 1
    now = self._clock()
    job_key = self._job_key(envelope.kind, envelope.job_id)
    active_key = self._key(envelope.kind, "active")

    if attempts_made < envelope.policy.attempts:
      delay = envelope.policy.delay_for(attempts_made)
      async with self._redis.pipeline(transaction=True) as pipe:
        pipe.zrem(active_key, envelope.job_id)
        pipe.hdel(job_key, "lockToken")
        if delay > 0:
          pipe.hset(job_key, mapping={"attemptsMade": attempts_made, "failedReason": error, "state": "delayed"})
          pipe.zadd(self._key(envelope.kind, "delayed"), {envelope.job_id: now + delay})
        else:
          pipe.hset(job_key, mapping={"attemptsMade": attempts_made, "failedReason": error, "state": "waiting"})
          pipe.lpush(self._key(envelope.kind, "wait"), envelope.job_id)
        await pipe.execute()
      logger.warning("Attempt %s/%s of %s job %s failed; retrying in %sms: %s", attempts_made, envelope.policy.attempts, envelope.kind.value, envelope.job_id, delay, error)
      return "retrying"

    async with self._redis.pipeline(transaction=True) as pipe:
      pipe.zrem(active_key, envelope.job_id)
      pipe.hdel(job_key, "lockToken")
      pipe.hset(job_key, mapping={"attemptsMade": attempts_made, "failedReason": error, "state": "failed", "finishedOn": now})
      pipe.zadd(self._key(envelope.kind, "failed"), {envelope.job_id: now})
      await pipe.execute()
    logger.error("%s job %s exhausted %s attempts and is dead; operator attention required: %s", envelope.kind.value, envelope.job_id, envelope.policy.attempts, error)
    return "failed"

  async def failed_jobs(self, kind: JobKind) -> list[str]:
    """Return dead job ids, oldest first."""
    raw_ids = await self._redis.zrange(self._key(kind, "failed"), 0, -1)
    return [_text(raw_id) for raw_id in raw_ids]

  async def close(self) -> None:
    """Close the shared connection owned by this client."""
    await self._redis.aclose()
    logger.info("Redis queue connection closed")
