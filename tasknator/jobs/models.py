"""Wire contracts and retry policies for background pipeline jobs."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

import msgspec

ExportFormat = Literal["pdf", "zip", "csv"]
FailOutcome = Literal["retrying", "failed", "lease_lost"]
STALLED_REASON = "Job stalled: lease expired before the worker settled it"


class JobKind(str, Enum):
  """One logical queue per kind."""

  AUDIT = "audit"
  PLAN = "plan"
  ASSET = "asset"
  EXPORT = "export"


class AuditJobData(msgspec.Struct, frozen=True, rename="camel", forbid_unknown_fields=True):
  """Payload for running a diagnostic audit."""

  audit_run_id: str
  business_profile_id: str
  workspace_id: str


class PlanJobData(msgspec.Struct, frozen=True, rename="camel", forbid_unknown_fields=True):
  """Payload for generating a recovery plan from a completed audit."""

  audit_run_id: str
  business_profile_id: str
  workspace_id: str


class AssetJobData(msgspec.Struct, frozen=True, rename="camel", forbid_unknown_fields=True):
  """Payload for generating one asset for a recovery plan."""

  repair_plan_id: str
  asset_type: str
  business_profile_id: str
  workspace_id: str


class ExportJobData(msgspec.Struct, frozen=True, rename="camel", forbid_unknown_fields=True):
  """Payload for producing an export bundle for a recovery plan."""

  repair_plan_id: str
  format: ExportFormat
  workspace_id: str


JobData = AuditJobData | PlanJobData | AssetJobData | ExportJobData

PAYLOAD_TYPES: dict[JobKind, type[msgspec.Struct]] = {JobKind.AUDIT: AuditJobData, JobKind.PLAN: PlanJobData, JobKind.ASSET: AssetJobData, JobKind.EXPORT: ExportJobData}

JOB_NAMES: dict[JobKind, str] = {JobKind.AUDIT: "run-audit", JobKind.PLAN: "generate-plan", JobKind.ASSET: "generate-asset", JobKind.EXPORT: "create-export"}


class BackoffPolicy(msgspec.Struct, frozen=True):
  """Exponential redelivery delay; `delay` is the base in milliseconds."""

  delay: int
  type: Literal["exponential"] = "exponential"

  def delay_for(self, attempt: int) -> int:
    """Return the redelivery delay after failed attempt `attempt` (counted from 1)."""
    if attempt < 1:
      raise ValueError("attempt must be >= 1")
    return self.delay * (2 ** (attempt - 1))


class RetryPolicy(msgspec.Struct, frozen=True, omit_defaults=True):
  """Attempt budget plus optional backoff, serialized as queue job options."""

  attempts: int
  backoff: BackoffPolicy | None = None

  def delay_for(self, attempt: int) -> int:
    """Milliseconds to wait before redelivery; zero means immediate retry."""
    if self.backoff is None:
      return 0
    return self.backoff.delay_for(attempt)


JOB_RETRY_POLICIES: dict[JobKind, RetryPolicy] = {
  JobKind.AUDIT: RetryPolicy(attempts=3, backoff=BackoffPolicy(delay=5000)),
  JobKind.PLAN: RetryPolicy(attempts=3, backoff=BackoffPolicy(delay=5000)),
  JobKind.ASSET: RetryPolicy(attempts=2, backoff=BackoffPolicy(delay=3000)),
  JobKind.EXPORT: RetryPolicy(attempts=2),
}


@dataclass(frozen=True)
class JobHandle:
  """Returned once the broker has durably accepted a job."""

  job_id: str
  kind: JobKind
  name: str


@dataclass(frozen=True)
class JobEnvelope:
  """A reserved job as seen by a worker."""

  job_id: str
  kind: JobKind
  name: str
  payload: bytes
  policy: RetryPolicy
  attempts_made: int
  timestamp_ms: int
  # Identifies this reservation; a job re-reserved after its lease expired gets a new token.
  lock_token: str | None = None

  @property
  def attempt(self) -> int:
    """The attempt number currently being processed, counted from 1."""
    return self.attempts_made + 1

  def decode(self) -> Any:
    """Decode the payload into the typed contract for this job kind."""
    return msgspec.json.decode(self.payload, type=PAYLOAD_TYPES[self.kind])


def kind_for_payload(data: JobData) -> JobKind:
  """Resolve the job kind from a payload contract instance."""
  for kind, payload_type in PAYLOAD_TYPES.items():
    if type(data) is payload_type:
      return kind
  raise TypeError(f"Unsupported job payload type: {type(data).__name__}")


def encode_payload(data: JobData) -> bytes:
  """Encode a payload contract to its camelCase JSON wire form."""
  return msgspec.json.encode(data)


def encode_policy(policy: RetryPolicy) -> bytes:
  """Encode retry options in the queue wire format."""
  return msgspec.json.encode(policy)


def decode_policy(raw: bytes | str) -> RetryPolicy:
  """Decode retry options stored alongside a job."""
  return msgspec.json.decode(raw, type=RetryPolicy)
