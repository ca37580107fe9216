"""Unit tests for job payload contracts, retry policies and producers."""

from __future__ import annotations

from unittest.mock import AsyncMock

import msgspec
import pytest

from tasknator.jobs.models import (
  JOB_NAMES,
  JOB_RETRY_POLICIES,
  AssetJobData,
  AuditJobData,
  BackoffPolicy,
  ExportJobData,
  JobEnvelope,
  JobHandle,
  JobKind,
  PlanJobData,
  RetryPolicy,
  decode_policy,
  encode_payload,
  encode_policy,
  kind_for_payload,
)
from tasknator.jobs.producers import enqueue_asset, enqueue_audit, enqueue_export, enqueue_plan


def test_retry_table_matches_job_kinds() -> None:
  assert JOB_RETRY_POLICIES[JobKind.AUDIT] == RetryPolicy(attempts=3, backoff=BackoffPolicy(delay=5000))
  assert JOB_RETRY_POLICIES[JobKind.PLAN] == RetryPolicy(attempts=3, backoff=BackoffPolicy(delay=5000))
  assert JOB_RETRY_POLICIES[JobKind.ASSET] == RetryPolicy(attempts=2, backoff=BackoffPolicy(delay=3000))
  assert JOB_RETRY_POLICIES[JobKind.EXPORT] == RetryPolicy(attempts=2)


def test_exponential_delay_doubles_per_attempt() -> None:
  policy = JOB_RETRY_POLICIES[JobKind.AUDIT]
  assert [policy.delay_for(attempt) for attempt in (1, 2, 3)] == [5000, 10000, 20000]
  assert JOB_RETRY_POLICIES[JobKind.EXPORT].delay_for(1) == 0
  with pytest.raises(ValueError):
    BackoffPolicy(delay=1000).delay_for(0)


def test_payloads_encode_to_camel_case() -> None:
  encoded = encode_payload(AssetJobData(repair_plan_id="plan-1", asset_type="AD_COPY", business_profile_id="biz-1", workspace_id="ws-1"))
  assert msgspec.json.decode(encoded) == {"repairPlanId": "plan-1", "assetType": "AD_COPY", "businessProfileId": "biz-1", "workspaceId": "ws-1"}


def test_policy_wire_format_omits_missing_backoff() -> None:
  assert msgspec.json.decode(encode_policy(JOB_RETRY_POLICIES[JobKind.EXPORT])) == {"attempts": 2}
  assert msgspec.json.decode(encode_policy(JOB_RETRY_POLICIES[JobKind.ASSET])) == {"attempts": 2, "backoff": {"delay": 3000, "type": "exponential"}}
  assert decode_policy(b'{"attempts":3,"backoff":{"type":"exponential","delay":5000}}') == JOB_RETRY_POLICIES[JobKind.AUDIT]


def test_decode_rejects_unknown_fields() -> None:
  envelope = JobEnvelope(job_id="job-1", kind=JobKind.EXPORT, name="create-export", payload=b'{"repairPlanId":"p","format":"zip","workspaceId":"w","extra":1}', policy=JOB_RETRY_POLICIES[JobKind.EXPORT], attempts_made=0, timestamp_ms=0)
  with pytest.raises(msgspec.ValidationError):
    envelope.decode()


def test_decode_rejects_unknown_export_format() -> None:
  envelope = JobEnvelope(job_id="job-1", kind=JobKind.EXPORT, name="create-export", payload=b'{"repairPlanId":"p","format":"docx","workspaceId":"w"}', policy=JOB_RETRY_POLICIES[JobKind.EXPORT], attempts_made=1, timestamp_ms=0)
  assert envelope.attempt == 2
  with pytest.raises(msgspec.ValidationError):
    envelope.decode()


def test_kind_for_payload() -> None:
  assert kind_for_payload(PlanJobData(audit_run_id="a", business_profile_id="b", workspace_id="w")) is JobKind.PLAN
  with pytest.raises(TypeError):
    kind_for_payload({"auditRunId": "a"})  # type: ignore[arg-type]


@pytest.mark.anyio
@pytest.mark.parametrize(
  ("producer", "data", "kind"),
  [
    (enqueue_audit, AuditJobData(audit_run_id="a", business_profile_id="b", workspace_id="w"), JobKind.AUDIT),
    (enqueue_plan, PlanJobData(audit_run_id="a", business_profile_id="b", workspace_id="w"), JobKind.PLAN),
    (enqueue_asset, AssetJobData(repair_plan_id="p", asset_type="SEO_PLAN", business_profile_id="b", workspace_id="w"), JobKind.ASSET),
    (enqueue_export, ExportJobData(repair_plan_id="p", format="zip", workspace_id="w"), JobKind.EXPORT),
  ],
)
async def test_producers_attach_name_and_retry_policy(producer, data, kind: JobKind) -> None:
  """Each producer routes to its kind with the fixed job name and retry options."""
  queue = AsyncMock()
  queue.enqueue.return_value = JobHandle(job_id="job-1", kind=kind, name=JOB_NAMES[kind])

  handle = await producer(queue, data, job_id="job-1")

  assert handle.job_id == "job-1"
  queue.enqueue.assert_awaited_once_with(kind, JOB_NAMES[kind], data, JOB_RETRY_POLICIES[kind], job_id="job-1")


@pytest.mark.anyio
async def test_producer_propagates_broker_errors() -> None:
  queue = AsyncMock()
  queue.enqueue.side_effect = ConnectionError("broker unreachable")
  with pytest.raises(ConnectionError):
    await enqueue_audit(queue, AuditJobData(audit_run_id="a", business_profile_id="b", workspace_id="w"))
