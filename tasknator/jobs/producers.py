"""Enqueue helpers that attach the fixed per-kind job name and retry policy."""

from __future__ import annotations

from tasknator.jobs.models import JOB_NAMES, JOB_RETRY_POLICIES, AssetJobData, AuditJobData, ExportJobData, JobData, JobHandle, JobKind, PlanJobData
from tasknator.services.queue.interface import QueueClient


async def _enqueue(queue: QueueClient, kind: JobKind, data: JobData, job_id: str | None) -> JobHandle:
  return await queue.enqueue(kind, JOB_NAMES[kind], data, JOB_RETRY_POLICIES[kind], job_id=job_id)


async def enqueue_audit(queue: QueueClient, data: AuditJobData, *, job_id: str | None = None) -> JobHandle:
  """Queue a diagnostic audit run (3 attempts, 5s exponential backoff)."""
  return await _enqueue(queue, JobKind.AUDIT, data, job_id)


async def enqueue_plan(queue: QueueClient, data: PlanJobData, *, job_id: str | None = None) -> JobHandle:
  """Queue recovery plan generation (3 attempts, 5s exponential backoff)."""
  return await _enqueue(queue, JobKind.PLAN, data, job_id)


async def enqueue_asset(queue: QueueClient, data: AssetJobData, *, job_id: str | None = None) -> JobHandle:
  """Queue asset generation (2 attempts, 3s exponential backoff)."""
  return await _enqueue(queue, JobKind.ASSET, data, job_id)


async def enqueue_export(queue: QueueClient, data: ExportJobData, *, job_id: str | None = None) -> JobHandle:
  """Queue export bundle creation (2 attempts, immediate retry)."""
  return await _enqueue(queue, JobKind.EXPORT, data, job_id)
