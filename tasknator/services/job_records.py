from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from tasknator.jobs.models import JobHandle
from tasknator.schema.sql import JobRecord, JobRecordStatus
from tasknator.utils.ids import generate_job_id

logger = logging.getLogger(__name__)


async def create_job_record(session: AsyncSession, *, workspace_id: str, job_type: str, ref_id: str) -> JobRecord:
  """Persist a queued job record; its id doubles as the queue job id."""
  record = JobRecord(id=generate_job_id(), workspace_id=workspace_id, type=job_type, ref_id=ref_id, status=JobRecordStatus.QUEUED, progress=0)
  session.add(record)
  await session.commit()
  await session.refresh(record)
  return record


async def mark_job_running(session: AsyncSession, job_id: str) -> JobRecord | None:
  record = await session.get(JobRecord, job_id)
  if record is None:
    logger.warning("Job record %s not found; progress will not be tracked", job_id)
    return None
  record.status = JobRecordStatus.RUNNING
  record.progress = 10
  await session.commit()
  return record


async def mark_job_completed(session: AsyncSession, job_id: str, *, result_url: str | None = None) -> JobRecord | None:
  record = await session.get(JobRecord, job_id)
  if record is None:
    logger.warning("Job record %s not found; completion not recorded", job_id)
    return None
  record.status = JobRecordStatus.COMPLETED
  record.progress = 100
  record.error = None
  record.result_url = result_url
  record.finished_at = datetime.now(UTC)
  await session.commit()
  return record


async def mark_job_failed(session: AsyncSession, job_id: str, *, error: str) -> JobRecord | None:
  """Record a terminal failure so pollers stop waiting."""
  record = await session.get(JobRecord, job_id)
  if record is None:
    logger.warning("Job record %s not found; failure not recorded: %s", job_id, error)
    return None
  record.status = JobRecordStatus.FAILED
  record.progress = 100
  record.error = error
  record.finished_at = datetime.now(UTC)
  await session.commit()
  return record


async def enqueue_with_record(session: AsyncSession, *, workspace_id: str, job_type: str, ref_id: str, enqueue: Callable[[str], Awaitable[JobHandle]]) -> tuple[JobRecord, JobHandle]:
  """Persist a job record, then queue the job under the record's id.

  A broker failure marks the record failed and surfaces as a 500 so the caller never
  polls a job that does not exist.
  """
  record = await create_job_record(session, workspace_id=workspace_id, job_type=job_type, ref_id=ref_id)
  try:
    handle = await enqueue(record.id)
  except Exception as exc:  # noqa: BLE001
    logger.error("Failed to enqueue %s job %s for %s", job_type, record.id, ref_id, exc_info=True)
    await mark_job_failed(session, record.id, error=f"Failed to queue job: {exc}")
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to queue {job_type} job.") from exc
  return record, handle
