import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from tasknator.api.deps import Principal, get_db_session, get_principal, get_queue_client, require_workspace_member
from tasknator.api.models import JobAcceptedResponse
from tasknator.jobs.models import JOB_NAMES, JobKind, PlanJobData
from tasknator.jobs.producers import enqueue_plan
from tasknator.schema.sql import AuditStatus
from tasknator.services import audits as audit_service
from tasknator.services.job_records import enqueue_with_record
from tasknator.services.queue.interface import QueueClient

router = APIRouter()
logger = logging.getLogger("tasknator.api.routes.plans")


@router.post("/{audit_run_id}/generate", response_model=JobAcceptedResponse, status_code=status.HTTP_202_ACCEPTED)
async def generate_plan(  # noqa: B008
  audit_run_id: str,
  principal: Principal = Depends(get_principal),  # noqa: B008
  db_session: AsyncSession = Depends(get_db_session),  # noqa: B008
  queue: QueueClient = Depends(get_queue_client),  # noqa: B008
) -> JobAcceptedResponse:
  """Queue recovery plan generation for a completed audit."""
  audit_run = await audit_service.get_audit_run(db_session, audit_run_id)
  # A plan is derived from audit findings, so only completed audits qualify.
  if audit_run is None or audit_run.status != AuditStatus.COMPLETED:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Completed audit not found")
  workspace_id = audit_run.business_profile.workspace_id
  await require_workspace_member(db_session, principal, workspace_id)

  data = PlanJobData(audit_run_id=audit_run.id, business_profile_id=audit_run.business_profile_id, workspace_id=workspace_id)
  record, handle = await enqueue_with_record(db_session, workspace_id=workspace_id, job_type=JobKind.PLAN.value, ref_id=audit_run.id, enqueue=lambda job_id: enqueue_plan(queue, data, job_id=job_id))
  logger.info("Plan generation queued for audit %s job=%s", audit_run.id, handle.job_id)
  return JobAcceptedResponse(job_record_id=record.id, job_name=JOB_NAMES[JobKind.PLAN], status=record.status)
