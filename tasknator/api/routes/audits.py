import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from tasknator.api.deps import Principal, get_db_session, get_principal, get_queue_client, require_workspace_member
from tasknator.api.models import AuditStartResponse
from tasknator.jobs.models import JOB_NAMES, AuditJobData, JobKind
from tasknator.jobs.producers import enqueue_audit
from tasknator.services import audits as audit_service
from tasknator.services.job_records import enqueue_with_record
from tasknator.services.queue.interface import QueueClient

router = APIRouter()
logger = logging.getLogger("tasknator.api.routes.audits")


@router.post("/{business_id}/start", response_model=AuditStartResponse, status_code=status.HTTP_201_CREATED)
async def start_audit(  # noqa: B008
  business_id: str,
  principal: Principal = Depends(get_principal),  # noqa: B008
  db_session: AsyncSession = Depends(get_db_session),  # noqa: B008
  queue: QueueClient = Depends(get_queue_client),  # noqa: B008
) -> AuditStartResponse:
  """Create a queued audit run for a business and enqueue it."""
  profile = await audit_service.get_business_profile(db_session, business_id)
  if profile is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Business not found")
  await require_workspace_member(db_session, principal, profile.workspace_id)

  # One audit at a time per business; producers do not deduplicate.
  if await audit_service.find_in_flight_audit(db_session, business_id) is not None:
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="An audit is already running for this business")

  audit_run = await audit_service.create_audit_run(db_session, business_id)
  data = AuditJobData(audit_run_id=audit_run.id, business_profile_id=business_id, workspace_id=profile.workspace_id)
  try:
    record, handle = await enqueue_with_record(db_session, workspace_id=profile.workspace_id, job_type=JobKind.AUDIT.value, ref_id=audit_run.id, enqueue=lambda job_id: enqueue_audit(queue, data, job_id=job_id))
  except HTTPException:
    await audit_service.mark_audit_failed(db_session, audit_run)
    raise

  logger.info("Audit %s queued for business %s job=%s", audit_run.id, business_id, handle.job_id)
  return AuditStartResponse(audit_run_id=audit_run.id, job_record_id=record.id, job_name=JOB_NAMES[JobKind.AUDIT], status=record.status)
