import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from tasknator.api.deps import Principal, get_db_session, get_principal, get_queue_client, require_workspace_member
from tasknator.api.models import AssetGenerateRequest, JobAcceptedResponse
from tasknator.jobs.models import JOB_NAMES, AssetJobData, JobKind
from tasknator.jobs.producers import enqueue_asset
from tasknator.services.exports import get_repair_plan
from tasknator.services.job_records import enqueue_with_record
from tasknator.services.plans import get_workspace_tier, require_asset_access
from tasknator.services.queue.interface import QueueClient

router = APIRouter()
logger = logging.getLogger("tasknator.api.routes.assets")


@router.post("/generate", response_model=JobAcceptedResponse, status_code=status.HTTP_202_ACCEPTED)
async def generate_asset(  # noqa: B008
  payload: AssetGenerateRequest,
  principal: Principal = Depends(get_principal),  # noqa: B008
  db_session: AsyncSession = Depends(get_db_session),  # noqa: B008
  queue: QueueClient = Depends(get_queue_client),  # noqa: B008
) -> JobAcceptedResponse:
  """Queue generation of one asset, gated by the workspace's plan tier."""
  plan = await get_repair_plan(db_session, payload.repair_plan_id)
  if plan is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Plan not found")
  workspace_id = plan.business_profile.workspace_id
  await require_workspace_member(db_session, principal, workspace_id)
  tier = await get_workspace_tier(db_session, workspace_id)
  require_asset_access(tier, payload.asset_type)

  data = AssetJobData(repair_plan_id=plan.id, asset_type=payload.asset_type, business_profile_id=plan.business_profile_id, workspace_id=workspace_id)
  record, handle = await enqueue_with_record(db_session, workspace_id=workspace_id, job_type=JobKind.ASSET.value, ref_id=plan.id, enqueue=lambda job_id: enqueue_asset(queue, data, job_id=job_id))
  logger.info("Asset %s queued for plan %s job=%s", payload.asset_type, plan.id, handle.job_id)
  return JobAcceptedResponse(job_record_id=record.id, job_name=JOB_NAMES[JobKind.ASSET], status=record.status)
