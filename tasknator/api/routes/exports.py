import logging
from datetime import UTC, datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from tasknator.api.deps import Principal, get_db_session, get_principal, get_queue_client, require_workspace_member
from tasknator.api.models import ExportCreateRequest, JobAcceptedResponse
from tasknator.jobs.models import JOB_NAMES, ExportJobData, JobKind
from tasknator.jobs.producers import enqueue_export
from tasknator.services.exports import build_export_data, export_filename, load_repair_plan, render_export, require_renderable_format
from tasknator.services.job_records import enqueue_with_record
from tasknator.services.plans import get_workspace_tier, require_export_access
from tasknator.services.queue.interface import QueueClient

router = APIRouter()
logger = logging.getLogger("tasknator.api.routes.exports")


@router.post("/{plan_id}", response_model=JobAcceptedResponse, status_code=status.HTTP_202_ACCEPTED)
async def create_export(  # noqa: B008
  plan_id: str,
  payload: ExportCreateRequest,
  principal: Principal = Depends(get_principal),  # noqa: B008
  db_session: AsyncSession = Depends(get_db_session),  # noqa: B008
  queue: QueueClient = Depends(get_queue_client),  # noqa: B008
) -> JobAcceptedResponse:
  """Queue an export bundle for background assembly and upload."""
  require_renderable_format(payload.format)
  plan = await load_repair_plan(db_session, plan_id)
  workspace_id = plan.business_profile.workspace_id
  await require_workspace_member(db_session, principal, workspace_id)
  tier = await get_workspace_tier(db_session, workspace_id)
  require_export_access(tier, payload.format)

  data = ExportJobData(repair_plan_id=plan.id, format=payload.format, workspace_id=workspace_id)
  record, handle = await enqueue_with_record(db_session, workspace_id=workspace_id, job_type=JobKind.EXPORT.value, ref_id=plan.id, enqueue=lambda job_id: enqueue_export(queue, data, job_id=job_id))
  logger.info("Export (%s) queued for plan %s job=%s", payload.format, plan.id, handle.job_id)
  return JobAcceptedResponse(job_record_id=record.id, job_name=JOB_NAMES[JobKind.EXPORT], status=record.status)


@router.get("/{plan_id}")
async def download_export(  # noqa: B008
  plan_id: str,
  export_format: Literal["zip", "csv"] = Query(default="zip", alias="format"),  # noqa: B008
  principal: Principal = Depends(get_principal),  # noqa: B008
  db_session: AsyncSession = Depends(get_db_session),  # noqa: B008
) -> Response:
  """Build an export synchronously and return it as an attachment."""
  plan = await load_repair_plan(db_session, plan_id)
  workspace_id = plan.business_profile.workspace_id
  await require_workspace_member(db_session, principal, workspace_id)
  tier = await get_workspace_tier(db_session, workspace_id)
  require_export_access(tier, export_format)

  data = build_export_data(plan, generated_at=datetime.now(UTC))
  rendered = await run_in_threadpool(render_export, data, export_format)
  filename = export_filename(data.business_name, rendered.extension)
  return Response(content=rendered.payload, media_type=rendered.content_type, headers={"Content-Disposition": f'attachment; filename="{filename}"'})
