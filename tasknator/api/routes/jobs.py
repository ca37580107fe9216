from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from tasknator.api.deps import Principal, get_db_session, get_principal, require_workspace_member
from tasknator.api.models import JobRecordResponse
from tasknator.schema.sql import JobRecord

router = APIRouter()


@router.get("/{job_record_id}", response_model=JobRecordResponse)
async def get_job_status(  # noqa: B008
  job_record_id: str,
  principal: Principal = Depends(get_principal),  # noqa: B008
  db_session: AsyncSession = Depends(get_db_session),  # noqa: B008
) -> JobRecordResponse:
  """Fetch the status and result of a background job."""
  record = await db_session.get(JobRecord, job_record_id)
  if record is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
  await require_workspace_member(db_session, principal, record.workspace_id)
  return JobRecordResponse(
    id=record.id,
    type=record.type,
    ref_id=record.ref_id,
    status=record.status,
    progress=record.progress,
    error=record.error,
    result_url=record.result_url,
    created_at=record.created_at,
    finished_at=record.finished_at,
  )
