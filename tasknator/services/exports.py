"""Loading plans for export and running export jobs end to end."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from tasknator.core.errors import ExportNotFoundError, UnsupportedExportFormatError, WorkspaceMismatchError
from tasknator.jobs.models import ExportJobData, JobEnvelope
from tasknator.schema.sql import RepairPlan
from tasknator.services.export_bundle import ExportAsset, ExportData, ExportTask, assemble_export_zip, render_tasks_csv
from tasknator.services.export_storage_client import ExportStorageClient
from tasknator.services.job_records import mark_job_completed, mark_job_running

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderedExport:
  payload: bytes
  content_type: str
  extension: str


def _utc_now() -> datetime:
  return datetime.now(UTC)


async def get_repair_plan(session: AsyncSession, plan_id: str) -> RepairPlan | None:
  """Load a plan with its ordered tasks, assets and business profile."""
  stmt = select(RepairPlan).where(RepairPlan.id == plan_id).options(selectinload(RepairPlan.tasks), selectinload(RepairPlan.assets), selectinload(RepairPlan.business_profile))
  return (await session.execute(stmt)).scalar_one_or_none()


async def load_repair_plan(session: AsyncSession, plan_id: str) -> RepairPlan:
  plan = await get_repair_plan(session, plan_id)
  if plan is None:
    raise ExportNotFoundError(f"Repair plan not found: {plan_id}")
  return plan


def build_export_data(plan: RepairPlan, *, generated_at: datetime) -> ExportData:
  """Snapshot a loaded plan into assembler input."""
  profile = plan.business_profile
  tasks = tuple(ExportTask(phase=task.phase, title=task.title, description=task.description, impact=task.impact, time_estimate=task.time_estimate) for task in sorted(plan.tasks, key=lambda task: task.sort_order))
  assets = tuple(ExportAsset(type=asset.type, title=asset.title, content=asset.content) for asset in plan.assets)
  return ExportData(plan_title=plan.title, plan_summary=plan.summary or "", business_name=profile.name, industry=profile.industry, generated_at=generated_at, tasks=tasks, assets=assets)


async def load_export_data(session: AsyncSession, plan_id: str, *, workspace_id: str, generated_at: datetime) -> ExportData:
  """Load a plan and verify it belongs to `workspace_id` before snapshotting it."""
  plan = await load_repair_plan(session, plan_id)
  if plan.business_profile.workspace_id != workspace_id:
    raise WorkspaceMismatchError(f"Repair plan {plan_id} does not belong to workspace {workspace_id}")
  return build_export_data(plan, generated_at=generated_at)


RENDERABLE_FORMATS = ("zip", "csv")


def require_renderable_format(export_format: str) -> None:
  """Reject formats `render_export` cannot produce before any work is queued for them."""
  if export_format not in RENDERABLE_FORMATS:
    raise UnsupportedExportFormatError(f"Unsupported export format: {export_format}")


def render_export(data: ExportData, export_format: str) -> RenderedExport:
  """Render export bytes for a format."""
  if export_format == "zip":
    return RenderedExport(payload=assemble_export_zip(data), content_type="application/zip", extension="zip")
  if export_format == "csv":
    return RenderedExport(payload=render_tasks_csv(data), content_type="text/csv; charset=utf-8", extension="csv")
  raise UnsupportedExportFormatError(f"Unsupported export format: {export_format}")


def export_object_name(*, workspace_id: str, repair_plan_id: str, job_id: str, extension: str) -> str:
  return f"exports/{workspace_id}/{repair_plan_id}/{job_id}.{extension}"


def export_filename(business_name: str, extension: str) -> str:
  """Download filename for an export, e.g. `Acme_Co_recovery_plan.zip`."""
  safe = "".join(char if char.isascii() and char.isalnum() else "_" for char in business_name)
  return f"{safe}_recovery_plan.{extension}"


class ExportJobProcessor:
  """Handle `create-export` jobs: load, render, upload, and record the result URL."""

  def __init__(self, *, session_factory: async_sessionmaker[AsyncSession], storage: ExportStorageClient, clock: Callable[[], datetime] = _utc_now) -> None:
    self._session_factory = session_factory
    self._storage = storage
    self._clock = clock

  async def process(self, envelope: JobEnvelope) -> dict[str, Any] | None:
    data: ExportJobData = envelope.decode()
    logger.info("Processing export job %s plan=%s format=%s attempt=%s", envelope.job_id, data.repair_plan_id, data.format, envelope.attempt)
    async with self._session_factory() as session:
      await mark_job_running(session, envelope.job_id)
      export_data = await load_export_data(session, data.repair_plan_id, workspace_id=data.workspace_id, generated_at=self._clock())
      # Assembly happens before upload so a failed archive never reaches storage.
      rendered = render_export(export_data, data.format)
      object_name = export_object_name(workspace_id=data.workspace_id, repair_plan_id=data.repair_plan_id, job_id=envelope.job_id, extension=rendered.extension)
      metadata = await self._storage.upload_bytes(object_name=object_name, payload=rendered.payload, content_type=rendered.content_type)
      await mark_job_completed(session, envelope.job_id, result_url=metadata.url)

    return {"url": metadata.url, "objectName": metadata.object_name, "size": metadata.size}
