from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tasknator.schema.sql import AuditRun, AuditStatus, BusinessProfile
from tasknator.utils.ids import generate_id

IN_FLIGHT_STATUSES = (AuditStatus.QUEUED, AuditStatus.RUNNING)


async def get_business_profile(session: AsyncSession, business_id: str) -> BusinessProfile | None:
  return await session.get(BusinessProfile, business_id)


async def find_in_flight_audit(session: AsyncSession, business_id: str) -> AuditRun | None:
  """Return a queued or running audit for the business, if any."""
  stmt = select(AuditRun).where(AuditRun.business_profile_id == business_id, AuditRun.status.in_(IN_FLIGHT_STATUSES)).limit(1)
  return (await session.execute(stmt)).scalar_one_or_none()


async def create_audit_run(session: AsyncSession, business_id: str) -> AuditRun:
  audit_run = AuditRun(id=generate_id(), business_profile_id=business_id, status=AuditStatus.QUEUED, progress=0)
  session.add(audit_run)
  await session.commit()
  await session.refresh(audit_run)
  return audit_run


async def get_audit_run(session: AsyncSession, audit_run_id: str) -> AuditRun | None:
  """Load an audit run together with its business profile."""
  stmt = select(AuditRun).where(AuditRun.id == audit_run_id).options(selectinload(AuditRun.business_profile))
  return (await session.execute(stmt)).scalar_one_or_none()


async def mark_audit_failed(session: AsyncSession, audit_run: AuditRun) -> None:
  """Release the in-flight slot when the audit could not be queued."""
  audit_run.status = AuditStatus.FAILED
  audit_run.finished_at = datetime.now(UTC)
  await session.commit()
