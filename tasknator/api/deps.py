"""Shared FastAPI dependencies for sessions, the queue client and the caller's identity."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tasknator.config import Settings, get_settings
from tasknator.core.database import get_db
from tasknator.schema.sql import Membership, User
from tasknator.services.queue.interface import QueueClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
  """Authenticated caller as asserted by the upstream auth proxy."""

  user_id: str
  email: str
  is_admin: bool


async def get_db_session(session: AsyncSession = Depends(get_db)) -> AsyncSession:  # noqa: B008
  """Dependency to get the database session."""
  return session


def get_queue_client(request: Request) -> QueueClient:
  """Return the process-wide queue client created by the lifespan."""
  queue = getattr(request.app.state, "queue", None)
  if queue is None:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Job queue is not available.")
  return queue


async def get_principal(request: Request, session: AsyncSession = Depends(get_db_session), settings: Settings = Depends(get_settings)) -> Principal:  # noqa: B008
  """Resolve the caller from the trusted identity header."""
  raw_email = request.headers.get(settings.auth_email_header)
  if not raw_email or not raw_email.strip():
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

  email = raw_email.strip().lower()
  user = (await session.execute(select(User).where(User.email == email))).scalar_one_or_none()
  if user is None:
    logger.info("Rejected request for unknown user")
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

  return Principal(user_id=user.id, email=email, is_admin=bool(user.is_admin) or email in settings.admin_emails)


async def require_workspace_member(session: AsyncSession, principal: Principal, workspace_id: str) -> None:
  """Raise 403 unless the caller belongs to the workspace; admins bypass the check."""
  if principal.is_admin:
    return
  stmt = select(Membership.id).where(Membership.user_id == principal.user_id, Membership.workspace_id == workspace_id)
  membership = (await session.execute(stmt)).scalar_one_or_none()
  if membership is None:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
