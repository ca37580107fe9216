"""Test configuration for importing the application package."""

from __future__ import annotations

import os
import tempfile

# Ensure required settings are available before importing the app.
os.environ.setdefault("TASKNATOR_ALLOWED_ORIGINS", "http://localhost")
os.environ.setdefault("TASKNATOR_QUEUE_BACKEND", "memory")
os.environ.setdefault("TASKNATOR_LOG_DIR", tempfile.mkdtemp(prefix="tasknator-logs-"))

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from tasknator.api.deps import Principal, get_db_session, get_principal, get_queue_client  # noqa: E402
from tasknator.main import app  # noqa: E402
from tasknator.services.queue.memory import InMemoryQueueClient  # noqa: E402
from tests.fakes import FakeSession  # noqa: E402


@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture
def fake_session() -> FakeSession:
  return FakeSession()


@pytest.fixture
def memory_queue() -> InMemoryQueueClient:
  return InMemoryQueueClient()


@pytest.fixture
def admin_principal() -> Principal:
  return Principal(user_id="user-admin", email="admin@example.com", is_admin=True)


@pytest.fixture
async def async_client(fake_session: FakeSession, memory_queue: InMemoryQueueClient, admin_principal: Principal):
  app.dependency_overrides[get_db_session] = lambda: fake_session
  app.dependency_overrides[get_queue_client] = lambda: memory_queue
  app.dependency_overrides[get_principal] = lambda: admin_principal
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
    yield client
  app.dependency_overrides.clear()
