"""Shared test doubles for database sessions."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any
from unittest.mock import MagicMock


class FakeSession:
  """In-memory stand-in for AsyncSession keyed by (model, primary key)."""

  def __init__(self) -> None:
    self.objects: dict[tuple[type, str], Any] = {}
    self.added: list[Any] = []
    self.commits = 0
    self.execute_results: list[Any] = []

  def add(self, instance: Any) -> None:
    self.added.append(instance)
    self.objects[(type(instance), instance.id)] = instance

  async def get(self, model: type, ident: str) -> Any:
    return self.objects.get((model, ident))

  async def commit(self) -> None:
    self.commits += 1

  async def refresh(self, instance: Any) -> None:
    return None

  async def close(self) -> None:
    return None

  async def execute(self, _stmt: Any) -> Any:
    # Queue scalar values for code paths that run select() statements.
    result = MagicMock()
    result.scalar_one_or_none.return_value = self.execute_results.pop(0) if self.execute_results else None
    return result


def session_factory_for(session: FakeSession):
  """Build an async_sessionmaker-like callable that always yields `session`."""

  @asynccontextmanager
  async def _factory():
    yield session

  return _factory
