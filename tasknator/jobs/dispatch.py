"""Dependency-injected job processor dispatch helpers."""

from __future__ import annotations

from typing import Any, Protocol

from tasknator.jobs.models import JobEnvelope, JobKind


class JobProcessorHandler(Protocol):
  """Processor contract for one job kind."""

  async def process(self, envelope: JobEnvelope) -> dict[str, Any] | None:
    """Process one reserved job; raising marks the attempt as failed."""


class JobProcessorRegistry:
  """Registry mapping job kinds to processor handlers."""

  def __init__(self, handlers: dict[JobKind, JobProcessorHandler]) -> None:
    self._handlers = handlers

  @property
  def kinds(self) -> tuple[JobKind, ...]:
    return tuple(self._handlers)

  def resolve(self, kind: JobKind) -> JobProcessorHandler:
    """Resolve the processor for a job kind."""
    handler = self._handlers.get(kind)
    if handler is None:
      raise ValueError(f"Unsupported job kind: {kind.value}")
    return handler


async def process_job(envelope: JobEnvelope, registry: JobProcessorRegistry) -> dict[str, Any] | None:
  """Dispatch a reserved job to the handler registered for its kind."""
  handler = registry.resolve(envelope.kind)
  return await handler.process(envelope)
