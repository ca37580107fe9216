"""Identifier utilities."""

from __future__ import annotations

import uuid


def generate_id() -> str:
  """Return a new entity identifier."""
  return str(uuid.uuid4())


def generate_job_id() -> str:
  """Return a new queue job identifier."""
  return str(uuid.uuid4())
