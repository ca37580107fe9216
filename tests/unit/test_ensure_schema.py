"""Schema bootstrap retry tests."""

from __future__ import annotations

import subprocess

import pytest

from scripts import ensure_schema


def test_upgrade_succeeds_on_first_attempt() -> None:
  calls: list[list[str]] = []
  sleeps: list[float] = []
  assert ensure_schema.ensure_schema(run=lambda command: calls.append(list(command)), sleep=sleeps.append) is True
  assert calls[0][-3:] == ["alembic", "upgrade", "head"]
  assert sleeps == []


def test_retries_with_backoff_then_gives_up_without_raising(caplog: pytest.LogCaptureFixture) -> None:
  """Three failed attempts sleep 2s then 4s and return False instead of raising."""
  attempts: list[int] = []
  sleeps: list[float] = []

  def _fail(command) -> None:
    attempts.append(1)
    raise subprocess.CalledProcessError(returncode=1, cmd=list(command))

  assert ensure_schema.ensure_schema(run=_fail, sleep=sleeps.append) is False
  assert len(attempts) == 3
  assert sleeps == [2.0, 4.0]
  assert "alembic upgrade head" in caplog.text


def test_recovers_after_transient_timeout() -> None:
  outcomes = [subprocess.TimeoutExpired(cmd="alembic", timeout=30), None]

  def _run(_command) -> None:
    outcome = outcomes.pop(0)
    if outcome is not None:
      raise outcome

  sleeps: list[float] = []
  assert ensure_schema.ensure_schema(run=_run, sleep=sleeps.append) is True
  assert sleeps == [2.0]


def test_main_always_exits_zero(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setattr(ensure_schema, "ensure_schema", lambda: False)
  with pytest.raises(SystemExit) as exc_info:
    ensure_schema.main()
  assert exc_info.value.code == 0
