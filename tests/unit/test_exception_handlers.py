"""Unit tests for API exception sanitization behavior."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from tasknator.core.exceptions import _error_payload, _sanitize_http_detail, _sanitize_validation_errors
from tasknator.core.logging import TruncatedFormatter, _backup_namer


def test_sanitize_validation_errors_removes_input_and_serializes_exception_ctx() -> None:
  """Ensure validation errors stay JSON-serializable and redact raw request payloads."""
  errors = [{"type": "value_error", "loc": ("body", "assetType"), "msg": "Value error, unsupported asset.", "input": {"assetType": "PODCAST"}, "ctx": {"error": ValueError("unsupported asset."), "input": {"assetType": "PODCAST"}}}]
  sanitized = _sanitize_validation_errors(errors)
  assert "input" not in sanitized[0]
  assert sanitized[0]["loc"] == ["body", "assetType"]
  assert sanitized[0]["ctx"]["error"] == "ValueError: unsupported asset."
  assert "input" not in sanitized[0]["ctx"]


def test_sanitize_http_detail_drops_payload_keys() -> None:
  detail = {"error": "UPGRADE_REQUIRED", "payload": {"secret": 1}, "nested": [{"body": "x", "tier": "STARTER"}]}
  assert _sanitize_http_detail(detail) == {"error": "UPGRADE_REQUIRED", "nested": [{"tier": "STARTER"}]}


def test_error_payload_includes_request_id_when_known() -> None:
  assert _error_payload("Forbidden", request_id="req-1") == {"detail": "Forbidden", "requestId": "req-1"}
  assert _error_payload("Forbidden") == {"detail": "Forbidden"}


def test_backup_namer_uses_dash_suffix() -> None:
  assert _backup_namer(str(Path("logs") / "tasknator_app.log.3")) == str(Path("logs") / "tasknator_app.log-3")
  assert _backup_namer("tasknator_app.log") == "tasknator_app.log"


def test_truncated_formatter_keeps_tail_of_deep_traceback() -> None:
  def _recurse(depth: int) -> None:
    if depth == 0:
      raise RuntimeError("bottom")
    _recurse(depth - 1)

  try:
    _recurse(10)
  except RuntimeError:
    record = logging.LogRecord("test", logging.ERROR, __file__, 1, "failed", None, exc_info=sys.exc_info())

  formatted = TruncatedFormatter("%(message)s").format(record)
  assert "    ...\n" in formatted
  assert formatted.rstrip().endswith("RuntimeError: bottom")
