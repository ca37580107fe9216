"""Deterministic packaging of recovery plans into downloadable zip and CSV artifacts."""

from __future__ import annotations

import csv
import io
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime

import pyzipper

from tasknator.core.errors import ExportAssemblyError

logger = logging.getLogger(__name__)

PHASE_ORDER: tuple[str, ...] = ("DAY_30", "DAY_60", "DAY_90")
ZIP_COMPRESSION_LEVEL = 9
CSV_HEADER: tuple[str, ...] = ("phase", "title", "description", "impact", "time_estimate")

_ZIP_EPOCH = datetime(1980, 1, 1, tzinfo=UTC)
# Regular file with rw-r--r-- permissions.
_ENTRY_ATTRIBUTES = 0o100644 << 16
_UNSAFE_NAME_CHARS = re.compile(r"[^a-z0-9]")


@dataclass(frozen=True)
class ExportTask:
  """One plan task as it appears in an export."""

  phase: str
  title: str
  description: str
  impact: str
  time_estimate: str


@dataclass(frozen=True)
class ExportAsset:
  """One generated asset as it appears in an export."""

  type: str
  title: str
  content: str


@dataclass(frozen=True)
class ExportData:
  """Snapshot of a recovery plan used to build one export."""

  plan_title: str
  plan_summary: str
  business_name: str
  industry: str
  generated_at: datetime
  tasks: tuple[ExportTask, ...] = field(default_factory=tuple)
  assets: tuple[ExportAsset, ...] = field(default_factory=tuple)


def _as_utc(value: datetime) -> datetime:
  """Treat naive timestamps as UTC."""
  if value.tzinfo is None:
    return value.replace(tzinfo=UTC)
  return value.astimezone(UTC)


def format_generated_at(value: datetime) -> str:
  """Render a timestamp as ISO-8601 UTC with millisecond precision (`2024-05-01T12:00:00.000Z`)."""
  moment = _as_utc(value)
  return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def phase_label(phase: str) -> str:
  """Turn a phase tag into its heading text (`DAY_30` -> `DAY 30`)."""
  return phase.replace("_", " ", 1)


def safe_asset_name(asset_type: str) -> str:
  """Return the archive path for an asset of the given type tag."""
  stem = _UNSAFE_NAME_CHARS.sub("_", asset_type.lower())
  extension = "csv" if asset_type == "AD_COPY" else "md"
  return f"assets/{stem}.{extension}"


def _tasks_in_phase_order(tasks: Iterable[ExportTask]) -> list[tuple[str, list[ExportTask]]]:
  """Group tasks by known phase in fixed order; unknown phases are dropped."""
  grouped: dict[str, list[ExportTask]] = {phase: [] for phase in PHASE_ORDER}
  for task in tasks:
    if task.phase in grouped:
      grouped[task.phase].append(task)
  return [(phase, grouped[phase]) for phase in PHASE_ORDER if grouped[phase]]


def render_plan_markdown(data: ExportData) -> str:
  """Render the plan document written to `plan.md`."""
  parts = [f"# {data.plan_title}\n\n", f"> {data.plan_summary}\n\n", f"**Business:** {data.business_name}\n", f"**Industry:** {data.industry}\n\n---\n\n"]
  for phase, tasks in _tasks_in_phase_order(data.tasks):
    parts.append(f"## {phase_label(phase)}\n\n")
    for task in tasks:
      parts.append(f"### {task.title}\n")
      parts.append(f"- **Impact:** {task.impact}\n")
      parts.append(f"- **Estimated time:** {task.time_estimate}\n")
      parts.append(f"- {task.description}\n\n")
  return "".join(parts)


def render_summary(data: ExportData) -> str:
  """Render the plain-text `README.txt` summary; task count includes unrendered phases."""
  return (
    "Tasknator Recovery Plan Export\n"
    "==============================\n"
    f"Business: {data.business_name}\n"
    f"Industry: {data.industry}\n"
    f"Plan: {data.plan_title}\n"
    f"Tasks: {len(data.tasks)}\n"
    f"Assets: {len(data.assets)}\n"
    f"Generated: {format_generated_at(data.generated_at)}\n"
  )


def _entry_timestamp(generated_at: datetime) -> tuple[int, int, int, int, int, int]:
  """Zip entries cannot predate 1980; clamp earlier timestamps to the zip epoch."""
  moment = max(_as_utc(generated_at), _ZIP_EPOCH)
  return (moment.year, moment.month, moment.day, moment.hour, moment.minute, moment.second)


def _write_entry(archive: pyzipper.ZipFile, name: str, content: str, date_time: tuple[int, int, int, int, int, int]) -> None:
  info = pyzipper.ZipInfo(filename=name, date_time=date_time)
  info.create_system = 3
  info.external_attr = _ENTRY_ATTRIBUTES
  archive.writestr(info, content.encode("utf-8"), compress_type=pyzipper.ZIP_DEFLATED, compresslevel=ZIP_COMPRESSION_LEVEL)


def assemble_export_zip(data: ExportData) -> bytes:
  """Build the export archive in memory.

  Entries are written in a fixed order (`plan.md`, assets in input order, `README.txt`) with the
  same timestamp and permissions, so identical input yields byte-identical output. Any failure while
  writing raises `ExportAssemblyError` and no bytes are returned.
  """
  date_time = _entry_timestamp(data.generated_at)
  buffer = io.BytesIO()
  try:
    with pyzipper.ZipFile(buffer, mode="w", compression=pyzipper.ZIP_DEFLATED, compresslevel=ZIP_COMPRESSION_LEVEL) as archive:
      _write_entry(archive, "plan.md", render_plan_markdown(data), date_time)
      for asset in data.assets:
        _write_entry(archive, safe_asset_name(asset.type), asset.content, date_time)
      _write_entry(archive, "README.txt", render_summary(data), date_time)
  except Exception as exc:  # noqa: BLE001
    logger.error("Export archive assembly failed for plan %r", data.plan_title, exc_info=True)
    raise ExportAssemblyError(f"Failed to assemble export archive: {exc}") from exc

  return buffer.getvalue()


def render_tasks_csv(data: ExportData) -> bytes:
  """Render plan tasks as UTF-8 CSV in phase order."""
  stream = io.StringIO()
  writer = csv.writer(stream, lineterminator="\n")
  writer.writerow(CSV_HEADER)
  for phase, tasks in _tasks_in_phase_order(data.tasks):
    for task in tasks:
      writer.writerow((phase, task.title, task.description, task.impact, task.time_estimate))
  return stream.getvalue().encode("utf-8")
