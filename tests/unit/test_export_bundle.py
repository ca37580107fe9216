"""Unit tests for deterministic export archive and CSV rendering."""

from __future__ import annotations

import io
import zipfile
from datetime import UTC, datetime

import pytest

from tasknator.core.errors import ExportAssemblyError
from tasknator.services import export_bundle
from tasknator.services.export_bundle import ExportAsset, ExportData, ExportTask, assemble_export_zip, format_generated_at, render_plan_markdown, render_summary, render_tasks_csv, safe_asset_name

GENERATED_AT = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)


def _data(**overrides) -> ExportData:
  values = {
    "plan_title": "Recovery Plan",
    "plan_summary": "Fix the funnel first.",
    "business_name": "Acme Co",
    "industry": "Retail",
    "generated_at": GENERATED_AT,
    "tasks": (
      ExportTask(phase="DAY_60", title="Launch ads", description="Start a small campaign.", impact="Medium", time_estimate="4h"),
      ExportTask(phase="DAY_30", title="Fix homepage", description="Rewrite the hero section.", impact="High", time_estimate="2h"),
    ),
    "assets": (ExportAsset(type="WEBSITE_COPY", title="Homepage copy", content="# Hero\nBetter words."),),
  }
  values.update(overrides)
  return ExportData(**values)


def _entries(payload: bytes) -> dict[str, str]:
  with zipfile.ZipFile(io.BytesIO(payload)) as archive:
    return {name: archive.read(name).decode("utf-8") for name in archive.namelist()}


def test_archive_is_byte_identical_for_identical_input() -> None:
  """Two assemblies of the same snapshot must not differ by a single byte."""
  assert assemble_export_zip(_data()) == assemble_export_zip(_data())


def test_archive_entry_order_and_names() -> None:
  data = _data(assets=(ExportAsset(type="AD_COPY", title="Ads", content="headline,body"), ExportAsset(type="SEO_PLAN", title="SEO", content="keywords")))
  with zipfile.ZipFile(io.BytesIO(assemble_export_zip(data))) as archive:
    assert archive.namelist() == ["plan.md", "assets/ad_copy.csv", "assets/seo_plan.md", "README.txt"]
    for info in archive.infolist():
      assert info.date_time == (2024, 5, 1, 12, 0, 0)
      assert info.compress_type == zipfile.ZIP_DEFLATED
      assert info.external_attr == 0o100644 << 16


def test_plan_markdown_renders_phases_in_fixed_order() -> None:
  markdown = render_plan_markdown(_data())
  assert markdown.startswith("# Recovery Plan\n\n> Fix the funnel first.\n\n**Business:** Acme Co\n**Industry:** Retail\n\n---\n\n")
  assert markdown.index("## DAY 30") < markdown.index("## DAY 60")
  assert "## DAY 90" not in markdown
  assert "### Fix homepage\n- **Impact:** High\n- **Estimated time:** 2h\n- Rewrite the hero section.\n\n" in markdown


def test_unknown_phase_is_omitted_but_counted_in_summary() -> None:
  tasks = (ExportTask(phase="DAY_30", title="Known", description="d", impact="Low", time_estimate="1h"), ExportTask(phase="DAY_120", title="Stray", description="d", impact="Low", time_estimate="1h"))
  data = _data(tasks=tasks)
  assert "Stray" not in render_plan_markdown(data)
  assert "Tasks: 2\n" in render_summary(data)


def test_empty_plan_still_produces_plan_and_readme() -> None:
  entries = _entries(assemble_export_zip(_data(tasks=(), assets=())))
  assert list(entries) == ["plan.md", "README.txt"]
  assert "##" not in entries["plan.md"]
  assert "Tasks: 0\nAssets: 0\n" in entries["README.txt"]


def test_summary_contents() -> None:
  summary = render_summary(_data())
  assert summary == (
    "Tasknator Recovery Plan Export\n"
    "==============================\n"
    "Business: Acme Co\n"
    "Industry: Retail\n"
    "Plan: Recovery Plan\n"
    "Tasks: 2\n"
    "Assets: 1\n"
    "Generated: 2024-05-01T12:00:00.000Z\n"
  )


@pytest.mark.parametrize(
  ("asset_type", "expected"),
  [("AD_COPY", "assets/ad_copy.csv"), ("WEBSITE_COPY", "assets/website_copy.md"), ("Website Copy!", "assets/website_copy_.md")],
)
def test_safe_asset_name(asset_type: str, expected: str) -> None:
  assert safe_asset_name(asset_type) == expected


def test_format_generated_at_treats_naive_as_utc() -> None:
  assert format_generated_at(datetime(2024, 5, 1, 12, 0, 0, 123456)) == "2024-05-01T12:00:00.123Z"


def test_pre_1980_timestamps_are_clamped() -> None:
  data = _data(generated_at=datetime(1970, 1, 1, tzinfo=UTC))
  with zipfile.ZipFile(io.BytesIO(assemble_export_zip(data))) as archive:
    assert archive.infolist()[0].date_time == (1980, 1, 1, 0, 0, 0)


def test_assembly_failure_raises_export_assembly_error(monkeypatch: pytest.MonkeyPatch) -> None:
  """A writer failure surfaces as ExportAssemblyError instead of returning partial bytes."""

  def _boom(*_args, **_kwargs) -> None:
    raise OSError("disk full")

  monkeypatch.setattr(export_bundle, "_write_entry", _boom)
  with pytest.raises(ExportAssemblyError, match="disk full"):
    assemble_export_zip(_data())


def test_tasks_csv_follows_phase_order_and_quotes_fields() -> None:
  tasks = (ExportTask(phase="DAY_90", title="Later", description="Has, comma", impact="Low", time_estimate="1d"), ExportTask(phase="DAY_30", title="First", description="Plain", impact="High", time_estimate="1h"))
  rows = render_tasks_csv(_data(tasks=tasks)).decode("utf-8").splitlines()
  assert rows == ["phase,title,description,impact,time_estimate", "DAY_30,First,Plain,High,1h", 'DAY_90,Later,"Has, comma",Low,1d']


def test_phase_groups_preserve_input_order_within_group() -> None:
  tasks = tuple(ExportTask(phase=phase, title=title, description="d", impact="Low", time_estimate="1h") for phase, title in (("DAY_60", "B1"), ("DAY_30", "A1"), ("DAY_90", "C1"), ("DAY_30", "A2"), ("DAY_60", "B2")))
  markdown = render_plan_markdown(_data(tasks=tasks))
  positions = [markdown.index(f"### {title}\n") for title in ("A1", "A2", "B1", "B2", "C1")]
  assert positions == sorted(positions)


def test_minimal_plan_archive() -> None:
  data = ExportData(
    plan_title="Fix It",
    plan_summary="Quick wins",
    business_name="Acme",
    industry="Retail",
    generated_at=GENERATED_AT,
    tasks=(ExportTask(phase="DAY_30", title="Update hours", description="...", impact="High", time_estimate="1h"),),
    assets=(ExportAsset(type="SOCIAL_POST", title="Post", content="Hello world"),),
  )
  entries = _entries(assemble_export_zip(data))
  assert entries["plan.md"].startswith("# Fix It")
  assert "Hello world" in entries["assets/social_post.md"]
  assert "README.txt" in entries
