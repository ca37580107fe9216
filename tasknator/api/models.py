from __future__ import annotations

import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, StrictStr
from pydantic.alias_generators import to_camel

from tasknator.schema.sql import JobRecordStatus


class CamelModel(BaseModel):
  """Base model exposing camelCase field names on the wire."""

  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class AssetGenerateRequest(CamelModel):
  """Request payload for generating one asset for a plan."""

  repair_plan_id: StrictStr = Field(min_length=1)
  asset_type: StrictStr = Field(min_length=1, examples=["WEBSITE_COPY"])


class ExportCreateRequest(CamelModel):
  """Request payload for queueing an export bundle."""

  format: Literal["pdf", "zip", "csv"] = "zip"


class JobAcceptedResponse(CamelModel):
  """Returned once a job has been durably queued."""

  job_record_id: StrictStr
  job_name: StrictStr
  status: JobRecordStatus


class AuditStartResponse(JobAcceptedResponse):
  audit_run_id: StrictStr


class JobRecordResponse(CamelModel):
  """Status payload for a background job record."""

  id: StrictStr
  type: StrictStr
  ref_id: StrictStr
  status: JobRecordStatus
  progress: int
  error: str | None = None
  result_url: str | None = None
  created_at: datetime.datetime | None = None
  finished_at: datetime.datetime | None = None
