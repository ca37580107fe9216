"""S3-compatible object storage for generated export artifacts."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import boto3
from botocore.config import Config
from starlette.concurrency import run_in_threadpool

from tasknator.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExportObjectMetadata:
  """Metadata returned for an uploaded artifact object."""

  object_name: str
  size: int
  content_type: str
  url: str


class ExportStorageClient:
  """Thin wrapper over an S3-compatible bucket with path-style addressing."""

  def __init__(self, settings: Settings, *, client: object | None = None) -> None:
    if not settings.s3_bucket:
      raise RuntimeError("S3_BUCKET must be configured for exports.")
    self._bucket_name = settings.s3_bucket
    self._endpoint = settings.s3_endpoint
    self._public_url = settings.s3_public_url
    self._client = client or boto3.client(
      "s3",
      region_name=settings.s3_region,
      endpoint_url=settings.s3_endpoint,
      aws_access_key_id=settings.s3_access_key_id,
      aws_secret_access_key=settings.s3_secret_access_key,
      config=Config(s3={"addressing_style": "path"}),
    )

  @property
  def bucket_name(self) -> str:
    """Return bucket name used by this client."""
    return self._bucket_name

  def object_url(self, object_name: str) -> str:
    """Public URL when configured, otherwise the path-style endpoint URL."""
    if self._public_url:
      return f"{self._public_url}/{object_name}"
    return f"{self._endpoint}/{self._bucket_name}/{object_name}"

  async def upload_bytes(self, *, object_name: str, payload: bytes, content_type: str = "application/zip") -> ExportObjectMetadata:
    """Upload bytes to the export bucket and return where they can be fetched."""
    await run_in_threadpool(self._client.put_object, Bucket=self._bucket_name, Key=object_name, Body=payload, ContentType=content_type)
    logger.info("Uploaded export object %s (%s bytes) to bucket %s", object_name, len(payload), self._bucket_name)
    return ExportObjectMetadata(object_name=object_name, size=len(payload), content_type=content_type, url=self.object_url(object_name))


def build_export_storage_client(settings: Settings) -> ExportStorageClient:
  """Create an export artifact storage client."""
  return ExportStorageClient(settings)
