"""Domain errors raised by the export pipeline and mapped to HTTP codes at the edge."""

from __future__ import annotations


class ExportError(Exception):
  """Base class for export pipeline failures."""

  status_code = 500


class ExportAssemblyError(ExportError):
  """Raised when an archive cannot be written; no partial buffer is produced."""


class ExportNotFoundError(ExportError):
  """Raised when the plan to export does not exist."""

  status_code = 404


class WorkspaceMismatchError(ExportError):
  """Raised when a plan does not belong to the workspace named in the request or job."""

  status_code = 403


class UnsupportedExportFormatError(ExportError):
  """Raised for formats the pipeline cannot render."""

  status_code = 400
