"""Closed error taxonomy shared by the pipeline stages, the orchestrator and the API."""

from __future__ import annotations

import enum
from typing import Any, ClassVar


class ErrorKind(str, enum.Enum):
  """Stable error kinds surfaced through `last_error.kind` and API error payloads."""

  USAGE_LIMIT_EXCEEDED = "UsageLimitExceeded"
  TRANSCRIPTION_FAILED = "TranscriptionFailed"
  NOTE_GENERATION_FAILED = "NoteGenerationFailed"
  NOTES_STRUCTURE_INVALID = "NotesStructureInvalid"
  PDF_RENDER_FAILED = "PdfRenderFailed"
  JOB_NOT_FOUND = "JobNotFound"
  JOB_NOT_READY = "JobNotReady"
  ARTIFACT_MISSING = "ArtifactMissing"


class PipelineError(RuntimeError):
  """Base class for errors carrying a stable kind and a caller-safe message."""

  kind: ClassVar[ErrorKind]
  status_code: ClassVar[int] = 500

  def __init__(self, message: str) -> None:
    super().__init__(message)
    self.message = message

  def to_payload(self) -> dict[str, Any]:
    """Return the fixed caller-visible payload for this error."""
    return {"kind": self.kind.value, "message": self.message}


class UsageLimitExceeded(PipelineError):
  """Raised when the usage gate rejects a submission."""

  kind = ErrorKind.USAGE_LIMIT_EXCEEDED
  status_code = 429

  def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
    super().__init__(message)
    self.details = dict(details or {})

  def to_payload(self) -> dict[str, Any]:
    payload = super().to_payload()
    payload.update(self.details)
    return payload


class TranscriptionFailed(PipelineError):
  """Raised when speech-to-text exhausted its retries or returned nothing."""

  kind = ErrorKind.TRANSCRIPTION_FAILED
  status_code = 502


class NoteGenerationFailed(PipelineError):
  """Raised when the LLM call failed or returned an empty completion."""

  kind = ErrorKind.NOTE_GENERATION_FAILED
  status_code = 502


class NotesStructureInvalid(PipelineError):
  """Raised when generated notes still miss mandatory sections after the corrective retry."""

  kind = ErrorKind.NOTES_STRUCTURE_INVALID
  status_code = 502

  def __init__(self, message: str, *, missing: list[str] | None = None, duplicated: list[str] | None = None) -> None:
    super().__init__(message)
    self.missing = list(missing or [])
    self.duplicated = list(duplicated or [])

  def to_payload(self) -> dict[str, Any]:
    payload = super().to_payload()
    payload["missing_sections"] = self.missing
    payload["duplicated_sections"] = self.duplicated
    return payload


class PdfRenderFailed(PipelineError):
  """Raised when the HTML to PDF renderer failed after its retry."""

  kind = ErrorKind.PDF_RENDER_FAILED
  status_code = 502


class JobNotFound(PipelineError):
  """Raised for unknown job ids and jobs owned by another user."""

  kind = ErrorKind.JOB_NOT_FOUND
  status_code = 404


class JobNotReady(PipelineError):
  """Raised when an artifact is requested before the job completed."""

  kind = ErrorKind.JOB_NOT_READY
  status_code = 400


class ArtifactMissing(PipelineError):
  """Raised when a completed job's stored artifact cannot be fetched."""

  kind = ErrorKind.ARTIFACT_MISSING
  status_code = 404
