"""Domain models for asynchronous Cornell notes jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

JobStatus = Literal["queued", "transcribing", "generating_notes", "rendering_pdf", "completed", "failed"]
Language = Literal["en", "es"]
ArtifactKind = Literal["txt", "md", "pdf"]

# Forward order of the pipeline; `failed` sits outside it and is reachable from any non-terminal state.
STATUS_ORDER: tuple[JobStatus, ...] = ("queued", "transcribing", "generating_notes", "rendering_pdf", "completed")
TERMINAL_STATUSES: frozenset[JobStatus] = frozenset({"completed", "failed"})
SUPPORTED_LANGUAGES: tuple[Language, ...] = ("en", "es")


class InvalidTransitionError(RuntimeError):
  """Raised when a status change would move a job backwards or out of a terminal state."""


def can_transition(current: JobStatus, target: JobStatus) -> bool:
  """Return True when `target` is the next forward step or a failure of a live job."""
  if current in TERMINAL_STATUSES:
    return False
  if target == "failed":
    return True
  if target not in STATUS_ORDER or current not in STATUS_ORDER:
    return False
  return STATUS_ORDER.index(target) == STATUS_ORDER.index(current) + 1


def ensure_transition(current: JobStatus, target: JobStatus) -> None:
  """Raise InvalidTransitionError unless the transition is allowed."""
  if not can_transition(current, target):
    raise InvalidTransitionError(f"Cannot move job from '{current}' to '{target}'.")


@dataclass
class JobRecord:
  """Represents one submitted lecture processing job."""

  job_id: str
  user_id: str
  audio_file_ref: str
  source_language: Language
  status: JobStatus
  created_at: str
  updated_at: str
  file_size_mb: float = 0.0
  lecture_title: str | None = None
  supplementary_pdf_ref: str | None = None
  source_filename: str | None = None
  transcript_ref: str | None = None
  notes_markdown_ref: str | None = None
  output_pdf_ref: str | None = None
  progress: int = 0
  completed_at: str | None = None
  last_error: dict[str, Any] | None = None
  logs: list[str] = field(default_factory=list)

  def artifact_ref(self, kind: ArtifactKind) -> str | None:
    """Return the stored reference for a downloadable artifact kind."""
    if kind == "pdf":
      return self.output_pdf_ref
    if kind == "md":
      return self.notes_markdown_ref
    return self.transcript_ref
