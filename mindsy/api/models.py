from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, StrictStr

from mindsy.jobs.models import ArtifactKind, JobStatus, Language
from mindsy.pipeline.language import MAX_TITLE_LENGTH


class NotesJobCreateRequest(BaseModel):
  """Request payload for a new Cornell notes job."""

  audio_file_ref: StrictStr = Field(min_length=1, description="Storage reference of the uploaded lecture audio.")
  supplementary_pdf_ref: StrictStr | None = Field(default=None, min_length=1, description="Optional storage reference of a supporting PDF.")
  lecture_title: StrictStr | None = Field(default=None, max_length=MAX_TITLE_LENGTH, description="Optional lecture title; suggested from the transcript when omitted.")
  language: Language | None = Field(default=None, description="Output language; detected from the title or filename when omitted.")
  file_size_mb: float = Field(gt=0, description="Size of the uploaded audio in megabytes.")
  source_filename: StrictStr | None = Field(default=None, max_length=512, description="Original upload filename.")
  model_config = ConfigDict(extra="forbid")


class JobCreateResponse(BaseModel):
  """Response returned after a job is accepted."""

  job_id: str
  status: JobStatus


class JobErrorModel(BaseModel):
  kind: str
  message: str


class JobStatusResponse(BaseModel):
  """Status view of a job for polling clients."""

  job_id: str
  status: JobStatus
  progress: int
  lecture_title: str | None = None
  source_language: Language
  created_at: str
  updated_at: str
  completed_at: str | None = None
  error: JobErrorModel | None = None
  downloads: list[ArtifactKind] = Field(default_factory=list)
  logs: list[str] = Field(default_factory=list)


class GraceInfoModel(BaseModel):
  limit_mb: float
  used_mb: float
  remaining_mb: float
  would_use_grace: bool


class UsageDecisionResponse(BaseModel):
  """Usage preview for the current month."""

  can_process: bool
  effective_tier: str
  monthly_limit_mb: float
  current_usage_mb: float
  max_file_size_mb: float
  files_this_month: int
  message: str
  grace: GraceInfoModel | None = None


class TaskPayload(BaseModel):
  job_id: str


class CleanupResponse(BaseModel):
  cleared: int


class DispatchResponse(BaseModel):
  status: Literal["accepted"] = "accepted"
  job_ids: list[str] = Field(default_factory=list)
