"""Job status and progress tracking."""

from __future__ import annotations

import datetime
from collections.abc import Callable
from typing import Any

from mindsy.jobs.errors import JobNotFound, PipelineError
from mindsy.jobs.models import JobRecord, JobStatus, ensure_transition
from mindsy.storage.jobs_repo import JobsRepository

# Progress persisted when a status is entered.
STATUS_PROGRESS: dict[JobStatus, int] = {"queued": 0, "transcribing": 10, "generating_notes": 50, "rendering_pdf": 90, "completed": 100}
TRANSCRIPT_READY_PROGRESS = 25
NOTES_READY_PROGRESS = 75


def _utc_now() -> datetime.datetime:
  return datetime.datetime.now(datetime.UTC)


def format_timestamp(value: datetime.datetime) -> str:
  return value.astimezone(datetime.UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


class JobProgressTracker:
  """Move one job through its states; status only moves forward and progress never decreases."""

  def __init__(self, *, job_id: str, jobs_repo: JobsRepository, status: JobStatus, progress: int = 0, clock: Callable[[], datetime.datetime] = _utc_now) -> None:
    self._job_id = job_id
    self._jobs_repo = jobs_repo
    self._status: JobStatus = status
    self._progress = progress
    self._clock = clock

  @property
  def status(self) -> JobStatus:
    return self._status

  @property
  def progress(self) -> int:
    return self._progress

  def now(self) -> str:
    return format_timestamp(self._clock())

  async def advance(self, status: JobStatus, *, message: str, **fields: Any) -> JobRecord:
    """Enter the next status and persist its progress together with `fields`."""

    ensure_transition(self._status, status)
    progress = max(self._progress, STATUS_PROGRESS[status])
    record = await self._update(status=status, progress=progress, logs=[message], **fields)
    self._status = status
    self._progress = progress
    return record

  async def report(self, progress: int, *, message: str, **fields: Any) -> JobRecord:
    """Persist a progress milestone inside the current status."""

    progress = max(self._progress, progress)
    record = await self._update(progress=progress, logs=[message], **fields)
    self._progress = progress
    return record

  async def fail(self, error: PipelineError) -> JobRecord | None:
    """Move the job to `failed` with the error's kind and message."""

    if self._status in {"completed", "failed"}:
      return None
    record = await self._jobs_repo.update_job(self._job_id, status="failed", last_error={"kind": error.kind.value, "message": error.message}, logs=[f"Failed: {error.kind.value}"], updated_at=self.now())
    self._status = "failed"
    return record

  async def _update(self, **payload: Any) -> JobRecord:
    record = await self._jobs_repo.update_job(self._job_id, updated_at=self.now(), **payload)
    if record is None:
      raise JobNotFound("Job no longer exists.")
    return record
