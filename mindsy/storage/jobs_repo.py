"""Storage interfaces for background jobs."""

from __future__ import annotations

from typing import Any, Protocol

from mindsy.jobs.models import JobRecord, JobStatus


class JobsRepository(Protocol):
  """Repository contract for job persistence."""

  async def create_job(self, record: JobRecord) -> None:
    """Persist an initial job record."""

  async def get_job(self, job_id: str) -> JobRecord | None:
    """Fetch a job by identifier."""

  async def update_job(
    self,
    job_id: str,
    *,
    status: JobStatus | None = None,
    progress: int | None = None,
    lecture_title: str | None = None,
    transcript_ref: str | None = None,
    notes_markdown_ref: str | None = None,
    output_pdf_ref: str | None = None,
    last_error: dict[str, Any] | None = None,
    logs: list[str] | None = None,
    completed_at: str | None = None,
    updated_at: str | None = None,
  ) -> JobRecord | None:
    """Apply partial updates to a job; `logs` entries are appended to the job timeline."""

  async def find_queued(self, limit: int = 5) -> list[JobRecord]:
    """Return a small batch of queued jobs."""
