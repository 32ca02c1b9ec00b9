"""Postgres-backed repository for note jobs using SQLAlchemy."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mindsy.core.database import get_session_factory
from mindsy.jobs.models import JobRecord, JobStatus, ensure_transition
from mindsy.schema.jobs import Job, JobEvent
from mindsy.storage.jobs_repo import JobsRepository

MAX_EVENT_MESSAGES = 100


def _now_iso() -> str:
  return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


class PostgresJobsRepository(JobsRepository):
  """Persist jobs and their event timeline to Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create_job(self, record: JobRecord) -> None:
    async with self._session_factory() as session:
      job = Job(
        job_id=record.job_id,
        user_id=record.user_id,
        lecture_title=record.lecture_title,
        source_language=record.source_language,
        status=record.status,
        progress=record.progress,
        audio_file_ref=record.audio_file_ref,
        supplementary_pdf_ref=record.supplementary_pdf_ref,
        source_filename=record.source_filename,
        transcript_ref=record.transcript_ref,
        notes_markdown_ref=record.notes_markdown_ref,
        output_pdf_ref=record.output_pdf_ref,
        file_size_mb=record.file_size_mb,
        last_error=record.last_error,
        created_at=record.created_at,
        updated_at=record.updated_at,
        completed_at=record.completed_at,
      )
      session.add(job)
      await session.flush()
      if record.logs:
        await self._append_events_in_session(session=session, job_id=record.job_id, event_type="log", messages=record.logs)
      await session.commit()

  async def get_job(self, job_id: str) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Job, job_id)
      if row is None:
        return None
      logs = await self._list_event_messages_in_session(session=session, job_id=row.job_id, limit=MAX_EVENT_MESSAGES)
      return self._model_to_record(row, logs=logs)

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
    async with self._session_factory() as session:
      # Lock the row so concurrent workers cannot interleave status transitions.
      stmt = select(Job).where(Job.job_id == job_id).with_for_update()
      row = (await session.execute(stmt)).scalar_one_or_none()
      if row is None:
        return None
      if status is not None and status != row.status:
        ensure_transition(row.status, status)  # type: ignore[arg-type]
        row.status = status
      if progress is not None:
        row.progress = max(int(row.progress or 0), int(progress))
      if lecture_title is not None:
        row.lecture_title = lecture_title
      if transcript_ref is not None:
        row.transcript_ref = transcript_ref
      if notes_markdown_ref is not None:
        row.notes_markdown_ref = notes_markdown_ref
      if output_pdf_ref is not None:
        row.output_pdf_ref = output_pdf_ref
      if last_error is not None:
        row.last_error = last_error
      if completed_at is not None:
        row.completed_at = completed_at
      row.updated_at = updated_at or _now_iso()
      session.add(row)
      await session.flush()
      if logs:
        await self._append_events_in_session(session=session, job_id=job_id, event_type="log", messages=logs)
      await session.commit()
      await session.refresh(row)
      logs_snapshot = await self._list_event_messages_in_session(session=session, job_id=row.job_id, limit=MAX_EVENT_MESSAGES)
      return self._model_to_record(row, logs=logs_snapshot)

  async def find_queued(self, limit: int = 5) -> list[JobRecord]:
    async with self._session_factory() as session:
      stmt = select(Job).where(Job.status == "queued").order_by(Job.created_at.asc()).limit(limit)
      rows = (await session.execute(stmt)).scalars().all()
      result: list[JobRecord] = []
      for row in rows:
        logs = await self._list_event_messages_in_session(session=session, job_id=row.job_id, limit=MAX_EVENT_MESSAGES)
        result.append(self._model_to_record(row, logs=logs))
      return result

  async def _append_events_in_session(self, *, session: AsyncSession, job_id: str, event_type: str, messages: list[str]) -> None:
    for message in messages:
      if str(message).strip() == "":
        continue
      session.add(JobEvent(job_id=job_id, event_type=event_type, message=str(message)))

  async def _list_event_messages_in_session(self, *, session: AsyncSession, job_id: str, limit: int) -> list[str]:
    stmt = select(JobEvent.message).where(JobEvent.job_id == job_id).order_by(JobEvent.created_at.desc(), JobEvent.id.desc()).limit(limit)
    rows = (await session.execute(stmt)).scalars().all()
    return list(reversed([str(item) for item in rows]))

  def _model_to_record(self, row: Job, *, logs: list[str]) -> JobRecord:
    return JobRecord(
      job_id=row.job_id,
      user_id=row.user_id,
      audio_file_ref=row.audio_file_ref,
      source_language=row.source_language,  # type: ignore[arg-type]
      status=row.status,  # type: ignore[arg-type]
      created_at=row.created_at,
      updated_at=row.updated_at,
      file_size_mb=float(row.file_size_mb or 0.0),
      lecture_title=row.lecture_title,
      supplementary_pdf_ref=row.supplementary_pdf_ref,
      source_filename=row.source_filename,
      transcript_ref=row.transcript_ref,
      notes_markdown_ref=row.notes_markdown_ref,
      output_pdf_ref=row.output_pdf_ref,
      progress=int(row.progress or 0),
      completed_at=row.completed_at,
      last_error=row.last_error,
      logs=logs,
    )
