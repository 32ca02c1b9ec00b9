"""Drive one notes job through transcription, note synthesis and PDF rendering."""

from __future__ import annotations

import datetime
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from mindsy.jobs.errors import JobNotFound, NoteGenerationFailed, PdfRenderFailed, PipelineError, TranscriptionFailed
from mindsy.jobs.models import ArtifactKind, JobRecord, JobStatus
from mindsy.jobs.progress import NOTES_READY_PROGRESS, TRANSCRIPT_READY_PROGRESS, JobProgressTracker, _utc_now
from mindsy.pipeline.documents import extract_pdf_text
from mindsy.pipeline.notes import NoteSynthesisStage
from mindsy.pipeline.render import DocumentRenderStage
from mindsy.pipeline.transcription import TranscriptionStage
from mindsy.services.usage_gate import UsageGate
from mindsy.storage.artifacts import ARTIFACT_MEDIA_TYPES, ArtifactStore, artifact_path
from mindsy.storage.jobs_repo import JobsRepository

T = TypeVar("T")
logger = logging.getLogger(__name__)

# Error kind reported when bookkeeping fails while a job sits in a status.
STATUS_FAILURES: dict[JobStatus, tuple[type[PipelineError], str]] = {
  "queued": (TranscriptionFailed, "transcription"),
  "transcribing": (TranscriptionFailed, "transcription"),
  "generating_notes": (NoteGenerationFailed, "note generation"),
  "rendering_pdf": (PdfRenderFailed, "pdf rendering"),
}


@dataclass(frozen=True)
class JobArtifacts:
  transcript_ref: str
  notes_markdown_ref: str
  output_pdf_ref: str
  lecture_title: str


class JobOrchestrator:
  """Runs queued jobs once; a failed job is never resumed."""

  def __init__(
    self,
    *,
    jobs_repo: JobsRepository,
    storage: ArtifactStore,
    transcription: TranscriptionStage,
    notes: NoteSynthesisStage,
    render: DocumentRenderStage,
    usage_gate: UsageGate,
    clock: Callable[[], datetime.datetime] = _utc_now,
  ) -> None:
    self._jobs_repo = jobs_repo
    self._storage = storage
    self._transcription = transcription
    self._notes = notes
    self._render = render
    self._usage_gate = usage_gate
    self._clock = clock

  async def run(self, job_id: str) -> JobRecord | None:
    """Process a queued job to `completed` or `failed`; other jobs are left untouched."""
    job = await self._jobs_repo.get_job(job_id)
    if job is None:
      logger.warning("Job %s not found; nothing to process", job_id)
      return None
    if job.status != "queued":
      logger.info("Skipping job %s in status %s", job_id, job.status)
      return job

    tracker = JobProgressTracker(job_id=job.job_id, jobs_repo=self._jobs_repo, status=job.status, progress=job.progress, clock=self._clock)
    try:
      artifacts = await self._execute(job, tracker)
      record = await tracker.advance(
        "completed",
        message="Notes PDF ready",
        lecture_title=artifacts.lecture_title,
        transcript_ref=artifacts.transcript_ref,
        notes_markdown_ref=artifacts.notes_markdown_ref,
        output_pdf_ref=artifacts.output_pdf_ref,
        completed_at=tracker.now(),
      )
    except JobNotFound:
      logger.warning("Job %s disappeared while processing; abandoning run", job_id)
      return None
    except PipelineError as exc:
      logger.error("Job %s failed kind=%s: %s", job_id, exc.kind.value, exc.message, exc_info=True)
      return await self._fail(job_id, tracker, exc)
    except Exception:
      logger.error("Job %s hit an unexpected error in status %s", job_id, tracker.status, exc_info=True)
      error_cls, stage_name = STATUS_FAILURES.get(tracker.status, (PdfRenderFailed, "job completion"))
      return await self._fail(job_id, tracker, error_cls(f"Unexpected error during {stage_name}."))

    logger.info("Job %s completed", job_id)
    try:
      await self._usage_gate.record_completion(job.user_id, job.file_size_mb)
    except Exception:
      # The artifacts exist; a lost debit must not turn a finished job into a failure.
      logger.error("Usage debit failed for completed job %s user=%s mb=%.2f", job_id, job.user_id, job.file_size_mb, exc_info=True)
    return record

  async def _execute(self, job: JobRecord, tracker: JobProgressTracker) -> JobArtifacts:
    language = job.source_language

    await tracker.advance("transcribing", message="Transcribing audio")
    transcript = await self._stage(TranscriptionFailed, "transcription", lambda: self._transcription.transcribe(job.audio_file_ref, language=language))
    transcript_ref = await self._stage(TranscriptionFailed, "transcript storage", lambda: self._store(job, "txt", transcript.encode("utf-8")))
    await tracker.report(TRANSCRIPT_READY_PROGRESS, message="Transcript ready")

    await tracker.advance("generating_notes", message="Generating notes")
    supplementary_text = await self._supplementary_text(job)
    title = await self._stage(NoteGenerationFailed, "title resolution", lambda: self._notes.resolve_title(lecture_title=job.lecture_title, transcript=transcript, source_filename=job.source_filename, language=language))
    notes_markdown = await self._stage(NoteGenerationFailed, "note synthesis", lambda: self._notes.synthesize_notes(transcript, supplementary_text, title, language))
    notes_ref = await self._stage(NoteGenerationFailed, "notes storage", lambda: self._store(job, "md", notes_markdown.encode("utf-8")))
    await tracker.report(NOTES_READY_PROGRESS, message="Notes ready", lecture_title=title)

    await tracker.advance("rendering_pdf", message="Rendering PDF")
    pdf_bytes = await self._stage(PdfRenderFailed, "pdf rendering", lambda: self._render.render_pdf(notes_markdown, title, False, True, language=language))
    pdf_ref = await self._stage(PdfRenderFailed, "pdf storage", lambda: self._store(job, "pdf", pdf_bytes))
    return JobArtifacts(transcript_ref=transcript_ref, notes_markdown_ref=notes_ref, output_pdf_ref=pdf_ref, lecture_title=title)

  async def _fail(self, job_id: str, tracker: JobProgressTracker, error: PipelineError) -> JobRecord | None:
    """Record the failure; a job that cannot be updated is left for operators with the error logged."""
    try:
      return await tracker.fail(error)
    except Exception:
      logger.error("Could not mark job %s failed kind=%s", job_id, error.kind.value, exc_info=True)
      return None

  async def _stage(self, error_cls: type[PipelineError], stage_name: str, func: Callable[[], Awaitable[T]]) -> T:
    try:
      return await func()
    except PipelineError:
      raise
    except Exception as exc:
      logger.error("Unexpected error during %s", stage_name, exc_info=True)
      raise error_cls(f"Unexpected error during {stage_name}.") from exc

  async def _store(self, job: JobRecord, kind: ArtifactKind, data: bytes) -> str:
    path = artifact_path(user_id=job.user_id, job_id=job.job_id, language=job.source_language, kind=kind)
    return await self._storage.put(path, data, content_type=ARTIFACT_MEDIA_TYPES[kind])

  async def _supplementary_text(self, job: JobRecord) -> str | None:
    """Return the supplementary PDF text; an unreadable document only drops the extra context."""
    if not job.supplementary_pdf_ref:
      return None
    try:
      data = await self._storage.get(job.supplementary_pdf_ref)
      return await extract_pdf_text(data)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Supplementary PDF unusable for job %s ref=%s: %s", job.job_id, job.supplementary_pdf_ref, exc)
      return None
