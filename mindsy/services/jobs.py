"""Job submission, status, download and dispatch services."""

from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass

from fastapi import BackgroundTasks, HTTPException, status

from mindsy.api.models import JobCreateResponse, JobErrorModel, JobStatusResponse, NotesJobCreateRequest
from mindsy.config import Settings
from mindsy.jobs.errors import ArtifactMissing, JobNotFound, JobNotReady
from mindsy.jobs.models import ArtifactKind, JobRecord
from mindsy.jobs.orchestrator import JobOrchestrator
from mindsy.jobs.progress import _utc_now, format_timestamp
from mindsy.pipeline.language import detect_language
from mindsy.pipeline.notes import NoteSynthesisStage, OpenAIChatModel
from mindsy.pipeline.render import DocumentRenderStage, GotenbergClient
from mindsy.pipeline.transcription import OpenAITranscriber, TranscriptionStage
from mindsy.services.storage_client import build_storage_client, object_name
from mindsy.services.tasks.factory import get_task_enqueuer
from mindsy.services.usage_gate import UsageGate
from mindsy.storage.artifacts import ARTIFACT_MEDIA_TYPES, ArtifactNotFoundError, ArtifactStore
from mindsy.storage.factory import _get_jobs_repo, _get_usage_repo
from mindsy.storage.jobs_repo import JobsRepository
from mindsy.utils.ids import generate_job_id

logger = logging.getLogger(__name__)

_JOB_NOT_FOUND_MSG = "Job not found."
_DOWNLOAD_KINDS: tuple[ArtifactKind, ...] = ("pdf", "md", "txt")


@dataclass(frozen=True)
class ArtifactDownload:
  content: bytes
  media_type: str
  filename: str


def build_orchestrator(settings: Settings, *, jobs_repo: JobsRepository | None = None, storage: ArtifactStore | None = None) -> JobOrchestrator:
  """Wire the pipeline stages from settings."""
  jobs_repo = jobs_repo or _get_jobs_repo(settings)
  storage = storage or build_storage_client(settings)
  chat_model = OpenAIChatModel(api_key=settings.openai_api_key, model=settings.notes_model, base_url=settings.openai_base_url)
  title_model = None
  if settings.title_model != settings.notes_model:
    title_model = OpenAIChatModel(api_key=settings.openai_api_key, model=settings.title_model, base_url=settings.openai_base_url)
  transcriber = OpenAITranscriber(api_key=settings.openai_api_key, model=settings.transcription_model, base_url=settings.openai_base_url)
  return JobOrchestrator(
    jobs_repo=jobs_repo,
    storage=storage,
    transcription=TranscriptionStage(transcriber=transcriber, storage=storage, timeout_seconds=settings.transcription_timeout_seconds),
    notes=NoteSynthesisStage(chat_model=chat_model, title_model=title_model, max_completion_tokens=settings.notes_max_completion_tokens, timeout_seconds=settings.llm_timeout_seconds),
    render=DocumentRenderStage(renderer=GotenbergClient(base_url=settings.gotenberg_url, timeout_seconds=settings.pdf_render_timeout_seconds), timeout_seconds=settings.pdf_render_timeout_seconds, bookmarks_enabled=settings.pdf_bookmarks_enabled),
    usage_gate=UsageGate(_get_usage_repo(settings)),
  )


def _job_status_from_record(record: JobRecord) -> JobStatusResponse:
  """Convert a persisted job record into an API response payload."""
  error = JobErrorModel(kind=str(record.last_error.get("kind")), message=str(record.last_error.get("message"))) if record.last_error else None
  downloads = [kind for kind in _DOWNLOAD_KINDS if record.status == "completed" and record.artifact_ref(kind)]
  return JobStatusResponse(
    job_id=record.job_id,
    status=record.status,
    progress=record.progress,
    lecture_title=record.lecture_title,
    source_language=record.source_language,
    created_at=record.created_at,
    updated_at=record.updated_at,
    completed_at=record.completed_at,
    error=error,
    downloads=downloads,
    logs=record.logs,
  )


def _owned_upload_ref(ref: str, *, user_id: str, bucket_name: str, field: str) -> str:
  """Return the bucket-relative path of an upload, which must live under the caller's prefix."""
  path = object_name(ref.strip(), bucket_name)
  if not path.startswith(f"{user_id}/") or ".." in path.split("/"):
    logger.warning("Rejected %s outside the caller prefix user=%s ref=%s", field, user_id, ref)
    raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"{field} must reference one of your uploads.")
  return path


async def submit_job(request: NotesJobCreateRequest, settings: Settings, background_tasks: BackgroundTasks, *, user_id: str, jobs_repo: JobsRepository, usage_gate: UsageGate) -> JobCreateResponse:
  """Gate the upload against the user's allowance, persist a queued job and dispatch it."""
  audio_file_ref = _owned_upload_ref(request.audio_file_ref, user_id=user_id, bucket_name=settings.artifacts_bucket, field="audio_file_ref")
  supplementary_pdf_ref = None
  if request.supplementary_pdf_ref is not None:
    supplementary_pdf_ref = _owned_upload_ref(request.supplementary_pdf_ref, user_id=user_id, bucket_name=settings.artifacts_bucket, field="supplementary_pdf_ref")
  await usage_gate.ensure_can_process(user_id, request.file_size_mb, upgrade_url=settings.upgrade_url)

  language = request.language or detect_language(" ".join(part for part in (request.lecture_title, request.source_filename) if part))
  timestamp = format_timestamp(_utc_now())
  record = JobRecord(
    job_id=generate_job_id(),
    user_id=user_id,
    audio_file_ref=audio_file_ref,
    source_language=language,
    status="queued",
    created_at=timestamp,
    updated_at=timestamp,
    file_size_mb=request.file_size_mb,
    lecture_title=request.lecture_title.strip() if request.lecture_title and request.lecture_title.strip() else None,
    supplementary_pdf_ref=supplementary_pdf_ref,
    source_filename=request.source_filename,
    logs=["Job queued"],
  )
  await jobs_repo.create_job(record)
  logger.info("Queued job %s user=%s language=%s size_mb=%.2f", record.job_id, user_id, language, request.file_size_mb)
  trigger_job_processing(background_tasks, record.job_id, settings)
  return JobCreateResponse(job_id=record.job_id, status=record.status)


async def _get_owned_job(job_id: str, *, user_id: str, jobs_repo: JobsRepository) -> JobRecord:
  record = await jobs_repo.get_job(job_id)
  # Foreign jobs look exactly like missing ones.
  if record is None or record.user_id != user_id:
    raise JobNotFound(_JOB_NOT_FOUND_MSG)
  return record


async def get_job_status(job_id: str, *, user_id: str, jobs_repo: JobsRepository) -> JobStatusResponse:
  """Return the status view of a job owned by `user_id`."""
  record = await _get_owned_job(job_id, user_id=user_id, jobs_repo=jobs_repo)
  return _job_status_from_record(record)


async def download_artifact(job_id: str, kind: ArtifactKind, *, user_id: str, jobs_repo: JobsRepository, storage: ArtifactStore) -> ArtifactDownload:
  """Fetch one artifact of a completed job."""
  record = await _get_owned_job(job_id, user_id=user_id, jobs_repo=jobs_repo)
  if record.status != "completed":
    raise JobNotReady(f"Job is not completed yet (status: {record.status}).")

  ref = record.artifact_ref(kind)
  if not ref:
    logger.error("Integrity fault: completed job %s has no %s artifact reference", job_id, kind)
    raise ArtifactMissing("The requested file is not available.")
  try:
    content = await storage.get(ref)
  except ArtifactNotFoundError as exc:
    logger.error("Integrity fault: artifact %s of completed job %s is missing from storage", ref, job_id)
    raise ArtifactMissing("The requested file is not available.") from exc
  return ArtifactDownload(content=content, media_type=ARTIFACT_MEDIA_TYPES[kind], filename=_download_filename(record, kind))


def _download_filename(record: JobRecord, kind: ArtifactKind) -> str:
  """Build an ASCII filename safe for a Content-Disposition header."""
  title = unicodedata.normalize("NFKD", record.lecture_title or "").encode("ascii", "ignore").decode("ascii")
  stem = re.sub(r"[^A-Za-z0-9]+", "-", title).strip("-").lower()[:80] or record.job_id
  return f"{stem}_{record.source_language}.{kind}"


async def process_job_sync(job_id: str, settings: Settings) -> JobRecord | None:
  """Run a queued job immediately (synchronously)."""
  try:
    orchestrator = build_orchestrator(settings)
    return await orchestrator.run(job_id)
  except Exception as exc:
    logger.error("Synchronous job processing failed for job %s: %s", job_id, exc, exc_info=True)
    return None


async def process_queued_jobs(settings: Settings, *, limit: int = 5) -> list[str]:
  """Run a batch of jobs still waiting in `queued`, oldest first."""
  repo = _get_jobs_repo(settings)
  queued = await repo.find_queued(limit=limit)
  job_ids = [record.job_id for record in queued]
  for job_id in job_ids:
    await process_job_sync(job_id, settings)
  return job_ids


def trigger_job_processing(background_tasks: BackgroundTasks, job_id: str, settings: Settings) -> None:
  """Schedule background processing via the configured task enqueuer."""

  if not settings.jobs_auto_process:
    return

  async def _dispatch() -> None:
    try:
      enqueuer = get_task_enqueuer(settings)
      await enqueuer.enqueue(job_id, {})
    except Exception as exc:  # noqa: BLE001
      # The job stays queued; the queued-jobs sweep picks it up later.
      logger.error("Failed to enqueue job %s: %s", job_id, exc, exc_info=True)

  background_tasks.add_task(_dispatch)
