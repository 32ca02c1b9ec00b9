import logging
from typing import Literal

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Response, status

from mindsy.api.deps import get_artifact_store, get_jobs_repo, get_usage_gate
from mindsy.api.models import JobCreateResponse, JobStatusResponse, NotesJobCreateRequest, UsageDecisionResponse
from mindsy.config import Settings, get_settings
from mindsy.core.security import get_current_user_id
from mindsy.services import jobs as job_service
from mindsy.services.usage_gate import UsageGate
from mindsy.storage.artifacts import ArtifactStore
from mindsy.storage.jobs_repo import JobsRepository

router = APIRouter()
logger = logging.getLogger("mindsy.api.routes.notes")


@router.post("/jobs", response_model=JobCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_job(  # noqa: B008
  request: NotesJobCreateRequest,
  background_tasks: BackgroundTasks,
  settings: Settings = Depends(get_settings),  # noqa: B008
  user_id: str = Depends(get_current_user_id),  # noqa: B008
  jobs_repo: JobsRepository = Depends(get_jobs_repo),  # noqa: B008
  usage_gate: UsageGate = Depends(get_usage_gate),  # noqa: B008
) -> JobCreateResponse:
  """Submit an uploaded lecture for Cornell notes generation."""
  return await job_service.submit_job(request, settings, background_tasks, user_id=user_id, jobs_repo=jobs_repo, usage_gate=usage_gate)


@router.get("/usage", response_model=UsageDecisionResponse)
async def get_usage(  # noqa: B008
  file_size_mb: float = Query(default=0.0, ge=0),
  user_id: str = Depends(get_current_user_id),  # noqa: B008
  usage_gate: UsageGate = Depends(get_usage_gate),  # noqa: B008
) -> UsageDecisionResponse:
  """Preview whether a file of `file_size_mb` would be accepted this month."""
  decision = await usage_gate.check_usage_limits(user_id, file_size_mb)
  return UsageDecisionResponse.model_validate(decision.to_dict())


@router.get("/jobs/{job_id}", response_model=JobStatusResponse)
async def get_job_status(  # noqa: B008
  job_id: str,
  user_id: str = Depends(get_current_user_id),  # noqa: B008
  jobs_repo: JobsRepository = Depends(get_jobs_repo),  # noqa: B008
) -> JobStatusResponse:
  """Fetch the status and progress of a job."""
  return await job_service.get_job_status(job_id, user_id=user_id, jobs_repo=jobs_repo)


@router.get("/jobs/{job_id}/download")
async def download_job_artifact(  # noqa: B008
  job_id: str,
  format: Literal["pdf", "md", "txt"] = Query(default="pdf"),  # noqa: A002
  user_id: str = Depends(get_current_user_id),  # noqa: B008
  jobs_repo: JobsRepository = Depends(get_jobs_repo),  # noqa: B008
  storage: ArtifactStore = Depends(get_artifact_store),  # noqa: B008
) -> Response:
  """Download the PDF, Markdown notes or transcript of a completed job."""
  download = await job_service.download_artifact(job_id, format, user_id=user_id, jobs_repo=jobs_repo, storage=storage)
  return Response(content=download.content, media_type=download.media_type, headers={"Content-Disposition": f'attachment; filename="{download.filename}"'})
