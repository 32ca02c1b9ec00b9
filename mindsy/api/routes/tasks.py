from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status

from mindsy.api.deps import get_usage_repo, require_task_secret
from mindsy.api.models import CleanupResponse, DispatchResponse, TaskPayload
from mindsy.config import Settings, get_settings
from mindsy.services.jobs import process_job_sync, process_queued_jobs
from mindsy.services.maintenance import clear_expired_grace_periods
from mindsy.storage.usage_repo import UsageRepository

router = APIRouter(prefix="/tasks", tags=["tasks"], dependencies=[Depends(require_task_secret)])
logger = logging.getLogger(__name__)


@router.post("/process-job", status_code=status.HTTP_200_OK, response_model=DispatchResponse)
async def process_job_task(payload: TaskPayload, background_tasks: BackgroundTasks, settings: Annotated[Settings, Depends(get_settings)]) -> DispatchResponse:
  """
  Handler for Cloud Tasks (and local simulation).
  Accepts the task quickly and processes the job in the background to avoid client disconnects/timeouts.
  """
  logger.info("Received task for job %s", payload.job_id)
  background_tasks.add_task(process_job_sync, payload.job_id, settings)
  return DispatchResponse(job_ids=[payload.job_id])


@router.post("/process-queued", status_code=status.HTTP_200_OK, response_model=DispatchResponse)
async def process_queued_task(background_tasks: BackgroundTasks, settings: Annotated[Settings, Depends(get_settings)], limit: int = Query(default=5, ge=1, le=50)) -> DispatchResponse:
  """Sweep jobs left in `queued`, for example after a failed dispatch."""
  background_tasks.add_task(process_queued_jobs, settings, limit=limit)
  return DispatchResponse()


@router.post("/cleanup-grace-periods", status_code=status.HTTP_200_OK, response_model=CleanupResponse)
async def cleanup_grace_periods_task(usage_repo: Annotated[UsageRepository, Depends(get_usage_repo)]) -> CleanupResponse:
  """Clear ended subscription periods of downgraded profiles."""
  cleared = await clear_expired_grace_periods(usage_repo)
  return CleanupResponse(cleared=cleared)
