"""Shared FastAPI dependencies for repositories, storage and task authentication."""

from __future__ import annotations

import logging
import secrets

from fastapi import Depends, Header, HTTPException, status

from mindsy.config import Settings, get_settings
from mindsy.services.storage_client import build_storage_client
from mindsy.services.usage_gate import UsageGate
from mindsy.storage.artifacts import ArtifactStore
from mindsy.storage.factory import _get_jobs_repo, _get_usage_repo
from mindsy.storage.jobs_repo import JobsRepository
from mindsy.storage.usage_repo import UsageRepository

logger = logging.getLogger(__name__)


def get_jobs_repo(settings: Settings = Depends(get_settings)) -> JobsRepository:  # noqa: B008
  return _get_jobs_repo(settings)


def get_usage_repo(settings: Settings = Depends(get_settings)) -> UsageRepository:  # noqa: B008
  return _get_usage_repo(settings)


def get_usage_gate(usage_repo: UsageRepository = Depends(get_usage_repo)) -> UsageGate:  # noqa: B008
  return UsageGate(usage_repo)


def get_artifact_store(settings: Settings = Depends(get_settings)) -> ArtifactStore:  # noqa: B008
  return build_storage_client(settings)


async def require_task_secret(
  settings: Settings = Depends(get_settings),  # noqa: B008
  authorization: str | None = Header(default=None),
  x_mindsy_task_secret: str | None = Header(default=None),
) -> None:
  """Reject internal task calls that lack the shared secret."""
  # Secure-by-default: internal task endpoints must be authenticated to avoid arbitrary job execution.
  if not settings.task_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Task authentication is not configured.")
  # Cloud Tasks OIDC uses Authorization for Cloud Run invoker auth, so check the dedicated header first.
  shared_secret_valid = secrets.compare_digest(x_mindsy_task_secret or "", settings.task_secret)
  bearer_valid = secrets.compare_digest(authorization or "", f"Bearer {settings.task_secret}")
  if not shared_secret_valid and not bearer_valid:
    logger.warning("Unauthorized access attempt to an internal task endpoint")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid task secret.")
