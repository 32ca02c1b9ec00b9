from __future__ import annotations

import json
import logging
from typing import Any

from google.cloud import tasks_v2
from starlette.concurrency import run_in_threadpool

from mindsy.config import Settings
from mindsy.services.tasks.interface import TaskEnqueuer
from mindsy.services.tasks.local import TASK_SECRET_HEADER

logger = logging.getLogger(__name__)


class CloudTasksEnqueuer(TaskEnqueuer):
  """Enqueues tasks to Google Cloud Tasks."""

  def __init__(self, settings: Settings) -> None:
    self.settings = settings
    self.client = tasks_v2.CloudTasksClient()

  def build_task(self, job_id: str, payload: dict) -> dict[str, Any]:
    """Build the HTTP task targeting the internal process-job endpoint."""
    if not self.settings.base_url:
      raise RuntimeError("Base URL not configured, strictly required for CloudTasksEnqueuer.")
    if not self.settings.task_secret:
      raise RuntimeError("Task secret not configured.")

    url = f"{self.settings.base_url.rstrip('/')}/internal/tasks/process-job"
    http_request: dict[str, Any] = {
      "http_method": tasks_v2.HttpMethod.POST,
      "url": url,
      "headers": {"Content-Type": "application/json", TASK_SECRET_HEADER: self.settings.task_secret},
      "body": json.dumps({"job_id": job_id, **payload}).encode(),
    }
    # Cloud Run invoker auth uses the Authorization header, so the shared secret travels in its own header.
    if self.settings.cloud_run_invoker_service_account:
      http_request["oidc_token"] = {"service_account_email": self.settings.cloud_run_invoker_service_account}
    return {"http_request": http_request}

  async def enqueue(self, job_id: str, payload: dict) -> None:
    """Enqueue a job to Cloud Tasks."""
    parent = self.settings.cloud_tasks_queue_path
    if not parent:
      raise RuntimeError("Cloud Tasks queue path not configured.")

    task = self.build_task(job_id, payload)
    try:
      response = await run_in_threadpool(self.client.create_task, request={"parent": parent, "task": task})
      logger.info("Enqueued task %s for job %s", response.name, job_id)
    except Exception as e:
      logger.error("Failed to enqueue task for job %s: %s", job_id, e, exc_info=True)
      raise
