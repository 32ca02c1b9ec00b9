from __future__ import annotations

from mindsy.config import Settings
from mindsy.services.tasks.gcp import CloudTasksEnqueuer
from mindsy.services.tasks.interface import TaskEnqueuer
from mindsy.services.tasks.local import LocalHttpEnqueuer


def get_task_enqueuer(settings: Settings) -> TaskEnqueuer:
  """Factory to get the configured task enqueuer."""
  if settings.task_service_provider == "gcp":
    return CloudTasksEnqueuer(settings)
  return LocalHttpEnqueuer(settings)
