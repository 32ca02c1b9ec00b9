from mindsy.config import Settings
from mindsy.storage.jobs_repo import JobsRepository
from mindsy.storage.postgres_jobs_repo import PostgresJobsRepository
from mindsy.storage.postgres_usage_repo import PostgresUsageRepository
from mindsy.storage.usage_repo import UsageRepository


def _get_jobs_repo(settings: Settings) -> JobsRepository:
  """Return the active jobs repository."""

  # Enforce Postgres-backed storage for jobs.

  if not settings.pg_dsn:
    raise ValueError("MINDSY_PG_DSN must be set to enable Postgres persistence.")

  return PostgresJobsRepository()


def _get_usage_repo(settings: Settings) -> UsageRepository:
  """Return the active profiles and usage repository."""

  if not settings.pg_dsn:
    raise ValueError("MINDSY_PG_DSN must be set to enable Postgres persistence.")

  return PostgresUsageRepository()
