"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from mindsy.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the Mindsy notes service."""

  environment: str
  debug: bool
  allowed_origins: tuple[str, ...]
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  auto_create_tables: bool
  gcp_project_id: str | None
  gcs_storage_host: str | None
  artifacts_bucket: str
  firebase_project_id: str | None
  firebase_service_account_json_path: str | None
  openai_api_key: str | None
  openai_base_url: str | None
  notes_model: str
  title_model: str
  transcription_model: str
  notes_max_completion_tokens: int
  transcription_timeout_seconds: float
  llm_timeout_seconds: float
  pdf_render_timeout_seconds: float
  gotenberg_url: str
  pdf_bookmarks_enabled: bool
  task_service_provider: str
  cloud_tasks_queue_path: str | None
  cloud_run_invoker_service_account: str | None
  base_url: str | None
  task_secret: str | None
  jobs_auto_process: bool
  upgrade_url: str


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("MINDSY_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("MINDSY_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("MINDSY_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None, *, default: bool = False) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None or raw.strip() == "":
    return default

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _positive_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("MINDSY_ENV", "development").lower()

  # Toggle verbose error output and diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("MINDSY_DEBUG"))

  log_max_bytes = _positive_int("MINDSY_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("MINDSY_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("MINDSY_LOG_BACKUP_COUNT must be zero or a positive integer.")

  task_service_provider = os.getenv("MINDSY_TASK_SERVICE_PROVIDER", "local-http").strip().lower()
  if task_service_provider not in {"local-http", "gcp"}:
    raise ValueError("MINDSY_TASK_SERVICE_PROVIDER must be 'local-http' or 'gcp'.")

  cloud_tasks_queue_path = _optional_str(os.getenv("MINDSY_CLOUD_TASKS_QUEUE_PATH"))
  # Cloud Tasks needs a queue to target; fail at startup instead of at first submission.
  if task_service_provider == "gcp" and not cloud_tasks_queue_path:
    raise ValueError("MINDSY_CLOUD_TASKS_QUEUE_PATH must be set when MINDSY_TASK_SERVICE_PROVIDER is 'gcp'.")

  gotenberg_url = (os.getenv("MINDSY_GOTENBERG_URL") or "http://localhost:3000").strip().rstrip("/")

  return Settings(
    environment=environment,
    debug=debug,
    allowed_origins=_parse_origins(os.getenv("MINDSY_ALLOWED_ORIGINS")),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("MINDSY_LOG_HTTP_4XX")),
    pg_dsn=os.getenv("MINDSY_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=_positive_int("MINDSY_PG_CONNECT_TIMEOUT", "5"),
    auto_create_tables=_parse_bool(os.getenv("MINDSY_AUTO_CREATE_TABLES")),
    gcp_project_id=_optional_str(os.getenv("GCP_PROJECT_ID")),
    gcs_storage_host=_optional_str(os.getenv("GCS_STORAGE_HOST")),
    artifacts_bucket=(os.getenv("MINDSY_ARTIFACTS_BUCKET") or "mindsy-notes").strip(),
    firebase_project_id=_optional_str(os.getenv("FIREBASE_PROJECT_ID")),
    firebase_service_account_json_path=_optional_str(os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON_PATH")),
    openai_api_key=_optional_str(os.getenv("OPENAI_API_KEY")),
    openai_base_url=_optional_str(os.getenv("OPENAI_BASE_URL")),
    notes_model=os.getenv("MINDSY_NOTES_MODEL", "gpt-5-mini"),
    title_model=os.getenv("MINDSY_TITLE_MODEL", "gpt-5-mini"),
    transcription_model=os.getenv("MINDSY_TRANSCRIPTION_MODEL", "whisper-1"),
    notes_max_completion_tokens=_positive_int("MINDSY_NOTES_MAX_COMPLETION_TOKENS", "80000"),
    transcription_timeout_seconds=_positive_float("MINDSY_TRANSCRIPTION_TIMEOUT_SECONDS", "600"),
    llm_timeout_seconds=_positive_float("MINDSY_LLM_TIMEOUT_SECONDS", "240"),
    pdf_render_timeout_seconds=_positive_float("MINDSY_PDF_RENDER_TIMEOUT_SECONDS", "60"),
    gotenberg_url=gotenberg_url,
    pdf_bookmarks_enabled=_parse_bool(os.getenv("MINDSY_PDF_BOOKMARKS_ENABLED"), default=True),
    task_service_provider=task_service_provider,
    cloud_tasks_queue_path=cloud_tasks_queue_path,
    cloud_run_invoker_service_account=_optional_str(os.getenv("MINDSY_CLOUD_RUN_INVOKER_SERVICE_ACCOUNT")),
    base_url=_optional_str(os.getenv("MINDSY_BASE_URL")),
    task_secret=_optional_str(os.getenv("MINDSY_TASK_SECRET")),
    jobs_auto_process=_parse_bool(os.getenv("MINDSY_JOBS_AUTO_PROCESS"), default=True),
    upgrade_url=(os.getenv("MINDSY_UPGRADE_URL") or "/dashboard/account#subscription").strip(),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  # Keep database configuration isolated so offline scripts don't require unrelated env vars.
  debug = _parse_bool(os.getenv("MINDSY_DEBUG"))
  pg_connect_timeout = _positive_int("MINDSY_PG_CONNECT_TIMEOUT", "5")

  # Support fallback to DATABASE_URL for hosted Postgres providers.
  pg_dsn = os.getenv("MINDSY_PG_DSN") or os.getenv("DATABASE_URL")

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value
