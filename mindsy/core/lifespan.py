import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from mindsy.core.database import create_all_tables
from mindsy.core.firebase import initialize_firebase
from mindsy.core.logging import _initialize_logging
from mindsy.services.storage_client import build_storage_client

_PRODUCTION_ENVIRONMENTS = {"production", "prod", "stage", "staging"}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging, Firebase, the artifacts bucket and (in development) tables."""
  from mindsy.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("mindsy.core.lifespan")

  try:
    _initialize_logging(settings)
    logger.info("Startup complete - logging verified.")

    initialize_firebase()
    # Ensure the artifacts bucket exists before jobs begin (emulator only).
    try:
      storage_client = build_storage_client(settings)
      await storage_client.ensure_bucket()
      logger.info("Artifacts bucket ensured: %s", storage_client.bucket_name)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Failed to ensure artifacts bucket at startup: %s", exc)

    if settings.auto_create_tables:
      if settings.environment in _PRODUCTION_ENVIRONMENTS:
        logger.info("Skipping table creation for environment=%s", settings.environment)
      else:
        logger.info("Creating missing tables; MINDSY_PG_DSN=%s", _redact_dsn(settings.pg_dsn))
        await create_all_tables()

  except Exception:
    # Log initialization failures but allow the app to continue starting.
    logger.warning("Startup initialization failed; continuing with degraded services.", exc_info=True)

  yield


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
