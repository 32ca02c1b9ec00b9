"""Object storage helper for uploaded lectures and generated note artifacts."""

from __future__ import annotations

import os
from urllib.parse import urlparse, urlunparse

from google.api_core.exceptions import NotFound
from google.auth.credentials import AnonymousCredentials
from google.cloud import storage
from starlette.concurrency import run_in_threadpool

from mindsy.config import Settings
from mindsy.storage.artifacts import ArtifactNotFoundError, ArtifactStore


class StorageClient(ArtifactStore):
  """Thin wrapper over GCS and emulator access for artifact upload/download."""

  def __init__(self, settings: Settings) -> None:
    self._bucket_name = settings.artifacts_bucket
    self._storage_host = settings.gcs_storage_host
    # Ensure emulator endpoint is visible to the SDK in local development.
    if self._storage_host:
      emulator_endpoint = _normalize_emulator_endpoint(self._storage_host)
      os.environ["STORAGE_EMULATOR_HOST"] = emulator_endpoint
      self._client = storage.Client(project=settings.gcp_project_id or "local-dev", credentials=AnonymousCredentials(), client_options={"api_endpoint": emulator_endpoint})
    else:
      self._client = storage.Client(project=settings.gcp_project_id)

  @property
  def bucket_name(self) -> str:
    """Return the bucket holding uploads and artifacts."""
    return self._bucket_name

  async def ensure_bucket(self) -> None:
    """Create the bucket when missing in local/dev flows."""
    # Keep production startup side-effect free; only auto-create in emulator mode.
    if not self._storage_host:
      return
    bucket = self._client.bucket(self._bucket_name)

    def _create_if_missing() -> None:
      if not bucket.exists(client=self._client):
        self._client.create_bucket(bucket)

    await run_in_threadpool(_create_if_missing)

  async def put(self, path: str, data: bytes, *, content_type: str) -> str:
    """Upload bytes and return the object path as the stored reference."""
    blob = self._client.bucket(self._bucket_name).blob(path)
    await run_in_threadpool(blob.upload_from_string, data, content_type)
    return path

  async def get(self, ref: str) -> bytes:
    """Download object bytes for a stored reference."""
    blob = self._client.bucket(self._bucket_name).blob(object_name(ref, self._bucket_name))
    try:
      return await run_in_threadpool(blob.download_as_bytes)
    except NotFound as exc:
      raise ArtifactNotFoundError(ref) from exc


def build_storage_client(settings: Settings) -> StorageClient:
  """Create a storage client instance with environment-aware credentials."""
  return StorageClient(settings)


def object_name(ref: str, bucket_name: str) -> str:
  """Accept both bare object paths and gs:// URLs for the configured bucket."""
  prefix = f"gs://{bucket_name}/"
  if ref.startswith(prefix):
    return ref[len(prefix) :]
  return ref


def _normalize_emulator_endpoint(raw_endpoint: str) -> str:
  """Normalize emulator endpoint so the SDK receives scheme+host+port only."""
  parsed = urlparse(raw_endpoint)
  if not parsed.scheme or not parsed.netloc:
    return raw_endpoint.rstrip("/")
  return urlunparse((parsed.scheme, parsed.netloc, "", "", "", "")).rstrip("/")
