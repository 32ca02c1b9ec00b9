"""Artifact naming and the object storage contract used by the pipeline."""

from __future__ import annotations

from typing import Protocol

from mindsy.jobs.models import ArtifactKind

ARTIFACT_MEDIA_TYPES: dict[str, str] = {"txt": "text/plain; charset=utf-8", "md": "text/markdown; charset=utf-8", "pdf": "application/pdf"}


class ArtifactNotFoundError(LookupError):
  """Raised when a storage reference does not resolve to an object."""


class ArtifactStore(Protocol):
  """Object storage contract: durable after `put` returns."""

  async def put(self, path: str, data: bytes, *, content_type: str) -> str:
    """Store bytes at `path` and return the reference to persist."""

  async def get(self, ref: str) -> bytes:
    """Return the bytes behind a reference or raise ArtifactNotFoundError."""


def artifact_path(*, user_id: str, job_id: str, language: str, kind: ArtifactKind) -> str:
  """Return the stable object path `{user_id}/cornell-notes/{job_id}_{lang}.{ext}`."""
  return f"{user_id}/cornell-notes/{job_id}_{language}.{kind}"
