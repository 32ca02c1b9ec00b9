"""Shared fixtures: in-memory repositories, storage and an API client wired to them."""

from __future__ import annotations

import datetime
import os
from dataclasses import replace
from typing import Any

os.environ.setdefault("MINDSY_ALLOWED_ORIGINS", "http://localhost:3000")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from mindsy.api.deps import get_artifact_store, get_jobs_repo, get_usage_gate, get_usage_repo  # noqa: E402
from mindsy.config import get_settings  # noqa: E402
from mindsy.core.security import get_current_user_id  # noqa: E402
from mindsy.jobs.models import JobRecord, ensure_transition  # noqa: E402
from mindsy.main import app  # noqa: E402
from mindsy.services.usage_gate import UsageGate  # noqa: E402
from mindsy.storage.artifacts import ArtifactNotFoundError  # noqa: E402
from mindsy.storage.usage_repo import MonthlyUsage, ProfileRecord, grace_overflow_mb  # noqa: E402

TEST_USER_ID = "user-1"
TEST_TASK_SECRET = "test-task-secret"
FIXED_NOW = datetime.datetime(2026, 3, 15, 12, 0, tzinfo=datetime.UTC)


class InMemoryJobsRepo:
  """Jobs repo mirroring the Postgres behavior: forward-only status, appended logs."""

  def __init__(self) -> None:
    self.records: dict[str, JobRecord] = {}

  async def create_job(self, record: JobRecord) -> None:
    self.records[record.job_id] = replace(record, logs=list(record.logs))

  async def get_job(self, job_id: str) -> JobRecord | None:
    record = self.records.get(job_id)
    if record is None:
      return None
    return replace(record, logs=list(record.logs))

  async def update_job(self, job_id: str, **kwargs: Any) -> JobRecord | None:
    record = self.records.get(job_id)
    if record is None:
      return None
    logs = kwargs.pop("logs", None)
    updates = {key: value for key, value in kwargs.items() if value is not None}
    if "status" in updates and updates["status"] != record.status:
      ensure_transition(record.status, updates["status"])
    if "progress" in updates:
      updates["progress"] = max(record.progress, updates["progress"])
    record = replace(record, **updates, logs=record.logs + list(logs or []))
    self.records[job_id] = record
    return replace(record, logs=list(record.logs))

  async def find_queued(self, limit: int = 5) -> list[JobRecord]:
    queued = [record for record in self.records.values() if record.status == "queued"]
    return sorted(queued, key=lambda record: record.created_at)[:limit]


class InMemoryUsageRepo:
  """Usage repo keeping profiles and per-month totals in dictionaries."""

  def __init__(self) -> None:
    self.profiles: dict[str, ProfileRecord] = {}
    self.usage: dict[tuple[str, str], MonthlyUsage] = {}

  async def get_profile(self, user_id: str) -> ProfileRecord | None:
    return self.profiles.get(user_id)

  async def get_monthly_usage(self, user_id: str, month_key: str) -> MonthlyUsage | None:
    return self.usage.get((user_id, month_key))

  async def increment_usage(self, *, user_id: str, month_key: str, mb: float, monthly_limit_mb: float) -> MonthlyUsage:
    current = self.usage.get((user_id, month_key)) or MonthlyUsage(user_id=user_id, month_key=month_key)
    overflow = grace_overflow_mb(previous_total_mb=current.total_mb_used, mb=mb, monthly_limit_mb=monthly_limit_mb)
    updated = replace(current, total_mb_used=current.total_mb_used + mb, files_processed=current.files_processed + 1, grace_used_mb=current.grace_used_mb + overflow)
    self.usage[(user_id, month_key)] = updated
    return updated

  async def clear_expired_grace_periods(self, *, now: datetime.datetime) -> int:
    cleared = 0
    for user_id, profile in list(self.profiles.items()):
      if profile.subscription_tier == "free" and profile.subscription_period_end is not None and profile.subscription_period_end < now:
        self.profiles[user_id] = replace(profile, subscription_period_end=None)
        cleared += 1
    return cleared


class InMemoryArtifactStore:
  """Object store backed by a dict of path to bytes."""

  def __init__(self) -> None:
    self.objects: dict[str, bytes] = {}

  async def put(self, path: str, data: bytes, *, content_type: str) -> str:
    self.objects[path] = data
    return path

  async def get(self, ref: str) -> bytes:
    try:
      return self.objects[ref]
    except KeyError as exc:
      raise ArtifactNotFoundError(ref) from exc


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def jobs_repo() -> InMemoryJobsRepo:
  return InMemoryJobsRepo()


@pytest.fixture
def usage_repo() -> InMemoryUsageRepo:
  return InMemoryUsageRepo()


@pytest.fixture
def artifact_store() -> InMemoryArtifactStore:
  return InMemoryArtifactStore()


@pytest.fixture
def usage_gate(usage_repo: InMemoryUsageRepo) -> UsageGate:
  return UsageGate(usage_repo, clock=lambda: FIXED_NOW)


@pytest.fixture
def test_settings():
  return replace(get_settings(), jobs_auto_process=False, task_secret=TEST_TASK_SECRET)


@pytest.fixture
def make_job():
  """Build job records with sensible defaults for the test user."""

  def _make_job(**overrides: Any) -> JobRecord:
    values: dict[str, Any] = {
      "job_id": "job-1",
      "user_id": TEST_USER_ID,
      "audio_file_ref": f"{TEST_USER_ID}/uploads/lecture.mp3",
      "source_language": "en",
      "status": "queued",
      "created_at": "2026-03-15T12:00:00Z",
      "updated_at": "2026-03-15T12:00:00Z",
      "file_size_mb": 10.0,
      "logs": ["Job queued"],
    }
    values.update(overrides)
    return JobRecord(**values)

  return _make_job


@pytest.fixture
async def async_client(jobs_repo, usage_repo, usage_gate, artifact_store, test_settings):
  app.dependency_overrides[get_current_user_id] = lambda: TEST_USER_ID
  app.dependency_overrides[get_settings] = lambda: test_settings
  app.dependency_overrides[get_jobs_repo] = lambda: jobs_repo
  app.dependency_overrides[get_usage_repo] = lambda: usage_repo
  app.dependency_overrides[get_usage_gate] = lambda: usage_gate
  app.dependency_overrides[get_artifact_store] = lambda: artifact_store
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
    yield client
  app.dependency_overrides.clear()
