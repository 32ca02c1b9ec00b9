"""HTTP surface of the notes service against in-memory repositories."""

from __future__ import annotations

import datetime

import pytest

from mindsy.storage.usage_repo import MonthlyUsage, ProfileRecord

TEST_USER_ID = "user-1"
MONTH = "2026-03"


@pytest.mark.anyio
async def test_submit_job_queues_job(async_client, jobs_repo) -> None:
  response = await async_client.post("/v1/notes/jobs", json={"audio_file_ref": "user-1/uploads/lecture.mp3", "file_size_mb": 12.5, "source_filename": "cells_lecture.mp3"})

  assert response.status_code == 201
  body = response.json()
  assert body["status"] == "queued"
  record = jobs_repo.records[body["job_id"]]
  assert record.user_id == TEST_USER_ID
  assert record.source_language == "en"
  assert record.progress == 0
  assert record.file_size_mb == 12.5
  assert record.logs == ["Job queued"]
  assert response.headers["x-request-id"]


@pytest.mark.anyio
async def test_submit_job_detects_spanish_from_title(async_client, jobs_repo) -> None:
  response = await async_client.post("/v1/notes/jobs", json={"audio_file_ref": "user-1/uploads/a.mp3", "file_size_mb": 1, "lecture_title": "Clase de estrategia para la empresa y el mercado"})
  assert response.status_code == 201
  assert jobs_repo.records[response.json()["job_id"]].source_language == "es"


@pytest.mark.anyio
async def test_submit_job_honors_explicit_language(async_client, jobs_repo) -> None:
  response = await async_client.post("/v1/notes/jobs", json={"audio_file_ref": "user-1/uploads/a.mp3", "file_size_mb": 1, "language": "es", "lecture_title": "Market strategy"})
  assert jobs_repo.records[response.json()["job_id"]].source_language == "es"


@pytest.mark.anyio
async def test_submit_job_over_limit_returns_429_without_creating_job(async_client, jobs_repo, usage_repo) -> None:
  usage_repo.usage[(TEST_USER_ID, MONTH)] = MonthlyUsage(user_id=TEST_USER_ID, month_key=MONTH, total_mb_used=115.0, files_processed=5)

  response = await async_client.post("/v1/notes/jobs", json={"audio_file_ref": "user-1/uploads/a.mp3", "file_size_mb": 10})

  assert response.status_code == 429
  detail = response.json()["detail"]
  assert detail["kind"] == "UsageLimitExceeded"
  assert detail["current_usage_mb"] == 115.0
  assert detail["monthly_limit_mb"] == 120
  assert detail["files_this_month"] == 5
  assert detail["upgrade_url"]
  assert "requestId" in response.json()
  assert jobs_repo.records == {}


@pytest.mark.anyio
async def test_downgraded_user_keeps_paid_allowance(async_client, usage_repo) -> None:
  usage_repo.profiles[TEST_USER_ID] = ProfileRecord(user_id=TEST_USER_ID, subscription_tier="free", subscription_period_end=datetime.datetime(2026, 4, 1, tzinfo=datetime.UTC), previous_tier="student")
  usage_repo.usage[(TEST_USER_ID, MONTH)] = MonthlyUsage(user_id=TEST_USER_ID, month_key=MONTH, total_mb_used=115.0)

  response = await async_client.post("/v1/notes/jobs", json={"audio_file_ref": "user-1/uploads/a.mp3", "file_size_mb": 10})
  assert response.status_code == 201


@pytest.mark.anyio
@pytest.mark.parametrize("payload", [{"audio_file_ref": "user-1/uploads/a.mp3", "file_size_mb": 0}, {"audio_file_ref": "user-1/uploads/a.mp3", "file_size_mb": 1, "priority": "high"}, {"file_size_mb": 1}, {"audio_file_ref": "user-1/uploads/a.mp3", "file_size_mb": 1, "language": "fr"}])
async def test_submit_job_rejects_invalid_payload(async_client, payload) -> None:
  response = await async_client.post("/v1/notes/jobs", json=payload)
  assert response.status_code == 422
  assert "input" not in response.json()["detail"][0]


@pytest.mark.anyio
@pytest.mark.parametrize(
  "payload",
  [
    {"audio_file_ref": "someone-else/uploads/lecture.mp3", "file_size_mb": 1},
    {"audio_file_ref": "user-1/uploads/lecture.mp3", "supplementary_pdf_ref": "someone-else/uploads/slides.pdf", "file_size_mb": 1},
    {"audio_file_ref": "user-1/../someone-else/uploads/lecture.mp3", "file_size_mb": 1},
    {"audio_file_ref": "user-10/uploads/lecture.mp3", "file_size_mb": 1},
  ],
)
async def test_submit_job_rejects_refs_outside_the_callers_uploads(async_client, jobs_repo, payload) -> None:
  response = await async_client.post("/v1/notes/jobs", json=payload)

  assert response.status_code == 422
  assert "must reference one of your uploads" in response.json()["detail"]
  assert jobs_repo.records == {}


@pytest.mark.anyio
async def test_submit_job_accepts_bucket_urls_for_own_uploads(async_client, jobs_repo, test_settings) -> None:
  payload = {
    "audio_file_ref": f"gs://{test_settings.artifacts_bucket}/user-1/uploads/lecture.mp3",
    "supplementary_pdf_ref": "user-1/uploads/slides.pdf",
    "file_size_mb": 1,
  }
  response = await async_client.post("/v1/notes/jobs", json=payload)

  assert response.status_code == 201
  record = jobs_repo.records[response.json()["job_id"]]
  assert record.audio_file_ref == "user-1/uploads/lecture.mp3"
  assert record.supplementary_pdf_ref == "user-1/uploads/slides.pdf"


@pytest.mark.anyio
async def test_usage_preview(async_client, usage_repo) -> None:
  usage_repo.profiles[TEST_USER_ID] = ProfileRecord(user_id=TEST_USER_ID, subscription_tier="student")
  usage_repo.usage[(TEST_USER_ID, MONTH)] = MonthlyUsage(user_id=TEST_USER_ID, month_key=MONTH, total_mb_used=695.0, files_processed=12)

  response = await async_client.get("/v1/notes/usage", params={"file_size_mb": 10})

  assert response.status_code == 200
  body = response.json()
  assert body["can_process"] is True
  assert body["effective_tier"] == "student"
  assert body["files_this_month"] == 12
  assert body["grace"] == {"limit_mb": 25.0, "used_mb": 0.0, "remaining_mb": 25.0, "would_use_grace": True}


@pytest.mark.anyio
async def test_get_job_status_for_owner(async_client, jobs_repo, make_job) -> None:
  await jobs_repo.create_job(make_job(status="generating_notes", progress=50, lecture_title="Cells"))

  response = await async_client.get("/v1/notes/jobs/job-1")

  assert response.status_code == 200
  body = response.json()
  assert body["status"] == "generating_notes"
  assert body["progress"] == 50
  assert body["lecture_title"] == "Cells"
  assert body["downloads"] == []
  assert body["error"] is None


@pytest.mark.anyio
async def test_failed_job_status_exposes_error(async_client, jobs_repo, make_job) -> None:
  await jobs_repo.create_job(make_job(status="failed", progress=10, last_error={"kind": "TranscriptionFailed", "message": "Transcription failed. Please try again later."}))
  body = (await async_client.get("/v1/notes/jobs/job-1")).json()
  assert body["error"] == {"kind": "TranscriptionFailed", "message": "Transcription failed. Please try again later."}


@pytest.mark.anyio
async def test_foreign_job_is_reported_as_not_found(async_client, jobs_repo, make_job) -> None:
  await jobs_repo.create_job(make_job(user_id="someone-else"))

  foreign = await async_client.get("/v1/notes/jobs/job-1")
  missing = await async_client.get("/v1/notes/jobs/nope")

  assert foreign.status_code == 404
  assert missing.status_code == 404
  assert foreign.json()["detail"] == missing.json()["detail"] == {"kind": "JobNotFound", "message": "Job not found."}


@pytest.mark.anyio
async def test_download_before_completion_is_rejected(async_client, jobs_repo, make_job) -> None:
  await jobs_repo.create_job(make_job(status="rendering_pdf", progress=90))
  response = await async_client.get("/v1/notes/jobs/job-1/download")
  assert response.status_code == 400
  assert response.json()["detail"]["kind"] == "JobNotReady"


@pytest.mark.anyio
async def test_download_of_missing_artifact_reports_artifact_missing(async_client, jobs_repo, make_job) -> None:
  await jobs_repo.create_job(make_job(status="completed", progress=100, output_pdf_ref="user-1/cornell-notes/job-1_en.pdf"))
  response = await async_client.get("/v1/notes/jobs/job-1/download", params={"format": "pdf"})
  assert response.status_code == 404
  assert response.json()["detail"]["kind"] == "ArtifactMissing"


@pytest.mark.anyio
async def test_download_of_foreign_job_is_not_found(async_client, jobs_repo, make_job) -> None:
  await jobs_repo.create_job(make_job(user_id="someone-else", status="completed", progress=100))
  response = await async_client.get("/v1/notes/jobs/job-1/download")
  assert response.status_code == 404
  assert response.json()["detail"]["kind"] == "JobNotFound"


@pytest.mark.anyio
async def test_download_completed_artifacts(async_client, jobs_repo, artifact_store, make_job) -> None:
  artifact_store.objects["user-1/cornell-notes/job-1_en.pdf"] = b"%PDF-1.7"
  artifact_store.objects["user-1/cornell-notes/job-1_en.md"] = b"# Cell Biology\n"
  await jobs_repo.create_job(
    make_job(
      status="completed",
      progress=100,
      lecture_title="Cell Biology: Part 1",
      output_pdf_ref="user-1/cornell-notes/job-1_en.pdf",
      notes_markdown_ref="user-1/cornell-notes/job-1_en.md",
    )
  )

  pdf = await async_client.get("/v1/notes/jobs/job-1/download")
  markdown = await async_client.get("/v1/notes/jobs/job-1/download", params={"format": "md"})

  assert pdf.status_code == 200
  assert pdf.content == b"%PDF-1.7"
  assert pdf.headers["content-type"] == "application/pdf"
  assert pdf.headers["content-disposition"] == 'attachment; filename="cell-biology-part-1_en.pdf"'
  assert markdown.status_code == 200
  assert markdown.headers["content-type"].startswith("text/markdown")
  assert markdown.text == "# Cell Biology\n"

  status = (await async_client.get("/v1/notes/jobs/job-1")).json()
  assert status["downloads"] == ["pdf", "md"]


@pytest.mark.anyio
async def test_unknown_download_format_is_rejected(async_client) -> None:
  response = await async_client.get("/v1/notes/jobs/job-1/download", params={"format": "docx"})
  assert response.status_code == 422
