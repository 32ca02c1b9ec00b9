"""Unit tests for API exception sanitization behavior."""

from __future__ import annotations

import json

import pytest
from starlette.requests import Request

from mindsy.core.exceptions import _error_payload, _sanitize_validation_errors, pipeline_exception_handler
from mindsy.core.middleware import _resolve_request_id
from mindsy.jobs.errors import ErrorKind, JobNotReady, NotesStructureInvalid, PipelineError, UsageLimitExceeded


def _request(request_id: str | None = "req-12345678") -> Request:
  state = {"request_id": request_id} if request_id else {}
  return Request({"type": "http", "method": "GET", "path": "/v1/notes/jobs/x", "headers": [], "query_string": b"", "state": state})


def test_sanitize_validation_errors_removes_input_and_serializes_exception_ctx() -> None:
  """Ensure validation errors stay JSON-serializable and redact raw request payloads."""
  errors = [{"type": "value_error", "loc": ("body",), "msg": "Value error, bad size.", "input": {"file_size_mb": -1}, "ctx": {"error": ValueError("bad size."), "input": {"file_size_mb": -1}}}]
  sanitized = _sanitize_validation_errors(errors)
  assert "input" not in sanitized[0]
  assert sanitized[0]["ctx"]["error"] == "ValueError: bad size."
  assert "input" not in sanitized[0]["ctx"]
  assert sanitized[0]["loc"] == ["body"]


def test_error_payload_attaches_request_id_only_when_present() -> None:
  assert _error_payload("nope") == {"detail": "nope"}
  assert _error_payload("nope", request_id="abc") == {"detail": "nope", "requestId": "abc"}


def test_every_error_kind_maps_to_exactly_one_class() -> None:
  kinds = [cls.kind for cls in PipelineError.__subclasses__()]
  assert sorted(kind.value for kind in kinds) == sorted(kind.value for kind in ErrorKind)


@pytest.mark.anyio
async def test_pipeline_exception_handler_uses_mapped_status_and_fixed_payload() -> None:
  response = await pipeline_exception_handler(_request(), JobNotReady("Job is not completed yet (status: transcribing)."))
  assert response.status_code == 400
  assert json.loads(response.body) == {"detail": {"kind": "JobNotReady", "message": "Job is not completed yet (status: transcribing)."}, "requestId": "req-12345678"}


@pytest.mark.anyio
async def test_pipeline_exception_handler_includes_usage_details() -> None:
  exc = UsageLimitExceeded("Monthly limit of 120 MB reached for the free plan.", details={"current_usage_mb": 119.0, "monthly_limit_mb": 120.0})
  response = await pipeline_exception_handler(_request(None), exc)
  body = json.loads(response.body)
  assert response.status_code == 429
  assert body["detail"]["kind"] == "UsageLimitExceeded"
  assert body["detail"]["current_usage_mb"] == 119.0
  assert "requestId" not in body


def test_structure_error_payload_lists_sections() -> None:
  payload = NotesStructureInvalid("Missing.", missing=["Summary"], duplicated=[]).to_payload()
  assert payload == {"kind": "NotesStructureInvalid", "message": "Missing.", "missing_sections": ["Summary"], "duplicated_sections": []}


def test_request_id_reuses_well_formed_inbound_value() -> None:
  assert _resolve_request_id({"x-request-id": "trace-abc-123"}) == "trace-abc-123"
  generated = _resolve_request_id({"x-request-id": "bad id with spaces"})
  assert generated != "bad id with spaces"
  assert len(generated) == 32
