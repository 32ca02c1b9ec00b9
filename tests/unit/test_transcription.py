from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest

from mindsy.jobs.errors import TranscriptionFailed
from mindsy.pipeline.transcription import TRANSCRIPTION_MAX_ATTEMPTS, TranscriptionStage

AUDIO_REF = "user-1/uploads/lecture.mp3"


@pytest.fixture
def stored_audio(artifact_store):
  artifact_store.objects[AUDIO_REF] = b"ID3-audio"
  return artifact_store


def _stage(transcriber: AsyncMock, storage) -> TranscriptionStage:
  return TranscriptionStage(transcriber=transcriber, storage=storage, timeout_seconds=5, initial_backoff_ms=0)


@pytest.mark.anyio
async def test_transcribe_returns_stripped_text(stored_audio) -> None:
  transcriber = AsyncMock()
  transcriber.transcribe.return_value = "  Today we cover cells.  "

  text = await _stage(transcriber, stored_audio).transcribe(AUDIO_REF, language="en")

  assert text == "Today we cover cells."
  transcriber.transcribe.assert_awaited_once_with(b"ID3-audio", filename="lecture.mp3", language="en")


@pytest.mark.anyio
async def test_transcribe_retries_at_most_twice(stored_audio) -> None:
  transcriber = AsyncMock()
  transcriber.transcribe.side_effect = [httpx.ConnectError("down"), httpx.ReadTimeout("slow"), "Recovered"]
  assert await _stage(transcriber, stored_audio).transcribe(AUDIO_REF) == "Recovered"
  assert transcriber.transcribe.await_count == TRANSCRIPTION_MAX_ATTEMPTS


@pytest.mark.anyio
async def test_transcribe_fails_after_exhausting_retries(stored_audio) -> None:
  transcriber = AsyncMock()
  transcriber.transcribe.side_effect = httpx.ConnectError("down")
  with pytest.raises(TranscriptionFailed):
    await _stage(transcriber, stored_audio).transcribe(AUDIO_REF)
  assert transcriber.transcribe.await_count == 3


@pytest.mark.anyio
async def test_transcribe_rejects_empty_transcript(stored_audio) -> None:
  transcriber = AsyncMock()
  transcriber.transcribe.return_value = "   "
  with pytest.raises(TranscriptionFailed, match="no text"):
    await _stage(transcriber, stored_audio).transcribe(AUDIO_REF)


@pytest.mark.anyio
async def test_transcribe_missing_audio_fails_without_calling_provider(artifact_store) -> None:
  transcriber = AsyncMock()
  with pytest.raises(TranscriptionFailed):
    await _stage(transcriber, artifact_store).transcribe("user-1/uploads/missing.mp3")
  transcriber.transcribe.assert_not_awaited()
