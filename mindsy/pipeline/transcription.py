"""Speech-to-text stage turning an uploaded lecture recording into transcript text."""

from __future__ import annotations

import logging
import posixpath
from typing import Protocol

from openai import AsyncOpenAI

from mindsy.jobs.errors import TranscriptionFailed
from mindsy.pipeline.retry import RetryPolicy, run_with_retry
from mindsy.storage.artifacts import ArtifactNotFoundError, ArtifactStore

logger = logging.getLogger(__name__)

# Initial call plus at most two retries.
TRANSCRIPTION_MAX_ATTEMPTS = 3


class SpeechToText(Protocol):
  """Provider contract for a single transcription call."""

  async def transcribe(self, audio: bytes, *, filename: str, language: str | None = None) -> str:
    """Return the full transcript text for an audio payload."""


class OpenAITranscriber(SpeechToText):
  """Transcribe audio through the OpenAI audio transcriptions endpoint."""

  def __init__(self, *, api_key: str | None, model: str = "whisper-1", base_url: str | None = None) -> None:
    if not api_key:
      raise ValueError("OPENAI_API_KEY environment variable is required")
    self.model = model
    # Retries are owned by the stage policy; disable the SDK's own retry loop.
    self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0)

  async def transcribe(self, audio: bytes, *, filename: str, language: str | None = None) -> str:
    kwargs: dict[str, str] = {}
    if language:
      kwargs["language"] = language
    response = await self._client.audio.transcriptions.create(model=self.model, file=(filename, audio), **kwargs)
    return response.text or ""


class TranscriptionStage:
  """Fetch the audio artifact and transcribe it under a bounded retry policy."""

  def __init__(self, *, transcriber: SpeechToText, storage: ArtifactStore, timeout_seconds: float, initial_backoff_ms: int = 1000) -> None:
    self._transcriber = transcriber
    self._storage = storage
    self.policy = RetryPolicy(max_attempts=TRANSCRIPTION_MAX_ATTEMPTS, initial_backoff_ms=initial_backoff_ms, max_backoff_ms=30000, timeout_seconds=timeout_seconds)

  async def transcribe(self, audio_file_ref: str, *, language: str | None = None) -> str:
    """Return the transcript of `audio_file_ref` or raise TranscriptionFailed."""
    try:
      audio = await self._storage.get(audio_file_ref)
    except ArtifactNotFoundError as exc:
      raise TranscriptionFailed("The uploaded audio file could not be found.") from exc

    filename = posixpath.basename(audio_file_ref) or "audio.mp3"
    logger.info("Transcribing audio ref=%s bytes=%d", audio_file_ref, len(audio))

    try:
      text = await run_with_retry(operation_name="transcription", func=lambda: self._transcriber.transcribe(audio, filename=filename, language=language), policy=self.policy)
    except Exception as exc:
      logger.error("Transcription failed for ref=%s: %s", audio_file_ref, exc, exc_info=True)
      raise TranscriptionFailed("Transcription failed. Please try again later.") from exc

    transcript = text.strip()
    if not transcript:
      raise TranscriptionFailed("Transcription returned no text.")
    return transcript
