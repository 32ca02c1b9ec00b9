"""Pipeline stages turning a lecture recording into Cornell notes artifacts."""

from mindsy.pipeline.notes import MissingSections, NoteSynthesisStage, ValidNotes, validate_structure
from mindsy.pipeline.render import DocumentRenderStage
from mindsy.pipeline.retry import RetryPolicy, run_with_retry
from mindsy.pipeline.transcription import TranscriptionStage

__all__ = ["DocumentRenderStage", "MissingSections", "NoteSynthesisStage", "RetryPolicy", "TranscriptionStage", "ValidNotes", "run_with_retry", "validate_structure"]
