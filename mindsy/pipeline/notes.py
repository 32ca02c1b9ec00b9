"""LLM note synthesis with a Cornell structure contract and best-effort title suggestions."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Protocol

from openai import AsyncOpenAI

from mindsy.jobs.errors import NoteGenerationFailed, NotesStructureInvalid
from mindsy.jobs.models import Language
from mindsy.pipeline.language import MAX_TITLE_LENGTH, clean_title, language_terms, normalize_heading
from mindsy.pipeline.prompts import corrective_prompt, notes_prompt, system_prompt, title_prompt
from mindsy.pipeline.retry import RetryPolicy, run_with_retry

logger = logging.getLogger(__name__)

# Initial call plus one retry for transport or quota failures.
LLM_MAX_ATTEMPTS = 2
TITLE_MAX_COMPLETION_TOKENS = 2000

_HEADING_RE = re.compile(r"^[ ]{0,3}(#{1,6})[ \t]+(.+?)[ \t]*#*[ \t]*$", re.MULTILINE)
_QUALIFIER_RE = re.compile(r"\s*[:(\[\-\u2013\u2014|]")
_NOTE_TAKING_AREA_RE = [
  re.compile(r"^[ \t]*#{2,3}[ \t]*Note[-\s]*Taking\s*Area\s*$\n?", re.IGNORECASE | re.MULTILINE),
  re.compile(r"^[ \t]*#{2,3}[ \t]*Área\s*de\s*Toma\s*de\s*Notas\s*$\n?", re.IGNORECASE | re.MULTILINE),
  re.compile(r"^[ \t]*#{2,3}[ \t]*Zone\s*de\s*Prise\s*de\s*Notes\s*$\n?", re.IGNORECASE | re.MULTILINE),
  re.compile(r"\*\*Note[-\s]*Taking\s*Area\*\*", re.IGNORECASE),
  re.compile(r"\*\*Área\s*de\s*Toma\s*de\s*Notas\*\*", re.IGNORECASE),
]


class ChatModel(Protocol):
  """Provider contract for a chat completion call."""

  async def complete(self, messages: list[dict[str, str]], *, max_completion_tokens: int) -> str:
    """Return the assistant message content."""


class OpenAIChatModel(ChatModel):
  """Chat completions through the OpenAI SDK."""

  def __init__(self, *, api_key: str | None, model: str, base_url: str | None = None) -> None:
    if not api_key:
      raise ValueError("OPENAI_API_KEY environment variable is required")
    self.model = model
    # Retries are owned by the stage policy; disable the SDK's own retry loop.
    self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0)

  async def complete(self, messages: list[dict[str, str]], *, max_completion_tokens: int) -> str:
    response = await self._client.chat.completions.create(model=self.model, messages=messages, max_completion_tokens=max_completion_tokens)  # type: ignore[arg-type]
    if response.usage:
      logger.info("Chat completion model=%s prompt_tokens=%s completion_tokens=%s", self.model, response.usage.prompt_tokens, response.usage.completion_tokens)
    if not response.choices:
      return ""
    return response.choices[0].message.content or ""


@dataclass(frozen=True)
class ValidNotes:
  """All mandatory sections were found exactly once."""


@dataclass(frozen=True)
class MissingSections:
  """Mandatory sections that are absent or repeated, by canonical heading."""

  missing: tuple[str, ...]
  duplicated: tuple[str, ...] = ()


StructureCheck = ValidNotes | MissingSections


def validate_structure(markdown: str, language: Language) -> StructureCheck:
  """Check that each mandatory Cornell section has exactly one matching heading."""
  sections = language_terms(language).mandatory()
  counts = dict.fromkeys(sections, 0)
  for match in _HEADING_RE.finditer(markdown):
    # Sections live at levels 2 and 3; the title and topic sub-headings may reuse section words.
    if len(match.group(1)) not in (2, 3):
      continue
    heading = normalize_heading(match.group(2))
    for canonical, aliases in sections.items():
      if any(_heading_matches(heading, alias) for alias in aliases):
        counts[canonical] += 1
        break
  missing = tuple(name for name, count in counts.items() if count == 0)
  duplicated = tuple(name for name, count in counts.items() if count > 1)
  if missing or duplicated:
    return MissingSections(missing=missing, duplicated=duplicated)
  return ValidNotes()


def _heading_matches(heading: str, alias: str) -> bool:
  expected = normalize_heading(alias)
  if heading == expected:
    return True
  # Allow qualifiers such as "Summary: Cell Biology" or "Summary (Week 3)".
  if not heading.startswith(expected):
    return False
  return _QUALIFIER_RE.match(heading, len(expected)) is not None


def postprocess_notes(markdown: str) -> str:
  """Remove note-taking placeholders and collapse runs of blank lines."""
  content = markdown.strip()
  # Drop an enclosing ```markdown fence some models wrap around the document.
  fenced = re.fullmatch(r"```(?:markdown|md)?\s*\n(.*)\n```", content, re.DOTALL)
  if fenced:
    content = fenced.group(1).strip()
  for pattern in _NOTE_TAKING_AREA_RE:
    content = pattern.sub("", content)
  content = re.sub(r"\n{3,}", "\n\n", content)
  return content.strip() + "\n"


def parse_title_suggestions(raw: str, *, limit: int = 5) -> list[str]:
  """Extract clean, unique titles from a one-per-line completion."""
  titles: list[str] = []
  seen: set[str] = set()
  for line in raw.splitlines():
    candidate = re.sub(r"^\s*(?:[-*•]|\d+[.)])\s*", "", line).strip()
    candidate = candidate.strip("\"'“”*").strip()
    if not candidate or len(candidate) > MAX_TITLE_LENGTH:
      continue
    key = candidate.casefold()
    if key in seen:
      continue
    seen.add(key)
    titles.append(candidate)
    if len(titles) >= limit:
      break
  return titles


class NoteSynthesisStage:
  """Generate Cornell notes Markdown and enforce the four-section contract."""

  def __init__(self, *, chat_model: ChatModel, max_completion_tokens: int, timeout_seconds: float, title_model: ChatModel | None = None, initial_backoff_ms: int = 2000) -> None:
    self._chat_model = chat_model
    self._title_model = title_model or chat_model
    self._max_completion_tokens = max_completion_tokens
    self.policy = RetryPolicy(max_attempts=LLM_MAX_ATTEMPTS, initial_backoff_ms=initial_backoff_ms, max_backoff_ms=initial_backoff_ms, timeout_seconds=timeout_seconds)
    # Suggestions are optional, so they get one attempt under the same timeout.
    self.title_policy = RetryPolicy(max_attempts=1, timeout_seconds=timeout_seconds)

  async def synthesize_notes(self, transcript: str, supplementary_text: str | None, lecture_title: str, language: Language) -> str:
    """Return validated notes Markdown or raise NoteGenerationFailed / NotesStructureInvalid."""
    messages = [{"role": "system", "content": system_prompt(language)}, {"role": "user", "content": notes_prompt(transcript=transcript, supplementary_text=supplementary_text, title=lecture_title, language=language)}]
    notes = await self._generate(messages, operation_name="note_generation")
    check = validate_structure(notes, language)
    if isinstance(check, ValidNotes):
      return notes

    logger.warning("Generated notes failed structure check; requesting correction missing=%s duplicated=%s", list(check.missing), list(check.duplicated))
    messages = messages + [{"role": "assistant", "content": notes}, {"role": "user", "content": corrective_prompt(missing=list(check.missing), duplicated=list(check.duplicated), language=language)}]
    notes = await self._generate(messages, operation_name="note_correction")
    check = validate_structure(notes, language)
    if isinstance(check, MissingSections):
      logger.error("Corrected notes still fail structure check missing=%s duplicated=%s", list(check.missing), list(check.duplicated))
      raise NotesStructureInvalid("Generated notes are missing required sections.", missing=list(check.missing), duplicated=list(check.duplicated))
    return notes

  async def suggest_titles(self, transcript: str, language: Language, *, count: int = 5) -> list[str]:
    """Ask the model for lecture titles; any failure yields an empty list."""
    if not transcript.strip():
      return []
    messages = [{"role": "system", "content": system_prompt(language)}, {"role": "user", "content": title_prompt(transcript=transcript, language=language, count=count)}]
    try:
      raw = await run_with_retry(operation_name="title_suggestions", func=lambda: self._title_model.complete(messages, max_completion_tokens=TITLE_MAX_COMPLETION_TOKENS), policy=self.title_policy)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Title suggestions unavailable: %s", exc)
      return []
    return parse_title_suggestions(raw, limit=count)

  async def resolve_title(self, *, lecture_title: str | None, transcript: str, source_filename: str | None, language: Language) -> str:
    """Prefer the caller's title, then the top suggestion, then the filename."""
    if lecture_title and lecture_title.strip():
      return lecture_title.strip()[:MAX_TITLE_LENGTH]
    suggestions = await self.suggest_titles(transcript, language)
    if suggestions:
      return suggestions[0]
    return clean_title(source_filename)

  async def _generate(self, messages: list[dict[str, str]], *, operation_name: str) -> str:
    try:
      content = await run_with_retry(operation_name=operation_name, func=lambda: self._chat_model.complete(messages, max_completion_tokens=self._max_completion_tokens), policy=self.policy)
    except Exception as exc:
      logger.error("Note generation call failed operation=%s: %s", operation_name, exc, exc_info=True)
      raise NoteGenerationFailed("Note generation failed. Please try again later.") from exc
    if not content or not content.strip():
      raise NoteGenerationFailed("Note generation returned an empty response.")
    return postprocess_notes(content)
