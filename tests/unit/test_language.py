from __future__ import annotations

import pytest

from mindsy.pipeline.language import DEFAULT_TITLE, MAX_TITLE_LENGTH, clean_title, detect_language, language_terms, normalize_heading, normalize_language
from mindsy.pipeline.prompts import PAGE_BREAK_MARKER, corrective_prompt, notes_prompt, title_prompt


@pytest.mark.parametrize(("raw", "expected"), [(None, "en"), ("es-MX", "es"), ("Spanish", "es"), ("fr", "en"), ("EN", "en")])
def test_normalize_language(raw, expected) -> None:
  assert normalize_language(raw) == expected


def test_detect_language_prefers_spanish_only_with_clear_signal() -> None:
  assert detect_language("Clase de estrategia para la empresa y el mercado") == "es"
  assert detect_language("Lecture on market strategy and the company") == "en"
  assert detect_language("la casa") == "en"
  assert detect_language("") == "en"


@pytest.mark.parametrize(
  ("raw", "expected"),
  [
    ("uploads/bio_lecture-03.mp3", "bio lecture 03"),
    ("C:\\Recordings\\Week 2 - Cells.m4a", "Week 2 Cells"),
    ("   ", DEFAULT_TITLE),
    (None, DEFAULT_TITLE),
    (".mp3", DEFAULT_TITLE),
  ],
)
def test_clean_title(raw, expected) -> None:
  assert clean_title(raw) == expected


def test_clean_title_is_truncated() -> None:
  assert len(clean_title("a" * 500)) == MAX_TITLE_LENGTH


def test_normalize_heading_strips_decoration_and_accents() -> None:
  assert normalize_heading("**2. Preguntas de Práctica:**") == "preguntas de practica"


def test_notes_prompt_names_localized_sections_and_sources() -> None:
  prompt = notes_prompt(transcript="Hola a todos", supplementary_text="Diapositivas", title="Células", language="es")
  terms = language_terms("es")
  for heading in terms.mandatory():
    assert heading in prompt
  assert PAGE_BREAK_MARKER in prompt
  assert "**Transcripción:**\nHola a todos" in prompt
  assert "**Texto del documento complementario:**\nDiapositivas" in prompt


def test_notes_prompt_omits_empty_supplementary_text() -> None:
  prompt = notes_prompt(transcript="Hello", supplementary_text="  ", title="Cells", language="en")
  assert "Supplementary document text" not in prompt


def test_corrective_prompt_lists_problems_and_required_headings() -> None:
  prompt = corrective_prompt(missing=["Summary"], duplicated=["Key Concepts"], language="en")
  assert "Missing sections: Summary." in prompt
  assert "Sections that appear more than once: Key Concepts." in prompt
  assert '"Practice Questions"' in prompt


def test_title_prompt_truncates_transcript() -> None:
  prompt = title_prompt(transcript="word " * 5000, language="en", count=3)
  assert prompt.startswith("Suggest 3 short")
  assert len(prompt) < 4500
