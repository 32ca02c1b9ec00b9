"""Language detection, localized section vocabulary and title cleaning."""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass

from mindsy.jobs.models import Language

DEFAULT_TITLE = "Mindsy Notes"
MAX_TITLE_LENGTH = 200

_ENGLISH_WORDS = re.compile(
  r"\b(the|and|or|but|is|are|was|were|have|has|had|will|would|could|should|can|may|this|that|these|those|with|from|they|them|their|there|where|when|what|how|who|why"
  r"|business|company|management|analysis|strategy|market|financial|performance|revenue|cost|profit|investment|customer|service|product|development|team|project"
  r"|organization|operations|technology|data|report|study|results|conclusion|recommendation)\b"
)
_SPANISH_WORDS = re.compile(
  r"\b(el|la|los|las|que|del|para|con|una|por|pero|como|esta|este|son|también|porque|cuando|donde"
  r"|español|señor|señora|empresa|negocio|análisis|estrategia|mercado|financiero|ingresos|costos|beneficio|inversión|cliente|servicio|producto|desarrollo|equipo"
  r"|proyecto|organización|operaciones|tecnología|datos|informe|estudio|resultados|conclusión|recomendación)\b"
)


@dataclass(frozen=True)
class SectionTerms:
  """Localized headings for the generated document.

  Each mandatory section lists its canonical heading first, followed by accepted aliases.
  """

  table_of_contents: str
  key_concepts: tuple[str, ...]
  detailed_notes: tuple[str, ...]
  summary: tuple[str, ...]
  practice_questions: tuple[str, ...]

  def mandatory(self) -> dict[str, tuple[str, ...]]:
    """Return the mandatory sections keyed by their canonical heading."""
    return {headings[0]: headings for headings in (self.key_concepts, self.detailed_notes, self.summary, self.practice_questions)}


LANGUAGE_TERMS: dict[Language, SectionTerms] = {
  "en": SectionTerms(
    table_of_contents="Table of Contents",
    key_concepts=("Key Concepts", "Cue Column", "Exam Prep Questions"),
    detailed_notes=("Detailed Notes",),
    summary=("Summary", "Comprehensive Summary"),
    practice_questions=("Practice Questions", "Review Questions"),
  ),
  "es": SectionTerms(
    table_of_contents="Tabla de Contenidos",
    key_concepts=("Conceptos Clave", "Columna de Pistas", "Preguntas de Examen"),
    detailed_notes=("Notas Detalladas",),
    summary=("Resumen", "Resumen Completo"),
    practice_questions=("Preguntas de Práctica", "Preguntas de Repaso"),
  ),
}


def language_terms(language: str) -> SectionTerms:
  """Return the section vocabulary for a language, defaulting to English."""
  return LANGUAGE_TERMS.get(normalize_language(language), LANGUAGE_TERMS["en"])


def normalize_language(raw: str | None) -> Language:
  """Map free-form language hints (`es-MX`, `Spanish`) onto a supported code."""
  if not raw:
    return "en"
  value = raw.strip().lower()
  if value.startswith("es") or value in {"spanish", "español"}:
    return "es"
  return "en"


def detect_language(text: str | None) -> Language:
  """Guess the lecture language from a text sample.

  Spanish needs at least three indicator words and more hits than English; anything else is English.
  """
  if not text or not text.strip():
    return "en"
  sample = text.lower()[:1000]
  english_hits = len(_ENGLISH_WORDS.findall(sample))
  spanish_hits = len(_SPANISH_WORDS.findall(sample))
  if spanish_hits >= 3 and spanish_hits > english_hits:
    return "es"
  return "en"


def clean_title(raw: str | None) -> str:
  """Turn an uploaded filename into a readable lecture title."""
  if not raw:
    return DEFAULT_TITLE
  title = raw.strip()
  # Drop any directory component and a trailing extension such as `.mp3`.
  title = title.replace("\\", "/").rsplit("/", 1)[-1]
  title = re.sub(r"\.[A-Za-z0-9]{1,5}$", "", title)
  title = re.sub(r"[_-]+", " ", title)
  title = re.sub(r"\s+", " ", title).strip()
  if not title:
    return DEFAULT_TITLE
  return title[:MAX_TITLE_LENGTH].rstrip()


def normalize_heading(text: str) -> str:
  """Casefold heading text and strip emphasis markers, numbering, accents and trailing punctuation."""
  value = re.sub(r"[*_`]+", "", text).strip()
  value = re.sub(r"^(\d+[.)]\s*)+", "", value)
  value = unicodedata.normalize("NFKD", value)
  value = "".join(char for char in value if not unicodedata.combining(char))
  value = re.sub(r"\s+", " ", value).strip().rstrip(":.").strip()
  return value.casefold()
