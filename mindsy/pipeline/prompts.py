"""Localized prompt templates for Cornell notes synthesis and title suggestions."""

from __future__ import annotations

from mindsy.jobs.models import Language
from mindsy.pipeline.language import language_terms

PAGE_BREAK_MARKER = "<!-- NEW_PAGE -->"

_SYSTEM_PROMPTS: dict[Language, str] = {
  "en": (
    "You are an expert academic note-taker who creates high-quality Cornell-style study notes. "
    "Your notes are well structured, comprehensive and help students study effectively. "
    "You always follow the required Markdown structure exactly and write every heading in English."
  ),
  "es": (
    "Eres un experto en toma de apuntes académicos que crea apuntes de estudio de alta calidad con el método Cornell. "
    "Tus apuntes están bien estructurados, son completos y ayudan a los estudiantes a estudiar con eficacia. "
    "Siempre sigues exactamente la estructura Markdown requerida y escribes todos los títulos en español."
  ),
}

_NOTES_TEMPLATES: dict[Language, str] = {
  "en": """Create a complete, standalone study guide from the lecture content below. The output must be Markdown and follow the required structure exactly.

Relevance rules:
- Keep only educational content related to the core topic: explanations, examples, references and practical applications.
- Leave out personal anecdotes, off-topic remarks and self-promotion unless they add evidence or insight to the topic.

Instructions:
1. "{toc}": a bulleted list of the main topics and sub-topics in chronological order.
2. "{cue}": 6 to 12 concise exam-style cues or questions with the important terms in **bold**.
3. "{notes}": detailed notes that follow the cues in order. Use bullet points, sub-bullets and bold terms. Explain every concept as if teaching someone who missed the lecture. Use "####" sub-headings for topics.
4. Insert the page break marker "{page_break}", then write the "{summary}" as well-structured expository paragraphs that work as a standalone study guide.
5. Insert the page break marker again, then write "{questions}": 5 to 7 numbered questions, each followed by its answer on a line starting with "**Answer:**".

Use each of the headings "{cue}", "{notes}", "{summary}" and "{questions}" exactly once.

Lecture title: {title}

{sources}

Required output format:

# {title}

## {toc}
*   Topic 1
*   Topic 2
    *   Sub-topic 2.1

---

## Mindsy Notes

### {cue}
*   What is **...** and why does it matter?

### {notes}
#### Topic 1
*   ...

{page_break}

## {summary}
...

{page_break}

## {questions}
1. Question?
   **Answer:** ...
""",
  "es": """Crea una guía de estudio completa e independiente a partir del contenido de la clase que aparece abajo. La salida debe estar en Markdown y seguir exactamente la estructura requerida.

Reglas de relevancia:
- Conserva solo el contenido educativo relacionado con el tema central: explicaciones, ejemplos, referencias y aplicaciones prácticas.
- Omite anécdotas personales, comentarios fuera de tema y autopromoción salvo que aporten evidencia o comprensión del tema.

Instrucciones:
1. "{toc}": una lista con viñetas de los temas y subtemas principales en orden cronológico.
2. "{cue}": entre 6 y 12 pistas o preguntas breves de tipo examen con los términos importantes en **negrita**.
3. "{notes}": apuntes detallados que siguen las pistas en orden. Usa viñetas, subviñetas y términos en negrita. Explica cada concepto como si se lo enseñaras a alguien que faltó a la clase. Usa subtítulos "####" para los temas.
4. Inserta el marcador de salto de página "{page_break}" y después escribe el "{summary}" en párrafos expositivos bien estructurados que funcionen como guía de estudio independiente.
5. Inserta de nuevo el marcador de salto de página y escribe "{questions}": entre 5 y 7 preguntas numeradas, cada una seguida de su respuesta en una línea que empiece con "**Respuesta:**".

Usa cada uno de los títulos "{cue}", "{notes}", "{summary}" y "{questions}" exactamente una vez.

Título de la clase: {title}

{sources}

Formato de salida requerido:

# {title}

## {toc}
*   Tema 1
*   Tema 2
    *   Subtema 2.1

---

## Mindsy Notes

### {cue}
*   ¿Qué es **...** y por qué es importante?

### {notes}
#### Tema 1
*   ...

{page_break}

## {summary}
...

{page_break}

## {questions}
1. ¿Pregunta?
   **Respuesta:** ...
""",
}

_SOURCE_LABELS: dict[Language, tuple[str, str]] = {
  "en": ("Transcript", "Supplementary document text"),
  "es": ("Transcripción", "Texto del documento complementario"),
}

_CORRECTIVE_TEMPLATES: dict[Language, str] = {
  "en": (
    "Your previous answer did not follow the required structure. {problems} "
    "Rewrite the complete notes in Markdown and include each of these headings exactly once: {headings}. "
    "Return only the corrected notes."
  ),
  "es": (
    "Tu respuesta anterior no siguió la estructura requerida. {problems} "
    "Reescribe los apuntes completos en Markdown e incluye cada uno de estos títulos exactamente una vez: {headings}. "
    "Devuelve solo los apuntes corregidos."
  ),
}

_PROBLEM_LABELS: dict[Language, tuple[str, str]] = {
  "en": ("Missing sections: {names}.", "Sections that appear more than once: {names}."),
  "es": ("Secciones que faltan: {names}.", "Secciones que aparecen más de una vez: {names}."),
}

_TITLE_TEMPLATES: dict[Language, str] = {
  "en": (
    "Suggest {count} short, descriptive titles for the lecture below. "
    "Write one title per line with no numbering, quotes or extra commentary.\n\n{excerpt}"
  ),
  "es": (
    "Sugiere {count} títulos breves y descriptivos para la clase de abajo. "
    "Escribe un título por línea, sin numeración, comillas ni comentarios adicionales.\n\n{excerpt}"
  ),
}

TITLE_EXCERPT_CHARS = 4000


def system_prompt(language: Language) -> str:
  return _SYSTEM_PROMPTS[language]


def notes_prompt(*, transcript: str, supplementary_text: str | None, title: str, language: Language) -> str:
  """Build the user prompt requesting the Cornell notes document."""
  terms = language_terms(language)
  transcript_label, document_label = _SOURCE_LABELS[language]
  sources = [f"**{transcript_label}:**\n{transcript.strip()}"]
  if supplementary_text and supplementary_text.strip():
    sources.append(f"**{document_label}:**\n{supplementary_text.strip()}")
  return _NOTES_TEMPLATES[language].format(
    toc=terms.table_of_contents,
    cue=terms.key_concepts[0],
    notes=terms.detailed_notes[0],
    summary=terms.summary[0],
    questions=terms.practice_questions[0],
    page_break=PAGE_BREAK_MARKER,
    title=title,
    sources="\n\n".join(sources),
  )


def corrective_prompt(*, missing: list[str], duplicated: list[str], language: Language) -> str:
  """Build the follow-up instruction naming the sections that failed validation."""
  terms = language_terms(language)
  missing_label, duplicated_label = _PROBLEM_LABELS[language]
  problems: list[str] = []
  if missing:
    problems.append(missing_label.format(names=", ".join(missing)))
  if duplicated:
    problems.append(duplicated_label.format(names=", ".join(duplicated)))
  headings = ", ".join(f'"{name}"' for name in terms.mandatory())
  return _CORRECTIVE_TEMPLATES[language].format(problems=" ".join(problems), headings=headings)


def title_prompt(*, transcript: str, language: Language, count: int = 5) -> str:
  excerpt = transcript.strip()[:TITLE_EXCERPT_CHARS]
  return _TITLE_TEMPLATES[language].format(count=count, excerpt=excerpt)
