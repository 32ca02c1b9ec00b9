"""Markdown to styled HTML and HTML to PDF through a Gotenberg (Chromium) service."""

from __future__ import annotations

import html as html_lib
import logging
from typing import Protocol

import httpx
import markdown
from bs4 import BeautifulSoup, Tag

from mindsy.jobs.errors import PdfRenderFailed
from mindsy.jobs.models import Language
from mindsy.pipeline.bookmarks import add_bookmark_anchors, add_bookmark_metadata, heading_label
from mindsy.pipeline.language import language_terms, normalize_heading
from mindsy.pipeline.prompts import PAGE_BREAK_MARKER
from mindsy.pipeline.retry import RetryPolicy, run_with_retry

logger = logging.getLogger(__name__)

# Initial render plus one retry.
RENDER_MAX_ATTEMPTS = 2
DEFAULT_MARGIN_INCHES = 1.0
NOTES_MARGIN_INCHES = 0.5
PDFA_FORMAT = "PDF/A-1b"

_PAGE_BREAK_HTML = '<div class="page-break"></div>'
_CUE_TABLE_HEADERS: dict[Language, tuple[str, str]] = {"en": ("Cue", "Notes"), "es": ("Pista", "Notas")}

_DOCUMENT_CSS = """
@page { size: A4; }
body { font-family: "Helvetica Neue", Arial, sans-serif; font-size: 11pt; line-height: 1.5; color: #1f2933; }
h1 { font-size: 22pt; color: #102a43; border-bottom: 2px solid #334e68; padding-bottom: 6px; }
h2 { font-size: 16pt; color: #243b53; margin-top: 24px; }
h3 { font-size: 13pt; color: #334e68; margin-top: 18px; }
h4 { font-size: 11.5pt; color: #486581; }
ul, ol { padding-left: 22px; }
hr { border: none; border-top: 1px solid #bcccdc; margin: 18px 0; }
.page-break { page-break-after: always; break-after: page; }
table.cue-table { width: 100%; border-collapse: collapse; margin: 12px 0; }
table.cue-table th, table.cue-table td { border: 1px solid #bcccdc; padding: 6px 8px; vertical-align: top; }
table.cue-table td.cue { width: 35%; background: #f0f4f8; }
table.cue-table td.notes { width: 65%; }
code, pre { font-family: Menlo, Consolas, monospace; font-size: 9.5pt; }
"""


class RenderResponseError(RuntimeError):
  """Raised when the renderer answered without a usable PDF."""


class PdfRenderer(Protocol):
  """Contract for an HTML to PDF conversion service."""

  async def convert_html(self, html: str, *, margin_inches: float = DEFAULT_MARGIN_INCHES, pdfa: bool = False) -> bytes:
    """Return PDF bytes for a complete HTML document."""


class GotenbergClient(PdfRenderer):
  """Call Gotenberg's Chromium HTML route with print-quality options."""

  def __init__(self, *, base_url: str, timeout_seconds: float) -> None:
    self.base_url = base_url.rstrip("/")
    self.timeout_seconds = timeout_seconds

  def _build_client(self) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=self.timeout_seconds, trust_env=False)

  async def convert_html(self, html: str, *, margin_inches: float = DEFAULT_MARGIN_INCHES, pdfa: bool = False) -> bytes:
    margin = f"{margin_inches:g}"
    data = {"marginTop": margin, "marginBottom": margin, "marginLeft": margin, "marginRight": margin, "printBackground": "true", "preferCSSPageSize": "true"}
    if pdfa:
      data["pdfa"] = PDFA_FORMAT
    files = {"files": ("index.html", html.encode("utf-8"), "text/html")}
    url = f"{self.base_url}/forms/chromium/convert/html"
    async with self._build_client() as client:
      response = await client.post(url, data=data, files=files)
      response.raise_for_status()
    content_type = response.headers.get("content-type", "")
    if "application/pdf" not in content_type:
      raise RenderResponseError(f"Renderer returned unexpected content type '{content_type}'.")
    if not response.content:
      raise RenderResponseError("Renderer returned an empty document.")
    return response.content


def _is_render_retryable(exc: BaseException) -> bool:
  return isinstance(exc, httpx.HTTPError | RenderResponseError | TimeoutError)


def markdown_to_html(notes: str, *, language: Language = "en") -> str:
  """Convert notes Markdown into an HTML fragment with page breaks and a cue table."""
  source = notes.replace(PAGE_BREAK_MARKER, f"\n\n{_PAGE_BREAK_HTML}\n\n")
  body = markdown.markdown(source, extensions=["extra", "sane_lists"], output_format="html")
  return render_cue_table(body, language=language)


def render_cue_table(body_html: str, *, language: Language = "en") -> str:
  """Turn the list under the key concepts heading into a two-column Cornell table."""
  soup = BeautifulSoup(body_html, "html.parser")
  aliases = {normalize_heading(alias) for alias in language_terms(language).key_concepts}
  heading = next((tag for tag in soup.find_all(["h2", "h3"]) if isinstance(tag, Tag) and normalize_heading(heading_label(tag)) in aliases), None)
  if heading is None:
    return body_html
  cue_list = heading.find_next_sibling()
  if not isinstance(cue_list, Tag) or cue_list.name not in {"ul", "ol"}:
    return body_html

  cue_header, notes_header = _CUE_TABLE_HEADERS[language]
  rows = "".join(f'<tr><td class="cue">{item.decode_contents().strip()}</td><td class="notes"></td></tr>' for item in cue_list.find_all("li", recursive=False))
  table = BeautifulSoup(f'<table class="cue-table"><thead><tr><th>{cue_header}</th><th>{notes_header}</th></tr></thead><tbody>{rows}</tbody></table>', "html.parser")
  cue_list.replace_with(table)
  return str(soup)


def build_html_document(body_html: str, *, title: str, language: Language = "en") -> str:
  """Wrap an HTML fragment in a complete, styled document."""
  return (
    "<!DOCTYPE html>\n"
    f'<html lang="{language}">\n<head>\n<meta charset="utf-8">\n<title>{html_lib.escape(title)}</title>\n'
    f"<style>{_DOCUMENT_CSS}</style>\n</head>\n<body>\n{body_html}\n</body>\n</html>\n"
  )


class DocumentRenderStage:
  """Produce the notes PDF with an outline mirroring the document headings."""

  def __init__(self, *, renderer: PdfRenderer, timeout_seconds: float, bookmarks_enabled: bool = True, initial_backoff_ms: int = 1000) -> None:
    self._renderer = renderer
    self._bookmarks_enabled = bookmarks_enabled
    self.policy = RetryPolicy(max_attempts=RENDER_MAX_ATTEMPTS, initial_backoff_ms=initial_backoff_ms, max_backoff_ms=initial_backoff_ms, timeout_seconds=timeout_seconds)

  def prepare_html(self, notes: str, title: str, source_is_html: bool, *, generate_bookmarks: bool = True, language: Language = "en") -> str:
    """Build the final HTML document sent to the renderer."""
    if source_is_html and "<html" in notes.lower():
      document = notes
    else:
      body = notes if source_is_html else markdown_to_html(notes, language=language)
      document = build_html_document(body, title=title, language=language)

    if generate_bookmarks and self._bookmarks_enabled:
      document, tree = add_bookmark_anchors(document)
      document = add_bookmark_metadata(document, tree)
      logger.info("Prepared PDF outline with %d top-level bookmarks", len(tree))
    return document

  async def render_pdf(self, notes: str, title: str, source_is_html: bool, generate_bookmarks: bool = True, *, language: Language = "en") -> bytes:
    """Return PDF bytes for the notes or raise PdfRenderFailed."""
    document = self.prepare_html(notes, title, source_is_html, generate_bookmarks=generate_bookmarks, language=language)
    use_pdfa = generate_bookmarks and self._bookmarks_enabled
    try:
      return await run_with_retry(operation_name="pdf_render", func=lambda: self._renderer.convert_html(document, margin_inches=NOTES_MARGIN_INCHES, pdfa=use_pdfa), policy=self.policy, is_retryable=_is_render_retryable)
    except Exception as exc:
      logger.error("PDF rendering failed: %s", exc, exc_info=True)
      raise PdfRenderFailed("PDF rendering failed. Please try again later.") from exc
