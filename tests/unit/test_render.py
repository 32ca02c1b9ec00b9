"""Markdown to HTML preparation and the Gotenberg render stage."""

from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest
from bs4 import BeautifulSoup

from mindsy.jobs.errors import PdfRenderFailed
from mindsy.pipeline.render import NOTES_MARGIN_INCHES, DocumentRenderStage, GotenbergClient, RenderResponseError, markdown_to_html

NOTES = """# Cell Biology

## Table of Contents

*   Cells

## Mindsy Notes

### Key Concepts

*   What is a **cell**?
*   Why do membranes matter?

### Detailed Notes

#### Cells

*   Basic unit of life.

<!-- NEW_PAGE -->

## Summary

Cells are the building blocks.
"""


def _stage(renderer: AsyncMock, *, bookmarks_enabled: bool = True) -> DocumentRenderStage:
  return DocumentRenderStage(renderer=renderer, timeout_seconds=5, bookmarks_enabled=bookmarks_enabled, initial_backoff_ms=0)


def _renderer(*responses: object) -> AsyncMock:
  renderer = AsyncMock()
  renderer.convert_html.side_effect = list(responses)
  return renderer


def test_markdown_to_html_builds_cue_table_and_page_breaks() -> None:
  soup = BeautifulSoup(markdown_to_html(NOTES, language="en"), "html.parser")

  table = soup.find("table", class_="cue-table")
  assert table is not None
  assert [th.get_text() for th in table.find_all("th")] == ["Cue", "Notes"]
  cues = table.find_all("td", class_="cue")
  assert len(cues) == 2
  assert cues[0].find("strong").get_text() == "cell"
  assert soup.find("div", class_="page-break") is not None
  assert "NEW_PAGE" not in str(soup)


def test_markdown_to_html_localizes_cue_table_headers() -> None:
  notes = "## Conceptos Clave\n\n*   ¿Qué es una célula?\n"
  soup = BeautifulSoup(markdown_to_html(notes, language="es"), "html.parser")
  assert [th.get_text() for th in soup.find_all("th")] == ["Pista", "Notas"]


def test_prepare_html_adds_outline_metadata() -> None:
  document = _stage(_renderer()).prepare_html(NOTES, "Cell Biology", False, language="en")
  soup = BeautifulSoup(document, "html.parser")

  assert soup.title.get_text() == "Cell Biology"
  assert soup.find("h2", id="table-of-contents") is not None
  assert soup.find("h3", id="key-concepts")["data-bookmark-level"] == "2"
  assert soup.find("h4", id="cells")["data-bookmark-level"] == "3"
  assert soup.find("meta", attrs={"name": "pdf-bookmark-0"})["content"] == "Table of Contents|1|table-of-contents"
  assert soup.find("a", href="#cells") is not None


def test_prepare_html_without_bookmarks_leaves_headings_plain() -> None:
  document = _stage(_renderer(), bookmarks_enabled=False).prepare_html(NOTES, "Cell Biology", False)
  assert "bookmark-level" not in document
  assert "pdf-bookmark-" not in document


def test_prepare_html_passes_complete_html_through() -> None:
  source = "<html><head></head><body><p>Ready</p></body></html>"
  assert _stage(_renderer()).prepare_html(source, "Ignored", True) == source


@pytest.mark.anyio
async def test_render_pdf_sends_prepared_document_with_pdfa() -> None:
  renderer = _renderer(b"%PDF-1.7")
  pdf = await _stage(renderer).render_pdf(NOTES, "Cell Biology", False, True)

  assert pdf == b"%PDF-1.7"
  args, kwargs = renderer.convert_html.await_args
  assert "pdf-bookmark-0" in args[0]
  assert kwargs == {"margin_inches": NOTES_MARGIN_INCHES, "pdfa": True}


@pytest.mark.anyio
async def test_render_pdf_with_zero_headings_succeeds() -> None:
  renderer = _renderer(b"%PDF-1.7")
  pdf = await _stage(renderer).render_pdf("Just a paragraph of notes.", "Plain", False, True)
  assert pdf == b"%PDF-1.7"
  assert "pdf-bookmark-" not in renderer.convert_html.await_args.args[0]


@pytest.mark.anyio
async def test_render_pdf_retries_once_after_transient_failure() -> None:
  renderer = _renderer(RenderResponseError("empty"), b"%PDF-1.7")
  assert await _stage(renderer).render_pdf(NOTES, "Cell Biology", False) == b"%PDF-1.7"
  assert renderer.convert_html.await_count == 2


@pytest.mark.anyio
async def test_render_pdf_raises_after_second_failure() -> None:
  renderer = _renderer(httpx.ConnectError("down"), httpx.ConnectError("down"), b"%PDF-1.7")
  with pytest.raises(PdfRenderFailed) as exc_info:
    await _stage(renderer).render_pdf(NOTES, "Cell Biology", False)
  assert exc_info.value.to_payload() == {"kind": "PdfRenderFailed", "message": "PDF rendering failed. Please try again later."}
  assert renderer.convert_html.await_count == 2


def _gotenberg(handler) -> GotenbergClient:
  client = GotenbergClient(base_url="http://gotenberg:3000/", timeout_seconds=5)
  client._build_client = lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler))  # type: ignore[method-assign]
  return client


@pytest.mark.anyio
async def test_gotenberg_client_posts_html_form() -> None:
  captured: dict[str, object] = {}

  def handler(request: httpx.Request) -> httpx.Response:
    captured["url"] = str(request.url)
    captured["body"] = request.read()
    return httpx.Response(200, content=b"%PDF-1.7", headers={"content-type": "application/pdf"})

  pdf = await _gotenberg(handler).convert_html("<html></html>", margin_inches=0.5, pdfa=True)

  assert pdf == b"%PDF-1.7"
  assert captured["url"] == "http://gotenberg:3000/forms/chromium/convert/html"
  body = captured["body"]
  assert b'filename="index.html"' in body
  assert b'name="marginTop"' in body
  assert b"PDF/A-1b" in body


@pytest.mark.anyio
async def test_gotenberg_client_rejects_non_pdf_response() -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, content=b"<html>error</html>", headers={"content-type": "text/html"})

  with pytest.raises(RenderResponseError):
    await _gotenberg(handler).convert_html("<html></html>")


@pytest.mark.anyio
async def test_gotenberg_client_raises_on_server_error() -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(503, content=b"busy")

  with pytest.raises(httpx.HTTPStatusError):
    await _gotenberg(handler).convert_html("<html></html>")
