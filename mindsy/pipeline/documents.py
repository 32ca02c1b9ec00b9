"""Text extraction for supplementary lecture PDFs."""

from __future__ import annotations

import logging

import fitz  # PyMuPDF
from starlette.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)


def _extract_text(data: bytes) -> str:
  with fitz.open(stream=data, filetype="pdf") as document:
    pages = [page.get_text("text") for page in document]
  return "\n\n".join(text.strip() for text in pages if text and text.strip())


async def extract_pdf_text(data: bytes) -> str:
  """Return the embedded text of a PDF document, page by page."""
  text = await run_in_threadpool(_extract_text, data)
  logger.info("Extracted %d characters from supplementary PDF (%d bytes)", len(text), len(data))
  return text
