from __future__ import annotations

import logging
import sys
from dataclasses import replace

from mindsy.config import get_settings
from mindsy.core.logging import TruncatedFormatter, _backup_namer, setup_logging


def _nested_error(depth: int) -> None:
  if depth == 0:
    raise ValueError("deep failure")
  _nested_error(depth - 1)


def test_truncated_formatter_keeps_header_and_tail() -> None:
  try:
    _nested_error(10)
  except ValueError:
    exc_info = sys.exc_info()

  formatted = TruncatedFormatter().formatException(exc_info)
  assert formatted.startswith("Traceback (most recent call last):")
  assert "    ...\n" in formatted
  assert formatted.rstrip().endswith("ValueError: deep failure")


def test_backup_namer_moves_counter_after_extension() -> None:
  assert _backup_namer("logs/mindsy_notes_1.log.3") == "logs/mindsy_notes_1.log-3"
  assert _backup_namer("logs/other.txt") == "logs/other.txt"


def test_setup_logging_writes_to_rotating_file(tmp_path) -> None:
  settings = replace(get_settings(), debug=False, log_max_bytes=1024, log_backup_count=1)
  root = logging.getLogger()
  previous_handlers, previous_level = root.handlers[:], root.level
  uvicorn_loggers = {name: (logging.getLogger(name).handlers[:], logging.getLogger(name).propagate) for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi")}
  try:
    log_path = setup_logging(settings, log_dir=tmp_path)
    logging.getLogger("mindsy.test").info("hello from the notes service")
    for handler in root.handlers:
      handler.flush()
    assert log_path.parent == tmp_path
    assert "hello from the notes service" in log_path.read_text(encoding="utf-8")
    assert logging.getLogger("httpx").level == logging.WARNING
  finally:
    for handler in root.handlers:
      handler.close()
    root.handlers = previous_handlers
    root.setLevel(previous_level)
    for name, (handlers, propagate) in uvicorn_loggers.items():
      logging.getLogger(name).handlers = handlers
      logging.getLogger(name).propagate = propagate
