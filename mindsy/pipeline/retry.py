"""Retry policy applied uniformly to every external pipeline call."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import httpx
import openai

T = TypeVar("T")
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
  """Attempts, exponential backoff and a per-attempt timeout for one external call.

  `max_attempts` counts the initial call, so `max_attempts=3` allows two retries.
  """

  max_attempts: int
  initial_backoff_ms: int = 500
  max_backoff_ms: int = 8000
  jitter: bool = True
  timeout_seconds: float | None = None

  def __post_init__(self) -> None:
    if self.max_attempts < 1:
      raise ValueError("max_attempts must be at least 1.")
    if self.initial_backoff_ms < 0 or self.max_backoff_ms < 0:
      raise ValueError("backoff values must be >= 0.")

  @property
  def max_retries(self) -> int:
    return self.max_attempts - 1

  def backoff_ms(self, attempt: int) -> float:
    """Return the delay after failed attempt number `attempt` (1-based)."""
    backoff = float(min(self.initial_backoff_ms * (2 ** (attempt - 1)), self.max_backoff_ms))
    if self.jitter:
      # Spread retries by +/-25% so concurrent jobs do not hit a provider in lockstep.
      jitter_range = backoff * 0.25
      backoff += random.uniform(-jitter_range, jitter_range)
    return max(backoff, 0.0)


def is_transient_error(exc: BaseException) -> bool:
  """Classify timeouts, transport failures, 429 and 5xx responses as transient."""
  if isinstance(exc, TimeoutError):
    return True
  if isinstance(exc, httpx.TransportError):
    return True
  if isinstance(exc, httpx.HTTPStatusError):
    status = exc.response.status_code
    return status == 429 or status >= 500
  if isinstance(exc, openai.APIConnectionError | openai.RateLimitError | openai.InternalServerError):
    return True
  if isinstance(exc, openai.APIStatusError):
    return exc.status_code == 429 or exc.status_code >= 500
  return False


async def run_with_retry(*, operation_name: str, func: Callable[[], Awaitable[T]], policy: RetryPolicy, is_retryable: Callable[[BaseException], bool] = is_transient_error) -> T:
  """Execute `func` under `policy`, re-raising the last error once attempts run out.

  A timeout is raised as TimeoutError and is retried like a transport failure.
  """
  attempt = 0
  while True:
    attempt += 1
    try:
      if policy.timeout_seconds is not None:
        result = await asyncio.wait_for(func(), timeout=policy.timeout_seconds)
      else:
        result = await func()
      if attempt > 1:
        logger.info("External call succeeded after retry: operation=%s, attempt=%d/%d", operation_name, attempt, policy.max_attempts)
      return result

    except Exception as exc:
      retryable = is_retryable(exc)
      logger.warning("External call failed: operation=%s, attempt=%d/%d, retryable=%s, error_type=%s, error=%s", operation_name, attempt, policy.max_attempts, retryable, type(exc).__name__, exc)

      if not retryable:
        raise

      if attempt >= policy.max_attempts:
        logger.error("External call failed after %d attempts: operation=%s - giving up", policy.max_attempts, operation_name)
        raise

      backoff_ms = policy.backoff_ms(attempt)
      logger.info("Retrying external call after backoff: operation=%s, attempt=%d/%d, backoff_ms=%.1f", operation_name, attempt, policy.max_attempts, backoff_ms)
      await asyncio.sleep(backoff_ms / 1000.0)
