"""Storage interfaces for subscription profiles and monthly usage."""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class ProfileRecord:
  """Subscription fields of a user profile consumed by the usage gate."""

  user_id: str
  subscription_tier: str | None
  subscription_period_end: datetime.datetime | None = None
  previous_tier: str | None = None


@dataclass(frozen=True)
class MonthlyUsage:
  """Aggregate usage of one user in one calendar month."""

  user_id: str
  month_key: str
  total_mb_used: float = 0.0
  files_processed: int = 0
  grace_used_mb: float = 0.0


class UsageRepository(Protocol):
  """Repository contract for profiles and usage records."""

  async def get_profile(self, user_id: str) -> ProfileRecord | None:
    """Fetch the subscription profile of a user."""

  async def get_monthly_usage(self, user_id: str, month_key: str) -> MonthlyUsage | None:
    """Fetch the usage record of a user for a month key (YYYY-MM)."""

  async def increment_usage(self, *, user_id: str, month_key: str, mb: float, monthly_limit_mb: float) -> MonthlyUsage:
    """Atomically add one processed file of `mb` megabytes.

    The part of `mb` landing above `monthly_limit_mb` is added to `grace_used_mb`.
    """

  async def clear_expired_grace_periods(self, *, now: datetime.datetime) -> int:
    """Clear `subscription_period_end` for free profiles whose period already ended."""


def grace_overflow_mb(*, previous_total_mb: float, mb: float, monthly_limit_mb: float) -> float:
  """Return how much of a new charge lands above the monthly limit."""
  return max(0.0, min(mb, previous_total_mb + mb - monthly_limit_mb))
