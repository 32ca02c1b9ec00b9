"""Subscription tier gating with a monthly grace allowance."""

from __future__ import annotations

import datetime
import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any

from mindsy.jobs.errors import UsageLimitExceeded
from mindsy.storage.usage_repo import MonthlyUsage, ProfileRecord, UsageRepository

logger = logging.getLogger(__name__)

DEFAULT_TIER = "free"
DEFAULT_PAID_TIER = "student"


@dataclass(frozen=True)
class TierLimits:
  """Fixed per-tier allowances in megabytes."""

  monthly_limit_mb: float
  max_file_size_mb: float
  grace_mb: float


TIER_LIMITS: dict[str, TierLimits] = {
  "free": TierLimits(monthly_limit_mb=120, max_file_size_mb=60, grace_mb=0),
  "student": TierLimits(monthly_limit_mb=700, max_file_size_mb=300, grace_mb=25),
}


@dataclass(frozen=True)
class GraceInfo:
  """Grace allowance snapshot for the current month."""

  limit_mb: float
  used_mb: float
  remaining_mb: float
  would_use_grace: bool


@dataclass(frozen=True)
class UsageDecision:
  """Outcome of a usage check for one incoming file."""

  can_process: bool
  effective_tier: str
  monthly_limit_mb: float
  current_usage_mb: float
  max_file_size_mb: float
  files_this_month: int
  message: str
  grace: GraceInfo | None = None

  def to_dict(self) -> dict[str, Any]:
    return asdict(self)


def _utc_now() -> datetime.datetime:
  return datetime.datetime.now(datetime.UTC)


def month_key(now: datetime.datetime) -> str:
  """Return the UTC calendar month key (`YYYY-MM`) for `now`."""
  if now.tzinfo is not None:
    now = now.astimezone(datetime.UTC)
  return now.strftime("%Y-%m")


def _as_utc(value: datetime.datetime) -> datetime.datetime:
  # Naive timestamps from the store are UTC.
  if value.tzinfo is None:
    return value.replace(tzinfo=datetime.UTC)
  return value


def resolve_effective_tier(profile: ProfileRecord | None, now: datetime.datetime) -> str:
  """Return the tier whose limits apply at `now`.

  A profile downgraded to `free` keeps its previous paid tier until `subscription_period_end`.
  Missing profiles and unknown tiers resolve to `free`.
  """
  if profile is None:
    return DEFAULT_TIER
  stored = (profile.subscription_tier or DEFAULT_TIER).strip().lower()
  if stored == "free" and profile.subscription_period_end is not None and _as_utc(profile.subscription_period_end) > _as_utc(now):
    previous = (profile.previous_tier or DEFAULT_PAID_TIER).strip().lower()
    return previous if previous in TIER_LIMITS else DEFAULT_PAID_TIER
  return stored if stored in TIER_LIMITS else DEFAULT_TIER


def can_process_usage(*, current_usage_mb: float, file_size_mb: float, monthly_limit_mb: float, grace_remaining_mb: float) -> bool:
  return current_usage_mb + file_size_mb <= monthly_limit_mb + grace_remaining_mb


def evaluate_usage(*, tier: str, usage: MonthlyUsage | None, file_size_mb: float) -> UsageDecision:
  """Apply the tier table to a month of usage without touching storage."""
  limits = TIER_LIMITS[tier]
  current = usage.total_mb_used if usage else 0.0
  files = usage.files_processed if usage else 0
  grace: GraceInfo | None = None
  grace_remaining = 0.0
  if limits.grace_mb > 0:
    grace_used = usage.grace_used_mb if usage else 0.0
    grace_remaining = max(0.0, limits.grace_mb - grace_used)
    grace = GraceInfo(limit_mb=limits.grace_mb, used_mb=grace_used, remaining_mb=grace_remaining, would_use_grace=current + file_size_mb > limits.monthly_limit_mb)

  allowed = can_process_usage(current_usage_mb=current, file_size_mb=file_size_mb, monthly_limit_mb=limits.monthly_limit_mb, grace_remaining_mb=grace_remaining)
  if not allowed:
    message = f"Monthly limit of {limits.monthly_limit_mb:g} MB reached for the {tier} plan."
  elif grace is not None and grace.would_use_grace:
    message = "Within limits using the grace allowance."
  else:
    message = "Within limits."
  return UsageDecision(can_process=allowed, effective_tier=tier, monthly_limit_mb=limits.monthly_limit_mb, current_usage_mb=current, max_file_size_mb=limits.max_file_size_mb, files_this_month=files, message=message, grace=grace)


class UsageGate:
  """Admission checks before a job is created and the usage debit after it completes."""

  def __init__(self, usage_repo: UsageRepository, *, clock: Callable[[], datetime.datetime] = _utc_now) -> None:
    self._usage_repo = usage_repo
    self._clock = clock

  async def check_usage_limits(self, user_id: str, file_size_mb: float) -> UsageDecision:
    """Decide whether `file_size_mb` more fits this month's allowance. Has no side effects."""
    now = self._clock()
    profile = await self._usage_repo.get_profile(user_id)
    tier = resolve_effective_tier(profile, now)
    usage = await self._usage_repo.get_monthly_usage(user_id, month_key(now))
    decision = evaluate_usage(tier=tier, usage=usage, file_size_mb=file_size_mb)
    logger.info("Usage check user=%s tier=%s current_mb=%.2f file_mb=%.2f allowed=%s", user_id, tier, decision.current_usage_mb, file_size_mb, decision.can_process)
    return decision

  async def ensure_can_process(self, user_id: str, file_size_mb: float, *, upgrade_url: str | None = None) -> UsageDecision:
    """Return the decision or raise UsageLimitExceeded carrying it."""
    decision = await self.check_usage_limits(user_id, file_size_mb)
    if decision.can_process:
      return decision
    details = decision.to_dict()
    details.pop("message", None)
    if upgrade_url:
      details["upgrade_url"] = upgrade_url
    raise UsageLimitExceeded(decision.message, details=details)

  async def record_completion(self, user_id: str, file_size_mb: float) -> MonthlyUsage:
    """Debit a completed job: one atomic increment of usage, file count and grace."""
    now = self._clock()
    profile = await self._usage_repo.get_profile(user_id)
    limits = TIER_LIMITS[resolve_effective_tier(profile, now)]
    usage = await self._usage_repo.increment_usage(user_id=user_id, month_key=month_key(now), mb=file_size_mb, monthly_limit_mb=limits.monthly_limit_mb)
    logger.info("Recorded usage user=%s month=%s total_mb=%.2f files=%d grace_mb=%.2f", user_id, usage.month_key, usage.total_mb_used, usage.files_processed, usage.grace_used_mb)
    return usage

  async def clear_expired_grace_periods(self, now: datetime.datetime | None = None) -> int:
    """End paid benefits of downgraded profiles whose period is over; safe to repeat."""
    cleared = await self._usage_repo.clear_expired_grace_periods(now=_as_utc(now or self._clock()))
    logger.info("Cleared %d expired subscription periods", cleared)
    return cleared
