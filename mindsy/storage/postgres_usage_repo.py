"""Postgres-backed repository for profiles and monthly usage records."""

from __future__ import annotations

import datetime

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert

from mindsy.core.database import get_session_factory
from mindsy.schema.usage import Profile, UsageRecord
from mindsy.storage.usage_repo import MonthlyUsage, ProfileRecord, UsageRepository, grace_overflow_mb


class PostgresUsageRepository(UsageRepository):
  """Persist usage with single-statement increments so concurrent completions never undercount."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def get_profile(self, user_id: str) -> ProfileRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Profile, user_id)
      if row is None:
        return None
      return ProfileRecord(user_id=row.user_id, subscription_tier=row.subscription_tier, subscription_period_end=row.subscription_period_end, previous_tier=row.previous_tier)

  async def get_monthly_usage(self, user_id: str, month_key: str) -> MonthlyUsage | None:
    async with self._session_factory() as session:
      stmt = select(UsageRecord).where(UsageRecord.user_id == user_id, UsageRecord.month_key == month_key)
      row = (await session.execute(stmt)).scalar_one_or_none()
      if row is None:
        return None
      return MonthlyUsage(user_id=row.user_id, month_key=row.month_key, total_mb_used=float(row.total_mb_used), files_processed=int(row.files_processed), grace_used_mb=float(row.grace_used_mb))

  async def increment_usage(self, *, user_id: str, month_key: str, mb: float, monthly_limit_mb: float) -> MonthlyUsage:
    initial_grace = grace_overflow_mb(previous_total_mb=0.0, mb=mb, monthly_limit_mb=monthly_limit_mb)
    stmt = insert(UsageRecord).values(user_id=user_id, month_key=month_key, total_mb_used=mb, files_processed=1, grace_used_mb=initial_grace)
    # SET expressions see the pre-update row, so the overflow is computed against the previous total.
    overflow = func.greatest(0.0, func.least(stmt.excluded.total_mb_used, UsageRecord.total_mb_used + stmt.excluded.total_mb_used - monthly_limit_mb))
    stmt = stmt.on_conflict_do_update(
      constraint="ux_usage_records_user_month",
      set_={
        "total_mb_used": UsageRecord.total_mb_used + stmt.excluded.total_mb_used,
        "files_processed": UsageRecord.files_processed + 1,
        "grace_used_mb": UsageRecord.grace_used_mb + overflow,
        "updated_at": func.now(),
      },
    ).returning(UsageRecord.total_mb_used, UsageRecord.files_processed, UsageRecord.grace_used_mb)
    async with self._session_factory() as session:
      row = (await session.execute(stmt)).one()
      await session.commit()
    return MonthlyUsage(user_id=user_id, month_key=month_key, total_mb_used=float(row.total_mb_used), files_processed=int(row.files_processed), grace_used_mb=float(row.grace_used_mb))

  async def clear_expired_grace_periods(self, *, now: datetime.datetime) -> int:
    if now.tzinfo is None:
      raise ValueError("now must be timezone-aware (UTC).")
    stmt = update(Profile).where(Profile.subscription_tier == "free", Profile.subscription_period_end.is_not(None), Profile.subscription_period_end < now).values(subscription_period_end=None)
    async with self._session_factory() as session:
      result = await session.execute(stmt)
      await session.commit()
    return int(result.rowcount or 0)
