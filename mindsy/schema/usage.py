"""SQLAlchemy models for subscription profiles and monthly usage tracking."""

from __future__ import annotations

import datetime

from sqlalchemy import DateTime, Float, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from mindsy.core.database import Base


class Profile(Base):
  __tablename__ = "profiles"

  user_id: Mapped[str] = mapped_column(String, primary_key=True)
  subscription_tier: Mapped[str | None] = mapped_column(String, nullable=True, default="free", server_default="free")
  subscription_period_end: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
  previous_tier: Mapped[str | None] = mapped_column(String, nullable=True)
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class UsageRecord(Base):
  __tablename__ = "usage_records"
  __table_args__ = (UniqueConstraint("user_id", "month_key", name="ux_usage_records_user_month"),)

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  month_key: Mapped[str] = mapped_column(String(7), nullable=False)
  total_mb_used: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
  files_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
  grace_used_mb: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
