"""Maintenance services for scheduled background cleanup tasks."""

from __future__ import annotations

import datetime

from mindsy.services.usage_gate import UsageGate
from mindsy.storage.usage_repo import UsageRepository


async def clear_expired_grace_periods(usage_repo: UsageRepository, *, now: datetime.datetime | None = None) -> int:
  """End retained paid benefits for downgraded profiles whose period is over.

  How/Why:
    - A profile downgraded to `free` keeps its previous tier until `subscription_period_end`.
    - Clearing the ended period makes the stored tier authoritative again; rerunning is a no-op.
    - Intended to run on a schedule via the internal task endpoint or the cleanup script.
  """
  return await UsageGate(usage_repo).clear_expired_grace_periods(now)
