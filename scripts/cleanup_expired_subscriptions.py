"""Clear ended subscription periods of downgraded profiles.

Run from cron or a scheduler; repeated runs are a no-op.
"""

from __future__ import annotations

import asyncio
import datetime
import sys
from pathlib import Path

# Ensure repo root is on sys.path so local imports work when invoked directly.
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from mindsy.config import get_database_settings
from mindsy.services.maintenance import clear_expired_grace_periods
from mindsy.storage.postgres_usage_repo import PostgresUsageRepository


async def _run() -> int:
  repo = PostgresUsageRepository()
  return await clear_expired_grace_periods(repo, now=datetime.datetime.now(datetime.UTC))


def main() -> int:
  if not get_database_settings().pg_dsn:
    print("Error: MINDSY_PG_DSN not set in environment.")
    return 1

  cleared = asyncio.run(_run())
  print(f"Cleared {cleared} expired subscription period(s).")
  return 0


if __name__ == "__main__":
  raise SystemExit(main())
