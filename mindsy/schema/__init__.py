"""ORM models registered on the shared metadata."""

from .jobs import Job, JobEvent
from .usage import Profile, UsageRecord

__all__ = ["Job", "JobEvent", "Profile", "UsageRecord"]
