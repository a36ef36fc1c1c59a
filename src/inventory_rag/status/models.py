"""Processing status and lock documents.

Both serialise to camelCase JSON (``isProcessing``, ``startTime`` …) so
that polling clients see the same shape the upload UI expects.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Progress(_CamelModel):
    current: int = 0
    total: int = 0
    message: str = ""


class ProcessingStatus(_CamelModel):
    """Singleton record describing the current (or last) processing run.

    Attributes
    ----------
    is_processing:
        ``True`` between ``start()`` and ``end()`` / ``set_error()``.
    start_time:
        When the current run started.
    progress:
        Latest progress report.
    error:
        Message of the last failure, including timeout reclamation.
    timed_out:
        Set when a stale run was reclaimed by :meth:`get_status`.
    last_updated:
        Time of the last write.
    user_id / locked:
        Owner of the run and whether it holds the processing lock.
    """

    is_processing: bool = False
    start_time: datetime | None = None
    progress: Progress | None = None
    error: str | None = None
    timed_out: bool = False
    last_updated: datetime
    user_id: str | None = None
    locked: bool = False


class ProcessingLock(_CamelModel):
    """Associates the processing slot with one user."""

    user_id: str
    acquired_at: datetime

    def is_expired(self, now: datetime, ttl: timedelta) -> bool:
        return now - self.acquired_at > ttl
