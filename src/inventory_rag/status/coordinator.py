"""Processing coordinator — single-writer status/lock state machine.

States::

    Idle ──start()──▶ Processing (locked) ──end()──────▶ Idle
                              │
                              └──set_error()/timeout──▶ Idle + error

The lock is advisory: callers that skip :meth:`start` can still race.
Two clocks guard against crashed writers:

* the lock expires after ``lock_ttl`` (default 5 min) unless renewed by
  :meth:`update_progress`, so a writer that died right after ``start()``
  does not block others for long;
* a run that has been processing for longer than ``processing_timeout``
  (default 30 min) is flipped to an error the next time anyone reads the
  status.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError

from inventory_rag.config import settings
from inventory_rag.exceptions import (
    ConcurrentModificationError,
    LockContentionError,
    ProcessingStateError,
)
from inventory_rag.status.models import ProcessingLock, ProcessingStatus, Progress
from inventory_rag.status.store import StatusStore

logger = logging.getLogger(__name__)

STATUS_KEY = "processing_status"
LOCK_KEY = "processing_lock"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_user_id() -> str:
    """Return a random id for an anonymous caller session."""
    return f"user-{uuid.uuid4().hex[:12]}"


class ProcessingCoordinator:
    """Owns the processing status and lock documents.

    All mutation of either document must go through this class.

    Parameters
    ----------
    store:
        Persistence backend.
    processing_timeout:
        Maximum duration of a run before it is reclaimed on read.
    lock_ttl:
        Lifetime of an un-renewed lock.
    clock:
        Returns the current UTC time; injected in tests.
    """

    def __init__(
        self,
        store: StatusStore,
        *,
        processing_timeout: timedelta = timedelta(minutes=settings.processing_timeout_minutes),
        lock_ttl: timedelta = timedelta(minutes=settings.lock_ttl_minutes),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self.processing_timeout = processing_timeout
        self.lock_ttl = lock_ttl
        self._clock = clock

    # -- status ---------------------------------------------------------------

    def get_status(self) -> ProcessingStatus:
        """Return the latest status, reclaiming a run that exceeded the timeout."""
        status = self._read_status()
        if status is None:
            return self._write_status(ProcessingStatus(last_updated=self._clock()))

        if (
            status.is_processing
            and status.start_time is not None
            and self._clock() - status.start_time > self.processing_timeout
        ):
            minutes = int(self.processing_timeout.total_seconds() // 60)
            logger.warning(
                "Processing started at %s by %s exceeded %d minutes; reclaiming",
                status.start_time.isoformat(),
                status.user_id,
                minutes,
            )
            return self.set_error(f"Processing timed out after {minutes} minutes", timed_out=True)
        return status

    def start(self, user_id: str | None = None) -> ProcessingStatus:
        """Enter the processing state under *user_id*'s lock.

        Raises
        ------
        LockContentionError
            When another user holds a fresh lock.
        """
        user_id = user_id or generate_user_id()
        current = self.get_status()

        if not self.try_acquire_lock(user_id):
            lock = self.current_lock()
            raise LockContentionError(
                "Another user is currently processing data. Please try again later.",
                holder=lock.user_id if lock else None,
            )

        if current.is_processing and current.user_id not in (None, user_id):
            logger.warning("Taking over processing slot from stale writer %s", current.user_id)

        now = self._clock()
        status = ProcessingStatus(
            is_processing=True,
            start_time=now,
            progress=Progress(current=0, total=0, message="Starting processing..."),
            last_updated=now,
            user_id=user_id,
            locked=True,
        )
        logger.info("Processing started by %s", user_id)
        return self._write_status(status)

    def update_progress(
        self, current: int, total: int, message: str, *, user_id: str | None = None
    ) -> ProcessingStatus:
        """Record progress for the running job and renew its lock.

        With *user_id*, the run must still belong to that user; a writer
        whose run was reclaimed or taken over gets :class:`ProcessingStateError`.
        """
        status = self.get_status()
        if not status.is_processing:
            raise ProcessingStateError("Cannot update progress: no processing run is active")
        if user_id is not None and status.user_id != user_id:
            raise ProcessingStateError(
                f"Cannot update progress: the run now belongs to {status.user_id}"
            )

        updated = status.model_copy(
            update={
                "progress": Progress(current=current, total=total, message=message),
                "last_updated": self._clock(),
            }
        )
        if status.user_id:
            self._renew_lock(status.user_id)
        return self._write_status(updated)

    def set_error(
        self, message: str, *, timed_out: bool = False, user_id: str | None = None
    ) -> ProcessingStatus:
        """Leave the processing state with *message* and release the lock.

        With *user_id*, nothing happens unless that user owns the active run.
        """
        previous = self._read_status()
        if user_id is not None and (
            previous is None or not previous.is_processing or previous.user_id != user_id
        ):
            logger.warning("Ignoring error from %s, who no longer owns the run: %s", user_id, message)
            return previous or self.get_status()

        status = ProcessingStatus(
            is_processing=False,
            start_time=previous.start_time if previous else None,
            progress=previous.progress if previous else None,
            error=message,
            timed_out=timed_out,
            last_updated=self._clock(),
            user_id=previous.user_id if previous else None,
            locked=False,
        )
        self.release_lock(user_id)
        logger.error("Processing failed: %s", message)
        return self._write_status(status)

    def end(self, user_id: str | None = None) -> ProcessingStatus:
        """Return to idle, clearing progress and error, and release the lock.

        With *user_id*, a run that was reclaimed or taken over is left untouched.
        """
        if user_id is not None:
            status = self.get_status()
            if not status.is_processing or status.user_id != user_id:
                logger.warning("Ignoring end() from %s, who no longer owns the run", user_id)
                return status
        self.release_lock(user_id)
        return self._write_status(ProcessingStatus(last_updated=self._clock()))

    # -- lock -----------------------------------------------------------------

    def current_lock(self) -> ProcessingLock | None:
        doc = self._store.read(LOCK_KEY)
        if doc is None:
            return None
        try:
            return ProcessingLock.model_validate(doc.data)
        except ValidationError:
            logger.warning("Discarding malformed processing lock")
            return None

    def try_acquire_lock(self, user_id: str) -> bool:
        """Take the lock if it is free, already ours, or older than ``lock_ttl``."""
        doc = self._store.read(LOCK_KEY)
        now = self._clock()

        if doc is not None:
            try:
                lock = ProcessingLock.model_validate(doc.data)
            except ValidationError:
                lock = None
            if lock is not None and lock.user_id != user_id:
                if not lock.is_expired(now, self.lock_ttl):
                    return False
                logger.warning("Reclaiming expired lock held by %s since %s", lock.user_id, lock.acquired_at)

        new_lock = ProcessingLock(user_id=user_id, acquired_at=now)
        try:
            self._store.write(
                LOCK_KEY,
                new_lock.model_dump(mode="json", by_alias=True),
                if_match=doc.version if doc else 0,
            )
        except ConcurrentModificationError:
            logger.info("Lost lock race for %s", user_id)
            return False
        return True

    def is_locked_by_other(self, user_id: str) -> bool:
        lock = self.current_lock()
        return (
            lock is not None
            and lock.user_id != user_id
            and not lock.is_expired(self._clock(), self.lock_ttl)
        )

    def release_lock(self, user_id: str | None = None) -> bool:
        """Drop the lock; with *user_id*, only if that user owns it."""
        if user_id is not None:
            lock = self.current_lock()
            if lock is not None and lock.user_id != user_id:
                return False
        self._store.delete(LOCK_KEY)
        return True

    # -- internals ------------------------------------------------------------

    def _renew_lock(self, user_id: str) -> None:
        doc = self._store.read(LOCK_KEY)
        if doc is None or doc.data.get("userId") != user_id:
            return
        renewed = ProcessingLock(user_id=user_id, acquired_at=self._clock())
        try:
            self._store.write(LOCK_KEY, renewed.model_dump(mode="json", by_alias=True), if_match=doc.version)
        except ConcurrentModificationError:
            logger.warning("Lock for %s changed while renewing", user_id)

    def _read_status(self) -> ProcessingStatus | None:
        doc = self._store.read(STATUS_KEY)
        if doc is None:
            return None
        try:
            return ProcessingStatus.model_validate(doc.data)
        except ValidationError:
            logger.warning("Discarding malformed processing status")
            return None

    def _write_status(self, status: ProcessingStatus) -> ProcessingStatus:
        self._store.write(STATUS_KEY, status.model_dump(mode="json", by_alias=True))
        return status
