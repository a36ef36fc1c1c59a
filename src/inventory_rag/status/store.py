"""Persistence backends for the processing status and lock documents.

Every document carries a monotonically increasing version.  Writers may
pass ``if_match`` to make a write conditional on the version they read
(``0`` meaning "the document must not exist yet"); otherwise the last
writer wins.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError

from inventory_rag.exceptions import ConcurrentModificationError

logger = logging.getLogger(__name__)


class StoredDocument(BaseModel):
    version: int
    data: dict[str, Any]


class StatusStore(ABC):
    """Key/value store holding small JSON documents."""

    @abstractmethod
    def read(self, key: str) -> StoredDocument | None:
        ...

    @abstractmethod
    def write(self, key: str, data: dict[str, Any], *, if_match: int | None = None) -> int:
        """Store *data* under *key* and return the new version."""
        ...

    @abstractmethod
    def delete(self, key: str, *, if_match: int | None = None) -> None:
        ...

    @staticmethod
    def _check(key: str, current: StoredDocument | None, if_match: int | None) -> None:
        if if_match is None:
            return
        actual = current.version if current else 0
        if actual != if_match:
            raise ConcurrentModificationError(key, if_match, actual)


class InMemoryStatusStore(StatusStore):
    """Process-local store; state is lost on restart."""

    def __init__(self) -> None:
        self._docs: dict[str, StoredDocument] = {}
        self._lock = threading.Lock()

    def read(self, key: str) -> StoredDocument | None:
        with self._lock:
            doc = self._docs.get(key)
            return doc.model_copy(deep=True) if doc else None

    def write(self, key: str, data: dict[str, Any], *, if_match: int | None = None) -> int:
        with self._lock:
            current = self._docs.get(key)
            self._check(key, current, if_match)
            version = (current.version if current else 0) + 1
            self._docs[key] = StoredDocument(version=version, data=json.loads(json.dumps(data)))
            return version

    def delete(self, key: str, *, if_match: int | None = None) -> None:
        with self._lock:
            self._check(key, self._docs.get(key), if_match)
            self._docs.pop(key, None)


class FileStatusStore(StatusStore):
    """One ``<key>.json`` file per document under *directory*.

    Writes go to a temporary file that is then atomically renamed over
    the target, so readers never observe a half-written document.
    Conditional writes are only atomic within one process.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self._lock = threading.Lock()

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def _load(self, key: str) -> StoredDocument | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return StoredDocument.model_validate_json(path.read_text("utf-8"))
        except (OSError, ValidationError, ValueError):
            logger.warning("Ignoring unreadable status document %s", path, exc_info=True)
            return None

    def read(self, key: str) -> StoredDocument | None:
        return self._load(key)

    def write(self, key: str, data: dict[str, Any], *, if_match: int | None = None) -> int:
        with self._lock:
            current = self._load(key)
            self._check(key, current, if_match)
            doc = StoredDocument(version=(current.version if current else 0) + 1, data=data)

            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(doc.model_dump_json())
                os.replace(tmp, self._path(key))
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
            return doc.version

    def delete(self, key: str, *, if_match: int | None = None) -> None:
        with self._lock:
            self._check(key, self._load(key), if_match)
            self._path(key).unlink(missing_ok=True)
