"""Typed errors raised across ingestion, retrieval and status coordination.

Partial ingestion is not an exception: it is reported through
:attr:`inventory_rag.ingestion.pipeline.IngestionResult.partial`.  A
timed-out processing run is likewise surfaced on the status record
(``timed_out=True``) rather than raised.
"""

from __future__ import annotations

from typing import Any


class InventoryRAGError(Exception):
    """Base class for every error raised by this package.

    Parameters
    ----------
    message:
        Human-readable message, safe to show to end users.
    original:
        The lower-level exception that caused this one, if any.
    """

    def __init__(self, message: str, *, original: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.original = original

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "original": repr(self.original) if self.original else None,
        }


class TransientBackendError(InventoryRAGError):
    """A backend refused the call because of rate limiting (429 class)."""


class PermanentBackendError(InventoryRAGError):
    """Auth, configuration or any other non-retryable backend failure."""


class EmbeddingGenerationError(InventoryRAGError):
    """Embedding a piece of text failed after all retries were used up."""


class DimensionMismatchError(InventoryRAGError):
    """The vector index holds a different dimension than the configured one."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Index dimension is {actual}, expected {expected}")
        self.expected = expected
        self.actual = actual


class LockContentionError(InventoryRAGError):
    """Another writer currently holds the processing lock."""

    def __init__(self, message: str, *, holder: str | None = None) -> None:
        super().__init__(message)
        self.holder = holder


class ProcessingStateError(InventoryRAGError):
    """An operation was attempted in a state that does not allow it."""


class ConcurrentModificationError(InventoryRAGError):
    """A conditional status-store write lost against a concurrent writer."""

    def __init__(self, key: str, expected: int, actual: int) -> None:
        super().__init__(
            f"Document {key!r} changed concurrently (expected version {expected}, found {actual})"
        )
        self.key = key
        self.expected = expected
        self.actual = actual


class RetrievalError(InventoryRAGError):
    """Retrieval infrastructure failed (embedding or vector-store query)."""


class NoDataError(InventoryRAGError):
    """The vector store holds no data at all."""


class UnsupportedPayloadError(InventoryRAGError):
    """An uploaded payload could not be interpreted as tabular data."""
