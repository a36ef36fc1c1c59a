"""Embedding generation with rate-limit-aware retry and dimension reconciliation.

The embedding backend is any LangChain :class:`~langchain_core.embeddings.Embeddings`
implementation.  Its native output width does not have to match the
vector index: every vector is passed through :func:`reconcile_dimensions`
both at ingestion and at query time, so stored and query vectors always
share the same layout.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, TypeVar

from inventory_rag.config import settings
from inventory_rag.exceptions import (
    EmbeddingGenerationError,
    PermanentBackendError,
    TransientBackendError,
)

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

logger = logging.getLogger(__name__)

T = TypeVar("T")

EmbeddingTracer = Callable[[str, list[float]], None]

_RATE_LIMIT_MARKERS = ("429", "rate limit", "ratelimit", "too many requests", "resource_exhausted")


def reconcile_dimensions(vector: Sequence[float], target: int) -> list[float]:
    """Resize *vector* to exactly *target* elements.

    Wider vectors are truncated; narrower ones are zero-padded at the end.
    This is the only resizing strategy used anywhere in the package.
    """
    if target <= 0:
        raise ValueError(f"target dimension must be positive, got {target}")
    values = [float(v) for v in vector]
    if len(values) >= target:
        return values[:target]
    return values + [0.0] * (target - len(values))


def is_rate_limit_error(exc: BaseException) -> bool:
    """Return ``True`` if *exc* looks like an HTTP 429 / rate-limit failure."""
    if isinstance(exc, TransientBackendError):
        return True
    for attr in ("status_code", "status", "code", "http_status"):
        if getattr(exc, attr, None) == 429:
            return True
    response = getattr(exc, "response", None)
    if response is not None and getattr(response, "status_code", None) == 429:
        return True
    text = str(exc).lower()
    return any(marker in text for marker in _RATE_LIMIT_MARKERS)


def retry_with_backoff(
    fn: Callable[[], T],
    *,
    max_attempts: int = 5,
    initial_delay: float = 1.0,
    multiplier: float = 2.0,
    should_retry: Callable[[BaseException], bool] = is_rate_limit_error,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call *fn*, retrying with exponential backoff while *should_retry* holds.

    The delay before retry ``n`` is ``initial_delay * multiplier ** (n - 1)``.
    Errors rejected by *should_retry* propagate immediately; the last error
    propagates once *max_attempts* calls have failed.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    delay = initial_delay
    for attempt in range(1, max_attempts):
        try:
            return fn()
        except Exception as exc:
            if not should_retry(exc):
                raise
            logger.warning(
                "Rate limit hit, retrying in %.1fs (attempt %d/%d): %s",
                delay,
                attempt,
                max_attempts,
                exc,
            )
            sleep(delay)
            delay *= multiplier
    return fn()


class JsonlEmbeddingTracer:
    """Append every generated vector to ``<directory>/embeddings.jsonl``.

    Debugging aid only; enable it by setting ``EMBEDDING_TRACE_DIR``.
    """

    def __init__(self, directory: str | Path) -> None:
        self.path = Path(directory) / "embeddings.jsonl"
        self._lock = threading.Lock()

    def __call__(self, text: str, vector: list[float]) -> None:
        record = {
            "at": datetime.now(timezone.utc).isoformat(),
            "chars": len(text),
            "preview": text[:100],
            "dim": len(vector),
            "vector": vector,
        }
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as fh:
                fh.write(json.dumps(record) + "\n")


class EmbeddingGenerator:
    """Turn text into fixed-width vectors.

    Parameters
    ----------
    backend:
        LangChain embeddings implementation.  When *None*, a HuggingFace
        sentence-transformer is built from the global settings.
    dimensions:
        Width ``D`` required by the vector index.
    max_attempts / initial_delay / multiplier:
        Retry policy for rate-limited calls.
    sleep:
        Injected for tests; defaults to :func:`time.sleep`.
    tracer:
        Optional hook called with ``(text, vector)`` after each success.
    """

    def __init__(
        self,
        backend: Embeddings | None = None,
        *,
        dimensions: int = settings.vector_dimensions,
        max_attempts: int = settings.retry_max_attempts,
        initial_delay: float = settings.retry_initial_delay,
        multiplier: float = settings.retry_multiplier,
        sleep: Callable[[float], None] = time.sleep,
        tracer: EmbeddingTracer | None = None,
    ) -> None:
        if backend is None:
            backend = get_embedding_function()
        self._backend = backend
        self.dimensions = dimensions
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.multiplier = multiplier
        self._sleep = sleep
        self._tracer = tracer
        self._warned_widths: set[int] = set()

    def embed(self, text: str, *, query: bool = False) -> list[float]:
        """Embed *text* and return exactly :attr:`dimensions` floats.

        Raises
        ------
        EmbeddingGenerationError
            Wrapping a :class:`TransientBackendError` when retries ran out,
            or a :class:`PermanentBackendError` for any other failure.
        """
        if query:
            call = lambda: self._backend.embed_query(text)  # noqa: E731
        else:
            call = lambda: self._backend.embed_documents([text])[0]  # noqa: E731

        try:
            raw = retry_with_backoff(
                call,
                max_attempts=self.max_attempts,
                initial_delay=self.initial_delay,
                multiplier=self.multiplier,
                sleep=self._sleep,
            )
        except Exception as exc:
            if is_rate_limit_error(exc):
                cause: Exception = TransientBackendError(
                    f"Rate limited after {self.max_attempts} attempts", original=exc
                )
            else:
                cause = PermanentBackendError(str(exc), original=exc)
            raise EmbeddingGenerationError(
                f"Failed to generate embedding: {exc}", original=cause
            ) from exc

        vector = self._reconcile(raw)
        if self._tracer is not None:
            try:
                self._tracer(text, vector)
            except Exception:
                logger.warning("Embedding tracer failed", exc_info=True)
        return vector

    def embed_query(self, text: str) -> list[float]:
        """Shorthand for ``embed(text, query=True)``."""
        return self.embed(text, query=True)

    def _reconcile(self, raw: Sequence[float]) -> list[float]:
        width = len(raw)
        if width != self.dimensions and width not in self._warned_widths:
            self._warned_widths.add(width)
            action = "Truncating" if width > self.dimensions else "Zero-padding"
            logger.warning(
                "%s embeddings from %d to %d dimensions", action, width, self.dimensions
            )
        return reconcile_dimensions(raw, self.dimensions)


def get_embedding_function() -> Embeddings:
    """Return the configured sentence-transformer embedding function."""
    from langchain_huggingface import HuggingFaceEmbeddings

    return HuggingFaceEmbeddings(model_name=settings.embedding_model)


def build_tracer() -> EmbeddingTracer | None:
    """Return the JSONL tracer when ``embedding_trace_dir`` is configured."""
    if settings.embedding_trace_dir:
        return JsonlEmbeddingTracer(settings.embedding_trace_dir)
    return None
