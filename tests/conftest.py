"""Shared pytest configuration and fixtures.

Nothing here touches the network: embeddings come from a deterministic
character-histogram fake, time is faked, and sleeps are recorded instead
of slept.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

import pytest
from langchain_core.embeddings import Embeddings

from inventory_rag.config import Settings
from inventory_rag.ingestion.embedder import EmbeddingGenerator
from inventory_rag.retrieval.memory_store import InMemoryVectorStore
from inventory_rag.service import InventoryRAGService
from inventory_rag.status.coordinator import ProcessingCoordinator
from inventory_rag.status.store import InMemoryStatusStore

DIM = 16


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


class FakeEmbeddings(Embeddings):
    """Deterministic embeddings: a histogram of character codes.

    Parameters
    ----------
    width:
        Native output width (need not match the index).
    rate_limited_calls:
        Number of initial calls that fail with a 429-style error.
    fail_on:
        Substrings that make a call fail with a permanent error.
    """

    def __init__(
        self,
        width: int = DIM,
        *,
        rate_limited_calls: int = 0,
        fail_on: tuple[str, ...] = (),
    ) -> None:
        self.width = width
        self.rate_limited_calls = rate_limited_calls
        self.fail_on = fail_on
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def _vector(self, text: str) -> list[float]:
        with self._lock:
            self.calls.append(text)
            call_no = len(self.calls)
        if call_no <= self.rate_limited_calls:
            raise RuntimeError("429 Too Many Requests")
        if any(marker in text for marker in self.fail_on):
            raise RuntimeError("400 Bad Request: invalid input")
        vec = [0.0] * self.width
        for ch in text:
            vec[ord(ch) % self.width] += 1.0
        return vec

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self._vector(t) for t in texts]

    def embed_query(self, text: str) -> list[float]:
        return self._vector(text)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class SleepRecorder:
    """Stand-in for :func:`time.sleep` that only records delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)

    @property
    def total(self) -> float:
        return sum(self.delays)


@pytest.fixture()
def embeddings() -> FakeEmbeddings:
    return FakeEmbeddings()


@pytest.fixture()
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def generator(embeddings: FakeEmbeddings, sleep: SleepRecorder) -> EmbeddingGenerator:
    return EmbeddingGenerator(embeddings, dimensions=DIM, sleep=sleep)


@pytest.fixture()
def vector_store() -> InMemoryVectorStore:
    return InMemoryVectorStore("test-collection", DIM)


@pytest.fixture()
def coordinator(clock: FakeClock) -> ProcessingCoordinator:
    return ProcessingCoordinator(
        InMemoryStatusStore(),
        processing_timeout=timedelta(minutes=30),
        lock_ttl=timedelta(minutes=5),
        clock=clock,
    )


@pytest.fixture()
def test_settings() -> Settings:
    return Settings(
        vector_dimensions=DIM,
        vector_backend="memory",
        status_backend="memory",
        batch_delay_seconds=0.0,
        clear_batch_delay_seconds=0.0,
    )


@pytest.fixture()
def service(
    generator: EmbeddingGenerator,
    vector_store: InMemoryVectorStore,
    coordinator: ProcessingCoordinator,
    test_settings: Settings,
    sleep: SleepRecorder,
) -> InventoryRAGService:
    return InventoryRAGService(generator, vector_store, coordinator, config=test_settings, sleep=sleep)
