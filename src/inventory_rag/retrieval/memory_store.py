"""In-process vector store for local development and tests."""

from __future__ import annotations

import math
import threading

from inventory_rag.exceptions import DimensionMismatchError
from inventory_rag.retrieval.base import VectorStoreBase
from inventory_rag.retrieval.models import QueryMatch, VectorEntry


def _cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if norm == 0:
        return 0.0
    return dot / norm


class InMemoryVectorStore(VectorStoreBase):
    """Dictionary-backed store ranking by cosine similarity.

    Ties (including every match of a zero vector) keep insertion order,
    so enumeration through :meth:`list_ids` is deterministic.
    """

    def __init__(self, collection_name: str = "memory", dimensions: int = 1536) -> None:
        super().__init__(collection_name, dimensions)
        self._vectors: dict[str, VectorEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._vectors)

    def upsert(self, entries: list[VectorEntry]) -> None:
        for entry in entries:
            if len(entry.vector) != self.dimensions:
                raise DimensionMismatchError(self.dimensions, len(entry.vector))
        with self._lock:
            for entry in entries:
                self._vectors[entry.id] = entry.model_copy(deep=True)

    def query(
        self,
        vector: list[float],
        *,
        top_k: int = 5,
        include_metadata: bool = True,
    ) -> list[QueryMatch]:
        if len(vector) != self.dimensions:
            raise DimensionMismatchError(self.dimensions, len(vector))
        with self._lock:
            scored = [(_cosine(vector, e.vector), e) for e in self._vectors.values()]
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [
            QueryMatch(
                id=entry.id,
                score=score,
                metadata=dict(entry.metadata) if include_metadata else None,
            )
            for score, entry in scored[:top_k]
        ]

    def delete(self, ids: list[str]) -> None:
        with self._lock:
            for vid in ids:
                self._vectors.pop(vid, None)

    def describe_dimension(self) -> int | None:
        return self.dimensions

    def reset(self) -> None:
        with self._lock:
            self._vectors.clear()
