"""Domain models for vector entries, query matches and retrieval context."""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, Field


class VectorEntry(BaseModel):
    """One vector to upsert, keyed by a deterministic chunk id.

    Attributes
    ----------
    id:
        ``"<resource_id>-<chunk_index>"``.
    vector:
        Exactly ``D`` floats.
    metadata:
        Flat metadata; ingestion stores ``resource_id``, ``chunk_index``
        and the chunk text under ``content``.
    """

    id: str
    vector: list[float]
    metadata: dict[str, Any] = Field(default_factory=dict)


class QueryMatch(BaseModel):
    """A single ranked hit returned by a vector store."""

    id: str
    score: float
    metadata: dict[str, Any] | None = None


class ContextItem(BaseModel):
    """A retrieved chunk handed to the answering layer."""

    id: str
    score: float
    content: str = ""
    resource_id: str | None = None
    chunk_index: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_match(cls, match: QueryMatch) -> ContextItem:
        meta = match.metadata or {}
        return cls(
            id=match.id,
            score=match.score,
            content=meta.get("content", ""),
            resource_id=meta.get("resource_id"),
            chunk_index=meta.get("chunk_index"),
            metadata=meta,
        )

    def __str__(self) -> str:  # noqa: D105
        return f"[{self.id} {self.score:.3f}] {self.content[:120]}"


class QueryWidening(BaseModel):
    """Heuristic that widens ``k`` for structured-code lookups.

    A query such as ``"Where is SKU AB-1234 located?"`` contains a code
    token and a locational keyword; those queries benefit from a larger
    candidate set because near-identical inventory rows compete.
    """

    pattern: str = r"\b[A-Z]{1,4}-?\d{2,}[A-Z0-9-]*\b"
    keywords: list[str] = Field(default_factory=list)
    multiplier: int = 3

    def applies_to(self, query: str) -> bool:
        if self.multiplier <= 1 or not re.search(self.pattern, query):
            return False
        lowered = query.lower()
        return any(keyword.lower() in lowered for keyword in self.keywords)

    def widen(self, query: str, k: int) -> int:
        return k * self.multiplier if self.applies_to(query) else k
