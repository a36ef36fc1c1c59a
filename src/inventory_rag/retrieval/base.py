"""Abstract base class for vector-store backends.

Adding a new backend (Pinecone, Qdrant, Upstash …) only requires
subclassing :class:`VectorStoreBase` and implementing the abstract
methods.  Ingestion, clearing and retrieval are backend-agnostic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from inventory_rag.retrieval.models import QueryMatch, VectorEntry


class VectorStoreBase(ABC):
    """Backend-agnostic vector-store interface.

    Parameters
    ----------
    collection_name:
        Logical name of the collection / index / namespace.
    dimensions:
        Width ``D`` every stored vector must have.
    """

    def __init__(self, collection_name: str, dimensions: int) -> None:
        self.collection_name = collection_name
        self.dimensions = dimensions

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def upsert(self, entries: list[VectorEntry]) -> None:
        """Insert or overwrite *entries* by id."""
        ...

    @abstractmethod
    def query(
        self,
        vector: list[float],
        *,
        top_k: int = 5,
        include_metadata: bool = True,
    ) -> list[QueryMatch]:
        """Return up to *top_k* matches ranked by descending similarity."""
        ...

    @abstractmethod
    def delete(self, ids: list[str]) -> None:
        """Delete vectors by id; unknown ids are ignored."""
        ...

    @abstractmethod
    def describe_dimension(self) -> int | None:
        """Return the dimension of the stored vectors, ``None`` if unknown/empty."""
        ...

    @abstractmethod
    def reset(self) -> None:
        """Drop every vector and recreate the index."""
        ...

    # -- optional overrides ---------------------------------------------------

    def zero_vector(self) -> list[float]:
        return [0.0] * self.dimensions

    def list_ids(self, limit: int) -> list[str]:
        """Return up to *limit* stored ids.

        Without a native listing API, a zero-vector query with a large
        ``top_k`` enumerates whatever the index holds.
        """
        return [m.id for m in self.query(self.zero_vector(), top_k=limit, include_metadata=False)]

    def has_data(self) -> bool:
        return bool(self.list_ids(1))

    def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        return True
