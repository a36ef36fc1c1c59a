"""Chroma implementation of the vector-store abstraction."""

from __future__ import annotations

import logging
from typing import Any

import chromadb

from inventory_rag.config import settings
from inventory_rag.retrieval.base import VectorStoreBase
from inventory_rag.retrieval.models import QueryMatch, VectorEntry

logger = logging.getLogger(__name__)


def _flat_metadata(metadata: dict[str, Any]) -> dict[str, Any]:
    """Keep only the scalar values Chroma accepts as metadata."""
    return {k: v for k, v in metadata.items() if isinstance(v, (str, int, float, bool))}


def _distance_to_score(distance: float, space: str) -> float:
    if space in ("cosine", "ip"):
        # Chroma reports ip as 1 - dot product
        return 1.0 - distance
    # L2 distance; map to a 0-1 similarity.
    return 1.0 / (1.0 + distance)


class ChromaVectorStore(VectorStoreBase):
    """Chroma-backed vector store.

    Parameters
    ----------
    collection_name:
        Name of the Chroma collection.
    dimensions:
        Width ``D`` of stored vectors.
    host / port:
        Chroma server location.
    distance:
        HNSW space (``cosine`` | ``l2`` | ``ip``).
    client:
        Pre-built Chroma client; overrides *host* / *port*.
    """

    def __init__(
        self,
        collection_name: str = settings.chroma_collection,
        dimensions: int = settings.vector_dimensions,
        *,
        host: str = settings.chroma_host,
        port: int = settings.chroma_port,
        distance: str = settings.chroma_distance,
        client: Any | None = None,
    ) -> None:
        super().__init__(collection_name, dimensions)
        self._distance = distance
        self._client = client if client is not None else chromadb.HttpClient(host=host, port=port)
        self._collection = self._open_collection()

    def _open_collection(self) -> Any:
        return self._client.get_or_create_collection(
            name=self.collection_name,
            metadata={"hnsw:space": self._distance},
        )

    # -- VectorStoreBase overrides --------------------------------------------

    def upsert(self, entries: list[VectorEntry]) -> None:
        if not entries:
            return
        self._collection.upsert(
            ids=[e.id for e in entries],
            embeddings=[e.vector for e in entries],
            documents=[str(e.metadata.get("content", "")) for e in entries],
            metadatas=[_flat_metadata(e.metadata) or None for e in entries],
        )

    def query(
        self,
        vector: list[float],
        *,
        top_k: int = 5,
        include_metadata: bool = True,
    ) -> list[QueryMatch]:
        count = self._collection.count()
        if count == 0 or top_k <= 0:
            return []

        include = ["distances", "metadatas"] if include_metadata else ["distances"]
        results = self._collection.query(
            query_embeddings=[vector],
            n_results=min(top_k, count),
            include=include,
        )

        ids = results.get("ids", [[]])[0]
        distances = (results.get("distances") or [[]])[0]
        metas = (results.get("metadatas") or [[None] * len(ids)])[0]

        return [
            QueryMatch(
                id=vid,
                score=_distance_to_score(dist, self._distance),
                metadata=dict(meta or {}) if include_metadata else None,
            )
            for vid, dist, meta in zip(ids, distances, metas)
        ]

    def delete(self, ids: list[str]) -> None:
        if ids:
            self._collection.delete(ids=ids)

    def describe_dimension(self) -> int | None:
        peek = self._collection.peek(limit=1)
        embeddings = peek.get("embeddings")
        if embeddings is None or len(embeddings) == 0:
            return None
        return len(embeddings[0])

    def reset(self) -> None:
        logger.warning("Dropping Chroma collection %r", self.collection_name)
        self._client.delete_collection(name=self.collection_name)
        self._collection = self._open_collection()

    def list_ids(self, limit: int) -> list[str]:
        # Chroma can list natively; no zero-vector probe needed.
        return list(self._collection.get(limit=limit, include=[])["ids"])

    def health_check(self) -> bool:
        try:
            self._client.heartbeat()
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False
