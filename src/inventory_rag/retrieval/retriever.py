"""Semantic retriever — embeds a question and fetches nearest-neighbour context.

Usage::

    from inventory_rag.retrieval.retriever import SemanticRetriever

    retriever = SemanticRetriever(generator, store)
    for item in retriever.retrieve("How many units of AB-1234 are in aisle 3?"):
        print(item.id, item.content[:80])

An empty result is a valid answer ("no relevant content").  Failures to
embed the question or to query the store raise :class:`RetrievalError`
so that infrastructure problems never masquerade as missing data.
"""

from __future__ import annotations

import logging
from typing import Any

from inventory_rag.config import Settings, settings
from inventory_rag.exceptions import InventoryRAGError, RetrievalError
from inventory_rag.ingestion.embedder import EmbeddingGenerator
from inventory_rag.retrieval.base import VectorStoreBase
from inventory_rag.retrieval.models import ContextItem, QueryWidening

logger = logging.getLogger(__name__)


def default_widening(config: Settings | None = None) -> QueryWidening:
    config = config or settings
    return QueryWidening(
        pattern=config.query_widen_pattern,
        keywords=list(config.query_widen_keywords),
        multiplier=config.query_widen_multiplier,
    )


class SemanticRetriever:
    """High-level retriever over any :class:`VectorStoreBase`.

    Parameters
    ----------
    generator:
        Embedding generator; must share its dimension with *store*.
    store:
        Vector-store backend.
    default_k:
        Number of results when the caller does not pass ``k``.
    widening:
        Query-widening heuristic; ``None`` disables it.
    """

    def __init__(
        self,
        generator: EmbeddingGenerator,
        store: VectorStoreBase,
        *,
        default_k: int = settings.default_top_k,
        widening: QueryWidening | None = None,
    ) -> None:
        if generator.dimensions != store.dimensions:
            raise ValueError(
                f"Generator produces {generator.dimensions}-d vectors "
                f"but store expects {store.dimensions}"
            )
        self._generator = generator
        self._store = store
        self.default_k = default_k
        self.widening = widening

    # -- public API -----------------------------------------------------------

    def retrieve(self, query: str, k: int | None = None) -> list[ContextItem]:
        """Return up to ``k`` context items ranked by similarity to *query*."""
        k = k or self.default_k
        if self.widening is not None:
            widened = self.widening.widen(query, k)
            if widened != k:
                logger.info("Widening k from %d to %d for code lookup", k, widened)
                k = widened

        try:
            vector = self._generator.embed_query(query)
        except InventoryRAGError as exc:
            raise RetrievalError(f"Could not embed query: {exc.message}", original=exc) from exc

        return self.search_by_embedding(vector, k=k)

    def search_by_embedding(self, vector: list[float], *, k: int | None = None) -> list[ContextItem]:
        """Same as :meth:`retrieve` but accepts a pre-computed vector."""
        k = k or self.default_k
        try:
            matches = self._store.query(vector, top_k=k, include_metadata=True)
        except Exception as exc:
            raise RetrievalError(f"Vector store query failed: {exc}", original=exc) from exc

        items = [ContextItem.from_match(m) for m in matches]
        logger.info("Retrieved %d context items (k=%d)", len(items), k)
        return items

    # -- LangChain compat -----------------------------------------------------

    def as_langchain_retriever(self, k: int | None = None) -> Any:
        """Return a thin LangChain-compatible retriever wrapper.

        LangChain is imported only here so the rest of the retrieval
        package does not depend on it.
        """
        from langchain_core.documents import Document
        from langchain_core.retrievers import BaseRetriever

        outer = self

        class _LCRetriever(BaseRetriever):
            """Adapter that satisfies LangChain's retriever protocol."""

            def _get_relevant_documents(self_inner, query: str, **kwargs: Any) -> list[Document]:  # type: ignore[override]  # noqa: N805
                return [
                    Document(
                        page_content=item.content,
                        metadata={**item.metadata, "id": item.id, "score": item.score},
                    )
                    for item in outer.retrieve(query, k=k)
                ]

        return _LCRetriever()
