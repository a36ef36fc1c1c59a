"""
Retrieval — vector-store backends, index maintenance and semantic search.

Public surface
--------------
- :class:`SemanticRetriever` — embeds a question and returns ranked context.
- :class:`VectorStoreBase` — abstract backend (subclass for Pinecone, etc.).
- :class:`ChromaVectorStore` — default Chroma backend.
- :class:`InMemoryVectorStore` — in-process backend for development and tests.
- :class:`VectorEntry`, :class:`QueryMatch`, :class:`ContextItem`, :class:`QueryWidening` — data models.
- :func:`setup_index`, :func:`clear_all_vectors` — index maintenance.
"""

from inventory_rag.retrieval.base import VectorStoreBase
from inventory_rag.retrieval.index import clear_all_vectors, setup_index
from inventory_rag.retrieval.memory_store import InMemoryVectorStore
from inventory_rag.retrieval.models import ContextItem, QueryMatch, QueryWidening, VectorEntry
from inventory_rag.retrieval.retriever import SemanticRetriever

__all__ = [
    "ChromaVectorStore",
    "ContextItem",
    "InMemoryVectorStore",
    "QueryMatch",
    "QueryWidening",
    "SemanticRetriever",
    "VectorEntry",
    "VectorStoreBase",
    "clear_all_vectors",
    "setup_index",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import ChromaVectorStore to avoid pulling in chromadb at import time."""
    if name == "ChromaVectorStore":
        from inventory_rag.retrieval.chroma_store import ChromaVectorStore

        return ChromaVectorStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
