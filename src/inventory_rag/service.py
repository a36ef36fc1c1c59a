"""Service facade used by the HTTP layer (upload, chat, status polling).

Every mutating operation runs inside a locked processing session:

1. ``coordinator.start(user_id)`` — raises :class:`LockContentionError`
   when another writer is active;
2. the work itself, reporting progress as the session owner;
3. ``coordinator.end(owner)`` on success, ``coordinator.set_error()`` on any
   exception (which then propagates).

Every coordinator call after ``start`` names the owner returned by it, so a
writer whose lock expired and was taken over cannot end or fail the new
writer's run.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Sequence
from datetime import timedelta
from typing import Any

from inventory_rag.config import Settings, settings as default_settings
from inventory_rag.exceptions import LockContentionError, NoDataError, UnsupportedPayloadError
from inventory_rag.ingestion.embedder import EmbeddingGenerator, build_tracer
from inventory_rag.ingestion.loader import Record, select_columns
from inventory_rag.ingestion.pipeline import EmbeddingPipeline, IngestionResult
from inventory_rag.retrieval.base import VectorStoreBase
from inventory_rag.retrieval.index import clear_all_vectors, setup_index
from inventory_rag.retrieval.models import ContextItem
from inventory_rag.retrieval.retriever import SemanticRetriever, default_widening
from inventory_rag.status.coordinator import ProcessingCoordinator
from inventory_rag.status.models import ProcessingStatus
from inventory_rag.status.store import FileStatusStore, InMemoryStatusStore, StatusStore

logger = logging.getLogger(__name__)


class InventoryRAGService:
    """Wires generator, store, pipeline, retriever and coordinator together.

    Parameters
    ----------
    generator / store / coordinator:
        Collaborators; see :func:`build_service` for the configured defaults.
    config:
        Settings instance (tunables for batching, clearing and limits).
    sleep:
        Injected for tests; shared by the pipeline and the clearing loop.
    """

    def __init__(
        self,
        generator: EmbeddingGenerator,
        store: VectorStoreBase,
        coordinator: ProcessingCoordinator,
        *,
        config: Settings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config or default_settings
        self.store = store
        self.coordinator = coordinator
        self._sleep = sleep
        self.pipeline = EmbeddingPipeline(
            generator,
            store,
            coordinator,
            max_chunk_size=self.config.max_chunk_size,
            batch_size=self.config.embed_batch_size,
            batch_delay=self.config.batch_delay_seconds,
            sleep=sleep,
        )
        self.retriever = SemanticRetriever(
            generator,
            store,
            default_k=self.config.default_top_k,
            widening=default_widening(self.config),
        )

    # -- ingestion ------------------------------------------------------------

    def ingest(
        self,
        raw_payload: str,
        *,
        resource_id: str | None = None,
        user_id: str | None = None,
        replace: bool = True,
    ) -> IngestionResult:
        """Ingest *raw_payload* (JSON records or text) under the processing lock.

        With *replace*, existing vectors are cleared first so re-ingesting
        the same payload is idempotent.
        """
        resource_id = resource_id or self.config.resource_id
        owner = self.coordinator.start(user_id).user_id
        try:
            self.coordinator.update_progress(0, 100, "Setting up vector index...", user_id=owner)
            setup_index(self.store)
            if replace:
                self.coordinator.update_progress(0, 100, "Clearing existing data...", user_id=owner)
                self._clear()
            result = self.pipeline.ingest(resource_id, raw_payload, user_id=owner)
            self.coordinator.update_progress(
                100,
                100,
                f"Successfully processed {result.chunks_processed} of {result.total_chunks} chunks.",
                user_id=owner,
            )
        except Exception as exc:
            self._fail("Encountered an error during embedding", exc, owner)
            raise
        self.coordinator.end(owner)
        return result

    def ingest_records(
        self,
        records: list[Record],
        *,
        selected_columns: Sequence[str] | None = None,
        resource_id: str | None = None,
        user_id: str | None = None,
    ) -> dict[str, Any]:
        """Filter, cap and ingest tabular *records*; returns an upload summary."""
        if not records:
            raise UnsupportedPayloadError("The file contains no data.")

        records = select_columns(records, selected_columns)
        if len(records) > self.config.max_records:
            logger.info("Limiting upload to %d of %d records", self.config.max_records, len(records))
            records = records[: self.config.max_records]

        payload = json.dumps(records, indent=2, ensure_ascii=False, default=str)
        result = self.ingest(payload, resource_id=resource_id, user_id=user_id)

        message = (
            f"Successfully processed {result.chunks_processed} of {result.total_chunks} chunks "
            f"from {len(records)} inventory records."
        )
        if result.partial:
            message += f" {result.failed_chunks} chunks could not be embedded."
        return {
            "success": result.success,
            "message": message,
            "chunks_processed": result.chunks_processed,
            "total_chunks": result.total_chunks,
            "records": len(records),
            "partial": result.partial,
        }

    def clear_all(self, *, user_id: str | None = None) -> dict[str, Any]:
        """Delete every stored vector under the processing lock."""
        owner = self.coordinator.start(user_id).user_id
        try:
            self.coordinator.update_progress(0, 100, "Clearing all data...", user_id=owner)
            deleted = self._clear()
            self.coordinator.update_progress(100, 100, "All data cleared successfully.", user_id=owner)
        except Exception as exc:
            self._fail("Failed to clear data", exc, owner)
            raise
        self.coordinator.end(owner)
        if deleted == 0:
            return {"success": True, "message": "No data to clear."}
        return {"success": True, "message": f"Cleared {deleted} vectors from the database."}

    def setup_index(self) -> dict[str, object]:
        """Reset the index if its dimension differs from the configured one."""
        if self.coordinator.get_status().is_processing:
            raise LockContentionError("Cannot reset the index while processing is running.")
        return setup_index(self.store)

    # -- reads ----------------------------------------------------------------

    def retrieve(self, query: str, k: int | None = None) -> list[ContextItem]:
        return self.retriever.retrieve(query, k=k)

    def retrieve_context(self, query: str, k: int | None = None) -> list[ContextItem]:
        """Like :meth:`retrieve`, but raise :class:`NoDataError` for an empty store."""
        if not self.data_exists():
            raise NoDataError("No data available. Please upload inventory data first.")
        return self.retrieve(query, k=k)

    def get_status(self) -> ProcessingStatus:
        return self.coordinator.get_status()

    def data_exists(self) -> bool:
        try:
            return self.store.has_data()
        except Exception:
            logger.warning("Could not check whether data exists", exc_info=True)
            return False

    # -- internals ------------------------------------------------------------

    def _clear(self) -> int:
        result = clear_all_vectors(
            self.store,
            page_size=self.config.clear_query_page_size,
            delete_batch_size=self.config.clear_delete_batch_size,
            batch_delay=self.config.clear_batch_delay_seconds,
            sleep=self._sleep,
        )
        return result.deleted

    def _fail(self, prefix: str, exc: Exception, owner: str | None) -> None:
        message = getattr(exc, "message", None) or str(exc) or type(exc).__name__
        status = self.coordinator.get_status()
        if not status.is_processing or status.user_id != owner:
            # Reclaimed or taken over; the current record belongs to someone else.
            logger.error("%s after %s lost the run: %s", prefix, owner, message)
            return
        self.coordinator.set_error(f"{prefix}: {message}", user_id=owner)


def build_status_store(config: Settings | None = None) -> StatusStore:
    config = config or default_settings
    if config.status_backend == "memory":
        return InMemoryStatusStore()
    if config.status_backend == "file":
        return FileStatusStore(config.status_dir)
    raise ValueError(f"Unsupported status_backend={config.status_backend!r}")


def build_vector_store(config: Settings | None = None) -> VectorStoreBase:
    config = config or default_settings
    if config.vector_backend == "memory":
        from inventory_rag.retrieval.memory_store import InMemoryVectorStore

        return InMemoryVectorStore(config.chroma_collection, config.vector_dimensions)
    if config.vector_backend == "chroma":
        from inventory_rag.retrieval.chroma_store import ChromaVectorStore

        return ChromaVectorStore(
            config.chroma_collection,
            config.vector_dimensions,
            host=config.chroma_host,
            port=config.chroma_port,
            distance=config.chroma_distance,
        )
    raise ValueError(f"Unsupported vector_backend={config.vector_backend!r}")


def build_service(config: Settings | None = None) -> InventoryRAGService:
    """Build the service from settings (Chroma + HuggingFace by default)."""
    config = config or default_settings
    generator = EmbeddingGenerator(
        dimensions=config.vector_dimensions,
        max_attempts=config.retry_max_attempts,
        initial_delay=config.retry_initial_delay,
        multiplier=config.retry_multiplier,
        tracer=build_tracer(),
    )
    coordinator = ProcessingCoordinator(
        build_status_store(config),
        processing_timeout=timedelta(minutes=config.processing_timeout_minutes),
        lock_ttl=timedelta(minutes=config.lock_ttl_minutes),
    )
    return InventoryRAGService(generator, build_vector_store(config), coordinator, config=config)
