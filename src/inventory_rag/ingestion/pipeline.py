"""Embedding pipeline — chunk → embed → upsert, batch by batch.

Batches run strictly one after another; only the chunks inside a batch
are embedded concurrently.  A chunk whose embedding fails is logged and
dropped, so a run can end as a *partial success*
(``chunks_processed < total_chunks``).  Vector-store errors are not
absorbed and propagate to the caller.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

from pydantic import BaseModel

from inventory_rag.config import settings
from inventory_rag.exceptions import InventoryRAGError
from inventory_rag.ingestion.chunker import chunk_payload
from inventory_rag.ingestion.embedder import EmbeddingGenerator
from inventory_rag.retrieval.base import VectorStoreBase
from inventory_rag.retrieval.models import VectorEntry
from inventory_rag.status.coordinator import ProcessingCoordinator

logger = logging.getLogger(__name__)


class IngestionResult(BaseModel):
    """Counts reported by :meth:`EmbeddingPipeline.ingest`."""

    success: bool = True
    chunks_processed: int = 0
    total_chunks: int = 0

    @property
    def partial(self) -> bool:
        """``True`` when some chunks were dropped."""
        return self.chunks_processed < self.total_chunks

    @property
    def failed_chunks(self) -> int:
        return self.total_chunks - self.chunks_processed


def chunk_id(resource_id: str, index: int) -> str:
    return f"{resource_id}-{index}"


class EmbeddingPipeline:
    """Orchestrates chunking, embedding and upserting of one payload.

    Parameters
    ----------
    generator:
        Produces ``D``-wide vectors.
    store:
        Destination vector store.
    coordinator:
        Receives a progress update after every batch.  Optional so the
        pipeline can run outside a locked processing session.
    max_chunk_size:
        Chunk size bound in bytes.
    batch_size:
        Chunks embedded concurrently per batch.
    batch_delay:
        Seconds to wait between batches.
    sleep:
        Injected for tests.
    """

    def __init__(
        self,
        generator: EmbeddingGenerator,
        store: VectorStoreBase,
        coordinator: ProcessingCoordinator | None = None,
        *,
        max_chunk_size: int = settings.max_chunk_size,
        batch_size: int = settings.embed_batch_size,
        batch_delay: float = settings.batch_delay_seconds,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self._generator = generator
        self._store = store
        self._coordinator = coordinator
        self.max_chunk_size = max_chunk_size
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self._sleep = sleep

    def ingest(self, resource_id: str, raw_payload: str, *, user_id: str | None = None) -> IngestionResult:
        """Chunk, embed and upsert *raw_payload* under *resource_id*.

        Progress is reported on behalf of *user_id*, so a run that was taken
        over by another writer stops at its next report.
        """
        chunks = chunk_payload(raw_payload, self.max_chunk_size)
        total = len(chunks)
        logger.info("Generated %d chunks for %s", total, resource_id)
        self._report(0, total, user_id, f"Preparing to process {total} chunks...")

        processed = 0
        with ThreadPoolExecutor(max_workers=self.batch_size, thread_name_prefix="embed") as pool:
            for start in range(0, total, self.batch_size):
                batch = chunks[start : start + self.batch_size]
                end = start + len(batch)
                self._report(start, total, user_id, f"Processing chunks {start + 1}-{end} of {total}...")

                entries = [
                    entry
                    for entry in pool.map(
                        lambda pair: self._embed_chunk(resource_id, *pair),
                        enumerate(batch, start=start),
                    )
                    if entry is not None
                ]
                if entries:
                    self._store.upsert(entries)
                processed += len(entries)

                self._report(end, total, user_id, f"Processed {end} of {total} chunks ({processed} embedded)")
                logger.info("Batch %d-%d done: %d/%d embedded", start + 1, end, len(entries), len(batch))

                if end < total:
                    self._sleep(self.batch_delay)

        self._report(total, total, user_id, f"Completed processing {processed} of {total} chunks.")
        if processed < total:
            logger.warning("Partial ingestion for %s: %d of %d chunks dropped", resource_id, total - processed, total)
        return IngestionResult(success=True, chunks_processed=processed, total_chunks=total)

    def _embed_chunk(self, resource_id: str, index: int, text: str) -> VectorEntry | None:
        try:
            vector = self._generator.embed(text)
        except InventoryRAGError:
            logger.error("Failed to embed chunk %d (%d chars)", index, len(text), exc_info=True)
            return None
        return VectorEntry(
            id=chunk_id(resource_id, index),
            vector=vector,
            metadata={"resource_id": resource_id, "chunk_index": index, "content": text},
        )

    def _report(self, current: int, total: int, user_id: str | None, message: str) -> None:
        if self._coordinator is not None:
            self._coordinator.update_progress(current, total, message, user_id=user_id)
