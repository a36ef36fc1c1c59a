"""Index maintenance — dimension checks and paginated clearing."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from pydantic import BaseModel

from inventory_rag.exceptions import DimensionMismatchError, PermanentBackendError
from inventory_rag.retrieval.base import VectorStoreBase

logger = logging.getLogger(__name__)


class ClearResult(BaseModel):
    """Outcome of :func:`clear_all_vectors`."""

    deleted: int = 0
    pages: int = 0
    delete_calls: int = 0


def check_dimension(store: VectorStoreBase) -> None:
    """Raise :class:`DimensionMismatchError` if the index width differs from ``store.dimensions``."""
    actual = store.describe_dimension()
    if actual is not None and actual != store.dimensions:
        raise DimensionMismatchError(store.dimensions, actual)


def setup_index(store: VectorStoreBase) -> dict[str, object]:
    """Make sure the index accepts ``store.dimensions``-wide vectors.

    A mismatching index is reset rather than left to hold vectors of
    mixed widths.
    """
    try:
        check_dimension(store)
    except DimensionMismatchError as exc:
        logger.warning("Index has %d dimensions, expected %d; resetting", exc.actual, exc.expected)
        store.reset()
        return {"success": True, "reset": True, "message": f"Vector index reset: {exc.message}"}
    return {"success": True, "reset": False, "message": "Vector index setup complete"}


def clear_all_vectors(
    store: VectorStoreBase,
    *,
    page_size: int = 1000,
    delete_batch_size: int = 100,
    batch_delay: float = 0.5,
    sleep: Callable[[float], None] = time.sleep,
) -> ClearResult:
    """Delete every vector by repeatedly listing and deleting bounded pages.

    Listing stops once a page comes back shorter than *page_size*.
    """
    result = ClearResult()
    previous: list[str] | None = None

    while True:
        ids = store.list_ids(page_size)
        if not ids:
            break
        if ids == previous:
            raise PermanentBackendError(
                f"Vector store did not delete {len(ids)} ids; aborting clear"
            )
        result.pages += 1

        for start in range(0, len(ids), delete_batch_size):
            store.delete(ids[start : start + delete_batch_size])
            result.delete_calls += 1
        result.deleted += len(ids)
        logger.info("Cleared page %d (%d vectors, %d total)", result.pages, len(ids), result.deleted)

        if len(ids) < page_size:
            break
        previous = ids
        sleep(batch_delay)

    return result
