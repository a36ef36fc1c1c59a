"""
Status — the single-writer processing status and lock.

Public surface
--------------
- :class:`ProcessingCoordinator` — state machine owning both documents.
- :class:`ProcessingStatus`, :class:`ProcessingLock`, :class:`Progress` — models.
- :class:`StatusStore` and its file / in-memory backends.
"""

from inventory_rag.status.coordinator import ProcessingCoordinator, generate_user_id
from inventory_rag.status.models import ProcessingLock, ProcessingStatus, Progress
from inventory_rag.status.store import FileStatusStore, InMemoryStatusStore, StatusStore

__all__ = [
    "FileStatusStore",
    "InMemoryStatusStore",
    "ProcessingCoordinator",
    "ProcessingLock",
    "ProcessingStatus",
    "Progress",
    "StatusStore",
    "generate_user_id",
]
