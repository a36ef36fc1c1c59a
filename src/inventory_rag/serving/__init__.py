"""
Serving — FastAPI application around :class:`~inventory_rag.service.InventoryRAGService`.

Run locally with ``inventory-rag-api`` or ``uvicorn inventory_rag.serving.app:app``.
"""
