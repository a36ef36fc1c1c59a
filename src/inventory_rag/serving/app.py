"""FastAPI application exposing upload, status and retrieval endpoints."""

from __future__ import annotations

import base64
import binascii
import logging
from functools import lru_cache
from typing import Any, Literal

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from inventory_rag.config import settings
from inventory_rag.exceptions import (
    InventoryRAGError,
    LockContentionError,
    NoDataError,
    RetrievalError,
    UnsupportedPayloadError,
)
from inventory_rag.ingestion.loader import load_records, preview
from inventory_rag.log_config import setup_logging
from inventory_rag.retrieval.models import ContextItem
from inventory_rag.service import InventoryRAGService, build_service

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Inventory RAG API",
    version="0.1.0",
    description="Upload inventory tables and retrieve context for natural-language questions.",
)


@lru_cache
def get_service() -> InventoryRAGService:
    """Build the configured service once per process."""
    return build_service()


_STATUS_CODES: dict[type[InventoryRAGError], int] = {
    LockContentionError: 409,
    NoDataError: 400,
    UnsupportedPayloadError: 400,
    RetrievalError: 502,
}


@app.exception_handler(InventoryRAGError)
async def _handle_domain_error(request: Request, exc: InventoryRAGError) -> JSONResponse:
    status_code = next(
        (code for cls, code in _STATUS_CODES.items() if isinstance(exc, cls)),
        500,
    )
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "message": exc.message,
            "error": type(exc).__name__,
            "isAlreadyProcessing": isinstance(exc, LockContentionError),
        },
    )


# ── Request / Response schemas ────────────────────────────────────────
class UploadRequest(BaseModel):
    """Raw file content plus the columns the user chose to keep.

    Binary uploads (``xlsx``) are sent base64-encoded with
    ``content_encoding="base64"``.
    """

    content: str
    file_type: str = "csv"
    content_encoding: Literal["text", "base64"] = "text"
    selected_columns: list[str] = []

    def decoded_content(self) -> str | bytes:
        if self.content_encoding == "text":
            return self.content
        try:
            return base64.b64decode(self.content, validate=True)
        except binascii.Error as exc:
            raise UnsupportedPayloadError("Upload content is not valid base64.", original=exc) from exc


class UploadResponse(BaseModel):
    success: bool
    message: str
    chunks_processed: int = 0
    total_chunks: int = 0
    records: int = 0
    partial: bool = False


class PreviewResponse(BaseModel):
    success: bool = True
    data: list[dict[str, Any]]
    columns: list[str]
    total_rows: int


class RetrieveRequest(BaseModel):
    query: str
    k: int | None = Field(default=None, ge=1, le=1000)


class RetrieveResponse(BaseModel):
    items: list[ContextItem]


class MessageResponse(BaseModel):
    success: bool
    message: str


# ── Routes ────────────────────────────────────────────────────────────
@app.get("/health")
async def health() -> dict[str, str]:
    """Liveness check."""
    return {"status": "ok"}


@app.post("/upload/preview", response_model=PreviewResponse)
def upload_preview(request: UploadRequest) -> PreviewResponse:
    """Parse the upload and return the first rows and the column list."""
    records = load_records(request.decoded_content(), request.file_type)
    return PreviewResponse(**preview(records))


@app.post("/upload", response_model=UploadResponse)
def upload(
    request: UploadRequest,
    service: InventoryRAGService = Depends(get_service),
) -> UploadResponse:
    """Replace the indexed inventory with the uploaded table."""
    records = load_records(request.decoded_content(), request.file_type)
    summary = service.ingest_records(records, selected_columns=request.selected_columns)
    return UploadResponse(**summary)


@app.get("/processing-status")
def processing_status(service: InventoryRAGService = Depends(get_service)) -> dict[str, Any]:
    """Poll the processing status (camelCase document)."""
    return service.get_status().model_dump(mode="json", by_alias=True)


@app.get("/data-status")
def data_status(service: InventoryRAGService = Depends(get_service)) -> dict[str, bool]:
    return {"dataExists": service.data_exists()}


@app.post("/setup-index")
def setup_index(service: InventoryRAGService = Depends(get_service)) -> dict[str, Any]:
    return service.setup_index()


@app.post("/clear", response_model=MessageResponse)
def clear(service: InventoryRAGService = Depends(get_service)) -> MessageResponse:
    return MessageResponse(**service.clear_all())


@app.post("/retrieve", response_model=RetrieveResponse)
def retrieve(
    request: RetrieveRequest,
    service: InventoryRAGService = Depends(get_service),
) -> RetrieveResponse:
    """Return ranked context for *query*; 400 when nothing has been uploaded."""
    return RetrieveResponse(items=service.retrieve_context(request.query, k=request.k))


def main() -> None:
    """Serve the API with uvicorn on the configured host and port."""
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_config=None)
