"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # Vector store
    vector_backend: str = Field(default="chroma", description="'chroma' or 'memory'")
    vector_dimensions: int = Field(
        default=1536,
        description="Dimension every stored vector must have (fixed by the index).",
    )
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_collection: str = "inventory_rag"
    chroma_distance: str = "cosine"

    # Embedding
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    retry_max_attempts: int = 5
    retry_initial_delay: float = 1.0
    retry_multiplier: float = 2.0
    embedding_trace_dir: str = Field(
        default="",
        description="When set, every generated vector is appended to a JSONL file here.",
    )

    # Ingestion
    resource_id: str = "inventory-data"
    max_chunk_size: int = 2000
    embed_batch_size: int = 3
    batch_delay_seconds: float = 2.0
    max_records: int = 500

    # Clearing
    clear_query_page_size: int = 1000
    clear_delete_batch_size: int = 100
    clear_batch_delay_seconds: float = 0.5

    # Retrieval
    default_top_k: int = 5
    query_widen_pattern: str = r"\b[A-Z]{1,4}-?\d{2,}[A-Z0-9-]*\b"
    query_widen_keywords: list[str] = [
        "location",
        "bin",
        "aisle",
        "warehouse",
        "quantity",
        "qty",
        "stock",
        "how many",
    ]
    query_widen_multiplier: int = 3

    # Processing status
    status_backend: str = Field(default="file", description="'file' or 'memory'")
    status_dir: str = "tmp"
    processing_timeout_minutes: float = 30
    lock_ttl_minutes: float = 5

    # Logging
    log_level: str = "INFO"
    log_level_http: str = "WARNING"

    # HTTP server
    api_host: str = "0.0.0.0"
    api_port: int = 8080

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Module-level instance; import `settings` wherever needed.
settings = Settings()
