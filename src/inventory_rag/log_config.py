"""Centralised logging configuration.

Usage::

    from inventory_rag.log_config import setup_logging
    setup_logging()   # once at startup
"""

from __future__ import annotations

import logging
import sys

from inventory_rag.config import Settings, settings as default_settings

# Client libraries that log every request at INFO.
_HTTP_LOGGERS = ("httpx", "httpcore", "urllib3", "chromadb", "sentence_transformers")


def setup_logging(settings: Settings | None = None) -> None:
    """Apply the configured log levels to the root and HTTP client loggers."""
    settings = settings or default_settings

    root = logging.getLogger()
    root.setLevel(_parse_level(settings.log_level))

    # uvicorn installs its own handler; scripts and tests may not have one.
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)-8s %(name)s: %(message)s")
        )
        root.addHandler(handler)

    http_level = _parse_level(settings.log_level_http)
    for name in _HTTP_LOGGERS:
        logging.getLogger(name).setLevel(http_level)


def _parse_level(raw: str) -> int:
    """Convert a level name to a logging constant, defaulting to INFO."""
    numeric = getattr(logging, raw.upper(), None)
    if isinstance(numeric, int):
        return numeric
    return logging.INFO
