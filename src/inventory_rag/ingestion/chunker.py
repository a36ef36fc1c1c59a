"""Text chunking for tabular records and free text.

Records are rendered as ``key: value`` lines under an ``Item N:`` header
and greedily packed into chunks of at most ``max_size`` UTF-8 bytes.  A
record is never split across chunks; one whose rendering alone exceeds
``max_size`` becomes a chunk of its own.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Iterator, Mapping
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHUNK_SIZE = 2000

_RECORD_SEPARATOR = "\n\n"
_PARAGRAPH_SEPARATOR = "\n\n"
_BLANK_LINE = re.compile(r"\n[ \t]*\n+")


def _byte_len(text: str) -> int:
    return len(text.encode("utf-8"))


def _format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def render_record(index: int, record: Any) -> str:
    """Render one record as an ``Item <index+1>:`` block of ``key: value`` lines."""
    if isinstance(record, Mapping):
        body = "\n".join(f"{key}: {_format_value(value)}" for key, value in record.items())
    else:
        body = _format_value(record)
    return f"Item {index + 1}:\n{body}"


def pack(pieces: Iterable[str], max_size: int, separator: str = _RECORD_SEPARATOR) -> Iterator[str]:
    """Greedily join *pieces* into chunks no larger than *max_size* bytes.

    A new chunk starts whenever appending the next piece (plus the
    separator) would overflow.  Oversized pieces are yielded whole.
    """
    current = ""
    sep_len = _byte_len(separator)
    for piece in pieces:
        if not piece:
            continue
        if current and _byte_len(current) + sep_len + _byte_len(piece) > max_size:
            yield current
            current = piece
        elif current:
            current = f"{current}{separator}{piece}"
        else:
            current = piece
    if current:
        yield current


def _parse_records(payload: str) -> list[Any] | dict[str, Any] | None:
    """Return the decoded JSON collection, or ``None`` for plain text."""
    try:
        data = json.loads(payload)
    except (json.JSONDecodeError, ValueError):
        return None
    if isinstance(data, (list, dict)):
        return data
    return None


def iter_chunks(payload: str, max_size: int = DEFAULT_MAX_CHUNK_SIZE) -> Iterator[str]:
    """Lazily yield chunks for *payload*; see :func:`chunk_payload`."""
    data = _parse_records(payload)

    if isinstance(data, list):
        yield from pack(
            (render_record(i, record) for i, record in enumerate(data)),
            max_size,
            _RECORD_SEPARATOR,
        )
    elif isinstance(data, dict):
        # A lone object is treated as one line per field.
        lines = (f"{key}: {_format_value(value)}" for key, value in data.items())
        yield from pack(lines, max_size, "\n")
    else:
        logger.debug("Payload is not a JSON collection, chunking as plain text")
        paragraphs = (p.strip() for p in _BLANK_LINE.split(payload))
        yield from pack(paragraphs, max_size, _PARAGRAPH_SEPARATOR)


def chunk_payload(payload: str, max_size: int = DEFAULT_MAX_CHUNK_SIZE) -> list[str]:
    """Split *payload* into bounded-size text chunks.

    Parameters
    ----------
    payload:
        A JSON array of records, a single JSON object, or plain text.
    max_size:
        Maximum chunk size in UTF-8 bytes.

    Returns
    -------
    list[str]
        Chunks in input order.  Identical input always yields identical
        output.  If chunking fails unexpectedly, a single chunk holding
        the first *max_size* bytes of *payload* is returned instead.
    """
    if max_size <= 0:
        raise ValueError(f"max_size must be positive, got {max_size}")
    try:
        return list(iter_chunks(payload, max_size))
    except Exception:
        logger.exception("Chunking failed, falling back to a single truncated chunk")
        head = payload.encode("utf-8")[:max_size].decode("utf-8", errors="ignore")
        return [head] if head else []
