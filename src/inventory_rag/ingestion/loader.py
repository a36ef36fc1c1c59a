"""Tabular loaders — turn uploaded CSV, JSON or Excel content into records."""

from __future__ import annotations

import csv
import io
import json
import zipfile
from collections.abc import Sequence
from typing import Any

from inventory_rag.exceptions import UnsupportedPayloadError

Record = dict[str, Any]

SUPPORTED_TYPES = ("csv", "json", "xlsx")


def _coerce(value: str) -> Any:
    """Turn numeric CSV cells into numbers; leave everything else as text."""
    text = value.strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return text


def load_csv(content: str) -> list[Record]:
    """Parse CSV text whose first row holds the column names.

    Rows with no values at all are skipped.
    """
    reader = csv.DictReader(io.StringIO(content.removeprefix("\ufeff")))
    if not reader.fieldnames:
        return []
    records: list[Record] = []
    for row in reader:
        record = {key.strip(): _coerce(val or "") for key, val in row.items() if key is not None}
        if any(v is not None for v in record.values()):
            records.append(record)
    return records


def load_json(content: str) -> list[Record]:
    """Parse a JSON array of objects (or a single object)."""
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise UnsupportedPayloadError(f"Invalid JSON: {exc}", original=exc) from exc
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list) or not all(isinstance(row, dict) for row in data):
        raise UnsupportedPayloadError("JSON payload must be an object or an array of objects")
    return data


def _clean_cell(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def load_xlsx(content: bytes) -> list[Record]:
    """Parse the first worksheet of an ``.xlsx`` workbook.

    The first row holds the column names; columns with a blank header are
    ignored, as are rows with no values at all.
    """
    from openpyxl import load_workbook
    from openpyxl.utils.exceptions import InvalidFileException

    if isinstance(content, str):
        raise UnsupportedPayloadError("Excel uploads must be sent as binary content.")
    try:
        wb = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
        raise UnsupportedPayloadError(f"Invalid Excel workbook: {exc}", original=exc) from exc

    try:
        rows = wb.worksheets[0].iter_rows(values_only=True)
        header = next(rows, None)
        if header is None:
            return []
        columns = ["" if cell is None else str(cell).strip() for cell in header]

        records: list[Record] = []
        for row in rows:
            record = {col: _clean_cell(cell) for col, cell in zip(columns, row) if col}
            if any(v is not None for v in record.values()):
                records.append(record)
        return records
    finally:
        wb.close()


def _as_text(content: str | bytes) -> str:
    if isinstance(content, bytes):
        return content.decode("utf-8-sig")
    return content


def load_records(content: str | bytes, file_type: str) -> list[Record]:
    """Dispatch on *file_type* (a file extension such as ``"csv"``)."""
    kind = file_type.lower().lstrip(".")
    if kind == "csv":
        return load_csv(_as_text(content))
    if kind == "json":
        return load_json(_as_text(content))
    if kind == "xlsx":
        return load_xlsx(content)  # type: ignore[arg-type]
    raise UnsupportedPayloadError(
        f"Unsupported file type {file_type!r}. Please upload one of: {', '.join(SUPPORTED_TYPES)}."
    )


def select_columns(records: list[Record], columns: Sequence[str] | None) -> list[Record]:
    """Keep only *columns* (in the given order) that each record actually has."""
    if not columns:
        return records
    return [{col: row[col] for col in columns if col in row} for row in records]


def column_names(records: list[Record]) -> list[str]:
    """Union of keys across *records*, in first-seen order."""
    seen: dict[str, None] = {}
    for row in records:
        for key in row:
            seen.setdefault(key, None)
    return list(seen)


def preview(records: list[Record], limit: int = 10) -> dict[str, Any]:
    """Return the first *limit* records with the column list and total row count."""
    return {
        "data": records[:limit],
        "columns": column_names(records),
        "total_rows": len(records),
    }
