"""Unit tests for the tabular upload loaders."""

from __future__ import annotations

import io

import pytest

from inventory_rag.exceptions import UnsupportedPayloadError
from inventory_rag.ingestion.loader import (
    column_names,
    load_csv,
    load_json,
    load_records,
    load_xlsx,
    preview,
    select_columns,
)

CSV = "sku,qty,price,bin\nAB-1,4,2.5,A3\n,,,\nCD-2,,n/a,B1\n"


class TestLoadCsv:
    def test_coerces_numbers_and_blanks(self) -> None:
        assert load_csv(CSV) == [
            {"sku": "AB-1", "qty": 4, "price": 2.5, "bin": "A3"},
            {"sku": "CD-2", "qty": None, "price": "n/a", "bin": "B1"},
        ]

    def test_strips_byte_order_mark(self) -> None:
        assert load_csv("\ufeffsku,qty\nA-1,3\n") == [{"sku": "A-1", "qty": 3}]

    def test_header_only(self) -> None:
        assert load_csv("sku,qty\n") == []

    def test_empty_content(self) -> None:
        assert load_csv("") == []


class TestLoadJson:
    def test_array_of_objects(self) -> None:
        assert load_json('[{"sku": "A-1"}, {"sku": "B-2"}]') == [{"sku": "A-1"}, {"sku": "B-2"}]

    def test_single_object_is_wrapped(self) -> None:
        assert load_json('{"sku": "A-1"}') == [{"sku": "A-1"}]

    def test_invalid_json(self) -> None:
        with pytest.raises(UnsupportedPayloadError):
            load_json("{oops")

    def test_array_of_scalars_rejected(self) -> None:
        with pytest.raises(UnsupportedPayloadError):
            load_json("[1, 2, 3]")


class TestLoadRecords:
    def test_dispatches_on_extension(self) -> None:
        assert load_records(CSV, ".CSV")[0]["sku"] == "AB-1"
        assert load_records('{"sku": "A-1"}', "json") == [{"sku": "A-1"}]

    def test_unsupported_type(self) -> None:
        with pytest.raises(UnsupportedPayloadError, match="csv, json, xlsx"):
            load_records("data", "parquet")


def test_select_columns_keeps_requested_order() -> None:
    records = [{"sku": "A", "qty": 1, "bin": "X"}, {"sku": "B", "bin": "Y"}]
    assert select_columns(records, ["bin", "qty"]) == [{"bin": "X", "qty": 1}, {"bin": "Y"}]


def test_select_columns_without_selection_is_identity() -> None:
    records = [{"sku": "A"}]
    assert select_columns(records, []) is records
    assert select_columns(records, None) is records


def test_column_names_union_in_first_seen_order() -> None:
    assert column_names([{"a": 1, "b": 2}, {"c": 3, "a": 4}]) == ["a", "b", "c"]


def test_preview_limits_rows() -> None:
    records = [{"sku": f"S{i}"} for i in range(25)]
    result = preview(records, limit=10)

    assert len(result["data"]) == 10
    assert result["columns"] == ["sku"]
    assert result["total_rows"] == 25


def _workbook_bytes(rows: list[list[object]]) -> bytes:
    from openpyxl import Workbook

    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


class TestLoadXlsx:
    def test_first_sheet_header_row_becomes_columns(self) -> None:
        content = _workbook_bytes(
            [
                ["sku", "qty", "bin", None],
                ["AB-1", 4, " A3 ", "ignored"],
                [None, None, None, None],
                ["CD-2", None, "B1", None],
            ]
        )

        assert load_xlsx(content) == [
            {"sku": "AB-1", "qty": 4, "bin": "A3"},
            {"sku": "CD-2", "qty": None, "bin": "B1"},
        ]

    def test_dispatched_by_extension(self) -> None:
        content = _workbook_bytes([["sku"], ["AB-1"]])
        assert load_records(content, "XLSX") == [{"sku": "AB-1"}]

    def test_corrupt_workbook_rejected(self) -> None:
        with pytest.raises(UnsupportedPayloadError):
            load_xlsx(b"definitely not a zip file")

    def test_text_content_rejected(self) -> None:
        with pytest.raises(UnsupportedPayloadError):
            load_records("sku\nAB-1", "xlsx")

    def test_legacy_xls_unsupported(self) -> None:
        with pytest.raises(UnsupportedPayloadError):
            load_records(b"\xd0\xcf\x11\xe0", "xls")


def test_csv_bytes_are_decoded() -> None:
    assert load_records("\ufeffsku,qty\nA-1,3\n".encode(), "csv") == [{"sku": "A-1", "qty": 3}]
