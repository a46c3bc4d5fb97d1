"""
Tests for the renderer base class, the four output encodings and the
renderer registry.
"""

from __future__ import annotations

import csv
import json
from datetime import UTC, datetime
from pathlib import Path

import pytest
from openpyxl import load_workbook

from shop_reports.export import (
    RENDERER_REGISTRY,
    DelimitedTextRenderer,
    PaginatedDocumentRenderer,
    Renderer,
    StructuredDumpRenderer,
    WorkbookRenderer,
    get_renderer,
)
from shop_reports.export.deadline import Deadline
from shop_reports.export.errors import RenderError, UnsupportedFormatError
from shop_reports.export.models import Dataset, OutputFormat, ReportKind
from shop_reports.export.pdf import _fit_text, _sanitize, _TablePDF
from shop_reports.export.renderer import header_label
from shop_reports.export.workbook import column_widths


def _dataset(rows: int = 2) -> Dataset:
    fields = ("id", "name", "price", "note")
    data = [
        {"id": f"p{i}", "name": f"Item {i}", "price": 1.5 * i, "note": ""}
        for i in range(rows)
    ]
    return Dataset(kind=ReportKind.PRODUCTS, fields=fields, rows=data)


def _tricky() -> Dataset:
    return Dataset(
        kind=ReportKind.ORDERS,
        fields=("id", "items"),
        rows=[
            {"id": "o1", "items": 'Widget, "Deluxe" (2)'},
            {"id": "o2", "items": "line one\nline two"},
            {"id": "o3", "items": "=1+1"},
        ],
    )


def _only_file(directory: Path) -> Path:
    files = list(directory.iterdir())
    assert len(files) == 1, files
    return files[0]


# =========================================================================
# Registry / ABC
# =========================================================================


class TestRegistry:
    def test_every_format_registered(self):
        assert set(RENDERER_REGISTRY) == set(OutputFormat)

    @pytest.mark.parametrize("name", ["csv", "xlsx", "pdf", "json", "EXCEL"])
    def test_get_renderer(self, name):
        renderer = get_renderer(name)
        assert isinstance(renderer, Renderer)

    def test_unknown_format(self):
        with pytest.raises(UnsupportedFormatError) as excinfo:
            get_renderer("xml")
        assert excinfo.value.supported == ["csv", "json", "pdf", "xlsx"]

    def test_file_extension(self):
        assert WorkbookRenderer().file_extension == ".xlsx"
        assert PaginatedDocumentRenderer().file_extension == ".pdf"

    def test_cannot_instantiate_abc(self):
        with pytest.raises(TypeError):
            Renderer()  # type: ignore[abstract]


# =========================================================================
# CSV
# =========================================================================


class TestDelimitedText:
    def test_header_and_rows(self, staging):
        artifact = DelimitedTextRenderer().render(_dataset(), staging)
        with artifact.path.open(encoding="utf-8", newline="") as handle:
            rows = list(csv.reader(handle))
        assert rows[0] == ["id", "name", "price", "note"]
        assert rows[1] == ["p0", "Item 0", "0.0", ""]
        assert artifact.row_count == 2
        assert artifact.format is OutputFormat.CSV

    def test_quoting_round_trips(self, staging):
        artifact = DelimitedTextRenderer().render(_tricky(), staging)
        with artifact.path.open(encoding="utf-8", newline="") as handle:
            rows = list(csv.reader(handle))
        assert rows[1:] == [
            ["o1", 'Widget, "Deluxe" (2)'],
            ["o2", "line one\nline two"],
            ["o3", "=1+1"],
        ]

    def test_empty_dataset_writes_header_only(self, staging):
        artifact = DelimitedTextRenderer().render(_dataset(rows=0), staging)
        assert artifact.path.read_bytes() == b"id,name,price,note\r\n"

    def test_custom_delimiter(self, staging):
        artifact = DelimitedTextRenderer(delimiter=";").render(_dataset(rows=1), staging)
        assert artifact.path.read_text(encoding="utf-8").splitlines()[0] == "id;name;price;note"

    def test_rejects_multichar_delimiter(self):
        with pytest.raises(ValueError):
            DelimitedTextRenderer(delimiter="||")


# =========================================================================
# JSON
# =========================================================================


class TestStructuredDump:
    def test_list_of_objects_in_field_order(self, staging):
        artifact = StructuredDumpRenderer().render(_dataset(), staging)
        text = artifact.path.read_text(encoding="utf-8")
        records = json.loads(text)
        assert len(records) == 2
        assert list(records[1]) == ["id", "name", "price", "note"]
        assert records[1]["price"] == 1.5
        assert text.endswith("\n")

    def test_unicode_kept(self, staging):
        dataset = Dataset(kind=ReportKind.VENDORS, fields=("name",), rows=[{"name": "Café ☕"}])
        artifact = StructuredDumpRenderer().render(dataset, staging)
        assert "Café ☕" in artifact.path.read_text(encoding="utf-8")


# =========================================================================
# XLSX
# =========================================================================


class TestWorkbook:
    def test_sheet_layout(self, staging):
        artifact = WorkbookRenderer().render(_dataset(), staging)
        wb = load_workbook(artifact.path)
        ws = wb.active
        assert ws.title == "products"
        assert [c.value for c in ws[1]] == ["Id", "Name", "Price", "Note"]
        assert ws["A1"].font.bold is True
        assert ws["A1"].fill.fgColor.rgb.endswith("E0E0E0")
        assert ws.freeze_panes == "A2"
        assert ws.max_row == 3

    def test_numbers_stay_numeric(self, staging):
        artifact = WorkbookRenderer().render(_dataset(), staging)
        ws = load_workbook(artifact.path).active
        assert ws["C3"].value == 1.5
        assert ws["A3"].value == "p1"

    def test_formula_like_text_stays_text(self, staging):
        artifact = WorkbookRenderer().render(_tricky(), staging)
        ws = load_workbook(artifact.path).active
        assert ws["B4"].value == "=1+1"
        assert ws["B4"].data_type == "s"

    def test_column_widths(self, staging):
        dataset = Dataset(
            kind=ReportKind.VENDORS,
            fields=("id", "businessName"),
            rows=[{"id": "v1", "businessName": "A very long vendor name"}],
        )
        assert column_widths(dataset) == [10, 25]

        artifact = WorkbookRenderer().render(dataset, staging)
        ws = load_workbook(artifact.path).active
        assert ws.column_dimensions["B"].width == 25

    def test_headings_match_pdf(self, staging):
        dataset = Dataset(
            kind=ReportKind.VENDORS,
            fields=("businessName", "commissionRate"),
            rows=[{"businessName": "Acme", "commissionRate": "0.10"}],
        )
        artifact = WorkbookRenderer().render(dataset, staging)
        ws = load_workbook(artifact.path).active
        assert [c.value for c in ws[1]] == [header_label(f) for f in dataset.fields]
        assert [c.value for c in ws[1]] == ["BusinessName", "CommissionRate"]

        pdf = PaginatedDocumentRenderer(compress=False).render(dataset, staging)
        assert b"BusinessName" in pdf.path.read_bytes()


# =========================================================================
# PDF
# =========================================================================


_GENERATED = datetime(2025, 3, 15, 9, 0, tzinfo=UTC)


class TestPaginatedDocument:
    def _renderer(self, **kwargs) -> PaginatedDocumentRenderer:
        return PaginatedDocumentRenderer(clock=lambda: _GENERATED, compress=False, **kwargs)

    def test_writes_pdf(self, staging):
        artifact = self._renderer().render(_dataset(), staging)
        data = artifact.path.read_bytes()
        assert data.startswith(b"%PDF")
        assert b"Total Records: 2" in data
        assert b"Products Report" in data
        assert b"Generated on: 2025-03-15 09:00:00" in data

    def test_single_page_for_small_dataset(self):
        pdf = self._renderer().build(_dataset())
        assert pdf.page_no() == 1

    def test_paginates_long_dataset(self):
        pdf = self._renderer().build(_dataset(rows=120))
        assert pdf.page_no() > 1

    def test_landscape(self):
        portrait = self._renderer().build(_dataset())
        landscape = self._renderer(orientation="L").build(_dataset())
        assert landscape.epw > portrait.epw

    def test_empty_dataset(self, staging):
        artifact = self._renderer().render(_dataset(rows=0), staging)
        assert b"Total Records: 0" in artifact.path.read_bytes()

    def test_sanitize(self):
        assert _sanitize("a – b\n “c”") == 'a - b "c"'
        assert _sanitize("漢") == "?"

    def test_fit_text_clips_with_ellipsis(self):
        pdf = _TablePDF("t", "P", "A4")
        pdf.add_page()
        pdf.set_font("Helvetica", "", 8)
        clipped = _fit_text(pdf, "x" * 200, 20)
        assert clipped.endswith("...")
        assert pdf.get_string_width(clipped) <= 20
        assert _fit_text(pdf, "short", 20) == "short"


# =========================================================================
# Renderer.render: staging and failure handling
# =========================================================================


class _ExplodingRenderer(DelimitedTextRenderer):
    def write_file(self, dataset, path):
        path.write_text("partial")
        raise OSError("disk full")


class TestRenderFailures:
    def test_failure_wrapped_and_no_file_left(self, staging):
        with pytest.raises(RenderError) as excinfo:
            _ExplodingRenderer().render(_dataset(), staging)
        assert "Failed to export data to CSV" in str(excinfo.value)
        assert isinstance(excinfo.value.__cause__, OSError)
        assert list(staging.export_dir.iterdir()) == []

    def test_expired_deadline_discards_output(self, staging):
        ticks = iter([0.0, 100.0, 100.0, 100.0])
        deadline = Deadline(5, clock=lambda: next(ticks))
        with pytest.raises(RenderError) as excinfo:
            DelimitedTextRenderer().render(_dataset(), staging, deadline)
        assert "deadline" in str(excinfo.value)
        assert list(staging.export_dir.iterdir()) == []

    def test_artifact_metadata(self, staging):
        artifact = DelimitedTextRenderer().render(_dataset(), staging)
        assert artifact.path == _only_file(staging.export_dir)
        assert artifact.path.is_absolute()
        assert artifact.size_bytes == artifact.path.stat().st_size
        assert artifact.filename.startswith("products-export-2025-03-15T12-30-45-123Z-")
        assert artifact.filename.endswith(".csv")
        assert artifact.to_dict()["kind"] == "products"
