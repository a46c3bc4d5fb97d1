"""
Tests for ExportOrchestrator and the one-shot export_report() helper.
"""

from __future__ import annotations

import csv
import json
import re
from pathlib import Path
from unittest.mock import patch

import pytest
from openpyxl import load_workbook

from conftest import CountingSource, make_order
from shop_reports.export import get_renderer
from shop_reports.export import orchestrator as orchestrator_mod
from shop_reports.export.assemblers import get_assembler
from shop_reports.export.deadline import Deadline
from shop_reports.export.errors import (
    DataAccessError,
    ExportError,
    InvalidFilterError,
    RenderError,
    UnsupportedFormatError,
    UnsupportedReportError,
)
from shop_reports.export.models import OutputFormat, ReportKind
from shop_reports.export.orchestrator import ExportOrchestrator, export_report
from shop_reports.infra.datasource_memory import InMemoryDataSource


@pytest.fixture()
def orchestrator(memory_source, staging, settings) -> ExportOrchestrator:
    return ExportOrchestrator(memory_source, staging, settings)


def _plain_pdf_renderer(fmt, **options):
    # Uncompressed content streams keep the PDF text searchable.
    if OutputFormat.parse(fmt) is OutputFormat.PDF:
        options["compress"] = False
    return get_renderer(fmt, **options)


def _rows_in(artifact) -> int:
    """Count the data rows actually present in a published file."""
    if artifact.format is OutputFormat.CSV:
        with artifact.path.open(encoding="utf-8", newline="") as handle:
            return len(list(csv.reader(handle))) - 1
    if artifact.format is OutputFormat.XLSX:
        return load_workbook(artifact.path).active.max_row - 1
    if artifact.format is OutputFormat.JSON:
        return len(json.loads(artifact.path.read_text(encoding="utf-8")))
    match = re.search(rb"Total Records: (\d+)", artifact.path.read_bytes())
    assert match, "PDF has no record total"
    return int(match.group(1))


class TestEveryCombination:
    @pytest.mark.parametrize("fmt", list(OutputFormat))
    @pytest.mark.parametrize("kind", list(ReportKind))
    def test_kind_by_format(self, orchestrator, memory_source, settings, kind, fmt):
        filters = {"startDate": "2025-02-15", "endDate": "2025-03-31"} if kind is ReportKind.SALES else {}
        with patch.object(orchestrator_mod, "get_renderer", _plain_pdf_renderer):
            artifact = orchestrator.export(kind, fmt, filters)
        assert artifact.path.exists()
        assert artifact.size_bytes > 0
        assert artifact.kind is kind
        assert artifact.format is fmt
        assert artifact.filename.startswith(f"{kind.value}-export-")
        assert artifact.filename.endswith(f".{fmt.extension}")

        expected = get_assembler(kind, memory_source, settings).assemble(filters).row_count
        assert expected > 0
        assert _rows_in(artifact) == artifact.row_count == expected


class TestContent:
    def test_orders_csv(self, orchestrator):
        artifact = orchestrator.export("orders", "csv", {"status": "DELIVERED"})
        with artifact.path.open(encoding="utf-8", newline="") as handle:
            rows = list(csv.DictReader(handle))
        # Newest first.
        assert [r["id"] for r in rows] == ["ord_b", "ord_a"]
        assert rows[0]["totalAmount"] == "50.00"
        assert artifact.row_count == 2

    def test_sales_json(self, orchestrator):
        artifact = orchestrator.export(
            ReportKind.SALES, OutputFormat.JSON,
            {"startDate": "2025-03-01", "endDate": "2025-03-31"},
        )
        records = json.loads(artifact.path.read_text(encoding="utf-8"))
        assert [r["date"] for r in records] == ["2025-03-01", "2025-03-02", "2025-03-03"]
        assert records[0] == {
            "date": "2025-03-01", "sales": "100.00", "orders": 1,
            "avgOrderValue": "100.00", "itemsSold": 3,
        }
        assert records[1]["itemsSold"] == 4

    def test_products_in_stock_filter(self, orchestrator):
        artifact = orchestrator.export("products", "json", {"inStock": "true"})
        names = [r["name"] for r in json.loads(artifact.path.read_text(encoding="utf-8"))]
        assert names == ["Gadget", "Widget"]

    def test_repeated_exports_get_distinct_files(self, orchestrator):
        first = orchestrator.export("vendors", "csv")
        second = orchestrator.export("vendors", "csv")
        assert first.path != second.path
        assert first.path.read_bytes() == second.path.read_bytes()


class TestValidation:
    def test_unsupported_format_before_any_data_call(self, staging, settings):
        source = CountingSource()
        with pytest.raises(UnsupportedFormatError):
            ExportOrchestrator(source, staging, settings).export("orders", "xml")
        assert source.calls == []
        assert not staging.export_dir.exists()

    def test_unsupported_kind(self, staging, settings):
        source = CountingSource()
        with pytest.raises(UnsupportedReportError):
            ExportOrchestrator(source, staging, settings).export("payroll", "csv")
        assert source.calls == []

    def test_invalid_filter(self, orchestrator):
        with pytest.raises(InvalidFilterError):
            orchestrator.export("sales", "csv", {"interval": "fortnightly"})


class TestFailures:
    def test_data_access_error_propagates(self, staging, settings):
        source = CountingSource(error=DataAccessError("db unreachable"))
        with pytest.raises(DataAccessError):
            ExportOrchestrator(source, staging, settings).export("orders", "pdf")
        assert not staging.export_dir.exists()

    def test_render_error_propagates(self, orchestrator, staging):
        with patch(
            "shop_reports.export.delimited.DelimitedTextRenderer.write_file",
            side_effect=OSError("disk full"),
        ):
            with pytest.raises(RenderError):
                orchestrator.export("vendors", "csv")
        assert list(staging.export_dir.iterdir()) == []

    def test_unexpected_error_wrapped(self, orchestrator):
        with patch.object(
            ExportOrchestrator, "renderer_for", side_effect=KeyError("boom")
        ):
            with pytest.raises(ExportError) as excinfo:
                orchestrator.export("vendors", "csv")
        assert type(excinfo.value) is ExportError
        assert isinstance(excinfo.value.__cause__, KeyError)

    def test_deadline_during_data_retrieval(self, orchestrator, staging, settings):
        settings.export_timeout = 5
        ticks = iter([0.0, 60.0, 60.0])

        def fake_deadline(seconds):
            return Deadline(seconds, clock=lambda: next(ticks))

        with patch.object(orchestrator_mod, "Deadline", side_effect=fake_deadline):
            with pytest.raises(DataAccessError) as excinfo:
                orchestrator.export("orders", "csv")
        assert "deadline" in str(excinfo.value)
        assert not staging.export_dir.exists()


class TestRendererOptions:
    def test_csv_delimiter_from_settings(self, orchestrator, settings):
        settings.csv_delimiter = "\t"
        artifact = orchestrator.export("vendors", "csv")
        assert artifact.path.read_text(encoding="utf-8").startswith("id\tbusinessName\t")


class TestExportReport:
    def test_uses_configured_backend_and_closes(self, settings):
        source = InMemoryDataSource()
        source.initialize()
        source.add("orders", [make_order()])
        with patch.object(orchestrator_mod, "get_data_source", return_value=source) as factory:
            with patch.object(source, "close", wraps=source.close) as close:
                artifact = export_report("orders", "json", settings=settings)
        factory.assert_called_once_with(settings)
        close.assert_called_once()
        assert artifact.row_count == 1
        assert artifact.path.parent == Path(settings.export_dir).resolve()

    def test_rejects_format_before_connecting(self, settings):
        with patch.object(orchestrator_mod, "get_data_source") as factory:
            with pytest.raises(UnsupportedFormatError):
                export_report("orders", "docx", settings=settings)
        factory.assert_not_called()

    def test_closes_source_on_failure(self, settings):
        source = CountingSource(error=DataAccessError("down"))
        with patch.object(orchestrator_mod, "get_data_source", return_value=source):
            with pytest.raises(DataAccessError):
                export_report("orders", "csv", settings=settings)
        assert source.closed is True
