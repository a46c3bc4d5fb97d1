"""
Workbook (XLSX) renderer.

Writes one sheet named after the report kind using *openpyxl*: a bold,
grey-filled header row, one row per record, and columns sized to their
longest rendered value.
"""

from __future__ import annotations

from pathlib import Path

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter

from shop_reports.export.models import Dataset, OutputFormat
from shop_reports.export.renderer import Renderer, header_label

_HEADER_FONT = Font(bold=True)
_HEADER_FILL = PatternFill("solid", fgColor="E0E0E0")
_MIN_WIDTH = 10
_PADDING = 2
_SHEET_TITLE_MAX = 31  # Excel limit


def column_widths(dataset: Dataset) -> list[int]:
    """Width per column: longest rendered value (header included) + padding,
    never below the minimum."""
    widths: list[int] = []
    for index, field in enumerate(dataset.fields):
        longest = max(
            [len(field)] + [len(str(values[index])) for values in dataset.values()]
        )
        widths.append(max(_MIN_WIDTH, longest + _PADDING))
    return widths


class WorkbookRenderer(Renderer):
    """Renders datasets as single-sheet Excel workbooks."""

    @property
    def output_format(self) -> OutputFormat:
        return OutputFormat.XLSX

    @property
    def format_label(self) -> str:
        return "Excel"

    def write_file(self, dataset: Dataset, path: Path) -> None:
        wb = Workbook()
        ws = wb.active
        ws.title = dataset.kind.value[:_SHEET_TITLE_MAX]

        ws.append([header_label(f) for f in dataset.fields])
        for cell in ws[1]:
            cell.font = _HEADER_FONT
            cell.fill = _HEADER_FILL
        ws.freeze_panes = "A2"

        for values in dataset.values():
            ws.append(values)
            # Text such as "=1+1" must stay text, not become a formula.
            for cell in ws[ws.max_row]:
                if isinstance(cell.value, str) and cell.value.startswith("="):
                    cell.data_type = "s"

        for index, width in enumerate(column_widths(dataset), start=1):
            ws.column_dimensions[get_column_letter(index)].width = width

        wb.save(path)
