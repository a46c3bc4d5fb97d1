"""
Paginated-document (PDF) renderer.

Renders a :class:`~shop_reports.export.models.Dataset` as a printable
table using *fpdf2*: title, generation timestamp, a shaded header band
and alternating row shading, with equal-width columns and fixed row
height. Rows that would cross the bottom margin continue on a new page.
"""

from __future__ import annotations

import datetime as dt
import os
from pathlib import Path
from typing import Callable, Optional

from fpdf import FPDF

from shop_reports.export.models import Dataset, OutputFormat
from shop_reports.export.renderer import Renderer, header_label
from shop_reports.export.values import format_timestamp


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
_MARGIN = 15  # mm
_BOTTOM_MARGIN = 20
_HEADER_ROW_H = 9
_ROW_H = 7
_TABLE_FONT_SIZE = 8

_HEADER_FILL = (224, 224, 224)
_ROW_FILLS = ((255, 255, 255), (249, 249, 249))
_ELLIPSIS = "..."


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

class _TablePDF(FPDF):
    """FPDF subclass with a page-number footer."""

    def __init__(self, title: str, orientation: str, page_format: str) -> None:
        super().__init__(orientation=orientation, unit="mm", format=page_format)
        self._title = title
        self.set_auto_page_break(auto=False)
        self.set_margins(_MARGIN, _MARGIN, _MARGIN)
        self.b_margin = _BOTTOM_MARGIN

    def footer(self) -> None:
        self.set_y(-15)
        self.set_font("Helvetica", "I", 8)
        self.set_text_color(160, 160, 160)
        self.cell(0, 10, f"{self._title} - Page {self.page_no()}/{{nb}}", align="C")


# Characters outside latin-1 that built-in PDF fonts cannot draw
_UNICODE_SUBS: dict[str, str] = {
    "•": "-",
    "–": "-",
    "—": "-",
    "‘": "'",
    "’": "'",
    "“": '"',
    "”": '"',
    "…": "...",
    "€": "EUR ",
}


def _sanitize(text: str) -> str:
    """Replace non-latin-1 characters so built-in PDF fonts can render them."""
    for char, repl in _UNICODE_SUBS.items():
        text = text.replace(char, repl)
    text = " ".join(text.split())
    return text.encode("latin-1", errors="replace").decode("latin-1")


def _fit_text(pdf: FPDF, text: str, width: float) -> str:
    """Clip *text* with an ellipsis so it fits in *width* mm."""
    if pdf.get_string_width(text) <= width:
        return text
    while text and pdf.get_string_width(text + _ELLIPSIS) > width:
        text = text[:-1]
    return text + _ELLIPSIS if text else ""


# ---------------------------------------------------------------------------
# Renderer
# ---------------------------------------------------------------------------

class PaginatedDocumentRenderer(Renderer):
    """Renders datasets as paginated PDF tables."""

    def __init__(
        self,
        page_format: str = "A4",
        orientation: str = "P",
        repeat_header: bool = False,
        tz: Optional[dt.tzinfo] = None,
        clock: Optional[Callable[[], dt.datetime]] = None,
        compress: bool = True,
    ) -> None:
        self._page_format = page_format
        self._orientation = orientation
        self._repeat_header = repeat_header
        self._tz = tz or dt.timezone.utc
        self._clock = clock or (lambda: dt.datetime.now(tz=dt.timezone.utc))
        self._compress = compress

    @property
    def output_format(self) -> OutputFormat:
        return OutputFormat.PDF

    @property
    def format_label(self) -> str:
        return "PDF"

    # -- layout --------------------------------------------------------------

    def _draw_header_band(self, pdf: _TablePDF, labels: list[str], col_w: float) -> None:
        pdf.set_font("Helvetica", "B", _TABLE_FONT_SIZE)
        pdf.set_fill_color(*_HEADER_FILL)
        pdf.set_draw_color(0, 0, 0)
        pdf.set_text_color(0, 0, 0)
        for label in labels:
            pdf.cell(col_w, _HEADER_ROW_H, label, border=1, align="L", fill=True)
        pdf.ln(_HEADER_ROW_H)
        pdf.set_font("Helvetica", "", _TABLE_FONT_SIZE)

    def _draw_row(self, pdf: _TablePDF, cells: list[str], col_w: float, index: int) -> None:
        pdf.set_fill_color(*_ROW_FILLS[index % 2])
        pdf.set_text_color(0, 0, 0)
        for text in cells:
            pdf.cell(col_w, _ROW_H, text, border=1, align="L", fill=True)
        pdf.ln(_ROW_H)

    def build(self, dataset: Dataset) -> _TablePDF:
        """Lay out *dataset* and return the in-memory document."""
        pdf = _TablePDF(dataset.title, self._orientation, self._page_format)
        pdf.set_compression(self._compress)
        pdf.set_title(dataset.title)
        pdf.set_creator("shop-reports")
        pdf.alias_nb_pages()
        pdf.add_page()

        # Title block
        pdf.set_font("Helvetica", "B", 18)
        pdf.set_text_color(20, 40, 80)
        pdf.cell(0, 12, _sanitize(dataset.title), align="C", new_x="LMARGIN", new_y="NEXT")
        pdf.set_font("Helvetica", "", 10)
        pdf.set_text_color(110, 110, 110)
        generated = format_timestamp(self._clock(), tz=self._tz)
        pdf.cell(0, 8, f"Generated on: {generated}", align="C", new_x="LMARGIN", new_y="NEXT")
        pdf.ln(6)

        col_w = pdf.epw / max(len(dataset.fields), 1)
        pdf.set_font("Helvetica", "B", _TABLE_FONT_SIZE)
        inner_w = col_w - 2 * pdf.c_margin
        labels = [_fit_text(pdf, _sanitize(header_label(f)), inner_w) for f in dataset.fields]
        self._draw_header_band(pdf, labels, col_w)

        bottom = pdf.h - pdf.b_margin
        for index, values in enumerate(dataset.values()):
            if pdf.get_y() + _ROW_H > bottom:
                pdf.add_page()
                if self._repeat_header:
                    self._draw_header_band(pdf, labels, col_w)
                pdf.set_font("Helvetica", "", _TABLE_FONT_SIZE)
            cells = [_fit_text(pdf, _sanitize(str(v)), inner_w) for v in values]
            self._draw_row(pdf, cells, col_w, index)

        # Total line after the last row
        if pdf.get_y() + _ROW_H > bottom:
            pdf.add_page()
        pdf.ln(2)
        pdf.set_font("Helvetica", "B", 10)
        pdf.set_text_color(40, 40, 40)
        pdf.cell(0, _ROW_H, f"Total Records: {dataset.row_count}", align="R")
        return pdf

    def write_file(self, dataset: Dataset, path: Path) -> None:
        data = bytes(self.build(dataset).output())
        with path.open("wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
