"""
Delimited-text (CSV) renderer.

Header row is the field list verbatim; quoting follows RFC 4180 via the
standard :mod:`csv` module.
"""

from __future__ import annotations

import csv
from pathlib import Path

from shop_reports.export.models import Dataset, OutputFormat
from shop_reports.export.renderer import Renderer


class DelimitedTextRenderer(Renderer):
    """Renders datasets as UTF-8 CSV files."""

    def __init__(self, delimiter: str = ",") -> None:
        if len(delimiter) != 1:
            raise ValueError(f"CSV delimiter must be one character, got {delimiter!r}")
        self._delimiter = delimiter

    @property
    def output_format(self) -> OutputFormat:
        return OutputFormat.CSV

    @property
    def format_label(self) -> str:
        return "CSV"

    def write_file(self, dataset: Dataset, path: Path) -> None:
        with path.open("w", encoding="utf-8", newline="") as handle:
            writer = csv.writer(
                handle,
                delimiter=self._delimiter,
                quoting=csv.QUOTE_MINIMAL,
                lineterminator="\r\n",
            )
            writer.writerow(dataset.fields)
            writer.writerows(dataset.values())
