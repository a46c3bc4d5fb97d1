"""
Structured-dump (JSON) renderer — the lossless / debug form.
"""

from __future__ import annotations

import json
from pathlib import Path

from shop_reports.export.models import Dataset, OutputFormat
from shop_reports.export.renderer import Renderer


class StructuredDumpRenderer(Renderer):
    """Renders datasets as a pretty-printed JSON array of objects."""

    @property
    def output_format(self) -> OutputFormat:
        return OutputFormat.JSON

    @property
    def format_label(self) -> str:
        return "JSON"

    def write_file(self, dataset: Dataset, path: Path) -> None:
        records = [{f: row[f] for f in dataset.fields} for row in dataset.rows]
        with path.open("w", encoding="utf-8") as handle:
            json.dump(records, handle, indent=2, ensure_ascii=False)
            handle.write("\n")
