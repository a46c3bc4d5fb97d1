"""
Export package — tabular report export pipeline.

Subpackage layout::

    export/
    ├── models.py        # ReportKind, OutputFormat, Dataset, ExportArtifact, …
    ├── errors.py        # ExportError taxonomy
    ├── projection.py    # dotted-path field projector
    ├── values.py        # money / timestamp / boolean formatters
    ├── assemblers.py    # one Assembler per ReportKind
    ├── renderer.py      # Renderer ABC (staging + atomic publish)
    ├── delimited.py     # DelimitedTextRenderer        (csv)
    ├── workbook.py      # WorkbookRenderer             (openpyxl)
    ├── pdf.py           # PaginatedDocumentRenderer    (fpdf2)
    ├── dump.py          # StructuredDumpRenderer       (json)
    ├── staging.py       # StagingManager
    └── orchestrator.py  # ExportOrchestrator, export_report()

**Adding a new format** requires two steps:

1. Add a member to :class:`OutputFormat` and a module with a class that
   subclasses ``Renderer``.
2. Register it in :data:`RENDERER_REGISTRY` below.

Assemblers are untouched: report kind and output format are orthogonal.
"""

from __future__ import annotations

from typing import Any

from shop_reports.export.delimited import DelimitedTextRenderer
from shop_reports.export.dump import StructuredDumpRenderer
from shop_reports.export.errors import (
    DataAccessError,
    ExportError,
    InvalidFilterError,
    RenderError,
    UnsupportedFormatError,
    UnsupportedReportError,
)
from shop_reports.export.models import (
    Dataset,
    ExportArtifact,
    Granularity,
    OutputFormat,
    ReportKind,
)
from shop_reports.export.pdf import PaginatedDocumentRenderer
from shop_reports.export.renderer import Renderer
from shop_reports.export.workbook import WorkbookRenderer

__all__ = [
    "DataAccessError",
    "Dataset",
    "DelimitedTextRenderer",
    "ExportArtifact",
    "ExportError",
    "Granularity",
    "InvalidFilterError",
    "OutputFormat",
    "PaginatedDocumentRenderer",
    "RENDERER_REGISTRY",
    "RenderError",
    "Renderer",
    "ReportKind",
    "StructuredDumpRenderer",
    "UnsupportedFormatError",
    "UnsupportedReportError",
    "WorkbookRenderer",
    "get_renderer",
]


# ---------------------------------------------------------------------------
# Registry: maps output formats to renderer classes
# ---------------------------------------------------------------------------

RENDERER_REGISTRY: dict[OutputFormat, type[Renderer]] = {
    OutputFormat.CSV: DelimitedTextRenderer,
    OutputFormat.XLSX: WorkbookRenderer,
    OutputFormat.PDF: PaginatedDocumentRenderer,
    OutputFormat.JSON: StructuredDumpRenderer,
}
"""Mapping of output format → renderer class. Used by the orchestrator
and the CLI to resolve a format name into a concrete renderer."""


def get_renderer(fmt: OutputFormat | str, **options: Any) -> Renderer:
    """Instantiate the renderer for *fmt*.

    *options* are passed to the renderer's constructor. Raises
    :class:`UnsupportedFormatError` when the format is unknown.
    """
    cls = RENDERER_REGISTRY[OutputFormat.parse(fmt)]
    return cls(**options)
