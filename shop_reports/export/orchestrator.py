"""
Export orchestration.

Single Responsibility: dispatch a (report kind, output format) pair to
the matching assembler and renderer, enforce the per-call deadline and
translate unexpected failures into :class:`ExportError`.

The pipeline runs in two phases with no overlap: the dataset is fully
materialised before rendering begins.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from shop_reports.export import get_renderer
from shop_reports.export.assemblers import FilterSet, get_assembler
from shop_reports.export.deadline import Deadline
from shop_reports.export.errors import DataAccessError, ExportError
from shop_reports.export.models import ExportArtifact, OutputFormat, ReportKind
from shop_reports.export.renderer import Renderer
from shop_reports.export.staging import StagingManager
from shop_reports.infra.config import Settings, get_data_source, get_settings, get_tz
from shop_reports.infra.datasource import AbstractDataSource

logger = logging.getLogger(__name__)


def _tag(request_id: Optional[str]) -> str:
    return f"[{request_id}] " if request_id else ""


class ExportOrchestrator:
    """Runs exports against one data source and one staging directory."""

    def __init__(
        self,
        source: AbstractDataSource,
        staging: StagingManager,
        settings: Optional[Settings] = None,
    ) -> None:
        self.source = source
        self.staging = staging
        self.settings = settings or get_settings()
        self.tz = get_tz(self.settings)

    def renderer_for(self, fmt: OutputFormat) -> Renderer:
        """Build the renderer for *fmt* with its configured options."""
        options: dict[str, Any] = {}
        if fmt is OutputFormat.CSV:
            options["delimiter"] = self.settings.csv_delimiter
        elif fmt is OutputFormat.PDF:
            options.update(
                page_format=self.settings.pdf_page_format,
                orientation=self.settings.pdf_orientation,
                repeat_header=self.settings.pdf_repeat_header,
                tz=self.tz,
            )
        return get_renderer(fmt, **options)

    def export(
        self,
        kind: ReportKind | str,
        fmt: OutputFormat | str,
        filters: Optional[FilterSet] = None,
        request_id: Optional[str] = None,
    ) -> ExportArtifact:
        """Export *kind* as *fmt* and return the staged artifact.

        The format and kind are validated before the data source is
        touched. :class:`DataAccessError`, :class:`RenderError` and other
        :class:`ExportError` subclasses propagate unchanged; anything
        else is wrapped in :class:`ExportError`.
        """
        tag = _tag(request_id)
        output_format = OutputFormat.parse(fmt)
        report_kind = ReportKind.parse(kind)
        logger.info("%sExporting %s with format: %s", tag, report_kind.value, output_format.value)

        deadline = Deadline(self.settings.export_timeout)
        try:
            renderer = self.renderer_for(output_format)
            assembler = get_assembler(report_kind, self.source, self.settings, self.tz)

            dataset = assembler.assemble(filters or {})
            deadline.check(DataAccessError, "data retrieval")
            logger.info("%sAssembled %d %s rows", tag, dataset.row_count, report_kind.value)

            artifact = renderer.render(dataset, self.staging, deadline)
        except ExportError as exc:
            logger.error(
                "%sError exporting %s: %s: %s",
                tag, report_kind.value, type(exc).__name__, exc,
            )
            raise
        except Exception as exc:
            logger.exception("%sUnexpected error exporting %s", tag, report_kind.value)
            raise ExportError(
                f"Unexpected error exporting {report_kind.value}: {exc}", cause=exc
            ) from exc

        logger.info("%sExport ready: %s", tag, artifact.path)
        return artifact


def export_report(
    kind: ReportKind | str,
    fmt: OutputFormat | str,
    filters: Optional[FilterSet] = None,
    settings: Optional[Settings] = None,
    request_id: Optional[str] = None,
) -> ExportArtifact:
    """One-shot export using the configured data source and export dir."""
    s = settings or get_settings()
    # Reject unknown formats before a connection is opened.
    OutputFormat.parse(fmt)
    source = get_data_source(s)
    try:
        staging = StagingManager(s.export_dir, unique_suffix=s.export_unique_suffix)
        return ExportOrchestrator(source, staging, s).export(
            kind, fmt, filters, request_id=request_id
        )
    finally:
        source.close()
