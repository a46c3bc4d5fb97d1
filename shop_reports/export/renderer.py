"""
Renderer abstraction shared by every output format.

Provides :class:`Renderer`, the base class that all export encodings
(CSV, XLSX, PDF, JSON) must implement. Subclasses only know how to write
a :class:`~shop_reports.export.models.Dataset` to a path; staging,
atomic publication and error translation are handled here.

**Open/Closed Principle** — new formats are added by subclassing
``Renderer`` and registering the class; assemblers are unchanged.
"""

from __future__ import annotations

import abc
import logging
from pathlib import Path
from typing import Optional

from shop_reports.export.deadline import Deadline
from shop_reports.export.errors import RenderError
from shop_reports.export.models import Dataset, ExportArtifact, OutputFormat
from shop_reports.export.staging import StagingManager

logger = logging.getLogger(__name__)


def header_label(field: str) -> str:
    """Column heading shown in presentation formats (workbook, PDF).

    Delimited text and JSON keep the raw field names.
    """
    return field[:1].upper() + field[1:]


class Renderer(abc.ABC):
    """Base class every export format must implement."""

    @property
    @abc.abstractmethod
    def output_format(self) -> OutputFormat:
        """The :class:`OutputFormat` member this renderer produces."""

    @property
    @abc.abstractmethod
    def format_label(self) -> str:
        """Human-readable label used in logs and errors (e.g. ``'PDF'``)."""

    @property
    def file_extension(self) -> str:
        """File extension **including the dot** (e.g. ``'.pdf'``)."""
        return f".{self.output_format.extension}"

    @abc.abstractmethod
    def write_file(self, dataset: Dataset, path: Path) -> None:
        """Write *dataset* to *path*, flushing everything before returning.

        Implementations must not modify ``dataset.rows``.
        """

    # -- concrete helpers ----------------------------------------------------

    def render(
        self,
        dataset: Dataset,
        staging: StagingManager,
        deadline: Optional[Deadline] = None,
    ) -> ExportArtifact:
        """Render *dataset* into the staging directory and return the artifact.

        The file is written to a temporary sibling and renamed into place
        only once complete, so a failure never leaves a file that looks
        finished.
        """
        logger.info("Exporting %s to %s format", dataset.kind.value, self.format_label)
        temp_path: Path | None = None
        try:
            target = staging.next_path(dataset.kind, self.output_format)
            temp_path = staging.temp_path_for(target)
            self.write_file(dataset, temp_path)
            if deadline is not None:
                deadline.check(RenderError, "rendering")
            staging.publish(temp_path, target)
        except RenderError:
            if temp_path is not None:
                staging.discard(temp_path)
            raise
        except Exception as exc:
            if temp_path is not None:
                staging.discard(temp_path)
            logger.error("Error exporting to %s: %s", self.format_label, exc)
            raise RenderError(
                f"Failed to export data to {self.format_label}: {exc}", cause=exc
            ) from exc

        artifact = ExportArtifact.from_path(
            target, dataset.kind, self.output_format, dataset.row_count
        )
        logger.info(
            "%s export completed: %s (%d bytes)",
            self.format_label, artifact.path, artifact.size_bytes,
        )
        return artifact
