"""
File staging — the single owner of the export directory namespace.
"""

from __future__ import annotations

import logging
import os
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Callable, Optional

from shop_reports.export.models import OutputFormat, ReportKind

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class StagingManager:
    """Creates the export directory on demand and hands out file paths.

    Filenames follow ``{kind}-export-{timestamp}[-{suffix}].{ext}``, the
    timestamp being ISO-8601 UTC with ``:`` and ``.`` replaced by ``-``.
    With *unique_suffix* a short random token is appended so exports of
    the same kind and format in the same millisecond cannot collide.
    """

    def __init__(
        self,
        export_dir: str | os.PathLike[str],
        unique_suffix: bool = True,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._export_dir = Path(export_dir).expanduser().resolve()
        self._unique_suffix = unique_suffix
        self._clock = clock or _utc_now

    @property
    def export_dir(self) -> Path:
        return self._export_dir

    def ensure_directory(self) -> Path:
        """Create the export directory if needed and return its absolute path."""
        if not self._export_dir.is_dir():
            logger.info("Creating export directory %s", self._export_dir)
            self._export_dir.mkdir(parents=True, exist_ok=True)
        return self._export_dir

    def next_filename(self, kind: ReportKind, fmt: OutputFormat) -> str:
        stamp = self._clock().astimezone(UTC).isoformat(timespec="milliseconds")
        stamp = stamp.replace("+00:00", "Z").replace(":", "-").replace(".", "-")
        name = f"{kind.value}-export-{stamp}"
        if self._unique_suffix:
            name += f"-{uuid.uuid4().hex[:6]}"
        return f"{name}.{fmt.extension}"

    def next_path(self, kind: ReportKind, fmt: OutputFormat) -> Path:
        return self.ensure_directory() / self.next_filename(kind, fmt)

    @staticmethod
    def temp_path_for(path: Path) -> Path:
        """Sibling path a renderer writes to before publishing *path*."""
        return path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}.part")

    def publish(self, temp_path: Path, path: Path) -> Path:
        """Atomically move a finished temp file to its final *path*."""
        os.replace(temp_path, path)
        return path

    def discard(self, path: Path) -> None:
        """Remove a partially written file, ignoring one that never appeared."""
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        else:
            logger.debug("Discarded partial export %s", path)
