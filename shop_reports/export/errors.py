"""
Error taxonomy of the export pipeline.

Every failure surfaced to a caller is an :class:`ExportError`. The
``status_code`` attribute is the HTTP status an API layer should answer
with; the export package itself never talks HTTP.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional


class ExportError(Exception):
    """Base class and catch-all for unexpected export failures."""

    status_code: int = 500

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "status": self.status_code,
        }


class UnsupportedFormatError(ExportError):
    """The requested output format is not one of the supported encodings."""

    status_code = 400

    def __init__(self, value: Any, supported: Iterable[str]) -> None:
        self.value = value
        self.supported = sorted(supported)
        super().__init__(
            f"Unsupported export format: {value!r}. "
            f"Available: {', '.join(self.supported)}"
        )


class UnsupportedReportError(ExportError):
    """The requested report kind is not one of the supported kinds."""

    status_code = 400

    def __init__(self, value: Any, supported: Iterable[str]) -> None:
        self.value = value
        self.supported = sorted(supported)
        super().__init__(
            f"Unsupported report kind: {value!r}. "
            f"Available: {', '.join(self.supported)}"
        )


class InvalidFilterError(ExportError):
    """A filter value could not be interpreted (bad date, number, interval)."""

    status_code = 400

    def __init__(self, name: str, value: Any, reason: str = "") -> None:
        self.name = name
        self.value = value
        detail = f": {reason}" if reason else ""
        super().__init__(f"Invalid value for filter {name!r}: {value!r}{detail}")


class DataAccessError(ExportError):
    """The data source was unreachable or rejected the query."""

    status_code = 502


class RenderError(ExportError):
    """Building or writing the output file failed; no file was published."""

    status_code = 500
