"""
Data models for the export pipeline.

Enumerations of the closed report-kind / output-format sets, the query
shape Assemblers hand to the data source, and the value objects that
flow between Assembler, Renderer and caller.
"""

from __future__ import annotations

import os
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from shop_reports.export.errors import UnsupportedFormatError, UnsupportedReportError


Scalar = Union[str, int, float]
ReportRow = dict[str, Scalar]
FieldList = tuple[str, ...]


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class ReportKind(str, Enum):
    """Domain entity set being exported."""

    ORDERS = "orders"
    PRODUCTS = "products"
    CUSTOMERS = "customers"
    SALES = "sales"
    INVENTORY = "inventory"
    VENDORS = "vendors"

    @property
    def report_title(self) -> str:
        return f"{self.value.capitalize()} Report"

    @classmethod
    def parse(cls, value: "ReportKind | str") -> "ReportKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnsupportedReportError(
                value, [k.value for k in cls]
            ) from None


class OutputFormat(str, Enum):
    """File encoding produced by a renderer."""

    CSV = "csv"
    XLSX = "xlsx"
    PDF = "pdf"
    JSON = "json"

    @property
    def extension(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: "OutputFormat | str") -> "OutputFormat":
        """Resolve *value* to a member or raise :class:`UnsupportedFormatError`."""
        if isinstance(value, cls):
            return value
        name = str(value).strip().lower()
        name = _FORMAT_ALIASES.get(name, name)
        try:
            return cls(name)
        except ValueError:
            raise UnsupportedFormatError(
                value, [f.value for f in cls]
            ) from None


_FORMAT_ALIASES = {"excel": "xlsx"}


class Granularity(str, Enum):
    """Bucket width of the sales time series."""

    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


# ---------------------------------------------------------------------------
# Data-source query
# ---------------------------------------------------------------------------

class Condition(BaseModel):
    """One predicate on a record attribute. Conditions are AND-ed."""

    model_config = ConfigDict(frozen=True)

    field: str
    op: Literal["eq", "gt", "gte", "lt", "lte"] = "eq"
    value: Any = None


class RowQuery(BaseModel):
    """Query an Assembler hands to :meth:`AbstractDataSource.find_rows`."""

    conditions: list[Condition] = Field(default_factory=list)
    order_by: str = "id"
    descending: bool = False

    def add(self, field: str, op: str, value: Any) -> "RowQuery":
        self.conditions.append(Condition(field=field, op=op, value=value))
        return self

    def conditions_on(self, field: str) -> list[Condition]:
        return [c for c in self.conditions if c.field == field]


class SalesBucket(BaseModel):
    """One time-interval aggregate row of the sales series."""

    bucket_start: datetime
    sum_amount: Optional[float] = None
    count: Optional[int] = None
    mean_amount: Optional[float] = None
    sum_quantity: Optional[int] = None


# ---------------------------------------------------------------------------
# Pipeline values
# ---------------------------------------------------------------------------

class Dataset(BaseModel):
    """The uniform row set every renderer consumes.

    Every row carries exactly the declared fields, in declared order.
    """

    kind: ReportKind
    fields: FieldList
    rows: list[ReportRow] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_rows_match_fields(self) -> "Dataset":
        expected = list(self.fields)
        for index, row in enumerate(self.rows):
            if list(row) != expected:
                raise ValueError(
                    f"row {index} keys {list(row)} do not match fields {expected}"
                )
        return self

    @property
    def title(self) -> str:
        return self.kind.report_title

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def values(self) -> list[list[Scalar]]:
        """Rows as positional lists in field order."""
        return [[row[f] for f in self.fields] for row in self.rows]


class ExportArtifact(BaseModel):
    """A rendered file plus its metadata."""

    model_config = ConfigDict(frozen=True)

    path: Path
    filename: str
    size_bytes: int
    created_at: datetime
    kind: ReportKind
    format: OutputFormat
    row_count: int = 0

    @classmethod
    def from_path(
        cls, path: Path, kind: ReportKind, fmt: OutputFormat, row_count: int
    ) -> "ExportArtifact":
        path = Path(path).resolve()
        stat = os.stat(path)
        return cls(
            path=path,
            filename=path.name,
            size_bytes=stat.st_size,
            created_at=datetime.fromtimestamp(stat.st_mtime, tz=UTC),
            kind=kind,
            format=fmt,
            row_count=row_count,
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe representation (used by the worker task)."""
        return {
            "path": str(self.path),
            "filename": self.filename,
            "size_bytes": self.size_bytes,
            "created_at": self.created_at.isoformat(),
            "kind": self.kind.value,
            "format": self.format.value,
            "row_count": self.row_count,
        }
