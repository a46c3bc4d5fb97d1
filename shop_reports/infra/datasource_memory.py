"""
In-memory implementation of the export data source.

Holds nested records per collection and evaluates :class:`RowQuery`
conditions in Python. Sales buckets are computed with pandas. Used by
``DB_BACKEND=memory`` and throughout the test-suite.
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime
from typing import Any, Iterable, Optional

import pandas as pd

from shop_reports.export.errors import DataAccessError
from shop_reports.export.models import (
    Condition,
    Granularity,
    ReportKind,
    RowQuery,
    SalesBucket,
)
from shop_reports.infra.datasource import (
    COMPLETED_ORDER_STATUSES,
    KIND_TABLES,
    AbstractDataSource,
    to_naive_utc,
)

logger = logging.getLogger(__name__)

_OPS = {
    "eq": lambda a, b: a == b,
    "gt": lambda a, b: a > b,
    "gte": lambda a, b: a >= b,
    "lt": lambda a, b: a < b,
    "lte": lambda a, b: a <= b,
}


def _comparable(value: Any) -> Any:
    """Bring aware datetimes to naive UTC so they compare with stored values."""
    if isinstance(value, datetime):
        return to_naive_utc(value)
    return value


def _coerce_pair(left: Any, right: Any) -> tuple[Any, Any]:
    left, right = _comparable(left), _comparable(right)
    if isinstance(right, datetime) and isinstance(left, str):
        left = to_naive_utc(datetime.fromisoformat(left.replace("Z", "+00:00")))
    return left, right


def _matches(record: dict, condition: Condition) -> bool:
    value = record.get(condition.field)
    if value is None:
        return condition.op == "eq" and condition.value is None
    left, right = _coerce_pair(value, condition.value)
    try:
        return bool(_OPS[condition.op](left, right))
    except TypeError:
        return False


def _sort_key(field: str):
    def key(record: dict) -> tuple[bool, Any]:
        value = _comparable(record.get(field))
        return (value is None, value if value is not None else 0)

    return key


def _bucket_series(created: pd.Series, granularity: Granularity) -> pd.Series:
    if granularity is Granularity.HOURLY:
        return created.dt.floor("h")
    if granularity is Granularity.DAILY:
        return created.dt.floor("D")
    if granularity is Granularity.WEEKLY:
        # W-SUN periods run Monday..Sunday.
        return created.dt.to_period("W-SUN").dt.start_time
    return created.dt.to_period("M").dt.start_time


class InMemoryDataSource(AbstractDataSource):
    """Dict-backed data source — for tests, demos and fixtures."""

    def __init__(self, tables: Optional[dict[str, list[dict]]] = None) -> None:
        self._tables: dict[str, list[dict]] = {
            name: list(rows) for name, rows in (tables or {}).items()
        }

    def initialize(self) -> None:
        for name in set(KIND_TABLES.values()):
            self._tables.setdefault(name, [])

    def add(self, table: str, records: Iterable[dict]) -> None:
        self._tables.setdefault(table, []).extend(records)

    def find_rows(self, kind: ReportKind, query: RowQuery) -> list[dict]:
        try:
            table = KIND_TABLES[kind]
        except KeyError:
            raise DataAccessError(f"No row collection for report kind {kind.value!r}") from None

        rows = [
            r for r in self._tables.get(table, [])
            if all(_matches(r, c) for c in query.conditions)
        ]
        rows.sort(key=_sort_key(query.order_by), reverse=query.descending)
        logger.debug("find_rows(%s) matched %d records", kind.value, len(rows))
        return copy.deepcopy(rows)

    def find_time_bucketed_aggregates(
        self,
        start: datetime,
        end: datetime,
        granularity: Granularity,
    ) -> list[SalesBucket]:
        start, end = to_naive_utc(start), to_naive_utc(end)
        frame = pd.DataFrame(
            [
                {
                    "created_at": _coerce_pair(o.get("createdAt"), start)[0],
                    "amount": float(o.get("totalAmount") or 0),
                    "quantity": sum(int(i.get("quantity") or 0) for i in o.get("items") or []),
                }
                for o in self._tables.get("orders", [])
                if o.get("status") in COMPLETED_ORDER_STATUSES and o.get("createdAt")
            ],
            columns=["created_at", "amount", "quantity"],
        )
        if frame.empty:
            return []

        frame["created_at"] = pd.to_datetime(frame["created_at"])
        frame = frame[(frame["created_at"] >= start) & (frame["created_at"] <= end)].copy()
        if frame.empty:
            return []

        frame["bucket"] = _bucket_series(frame["created_at"], granularity)
        grouped = (
            frame.groupby("bucket")
            .agg(
                sum_amount=("amount", "sum"),
                count=("amount", "size"),
                mean_amount=("amount", "mean"),
                sum_quantity=("quantity", "sum"),
            )
            .sort_index()
        )
        return [
            SalesBucket(
                bucket_start=bucket.to_pydatetime(),
                sum_amount=float(row["sum_amount"]),
                count=int(row["count"]),
                mean_amount=float(row["mean_amount"]),
                sum_quantity=int(row["sum_quantity"]),
            )
            for bucket, row in grouped.iterrows()
        ]

    def close(self) -> None:
        pass
