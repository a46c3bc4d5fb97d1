"""
Abstract data-source interface consumed by the export assemblers.

Dependency Inversion Principle: assemblers depend on this abstract
interface, never on a concrete database implementation. Implementations
return already-joined nested records and perform the time-bucketed
sales aggregation themselves.
"""

from __future__ import annotations

import abc
from datetime import UTC, datetime

from shop_reports.export.models import Granularity, ReportKind, RowQuery, SalesBucket

# Order statuses that count as a completed sale.
COMPLETED_ORDER_STATUSES = ("DELIVERED", "SHIPPED")

# Backing collection of each row-based report kind. Sales is served by
# find_time_bucketed_aggregates only.
KIND_TABLES: dict[ReportKind, str] = {
    ReportKind.ORDERS: "orders",
    ReportKind.PRODUCTS: "products",
    ReportKind.INVENTORY: "products",
    ReportKind.CUSTOMERS: "users",
    ReportKind.VENDORS: "vendors",
}


def to_naive_utc(value: datetime) -> datetime:
    """Normalise *value* to a naive UTC datetime (storage form)."""
    if value.tzinfo is not None:
        value = value.astimezone(UTC).replace(tzinfo=None)
    return value


class AbstractDataSource(abc.ABC):
    """
    Interface that all export data sources must implement.

    Only the operations the export assemblers actually need are
    declared here.
    """

    @abc.abstractmethod
    def initialize(self) -> None:
        """Create tables / schema if they don't exist."""

    @abc.abstractmethod
    def find_rows(self, kind: ReportKind, query: RowQuery) -> list[dict]:
        """Return nested records of *kind* matching *query*, in query order.

        Record shapes per kind:

        * orders — order columns plus ``user`` (email, firstName,
          lastName), ``items`` (quantity, ``product`` name/sku) and
          ``shippingAddress``.
        * products / inventory — product columns plus ``category``
          (name), ``vendor`` (businessName) and ``reviews`` (rating).
        * customers — user columns plus ``orders`` (totalAmount, status)
          and ``addresses``.
        * vendors — vendor columns plus ``products`` (id, price).
        """

    @abc.abstractmethod
    def find_time_bucketed_aggregates(
        self,
        start: datetime,
        end: datetime,
        granularity: Granularity,
    ) -> list[SalesBucket]:
        """Aggregate completed orders in ``[start, end]`` into time buckets.

        One bucket per non-empty interval, ascending by bucket start.
        Weeks start on Monday. A null item quantity counts as zero.
        """

    @abc.abstractmethod
    def close(self) -> None:
        """Release database resources."""
