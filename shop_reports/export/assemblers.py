"""
Dataset assemblers — one per report kind.

An assembler translates a caller's filter set into a :class:`RowQuery`,
pulls nested records from the data source, and shapes each one into a
flat :data:`ReportRow` through the field projector and value formatters.
All assemblers share the same downstream contract: a :class:`Dataset`.
"""

from __future__ import annotations

import abc
import datetime as dt
import logging
from collections.abc import Mapping
from typing import Any, Callable, ClassVar, Optional

from shop_reports.export.errors import DataAccessError, InvalidFilterError
from shop_reports.export.models import (
    Dataset,
    FieldList,
    Granularity,
    ReportKind,
    ReportRow,
    RowQuery,
    SalesBucket,
)
from shop_reports.export.projection import MISSING, or_default, project
from shop_reports.export.values import (
    NOT_AVAILABLE,
    average,
    format_bool,
    format_count,
    format_date,
    format_money,
    format_ratio,
    format_timestamp,
    placeholder,
    to_number,
)
from shop_reports.infra.config import Settings, get_settings
from shop_reports.infra.datasource import COMPLETED_ORDER_STATUSES, AbstractDataSource

logger = logging.getLogger(__name__)

FilterSet = Mapping[str, Any]


# ---------------------------------------------------------------------------
# Filter parsing
# ---------------------------------------------------------------------------

def _present(filters: FilterSet, key: str) -> bool:
    value = filters.get(key)
    return value is not None and value != ""


def parse_datetime(name: str, value: Any) -> dt.datetime:
    if isinstance(value, dt.datetime):
        return value
    if isinstance(value, dt.date):
        return dt.datetime(value.year, value.month, value.day)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return dt.datetime.fromisoformat(text)
    except ValueError:
        raise InvalidFilterError(name, value, "expected an ISO-8601 date") from None


def parse_number(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise InvalidFilterError(name, value, "expected a number")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidFilterError(name, value, "expected a number") from None


def parse_flag(name: str, value: Any) -> bool:
    """Accept real booleans and their query-string spellings."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "1", "yes"):
        return True
    if text in ("false", "0", "no"):
        return False
    raise InvalidFilterError(name, value, "expected true or false")


def _add_range(
    query: RowQuery,
    field: str,
    filters: FilterSet,
    low_key: str,
    high_key: str,
    parser: Callable[[str, Any], Any],
) -> None:
    """Add independent lower / upper bounds on *field*."""
    if _present(filters, low_key):
        query.add(field, "gte", parser(low_key, filters[low_key]))
    if _present(filters, high_key):
        query.add(field, "lte", parser(high_key, filters[high_key]))


def _add_equal(query: RowQuery, field: str, filters: FilterSet, key: str) -> None:
    if _present(filters, key):
        query.add(field, "eq", filters[key])


def _add_flag(query: RowQuery, field: str, filters: FilterSet, key: str) -> None:
    if _present(filters, key):
        query.add(field, "eq", parse_flag(key, filters[key]))


def _add_in_stock(query: RowQuery, filters: FilterSet) -> None:
    if _present(filters, "inStock"):
        if parse_flag("inStock", filters["inStock"]):
            query.add("quantity", "gt", 0)
        else:
            query.add("quantity", "lte", 0)


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------

class Assembler(abc.ABC):
    """Turns a filter set into a :class:`Dataset` for one report kind."""

    kind: ClassVar[ReportKind]
    fields: ClassVar[FieldList]

    def __init__(
        self,
        source: AbstractDataSource,
        settings: Optional[Settings] = None,
        tz: Optional[dt.tzinfo] = None,
    ) -> None:
        self.source = source
        self.settings = settings or get_settings()
        self.tz = tz

    def timestamp(self, record: Any, path: str, missing: str = NOT_AVAILABLE) -> str:
        return format_timestamp(project(record, path), tz=self.tz, missing=missing)

    @abc.abstractmethod
    def assemble(self, filters: Optional[FilterSet] = None) -> Dataset:
        """Fetch and shape every row selected by *filters*."""


class RowAssembler(Assembler):
    """Assembler for kinds whose rows map one-to-one onto source records."""

    default_order: ClassVar[str] = "id"
    default_descending: ClassVar[bool] = False
    sortable: ClassVar[frozenset[str]] = frozenset({"id"})

    # -- query ---------------------------------------------------------------

    @abc.abstractmethod
    def apply_filters(self, query: RowQuery, filters: FilterSet) -> None:
        """Translate kind-specific filters into conditions on *query*."""

    def build_query(self, filters: FilterSet) -> RowQuery:
        query = RowQuery(order_by=self.default_order, descending=self.default_descending)
        self.apply_filters(query, filters)

        sort_by = filters.get("sortBy")
        if sort_by:
            if sort_by in self.sortable:
                query.order_by = sort_by
                query.descending = str(filters.get("sortOrder", "asc")).lower() == "desc"
            else:
                logger.warning(
                    "Ignoring unknown sort field %r for %s export", sort_by, self.kind.value
                )
        return query

    # -- shaping -------------------------------------------------------------

    @abc.abstractmethod
    def shape(self, record: Mapping[str, Any]) -> ReportRow:
        """Flatten one nested record into a row keyed by :attr:`fields`."""

    # -- pipeline ------------------------------------------------------------

    def fetch(self, filters: FilterSet) -> list[Mapping[str, Any]]:
        query = self.build_query(filters)
        try:
            return list(self.source.find_rows(self.kind, query))
        except DataAccessError:
            raise
        except Exception as exc:
            logger.error("Error loading %s data: %s", self.kind.value, exc)
            raise DataAccessError(
                f"Failed to load {self.kind.value} data: {exc}", cause=exc
            ) from exc

    def assemble(self, filters: Optional[FilterSet] = None) -> Dataset:
        records = self.fetch(filters or {})
        rows = [self.shape(r) for r in records]
        return Dataset(kind=self.kind, fields=self.fields, rows=rows)


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

def _full_name(record: Any, path: str) -> str:
    person = project(record, path)
    if not isinstance(person, Mapping):
        return NOT_AVAILABLE
    first = or_default(project(person, "firstName"), "")
    last = or_default(project(person, "lastName"), "")
    return f"{first} {last}".strip() or NOT_AVAILABLE


def _address_line(address: Any) -> str:
    if not isinstance(address, Mapping):
        return NOT_AVAILABLE

    def part(key: str) -> str:
        return or_default(project(address, key), "")

    return (
        f"{part('street')}, {part('city')}, {part('state')} "
        f"{part('postalCode')}, {part('country')}"
    )


class OrdersAssembler(RowAssembler):
    kind = ReportKind.ORDERS
    fields = (
        "id",
        "orderNumber",
        "customerName",
        "customerEmail",
        "status",
        "paymentStatus",
        "totalAmount",
        "subtotalAmount",
        "taxAmount",
        "shippingAmount",
        "discountAmount",
        "shippingAddress",
        "paymentMethod",
        "createdAt",
        "itemCount",
        "items",
    )
    default_order = "createdAt"
    default_descending = True
    sortable = frozenset({"id", "createdAt", "totalAmount", "status", "orderNumber"})

    def apply_filters(self, query: RowQuery, filters: FilterSet) -> None:
        _add_range(query, "createdAt", filters, "startDate", "endDate", parse_datetime)
        _add_equal(query, "status", filters, "status")
        _add_equal(query, "paymentStatus", filters, "paymentStatus")
        _add_equal(query, "userId", filters, "userId")

    def shape(self, record: Mapping[str, Any]) -> ReportRow:
        order_id = str(or_default(project(record, "id"), ""))
        items = project(record, "items")
        items = items if isinstance(items, list) else []
        user = project(record, "user")
        return {
            "id": order_id,
            "orderNumber": placeholder(project(record, "orderNumber"), order_id[-8:].upper()),
            "customerName": _full_name(record, "user"),
            "customerEmail": (
                placeholder(project(user, "email")) if isinstance(user, Mapping) else NOT_AVAILABLE
            ),
            "status": placeholder(project(record, "status")),
            "paymentStatus": placeholder(project(record, "paymentStatus")),
            "totalAmount": format_money(project(record, "totalAmount")),
            "subtotalAmount": format_money(project(record, "subtotalAmount")),
            "taxAmount": format_money(project(record, "taxAmount")),
            "shippingAmount": format_money(project(record, "shippingAmount")),
            "discountAmount": format_money(project(record, "discountAmount")),
            "shippingAddress": _address_line(project(record, "shippingAddress")),
            "paymentMethod": placeholder(project(record, "paymentMethod")),
            "createdAt": self.timestamp(record, "createdAt"),
            "itemCount": len(items),
            "items": "; ".join(
                f"{or_default(project(i, 'product.name'), 'Unknown')} "
                f"({or_default(project(i, 'quantity'), 0)})"
                for i in items
            ),
        }


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------

def _ratings(record: Any) -> list[Any]:
    reviews = project(record, "reviews")
    if not isinstance(reviews, list):
        return []
    return [r for r in (project(v, "rating") for v in reviews) if r is not MISSING and r is not None]


class ProductsAssembler(RowAssembler):
    kind = ReportKind.PRODUCTS
    fields = (
        "id",
        "name",
        "sku",
        "category",
        "vendor",
        "price",
        "compareAtPrice",
        "quantity",
        "inStock",
        "featured",
        "active",
        "averageRating",
        "reviewCount",
        "createdAt",
        "updatedAt",
    )
    default_order = "name"
    sortable = frozenset({"id", "name", "sku", "price", "quantity", "createdAt", "updatedAt"})

    def apply_filters(self, query: RowQuery, filters: FilterSet) -> None:
        _add_equal(query, "categoryId", filters, "categoryId")
        _add_equal(query, "vendorId", filters, "vendorId")
        _add_range(query, "price", filters, "minPrice", "maxPrice", parse_number)
        _add_in_stock(query, filters)
        _add_flag(query, "isFeatured", filters, "featured")
        _add_flag(query, "isActive", filters, "active")

    def shape(self, record: Mapping[str, Any]) -> ReportRow:
        quantity = format_count(project(record, "quantity"))
        ratings = _ratings(record)
        return {
            "id": str(or_default(project(record, "id"), "")),
            "name": placeholder(project(record, "name"), ""),
            "sku": placeholder(project(record, "sku"), ""),
            "category": placeholder(project(record, "category.name")),
            "vendor": placeholder(project(record, "vendor.businessName")),
            "price": to_number(project(record, "price")),
            "compareAtPrice": to_number(project(record, "compareAtPrice")),
            "quantity": quantity,
            "inStock": format_bool(quantity > 0),
            "featured": format_bool(project(record, "isFeatured")),
            "active": format_bool(project(record, "isActive")),
            "averageRating": format_ratio(average(ratings)),
            "reviewCount": len(ratings),
            "createdAt": self.timestamp(record, "createdAt"),
            "updatedAt": self.timestamp(record, "updatedAt"),
        }


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------

class CustomersAssembler(RowAssembler):
    kind = ReportKind.CUSTOMERS
    fields = (
        "id",
        "email",
        "fullName",
        "firstName",
        "lastName",
        "phone",
        "country",
        "isActive",
        "orderCount",
        "totalSpent",
        "averageOrderValue",
        "loyaltyPoints",
        "createdAt",
        "lastLoginAt",
        "addressCount",
    )
    default_order = "lastName"
    sortable = frozenset({"id", "email", "firstName", "lastName", "country", "createdAt"})

    def apply_filters(self, query: RowQuery, filters: FilterSet) -> None:
        query.add("role", "eq", "CUSTOMER")
        _add_range(query, "createdAt", filters, "startDate", "endDate", parse_datetime)
        _add_flag(query, "isActive", filters, "isActive")
        _add_equal(query, "country", filters, "country")

    def shape(self, record: Mapping[str, Any]) -> ReportRow:
        orders = project(record, "orders")
        orders = orders if isinstance(orders, list) else []
        completed = [
            o for o in orders if project(o, "status") in COMPLETED_ORDER_STATUSES
        ]
        amounts = [or_default(project(o, "totalAmount"), 0) for o in completed]
        addresses = project(record, "addresses")
        first = or_default(project(record, "firstName"), "")
        last = or_default(project(record, "lastName"), "")
        return {
            "id": str(or_default(project(record, "id"), "")),
            "email": placeholder(project(record, "email"), ""),
            "fullName": f"{first} {last}".strip(),
            "firstName": first,
            "lastName": last,
            "phone": placeholder(project(record, "phone")),
            "country": placeholder(project(record, "country")),
            "isActive": format_bool(project(record, "isActive")),
            "orderCount": len(completed),
            "totalSpent": format_money(sum(to_number(a) for a in amounts)),
            "averageOrderValue": format_ratio(average(amounts)),
            "loyaltyPoints": format_count(project(record, "loyaltyPoints")),
            "createdAt": self.timestamp(record, "createdAt"),
            "lastLoginAt": self.timestamp(record, "lastLoginAt", missing="Never"),
            "addressCount": len(addresses) if isinstance(addresses, list) else 0,
        }


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------

class InventoryAssembler(RowAssembler):
    kind = ReportKind.INVENTORY
    fields = (
        "id",
        "sku",
        "name",
        "category",
        "vendor",
        "quantity",
        "price",
        "totalValue",
        "status",
        "lastUpdated",
    )
    default_order = "quantity"
    sortable = frozenset({"id", "sku", "name", "quantity", "price", "updatedAt"})

    def apply_filters(self, query: RowQuery, filters: FilterSet) -> None:
        _add_equal(query, "categoryId", filters, "categoryId")
        _add_equal(query, "vendorId", filters, "vendorId")
        _add_range(query, "quantity", filters, "minQuantity", "maxQuantity", parse_number)
        _add_in_stock(query, filters)

    def stock_status(self, quantity: int) -> str:
        if quantity <= 0:
            return "Out of Stock"
        if quantity <= self.settings.low_stock_threshold:
            return "Low Stock"
        if quantity <= self.settings.medium_stock_threshold:
            return "Medium Stock"
        return "Good Stock"

    def shape(self, record: Mapping[str, Any]) -> ReportRow:
        quantity = format_count(project(record, "quantity"))
        price = to_number(project(record, "price"))
        return {
            "id": str(or_default(project(record, "id"), "")),
            "sku": placeholder(project(record, "sku"), ""),
            "name": placeholder(project(record, "name"), ""),
            "category": placeholder(project(record, "category.name")),
            "vendor": placeholder(project(record, "vendor.businessName")),
            "quantity": quantity,
            "price": price,
            "totalValue": format_money(quantity * price),
            "status": self.stock_status(quantity),
            "lastUpdated": self.timestamp(record, "updatedAt"),
        }


# ---------------------------------------------------------------------------
# Vendors
# ---------------------------------------------------------------------------

class VendorsAssembler(RowAssembler):
    kind = ReportKind.VENDORS
    fields = (
        "id",
        "businessName",
        "contactEmail",
        "contactPhone",
        "status",
        "commissionRate",
        "totalProducts",
        "totalValue",
        "createdAt",
        "updatedAt",
    )
    default_order = "businessName"
    sortable = frozenset({"id", "businessName", "status", "commissionRate", "createdAt"})

    def apply_filters(self, query: RowQuery, filters: FilterSet) -> None:
        _add_equal(query, "status", filters, "status")
        _add_range(query, "createdAt", filters, "startDate", "endDate", parse_datetime)

    def shape(self, record: Mapping[str, Any]) -> ReportRow:
        products = project(record, "products")
        products = products if isinstance(products, list) else []
        return {
            "id": str(or_default(project(record, "id"), "")),
            "businessName": placeholder(project(record, "businessName"), ""),
            "contactEmail": placeholder(project(record, "contactEmail"), ""),
            "contactPhone": placeholder(project(record, "contactPhone")),
            "status": placeholder(project(record, "status")),
            "commissionRate": to_number(project(record, "commissionRate")),
            "totalProducts": len(products),
            "totalValue": format_money(sum(to_number(project(p, "price")) for p in products)),
            "createdAt": self.timestamp(record, "createdAt"),
            "updatedAt": self.timestamp(record, "updatedAt"),
        }


# ---------------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------------

class SalesAssembler(Assembler):
    """Renders pre-aggregated sales buckets; performs no aggregation itself."""

    kind = ReportKind.SALES
    fields = ("date", "sales", "orders", "avgOrderValue", "itemsSold")

    def __init__(
        self,
        source: AbstractDataSource,
        settings: Optional[Settings] = None,
        tz: Optional[dt.tzinfo] = None,
        clock: Optional[Callable[[], dt.datetime]] = None,
    ) -> None:
        super().__init__(source, settings, tz)
        self._clock = clock or (lambda: dt.datetime.now(tz=dt.timezone.utc))

    def window(self, filters: FilterSet) -> tuple[dt.datetime, dt.datetime, Granularity]:
        """Resolve ``(start, end, granularity)`` from *filters*."""
        end = (
            parse_datetime("endDate", filters["endDate"])
            if _present(filters, "endDate")
            else self._clock()
        )
        start = (
            parse_datetime("startDate", filters["startDate"])
            if _present(filters, "startDate")
            else end - dt.timedelta(days=self.settings.sales_default_window_days)
        )
        if (start.tzinfo is None) != (end.tzinfo is None):
            # Treat naive bounds as UTC when mixed with an aware one.
            start = start if start.tzinfo else start.replace(tzinfo=dt.timezone.utc)
            end = end if end.tzinfo else end.replace(tzinfo=dt.timezone.utc)
        if start > end:
            raise InvalidFilterError("startDate", filters.get("startDate"), "after endDate")

        interval = filters.get("interval") or Granularity.DAILY.value
        try:
            granularity = Granularity(str(getattr(interval, "value", interval)).lower())
        except ValueError:
            raise InvalidFilterError(
                "interval", interval, "expected hourly, daily, weekly or monthly"
            ) from None
        return start, end, granularity

    def fetch_buckets(self, filters: FilterSet) -> list[SalesBucket]:
        start, end, granularity = self.window(filters)
        try:
            buckets = list(self.source.find_time_bucketed_aggregates(start, end, granularity))
        except DataAccessError:
            raise
        except Exception as exc:
            logger.error("Error loading sales aggregates: %s", exc)
            raise DataAccessError(f"Failed to load sales data: {exc}", cause=exc) from exc
        return sorted(buckets, key=lambda b: b.bucket_start)

    def shape_bucket(self, bucket: SalesBucket, granularity: Granularity) -> ReportRow:
        if granularity is Granularity.HOURLY:
            label = format_timestamp(bucket.bucket_start)
        else:
            label = format_date(bucket.bucket_start)
        return {
            "date": label,
            "sales": format_money(bucket.sum_amount),
            "orders": format_count(bucket.count),
            "avgOrderValue": format_ratio(bucket.mean_amount),
            "itemsSold": format_count(bucket.sum_quantity),
        }

    def assemble(self, filters: Optional[FilterSet] = None) -> Dataset:
        filters = filters or {}
        _, _, granularity = self.window(filters)
        rows = [self.shape_bucket(b, granularity) for b in self.fetch_buckets(filters)]
        return Dataset(kind=self.kind, fields=self.fields, rows=rows)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

ASSEMBLER_REGISTRY: dict[ReportKind, type[Assembler]] = {
    ReportKind.ORDERS: OrdersAssembler,
    ReportKind.PRODUCTS: ProductsAssembler,
    ReportKind.CUSTOMERS: CustomersAssembler,
    ReportKind.SALES: SalesAssembler,
    ReportKind.INVENTORY: InventoryAssembler,
    ReportKind.VENDORS: VendorsAssembler,
}


def get_assembler(
    kind: ReportKind,
    source: AbstractDataSource,
    settings: Optional[Settings] = None,
    tz: Optional[dt.tzinfo] = None,
) -> Assembler:
    return ASSEMBLER_REGISTRY[kind](source, settings=settings, tz=tz)
