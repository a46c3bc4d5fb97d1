"""
SQLite implementation of the export data source.

Used as the default backend for local development. Rows are loaded with
parameterised SQL and their relations attached as nested records, so
assemblers see the same shapes the in-memory source returns.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Any, Iterable

from shop_reports.export.errors import DataAccessError
from shop_reports.export.models import Granularity, ReportKind, RowQuery, SalesBucket
from shop_reports.infra.datasource import (
    COMPLETED_ORDER_STATUSES,
    KIND_TABLES,
    AbstractDataSource,
    to_naive_utc,
)

logger = logging.getLogger(__name__)

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id            TEXT PRIMARY KEY,
    email         TEXT NOT NULL,
    firstName     TEXT NOT NULL DEFAULT '',
    lastName      TEXT NOT NULL DEFAULT '',
    phone         TEXT,
    country       TEXT,
    role          TEXT NOT NULL DEFAULT 'CUSTOMER',
    isActive      INTEGER NOT NULL DEFAULT 1,
    loyaltyPoints INTEGER NOT NULL DEFAULT 0,
    createdAt     TEXT NOT NULL,
    lastLoginAt   TEXT
);
CREATE TABLE IF NOT EXISTS addresses (
    id         TEXT PRIMARY KEY,
    userId     TEXT NOT NULL REFERENCES users (id),
    street     TEXT NOT NULL DEFAULT '',
    city       TEXT NOT NULL DEFAULT '',
    state      TEXT NOT NULL DEFAULT '',
    postalCode TEXT NOT NULL DEFAULT '',
    country    TEXT NOT NULL DEFAULT ''
);
CREATE TABLE IF NOT EXISTS categories (
    id   TEXT PRIMARY KEY,
    name TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS vendors (
    id             TEXT PRIMARY KEY,
    businessName   TEXT NOT NULL,
    contactEmail   TEXT NOT NULL DEFAULT '',
    contactPhone   TEXT,
    status         TEXT NOT NULL DEFAULT 'PENDING',
    commissionRate REAL NOT NULL DEFAULT 0,
    createdAt      TEXT NOT NULL,
    updatedAt      TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS products (
    id             TEXT PRIMARY KEY,
    name           TEXT NOT NULL,
    sku            TEXT NOT NULL DEFAULT '',
    categoryId     TEXT REFERENCES categories (id),
    vendorId       TEXT REFERENCES vendors (id),
    price          REAL NOT NULL DEFAULT 0,
    compareAtPrice REAL,
    quantity       INTEGER NOT NULL DEFAULT 0,
    isFeatured     INTEGER NOT NULL DEFAULT 0,
    isActive       INTEGER NOT NULL DEFAULT 1,
    createdAt      TEXT NOT NULL,
    updatedAt      TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS reviews (
    id        TEXT PRIMARY KEY,
    productId TEXT NOT NULL REFERENCES products (id),
    rating    INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS orders (
    id                TEXT PRIMARY KEY,
    orderNumber       TEXT,
    userId            TEXT REFERENCES users (id),
    status            TEXT NOT NULL DEFAULT 'PENDING',
    paymentStatus     TEXT NOT NULL DEFAULT 'PENDING',
    totalAmount       REAL NOT NULL DEFAULT 0,
    subtotalAmount    REAL NOT NULL DEFAULT 0,
    taxAmount         REAL NOT NULL DEFAULT 0,
    shippingAmount    REAL NOT NULL DEFAULT 0,
    discountAmount    REAL,
    shippingAddressId TEXT REFERENCES addresses (id),
    paymentMethod     TEXT NOT NULL DEFAULT '',
    createdAt         TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_orders_created ON orders (createdAt);
CREATE TABLE IF NOT EXISTS order_items (
    id        TEXT PRIMARY KEY,
    orderId   TEXT NOT NULL REFERENCES orders (id),
    productId TEXT REFERENCES products (id),
    quantity  INTEGER,
    price     REAL NOT NULL DEFAULT 0
);
"""

# Columns a RowQuery may filter or sort on, per table.
_QUERYABLE: dict[str, frozenset[str]] = {
    "orders": frozenset(
        {"id", "orderNumber", "userId", "status", "paymentStatus",
         "totalAmount", "createdAt"}
    ),
    "products": frozenset(
        {"id", "name", "sku", "categoryId", "vendorId", "price", "quantity",
         "isFeatured", "isActive", "createdAt", "updatedAt"}
    ),
    "users": frozenset(
        {"id", "email", "firstName", "lastName", "country", "role",
         "isActive", "createdAt", "lastLoginAt"}
    ),
    "vendors": frozenset(
        {"id", "businessName", "status", "commissionRate", "createdAt",
         "updatedAt"}
    ),
}

_TABLES = frozenset(
    {"users", "addresses", "categories", "vendors", "products", "reviews",
     "orders", "order_items"}
)

_BOOL_COLUMNS = frozenset({"isActive", "isFeatured"})

_SQL_OPS = {"eq": "=", "gt": ">", "gte": ">=", "lt": "<", "lte": "<="}

_BUCKET_SQL = {
    Granularity.HOURLY: "strftime('%Y-%m-%d %H:00:00', o.createdAt)",
    Granularity.DAILY: "date(o.createdAt)",
    # Advance to Sunday, then back to that week's Monday.
    Granularity.WEEKLY: "date(o.createdAt, 'weekday 0', '-6 days')",
    Granularity.MONTHLY: "strftime('%Y-%m-01', o.createdAt)",
}


def _adapt(value: Any) -> Any:
    """Convert Python values into the storage form used by the schema."""
    if isinstance(value, datetime):
        return to_naive_utc(value).isoformat(sep=" ", timespec="seconds")
    if isinstance(value, bool):
        return int(value)
    return value


def _placeholders(values: Iterable[Any]) -> str:
    return ", ".join("?" for _ in values)


class SQLiteDataSource(AbstractDataSource):
    """SQLite-backed data source — great for dev / single-node use."""

    def __init__(self, db_path: str = "shop.db") -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                self._conn = sqlite3.connect(self._db_path)
            except sqlite3.Error as exc:
                raise DataAccessError(
                    f"Cannot open database {self._db_path!r}: {exc}", cause=exc
                ) from exc
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _fetch(self, sql: str, params: Iterable[Any] = ()) -> list[dict]:
        try:
            rows = self._get_conn().execute(sql, tuple(params)).fetchall()
        except sqlite3.Error as exc:
            logger.error("Query failed: %s", exc)
            raise DataAccessError(f"Query failed: {exc}", cause=exc) from exc
        return [dict(r) for r in rows]

    def initialize(self) -> None:
        conn = self._get_conn()
        try:
            conn.executescript(_SCHEMA_SQL)
            conn.commit()
        except sqlite3.Error as exc:
            raise DataAccessError(f"Cannot initialise schema: {exc}", cause=exc) from exc

    def insert(self, table: str, records: Iterable[dict]) -> None:
        """Insert flat *records* into *table* (seeding and tests)."""
        if table not in _TABLES:
            raise ValueError(f"Unknown table {table!r}")
        conn = self._get_conn()
        for record in records:
            columns = list(record)
            conn.execute(
                f"INSERT INTO {table} ({', '.join(columns)}) "
                f"VALUES ({_placeholders(columns)})",
                tuple(_adapt(record[c]) for c in columns),
            )
        conn.commit()

    # ------------------------------------------------------------------
    # Row queries
    # ------------------------------------------------------------------

    def find_rows(self, kind: ReportKind, query: RowQuery) -> list[dict]:
        try:
            table = KIND_TABLES[kind]
        except KeyError:
            raise DataAccessError(f"No row table for report kind {kind.value!r}") from None

        allowed = _QUERYABLE[table]
        clauses: list[str] = []
        params: list[Any] = []
        for cond in query.conditions:
            if cond.field not in allowed:
                raise DataAccessError(
                    f"Column {cond.field!r} cannot be queried on {table!r}"
                )
            clauses.append(f"{cond.field} {_SQL_OPS[cond.op]} ?")
            params.append(_adapt(cond.value))
        if query.order_by not in allowed:
            raise DataAccessError(f"Cannot order {table!r} by {query.order_by!r}")

        sql = f"SELECT * FROM {table}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += f" ORDER BY {query.order_by} {'DESC' if query.descending else 'ASC'}, id ASC"

        rows = self._fetch(sql, params)
        for row in rows:
            for column in _BOOL_COLUMNS.intersection(row):
                row[column] = bool(row[column])

        attach = {
            "orders": self._attach_order_relations,
            "products": self._attach_product_relations,
            "users": self._attach_user_relations,
            "vendors": self._attach_vendor_relations,
        }[table]
        attach(rows)
        logger.debug("find_rows(%s) returned %d rows", kind.value, len(rows))
        return rows

    def _by_ids(self, table: str, column: str, ids: list[Any]) -> list[dict]:
        ids = [i for i in dict.fromkeys(ids) if i is not None]
        if not ids:
            return []
        return self._fetch(
            f"SELECT * FROM {table} WHERE {column} IN ({_placeholders(ids)})", ids
        )

    def _attach_order_relations(self, orders: list[dict]) -> None:
        users = {u["id"]: u for u in self._by_ids("users", "id", [o["userId"] for o in orders])}
        addresses = {
            a["id"]: a
            for a in self._by_ids("addresses", "id", [o["shippingAddressId"] for o in orders])
        }
        items = self._by_ids("order_items", "orderId", [o["id"] for o in orders])
        products = {
            p["id"]: p for p in self._by_ids("products", "id", [i["productId"] for i in items])
        }
        items_by_order: dict[str, list[dict]] = {}
        for item in items:
            product = products.get(item["productId"])
            item["product"] = (
                {"name": product["name"], "sku": product["sku"]} if product else None
            )
            items_by_order.setdefault(item["orderId"], []).append(item)

        for order in orders:
            user = users.get(order["userId"])
            order["user"] = (
                {k: user[k] for k in ("email", "firstName", "lastName")} if user else None
            )
            order["shippingAddress"] = addresses.get(order["shippingAddressId"])
            order["items"] = items_by_order.get(order["id"], [])

    def _attach_product_relations(self, products: list[dict]) -> None:
        categories = {
            c["id"]: c for c in self._by_ids("categories", "id", [p["categoryId"] for p in products])
        }
        vendors = {
            v["id"]: v for v in self._by_ids("vendors", "id", [p["vendorId"] for p in products])
        }
        reviews: dict[str, list[dict]] = {}
        for review in self._by_ids("reviews", "productId", [p["id"] for p in products]):
            reviews.setdefault(review["productId"], []).append({"rating": review["rating"]})

        for product in products:
            category = categories.get(product["categoryId"])
            vendor = vendors.get(product["vendorId"])
            product["category"] = {"name": category["name"]} if category else None
            product["vendor"] = {"businessName": vendor["businessName"]} if vendor else None
            product["reviews"] = reviews.get(product["id"], [])

    def _attach_user_relations(self, users: list[dict]) -> None:
        ids = [u["id"] for u in users]
        orders: dict[str, list[dict]] = {}
        for order in self._by_ids("orders", "userId", ids):
            orders.setdefault(order["userId"], []).append(
                {"totalAmount": order["totalAmount"], "status": order["status"]}
            )
        addresses: dict[str, list[dict]] = {}
        for address in self._by_ids("addresses", "userId", ids):
            addresses.setdefault(address["userId"], []).append(address)

        for user in users:
            user["orders"] = orders.get(user["id"], [])
            user["addresses"] = addresses.get(user["id"], [])

    def _attach_vendor_relations(self, vendors: list[dict]) -> None:
        products: dict[str, list[dict]] = {}
        for product in self._by_ids("products", "vendorId", [v["id"] for v in vendors]):
            products.setdefault(product["vendorId"], []).append(
                {"id": product["id"], "price": product["price"]}
            )
        for vendor in vendors:
            vendor["products"] = products.get(vendor["id"], [])

    # ------------------------------------------------------------------
    # Sales aggregation
    # ------------------------------------------------------------------

    def find_time_bucketed_aggregates(
        self,
        start: datetime,
        end: datetime,
        granularity: Granularity,
    ) -> list[SalesBucket]:
        bucket = _BUCKET_SQL[granularity]
        statuses = list(COMPLETED_ORDER_STATUSES)
        rows = self._fetch(
            f"""
            SELECT
                {bucket} AS bucket,
                SUM(o.totalAmount) AS sum_amount,
                COUNT(*) AS order_count,
                AVG(o.totalAmount) AS mean_amount,
                SUM(COALESCE((
                    SELECT SUM(i.quantity) FROM order_items i WHERE i.orderId = o.id
                ), 0)) AS sum_quantity
            FROM orders o
            WHERE o.createdAt >= ?
              AND o.createdAt <= ?
              AND o.status IN ({_placeholders(statuses)})
            GROUP BY bucket
            ORDER BY bucket ASC
            """,
            [_adapt(start), _adapt(end), *statuses],
        )
        return [
            SalesBucket(
                bucket_start=datetime.fromisoformat(r["bucket"]),
                sum_amount=r["sum_amount"],
                count=r["order_count"],
                mean_amount=r["mean_amount"],
                sum_quantity=r["sum_quantity"],
            )
            for r in rows
        ]

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None
