"""
Shared test fixtures and helpers.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import pytest

from shop_reports.export.models import Granularity, ReportKind, RowQuery, SalesBucket
from shop_reports.export.staging import StagingManager
from shop_reports.infra.config import Settings
from shop_reports.infra.datasource import AbstractDataSource
from shop_reports.infra.datasource_memory import InMemoryDataSource


FIXED_NOW = datetime(2025, 3, 15, 12, 30, 45, 123000, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Sample nested records
# ---------------------------------------------------------------------------


def make_order(
    *,
    id: str = "ord_0000abcd1234",
    order_number: str | None = "ORD-1001",
    status: str = "DELIVERED",
    total: Any = 120.5,
    created_at: str = "2025-03-01T10:15:00Z",
    items: list[dict] | None = None,
    user: dict | None = None,
) -> dict:
    return {
        "id": id,
        "orderNumber": order_number,
        "userId": "usr_1",
        "status": status,
        "paymentStatus": "PAID",
        "totalAmount": total,
        "subtotalAmount": 100,
        "taxAmount": 10.5,
        "shippingAmount": 10,
        "discountAmount": None,
        "paymentMethod": "card",
        "createdAt": created_at,
        "user": user if user is not None else {
            "email": "ada@example.com", "firstName": "Ada", "lastName": "Lovelace",
        },
        "shippingAddress": {
            "street": "1 Main St", "city": "Springfield", "state": "IL",
            "postalCode": "62701", "country": "US",
        },
        "items": items if items is not None else [
            {"quantity": 2, "product": {"name": "Widget", "sku": "W-1"}},
            {"quantity": 1, "product": {"name": "Gadget", "sku": "G-1"}},
        ],
    }


def make_product(
    *,
    id: str = "prd_1",
    name: str = "Widget",
    price: Any = 19.99,
    quantity: int = 12,
    ratings: tuple[int, ...] = (4, 5),
    featured: bool = False,
    active: bool = True,
) -> dict:
    return {
        "id": id,
        "name": name,
        "sku": f"SKU-{id}",
        "categoryId": "cat_1",
        "vendorId": "ven_1",
        "price": price,
        "compareAtPrice": None,
        "quantity": quantity,
        "isFeatured": featured,
        "isActive": active,
        "createdAt": "2025-01-01T00:00:00Z",
        "updatedAt": "2025-02-01T08:00:00Z",
        "category": {"name": "Tools"},
        "vendor": {"businessName": "Acme"},
        "reviews": [{"rating": r} for r in ratings],
    }


def make_customer(
    *,
    id: str = "usr_1",
    first: str = "Ada",
    last: str = "Lovelace",
    role: str = "CUSTOMER",
    orders: list[dict] | None = None,
    last_login: str | None = None,
) -> dict:
    return {
        "id": id,
        "email": f"{first.lower()}@example.com",
        "firstName": first,
        "lastName": last,
        "phone": None,
        "country": "US",
        "role": role,
        "isActive": True,
        "loyaltyPoints": 40,
        "createdAt": "2024-12-01T09:00:00Z",
        "lastLoginAt": last_login,
        "orders": orders if orders is not None else [
            {"totalAmount": 100, "status": "DELIVERED"},
            {"totalAmount": 50, "status": "SHIPPED"},
            {"totalAmount": 999, "status": "CANCELLED"},
        ],
        "addresses": [{"city": "Springfield"}],
    }


def make_vendor(*, id: str = "ven_1", name: str = "Acme") -> dict:
    return {
        "id": id,
        "businessName": name,
        "contactEmail": "sales@acme.test",
        "contactPhone": None,
        "status": "APPROVED",
        "commissionRate": 12.5,
        "createdAt": "2024-06-01T00:00:00Z",
        "updatedAt": "2024-06-02T00:00:00Z",
        "products": [{"id": "prd_1", "price": 10}, {"id": "prd_2", "price": 5.5}],
    }


# ---------------------------------------------------------------------------
# Data sources
# ---------------------------------------------------------------------------


class CountingSource(AbstractDataSource):
    """Stub data source that records every call it receives."""

    def __init__(self, rows: list[dict] | None = None, error: Exception | None = None):
        self.rows = rows or []
        self.error = error
        self.calls: list[tuple[str, Any]] = []
        self.closed = False

    def initialize(self) -> None:
        pass

    def find_rows(self, kind: ReportKind, query: RowQuery) -> list[dict]:
        self.calls.append(("find_rows", (kind, query)))
        if self.error is not None:
            raise self.error
        return list(self.rows)

    def find_time_bucketed_aggregates(
        self, start: datetime, end: datetime, granularity: Granularity
    ) -> list[SalesBucket]:
        self.calls.append(("buckets", (start, end, granularity)))
        if self.error is not None:
            raise self.error
        return list(self.rows)

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def memory_source() -> InMemoryDataSource:
    source = InMemoryDataSource()
    source.initialize()
    source.add("orders", [
        make_order(id="ord_a", created_at="2025-03-01T10:15:00Z", total=100),
        make_order(id="ord_b", created_at="2025-03-02T11:00:00Z", total=50,
                   items=[{"quantity": 4, "product": {"name": "Widget"}}]),
        make_order(id="ord_c", created_at="2025-03-03T09:00:00Z", total=30, status="SHIPPED"),
        make_order(id="ord_d", created_at="2025-03-03T12:00:00Z", total=500, status="CANCELLED"),
    ])
    source.add("products", [
        make_product(id="prd_1", name="Widget", quantity=12),
        make_product(id="prd_2", name="Anvil", price=250, quantity=0, ratings=()),
        make_product(id="prd_3", name="Gadget", price="7.25", quantity=3, featured=True),
    ])
    source.add("users", [
        make_customer(id="usr_1"),
        make_customer(id="usr_2", first="Grace", last="Hopper", orders=[],
                      last_login="2025-03-10T08:00:00Z"),
        make_customer(id="usr_9", first="Root", last="Admin", role="ADMIN"),
    ])
    source.add("vendors", [make_vendor(), make_vendor(id="ven_2", name="Bolt Co")])
    return source


@pytest.fixture()
def settings(tmp_path) -> Settings:
    s = Settings()
    s.db_backend = "memory"
    s.export_dir = str(tmp_path / "exports")
    s.export_unique_suffix = True
    s.export_timeout = 0
    s.csv_delimiter = ","
    s.timezone = "UTC"
    s.pdf_repeat_header = False
    s.sales_default_window_days = 30
    s.low_stock_threshold = 5
    s.medium_stock_threshold = 20
    return s


@pytest.fixture()
def staging(tmp_path) -> StagingManager:
    return StagingManager(tmp_path / "exports", clock=lambda: FIXED_NOW)
