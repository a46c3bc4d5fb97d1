"""
Configuration and dependency wiring.

Single Responsibility: only manages settings and shared resources.
All user-tunable values live here as environment-variable-backed
class attributes so they can be changed via ``.env`` without touching code.
"""

from __future__ import annotations

import datetime as dt
import os
import re as _re
from functools import lru_cache
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

from shop_reports.infra.datasource import AbstractDataSource

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Application settings read from environment variables.

    Every attribute has a sensible default so exports run out of the box
    against a local SQLite database.
    """

    # -- Database --------------------------------------------------------------
    db_backend: str = os.getenv("DB_BACKEND", "sqlite")
    sqlite_path: str = os.getenv("SQLITE_PATH", "shop.db")

    # -- Redis / Celery --------------------------------------------------------
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # -- Timezone ---------------------------------------------------------------
    # Used for timestamps printed inside exported files.
    timezone: str = os.getenv("TIMEZONE", "UTC")

    # -- Export staging ---------------------------------------------------------
    export_dir: str = os.getenv("EXPORT_DIR", "exports")
    export_unique_suffix: bool = _env_bool("EXPORT_UNIQUE_SUFFIX", "true")
    # Seconds allowed per export call; 0 disables the deadline.
    export_timeout: float = float(os.getenv("EXPORT_TIMEOUT", "120"))

    # -- Renderers --------------------------------------------------------------
    csv_delimiter: str = os.getenv("CSV_DELIMITER", ",")
    pdf_page_format: str = os.getenv("PDF_PAGE_FORMAT", "A4")
    pdf_orientation: str = os.getenv("PDF_ORIENTATION", "P")
    pdf_repeat_header: bool = _env_bool("PDF_REPEAT_HEADER", "false")

    # -- Report thresholds -------------------------------------------------------
    sales_default_window_days: int = int(
        os.getenv("SALES_DEFAULT_WINDOW_DAYS", "30")
    )
    low_stock_threshold: int = int(os.getenv("LOW_STOCK_THRESHOLD", "5"))
    medium_stock_threshold: int = int(os.getenv("MEDIUM_STOCK_THRESHOLD", "20"))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def _parse_tz(name: str) -> dt.tzinfo:
    """Parse a timezone string into a :class:`datetime.tzinfo`.

    Supports:
    * IANA names  – ``Asia/Manila``, ``US/Eastern``, ``UTC``
    * Offset form – ``UTC+8``, ``GMT+8``, ``UTC-5``, ``GMT-05:30``
    """
    m = _re.match(
        r"^(?:UTC|GMT)([+-])(\d{1,2})(?::(\d{2}))?$", name, _re.IGNORECASE
    )
    if m:
        sign = 1 if m.group(1) == "+" else -1
        hours = int(m.group(2))
        minutes = int(m.group(3) or 0)
        return dt.timezone(dt.timedelta(hours=sign * hours, minutes=sign * minutes))
    if name.upper() == "UTC":
        return dt.timezone.utc
    return ZoneInfo(name)


def get_tz(settings: Settings | None = None) -> dt.tzinfo:
    """Return the timezone exported timestamps are rendered in."""
    s = settings or get_settings()
    return _parse_tz(s.timezone)


def get_data_source(settings: Settings | None = None) -> AbstractDataSource:
    """
    Factory that returns the correct data-source implementation
    based on the DB_BACKEND environment variable.

    Callers receive the abstract interface, never a concrete class.
    """
    s = settings or get_settings()
    if s.db_backend.lower() == "memory":
        from shop_reports.infra.datasource_memory import InMemoryDataSource

        source: AbstractDataSource = InMemoryDataSource()
    else:
        from shop_reports.infra.datasource_sqlite import SQLiteDataSource

        source = SQLiteDataSource(db_path=s.sqlite_path)
    try:
        source.initialize()
    except Exception:
        source.close()
        raise
    return source
