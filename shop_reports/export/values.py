"""
Value formatting helpers shared by every assembler.

All functions are pure and locale-free. Missing numeric aggregates are
treated as zero, never propagated as missing.
"""

from __future__ import annotations

import datetime as dt
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Optional

from shop_reports.export.projection import MISSING

NOT_AVAILABLE = "N/A"

_TWO_PLACES = Decimal("0.01")
_TIMESTAMP_FMT = "%Y-%m-%d %H:%M:%S"
_DATE_FMT = "%Y-%m-%d"


def _is_missing(value: Any) -> bool:
    return value is MISSING or value is None or value == ""


def _to_decimal(value: Any) -> Decimal:
    if _is_missing(value):
        return Decimal(0)
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # repr() gives the shortest round-tripping form, so 2.675 stays 2.675.
        return Decimal(repr(value))
    try:
        return Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"not a number: {value!r}") from None


def format_money(amount: Any) -> str:
    """Currency amount as a two-decimal fixed string; missing → ``"0.00"``."""
    return str(_to_decimal(amount).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP))


def format_ratio(value: Any) -> str:
    """Averages and ratios as two-decimal strings; missing → ``"0.00"``."""
    return format_money(value)


def format_count(value: Any) -> int:
    """Integer aggregate; missing → ``0``."""
    if _is_missing(value):
        return 0
    return int(_to_decimal(value))


def to_number(value: Any) -> int | float:
    """Numeric cell value: ints stay ints, everything else becomes float."""
    if _is_missing(value):
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    number = _to_decimal(value)
    if number == number.to_integral_value() and not isinstance(value, (float, Decimal)):
        return int(number)
    return float(number)


def format_bool(value: Any) -> str:
    if isinstance(value, str):
        value = value.strip().lower() in ("true", "1", "yes")
    return "Yes" if value else "No"


def _to_datetime(value: Any) -> dt.datetime:
    if isinstance(value, dt.datetime):
        return value
    if isinstance(value, dt.date):
        return dt.datetime(value.year, value.month, value.day)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return dt.datetime.fromisoformat(text)


def format_timestamp(
    value: Any,
    tz: Optional[dt.tzinfo] = None,
    missing: str = NOT_AVAILABLE,
) -> str:
    """Render a timestamp as ``YYYY-MM-DD HH:MM:SS``.

    When *tz* is given the value is converted to it; naive values are
    stored UTC and are read as such. Without *tz* the value is printed
    as-is. Missing values render as *missing*.
    """
    if _is_missing(value):
        return missing
    stamp = _to_datetime(value)
    if tz is not None:
        if stamp.tzinfo is None:
            stamp = stamp.replace(tzinfo=dt.timezone.utc)
        stamp = stamp.astimezone(tz)
    return stamp.strftime(_TIMESTAMP_FMT)


def format_date(value: Any, missing: str = NOT_AVAILABLE) -> str:
    if _is_missing(value):
        return missing
    return _to_datetime(value).strftime(_DATE_FMT)


def average(values: Iterable[Any]) -> float:
    """Arithmetic mean, ``0.0`` for an empty sequence."""
    numbers = [float(_to_decimal(v)) for v in values]
    if not numbers:
        return 0.0
    return sum(numbers) / len(numbers)


def placeholder(value: Any, default: str = NOT_AVAILABLE) -> Any:
    """Return *value*, or *default* when it is missing or blank."""
    return default if _is_missing(value) else value
