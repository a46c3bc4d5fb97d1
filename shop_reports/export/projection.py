"""
Field projection — flatten nested records with dotted paths.

``project({"user": {"email": "a@b.c"}}, "user.email")`` returns
``"a@b.c"``. Absence is data, not failure: any missing segment (or an
intermediate value that is not a mapping) yields :data:`MISSING`.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Iterable


class _Missing:
    """Sentinel type for a path that does not resolve."""

    _instance: "_Missing | None" = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"

    def __reduce__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


def project(record: Any, field_path: str) -> Any:
    """Resolve *field_path* against *record*, or return :data:`MISSING`."""
    if not isinstance(field_path, str) or not field_path:
        return MISSING
    current = record
    for segment in field_path.split("."):
        if not isinstance(current, Mapping) or segment not in current:
            return MISSING
        current = current[segment]
    return current


def project_many(record: Any, paths: Iterable[str]) -> dict[str, Any]:
    """Project several paths at once, keyed by path, in the given order."""
    return {path: project(record, path) for path in paths}


def or_default(value: Any, default: Any) -> Any:
    """Return *default* when *value* is :data:`MISSING` or ``None``."""
    if value is MISSING or value is None:
        return default
    return value
