"""Coercion helpers for configuration values and request payloads."""
from __future__ import annotations

from typing import Any, Optional, Tuple

_TRUTHY = frozenset({"true", "1", "yes", "on"})
_FALSY = frozenset({"false", "0", "no", "off", ""})


def to_bool(value: Any, default: bool = False) -> bool:
    """Best-effort conversion of common truthy/falsey inputs to ``bool``."""

    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUTHY:
            return True
        if lowered in _FALSY:
            return False
    return default


def to_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def coerce_int(value: Any, fallback: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return fallback


def coerce_float(value: Any, fallback: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return fallback


def split_csv(value: Any) -> Tuple[str, ...]:
    """Split a comma separated string (or pass through a sequence) into stripped items."""

    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        items = value
    else:
        items = str(value).split(",")
    return tuple(item.strip() for item in map(str, items) if item.strip())


__all__ = ["coerce_float", "coerce_int", "split_csv", "to_bool", "to_optional_str"]
