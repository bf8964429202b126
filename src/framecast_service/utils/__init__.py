"""Utility helpers for the render service."""
from __future__ import annotations

from .coerce import coerce_float, coerce_int, split_csv, to_bool, to_optional_str

__all__ = ["coerce_float", "coerce_int", "split_csv", "to_bool", "to_optional_str"]
