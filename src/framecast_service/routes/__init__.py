"""HTTP blueprints for the render service."""
from __future__ import annotations

from .render import api_bp

__all__ = ["api_bp"]
