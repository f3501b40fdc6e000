"""API routes package."""

from . import health, personas

__all__ = ["health", "personas"]
