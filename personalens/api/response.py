"""Response envelope helpers for the health and insights endpoints."""

from typing import Any


def success_response(data: Any) -> dict[str, Any]:
    """Create a success response envelope."""
    return {"data": data, "error": None}


def error_response(code: str, message: str) -> dict[str, Any]:
    """Create an error response envelope."""
    return {"data": None, "error": {"code": code, "message": message}}
