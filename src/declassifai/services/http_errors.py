"""Helpers for turning HTTP failures into user-facing messages."""

import httpx


def status_code_from_exception(exc: Exception) -> int | None:
    """Extract the HTTP status code from an exception, if available."""
    response = getattr(exc, "response", None)
    status_code = getattr(response, "status_code", None)
    if isinstance(status_code, int):
        return status_code
    return None


def message_from_exception(exc: Exception) -> str:
    """Return the server-provided error message, or a generic description."""
    response = getattr(exc, "response", None)
    if isinstance(response, httpx.Response):
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict):
            for key in ("detail", "message", "error"):
                value = payload.get(key)
                if isinstance(value, str) and value:
                    return value
                if value:
                    return str(value)
        text = response.text.strip()
        if text:
            return text
        return f"HTTP {response.status_code}"
    return str(exc) or exc.__class__.__name__
