"""Error taxonomy for postcode lookups and crime searches."""

from __future__ import annotations

import httpx


class CrimeDashboardError(Exception):
    """Base exception for all dashboard errors."""

    code = "UNKNOWN_ERROR"

    def __init__(self, message: str, status: int = 0):
        self.message = message
        self.status = status
        super().__init__(message)


class NetworkError(CrimeDashboardError):
    """No response reached us (DNS failure, refused connection, timeout)."""

    code = "NETWORK_ERROR"

    def __init__(self, message: str = "Network error - please check your connection"):
        super().__init__(message)


class NotFoundError(CrimeDashboardError):
    """The postcode lookup service returned no match."""

    code = "NOT_FOUND"

    def __init__(self, postcode: str):
        self.postcode = postcode
        super().__init__(f"Postcode not found: '{postcode}'", status=404)


class ValidationError(CrimeDashboardError):
    """User input contains no parseable postcode."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str = "Please enter at least one valid postcode"):
        super().__init__(message, status=422)


class NoValidPostcodesError(CrimeDashboardError):
    """Every supplied postcode failed resolution."""

    code = "NO_VALID_POSTCODES"

    def __init__(self, postcodes: list[str] | None = None):
        self.postcodes = list(postcodes or [])
        super().__init__("No valid postcodes provided")


class UnknownError(CrimeDashboardError):
    """Anything we could not categorise."""


def classify(exc: Exception) -> CrimeDashboardError:
    """Map an httpx (or other) exception onto the dashboard taxonomy."""
    if isinstance(exc, CrimeDashboardError):
        return exc
    if isinstance(exc, httpx.HTTPStatusError):
        response = exc.response
        message = "API request failed"
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("error"):
            message = str(body["error"])
        return UnknownError(message, status=response.status_code)
    if isinstance(exc, httpx.TransportError):
        return NetworkError()
    return UnknownError(str(exc) or "An unexpected error occurred")
