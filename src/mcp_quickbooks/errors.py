"""Exceptions raised by the QuickBooks client."""

from typing import Any


class QuickBooksError(Exception):
    """Base QuickBooks error."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details


class TransportError(QuickBooksError):
    """Network or connection failure before a response was received."""


class HttpFault(QuickBooksError):
    """Non-success status or a provider fault in the response body."""

    @property
    def errors(self) -> list[dict[str, Any]]:
        """Provider `Fault.Error` entries, if the details carry any."""
        details = self.details
        if isinstance(details, list) and details and isinstance(details[0], dict):
            details = details[0]
        if not isinstance(details, dict):
            return []
        fault = details.get("Fault") or details.get("fault") or {}
        return list(fault.get("Error") or fault.get("error") or [])


class TokenError(HttpFault):
    """Token endpoint rejected an exchange or refresh."""


class ShapeError(QuickBooksError):
    """Response body does not match a known envelope."""


class ValidationError(QuickBooksError):
    """Caller input rejected before any request was sent."""


class ConfigurationError(QuickBooksError):
    """Discovery or credentials missing."""


class PaginationLimitError(QuickBooksError):
    """Fetch-all accumulated more records than allowed."""
