"""QuickBooks Online API client."""

from ..errors import (
    ConfigurationError,
    HttpFault,
    PaginationLimitError,
    QuickBooksError,
    ShapeError,
    TokenError,
    TransportError,
    ValidationError,
)
from .client import QuickBooksClient

__all__ = [
    "QuickBooksClient",
    "QuickBooksError",
    "TransportError",
    "HttpFault",
    "TokenError",
    "ShapeError",
    "ValidationError",
    "ConfigurationError",
    "PaginationLimitError",
]
