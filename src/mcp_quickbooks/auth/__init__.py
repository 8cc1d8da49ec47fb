"""Authentication module for QuickBooks OAuth."""

from .discovery import EndpointConfig, discover_endpoints
from .oauth import QuickBooksOAuth, RevokeResult
from .session import Session, TokenState
from .token_store import TokenSet, TokenStore

__all__ = [
    "EndpointConfig",
    "discover_endpoints",
    "QuickBooksOAuth",
    "RevokeResult",
    "Session",
    "TokenState",
    "TokenSet",
    "TokenStore",
]
