"""Per-realm session state."""

from dataclasses import dataclass, field
from enum import Enum

from ..errors import ConfigurationError
from .discovery import EndpointConfig
from .token_store import TokenSet

V3_ENDPOINT_BASE_URL = "https://quickbooks.api.intuit.com/v3/company/"
V3_SANDBOX_BASE_URL = "https://sandbox-quickbooks.api.intuit.com/v3/company/"

DEFAULT_MINOR_VERSION = 65


class TokenState(str, Enum):
    """Token lifecycle states."""

    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"
    FAILED = "failed"
    REVOKED = "revoked"


@dataclass
class Session:
    """Credentials and tokens for one user/realm pair.

    A session is never shared across realms. Token fields are mutated in place
    by refresh and revoke.
    """

    client_id: str
    client_secret: str
    access_token: str | None = None
    refresh_token: str | None = None
    realm_id: str | None = None
    endpoints: EndpointConfig | None = None
    minor_version: int = DEFAULT_MINOR_VERSION
    sandbox: bool = False
    debug: bool = False
    base_url: str | None = None
    state: TokenState = field(default=TokenState.AUTHENTICATED)

    def __post_init__(self) -> None:
        if self.base_url is None:
            self.base_url = V3_SANDBOX_BASE_URL if self.sandbox else V3_ENDPOINT_BASE_URL

    @property
    def is_revoked(self) -> bool:
        return self.state is TokenState.REVOKED

    def require_endpoints(self) -> EndpointConfig:
        """Endpoint configuration, which discovery must have produced.

        Raises:
            ConfigurationError: If discovery has not completed
        """
        if self.endpoints is None:
            raise ConfigurationError(
                "OAuth endpoints not resolved; run discover_endpoints() before authenticated calls"
            )
        return self.endpoints

    def apply_tokens(self, tokens: TokenSet) -> None:
        """Replace both tokens (and the realm, when the token set names one)."""
        self.access_token = tokens.access_token
        self.refresh_token = tokens.refresh_token
        if tokens.realm_id:
            self.realm_id = tokens.realm_id
        self.state = TokenState.AUTHENTICATED

    def clear_tokens(self) -> None:
        """Forget the token pair and realm after a revoke."""
        self.access_token = None
        self.refresh_token = None
        self.realm_id = None
        self.state = TokenState.REVOKED
