"""Resolve Intuit OAuth endpoints from the OpenID discovery document."""

import asyncio
import json
import logging
from dataclasses import dataclass

import aiohttp

from ..errors import ConfigurationError, TransportError

logger = logging.getLogger(__name__)

DISCOVERY_URLS = {
    True: "https://developer.intuit.com/.well-known/openid_sandbox_configuration/",
    False: "https://developer.api.intuit.com/.well-known/openid_configuration/",
}

# Discovery document key -> EndpointConfig field
DISCOVERY_KEYS = {
    "authorization_endpoint": "authorization",
    "token_endpoint": "token",
    "userinfo_endpoint": "user_info",
    "revocation_endpoint": "revoke",
}


@dataclass(frozen=True)
class EndpointConfig:
    """Absolute URLs of the OAuth endpoints."""

    authorization: str
    token: str
    user_info: str
    revoke: str

    def is_auth_endpoint(self, url: str) -> bool:
        """Whether a URL is one of the absolute auth endpoints."""
        return url in (self.authorization, self.token, self.user_info, self.revoke)

    @classmethod
    def from_document(cls, document: dict) -> "EndpointConfig":
        """Build from a discovery document.

        Raises:
            ConfigurationError: If an endpoint is missing
        """
        missing = [key for key in DISCOVERY_KEYS if not document.get(key)]
        if missing:
            raise ConfigurationError(
                f"Discovery document missing {', '.join(missing)}", details=document
            )
        return cls(**{field: document[key] for key, field in DISCOVERY_KEYS.items()})


async def discover_endpoints(
    sandbox: bool = False,
    http: aiohttp.ClientSession | None = None,
) -> EndpointConfig:
    """Fetch the discovery document and resolve the OAuth endpoints.

    Args:
        sandbox: Use the sandbox discovery document
        http: Shared HTTP session (a short-lived one is opened otherwise)

    Returns:
        Resolved endpoint configuration

    Raises:
        TransportError: If the document cannot be fetched
        ConfigurationError: If the document is not usable
    """
    url = DISCOVERY_URLS[bool(sandbox)]
    logger.info(f"Discovering OAuth endpoints from {url}")

    if http is None:
        async with aiohttp.ClientSession() as session:
            return await _fetch(session, url)
    return await _fetch(http, url)


async def _fetch(http: aiohttp.ClientSession, url: str) -> EndpointConfig:
    try:
        async with http.get(url, headers={"Accept": "application/json"}) as response:
            if response.status != 200:
                text = await response.text()
                raise ConfigurationError(
                    f"Discovery failed with status {response.status}",
                    status_code=response.status,
                    details=text,
                )
            try:
                document = json.loads(await response.text())
            except ValueError as e:
                raise ConfigurationError("Discovery document is not valid JSON") from e
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise TransportError(f"Discovery request failed: {e}") from e

    if not isinstance(document, dict):
        raise ConfigurationError("Discovery document is not a JSON object", details=document)
    return EndpointConfig.from_document(document)
