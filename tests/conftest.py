"""Shared fixtures: a recording stand-in for aiohttp.ClientSession."""

import json
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qs, urlsplit

import pytest

from mcp_quickbooks.auth import EndpointConfig, Session
from mcp_quickbooks.quickbooks import QuickBooksClient

BASE_URL = "https://quickbooks.api.intuit.com/v3/company/"
REALM_ID = "123145"


class FakeResponse:
    """Canned response usable as ``async with http.request(...) as response``."""

    def __init__(self, body: Any = None, status: int = 200, content: bytes | None = None):
        self.status = status
        self._body = body
        self._content = content

    async def text(self) -> str:
        if isinstance(self._body, str):
            return self._body
        return json.dumps(self._body)

    async def read(self) -> bytes:
        if self._content is not None:
            return self._content
        return (await self.text()).encode()

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, *exc_info) -> bool:
        return False


@dataclass
class Call:
    method: str
    url: str
    kwargs: dict[str, Any] = field(default_factory=dict)

    @property
    def path(self) -> str:
        return urlsplit(self.url).path

    @property
    def params(self) -> dict[str, str]:
        return {k: v[0] for k, v in parse_qs(urlsplit(self.url).query).items()}

    @property
    def headers(self) -> dict[str, str]:
        return self.kwargs.get("headers", {})


class FakeHTTP:
    """Records requests and replays queued responses (or raises queued exceptions)."""

    def __init__(self, *responses: FakeResponse | Exception):
        self.responses: list[FakeResponse | Exception] = list(responses)
        self.calls: list[Call] = []

    def queue(self, *responses: FakeResponse | Exception) -> None:
        self.responses.extend(responses)

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append(Call(method, url, kwargs))
        if not self.responses:
            raise AssertionError(f"Unexpected request: {method} {url}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        return self.request("POST", url, **kwargs)


@pytest.fixture
def endpoints() -> EndpointConfig:
    return EndpointConfig(
        authorization="https://appcenter.intuit.com/connect/oauth2",
        token="https://oauth.platform.intuit.com/oauth2/v1/tokens/bearer",
        user_info="https://accounts.platform.intuit.com/v1/openid_connect/userinfo",
        revoke="https://developer.api.intuit.com/v2/oauth2/tokens/revoke",
    )


@pytest.fixture
def session(endpoints) -> Session:
    return Session(
        client_id="client-id",
        client_secret="client-secret",
        access_token="access-1",
        refresh_token="refresh-1",
        realm_id=REALM_ID,
        endpoints=endpoints,
    )


@pytest.fixture
def http() -> FakeHTTP:
    return FakeHTTP()


@pytest.fixture
def client(session, http) -> QuickBooksClient:
    return QuickBooksClient(session, http=http)
