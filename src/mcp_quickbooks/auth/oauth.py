"""OAuth 2.0 token lifecycle for QuickBooks: issue, refresh, revoke."""

import asyncio
import json
import logging
import secrets
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode, urlparse

import aiohttp
from aiohttp import web

from ..errors import TokenError, TransportError, ValidationError
from .session import Session, TokenState
from .token_store import TokenSet, TokenStore

logger = logging.getLogger(__name__)

# Default scopes for the accounting API
DEFAULT_SCOPES = [
    "com.intuit.quickbooks.accounting",
    "openid",
    "profile",
    "email",
]

FORM_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/x-www-form-urlencoded",
}


@dataclass
class RevokeResult:
    """Outcome of a revoke call.

    `revoked` is False when the endpoint answered with anything but 200; the
    session is left untouched in that case.
    """

    revoked: bool
    status_code: int
    body: Any = None


class QuickBooksOAuth:
    """Issue, refresh and revoke tokens for one session."""

    def __init__(
        self,
        session: Session,
        token_store: TokenStore | None = None,
        redirect_uri: str = "http://localhost:8743/callback",
        http: aiohttp.ClientSession | None = None,
    ):
        """Initialize OAuth handler.

        Args:
            session: Session whose tokens are managed
            token_store: Optional encrypted persistence for issued tokens
            redirect_uri: OAuth redirect URI for the authorization-code flow
            http: Shared HTTP session (a short-lived one is opened per call otherwise)
        """
        self.session = session
        self.token_store = token_store
        self.redirect_uri = redirect_uri
        self._http = http
        self._state: str | None = None
        self._refresh_lock = asyncio.Lock()
        self._refresh_task: asyncio.Task | None = None

    @property
    def is_configured(self) -> bool:
        """Check if OAuth credentials are configured."""
        return bool(self.session.client_id and self.session.client_secret)

    @property
    def _basic_auth(self) -> aiohttp.BasicAuth:
        return aiohttp.BasicAuth(self.session.client_id, self.session.client_secret)

    async def _post_form(self, url: str, form: dict[str, str]) -> tuple[int, Any]:
        """POST a form body with client Basic auth.

        Returns:
            Status code and decoded body (JSON when possible, text otherwise)

        Raises:
            TransportError: If the request could not be made
        """

        async def send(http: aiohttp.ClientSession) -> tuple[int, Any]:
            async with http.post(url, data=form, headers=FORM_HEADERS, auth=self._basic_auth) as response:
                text = await response.text()
                try:
                    body: Any = json.loads(text)
                except ValueError:
                    body = text
                return response.status, body

        try:
            if self._http is not None:
                return await send(self._http)
            async with aiohttp.ClientSession() as http:
                return await send(http)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"Request to {url} failed: {e}") from e

    def get_authorization_url(self, scopes: list[str] | None = None) -> tuple[str, str]:
        """Generate authorization URL for user to visit.

        Args:
            scopes: OAuth scopes to request (defaults to DEFAULT_SCOPES)

        Returns:
            Tuple of (authorization_url, state)
        """
        if not self.is_configured:
            raise ValidationError("QBO_CLIENT_ID and QBO_CLIENT_SECRET must be set")

        endpoints = self.session.require_endpoints()
        self._state = secrets.token_urlsafe(32)
        params = {
            "client_id": self.session.client_id,
            "response_type": "code",
            "scope": " ".join(scopes or DEFAULT_SCOPES),
            "redirect_uri": self.redirect_uri,
            "state": self._state,
        }
        return f"{endpoints.authorization}?{urlencode(params)}", self._state

    async def exchange_code(
        self, code: str, state: str | None = None, realm_id: str | None = None
    ) -> TokenSet:
        """Exchange authorization code for tokens.

        Args:
            code: Authorization code from callback
            state: State parameter to verify (optional)
            realm_id: Company id returned alongside the code

        Returns:
            Token set with access and refresh tokens

        Raises:
            ValidationError: If state doesn't match
            TokenError: If the token endpoint rejects the code
        """
        if state and self._state and state != self._state:
            raise ValidationError("State mismatch - possible CSRF attack")

        endpoints = self.session.require_endpoints()
        status, body = await self._post_form(
            endpoints.token,
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
            },
        )
        if status != 200 or not isinstance(body, dict) or "access_token" not in body:
            raise TokenError("Token exchange failed", status_code=status, details=body)

        tokens = TokenSet.from_response(body, realm_id=realm_id or self.session.realm_id)
        self.session.apply_tokens(tokens)
        self._save(tokens)
        logger.info(f"Issued tokens for realm {self.session.realm_id}")
        return tokens

    async def refresh(self) -> TokenSet:
        """Obtain a new token pair using the refresh token.

        Concurrent callers share one in-flight refresh; the session is only
        changed once the token endpoint has answered successfully.

        Returns:
            New token set

        Raises:
            ValidationError: If the session was revoked or has no refresh token
            TokenError: If the token endpoint rejects the refresh
            TransportError: If the token endpoint cannot be reached
        """
        async with self._refresh_lock:
            task = self._refresh_task
            if task is None or task.done():
                task = asyncio.ensure_future(self._do_refresh())
                self._refresh_task = task
        return await asyncio.shield(task)

    async def _do_refresh(self) -> TokenSet:
        session = self.session
        if session.is_revoked:
            raise ValidationError("Session has been revoked; re-authorize to obtain new tokens")
        if not session.refresh_token:
            raise ValidationError("No refresh token available - authentication required")

        endpoints = session.require_endpoints()
        previous = session.state
        session.state = TokenState.REFRESHING
        try:
            status, body = await self._post_form(
                endpoints.token,
                {"grant_type": "refresh_token", "refresh_token": session.refresh_token},
            )
        except Exception:
            session.state = TokenState.FAILED
            raise

        if status != 200 or not isinstance(body, dict) or "access_token" not in body:
            session.state = TokenState.FAILED
            logger.warning(f"Token refresh failed with status {status} (was {previous.value})")
            raise TokenError("Token refresh failed", status_code=status, details=body)

        if "refresh_token" not in body:
            body = {**body, "refresh_token": session.refresh_token}
        tokens = TokenSet.from_response(body, realm_id=session.realm_id)
        session.apply_tokens(tokens)
        self._save(tokens)
        logger.info(f"Refreshed access token for realm {session.realm_id}")
        return tokens

    async def revoke(self, use_refresh_token: bool = False) -> RevokeResult:
        """Revoke the refresh or access token.

        Args:
            use_refresh_token: Revoke the refresh token instead of the access token

        Returns:
            Result whose `revoked` flag reports whether the provider accepted it

        Raises:
            ValidationError: If there is no token to revoke
            TransportError: If the revoke endpoint cannot be reached
        """
        session = self.session
        token = session.refresh_token if use_refresh_token else session.access_token
        if not token:
            raise ValidationError("No token to revoke")

        endpoints = session.require_endpoints()
        status, body = await self._post_form(endpoints.revoke, {"token": token})

        if status == 200:
            session.clear_tokens()
            if self.token_store:
                self.token_store.delete()
            logger.info("Revoked QuickBooks access")
            return RevokeResult(revoked=True, status_code=status, body=body)

        logger.warning(f"Revoke rejected with status {status}")
        return RevokeResult(revoked=False, status_code=status, body=body)

    def load_tokens(self) -> TokenSet | None:
        """Apply persisted tokens to the session, if any."""
        if not self.token_store:
            return None
        tokens = self.token_store.load()
        if tokens:
            self.session.apply_tokens(tokens)
        return tokens

    async def get_valid_tokens(self) -> TokenSet | None:
        """Get valid tokens, refreshing if the stored access token has expired.

        Returns:
            Valid token set or None if not authenticated
        """
        if not self.token_store or self.session.is_revoked:
            return None
        tokens = self.token_store.load()
        if not tokens:
            return None

        if tokens.is_expired:
            if tokens.refresh_expired:
                logger.warning("Refresh token has expired - authentication required")
                return None
            try:
                tokens = await self.refresh()
            except (TokenError, ValidationError) as e:
                logger.warning(f"Could not refresh QuickBooks tokens: {e}")
                return None

        return tokens

    def _save(self, tokens: TokenSet) -> None:
        if self.token_store:
            self.token_store.save(tokens)

    async def wait_for_callback(self, timeout: float = 300) -> tuple[str, str | None]:
        """Start local HTTP server to capture OAuth callback.

        Returns:
            Authorization code and realm id from the callback

        Raises:
            TimeoutError: If callback not received within timeout
        """
        result: asyncio.Future[tuple[str, str | None]] = asyncio.get_running_loop().create_future()

        async def handle_callback(request: web.Request) -> web.Response:
            code = request.query.get("code")
            state = request.query.get("state")
            error = request.query.get("error")

            if result.done():
                return web.Response(text="Callback already received", content_type="text/plain")

            if error:
                result.set_exception(ValidationError(f"OAuth error: {error}"))
                return web.Response(
                    text="<html><body><h1>Authentication Failed</h1>"
                    f"<p>Error: {error}</p></body></html>",
                    content_type="text/html",
                )

            if not code:
                result.set_exception(ValidationError("No authorization code received"))
                return web.Response(
                    text="<html><body><h1>Error</h1>"
                    "<p>No authorization code received</p></body></html>",
                    content_type="text/html",
                )

            if state != self._state:
                result.set_exception(ValidationError("State mismatch"))
                return web.Response(
                    text="<html><body><h1>Error</h1>"
                    "<p>Security check failed</p></body></html>",
                    content_type="text/html",
                )

            result.set_result((code, request.query.get("realmId")))
            return web.Response(
                text="<html><body><h1>Connected to QuickBooks</h1>"
                "<p>You can close this window.</p></body></html>",
                content_type="text/html",
            )

        app = web.Application()
        parsed = urlparse(self.redirect_uri)
        app.router.add_get(parsed.path or "/callback", handle_callback)

        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, parsed.hostname or "localhost", parsed.port or 8743)
        await site.start()

        try:
            return await asyncio.wait_for(result, timeout=timeout)
        finally:
            await runner.cleanup()

    def get_status(self) -> dict[str, Any]:
        """Get current authentication status."""
        session = self.session
        if not self.is_configured:
            return {
                "connected": False,
                "configured": False,
                "message": "QuickBooks credentials not configured. Set QBO_CLIENT_ID and QBO_CLIENT_SECRET.",
            }

        if not session.access_token:
            return {
                "connected": False,
                "configured": True,
                "state": session.state.value,
                "message": "Not connected to QuickBooks. Use qbo_auth_url or qbo_connect to begin.",
            }

        return {
            "connected": True,
            "configured": True,
            "state": session.state.value,
            "realm_id": session.realm_id,
            "sandbox": session.sandbox,
            "message": f"Connected to QuickBooks realm {session.realm_id}",
        }
