"""QuickBooks Online API client with rate limiting, normalization and pagination."""

import asyncio
import json
import logging
import uuid
from datetime import date, datetime
from typing import Any, Iterable
from urllib.parse import urlencode

import aiohttp

from .. import __version__
from ..auth.discovery import discover_endpoints
from ..auth.oauth import QuickBooksOAuth, RevokeResult
from ..auth.session import Session
from ..auth.token_store import TokenSet, TokenStore
from ..errors import (
    ConfigurationError,
    HttpFault,
    PaginationLimitError,
    TransportError,
    ValidationError,
)
from .criteria import CompiledQuery, compile_query
from .entities import Capability, EntityType, resolve_entity, resolve_report
from .envelope import normalize

logger = logging.getLogger(__name__)

USER_AGENT = f"mcp-quickbooks: version {__version__}"

# Rate limit configuration (QuickBooks allows 500 requests per minute per realm)
RATE_LIMIT_REQUESTS = 500
RATE_LIMIT_WINDOW = 60  # seconds

MAX_BATCH_ITEMS = 30
DEFAULT_FETCH_ALL_MAX_RECORDS = 100_000

EntityRef = str | EntityType


def _blank(value: Any) -> bool:
    return value is None or str(value) == ""


def _param_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


class QuickBooksClient:
    """Generic QuickBooks resource operations for one session."""

    def __init__(
        self,
        session: Session,
        oauth: QuickBooksOAuth | None = None,
        http: aiohttp.ClientSession | None = None,
        fetch_all_max_records: int = DEFAULT_FETCH_ALL_MAX_RECORDS,
    ):
        """Initialize QuickBooks client.

        Args:
            session: Authenticated session (endpoints resolved by discovery)
            oauth: Token manager for the session (created if not given)
            http: Shared HTTP session (a short-lived one is opened per request otherwise)
            fetch_all_max_records: Ceiling on records accumulated by fetch-all queries
        """
        self.session = session
        self.oauth = oauth or QuickBooksOAuth(session, http=http)
        self.fetch_all_max_records = fetch_all_max_records
        self._http = http
        self._request_times: list[float] = []

    @classmethod
    async def connect(
        cls,
        client_id: str,
        client_secret: str,
        access_token: str | None = None,
        refresh_token: str | None = None,
        realm_id: str | None = None,
        sandbox: bool = False,
        debug: bool = False,
        minor_version: int | None = None,
        token_store: TokenStore | None = None,
        http: aiohttp.ClientSession | None = None,
        **kwargs: Any,
    ) -> "QuickBooksClient":
        """Resolve endpoints, then build a ready client.

        Discovery must succeed before the client is returned.
        """
        endpoints = await discover_endpoints(sandbox=sandbox, http=http)
        session = Session(
            client_id=client_id,
            client_secret=client_secret,
            access_token=access_token,
            refresh_token=refresh_token,
            realm_id=realm_id,
            endpoints=endpoints,
            sandbox=sandbox,
            debug=debug,
        )
        if minor_version:
            session.minor_version = minor_version
        oauth = QuickBooksOAuth(session, token_store=token_store, http=http)
        if access_token is None:
            oauth.load_tokens()
        return cls(session, oauth=oauth, http=http, **kwargs)

    # ==================== Tokens ====================

    async def refresh_access_token(self) -> TokenSet:
        """Refresh the session's token pair."""
        return await self.oauth.refresh()

    async def revoke_access(self, use_refresh_token: bool = False) -> RevokeResult:
        """Revoke the session's access (or refresh) token."""
        return await self.oauth.revoke(use_refresh_token)

    async def get_user_info(self) -> dict[str, Any]:
        """Get the OpenID user info for the session's user."""
        endpoints = self.session.require_endpoints()
        return await self._request("GET", endpoints.user_info, raw=True)

    # ==================== Request engine ====================

    async def _check_rate_limit(self) -> None:
        """Check and enforce rate limiting."""
        loop = asyncio.get_running_loop()
        now = loop.time()

        # Remove old requests outside the window
        self._request_times = [t for t in self._request_times if now - t < RATE_LIMIT_WINDOW]

        if len(self._request_times) >= RATE_LIMIT_REQUESTS:
            wait_time = RATE_LIMIT_WINDOW - (now - self._request_times[0])
            if wait_time > 0:
                logger.info(f"Rate limit reached, waiting {wait_time:.1f}s")
                await asyncio.sleep(wait_time)

        self._request_times.append(loop.time())

    def _build_url(self, path: str, params: dict[str, Any]) -> str:
        """Resolve the request URL and append the query string.

        The path's own query string is already percent-encoded and is kept as is.
        """
        endpoints = self.session.require_endpoints()
        if endpoints.is_auth_endpoint(path):
            url = path
        else:
            if not self.session.realm_id:
                raise ConfigurationError("No realm id on session; connect to a company first")
            url = f"{self.session.base_url}{self.session.realm_id}{path}"

        if params:
            query = urlencode({k: _param_value(v) for k, v in params.items() if v is not None})
            url += ("&" if "?" in url else "?") + query
        return url

    async def _request(
        self,
        method: str,
        path: str,
        *,
        entity: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        form_data: aiohttp.FormData | None = None,
        raw: bool = False,
        count: bool = False,
    ) -> Any:
        """Make authenticated request to the QuickBooks API.

        Args:
            method: HTTP method
            path: Resource path (joined to base URL and realm) or an absolute auth endpoint
            entity: JSON body
            params: Extra query parameters
            form_data: Multipart body
            raw: Return the decoded body without normalization
            count: The request is a ``select count(*)`` query

        Returns:
            Normalized result, decoded body when raw, or bytes for PDFs

        Raises:
            TransportError: If the request could not be made
            HttpFault: If QuickBooks reported an error
            ShapeError: If the response envelope is not recognized
        """
        session = self.session
        if session.is_revoked or not session.access_token:
            raise ConfigurationError("Not authenticated with QuickBooks", status_code=401)

        query: dict[str, Any] = dict(params or {})
        body = None
        if entity is not None:
            body = dict(entity)
            if body.pop("allowDuplicateDocNum", None):
                query["include"] = "allowduplicatedocnum"
            request_id = body.pop("requestId", None)
            if request_id:
                query["requestid"] = request_id

        query.setdefault("minorversion", session.minor_version)
        query["format"] = "json"

        pdf = path.split("?", 1)[0].endswith("pdf")
        headers = {
            "Authorization": f"Bearer {session.access_token}",
            "Request-Id": str(uuid.uuid4()),
            "User-Agent": USER_AGENT,
            "Accept": "application/pdf" if pdf else "application/json",
        }
        if body is not None:
            headers["Content-Type"] = "application/json"

        url = self._build_url(path, query)
        trace = logger.info if session.debug else logger.debug
        trace(f"{method} {url}" + (f" {json.dumps(body)}" if body is not None else ""))

        await self._check_rate_limit()

        try:
            if self._http is not None:
                status, content = await self._send(self._http, method, url, headers, body, form_data, pdf)
            else:
                async with aiohttp.ClientSession() as http:
                    status, content = await self._send(http, method, url, headers, body, form_data, pdf)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"Request to {url} failed: {e}") from e

        if isinstance(content, bytes):
            trace(f"{method} {url} -> {status} ({len(content)} bytes)")
            return content

        trace(f"{method} {url} -> {status} {json.dumps(content) if not isinstance(content, str) else content}")
        self._raise_for_fault(status, content)

        if raw:
            return content
        return normalize(content, count=count)

    async def _send(
        self,
        http: aiohttp.ClientSession,
        method: str,
        url: str,
        headers: dict[str, str],
        body: dict[str, Any] | None,
        form_data: aiohttp.FormData | None,
        pdf: bool,
    ) -> tuple[int, Any]:
        kwargs: dict[str, Any] = {"headers": headers}
        if form_data is not None:
            kwargs["data"] = form_data
        elif body is not None:
            kwargs["json"] = body

        async with http.request(method, url, **kwargs) as response:
            if pdf and response.status < 300:
                return response.status, await response.read()
            text = await response.text()
            try:
                return response.status, json.loads(text)
            except ValueError:
                return response.status, text

    @staticmethod
    def _raise_for_fault(status: int, content: Any) -> None:
        """Reject error statuses, fault bodies and HTML/XML error pages."""
        if status >= 300:
            raise HttpFault(f"QuickBooks API error (HTTP {status})", status_code=status, details=content)

        if isinstance(content, dict):
            fault = content.get("Fault")
            if isinstance(fault, dict) and fault.get("Error"):
                first = fault["Error"][0]
                message = first.get("Message") or first.get("Detail") or "QuickBooks fault"
                raise HttpFault(f"QuickBooks fault: {message}", status_code=status, details=content)

        if isinstance(content, str) and content.startswith("<"):
            raise HttpFault("Unexpected markup response from QuickBooks", status_code=status, details=content)

    # ==================== Entities ====================

    async def create(self, entity: EntityRef, body: dict[str, Any]) -> dict[str, Any]:
        """Create a resource."""
        entity_type = resolve_entity(entity)
        entity_type.require(Capability.CREATE)
        return await self._request("POST", entity_type.url_path, entity=body)

    async def get(self, entity: EntityRef, entity_id: str | int | None = None) -> dict[str, Any]:
        """Read a resource by id (singletons such as Preferences take no id)."""
        entity_type = resolve_entity(entity)
        entity_type.require(Capability.READ)
        path = entity_type.url_path
        if not _blank(entity_id):
            path += f"/{entity_id}"
        return await self._request("GET", path)

    async def update(self, entity: EntityRef, body: dict[str, Any]) -> dict[str, Any]:
        """Update a resource (sparse unless the body says otherwise).

        Raises:
            ValidationError: If Id or SyncToken is missing
        """
        entity_type = resolve_entity(entity)
        entity_type.require(Capability.UPDATE)
        if not isinstance(body, dict):
            raise ValidationError(f"{entity_type.name} update body must be a mapping", details=body)
        if entity_type.requires_sync_token and (_blank(body.get("Id")) or _blank(body.get("SyncToken"))):
            raise ValidationError(
                f"{entity_type.name} must contain Id and SyncToken fields", details=body
            )

        payload = dict(body)
        payload.setdefault("sparse", True)
        params = {}
        if str(payload.get("void")).lower() == "true":
            del payload["void"]
            params["include"] = "void"
        return await self._request(
            "POST", f"{entity_type.url_path}?operation=update", entity=payload, params=params
        )

    async def delete(self, entity: EntityRef, id_or_entity: str | int | dict[str, Any]) -> dict[str, Any]:
        """Delete a resource.

        A bare id is read first and the fetched entity (with its current
        SyncToken) is deleted.
        """
        entity_type = resolve_entity(entity)
        entity_type.require(Capability.DELETE)
        target = await self._resolve_target(entity_type, id_or_entity)
        return await self._request("POST", f"{entity_type.url_path}?operation=delete", entity=target)

    async def void(self, entity: EntityRef, id_or_entity: str | int | dict[str, Any]) -> dict[str, Any]:
        """Void a transaction; a bare id is read first."""
        entity_type = resolve_entity(entity)
        entity_type.require(Capability.VOID)
        target = await self._resolve_target(entity_type, id_or_entity)
        return await self._request("POST", f"{entity_type.url_path}?operation=void", entity=target)

    async def void_payment(self, payment: dict[str, Any]) -> dict[str, Any]:
        """Void a payment (an update carrying ``void``)."""
        return await self.update("Payment", {**payment, "void": True, "sparse": True})

    async def _resolve_target(self, entity_type: EntityType, id_or_entity: Any) -> dict[str, Any]:
        if isinstance(id_or_entity, dict):
            return id_or_entity
        if _blank(id_or_entity):
            raise ValidationError(f"{entity_type.name} id is required")
        logger.debug(f"Reading {entity_type.name} {id_or_entity} for its SyncToken")
        current = await self.get(entity_type, id_or_entity)
        return current["data"]

    # ==================== Query ====================

    async def find(self, entity: EntityRef, criteria: Any = None) -> dict[str, Any]:
        """Query resources, following pages when ``fetchAll`` is set.

        Args:
            entity: Resource name
            criteria: Raw clause string, field mapping, or list of criteria

        Returns:
            Normalized result; ``data`` holds every page's records for fetch-all

        Raises:
            PaginationLimitError: If fetch-all accumulates too many records
        """
        entity_type = resolve_entity(entity)
        entity_type.require(Capability.QUERY)
        compiled = compile_query(entity_type.name, criteria)
        return await self._query(compiled)

    async def count(self, entity: EntityRef, criteria: Any = None) -> int:
        """Count resources matching criteria."""
        entity_type = resolve_entity(entity)
        entity_type.require(Capability.QUERY)
        compiled = compile_query(entity_type.name, criteria)
        if compiled.raw is not None:
            raise ValidationError("count() needs structured criteria, not a raw clause")
        compiled = compiled.with_count()
        result = await self._request("GET", compiled.path, count=True)
        return int(result["data"])

    async def _query(self, compiled: CompiledQuery) -> dict[str, Any]:
        options = compiled.options
        result = await self._request("GET", compiled.path, count=options.count)
        if not options.fetch_all or options.count or compiled.raw is not None:
            return result

        limit = options.limit
        page_data = list(result.get("data") or [])
        records = list(page_data)
        result.setdefault("maxResults", len(page_data))

        while len(page_data) == limit:
            compiled = compiled.with_offset(compiled.options.offset + limit)
            logger.debug(f"Fetching {compiled.entity} from position {compiled.options.offset}")
            page = await self._request("GET", compiled.path)
            page_data = list(page.get("data") or [])
            records.extend(page_data)
            if len(records) > self.fetch_all_max_records:
                raise PaginationLimitError(
                    f"Fetch-all for {compiled.entity} exceeded {self.fetch_all_max_records} records"
                )
            result["maxResults"] += page.get("maxResults", len(page_data))
            if "time" in page:
                result["time"] = page["time"]

        result["data"] = records
        return result

    # ==================== Reports ====================

    async def report(self, report_type: str, options: dict[str, Any] | None = None) -> dict[str, Any]:
        """Run a report (e.g. ``BalanceSheet``) with optional report parameters."""
        name = resolve_report(report_type)
        return await self._request("GET", f"/reports/{name}", params=options)

    # ==================== Documents ====================

    async def get_pdf(self, entity: EntityRef, entity_id: str | int) -> bytes:
        """Download a document as PDF."""
        entity_type = resolve_entity(entity)
        entity_type.require(Capability.PDF)
        return await self._request("GET", f"{entity_type.url_path}/{entity_id}/pdf")

    async def send_pdf(
        self, entity: EntityRef, entity_id: str | int, send_to: str | None = None
    ) -> dict[str, Any]:
        """Email a document to its bill email address, or to ``send_to``."""
        entity_type = resolve_entity(entity)
        entity_type.require(Capability.SEND)
        params = {"sendTo": send_to} if send_to else None
        return await self._request("POST", f"{entity_type.url_path}/{entity_id}/send", params=params)

    async def get_exchange_rate(self, options: dict[str, Any]) -> dict[str, Any]:
        """Get an exchange rate (``sourcecurrencycode`` required, ``asofdate`` optional)."""
        if not options or not options.get("sourcecurrencycode"):
            raise ValidationError("sourcecurrencycode is required")
        return await self._request("GET", "/exchangerate", params=options)

    # ==================== Batch, CDC, upload ====================

    async def batch(self, items: list[dict[str, Any]]) -> dict[str, Any]:
        """Run up to 30 create/update/delete/query operations in one request."""
        if not items:
            raise ValidationError("batch requires at least one item")
        if len(items) > MAX_BATCH_ITEMS:
            raise ValidationError(
                f"batch accepts at most {MAX_BATCH_ITEMS} items, got {len(items)}; split the request"
            )
        return await self._request("POST", "/batch", entity={"BatchItemRequest": list(items)})

    async def change_data_capture(
        self, entities: str | Iterable[EntityRef], since: str | datetime | date
    ) -> dict[str, Any]:
        """List entities changed since a point in time."""
        if isinstance(entities, str):
            names = entities
        else:
            names = ",".join(resolve_entity(e).name for e in entities)
        if not names:
            raise ValidationError("change_data_capture requires at least one entity")
        return await self._request(
            "GET", "/cdc", params={"entities": names, "changedSince": _param_value(since)}
        )

    async def upload(
        self,
        filename: str,
        content_type: str,
        content: Any,
        entity_type: str | None = None,
        entity_id: str | int | None = None,
    ) -> dict[str, Any]:
        """Upload a file as an Attachable, optionally linking it to an entity.

        Args:
            filename: File name shown in QuickBooks
            content_type: MIME type of the file
            content: Bytes or a readable file object
            entity_type: Entity to link the attachment to (e.g. ``Invoice``)
            entity_id: Id of that entity

        Returns:
            Upload result, or the Attachable update result when linked
        """
        form = aiohttp.FormData()
        form.add_field("file_content_01", content, filename=filename, content_type=content_type)
        result = await self._request("POST", "/upload", form_data=form)

        items = result.get("data") or []
        first = items[0] if isinstance(items, list) and items else {}
        if "Fault" in first:
            raise HttpFault("Attachment upload failed", details=first)
        if not entity_type or _blank(entity_id):
            return result

        attachable_id = first["Attachable"]["Id"]
        return await self.update(
            "Attachable",
            {
                "Id": attachable_id,
                "SyncToken": "0",
                "AttachableRef": [
                    {"EntityRef": {"type": resolve_entity(entity_type).name, "value": str(entity_id)}}
                ],
            },
        )
