"""Normalize QuickBooks response envelopes into ``{...metadata, "data": payload}``."""

from dataclasses import dataclass
from typing import Any

from ..errors import ShapeError

QUERY_WRAPPER = "QueryResponse"

# Metadata keys routed to the top level instead of `data`
ENTITY_METADATA = ("time",)
QUERY_METADATA = ("maxResults", "startPosition", "totalCount")


@dataclass(frozen=True)
class SingleEntityEnvelope:
    """``{"Customer": {...}, "time": "..."}``"""

    body: dict[str, Any]


@dataclass(frozen=True)
class QueryEnvelope:
    """``{"QueryResponse": {"Customer": [...], "maxResults": 5}, "time": "..."}``"""

    body: dict[str, Any]


@dataclass(frozen=True)
class ReportEnvelope:
    """``{"Header": {...}, "Columns": {...}, "Rows": {...}}``"""

    body: dict[str, Any]


Envelope = SingleEntityEnvelope | QueryEnvelope | ReportEnvelope


def classify(body: Any) -> Envelope:
    """Pick the envelope variant for a decoded response body."""
    if not isinstance(body, dict):
        raise ShapeError(
            f"Expected a JSON object response, got {type(body).__name__}", details=body
        )
    if isinstance(body.get(QUERY_WRAPPER), dict):
        return QueryEnvelope(body)
    if "Header" in body and ("Rows" in body or "Columns" in body):
        return ReportEnvelope(body)
    return SingleEntityEnvelope(body)


def normalize(body: Any, count: bool = False) -> dict[str, Any]:
    """Reshape a successful response body.

    Args:
        body: Decoded JSON body
        count: Whether the body answers a ``select count(*)`` query

    Returns:
        Remaining top-level fields, routed metadata and ``data``

    Raises:
        ShapeError: If the body matches no envelope or the payload key is ambiguous
    """
    envelope = classify(body)

    if isinstance(envelope, QueryEnvelope):
        rest = {k: v for k, v in body.items() if k != QUERY_WRAPPER}
        metadata, key, payload = _split(body[QUERY_WRAPPER], QUERY_METADATA, QUERY_WRAPPER)
        if key is None:
            # No entity key means an empty result set; returned as data, never a ShapeError
            payload = metadata.get("totalCount", 0) if count else []
        return {**rest, **metadata, "data": payload}

    if isinstance(envelope, ReportEnvelope):
        report = {k: body[k] for k in ("Header", "Columns", "Rows") if k in body}
        rest = {k: v for k, v in body.items() if k not in report}
        return {**rest, "data": report}

    metadata, key, payload = _split(body, ENTITY_METADATA, "response")
    if key is None:
        raise ShapeError("Unexpected empty response", details=body)
    rest = {k: v for k, v in body.items() if k != key and k not in metadata}
    return {**rest, **metadata, "data": payload}


def _split(
    container: dict[str, Any], allowed: tuple[str, ...], where: str
) -> tuple[dict[str, Any], str | None, Any]:
    """Route allow-listed keys to metadata and the single remaining key to data."""
    metadata: dict[str, Any] = {}
    data_key: str | None = None
    payload: Any = None
    for key, value in container.items():
        if value is None:
            continue
        if key in allowed:
            metadata[key] = value
        elif data_key is not None:
            raise ShapeError(
                f"Unexpected property {key} in {where} (already have {data_key})",
                details=container,
            )
        else:
            data_key = key
            payload = value
    return metadata, data_key, payload
