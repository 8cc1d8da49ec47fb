"""Compile query criteria into QuickBooks query-language statements.

Criteria arrive in one of three shapes and are resolved once, here:

- a raw string, passed through as the tail of the statement
- a mapping of field to value (``{"Active": True, "Id": ["1", "2"]}``)
- a sequence of ``{"field", "value", "operator"}`` records, plain mappings, or both

The pseudo-fields ``limit``, ``offset``, ``fetchAll``, ``asc``, ``desc`` and
``count`` control paging, ordering and aggregation and never reach the
where-clause.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any

from ..errors import ValidationError

logger = logging.getLogger(__name__)

QUERY_OPERATORS = ("=", "IN", "<", ">", "<=", ">=", "LIKE")

DEFAULT_LIMIT = 1000
DEFAULT_OFFSET = 1

PSEUDO_FIELDS = ("limit", "offset", "fetchall", "asc", "desc", "count")

# Order matters: "%" first so later escapes are not encoded twice.
RESERVED_CHARACTERS = (
    ("%", "%25"),
    ("'", "%27"),
    ("=", "%3D"),
    ("<", "%3C"),
    (">", "%3E"),
    ("&", "%26"),
    ("#", "%23"),
    ("\\", "%5C"),
    ("+", "%2B"),
)


@dataclass(frozen=True)
class Criterion:
    """A single ``field operator value`` filter."""

    field: str
    value: Any
    operator: str = "="

    def __post_init__(self) -> None:
        if self.operator.upper() not in QUERY_OPERATORS:
            raise ValidationError(
                f"Unsupported query operator {self.operator!r}; expected one of {', '.join(QUERY_OPERATORS)}"
            )


@dataclass(frozen=True)
class RawClause:
    """Query text supplied verbatim by the caller."""

    text: str


@dataclass(frozen=True)
class FieldMap:
    """Mapping of field name to value."""

    fields: dict[str, Any]


@dataclass(frozen=True)
class CriteriaList:
    """Ordered list of criteria."""

    items: tuple[Criterion, ...] = ()


@dataclass(frozen=True)
class QueryOptions:
    """Paging, ordering and aggregation controls pulled out of the criteria."""

    limit: int = DEFAULT_LIMIT
    offset: int = DEFAULT_OFFSET
    fetch_all: bool = False
    asc: str | None = None
    desc: str | None = None
    count: bool = False


@dataclass(frozen=True)
class CompiledQuery:
    """A compiled ``select`` statement for one entity."""

    entity: str
    where: str = ""
    options: QueryOptions = field(default_factory=QueryOptions)
    raw: str | None = None

    @property
    def statement(self) -> str:
        """Un-encoded query statement."""
        select = "select count(*) from" if self.options.count else "select * from"
        base = f"{select} {self.entity}"
        if self.raw is not None:
            return base + self.raw
        return base + self.where + order_clause(self.options) + paging_clause(self.options)

    @property
    def path(self) -> str:
        """Request path with the statement percent-encoded."""
        return "/query?query=" + encode_clause(self.statement)

    def with_offset(self, offset: int) -> "CompiledQuery":
        """Same query starting at another position."""
        return replace(self, options=replace(self.options, offset=offset))

    def with_count(self) -> "CompiledQuery":
        """Same filters as a ``select count(*)`` query."""
        return replace(self, options=replace(self.options, count=True, fetch_all=False))


Criteria = RawClause | FieldMap | CriteriaList


def parse_criteria(criteria: Any) -> Criteria:
    """Resolve caller criteria into one of the three criteria shapes.

    Raises:
        ValidationError: If criteria is not a string, mapping or sequence of mappings
    """
    if criteria is None:
        return CriteriaList()
    if isinstance(criteria, (RawClause, FieldMap, CriteriaList)):
        return criteria
    if isinstance(criteria, str):
        return RawClause(criteria)
    if isinstance(criteria, dict):
        if _is_record(criteria):
            return CriteriaList((_record_to_criterion(criteria),))
        return FieldMap(dict(criteria))
    if isinstance(criteria, (list, tuple)):
        items: list[Criterion] = []
        for element in criteria:
            if isinstance(element, Criterion):
                items.append(element)
            elif isinstance(element, dict):
                items.extend(to_criteria(element))
            else:
                raise ValidationError(
                    f"Criteria list elements must be mappings, got {type(element).__name__}",
                    details=element,
                )
        return CriteriaList(tuple(items))
    raise ValidationError(
        f"Criteria must be a string, mapping or list, got {type(criteria).__name__}",
        details=criteria,
    )


def to_criteria(mapping: dict[str, Any]) -> list[Criterion]:
    """Normalize one mapping into criteria."""
    if _is_record(mapping):
        return [_record_to_criterion(mapping)]
    return [
        Criterion(field=key, value=value, operator="IN" if isinstance(value, (list, tuple)) else "=")
        for key, value in mapping.items()
    ]


def compile_query(entity: str, criteria: Any = None) -> CompiledQuery:
    """Compile criteria into a query for an entity."""
    parsed = parse_criteria(criteria)

    if isinstance(parsed, RawClause):
        text = parsed.text
        return CompiledQuery(entity=entity, raw=text if text.startswith(" ") else " " + text)

    items = to_criteria(parsed.fields) if isinstance(parsed, FieldMap) else list(parsed.items)
    filters, options = split_options(items)
    return CompiledQuery(entity=entity, where=where_clause(filters), options=options)


def split_options(items: list[Criterion]) -> tuple[list[Criterion], QueryOptions]:
    """Separate pseudo-field criteria from real filters."""
    filters: list[Criterion] = []
    values: dict[str, Any] = {}
    for criterion in items:
        name = criterion.field.lower() if isinstance(criterion.field, str) else criterion.field
        if name in PSEUDO_FIELDS:
            values[name] = criterion.value
        else:
            filters.append(criterion)

    options = QueryOptions(
        limit=_positive_int(values.get("limit"), DEFAULT_LIMIT, "limit"),
        offset=_positive_int(values.get("offset"), DEFAULT_OFFSET, "offset"),
        fetch_all=bool(values.get("fetchall")),
        asc=values.get("asc") or None,
        desc=values.get("desc") or None,
        count=bool(values.get("count")),
    )
    return filters, options


def where_clause(filters: list[Criterion]) -> str:
    """Render filters as `` where a = 1 and b IN ('x','y')``."""
    if not filters:
        return ""
    parts = []
    for criterion in filters:
        if isinstance(criterion.value, (list, tuple)):
            rendered = "(" + ",".join(quote_value(v) for v in criterion.value) + ")"
        else:
            rendered = quote_value(criterion.value)
        parts.append(f"{criterion.field} {criterion.operator} {rendered}")
    return " where " + " and ".join(parts)


def order_clause(options: QueryOptions) -> str:
    if options.asc and options.desc:
        logger.warning(
            f"Both asc ({options.asc}) and desc ({options.desc}) ordering given; using desc"
        )
    if options.desc:
        return f" orderby {options.desc} desc"
    if options.asc:
        return f" orderby {options.asc} asc"
    return ""


def paging_clause(options: QueryOptions) -> str:
    return f" startposition {options.offset} maxresults {options.limit}"


def quote_value(value: Any) -> str:
    """Render a value for the query language."""
    if isinstance(value, str):
        return "'" + value.replace("'", "\\'") + "'"
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def encode_clause(text: str) -> str:
    """Percent-encode the query language's reserved characters."""
    for char, escaped in RESERVED_CHARACTERS:
        text = text.replace(char, escaped)
    return text


def _is_record(mapping: dict[str, Any]) -> bool:
    return "field" in mapping and "value" in mapping


def _record_to_criterion(record: dict[str, Any]) -> Criterion:
    return Criterion(
        field=record["field"],
        value=record["value"],
        operator=record.get("operator") or "=",
    )


def _positive_int(value: Any, default: int, name: str) -> int:
    if value is None or value == "":
        return default
    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{name} must be an integer, got {value!r}") from e
    if number < 1:
        raise ValidationError(f"{name} must be at least 1, got {number}")
    return number
