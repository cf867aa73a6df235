"""
app/services/query_engine.py

Pure filter / sort / paginate over row documents.

Nothing here touches storage: ``query_rows`` receives the rows of a dataset
in insertion order and returns the filtered total plus one page.

Comparison rules
----------------
- ``eq``/``ne`` are exact and type-sensitive (``"1"`` never equals ``1``, and
  booleans never equal numbers).
- ``gt``/``gte``/``lt``/``lte`` compare number-number or date-date pairs only;
  any other pair excludes the row.
- ``like``/``starts``/``ends``/``rgx`` are case-insensitive, ``rcs`` is not.
- A missing field matches only ``ne`` and ``nin``.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Sequence

from app.domain.errors import ValidationError
from app.normalizers.row_normalizer import to_snake_case

OPERATORS: tuple[str, ...] = (
    "eq",
    "ne",
    "gt",
    "gte",
    "lt",
    "lte",
    "in",
    "nin",
    "like",
    "rgx",
    "rcs",
    "starts",
    "ends",
)

STRING_OPERATORS = frozenset({"like", "rgx", "rcs", "starts", "ends"})
LIST_OPERATORS = frozenset({"in", "nin"})
ORDERING_OPERATORS = frozenset({"gt", "gte", "lt", "lte"})
SORT_DIRECTIONS = frozenset({"asc", "desc"})

_MISSING = object()


@dataclass(frozen=True)
class Predicate:
    """
    One (field, operator, value) filter triple.

    ``pattern`` is the compiled regex for ``rgx``/``rcs``.
    """

    field: str
    operator: str
    value: Any
    pattern: re.Pattern[str] | None = None


@dataclass(frozen=True)
class SortSpec:
    field: str
    direction: str = "asc"

    @property
    def descending(self) -> bool:
        return self.direction == "desc"


@dataclass(frozen=True)
class QueryResult:
    total: int
    rows: list[dict[str, Any]]


def decode_query_value(raw: str) -> Any:
    """
    Decode a query-string value as a JSON literal, else keep the raw string.
    """

    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return raw


def build_predicate(field: str, operator: str, raw_value: str | None) -> Predicate:
    """
    Validate the triple and decode ``raw_value`` for the operator.
    """

    field = (field or "").strip()
    if not field:
        raise ValidationError("Filter field must not be empty.")

    op = (operator or "eq").strip().lower()
    if op not in OPERATORS:
        raise ValidationError(
            f"Unsupported operator '{operator}'. Allowed: {', '.join(OPERATORS)}."
        )

    raw = "" if raw_value is None else raw_value

    if op in STRING_OPERATORS:
        if op in {"rgx", "rcs"}:
            flags = re.IGNORECASE if op == "rgx" else 0
            try:
                pattern = re.compile(raw, flags)
            except re.error as exc:
                raise ValidationError(f"Invalid regular expression '{raw}': {exc}") from exc
            return Predicate(field=field, operator=op, value=raw, pattern=pattern)
        return Predicate(field=field, operator=op, value=raw)

    if op in LIST_OPERATORS:
        return Predicate(field=field, operator=op, value=_decode_list(raw))

    return Predicate(field=field, operator=op, value=decode_query_value(raw))


def build_sort(field: str | None, direction: str | None = None) -> SortSpec | None:
    if field is None or not field.strip():
        return None
    normalized = (direction or "asc").strip().lower()
    if normalized not in SORT_DIRECTIONS:
        raise ValidationError("Sort direction must be 'asc' or 'desc'.")
    return SortSpec(field=field.strip(), direction=normalized)


def resolve_field(row: Any, path: str) -> Any:
    """
    Follow a dotted path into a row document.

    Each segment is tried verbatim, then snake_cased. Integer segments index
    into lists. Returns the module-level missing sentinel when unresolved.
    """

    current = row
    for segment in path.split("."):
        if isinstance(current, dict):
            if segment in current:
                current = current[segment]
                continue
            snake = to_snake_case(segment)
            if snake in current:
                current = current[snake]
                continue
            return _MISSING
        if isinstance(current, list) and segment.lstrip("-").isdigit():
            index = int(segment)
            if -len(current) <= index < len(current):
                current = current[index]
                continue
        return _MISSING
    return current


def is_missing(value: Any) -> bool:
    return value is _MISSING


def evaluate(row: dict[str, Any], predicate: Predicate) -> bool:
    """
    Return True when ``row`` satisfies ``predicate``.
    """

    value = resolve_field(row, predicate.field)
    op = predicate.operator

    if value is _MISSING:
        return op in {"ne", "nin"}

    if op == "eq":
        return _strict_equal(value, predicate.value)
    if op == "ne":
        return not _strict_equal(value, predicate.value)
    if op == "in":
        return any(_strict_equal(value, item) for item in predicate.value)
    if op == "nin":
        return not any(_strict_equal(value, item) for item in predicate.value)
    if op in ORDERING_OPERATORS:
        return _compare(value, predicate.value, op)

    if not isinstance(value, str):
        return False
    needle = predicate.value
    if op == "like":
        return value.casefold() == needle.casefold()
    if op == "starts":
        return value.casefold().startswith(needle.casefold())
    if op == "ends":
        return value.casefold().endswith(needle.casefold())
    # rgx / rcs
    return predicate.pattern is not None and predicate.pattern.search(value) is not None


def query_rows(
    rows: Sequence[dict[str, Any]],
    *,
    predicate: Predicate | None = None,
    sort: SortSpec | None = None,
    start: int = 0,
    limit: int | None = None,
) -> QueryResult:
    """
    Filter, sort and slice ``rows``. ``total`` is the filtered count.
    """

    if start < 0:
        raise ValidationError("start must be >= 0.")
    if limit is not None and limit < 0:
        raise ValidationError("limit must be >= 0.")

    matched = [row for row in rows if predicate is None or evaluate(row, predicate)]
    if sort is not None:
        matched = sort_rows(matched, sort)

    end = None if limit is None else start + limit
    return QueryResult(total=len(matched), rows=matched[start:end])


def sort_rows(rows: Sequence[dict[str, Any]], sort: SortSpec) -> list[dict[str, Any]]:
    """
    Stable sort by one field. Null values, then rows missing the field, go
    last in either direction.
    """

    present: list[tuple[tuple[int, Any], dict[str, Any]]] = []
    nulls: list[dict[str, Any]] = []
    missing: list[dict[str, Any]] = []
    for row in rows:
        value = resolve_field(row, sort.field)
        if value is _MISSING:
            missing.append(row)
        elif value is None:
            nulls.append(row)
        else:
            present.append((_sort_key(value), row))

    # sorted() is stable, including with reverse=True.
    ordered = sorted(present, key=lambda item: item[0], reverse=sort.descending)
    return [row for _, row in ordered] + nulls + missing


def _decode_list(raw: str) -> list[Any]:
    text = raw.strip()
    if text.startswith("["):
        try:
            decoded = json.loads(text)
        except ValueError as exc:
            raise ValidationError(f"Invalid JSON array for list operator: {raw}") from exc
        if isinstance(decoded, list):
            return decoded
    if not text:
        return []
    return [decode_query_value(part.strip()) for part in text.split(",")]


def _strict_equal(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if _is_number(left) and _is_number(right):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _compare(left: Any, right: Any, op: str) -> bool:
    if _is_number(left) and _is_number(right):
        pair = (left, right)
    else:
        left_dt = _as_datetime(left)
        right_dt = _as_datetime(right)
        if left_dt is None or right_dt is None:
            return False
        pair = (left_dt, right_dt)

    a, b = pair
    if op == "gt":
        return a > b
    if op == "gte":
        return a >= b
    if op == "lt":
        return a < b
    return a <= b


def _sort_key(value: Any) -> tuple[int, Any]:
    if isinstance(value, bool):
        return (0, value)
    if _is_number(value):
        return (1, value)
    if isinstance(value, str):
        return (2, value)
    return (3, json.dumps(value, sort_keys=True, default=str))
