"""
app/normalizers/row_normalizer.py

Converts raw sheet cells into ordered-key row documents.

Column resolution
-----------------
1. Header keys come from the row at ``header_index`` (snake_cased; blank
   headers fall back to the spreadsheet column letter).
2. ``keys`` override header keys positionally. When ``keys`` and the column
   count differ, both are truncated to the shorter length and a warning is
   reported. Blank entries keep the header key for their column.
3. ``cols`` entries then select, rename, transform or drop columns. If any
   entry references a column by ``index`` or ``source``, only referenced
   columns are emitted, in ``cols`` order; otherwise entries apply
   positionally on top of the header columns.

Rows above the header are discarded, trailing blank rows are dropped, and
interior blank rows are kept as documents of nulls.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Sequence

from app.domain.options import ColumnSpec

logger = logging.getLogger(__name__)

TRUE_VALUES = frozenset({"true", "yes", "y", "1", "on"})
FALSE_VALUES = frozenset({"false", "no", "n", "0", "off"})

DATE_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%d.%m.%Y",
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d %H:%M:%S",
)

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_NON_ALNUM = re.compile(r"[^0-9a-zA-Z]+")


def to_snake_case(text: str) -> str:
    """
    Normalize header text into a snake_case key.
    """

    spaced = _CAMEL_BOUNDARY.sub("_", text.strip())
    return _NON_ALNUM.sub("_", spaced).strip("_").lower()


def column_letter(index: int) -> str:
    """
    Spreadsheet column letter for a 0-based index (0 -> "a", 26 -> "aa").
    """

    letters = ""
    position = index + 1
    while position > 0:
        position, remainder = divmod(position - 1, 26)
        letters = chr(ord("a") + remainder) + letters
    return letters


@dataclass(frozen=True)
class OutputColumn:
    """
    One resolved source column and the key it is emitted under.
    """

    source_index: int
    key: str
    format: str | None = None


@dataclass(frozen=True)
class NormalizedSheet:
    """
    Normalizer output for a single sheet.
    """

    keys: list[str]
    rows: list[dict[str, Any]]
    warnings: list[str] = field(default_factory=list)


class RowNormalizer:
    """
    Builds row documents from raw cell rows and column configuration.
    """

    def normalize(
        self,
        raw_rows: Sequence[Sequence[Any]],
        *,
        header_index: int = 0,
        keys: Sequence[str] = (),
        cols: Sequence[ColumnSpec] = (),
        max_rows: int | None = None,
    ) -> NormalizedSheet:
        header_cells = list(raw_rows[header_index]) if header_index < len(raw_rows) else []
        data_rows = [list(row) for row in raw_rows[header_index + 1 :]]
        while data_rows and self.is_blank_row(data_rows[-1]):
            data_rows.pop()
        if max_rows is not None:
            data_rows = data_rows[:max_rows]

        width = max([len(header_cells)] + [len(row) for row in data_rows])
        warnings: list[str] = []
        base_keys = self._resolve_base_keys(header_cells, width=width, keys=keys, warnings=warnings)
        columns = self._resolve_columns(base_keys, header_cells, cols)

        rows = [self._build_row(row, columns) for row in data_rows]
        return NormalizedSheet(keys=[column.key for column in columns], rows=rows, warnings=warnings)

    @staticmethod
    def is_blank_row(row: Sequence[Any]) -> bool:
        return all(_is_blank(cell) for cell in row)

    def _resolve_base_keys(
        self,
        header_cells: Sequence[Any],
        *,
        width: int,
        keys: Sequence[str],
        warnings: list[str],
    ) -> list[str]:
        header_keys: list[str] = []
        for index in range(width):
            cell = header_cells[index] if index < len(header_cells) else None
            key = to_snake_case(str(cell)) if not _is_blank(cell) else ""
            header_keys.append(key or column_letter(index))
        if not keys:
            return _dedupe(header_keys)

        if width and len(keys) != width:
            message = (
                f"keys has {len(keys)} entries but the sheet has {width} columns; "
                f"using the first {min(len(keys), width)}."
            )
            logger.warning("Row normalizer key/column mismatch: %s", message)
            warnings.append(message)
        # Blank entries keep the column's header key.
        return _dedupe(
            [str(key).strip() or header_key for key, header_key in zip(keys, header_keys)]
        )

    def _resolve_columns(
        self,
        base_keys: list[str],
        header_cells: Sequence[Any],
        cols: Sequence[ColumnSpec],
    ) -> list[OutputColumn]:
        if not cols:
            return [OutputColumn(source_index=index, key=key) for index, key in enumerate(base_keys)]

        if any(spec.is_explicit for spec in cols):
            selected: list[OutputColumn] = []
            for spec in cols:
                source_index = self._find_source_index(spec, base_keys, header_cells)
                if source_index is None:
                    logger.debug("Ignoring unresolved column reference %r", spec)
                    continue
                if spec.skip:
                    continue
                selected.append(
                    OutputColumn(
                        source_index=source_index,
                        key=spec.key or base_keys[source_index],
                        format=spec.format,
                    )
                )
            return _dedupe_columns(selected)

        positional: list[OutputColumn] = []
        for index, key in enumerate(base_keys):
            spec = cols[index] if index < len(cols) else None
            if spec is None:
                positional.append(OutputColumn(source_index=index, key=key))
            elif not spec.skip:
                positional.append(
                    OutputColumn(source_index=index, key=spec.key or key, format=spec.format)
                )
        return _dedupe_columns(positional)

    @staticmethod
    def _find_source_index(
        spec: ColumnSpec,
        base_keys: list[str],
        header_cells: Sequence[Any],
    ) -> int | None:
        if spec.index is not None:
            return spec.index if spec.index < len(base_keys) else None
        if spec.source is None:
            return None

        wanted = spec.source.strip()
        for index, cell in enumerate(header_cells[: len(base_keys)]):
            if not _is_blank(cell) and str(cell).strip() == wanted:
                return index
        wanted_key = to_snake_case(wanted)
        for index, key in enumerate(base_keys):
            if key == wanted or key == wanted_key:
                return index
        return None

    def _build_row(self, cells: Sequence[Any], columns: Sequence[OutputColumn]) -> dict[str, Any]:
        document: dict[str, Any] = {}
        for column in columns:
            raw = cells[column.source_index] if column.source_index < len(cells) else None
            value = normalize_cell(raw)
            if column.format is not None and value is not None:
                value = coerce_value(value, column.format)
            document[column.key] = value
        return document


def normalize_cell(value: Any) -> Any:
    """
    Convert a raw cell into a JSON-compatible scalar.
    """

    if value is None:
        return None
    if isinstance(value, str):
        return value if value.strip() else None
    if isinstance(value, bool):
        return value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        value = float(value)
    if isinstance(value, float) and not math.isfinite(value):
        # JSON has no NaN or Infinity.
        return str(value)
    if isinstance(value, float) and value.is_integer() and abs(value) < 2**53:
        return int(value)
    if isinstance(value, (int, float)):
        return value
    return str(value)


def coerce_value(value: Any, column_format: str) -> Any:
    """
    Apply a declared column transform; values that do not coerce are kept.
    """

    try:
        if column_format == "string":
            return value if isinstance(value, str) else _stringify(value)
        if column_format == "number":
            return _to_number(value)
        if column_format == "integer":
            return int(_to_number(value))
        if column_format == "boolean":
            return _to_boolean(value)
        if column_format == "date":
            return _to_datetime(value).date().isoformat()
        if column_format == "datetime":
            return _to_datetime(value).isoformat()
    except (ValueError, TypeError, OverflowError, InvalidOperation):
        logger.debug("Value %r could not be coerced to %s; keeping original", value, column_format)
        return value
    return value


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _to_number(value: Any) -> int | float:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    raw = str(value).strip().replace(",", "")
    try:
        return int(raw)
    except ValueError:
        pass
    parsed = float(Decimal(raw))
    if not math.isfinite(parsed):
        raise ValueError(f"Not a finite number: {value!r}")
    return int(parsed) if parsed.is_integer() and "." not in raw and "e" not in raw.lower() else parsed


def _to_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    lowered = str(value).strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ValueError(f"Not a boolean: {value!r}")


def _to_datetime(value: Any) -> datetime:
    raw = str(value).strip()
    normalized = raw[:-1] + "+00:00" if raw.endswith("Z") else raw
    try:
        return datetime.fromisoformat(normalized)
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt)
        except ValueError:
            continue
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    raise ValueError(f"Not a date: {value!r}")


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, str) and value.strip() == ""


def _dedupe(keys: Sequence[str]) -> list[str]:
    seen: dict[str, int] = {}
    result: list[str] = []
    for key in keys:
        if key not in seen:
            seen[key] = 1
            result.append(key)
            continue
        seen[key] += 1
        candidate = f"{key}_{seen[key]}"
        while candidate in seen:
            seen[key] += 1
            candidate = f"{key}_{seen[key]}"
        seen[candidate] = 1
        result.append(candidate)
    return result


def _dedupe_columns(columns: list[OutputColumn]) -> list[OutputColumn]:
    keys = _dedupe([column.key for column in columns])
    return [
        OutputColumn(source_index=column.source_index, key=key, format=column.format)
        for column, key in zip(columns, keys)
    ]
