"""
app/domain/options.py

Processing options for upload and reprocess requests.

Options arrive as loosely typed request values (multipart form strings or a
JSON body). ``resolve_options`` turns them into an immutable
``ProcessingOptions``; any field the request omits falls back to the options
previously stored on the dataset, then to defaults.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Mapping

from app.domain.errors import ValidationError


class ProcessingMode:
    PREVIEW = "preview"
    SYNC = "sync"
    ASYNC = "async"


ALLOWED_MODES: frozenset[str] = frozenset(
    {ProcessingMode.PREVIEW, ProcessingMode.SYNC, ProcessingMode.ASYNC}
)

# Declared value transforms, keyed by accepted alias.
COLUMN_FORMATS: dict[str, str] = {
    "string": "string",
    "text": "string",
    "number": "number",
    "float": "number",
    "decimal": "number",
    "integer": "integer",
    "int": "integer",
    "boolean": "boolean",
    "bool": "boolean",
    "date": "date",
    "datetime": "datetime",
}


@dataclass(frozen=True)
class ColumnSpec:
    """
    One column inclusion/transform rule.

    ``index`` or ``source`` reference a sheet column explicitly; an entry with
    neither applies to the column at its own position in the ``cols`` list.
    """

    key: str | None = None
    index: int | None = None
    source: str | None = None
    format: str | None = None
    skip: bool = False

    @property
    def is_explicit(self) -> bool:
        return self.index is not None or self.source is not None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], *, position: int) -> "ColumnSpec":
        if not isinstance(raw, Mapping):
            raise ValidationError(f"cols[{position}] must be an object.")

        key = raw.get("key")
        if key is not None and (not isinstance(key, str) or not key.strip()):
            raise ValidationError(f"cols[{position}].key must be a non-empty string.")

        index = raw.get("index")
        if index is not None:
            if isinstance(index, bool) or not isinstance(index, int) or index < 0:
                raise ValidationError(f"cols[{position}].index must be a non-negative integer.")

        source = raw.get("source", raw.get("name"))
        if source is not None and not isinstance(source, str):
            raise ValidationError(f"cols[{position}].source must be a string.")

        raw_format = raw.get("format", raw.get("type"))
        column_format: str | None = None
        if raw_format is not None:
            column_format = COLUMN_FORMATS.get(str(raw_format).strip().lower())
            if column_format is None:
                allowed = ", ".join(sorted(COLUMN_FORMATS))
                raise ValidationError(
                    f"cols[{position}].format '{raw_format}' is not supported. Allowed: {allowed}."
                )

        return cls(
            key=key.strip() if isinstance(key, str) else None,
            index=index,
            source=source.strip() if isinstance(source, str) and source.strip() else None,
            format=column_format,
            skip=bool(raw.get("skip", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.key is not None:
            payload["key"] = self.key
        if self.index is not None:
            payload["index"] = self.index
        if self.source is not None:
            payload["source"] = self.source
        if self.format is not None:
            payload["format"] = self.format
        if self.skip:
            payload["skip"] = True
        return payload


@dataclass(frozen=True)
class ProcessingOptions:
    """
    Effective processing configuration for one request.
    """

    mode: str = ProcessingMode.SYNC
    max: int | None = None
    sheet_index: int = 0
    header_index: int = 0
    keys: tuple[str, ...] = field(default_factory=tuple)
    cols: tuple[ColumnSpec, ...] = field(default_factory=tuple)
    lines: bool = False

    @property
    def is_preview(self) -> bool:
        return self.mode == ProcessingMode.PREVIEW

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "max": self.max,
            "sheet_index": self.sheet_index,
            "header_index": self.header_index,
            "keys": list(self.keys),
            "cols": [col.to_dict() for col in self.cols],
            "lines": self.lines,
        }


OPTION_FIELDS: tuple[str, ...] = (
    "mode",
    "max",
    "sheet_index",
    "header_index",
    "keys",
    "cols",
    "lines",
)


def resolve_options(
    raw: Mapping[str, Any],
    *,
    fallback: Mapping[str, Any] | None = None,
) -> ProcessingOptions:
    """
    Build validated options from request values with stored-option fallback.

    Raises ValidationError on the first malformed value; nothing is persisted
    before this runs.
    """

    merged: dict[str, Any] = {}
    for name in OPTION_FIELDS:
        value = raw.get(name)
        if _is_omitted(value) and fallback is not None:
            value = fallback.get(name)
        merged[name] = None if _is_omitted(value) else value

    mode = _parse_mode(merged["mode"])
    return ProcessingOptions(
        mode=mode,
        max=_parse_optional_int("max", merged["max"], minimum=1),
        sheet_index=_parse_optional_int("sheet_index", merged["sheet_index"], minimum=0) or 0,
        header_index=_parse_optional_int("header_index", merged["header_index"], minimum=0) or 0,
        keys=_parse_keys(merged["keys"]),
        cols=_parse_cols(merged["cols"]),
        lines=_parse_lines(merged["lines"]),
    )


def _is_omitted(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_mode(value: Any) -> str:
    if value is None:
        return ProcessingMode.SYNC
    mode = str(value).strip().lower()
    if mode not in ALLOWED_MODES:
        raise ValidationError(
            f"mode '{value}' is not valid. Allowed values: {sorted(ALLOWED_MODES)}."
        )
    return mode


def _parse_optional_int(name: str, value: Any, *, minimum: int) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer.")
    try:
        parsed = int(str(value).strip()) if not isinstance(value, int) else value
    except ValueError as exc:
        raise ValidationError(f"{name} must be an integer.") from exc
    if parsed < minimum:
        raise ValidationError(f"{name} must be >= {minimum}.")
    return parsed


def _parse_keys(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        parts = value.split(",")
    elif isinstance(value, (list, tuple)):
        parts = ["" if item is None else str(item) for item in value]
    else:
        raise ValidationError("keys must be a comma-separated string or a list of strings.")
    keys = tuple(part.strip() for part in parts)
    # Positions matter: "id,,city" leaves the second column on its header key.
    return keys if any(keys) else ()


def _parse_cols(value: Any) -> tuple[ColumnSpec, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"cols must be valid JSON: {exc.msg}.") from exc
    if not isinstance(value, (list, tuple)):
        raise ValidationError("cols must be a list of column objects.")
    return tuple(ColumnSpec.from_dict(item, position=position) for position, item in enumerate(value))


def _parse_lines(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value > 0
    lowered = str(value).strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    try:
        return int(lowered) > 0
    except ValueError as exc:
        raise ValidationError("lines must be a boolean or integer.") from exc
