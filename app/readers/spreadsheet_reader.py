"""
app/readers/spreadsheet_reader.py

Black-box spreadsheet decoding: file path in, ordered cell rows out.

CSV is read with the stdlib ``csv`` module; XLSX/XLSM workbooks with
``openpyxl`` in read-only mode. Decoding failures surface as
``ProcessingError``.
"""

from __future__ import annotations

import csv
import math
import re
import zipfile
from dataclasses import dataclass
from itertools import islice
from pathlib import Path
from typing import Any, Iterable, Iterator, Sequence

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from app.domain.errors import ProcessingError, ValidationError

CSV_EXTENSIONS = frozenset({".csv", ".tsv"})
WORKBOOK_EXTENSIONS = frozenset({".xlsx", ".xlsm"})
SUPPORTED_EXTENSIONS = CSV_EXTENSIONS | WORKBOOK_EXTENSIONS

_INT_PATTERN = re.compile(r"^[+-]?\d+$")
_FLOAT_PATTERN = re.compile(r"^[+-]?(\d+\.\d*|\.\d+|\d+)([eE][+-]?\d+)?$")


@dataclass(frozen=True)
class SheetContent:
    """
    Raw cell rows for one sheet.
    """

    index: int
    name: str
    rows: list[list[Any]]


class SpreadsheetReader:
    """
    Reads sheets from CSV and Excel workbook files.
    """

    def sheet_count(self, path: str | Path) -> int:
        file_path = Path(path)
        if _extension(file_path) in CSV_EXTENSIONS:
            return 1
        workbook = self._open_workbook(file_path)
        try:
            return len(workbook.sheetnames)
        finally:
            workbook.close()

    def read_sheets(
        self,
        path: str | Path,
        *,
        indexes: Sequence[int] | None = None,
        row_limit: int | None = None,
    ) -> list[SheetContent]:
        """
        Read the requested sheets (all when ``indexes`` is None).

        ``row_limit`` bounds the number of raw rows pulled per sheet, header
        rows included. Blank rows at the end of that window are followed by
        the next non-blank row, when the sheet has one.
        """

        file_path = Path(path)
        extension = _extension(file_path)
        if extension in CSV_EXTENSIONS:
            return self._read_csv(file_path, indexes=indexes, row_limit=row_limit)
        return self._read_workbook(file_path, indexes=indexes, row_limit=row_limit)

    def read_sheet(
        self,
        path: str | Path,
        sheet_index: int,
        *,
        row_limit: int | None = None,
    ) -> SheetContent:
        return self.read_sheets(path, indexes=[sheet_index], row_limit=row_limit)[0]

    def _read_csv(
        self,
        file_path: Path,
        *,
        indexes: Sequence[int] | None,
        row_limit: int | None,
    ) -> list[SheetContent]:
        if indexes is not None:
            _check_indexes(indexes, sheet_count=1)
        delimiter = "\t" if _extension(file_path) == ".tsv" else ","
        try:
            with file_path.open("r", encoding="utf-8-sig", newline="") as handle:
                reader = csv.reader(handle, delimiter=delimiter)
                rows = [
                    [_coerce_csv_cell(cell) for cell in row]
                    for row in _limited(reader, row_limit)
                ]
        except FileNotFoundError as exc:
            raise ProcessingError(f"File not found: {file_path.name}") from exc
        except UnicodeDecodeError as exc:
            raise ProcessingError("CSV must be UTF-8 encoded.") from exc
        except csv.Error as exc:
            raise ProcessingError(f"Invalid CSV format: {exc}") from exc
        return [SheetContent(index=0, name=file_path.stem, rows=rows)]

    def _read_workbook(
        self,
        file_path: Path,
        *,
        indexes: Sequence[int] | None,
        row_limit: int | None,
    ) -> list[SheetContent]:
        workbook = self._open_workbook(file_path)
        try:
            names = list(workbook.sheetnames)
            selected = list(range(len(names))) if indexes is None else list(indexes)
            _check_indexes(selected, sheet_count=len(names))

            sheets: list[SheetContent] = []
            for index in selected:
                worksheet = workbook[names[index]]
                rows = [
                    list(values)
                    for values in _limited(worksheet.iter_rows(values_only=True), row_limit)
                ]
                sheets.append(SheetContent(index=index, name=names[index], rows=rows))
            return sheets
        except (KeyError, ValueError, zipfile.BadZipFile) as exc:
            raise ProcessingError(f"Failed to read workbook {file_path.name}: {exc}") from exc
        finally:
            workbook.close()

    @staticmethod
    def _open_workbook(file_path: Path) -> Any:
        extension = _extension(file_path)
        if extension not in WORKBOOK_EXTENSIONS:
            raise ProcessingError(
                f"Unsupported file type '{extension}'. Allowed: {sorted(SUPPORTED_EXTENSIONS)}."
            )
        try:
            return load_workbook(file_path, read_only=True, data_only=True)
        except FileNotFoundError as exc:
            raise ProcessingError(f"File not found: {file_path.name}") from exc
        except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
            raise ProcessingError(f"Failed to open workbook {file_path.name}: {exc}") from exc


def _extension(file_path: Path) -> str:
    return file_path.suffix.lower()


def _check_indexes(indexes: Iterable[int], *, sheet_count: int) -> None:
    for index in indexes:
        if index < 0 or index >= sheet_count:
            raise ValidationError(
                f"sheet_index {index} is out of range; the file has {sheet_count} sheet(s)."
            )


def _limited(rows: Iterable[Any], row_limit: int | None) -> Iterator[Any]:
    """
    Yield at most ``row_limit`` rows. When the window ends on a blank row,
    keep yielding up to and including the next non-blank one.

    The extra rows tell callers whether blanks at the end of the window are
    trailing or sit between data rows.
    """

    iterator = iter(rows)
    if row_limit is None:
        yield from iterator
        return
    ends_blank = False
    for row in islice(iterator, max(0, row_limit)):
        ends_blank = _is_blank_row(row)
        yield row
    if not ends_blank:
        return
    for row in iterator:
        yield row
        if not _is_blank_row(row):
            return


def _is_blank_row(row: Sequence[Any]) -> bool:
    return all(cell is None or (isinstance(cell, str) and not cell.strip()) for cell in row)


def _coerce_csv_cell(cell: str) -> Any:
    """
    CSV cells are text; recover numeric scalars so ordering queries work.
    """

    raw = cell.strip()
    if not raw:
        return None
    if _INT_PATTERN.match(raw):
        # Zero-padded codes stay text.
        if len(raw.lstrip("+-")) > 1 and raw.lstrip("+-").startswith("0"):
            return cell
        return int(raw)
    if _FLOAT_PATTERN.match(raw):
        parsed = float(raw)
        # Overflowing literals such as 1e999 stay text.
        return parsed if math.isfinite(parsed) else cell
    return cell
