"""
tests/helpers.py

Spreadsheet builders shared by the test modules.
"""

from __future__ import annotations

import csv
import io
from pathlib import Path
from typing import Any, Sequence

from openpyxl import Workbook


def csv_bytes(rows: Sequence[Sequence[Any]]) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    for row in rows:
        writer.writerow(["" if cell is None else cell for cell in row])
    return buffer.getvalue().encode("utf-8")


def write_xlsx(path: Path, sheets: dict[str, Sequence[Sequence[Any]]]) -> Path:
    workbook = Workbook()
    workbook.remove(workbook.active)
    for name, rows in sheets.items():
        worksheet = workbook.create_sheet(title=name)
        for row in rows:
            worksheet.append(list(row))
    workbook.save(path)
    return path


def xlsx_bytes(tmp_path: Path, sheets: dict[str, Sequence[Sequence[Any]]]) -> bytes:
    return write_xlsx(tmp_path / "fixture.xlsx", sheets).read_bytes()


PEOPLE_ROWS: list[list[Any]] = [
    ["Name", "Age", "City"],
    ["Alice", 30, "Paris"],
    ["Bob", 25, "London"],
    ["Carol", 41, "Berlin"],
]
