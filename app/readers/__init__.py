"""
app/readers package marker.
"""

from app.readers.spreadsheet_reader import SheetContent, SpreadsheetReader

__all__ = [
    "SheetContent",
    "SpreadsheetReader",
]
