"""
app/normalizers package marker.
"""

from app.normalizers.row_normalizer import NormalizedSheet, RowNormalizer

__all__ = [
    "NormalizedSheet",
    "RowNormalizer",
]
