"""
db/models/data_row.py

Schemaless row documents contributed by an import.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import BigInteger, ForeignKey, Index, Integer, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, OrderedJSONDocument


class DataRow(Base):
    __tablename__ = "data_rows"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer(), "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    dataset_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("datasets.id", ondelete="CASCADE"),
        nullable=False,
    )
    import_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("dataset_imports.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="0-based row position within the import",
    )
    data: Mapped[dict[str, Any]] = mapped_column(OrderedJSONDocument, nullable=False)

    __table_args__ = (
        Index("ix_data_rows_dataset_id", "dataset_id"),
        Index("ix_data_rows_import_position", "import_id", "position"),
    )
