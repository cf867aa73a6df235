"""
db/models/dataset_import.py

One spreadsheet file's contribution to a dataset.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, TimestampMixin, utcnow
from db.models.dataset import DatasetStatus

if TYPE_CHECKING:
    from db.models.dataset import Dataset


class DatasetImport(Base, TimestampMixin):
    __tablename__ = "dataset_imports"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    dataset_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("datasets.id", ondelete="CASCADE"),
        nullable=False,
    )
    seq: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Position in the dataset's import order",
    )
    dt: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        comment="Import timestamp, refreshed on reprocess",
    )
    filename: Mapped[str] = mapped_column(
        String(512),
        nullable=False,
        comment="Temp upload handle the rows were read from",
    )
    sheet_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sheet_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=DatasetStatus.READY,
    )
    row_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    dataset: Mapped["Dataset"] = relationship("Dataset", back_populates="imports")

    __table_args__ = (
        UniqueConstraint("dataset_id", "seq", name="uq_dataset_imports_dataset_seq"),
        Index("ix_dataset_imports_filename", "filename"),
    )
