"""
db/models/dataset.py

Dataset model: the top-level queryable collection built from one or more
spreadsheet imports.
"""

import uuid
from typing import TYPE_CHECKING, Any

from sqlalchemy import Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, JSONDocument, TimestampMixin

if TYPE_CHECKING:
    from db.models.dataset_import import DatasetImport


class DatasetStatus:
    """Valid processing states for datasets and imports."""

    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


class Dataset(Base, TimestampMixin):
    """
    One dataset and its metadata.

    options stores the last-applied processing configuration so a reprocess
    request can fall back to it for omitted fields.
    """

    __tablename__ = "datasets"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Human-readable label; defaults to the uploaded filename",
    )

    title: Mapped[str | None] = mapped_column(String(255), nullable=True)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    user_ref: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Opaque caller-supplied owner reference",
    )

    options: Mapped[dict[str, Any] | None] = mapped_column(
        JSONDocument,
        nullable=True,
        comment="Last-applied processing options",
    )

    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=DatasetStatus.READY,
        comment="processing | ready | failed",
    )

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # ── Relationships ──────────────────────────────────────────────────────────

    imports: Mapped[list["DatasetImport"]] = relationship(
        "DatasetImport",
        back_populates="dataset",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="DatasetImport.seq",
    )

    # ── Indexes ────────────────────────────────────────────────────────────────

    __table_args__ = (
        Index("ix_datasets_status", "status"),
        Index("ix_datasets_user_ref", "user_ref"),
    )

    def __repr__(self) -> str:
        return f"<Dataset id={self.id} name={self.name!r} status={self.status!r}>"
