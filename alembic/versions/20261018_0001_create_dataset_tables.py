"""create datasets, dataset_imports and data_rows tables

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 10:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "datasets",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False, comment="Human-readable label; defaults to the uploaded filename"),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("user_ref", sa.String(length=255), nullable=True, comment="Opaque caller-supplied owner reference"),
        sa.Column("options", postgresql.JSONB(astext_type=sa.Text()), nullable=True, comment="Last-applied processing options"),
        sa.Column("status", sa.String(length=32), nullable=False, comment="processing | ready | failed"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_datasets_status", "datasets", ["status"], unique=False)
    op.create_index("ix_datasets_user_ref", "datasets", ["user_ref"], unique=False)

    op.create_table(
        "dataset_imports",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("dataset_id", sa.Uuid(), nullable=False),
        sa.Column("seq", sa.Integer(), nullable=False, comment="Position in the dataset's import order"),
        sa.Column("dt", sa.DateTime(timezone=True), nullable=False, comment="Import timestamp, refreshed on reprocess"),
        sa.Column("filename", sa.String(length=512), nullable=False, comment="Temp upload handle the rows were read from"),
        sa.Column("sheet_index", sa.Integer(), nullable=False),
        sa.Column("sheet_name", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("row_count", sa.Integer(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["dataset_id"], ["datasets.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("dataset_id", "seq", name="uq_dataset_imports_dataset_seq"),
    )
    op.create_index("ix_dataset_imports_filename", "dataset_imports", ["filename"], unique=False)

    op.create_table(
        "data_rows",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("dataset_id", sa.Uuid(), nullable=False),
        sa.Column("import_id", sa.Uuid(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, comment="0-based row position within the import"),
        # Plain JSON keeps key order; JSONB would not.
        sa.Column("data", sa.JSON(), nullable=False),
        sa.ForeignKeyConstraint(["dataset_id"], ["datasets.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["import_id"], ["dataset_imports.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_data_rows_dataset_id", "data_rows", ["dataset_id"], unique=False)
    op.create_index("ix_data_rows_import_position", "data_rows", ["import_id", "position"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_data_rows_import_position", table_name="data_rows")
    op.drop_index("ix_data_rows_dataset_id", table_name="data_rows")
    op.drop_table("data_rows")
    op.drop_index("ix_dataset_imports_filename", table_name="dataset_imports")
    op.drop_table("dataset_imports")
    op.drop_index("ix_datasets_user_ref", table_name="datasets")
    op.drop_index("ix_datasets_status", table_name="datasets")
    op.drop_table("datasets")
