"""create extension field catalog and schema version

Revision ID: 20261019_000002
Revises: 20261019_000001
Create Date: 2026-10-19 00:10:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "20261019_000002"
down_revision = "20261019_000001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "extension_field_definitions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=False),
        sa.Column("field_name", sa.String(length=200), nullable=False),
        sa.Column("column_name", sa.String(length=100), nullable=False),
        sa.Column("data_type", sa.String(length=50), nullable=False),
        sa.Column("max_length", sa.Integer(), nullable=True),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("default_value", sa.String(length=500), nullable=True),
        sa.Column("display_name", sa.String(length=200), nullable=True),
        sa.Column("description", sa.String(length=1000), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("created_by", sa.String(length=100), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ux_extension_field_definitions_active_column",
        "extension_field_definitions",
        ["entity_type", "column_name"],
        unique=True,
        postgresql_where=sa.text("is_deleted = false"),
        sqlite_where=sa.text("is_deleted = 0"),
    )
    op.create_index(
        "ix_extension_field_definitions_entity_type",
        "extension_field_definitions",
        ["entity_type"],
    )

    schema_version = op.create_table(
        "extension_field_schema_version",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=False, nullable=False),
        sa.Column("version", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("last_modified", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("last_modified_by", sa.String(length=100), nullable=True),
    )
    op.bulk_insert(
        schema_version,
        [{"id": 1, "version": 0, "last_modified_by": "system"}],
    )


def downgrade() -> None:
    op.drop_table("extension_field_schema_version")
    op.drop_index("ix_extension_field_definitions_entity_type", table_name="extension_field_definitions")
    op.drop_index("ux_extension_field_definitions_active_column", table_name="extension_field_definitions")
    op.drop_table("extension_field_definitions")
