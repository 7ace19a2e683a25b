"""Provision extension columns: validate, run DDL, record the catalog row and bump the version."""
from __future__ import annotations

import re
from datetime import datetime, timezone
from logging import getLogger
from typing import Optional
from uuid import UUID

import sqlalchemy as sa
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from extension_fields.config import get_settings
from extension_fields.exceptions import (
    ExtensionFieldConflictError,
    ExtensionFieldExecutionError,
    ExtensionFieldNotFoundError,
    ExtensionFieldValidationError,
)
from extension_fields.models import ExtensionFieldDefinition
from extension_fields.schemas import FieldDataType
from extension_fields.services.extension_field_catalog import (
    find_field_by_column,
    increment_schema_version,
)
from extension_fields.services.extension_types import build_column_type, parse_data_type
from extension_fields.services.metadata_loader import resolve_entity_table

logger = getLogger(__name__)

MAX_FIELD_NAME_LENGTH = 200
MAX_ENTITY_TYPE_LENGTH = 100
# PostgreSQL truncates identifiers beyond 63 bytes, which would hide collisions.
MAX_COLUMN_NAME_LENGTH = 63

_FIELD_NAME_PATTERN = re.compile(r"[A-Za-z][A-Za-z0-9_ ]*")
_INVALID_COLUMN_CHARS = re.compile(r"[^a-z0-9_]")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_field_name(field_name: str | None) -> None:
    if field_name is None or not field_name.strip():
        raise ExtensionFieldValidationError("Field name cannot be empty")

    if len(field_name) > MAX_FIELD_NAME_LENGTH:
        raise ExtensionFieldValidationError(
            f"Field name is too long (max {MAX_FIELD_NAME_LENGTH} characters)"
        )

    if not _FIELD_NAME_PATTERN.fullmatch(field_name):
        raise ExtensionFieldValidationError(
            "Field name must start with a letter and contain only letters, numbers, spaces, and underscores"
        )


def validate_max_length(data_type: FieldDataType, max_length: Optional[int]) -> None:
    if data_type is FieldDataType.STRING and max_length is not None and max_length <= 0:
        raise ExtensionFieldValidationError("max_length must be positive for string types")


def generate_column_name(field_name: str, *, prefix: Optional[str] = None) -> str:
    """
    Derive the physical column name for a field name.

    Lower-cases the name, turns spaces into underscores, strips everything
    outside ``[a-z0-9_]``, guarantees a leading letter and finally prepends
    the namespace prefix. The same input always yields the same output.
    """
    namespace = prefix if prefix is not None else get_settings().extension_column_prefix
    sanitized = field_name.lower().replace(" ", "_")
    sanitized = _INVALID_COLUMN_CHARS.sub("", sanitized)

    if not sanitized or not sanitized[0].isalpha():
        sanitized = f"f_{sanitized}"

    return f"{namespace}{sanitized}"


def build_extension_column(
    column_name: str,
    data_type: FieldDataType,
    *,
    max_length: Optional[int] = None,
    is_required: bool = False,
    default_value: Optional[str] = None,
) -> sa.Column:
    server_default = sa.text(default_value) if default_value is not None else None
    return sa.Column(
        column_name,
        build_column_type(data_type, max_length),
        nullable=not is_required,
        server_default=server_default,
    )


def describe_column_intent(entity_type: str, column: sa.Column, dialect: sa.engine.Dialect) -> str:
    sql_type = column.type.compile(dialect=dialect)
    constraint = "NULL" if column.nullable else "NOT NULL"
    return f"add column {column.name} {sql_type} {constraint} to {entity_type}"


def _execute_add_column(session: Session, table: sa.Table, column: sa.Column) -> None:
    connection = session.connection()
    context = MigrationContext.configure(connection)
    Operations(context).add_column(table.name, column, schema=table.schema)


def _raise_for_existing(existing: ExtensionFieldDefinition, field_name: str, entity_type: str) -> None:
    if existing.is_deleted:
        raise ExtensionFieldConflictError(
            f"Column {existing.column_name} on {entity_type} belonged to a retired field and is "
            f"still present in the table; choose a different name than '{field_name}'"
        )
    raise ExtensionFieldConflictError(
        f"Extension field '{field_name}' already exists for {entity_type}"
    )


def create_field(
    session: Session,
    entity_type: str,
    field_name: str,
    data_type: FieldDataType | str,
    *,
    max_length: Optional[int] = None,
    is_required: bool = False,
    default_value: Optional[str] = None,
    display_name: Optional[str] = None,
    description: Optional[str] = None,
    actor: Optional[str] = None,
) -> ExtensionFieldDefinition:
    """
    Add a physical column to the entity's table and register it in the catalog.

    The DDL runs on the session's own connection so that stores with
    transactional DDL commit the column, the catalog row and the version bump
    together. Stores that auto-commit DDL can leave an orphan column if the
    process dies before the final commit; see ``orphan_reconciliation``.

    Raises:
        ExtensionFieldValidationError: malformed name, type or length
        ExtensionFieldConflictError: the derived column is already in use
        ExtensionFieldNotFoundError: ``entity_type`` is not a mapped entity
        ExtensionFieldExecutionError: the store rejected the DDL
    """
    validate_field_name(field_name)
    field_type = parse_data_type(data_type)
    validate_max_length(field_type, max_length)
    if not entity_type or len(entity_type) > MAX_ENTITY_TYPE_LENGTH:
        raise ExtensionFieldValidationError(
            f"Entity type must be between 1 and {MAX_ENTITY_TYPE_LENGTH} characters"
        )
    if field_type is not FieldDataType.STRING:
        max_length = None

    column_name = generate_column_name(field_name)
    if len(column_name) > MAX_COLUMN_NAME_LENGTH:
        raise ExtensionFieldValidationError(
            f"Field name '{field_name}' produces a column name longer than "
            f"{MAX_COLUMN_NAME_LENGTH} characters"
        )

    existing = find_field_by_column(session, entity_type, column_name)
    if existing is not None:
        _raise_for_existing(existing, field_name, entity_type)

    table = resolve_entity_table(entity_type)
    column = build_extension_column(
        column_name,
        field_type,
        max_length=max_length,
        is_required=is_required,
        default_value=default_value,
    )
    intent = describe_column_intent(entity_type, column, session.get_bind().dialect)

    try:
        logger.info("Executing DDL: %s", intent)
        _execute_add_column(session, table, column)
    except SQLAlchemyError as exc:
        logger.error("Failed to %s: %s", intent, exc)
        session.rollback()
        # A concurrent create may have claimed the column between our check and the DDL.
        winner = find_field_by_column(session, entity_type, column_name, include_deleted=False)
        if winner is not None:
            raise ExtensionFieldConflictError(
                f"Extension field '{field_name}' already exists for {entity_type}",
                original_error=exc,
            ) from exc
        raise ExtensionFieldExecutionError(f"Failed to {intent}", original_error=exc) from exc

    definition = ExtensionFieldDefinition(
        entity_type=entity_type,
        field_name=field_name,
        column_name=column_name,
        data_type=field_type.value,
        max_length=max_length,
        is_required=is_required,
        default_value=default_value,
        display_name=display_name or field_name,
        description=description,
        created_at=_utcnow(),
        created_by=actor,
        is_deleted=False,
    )

    try:
        session.add(definition)
        session.flush()
        increment_schema_version(session, actor)
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise ExtensionFieldConflictError(
            f"Extension field '{field_name}' already exists for {entity_type}",
            original_error=exc,
        ) from exc
    except SQLAlchemyError:
        session.rollback()
        raise

    session.refresh(definition)
    logger.info(
        "Created extension field %s.%s (%s) by %s",
        entity_type,
        column_name,
        field_type.value,
        actor or "system",
    )
    return definition


def delete_field(session: Session, field_id: UUID, *, actor: Optional[str] = None) -> None:
    """Soft-delete a field and bump the version; the physical column stays in place."""

    stmt = (
        update(ExtensionFieldDefinition)
        .where(
            ExtensionFieldDefinition.id == field_id,
            ExtensionFieldDefinition.is_deleted.is_(False),
        )
        .values(is_deleted=True, deleted_at=_utcnow())
        .execution_options(synchronize_session=False)
    )

    try:
        result = session.execute(stmt)
        if result.rowcount == 0:
            raise ExtensionFieldNotFoundError(f"Extension field with ID {field_id} not found")
        increment_schema_version(session, actor)
        session.commit()
    except (ExtensionFieldNotFoundError, SQLAlchemyError):
        session.rollback()
        raise

    logger.info("Retired extension field %s by %s", field_id, actor or "system")


__all__ = [
    "MAX_COLUMN_NAME_LENGTH",
    "build_extension_column",
    "create_field",
    "delete_field",
    "describe_column_intent",
    "generate_column_name",
    "validate_field_name",
    "validate_max_length",
]
