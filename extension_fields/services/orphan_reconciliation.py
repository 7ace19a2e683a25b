"""Detect and resolve physical extension columns that have no catalog row.

An orphan appears when a store commits ``ALTER TABLE`` outside the caller's
transaction and the process dies before the catalog row is committed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from extension_fields.config import get_settings
from extension_fields.models import ExtensionFieldDefinition
from extension_fields.schemas import FieldDataType, OrphanAction
from extension_fields.services.extension_field_catalog import (
    catalog_table_exists,
    increment_schema_version,
)
from extension_fields.services.extension_types import infer_data_type
from extension_fields.services.metadata_loader import iter_host_mappers

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrphanColumn:
    entity_type: str
    table_name: str
    column_name: str
    physical_type: str
    is_nullable: bool
    data_type: Optional[FieldDataType] = None
    max_length: Optional[int] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _field_name_from_column(column_name: str, prefix: str) -> str:
    stem = column_name[len(prefix):] if column_name.startswith(prefix) else column_name
    words = [part for part in stem.split("_") if part]
    return " ".join(word.capitalize() for word in words) or column_name


def find_orphan_columns(session: Session) -> list[OrphanColumn]:
    """List prefixed physical columns on host tables that the catalog does not track."""

    prefix = get_settings().extension_column_prefix
    tracked: set[tuple[str, str]] = set()
    if catalog_table_exists(session):
        stmt = select(ExtensionFieldDefinition.entity_type, ExtensionFieldDefinition.column_name)
        tracked = {(row.entity_type, row.column_name) for row in session.execute(stmt)}

    inspector = inspect(session.connection())
    orphans: list[OrphanColumn] = []
    for mapper in iter_host_mappers():
        entity_type = mapper.class_.__name__
        table = mapper.local_table
        if not inspector.has_table(table.name, schema=table.schema):
            continue
        mapped_names = {column.name for column in table.columns}
        for reflected in inspector.get_columns(table.name, schema=table.schema):
            name = reflected["name"]
            if not name.startswith(prefix) or name in mapped_names:
                continue
            if (entity_type, name) in tracked:
                continue
            data_type, max_length = infer_data_type(reflected["type"])
            orphans.append(
                OrphanColumn(
                    entity_type=entity_type,
                    table_name=table.name,
                    column_name=name,
                    physical_type=str(reflected["type"]),
                    is_nullable=bool(reflected.get("nullable", True)),
                    data_type=data_type,
                    max_length=max_length,
                )
            )

    if orphans:
        logger.warning(
            "Found %d orphan extension column(s): %s",
            len(orphans),
            ", ".join(f"{orphan.table_name}.{orphan.column_name}" for orphan in orphans),
        )
    return orphans


def reconcile_orphan_columns(
    session: Session,
    action: OrphanAction = OrphanAction.REPORT,
    *,
    actor: Optional[str] = None,
) -> list[OrphanColumn]:
    """
    Report, retire or re-register orphan columns.

    ``RETIRE`` records a soft-deleted catalog row, which hides the column and
    blocks reuse of its name. ``REGISTER`` records an active row using the
    data type inferred from the reflected column; orphans whose type cannot be
    inferred are retired instead. Either action bumps the schema version once.
    """
    orphans = find_orphan_columns(session)
    if action is OrphanAction.REPORT or not orphans:
        return orphans

    prefix = get_settings().extension_column_prefix
    now = _utcnow()
    for orphan in orphans:
        register = action is OrphanAction.REGISTER and orphan.data_type is not None
        field_name = _field_name_from_column(orphan.column_name, prefix)
        session.add(
            ExtensionFieldDefinition(
                entity_type=orphan.entity_type,
                field_name=field_name,
                column_name=orphan.column_name,
                data_type=(orphan.data_type or FieldDataType.STRING).value,
                max_length=orphan.max_length if orphan.data_type is FieldDataType.STRING else None,
                is_required=not orphan.is_nullable,
                display_name=field_name,
                description="Recovered by orphan column reconciliation",
                created_at=now,
                created_by=actor,
                is_deleted=not register,
                deleted_at=None if register else now,
            )
        )

    try:
        session.flush()
        increment_schema_version(session, actor)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        raise

    logger.info("Reconciled %d orphan extension column(s) with action %s", len(orphans), action.value)
    return orphans


__all__ = ["OrphanColumn", "find_orphan_columns", "reconcile_orphan_columns"]
