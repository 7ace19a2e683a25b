"""Data access for the extension field catalog and its schema version row."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import inspect, select, update
from sqlalchemy.orm import Session

from extension_fields.config import get_settings
from extension_fields.models import (
    SCHEMA_VERSION_ROW_ID,
    ExtensionFieldDefinition,
    ExtensionSchemaVersion,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def catalog_table_exists(session: Session) -> bool:
    inspector = inspect(session.connection())
    return inspector.has_table(ExtensionFieldDefinition.__tablename__)


def schema_version_table_exists(session: Session) -> bool:
    inspector = inspect(session.connection())
    return inspector.has_table(ExtensionSchemaVersion.__tablename__)


def get_schema_version(session: Session) -> int:
    """Return the committed schema version, or 0 before the catalog is initialized.

    The table check runs first so a missing table never aborts the caller's
    transaction or discards its pending changes.
    """

    if not schema_version_table_exists(session):
        logger.debug("Schema version table not present; assuming version 0")
        return 0

    stmt = select(ExtensionSchemaVersion.version).where(
        ExtensionSchemaVersion.id == SCHEMA_VERSION_ROW_ID
    )
    version = session.execute(stmt).scalar_one_or_none()
    return int(version) if version is not None else 0


def increment_schema_version(session: Session, actor: Optional[str] = None) -> None:
    """Atomically bump the version row inside the caller's transaction."""

    modified_by = actor or get_settings().extension_default_actor
    stmt = (
        update(ExtensionSchemaVersion)
        .where(ExtensionSchemaVersion.id == SCHEMA_VERSION_ROW_ID)
        .values(
            version=ExtensionSchemaVersion.version + 1,
            last_modified=_utcnow(),
            last_modified_by=modified_by,
        )
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)
    if result.rowcount == 0:
        logger.warning("Schema version row missing; initializing it at version 1")
        session.add(
            ExtensionSchemaVersion(
                id=SCHEMA_VERSION_ROW_ID,
                version=1,
                last_modified=_utcnow(),
                last_modified_by=modified_by,
            )
        )
        session.flush()


def ensure_schema_version_row(session: Session) -> ExtensionSchemaVersion:
    record = session.get(ExtensionSchemaVersion, SCHEMA_VERSION_ROW_ID)
    if record is not None:
        return record

    record = ExtensionSchemaVersion(
        id=SCHEMA_VERSION_ROW_ID,
        version=0,
        last_modified=_utcnow(),
        last_modified_by=get_settings().extension_default_actor,
    )
    session.add(record)
    session.commit()
    logger.info("Initialized extension field schema version at 0")
    return record


def list_field_definitions(
    session: Session,
    entity_type: Optional[str] = None,
    *,
    include_deleted: bool = False,
) -> list[ExtensionFieldDefinition]:
    stmt = select(ExtensionFieldDefinition)
    if entity_type is not None:
        stmt = stmt.where(ExtensionFieldDefinition.entity_type == entity_type)
    if not include_deleted:
        stmt = stmt.where(ExtensionFieldDefinition.is_deleted.is_(False))
    stmt = stmt.order_by(
        ExtensionFieldDefinition.created_at.asc(),
        ExtensionFieldDefinition.id.asc(),
    )
    return list(session.execute(stmt).scalars().all())


def get_active_field(session: Session, field_id: UUID) -> ExtensionFieldDefinition | None:
    stmt = (
        select(ExtensionFieldDefinition)
        .where(
            ExtensionFieldDefinition.id == field_id,
            ExtensionFieldDefinition.is_deleted.is_(False),
        )
        .limit(1)
    )
    return session.execute(stmt).scalars().first()


def find_field_by_column(
    session: Session,
    entity_type: str,
    column_name: str,
    *,
    include_deleted: bool = True,
) -> ExtensionFieldDefinition | None:
    """Return the catalog row owning ``column_name``, preferring an active one."""

    stmt = select(ExtensionFieldDefinition).where(
        ExtensionFieldDefinition.entity_type == entity_type,
        ExtensionFieldDefinition.column_name == column_name,
    )
    if not include_deleted:
        stmt = stmt.where(ExtensionFieldDefinition.is_deleted.is_(False))
    stmt = stmt.order_by(
        ExtensionFieldDefinition.is_deleted.asc(),
        ExtensionFieldDefinition.created_at.desc(),
    ).limit(1)
    return session.execute(stmt).scalars().first()


__all__ = [
    "catalog_table_exists",
    "ensure_schema_version_row",
    "find_field_by_column",
    "get_active_field",
    "get_schema_version",
    "increment_schema_version",
    "list_field_definitions",
    "schema_version_table_exists",
]
