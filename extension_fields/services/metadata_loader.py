"""Rebuild runtime entity metadata from the extension field catalog.

The loader never touches the mapped host classes. Each active catalog row
becomes an :class:`ExtensionColumn` in a side-table keyed by entity type and
column name, together with a lightweight table clause that carries the host
primary key and every extension column so values can be read and written
with plain Core statements.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping, Optional
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.orm import Mapper, Session
from sqlalchemy.sql.expression import TableClause
from sqlalchemy.types import TypeEngine

from extension_fields.config import get_settings
from extension_fields.database import Base
from extension_fields.exceptions import (
    ExtensionFieldNotFoundError,
    ExtensionFieldValidationError,
)
from extension_fields.models import ExtensionFieldDefinition, ExtensionSchemaVersion
from extension_fields.schemas import FieldDataType
from extension_fields.services.extension_field_catalog import (
    catalog_table_exists,
    get_schema_version,
    list_field_definitions,
)
from extension_fields.services.extension_types import (
    build_column_type,
    coerce_value,
    parse_data_type,
    python_type_for,
)

logger = logging.getLogger(__name__)

_CATALOG_TABLES = frozenset(
    {ExtensionFieldDefinition.__tablename__, ExtensionSchemaVersion.__tablename__}
)


@dataclass(frozen=True)
class ExtensionColumn:
    field_id: UUID
    entity_type: str
    field_name: str
    column_name: str
    data_type: FieldDataType
    column_type: TypeEngine
    python_type: type
    is_required: bool = False
    max_length: Optional[int] = None
    default_value: Optional[str] = None

    def coerce(self, value: Any) -> Any:
        return coerce_value(
            self.data_type,
            value,
            column_name=self.column_name,
            max_length=self.max_length,
            is_required=self.is_required,
        )


@dataclass(frozen=True)
class EntityExtensionMetadata:
    entity_type: str
    mapper: Mapper
    table: TableClause
    columns: Mapping[str, ExtensionColumn] = field(default_factory=dict)

    @property
    def table_name(self) -> str:
        return self.table.name

    def primary_key_criteria(self, entity: object) -> list[Any] | None:
        """Return WHERE criteria addressing ``entity``'s row, or None before it has a key."""

        state = sa.inspect(entity)
        # The identity key avoids loading expired attributes while a flush is in progress.
        if state.key is not None:
            identity = state.identity
        else:
            identity = self.mapper.primary_key_from_instance(entity)
        if identity is None or any(value is None for value in identity):
            return None
        return [
            self.table.c[column.name] == value
            for column, value in zip(self.mapper.primary_key, identity)
        ]


@dataclass(frozen=True)
class ExtensionMetadata:
    version: int
    column_prefix: str
    entities: Mapping[str, EntityExtensionMetadata] = field(default_factory=dict)

    def for_entity_type(self, entity_type: str) -> EntityExtensionMetadata | None:
        return self.entities.get(entity_type)

    def for_instance(self, entity: object) -> EntityExtensionMetadata | None:
        return self.entities.get(entity_type_of(entity))

    def find_column(self, entity_type: str, column_name: str) -> ExtensionColumn | None:
        entity_metadata = self.entities.get(entity_type)
        if entity_metadata is None:
            return None
        return entity_metadata.columns.get(column_name)

    @property
    def field_count(self) -> int:
        return sum(len(entry.columns) for entry in self.entities.values())


def entity_type_of(entity: object) -> str:
    return sa.inspect(entity).mapper.class_.__name__


def iter_host_mappers() -> Iterator[Mapper]:
    """Yield mapped host entities that may carry extension columns."""

    for mapper in Base.registry.mappers:
        table = mapper.local_table
        if not isinstance(table, sa.Table) or table.name in _CATALOG_TABLES:
            continue
        yield mapper


def resolve_entity_mapper(entity_type: str) -> Mapper | None:
    for mapper in iter_host_mappers():
        if mapper.class_.__name__ == entity_type:
            return mapper
    return None


def resolve_entity_table(entity_type: str) -> sa.Table:
    mapper = resolve_entity_mapper(entity_type)
    if mapper is None:
        raise ExtensionFieldNotFoundError(
            f"Entity type '{entity_type}' is not mapped to a database table. "
            "Ensure the entity is registered on the declarative Base."
        )
    return mapper.local_table


def load_active_fields(session: Session) -> list[ExtensionFieldDefinition]:
    """Return every active catalog row in creation order; empty before the catalog exists."""

    if not catalog_table_exists(session):
        logger.debug("Extension field catalog table not present; no extension fields loaded")
        return []
    return list_field_definitions(session, include_deleted=False)


def _build_table(mapper: Mapper, columns: Mapping[str, ExtensionColumn]) -> TableClause:
    host_table = mapper.local_table
    table_columns = [sa.column(pk.name, pk.type) for pk in mapper.primary_key]
    table_columns.extend(
        sa.column(column.column_name, column.column_type) for column in columns.values()
    )
    return sa.table(host_table.name, *table_columns, schema=host_table.schema)


def build_extension_metadata(
    fields: list[ExtensionFieldDefinition],
    version: int,
    *,
    column_prefix: Optional[str] = None,
) -> ExtensionMetadata:
    prefix = column_prefix or get_settings().extension_column_prefix
    mappers: dict[str, Mapper] = {}
    grouped: dict[str, dict[str, ExtensionColumn]] = {}

    for definition in fields:
        mapper = mappers.get(definition.entity_type) or resolve_entity_mapper(definition.entity_type)
        if mapper is None:
            logger.warning(
                "Skipping extension field %s: entity type %s is not mapped",
                definition.column_name,
                definition.entity_type,
            )
            continue
        try:
            data_type = parse_data_type(definition.data_type)
        except ExtensionFieldValidationError:
            logger.warning(
                "Skipping extension field %s.%s with unsupported data type %s",
                definition.entity_type,
                definition.column_name,
                definition.data_type,
            )
            continue

        mappers[definition.entity_type] = mapper
        grouped.setdefault(definition.entity_type, {})[definition.column_name] = ExtensionColumn(
            field_id=definition.id,
            entity_type=definition.entity_type,
            field_name=definition.field_name,
            column_name=definition.column_name,
            data_type=data_type,
            column_type=build_column_type(data_type, definition.max_length),
            python_type=python_type_for(data_type),
            is_required=bool(definition.is_required),
            max_length=definition.max_length,
            default_value=definition.default_value,
        )

    entities = {
        entity_type: EntityExtensionMetadata(
            entity_type=entity_type,
            mapper=mappers[entity_type],
            table=_build_table(mappers[entity_type], columns),
            columns=columns,
        )
        for entity_type, columns in grouped.items()
    }
    return ExtensionMetadata(version=version, column_prefix=prefix, entities=entities)


def load_extension_metadata(session: Session, version: Optional[int] = None) -> ExtensionMetadata:
    resolved_version = get_schema_version(session) if version is None else version
    fields = load_active_fields(session)
    metadata = build_extension_metadata(fields, resolved_version)
    logger.info(
        "Loaded %d extension field(s) across %d entity type(s) at schema version %d",
        metadata.field_count,
        len(metadata.entities),
        resolved_version,
    )
    return metadata


__all__ = [
    "EntityExtensionMetadata",
    "ExtensionColumn",
    "ExtensionMetadata",
    "build_extension_metadata",
    "entity_type_of",
    "iter_host_mappers",
    "load_active_fields",
    "load_extension_metadata",
    "resolve_entity_mapper",
    "resolve_entity_table",
]
