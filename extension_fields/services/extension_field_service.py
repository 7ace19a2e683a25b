from __future__ import annotations

from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from extension_fields.models import ExtensionFieldDefinition
from extension_fields.schemas import ExtensionFieldCreate, ExtensionFieldRead
from extension_fields.services import column_provisioner
from extension_fields.services.extension_field_catalog import (
    get_schema_version as _read_schema_version,
    list_field_definitions,
)


def _serialize(definition: ExtensionFieldDefinition) -> ExtensionFieldRead:
    return ExtensionFieldRead.model_validate(definition)


def create_field(
    db: Session,
    payload: ExtensionFieldCreate,
    *,
    actor: Optional[str] = None,
) -> ExtensionFieldRead:
    definition = column_provisioner.create_field(
        db,
        payload.entity_type,
        payload.field_name,
        payload.data_type,
        max_length=payload.max_length,
        is_required=payload.is_required,
        default_value=payload.default_value,
        display_name=payload.display_name,
        description=payload.description,
        actor=actor or payload.created_by,
    )
    return _serialize(definition)


def delete_field(db: Session, field_id: UUID, *, actor: Optional[str] = None) -> None:
    column_provisioner.delete_field(db, field_id, actor=actor)


def list_fields(
    db: Session,
    entity_type: str,
    *,
    include_deleted: bool = False,
) -> list[ExtensionFieldRead]:
    definitions = list_field_definitions(db, entity_type, include_deleted=include_deleted)
    return [_serialize(definition) for definition in definitions]


def get_schema_version(db: Session) -> int:
    return _read_schema_version(db)


__all__ = [
    "create_field",
    "delete_field",
    "get_schema_version",
    "list_fields",
]
