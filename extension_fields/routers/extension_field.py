from logging import getLogger
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from extension_fields.database import get_db
from extension_fields.exceptions import (
    ExtensionFieldConflictError,
    ExtensionFieldError,
    ExtensionFieldExecutionError,
    ExtensionFieldNotFoundError,
    ExtensionFieldValidationError,
)
from extension_fields.schemas import (
    ExtensionFieldCreate,
    ExtensionFieldRead,
    ExtensionValuesRead,
    ExtensionValuesUpdate,
    OrphanAction,
    OrphanColumnRead,
    OrphanReconciliationRead,
    SchemaVersionRead,
)
from extension_fields.services import extension_field_service
from extension_fields.services.extension_accessor import ExtensionValueAccessor
from extension_fields.services.metadata_loader import resolve_entity_mapper
from extension_fields.services.orphan_reconciliation import reconcile_orphan_columns

logger = getLogger(__name__)

router = APIRouter(prefix="/extension-fields", tags=["Extension Fields"])

_STATUS_BY_ERROR = (
    (ExtensionFieldValidationError, status.HTTP_400_BAD_REQUEST),
    (ExtensionFieldConflictError, status.HTTP_409_CONFLICT),
    (ExtensionFieldNotFoundError, status.HTTP_404_NOT_FOUND),
    (ExtensionFieldExecutionError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def _to_http_error(exc: ExtensionFieldError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=exc.message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.message)


def _load_entity_or_404(entity_type: str, entity_id: UUID, db: Session) -> object:
    mapper = resolve_entity_mapper(entity_type)
    if mapper is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Entity type '{entity_type}' not found",
        )
    entity = db.get(mapper.class_, entity_id)
    if entity is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{entity_type} {entity_id} not found",
        )
    return entity


@router.get("", response_model=list[ExtensionFieldRead])
def list_extension_fields(
    entity_type: str = Query(..., max_length=100),
    include_deleted: bool = Query(default=False),
    db: Session = Depends(get_db),
) -> list[ExtensionFieldRead]:
    return extension_field_service.list_fields(db, entity_type, include_deleted=include_deleted)


@router.post("", response_model=ExtensionFieldRead, status_code=status.HTTP_201_CREATED)
def create_extension_field(
    payload: ExtensionFieldCreate, db: Session = Depends(get_db)
) -> ExtensionFieldRead:
    try:
        return extension_field_service.create_field(db, payload)
    except ExtensionFieldError as exc:
        raise _to_http_error(exc) from exc


@router.get("/schema-version", response_model=SchemaVersionRead)
def get_extension_schema_version(db: Session = Depends(get_db)) -> SchemaVersionRead:
    return SchemaVersionRead(version=extension_field_service.get_schema_version(db))


@router.get("/orphans", response_model=OrphanReconciliationRead)
def list_orphan_columns(db: Session = Depends(get_db)) -> OrphanReconciliationRead:
    orphans = reconcile_orphan_columns(db, OrphanAction.REPORT)
    return OrphanReconciliationRead(
        action=OrphanAction.REPORT,
        orphans=[
            OrphanColumnRead(
                entity_type=orphan.entity_type,
                table_name=orphan.table_name,
                column_name=orphan.column_name,
                data_type=orphan.data_type.value if orphan.data_type else None,
                physical_type=orphan.physical_type,
                is_nullable=orphan.is_nullable,
            )
            for orphan in orphans
        ],
        schema_version=extension_field_service.get_schema_version(db),
    )


@router.get("/values/{entity_type}/{entity_id}", response_model=ExtensionValuesRead)
def get_extension_values(
    entity_type: str, entity_id: UUID, db: Session = Depends(get_db)
) -> ExtensionValuesRead:
    accessor = ExtensionValueAccessor.for_session(db)
    entity = _load_entity_or_404(entity_type, entity_id, db)
    return ExtensionValuesRead(
        entity_type=entity_type,
        entity_id=entity_id,
        values=accessor.get_all_extension_values(entity),
    )


@router.put("/values/{entity_type}/{entity_id}", response_model=ExtensionValuesRead)
def update_extension_values(
    entity_type: str,
    entity_id: UUID,
    payload: ExtensionValuesUpdate,
    db: Session = Depends(get_db),
) -> ExtensionValuesRead:
    accessor = ExtensionValueAccessor.for_session(db)
    entity = _load_entity_or_404(entity_type, entity_id, db)
    try:
        accessor.set_many(entity, payload.values)
        db.commit()
    except ExtensionFieldError as exc:
        db.rollback()
        raise _to_http_error(exc) from exc

    logger.info("Updated extension values for %s %s", entity_type, entity_id)
    return ExtensionValuesRead(
        entity_type=entity_type,
        entity_id=entity_id,
        values=accessor.get_all_extension_values(entity),
    )


@router.delete("/{field_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_extension_field(field_id: UUID, db: Session = Depends(get_db)) -> None:
    try:
        extension_field_service.delete_field(db, field_id)
    except ExtensionFieldError as exc:
        raise _to_http_error(exc) from exc


__all__ = ["router"]
