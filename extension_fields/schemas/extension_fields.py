from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class FieldDataType(str, Enum):
    STRING = "string"
    INT = "int"
    LONG = "long"
    DECIMAL = "decimal"
    BOOL = "bool"
    DATE = "date"
    DATETIME = "datetime"
    GUID = "guid"


class OrphanAction(str, Enum):
    REPORT = "report"
    RETIRE = "retire"
    REGISTER = "register"


class ExtensionFieldBase(BaseModel):
    entity_type: str = Field(..., max_length=100)
    field_name: str = Field(..., max_length=200)
    data_type: FieldDataType
    max_length: Optional[int] = None
    is_required: bool = False
    default_value: Optional[str] = Field(None, max_length=500)
    display_name: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)


class ExtensionFieldCreate(ExtensionFieldBase):
    created_by: Optional[str] = Field(None, max_length=100)


class ExtensionFieldRead(ExtensionFieldBase):
    id: UUID
    column_name: str
    created_at: datetime
    created_by: Optional[str] = None
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SchemaVersionRead(BaseModel):
    version: int


class ExtensionValuesRead(BaseModel):
    entity_type: str
    entity_id: UUID
    values: dict[str, Any]


class ExtensionValuesUpdate(BaseModel):
    values: dict[str, Any]


class OrphanColumnRead(BaseModel):
    entity_type: str
    table_name: str
    column_name: str
    data_type: Optional[str] = None
    physical_type: str
    is_nullable: bool


class OrphanReconciliationRead(BaseModel):
    action: OrphanAction
    orphans: list[OrphanColumnRead]
    schema_version: int
