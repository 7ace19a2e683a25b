from extension_fields.schemas.extension_fields import (
    ExtensionFieldBase,
    ExtensionFieldCreate,
    ExtensionFieldRead,
    ExtensionValuesRead,
    ExtensionValuesUpdate,
    FieldDataType,
    OrphanAction,
    OrphanColumnRead,
    OrphanReconciliationRead,
    SchemaVersionRead,
)

__all__ = [
    "ExtensionFieldBase",
    "ExtensionFieldCreate",
    "ExtensionFieldRead",
    "ExtensionValuesRead",
    "ExtensionValuesUpdate",
    "FieldDataType",
    "OrphanAction",
    "OrphanColumnRead",
    "OrphanReconciliationRead",
    "SchemaVersionRead",
]
