from extension_fields.models.entities import (
    SCHEMA_VERSION_ROW_ID,
    Customer,
    ExtensionFieldDefinition,
    ExtensionSchemaVersion,
    Product,
    TimestampMixin,
)

__all__ = [
    "SCHEMA_VERSION_ROW_ID",
    "Customer",
    "ExtensionFieldDefinition",
    "ExtensionSchemaVersion",
    "Product",
    "TimestampMixin",
]
