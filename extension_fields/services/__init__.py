from extension_fields.services.extension_accessor import ExtensionValueAccessor
from extension_fields.services.schema_cache import VersionGatedCache, extension_schema_cache

__all__ = [
    "ExtensionValueAccessor",
    "VersionGatedCache",
    "extension_schema_cache",
]
