"""Per-process cache of extension metadata gated on the catalog schema version."""

from __future__ import annotations

import logging
from threading import Lock
from typing import Callable, Optional

from sqlalchemy.orm import Session

from extension_fields.services.extension_field_catalog import get_schema_version
from extension_fields.services.metadata_loader import ExtensionMetadata, load_extension_metadata

logger = logging.getLogger(__name__)

VersionReader = Callable[[Session], int]
MetadataLoader = Callable[[Session, int], ExtensionMetadata]


class VersionGatedCache:
    """Holds ``(version, metadata)`` for the lifetime of the process.

    Every unit of work calls :meth:`get`, which performs one small read of the
    version row. A mismatch (or an empty cache) reloads the metadata and
    replaces both values wholesale; there is no partial invalidation. Rebuilds
    are a pure function of the catalog at a version, so concurrent processes
    converge without coordinating.
    """

    def __init__(
        self,
        *,
        version_reader: Optional[VersionReader] = None,
        loader: Optional[MetadataLoader] = None,
    ) -> None:
        self._version_reader = version_reader or get_schema_version
        self._loader = loader or load_extension_metadata
        self._lock = Lock()
        self._metadata: Optional[ExtensionMetadata] = None

    @property
    def cached_version(self) -> Optional[int]:
        metadata = self._metadata
        return metadata.version if metadata is not None else None

    def peek(self) -> Optional[ExtensionMetadata]:
        return self._metadata

    def get(self, session: Session) -> ExtensionMetadata:
        current_version = self._version_reader(session)
        metadata = self._metadata
        if metadata is not None and metadata.version == current_version:
            return metadata

        with self._lock:
            metadata = self._metadata
            if metadata is not None and metadata.version == current_version:
                return metadata
            previous = metadata.version if metadata is not None else None
            refreshed = self._loader(session, current_version)
            self._metadata = refreshed
        logger.info(
            "Extension metadata reloaded (schema version %s -> %s)",
            previous,
            current_version,
        )
        return refreshed

    def invalidate(self) -> None:
        with self._lock:
            self._metadata = None


extension_schema_cache = VersionGatedCache()


__all__ = ["VersionGatedCache", "extension_schema_cache"]
