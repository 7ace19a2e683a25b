"""Typed read/write access to extension column values on mapped entities.

Values are addressed by column name through the side-table produced by the
metadata loader. Writes are staged in the instance's ``InstanceState.info``
and emitted by an ``after_flush`` listener, so they become durable exactly
when the surrounding session commits. A rollback discards whatever is still
staged.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from sqlalchemy import event, inspect, select, update
from sqlalchemy.orm import InstanceState, Session, SessionTransaction
from sqlalchemy.orm.attributes import flag_dirty

from extension_fields.exceptions import ExtensionFieldNotFoundError
from extension_fields.services.metadata_loader import (
    EntityExtensionMetadata,
    ExtensionMetadata,
    entity_type_of,
)
from extension_fields.services.schema_cache import VersionGatedCache, extension_schema_cache

logger = logging.getLogger(__name__)

_STAGED_VALUES_KEY = "extension_fields.staged_values"
# Session.info entry listing the instance states that carry staged values.
_STAGED_STATES_KEY = "extension_fields.staged_states"


@dataclass
class _StagedValues:
    entity: EntityExtensionMetadata
    values: dict[str, Any] = field(default_factory=dict)


def _staged_for(instance: object) -> Optional[_StagedValues]:
    return inspect(instance).info.get(_STAGED_VALUES_KEY)


def _track_staged_state(session: Session, state: InstanceState) -> None:
    session.info.setdefault(_STAGED_STATES_KEY, set()).add(state)


@event.listens_for(Session, "after_flush")
def _write_staged_extension_values(session: Session, flush_context) -> None:
    tracked: set[InstanceState] = session.info.get(_STAGED_STATES_KEY, set())
    for instance in list(session.new) + list(session.dirty):
        state = inspect(instance)
        staged: Optional[_StagedValues] = state.info.get(_STAGED_VALUES_KEY)
        if not staged or not staged.values:
            continue

        criteria = staged.entity.primary_key_criteria(instance)
        if criteria is None:
            continue

        stmt = update(staged.entity.table).where(*criteria).values(staged.values)
        session.connection().execute(stmt)
        logger.debug(
            "Wrote %d extension value(s) for %s",
            len(staged.values),
            staged.entity.entity_type,
        )
        del state.info[_STAGED_VALUES_KEY]
        tracked.discard(state)


@event.listens_for(Session, "after_soft_rollback")
def _discard_staged_extension_values(
    session: Session, previous_transaction: SessionTransaction
) -> None:
    staged_states: set[InstanceState] = session.info.pop(_STAGED_STATES_KEY, set())
    for state in staged_states:
        state.info.pop(_STAGED_VALUES_KEY, None)
    if staged_states:
        logger.debug("Discarded staged extension values for %d instance(s)", len(staged_states))


class ExtensionValueAccessor:
    """Generic get/set of extension values for one unit of work."""

    def __init__(self, session: Session, metadata: ExtensionMetadata) -> None:
        self._session = session
        self._metadata = metadata

    @classmethod
    def for_session(
        cls,
        session: Session,
        cache: Optional[VersionGatedCache] = None,
    ) -> "ExtensionValueAccessor":
        resolved_cache = cache or extension_schema_cache
        return cls(session, resolved_cache.get(session))

    @property
    def metadata(self) -> ExtensionMetadata:
        return self._metadata

    def has_extension_field(self, entity: object, column_name: str) -> bool:
        return self._metadata.find_column(entity_type_of(entity), column_name) is not None

    def get_value(self, entity: object, column_name: str) -> Any:
        """Return the value of ``column_name``, or None when the field is absent."""

        entity_metadata = self._metadata.for_instance(entity)
        if entity_metadata is None or column_name not in entity_metadata.columns:
            logger.debug(
                "Extension column %s is not part of %s metadata at version %s",
                column_name,
                entity_type_of(entity),
                self._metadata.version,
            )
            return None

        staged = _staged_for(entity)
        if staged is not None and column_name in staged.values:
            return staged.values[column_name]

        persisted = self._read_persisted(entity, entity_metadata, [column_name])
        return persisted.get(column_name)

    def set_value(self, entity: object, column_name: str, value: Any) -> None:
        entity_metadata = self._metadata.for_instance(entity)
        column = entity_metadata.columns.get(column_name) if entity_metadata else None
        if column is None:
            raise ExtensionFieldNotFoundError(
                f"Extension column {column_name} is not defined for {entity_type_of(entity)}"
            )

        coerced = column.coerce(value)
        self._attach(entity)
        state = inspect(entity)
        staged = state.info.get(_STAGED_VALUES_KEY)
        if staged is None or staged.entity is not entity_metadata:
            previous = staged.values if staged is not None else {}
            staged = _StagedValues(
                entity=entity_metadata,
                values={name: val for name, val in previous.items() if name in entity_metadata.columns},
            )
            state.info[_STAGED_VALUES_KEY] = staged
        _track_staged_state(self._session, state)
        staged.values[column_name] = coerced
        flag_dirty(entity)

    def get_all_extension_values(self, entity: object) -> dict[str, Any]:
        entity_metadata = self._metadata.for_instance(entity)
        if entity_metadata is None:
            return {}

        column_names = [
            name
            for name in entity_metadata.columns
            if name.startswith(self._metadata.column_prefix)
        ]
        if not column_names:
            return {}

        values = self._read_persisted(entity, entity_metadata, column_names)
        staged = _staged_for(entity)
        if staged is not None:
            values.update(
                {name: value for name, value in staged.values.items() if name in column_names}
            )
        return {name: values.get(name) for name in column_names}

    def set_many(self, entity: object, values_by_column: Mapping[str, Any]) -> None:
        for column_name, value in values_by_column.items():
            if not self.has_extension_field(entity, column_name):
                logger.debug(
                    "Skipping extension column %s for %s: not in current metadata",
                    column_name,
                    entity_type_of(entity),
                )
                continue
            self.set_value(entity, column_name, value)

    def _attach(self, entity: object) -> None:
        # Staged values are discarded by the rollback of this transaction.
        if not self._session.in_transaction():
            self._session.begin()
        if entity not in self._session:
            self._session.add(entity)

    def _read_persisted(
        self,
        entity: object,
        entity_metadata: EntityExtensionMetadata,
        column_names: list[str],
    ) -> dict[str, Any]:
        criteria = entity_metadata.primary_key_criteria(entity)
        if criteria is None or inspect(entity).key is None:
            return {}

        table = entity_metadata.table
        stmt = select(*(table.c[name] for name in column_names)).where(*criteria)
        row = self._session.execute(stmt).mappings().first()
        return dict(row) if row is not None else {}


__all__ = ["ExtensionValueAccessor"]
