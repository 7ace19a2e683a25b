import pytest
from sqlalchemy import text

from extension_fields.exceptions import (
    ExtensionFieldConflictError,
    ExtensionFieldExecutionError,
)
from extension_fields.schemas import FieldDataType, OrphanAction
from extension_fields.services.column_provisioner import create_field
from extension_fields.services.extension_field_catalog import (
    get_schema_version,
    list_field_definitions,
)
from extension_fields.services.orphan_reconciliation import (
    _field_name_from_column,
    find_orphan_columns,
    reconcile_orphan_columns,
)


def _add_untracked_column(db_session, ddl: str) -> None:
    db_session.execute(text(ddl))
    db_session.commit()


def test_no_orphans_when_catalog_matches(db_session):
    create_field(db_session, "Customer", "Loyalty Tier", FieldDataType.STRING, max_length=20)

    assert find_orphan_columns(db_session) == []


def test_untracked_prefixed_column_is_reported(db_session):
    _add_untracked_column(db_session, "ALTER TABLE customers ADD COLUMN ext_legacy_code VARCHAR(40)")
    _add_untracked_column(db_session, "ALTER TABLE products ADD COLUMN internal_note TEXT")

    orphans = reconcile_orphan_columns(db_session, OrphanAction.REPORT)

    assert [(orphan.entity_type, orphan.column_name) for orphan in orphans] == [
        ("Customer", "ext_legacy_code")
    ]
    assert orphans[0].data_type is FieldDataType.STRING
    assert orphans[0].max_length == 40
    assert orphans[0].is_nullable is True
    assert get_schema_version(db_session) == 0


def test_create_over_orphan_column_fails_with_execution_error(db_session):
    _add_untracked_column(db_session, "ALTER TABLE customers ADD COLUMN ext_legacy_code VARCHAR(40)")

    with pytest.raises(ExtensionFieldExecutionError):
        create_field(db_session, "Customer", "Legacy Code", FieldDataType.STRING, max_length=40)

    assert get_schema_version(db_session) == 0


def test_register_makes_orphan_an_active_field(db_session):
    _add_untracked_column(db_session, "ALTER TABLE customers ADD COLUMN ext_legacy_code VARCHAR(40)")

    reconcile_orphan_columns(db_session, OrphanAction.REGISTER, actor="ops")

    assert get_schema_version(db_session) == 1
    fields = list_field_definitions(db_session, "Customer")
    assert [(field.field_name, field.column_name, field.data_type) for field in fields] == [
        ("Legacy Code", "ext_legacy_code", "string")
    ]
    assert fields[0].max_length == 40
    assert find_orphan_columns(db_session) == []


def test_retire_blocks_the_column_name(db_session):
    _add_untracked_column(db_session, "ALTER TABLE customers ADD COLUMN ext_legacy_code VARCHAR(40)")

    reconcile_orphan_columns(db_session, OrphanAction.RETIRE)

    assert get_schema_version(db_session) == 1
    assert list_field_definitions(db_session, "Customer") == []
    assert find_orphan_columns(db_session) == []

    with pytest.raises(ExtensionFieldConflictError):
        create_field(db_session, "Customer", "Legacy Code", FieldDataType.STRING)


def test_reconcile_without_orphans_leaves_version_alone(db_session):
    assert reconcile_orphan_columns(db_session, OrphanAction.REGISTER) == []
    assert get_schema_version(db_session) == 0


@pytest.mark.parametrize(
    ("column_name", "expected"),
    [
        ("ext_legacy_code", "Legacy Code"),
        ("ext_points", "Points"),
        ("ext__", "ext__"),
    ],
)
def test_field_name_from_column(column_name, expected):
    assert _field_name_from_column(column_name, "ext_") == expected
