import uuid
from datetime import date, datetime
from decimal import Decimal

import pytest
import sqlalchemy as sa

from extension_fields.exceptions import ExtensionFieldValidationError
from extension_fields.schemas import FieldDataType
from extension_fields.services.extension_types import (
    build_column_type,
    coerce_value,
    infer_data_type,
    parse_data_type,
)


def test_parse_data_type_lists_allowed_values():
    assert parse_data_type("decimal") is FieldDataType.DECIMAL

    with pytest.raises(ExtensionFieldValidationError) as excinfo:
        parse_data_type("money")
    assert "string, int, long, decimal, bool, date, datetime, guid" in excinfo.value.message


@pytest.mark.parametrize(
    ("data_type", "max_length", "expected"),
    [
        (FieldDataType.STRING, 20, sa.String),
        (FieldDataType.STRING, None, sa.Text),
        (FieldDataType.INT, None, sa.Integer),
        (FieldDataType.LONG, None, sa.BigInteger),
        (FieldDataType.DECIMAL, None, sa.Numeric),
        (FieldDataType.BOOL, None, sa.Boolean),
        (FieldDataType.DATE, None, sa.Date),
        (FieldDataType.DATETIME, None, sa.DateTime),
        (FieldDataType.GUID, None, sa.Uuid),
    ],
)
def test_build_column_type(data_type, max_length, expected):
    column_type = build_column_type(data_type, max_length)

    assert isinstance(column_type, expected)


def test_string_length_and_decimal_precision():
    assert build_column_type(FieldDataType.STRING, 20).length == 20
    numeric = build_column_type(FieldDataType.DECIMAL)
    assert (numeric.precision, numeric.scale) == (18, 2)


@pytest.mark.parametrize(
    ("column_type", "expected"),
    [
        (sa.VARCHAR(40), (FieldDataType.STRING, 40)),
        (sa.TEXT(), (FieldDataType.STRING, None)),
        (sa.BIGINT(), (FieldDataType.LONG, None)),
        (sa.INTEGER(), (FieldDataType.INT, None)),
        (sa.NUMERIC(18, 2), (FieldDataType.DECIMAL, None)),
        (sa.BOOLEAN(), (FieldDataType.BOOL, None)),
        (sa.DATETIME(), (FieldDataType.DATETIME, None)),
        (sa.DATE(), (FieldDataType.DATE, None)),
        (sa.LargeBinary(), (None, None)),
    ],
)
def test_infer_data_type(column_type, expected):
    assert infer_data_type(column_type) == expected


@pytest.mark.parametrize(
    ("data_type", "raw", "expected"),
    [
        (FieldDataType.STRING, "Gold", "Gold"),
        (FieldDataType.INT, " 12 ", 12),
        (FieldDataType.INT, 12.0, 12),
        (FieldDataType.LONG, str(2**40), 2**40),
        (FieldDataType.DECIMAL, "19.99", Decimal("19.99")),
        (FieldDataType.DECIMAL, 3, Decimal("3")),
        (FieldDataType.BOOL, "off", False),
        (FieldDataType.BOOL, 1, True),
        (FieldDataType.DATE, "2024-02-29", date(2024, 2, 29)),
        (FieldDataType.DATE, datetime(2024, 2, 29, 10, 0), date(2024, 2, 29)),
        (FieldDataType.DATETIME, "2024-02-29T10:15:00", datetime(2024, 2, 29, 10, 15)),
        (FieldDataType.DATETIME, date(2024, 2, 29), datetime(2024, 2, 29)),
        (
            FieldDataType.GUID,
            "6f1c1c2e-4b7a-4a53-9d0e-2f4c9f1b7a11",
            uuid.UUID("6f1c1c2e-4b7a-4a53-9d0e-2f4c9f1b7a11"),
        ),
    ],
)
def test_coerce_value(data_type, raw, expected):
    assert coerce_value(data_type, raw, column_name="ext_value") == expected


@pytest.mark.parametrize(
    ("data_type", "raw"),
    [
        (FieldDataType.STRING, 5),
        (FieldDataType.INT, True),
        (FieldDataType.INT, 2**31),
        (FieldDataType.INT, 1.5),
        (FieldDataType.LONG, 2**63),
        (FieldDataType.DECIMAL, "1.234"),
        (FieldDataType.DECIMAL, Decimal("1E+16")),
        (FieldDataType.DECIMAL, "abc"),
        (FieldDataType.DECIMAL, float("inf")),
        (FieldDataType.BOOL, "maybe"),
        (FieldDataType.DATE, "29/02/2024"),
        (FieldDataType.DATETIME, 1700000000),
        (FieldDataType.GUID, "not-a-guid"),
    ],
)
def test_coerce_value_rejects_invalid_input(data_type, raw):
    with pytest.raises(ExtensionFieldValidationError):
        coerce_value(data_type, raw, column_name="ext_value")


def test_null_handling_and_max_length():
    assert coerce_value(FieldDataType.INT, None, column_name="ext_value") is None

    with pytest.raises(ExtensionFieldValidationError):
        coerce_value(FieldDataType.INT, None, column_name="ext_value", is_required=True)
    with pytest.raises(ExtensionFieldValidationError):
        coerce_value(FieldDataType.STRING, "abcdef", column_name="ext_value", max_length=5)
