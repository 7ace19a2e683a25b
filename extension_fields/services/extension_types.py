"""Mapping between extension field data types, column types and Python values."""
from __future__ import annotations

import uuid
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional

import sqlalchemy as sa
from sqlalchemy.types import TypeEngine

from extension_fields.exceptions import ExtensionFieldValidationError
from extension_fields.schemas import FieldDataType

DECIMAL_PRECISION = 18
DECIMAL_SCALE = 2

_INT32_RANGE = (-(2**31), 2**31 - 1)
_INT64_RANGE = (-(2**63), 2**63 - 1)
_DECIMAL_LIMIT = Decimal(10) ** (DECIMAL_PRECISION - DECIMAL_SCALE)

_TRUE_STRINGS = {"true", "1", "yes", "y", "on"}
_FALSE_STRINGS = {"false", "0", "no", "n", "off"}

_PYTHON_TYPES: dict[FieldDataType, type] = {
    FieldDataType.STRING: str,
    FieldDataType.INT: int,
    FieldDataType.LONG: int,
    FieldDataType.DECIMAL: Decimal,
    FieldDataType.BOOL: bool,
    FieldDataType.DATE: date,
    FieldDataType.DATETIME: datetime,
    FieldDataType.GUID: uuid.UUID,
}


def parse_data_type(value: FieldDataType | str) -> FieldDataType:
    if isinstance(value, FieldDataType):
        return value
    try:
        return FieldDataType(value)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in FieldDataType)
        raise ExtensionFieldValidationError(
            f"Invalid data type '{value}'. Must be one of: {allowed}"
        ) from exc


def build_column_type(data_type: FieldDataType, max_length: Optional[int] = None) -> TypeEngine:
    """
    Map an extension data type to the SQLAlchemy type used for DDL and binds.

    Args:
        data_type: The extension field data type
        max_length: Optional length, only honoured for ``string``

    Returns:
        A SQLAlchemy type instance; the dialect decides the final DDL spelling
    """
    type_mapping: dict[FieldDataType, Callable[[], TypeEngine]] = {
        FieldDataType.STRING: lambda: sa.String(max_length) if max_length else sa.Text(),
        FieldDataType.INT: sa.Integer,
        FieldDataType.LONG: sa.BigInteger,
        FieldDataType.DECIMAL: lambda: sa.Numeric(DECIMAL_PRECISION, DECIMAL_SCALE),
        FieldDataType.BOOL: sa.Boolean,
        FieldDataType.DATE: sa.Date,
        FieldDataType.DATETIME: sa.DateTime,
        FieldDataType.GUID: sa.Uuid,
    }
    return type_mapping[data_type]()


def python_type_for(data_type: FieldDataType) -> type:
    return _PYTHON_TYPES[data_type]


def infer_data_type(column_type: TypeEngine) -> tuple[Optional[FieldDataType], Optional[int]]:
    """Best-effort reverse mapping for reflected physical columns."""

    if isinstance(column_type, sa.Boolean):
        return FieldDataType.BOOL, None
    if isinstance(column_type, sa.BigInteger):
        return FieldDataType.LONG, None
    if isinstance(column_type, sa.Integer):
        return FieldDataType.INT, None
    if isinstance(column_type, sa.Numeric):
        return FieldDataType.DECIMAL, None
    if isinstance(column_type, sa.DateTime):
        return FieldDataType.DATETIME, None
    if isinstance(column_type, sa.Date):
        return FieldDataType.DATE, None
    if isinstance(column_type, sa.Uuid):
        return FieldDataType.GUID, None
    if isinstance(column_type, sa.String):
        return FieldDataType.STRING, getattr(column_type, "length", None)
    return None, None


def _to_string(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError("expected text")
    return value


def _integer_coercer(bounds: tuple[int, int]) -> Callable[[Any], int]:
    def _coerce(value: Any) -> int:
        if isinstance(value, bool):
            raise TypeError("booleans are not integers")
        if isinstance(value, str):
            result = int(value.strip())
        elif isinstance(value, int):
            result = value
        elif isinstance(value, (float, Decimal)) and value == int(value):
            result = int(value)
        else:
            raise TypeError("expected an integer")
        if not bounds[0] <= result <= bounds[1]:
            raise ValueError("integer out of range")
        return result

    return _coerce


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise TypeError("booleans are not decimals")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        result = Decimal(str(value).strip())
    else:
        raise TypeError("expected a decimal")
    if not result.is_finite() or abs(result) >= _DECIMAL_LIMIT:
        raise ValueError("decimal out of range")
    if -result.as_tuple().exponent > DECIMAL_SCALE:
        raise ValueError("too many decimal places")
    return result


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValueError("expected a boolean")


def _to_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value.strip())
    raise TypeError("expected a date")


def _to_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())
    if isinstance(value, str):
        return datetime.fromisoformat(value.strip())
    raise TypeError("expected a datetime")


def _to_guid(value: Any) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    if isinstance(value, str):
        return uuid.UUID(value.strip())
    raise TypeError("expected a guid")


_COERCERS: dict[FieldDataType, Callable[[Any], Any]] = {
    FieldDataType.STRING: _to_string,
    FieldDataType.INT: _integer_coercer(_INT32_RANGE),
    FieldDataType.LONG: _integer_coercer(_INT64_RANGE),
    FieldDataType.DECIMAL: _to_decimal,
    FieldDataType.BOOL: _to_bool,
    FieldDataType.DATE: _to_date,
    FieldDataType.DATETIME: _to_datetime,
    FieldDataType.GUID: _to_guid,
}


def coerce_value(
    data_type: FieldDataType,
    value: Any,
    *,
    column_name: str,
    max_length: Optional[int] = None,
    is_required: bool = False,
) -> Any:
    """Convert ``value`` to the Python type stored in ``column_name``."""

    if value is None:
        if is_required:
            raise ExtensionFieldValidationError(f"{column_name} is required and cannot be null")
        return None

    try:
        result = _COERCERS[data_type](value)
    except (TypeError, ValueError, OverflowError, InvalidOperation) as exc:
        raise ExtensionFieldValidationError(
            f"Value {value!r} is not a valid {data_type.value} for {column_name}"
        ) from exc

    if data_type is FieldDataType.STRING and max_length and len(result) > max_length:
        raise ExtensionFieldValidationError(
            f"Value for {column_name} exceeds the maximum length of {max_length}"
        )
    return result


__all__ = [
    "DECIMAL_PRECISION",
    "DECIMAL_SCALE",
    "build_column_type",
    "coerce_value",
    "infer_data_type",
    "parse_data_type",
    "python_type_for",
]
