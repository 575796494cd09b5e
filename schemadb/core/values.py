from __future__ import annotations

import math
import numbers
from datetime import date, datetime
from typing import Any

FLOAT_NULL = math.nan
INTEGER_NULL = -(2**63)
STRING_NULL = ""
TIMESTAMP_NULL = datetime.min

ValueType = type

_TYPE_NAMES: dict[type, str] = {
    float: "Float",
    int: "Integer",
    str: "String",
    datetime: "Timestamp",
}


def type_name(value_type: ValueType) -> str:
    return _TYPE_NAMES.get(value_type, value_type.__name__)


def null_value(value_type: ValueType) -> Any:
    if value_type is float:
        return FLOAT_NULL
    if value_type is int:
        return INTEGER_NULL
    if value_type is str:
        return STRING_NULL
    if value_type is datetime:
        return TIMESTAMP_NULL
    raise TypeError(f"no null sentinel for type {value_type!r}")


def is_null(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, bool):
        return False
    if isinstance(value, str):
        return value == STRING_NULL
    if isinstance(value, datetime):
        return value.replace(tzinfo=None) == TIMESTAMP_NULL
    if isinstance(value, numbers.Integral):
        return int(value) == INTEGER_NULL
    if isinstance(value, numbers.Real):
        return math.isnan(float(value))
    return False


def matches_type(value: Any, value_type: ValueType) -> bool:
    if isinstance(value, bool):
        return False
    if value_type is float:
        return isinstance(value, numbers.Real) and not isinstance(value, numbers.Integral)
    if value_type is int:
        return isinstance(value, numbers.Integral)
    if value_type is str:
        return isinstance(value, str)
    if value_type is datetime:
        return isinstance(value, datetime)
    return False


def format_datetime(value: datetime) -> str:
    to_pydatetime = getattr(value, "to_pydatetime", None)
    if callable(to_pydatetime):
        value = to_pydatetime()
    return value.replace(tzinfo=None).isoformat(timespec="seconds")


def parse_datetime(raw: str) -> datetime:
    return datetime.fromisoformat(raw.strip().replace(" ", "T"))


def as_datetime(value: Any) -> datetime:
    """Read a datetime, a pandas Timestamp, a date or ISO text as a naive datetime.

    Raises ValueError for text that is not an ISO date and TypeError for
    anything else.
    """
    if isinstance(value, str):
        return parse_datetime(value)
    to_pydatetime = getattr(value, "to_pydatetime", None)
    if callable(to_pydatetime):
        value = to_pydatetime()
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    raise TypeError(f"expected a date, got {type(value).__name__}")


def to_db_value(value: Any, value_type: ValueType) -> Any:
    if is_null(value):
        return None
    if value_type is datetime:
        return format_datetime(value)
    if value_type is float:
        return float(value)
    if value_type is int:
        return int(value)
    return value


def from_db_value(raw: Any, value_type: ValueType, default: Any) -> Any:
    if raw is None:
        return default
    if value_type is datetime:
        return parse_datetime(str(raw))
    if value_type is float:
        return float(raw)
    if value_type is int:
        return int(raw)
    return raw
