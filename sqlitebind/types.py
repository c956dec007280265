"""Conversions between Python values and the engine's five storage classes.

Two capability sets are exposed:

* binding: :func:`to_sql` turns a Python value into a :class:`Value`. Types
  opt in either by implementing the :class:`ToSql` protocol or through
  :func:`register_adapter`.
* extraction: :func:`from_sql` turns a :class:`Value` into a requested
  Python type. Types opt in by implementing the :class:`FromSql` protocol or
  through :func:`register_converter`.
"""

from __future__ import annotations

import dataclasses
import datetime
import decimal
import enum
import types
import typing
import uuid
from typing import Any, Callable, Dict, Optional, Protocol, runtime_checkable

from . import native
from .error import ToSqlConversionFailure

I64_MIN = -(2 ** 63)
I64_MAX = 2 ** 63 - 1


class Type(enum.IntEnum):
    """Storage class of a :class:`Value` (values match the native codes)."""

    INTEGER = native.SQLITE_INTEGER
    REAL = native.SQLITE_FLOAT
    TEXT = native.SQLITE_TEXT
    BLOB = native.SQLITE_BLOB
    NULL = native.SQLITE_NULL


@dataclasses.dataclass(frozen=True)
class Value:
    """A value exactly as the engine stores it."""

    type: Type
    data: Any = None

    @classmethod
    def null(cls) -> "Value":
        return _NULL

    @classmethod
    def integer(cls, v: int) -> "Value":
        return cls(Type.INTEGER, int(v))

    @classmethod
    def real(cls, v: float) -> "Value":
        return cls(Type.REAL, float(v))

    @classmethod
    def text(cls, v: str) -> "Value":
        return cls(Type.TEXT, v)

    @classmethod
    def blob(cls, v) -> "Value":
        return cls(Type.BLOB, bytes(v))

    def as_python(self):
        return self.data


_NULL = Value(Type.NULL)


@runtime_checkable
class ToSql(Protocol):
    def to_sql(self) -> Any:
        """Return a :class:`Value` or any value bindable without adapters."""


@runtime_checkable
class FromSql(Protocol):
    @classmethod
    def from_sql(cls, value: Value) -> Any:
        """Build an instance from ``value`` or raise :class:`FromSqlError`."""


class FromSqlError(Exception):
    pass


class InvalidType(FromSqlError):
    """The value's storage class can't produce the requested type."""


class OutOfRange(FromSqlError):
    def __init__(self, value: int):
        self.value = value
        super().__init__(f"{value} out of range")


_adapters: Dict[type, Callable[[Any], Any]] = {}
_converters: Dict[type, Callable[[Value], Any]] = {}


def register_adapter(typ: type, adapter: Callable[[Any], Any]) -> None:
    """Bind instances of ``typ`` (and subclasses) through ``adapter``."""
    _adapters[typ] = adapter


def register_converter(typ: type, converter: Callable[[Value], Any]) -> None:
    """Extract ``typ`` from column values through ``converter``."""
    _converters[typ] = converter


def _int_value(v: int) -> Value:
    if v < I64_MIN or v > I64_MAX:
        raise ToSqlConversionFailure(OverflowError(f"integer {v} does not fit in 64 bits"))
    return Value(Type.INTEGER, v)


def to_sql(obj: Any) -> Value:
    if obj is None:
        return _NULL
    if isinstance(obj, Value):
        return obj
    # bool before int: bool is an int subclass
    if isinstance(obj, bool):
        return Value(Type.INTEGER, 1 if obj else 0)
    if isinstance(obj, int):
        return _int_value(int(obj))
    if isinstance(obj, float):
        return Value(Type.REAL, obj)
    if isinstance(obj, str):
        return Value(Type.TEXT, obj)
    if isinstance(obj, (bytes, bytearray, memoryview)):
        return Value(Type.BLOB, bytes(obj))

    adapter = None
    if isinstance(obj, ToSql):
        adapter = type(obj).to_sql
    else:
        for klass in type(obj).__mro__:
            adapter = _adapters.get(klass)
            if adapter is not None:
                break
    if adapter is None:
        raise ToSqlConversionFailure(TypeError(f"Unsupported type for binding: {type(obj).__name__}"))

    try:
        adapted = adapter(obj)
    except ToSqlConversionFailure:
        raise
    except Exception as e:
        raise ToSqlConversionFailure(e) from e
    if isinstance(adapted, Value):
        return adapted
    if type(adapted) is type(obj):
        raise ToSqlConversionFailure(TypeError(f"Adapter for {type(obj).__name__} returned the same type"))
    return to_sql(adapted)


def _optional_inner(target) -> Optional[Any]:
    """For ``Optional[T]`` return ``T``; otherwise ``None``."""
    if typing.get_origin(target) not in (typing.Union, types.UnionType):
        return None
    args = typing.get_args(target)
    if len(args) != 2 or type(None) not in args:
        return None
    return args[0] if args[1] is type(None) else args[1]


def from_sql(value: Value, target: Any = None) -> Any:
    """Convert ``value`` to ``target``.

    ``target=None`` returns the plain Python value. Raises
    :class:`InvalidType` when the storage class doesn't fit.
    """
    if target is None:
        return value.data

    inner = _optional_inner(target)
    if inner is not None:
        if value.type is Type.NULL:
            return None
        return from_sql(value, inner)

    if target is Value:
        return value

    converter = _converters.get(target)
    if converter is None and isinstance(target, type):
        if isinstance(target, FromSql):
            return target.from_sql(value)
        for klass in target.__mro__[1:]:
            converter = _converters.get(klass)
            if converter is not None:
                break
    if converter is None:
        raise TypeError(f"No conversion from SQL values to {target!r}")
    return converter(value)


# Built-in converters

def _to_int(value: Value) -> int:
    if value.type is Type.INTEGER:
        return value.data
    raise InvalidType()


def _to_bool(value: Value) -> bool:
    if value.type is Type.INTEGER:
        return value.data != 0
    raise InvalidType()


def _to_float(value: Value) -> float:
    if value.type in (Type.INTEGER, Type.REAL):
        return float(value.data)
    raise InvalidType()


def _to_str(value: Value) -> str:
    if value.type is Type.TEXT:
        return value.data
    raise InvalidType()


def _to_bytes(value: Value) -> bytes:
    if value.type is Type.BLOB:
        return value.data
    raise InvalidType()


def _to_datetime(value: Value) -> datetime.datetime:
    if value.type is not Type.TEXT:
        raise InvalidType()
    s = value.data
    # "YYYY-MM-DD HH:MM:SS" is what the engine's datetime() produces.
    return datetime.datetime.fromisoformat(s.replace("Z", "+00:00"))


def _to_date(value: Value) -> datetime.date:
    if value.type is not Type.TEXT:
        raise InvalidType()
    return datetime.date.fromisoformat(value.data)


def _to_time(value: Value) -> datetime.time:
    if value.type is not Type.TEXT:
        raise InvalidType()
    return datetime.time.fromisoformat(value.data)


def _to_decimal(value: Value) -> decimal.Decimal:
    if value.type in (Type.TEXT, Type.INTEGER):
        return decimal.Decimal(value.data)
    if value.type is Type.REAL:
        return decimal.Decimal(repr(value.data))
    raise InvalidType()


def _to_uuid(value: Value) -> uuid.UUID:
    if value.type is not Type.BLOB:
        raise InvalidType()
    if len(value.data) != 16:
        raise ValueError(f"UUID blob must be 16 bytes, got {len(value.data)}")
    return uuid.UUID(bytes=value.data)


register_converter(int, _to_int)
register_converter(bool, _to_bool)
register_converter(float, _to_float)
register_converter(str, _to_str)
register_converter(bytes, _to_bytes)
register_converter(datetime.datetime, _to_datetime)
register_converter(datetime.date, _to_date)
register_converter(datetime.time, _to_time)
register_converter(decimal.Decimal, _to_decimal)
register_converter(uuid.UUID, _to_uuid)

# datetime is a date subclass; the MRO walk in to_sql finds it first.
register_adapter(datetime.datetime, lambda v: v.isoformat(sep=" "))
register_adapter(datetime.date, lambda v: v.isoformat())
register_adapter(datetime.time, lambda v: v.isoformat())
register_adapter(decimal.Decimal, lambda v: Value(Type.TEXT, str(v)))
register_adapter(uuid.UUID, lambda v: Value(Type.BLOB, v.bytes))
