"""Error model.

Every exception raised by sqlitebind derives from the DB-API 2.0 hierarchy
defined here. Native result codes are mapped onto :class:`SqliteFailure`
(or one of its specializations) by :func:`error_from_code`.
"""

from __future__ import annotations

import collections.abc
import enum
import json
from typing import Any, Optional

from . import native


# DB-API 2.0 exceptions
class Error(Exception):
    pass


class Warning(Exception):
    pass


class InterfaceError(Error):
    pass


class DatabaseError(Error):
    pass


class InternalError(DatabaseError):
    pass


class OperationalError(DatabaseError):
    pass


class ProgrammingError(DatabaseError):
    pass


class IntegrityError(DatabaseError):
    pass


class DataError(DatabaseError):
    pass


class NotSupportedError(DatabaseError):
    pass


class ErrorCode(enum.Enum):
    """Primary result code categories reported by the native engine."""

    INTERNAL_MALFUNCTION = native.SQLITE_INTERNAL
    PERMISSION_DENIED = native.SQLITE_PERM
    OPERATION_ABORTED = native.SQLITE_ABORT
    DATABASE_BUSY = native.SQLITE_BUSY
    DATABASE_LOCKED = native.SQLITE_LOCKED
    OUT_OF_MEMORY = native.SQLITE_NOMEM
    READ_ONLY = native.SQLITE_READONLY
    OPERATION_INTERRUPTED = native.SQLITE_INTERRUPT
    SYSTEM_IO_FAILURE = native.SQLITE_IOERR
    DATABASE_CORRUPT = native.SQLITE_CORRUPT
    NOT_FOUND = native.SQLITE_NOTFOUND
    DISK_FULL = native.SQLITE_FULL
    CANNOT_OPEN = native.SQLITE_CANTOPEN
    FILE_LOCKING_PROTOCOL_FAILED = native.SQLITE_PROTOCOL
    SCHEMA_CHANGED = native.SQLITE_SCHEMA
    TOO_BIG = native.SQLITE_TOOBIG
    CONSTRAINT_VIOLATION = native.SQLITE_CONSTRAINT
    TYPE_MISMATCH = native.SQLITE_MISMATCH
    API_MISUSE = native.SQLITE_MISUSE
    NO_LARGE_FILE_SUPPORT = native.SQLITE_NOLFS
    AUTHORIZATION_DENIED = native.SQLITE_AUTH
    PARAMETER_OUT_OF_RANGE = native.SQLITE_RANGE
    NOT_A_DATABASE = native.SQLITE_NOTADB
    UNKNOWN = native.SQLITE_ERROR

    @classmethod
    def from_result(cls, result_code: int) -> "ErrorCode":
        # Extended codes keep the primary code in the low byte.
        try:
            return cls(result_code & 0xFF)
        except ValueError:
            return cls.UNKNOWN


_MAX_TEXT = 200
_MAX_BLOB = 64
_MAX_PARAMS = 50


def _clip(s):
    return s if len(s) <= _MAX_TEXT else s[:_MAX_TEXT] + "..."


def _describe_param(v):
    """JSON-safe summary of one bound value."""
    if v is None or isinstance(v, (bool, int, float)):
        return v
    if isinstance(v, str):
        return _clip(v)
    if isinstance(v, (bytes, bytearray, memoryview)):
        blob = bytes(v)
        key = "hex" if len(blob) <= _MAX_BLOB else "hex_prefix"
        return {"_type": "bytes", key: blob[:_MAX_BLOB].hex(), "len": len(blob)}
    return _clip(repr(v))


def _describe_params(params):
    if params is None:
        return None
    if isinstance(params, collections.abc.Mapping):
        items = list(params.items())
        out = {str(k): _describe_param(v) for k, v in items[:_MAX_PARAMS]}
        if len(items) > _MAX_PARAMS:
            out["_truncated"] = True
        return out
    if isinstance(params, (str, bytes)) or not isinstance(params, collections.abc.Iterable):
        return _describe_param(params)
    values = list(params)
    described = [_describe_param(v) for v in values[:_MAX_PARAMS]]
    if len(values) > _MAX_PARAMS:
        described.append("<truncated>")
    return described


class SqliteFailure(OperationalError):
    """A failure reported by the native engine.

    ``code`` is the :class:`ErrorCode` category, ``extended_code`` the raw
    (possibly extended) result code and ``message`` the engine's message, if
    any. ``sql`` and ``params`` are attached when the failure happened while
    running a statement.
    """

    def __init__(self, extended_code: int, message: Optional[str] = None):
        self.code = ErrorCode.from_result(extended_code)
        self.extended_code = extended_code
        self.message = message
        self.sql: Optional[str] = None
        self.params: Any = None
        self.connection = None
        super().__init__(extended_code, message)

    def with_context(self, sql, params=None):
        if self.sql is None:
            self.sql = sql
            self.params = params
        return self

    def __str__(self):
        msg = self.message or native.errstr(self.extended_code)
        if self.sql is not None:
            ctx = {
                "native_code": int(self.extended_code),
                "sql": self.sql,
                "params": _describe_params(self.params),
            }
            msg = msg + "\nContext: " + json.dumps(ctx, ensure_ascii=False)
        return msg


class DatabaseBusy(SqliteFailure):
    pass


class OperationInterrupted(SqliteFailure):
    pass


class ConstraintViolation(SqliteFailure, IntegrityError):
    pass


class ParameterOutOfRange(SqliteFailure, ProgrammingError):
    pass


_FAILURE_CLASSES = {
    native.SQLITE_BUSY: DatabaseBusy,
    native.SQLITE_LOCKED: DatabaseBusy,
    native.SQLITE_INTERRUPT: OperationInterrupted,
    native.SQLITE_CONSTRAINT: ConstraintViolation,
    native.SQLITE_RANGE: ParameterOutOfRange,
}


def error_from_code(code: int, message: Optional[str] = None) -> SqliteFailure:
    cls = _FAILURE_CLASSES.get(code & 0xFF, SqliteFailure)
    return cls(code, message)


def error_from_handle(db, code: int) -> SqliteFailure:
    """Build the failure for ``code`` using the message held by ``db``."""
    if not db:
        return error_from_code(code)
    lib = native.load_library()
    msg = lib.sqlite3_errmsg(db)
    # Native messages should be UTF-8, but don't crash if not.
    message = msg.decode("utf-8", errors="replace") if msg else None
    return error_from_code(code, message)


class QueryReturnedNoRows(Error):
    def __init__(self):
        super().__init__("Query returned no rows")


class ExecuteReturnedResults(ProgrammingError):
    def __init__(self):
        super().__init__("Execute returned results - did you mean to call query?")


class StatementChangedRows(ProgrammingError):
    def __init__(self, changed: int):
        self.changed = changed
        super().__init__(f"Statement changed {changed} rows, expected exactly 1")


class StatementExhausted(ProgrammingError):
    def __init__(self):
        super().__init__("Statement has already returned all of its rows; reset it before stepping again")


class InvalidColumnIndex(ProgrammingError, IndexError):
    def __init__(self, index: int):
        self.index = index
        super().__init__(f"Invalid column index: {index}")

    def __str__(self):
        return self.args[0]


class InvalidColumnName(ProgrammingError, KeyError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Invalid column name: {name}")

    def __str__(self):
        return self.args[0]


class InvalidColumnType(DataError):
    def __init__(self, index: int, name: Optional[str], value_type):
        self.index = index
        self.name = name
        self.value_type = value_type
        super().__init__(f"Invalid column type {value_type.name} at index: {index}, name: {name}")


class FromSqlConversionFailure(DataError):
    def __init__(self, index: int, value_type, cause: BaseException):
        self.index = index
        self.value_type = value_type
        self.cause = cause
        super().__init__(f"Conversion error from type {value_type.name} at index: {index}, {cause}")


class IntegralValueOutOfRange(DataError):
    def __init__(self, index: int, value: int):
        self.index = index
        self.value = value
        super().__init__(f"Integer {value} out of range at index {index}")


class Utf8Error(DataError):
    pass


class InvalidParameterName(ProgrammingError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Invalid parameter name: {name}")


class InvalidParameterCount(ProgrammingError):
    def __init__(self, given: int, expected: int):
        self.given = given
        self.expected = expected
        super().__init__(f"Wrong number of parameters passed to query. Got {given}, needed {expected}")


class InvalidPath(InterfaceError):
    def __init__(self, path):
        self.path = path
        super().__init__(f"Invalid path: {path!r}")


class NulError(DataError):
    def __init__(self, position: int):
        self.position = position
        super().__init__(f"Embedded NUL byte at position {position}")


class ToSqlConversionFailure(DataError):
    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(str(cause))


class MultipleStatement(ProgrammingError):
    def __init__(self):
        super().__init__("Multiple statements provided")


class TransactionAlreadyResolved(ProgrammingError):
    pass


class ConnectionClosed(ProgrammingError):
    def __init__(self):
        super().__init__("Cannot operate on a closed database.")


def optional(func, *args, **kwargs):
    """Call ``func`` and turn :class:`QueryReturnedNoRows` into ``None``.

    Every other error passes through unchanged::

        name = optional(conn.query_row, "SELECT name FROM t WHERE id = ?", (7,), lambda r: r.get(0))
    """
    try:
        return func(*args, **kwargs)
    except QueryReturnedNoRows:
        return None
