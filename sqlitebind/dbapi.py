"""DB-API 2.0 (PEP 249) interface over :class:`sqlitebind.Connection`.

Statements run through the connection's prepared-statement cache. As with
the standard library ``sqlite3`` module, a transaction is opened implicitly
before INSERT, UPDATE, DELETE and REPLACE unless ``isolation_level`` is
``None``.
"""

import collections.abc
import datetime
import re
import time
import weakref

from . import native
from .connection import Connection as _Connection, OpenFlags
from .error import (
    DatabaseError,
    DataError,
    Error,
    IntegrityError,
    InterfaceError,
    InternalError,
    NotSupportedError,
    OperationalError,
    ProgrammingError,
    Warning,
)

# DB-API 2.0 Globals
apilevel = "2.0"
threadsafety = 1  # Threads may share the module, but not connections
paramstyle = "qmark"  # Named (:name) placeholders work too, with a mapping

__all__ = [
    "apilevel", "threadsafety", "paramstyle", "connect", "Connection", "Cursor",
    "Error", "Warning", "InterfaceError", "DatabaseError", "InternalError",
    "OperationalError", "ProgrammingError", "IntegrityError", "DataError",
    "NotSupportedError", "Date", "Time", "Timestamp", "DateFromTicks",
    "TimeFromTicks", "TimestampFromTicks", "Binary", "STRING", "BINARY",
    "NUMBER", "DATETIME", "ROWID",
]


def __getattr__(name):
    # Resolved lazily so importing the module doesn't load the native library.
    if name == "sqlite_version":
        return native.version()
    if name == "sqlite_version_info":
        return tuple(int(p) for p in native.version().split("."))
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


Date = datetime.date
Time = datetime.time
Timestamp = datetime.datetime


def DateFromTicks(ticks):
    return Date(*time.localtime(ticks)[:3])


def TimeFromTicks(ticks):
    return Time(*time.localtime(ticks)[3:6])


def TimestampFromTicks(ticks):
    return Timestamp(*time.localtime(ticks)[:6])


Binary = bytes


class _TypeObject:
    def __init__(self, *values):
        self.values = frozenset(values)

    def __eq__(self, other):
        if isinstance(other, str):
            return other.upper() in self.values
        return NotImplemented

    def __hash__(self):
        return hash(self.values)


STRING = _TypeObject("TEXT", "CHAR", "VARCHAR", "CLOB")
BINARY = _TypeObject("BLOB")
NUMBER = _TypeObject("INTEGER", "INT", "REAL", "FLOAT", "DOUBLE", "NUMERIC", "DECIMAL")
DATETIME = _TypeObject("DATE", "TIME", "DATETIME", "TIMESTAMP")
ROWID = _TypeObject("INTEGER")

_ISOLATION_LEVELS = ("", "DEFERRED", "IMMEDIATE", "EXCLUSIVE")

_LEADING_NOISE = re.compile(r"\s+|--[^\n]*|/\*.*?(?:\*/|$)", re.S)
_KEYWORD = re.compile(r"[A-Za-z]+")


def _first_keyword(sql):
    pos = 0
    while True:
        m = _LEADING_NOISE.match(sql, pos)
        if m is None:
            break
        pos = m.end()
    m = _KEYWORD.match(sql, pos)
    return m.group(0).upper() if m else ""


def _is_dml(sql):
    return _first_keyword(sql) in ("INSERT", "UPDATE", "DELETE", "REPLACE")


def _adapt_parameters(stmt, parameters):
    """Turn DB-API parameters into what :meth:`Statement.query` accepts."""
    if parameters is None:
        return ()
    if not isinstance(parameters, collections.abc.Mapping):
        return parameters
    bound = {}
    for idx in range(1, stmt.parameter_count() + 1):
        name = stmt.parameter_name(idx)
        if name is None:
            raise ProgrammingError("Binding by name requires named placeholders (:name)")
        key = name[1:]
        if key not in parameters:
            raise ProgrammingError(f"You did not supply a value for binding parameter {name}.")
        bound[name] = parameters[key]
    return bound


class Cursor:
    def __init__(self, connection):
        self.connection = connection
        self.arraysize = 1
        self.description = None
        self.rowcount = -1
        self.lastrowid = None
        self._stmt = None
        self._rows = None
        self._next_row = None
        self._closed = False

    def _check(self):
        if self._closed:
            raise ProgrammingError("Cannot operate on a closed cursor.")
        self.connection._check()

    def _release(self):
        rows, self._rows = self._rows, None
        self._next_row = None
        if rows is not None:
            rows.close()
        stmt, self._stmt = self._stmt, None
        if stmt is not None:
            stmt.close()

    def close(self):
        if self._closed:
            return
        self._release()
        self._closed = True

    def _advance(self):
        row = self._rows.next()
        if row is None:
            # Exhausted: hand the statement back to the cache right away.
            self._release()
            return None
        return row.as_tuple()

    def execute(self, operation, parameters=None):
        self._check()
        self._release()
        self.description = None
        self.rowcount = -1
        conn = self.connection
        dml = _is_dml(operation)
        if dml:
            conn._begin()

        stmt = conn._conn.prepare_cached(operation)
        self._stmt = stmt
        try:
            params = _adapt_parameters(stmt, parameters)
            if stmt.column_count() == 0:
                changed = stmt.execute(params)
                if dml:
                    self.rowcount = changed
                    self.lastrowid = conn._conn.last_insert_rowid()
                self._release()
                return self

            self.description = tuple(
                (name, None, None, None, None, None, None) for name in stmt.column_names()
            )
            self._rows = stmt.query(params)
            # Run up to the first row now so errors surface from execute().
            self._next_row = self._advance()
            if dml:
                self.lastrowid = conn._conn.last_insert_rowid()
        except BaseException:
            self._release()
            raise
        return self

    def executemany(self, operation, seq_of_parameters):
        self._check()
        self._release()
        self.description = None
        self.rowcount = -1
        conn = self.connection
        dml = _is_dml(operation)
        if dml:
            conn._begin()

        total = 0
        with conn._conn.prepare_cached(operation) as stmt:
            if stmt.column_count() != 0:
                raise ProgrammingError("executemany() can only execute DML statements.")
            for parameters in seq_of_parameters:
                total += stmt.execute(_adapt_parameters(stmt, parameters))
        if dml:
            self.rowcount = total
            self.lastrowid = conn._conn.last_insert_rowid()
        return self

    def executescript(self, sql_script):
        self._check()
        self._release()
        self.connection.commit()
        self.connection._conn.execute_batch(sql_script)
        return self

    def fetchone(self):
        self._check()
        if self._rows is None and self._next_row is None:
            return None
        row = self._next_row
        self._next_row = self._advance() if self._rows is not None else None
        return row

    def fetchmany(self, size=None):
        if size is None:
            size = self.arraysize
        rows = []
        for _ in range(size):
            r = self.fetchone()
            if r is None:
                break
            rows.append(r)
        return rows

    def fetchall(self):
        rows = []
        while True:
            r = self.fetchone()
            if r is None:
                break
            rows.append(r)
        return rows

    def setinputsizes(self, sizes):
        pass

    def setoutputsize(self, size, column=None):
        pass

    def __iter__(self):
        return self

    def __next__(self):
        r = self.fetchone()
        if r is None:
            raise StopIteration
        return r


class Connection:
    def __init__(self, database, timeout=5.0, isolation_level="", uri=False, cached_statements=16, flags=None):
        if flags is None:
            flags = OpenFlags.default()
            if not uri:
                flags &= ~OpenFlags.URI
        self._conn = _Connection(database, flags, cached_statements)
        self._conn.busy_timeout(timeout)
        self.isolation_level = isolation_level
        self._cursors = weakref.WeakSet()

    def _check(self):
        if self._conn.is_closed:
            raise ProgrammingError("Cannot operate on a closed database.")

    @property
    def isolation_level(self):
        return self._isolation_level

    @isolation_level.setter
    def isolation_level(self, value):
        if value is not None:
            if not isinstance(value, str) or value.upper() not in _ISOLATION_LEVELS:
                raise ValueError(f"isolation_level must be None or one of {_ISOLATION_LEVELS!r}")
            value = value.upper()
        elif getattr(self, "_isolation_level", None) is not None:
            # Switching to autocommit ends any implicit transaction.
            self.commit()
        self._isolation_level = value

    @property
    def in_transaction(self):
        self._check()
        return not self._conn.is_autocommit()

    @property
    def total_changes(self):
        self._check()
        return self._conn.total_changes()

    def _begin(self):
        if self._isolation_level is None or not self._conn.is_autocommit():
            return
        self._conn.execute_batch(f"BEGIN {self._isolation_level}".rstrip())

    def cursor(self):
        self._check()
        c = Cursor(self)
        self._cursors.add(c)
        return c

    def execute(self, operation, parameters=None):
        # Convenience method
        return self.cursor().execute(operation, parameters)

    def executemany(self, operation, seq_of_parameters):
        return self.cursor().executemany(operation, seq_of_parameters)

    def executescript(self, sql_script):
        return self.cursor().executescript(sql_script)

    def commit(self):
        self._check()
        if not self._conn.is_autocommit():
            self._conn.execute_batch("COMMIT")

    def rollback(self):
        self._check()
        if not self._conn.is_autocommit():
            self._conn.execute_batch("ROLLBACK")

    def interrupt(self):
        self._conn.get_interrupt_handle().interrupt()

    def close(self):
        if self._conn.is_closed:
            return
        for c in list(self._cursors):
            c.close()
        self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            self.rollback()
        else:
            self.commit()
        self.close()


def connect(database, **kwargs):
    """Open a DB-API connection; see :class:`Connection` for the options."""
    return Connection(database, **kwargs)
