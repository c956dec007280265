import collections
import contextlib
import ctypes
import enum
import logging
import os
import threading

from . import busy, native
from .cache import StatementCache
from .error import (
    ConnectionClosed,
    InterfaceError,
    InvalidPath,
    MultipleStatement,
    NulError,
    SqliteFailure,
    error_from_code,
    error_from_handle,
)
from .raw_statement import RawStatement, text_for_sqlite
from .statement import Statement
from .transaction import Savepoint, Transaction, TransactionBehavior

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"


class OpenFlags(enum.IntFlag):
    READ_ONLY = native.SQLITE_OPEN_READONLY
    READ_WRITE = native.SQLITE_OPEN_READWRITE
    CREATE = native.SQLITE_OPEN_CREATE
    URI = native.SQLITE_OPEN_URI
    MEMORY = native.SQLITE_OPEN_MEMORY
    NO_MUTEX = native.SQLITE_OPEN_NOMUTEX
    FULL_MUTEX = native.SQLITE_OPEN_FULLMUTEX
    SHARED_CACHE = native.SQLITE_OPEN_SHAREDCACHE
    PRIVATE_CACHE = native.SQLITE_OPEN_PRIVATECACHE

    @classmethod
    def default(cls):
        return cls.READ_WRITE | cls.CREATE | cls.NO_MUTEX | cls.URI


def _path_to_bytes(path):
    p = os.fspath(path)
    if isinstance(p, bytes):
        try:
            p = p.decode("utf-8")
        except UnicodeDecodeError:
            raise InvalidPath(path) from None
    try:
        b = p.encode("utf-8")
    except UnicodeEncodeError:
        raise InvalidPath(path) from None
    pos = b.find(b"\x00")
    if pos != -1:
        raise NulError(pos)
    return b


class InterruptHandle:
    """Thread-safe handle that aborts whatever the connection is running.

    Calling :meth:`interrupt` after the connection has been closed is a no-op.
    """

    def __init__(self, db):
        self._lib = native.load_library()
        self._lock = threading.Lock()
        self._db = db

    def interrupt(self):
        with self._lock:
            if self._db:
                self._lib.sqlite3_interrupt(self._db)

    def _clear(self):
        self._db = None


class InnerConnection:
    """Owner of the native database handle."""

    def __init__(self, db):
        self.lib = native.load_library()
        self.db = db
        self.interrupt_handle = InterruptHandle(db)
        self.busy_handler_ref = None

    @classmethod
    def open_with_flags(cls, path_bytes, flags):
        lib = native.load_library()
        db = ctypes.c_void_p()
        rc = lib.sqlite3_open_v2(path_bytes, ctypes.byref(db), int(flags), None)
        if rc != native.SQLITE_OK:
            e = error_from_handle(db, rc) if db else error_from_code(rc)
            if db:
                # sqlite3_open_v2 hands back a handle even on failure.
                lib.sqlite3_close(db)
            raise e
        lib.sqlite3_extended_result_codes(db, 1)
        inner = cls(db)
        busy.set_busy_timeout(inner, 5.0)
        return inner

    def decode_result(self, rc):
        if rc != native.SQLITE_OK:
            raise error_from_handle(self.db, rc)

    def close(self):
        with self.interrupt_handle._lock:
            rc = self.lib.sqlite3_close(self.db)
            if rc != native.SQLITE_OK:
                raise error_from_handle(self.db, rc)
            self.interrupt_handle._clear()
            self.db = None
            self.busy_handler_ref = None

    def close_v2(self):
        """Close without failing on outstanding statements (deferred close)."""
        with self.interrupt_handle._lock:
            rc = self.lib.sqlite3_close_v2(self.db)
            self.interrupt_handle._clear()
            self.db = None
        return rc

    def _prepare_one(self, b):
        """Compile the first statement of ``b``; returns ``(stmt or None, tail)``."""
        buf = ctypes.create_string_buffer(b, len(b) + 1)
        stmt = ctypes.c_void_p()
        tail = ctypes.c_void_p()
        rc = self.lib.sqlite3_prepare_v2(self.db, buf, len(b), ctypes.byref(stmt), ctypes.byref(tail))
        if rc != native.SQLITE_OK:
            raise error_from_handle(self.db, rc)
        offset = tail.value - ctypes.addressof(buf) if tail.value else len(b)
        return (stmt if stmt else None), b[offset:]

    def _has_statement(self, b):
        try:
            stmt, _ = self._prepare_one(b)
        except SqliteFailure:
            # Trailing text that doesn't compile is still a second statement.
            return True
        if stmt is None:
            return False
        self.lib.sqlite3_finalize(stmt)
        return True

    def prepare(self, sql):
        b = text_for_sqlite(sql)
        stmt, tail = self._prepare_one(b)
        if stmt is None:
            raise error_from_code(native.SQLITE_MISUSE, "SQL contains no statement")
        if tail.strip() and self._has_statement(tail):
            self.lib.sqlite3_finalize(stmt)
            raise MultipleStatement()
        return RawStatement(stmt, tail)

    def execute_batch(self, sql):
        b = text_for_sqlite(sql)
        lib = self.lib
        while b.strip():
            stmt, b = self._prepare_one(b)
            if stmt is None:
                # Only comments left.
                break
            try:
                rc = lib.sqlite3_step(stmt)
                while rc == native.SQLITE_ROW:
                    rc = lib.sqlite3_step(stmt)
                if rc != native.SQLITE_DONE:
                    raise error_from_handle(self.db, rc)
            finally:
                lib.sqlite3_finalize(stmt)

    def changes(self):
        return int(self.lib.sqlite3_changes(self.db))

    def total_changes(self):
        return int(self.lib.sqlite3_total_changes(self.db))

    def last_insert_rowid(self):
        return int(self.lib.sqlite3_last_insert_rowid(self.db))

    def is_autocommit(self):
        return bool(self.lib.sqlite3_get_autocommit(self.db))

    def is_busy(self):
        lib = self.lib
        stmt = lib.sqlite3_next_stmt(self.db, None)
        while stmt:
            if lib.sqlite3_stmt_busy(stmt):
                return True
            stmt = lib.sqlite3_next_stmt(self.db, stmt)
        return False


class _Exclusive:
    """Runtime-checked exclusive access to an :class:`InnerConnection`."""

    def __init__(self, inner):
        self.inner = inner
        self._borrowed = False

    @contextlib.contextmanager
    def borrow(self):
        if self.inner.db is None:
            raise ConnectionClosed()
        if self._borrowed:
            raise InterfaceError("Connection is already in use")
        self._borrowed = True
        try:
            yield self.inner
        finally:
            self._borrowed = False


class Connection:
    """A connection to one database file (or an in-memory database)."""

    def __init__(self, path=None, flags=None, cached_statements=16):
        if flags is None:
            flags = OpenFlags.default()
        self.path = None if path is None or path == MEMORY_PATH else os.fspath(path)
        c_path = _path_to_bytes(MEMORY_PATH if path is None else path)
        self._db = _Exclusive(InnerConnection.open_with_flags(c_path, flags))
        self._cache = StatementCache(cached_statements)
        self._savepoint_counter = 0
        # Statement-cache observability
        self._stats = collections.Counter()
        logger.debug("Opened %s", self.path or MEMORY_PATH)

    @classmethod
    def open(cls, path, flags=None):
        return cls(path, flags)

    @classmethod
    def open_in_memory(cls, flags=None):
        return cls(None, flags)

    def __repr__(self):
        state = "closed" if self.is_closed else "open"
        return f"<{type(self).__name__} {self.path or MEMORY_PATH!r} {state}>"

    @property
    def is_closed(self):
        return self._db.inner.db is None

    def _check_closed(self):
        if self.is_closed:
            raise ConnectionClosed()

    def _decode_result(self, rc):
        with self._db.borrow() as inner:
            inner.decode_result(rc)

    def _error(self, rc):
        return error_from_handle(self._db.inner.db, rc)

    def _finalize_raw(self, raw):
        if not raw.is_finalized():
            raw.finalize()
            self._stats["finalize_count"] += 1

    def _next_savepoint_name(self):
        self._savepoint_counter += 1
        return f"_sqlitebind_sp_{self._savepoint_counter}"

    # Statements

    def prepare(self, sql):
        """Compile ``sql`` into a fresh, uncached :class:`Statement`."""
        with self._db.borrow() as inner:
            raw = inner.prepare(sql)
        self._stats["prepare_count"] += 1
        return Statement(self, raw, sql)

    def prepare_cached(self, sql):
        """Like :meth:`prepare`, but reuse a compiled statement when possible.

        The returned guard goes back to the cache on ``close()`` or at the end
        of a ``with`` block.
        """
        self._check_closed()
        return self._cache.get(self, sql)

    def set_prepared_statement_cache_capacity(self, capacity):
        self._cache.set_capacity(self, capacity)

    def flush_prepared_statement_cache(self):
        self._cache.flush(self)

    def execute(self, sql, params=()):
        """Run one statement and return the number of rows it changed."""
        with self.prepare(sql) as stmt:
            return stmt.execute(params)

    def execute_batch(self, sql):
        """Run every statement in ``sql``; rows produced are discarded."""
        with self._db.borrow() as inner:
            inner.execute_batch(sql)

    def query_row(self, sql, params=(), f=None):
        """Run a query expected to produce one row.

        Zero rows raise :class:`QueryReturnedNoRows`; rows after the first are
        ignored. Without ``f`` the row comes back as a tuple.
        """
        with self.prepare(sql) as stmt:
            return stmt.query_row(params, f)

    # Transactions

    def transaction(self, behavior=TransactionBehavior.DEFERRED):
        return Transaction(self, behavior)

    def savepoint(self):
        return Savepoint(self, self._next_savepoint_name())

    def savepoint_with_name(self, name):
        return Savepoint(self, name)

    # Busy handling

    def busy_timeout(self, timeout):
        with self._db.borrow() as inner:
            busy.set_busy_timeout(inner, timeout)

    def busy_handler(self, callback):
        with self._db.borrow() as inner:
            busy.set_busy_handler(inner, callback)

    def get_interrupt_handle(self):
        return self._db.inner.interrupt_handle

    # Connection state

    def last_insert_rowid(self):
        with self._db.borrow() as inner:
            return inner.last_insert_rowid()

    def changes(self):
        with self._db.borrow() as inner:
            return inner.changes()

    def total_changes(self):
        with self._db.borrow() as inner:
            return inner.total_changes()

    def is_autocommit(self):
        with self._db.borrow() as inner:
            return inner.is_autocommit()

    def is_busy(self):
        with self._db.borrow() as inner:
            return inner.is_busy()

    # Lifecycle

    def close(self):
        """Close the database.

        On failure (typically an unfinalized statement) the error is raised
        with ``error.connection`` set and this connection remains usable, so
        the caller can clean up and call ``close()`` again.
        """
        if self.is_closed:
            return
        self.flush_prepared_statement_cache()
        with self._db.borrow() as inner:
            try:
                inner.close()
            except SqliteFailure as e:
                e.connection = self
                raise
        logger.debug("Closed %s", self.path or MEMORY_PATH)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def __del__(self):
        db = getattr(self, "_db", None)
        if db is None or db.inner.db is None:
            return
        self._cache.flush(self)
        rc = db.inner.close_v2()
        if rc != native.SQLITE_OK:
            logger.warning("sqlite3_close_v2 failed with code %d", rc)
