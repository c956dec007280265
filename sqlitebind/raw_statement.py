import ctypes
import enum

from . import native
from .error import NulError, StatementExhausted, Utf8Error, error_from_code
from .types import Type, Value

# Bound with SQLITE_STATIC: the empty bytes object lives for the whole process.
_EMPTY_TEXT = b""


class StatementState(enum.Enum):
    UNBOUND = "unbound"
    BOUND = "bound"
    ROW = "row"
    DONE = "done"


def text_for_sqlite(s):
    """Encode ``s`` for native text binding, rejecting embedded NULs."""
    pos = s.find("\x00")
    if pos != -1:
        raise NulError(pos)
    return s.encode("utf-8")


class RawStatement:
    """Sole owner of one native prepared-statement handle.

    The handle is finalized exactly once: ``finalize()`` drops the pointer, so
    later calls (including the one from ``__del__``) do nothing.
    """

    def __init__(self, stmt, tail=b""):
        self._lib = native.load_library()
        self._stmt = stmt
        # Text left over after the first statement, as returned by prepare.
        self.tail = tail
        self.state = StatementState.UNBOUND

    def __del__(self):
        if getattr(self, "_stmt", None):
            self.finalize()

    @property
    def ptr(self):
        return self._stmt

    def is_finalized(self):
        return not self._stmt

    def has_tail(self):
        return bool(self.tail)

    # Metadata

    def column_count(self):
        return int(self._lib.sqlite3_column_count(self._stmt))

    def column_name(self, idx):
        name = self._lib.sqlite3_column_name(self._stmt, idx)
        return name.decode("utf-8") if name is not None else None

    def column_decltype(self, idx):
        decl = self._lib.sqlite3_column_decltype(self._stmt, idx)
        return decl.decode("utf-8") if decl is not None else None

    def bind_parameter_count(self):
        return int(self._lib.sqlite3_bind_parameter_count(self._stmt))

    def bind_parameter_index(self, name):
        idx = self._lib.sqlite3_bind_parameter_index(self._stmt, text_for_sqlite(name))
        return idx if idx > 0 else None

    def bind_parameter_name(self, idx):
        name = self._lib.sqlite3_bind_parameter_name(self._stmt, idx)
        return name.decode("utf-8") if name is not None else None

    def sql(self):
        sql = self._lib.sqlite3_sql(self._stmt)
        return sql.decode("utf-8") if sql is not None else None

    def is_busy(self):
        return bool(self._lib.sqlite3_stmt_busy(self._stmt))

    def readonly(self):
        return bool(self._lib.sqlite3_stmt_readonly(self._stmt))

    # Binding

    def bind_value(self, idx, value):
        """Bind a :class:`Value` at the 1-based ``idx``; returns the native code."""
        lib = self._lib
        t = value.type
        if t is Type.NULL:
            rc = lib.sqlite3_bind_null(self._stmt, idx)
        elif t is Type.INTEGER:
            rc = lib.sqlite3_bind_int64(self._stmt, idx, value.data)
        elif t is Type.REAL:
            rc = lib.sqlite3_bind_double(self._stmt, idx, value.data)
        elif t is Type.TEXT:
            b = text_for_sqlite(value.data)
            if b:
                rc = lib.sqlite3_bind_text(self._stmt, idx, b, len(b), native.SQLITE_TRANSIENT)
            else:
                # Keep empty text distinct from NULL.
                rc = lib.sqlite3_bind_text(self._stmt, idx, _EMPTY_TEXT, 0, native.SQLITE_STATIC)
        else:
            b = value.data
            if b:
                rc = lib.sqlite3_bind_blob(self._stmt, idx, b, len(b), native.SQLITE_TRANSIENT)
            else:
                # A null pointer would bind NULL, not an empty blob.
                rc = lib.sqlite3_bind_zeroblob(self._stmt, idx, 0)
        if rc == native.SQLITE_OK:
            self.state = StatementState.BOUND
        return rc

    def clear_bindings(self):
        return self._lib.sqlite3_clear_bindings(self._stmt)

    # Stepping

    def step(self):
        """Advance once; returns the native code (ROW, DONE or an error).

        Raises :class:`StatementExhausted` when called again after DONE
        without an intervening ``reset()``.
        """
        if self.state is StatementState.DONE:
            raise StatementExhausted()
        rc = self._lib.sqlite3_step(self._stmt)
        if rc == native.SQLITE_ROW:
            self.state = StatementState.ROW
        else:
            # DONE or an error: no pending row either way.
            self.state = StatementState.DONE
        return rc

    def reset(self):
        rc = self._lib.sqlite3_reset(self._stmt)
        self.state = StatementState.UNBOUND
        return rc

    def finalize(self):
        stmt, self._stmt = self._stmt, None
        if not stmt:
            return native.SQLITE_OK
        self.state = StatementState.DONE
        return self._lib.sqlite3_finalize(stmt)

    # Column values

    def column_type(self, idx):
        return Type(self._lib.sqlite3_column_type(self._stmt, idx))

    def column_value(self, idx):
        lib = self._lib
        t = self.column_type(idx)
        if t is Type.NULL:
            return Value.null()
        if t is Type.INTEGER:
            return Value(Type.INTEGER, int(lib.sqlite3_column_int64(self._stmt, idx)))
        if t is Type.REAL:
            return Value(Type.REAL, float(lib.sqlite3_column_double(self._stmt, idx)))
        if t is Type.TEXT:
            ptr = lib.sqlite3_column_text(self._stmt, idx)
            if not ptr:
                # sqlite3_column_text only returns NULL for TEXT on OOM.
                raise error_from_code(native.SQLITE_NOMEM)
            n = lib.sqlite3_column_bytes(self._stmt, idx)
            raw = ctypes.string_at(ptr, n)
            try:
                return Value(Type.TEXT, raw.decode("utf-8"))
            except UnicodeDecodeError as e:
                raise Utf8Error(f"Invalid UTF-8 in column {idx}: {e}") from e
        ptr = lib.sqlite3_column_blob(self._stmt, idx)
        n = lib.sqlite3_column_bytes(self._stmt, idx)
        if not ptr or n == 0:
            return Value(Type.BLOB, b"")
        return Value(Type.BLOB, ctypes.string_at(ptr, n))
