import collections.abc
import dataclasses
from typing import Optional

from . import native
from .error import (
    ExecuteReturnedResults,
    InvalidColumnIndex,
    InvalidColumnName,
    InvalidParameterCount,
    InvalidParameterName,
    ProgrammingError,
    SqliteFailure,
    StatementChangedRows,
    error_from_code,
)
from .row import Rows
from .types import to_sql


@dataclasses.dataclass(frozen=True)
class Column:
    name: str
    decl_type: Optional[str]


class Statement:
    """A prepared statement bound to its :class:`Connection`.

    Parameters are given as a sequence (bound to ``?``/``?NNN`` placeholders
    in order) or as a mapping from placeholder name, prefix included
    (``{":id": 1}``), to value.
    """

    def __init__(self, conn, raw, sql):
        self.conn = conn
        self._raw = raw
        self.sql = sql
        self._rows = None

    def __repr__(self):
        return f"<Statement {self.sql!r}>"

    def _live_raw(self):
        raw = self._raw
        if raw is None or raw.is_finalized():
            raise ProgrammingError("Cannot operate on a finalized statement.")
        return raw

    def _detach(self):
        raw, self._raw = self._raw, None
        return raw

    def _failure(self, rc, params=None):
        return self.conn._error(rc).with_context(self.sql, params)

    # Metadata

    def column_count(self):
        return self._live_raw().column_count()

    def column_name(self, idx):
        raw = self._live_raw()
        if idx < 0 or idx >= raw.column_count():
            raise InvalidColumnIndex(idx)
        return raw.column_name(idx)

    def column_names(self):
        raw = self._live_raw()
        return [raw.column_name(i) for i in range(raw.column_count())]

    def column_index(self, name):
        raw = self._live_raw()
        for i in range(raw.column_count()):
            if raw.column_name(i) == name:
                return i
        raise InvalidColumnName(name)

    def columns(self):
        raw = self._live_raw()
        return [Column(raw.column_name(i), raw.column_decltype(i)) for i in range(raw.column_count())]

    def parameter_count(self):
        return self._live_raw().bind_parameter_count()

    def parameter_index(self, name):
        """1-based index of the named placeholder, or ``None``."""
        return self._live_raw().bind_parameter_index(name)

    def parameter_name(self, idx):
        return self._live_raw().bind_parameter_name(idx)

    def readonly(self):
        return self._live_raw().readonly()

    # Binding

    def _bind_parameter(self, raw, idx, value, params=None):
        rc = raw.bind_value(idx, to_sql(value))
        if rc != native.SQLITE_OK:
            if rc == native.SQLITE_RANGE:
                raise error_from_code(rc, f"Parameter index {idx} out of range").with_context(self.sql, params)
            raise self._failure(rc, params)

    def _bind_parameters(self, raw, params):
        if params is None:
            params = ()
        if isinstance(params, collections.abc.Mapping):
            # Placeholders missing from the mapping bind as NULL.
            raw.clear_bindings()
            for name, value in params.items():
                idx = raw.bind_parameter_index(name)
                if idx is None:
                    raise InvalidParameterName(name)
                self._bind_parameter(raw, idx, value, params)
            return
        if isinstance(params, (str, bytes)):
            raise TypeError("parameters must be a sequence or a mapping, not a string")
        params = list(params)
        expected = raw.bind_parameter_count()
        if len(params) != expected:
            raise InvalidParameterCount(len(params), expected)
        for idx, value in enumerate(params, 1):
            self._bind_parameter(raw, idx, value, params)

    def raw_bind_parameter(self, index, value):
        """Bind one parameter by 1-based index or by name (``":name"``)."""
        raw = self._live_raw()
        if isinstance(index, str):
            idx = raw.bind_parameter_index(index)
            if idx is None:
                raise InvalidParameterName(index)
            index = idx
        self._bind_parameter(raw, index, value)

    def clear_bindings(self):
        self._live_raw().clear_bindings()

    def reset(self):
        self._live_raw().reset()

    # Execution

    def step(self):
        """Advance once: ``True`` when a row is available, ``False`` when done."""
        raw = self._live_raw()
        rc = raw.step()
        if rc == native.SQLITE_ROW:
            return True
        if rc == native.SQLITE_DONE:
            return False
        raise self._failure(rc)

    def execute(self, params=()):
        """Bind ``params``, run to completion and return the changed-row count.

        Raises :class:`ExecuteReturnedResults` for statements that produce
        rows; use :meth:`query` for those.
        """
        raw = self._live_raw()
        raw.reset()
        self._bind_parameters(raw, params)
        return self._execute_with_bound_parameters(raw, params)

    def raw_execute(self):
        """Run with whatever has been bound through :meth:`raw_bind_parameter`."""
        raw = self._live_raw()
        return self._execute_with_bound_parameters(raw, None)

    def _execute_with_bound_parameters(self, raw, params):
        rc = raw.step()
        err = None
        if rc not in (native.SQLITE_ROW, native.SQLITE_DONE):
            # Read the message before reset() can clear it.
            err = self._failure(rc, params)
        raw.reset()
        if err is not None:
            raise err
        if rc == native.SQLITE_ROW or raw.column_count() > 0:
            raise ExecuteReturnedResults()
        return self.conn.changes()

    def insert(self, params=()):
        """Execute an INSERT and return the new row's rowid.

        Raises :class:`StatementChangedRows` unless exactly one row changed.
        """
        changed = self.execute(params)
        if changed != 1:
            raise StatementChangedRows(changed)
        return self.conn.last_insert_rowid()

    def query(self, params=()):
        """Bind ``params`` and return a lazy :class:`Rows` over the results."""
        raw = self._live_raw()
        raw.reset()
        self._bind_parameters(raw, params)
        return self._new_rows(params)

    def raw_query(self):
        self._live_raw()
        return self._new_rows(None)

    def _new_rows(self, params):
        old = self._rows
        if old is not None and old._stmt is self:
            # A statement drives one result set at a time.
            old._detach()
        self._rows = Rows(self, params)
        return self._rows

    def query_map(self, params, f):
        return self.query(params).map(f)

    def query_row(self, params=(), f=None):
        with self.query(params) as rows:
            row = rows.get_expected_row()
            if f is None:
                return row.as_tuple()
            return f(row)

    def exists(self, params=()):
        with self.query(params) as rows:
            return rows.next() is not None

    # Lifecycle

    def finalize(self):
        raw = self._detach()
        if raw is None or raw.is_finalized():
            return
        self.conn._stats["finalize_count"] += 1
        rc = raw.finalize()
        if rc != native.SQLITE_OK:
            raise self._failure(rc)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        try:
            self.finalize()
        except SqliteFailure:
            # sqlite3_finalize repeats the last step's error; the body's
            # exception (if any) already reports it.
            if exc_type is None:
                raise
        return False
