from . import native
from .error import (
    Error,
    FromSqlConversionFailure,
    IntegralValueOutOfRange,
    InterfaceError,
    InvalidColumnIndex,
    InvalidColumnName,
    InvalidColumnType,
    QueryReturnedNoRows,
)
from .types import FromSqlError, InvalidType, OutOfRange, from_sql


class Rows:
    """Forward-only, single-pass iterator over a query's results.

    Each :class:`Row` is only valid until the next step; once the results are
    exhausted (or :meth:`close` is called) the statement is reset and the
    iterator stays empty.
    """

    def __init__(self, stmt, params=None):
        self._stmt = stmt
        self._params = params
        self._generation = 0

    def _detach(self):
        stmt, self._stmt = self._stmt, None
        self._generation += 1
        return stmt

    def _finish(self):
        stmt = self._detach()
        if stmt is not None and stmt._raw is not None:
            stmt._raw.reset()

    def next(self):
        """Step to the next row; ``None`` once the results are exhausted."""
        stmt = self._stmt
        if stmt is None:
            return None
        raw = stmt._live_raw()
        rc = raw.step()
        if rc == native.SQLITE_ROW:
            self._generation += 1
            return Row(self, self._generation)
        if rc == native.SQLITE_DONE:
            self._finish()
            return None
        err = stmt._failure(rc, self._params)
        self._finish()
        raise err

    def get_expected_row(self):
        row = self.next()
        if row is None:
            raise QueryReturnedNoRows()
        return row

    def map(self, f):
        return MappedRows(self, f)

    def close(self):
        self._finish()

    def __iter__(self):
        return self

    def __next__(self):
        row = self.next()
        if row is None:
            raise StopIteration
        return row

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class MappedRows:
    """Iterator of ``f(row)`` over :class:`Rows`. Exceptions from ``f`` propagate."""

    def __init__(self, rows, f):
        self._rows = rows
        self._f = f

    def __iter__(self):
        return self

    def __next__(self):
        row = self._rows.next()
        if row is None:
            raise StopIteration
        return self._f(row)

    def close(self):
        self._rows.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class Row:
    """View of the current result row.

    Columns are addressed by 0-based index or by exact column name.
    """

    def __init__(self, rows, generation):
        self._rows = rows
        self._generation = generation

    def _raw(self):
        rows = self._rows
        if rows._stmt is None or rows._generation != self._generation:
            raise InterfaceError("Row is no longer valid: its cursor has moved on")
        return rows._stmt._live_raw()

    def __len__(self):
        return self._raw().column_count()

    def _column_index(self, raw, idx):
        if isinstance(idx, str):
            for i in range(raw.column_count()):
                if raw.column_name(i) == idx:
                    return i
            raise InvalidColumnName(idx)
        if isinstance(idx, bool) or not isinstance(idx, int):
            raise TypeError(f"column index must be int or str, not {type(idx).__name__}")
        if idx < 0 or idx >= raw.column_count():
            raise InvalidColumnIndex(idx)
        return idx

    def get_raw(self, idx):
        """The column's :class:`Value` with its storage class."""
        raw = self._raw()
        return raw.column_value(self._column_index(raw, idx))

    def get(self, idx, type_=None):
        """Column ``idx`` converted to ``type_`` (plain Python value if ``None``)."""
        raw = self._raw()
        i = self._column_index(raw, idx)
        value = raw.column_value(i)
        try:
            return from_sql(value, type_)
        except InvalidType:
            raise InvalidColumnType(i, raw.column_name(i), value.type) from None
        except OutOfRange as e:
            raise IntegralValueOutOfRange(i, e.value) from None
        except FromSqlError as e:
            raise FromSqlConversionFailure(i, value.type, e) from e
        except (Error, TypeError):
            raise
        except Exception as e:
            raise FromSqlConversionFailure(i, value.type, e) from e

    def __getitem__(self, idx):
        return self.get(idx)

    def as_tuple(self):
        raw = self._raw()
        return tuple(raw.column_value(i).data for i in range(raw.column_count()))

    def keys(self):
        raw = self._raw()
        return [raw.column_name(i) for i in range(raw.column_count())]
