import pytest

import sqlitebind
from sqlitebind import (
    Connection,
    ConnectionClosed,
    ExecuteReturnedResults,
    InterfaceError,
    InvalidPath,
    MultipleStatement,
    NulError,
    OpenFlags,
    QueryReturnedNoRows,
    SqliteFailure,
    optional,
)


def test_open_in_memory(conn):
    assert conn.path is None
    assert conn.query_row("SELECT 1 + 1") == (2,)


def test_open_file_and_reopen(db_path):
    conn = Connection.open(db_path)
    assert conn.path == db_path
    conn.execute_batch("CREATE TABLE foo (id INTEGER, name TEXT)")
    conn.execute("INSERT INTO foo VALUES (?, ?)", (1, "alice"))
    conn.execute("INSERT INTO foo VALUES (?, ?)", (2, "bob"))
    conn.close()
    assert conn.is_closed

    # Reopen and verify
    conn = Connection.open(db_path)
    with conn.prepare("SELECT id, name FROM foo ORDER BY id") as stmt:
        rows = list(stmt.query_map((), lambda r: r.as_tuple()))
    assert rows == [(1, "alice"), (2, "bob")]
    conn.close()


def test_open_read_only_missing_file(tmp_path):
    with pytest.raises(SqliteFailure) as ei:
        Connection.open(str(tmp_path / "missing.db"), OpenFlags.READ_ONLY)
    assert ei.value.code is sqlitebind.ErrorCode.CANNOT_OPEN


def test_invalid_path():
    with pytest.raises(InvalidPath):
        Connection.open(b"\xff\xfe.db")
    with pytest.raises(NulError):
        Connection.open("bad\x00name.db")


def test_connect_helper(db_path):
    with sqlitebind.connect(db_path) as conn:
        assert conn.is_autocommit()
    assert conn.is_closed


def test_execute_returns_changed_rows(conn):
    conn.execute_batch("CREATE TABLE foo (x INTEGER)")
    assert conn.execute("INSERT INTO foo VALUES (1)") == 1
    assert conn.execute("INSERT INTO foo VALUES (2)") == 1
    assert conn.execute("UPDATE foo SET x = x + 1") == 2
    assert conn.changes() == 2
    assert conn.total_changes() == 4


def test_execute_select_is_an_error(conn):
    with pytest.raises(ExecuteReturnedResults):
        conn.execute("SELECT 1")
    # Also when the query happens to produce no rows.
    with pytest.raises(ExecuteReturnedResults):
        conn.execute("SELECT 1 WHERE 1 < ?", (0,))


def test_execute_batch(conn):
    conn.execute_batch(
        """
        CREATE TABLE foo (x INTEGER);
        INSERT INTO foo VALUES (1);
        -- comment between statements
        INSERT INTO foo VALUES (2);
        SELECT * FROM foo;
        """
    )
    assert conn.query_row("SELECT sum(x) FROM foo") == (3,)


def test_execute_batch_stops_at_error(conn):
    with pytest.raises(SqliteFailure):
        conn.execute_batch("CREATE TABLE foo (x); INSERT INTO nope VALUES (1); CREATE TABLE bar (y);")
    assert conn.query_row("SELECT count(*) FROM sqlite_master WHERE name = 'bar'") == (0,)


def test_prepare_rejects_multiple_statements(conn):
    with pytest.raises(MultipleStatement):
        conn.prepare("SELECT 1; SELECT 2")
    with pytest.raises(MultipleStatement):
        conn.execute("CREATE TABLE a (x); CREATE TABLE b (y)")
    # Trailing noise is fine.
    with conn.prepare("SELECT 1; -- trailing comment") as stmt:
        assert stmt.query_row() == (1,)
    with conn.prepare("SELECT 1;   ") as stmt:
        assert stmt.query_row() == (1,)


def test_prepare_syntax_error(conn):
    with pytest.raises(SqliteFailure) as ei:
        conn.prepare("SELEKT 1")
    assert "syntax error" in str(ei.value)


def test_query_row(conn):
    conn.execute_batch("CREATE TABLE foo (x INTEGER); INSERT INTO foo VALUES (1), (2), (3);")

    assert conn.query_row("SELECT x FROM foo WHERE x = ?", (2,)) == (2,)
    # Extra rows are ignored.
    assert conn.query_row("SELECT x FROM foo ORDER BY x DESC") == (3,)
    assert conn.query_row("SELECT x FROM foo WHERE x = ?", (1,), lambda r: r.get(0) * 10) == 10

    with pytest.raises(QueryReturnedNoRows):
        conn.query_row("SELECT x FROM foo WHERE x = ?", (42,))


def test_optional(conn):
    conn.execute_batch("CREATE TABLE foo (x INTEGER); INSERT INTO foo VALUES (1);")
    assert optional(conn.query_row, "SELECT x FROM foo WHERE x = 7") is None
    assert optional(conn.query_row, "SELECT x FROM foo WHERE x = 1") == (1,)
    with pytest.raises(SqliteFailure):
        optional(conn.query_row, "SELECT nope FROM foo")


def test_last_insert_rowid(conn):
    conn.execute_batch("CREATE TABLE foo (x INTEGER)")
    conn.execute("INSERT INTO foo DEFAULT VALUES")
    assert conn.last_insert_rowid() == 1

    with conn.prepare("INSERT INTO foo DEFAULT VALUES") as stmt:
        for _ in range(9):
            stmt.execute()
    assert conn.last_insert_rowid() == 10


def test_is_autocommit(conn):
    assert conn.is_autocommit()
    conn.execute_batch("BEGIN")
    assert not conn.is_autocommit()
    conn.execute_batch("ROLLBACK")
    assert conn.is_autocommit()


def test_is_busy(conn):
    assert not conn.is_busy()
    with conn.prepare("SELECT 1 UNION ALL SELECT 2") as stmt:
        assert not conn.is_busy()
        rows = stmt.query()
        assert not conn.is_busy()
        assert rows.next() is not None
        assert conn.is_busy()
        rows.close()
        assert not conn.is_busy()


def test_close_with_outstanding_statement_can_retry(db_path):
    conn = Connection.open(db_path)
    stmt = conn.prepare("SELECT 1")

    with pytest.raises(SqliteFailure) as ei:
        conn.close()
    assert ei.value.connection is conn
    assert ei.value.code is sqlitebind.ErrorCode.DATABASE_BUSY

    # Still usable.
    assert not conn.is_closed
    assert conn.query_row("SELECT 2") == (2,)

    stmt.finalize()
    conn.close()
    assert conn.is_closed


def test_close_finalizes_cached_statements(conn):
    for i in range(5):
        with conn.prepare_cached(f"SELECT {i}") as stmt:
            stmt.query_row()
    assert len(conn._cache) == 5
    conn.close()
    assert conn.is_closed
    assert conn._stats["finalize_count"] == 5


def test_use_after_close(conn):
    conn.close()
    with pytest.raises(ConnectionClosed) as ei:
        conn.execute("SELECT 1")
    assert "Cannot operate on a closed database." in str(ei.value)
    with pytest.raises(ConnectionClosed):
        conn.prepare_cached("SELECT 1")
    # Closing twice is harmless.
    conn.close()


def test_exclusive_access_is_checked(conn):
    with conn._db.borrow():
        with pytest.raises(InterfaceError):
            conn.changes()
    assert conn.changes() == 0


def test_context_manager_closes(db_path):
    with Connection.open(db_path) as conn:
        conn.execute_batch("CREATE TABLE foo (x)")
    assert conn.is_closed


def test_del_closes_with_outstanding_statement(db_path):
    conn = Connection.open(db_path)
    stmt = conn.prepare("SELECT 1")
    inner = conn._db.inner
    conn.__del__()
    assert inner.db is None
    # The deferred close completes once the statement goes away.
    stmt.finalize()


def test_version():
    assert sqlitebind.version_number() >= 3_000_000
    assert sqlitebind.version().startswith("3.")
