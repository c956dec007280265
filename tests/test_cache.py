import pytest

from sqlitebind import CachedStatement, Connection, ProgrammingError


def test_statement_cache_reuse(conn):
    sql = "SELECT ?"

    # 1. First checkout - should prepare
    stmt = conn.prepare_cached(sql)
    assert isinstance(stmt, CachedStatement)
    ptr = stmt._raw.ptr.value
    assert stmt.query_row((1,)) == (1,)
    stmt.close()
    assert conn._stats["prepare_count"] == 1
    assert conn._stats["cache_miss"] == 1
    assert sql in conn._cache

    # 2. Second checkout - same native statement, no new prepare
    with conn.prepare_cached(sql) as stmt:
        assert stmt._raw.ptr.value == ptr
        assert stmt.query_row((2,)) == (2,)
    assert conn._stats["prepare_count"] == 1
    assert conn._stats["cache_hit"] == 1


def test_checked_out_statement_not_shared(conn):
    sql = "SELECT 1"
    with conn.prepare_cached(sql) as first:
        assert sql not in conn._cache
        with conn.prepare_cached(sql) as second:
            assert second._raw.ptr.value != first._raw.ptr.value
        # second went back in
        assert sql in conn._cache
    assert conn._stats["prepare_count"] == 2
    # first replaced second's entry; the displaced handle was finalized.
    assert len(conn._cache) == 1
    assert conn._stats["finalize_count"] == 1


def test_cache_key_is_verbatim(conn):
    with conn.prepare_cached("SELECT 1") as stmt:
        stmt.query_row()
    with conn.prepare_cached("SELECT  1") as stmt:
        stmt.query_row()
    assert conn._stats["prepare_count"] == 2
    assert len(conn._cache) == 2


def test_cache_eviction(db_path):
    conn = Connection(db_path, cached_statements=2)
    for i in (1, 2, 3):
        with conn.prepare_cached(f"SELECT {i}") as stmt:
            stmt.query_row()
    # "SELECT 1" was the oldest entry.
    assert len(conn._cache) == 2
    assert "SELECT 1" not in conn._cache
    assert conn._stats["finalize_count"] == 1

    before = conn._stats["prepare_count"]
    with conn.prepare_cached("SELECT 1") as stmt:
        stmt.query_row()
    assert conn._stats["prepare_count"] == before + 1, "Should be a cache miss (evicted)"

    before = conn._stats["prepare_count"]
    with conn.prepare_cached("SELECT 3") as stmt:
        stmt.query_row()
    assert conn._stats["prepare_count"] == before, "Should hit cache"
    conn.close()


def test_set_capacity(conn):
    for i in range(4):
        with conn.prepare_cached(f"SELECT {i}") as stmt:
            stmt.query_row()
    assert len(conn._cache) == 4

    conn.set_prepared_statement_cache_capacity(1)
    assert len(conn._cache) == 1
    assert "SELECT 3" in conn._cache
    assert conn._stats["finalize_count"] == 3

    conn.set_prepared_statement_cache_capacity(0)
    assert len(conn._cache) == 0
    with conn.prepare_cached("SELECT 9") as stmt:
        stmt.query_row()
    assert len(conn._cache) == 0

    with pytest.raises(ValueError):
        conn.set_prepared_statement_cache_capacity(-1)


def test_flush(conn):
    for i in range(3):
        with conn.prepare_cached(f"SELECT {i}") as stmt:
            stmt.query_row()
    conn.flush_prepared_statement_cache()
    assert len(conn._cache) == 0
    assert conn._stats["finalize_count"] == 3


def test_trailing_text_is_not_cached(conn):
    for sql in ("SELECT 1; -- comment", "SELECT 2; /* c */", "SELECT 3;  "):
        with conn.prepare_cached(sql) as stmt:
            assert stmt.query_row()[0] in (1, 2, 3)
        assert sql not in conn._cache
    assert len(conn._cache) == 0
    assert conn._stats["finalize_count"] == 3


def test_bindings_cleared_on_checkin(conn):
    with conn.prepare_cached("SELECT ?") as stmt:
        stmt.raw_bind_parameter(1, 42)
        with stmt.raw_query() as rows:
            assert rows.next().get(0) == 42

    with conn.prepare_cached("SELECT ?") as stmt:
        with stmt.raw_query() as rows:
            assert rows.next().get(0) is None


def test_checkin_resets_cursor_position(conn):
    sql = "SELECT 1 UNION ALL SELECT 2"
    stmt = conn.prepare_cached(sql)
    rows = stmt.query()
    assert rows.next().get(0) == 1
    stmt.close()
    # The old iterator lost its statement.
    with pytest.raises(ProgrammingError):
        rows.next()

    with conn.prepare_cached(sql) as stmt:
        values = [r.get(0) for r in stmt.query()]
    assert values == [1, 2]


def test_discard(conn):
    stmt = conn.prepare_cached("SELECT 1")
    stmt.discard()
    assert len(conn._cache) == 0
    assert conn._stats["finalize_count"] == 1


def test_closed_guard_rejects_use(conn):
    stmt = conn.prepare_cached("SELECT 1")
    stmt.close()
    with pytest.raises(ProgrammingError):
        stmt.query_row()
    # Closing twice is harmless.
    stmt.close()


def test_guard_dropped_without_close(conn):
    stmt = conn.prepare_cached("SELECT 1")
    stmt.query_row()
    del stmt
    assert "SELECT 1" in conn._cache
