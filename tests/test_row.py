from typing import Optional

import pytest

from sqlitebind import (
    FromSqlConversionFailure,
    IntegralValueOutOfRange,
    InterfaceError,
    InvalidColumnIndex,
    InvalidColumnName,
    InvalidColumnType,
    InvalidType,
    OutOfRange,
    Type,
    Utf8Error,
    Value,
    register_converter,
)


@pytest.fixture
def people(conn):
    conn.execute_batch(
        """
        CREATE TABLE people (id INTEGER PRIMARY KEY, name TEXT, age INTEGER, photo BLOB);
        INSERT INTO people (name, age, photo) VALUES ('alice', 30, x'0102');
        INSERT INTO people (name, age, photo) VALUES ('bob', NULL, NULL);
        """
    )
    return conn


def test_get_by_index_and_name(people):
    with people.prepare("SELECT id, name, age, photo FROM people ORDER BY id") as stmt:
        rows = stmt.query()
        row = rows.next()
        assert row.get(0) == 1
        assert row.get("name") == "alice"
        assert row["age"] == 30
        assert row.get(3) == b"\x01\x02"
        assert len(row) == 4
        assert row.keys() == ["id", "name", "age", "photo"]

        row = rows.next()
        assert row.as_tuple() == (2, "bob", None, None)
        assert rows.next() is None
        # Exhausted iterators stay exhausted.
        assert rows.next() is None


def test_invalid_column_index(people):
    with people.prepare("SELECT id, name FROM people") as stmt:
        row = stmt.query().next()
        with pytest.raises(InvalidColumnIndex) as ei:
            row.get(2)
        assert ei.value.index == 2
        with pytest.raises(InvalidColumnIndex):
            row.get(-1)
        # It is also an IndexError.
        with pytest.raises(IndexError):
            row[5]


def test_invalid_column_name_is_case_sensitive(people):
    with people.prepare("SELECT id, name FROM people") as stmt:
        row = stmt.query().next()
        with pytest.raises(InvalidColumnName):
            row.get("NAME")
        with pytest.raises(KeyError):
            row["nope"]


def test_typed_get(people):
    with people.prepare("SELECT id, name, age, photo FROM people WHERE name = 'alice'") as stmt:
        row = stmt.query().next()
        assert row.get("age", int) == 30
        # Integers widen to float.
        assert row.get("age", float) == 30.0
        assert row.get("age", bool) is True
        assert row.get("name", str) == "alice"
        assert row.get("photo", bytes) == b"\x01\x02"
        assert row.get("age", Optional[int]) == 30
        assert row.get("age", int | None) == 30

        with pytest.raises(InvalidColumnType) as ei:
            row.get("name", int)
        assert ei.value.index == 1
        assert ei.value.name == "name"
        assert ei.value.value_type is Type.TEXT

        # Text is never coerced to a number.
        with pytest.raises(InvalidColumnType):
            row.get("name", float)


def test_typed_get_null(people):
    with people.prepare("SELECT age FROM people WHERE name = 'bob'") as stmt:
        row = stmt.query().next()
        assert row.get(0) is None
        assert row.get(0, Optional[int]) is None
        assert row.get(0, Optional[str]) is None
        with pytest.raises(InvalidColumnType) as ei:
            row.get(0, int)
        assert ei.value.value_type is Type.NULL


def test_get_raw(people):
    with people.prepare("SELECT id, name, age, photo, 1.5 FROM people WHERE name = 'bob'") as stmt:
        row = stmt.query().next()
        assert row.get_raw(0) == Value(Type.INTEGER, 2)
        assert row.get_raw("name") == Value.text("bob")
        assert row.get_raw("age") == Value.null()
        assert row.get_raw(4) == Value.real(1.5)
        assert row.get(4, Value).type is Type.REAL


def test_stale_row_is_rejected(people):
    with people.prepare("SELECT name FROM people ORDER BY id") as stmt:
        rows = stmt.query()
        first = rows.next()
        assert first.get(0) == "alice"
        second = rows.next()
        with pytest.raises(InterfaceError):
            first.get(0)
        assert second.get(0) == "bob"
        assert rows.next() is None
        with pytest.raises(InterfaceError):
            second.get(0)


def test_row_invalid_after_close(people):
    with people.prepare("SELECT name FROM people") as stmt:
        with stmt.query() as rows:
            row = rows.next()
        with pytest.raises(InterfaceError):
            row.as_tuple()


def test_iteration_and_map(people):
    with people.prepare("SELECT name FROM people ORDER BY id") as stmt:
        assert [r.get(0) for r in stmt.query()] == ["alice", "bob"]
        with stmt.query().map(lambda r: r.get(0).upper()) as mapped:
            assert list(mapped) == ["ALICE", "BOB"]


def test_invalid_utf8(conn):
    with conn.prepare("SELECT CAST(x'ff' AS TEXT)") as stmt:
        row = stmt.query().next()
        with pytest.raises(Utf8Error):
            row.get(0)
        with pytest.raises(Utf8Error):
            row.as_tuple()


class Celsius:
    def __init__(self, degrees):
        self.degrees = degrees

    @classmethod
    def from_sql(cls, value):
        if value.type not in (Type.INTEGER, Type.REAL):
            raise InvalidType()
        return cls(float(value.data))


def test_from_sql_protocol(conn):
    with conn.prepare("SELECT 21, 'warm'") as stmt:
        row = stmt.query().next()
        assert row.get(0, Celsius).degrees == 21.0
        with pytest.raises(InvalidColumnType):
            row.get(1, Celsius)


class Small(int):
    pass


def _to_small(value):
    if value.type is not Type.INTEGER:
        raise ValueError("not an integer")
    if not 0 <= value.data < 256:
        raise OutOfRange(value.data)
    return Small(value.data)


def test_converter_errors_are_translated(conn):
    register_converter(Small, _to_small)
    with conn.prepare("SELECT 7, 1000, 'x'") as stmt:
        row = stmt.query().next()
        assert row.get(0, Small) == 7
        with pytest.raises(IntegralValueOutOfRange) as ei:
            row.get(1, Small)
        assert ei.value.value == 1000
        with pytest.raises(FromSqlConversionFailure) as ei:
            row.get(2, Small)
        assert isinstance(ei.value.cause, ValueError)


def test_unknown_target_type(conn):
    with conn.prepare("SELECT 1") as stmt:
        row = stmt.query().next()
        with pytest.raises(TypeError):
            row.get(0, complex)
