import gc

import pytest
from sqlalchemy.dialects import registry

import sqlitebind

registry.register("sqlite.sqlitebind", "sqlitebind_sqlalchemy.dialect", "SQLiteDialect_sqlitebind")


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "test.db")


@pytest.fixture
def conn():
    c = sqlitebind.Connection.open_in_memory()
    yield c
    if not c.is_closed:
        # Drop statements a test left behind before closing.
        gc.collect()
        c.close()
