import os

from sqlalchemy import exc
from sqlalchemy import pool
from sqlalchemy import util
from sqlalchemy.dialects.sqlite.base import SQLiteDialect

from sqlitebind import dbapi


class SQLiteDialect_sqlitebind(SQLiteDialect):
    driver = "sqlitebind"
    default_paramstyle = "qmark"
    supports_statement_cache = True
    returns_native_bytes = True
    description_encoding = None

    _isolation_lookup = SQLiteDialect._isolation_lookup.union({"AUTOCOMMIT": None})

    _connect_args = [
        ("uri", bool),
        ("timeout", float),
        ("isolation_level", str),
        ("cached_statements", int),
    ]

    @classmethod
    def import_dbapi(cls):
        return dbapi

    @classmethod
    def _is_url_file_db(cls, url):
        return bool(url.database and url.database != ":memory:" and url.query.get("mode") != "memory")

    @classmethod
    def get_pool_class(cls, url):
        if cls._is_url_file_db(url):
            return pool.QueuePool
        # One connection per thread keeps a memory database alive.
        return pool.SingletonThreadPool

    def _get_server_version_info(self, connection):
        return self.dbapi.sqlite_version_info

    def set_isolation_level(self, dbapi_connection, level):
        if level == "AUTOCOMMIT":
            dbapi_connection.isolation_level = None
        else:
            dbapi_connection.isolation_level = ""
            return super().set_isolation_level(dbapi_connection, level)

    def create_connect_args(self, url):
        if url.username or url.password or url.host or url.port:
            raise exc.ArgumentError(
                f"Invalid sqlitebind URL: {url}\n"
                "Valid forms are sqlite+sqlitebind:///:memory: (or sqlite+sqlitebind://), "
                "sqlite+sqlitebind:///relative/path.db and sqlite+sqlitebind:////absolute/path.db"
            )

        opts = dict(url.query)
        connect_opts = {}
        for key, type_ in self._connect_args:
            util.coerce_kw_type(opts, key, type_, dest=connect_opts)

        if connect_opts.get("uri", False):
            # Whatever is left in the query string belongs to the SQLite URI.
            for key, _ in self._connect_args:
                opts.pop(key, None)
            filename = url.database
            if opts:
                filename += "?" + "&".join(f"{k}={opts[k]}" for k in sorted(opts))
        else:
            filename = url.database or ":memory:"
            if filename != ":memory:":
                filename = os.path.abspath(filename)

        return ([filename], connect_opts)

    def is_disconnect(self, e, connection, cursor):
        return isinstance(e, self.dbapi.ProgrammingError) and "Cannot operate on a closed database." in str(e)


dialect = SQLiteDialect_sqlitebind
