from .dialect import SQLiteDialect_sqlitebind

__all__ = ["SQLiteDialect_sqlitebind"]
