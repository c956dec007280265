import collections
import logging

from .error import ProgrammingError
from .statement import Statement

logger = logging.getLogger(__name__)


class CachedStatement:
    """A statement checked out of a connection's statement cache.

    Behaves like the :class:`Statement` it wraps. ``close()`` (or leaving a
    ``with`` block) hands the statement back to the cache; ``discard()``
    finalizes it instead.
    """

    def __init__(self, stmt, cache):
        self._stmt = stmt
        self._cache = cache

    def __getattr__(self, name):
        stmt = self.__dict__.get("_stmt")
        if stmt is None:
            raise ProgrammingError("Cached statement has already been returned to the cache")
        return getattr(stmt, name)

    def __repr__(self):
        return f"<CachedStatement {self.__dict__.get('_stmt')!r}>"

    def close(self):
        stmt, self._stmt = self._stmt, None
        if stmt is not None:
            self._cache.cache_stmt(stmt)

    def discard(self):
        stmt, self._stmt = self._stmt, None
        if stmt is not None:
            stmt.finalize()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def __del__(self):
        if self.__dict__.get("_stmt") is not None:
            self.close()


class StatementCache:
    """Compiled statements keyed by their exact SQL text, oldest evicted first.

    Entries are removed while checked out, so one compiled statement is never
    handed to two users at once.
    """

    def __init__(self, capacity=16):
        self._entries = collections.OrderedDict()
        self._capacity = capacity

    def __len__(self):
        return len(self._entries)

    def __contains__(self, sql):
        return sql in self._entries

    @property
    def capacity(self):
        return self._capacity

    def set_capacity(self, conn, capacity):
        if capacity < 0:
            raise ValueError("cache capacity must not be negative")
        self._capacity = capacity
        self._evict(conn)

    def get(self, conn, sql):
        raw = self._entries.pop(sql, None)
        if raw is not None:
            conn._stats["cache_hit"] += 1
            raw.reset()
            raw.clear_bindings()
            stmt = Statement(conn, raw, sql)
        else:
            conn._stats["cache_miss"] += 1
            stmt = conn.prepare(sql)
        return CachedStatement(stmt, self)

    def cache_stmt(self, stmt):
        conn = stmt.conn
        raw = stmt._detach()
        if raw is None or raw.is_finalized():
            return
        if self._capacity <= 0 or raw.has_tail() or conn.is_closed:
            conn._finalize_raw(raw)
            return

        raw.reset()
        raw.clear_bindings()
        old = self._entries.pop(stmt.sql, None)
        if old is not None:
            conn._finalize_raw(old)
        self._entries[stmt.sql] = raw
        self._evict(conn)

    def _evict(self, conn):
        while len(self._entries) > self._capacity:
            sql, raw = self._entries.popitem(last=False)
            logger.debug("Evicting cached statement: %s", sql)
            conn._finalize_raw(raw)

    def flush(self, conn):
        if self._entries:
            logger.debug("Flushing %d cached statements", len(self._entries))
        while self._entries:
            _, raw = self._entries.popitem(last=False)
            conn._finalize_raw(raw)
