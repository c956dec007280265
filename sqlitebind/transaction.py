import enum
import logging

from .error import Error, TransactionAlreadyResolved

logger = logging.getLogger(__name__)


class TransactionBehavior(enum.Enum):
    """Locking mode of ``BEGIN``."""

    DEFERRED = "DEFERRED"
    IMMEDIATE = "IMMEDIATE"
    EXCLUSIVE = "EXCLUSIVE"


class DropBehavior(enum.Enum):
    """What happens to an unresolved transaction at scope exit."""

    ROLLBACK = "rollback"
    COMMIT = "commit"
    # Leave it open; resolving it becomes the caller's job.
    IGNORE = "ignore"


class _Scope:
    def __init__(self, conn):
        self.conn = conn
        self.drop_behavior = DropBehavior.ROLLBACK
        # Nothing to resolve until BEGIN/SAVEPOINT has succeeded.
        self._resolved = True

    def __getattr__(self, name):
        if name in ("conn", "_resolved", "drop_behavior"):
            raise AttributeError(name)
        return getattr(self.conn, name)

    def __del__(self):
        if self.__dict__.get("_resolved", True):
            return
        try:
            self.finish()
        except Error as e:
            logger.warning("Failed to finish %r on drop: %s", self, e)

    @property
    def is_resolved(self):
        return self._resolved

    def _resolve(self):
        if self._resolved:
            raise TransactionAlreadyResolved(f"{type(self).__name__} has already been committed or rolled back")
        self._resolved = True

    def savepoint(self):
        return Savepoint(self.conn, self.conn._next_savepoint_name())

    def savepoint_with_name(self, name):
        return Savepoint(self.conn, name)

    def finish(self):
        """Resolve according to :attr:`drop_behavior` unless already resolved."""
        if self._resolved:
            return
        if self.conn.is_closed or self.conn.is_autocommit():
            # Ended behind our back (raw COMMIT/ROLLBACK); nothing left to do.
            self._resolved = True
            return
        if self.drop_behavior is DropBehavior.COMMIT:
            self.commit()
        elif self.drop_behavior is DropBehavior.ROLLBACK:
            self.rollback()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is not None and self.drop_behavior is DropBehavior.COMMIT and not self._resolved:
            logger.debug("Rolling back %r after %s", self, exc_type.__name__)
            if not self.conn.is_autocommit():
                self.rollback()
            self._resolved = True
            return False
        self.finish()
        return False


class Transaction(_Scope):
    """An open ``BEGIN`` on a connection.

    Usable as a context manager; unresolved transactions are rolled back at
    the end of the block unless :attr:`drop_behavior` says otherwise::

        with conn.transaction() as tx:
            tx.execute("INSERT INTO t VALUES (?)", (1,))
            tx.commit()
    """

    def __init__(self, conn, behavior=TransactionBehavior.DEFERRED):
        super().__init__(conn)
        self.behavior = behavior
        conn.execute_batch(f"BEGIN {behavior.value}")
        self._resolved = False

    def __repr__(self):
        return f"<Transaction {self.behavior.value}>"

    def commit(self):
        self._resolve()
        self.conn.execute_batch("COMMIT")

    def rollback(self):
        self._resolve()
        self.conn.execute_batch("ROLLBACK")


class Savepoint(_Scope):
    """A named, nestable ``SAVEPOINT``.

    ``commit()`` releases it; ``rollback()`` undoes its changes and releases
    it. Resolving an enclosing transaction takes any open savepoints with it.
    """

    def __init__(self, conn, name):
        super().__init__(conn)
        self.name = name
        conn.execute_batch(f"SAVEPOINT {_quote_identifier(name)}")
        self._resolved = False

    def __repr__(self):
        return f"<Savepoint {self.name}>"

    def commit(self):
        self._resolve()
        self.conn.execute_batch(f"RELEASE {_quote_identifier(self.name)}")

    def rollback(self):
        self._resolve()
        name = _quote_identifier(self.name)
        self.conn.execute_batch(f"ROLLBACK TO {name}; RELEASE {name}")


def _quote_identifier(name):
    return '"' + name.replace('"', '""') + '"'
