from .busy import set_busy_handler, set_busy_timeout
from .cache import CachedStatement, StatementCache
from .connection import Connection, InterruptHandle, OpenFlags
from .error import (
    ConnectionClosed,
    ConstraintViolation,
    DatabaseBusy,
    DatabaseError,
    DataError,
    Error,
    ErrorCode,
    ExecuteReturnedResults,
    FromSqlConversionFailure,
    IntegralValueOutOfRange,
    IntegrityError,
    InterfaceError,
    InternalError,
    InvalidColumnIndex,
    InvalidColumnName,
    InvalidColumnType,
    InvalidParameterCount,
    InvalidParameterName,
    InvalidPath,
    MultipleStatement,
    NotSupportedError,
    NulError,
    OperationalError,
    OperationInterrupted,
    ParameterOutOfRange,
    ProgrammingError,
    QueryReturnedNoRows,
    SqliteFailure,
    StatementChangedRows,
    StatementExhausted,
    ToSqlConversionFailure,
    TransactionAlreadyResolved,
    Utf8Error,
    Warning,
    optional,
)
from .native import version, version_number
from .raw_statement import StatementState
from .row import MappedRows, Row, Rows
from .statement import Column, Statement
from .transaction import DropBehavior, Savepoint, Transaction, TransactionBehavior
from .types import (
    FromSql,
    FromSqlError,
    InvalidType,
    OutOfRange,
    ToSql,
    Type,
    Value,
    register_adapter,
    register_converter,
)


def connect(path=None, flags=None, cached_statements=16):
    """Open ``path`` (in-memory database when ``None``)."""
    return Connection(path, flags, cached_statements)
