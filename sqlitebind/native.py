import ctypes
import ctypes.util
import os
import sys
from ctypes import CFUNCTYPE, POINTER, c_char_p, c_double, c_int, c_int64, c_void_p

# Primary result codes (must match sqlite3.h).
SQLITE_OK = 0
SQLITE_ERROR = 1
SQLITE_INTERNAL = 2
SQLITE_PERM = 3
SQLITE_ABORT = 4
SQLITE_BUSY = 5
SQLITE_LOCKED = 6
SQLITE_NOMEM = 7
SQLITE_READONLY = 8
SQLITE_INTERRUPT = 9
SQLITE_IOERR = 10
SQLITE_CORRUPT = 11
SQLITE_NOTFOUND = 12
SQLITE_FULL = 13
SQLITE_CANTOPEN = 14
SQLITE_PROTOCOL = 15
SQLITE_EMPTY = 16
SQLITE_SCHEMA = 17
SQLITE_TOOBIG = 18
SQLITE_CONSTRAINT = 19
SQLITE_MISMATCH = 20
SQLITE_MISUSE = 21
SQLITE_NOLFS = 22
SQLITE_AUTH = 23
SQLITE_FORMAT = 24
SQLITE_RANGE = 25
SQLITE_NOTADB = 26
SQLITE_NOTICE = 27
SQLITE_WARNING = 28
SQLITE_ROW = 100
SQLITE_DONE = 101

# Open flags
SQLITE_OPEN_READONLY = 0x00000001
SQLITE_OPEN_READWRITE = 0x00000002
SQLITE_OPEN_CREATE = 0x00000004
SQLITE_OPEN_URI = 0x00000040
SQLITE_OPEN_MEMORY = 0x00000080
SQLITE_OPEN_NOMUTEX = 0x00008000
SQLITE_OPEN_FULLMUTEX = 0x00010000
SQLITE_OPEN_SHAREDCACHE = 0x00020000
SQLITE_OPEN_PRIVATECACHE = 0x00040000

# Fundamental datatypes returned by sqlite3_column_type
SQLITE_INTEGER = 1
SQLITE_FLOAT = 2
SQLITE_TEXT = 3
SQLITE_BLOB = 4
SQLITE_NULL = 5

# Destructor sentinels for sqlite3_bind_text / sqlite3_bind_blob.
# SQLITE_STATIC is a null pointer, SQLITE_TRANSIENT is ((void*)-1).
SQLITE_STATIC = None
SQLITE_TRANSIENT = c_void_p(-1)

# int (*)(void*, int)
BUSY_HANDLER = CFUNCTYPE(c_int, c_void_p, c_int)

_lib = None


def _candidate_paths():
    names = [
        "libsqlite3.so.0",
        "libsqlite3.so",
        "libsqlite3.0.dylib",
        "libsqlite3.dylib",
        "sqlite3.dll",
    ]
    candidates = []

    found = ctypes.util.find_library("sqlite3")
    if found:
        candidates.append(found)

    # The interpreter's own prefix usually ships the library the stdlib
    # sqlite3 module links against (conda, pyenv, Windows installers).
    for prefix in {sys.prefix, sys.base_prefix}:
        for sub in ("lib", "DLLs", "Library/bin"):
            for name in names:
                candidates.append(os.path.join(prefix, sub, name))

    # Bare names last: let the platform loader search its default path.
    candidates.extend(names)
    return candidates


def load_library():
    global _lib
    if _lib is not None:
        return _lib

    lib_path = os.environ.get("SQLITEBIND_NATIVE_LIB")
    if lib_path:
        try:
            lib = ctypes.CDLL(lib_path)
        except OSError as e:
            raise RuntimeError(f"Failed to load sqlite native library at {lib_path}: {e}")
    else:
        lib = None
        for p in _candidate_paths():
            if os.path.sep in p and not os.path.exists(p):
                continue
            try:
                lib = ctypes.CDLL(p)
            except OSError:
                continue
            break
        if lib is None:
            raise RuntimeError("Could not find the sqlite3 native library. Set SQLITEBIND_NATIVE_LIB env var.")

    # Define signatures

    # Library version
    lib.sqlite3_libversion.argtypes = []
    lib.sqlite3_libversion.restype = c_char_p

    lib.sqlite3_libversion_number.argtypes = []
    lib.sqlite3_libversion_number.restype = c_int

    # Connection lifecycle
    lib.sqlite3_open_v2.argtypes = [c_char_p, POINTER(c_void_p), c_int, c_char_p]
    lib.sqlite3_open_v2.restype = c_int

    lib.sqlite3_close.argtypes = [c_void_p]
    lib.sqlite3_close.restype = c_int

    lib.sqlite3_close_v2.argtypes = [c_void_p]
    lib.sqlite3_close_v2.restype = c_int

    lib.sqlite3_extended_result_codes.argtypes = [c_void_p, c_int]
    lib.sqlite3_extended_result_codes.restype = c_int

    # Errors
    lib.sqlite3_errcode.argtypes = [c_void_p]
    lib.sqlite3_errcode.restype = c_int

    lib.sqlite3_extended_errcode.argtypes = [c_void_p]
    lib.sqlite3_extended_errcode.restype = c_int

    lib.sqlite3_errmsg.argtypes = [c_void_p]
    lib.sqlite3_errmsg.restype = c_char_p

    lib.sqlite3_errstr.argtypes = [c_int]
    lib.sqlite3_errstr.restype = c_char_p

    # Connection state
    lib.sqlite3_changes.argtypes = [c_void_p]
    lib.sqlite3_changes.restype = c_int

    lib.sqlite3_total_changes.argtypes = [c_void_p]
    lib.sqlite3_total_changes.restype = c_int

    lib.sqlite3_last_insert_rowid.argtypes = [c_void_p]
    lib.sqlite3_last_insert_rowid.restype = c_int64

    lib.sqlite3_get_autocommit.argtypes = [c_void_p]
    lib.sqlite3_get_autocommit.restype = c_int

    lib.sqlite3_next_stmt.argtypes = [c_void_p, c_void_p]
    lib.sqlite3_next_stmt.restype = c_void_p

    # Busy handling and interruption
    lib.sqlite3_busy_timeout.argtypes = [c_void_p, c_int]
    lib.sqlite3_busy_timeout.restype = c_int

    lib.sqlite3_busy_handler.argtypes = [c_void_p, BUSY_HANDLER, c_void_p]
    lib.sqlite3_busy_handler.restype = c_int

    lib.sqlite3_interrupt.argtypes = [c_void_p]
    lib.sqlite3_interrupt.restype = None

    # Statements
    # The SQL argument is passed as a char buffer so the tail pointer can be
    # turned back into an offset.
    lib.sqlite3_prepare_v2.argtypes = [c_void_p, c_char_p, c_int, POINTER(c_void_p), POINTER(c_void_p)]
    lib.sqlite3_prepare_v2.restype = c_int

    lib.sqlite3_step.argtypes = [c_void_p]
    lib.sqlite3_step.restype = c_int

    lib.sqlite3_reset.argtypes = [c_void_p]
    lib.sqlite3_reset.restype = c_int

    lib.sqlite3_finalize.argtypes = [c_void_p]
    lib.sqlite3_finalize.restype = c_int

    lib.sqlite3_clear_bindings.argtypes = [c_void_p]
    lib.sqlite3_clear_bindings.restype = c_int

    lib.sqlite3_sql.argtypes = [c_void_p]
    lib.sqlite3_sql.restype = c_char_p

    lib.sqlite3_stmt_busy.argtypes = [c_void_p]
    lib.sqlite3_stmt_busy.restype = c_int

    lib.sqlite3_stmt_readonly.argtypes = [c_void_p]
    lib.sqlite3_stmt_readonly.restype = c_int

    # Parameters
    lib.sqlite3_bind_parameter_count.argtypes = [c_void_p]
    lib.sqlite3_bind_parameter_count.restype = c_int

    lib.sqlite3_bind_parameter_index.argtypes = [c_void_p, c_char_p]
    lib.sqlite3_bind_parameter_index.restype = c_int

    lib.sqlite3_bind_parameter_name.argtypes = [c_void_p, c_int]
    lib.sqlite3_bind_parameter_name.restype = c_char_p

    # Bindings
    lib.sqlite3_bind_null.argtypes = [c_void_p, c_int]
    lib.sqlite3_bind_null.restype = c_int

    lib.sqlite3_bind_int64.argtypes = [c_void_p, c_int, c_int64]
    lib.sqlite3_bind_int64.restype = c_int

    lib.sqlite3_bind_double.argtypes = [c_void_p, c_int, c_double]
    lib.sqlite3_bind_double.restype = c_int

    lib.sqlite3_bind_text.argtypes = [c_void_p, c_int, c_char_p, c_int, c_void_p]
    lib.sqlite3_bind_text.restype = c_int

    lib.sqlite3_bind_blob.argtypes = [c_void_p, c_int, c_char_p, c_int, c_void_p]
    lib.sqlite3_bind_blob.restype = c_int

    lib.sqlite3_bind_zeroblob.argtypes = [c_void_p, c_int, c_int]
    lib.sqlite3_bind_zeroblob.restype = c_int

    # Columns
    lib.sqlite3_column_count.argtypes = [c_void_p]
    lib.sqlite3_column_count.restype = c_int

    lib.sqlite3_column_name.argtypes = [c_void_p, c_int]
    lib.sqlite3_column_name.restype = c_char_p

    lib.sqlite3_column_decltype.argtypes = [c_void_p, c_int]
    lib.sqlite3_column_decltype.restype = c_char_p

    lib.sqlite3_column_type.argtypes = [c_void_p, c_int]
    lib.sqlite3_column_type.restype = c_int

    lib.sqlite3_column_int64.argtypes = [c_void_p, c_int]
    lib.sqlite3_column_int64.restype = c_int64

    lib.sqlite3_column_double.argtypes = [c_void_p, c_int]
    lib.sqlite3_column_double.restype = c_double

    # Text and blob accessors return raw pointers; pair with sqlite3_column_bytes.
    lib.sqlite3_column_text.argtypes = [c_void_p, c_int]
    lib.sqlite3_column_text.restype = c_void_p

    lib.sqlite3_column_blob.argtypes = [c_void_p, c_int]
    lib.sqlite3_column_blob.restype = c_void_p

    lib.sqlite3_column_bytes.argtypes = [c_void_p, c_int]
    lib.sqlite3_column_bytes.restype = c_int

    _lib = lib
    return _lib


def version():
    """Run-time library version as a string, e.g. ``"3.45.3"``."""
    return load_library().sqlite3_libversion().decode("utf-8")


def version_number():
    """Run-time library version as an integer, e.g. ``3045003``."""
    return int(load_library().sqlite3_libversion_number())


def errstr(code):
    msg = load_library().sqlite3_errstr(code)
    return msg.decode("utf-8", errors="replace") if msg else f"Unknown error {code}"
