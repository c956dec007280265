import datetime
import logging

from . import native

logger = logging.getLogger(__name__)

_C_INT_MAX = 2 ** 31 - 1


def _timeout_ms(timeout):
    if isinstance(timeout, datetime.timedelta):
        seconds = timeout.total_seconds()
    else:
        seconds = float(timeout)
    if seconds < 0:
        raise ValueError("busy timeout must not be negative")
    return min(int(seconds * 1000), _C_INT_MAX)


def set_busy_timeout(inner, timeout):
    """Let the engine sleep and retry for up to ``timeout`` on lock contention.

    ``timeout`` is in seconds (or a ``timedelta``). Zero makes a conflicting
    operation fail with ``DatabaseBusy`` immediately. Replaces any handler
    installed with :func:`set_busy_handler`.
    """
    rc = inner.lib.sqlite3_busy_timeout(inner.db, _timeout_ms(timeout))
    inner.decode_result(rc)
    inner.busy_handler_ref = None


def set_busy_handler(inner, callback):
    """Install ``callback(count) -> bool`` as the busy handler, or remove it.

    ``count`` is the number of times the handler has already run for the
    current lock event. Returning a false value stops retrying, which
    surfaces as ``DatabaseBusy``.
    """
    if callback is None:
        rc = inner.lib.sqlite3_busy_handler(inner.db, native.BUSY_HANDLER(), None)
        inner.decode_result(rc)
        inner.busy_handler_ref = None
        return

    def busy_handler_callback(_arg, count):
        try:
            return 1 if callback(count) else 0
        except Exception:
            # Can't unwind through the engine; stop retrying instead.
            logger.exception("busy handler raised; giving up on lock")
            return 0

    c_callback = native.BUSY_HANDLER(busy_handler_callback)
    rc = inner.lib.sqlite3_busy_handler(inner.db, c_callback, None)
    inner.decode_result(rc)
    # The engine only stores the function pointer; keep the thunk alive.
    inner.busy_handler_ref = c_callback
