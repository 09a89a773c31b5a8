"""Lightweight timing helpers for request and store-read latency logging."""
import time
from contextlib import contextmanager
from typing import Optional, Callable
import logging

logger = logging.getLogger(__name__)


def now_ms() -> float:
    """Return current time in milliseconds using high-resolution timer."""
    return time.perf_counter() * 1000


@contextmanager
def time_operation(label: str, warn_ms: Optional[float] = None):
    """
    Time a block and log how long it took.

    Logs at DEBUG normally, or at WARNING when `warn_ms` is given and exceeded.

    Example:
        with time_operation("store.profile_inputs", warn_ms=500):
            inputs = reader.load_profile_inputs(user_id, now)
    """
    start = now_ms()
    try:
        yield
    finally:
        elapsed = now_ms() - start
        if warn_ms is not None and elapsed >= warn_ms:
            logger.warning("SLOW_OPERATION: %s took %.2fms", label, elapsed)
        else:
            logger.debug("%s: %.2fms", label, elapsed)


def log_elapsed(start_ms: float, label: str, log_fn: Optional[Callable[[str], None]] = None) -> float:
    """
    Log elapsed time since start_ms and return current time (for chaining).

    Example:
        t = now_ms()
        t = log_elapsed(t, "find_user")
        t = log_elapsed(t, "recommendations")
    """
    elapsed = now_ms() - start_ms
    (log_fn or logger.debug)(f"{label}: {elapsed:.2f}ms")
    return now_ms()
