"""Timing helpers for discovery and scoring log lines."""
import time
from contextlib import contextmanager
from typing import Callable, Optional
import logging

logger = logging.getLogger(__name__)


def now_ms() -> float:
    """Monotonic high-resolution time in milliseconds."""
    return time.perf_counter() * 1000


@contextmanager
def time_operation(label: str, log_fn: Optional[Callable[[str], None]] = None, min_ms: float = 0.0):
    """
    Log how long the wrapped block took as "<label>: <ms>ms".

    Args:
        label: Name of the step
        log_fn: Where to send the line (defaults to this module's logger.debug)
        min_ms: Skip the line for blocks faster than this

    Example:
        with time_operation("view 3 hydration", log_fn=logger.info, min_ms=50):
            books = hydrate_books(db, book_ids)
    """
    started = now_ms()
    try:
        yield
    finally:
        elapsed = now_ms() - started
        if elapsed >= min_ms:
            (log_fn or logger.debug)(f"{label}: {elapsed:.2f}ms")
