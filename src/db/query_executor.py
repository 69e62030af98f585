"""Timing and logging for remote store operations.

Calls to Supabase (metadata table, storage buckets, queue RPCs) are wrapped
in timed_query so each one reports its outcome and elapsed time once.
"""

import time
from contextlib import contextmanager
from typing import Any, Generator

import logfire

from src.constants import SLOW_REMOTE_CALL_MS


@contextmanager
def timed_query(
    operation_name: str,
    slow_ms: float = SLOW_REMOTE_CALL_MS,
    **log_context: Any,
) -> Generator[None, None, None]:
    """
    Time a remote store operation and log a single outcome record.

    Success is logged at info, or at warning when the call took longer than
    ``slow_ms``. Failures are logged at error and re-raised unchanged.

    Example:
        with timed_query("upload_artifact", bucket=bucket, path=path):
            client.storage.from_(bucket).upload(path, data)
    """
    started = time.perf_counter()
    try:
        yield
    except Exception as e:
        logfire.error(
            f"{operation_name} failed",
            operation=operation_name,
            error=str(e),
            error_type=type(e).__name__,
            response_time_ms=(time.perf_counter() - started) * 1000,
            **log_context,
        )
        raise

    elapsed_ms = (time.perf_counter() - started) * 1000
    log = logfire.warn if elapsed_ms > slow_ms else logfire.info
    log(
        f"{operation_name} completed",
        operation=operation_name,
        response_time_ms=elapsed_ms,
        slow=elapsed_ms > slow_ms,
        **log_context,
    )
