"""
Bounded retry and timeout helpers for calls to external collaborators.
Anything that fails or times out surfaces as ExternalServiceError.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, TypeVar

from estateclaims.errors import ExternalServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_EXECUTOR = ThreadPoolExecutor(max_workers=8, thread_name_prefix="external-call")


def _as_external_error(operation: str, exc: Exception) -> ExternalServiceError:
    if isinstance(exc, ExternalServiceError):
        return exc
    err = ExternalServiceError(f"{operation} failed: {exc}", {"operation": operation})
    err.__cause__ = exc
    return err


def call_with_retry(
    func: Callable[[], T],
    *,
    operation: str,
    max_attempts: int = 3,
    backoff_seconds: float = 0.5,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call func, retrying failures with exponential backoff (backoff, 2*backoff, 4*backoff, ...).
    Raises ExternalServiceError after max_attempts failures.
    """
    last_error: ExternalServiceError | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            return func()
        except Exception as e:
            last_error = _as_external_error(operation, e)
            if attempt < max_attempts:
                wait = backoff_seconds * (2 ** (attempt - 1))
                logger.warning(
                    "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                    operation,
                    attempt,
                    max_attempts,
                    wait,
                    e,
                )
                sleep(wait)
    assert last_error is not None
    logger.error("%s failed after %d attempts", operation, max_attempts)
    raise last_error


def call_with_timeout(func: Callable[[], T], *, operation: str, timeout: float) -> T:
    """
    Run func on a worker thread and wait at most timeout seconds.
    On timeout the result is abandoned; callers must not have written any state before the call.
    """
    future = _EXECUTOR.submit(func)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError as e:
        future.cancel()
        raise ExternalServiceError(
            f"{operation} timed out after {timeout}s",
            {"operation": operation, "timeout_seconds": timeout},
        ) from e
    except ExternalServiceError:
        raise
    except Exception as e:
        raise _as_external_error(operation, e) from e
