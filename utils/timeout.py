"""Race a blocking call against a fixed duration."""

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout

from core.errors import ServiceError


def call_with_timeout(fn, seconds, label="API call"):
    """Run fn() on a worker thread and wait at most `seconds` for it.

    On expiry raises ServiceError. The worker is abandoned, not cancelled:
    the underlying request may still finish, but its result is discarded.
    A falsy `seconds` runs fn inline.
    """
    if not seconds:
        return fn()

    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="timeout")
    future = executor.submit(fn)
    try:
        return future.result(timeout=seconds)
    except FutureTimeout:
        raise ServiceError(f"{label} timed out after {seconds}s") from None
    finally:
        executor.shutdown(wait=False)
