"""
Bounded calls into latency-bearing capabilities (generation, embedding).
"""

import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from typing import Any, Callable, Optional

from .config import GENERATION_WORKERS

_executor: Optional[ThreadPoolExecutor] = None
_executor_lock = threading.Lock()


def get_executor() -> ThreadPoolExecutor:
    """Shared worker pool for capability calls."""
    global _executor
    with _executor_lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(max_workers=GENERATION_WORKERS, thread_name_prefix="capability-worker")
        return _executor


def call_with_timeout(func: Callable[..., Any], *args: Any, timeout: float, **kwargs: Any) -> Any:
    """
    Run ``func`` on the shared pool and wait at most ``timeout`` seconds.

    On timeout the future is cancelled if it has not started; a call already
    running completes in the background and its result is discarded.

    Raises:
        concurrent.futures.TimeoutError: the call did not finish in time
    """
    future = get_executor().submit(func, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FuturesTimeoutError:
        future.cancel()
        raise


def shutdown_executor():
    """Stop the shared pool without waiting on in-flight calls."""
    global _executor
    with _executor_lock:
        if _executor is not None:
            _executor.shutdown(wait=False, cancel_futures=True)
            _executor = None
