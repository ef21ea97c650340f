"""
Async executor for blocking provider SDK calls.

The Stripe and boto3 clients are synchronous; running them inline would stall
the event loop for the length of a network round-trip. Calls go through a
shared thread pool and are bounded by a timeout so a hung provider surfaces as
an ordinary failure.
"""
import asyncio
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

# Shared executor for blocking SDK calls
_executor: ThreadPoolExecutor | None = None
_MAX_WORKERS = 4


def get_executor() -> ThreadPoolExecutor:
    """Lazy-initialize thread pool executor."""
    global _executor
    if _executor is None:
        _executor = ThreadPoolExecutor(max_workers=_MAX_WORKERS, thread_name_prefix="sdk_")
        logger.info(f"Thread pool executor initialized (max_workers={_MAX_WORKERS})")
    return _executor


T = TypeVar("T")


async def run_blocking(
    func: Callable[..., T],
    *args: Any,
    timeout: float | None = None,
    **kwargs: Any,
) -> T:
    """
    Run a blocking (synchronous) function in the thread pool.

    Raises asyncio.TimeoutError when `timeout` seconds elapse first; the worker
    thread is left to finish on its own.
    """
    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(
        get_executor(),
        functools.partial(func, *args, **kwargs),
    )
    if timeout is None:
        return await future
    return await asyncio.wait_for(future, timeout=timeout)


def shutdown_executor() -> None:
    """Shutdown the thread pool on app lifecycle end."""
    global _executor
    if _executor:
        _executor.shutdown(wait=True)
        _executor = None
        logger.info("Thread pool executor shutdown")
