# reconciler/utils/async_helpers.py
"""
Async utilities for bounded remote calls.
"""

import asyncio
import logging
from typing import Any, Awaitable, Dict, Optional, TypeVar

from reconciler.errors import RemoteTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_with_timeout(
    coro: Awaitable[T],
    timeout: float,
    name: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
) -> T:
    """
    Run a coroutine with a timeout.

    There is no default value. A timed-out read raises RemoteTimeoutError
    carrying enough context to repeat the read.

    Args:
        coro: The coroutine to run
        timeout: Timeout in seconds
        name: Operation name for logging
        context: account/controller/key details attached to the error
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except asyncio.TimeoutError:
        op = name or "unknown"
        logger.warning(f"[AsyncTask:{op}] Timed out after {timeout}s")
        details = dict(context or {})
        details.update({"operation": op, "timeout": timeout})
        raise RemoteTimeoutError(f"{op} timed out after {timeout}s", details=details) from None


async def gather_strict(*aws: Awaitable[Any]) -> list:
    """
    Await independent reads concurrently and fail on the first error.

    Siblings still in flight are cancelled so no half-finished read outlives
    the failed plan.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
