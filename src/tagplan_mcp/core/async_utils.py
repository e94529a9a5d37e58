"""Async utilities for bridging blocking HTTP calls to async handlers."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Coroutine, Sequence, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread without blocking the event loop.

    Every remote API call goes through here: the HTTP clients are plain
    ``requests`` sessions, and the engine awaits them one at a time.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        tags = await run_sync(client.list_tags, workspace_path)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def gather_all(
    coros: Sequence[Coroutine[Any, Any, T]],
) -> list[T]:
    """Run read-only coroutines concurrently and join on all of them.

    Returns results in input order.  The first exception propagates.

    Args:
        coros: Sequence of coroutines to run concurrently.

    Returns:
        List of results in the same order as input coroutines.
    """
    return list(await asyncio.gather(*coros))


async def gather_settled(
    coros: Sequence[Coroutine[Any, Any, T]],
) -> list[T | BaseException]:
    """Like ``gather_all`` but returns exceptions in place of results.

    Used by the auditor, where one unreachable subsystem must not hide
    what the others report.
    """
    return list(await asyncio.gather(*coros, return_exceptions=True))
