"""Bridges between the coroutine algorithms and their two calling modes.

Every engine operation is a coroutine. Asynchronous callers either await it
or ``schedule`` it with a completion callback; synchronous callers block on
the very same coroutine through ``run_sync``.
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")

Completion = Callable[[Optional[BaseException], Any], None]


def run_sync(awaitable: Awaitable[T]) -> T:
    """Block until ``awaitable`` finishes and return its result or raise."""
    return asyncio.run(_await(awaitable))


async def _await(awaitable: Awaitable[T]) -> T:
    return await awaitable


def schedule(awaitable: Awaitable[T], callback: Optional[Completion] = None) -> "asyncio.Future[T]":
    """Start ``awaitable`` on the running loop and return its future.

    Args:
        awaitable: Coroutine implementing the operation.
        callback: Optional ``callback(error, result)`` continuation invoked
            once the future completes.

    Returns:
        The future carrying the result.
    """
    future = asyncio.ensure_future(awaitable)
    if callback is not None:
        def _done(fut: "asyncio.Future[T]") -> None:
            error = fut.exception()
            callback(error, None if error is not None else fut.result())

        future.add_done_callback(_done)
    return future
