"""Async utilities for concurrent best-effort operations."""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

T = TypeVar("T")


async def settle_all(*aws: Awaitable[T]) -> list[T | BaseException]:
    """Wait for every awaitable to finish, regardless of individual outcome.

    Failures are returned in place of results instead of being raised, so a
    single failing task never cancels its siblings. Nothing outlives the call.

    Args:
        *aws: Awaitables to run concurrently

    Returns:
        Results or exceptions, in the same order as the input
    """
    if not aws:
        return []
    return list(await asyncio.gather(*aws, return_exceptions=True))


def run_sync(coro: Awaitable[T]) -> T:
    """Run an async function synchronously.

    This is useful for integrating async code with Click commands.

    Args:
        coro: Coroutine to run

    Returns:
        Result of the coroutine
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None

    if loop and loop.is_running():
        # Already inside an event loop: run on a fresh loop in a worker thread
        import concurrent.futures

        with concurrent.futures.ThreadPoolExecutor() as pool:
            future = pool.submit(asyncio.run, coro)
            return future.result()
    return asyncio.run(coro)  # type: ignore[arg-type]
