"""Private asyncio event loop driven from synchronous code.

The command itself is sequential; only network work (registry lookups and
archive downloads) runs on the loop. ``Runtime.block_on`` lets synchronous
callers such as the version solver wait for one coroutine at a time.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class Runtime:
    """Owns one event loop for the lifetime of a command."""

    def __init__(self) -> None:
        self._loop: Optional[asyncio.AbstractEventLoop] = asyncio.new_event_loop()
        self._cleanups: List[Callable[[], Awaitable[None]]] = []

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            raise RuntimeError("Runtime is closed")
        return self._loop

    def block_on(self, awaitable: Awaitable[T]) -> T:
        """Run ``awaitable`` to completion and return its result.

        Must not be called from inside a coroutine running on this loop.
        """
        return self.loop.run_until_complete(awaitable)

    def on_close(self, cleanup: Callable[[], Awaitable[None]]) -> None:
        """Register an async cleanup (e.g. closing an HTTP session)."""
        self._cleanups.append(cleanup)

    def close(self) -> None:
        """Run cleanups, cancel stragglers and close the loop."""
        if self._loop is None:
            return
        loop = self._loop
        try:
            for cleanup in reversed(self._cleanups):
                try:
                    loop.run_until_complete(cleanup())
                except Exception as exc:  # pylint: disable=broad-exception-caught
                    logger.debug("Runtime cleanup failed: %s", exc)
            pending = [task for task in asyncio.all_tasks(loop) if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.run_until_complete(loop.shutdown_default_executor())
        finally:
            self._cleanups.clear()
            self._loop = None
            loop.close()

    def __enter__(self) -> "Runtime":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
