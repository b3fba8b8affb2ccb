import asyncio
import logging
from typing import Awaitable, Protocol

from prewarm.utils.exception_logging import log_exception_with_details


class KeepAlive(Protocol):
    """Lets a handler schedule work that must outlive the response."""

    def wait_until(self, awaitable: Awaitable, name: str = "") -> asyncio.Task:
        ...


class BackgroundTaskRegistry:
    """
    Runs background work as asyncio tasks and keeps them alive until done.

    The event loop only holds weak references to tasks, so the registry
    keeps a strong one for each task until it finishes. Failures are logged
    and never re-raised. ``drain`` waits for outstanding work at shutdown.
    """

    def __init__(self, logger: logging.Logger):
        self._logger = logger
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def wait_until(self, awaitable: Awaitable, name: str = "") -> asyncio.Task:
        task = asyncio.ensure_future(awaitable)
        if name:
            task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            self._logger.debug(f"[KeepAlive] Task {task.get_name()} was cancelled")
            return
        exc = task.exception()
        if exc is not None:
            log_exception_with_details(
                self._logger, f"[KeepAlive] Task {task.get_name()} failed:", exc
            )

    async def drain(self, timeout: float) -> None:
        """Wait up to ``timeout`` seconds for pending tasks, then cancel the rest."""
        if not self._tasks:
            return
        tasks = list(self._tasks)
        self._logger.info(f"[KeepAlive] Waiting for {len(tasks)} background tasks")
        _, still_running = await asyncio.wait(tasks, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            self._logger.warning(
                f"[KeepAlive] Cancelled {len(still_running)} background tasks at shutdown"
            )
            await asyncio.gather(*still_running, return_exceptions=True)
