"""Bounded background task queue.

Catalog rebuilds triggered from a request handler must not block the
response and may outlive it. Instead of detaching a bare coroutine, they
are submitted here: one worker drains a bounded queue, failures are logged
and never reach the request that scheduled them.

Tasks are identified by name. While a task with a given name is still
waiting in the queue, further submissions under that name are dropped, so
a burst of stale reads produces one rebuild rather than many.
"""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

TaskFactory = Callable[[], Awaitable[Any]]


class BackgroundTaskRunner:
    """Single-worker queue for fire-and-forget work.

    Usage:
        ```python
        runner = BackgroundTaskRunner(maxsize=8)
        runner.start()
        runner.submit("catalog-rebuild", service.build_catalog)
        ...
        await runner.stop()
        ```
    """

    def __init__(self, maxsize: int = 8) -> None:
        self._queue: asyncio.Queue[tuple[str, TaskFactory]] = asyncio.Queue(maxsize)
        self._pending: set[str] = set()
        self._worker: asyncio.Task[None] | None = None

    @property
    def pending(self) -> frozenset[str]:
        """Names of tasks waiting to run."""
        return frozenset(self._pending)

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        """Start the worker on the running event loop (idempotent)."""
        if not self.is_running:
            self._worker = asyncio.create_task(self._run(), name="background-runner")

    def submit(self, name: str, factory: TaskFactory) -> bool:
        """Queue ``factory()`` to run in the background.

        Args:
            name: Task name used for coalescing and logs
            factory: Zero-argument callable returning an awaitable

        Returns:
            True if queued, False if coalesced or the queue is full
        """
        if name in self._pending:
            logger.debug("background_task_coalesced", task=name)
            return False

        try:
            self._queue.put_nowait((name, factory))
        except asyncio.QueueFull:
            logger.warning("background_queue_full", task=name, size=self._queue.qsize())
            return False

        self._pending.add(name)
        self.start()
        logger.info("background_task_queued", task=name)
        return True

    async def join(self) -> None:
        """Wait until every queued task has finished."""
        await self._queue.join()

    async def stop(self) -> None:
        """Cancel the worker. Queued tasks that have not started are dropped."""
        if self._worker is None:
            return
        self._worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None
        logger.info("background_runner_stopped", dropped=self._queue.qsize())

    async def _run(self) -> None:
        while True:
            name, factory = await self._queue.get()
            # Once started, a new request under the same name may queue again
            self._pending.discard(name)
            try:
                await factory()
                logger.info("background_task_completed", task=name)
            except Exception:
                logger.exception("background_task_failed", task=name)
            finally:
                self._queue.task_done()

