"""Bounded parallel execution of independent tasks."""

import logging
import os
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor

from gitpr.context import Context

Task = Callable[[Context], None]

_logger = logging.getLogger("gitpr.concurrent")


class ParallelExecutor:
    """
    Runs a batch of tasks with a concurrency ceiling.

    All tasks share a child of the caller's context. The first task to
    fail cancels that child context, so tasks that have not started yet
    are skipped and running tasks see the cancellation at their next
    blocking point. The first error is raised once every task has settled.
    """

    def __init__(
        self,
        concurrency: int = 5,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        """
        Initialize the executor.

        Args:
            concurrency: Maximum simultaneous tasks (<= 0 means one per CPU)
            logger: Logger for task diagnostics
        """
        if concurrency <= 0:
            concurrency = os.cpu_count() or 1
        self.concurrency = concurrency
        self._logger = logger or _logger

    def execute(self, ctx: Context, tasks: Sequence[Task]) -> None:
        """
        Run ``tasks`` and wait for all of them.

        Args:
            ctx: Parent cancellation context
            tasks: Callables receiving the shared child context

        Raises:
            CancelledError: If the parent context was cancelled
            Exception: The first error raised by a task
        """
        if not tasks:
            return

        group = ctx.child()
        lock = threading.Lock()
        first_error: list[BaseException] = []

        def run(index: int, task: Task) -> None:
            if group.cancelled:
                return

            self._logger.debug("Starting task %d", index)
            try:
                task(group)
            except Exception as e:
                self._logger.debug("Task %d failed: %s", index, e)
                with lock:
                    if not first_error:
                        first_error.append(e)
                group.cancel()
                return
            self._logger.debug("Task %d completed", index)

        workers = min(self.concurrency, len(tasks))
        try:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = [pool.submit(run, i, task) for i, task in enumerate(tasks)]
                for future in futures:
                    future.result()
        finally:
            group.cancel()

        ctx.raise_if_cancelled()
        if first_error:
            raise first_error[0]


__all__ = ["ParallelExecutor", "Task"]
