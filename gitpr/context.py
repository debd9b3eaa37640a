"""
Cancellation contexts.

A Context is passed down every blocking call chain. Cancelling a context
wakes anything sleeping on it and cancels all of its children.
"""

import threading
import time
from typing import Any

from gitpr.exceptions import CancelledError, DeadlineExceededError


class Context:
    """
    Cancellable context with an optional deadline.

    Example:
        ```python
        ctx = Context.background().with_timeout(60)
        processor.process_all(ctx, options)
        ```
    """

    def __init__(
        self, parent: "Context | None" = None, deadline: float | None = None
    ) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: list[Context] = []
        self._error: CancelledError | None = None
        self._timer: threading.Timer | None = None
        self._parent = parent

        if parent is not None and parent.deadline is not None:
            deadline = (
                parent.deadline if deadline is None else min(deadline, parent.deadline)
            )
        self._deadline = deadline

        if parent is not None:
            parent._add_child(self)

        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                self._cancel(DeadlineExceededError())
            else:
                self._timer = threading.Timer(
                    remaining, self._cancel, args=(DeadlineExceededError(),)
                )
                self._timer.daemon = True
                self._timer.start()

    @classmethod
    def background(cls) -> "Context":
        """Return a fresh root context that is never cancelled on its own."""
        return cls()

    @property
    def deadline(self) -> float | None:
        """Monotonic deadline, or None when the context has none."""
        return self._deadline

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def child(self) -> "Context":
        """Create a context that is cancelled whenever this one is."""
        return Context(parent=self)

    def with_timeout(self, seconds: float) -> "Context":
        """Create a child context that cancels itself after ``seconds``."""
        return Context(parent=self, deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        """Cancel this context and every descendant."""
        self._cancel(CancelledError())

    def err(self) -> CancelledError | None:
        """Return the cancellation error, or None while the context is live."""
        with self._lock:
            return self._error

    def raise_if_cancelled(self) -> None:
        """Raise the cancellation error if the context is done."""
        error = self.err()
        if error is not None:
            raise error

    def sleep(self, seconds: float) -> bool:
        """
        Sleep for up to ``seconds``.

        Returns:
            True if the full duration elapsed, False if the context was
            cancelled first
        """
        if seconds <= 0:
            return not self.cancelled
        return not self._event.wait(seconds)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the context is cancelled or ``timeout`` elapses."""
        return self._event.wait(timeout)

    def _add_child(self, child: "Context") -> None:
        with self._lock:
            error = self._error
            if error is None:
                self._children.append(child)
        if error is not None:
            child._cancel(error)

    def _discard_child(self, child: "Context") -> None:
        with self._lock:
            if child in self._children:
                self._children.remove(child)

    def _cancel(self, error: CancelledError) -> None:
        with self._lock:
            if self._error is not None:
                return
            self._error = error
            children = self._children
            self._children = []
            timer = self._timer
        self._event.set()
        if timer is not None:
            timer.cancel()
        for child in children:
            child._cancel(error)
        if self._parent is not None:
            self._parent._discard_child(self)

    def __enter__(self) -> "Context":
        return self

    def __exit__(self, *args: Any) -> None:
        self.cancel()


__all__ = ["Context"]
