"""
Cooperative cancellation for formatting tasks.

A CancellationContext is created per task and shared by reference between
the pool controller and the worker executing the task. ``cancel()`` is the
only mutation and the first call wins; the context never reverts to
"not cancelled". Workers observe it at pipeline checkpoints through
``throw_if_cancelled()``.

Usage:
    context = CancellationContext()
    context.cancel(CancellationReason.TIMEOUT)
    context.throw_if_cancelled()   # raises TaskTimeoutError
"""

import threading
import time
from enum import Enum

from notesmith.errors import ErrorCode, TaskCancelledError, TaskTimeoutError, WorkerError


class CancellationReason(str, Enum):
    USER = "user"
    TIMEOUT = "timeout"
    SHUTDOWN = "shutdown"


class CancellationContext:
    """
    Terminal-once cancellation flag.

    Attributes:
        is_cancelled: True once cancel() has been called.
        reason: CancellationReason of the winning cancel() call.
        cancelled_at: time.time() of the winning call.
    """

    def __init__(self, task_id: str | None = None):
        self.task_id = task_id
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: CancellationReason | None = None
        self._cancelled_at: float | None = None

    def cancel(self, reason: CancellationReason = CancellationReason.USER) -> bool:
        """
        Cancel the task.

        Returns:
            True if this call cancelled the context, False if it was
            already cancelled (the first reason is kept).
        """
        with self._lock:
            if self._event.is_set():
                return False
            self._reason = CancellationReason(reason)
            self._cancelled_at = time.time()
            self._event.set()
        return True

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def done(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> CancellationReason | None:
        return self._reason

    @property
    def cancelled_at(self) -> float | None:
        return self._cancelled_at

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or ``timeout`` seconds pass. Returns is_cancelled."""
        return self._event.wait(timeout)

    def throw_if_cancelled(self) -> None:
        """
        Raise the error matching the cancellation reason, if cancelled.

        Raises:
            TaskTimeoutError: reason is TIMEOUT.
            WorkerError: POOL_TERMINATED when the pool is shutting down.
            TaskCancelledError: any other reason.
        """
        if not self._event.is_set():
            return
        context = {'task_id': self.task_id} if self.task_id else None
        if self._reason is CancellationReason.TIMEOUT:
            raise TaskTimeoutError(context=context)
        if self._reason is CancellationReason.SHUTDOWN:
            raise WorkerError("Worker pool shut down", ErrorCode.POOL_TERMINATED, context=context)
        raise TaskCancelledError(context=context)

    def __repr__(self) -> str:
        state = f"cancelled ({self._reason.value})" if self.is_cancelled else "active"
        return f"CancellationContext(task_id={self.task_id!r}, {state})"
