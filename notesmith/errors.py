"""
Error types for NoteSmith.

Input problems never raise: engines degrade to a minimal output with
confidence 0. Everything the worker layer can report travels as a
WorkerError carrying a stable ErrorCode, so callers can tell "didn't run"
(USER_CANCELLED, QUEUE_FULL, TIMEOUT) apart from "ran and failed".
"""

import traceback
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable error codes surfaced by the worker layer."""
    PROCESSING_ERROR = "PROCESSING_ERROR"
    INITIALIZATION_ERROR = "INITIALIZATION_ERROR"
    UNKNOWN_MESSAGE_TYPE = "UNKNOWN_MESSAGE_TYPE"
    MESSAGE_HANDLING_ERROR = "MESSAGE_HANDLING_ERROR"
    USER_CANCELLED = "USER_CANCELLED"
    QUEUE_FULL = "QUEUE_FULL"
    TIMEOUT = "TIMEOUT"
    WORKER_CRASHED = "WORKER_CRASHED"
    INVALID_INPUT = "INVALID_INPUT"
    UNSUPPORTED_FORMAT = "UNSUPPORTED_FORMAT"
    POOL_TERMINATED = "POOL_TERMINATED"


class NoteSmithError(Exception):
    """Base class for all NoteSmith errors."""


class WorkerError(NoteSmithError):
    """
    Typed error reported by a worker or the pool controller.

    Attributes:
        message: Human-readable description.
        code: ErrorCode identifying the failure class.
        stack: Formatted traceback of the underlying exception, if any.
        context: Extra details (task id, worker id, format, ...).
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.PROCESSING_ERROR,
        stack: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = ErrorCode(code)
        self.stack = stack
        self.context = context or {}

    @classmethod
    def from_exception(
        cls,
        exc: BaseException,
        code: ErrorCode = ErrorCode.PROCESSING_ERROR,
        context: dict[str, Any] | None = None,
    ) -> 'WorkerError':
        """Wrap an arbitrary exception, keeping an existing WorkerError as is."""
        if isinstance(exc, WorkerError):
            return exc
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return cls(
            message=f"{type(exc).__name__}: {exc}",
            code=code,
            stack=stack,
            context=context,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serializable view used in logs and TaskResult payloads."""
        data = {'message': self.message, 'code': self.code.value}
        if self.stack:
            data['stack'] = self.stack
        if self.context:
            data['context'] = dict(self.context)
        return data

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code.value}, message={self.message!r})"


class TaskCancelledError(WorkerError):
    """Raised at a checkpoint when the task's cancellation context is set."""

    def __init__(self, message: str = "Task cancelled by user", context: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.USER_CANCELLED, context=context)


class TaskTimeoutError(WorkerError):
    """Raised at a checkpoint when the task was cancelled because its timeout elapsed."""

    def __init__(self, message: str = "Task timed out", context: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.TIMEOUT, context=context)
