"""
Execution strategies for work the pool runs outside its workers.

The pool controller must never block, so recovery fallbacks (client-side
formatting or the simplified output) are handed to an ExecutorStrategy.
Production uses ThreadPoolStrategy; tests pass SequentialStrategy so a
fallback finishes before the failing worker event has been handled.

Usage:
    strategy = ThreadPoolStrategy(max_workers=1)
    future = strategy.submit(recovery.run_fallback, task)
"""

from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable


class ExecutorStrategy(ABC):
    """
    Runs callables and hands back Futures.

    Attributes:
        name: Short label used in pool log lines.
        max_workers: Callables that may run at once (1 for sequential).
    """

    name = "executor"
    max_workers: int

    @abstractmethod
    def submit(self, fn: Callable[..., Any], *args, **kwargs) -> Future:
        pass

    @abstractmethod
    def shutdown(self, wait: bool = True, cancel_futures: bool = False) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown(wait=True)
        return False

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(max_workers={self.max_workers})"


class ThreadPoolStrategy(ExecutorStrategy):
    """Background threads named ``notesmith-fallback-N``."""

    name = "threads"

    def __init__(self, max_workers: int = 1, thread_name_prefix: str = "notesmith-fallback"):
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=thread_name_prefix)

    def submit(self, fn: Callable[..., Any], *args, **kwargs) -> Future:
        return self._executor.submit(fn, *args, **kwargs)

    def shutdown(self, wait: bool = True, cancel_futures: bool = False) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=cancel_futures)


class SequentialStrategy(ExecutorStrategy):
    """
    Runs the callable on the calling thread.

    The Future comes back already resolved with the result, or with the
    exception the callable raised.
    """

    name = "sequential"

    def __init__(self):
        self.max_workers = 1

    def submit(self, fn: Callable[..., Any], *args, **kwargs) -> Future:
        done: Future = Future()
        try:
            value = fn(*args, **kwargs)
        except Exception as e:
            done.set_exception(e)
        else:
            done.set_result(value)
        return done

    def shutdown(self, wait: bool = True, cancel_futures: bool = False) -> None:
        pass
