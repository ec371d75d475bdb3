"""
Progress aggregation for pooled formatting tasks.

Every checkpoint a worker reports is forwarded to the progress queue as
``('progress', (task_id, percent, step))``. On top of that the aggregator
keeps a pool-wide summary, ``('pool_progress', (percent, message))``, which
is throttled so several busy workers do not flood the consumer.

Usage:
    aggregator = ProgressAggregator(progress_queue, throttle_ms=100)
    aggregator.start("task-1")
    aggregator.update("task-1", 40, "Classifying lines")
    aggregator.complete("task-1")
"""

import threading
import time
from dataclasses import dataclass, field
from queue import Queue


@dataclass
class ProgressState:
    """
    Progress across the tasks the aggregator has seen.

    Not thread-safe on its own; ProgressAggregator holds the lock.

    Attributes:
        total_tasks: Tasks started so far.
        completed_tasks: Tasks finished (in any status).
        task_progress: task_id -> (percent, step) for tasks still running.
    """
    total_tasks: int = 0
    completed_tasks: int = 0
    task_progress: dict = field(default_factory=dict)

    @property
    def percentage(self) -> int:
        """Completed tasks count fully, running tasks by their last checkpoint."""
        if self.total_tasks == 0:
            return 0
        running = sum(percent for percent, _ in self.task_progress.values()) / 100
        return int(((self.completed_tasks + running) / self.total_tasks) * 100)


class ProgressAggregator:
    """
    Forwards per-task checkpoints and throttled pool summaries.

    Args:
        progress_queue: Destination queue, or None to only track state.
        throttle_ms: Minimum milliseconds between pool summaries.
    """

    def __init__(self, progress_queue: Queue | None = None, throttle_ms: int = 100):
        self.progress_queue = progress_queue
        self.throttle_ms = throttle_ms
        self._state = ProgressState()
        self._last_summary = 0.0
        self._lock = threading.Lock()

    def start(self, task_id: str) -> None:
        with self._lock:
            self._state.total_tasks += 1
            self._state.task_progress[task_id] = (0, "Queued")

    def update(self, task_id: str, percent: int, step: str) -> None:
        """Record and forward one checkpoint (the summary is throttled)."""
        with self._lock:
            if task_id in self._state.task_progress:
                self._state.task_progress[task_id] = (percent, step)
            self._put(('progress', (task_id, percent, step)))
            self._maybe_send_summary()

    def complete(self, task_id: str) -> None:
        """Mark a task finished and always send a summary."""
        with self._lock:
            if self._state.task_progress.pop(task_id, None) is None:
                return
            self._state.completed_tasks += 1
            self._send_summary()

    def _put(self, message) -> None:
        if self.progress_queue is not None:
            self.progress_queue.put(message)

    def _maybe_send_summary(self) -> None:
        # Caller holds _lock
        now = time.monotonic() * 1000
        if now - self._last_summary >= self.throttle_ms:
            self._send_summary()

    def _send_summary(self) -> None:
        # Caller holds _lock
        steps = [f"{task_id}: {step}" for task_id, (_, step) in self._state.task_progress.items()]
        if steps:
            message = " | ".join(steps[:3])
            if len(steps) > 3:
                message += f" (+{len(steps) - 3} more)"
        else:
            message = f"Processed {self._state.completed_tasks}/{self._state.total_tasks} tasks"
        self._put(('pool_progress', (self._state.percentage, message)))
        self._last_summary = time.monotonic() * 1000

    @property
    def completed(self) -> int:
        with self._lock:
            return self._state.completed_tasks

    @property
    def total(self) -> int:
        with self._lock:
            return self._state.total_tasks

    def progress_of(self, task_id: str) -> tuple[int, str] | None:
        """Last (percent, step) reported for a running task."""
        with self._lock:
            return self._state.task_progress.get(task_id)
