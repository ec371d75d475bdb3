"""
Tests for the parallel processing building blocks.

Tests cover:
- ExecutorStrategy implementations (ThreadPool, Sequential)
- ProgressAggregator state, forwarding and throttling
- FormatWorker message handling and events
"""

import sys
import threading
from pathlib import Path
from queue import Empty, Queue
from unittest.mock import MagicMock

import pytest

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from notesmith.errors import ErrorCode, WorkerError
from notesmith.models import FormatType, TextInput
from notesmith.parallel import (
    ExecutorStrategy,
    FormatWorker,
    ProcessingOptions,
    ProcessingTask,
    ProgressAggregator,
    ProgressState,
    SequentialStrategy,
    ThreadPoolStrategy,
    WorkerEvent,
    WorkerMessage,
)


def drain(queue):
    messages = []
    while True:
        try:
            messages.append(queue.get_nowait())
        except Empty:
            return messages


class TestSequentialStrategy:
    """Test SequentialStrategy for deterministic execution."""

    def test_sequential_submit_returns_completed_future(self):
        """Submit returns a Future that is already complete."""
        strategy = SequentialStrategy()
        future = strategy.submit(lambda x: x + 10, 5)
        assert future.done()
        assert future.result() == 15

    def test_sequential_submit_captures_exceptions(self):
        """Submit captures exceptions in the Future."""
        strategy = SequentialStrategy()

        def raise_error(x):
            raise ValueError("Test error")

        future = strategy.submit(raise_error, 1)
        assert future.done()
        with pytest.raises(ValueError, match="Test error"):
            future.result()

    def test_sequential_is_executor_strategy(self):
        """SequentialStrategy implements the ExecutorStrategy interface."""
        strategy = SequentialStrategy()
        assert isinstance(strategy, ExecutorStrategy)
        assert strategy.max_workers == 1


class TestThreadPoolStrategy:
    """Test ThreadPoolStrategy."""

    def test_submit_runs_in_background_thread(self):
        """Callables run off the calling thread."""
        caller = threading.get_ident()
        with ThreadPoolStrategy(max_workers=1) as strategy:
            future = strategy.submit(lambda _: threading.get_ident(), None)
            assert future.result(timeout=5) != caller

    def test_submit_returns_result(self):
        """Results come back through the Future."""
        with ThreadPoolStrategy(max_workers=2) as strategy:
            assert strategy.submit(str.upper, "abc").result(timeout=5) == "ABC"
            assert strategy.max_workers == 2


class TestProgressState:
    """Test the pool-wide percentage."""

    def test_empty_state(self):
        """No tasks means zero percent."""
        assert ProgressState().percentage == 0

    def test_running_tasks_count_fractionally(self):
        """Running tasks contribute their last checkpoint."""
        state = ProgressState(total_tasks=4, completed_tasks=1, task_progress={'a': (50, "Extracting")})
        assert state.percentage == 37


class TestProgressAggregator:
    """Test forwarding and throttled summaries."""

    def test_update_forwards_checkpoint(self):
        """Every checkpoint is forwarded as a progress message."""
        queue = Queue()
        aggregator = ProgressAggregator(queue)
        aggregator.start("a")
        aggregator.update("a", 40, "Classifying lines")
        messages = drain(queue)
        assert ('progress', ("a", 40, "Classifying lines")) in messages
        assert aggregator.progress_of("a") == (40, "Classifying lines")

    def test_complete_sends_summary(self):
        """Completion always sends a pool summary."""
        queue = Queue()
        aggregator = ProgressAggregator(queue, throttle_ms=60_000)
        aggregator.start("a")
        aggregator.start("b")
        aggregator.complete("a")
        assert drain(queue) == [('pool_progress', (50, "b: Queued"))]
        assert aggregator.completed == 1
        assert aggregator.total == 2
        assert aggregator.progress_of("a") is None

    def test_summaries_throttled(self):
        """Updates inside the throttle window only forward checkpoints."""
        queue = Queue()
        aggregator = ProgressAggregator(queue, throttle_ms=60_000)
        aggregator.start("a")
        aggregator.start("b")
        aggregator.complete("b")
        drain(queue)
        aggregator.update("a", 20, "Sanitizing")
        aggregator.update("a", 40, "Classifying lines")
        assert [kind for kind, _ in drain(queue)] == ['progress', 'progress']

    def test_unknown_task_completion_ignored(self):
        """Completing an unknown task changes nothing."""
        queue = Queue()
        aggregator = ProgressAggregator(queue)
        aggregator.complete("ghost")
        assert aggregator.completed == 0
        assert drain(queue) == []

    def test_without_queue(self):
        """With no queue the aggregator only tracks state."""
        aggregator = ProgressAggregator()
        aggregator.start("a")
        aggregator.update("a", 60, "Rendering")
        aggregator.complete("a")
        assert aggregator.completed == 1

    def test_summary_truncates_long_lists(self):
        """More than three running tasks are summarized with a count."""
        queue = Queue()
        aggregator = ProgressAggregator(queue, throttle_ms=60_000)
        for task_id in ("a", "b", "c", "d", "e"):
            aggregator.start(task_id)
        aggregator.complete("a")
        (_, (_, message)), = drain(queue)
        assert message.endswith("(+1 more)")


class TestFormatWorker:
    """Test the worker thread's message loop."""

    def setup_method(self):
        self.events = Queue()

    def next_event(self, kind):
        while True:
            event = self.events.get(timeout=5)
            if event[0] is kind:
                return event

    def make_task(self):
        return ProcessingTask(
            input=TextInput.from_text("- [ ] Call the bank"),
            options=ProcessingOptions(target_format=FormatType.TASK_LISTS),
            task_id="task-1",
        )

    def test_lifecycle(self):
        """Ready, progress, completed, status and terminated events in order."""
        worker = FormatWorker("worker-1", self.events)
        worker.start()
        try:
            assert self.next_event(WorkerEvent.READY)[1:3] == ("worker-1", 0)
            worker.send(WorkerMessage.PROCESS_TEXT, self.make_task())

            progress = [self.events.get(timeout=5) for _ in range(6)]
            assert [event[0] for event in progress] == [WorkerEvent.PROGRESS] * 6
            assert [event[3][1] for event in progress] == [0, 20, 40, 60, 80, 100]

            _, _, _, (task_id, output, duration) = self.next_event(WorkerEvent.COMPLETED)
            assert task_id == "task-1"
            assert output.format is FormatType.TASK_LISTS
            assert duration >= 0

            worker.send(WorkerMessage.GET_STATUS)
            status = self.next_event(WorkerEvent.STATUS)[3]
            assert status['tasks_handled'] == 1
        finally:
            worker.terminate()
        assert self.next_event(WorkerEvent.TERMINATED)[1] == "worker-1"
        worker.join(timeout=5)
        assert not worker.is_alive()

    def test_processor_failure_reported(self):
        """Processor exceptions become FAILED events with a WorkerError."""
        processor = MagicMock(side_effect=RuntimeError("engine broke"))
        worker = FormatWorker("worker-2", self.events, processor=processor, generation=3)
        worker.start()
        try:
            worker.send(WorkerMessage.PROCESS_TEXT, self.make_task())
            _, worker_id, generation, (task_id, failure, _) = self.next_event(WorkerEvent.FAILED)
        finally:
            worker.terminate()
            worker.join(timeout=5)

        assert (worker_id, generation, task_id) == ("worker-2", 3, "task-1")
        assert isinstance(failure, WorkerError)
        assert failure.code is ErrorCode.PROCESSING_ERROR
        assert failure.context['worker_id'] == "worker-2"

    def test_unknown_message(self):
        """Unknown message types produce an error event and the loop continues."""
        worker = FormatWorker("worker-3", self.events)
        worker.start()
        try:
            worker.send("reticulate_splines")
            failure = self.next_event(WorkerEvent.ERROR)[3]
            assert failure.code is ErrorCode.UNKNOWN_MESSAGE_TYPE
            worker.send(WorkerMessage.GET_STATUS)
            assert self.next_event(WorkerEvent.STATUS)[3]['alive']
        finally:
            worker.terminate()
            worker.join(timeout=5)

    def test_handler_crash_reported(self):
        """A malformed payload is reported as MESSAGE_HANDLING_ERROR."""
        worker = FormatWorker("worker-4", self.events)
        worker.start()
        try:
            worker.send(WorkerMessage.PROCESS_TEXT, None)
            failure = self.next_event(WorkerEvent.ERROR)[3]
        finally:
            worker.terminate()
            worker.join(timeout=5)
        assert failure.code is ErrorCode.MESSAGE_HANDLING_ERROR
