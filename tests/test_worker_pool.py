"""
Tests for WorkerPool: dispatch, load balancing, priorities, queue limits,
cancellation, timeouts, shutdown, and the recovery integration (cache,
retry, fallback).

Tests run real worker threads. Processors that need to hold a worker busy
use GatedProcessor, which waits on an Event and checks the task's
cancellation context while it waits. Every wait is bounded.
"""

import sys
import threading
from pathlib import Path
from queue import Empty, Queue
from unittest.mock import MagicMock, patch

import pytest

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from notesmith.errors import ErrorCode, WorkerError
from notesmith.formatting import format_text
from notesmith.models import FormatType, TextInput
from notesmith.parallel import (
    CancellationContext,
    FormatWorker,
    PoolConfig,
    PoolStats,
    ProcessingOptions,
    ProcessingTask,
    SequentialStrategy,
    TaskPriority,
    TaskStatus,
    WorkerPool,
)
from notesmith.recovery import (
    SIMPLIFIED_WARNING,
    ErrorRecoveryManager,
    FallbackStrategy,
    RecoveryConfig,
)

WAIT = 5.0


class GatedProcessor:
    """Formats only after release is set; honors cancellation while waiting."""

    def __init__(self):
        self.release = threading.Event()
        self.started = threading.Event()
        self.seen = []
        self._lock = threading.Lock()

    def __call__(self, text_input, format_type, context=None, on_progress=None):
        with self._lock:
            self.seen.append(text_input.content)
        self.started.set()
        while not self.release.wait(0.01):
            if context is not None:
                context.throw_if_cancelled()
        return format_text(text_input, format_type, context=context, on_progress=on_progress)


def make_task(content="- [ ] Call the bank", format_type=FormatType.TASK_LISTS, **kwargs):
    return ProcessingTask(
        input=TextInput.from_text(content),
        options=ProcessingOptions(target_format=format_type),
        **kwargs,
    )


class TestPoolBasics:
    """Test running tasks end to end."""

    def test_task_completes(self):
        """A submitted task resolves to a completed TaskResult."""
        with WorkerPool(PoolConfig(min_workers=1, max_workers=2)) as pool:
            result = pool.submit_task(make_task()).result(timeout=WAIT)
            stats = pool.get_pool_stats()

        assert result.status is TaskStatus.COMPLETED
        assert result.success
        assert result.error is None
        assert result.result.format is FormatType.TASK_LISTS
        assert result.metrics.worker_id.startswith("worker-")
        assert isinstance(stats, PoolStats)
        assert stats.total_tasks_processed == 1

    def test_format_detected_when_unset(self):
        """Without a target format the pool formats the detected one."""
        task = ProcessingTask(input=TextInput.from_text("- [ ] Finish the report\n- [ ] Call the bank\n- [x] Pay rent"))
        with WorkerPool(PoolConfig(max_workers=1)) as pool:
            result = pool.submit_task(task).result(timeout=WAIT)
        assert result.result.format is FormatType.TASK_LISTS

    def test_progress_reported(self):
        """Checkpoints reach the task callback and the progress queue."""
        progress_queue = Queue()
        seen = []
        task = make_task(on_progress=lambda task_id, percent, step: seen.append(percent))
        with WorkerPool(PoolConfig(max_workers=1), progress_queue=progress_queue) as pool:
            pool.submit_task(task).result(timeout=WAIT)

        assert seen == [0, 20, 40, 60, 80, 100]
        messages = []
        while True:
            try:
                messages.append(progress_queue.get_nowait())
            except Empty:
                break
        kinds = {kind for kind, _ in messages}
        assert kinds == {'progress', 'pool_progress'}
        assert any(kind == 'progress' and payload[:2] == (task.task_id, 100) for kind, payload in messages)

    def test_priority_order(self):
        """Queued tasks run urgent first, then by submission time."""
        processor = GatedProcessor()
        with WorkerPool(PoolConfig(min_workers=1, max_workers=1), processor=processor) as pool:
            try:
                futures = [pool.submit_task(make_task("- [ ] first"))]
                assert processor.started.wait(WAIT)
                futures.append(pool.submit_task(make_task("- [ ] low", priority=TaskPriority.LOW)))
                futures.append(pool.submit_task(make_task("- [ ] normal")))
                futures.append(pool.submit_task(make_task("- [ ] urgent", priority=TaskPriority.URGENT)))
            finally:
                processor.release.set()
            for future in futures:
                assert future.result(timeout=WAIT).status is TaskStatus.COMPLETED

        assert processor.seen == ["- [ ] first", "- [ ] urgent", "- [ ] normal", "- [ ] low"]

    def test_pool_config_validation(self):
        """Impossible sizes are rejected."""
        with pytest.raises(ValueError):
            PoolConfig(max_workers=0)
        with pytest.raises(ValueError):
            PoolConfig(min_workers=3, max_workers=2)
        with pytest.raises(ValueError):
            PoolConfig(max_queue_size=-1)


class TestSubmitValidation:
    """Test synchronous rejections from submit_task()."""

    def test_submit_before_init(self):
        """A pool that was never started rejects work."""
        with pytest.raises(WorkerError) as exc_info:
            WorkerPool().submit_task(make_task())
        assert exc_info.value.code is ErrorCode.POOL_TERMINATED

    def test_submit_after_shutdown(self):
        """A shut-down pool rejects work."""
        pool = WorkerPool(PoolConfig(max_workers=1)).init()
        pool.shutdown()
        assert not pool.is_running
        with pytest.raises(WorkerError) as exc_info:
            pool.submit_task(make_task())
        assert exc_info.value.code is ErrorCode.POOL_TERMINATED

    def test_unsupported_format(self):
        """An unknown target format is rejected at submit time."""
        with WorkerPool(PoolConfig(max_workers=1)) as pool:
            with pytest.raises(WorkerError) as exc_info:
                pool.submit_task(make_task(format_type="bogus"))
        assert exc_info.value.code is ErrorCode.UNSUPPORTED_FORMAT

    def test_duplicate_task_id(self):
        """A task id still in flight cannot be reused."""
        processor = GatedProcessor()
        with WorkerPool(PoolConfig(max_workers=1), processor=processor) as pool:
            try:
                pool.submit_task(make_task(task_id="dup"))
                with pytest.raises(WorkerError) as exc_info:
                    pool.submit_task(make_task(task_id="dup"))
            finally:
                processor.release.set()
        assert exc_info.value.code is ErrorCode.INVALID_INPUT

    def test_queue_full(self):
        """With no free worker and a full queue, submit raises QUEUE_FULL."""
        processor = GatedProcessor()
        config = PoolConfig(min_workers=1, max_workers=1, max_queue_size=1)
        with WorkerPool(config, processor=processor) as pool:
            try:
                running = pool.submit_task(make_task("- [ ] running"))
                queued = pool.submit_task(make_task("- [ ] queued"))
                with pytest.raises(WorkerError) as exc_info:
                    pool.submit_task(make_task("- [ ] rejected"))
            finally:
                processor.release.set()
            assert running.result(timeout=WAIT).status is TaskStatus.COMPLETED
            assert queued.result(timeout=WAIT).status is TaskStatus.COMPLETED

        assert exc_info.value.code is ErrorCode.QUEUE_FULL
        assert exc_info.value.context['max_queue_size'] == 1


class TestLoadBalancing:
    """Test worker scaling."""

    def test_scales_to_max_workers_then_queues(self):
        """Busy workers cause new ones up to max_workers; the rest wait."""
        processor = GatedProcessor()
        with WorkerPool(PoolConfig(min_workers=1, max_workers=2), processor=processor) as pool:
            try:
                futures = [pool.submit_task(make_task(f"- [ ] task {i}")) for i in range(3)]
                stats = pool.get_pool_stats()
            finally:
                processor.release.set()
            results = [future.result(timeout=WAIT) for future in futures]
            worker_ids = pool.worker_ids()

        assert stats.total_workers == 2
        assert stats.active_workers == 2
        assert stats.queue_size == 1
        assert all(result.status is TaskStatus.COMPLETED for result in results)
        assert worker_ids == ["worker-1", "worker-2"]

    def test_worker_info(self):
        """Per-worker counters are reported."""
        with WorkerPool(PoolConfig(max_workers=1)) as pool:
            pool.submit_task(make_task()).result(timeout=WAIT)
            info = pool.get_worker_info("worker-1")
            assert pool.get_worker_info("worker-99") is None

        assert info.tasks_processed == 1
        assert info.success_rate == 1.0
        assert info.restarts == 0

    def test_request_worker_status(self):
        """A status request is answered by the worker and kept on its info."""
        with WorkerPool(PoolConfig(max_workers=1)) as pool:
            pool.submit_task(make_task()).result(timeout=WAIT)
            assert pool.request_worker_status("worker-1")
            assert not pool.request_worker_status("worker-99")

            waited = threading.Event()
            status = None
            for _ in range(int(WAIT / 0.01)):
                status = pool.get_worker_info("worker-1").last_status
                if status is not None:
                    break
                waited.wait(0.01)

        assert status is not None
        assert status['worker_id'] == "worker-1"
        assert status['tasks_handled'] == 1
        assert status['alive']


class TestCancellationAndTimeouts:
    """Test cancel_task(), timeouts and shutdown."""

    def test_pre_cancelled_task(self):
        """A task cancelled before submit resolves as cancelled without running."""
        task = make_task()
        task.cancellation = CancellationContext(task.task_id)
        task.cancellation.cancel()
        processor = MagicMock()
        with WorkerPool(PoolConfig(max_workers=1), processor=processor) as pool:
            future = pool.submit_task(task)
            assert future.done()
            result = future.result()
        assert result.status is TaskStatus.CANCELLED
        assert result.error.code is ErrorCode.USER_CANCELLED
        assert processor.call_count == 0

    def test_cancel_running_task(self):
        """cancel_task() resolves the future and stops the worker."""
        processor = GatedProcessor()
        with WorkerPool(PoolConfig(max_workers=1), processor=processor) as pool:
            try:
                task = make_task()
                future = pool.submit_task(task)
                assert processor.started.wait(WAIT)
                assert pool.cancel_task(task.task_id)
                assert not pool.cancel_task(task.task_id)
                result = future.result(timeout=WAIT)
            finally:
                processor.release.set()

        assert result.status is TaskStatus.CANCELLED
        assert result.error.code is ErrorCode.USER_CANCELLED
        assert task.cancellation.is_cancelled

    def test_cancel_unknown_task(self):
        """Unknown ids are reported as not cancelled."""
        with WorkerPool(PoolConfig(max_workers=1)) as pool:
            assert not pool.cancel_task("task-missing")

    def test_timeout(self):
        """A task that runs past its timeout fails with TIMEOUT."""
        processor = GatedProcessor()
        with WorkerPool(PoolConfig(max_workers=1), processor=processor) as pool:
            try:
                result = pool.submit_task(make_task(timeout_ms=50)).result(timeout=WAIT)
            finally:
                processor.release.set()

        assert result.status is TaskStatus.FAILED
        assert result.error.code is ErrorCode.TIMEOUT

    def test_shutdown_cancels_in_flight_tasks(self):
        """Shutdown resolves running and queued tasks as POOL_TERMINATED."""
        processor = GatedProcessor()
        pool = WorkerPool(PoolConfig(min_workers=1, max_workers=1), processor=processor).init()
        running = pool.submit_task(make_task("- [ ] running"))
        assert processor.started.wait(WAIT)
        queued = pool.submit_task(make_task("- [ ] queued"))
        pool.shutdown()

        for future in (running, queued):
            result = future.result(timeout=WAIT)
            assert result.status is TaskStatus.CANCELLED
            assert result.error.code is ErrorCode.POOL_TERMINATED

    def test_init_timeout(self):
        """Workers that never report ready fail init()."""
        config = PoolConfig(max_workers=1, ready_timeout_seconds=0.05)
        with patch.object(FormatWorker, 'start', lambda self: None):
            pool = WorkerPool(config)
            with pytest.raises(WorkerError) as exc_info:
                pool.init()
        assert exc_info.value.code is ErrorCode.INITIALIZATION_ERROR
        assert not pool.is_running


class TestRecoveryIntegration:
    """Test cache, retry and fallback through the pool."""

    def test_cache_hit(self):
        """The same content and format is served from cache."""
        with WorkerPool(PoolConfig(max_workers=1), recovery=ErrorRecoveryManager()) as pool:
            first = pool.submit_task(make_task()).result(timeout=WAIT)
            future = pool.submit_task(make_task())
            assert future.done()
            second = future.result()

        assert second.status is TaskStatus.COMPLETED
        assert second.metrics.from_cache
        assert second.result is first.result

    def test_expired_cache_entry_reprocessed(self):
        """After cache expiration the same task runs through a worker again."""
        now = [1000.0]
        output = format_text(TextInput.from_text("- [ ] Call the bank"), FormatType.TASK_LISTS)
        processor = MagicMock(return_value=output)
        recovery = ErrorRecoveryManager(RecoveryConfig(cache_expiration_ms=1000), clock=lambda: now[0])
        with WorkerPool(PoolConfig(max_workers=1), recovery=recovery, processor=processor) as pool:
            pool.submit_task(make_task()).result(timeout=WAIT)
            cached = pool.submit_task(make_task()).result(timeout=WAIT)
            now[0] += 2.0
            fresh = pool.submit_task(make_task()).result(timeout=WAIT)

        assert cached.metrics.from_cache
        assert fresh.status is TaskStatus.COMPLETED
        assert not fresh.metrics.from_cache
        assert processor.call_count == 2

    def test_transient_failure_retried(self):
        """A failing worker is restarted and the task retried."""
        output = format_text(TextInput.from_text("- [ ] Call the bank"), FormatType.TASK_LISTS)
        processor = MagicMock(side_effect=[RuntimeError("flaky"), output])
        recovery = ErrorRecoveryManager(RecoveryConfig(retry_delay_ms=1, jitter=False))
        with WorkerPool(PoolConfig(max_workers=1), recovery=recovery, processor=processor) as pool:
            result = pool.submit_task(make_task()).result(timeout=WAIT)
            info = pool.get_worker_info("worker-1")

        assert result.status is TaskStatus.COMPLETED
        assert result.metrics.retry_count == 1
        assert processor.call_count == 2
        assert info.restarts == 1

    def test_fallback_after_failure(self):
        """With retries exhausted the simplified fallback completes the task."""
        processor = MagicMock(side_effect=RuntimeError("broken"))
        recovery = ErrorRecoveryManager(RecoveryConfig(
            max_retries=0, fallback_strategy=FallbackStrategy.SIMPLIFIED))
        with WorkerPool(PoolConfig(max_workers=1), recovery=recovery, processor=processor,
                        fallback_executor=SequentialStrategy()) as pool:
            result = pool.submit_task(make_task()).result(timeout=WAIT)

        assert result.status is TaskStatus.COMPLETED
        assert result.metrics.used_fallback
        assert result.result.warnings == (SIMPLIFIED_WARNING,)

    def test_failure_without_recovery(self):
        """Without a recovery manager the wrapped error is returned."""
        processor = MagicMock(side_effect=RuntimeError("broken"))
        with WorkerPool(PoolConfig(max_workers=1), processor=processor) as pool:
            result = pool.submit_task(make_task()).result(timeout=WAIT)
            stats = pool.get_pool_stats()

        assert result.status is TaskStatus.FAILED
        assert not result.success
        assert result.error.code is ErrorCode.PROCESSING_ERROR
        assert "broken" in result.error.message
        assert stats.total_tasks_failed == 1

    def test_system_status(self):
        """System status combines pool, circuits and resources."""
        with WorkerPool(PoolConfig(max_workers=1), recovery=ErrorRecoveryManager()) as pool:
            status = pool.get_system_status()

        assert status.is_running
        assert status.pool.total_workers == 1
        assert status.error_stats.total_errors == 0
        assert 0 <= status.health_score <= 100
