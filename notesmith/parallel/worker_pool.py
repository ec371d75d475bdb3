"""
Worker Pool

Runs formatting tasks on a set of FormatWorker threads.

Design Principles:
- Caller-owned: a pool is built, init()-ed and shut down by its owner
  (or used as a context manager). There is no module-level pool.
- One controller: workers only post events; a single controller thread
  applies them to the roster under one lock. Public methods take the
  same lock, so scheduling decisions are serialized.
- Futures, never exceptions: submit_task() returns a Future that always
  resolves to a TaskResult. Only QUEUE_FULL, a stopped pool and bad
  arguments raise, and they raise synchronously.

Worker lifecycle:
    initializing → idle → busy → idle ... | error → (restart) initializing
    idle above min_workers for idle_timeout_ms → terminating → terminated

Usage:
    with WorkerPool(PoolConfig(max_workers=2), recovery=ErrorRecoveryManager()) as pool:
        future = pool.submit_task(ProcessingTask(
            input=TextInput.from_text(raw),
            options=ProcessingOptions(target_format=FormatType.TASK_LISTS),
        ))
        result = future.result(timeout=10)
"""

import heapq
import itertools
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from queue import Empty, Queue

from notesmith.errors import ErrorCode, TaskCancelledError, TaskTimeoutError, WorkerError
from notesmith.formatting.facade import resolve_format
from notesmith.logging_config import debug_log, error, info, warning
from notesmith.parallel.cancellation import CancellationContext, CancellationReason
from notesmith.parallel.executor_strategy import ExecutorStrategy, ThreadPoolStrategy
from notesmith.parallel.progress_aggregator import ProgressAggregator
from notesmith.parallel.tasks import (
    LoadBalancing,
    PoolConfig,
    PoolStats,
    ProcessingTask,
    SystemStatus,
    TaskMetrics,
    TaskResult,
    TaskStatus,
    WorkerInfo,
    WorkerMetrics,
    WorkerStatus,
)
from notesmith.parallel.worker import FormatWorker, WorkerEvent, WorkerMessage
from notesmith.recovery import RecoveryAction

# Worker failures that leave the worker healthy
NON_CRASH_CODES = frozenset({
    ErrorCode.USER_CANCELLED,
    ErrorCode.TIMEOUT,
    ErrorCode.POOL_TERMINATED,
    ErrorCode.INVALID_INPUT,
    ErrorCode.UNSUPPORTED_FORMAT,
})

_STOP = object()
_FALLBACK_DONE = "fallback_done"
_LIVE_STATUSES = (WorkerStatus.INITIALIZING, WorkerStatus.IDLE, WorkerStatus.BUSY, WorkerStatus.ERROR)


@dataclass
class _WorkerSlot:
    worker: FormatWorker
    index: int
    status: WorkerStatus = WorkerStatus.INITIALIZING
    current_task_id: str | None = None
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.monotonic)
    restarts: int = 0
    metrics: WorkerMetrics = field(default_factory=WorkerMetrics)
    last_status: dict | None = None

    @property
    def generation(self) -> int:
        return self.worker.generation


@dataclass
class _TaskRecord:
    task: ProcessingTask
    future: Future
    sequence: int
    submitted_at: float = field(default_factory=time.monotonic)
    status: TaskStatus = TaskStatus.PENDING
    worker_id: str | None = None
    queue_time: float = 0.0
    retry_count: int = 0
    timers: list = field(default_factory=list)


class WorkerPool:
    """
    Pool of FormatWorker threads with a bounded priority queue.

    Args:
        config: PoolConfig; defaults from notesmith.config.
        recovery: Optional ErrorRecoveryManager for caching, retries,
            fallback and circuit breaking.
        processor: Formatting callable handed to every worker (defaults to
            the format facade). Tests pass spies here.
        progress_queue: Optional Queue receiving ('progress', ...) and
            ('pool_progress', ...) messages.
        fallback_executor: ExecutorStrategy that runs recovery fallbacks.
    """

    def __init__(self, config: PoolConfig | None = None, recovery=None, processor=None,
                 progress_queue: Queue | None = None,
                 fallback_executor: ExecutorStrategy | None = None):
        self.config = config or PoolConfig()
        self.recovery = recovery
        self.processor = processor
        self._events: Queue = Queue()
        self._lock = threading.RLock()
        self._ready = threading.Condition(self._lock)
        self._workers: dict[str, _WorkerSlot] = {}
        self._worker_numbers = itertools.count(1)
        self._queue: list[tuple] = []
        self._tasks: dict[str, _TaskRecord] = {}
        self._sequence = itertools.count()
        self._last_round_robin = -1
        self._progress = ProgressAggregator(progress_queue)
        self._owns_fallback_executor = fallback_executor is None
        self._fallback_executor = fallback_executor
        self._controller: threading.Thread | None = None
        self._running = False

        self._completed = 0
        self._failed = 0
        self._dispatched = 0
        self._queue_time_total = 0.0

        self._event_handlers = {
            WorkerEvent.READY.value: self._on_ready,
            WorkerEvent.PROGRESS.value: self._on_progress,
            WorkerEvent.COMPLETED.value: self._on_completed,
            WorkerEvent.FAILED.value: self._on_failed,
            WorkerEvent.STATUS.value: self._on_status,
            WorkerEvent.ERROR.value: self._on_worker_error,
            WorkerEvent.TERMINATED.value: self._on_terminated,
            _FALLBACK_DONE: self._on_fallback_done,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init(self) -> 'WorkerPool':
        """
        Start the controller and min_workers workers, and wait for them.

        Raises:
            WorkerError: INITIALIZATION_ERROR if the workers do not report
                ready within config.ready_timeout_seconds.
        """
        with self._lock:
            if self._running:
                return self
            self._running = True
            if self._fallback_executor is None:
                self._fallback_executor = ThreadPoolStrategy(max_workers=1)
            self._controller = threading.Thread(target=self._controller_loop,
                                                name="notesmith-pool-controller", daemon=True)
            self._controller.start()
            for _ in range(self.config.min_workers):
                self._spawn_worker()

        deadline = time.monotonic() + self.config.ready_timeout_seconds
        with self._ready:
            while self._initializing_count() > 0:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self._ready.wait(remaining)
            pending = self._initializing_count()

        if pending:
            self.shutdown(wait=False)
            raise WorkerError(f"{pending} workers did not become ready",
                              ErrorCode.INITIALIZATION_ERROR)

        info(f"[POOL] Initialized: {self.config.min_workers}-{self.config.max_workers} workers, "
             f"queue limit {self.config.max_queue_size}, {self.config.load_balancing.value}")
        return self

    def shutdown(self, wait: bool = True) -> None:
        """
        Stop accepting work, cancel everything pending and stop the workers.

        Pending and running tasks resolve as cancelled with POOL_TERMINATED.
        """
        with self._lock:
            if not self._running:
                return
            self._running = False
            for record in list(self._tasks.values()):
                record.task.cancellation.cancel(CancellationReason.SHUTDOWN)
                self._resolve(record, TaskStatus.CANCELLED, error=WorkerError(
                    "Worker pool shut down", ErrorCode.POOL_TERMINATED,
                    context={'task_id': record.task.task_id}))
            self._queue.clear()
            for slot in self._workers.values():
                if slot.status in _LIVE_STATUSES:
                    slot.status = WorkerStatus.TERMINATING
                    slot.worker.terminate()
            threads = [slot.worker for slot in self._workers.values()]
            controller = self._controller

        self._events.put(_STOP)
        if self._owns_fallback_executor and self._fallback_executor is not None:
            self._fallback_executor.shutdown(wait=False, cancel_futures=True)

        if wait:
            timeout = self.config.shutdown_timeout_seconds
            for thread in threads:
                thread.join(timeout)
            if controller is not None:
                controller.join(timeout)

        with self._lock:
            for slot in self._workers.values():
                if not slot.worker.is_alive():
                    slot.status = WorkerStatus.TERMINATED
        info(f"[POOL] Shut down ({self._completed} completed, {self._failed} failed)")

    def __enter__(self):
        return self.init()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown(wait=True)
        return False

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def submit_task(self, task: ProcessingTask) -> Future:
        """
        Queue a task and return a Future resolving to its TaskResult.

        Raises:
            WorkerError: POOL_TERMINATED if the pool is not running,
                QUEUE_FULL if the task would have to wait and the queue is
                at max_queue_size, UNSUPPORTED_FORMAT for an unknown target
                format, INVALID_INPUT for a duplicate task id.
        """
        with self._lock:
            if not self._running:
                raise WorkerError("Worker pool is not running", ErrorCode.POOL_TERMINATED,
                                  context={'task_id': task.task_id})
            if task.task_id in self._tasks:
                raise WorkerError(f"Duplicate task id: {task.task_id}", ErrorCode.INVALID_INPUT,
                                  context={'task_id': task.task_id})
            if task.options.target_format is not None:
                resolve_format(task.options.target_format)
            if task.cancellation is None:
                task.cancellation = CancellationContext(task.task_id)

            record = _TaskRecord(task=task, future=Future(), sequence=next(self._sequence))

            if task.cancellation.is_cancelled:
                self._resolve(record, TaskStatus.CANCELLED, error=self._cancellation_error(task))
                return record.future

            if self.recovery is not None:
                cached = self.recovery.get_cached(task)
                if cached is not None:
                    self._resolve(record, TaskStatus.COMPLETED, output=cached, from_cache=True)
                    return record.future

            if not self._has_capacity() and self._queue_size() >= self.config.max_queue_size:
                warning(f"[POOL] Queue full ({self.config.max_queue_size}), rejecting {task.task_id}")
                raise WorkerError("Task queue is full", ErrorCode.QUEUE_FULL,
                                  context={'task_id': task.task_id,
                                           'max_queue_size': self.config.max_queue_size})

            self._tasks[task.task_id] = record
            self._progress.start(task.task_id)
            self._start_timeout(record)
            self._enqueue(record)
            debug_log(f"[POOL] Submitted {task.task_id} ({task.priority.value})")
            self._dispatch()
            return record.future

    def cancel_task(self, task_id: str) -> bool:
        """
        Cancel a queued or running task.

        The Future resolves as cancelled right away; a running worker stops
        at its next checkpoint and its late report is discarded.

        Returns:
            False if the task is unknown or already finished.
        """
        with self._lock:
            record = self._tasks.get(task_id)
            if record is None or record.future.done():
                return False
            record.task.cancellation.cancel(CancellationReason.USER)
            self._resolve(record, TaskStatus.CANCELLED, error=TaskCancelledError(context={'task_id': task_id}))
            debug_log(f"[POOL] Cancelled {task_id}")
            return True

    def get_pool_stats(self) -> PoolStats:
        with self._lock:
            live = [slot for slot in self._workers.values() if slot.status in _LIVE_STATUSES]
            active = sum(1 for slot in live if slot.status is WorkerStatus.BUSY)
            idle = sum(1 for slot in live if slot.status is WorkerStatus.IDLE)
            return PoolStats(
                total_workers=len(live),
                active_workers=active,
                idle_workers=idle,
                queue_size=self._queue_size(),
                total_tasks_processed=self._completed,
                total_tasks_failed=self._failed,
                average_queue_time_ms=self._queue_time_total / self._dispatched if self._dispatched else 0.0,
                utilization=active / len(live) if live else 0.0,
            )

    def get_worker_info(self, worker_id: str) -> WorkerInfo | None:
        with self._lock:
            slot = self._workers.get(worker_id)
            if slot is None:
                return None
            return WorkerInfo(
                id=worker_id,
                status=slot.status,
                current_task_id=slot.current_task_id,
                created_at=slot.created_at,
                last_activity=slot.last_activity,
                tasks_processed=slot.metrics.tasks_processed,
                restarts=slot.restarts,
                average_processing_time=slot.metrics.average_processing_time,
                success_rate=slot.metrics.success_rate,
                error_count=slot.metrics.error_count,
                last_status=slot.last_status,
            )

    def worker_ids(self) -> list[str]:
        with self._lock:
            return list(self._workers)

    def request_worker_status(self, worker_id: str) -> bool:
        """
        Ask a live worker to report its status.

        The reply arrives asynchronously and shows up as
        ``get_worker_info(worker_id).last_status``. Returns False for an
        unknown or terminated worker.
        """
        with self._lock:
            slot = self._workers.get(worker_id)
            if slot is None or slot.status not in _LIVE_STATUSES:
                return False
            slot.worker.send(WorkerMessage.GET_STATUS)
            return True

    def get_system_status(self) -> SystemStatus:
        from notesmith.system_resources import get_resource_snapshot

        stats = self.get_pool_stats()
        resources = get_resource_snapshot()
        circuits = self.recovery.circuit_states() if self.recovery is not None else {}
        error_stats = self.recovery.get_error_stats() if self.recovery is not None else None

        score = 100.0
        if self._running and stats.total_workers == 0:
            score -= 50
        if self.config.max_queue_size:
            score -= 30 * min(1.0, stats.queue_size / self.config.max_queue_size)
        score -= min(30, 10 * sum(1 for state in circuits.values() if state == "open"))
        if error_stats is not None and error_stats.escalation_active:
            score -= 20
        if resources.memory_percent > 90:
            score -= 10

        return SystemStatus(
            pool=stats,
            resources=resources,
            circuit_breakers=circuits,
            error_stats=error_stats,
            health_score=int(round(max(0.0, min(100.0, score)))),
            is_running=self._running,
        )

    # ------------------------------------------------------------------
    # Scheduling (caller holds _lock)
    # ------------------------------------------------------------------

    def _spawn_worker(self, slot: _WorkerSlot | None = None) -> _WorkerSlot:
        if slot is None:
            number = next(self._worker_numbers)
            worker = FormatWorker(f"worker-{number}", self._events, self.processor)
            slot = _WorkerSlot(worker=worker, index=number)
            self._workers[worker.worker_id] = slot
        else:
            slot.worker = FormatWorker(slot.worker.worker_id, self._events, self.processor,
                                       generation=slot.generation + 1)
            slot.status = WorkerStatus.INITIALIZING
            slot.current_task_id = None
            slot.restarts += 1
        slot.last_activity = time.monotonic()
        slot.worker.start()
        debug_log(f"[POOL] Spawned {slot.worker!r}")
        return slot

    def _live_count(self) -> int:
        return sum(1 for slot in self._workers.values() if slot.status in _LIVE_STATUSES)

    def _initializing_count(self) -> int:
        return sum(1 for slot in self._workers.values()
                   if slot.status is WorkerStatus.INITIALIZING and slot.current_task_id is None)

    def _has_capacity(self) -> bool:
        idle = any(slot.status is WorkerStatus.IDLE for slot in self._workers.values())
        return (idle or self._live_count() < self.config.max_workers) and self._queue_size() == 0

    def _queue_size(self) -> int:
        return sum(1 for *_, task_id in self._queue
                   if task_id in self._tasks and not self._tasks[task_id].future.done())

    def _enqueue(self, record: _TaskRecord) -> None:
        task = record.task
        heapq.heappush(self._queue, (task.priority.rank, task.created_at, record.sequence, task.task_id))

    def _pick_worker(self) -> _WorkerSlot | None:
        idle = sorted((slot for slot in self._workers.values() if slot.status is WorkerStatus.IDLE),
                      key=lambda slot: slot.index)
        if not idle:
            return None
        if self.config.load_balancing is LoadBalancing.ROUND_ROBIN:
            for slot in idle:
                if slot.index > self._last_round_robin:
                    self._last_round_robin = slot.index
                    return slot
            self._last_round_robin = idle[0].index
            return idle[0]
        # least-busy: idle workers carry no in-flight task, so creation order decides
        return min(idle, key=lambda slot: (slot.current_task_id is not None, slot.index))

    def _dispatch(self) -> None:
        while self._running and self._queue:
            task_id = self._queue[0][-1]
            record = self._tasks.get(task_id)
            if record is None or record.future.done():
                heapq.heappop(self._queue)
                continue
            if record.task.cancellation.is_cancelled:
                heapq.heappop(self._queue)
                self._resolve(record, TaskStatus.CANCELLED, error=self._cancellation_error(record.task))
                continue
            if self.recovery is not None and not self.recovery.allow(record.task):
                heapq.heappop(self._queue)
                debug_log(f"[POOL] Circuit open, sending {task_id} to fallback")
                self._start_fallback(record, None)
                continue

            slot = self._pick_worker()
            if slot is None:
                if self._live_count() >= self.config.max_workers:
                    break
                slot = self._spawn_worker()

            heapq.heappop(self._queue)
            self._assign(slot, record)

    def _assign(self, slot: _WorkerSlot, record: _TaskRecord) -> None:
        now = time.monotonic()
        slot.status = WorkerStatus.BUSY
        slot.current_task_id = record.task.task_id
        slot.last_activity = now
        record.status = TaskStatus.RUNNING
        record.worker_id = slot.worker.worker_id
        record.queue_time = (now - record.submitted_at) * 1000
        self._dispatched += 1
        self._queue_time_total += record.queue_time
        slot.worker.send(WorkerMessage.PROCESS_TEXT, record.task)
        debug_log(f"[POOL] {record.task.task_id} → {slot.worker.worker_id} "
                  f"(queued {record.queue_time:.1f}ms)")

    def _start_timeout(self, record: _TaskRecord) -> None:
        timeout_ms = record.task.effective_timeout_ms
        if timeout_ms is None:
            return
        timer = threading.Timer(timeout_ms / 1000, self._on_timeout, args=(record.task.task_id,))
        timer.daemon = True
        record.timers.append(timer)
        timer.start()

    def _on_timeout(self, task_id: str) -> None:
        with self._lock:
            record = self._tasks.get(task_id)
            if record is None or record.future.done():
                return
            record.task.cancellation.cancel(CancellationReason.TIMEOUT)
            warning(f"[POOL] {task_id} timed out after {record.task.effective_timeout_ms}ms")
            self._resolve(record, TaskStatus.FAILED, error=TaskTimeoutError(context={'task_id': task_id}))
            self._dispatch()

    @staticmethod
    def _cancellation_error(task: ProcessingTask) -> WorkerError:
        try:
            task.cancellation.throw_if_cancelled()
        except WorkerError as e:
            return e
        return TaskCancelledError(context={'task_id': task.task_id})

    def _resolve(self, record: _TaskRecord, status: TaskStatus, output=None, error=None,
                 duration: float = 0.0, from_cache: bool = False, used_fallback: bool = False) -> None:
        if record.future.done():
            return
        for timer in record.timers:
            timer.cancel()
        record.status = status
        task_id = record.task.task_id
        self._tasks.pop(task_id, None)
        if status is TaskStatus.COMPLETED:
            self._completed += 1
        elif status is TaskStatus.FAILED:
            self._failed += 1
        self._progress.complete(task_id)

        result = TaskResult(
            task_id=task_id,
            status=status,
            result=output,
            error=error,
            metrics=TaskMetrics(
                duration=duration,
                stats=output.metadata.stats if output is not None else None,
                worker_id=record.worker_id,
                retry_count=record.retry_count,
                queue_time=record.queue_time,
                from_cache=from_cache,
                used_fallback=used_fallback,
            ),
        )
        if error is not None:
            debug_log(f"[POOL] {task_id} {status.value}: {error.code.value} {error.message}")
        else:
            debug_log(f"[POOL] {task_id} {status.value} in {duration:.1f}ms")
        record.future.set_result(result)

    # ------------------------------------------------------------------
    # Failure handling (caller holds _lock)
    # ------------------------------------------------------------------

    def _handle_failure(self, record: _TaskRecord, failure: WorkerError, duration: float = 0.0) -> None:
        code = failure.code
        if code in (ErrorCode.USER_CANCELLED, ErrorCode.POOL_TERMINATED):
            self._resolve(record, TaskStatus.CANCELLED, error=failure, duration=duration)
            return
        if self.recovery is None or code is ErrorCode.TIMEOUT:
            self._resolve(record, TaskStatus.FAILED, error=failure, duration=duration)
            return

        decision = self.recovery.decide(record.task, failure, record.retry_count)
        if decision.action is RecoveryAction.RETRY:
            record.retry_count += 1
            record.status = TaskStatus.PENDING
            record.worker_id = None
            timer = threading.Timer(decision.delay_ms / 1000, self._requeue, args=(record.task.task_id,))
            timer.daemon = True
            record.timers.append(timer)
            timer.start()
        elif decision.action is RecoveryAction.FALLBACK:
            self._start_fallback(record, failure)
        else:
            self._resolve(record, TaskStatus.FAILED, error=failure, duration=duration)

    def _requeue(self, task_id: str) -> None:
        with self._lock:
            record = self._tasks.get(task_id)
            if not self._running or record is None or record.future.done():
                return
            debug_log(f"[POOL] Retrying {task_id} (attempt {record.retry_count})")
            self._enqueue(record)
            self._dispatch()

    def _start_fallback(self, record: _TaskRecord, failure: WorkerError | None) -> None:
        record.status = TaskStatus.RUNNING
        task_id = record.task.task_id
        debug_log(f"[POOL] Fallback for {task_id} on {self._fallback_executor.name} executor")
        future = self._fallback_executor.submit(self.recovery.run_fallback, record.task)
        future.add_done_callback(
            lambda done: self._events.put((_FALLBACK_DONE, None, 0, (task_id, done, failure))))

    def _restart_worker(self, slot: _WorkerSlot) -> None:
        slot.worker.terminate()
        if self._running:
            warning(f"[POOL] Restarting {slot.worker.worker_id} after a crash")
            self._spawn_worker(slot)

    # ------------------------------------------------------------------
    # Controller
    # ------------------------------------------------------------------

    def _controller_loop(self) -> None:
        debug_log("[POOL] Controller started")
        while True:
            try:
                event = self._events.get(timeout=self.config.maintenance_interval_seconds)
            except Empty:
                with self._lock:
                    if self._running:
                        self._maintain()
                continue
            if event is _STOP:
                break

            kind, worker_id, generation, payload = event
            key = kind.value if isinstance(kind, Enum) else kind
            handler = self._event_handlers.get(key)
            if handler is None:
                debug_log(f"[POOL] Unknown event type: {key}")
                continue
            with self._lock:
                try:
                    handler(worker_id, generation, payload)
                except Exception as e:
                    error(f"[POOL] Error handling {key} from {worker_id}: {e}", exc_info=True)
        debug_log("[POOL] Controller stopped")

    def _slot_for(self, worker_id: str | None, generation: int) -> _WorkerSlot | None:
        slot = self._workers.get(worker_id) if worker_id else None
        if slot is None or slot.generation != generation:
            return None
        return slot

    def _on_ready(self, worker_id, generation, payload) -> None:
        slot = self._slot_for(worker_id, generation)
        if slot is None:
            return
        if slot.status is WorkerStatus.INITIALIZING:
            slot.status = WorkerStatus.BUSY if slot.current_task_id else WorkerStatus.IDLE
        slot.last_activity = time.monotonic()
        self._ready.notify_all()
        self._dispatch()

    def _on_progress(self, worker_id, generation, payload) -> None:
        task_id, percent, step = payload
        record = self._tasks.get(task_id)
        if record is None or record.future.done():
            return
        self._progress.update(task_id, percent, step)
        if record.task.on_progress is not None:
            try:
                record.task.on_progress(task_id, percent, step)
            except Exception as e:
                error(f"[POOL] Progress callback for {task_id} raised: {e}")

    def _on_completed(self, worker_id, generation, payload) -> None:
        task_id, output, duration = payload
        slot = self._slot_for(worker_id, generation)
        if slot is not None:
            slot.status = WorkerStatus.IDLE
            slot.current_task_id = None
            slot.last_activity = time.monotonic()
            slot.metrics.tasks_processed += 1
            slot.metrics.total_processing_time += duration

        record = self._tasks.get(task_id)
        if record is not None and not record.future.done():
            if self.recovery is not None:
                self.recovery.record_success(record.task, output)
            self._resolve(record, TaskStatus.COMPLETED, output=output, duration=duration)
        self._dispatch()

    def _on_failed(self, worker_id, generation, payload) -> None:
        task_id, failure, duration = payload
        slot = self._slot_for(worker_id, generation)
        if slot is not None:
            slot.current_task_id = None
            slot.last_activity = time.monotonic()
            if failure.code in NON_CRASH_CODES:
                slot.status = WorkerStatus.IDLE
            else:
                slot.status = WorkerStatus.ERROR
                slot.metrics.error_count += 1
                slot.metrics.last_error_at = time.time()
                error(f"[POOL] {worker_id} failed {task_id}: {failure.message}")
                self._restart_worker(slot)

        record = self._tasks.get(task_id)
        if record is not None and not record.future.done():
            self._handle_failure(record, failure, duration)
        self._dispatch()

    def _on_worker_error(self, worker_id, generation, payload) -> None:
        slot = self._slot_for(worker_id, generation)
        error(f"[POOL] {worker_id} reported {payload.code.value}: {payload.message}")
        if slot is None:
            return
        slot.metrics.error_count += 1
        slot.metrics.last_error_at = time.time()
        if slot.current_task_id is not None and payload.code is ErrorCode.MESSAGE_HANDLING_ERROR:
            record = self._tasks.get(slot.current_task_id)
            slot.current_task_id = None
            slot.status = WorkerStatus.ERROR
            self._restart_worker(slot)
            if record is not None and not record.future.done():
                self._handle_failure(record, payload)
            self._dispatch()

    def _on_status(self, worker_id, generation, payload) -> None:
        slot = self._slot_for(worker_id, generation)
        if slot is None:
            return
        slot.last_status = payload
        debug_log(f"[POOL] Status from {worker_id}: {payload}")

    def _on_terminated(self, worker_id, generation, payload) -> None:
        slot = self._slot_for(worker_id, generation)
        if slot is None:
            return
        if slot.status is WorkerStatus.TERMINATING and self._running:
            # Culled idle worker
            del self._workers[worker_id]
        else:
            slot.status = WorkerStatus.TERMINATED

    def _on_fallback_done(self, worker_id, generation, payload) -> None:
        task_id, done, failure = payload
        record = self._tasks.get(task_id)
        if record is None or record.future.done():
            return
        fallback_error = done.exception()
        if fallback_error is None:
            self._resolve(record, TaskStatus.COMPLETED, output=done.result(), used_fallback=True)
            return
        debug_log(f"[POOL] Fallback failed for {task_id}: {fallback_error}")
        if failure is None:
            failure = WorkerError.from_exception(fallback_error, ErrorCode.WORKER_CRASHED,
                                                 context={'task_id': task_id})
        self._resolve(record, TaskStatus.FAILED, error=failure)

    def _maintain(self) -> None:
        now = time.monotonic()
        idle_limit = self.config.idle_timeout_ms / 1000
        for slot in sorted(self._workers.values(), key=lambda s: s.last_activity):
            if self._live_count() <= self.config.min_workers:
                break
            if slot.status is WorkerStatus.IDLE and now - slot.last_activity >= idle_limit:
                debug_log(f"[POOL] Culling idle {slot.worker.worker_id}")
                slot.status = WorkerStatus.TERMINATING
                slot.worker.terminate()
        if self.recovery is not None:
            self.recovery.purge_expired()

    def __repr__(self) -> str:
        stats = self.get_pool_stats()
        return (f"WorkerPool(workers={stats.total_workers}, busy={stats.active_workers}, "
                f"queued={stats.queue_size}, running={self._running})")
