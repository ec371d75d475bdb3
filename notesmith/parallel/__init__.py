"""
Concurrent formatting for NoteSmith.

A WorkerPool runs ProcessingTasks on FormatWorker threads and resolves a
Future[TaskResult] for each. Workers post events; a single controller
thread owns the roster, the priority queue and every state change.

Architecture:
    1. WorkerPool - lifecycle, priority queue, dispatch, timeouts and
       cancellation, worker restarts, idle culling, statistics
    2. FormatWorker - one thread per worker, runs the format facade
    3. ErrorRecoveryManager (notesmith.recovery) - retries, fallback,
       cache and circuit breakers, consulted by the pool
    4. ExecutorStrategy - runs fallbacks off the controller thread;
       SequentialStrategy keeps tests deterministic

Components:
    WorkerPool - Caller-owned pool (context manager)
    FormatWorker - Worker thread with an inbox
    ProcessingTask / ProcessingOptions - What to format and how
    TaskResult / TaskMetrics - What a Future resolves to
    PoolConfig / PoolStats / WorkerInfo / SystemStatus - Settings and reporting
    CancellationContext - Terminal-once cancellation flag
    ProgressAggregator - Throttled progress forwarding

Usage Example:
    from notesmith.parallel import WorkerPool, PoolConfig, ProcessingTask

    with WorkerPool(PoolConfig(max_workers=2)) as pool:
        future = pool.submit_task(ProcessingTask(input=TextInput.from_text(raw)))
        print(future.result().result.content)

Testing Example:
    # Block the processor on an Event to hold workers busy
    pool = WorkerPool(PoolConfig(min_workers=1, max_workers=2), processor=blocking_processor)
"""

from .cancellation import CancellationContext, CancellationReason
from .executor_strategy import (
    ExecutorStrategy,
    ThreadPoolStrategy,
    SequentialStrategy,
)
from .progress_aggregator import ProgressAggregator, ProgressState
from .tasks import (
    LoadBalancing,
    OutputOptions,
    PerformanceOptions,
    PoolConfig,
    PoolStats,
    ProcessingFeatures,
    ProcessingOptions,
    ProcessingTask,
    SystemStatus,
    TaskMetrics,
    TaskPriority,
    TaskResult,
    TaskStatus,
    TaskType,
    WorkerInfo,
    WorkerMetrics,
    WorkerStatus,
)
from .worker import FormatWorker, WorkerEvent, WorkerMessage
from .worker_pool import WorkerPool

__all__ = [
    # Pool
    'WorkerPool',
    'FormatWorker',
    'WorkerEvent',
    'WorkerMessage',
    # Tasks
    'ProcessingTask',
    'ProcessingOptions',
    'ProcessingFeatures',
    'PerformanceOptions',
    'OutputOptions',
    'TaskType',
    'TaskPriority',
    'TaskStatus',
    'TaskResult',
    'TaskMetrics',
    # Reporting
    'PoolConfig',
    'PoolStats',
    'LoadBalancing',
    'WorkerInfo',
    'WorkerMetrics',
    'WorkerStatus',
    'SystemStatus',
    # Cancellation
    'CancellationContext',
    'CancellationReason',
    # Strategies
    'ExecutorStrategy',
    'ThreadPoolStrategy',
    'SequentialStrategy',
    # Progress tracking
    'ProgressAggregator',
    'ProgressState',
]
