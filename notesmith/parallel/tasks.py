"""
Task, result and pool records for the worker layer.

A ProcessingTask is created by the caller, owned by the pool until it
completes, fails, is cancelled or times out, and is then dropped. Its
TaskResult is what the caller's Future resolves to; the pool never sets
an exception on that Future.
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from notesmith.config import (
    PARALLEL_MAX_WORKERS,
    POOL_IDLE_TIMEOUT_MS,
    POOL_MAINTENANCE_INTERVAL_SECONDS,
    POOL_MAX_QUEUE_SIZE,
    POOL_MIN_WORKERS,
    POOL_READY_TIMEOUT_SECONDS,
    POOL_SHUTDOWN_TIMEOUT_SECONDS,
)
from notesmith.errors import WorkerError
from notesmith.models import FormattedOutput, FormatType, ProcessingStats, TextInput
from notesmith.parallel.cancellation import CancellationContext

DEFAULT_MAX_PROCESSING_TIME_MS = 30_000


class TaskType(str, Enum):
    TEXT_FORMATTING = "text-formatting"
    FORMAT_DETECTION = "format-detection"


class TaskPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        """0 for urgent up to 3 for low; lower is dequeued first."""
        return _TASK_PRIORITY_RANK[self]


_TASK_PRIORITY_RANK = {
    TaskPriority.URGENT: 0,
    TaskPriority.HIGH: 1,
    TaskPriority.NORMAL: 2,
    TaskPriority.LOW: 3,
}


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class LoadBalancing(str, Enum):
    LEAST_BUSY = "least-busy"
    ROUND_ROBIN = "round-robin"


class WorkerStatus(str, Enum):
    INITIALIZING = "initializing"
    IDLE = "idle"
    BUSY = "busy"
    ERROR = "error"
    TERMINATING = "terminating"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class ProcessingFeatures:
    pattern_recognition: bool = True
    data_extraction: bool = True
    content_analysis: bool = True
    duplicate_removal: bool = True
    sorting: bool = True


@dataclass(frozen=True)
class PerformanceOptions:
    """
    Attributes:
        max_processing_time: Milliseconds; used as the timeout when the task
            sets none. 0 disables it.
        enable_caching: Allow the recovery cache to serve and store this task.
        use_streaming: Carried for callers; engines always return whole outputs.
    """
    max_processing_time: int = DEFAULT_MAX_PROCESSING_TIME_MS
    enable_caching: bool = True
    use_streaming: bool = False


@dataclass(frozen=True)
class OutputOptions:
    include_metadata: bool = True
    include_stats: bool = True
    include_confidence: bool = True


@dataclass(frozen=True)
class ProcessingOptions:
    """
    Attributes:
        target_format: Format to produce. None means detect it from the text.
    """
    target_format: FormatType | None = None
    features: ProcessingFeatures = field(default_factory=ProcessingFeatures)
    performance: PerformanceOptions = field(default_factory=PerformanceOptions)
    output: OutputOptions = field(default_factory=OutputOptions)


def _new_task_id() -> str:
    return f"task-{uuid.uuid4().hex[:12]}"


@dataclass
class ProcessingTask:
    """
    One formatting job.

    Attributes:
        input: The text to format.
        options: Target format and feature/performance/output switches.
        task_id: Unique id; callers correlate results by it.
        type: TEXT_FORMATTING, or FORMAT_DETECTION to pick the format first.
        priority: Queue priority.
        created_at: time.time() at creation; orders equal priorities.
        timeout_ms: Overrides options.performance.max_processing_time.
        cancellation: Caller-supplied context; the pool creates one if None.
        on_progress: Optional callback(task_id, percent, step).
    """
    input: TextInput
    options: ProcessingOptions = field(default_factory=ProcessingOptions)
    task_id: str = field(default_factory=_new_task_id)
    type: TaskType = TaskType.TEXT_FORMATTING
    priority: TaskPriority = TaskPriority.NORMAL
    created_at: float = field(default_factory=time.time)
    timeout_ms: int | None = None
    cancellation: CancellationContext | None = None
    on_progress: Callable[[str, int, str], None] | None = None

    @property
    def effective_timeout_ms(self) -> int | None:
        if self.timeout_ms is not None:
            return self.timeout_ms if self.timeout_ms > 0 else None
        limit = self.options.performance.max_processing_time
        return limit if limit and limit > 0 else None

    def resolve_format(self) -> FormatType:
        """
        The target format, detected from the content when unset.

        Raises:
            WorkerError: UNSUPPORTED_FORMAT for an unknown target format.
        """
        from notesmith.formatting import detect_format, resolve_format

        if self.options.target_format is not None and self.type is not TaskType.FORMAT_DETECTION:
            return resolve_format(self.options.target_format)
        return detect_format(self.input.content).suggested_format


@dataclass(frozen=True)
class TaskMetrics:
    """
    Attributes:
        duration: Processing time in ms (0 for cache hits).
        queue_time: Time between submission and dispatch, in ms.
    """
    duration: float = 0.0
    stats: ProcessingStats | None = None
    worker_id: str | None = None
    retry_count: int = 0
    queue_time: float = 0.0
    from_cache: bool = False
    used_fallback: bool = False


@dataclass(frozen=True)
class TaskResult:
    task_id: str
    status: TaskStatus
    result: FormattedOutput | None = None
    error: WorkerError | None = None
    metrics: TaskMetrics = field(default_factory=TaskMetrics)
    completed_at: float = field(default_factory=time.time)

    @property
    def success(self) -> bool:
        return self.status is TaskStatus.COMPLETED


@dataclass(frozen=True)
class PoolConfig:
    """
    Worker pool settings. Defaults come from notesmith.config.

    Raises:
        ValueError: on inconsistent limits.
    """
    min_workers: int = POOL_MIN_WORKERS
    max_workers: int = PARALLEL_MAX_WORKERS
    idle_timeout_ms: int = POOL_IDLE_TIMEOUT_MS
    max_queue_size: int = POOL_MAX_QUEUE_SIZE
    load_balancing: LoadBalancing = LoadBalancing.LEAST_BUSY
    ready_timeout_seconds: float = POOL_READY_TIMEOUT_SECONDS
    shutdown_timeout_seconds: float = POOL_SHUTDOWN_TIMEOUT_SECONDS
    maintenance_interval_seconds: float = POOL_MAINTENANCE_INTERVAL_SECONDS

    def __post_init__(self):
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")
        if not 0 <= self.min_workers <= self.max_workers:
            raise ValueError(f"min_workers must be 0-{self.max_workers}, got {self.min_workers}")
        if self.max_queue_size < 0:
            raise ValueError(f"max_queue_size must be >= 0, got {self.max_queue_size}")
        object.__setattr__(self, 'load_balancing', LoadBalancing(self.load_balancing))

    @classmethod
    def from_preferences(cls, preferences, **overrides) -> 'PoolConfig':
        """
        Size the pool from user preferences and system resources.

        Uses the user's worker override when set, otherwise the
        resource-based optimum capped at PARALLEL_MAX_WORKERS.
        """
        from notesmith.system_resources import get_optimal_workers

        override = preferences.get("user_defined_max_workers")
        if override:
            max_workers = override
        else:
            max_workers = get_optimal_workers(max_workers=PARALLEL_MAX_WORKERS, preferences=preferences)
        settings = {'max_workers': max_workers, 'min_workers': min(POOL_MIN_WORKERS, max_workers)}
        settings.update(overrides)
        return cls(**settings)


@dataclass
class WorkerMetrics:
    tasks_processed: int = 0
    total_processing_time: float = 0.0
    error_count: int = 0
    last_error_at: float | None = None

    @property
    def average_processing_time(self) -> float:
        return self.total_processing_time / self.tasks_processed if self.tasks_processed else 0.0

    @property
    def success_rate(self) -> float:
        attempts = self.tasks_processed + self.error_count
        return self.tasks_processed / attempts if attempts else 1.0


@dataclass(frozen=True)
class WorkerInfo:
    """Read-only snapshot of one worker, as returned by WorkerPool.get_worker_info()."""
    id: str
    status: WorkerStatus
    current_task_id: str | None
    created_at: float
    last_activity: float
    tasks_processed: int
    restarts: int
    average_processing_time: float
    success_rate: float
    error_count: int
    last_status: dict | None = None


@dataclass(frozen=True)
class PoolStats:
    total_workers: int = 0
    active_workers: int = 0
    idle_workers: int = 0
    queue_size: int = 0
    total_tasks_processed: int = 0
    total_tasks_failed: int = 0
    average_queue_time_ms: float = 0.0
    utilization: float = 0.0


@dataclass(frozen=True)
class SystemStatus:
    """
    Pool stats plus host resources and recovery state.

    Attributes:
        health_score: 0..100, lower when the queue backs up, circuits are
            open, errors escalate or memory runs low.
    """
    pool: PoolStats
    resources: object
    circuit_breakers: dict[str, str] = field(default_factory=dict)
    error_stats: object = None
    health_score: int = 100
    is_running: bool = False
