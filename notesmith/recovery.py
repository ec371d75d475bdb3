"""
Error Recovery Manager

Decides what happens after a formatting task fails, and owns the only
cross-task shared state in the worker layer: the result cache.

Recovery Policy:
1. Cancellation, timeout, queue-full and pool-shutdown errors are never
   recovered; they surface as they are.
2. Every other error is recorded. If 10 minutes of history hold
   ``escalation_threshold`` errors the manager escalates (surfaces) instead
   of retrying.
3. Transient errors (processing, initialization, message handling, worker
   crash) retry up to ``max_retries`` times after
   ``retry_delay_ms * 2**attempt`` ms, plus up to 10% jitter.
4. When retries are exhausted (or the error is not transient) the
   configured fallback runs: ``client-side`` formats in-process,
   ``simplified`` returns cleaned text with an empty document model.
   Invalid input and unsupported formats skip the fallback.
5. If the fallback fails too, the original error is surfaced unchanged.

Per-format circuit breakers stop sending work to failing engines: after
``circuit_breaker_threshold`` consecutive failures the circuit opens and
tasks go straight to the fallback until ``circuit_reset_ms`` has passed.

Usage:
    recovery = ErrorRecoveryManager(RecoveryConfig(max_retries=2))
    output = recovery.run_with_recovery(task)
"""

import hashlib
import random
import re
import threading
import time
from collections import Counter, deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from notesmith.config import (
    CIRCUIT_BREAKER_RESET_MS,
    CIRCUIT_BREAKER_THRESHOLD,
    RECOVERY_CACHE_EXPIRATION_MS,
    RECOVERY_ESCALATION_THRESHOLD,
    RECOVERY_ESCALATION_WINDOW_MS,
    RECOVERY_HISTORY_WINDOW_MS,
    RECOVERY_JITTER,
    RECOVERY_MAX_RETRIES,
    RECOVERY_RETRY_DELAY_MS,
)
from notesmith.errors import ErrorCode, WorkerError
from notesmith.formatting.facade import format_text
from notesmith.logging_config import debug_log, warning
from notesmith.models import (
    ExtractedData,
    FormattedOutput,
    FormatType,
    ProcessingMetadata,
    ProcessingStats,
    empty_data_for,
)
from notesmith.sanitization import TextSanitizer

NEVER_RECOVERED = frozenset({
    ErrorCode.USER_CANCELLED,
    ErrorCode.TIMEOUT,
    ErrorCode.QUEUE_FULL,
    ErrorCode.POOL_TERMINATED,
})
TRANSIENT_ERRORS = frozenset({
    ErrorCode.PROCESSING_ERROR,
    ErrorCode.INITIALIZATION_ERROR,
    ErrorCode.MESSAGE_HANDLING_ERROR,
    ErrorCode.WORKER_CRASHED,
})
INPUT_ERRORS = frozenset({ErrorCode.INVALID_INPUT, ErrorCode.UNSUPPORTED_FORMAT})

SIMPLIFIED_CONFIDENCE = 30
SIMPLIFIED_WARNING = "Simplified output: formatting failed, manual review recommended"
JITTER_FRACTION = 0.1


class FallbackStrategy(str, Enum):
    CLIENT_SIDE = "client-side"
    SIMPLIFIED = "simplified"
    NONE = "none"


class RecoveryAction(str, Enum):
    RETRY = "retry"
    FALLBACK = "fallback"
    ESCALATE = "escalate"
    SURFACE = "surface"


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


@dataclass(frozen=True)
class RecoveryConfig:
    max_retries: int = RECOVERY_MAX_RETRIES
    retry_delay_ms: float = RECOVERY_RETRY_DELAY_MS
    jitter: bool = RECOVERY_JITTER
    fallback_strategy: FallbackStrategy = FallbackStrategy.CLIENT_SIDE
    enable_client_side_fallback: bool = True
    cache_results: bool = True
    cache_expiration_ms: float = RECOVERY_CACHE_EXPIRATION_MS
    escalation_threshold: int = RECOVERY_ESCALATION_THRESHOLD
    circuit_breaker_threshold: int = CIRCUIT_BREAKER_THRESHOLD
    circuit_reset_ms: float = CIRCUIT_BREAKER_RESET_MS

    def __post_init__(self):
        object.__setattr__(self, 'fallback_strategy', FallbackStrategy(self.fallback_strategy))
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")


@dataclass(frozen=True)
class RecoveryDecision:
    action: RecoveryAction
    delay_ms: float = 0.0
    reason: str = ""


@dataclass(frozen=True)
class ErrorStats:
    total_errors: int = 0
    recent_errors: int = 0
    errors_by_code: dict[str, int] = field(default_factory=dict)
    escalation_active: bool = False


class CircuitBreaker:
    """
    closed → open after ``threshold`` consecutive failures;
    open → half-open once ``reset_ms`` has passed;
    half-open → closed on the next success, back to open on a failure.
    """

    def __init__(self, threshold: int = CIRCUIT_BREAKER_THRESHOLD,
                 reset_ms: float = CIRCUIT_BREAKER_RESET_MS,
                 clock: Callable[[], float] = time.monotonic):
        self.threshold = threshold
        self.reset_ms = reset_ms
        self._clock = clock
        self._lock = threading.Lock()
        self._failures = 0
        self._opened_at: float | None = None
        self._state = CircuitState.CLOSED

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._current_state()

    def _current_state(self) -> CircuitState:
        if self._state is CircuitState.OPEN and self._opened_at is not None:
            if (self._clock() - self._opened_at) * 1000 >= self.reset_ms:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        with self._lock:
            return self._current_state() is not CircuitState.OPEN

    def record_success(self) -> None:
        with self._lock:
            self._failures = 0
            self._opened_at = None
            self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        with self._lock:
            state = self._current_state()
            self._failures += 1
            if state is CircuitState.HALF_OPEN or self._failures >= self.threshold:
                self._state = CircuitState.OPEN
                self._opened_at = self._clock()

    def __repr__(self) -> str:
        return f"CircuitBreaker(state={self.state.value}, failures={self._failures})"


@dataclass
class _CacheEntry:
    output: FormattedOutput
    stored_at: float


@dataclass
class _KeyLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class ResultCache:
    """
    Fingerprint-keyed cache of successful outputs.

    Keys are ``sha256(format + "\\0" + content)``. Every read, write, purge
    and clear of a key happens under that key's lock, so a reader always
    sees its own write; expired entries are dropped on read and never
    returned. A key's lock lives only while some thread is using it.
    """

    def __init__(self, expiration_ms: float = RECOVERY_CACHE_EXPIRATION_MS,
                 clock: Callable[[], float] = time.monotonic):
        self.expiration_ms = expiration_ms
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}
        self._key_locks: dict[str, _KeyLock] = {}
        self._registry_lock = threading.Lock()

    @staticmethod
    def fingerprint(content: str, format_type) -> str:
        key = f"{FormatType(format_type).value}\0{content}"
        return hashlib.sha256(key.encode('utf-8')).hexdigest()

    @contextmanager
    def _locked(self, key: str):
        with self._registry_lock:
            slot = self._key_locks.get(key)
            if slot is None:
                slot = self._key_locks[key] = _KeyLock()
            slot.users += 1
        try:
            with slot.lock:
                yield
        finally:
            with self._registry_lock:
                slot.users -= 1
                if slot.users == 0:
                    del self._key_locks[key]

    def _expired(self, entry: _CacheEntry) -> bool:
        return (self._clock() - entry.stored_at) * 1000 >= self.expiration_ms

    def get(self, content: str, format_type) -> FormattedOutput | None:
        key = self.fingerprint(content, format_type)
        with self._locked(key):
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._expired(entry):
                self._entries.pop(key, None)
                return None
            return entry.output

    def put(self, content: str, format_type, output: FormattedOutput) -> None:
        key = self.fingerprint(content, format_type)
        with self._locked(key):
            self._entries[key] = _CacheEntry(output=output, stored_at=self._clock())

    def _drop_where(self, should_drop: Callable[[_CacheEntry], bool]) -> int:
        with self._registry_lock:
            keys = list(self._entries)
        removed = 0
        for key in keys:
            with self._locked(key):
                entry = self._entries.get(key)
                if entry is not None and should_drop(entry):
                    del self._entries[key]
                    removed += 1
        return removed

    def clear(self) -> int:
        """Drop every entry. Returns how many were removed."""
        return self._drop_where(lambda entry: True)

    def purge_expired(self) -> int:
        return self._drop_where(self._expired)

    def __len__(self) -> int:
        return len(self._entries)


class ErrorRecoveryManager:
    """
    Retry, fallback, escalation, caching and circuit breaking for tasks.

    Args:
        config: RecoveryConfig; defaults from notesmith.config.
        processor: Callable used for client-side fallback and
            run_with_recovery(); defaults to the format facade.
        clock: Monotonic clock in seconds (injectable for tests).
        sleep: Used by run_with_recovery() between retries.
        rng: Returns floats in [0, 1) for jitter.
    """

    def __init__(self, config: RecoveryConfig | None = None, processor=None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep,
                 rng: Callable[[], float] = random.random):
        self.config = config or RecoveryConfig()
        self._processor = processor or format_text
        self._clock = clock
        self._sleep = sleep
        self._rng = rng
        self.cache = ResultCache(self.config.cache_expiration_ms, clock=clock)
        self._history: deque = deque()
        self._history_lock = threading.Lock()
        self._breakers: dict[FormatType, CircuitBreaker] = {}
        self._breakers_lock = threading.Lock()
        self._sanitizer = TextSanitizer()

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def decide(self, task, error: WorkerError, attempt: int) -> RecoveryDecision:
        """
        Choose what to do after ``task`` failed with ``error``.

        Args:
            task: The failed ProcessingTask.
            error: The failure, already wrapped as a WorkerError.
            attempt: Retries already made for this task (0 on first failure).
        """
        code = error.code
        if code in NEVER_RECOVERED:
            return RecoveryDecision(RecoveryAction.SURFACE, reason=f"{code.value} is not recoverable")

        self._record_error(error, task.task_id)
        if code in TRANSIENT_ERRORS:
            self.breaker_for(task).record_failure()

        if self.should_escalate():
            warning(f"[RECOVERY] Escalating {task.task_id}: {self.config.escalation_threshold}+ recent errors")
            return RecoveryDecision(RecoveryAction.ESCALATE, reason="error rate above escalation threshold")

        if code in TRANSIENT_ERRORS and attempt < self.config.max_retries:
            delay = self.retry_delay_ms(attempt)
            debug_log(f"[RECOVERY] Retry {attempt + 1}/{self.config.max_retries} for {task.task_id} in {delay:.0f}ms")
            return RecoveryDecision(RecoveryAction.RETRY, delay_ms=delay, reason=f"transient {code.value}")

        if code not in INPUT_ERRORS and self.fallback_available():
            debug_log(f"[RECOVERY] Falling back ({self.config.fallback_strategy.value}) for {task.task_id}")
            return RecoveryDecision(RecoveryAction.FALLBACK, reason="retries exhausted")

        return RecoveryDecision(RecoveryAction.SURFACE, reason=f"no recovery for {code.value}")

    def retry_delay_ms(self, attempt: int) -> float:
        delay = self.config.retry_delay_ms * (2 ** attempt)
        if self.config.jitter:
            delay += delay * JITTER_FRACTION * self._rng()
        return delay

    def fallback_available(self) -> bool:
        strategy = self.config.fallback_strategy
        if strategy is FallbackStrategy.NONE:
            return False
        if strategy is FallbackStrategy.CLIENT_SIDE:
            return self.config.enable_client_side_fallback
        return True

    # ------------------------------------------------------------------
    # Circuit breakers
    # ------------------------------------------------------------------

    def breaker_for(self, task) -> CircuitBreaker:
        format_type = task.resolve_format()
        with self._breakers_lock:
            breaker = self._breakers.get(format_type)
            if breaker is None:
                breaker = CircuitBreaker(self.config.circuit_breaker_threshold,
                                         self.config.circuit_reset_ms, clock=self._clock)
                self._breakers[format_type] = breaker
            return breaker

    def allow(self, task) -> bool:
        """False while the task's format circuit is open."""
        return self.breaker_for(task).allow_request()

    def circuit_states(self) -> dict[str, str]:
        with self._breakers_lock:
            return {fmt.value: breaker.state.value for fmt, breaker in self._breakers.items()}

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def _caching_enabled(self, task) -> bool:
        return self.config.cache_results and task.options.performance.enable_caching

    def get_cached(self, task) -> FormattedOutput | None:
        if not self._caching_enabled(task):
            return None
        cached = self.cache.get(task.input.content, task.resolve_format())
        if cached is not None:
            debug_log(f"[RECOVERY] Cache hit for {task.task_id}")
        return cached

    def record_success(self, task, output: FormattedOutput) -> None:
        """Close the format's circuit and cache the output."""
        self.breaker_for(task).record_success()
        if self._caching_enabled(task):
            self.cache.put(task.input.content, output.format, output)

    def clear_cache(self) -> int:
        removed = self.cache.clear()
        debug_log(f"[RECOVERY] Cache cleared ({removed} entries)")
        return removed

    def purge_expired(self) -> int:
        return self.cache.purge_expired()

    # ------------------------------------------------------------------
    # Fallback
    # ------------------------------------------------------------------

    def run_fallback(self, task) -> FormattedOutput:
        """
        Produce an output without the worker pool.

        Raises:
            WorkerError: when no fallback is configured, or whatever the
                client-side processor raised.
        """
        strategy = self.config.fallback_strategy
        if strategy is FallbackStrategy.CLIENT_SIDE and self.config.enable_client_side_fallback:
            return self._processor(task.input, task.resolve_format())
        if strategy is FallbackStrategy.SIMPLIFIED:
            return self.simplified_output(task)
        raise WorkerError("No fallback strategy configured", ErrorCode.PROCESSING_ERROR,
                          context={'task_id': task.task_id})

    def simplified_output(self, task) -> FormattedOutput:
        """Cleaned text with an empty document model for the task's format."""
        format_type = task.resolve_format()
        text, _ = self._sanitizer.sanitize(task.input.content or '')
        cleaned = re.sub(r"\n{3,}", "\n\n", text).strip()
        lines = sum(1 for line in cleaned.split('\n') if line.strip())
        return FormattedOutput(
            format=format_type,
            content=cleaned,
            metadata=ProcessingMetadata(
                processed_at=datetime.now(timezone.utc),
                duration=0.0,
                confidence=SIMPLIFIED_CONFIDENCE if cleaned else 0,
                item_count=0,
                stats=ProcessingStats(lines_processed=lines),
            ),
            data=ExtractedData(format_specific=empty_data_for(format_type)),
            warnings=(SIMPLIFIED_WARNING,),
        )

    # ------------------------------------------------------------------
    # Synchronous composition
    # ------------------------------------------------------------------

    def run_with_recovery(self, task, process=None) -> FormattedOutput:
        """
        Format ``task`` in the calling thread with cache, retries and fallback.

        Raises:
            WorkerError: the original error when retries and fallback fail,
                or the cancellation/timeout error unchanged.
        """
        process = process or self._processor
        cached = self.get_cached(task)
        if cached is not None:
            return cached

        if not self.allow(task):
            debug_log(f"[RECOVERY] Circuit open for {task.resolve_format().value}, using fallback")
            try:
                return self.run_fallback(task)
            except Exception as e:
                raise WorkerError("Circuit open and fallback failed", ErrorCode.WORKER_CRASHED,
                                  context={'task_id': task.task_id}) from e

        attempt = 0
        while True:
            try:
                output = process(task.input, task.resolve_format(), context=task.cancellation)
            except Exception as e:
                error = WorkerError.from_exception(e, context={'task_id': task.task_id})
                decision = self.decide(task, error, attempt)
                if decision.action is RecoveryAction.RETRY:
                    self._sleep(decision.delay_ms / 1000)
                    attempt += 1
                    continue
                if decision.action is RecoveryAction.FALLBACK:
                    try:
                        return self.run_fallback(task)
                    except Exception as fallback_error:
                        debug_log(f"[RECOVERY] Fallback failed for {task.task_id}: {fallback_error}")
                        raise error from None
                raise error from None
            self.record_success(task, output)
            return output

    # ------------------------------------------------------------------
    # Error history
    # ------------------------------------------------------------------

    def _record_error(self, error: WorkerError, task_id: str) -> None:
        now = self._clock()
        with self._history_lock:
            self._history.append((now, error.code, task_id))
            self._trim_history(now)

    def _trim_history(self, now: float) -> None:
        # Caller holds _history_lock
        horizon = now - RECOVERY_HISTORY_WINDOW_MS / 1000
        while self._history and self._history[0][0] <= horizon:
            self._history.popleft()

    def should_escalate(self) -> bool:
        return self._recent_error_count() >= self.config.escalation_threshold

    def _recent_error_count(self) -> int:
        now = self._clock()
        horizon = now - RECOVERY_ESCALATION_WINDOW_MS / 1000
        with self._history_lock:
            self._trim_history(now)
            return sum(1 for stamp, _, _ in self._history if stamp > horizon)

    def get_error_stats(self) -> ErrorStats:
        recent = self._recent_error_count()
        with self._history_lock:
            by_code = Counter(code.value for _, code, _ in self._history)
            total = len(self._history)
        return ErrorStats(
            total_errors=total,
            recent_errors=recent,
            errors_by_code=dict(by_code),
            escalation_active=recent >= self.config.escalation_threshold,
        )

    def reset(self) -> None:
        """Forget error history and circuit state (the cache is kept)."""
        with self._history_lock:
            self._history.clear()
        with self._breakers_lock:
            self._breakers.clear()

    def __repr__(self) -> str:
        return (f"ErrorRecoveryManager(strategy={self.config.fallback_strategy.value}, "
                f"max_retries={self.config.max_retries}, cached={len(self.cache)})")
