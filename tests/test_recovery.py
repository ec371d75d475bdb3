"""
Tests for the ErrorRecoveryManager: retry decisions and backoff, fallback
strategies, escalation, circuit breakers and the result cache.

A fake clock drives every time-dependent behavior, so no test sleeps.
"""

import sys
import threading
from pathlib import Path
from unittest.mock import MagicMock

import pytest

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from notesmith.errors import ErrorCode, WorkerError
from notesmith.formatting import format_text
from notesmith.models import FormatType, TextInput
from notesmith.parallel import ProcessingOptions, ProcessingTask
from notesmith.recovery import (
    SIMPLIFIED_CONFIDENCE,
    SIMPLIFIED_WARNING,
    CircuitBreaker,
    CircuitState,
    ErrorRecoveryManager,
    FallbackStrategy,
    RecoveryAction,
    RecoveryConfig,
    ResultCache,
)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def make_task(content="- [ ] Call the bank", format_type=FormatType.TASK_LISTS, **kwargs):
    return ProcessingTask(
        input=TextInput.from_text(content),
        options=ProcessingOptions(target_format=format_type),
        **kwargs,
    )


def make_manager(clock=None, processor=None, **config):
    config.setdefault('jitter', False)
    return ErrorRecoveryManager(
        RecoveryConfig(**config),
        processor=processor,
        clock=clock or FakeClock(),
        sleep=MagicMock(),
        rng=lambda: 0.5,
    )


class TestRecoveryDecisions:
    """Test decide() for each error class."""

    @pytest.mark.parametrize("code", [
        ErrorCode.USER_CANCELLED, ErrorCode.TIMEOUT, ErrorCode.QUEUE_FULL, ErrorCode.POOL_TERMINATED,
    ])
    def test_never_recovered_codes_surface(self, code):
        """Cancellation, timeout, queue-full and shutdown are surfaced as is."""
        manager = make_manager()
        decision = manager.decide(make_task(), WorkerError("x", code), attempt=0)
        assert decision.action is RecoveryAction.SURFACE
        assert manager.get_error_stats().total_errors == 0

    def test_transient_error_retries_with_backoff(self):
        """Delays double per attempt."""
        manager = make_manager(max_retries=3, retry_delay_ms=100)
        task = make_task()
        error = WorkerError("boom", ErrorCode.PROCESSING_ERROR)
        delays = [manager.decide(task, error, attempt).delay_ms for attempt in range(3)]
        assert delays == [100, 200, 400]

    def test_jitter_adds_up_to_ten_percent(self):
        """Jitter scales with the injected random value."""
        manager = make_manager(retry_delay_ms=100, jitter=True)
        assert manager.retry_delay_ms(1) == pytest.approx(210.0)

    def test_exhausted_retries_fall_back(self):
        """After max_retries the fallback is chosen."""
        manager = make_manager(max_retries=2)
        decision = manager.decide(make_task(), WorkerError("boom"), attempt=2)
        assert decision.action is RecoveryAction.FALLBACK

    def test_input_errors_skip_fallback(self):
        """Invalid input and unsupported formats surface without fallback."""
        manager = make_manager()
        decision = manager.decide(make_task(), WorkerError("bad", ErrorCode.INVALID_INPUT), attempt=0)
        assert decision.action is RecoveryAction.SURFACE

    def test_no_fallback_strategy_surfaces(self):
        """With fallback disabled exhausted retries surface."""
        manager = make_manager(max_retries=0, fallback_strategy=FallbackStrategy.NONE)
        decision = manager.decide(make_task(), WorkerError("boom"), attempt=0)
        assert decision.action is RecoveryAction.SURFACE

    def test_escalation_after_threshold(self):
        """Enough recent errors escalate instead of retrying."""
        manager = make_manager(escalation_threshold=3, circuit_breaker_threshold=100)
        task = make_task()
        error = WorkerError("boom")
        actions = [manager.decide(task, error, attempt=0).action for _ in range(3)]
        assert actions == [RecoveryAction.RETRY, RecoveryAction.RETRY, RecoveryAction.ESCALATE]
        assert manager.get_error_stats().escalation_active

    def test_escalation_window_expires(self):
        """Errors older than the escalation window stop counting."""
        clock = FakeClock()
        manager = make_manager(clock=clock, escalation_threshold=2, circuit_breaker_threshold=100)
        manager.decide(make_task(), WorkerError("boom"), attempt=0)
        clock.advance(11 * 60)
        decision = manager.decide(make_task(), WorkerError("boom"), attempt=0)
        assert decision.action is RecoveryAction.RETRY
        stats = manager.get_error_stats()
        assert (stats.total_errors, stats.recent_errors) == (2, 1)


class TestCircuitBreaker:
    """Test circuit state transitions."""

    def test_opens_after_threshold(self):
        """Consecutive failures open the circuit."""
        breaker = CircuitBreaker(threshold=2, reset_ms=1000, clock=FakeClock())
        breaker.record_failure()
        assert breaker.state is CircuitState.CLOSED
        breaker.record_failure()
        assert breaker.state is CircuitState.OPEN
        assert not breaker.allow_request()

    def test_half_open_after_reset(self):
        """After reset_ms one request is let through; success closes."""
        clock = FakeClock()
        breaker = CircuitBreaker(threshold=1, reset_ms=1000, clock=clock)
        breaker.record_failure()
        clock.advance(1.0)
        assert breaker.state is CircuitState.HALF_OPEN
        assert breaker.allow_request()
        breaker.record_success()
        assert breaker.state is CircuitState.CLOSED

    def test_half_open_failure_reopens(self):
        """A failure while half-open opens the circuit again."""
        clock = FakeClock()
        breaker = CircuitBreaker(threshold=3, reset_ms=1000, clock=clock)
        for _ in range(3):
            breaker.record_failure()
        clock.advance(2.0)
        assert breaker.state is CircuitState.HALF_OPEN
        breaker.record_failure()
        assert breaker.state is CircuitState.OPEN

    def test_manager_tracks_breakers_per_format(self):
        """Transient failures only trip the failing format's circuit."""
        manager = make_manager(circuit_breaker_threshold=2, escalation_threshold=100)
        task = make_task()
        manager.decide(task, WorkerError("boom"), attempt=0)
        manager.decide(task, WorkerError("boom"), attempt=1)
        assert not manager.allow(task)
        assert manager.allow(make_task(format_type=FormatType.STUDY_NOTES))
        assert manager.circuit_states()[FormatType.TASK_LISTS.value] == CircuitState.OPEN.value


class TestResultCache:
    """Test the fingerprint cache."""

    def test_put_then_get(self):
        """A stored output is returned for the same content and format."""
        cache = ResultCache(expiration_ms=1000, clock=FakeClock())
        output = format_text(TextInput.from_text("- milk"), FormatType.SHOPPING_LISTS)
        cache.put("- milk", FormatType.SHOPPING_LISTS, output)
        assert cache.get("- milk", FormatType.SHOPPING_LISTS) is output
        assert cache.get("- milk", FormatType.TASK_LISTS) is None

    def test_expired_entries_not_returned(self):
        """Entries past expiration are dropped on read."""
        clock = FakeClock()
        cache = ResultCache(expiration_ms=1000, clock=clock)
        cache.put("x", FormatType.JOURNAL_NOTES, MagicMock())
        clock.advance(1.5)
        assert cache.get("x", FormatType.JOURNAL_NOTES) is None
        assert len(cache) == 0

    def test_purge_and_clear(self):
        """purge_expired() drops only old entries; clear() drops everything."""
        clock = FakeClock()
        cache = ResultCache(expiration_ms=1000, clock=clock)
        cache.put("old", FormatType.JOURNAL_NOTES, MagicMock())
        clock.advance(2.0)
        cache.put("new", FormatType.JOURNAL_NOTES, MagicMock())
        assert cache.purge_expired() == 1
        assert cache.clear() == 1

    def test_purge_during_read_of_expired_entry(self):
        """A purge racing a read of the same expired key neither raises nor double-deletes."""
        clock = FakeClock()
        cache = ResultCache(expiration_ms=1000, clock=clock)
        cache.put("x", FormatType.JOURNAL_NOTES, MagicMock())
        clock.advance(2.0)

        purged, errors = [], []

        def purge():
            try:
                purged.append(cache.purge_expired())
            except Exception as e:
                errors.append(e)

        purger = threading.Thread(target=purge)

        def racing_clock():
            # Start the purge while get() holds the key and is checking expiry
            if not purger.is_alive() and not purged:
                purger.start()
                purger.join(timeout=0.1)
            return clock()

        cache._clock = racing_clock
        assert cache.get("x", FormatType.JOURNAL_NOTES) is None
        purger.join(timeout=5.0)

        assert errors == []
        assert purged == [0]
        assert len(cache) == 0

    def test_key_locks_released_after_use(self):
        """Per-key locks are dropped once no thread uses them."""
        clock = FakeClock()
        cache = ResultCache(expiration_ms=1000, clock=clock)
        for content in ("a", "b", "c"):
            cache.put(content, FormatType.TASK_LISTS, MagicMock())
            cache.get(content, FormatType.TASK_LISTS)
        clock.advance(2.0)
        assert cache.purge_expired() == 3
        assert cache._key_locks == {}

    def test_fingerprint_depends_on_format(self):
        """The same content under two formats gets two keys."""
        assert (ResultCache.fingerprint("abc", FormatType.TASK_LISTS)
                != ResultCache.fingerprint("abc", FormatType.STUDY_NOTES))


class TestFallbacks:
    """Test the fallback strategies."""

    def test_simplified_output(self):
        """Simplified fallback returns cleaned text, low confidence and a warning."""
        manager = make_manager(fallback_strategy=FallbackStrategy.SIMPLIFIED)
        output = manager.run_fallback(make_task("line one\n\n\n\nline two"))
        assert output.content == "line one\n\nline two"
        assert output.metadata.confidence == SIMPLIFIED_CONFIDENCE
        assert output.warnings == (SIMPLIFIED_WARNING,)
        assert output.data.format_specific.format is FormatType.TASK_LISTS
        assert output.data.format_specific.tasks == []

    def test_client_side_fallback_uses_processor(self):
        """Client-side fallback formats with the configured processor."""
        processor = MagicMock(return_value="formatted")
        manager = make_manager(processor=processor)
        task = make_task()
        assert manager.run_fallback(task) == "formatted"
        processor.assert_called_once_with(task.input, FormatType.TASK_LISTS)

    def test_no_strategy_raises(self):
        """With no fallback configured run_fallback raises."""
        manager = make_manager(fallback_strategy=FallbackStrategy.NONE)
        with pytest.raises(WorkerError):
            manager.run_fallback(make_task())


class TestRunWithRecovery:
    """Test the synchronous retry/fallback/cache composition."""

    def test_success_is_cached(self):
        """A successful run is served from cache the second time."""
        manager = make_manager()
        spy = MagicMock(side_effect=format_text)
        task = make_task()
        first = manager.run_with_recovery(task, process=spy)
        second = manager.run_with_recovery(make_task(), process=spy)
        assert second is first
        assert spy.call_count == 1

    def test_caching_disabled_by_config(self):
        """cache_results=False always runs the processor."""
        manager = make_manager(cache_results=False)
        spy = MagicMock(side_effect=format_text)
        manager.run_with_recovery(make_task(), process=spy)
        manager.run_with_recovery(make_task(), process=spy)
        assert spy.call_count == 2

    def test_transient_failure_retried(self):
        """A failure followed by success returns the success after one sleep."""
        output = format_text(TextInput.from_text("- milk"), FormatType.SHOPPING_LISTS)
        process = MagicMock(side_effect=[RuntimeError("flaky"), output])
        manager = make_manager(max_retries=2, retry_delay_ms=50)
        assert manager.run_with_recovery(make_task(), process=process) is output
        manager._sleep.assert_called_once_with(0.05)

    def test_fallback_after_exhausted_retries(self):
        """Persistent failure ends in the simplified fallback."""
        process = MagicMock(side_effect=RuntimeError("broken"))
        manager = make_manager(max_retries=1, fallback_strategy=FallbackStrategy.SIMPLIFIED)
        output = manager.run_with_recovery(make_task(), process=process)
        assert process.call_count == 2
        assert output.warnings == (SIMPLIFIED_WARNING,)

    def test_original_error_when_fallback_fails(self):
        """If the fallback fails the original error surfaces."""
        process = MagicMock(side_effect=RuntimeError("broken"))
        fallback = MagicMock(side_effect=RuntimeError("fallback broken"))
        manager = make_manager(max_retries=0, processor=fallback)
        with pytest.raises(WorkerError) as exc_info:
            manager.run_with_recovery(make_task(), process=process)
        assert "broken" in exc_info.value.message
        assert "fallback" not in exc_info.value.message

    def test_cancellation_not_retried(self):
        """A cancelled task surfaces immediately."""
        process = MagicMock(side_effect=WorkerError("cancelled", ErrorCode.USER_CANCELLED))
        manager = make_manager()
        with pytest.raises(WorkerError) as exc_info:
            manager.run_with_recovery(make_task(), process=process)
        assert exc_info.value.code is ErrorCode.USER_CANCELLED
        assert process.call_count == 1

    def test_open_circuit_goes_straight_to_fallback(self):
        """While the circuit is open the processor is not called."""
        manager = make_manager(fallback_strategy=FallbackStrategy.SIMPLIFIED, circuit_breaker_threshold=1)
        task = make_task()
        manager.breaker_for(task).record_failure()
        process = MagicMock()
        output = manager.run_with_recovery(task, process=process)
        process.assert_not_called()
        assert output.warnings == (SIMPLIFIED_WARNING,)

    def test_reset_clears_history_and_circuits(self):
        """reset() forgets errors and breaker state."""
        manager = make_manager(circuit_breaker_threshold=1)
        task = make_task()
        manager.decide(task, WorkerError("boom"), attempt=0)
        manager.reset()
        assert manager.allow(task)
        assert manager.get_error_stats().total_errors == 0
