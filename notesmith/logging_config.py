"""
Unified Logging Configuration for NoteSmith

Two sinks:
- logs/debug_flow.txt: every message, timestamped, one trace per session
- logs/processing.log: info and above through the standard logging module
  (console too when DEBUG_MODE is on)

Pool workers, the controller thread and the fallback executor all log at
once, so trace writes go through a lock and each line is flushed.

All modules import their logging functions from here:
    from notesmith.logging_config import debug_log, info, warning, error, Timer

Messages are prefixed with a bracketed component tag, e.g.
"[POOL] worker-1 ready" or "[RESEARCH] 3 topics detected".
"""

import atexit
import logging
import sys
import threading
import time
from datetime import datetime

from notesmith.config import (
    DEBUG_MODE,
    DEBUG_TRACE_FILE,
    LOG_DATE_FORMAT,
    LOG_FILE,
    LOG_FORMAT,
)


class _TraceFile:
    """Session trace at DEBUG_TRACE_FILE, opened on first use."""

    def __init__(self, path):
        self.path = path
        self._file = None
        self._opened = False
        self._lock = threading.Lock()

    def _open(self):
        # Caller holds _lock
        self._opened = True
        try:
            self._file = open(self.path, 'w', encoding='utf-8')
        except OSError as e:
            print(f"[LOGGING] Trace file unavailable ({e}), tracing disabled", file=sys.stderr)
            return
        self._file.write(f"=== NoteSmith trace, started {datetime.now().isoformat()} "
                         f"(DEBUG_MODE={DEBUG_MODE}) ===\n\n")

    def write(self, message: str):
        with self._lock:
            if not self._opened:
                self._open()
            if self._file is None:
                return
            stamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
            thread = threading.current_thread().name
            self._file.write(f"[{stamp}] ({thread}) {message}\n")
            self._file.flush()

    def close(self):
        with self._lock:
            if self._file is not None:
                self._file.write(f"\n=== ended {datetime.now().isoformat()} ===\n")
                self._file.close()
                self._file = None


_trace = _TraceFile(DEBUG_TRACE_FILE)
atexit.register(_trace.close)


def _build_logger() -> logging.Logger:
    logger = logging.getLogger('NoteSmith')
    logger.setLevel(logging.DEBUG if DEBUG_MODE else logging.INFO)
    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    try:
        file_handler = logging.FileHandler(LOG_FILE, encoding='utf-8')
    except OSError as e:
        _trace.write(f"[LOGGING] Could not open {LOG_FILE}: {e}")
    else:
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if DEBUG_MODE:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)
    return logger


_logger = _build_logger()


class Timer:
    """
    Times a block with time.perf_counter().

    Usage:
        with Timer("[ENGINE] study-notes") as timer:
            ...
        timer.duration_ms

    With auto_log the duration is written to the trace on exit.
    """

    def __init__(self, operation_name: str, auto_log: bool = True):
        self.operation_name = operation_name
        self.auto_log = auto_log
        self.duration_ms: float | None = None
        self._start: float | None = None

    def __enter__(self):
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.perf_counter() - self._start) * 1000
        if self.auto_log:
            outcome = "failed after" if exc_type is not None else "took"
            debug_log(f"{self.operation_name} {outcome} {self.duration_ms:.1f} ms")
        return False


def debug_log(message: str):
    """
    Trace a message; echo it to the console when DEBUG_MODE is on.

    Example:
        debug_log("[POOL] Spawned worker-2")
    """
    _trace.write(message)
    if DEBUG_MODE:
        stamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
        print(f"[{stamp}] {message}", flush=True)


def info(message: str):
    _trace.write(f"[INFO] {message}")
    _logger.info(message)


def warning(message: str):
    _trace.write(f"[WARNING] {message}")
    _logger.warning(message)


def error(message: str, exc_info: bool = False):
    """
    Log an error. The traceback is only attached in DEBUG_MODE.
    """
    _trace.write(f"[ERROR] {message}")
    _logger.error(message, exc_info=exc_info and DEBUG_MODE)


__all__ = [
    'debug_log',
    'info',
    'warning',
    'error',
    'Timer',
    'DEBUG_MODE',
]
