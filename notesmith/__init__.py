"""
NoteSmith - turns free-form text into structured notes.

Six formats are supported: meeting notes, task lists, shopping lists,
journal notes, research notes and study notes. Each format engine runs the
same pipeline (sanitize → classify → organize → render) and returns a
FormattedOutput holding the rendered text plus a typed document model.

Components:
    format_text / detect_format - Synchronous entry points (notesmith.formatting)
    WorkerPool / ProcessingTask - Concurrent formatting (notesmith.parallel)
    ErrorRecoveryManager - Retries, fallback, caching, circuit breakers
    TextInput / FormattedOutput / FormatType - Core data model

Usage Example:
    from notesmith import FormatType, TextInput, format_text

    output = format_text(TextInput.from_text(raw), FormatType.MEETING_NOTES)
    print(output.content)
"""

from .errors import ErrorCode, NoteSmithError, TaskCancelledError, TaskTimeoutError, WorkerError
from .models import FormattedOutput, FormatType, InputSource, TextInput
from .formatting import FormatDetectionResult, detect_format, format_text, get_engine
from .recovery import ErrorRecoveryManager, FallbackStrategy, RecoveryConfig
from .parallel import (
    CancellationContext,
    PoolConfig,
    ProcessingOptions,
    ProcessingTask,
    TaskPriority,
    TaskResult,
    TaskStatus,
    WorkerPool,
)

__version__ = "0.1.0"

__all__ = [
    # Data model
    'FormatType',
    'InputSource',
    'TextInput',
    'FormattedOutput',
    # Formatting
    'format_text',
    'get_engine',
    'detect_format',
    'FormatDetectionResult',
    # Worker layer
    'WorkerPool',
    'PoolConfig',
    'ProcessingTask',
    'ProcessingOptions',
    'TaskPriority',
    'TaskResult',
    'TaskStatus',
    'CancellationContext',
    # Recovery
    'ErrorRecoveryManager',
    'RecoveryConfig',
    'FallbackStrategy',
    # Errors
    'ErrorCode',
    'NoteSmithError',
    'WorkerError',
    'TaskCancelledError',
    'TaskTimeoutError',
]
