"""
Format Worker Thread

Each FormatWorker is a daemon thread with its own inbox. The pool sends it
(message_type, payload) tuples; the worker answers by posting events to the
pool's event queue. Workers never read or write the pool's roster, so the
pool controller is the only place worker state changes.

Messages handled:
- process_text: Run the format engine on a ProcessingTask
- get_status: Report the worker's counters
- terminate: Leave the message loop

Events posted, as (event, worker_id, generation, payload):
- ready, progress, completed, failed, status, error, terminated

``generation`` increases each time the pool restarts a worker under the
same id, so the controller can ignore reports from the thread it replaced.
"""

import threading
import time
from enum import Enum
from queue import Queue
from typing import Callable

from notesmith.errors import ErrorCode, WorkerError
from notesmith.formatting.facade import format_text
from notesmith.logging_config import debug_log
from notesmith.parallel.tasks import ProcessingTask

# processor(text_input, format_type, context=..., on_progress=...) -> FormattedOutput
Processor = Callable[..., object]


class WorkerMessage(str, Enum):
    PROCESS_TEXT = "process_text"
    GET_STATUS = "get_status"
    TERMINATE = "terminate"


class WorkerEvent(str, Enum):
    READY = "ready"
    PROGRESS = "progress"
    COMPLETED = "completed"
    FAILED = "failed"
    STATUS = "status"
    ERROR = "error"
    TERMINATED = "terminated"


class FormatWorker(threading.Thread):
    """
    Executes one ProcessingTask at a time.

    Attributes:
        worker_id: Stable id assigned by the pool.
        generation: Restart counter for this worker id.
        inbox: Queue of (message_type, payload) tuples from the pool.
        event_queue: The pool's event queue.
        processor: Formatting callable; defaults to the format facade.
    """

    def __init__(self, worker_id: str, event_queue: Queue, processor: Processor | None = None,
                 generation: int = 0):
        super().__init__(name=f"notesmith-{worker_id}-{generation}", daemon=True)
        self.worker_id = worker_id
        self.generation = generation
        self.inbox: Queue = Queue()
        self.event_queue = event_queue
        self.processor = processor or format_text
        self._tasks_handled = 0
        self._handlers = {
            WorkerMessage.PROCESS_TEXT.value: self._handle_process_text,
            WorkerMessage.GET_STATUS.value: self._handle_get_status,
        }

    def send(self, message_type, payload=None) -> None:
        """Queue a message for this worker. Safe from any thread."""
        self.inbox.put((message_type, payload))

    def terminate(self) -> None:
        self.send(WorkerMessage.TERMINATE)

    def _post(self, event: WorkerEvent, payload=None) -> None:
        self.event_queue.put((event, self.worker_id, self.generation, payload))

    def run(self):
        debug_log(f"[WORKER {self.worker_id}] Started (generation {self.generation})")
        self._post(WorkerEvent.READY)

        while True:
            message_type, payload = self.inbox.get()
            key = message_type.value if isinstance(message_type, Enum) else message_type
            if key == WorkerMessage.TERMINATE.value:
                break

            handler = self._handlers.get(key)
            if handler is None:
                debug_log(f"[WORKER {self.worker_id}] Unknown message type: {key}")
                self._post(WorkerEvent.ERROR, WorkerError(
                    f"Unknown message type: {key}",
                    ErrorCode.UNKNOWN_MESSAGE_TYPE,
                    context={'worker_id': self.worker_id},
                ))
                continue

            try:
                handler(payload)
            except Exception as e:
                debug_log(f"[WORKER {self.worker_id}] Error handling {key}: {e}")
                self._post(WorkerEvent.ERROR, WorkerError.from_exception(
                    e, ErrorCode.MESSAGE_HANDLING_ERROR,
                    context={'worker_id': self.worker_id, 'message_type': key},
                ))

        debug_log(f"[WORKER {self.worker_id}] Terminated after {self._tasks_handled} tasks")
        self._post(WorkerEvent.TERMINATED)

    def _handle_process_text(self, task: ProcessingTask) -> None:
        task_id = task.task_id

        def on_progress(percent: int, step: str):
            self._post(WorkerEvent.PROGRESS, (task_id, percent, step))

        start = time.perf_counter()
        try:
            format_type = task.resolve_format()
            output = self.processor(task.input, format_type, context=task.cancellation,
                                    on_progress=on_progress)
        except Exception as e:
            error = WorkerError.from_exception(
                e, ErrorCode.PROCESSING_ERROR,
                context={'task_id': task_id, 'worker_id': self.worker_id},
            )
            self._post(WorkerEvent.FAILED, (task_id, error, (time.perf_counter() - start) * 1000))
        else:
            self._post(WorkerEvent.COMPLETED, (task_id, output, (time.perf_counter() - start) * 1000))
        finally:
            self._tasks_handled += 1

    def _handle_get_status(self, payload) -> None:
        self._post(WorkerEvent.STATUS, {
            'worker_id': self.worker_id,
            'generation': self.generation,
            'tasks_handled': self._tasks_handled,
            'alive': self.is_alive(),
        })

    def __repr__(self) -> str:
        return f"FormatWorker(id={self.worker_id!r}, generation={self.generation})"
