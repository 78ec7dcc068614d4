"""Runs blocking service calls off the UI thread."""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from queue import Queue
from typing import Any

from portkill.errors import OperationCancelled
from portkill.models import PortBinding
from portkill.service import PortKillerService

logger = logging.getLogger(__name__)


class JobKind(Enum):
    """Kinds of background job."""

    SCAN = "scan"
    TERMINATE = "terminate"


@dataclass(slots=True)
class JobResult:
    """Outcome of one background job, pushed to the result queue."""

    kind: JobKind
    value: Any = None  # list[PortBinding] for scans, TerminationOutcome for terminations
    error: Exception | None = None
    cancelled: bool = False


class ScanRunner:
    """
    Runs one service call at a time in a daemon thread.

    Results are pushed to a thread-safe Queue that the UI drains on a timer.
    Each job gets its own cancellation event; ``cancel()`` sets it.
    """

    def __init__(self, service: PortKillerService, result_queue: Queue[JobResult]) -> None:
        """
        Initialize the ScanRunner.

        Args:
            service: Facade used for scans and terminations.
            result_queue: Thread-safe queue to push results to.
        """
        self._service = service
        self._queue = result_queue
        self._cancel_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._busy = threading.Event()

    @property
    def is_running(self) -> bool:
        """Check if a job is in progress."""
        return self._busy.is_set()

    def scan(self) -> bool:
        """Start a port scan. Returns False if another job is still running."""
        return self._start(JobKind.SCAN, self._service.get_active_ports)

    def terminate(self, binding: PortBinding) -> bool:
        """Start terminating the owner of ``binding``. Returns False if busy."""
        return self._start(
            JobKind.TERMINATE,
            lambda event: self._service.terminate_process(binding, event),
        )

    def request_cancel(self) -> None:
        """Ask the running job to stop without waiting for it.

        The job reports the cancellation through the result queue.
        """
        self._cancel_event.set()

    def cancel(self, timeout: float | None = 5.0) -> None:
        """
        Cancel the running job and wait for its thread.

        Args:
            timeout: How long to wait for the thread to stop (seconds).
        """
        self.request_cancel()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _start(self, kind: JobKind, job: Callable[[threading.Event], Any]) -> bool:
        if self.is_running:
            return False

        self._busy.set()
        self._cancel_event = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            args=(kind, job, self._cancel_event),
            daemon=True,
            name=f"ScanRunner-{kind.value}",
        )
        self._thread.start()
        return True

    def _run(
        self, kind: JobKind, job: Callable[[threading.Event], Any], cancel_event: threading.Event
    ) -> None:
        try:
            result = JobResult(kind, value=job(cancel_event))
        except OperationCancelled:
            logger.debug("%s job cancelled", kind.value)
            result = JobResult(kind, cancelled=True)
        except Exception as exc:
            logger.exception("%s job failed", kind.value)
            result = JobResult(kind, error=exc)

        # Cleared before publishing: a consumer may start the next job on receipt
        self._busy.clear()
        self._queue.put(result)
