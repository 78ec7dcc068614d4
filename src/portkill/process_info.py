"""Process metadata lookup for port owners."""

import logging
from datetime import datetime

import psutil

from portkill.classifier import SystemProcessClassifier
from portkill.models import ProcessRecord

logger = logging.getLogger(__name__)

UNKNOWN_PROCESS = ProcessRecord(name="Unknown", path=None, start_time=None, is_system_process=True)


def process_start_time(pid: int) -> datetime | None:
    """Best-effort start time of a process, or None when it cannot be read."""
    try:
        return datetime.fromtimestamp(psutil.Process(pid).create_time())
    except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
        return None


class ProcessInfoGatherer:
    """Builds a fresh ProcessRecord for a pid on every call."""

    def __init__(self, classifier: SystemProcessClassifier | None = None) -> None:
        self._classifier = classifier if classifier is not None else SystemProcessClassifier()

    def describe(self, pid: int) -> ProcessRecord:
        """
        Describe the process with the given pid.

        Never raises. A process that cannot be looked up at all comes back as
        "Unknown" and protected, so it is never offered for termination.
        """
        try:
            proc = psutil.Process(pid)
            with proc.oneshot():
                name = proc.name()
                path: str | None = None
                start_time: datetime | None = None
                try:
                    path = proc.exe() or None
                    start_time = datetime.fromtimestamp(proc.create_time())
                except (psutil.AccessDenied, psutil.ZombieProcess):
                    # Path stays unknown; the start time may still be readable
                    path = None
                    start_time = process_start_time(pid)
        except (psutil.NoSuchProcess, psutil.AccessDenied, ValueError, OSError) as exc:
            # ValueError: psutil rejects negative pids
            logger.debug("Cannot describe PID %d: %s", pid, exc)
            return UNKNOWN_PROCESS

        is_system = self._classifier.is_protected(pid, name, path)
        return ProcessRecord(
            name=name or "Unknown",
            path=path,
            start_time=start_time,
            is_system_process=is_system,
        )
