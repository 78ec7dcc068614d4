"""Process termination with a privileged-handle fallback."""

import ctypes
import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Protocol as TypingProtocol

import psutil

from portkill.config import DEFAULT_SETTINGS, Settings
from portkill.errors import OperationCancelled
from portkill.models import TerminationOutcome

logger = logging.getLogger(__name__)

# Win32 constants
PROCESS_TERMINATE = 0x0001
ERROR_ACCESS_DENIED = 5
FORCED_EXIT_CODE = 1

ACCESS_DENIED_MESSAGE = "Access denied. Try running as administrator."


class HandleError(Exception):
    """OpenProcess returned no handle."""

    def __init__(self, pid: int, code: int) -> None:
        super().__init__(f"cannot open process {pid} (error {code})")
        self.pid = pid
        self.code = code

    @property
    def access_denied(self) -> bool:
        return self.code == ERROR_ACCESS_DENIED


class ProcessApi(TypingProtocol):
    """The subset of kernel32 used for forced termination."""

    def open_process(self, access: int, inherit: bool, pid: int) -> int | None: ...

    def terminate_process(self, handle: int, exit_code: int) -> bool: ...

    def close_handle(self, handle: int) -> bool: ...

    def last_error(self) -> int: ...


class Kernel32:
    """ctypes binding for OpenProcess / TerminateProcess / CloseHandle."""

    def __init__(self) -> None:
        from ctypes import wintypes

        dll = ctypes.WinDLL("kernel32", use_last_error=True)

        self._open_process = dll.OpenProcess
        self._open_process.argtypes = [wintypes.DWORD, wintypes.BOOL, wintypes.DWORD]
        self._open_process.restype = wintypes.HANDLE

        self._terminate_process = dll.TerminateProcess
        self._terminate_process.argtypes = [wintypes.HANDLE, wintypes.UINT]
        self._terminate_process.restype = wintypes.BOOL

        self._close_handle = dll.CloseHandle
        self._close_handle.argtypes = [wintypes.HANDLE]
        self._close_handle.restype = wintypes.BOOL

    def open_process(self, access: int, inherit: bool, pid: int) -> int | None:
        return self._open_process(access, inherit, pid)

    def terminate_process(self, handle: int, exit_code: int) -> bool:
        return bool(self._terminate_process(handle, exit_code))

    def close_handle(self, handle: int) -> bool:
        return bool(self._close_handle(handle))

    def last_error(self) -> int:
        return ctypes.get_last_error()


@contextmanager
def process_handle(api: ProcessApi, pid: int, access: int = PROCESS_TERMINATE) -> Iterator[int]:
    """
    Open a process handle and close it on exit, whatever happens inside the block.

    Raises:
        HandleError: If the handle cannot be opened.
    """
    handle = api.open_process(access, False, pid)
    if not handle:
        raise HandleError(pid, api.last_error())
    try:
        yield handle
    finally:
        api.close_handle(handle)


def _check_cancelled(cancel_event: threading.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelled("process termination cancelled")


def _failure(pid: int, action: str, code: int) -> TerminationOutcome:
    if code == ERROR_ACCESS_DENIED:
        return TerminationOutcome.failed(pid, ACCESS_DENIED_MESSAGE, permission_denied=True)
    return TerminationOutcome.failed(pid, f"{action}. Error code: {code}")


class ProcessTerminator(ABC):
    """Terminates processes and checks whether that is likely to be permitted."""

    @abstractmethod
    def terminate(
        self, pid: int, cancel_event: threading.Event | None = None
    ) -> TerminationOutcome:
        """Terminate ``pid``. Failures are reported in the outcome, not raised."""

    @abstractmethod
    def can_terminate(self, pid: int) -> bool:
        """Advisory check that the current user may terminate ``pid``."""


class WindowsProcessTerminator(ProcessTerminator):
    """
    Two-tier process termination for Windows.

    The cooperative tier asks psutil to terminate the process and waits for
    it to exit. Only when that call is refused with AccessDenied does the
    forced tier open a PROCESS_TERMINATE handle and call TerminateProcess.
    """

    def __init__(
        self,
        settings: Settings = DEFAULT_SETTINGS,
        api: ProcessApi | None = None,
    ) -> None:
        """
        Initialize the terminator.

        Args:
            settings: Supplies the exit timeout and wait slice length.
            api: kernel32 binding. Defaults to the real ctypes binding.
        """
        self._timeout = settings.termination_timeout
        self._interval = settings.wait_interval
        self._api: ProcessApi = api if api is not None else Kernel32()

    def terminate(
        self, pid: int, cancel_event: threading.Event | None = None
    ) -> TerminationOutcome:
        if pid <= 0:
            return TerminationOutcome.failed(pid, "Process not found.")

        _check_cancelled(cancel_event)

        try:
            proc = psutil.Process(pid)
            if not proc.is_running():
                logger.info("PID %d has already exited", pid)
                return TerminationOutcome.succeeded(pid)
            proc.terminate()
        except psutil.NoSuchProcess:
            # A pid with no live process is indistinguishable from one that just
            # exited, so both report success; only pid <= 0 is "not found"
            logger.info("PID %d has already exited", pid)
            return TerminationOutcome.succeeded(pid)
        except psutil.AccessDenied:
            logger.info("Terminating PID %d was refused; opening a terminate handle", pid)
            return self._terminate_with_handle(pid, cancel_event)
        except OSError as exc:
            logger.warning("Failed to terminate PID %d: %s", pid, exc)
            return TerminationOutcome.failed(pid, f"Failed to terminate process: {exc}")

        return self._wait_for_exit(proc, cancel_event)

    def can_terminate(self, pid: int) -> bool:
        try:
            with process_handle(self._api, pid):
                return True
        except HandleError as exc:
            return not exc.access_denied

    def _wait_for_exit(
        self, proc: psutil.Process, cancel_event: threading.Event | None
    ) -> TerminationOutcome:
        pid = proc.pid
        deadline = time.monotonic() + self._timeout

        while True:
            remaining = deadline - time.monotonic()
            try:
                proc.wait(timeout=max(0.0, min(self._interval, remaining)))
            except psutil.TimeoutExpired:
                pass
            except psutil.NoSuchProcess:
                pass
            except psutil.AccessDenied:
                return TerminationOutcome.failed(pid, ACCESS_DENIED_MESSAGE, permission_denied=True)
            else:
                logger.info("PID %d terminated", pid)
                return TerminationOutcome.succeeded(pid)

            if not proc.is_running():
                logger.info("PID %d terminated", pid)
                return TerminationOutcome.succeeded(pid)
            _check_cancelled(cancel_event)
            if time.monotonic() >= deadline:
                logger.warning("PID %d still running after %.1fs", pid, self._timeout)
                return TerminationOutcome.failed(
                    pid, "Process did not terminate within the timeout period."
                )

    def _terminate_with_handle(
        self, pid: int, cancel_event: threading.Event | None
    ) -> TerminationOutcome:
        _check_cancelled(cancel_event)

        try:
            with process_handle(self._api, pid) as handle:
                if not self._api.terminate_process(handle, FORCED_EXIT_CODE):
                    code = self._api.last_error()
                    logger.warning("TerminateProcess failed for PID %d (error %d)", pid, code)
                    return _failure(pid, "Failed to terminate process", code)
        except HandleError as exc:
            logger.warning("OpenProcess failed for PID %d (error %d)", pid, exc.code)
            return _failure(pid, "Failed to open process", exc.code)

        logger.info("PID %d terminated through its process handle", pid)
        return TerminationOutcome.succeeded(pid)
