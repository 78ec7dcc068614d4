"""Decides which processes must never be offered for termination."""

import logging
from collections.abc import Callable

import psutil

from portkill.errors import IntrospectionDenied

logger = logging.getLogger(__name__)

# Kernel, session, service-host and shell processes. Compared lower-case, without ".exe".
PROTECTED_NAMES: frozenset[str] = frozenset(
    name.lower()
    for name in (
        "System",
        "System Idle Process",
        "Registry",
        "smss",
        "csrss",
        "wininit",
        "services",
        "lsass",
        "winlogon",
        "svchost",
        "dwm",
        "explorer",
        "taskhostw",
        "RuntimeBroker",
        "ApplicationFrameHost",
        "ShellExperienceHost",
        "SearchUI",
        "SearchApp",
        "StartMenuExperienceHost",
        "SystemSettings",
        "dllhost",
        "conhost",
        "fontdrvhost",
        "WUDFHost",
        "Memory Compression",
        "Secure System",
        "ntoskrnl",
        "audiodg",
    )
)

PROTECTED_PATH_PREFIXES: tuple[str, ...] = tuple(
    prefix.lower()
    for prefix in (
        "C:\\Windows\\System32",
        "C:\\Windows\\SysWOW64",
        "C:\\Windows\\explorer.exe",
        "C:\\Windows\\SystemApps",
    )
)

MAX_RESERVED_PID = 4


def normalize_name(name: str) -> str:
    """Lower-case a process name and strip a trailing ".exe"."""
    name = name.strip().lower()
    return name[:-4] if name.endswith(".exe") else name


def in_protected_path(path: str | None) -> bool:
    """Check whether ``path`` lies under one of the protected system directories."""
    if not path:
        return False
    return path.lower().startswith(PROTECTED_PATH_PREFIXES)


def _is_reserved_pid(pid: int, name: str, path: str | None) -> bool:
    return pid <= MAX_RESERVED_PID


def _has_protected_name(pid: int, name: str, path: str | None) -> bool:
    return bool(name) and normalize_name(name) in PROTECTED_NAMES


def _has_protected_path(pid: int, name: str, path: str | None) -> bool:
    return in_protected_path(path)


Rule = Callable[[int, str, str | None], bool]

# Evaluated in order; the first rule that matches marks the process protected.
RULES: tuple[tuple[str, Rule], ...] = (
    ("reserved pid", _is_reserved_pid),
    ("protected name", _has_protected_name),
    ("protected path", _has_protected_path),
)


def probe_executable(pid: int) -> str:
    """
    Read the executable path of a live process.

    Raises:
        IntrospectionDenied: If access is denied or the process is gone.
    """
    try:
        return psutil.Process(pid).exe()
    except psutil.AccessDenied as exc:
        raise IntrospectionDenied(pid, "access denied") from exc
    except psutil.ZombieProcess as exc:
        raise IntrospectionDenied(pid, "zombie process") from exc
    except psutil.NoSuchProcess as exc:
        raise IntrospectionDenied(pid, "process no longer exists") from exc


class SystemProcessClassifier:
    """
    Classifies processes as protected or terminable.

    Any process that cannot be fully vetted is protected: termination is
    irreversible, so every ambiguous case answers "do not allow".
    """

    def __init__(self, probe: Callable[[int], str] = probe_executable) -> None:
        """
        Initialize the classifier.

        Args:
            probe: Returns the executable path of a pid, raising
                IntrospectionDenied when the process cannot be inspected.
        """
        self._probe = probe

    def is_protected(self, pid: int, name: str, path: str | None = None) -> bool:
        """Return True if the process must not be offered for termination."""
        for label, rule in RULES:
            if rule(pid, name, path):
                logger.debug("PID %d (%s) protected: %s", pid, name, label)
                return True

        try:
            executable = self._probe(pid)
        except IntrospectionDenied as exc:
            logger.debug("PID %d (%s) protected: %s", pid, name, exc.reason)
            return True

        if not executable:
            logger.debug("PID %d (%s) protected: no executable path", pid, name)
            return True
        if in_protected_path(executable):
            logger.debug("PID %d (%s) protected: runs from %s", pid, name, executable)
            return True

        return False
