"""Exceptions raised by portkill."""


class PortKillError(Exception):
    """Base class for portkill errors."""


class PlatformUnsupported(PortKillError):
    """No port discovery or process management implementation exists for this host."""


class OperationCancelled(PortKillError):
    """The caller asked for the operation to stop before it completed."""


class EnumerationCancelled(OperationCancelled):
    """Port enumeration was cancelled; no partial result is returned."""


class InvalidArgument(PortKillError, ValueError):
    """A caller passed an argument that can never be valid (e.g. a missing binding)."""


class IntrospectionDenied(PortKillError):
    """A process could not be fully inspected."""

    def __init__(self, process_id: int, reason: str) -> None:
        super().__init__(f"cannot inspect process {process_id}: {reason}")
        self.process_id = process_id
        self.reason = reason
