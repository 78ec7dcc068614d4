"""Data models for portkill."""

import socket
from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Protocol(Enum):
    """Socket protocols. Declaration order is the display sort order."""

    TCP = "TCP"
    UDP = "UDP"
    TCPv6 = "TCPv6"
    UDPv6 = "UDPv6"

    @property
    def ordinal(self) -> int:
        """Position of the member in declaration order."""
        return list(Protocol).index(self)

    @property
    def base(self) -> "Protocol":
        """The protocol without its address family suffix."""
        return Protocol.UDP if self in (Protocol.UDP, Protocol.UDPv6) else Protocol.TCP


def resolve_protocol(base: Protocol, family: int) -> Protocol:
    """Resolve TCP/UDP into its IPv6 variant when the address family is AF_INET6."""
    if family == socket.AF_INET6:
        return Protocol.TCPv6 if base.base is Protocol.TCP else Protocol.UDPv6
    return base.base


@dataclass(slots=True, frozen=True)
class PortBinding:
    """Immutable record of one socket binding and the process that owns it."""

    port: int  # 0 - 65535
    protocol: Protocol
    process_id: int  # 0 when no owner was resolved
    process_name: str
    local_address: str
    remote_address: str | None = None
    state: str | None = None  # 'LISTENING', 'ESTABLISHED', ... ; None for UDP
    process_path: str | None = None
    created_at: datetime | None = None
    is_system_process: bool = False

    def __str__(self) -> str:
        return f"{self.protocol.value}:{self.port} - {self.process_name} (PID: {self.process_id})"


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """Process metadata gathered for a single owner lookup."""

    name: str
    path: str | None
    start_time: datetime | None
    is_system_process: bool


@dataclass(slots=True, frozen=True)
class TerminationOutcome:
    """Result of one attempt to terminate a process."""

    process_id: int
    success: bool
    error_message: str | None = None
    is_permission_denied: bool = False

    def __post_init__(self) -> None:
        if self.success == (self.error_message is not None):
            raise ValueError("an outcome is either a success or carries an error message")

    @classmethod
    def succeeded(cls, process_id: int) -> "TerminationOutcome":
        return cls(process_id=process_id, success=True)

    @classmethod
    def failed(
        cls,
        process_id: int,
        error_message: str,
        permission_denied: bool = False,
    ) -> "TerminationOutcome":
        return cls(
            process_id=process_id,
            success=False,
            error_message=error_message,
            is_permission_denied=permission_denied,
        )
