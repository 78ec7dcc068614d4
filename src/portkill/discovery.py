"""Port discovery: which sockets are bound, and by whom."""

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator
from datetime import datetime
from typing import Any

import psutil

from portkill.errors import EnumerationCancelled
from portkill.models import PortBinding, Protocol, resolve_protocol
from portkill.netstat import OwnerResolver
from portkill.process_info import ProcessInfoGatherer

logger = logging.getLogger(__name__)

LISTENING = "LISTENING"

ConnectionSource = Callable[[str], Iterable[Any]]


def newest_first(bindings: Iterable[PortBinding]) -> list[PortBinding]:
    """
    Order bindings by creation time, newest first.

    Bindings without a creation time are treated as the oldest. The sort is
    stable, so any existing order among equal timestamps is preserved.
    """
    return sorted(
        bindings,
        key=lambda b: (b.created_at is not None, b.created_at or datetime.min),
        reverse=True,
    )


class PortDiscovery(ABC):
    """Lists the socket bindings on this host that a user may terminate."""

    @abstractmethod
    def discover(self, cancel_event: threading.Event | None = None) -> list[PortBinding]:
        """
        Return the bindings owned by terminable processes.

        Raises:
            EnumerationCancelled: If ``cancel_event`` is set during the scan.
        """


class WindowsPortDiscovery(PortDiscovery):
    """
    Port discovery for Windows hosts.

    Socket tables come from psutil; owners are resolved against a single
    ``netstat -ano`` snapshot taken at the start of each scan, then
    described with psutil and filtered through the system-process classifier.
    """

    def __init__(
        self,
        resolver: OwnerResolver | None = None,
        gatherer: ProcessInfoGatherer | None = None,
        connections: ConnectionSource = psutil.net_connections,
    ) -> None:
        self._resolver = resolver if resolver is not None else OwnerResolver()
        self._gatherer = gatherer if gatherer is not None else ProcessInfoGatherer()
        self._connections = connections

    def discover(self, cancel_event: threading.Event | None = None) -> list[PortBinding]:
        table = self._resolver.snapshot()
        bindings: list[PortBinding] = []

        for conn, base, state in self._entries():
            if cancel_event is not None and cancel_event.is_set():
                raise EnumerationCancelled("port enumeration cancelled")

            try:
                binding = self._build_binding(conn, base, state, table)
            except Exception as exc:
                # A process may exit or change mid-scan; drop just this entry
                logger.debug("Dropping socket %s: %s", getattr(conn, "laddr", None), exc)
                continue

            if binding is not None:
                bindings.append(binding)

        logger.debug("Discovered %d terminable bindings", len(bindings))
        return newest_first(sorted(bindings, key=lambda b: b.port))

    def _entries(self) -> Iterator[tuple[Any, Protocol, str | None]]:
        """Yield (socket, base protocol, state) for connections, then TCP and UDP listeners."""
        tcp = [c for c in self._connections("tcp") if c.laddr]
        for conn in tcp:
            if conn.status != psutil.CONN_LISTEN:
                yield conn, Protocol.TCP, conn.status
        for conn in tcp:
            if conn.status == psutil.CONN_LISTEN:
                yield conn, Protocol.TCP, LISTENING
        for conn in self._connections("udp"):
            if conn.laddr:
                yield conn, Protocol.UDP, None

    def _build_binding(
        self, conn: Any, base: Protocol, state: str | None, table: str
    ) -> PortBinding | None:
        port = conn.laddr.port
        pid = self._resolver.resolve_owner(port, base, table)
        if pid == 0:
            return None

        record = self._gatherer.describe(pid)
        if record.is_system_process:
            return None

        remote = None
        if base is Protocol.TCP and conn.raddr:
            remote = f"{conn.raddr.ip}:{conn.raddr.port}"

        return PortBinding(
            port=port,
            protocol=resolve_protocol(base, conn.family),
            process_id=pid,
            process_name=record.name,
            local_address=conn.laddr.ip,
            remote_address=remote,
            state=state,
            process_path=record.path,
            created_at=record.start_time,
            is_system_process=False,
        )
