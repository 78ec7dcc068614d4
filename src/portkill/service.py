"""The facade the interactive shell talks to."""

import logging
import threading

from portkill.discovery import PortDiscovery, newest_first
from portkill.errors import InvalidArgument
from portkill.models import PortBinding, TerminationOutcome
from portkill.termination import ProcessTerminator

logger = logging.getLogger(__name__)


class PortKillerService:
    """
    Composes port discovery and process termination.

    This is the only entry point the UI uses. It adds a deterministic order
    on top of whatever the discovery layer returns.
    """

    def __init__(self, discovery: PortDiscovery, terminator: ProcessTerminator) -> None:
        if discovery is None:
            raise InvalidArgument("discovery is required")
        if terminator is None:
            raise InvalidArgument("terminator is required")
        self._discovery = discovery
        self._terminator = terminator

    def get_active_ports(self, cancel_event: threading.Event | None = None) -> list[PortBinding]:
        """Return terminable bindings, newest first, then by port and protocol."""
        bindings = self._discovery.discover(cancel_event)
        by_port = sorted(bindings, key=lambda b: (b.port, b.protocol.ordinal))
        return newest_first(by_port)

    def terminate_process(
        self, binding: PortBinding, cancel_event: threading.Event | None = None
    ) -> TerminationOutcome:
        """Terminate the process that owns ``binding``."""
        if binding is None:
            raise InvalidArgument("binding is required")
        logger.info("Terminating %s", binding)
        return self._terminator.terminate(binding.process_id, cancel_event)

    def can_terminate_process(self, binding: PortBinding) -> bool:
        """Advisory permission check for the owner of ``binding``."""
        if binding is None:
            raise InvalidArgument("binding is required")
        return self._terminator.can_terminate(binding.process_id)
