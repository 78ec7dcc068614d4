"""Owner lookup through the ``netstat -ano`` connection table."""

import logging
import subprocess

from portkill.config import DEFAULT_SETTINGS, Settings
from portkill.models import Protocol

logger = logging.getLogger(__name__)


class NetstatRunner:
    """Runs netstat and returns its standard output.

    Failures never propagate: a missing executable, a non-zero exit or a
    timeout all yield an empty table, which callers read as "no owner".
    """

    def __init__(self, settings: Settings = DEFAULT_SETTINGS) -> None:
        self._command = list(settings.netstat_command)
        self._timeout = settings.netstat_timeout

    def run(self) -> str:
        """Return the connection table text, or "" when netstat could not be run."""
        try:
            result = subprocess.run(
                self._command,
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            logger.warning("Could not run %s: %s", " ".join(self._command), exc)
            return ""

        if result.returncode != 0:
            logger.warning(
                "%s exited with status %d", " ".join(self._command), result.returncode
            )
            return ""
        return result.stdout or ""


def _protocol_prefix(protocol: Protocol) -> str:
    return protocol.base.value


def _extract_pid(columns: list[str]) -> int:
    try:
        pid = int(columns[-1])
    except ValueError:
        return 0
    return pid if pid > 0 else 0


def parse_owner_pid(table: str, port: int, protocol: Protocol) -> int:
    """
    Find the owning process id of ``port`` in netstat output.

    A row matches when its protocol column starts with TCP/UDP (matching the
    base of ``protocol``) and its local address column ends with ``:<port>``.
    The foreign address is never consulted, and ``:80`` does not match
    ``:8080``. The first matching row with a positive integer in its last
    column wins.

    Args:
        table: Raw ``netstat -ano`` output. May be empty or truncated.
        port: Port number to look up.
        protocol: Requested protocol; IPv6 variants match their base rows.

    Returns:
        The process id, or 0 when no row matches.
    """
    if not table or not table.strip():
        return 0

    prefix = _protocol_prefix(protocol)
    suffix = f":{port}"

    for line in table.splitlines():
        columns = line.split()
        if len(columns) < 2:
            continue
        if not columns[0].upper().startswith(prefix):
            continue
        if not columns[1].endswith(suffix):
            continue
        pid = _extract_pid(columns)
        if pid > 0:
            return pid

    return 0


class OwnerResolver:
    """Maps (port, protocol) pairs to owning process ids."""

    def __init__(self, runner: NetstatRunner | None = None) -> None:
        self._runner = runner if runner is not None else NetstatRunner()

    def snapshot(self) -> str:
        """Capture the connection table once, for reuse across many lookups."""
        return self._runner.run()

    def resolve_owner(self, port: int, protocol: Protocol, table: str | None = None) -> int:
        """Return the owning pid of ``port``, or 0 if none was found.

        When ``table`` is omitted netstat is invoked for this lookup alone.
        """
        if table is None:
            table = self.snapshot()
        pid = parse_owner_pid(table, port, protocol)
        if pid == 0:
            logger.debug("No owner found for %s:%d", protocol.value, port)
        return pid
