"""Selects the port discovery and termination implementations for the host OS."""

import sys

from portkill.config import DEFAULT_SETTINGS, Settings
from portkill.discovery import PortDiscovery, WindowsPortDiscovery
from portkill.errors import PlatformUnsupported
from portkill.netstat import NetstatRunner, OwnerResolver
from portkill.service import PortKillerService
from portkill.termination import ProcessTerminator, WindowsProcessTerminator

WINDOWS = "Windows"
LINUX = "Linux"
MACOS = "macOS"
UNKNOWN = "Unknown"


def current_platform(platform: str | None = None) -> str:
    """Return a readable name for ``platform`` (defaults to ``sys.platform``)."""
    platform = sys.platform if platform is None else platform
    if platform.startswith(("win32", "cygwin")):
        return WINDOWS
    if platform.startswith("linux"):
        return LINUX
    if platform == "darwin":
        return MACOS
    return UNKNOWN


def _ensure_supported(platform: str | None) -> None:
    name = current_platform(platform)
    if name == WINDOWS:
        return
    if name in (LINUX, MACOS):
        raise PlatformUnsupported(f"{name} support is not yet implemented.")
    raise PlatformUnsupported(f"Unsupported platform: {platform or sys.platform}")


def create_port_discovery(
    settings: Settings = DEFAULT_SETTINGS, platform: str | None = None
) -> PortDiscovery:
    """
    Build the port discovery implementation for this host.

    Raises:
        PlatformUnsupported: If the host is not Windows.
    """
    _ensure_supported(platform)
    return WindowsPortDiscovery(resolver=OwnerResolver(NetstatRunner(settings)))


def create_process_terminator(
    settings: Settings = DEFAULT_SETTINGS, platform: str | None = None
) -> ProcessTerminator:
    """
    Build the process termination implementation for this host.

    Raises:
        PlatformUnsupported: If the host is not Windows.
    """
    _ensure_supported(platform)
    return WindowsProcessTerminator(settings)


def create_service(settings: Settings = DEFAULT_SETTINGS) -> PortKillerService:
    """Wire up a PortKillerService for this host, failing fast if it is unsupported."""
    return PortKillerService(
        create_port_discovery(settings),
        create_process_terminator(settings),
    )
