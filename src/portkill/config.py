"""Runtime settings for portkill."""

from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class Settings:
    """Tunable values shared by the discovery and termination layers."""

    termination_timeout: float = 5.0  # Seconds to wait for a process to exit
    wait_interval: float = 0.1  # Seconds per wait slice between cancellation checks
    netstat_command: tuple[str, ...] = ("netstat", "-ano")
    netstat_timeout: float = 10.0

    def with_timeout(self, timeout: float) -> "Settings":
        """Return a copy with a different termination timeout (minimum 0.5s)."""
        return Settings(
            termination_timeout=max(0.5, timeout),
            wait_interval=self.wait_interval,
            netstat_command=self.netstat_command,
            netstat_timeout=self.netstat_timeout,
        )


DEFAULT_SETTINGS = Settings()
