"""Display helpers for the port table."""

from datetime import datetime, timedelta

from rich.markup import escape

from portkill.models import PortBinding

STATE_STYLES = {
    "ESTABLISHED": "green",
    "LISTENING": "cyan",
    "LISTEN": "cyan",
    "TIME_WAIT": "yellow",
    "CLOSE_WAIT": "dark_orange",
    "CLOSED": "red",
}


def state_style(state: str | None) -> str:
    """Rich style name for a connection state."""
    if not state:
        return "dim"
    return STATE_STYLES.get(state.upper(), "dim")


def format_created(created: datetime | None, now: datetime | None = None) -> str:
    """Format a creation time relative to ``now``."""
    if created is None:
        return "N/A"
    now = now or datetime.now()
    if created.date() == now.date():
        return created.strftime("%H:%M:%S")
    if created.date() == (now - timedelta(days=1)).date():
        return created.strftime("Yesterday %H:%M")
    if now - created < timedelta(days=7):
        return created.strftime("%a %H:%M")
    return created.strftime("%m/%d %H:%M")


def describe_binding(binding: PortBinding) -> str:
    """One-line summary, e.g. ``TCP:3000 - node.exe (PID: 4521)``."""
    return str(binding)


def binding_details(binding: PortBinding) -> str:
    """Multi-line markup for the details pane."""
    lines = [
        f"[cyan]Port:[/cyan] [yellow]{binding.port}[/yellow]",
        f"[cyan]Protocol:[/cyan] [blue]{binding.protocol.value}[/blue]",
        f"[cyan]Process ID:[/cyan] [magenta]{binding.process_id}[/magenta]",
        f"[cyan]Process Name:[/cyan] [green]{escape(binding.process_name)}[/green]",
        f"[cyan]Local Address:[/cyan] {binding.local_address}",
        f"[cyan]State:[/cyan] {binding.state or 'N/A'}",
    ]
    if binding.remote_address:
        lines.append(f"[cyan]Remote Address:[/cyan] {binding.remote_address}")
    if binding.created_at is not None:
        lines.append(f"[cyan]Created:[/cyan] {binding.created_at:%Y-%m-%d %H:%M:%S}")
    if binding.process_path:
        lines.append(f"[cyan]Process Path:[/cyan] [dim]{escape(binding.process_path)}[/dim]")
    return "\n".join(lines)
