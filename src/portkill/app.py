"""portkill - Main Textual application."""

import argparse
import logging
import sys
from queue import Empty, Queue

from rich.markup import escape
from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, DataTable, Footer, Static

from portkill.config import DEFAULT_SETTINGS
from portkill.errors import PlatformUnsupported
from portkill.formatting import binding_details, describe_binding, format_created, state_style
from portkill.models import PortBinding, TerminationOutcome
from portkill.platforms import create_service
from portkill.scanner import JobKind, JobResult, ScanRunner
from portkill.service import PortKillerService

logger = logging.getLogger(__name__)


class ConfirmKillScreen(ModalScreen[bool]):
    """Asks the user to confirm terminating a process."""

    DEFAULT_CSS = """
    ConfirmKillScreen {
        align: center middle;
    }

    #dialog {
        width: 64;
        height: auto;
        padding: 1 2;
        border: thick $error;
        background: $surface;
    }

    #buttons {
        height: auto;
        margin-top: 1;
    }

    #buttons Button {
        margin-right: 2;
    }
    """

    BINDINGS = [
        ("y", "confirm", "Kill"),
        ("n,escape", "cancel", "Cancel"),
    ]

    def __init__(self, binding: PortBinding, permission_warning: bool = False) -> None:
        super().__init__()
        self._binding = binding
        self._permission_warning = permission_warning

    def compose(self) -> ComposeResult:
        with Vertical(id="dialog"):
            yield Static(
                f"[red]Kill process {escape(self._binding.process_name)} "
                f"(PID: {self._binding.process_id})?[/red]",
                id="question",
            )
            if self._permission_warning:
                yield Static(
                    "[yellow]Warning:[/yellow] You may not have permission to terminate "
                    "this process. Try running as administrator.",
                    id="permission-warning",
                )
            with Horizontal(id="buttons"):
                yield Button("Kill", variant="error", id="confirm")
                yield Button("Cancel", variant="primary", id="cancel")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "confirm")

    def action_confirm(self) -> None:
        self.dismiss(True)

    def action_cancel(self) -> None:
        self.dismiss(False)


class PortTable(Container):
    """Container for the port data table."""

    DEFAULT_CSS = """
    PortTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize PortTable."""
        super().__init__(*args, **kwargs)
        self._rows: list[PortBinding] = []

    @property
    def rows(self) -> list[PortBinding]:
        """Bindings currently shown, in display order."""
        return list(self._rows)

    @property
    def selected(self) -> PortBinding | None:
        """The binding under the cursor, if any."""
        if not self._rows:
            return None
        table = self.query_one("#port-table", DataTable)
        row = table.cursor_row
        if 0 <= row < len(self._rows):
            return self._rows[row]
        return None

    def compose(self) -> ComposeResult:
        """Compose the port table."""
        yield DataTable(id="port-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#port-table", DataTable)
        table.cursor_type = "row"

        table.add_column("#", key="index", width=4)
        table.add_column("Port", key="port", width=7)
        table.add_column("Protocol", key="protocol", width=8)
        table.add_column("PID", key="pid", width=8)
        table.add_column("Process Name", key="name", width=24)
        table.add_column("Local Address", key="local", width=18)
        table.add_column("State", key="state", width=12)
        table.add_column("Created", key="created")

    def update_rows(self, bindings: list[PortBinding]) -> None:
        """Replace the table contents with ``bindings``."""
        table = self.query_one("#port-table", DataTable)
        table.clear()
        self._rows = list(bindings)

        for index, binding in enumerate(self._rows, start=1):
            table.add_row(
                Text(str(index), style="dim"),
                Text(str(binding.port), style="yellow"),
                Text(binding.protocol.value, style="blue"),
                Text(str(binding.process_id), style="magenta"),
                Text(binding.process_name, style="green"),
                Text(binding.local_address, style="dim"),
                Text(binding.state or "N/A", style=state_style(binding.state)),
                Text(format_created(binding.created_at)),
                key=f"{index}",
            )


class DetailsPane(Static):
    """Shows the highlighted binding, or a status message."""

    def __init__(self, **kwargs) -> None:
        super().__init__("Loading active ports...", **kwargs)
        self.current_binding: PortBinding | None = None
        self.status = "Loading active ports..."

    def show_binding(self, binding: PortBinding | None) -> None:
        """Display ``binding``'s details, or clear the pane for None."""
        self.current_binding = binding
        self.status = ""
        self.update(binding_details(binding) if binding is not None else "")

    def show_status(self, markup: str) -> None:
        """Replace the pane contents with a status line."""
        self.current_binding = None
        self.status = markup
        self.update(markup)


class PortKillApp(App):
    """Main portkill application."""

    TITLE = "portkill"
    SUB_TITLE = "View and terminate processes by network port"

    CSS = """
    Screen {
        layout: vertical;
    }

    #details {
        height: auto;
        min-height: 8;
        padding: 0 1;
        border: solid $secondary;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "refresh", "Refresh"),
        ("k", "kill", "Kill"),
        ("escape", "cancel_job", "Cancel"),
    ]

    def __init__(self, service: PortKillerService) -> None:
        """Initialize the PortKillApp."""
        super().__init__()
        self._service = service
        self._result_queue: Queue[JobResult] = Queue()
        self._runner = ScanRunner(service, self._result_queue)

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield PortTable()
        yield DetailsPane(id="details")
        yield Footer()

    def on_mount(self) -> None:
        """Start the first scan and poll for background results."""
        self._runner.scan()
        self.set_interval(0.2, self._check_for_results)

    def _check_for_results(self) -> None:
        """Drain the result queue and apply each result to the UI."""
        while True:
            try:
                result = self._result_queue.get_nowait()
            except Empty:
                break
            self._apply_result(result)

    def _apply_result(self, result: JobResult) -> None:
        if result.cancelled:
            self.notify(f"{result.kind.value.capitalize()} cancelled", severity="warning")
            return
        if result.error is not None:
            self.notify(f"Error: {result.error}", severity="error")
            return

        if result.kind is JobKind.SCAN:
            self._show_bindings(result.value)
        else:
            self._report_outcome(result.value)
            self._runner.scan()

    def _show_bindings(self, bindings: list[PortBinding]) -> None:
        table = self.query_one(PortTable)
        table.update_rows(bindings)
        if not bindings:
            self.query_one(DetailsPane).show_status("[yellow]No active ports found.[/yellow]")
        else:
            self.query_one(DetailsPane).show_binding(table.selected)

    def _report_outcome(self, outcome: TerminationOutcome) -> None:
        if outcome.success:
            self.notify(f"Process {outcome.process_id} terminated successfully.")
            return
        message = f"Failed to terminate process {outcome.process_id}: {outcome.error_message}"
        if outcome.is_permission_denied:
            message += "\nTip: try running the tool as administrator."
        self.notify(message, severity="error", timeout=8)

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        """Show the details of the highlighted binding."""
        self.query_one(DetailsPane).show_binding(self.query_one(PortTable).selected)

    def action_refresh(self) -> None:
        """Rescan the active ports."""
        if self._runner.scan():
            self.query_one(DetailsPane).show_status("[cyan]Refreshing port list...[/cyan]")
        else:
            self.notify("Busy, press Escape to cancel", severity="warning")

    def action_kill(self) -> None:
        """Confirm and terminate the owner of the selected binding."""
        binding = self.query_one(PortTable).selected
        if binding is None:
            self.notify("No port selected", severity="warning")
            return

        try:
            warning = not self._service.can_terminate_process(binding)
        except OSError as exc:
            logger.debug("Permission check failed for PID %d: %s", binding.process_id, exc)
            warning = True

        def on_confirm(confirmed: bool | None) -> None:
            if not confirmed:
                self.notify("Operation cancelled.")
                return
            if not self._runner.terminate(binding):
                self.notify("Busy, press Escape to cancel", severity="warning")
                return
            self.query_one(DetailsPane).show_status(
                f"[cyan]Terminating {escape(describe_binding(binding))}...[/cyan]"
            )

        self.push_screen(ConfirmKillScreen(binding, permission_warning=warning), on_confirm)

    def action_cancel_job(self) -> None:
        """Cancel a running scan or termination."""
        if self._runner.is_running:
            self._runner.request_cancel()

    def action_quit(self) -> None:
        """Handle quit action; a running job is abandoned with its daemon thread."""
        self._runner.request_cancel()
        self.exit()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="portkill",
        description="View and terminate processes by network port.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_SETTINGS.termination_timeout,
        help="seconds to wait for a process to exit (default: %(default)s)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="logging level (default: %(default)s)",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="write log records to this file instead of discarding them",
    )
    return parser.parse_args(argv)


def configure_logging(level: str, log_file: str | None) -> None:
    """
    Send log records to ``log_file``.

    Without a log file records are discarded, since anything written to the
    terminal would corrupt the Textual screen.
    """
    if log_file:
        logging.basicConfig(
            filename=log_file,
            level=getattr(logging, level),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    else:
        logging.getLogger("portkill").addHandler(logging.NullHandler())


def main(argv: list[str] | None = None) -> None:
    """Entry point for portkill application."""
    args = parse_args(argv)
    configure_logging(args.log_level, args.log_file)

    try:
        service = create_service(DEFAULT_SETTINGS.with_timeout(args.timeout))
    except PlatformUnsupported as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    app = PortKillApp(service)
    app.run()


if __name__ == "__main__":
    main()
