"""statmon - command-line entry point and Textual live view."""

import json
import logging
import sys
from queue import Empty, Queue

from textual.app import App, ComposeResult
from textual.containers import Container
from textual.css.query import NoMatches
from textual.logging import TextualHandler
from textual.widgets import DataTable, Footer, Static

from statmon.errors import ConfigError, PidFileError
from statmon.models import CATEGORIES, Report
from statmon.monitor import HISTORY_LENGTH, StatMonitor
from statmon.parser import CounterSource, FileCounterSource
from statmon.process import pid_file
from statmon.settings import Settings, get_settings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

BAR_COLOURS = {
    "user": "green",
    "nice": "blue",
    "system": "red",
    "idle": "dim",
    "iowait": "yellow",
    "irq": "magenta",
    "softirq": "cyan",
}


def format_report(report: Report) -> str:
    """Format a report as a single human-readable line."""
    shares = " ".join(f"{name}={value * 100:5.1f}%" for name, value in report.fractions().items())
    return f"{report.cpu_id!s:<6} used={report.total_used * 100:5.1f}% {shares} over {report.duration:.2f}s"


def render_bar(fraction: float, colour: str, width: int = 40) -> str:
    """Render a fraction as a fixed-width bar with Textual markup."""
    bar_len = min(int(round(fraction * width)), width)
    return f"[{colour}]█[/{colour}]" * bar_len + "[dim]░[/dim]" * (width - bar_len)


class BreakdownPanel(Static):
    """Widget showing the category breakdown of the latest report."""

    DEFAULT_CSS = """
    BreakdownPanel {
        height: auto;
        min-height: 10;
        padding: 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize BreakdownPanel."""
        super().__init__(*args, **kwargs)
        self._report: Report | None = None

    @property
    def report(self) -> Report | None:
        """The report currently shown, if any."""
        return self._report

    def on_mount(self) -> None:
        """Render the placeholder until the first report arrives."""
        self.update(self._render_report())

    def update_report(self, report: Report) -> None:
        """Show a new report."""
        self._report = report
        self.update(self._render_report())

    def _render_report(self) -> str:
        if self._report is None:
            return "Waiting for first sample..."
        lines = [
            f"{name:<8}\\[{render_bar(value, BAR_COLOURS[name])}] {value * 100:5.1f}%"
            for name, value in self._report.fractions().items()
        ]
        lines.append(
            f"{'used':<8}\\[{render_bar(self._report.total_used, 'bold green')}] "
            f"{self._report.total_used * 100:5.1f}%"
        )
        lines.append(f"{self._report.cpu_id} over {self._report.duration:.2f}s")
        return "\n".join(lines)


class HistoryTable(Container):
    """Container for the table of past reports, oldest first."""

    DEFAULT_CSS = """
    HistoryTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, max_rows: int = HISTORY_LENGTH, **kwargs) -> None:
        """Initialize HistoryTable."""
        super().__init__(*args, **kwargs)
        self._max_rows = max_rows
        self._row_keys: list[str] = []
        self._next_row = 0

    @property
    def row_count(self) -> int:
        """Number of reports currently in the table."""
        return len(self._row_keys)

    def compose(self) -> ComposeResult:
        """Compose the history table."""
        yield DataTable(id="history-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#history-table", DataTable)
        table.cursor_type = "row"

        table.add_column("#", key="row", width=6)
        table.add_column("CPU", key="cpu", width=6)
        table.add_column("SECS", key="duration", width=6)
        for name in CATEGORIES:
            table.add_column(name.upper(), key=name, width=8)
        table.add_column("USED%", key="total_used", width=8)

    def add_report(self, report: Report) -> None:
        """
        Append a report as the bottom row.

        Drops the oldest row once the table holds ``max_rows`` rows.
        """
        table = self.query_one("#history-table", DataTable)

        self._next_row += 1
        row_key = str(self._next_row)
        table.add_row(
            row_key,
            str(report.cpu_id),
            f"{report.duration:.1f}",
            *(f"{value * 100:5.1f}" for value in report.fractions().values()),
            f"{report.total_used * 100:5.1f}",
            key=row_key,
        )
        self._row_keys.append(row_key)
        table.move_cursor(row=table.row_count - 1)

        while len(self._row_keys) > self._max_rows:
            table.remove_row(self._row_keys.pop(0))


class StatmonApp(App):
    """Live view of statmon reports."""

    TITLE = "statmon"
    SUB_TITLE = "CPU Utilization Monitor"

    CSS = """
    Screen {
        layout: vertical;
    }

    #breakdown {
        dock: top;
        height: auto;
        min-height: 10;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
    ]

    def __init__(self, source: CounterSource, interval: float = 5.0, count: int | None = None) -> None:
        """Initialize the StatmonApp."""
        super().__init__()
        self._update_queue: Queue[Report] = Queue()
        self._monitor = StatMonitor(self._update_queue, source, interval=interval, count=count)

    @property
    def monitor(self) -> StatMonitor:
        """The monitor feeding this app."""
        return self._monitor

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield BreakdownPanel(id="breakdown")
        yield HistoryTable()
        yield Footer()

    def on_mount(self) -> None:
        """Start the monitor when the app is mounted."""
        self._monitor.start()
        self.set_interval(0.5, self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Drain the queue into the UI and react to a stopped monitor."""
        while True:
            try:
                report = self._update_queue.get_nowait()
            except Empty:
                break
            self._update_ui(report)

        failure = self._monitor.failure
        if failure is not None:
            self.notify(str(failure), title="Monitor stopped", severity="error")
            self.exit(return_code=1)

    def _update_ui(self, report: Report) -> None:
        """Update the UI with a new report."""
        try:
            self.query_one("#breakdown", BreakdownPanel).update_report(report)
            self.query_one(HistoryTable).add_report(report)
        except NoMatches:
            logger.debug("Report arrived before widgets were mounted")

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._monitor.stop()
        self.exit()


def run_console(settings: Settings, source: CounterSource) -> int:
    """Print one report per cycle to stdout until stopped or done."""
    update_queue: Queue[Report] = Queue()
    monitor = StatMonitor(update_queue, source, interval=settings.interval, count=settings.count)
    monitor.start()
    try:
        while monitor.is_running or not update_queue.empty():
            try:
                report = update_queue.get(timeout=0.5)
            except Empty:
                continue
            if settings.output == "json":
                print(json.dumps(report.as_dict()), flush=True)
            else:
                print(format_report(report), flush=True)
    except KeyboardInterrupt:
        logger.info("Interrupted, stopping")
    finally:
        monitor.stop()

    if monitor.failure is not None:
        print(f"statmon: {monitor.failure}", file=sys.stderr)
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    """Entry point for the statmon command."""
    try:
        settings = get_settings(argv)
    except ConfigError as e:
        print(f"statmon: {e}", file=sys.stderr)
        return 2

    if settings.output == "tui":
        # stderr would draw over the screen; route records to the Textual devtools console
        logging.basicConfig(level=settings.log_level, handlers=[TextualHandler()])
    else:
        logging.basicConfig(level=settings.log_level, format=LOG_FORMAT, stream=sys.stderr)
    logger.debug("Settings: %s", settings)

    source = FileCounterSource(settings.stat_path, settings.cpu_id)
    try:
        with pid_file(settings.pid_file):
            if settings.output == "tui":
                app = StatmonApp(source, interval=settings.interval, count=settings.count)
                try:
                    app.run()
                finally:
                    app.monitor.stop()
                return app.return_code or 0
            return run_console(settings, source)
    except PidFileError as e:
        print(f"statmon: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
