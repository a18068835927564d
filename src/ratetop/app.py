"""ratetop - Main Textual application."""

import argparse
import json
import time
from dataclasses import asdict
from enum import Enum
from pathlib import Path
from queue import Empty, Queue

from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.widgets import DataTable, Footer, Static

from ratetop.config import AppConfig, load_config
from ratetop.cpu import CpuLoadSampler
from ratetop.logging_setup import configure_logging, get_logger
from ratetop.models import CpuCoreLoad, CpuLoad, NetworkStats
from ratetop.monitor import SystemMonitor, TelemetrySnapshot
from ratetop.network import NetworkStatsSampler
from ratetop.sources import CounterSource, select_source


class SortKey(Enum):
    """Sort keys for the interface table."""

    IFACE = "iface"
    RX = "rx"
    TX = "tx"


def format_bytes(size: float) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:5.1f}{unit}" if unit != "B" else f"{int(size):5d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def format_rate(per_sec: float | None) -> str:
    """Format a bytes/second figure; undefined rates render as dashes."""
    if per_sec is None:
        return "   --"
    return f"{format_bytes(per_sec)}/s"


def format_percent(value: float | None) -> str:
    if value is None:
        return "  --"
    return f"{value:5.1f}%"


class HeaderStats(Static):
    """Header widget showing per-core and aggregate CPU load."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        min-height: 5;
        padding: 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize HeaderStats."""
        super().__init__(*args, **kwargs)
        self._cores: list[CpuCoreLoad] = []
        self._current: CpuCoreLoad | None = None
        self._avgload: float | None = None

    def compose(self) -> ComposeResult:
        """Compose the header stats layout."""
        yield Horizontal(
            Static(self._get_cores_info(), id="cores-info"),
            Static(self._get_total_info(), id="total-info"),
        )

    def update_stats(self, cpu: CpuLoad) -> None:
        """Update the statistics from a CPU load reading."""
        self._cores = cpu.cpus
        self._current = cpu.current
        self._avgload = cpu.avgload
        self._refresh_display()

    def _refresh_display(self) -> None:
        """Refresh the display with current data."""
        if not self.is_mounted:
            return
        self.query_one("#cores-info", Static).update(self._get_cores_info())
        self.query_one("#total-info", Static).update(self._get_total_info())

    def _get_cores_info(self) -> str:
        """Get per-core load display."""
        if not self._cores or all(core.load is None for core in self._cores):
            return "Sampling CPU load..."
        lines = []
        for i, core in enumerate(self._cores):
            usage = core.load or 0.0
            bar_len = min(int(usage / 5), 20)  # Cap at 20 chars
            bar = "[green]█[/green]" * bar_len + "[dim]░[/dim]" * (20 - bar_len)
            # Use escaped brackets for the bar container
            lines.append(f"CPU{i:<2} \\[{bar}] {format_percent(core.load)}")
        return "\n".join(lines)

    def _get_total_info(self) -> str:
        """Get aggregate load breakdown display."""
        current = self._current
        if current is None or current.load is None:
            return "Sampling CPU load..."

        avgload = f"{self._avgload:.2f}" if self._avgload is not None else "--"
        return (
            f"Load: {format_percent(current.load)}\n"
            f"usr {format_percent(current.load_user)}  sys {format_percent(current.load_system)}\n"
            f"nic {format_percent(current.load_nice)}  irq {format_percent(current.load_irq)}\n"
            f"idle {format_percent(current.load_idle)}\n"
            f"Load average per core: {avgload}"
        )


class InterfaceTable(Container):
    """Container for the interface throughput table."""

    DEFAULT_CSS = """
    InterfaceTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize InterfaceTable."""
        super().__init__(*args, **kwargs)
        self._current_ifaces: set[str] = set()
        self._sort_key: SortKey = SortKey.IFACE
        self._sort_reverse: bool = False

    @property
    def sort_key(self) -> SortKey:
        """Get current sort key."""
        return self._sort_key

    def cycle_sort(self) -> SortKey:
        """Cycle to the next sort key and return it."""
        keys = list(SortKey)
        self._sort_key = keys[(keys.index(self._sort_key) + 1) % len(keys)]
        # Busiest first for rates, alphabetical for names
        self._sort_reverse = self._sort_key in (SortKey.RX, SortKey.TX)
        return self._sort_key

    def compose(self) -> ComposeResult:
        """Compose the interface table."""
        yield DataTable(id="iface-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#iface-table", DataTable)
        table.cursor_type = "row"

        table.add_column("IFACE", key="iface", width=12)
        table.add_column("STATE", key="state", width=8)
        table.add_column("RX/s", key="rx_sec", width=11)
        table.add_column("TX/s", key="tx_sec", width=11)
        table.add_column("RX", key="rx_bytes", width=8)
        table.add_column("TX", key="tx_bytes", width=8)
        table.add_column("ERR", key="errors", width=7)
        table.add_column("DROP", key="dropped", width=7)

    def update_interfaces(self, stats: list[NetworkStats]) -> None:
        """
        Update the table with new throughput data.

        Rows are rebuilt in sorted order; interfaces that vanished are dropped.
        """
        table = self.query_one("#iface-table", DataTable)
        table.clear()
        for row in self._sort_stats(stats):
            table.add_row(
                row.iface,
                row.operstate,
                format_rate(row.rx_sec),
                format_rate(row.tx_sec),
                format_bytes(row.rx_bytes),
                format_bytes(row.tx_bytes),
                str(row.rx_errors + row.tx_errors),
                str(row.rx_dropped + row.tx_dropped),
                key=row.iface,
            )
        self._current_ifaces = {row.iface for row in stats}

    def _sort_stats(self, stats: list[NetworkStats]) -> list[NetworkStats]:
        """Sort interfaces based on the current sort key."""
        key_func = {
            SortKey.IFACE: lambda s: s.iface.lower(),
            SortKey.RX: lambda s: s.rx_sec or 0.0,
            SortKey.TX: lambda s: s.tx_sec or 0.0,
        }
        return sorted(stats, key=key_func[self._sort_key], reverse=self._sort_reverse)


class RatetopApp(App):
    """Main ratetop application."""

    TITLE = "ratetop"
    SUB_TITLE = "CPU load and network throughput"

    CSS = """
    Screen {
        layout: vertical;
    }

    #header-stats {
        dock: top;
        height: auto;
        min-height: 6;
    }

    Horizontal {
        height: auto;
    }

    #cores-info {
        width: 1fr;
        padding-right: 2;
    }

    #total-info {
        width: 1fr;
        padding-left: 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("f6", "sort", "Sort"),
    ]

    def __init__(self, config: AppConfig | None = None, source: CounterSource | None = None) -> None:
        """Initialize the RatetopApp."""
        super().__init__()
        self._config = config or AppConfig()
        self._update_queue: Queue[TelemetrySnapshot] = Queue()
        self._monitor = build_monitor(self._config, self._update_queue, source)

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield HeaderStats(id="header-stats")
        yield InterfaceTable()
        yield Footer()

    def on_mount(self) -> None:
        """Start the system monitor when the app is mounted."""
        self._monitor.start()
        # Set up a timer to poll the queue for updates
        self.set_interval(0.5, self._check_for_updates)

    def on_unmount(self) -> None:
        """Stop polling when the app goes away."""
        self._monitor.stop()

    def _check_for_updates(self) -> None:
        """Check the queue for updates and refresh the UI."""
        # Drain the queue to get the most recent snapshot
        snapshot = None
        while True:
            try:
                snapshot = self._update_queue.get_nowait()
            except Empty:
                break

        if snapshot is not None:
            self._update_ui(snapshot)

    def _update_ui(self, snapshot: TelemetrySnapshot) -> None:
        """Update the UI with the new telemetry snapshot."""
        self.query_one("#header-stats", HeaderStats).update_stats(snapshot.cpu)
        self.query_one(InterfaceTable).update_interfaces(snapshot.network)

    def action_sort(self) -> None:
        """Handle sort action - cycle through sort keys."""
        table = self.query_one(InterfaceTable)
        new_sort_key = table.cycle_sort()
        self.notify(f"Sort: {new_sort_key.value.upper()}")

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._monitor.stop()
        self.exit()


def build_monitor(
    config: AppConfig,
    update_queue: Queue[TelemetrySnapshot],
    source: CounterSource | None = None,
) -> SystemMonitor:
    """Wire a source, both samplers and the monitor from settings."""
    source = source or select_source()
    return SystemMonitor(
        update_queue,
        cpu_sampler=CpuLoadSampler(source, debounce_ms=config.sampler.cpu_debounce_ms),
        network_sampler=NetworkStatsSampler(source, debounce_ms=config.sampler.network_debounce_ms),
        poll_rate=config.monitor.poll_rate,
        interfaces=config.monitor.interfaces,
    )


def report_once(config: AppConfig, source: CounterSource | None = None) -> dict:
    """
    Sample twice, one debounce window apart, and return a JSON-ready report.

    The first cycle only establishes baselines.
    """
    monitor = build_monitor(config, Queue(), source)
    monitor.collect()
    wait_ms = max(config.sampler.cpu_debounce_ms, config.sampler.network_debounce_ms)
    time.sleep(wait_ms / 1000 + 0.05)
    snapshot = monitor.collect()
    return {
        "cpu": asdict(snapshot.cpu),
        "network": [asdict(stats) for stats in snapshot.network],
        "timestamp": snapshot.timestamp.isoformat(),
    }


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="ratetop", description=RatetopApp.SUB_TITLE)
    parser.add_argument("--config", type=Path, default=None, help="settings file")
    parser.add_argument("--interfaces", default=None, help='comma separated names, "*" for all')
    parser.add_argument("--poll-rate", type=float, default=None, help="seconds between refreshes")
    parser.add_argument("--log-level", default=None)
    parser.add_argument("--once", action="store_true", help="print one JSON report and exit")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Entry point for ratetop application."""
    args = parse_args(argv)
    config = load_config(args.config)
    if args.interfaces is not None:
        config.monitor.interfaces = args.interfaces
    if args.poll_rate is not None:
        config.monitor.poll_rate = max(0.1, args.poll_rate)
    if args.log_level is not None:
        config.logging.level = args.log_level

    configure_logging(level=config.logging.level, keep_files=config.logging.keep_files)
    get_logger().info("starting", extra={"event": "app_start"})

    if args.once:
        print(json.dumps(report_once(config), indent=2, sort_keys=True))
        return 0

    RatetopApp(config).run()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
