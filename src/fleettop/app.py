"""fleettop - Fleet dashboard and command line entry point."""

import argparse
import json
import logging
import math
import sys
import time
from queue import Empty, Queue

import paramiko
from dotenv import load_dotenv
from rich.markup import escape
from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import DataTable, Footer, Static

from fleettop.config import MonitorConfig, configure_logging
from fleettop.history import CounterHistory
from fleettop.models import CPUInfo, Stats
from fleettop.monitor import FleetMonitor
from fleettop.responses import HostResult
from fleettop.runner import (
    CommandRunner,
    LocalCommandRunner,
    LocalConnection,
    SSHCommandRunner,
    connect_ssh,
)
from fleettop.sampler import Sampler

logger = logging.getLogger(__name__)


def format_bytes(size: float) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:5.1f}{unit}" if unit != "B" else f"{int(size):5d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def format_uptime(seconds: int) -> str:
    """Format uptime like top does: ``3 days, 04:05:06``."""
    days = seconds // 86400
    hours = (seconds % 86400) // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    if days > 0:
        return f"{days} days, {hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def cpu_busy(cpu: CPUInfo) -> float | None:
    """
    Share of the last window the CPU spent working, in percent.

    Returns None on a first sample, when no rate is known yet.
    """
    if cpu.idle == 0.0 and cpu.user == 0.0 and cpu.system == 0.0:
        return None
    return 100.0 - cpu.idle - cpu.io_wait


def root_disk_percent(stats: Stats) -> float | None:
    """Usage of ``/`` (or of the first mount when ``/`` is missing)."""
    if not stats.fs_infos:
        return None
    fs = next((fs for fs in stats.fs_infos if fs.mount_point == "/"), stats.fs_infos[0])
    size = fs.used + fs.free
    if size == 0:
        return None
    return fs.used / size * 100


def _percent_cell(value: float | None) -> str:
    if value is None:
        return "  ..."
    if math.isnan(value):
        return "  n/a"
    return f"{value:5.1f}"


class FleetSummary(Static):
    """Header widget summarizing the last polling round."""

    DEFAULT_CSS = """
    FleetSummary {
        height: auto;
        padding: 1;
        background: $surface;
    }
    """

    def update_summary(self, results: list[HostResult]) -> None:
        """Show host counts and fleet memory for a round of results."""
        healthy = [r.stats for r in results if r.stats is not None]
        failed = len(results) - len(healthy)
        mem_total = sum(s.mem_total for s in healthy)
        mem_used = sum(s.memory_used() for s in healthy)
        text = (
            f"Hosts: {len(results)}  up: {len(healthy)}  failing: {failed}\n"
            f"Memory in use: {format_bytes(mem_used).strip()} / {format_bytes(mem_total).strip()}"
        )
        self.update(text)


class HostTable(Container):
    """Container for the per-host data table."""

    DEFAULT_CSS = """
    HostTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize HostTable."""
        super().__init__(*args, **kwargs)
        self._current_hosts: set[str] = set()

    def compose(self) -> ComposeResult:
        """Compose the host table."""
        yield DataTable(id="host-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#host-table", DataTable)
        table.cursor_type = "row"

        table.add_column("HOST", key="host", width=20)
        table.add_column("UPTIME", key="uptime", width=18)
        table.add_column("LOAD", key="load", width=16)
        table.add_column("CPU%", key="cpu", width=6)
        table.add_column("CORES", key="cores", width=6)
        table.add_column("MEM", key="mem", width=16)
        table.add_column("SWAP", key="swap", width=16)
        table.add_column("DISK%", key="disk", width=6)
        table.add_column("STATUS", key="status")

    def update_results(self, results: list[HostResult]) -> None:
        """
        Update the table with a round of results.

        Uses update_cell for existing rows to avoid re-rendering the whole table.
        """
        table = self.query_one("#host-table", DataTable)
        new_hosts = {result.host for result in results}

        for host in self._current_hosts - new_hosts:
            try:
                table.remove_row(host)
            except Exception:
                pass  # Row may not exist

        for result in results:
            cells = self._cells(result)
            if result.host in self._current_hosts:
                for key, value in cells.items():
                    table.update_cell(result.host, key, value)
            else:
                table.add_row(*cells.values(), key=result.host)

        self._current_hosts = new_hosts

    @staticmethod
    def _cells(result: HostResult) -> dict[str, str]:
        stats = result.stats
        if stats is None:
            return {
                "host": result.host,
                "uptime": "-",
                "load": "-",
                "cpu": "-",
                "cores": "-",
                "mem": "-",
                "swap": "-",
                "disk": "-",
                "status": f"[red]{escape(result.error or '')}[/red]",
            }
        return {
            "host": result.host,
            "uptime": format_uptime(stats.uptime),
            "load": f"{stats.load1} {stats.load5} {stats.load15}",
            "cpu": _percent_cell(cpu_busy(stats.cpu)),
            "cores": str(stats.cpu.core_num),
            "mem": f"{format_bytes(stats.memory_used())}/{format_bytes(stats.mem_total)}",
            "swap": (
                f"{format_bytes(stats.swap_total - stats.swap_free)}"
                f"/{format_bytes(stats.swap_total)}"
            ),
            "disk": _percent_cell(root_disk_percent(stats)),
            "status": "[green]ok[/green]",
        }


class FleetApp(App):
    """Main fleettop application."""

    TITLE = "fleettop"
    SUB_TITLE = "Remote Fleet Monitor"

    CSS = """
    Screen {
        layout: vertical;
    }

    #summary {
        dock: top;
        height: auto;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("c", "clear_history", "Reset CPU baselines"),
    ]

    def __init__(self, monitor: FleetMonitor, update_queue: Queue[list[HostResult]]) -> None:
        """Initialize the FleetApp."""
        super().__init__()
        self._monitor = monitor
        self._update_queue = update_queue

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield FleetSummary("Waiting for the first poll...", id="summary")
        yield HostTable()
        yield Footer()

    def on_mount(self) -> None:
        """Start the fleet monitor when the app is mounted."""
        self._monitor.start()
        self.set_interval(0.5, self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Drain the queue and show the most recent round."""
        results = None
        while True:
            try:
                results = self._update_queue.get_nowait()
            except Empty:
                break

        if results is not None:
            self.query_one("#summary", FleetSummary).update_summary(results)
            self.query_one(HostTable).update_results(results)

    def action_clear_history(self) -> None:
        """Forget every CPU baseline; the next round seeds them again."""
        self._monitor.clear_history()
        self.notify("CPU baselines reset")

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._monitor.stop()
        self.exit()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fleettop",
        description="Monitor CPU, memory, disk and network of remote hosts over SSH.",
    )
    parser.add_argument("targets", nargs="*", help="hosts as [user@]host[:port]")
    parser.add_argument("--local", action="store_true", help="also sample this machine")
    parser.add_argument(
        "--once",
        action="store_true",
        help="print one round of results; a priming round runs first so CPU rates are real",
    )
    parser.add_argument("--json", action="store_true", help="with --once, print JSON")
    return parser


def poll_with_baseline(monitor: FleetMonitor, interval: float) -> list[HostResult]:
    """
    Poll the fleet twice and return the second round.

    The first round only seeds the CPU baselines, so its percentages are all
    0.0. Hosts failing the priming round are still polled again.
    """
    monitor.poll_once()
    time.sleep(interval)
    return monitor.poll_once()


def print_results(results: list[HostResult], as_json: bool) -> None:
    """Write one round of results to stdout."""
    if as_json:
        print(json.dumps([r.to_response().to_dict() for r in results], indent=2))
        return
    for result in results:
        if result.stats is None:
            print(f"{result.host}: error: {result.error}")
            continue
        stats = result.stats
        print(
            f"{result.host}: up {format_uptime(stats.uptime)}, "
            f"load {stats.load1} {stats.load5} {stats.load15}, "
            f"cpu {_percent_cell(cpu_busy(stats.cpu)).strip()}%, "
            f"mem {format_bytes(stats.memory_used()).strip()}/"
            f"{format_bytes(stats.mem_total).strip()}, "
            f"disk {_percent_cell(root_disk_percent(stats)).strip()}%"
        )


class _RoutingRunner:
    """Dispatches to the local or SSH runner by connection type."""

    def __init__(self) -> None:
        self._local = LocalCommandRunner()
        self._ssh = SSHCommandRunner()

    def run(self, connection, command: str, timeout: float | None = None) -> str:
        runner: CommandRunner = self._local if isinstance(connection, LocalConnection) else self._ssh
        return runner.run(connection, command, timeout=timeout)


def main(argv: list[str] | None = None) -> int:
    """Entry point for fleettop."""
    args = build_parser().parse_args(argv)
    if not args.targets and not args.local:
        build_parser().error("give at least one target or --local")

    load_dotenv()
    config = MonitorConfig.from_env()
    configure_logging(config, console=args.once)

    sampler = Sampler(
        _RoutingRunner(),
        CounterHistory(),
        timeout=config.command_timeout,
        collect_network=config.collect_network,
    )
    update_queue: Queue[list[HostResult]] = Queue()
    monitor = FleetMonitor(
        update_queue,
        sampler,
        poll_rate=config.poll_rate,
        max_workers=config.max_workers,
    )

    clients = []
    if args.local:
        monitor.add_host("localhost", LocalConnection())
    for target in args.targets:
        try:
            client = connect_ssh(
                target,
                user=config.ssh_user,
                port=config.ssh_port,
                key_filename=config.ssh_key,
                timeout=config.connect_timeout,
            )
        except (paramiko.SSHException, OSError, ValueError) as e:
            logger.warning(f"Cannot connect to {target}: {e}")
            print(f"{target}: cannot connect: {e}", file=sys.stderr)
            continue
        clients.append(client)
        monitor.add_host(target, client)

    try:
        if not monitor.hosts:
            return 1
        if args.once:
            print_results(poll_with_baseline(monitor, config.once_interval), args.json)
        else:
            FleetApp(monitor, update_queue).run()
    finally:
        monitor.stop()
        for client in clients:
            client.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
