"""Verification Test: Load Test - poll a large fleet concurrently.

Every host is polled in its own worker. These tests check that concurrent
polls of distinct connections never mix up their CPU baselines and that
the parallel rounds are actually faster than polling one host at a time.
"""

import os
import time
from queue import Queue

import pytest

from conftest import FakeConnection, FakeRunner
from fleettop import config
from fleettop.history import CounterHistory
from fleettop.monitor import FleetMonitor
from fleettop.parsers import parse_proc_stat
from fleettop.responses import HostResult
from fleettop.sampler import Sampler


def proc_stat_for(connection: FakeConnection, poll: int) -> str:
    """Counters unique to a host and a poll number."""
    base = int(connection.name.split("-")[1]) * 1000 + poll * 100
    return f"cpu  {base} 0 {base // 2} {base * 4} 0 0 0 0 0 0\ncpu0 1 1 1 1\n"


class PollCountingRunner(FakeRunner):
    """Fake runner whose /proc/stat output advances with each poll of a host."""

    def __init__(self, delay: float = 0.0) -> None:
        super().__init__({config.PROC_STAT_CMD: self._proc_stat})
        self.delay = delay
        self.polls: dict[str, int] = {}

    def _proc_stat(self, connection: FakeConnection) -> str:
        poll = self.polls.get(connection.name, 0)
        self.polls[connection.name] = poll + 1
        return proc_stat_for(connection, poll)

    def run(self, connection, command: str, timeout: float | None = None) -> str:
        if self.delay:
            time.sleep(self.delay)
        return super().run(connection, command, timeout)


@pytest.fixture
def fleet():
    """Connections for a scaled-down fleet."""
    is_ci = os.environ.get("CI", "false").lower() == "true"
    num_hosts = 50 if is_ci else 200
    return [FakeConnection(f"host-{i}") for i in range(num_hosts)]


class TestLoadTest:
    """Load test verification suite tests."""

    def test_concurrent_baselines_match_sequential(self, fleet):
        """
        Test concurrent polls of distinct identities never cross-contaminate.

        After a batch of concurrent rounds, each stored baseline must equal
        what polling only that host sequentially would have stored.
        """
        runner = PollCountingRunner()
        history = CounterHistory()
        queue: Queue[list[HostResult]] = Queue()
        monitor = FleetMonitor(queue, Sampler(runner, history), max_workers=32)
        for conn in fleet:
            monitor.add_host(conn.name, conn)

        rounds = 3
        for _ in range(rounds):
            results = monitor.poll_once()
            assert all(r.ok for r in results)

        for conn in fleet:
            expected, _ = parse_proc_stat(proc_stat_for(conn, rounds - 1))
            assert history.get(conn) == expected

    def test_rates_are_per_host(self, fleet):
        """Test each host's CPU rate comes from its own previous counters."""
        runner = PollCountingRunner()
        sampler = Sampler(runner, CounterHistory())
        queue: Queue[list[HostResult]] = Queue()
        monitor = FleetMonitor(queue, sampler, max_workers=32)
        for conn in fleet:
            monitor.add_host(conn.name, conn)

        monitor.poll_once()
        results = monitor.poll_once()

        # Every host advances user by 100, system by 50 and idle by 400 per poll
        for result in results:
            assert result.stats.cpu.user == pytest.approx(100 / 550 * 100)
            assert result.stats.cpu.idle == pytest.approx(400 / 550 * 100)

    def test_parallel_round_faster_than_serial(self):
        """Test a round takes far less than the sum of per-host poll times."""
        hosts = [FakeConnection(f"host-{i}") for i in range(32)]
        runner = PollCountingRunner(delay=0.01)
        queue: Queue[list[HostResult]] = Queue()
        monitor = FleetMonitor(queue, Sampler(runner, CounterHistory()), max_workers=32)
        for conn in hosts:
            monitor.add_host(conn.name, conn)

        start_time = time.perf_counter()
        results = monitor.poll_once()
        elapsed = time.perf_counter() - start_time

        # 8 commands per host, serial would take at least 32 * 8 * 0.01s
        serial_time = len(hosts) * 8 * 0.01
        assert len(results) == len(hosts)
        assert elapsed < serial_time / 2, f"Round took {elapsed:.2f}s, serial {serial_time:.2f}s"
