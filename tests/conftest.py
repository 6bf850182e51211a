"""Shared fixtures: canned command output and a scripted command runner."""

import threading
from queue import Queue

import pytest

from fleettop import config
from fleettop.history import CounterHistory
from fleettop.sampler import Sampler

MEMINFO = """\
MemTotal:        8000000 kB
MemFree:         2000000 kB
MemAvailable:    5000000 kB
Buffers:          100000 kB
Cached:          2500000 kB
SwapCached:            0 kB
SwapTotal:       1000000 kB
SwapFree:         900000 kB
HugePages_Total:       0
"""

DF = """\
Filesystem      1B-blocks        Used   Available Use% Mounted on
udev           4096000000           0  4096000000   0% /dev
/dev/sda1    100000000000 40000000000 60000000000  40% /
/dev/mapper/very-long-volume-group-name-root
              50000000000 10000000000 40000000000  20% /home
tmpfs           819200000     1000000   818200000   1% /run
"""

PROC_STAT = """\
cpu  100 0 50 800 50 0 0 0 0 0
cpu0 50 0 25 400 25 0 0 0 0 0
cpu1 50 0 25 400 25 0 0 0 0 0
intr 123456 0 9 0
ctxt 987654
btime 1700000000
processes 4242
procs_running 2
procs_blocked 0
"""

# Same host 200 ticks later: user +50, system +10, idle +130, iowait +10
PROC_STAT_LATER = """\
cpu  150 0 60 930 60 0 0 0 0 0
cpu0 75 0 30 465 30 0 0 0 0 0
cpu1 75 0 30 465 30 0 0 0 0 0
intr 123999 0 9 0
"""

UPTIME = "93784.56 180000.12\n"
LOADAVG = "0.52 0.41 0.30 2/191 4021\n"
HOSTNAME = "web-01\n"

NET_DEV = """\
Inter-|   Receive                                                |  Transmit
 face |bytes    packets errs drop fifo frame compressed multicast|bytes    packets errs drop fifo colls carrier compressed
    lo:    5000      50    0    0    0     0          0         0     5000      50    0    0    0     0       0          0
  eth0: 1234567    8900    0    0    0     0          0         0   7654321    6500    0    0    0     0       0          0
"""

IP_ADDR = """\
1: lo    inet 127.0.0.1/8 scope host lo\\       valid_lft forever preferred_lft forever
1: lo    inet6 ::1/128 scope host \\       valid_lft forever preferred_lft forever
2: eth0    inet 10.0.0.5/24 brd 10.0.0.255 scope global eth0\\       valid_lft forever preferred_lft forever
2: eth0    inet6 fe80::1/64 scope link \\       valid_lft forever preferred_lft forever
"""

DEFAULT_OUTPUTS = {
    config.MEMINFO_CMD: MEMINFO,
    config.DF_CMD: DF,
    config.PROC_STAT_CMD: PROC_STAT,
    config.UPTIME_CMD: UPTIME,
    config.LOADAVG_CMD: LOADAVG,
    config.HOSTNAME_CMD: HOSTNAME,
    config.NET_DEV_CMD: NET_DEV,
    config.IP_ADDR_CMD: IP_ADDR,
}


class FakeConnection:
    """Connection handle that compares equal to every other one."""

    def __init__(self, name: str = "host") -> None:
        self.name = name

    def __eq__(self, other: object) -> bool:
        return isinstance(other, FakeConnection)

    def __hash__(self) -> int:
        return 0

    def __repr__(self) -> str:
        return f"FakeConnection({self.name!r})"


class FakeRunner:
    """
    Command runner answering from a table.

    A table value may be a string, an exception to raise, or a callable
    taking the connection and returning either.
    """

    def __init__(self, outputs: dict | None = None) -> None:
        self.outputs = dict(DEFAULT_OUTPUTS)
        if outputs:
            self.outputs.update(outputs)
        self.calls: list[tuple] = []
        self._lock = threading.Lock()

    def run(self, connection, command: str, timeout: float | None = None) -> str:
        with self._lock:
            self.calls.append((connection, command, timeout))
        result = self.outputs[command]
        if callable(result):
            result = result(connection)
        if isinstance(result, Exception):
            raise result
        return result

    def commands(self) -> list[str]:
        return [command for _, command, _ in self.calls]


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def history() -> CounterHistory:
    return CounterHistory()


@pytest.fixture
def sampler(runner: FakeRunner, history: CounterHistory) -> Sampler:
    return Sampler(runner, history, timeout=5.0)


@pytest.fixture
def update_queue() -> Queue:
    return Queue()
