"""One full poll of a remote host."""

import logging
from typing import Any

from fleettop import config
from fleettop.history import CounterHistory
from fleettop.models import CPUInfo, Stats
from fleettop.parsers import (
    compute_cpu_info,
    merge_network,
    parse_df,
    parse_ip_addr,
    parse_loadavg,
    parse_meminfo,
    parse_net_dev,
    parse_proc_stat,
    parse_uptime,
)
from fleettop.runner import CommandRunner

logger = logging.getLogger(__name__)


class Sampler:
    """
    Collects a Stats snapshot from one open connection.

    Sub-polls run one after another. The first CommandError aborts the poll
    and propagates unchanged; fields gathered before it are dropped, so a
    caller gets either a complete snapshot or an exception.

    CPU percentages need the counters of the previous poll of the same
    connection. Those live in the injected CounterHistory; the first poll of
    a connection only seeds it and reports every percentage as 0.0.
    """

    def __init__(
        self,
        runner: CommandRunner,
        history: CounterHistory | None = None,
        timeout: float | None = 10.0,
        collect_network: bool = True,
    ) -> None:
        """
        Initialize the Sampler.

        Args:
            runner: Executes commands on a connection.
            history: Counter baselines; a private store is created if omitted.
            timeout: Deadline for each command, in seconds.
            collect_network: Whether to poll interface counters and addresses.
        """
        self._runner = runner
        self._history = history if history is not None else CounterHistory()
        self._timeout = timeout
        self._collect_network = collect_network

    @property
    def history(self) -> CounterHistory:
        """The counter history this sampler reads and updates."""
        return self._history

    def sample(self, connection: Any) -> Stats:
        """
        Poll a connection once.

        Raises:
            CommandError: A command failed or timed out.
        """
        fields: dict[str, Any] = {}
        fields.update(self._sample_memory(connection))
        fields["fs_infos"] = self._sample_filesystems(connection)
        fields.update(self._sample_system(connection))
        if self._collect_network:
            fields["network"] = self._sample_network(connection)
        # Last, so a failing sub-poll above leaves the baseline untouched
        fields["cpu"] = self._sample_cpu(connection)
        return Stats(**fields)

    def _run(self, connection: Any, command: str) -> str:
        return self._runner.run(connection, command, timeout=self._timeout)

    def _sample_memory(self, connection: Any) -> dict[str, int]:
        return parse_meminfo(self._run(connection, config.MEMINFO_CMD))

    def _sample_filesystems(self, connection: Any) -> tuple:
        return tuple(parse_df(self._run(connection, config.DF_CMD)))

    def _sample_system(self, connection: Any) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        fields["uptime"] = parse_uptime(self._run(connection, config.UPTIME_CMD))
        fields["hostname"] = self._run(connection, config.HOSTNAME_CMD).strip()
        fields.update(parse_loadavg(self._run(connection, config.LOADAVG_CMD)))
        return fields

    def _sample_network(self, connection: Any) -> dict:
        counters = parse_net_dev(self._run(connection, config.NET_DEV_CMD))
        addresses = parse_ip_addr(self._run(connection, config.IP_ADDR_CMD))
        return merge_network(counters, addresses)

    def _sample_cpu(self, connection: Any) -> CPUInfo:
        now, core_num = parse_proc_stat(self._run(connection, config.PROC_STAT_CMD))
        previous = self._history.swap(connection, now)
        if previous is None:
            logger.debug(f"Seeded CPU baseline for {connection!r}")
        return compute_cpu_info(now, previous, core_num)
