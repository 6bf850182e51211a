"""Parsers turning diagnostic command output into metric values.

Every parser is a pure function over the raw text of one command. Lines
that do not have the expected shape are skipped, so noise such as headers,
blank lines or fields added by newer kernels never fails a poll.
"""

import math
from collections.abc import Sequence

from fleettop.models import CPUInfo, CPURaw, FSInfo, NetworkInfo

DEVICE_PREFIX = "/dev/"
AGGREGATE_CPU_LABEL = "cpu"

# /proc/meminfo label -> Stats field
MEMINFO_FIELDS = {
    "MemTotal:": "mem_total",
    "MemFree:": "mem_free",
    "MemAvailable:": "mem_available",
    "Buffers:": "mem_buffers",
    "Cached:": "mem_cached",
    "SwapTotal:": "swap_total",
    "SwapFree:": "swap_free",
}

# Positions 1..9 of a /proc/stat cpu line
CPU_FIELDS = (
    "user",
    "nice",
    "system",
    "idle",
    "io_wait",
    "irq",
    "soft_irq",
    "steal",
    "guest",
)


def _parse_uint(token: str) -> int | None:
    """Parse an unsigned decimal integer, returning None when it is not one."""
    if not token.isascii() or not token.isdigit():
        return None
    return int(token)


def parse_meminfo(text: str) -> dict[str, int]:
    """
    Parse ``/proc/meminfo`` output.

    Args:
        text: Raw command output, ``LABEL: VALUE kB`` per line.

    Returns:
        Mapping of Stats field name to size in bytes, for recognized labels only.
    """
    values: dict[str, int] = {}
    for line in text.splitlines():
        parts = line.split()
        if len(parts) != 3:
            continue
        value = _parse_uint(parts[1])
        if value is None:
            continue
        name = MEMINFO_FIELDS.get(parts[0])
        if name is not None:
            values[name] = value * 1024
    return values


def parse_df(text: str) -> list[FSInfo]:
    """
    Parse ``df -B1`` output into filesystem entries.

    df prints a long device name alone on its line and the remaining five
    columns on the next one. A lone device token therefore shifts the column
    indexes of the following line by one.

    Args:
        text: Raw command output including the header line.

    Returns:
        Entries in the order df listed them.
    """
    infos: list[FSInfo] = []
    carry = 0
    for line in text.splitlines():
        parts = line.split()
        n = len(parts)
        is_device = n > 0 and parts[0].startswith(DEVICE_PREFIX)
        if n == 1 and is_device:
            carry = 1
        elif (n == 5 and carry == 1) or (n == 6 and is_device):
            offset = carry
            carry = 0
            used = _parse_uint(parts[2 - offset])
            if used is None:
                continue
            free = _parse_uint(parts[3 - offset])
            if free is None:
                continue
            infos.append(FSInfo(mount_point=parts[5 - offset], used=used, free=free))
    return infos


def parse_cpu_fields(fields: Sequence[str]) -> CPURaw:
    """
    Parse the tokens of one ``/proc/stat`` cpu line.

    Args:
        fields: Whitespace split tokens, the label first.

    Returns:
        Raw counters; ``total`` is the sum of every value that parsed.
    """
    values = dict.fromkeys(CPU_FIELDS, 0)
    total = 0
    for position, token in enumerate(fields[1:], start=1):
        value = _parse_uint(token)
        if value is None:
            continue
        total += value
        if position <= len(CPU_FIELDS):
            values[CPU_FIELDS[position - 1]] = value
    return CPURaw(total=total, **values)


def parse_proc_stat(text: str) -> tuple[CPURaw, int]:
    """
    Parse ``/proc/stat`` output.

    Returns:
        The aggregate cpu counters and the number of per-core cpu lines.
    """
    aggregate = CPURaw()
    cores = 0
    for line in text.splitlines():
        fields = line.split()
        if not fields:
            continue
        if fields[0] == AGGREGATE_CPU_LABEL:
            aggregate = parse_cpu_fields(fields)
        elif fields[0].startswith(AGGREGATE_CPU_LABEL):
            cores += 1
    return aggregate, cores


def _percent(delta: int, total: int) -> float:
    if total == 0:
        # Same result IEEE division gives, without raising
        return math.nan if delta == 0 else math.copysign(math.inf, delta)
    return delta / total * 100


def compute_cpu_info(now: CPURaw, previous: CPURaw | None, core_num: int) -> CPUInfo:
    """
    Turn two raw counter readings into a percentage breakdown.

    Args:
        now: Counters read during this poll.
        previous: Baseline from the previous poll, None on the first one.
        core_num: Core count to report.

    Returns:
        CPUInfo with every percentage at 0.0 when there is no baseline yet.
    """
    if previous is None:
        return CPUInfo(core_num=core_num)

    total = now.total - previous.total
    return CPUInfo(
        core_num=core_num,
        **{
            name: _percent(getattr(now, name) - getattr(previous, name), total)
            for name in CPU_FIELDS
        },
    )


def parse_uptime(text: str) -> int:
    """Whole seconds since boot from ``/proc/uptime``, 0 when unreadable."""
    parts = text.split()
    if not parts:
        return 0
    try:
        return int(float(parts[0]))
    except (ValueError, OverflowError):
        return 0


def parse_loadavg(text: str) -> dict[str, str]:
    """
    Parse ``/proc/loadavg``, e.g. ``0.08 0.03 0.01 2/191 4021``.

    Values are kept as strings so they show exactly what the host reported.
    """
    parts = text.split()
    if len(parts) < 4:
        return {}
    running, _, total = parts[3].partition("/")
    return {
        "load1": parts[0],
        "load5": parts[1],
        "load15": parts[2],
        "running_process": running,
        "total_process": total,
    }


def parse_net_dev(text: str) -> dict[str, tuple[int, int]]:
    """
    Parse ``/proc/net/dev`` into per-interface (rx_bytes, tx_bytes).

    Data lines look like ``  eth0: 1234 10 0 0 0 0 0 0 5678 12 ...``; the
    byte counters are receive column 0 and transmit column 8.
    """
    counters: dict[str, tuple[int, int]] = {}
    for line in text.splitlines():
        name, sep, rest = line.partition(":")
        if not sep:
            continue
        columns = rest.split()
        if len(columns) < 9:
            continue
        rx = _parse_uint(columns[0])
        tx = _parse_uint(columns[8])
        if rx is None or tx is None:
            continue
        counters[name.strip()] = (rx, tx)
    return counters


def parse_ip_addr(text: str) -> dict[str, tuple[str, str]]:
    """
    Parse ``ip -o addr show`` into per-interface (ipv4, ipv6).

    Only the first address of each family is kept, without its prefix length.
    """
    addresses: dict[str, list[str]] = {}
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 4 or parts[2] not in ("inet", "inet6"):
            continue
        name = parts[1].rstrip(":")
        address = parts[3].partition("/")[0]
        slot = addresses.setdefault(name, ["", ""])
        index = 0 if parts[2] == "inet" else 1
        if not slot[index]:
            slot[index] = address
    return {name: (ipv4, ipv6) for name, (ipv4, ipv6) in addresses.items()}


def merge_network(
    counters: dict[str, tuple[int, int]],
    addresses: dict[str, tuple[str, str]],
) -> dict[str, NetworkInfo]:
    """Combine traffic counters and addresses into NetworkInfo per interface."""
    network: dict[str, NetworkInfo] = {}
    for name in list(counters) + [n for n in addresses if n not in counters]:
        rx, tx = counters.get(name, (0, 0))
        ipv4, ipv6 = addresses.get(name, ("", ""))
        network[name] = NetworkInfo(ipv4=ipv4, ipv6=ipv6, rx=rx, tx=tx)
    return network
