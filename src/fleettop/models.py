"""Data models for fleettop."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any


@dataclass(slots=True, frozen=True)
class FSInfo:
    """Usage of one mounted filesystem."""

    mount_point: str
    used: int  # Bytes
    free: int  # Bytes


@dataclass(slots=True, frozen=True)
class NetworkInfo:
    """Addresses and traffic counters of one network interface."""

    ipv4: str = ""
    ipv6: str = ""
    rx: int = 0  # Bytes received since boot
    tx: int = 0  # Bytes sent since boot


@dataclass(slots=True, frozen=True)
class CPURaw:
    """Cumulative CPU ticks since boot, as read from the aggregate ``cpu`` line."""

    user: int = 0
    nice: int = 0
    system: int = 0
    idle: int = 0
    io_wait: int = 0
    irq: int = 0
    soft_irq: int = 0
    steal: int = 0
    guest: int = 0
    total: int = 0


@dataclass(slots=True, frozen=True)
class CPUInfo:
    """CPU time breakdown over the last polling window."""

    user: float = 0.0  # 0.0 - 100.0
    nice: float = 0.0
    system: float = 0.0
    idle: float = 0.0
    io_wait: float = 0.0
    irq: float = 0.0
    soft_irq: float = 0.0
    steal: float = 0.0
    guest: float = 0.0
    core_num: int = 0


@dataclass(slots=True, frozen=True)
class Stats:
    """Immutable point-in-time snapshot of one remote host."""

    uptime: int = 0  # Seconds
    hostname: str = ""
    load1: str = ""
    load5: str = ""
    load15: str = ""
    running_process: str = ""
    total_process: str = ""
    mem_total: int = 0  # Bytes
    mem_free: int = 0
    mem_buffers: int = 0
    mem_available: int = 0
    mem_cached: int = 0
    swap_total: int = 0
    swap_free: int = 0
    fs_infos: tuple[FSInfo, ...] = ()
    network: Mapping[str, NetworkInfo] = field(default_factory=dict)
    cpu: CPUInfo = field(default_factory=CPUInfo)

    def __post_init__(self) -> None:
        # Freeze the containers too, callers share snapshots across threads
        object.__setattr__(self, "fs_infos", tuple(self.fs_infos))
        object.__setattr__(self, "network", MappingProxyType(dict(self.network)))

    def to_dict(self) -> dict[str, Any]:
        """Render the snapshot in its JSON shape."""
        return {
            "uptime": self.uptime,
            "hostname": self.hostname,
            "load1": self.load1,
            "load5": self.load5,
            "load15": self.load15,
            "runningProcess": self.running_process,
            "totalProcess": self.total_process,
            "memTotal": self.mem_total,
            "memFree": self.mem_free,
            "memBuffers": self.mem_buffers,
            "memAvailable": self.mem_available,
            "memCached": self.mem_cached,
            "swapTotal": self.swap_total,
            "swapFree": self.swap_free,
            "fsInfos": [
                {"mountPoint": fs.mount_point, "used": fs.used, "free": fs.free}
                for fs in self.fs_infos
            ],
            "network": {
                name: {"iPv4": net.ipv4, "iPv6": net.ipv6, "rx": net.rx, "tx": net.tx}
                for name, net in self.network.items()
            },
            "cpu": {
                "user": self.cpu.user,
                "nice": self.cpu.nice,
                "system": self.cpu.system,
                "idle": self.cpu.idle,
                "ioWait": self.cpu.io_wait,
                "irq": self.cpu.irq,
                "softIrq": self.cpu.soft_irq,
                "steal": self.cpu.steal,
                "guest": self.cpu.guest,
                "coreNum": self.cpu.core_num,
            },
        }

    def memory_used(self) -> int:
        """Bytes in use, not counting reclaimable buffers and page cache."""
        if self.mem_available:
            return max(self.mem_total - self.mem_available, 0)
        return max(self.mem_total - self.mem_free - self.mem_buffers - self.mem_cached, 0)
