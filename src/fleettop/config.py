"""Configuration for fleettop."""

import logging
import os
from dataclasses import dataclass

# Commands
MEMINFO_CMD = "/bin/cat /proc/meminfo"
DF_CMD = "/bin/df -B1"
PROC_STAT_CMD = "/bin/cat /proc/stat"
UPTIME_CMD = "/bin/cat /proc/uptime"
LOADAVG_CMD = "/bin/cat /proc/loadavg"
HOSTNAME_CMD = "hostname"
NET_DEV_CMD = "/bin/cat /proc/net/dev"
IP_ADDR_CMD = "ip -o addr show"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class MonitorConfig:
    """Polling, SSH and logging settings"""

    poll_rate: float = 2.0
    command_timeout: float = 10.0
    max_workers: int = 8
    collect_network: bool = True
    ssh_user: str = "root"
    ssh_port: int = 22
    ssh_key: str | None = None
    connect_timeout: float = 10.0
    log_level: str = "WARNING"
    log_file: str | None = None
    once_interval: float = 1.0

    @classmethod
    def from_env(cls) -> "MonitorConfig":
        poll_rate = float(os.getenv("FLEETTOP_POLL_RATE", "2.0"))
        command_timeout = float(os.getenv("FLEETTOP_COMMAND_TIMEOUT", "10.0"))
        max_workers = int(os.getenv("FLEETTOP_MAX_WORKERS", "8"))
        if command_timeout <= 0:
            raise ValueError("FLEETTOP_COMMAND_TIMEOUT must be greater than 0")
        if max_workers < 1:
            raise ValueError("FLEETTOP_MAX_WORKERS must be at least 1")
        log_level = os.getenv("FLEETTOP_LOG_LEVEL", "WARNING").upper()
        if not isinstance(logging.getLevelName(log_level), int):
            raise ValueError(f"FLEETTOP_LOG_LEVEL: unknown level {log_level!r}")
        once_interval = float(os.getenv("FLEETTOP_ONCE_INTERVAL", "1.0"))
        if once_interval < 0:
            raise ValueError("FLEETTOP_ONCE_INTERVAL must not be negative")

        return cls(
            poll_rate=poll_rate,
            command_timeout=command_timeout,
            max_workers=max_workers,
            collect_network=_env_bool("FLEETTOP_COLLECT_NETWORK", True),
            ssh_user=os.getenv("FLEETTOP_SSH_USER", "root"),
            ssh_port=int(os.getenv("FLEETTOP_SSH_PORT", "22")),
            ssh_key=os.getenv("FLEETTOP_SSH_KEY") or None,
            connect_timeout=float(os.getenv("FLEETTOP_CONNECT_TIMEOUT", "10.0")),
            log_level=log_level,
            log_file=os.getenv("FLEETTOP_LOG_FILE") or None,
            once_interval=once_interval,
        )


def configure_logging(config: MonitorConfig, console: bool = True) -> None:
    """
    Configure the root logger once for the command line entry point.

    Args:
        config: Settings holding level and optional log file.
        console: Whether stderr may receive log lines. The dashboard passes
            False because output on the terminal would corrupt the screen.
    """
    level = logging.getLevelName(config.log_level)
    if not isinstance(level, int):
        raise ValueError(f"unknown log level {config.log_level!r}")
    if config.log_file:
        logging.basicConfig(level=level, format=LOG_FORMAT, filename=config.log_file)
    elif console:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    else:
        logging.getLogger().addHandler(logging.NullHandler())
        logging.getLogger().setLevel(level)

    # paramiko logs every channel at INFO
    logging.getLogger("paramiko").setLevel(max(level, logging.WARNING))
