"""Command execution over an open connection."""

import logging
import socket
import subprocess
import time
from dataclasses import dataclass
from typing import Any, Protocol

import paramiko
import psutil

logger = logging.getLogger(__name__)

RECV_CHUNK = 32768


class CommandError(Exception):
    """A diagnostic command could not be run or exited with an error."""

    def __init__(
        self,
        command: str,
        message: str,
        exit_status: int | None = None,
        output: str = "",
    ) -> None:
        super().__init__(f"{command}: {message}")
        self.command = command
        self.exit_status = exit_status
        self.output = output


class CommandTimeout(CommandError, TimeoutError):
    """A diagnostic command did not finish before its deadline."""


class CommandRunner(Protocol):
    """Runs one command on an open connection and returns its output."""

    def run(self, connection: Any, command: str, timeout: float | None = None) -> str:
        """
        Execute a command and return stdout and stderr combined.

        Raises:
            CommandError: The command failed or the transport broke.
            CommandTimeout: The command outlived ``timeout`` seconds.
        """
        ...


class SSHCommandRunner:
    """Runs commands on a connected paramiko SSHClient."""

    def run(
        self,
        connection: paramiko.SSHClient,
        command: str,
        timeout: float | None = None,
    ) -> str:
        transport = connection.get_transport()
        if transport is None or not transport.is_active():
            raise CommandError(command, "SSH transport is not active")

        deadline = None if timeout is None else time.monotonic() + timeout
        logger.debug(f"Executing SSH command: {command}")
        try:
            channel = transport.open_session(timeout=timeout)
        except (paramiko.SSHException, OSError) as e:
            raise CommandError(command, f"cannot open session: {e}") from e

        try:
            channel.set_combine_stderr(True)
            channel.exec_command(command)
            chunks: list[bytes] = []
            while True:
                channel.settimeout(_remaining(deadline, command))
                data = channel.recv(RECV_CHUNK)
                if not data:
                    break
                chunks.append(data)
            if not channel.status_event.wait(_remaining(deadline, command)):
                raise CommandTimeout(command, f"no exit status after {timeout} seconds")
            exit_status = channel.exit_status
        except CommandError:
            raise
        except socket.timeout as e:
            raise CommandTimeout(command, f"timed out after {timeout} seconds") from e
        except (paramiko.SSHException, OSError) as e:
            raise CommandError(command, str(e)) from e
        finally:
            channel.close()

        output = b"".join(chunks).decode("utf-8", errors="replace")
        if exit_status != 0:
            logger.debug(f"SSH command {command} exited with {exit_status}")
            raise CommandError(
                command,
                f"exited with status {exit_status}: {output.strip()}",
                exit_status=exit_status,
                output=output,
            )
        return output


def _remaining(deadline: float | None, command: str) -> float | None:
    if deadline is None:
        return None
    remaining = deadline - time.monotonic()
    if remaining <= 0:
        raise CommandTimeout(command, "deadline passed")
    return remaining


@dataclass(eq=False)
class LocalConnection:
    """Handle standing in for a remote session when sampling this machine."""

    name: str = "localhost"


class LocalCommandRunner:
    """Runs commands through the local shell."""

    def run(
        self,
        connection: LocalConnection,
        command: str,
        timeout: float | None = None,
    ) -> str:
        logger.debug(f"Executing command on {connection.name}: {command}")
        try:
            process = subprocess.Popen(
                command,
                shell=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            raise CommandError(command, str(e)) from e

        try:
            output, _ = process.communicate(timeout=timeout)
        except subprocess.TimeoutExpired as e:
            _kill_tree(process.pid)
            process.communicate()
            raise CommandTimeout(command, f"timed out after {timeout} seconds") from e

        if process.returncode != 0:
            raise CommandError(
                command,
                f"exited with status {process.returncode}: {output.strip()}",
                exit_status=process.returncode,
                output=output,
            )
        return output


def _kill_tree(pid: int) -> None:
    """Kill a shell and everything it spawned."""
    try:
        parent = psutil.Process(pid)
        procs = parent.children(recursive=True) + [parent]
    except psutil.NoSuchProcess:
        return
    for proc in procs:
        try:
            proc.kill()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    psutil.wait_procs(procs, timeout=1.0)


def parse_target(target: str, default_user: str, default_port: int) -> tuple[str, str, int]:
    """
    Split ``[user@]host[:port]`` into its parts.

    IPv6 hosts with a port must be bracketed: ``root@[::1]:2222``.
    """
    user, _, hostport = target.rpartition("@")
    user = user or default_user
    port = default_port
    if hostport.startswith("["):
        host, _, rest = hostport[1:].partition("]")
        if rest.startswith(":"):
            port = int(rest[1:])
    elif hostport.count(":") == 1:
        host, _, port_str = hostport.partition(":")
        port = int(port_str)
    else:
        host = hostport
    if not host:
        raise ValueError(f"Invalid target: {target!r}")
    return user, host, port


def connect_ssh(
    target: str,
    user: str = "root",
    port: int = 22,
    key_filename: str | None = None,
    timeout: float | None = None,
) -> paramiko.SSHClient:
    """Open and authenticate an SSH client for ``[user@]host[:port]``."""
    user, host, port = parse_target(target, user, port)
    client = paramiko.SSHClient()
    client.load_system_host_keys()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
    logger.info(f"Connecting to {user}@{host}:{port}")
    client.connect(
        host,
        port=port,
        username=user,
        key_filename=key_filename,
        timeout=timeout,
    )
    return client
