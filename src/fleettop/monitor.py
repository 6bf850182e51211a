"""Fleet polling engine for fleettop."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from queue import Queue
from typing import Any

from fleettop.responses import HostResult
from fleettop.runner import CommandError
from fleettop.sampler import Sampler

logger = logging.getLogger(__name__)


class FleetMonitor:
    """
    Polls every registered host and pushes each round of results to a Queue.

    Runs in a separate daemon thread. Each round samples all hosts in
    parallel, one worker per host, since every poll mostly waits on the
    network. A host that fails yields a failed HostResult; the other hosts
    and later rounds are unaffected.
    """

    def __init__(
        self,
        update_queue: Queue[list[HostResult]],
        sampler: Sampler,
        poll_rate: float = 2.0,
        max_workers: int = 8,
    ) -> None:
        """
        Initialize the FleetMonitor.

        Args:
            update_queue: Thread-safe queue to push round results to.
            sampler: Sampler used for every host.
            poll_rate: How often to poll the fleet (in seconds). Default 2.0s.
            max_workers: Upper bound on hosts polled at the same time.
        """
        self._queue = update_queue
        self._sampler = sampler
        self._poll_rate = max(0.1, poll_rate)
        self._max_workers = max(1, max_workers)
        self._hosts: dict[str, Any] = {}
        self._hosts_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate."""
        self._poll_rate = max(0.1, value)  # Minimum 0.1 seconds

    @property
    def is_running(self) -> bool:
        """Check if the monitor thread is running."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def hosts(self) -> list[str]:
        """Names of the registered hosts, in registration order."""
        with self._hosts_lock:
            return list(self._hosts)

    def add_host(self, name: str, connection: Any) -> None:
        """
        Register an open connection under a display name.

        Replacing the connection of an existing name drops the old
        connection's CPU baseline.
        """
        with self._hosts_lock:
            previous = self._hosts.get(name)
            self._hosts[name] = connection
        if previous is not None and previous is not connection:
            self._sampler.history.discard(previous)

    def remove_host(self, name: str) -> Any:
        """
        Unregister a host and forget its CPU baseline.

        Returns:
            The connection that was registered, so the caller can close it.
        """
        with self._hosts_lock:
            connection = self._hosts.pop(name, None)
        if connection is not None:
            self._sampler.history.discard(connection)
        return connection

    def clear_history(self) -> None:
        """
        Forget the CPU baselines of all hosts.

        A poll already in flight may store its counters right after the
        clear; that host then reports rates against them on the next round
        instead of a first sample.
        """
        self._sampler.history.clear()

    def start(self) -> None:
        """Start the monitoring thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="FleetMonitor",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the monitoring thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def poll_once(self) -> list[HostResult]:
        """Poll every registered host once, results in registration order."""
        with self._hosts_lock:
            hosts = list(self._hosts.items())
        if not hosts:
            return []

        workers = min(self._max_workers, len(hosts))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="FleetPoller") as pool:
            return list(pool.map(lambda item: self._poll_host(*item), hosts))

    def _poll_host(self, name: str, connection: Any) -> HostResult:
        try:
            return HostResult.succeeded(name, self._sampler.sample(connection))
        except CommandError as e:
            logger.warning(f"Polling {name} failed: {e}")
            return HostResult.failed(name, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error polling {name}")
            return HostResult.failed(name, f"unexpected error: {e}")
        finally:
            self._forget_if_unregistered(connection)

    def _forget_if_unregistered(self, connection: Any) -> None:
        # Host removed or replaced while its poll ran; drop what the poll stored
        with self._hosts_lock:
            registered = any(c is connection for c in self._hosts.values())
        if not registered:
            self._sampler.history.discard(connection)

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        while not self._stop_event.is_set():
            try:
                self._queue.put(self.poll_once())
            except Exception:
                logger.exception("Error while polling the fleet")

            # Wait for poll_rate seconds or until stop is requested
            self._stop_event.wait(timeout=self._poll_rate)
