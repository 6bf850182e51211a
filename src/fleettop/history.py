"""Per-connection store of the last raw CPU counters."""

import threading
from typing import Any

from fleettop.models import CPURaw


class _IdentityKey:
    """Dict key comparing by object identity, whatever the object's __eq__."""

    __slots__ = ("obj",)

    def __init__(self, obj: Any) -> None:
        self.obj = obj

    def __hash__(self) -> int:
        return id(self.obj)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, _IdentityKey) and other.obj is self.obj


class CounterHistory:
    """
    Last observed CPU counters per connection.

    Keys are connection objects compared by identity, so two connections to
    the same host keep separate baselines. Each key holds a single slot that
    is overwritten on every poll. Entries are never evicted on their own:
    call discard() when a connection is closed, or clear() to reset.

    All operations take one short lock around the dict access. No I/O runs
    while it is held, so pollers of different connections never wait on
    each other for longer than a dict update.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[_IdentityKey, CPURaw] = {}

    def get(self, connection: Any) -> CPURaw | None:
        """Return the baseline stored for a connection, or None."""
        with self._lock:
            return self._entries.get(_IdentityKey(connection))

    def put(self, connection: Any, raw: CPURaw) -> None:
        """Store raw counters as the connection's baseline."""
        with self._lock:
            self._entries[_IdentityKey(connection)] = raw

    def swap(self, connection: Any, raw: CPURaw) -> CPURaw | None:
        """
        Store a new baseline and return the one it replaces.

        The read and the write happen under the same lock, so concurrent polls
        of one connection each see a distinct previous reading.

        Args:
            connection: Open connection the counters were read from.
            raw: Counters read during this poll.

        Returns:
            The previous baseline, or None if the connection was unseen.
        """
        key = _IdentityKey(connection)
        with self._lock:
            previous = self._entries.get(key)
            self._entries[key] = raw
            return previous

    def discard(self, connection: Any) -> None:
        """Forget one connection, e.g. after it was closed."""
        with self._lock:
            self._entries.pop(_IdentityKey(connection), None)

    def clear(self) -> None:
        """Forget every connection."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, connection: object) -> bool:
        with self._lock:
            return _IdentityKey(connection) in self._entries
