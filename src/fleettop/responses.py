"""Result types handed from the monitor to its consumers."""

from dataclasses import dataclass
from typing import Any

from fleettop.models import Stats


@dataclass(slots=True, frozen=True)
class Response:
    """JSON envelope with a primary and an optional secondary payload."""

    status: str
    msg: str = ""
    data: Any = None
    data2: Any = None

    @classmethod
    def ok(cls, data: Any = None, data2: Any = None) -> "Response":
        return cls(status="ok", data=data, data2=data2)

    @classmethod
    def error(cls, msg: str, data: Any = None, data2: Any = None) -> "Response":
        return cls(status="error", msg=msg, data=data, data2=data2)

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "msg": self.msg, "data": self.data, "data2": self.data2}


@dataclass(slots=True, frozen=True)
class HostResult:
    """Outcome of polling one host: a snapshot or the error that stopped it."""

    host: str
    stats: Stats | None = None
    error: str | None = None

    @classmethod
    def succeeded(cls, host: str, stats: Stats) -> "HostResult":
        return cls(host=host, stats=stats)

    @classmethod
    def failed(cls, host: str, error: str) -> "HostResult":
        return cls(host=host, error=error)

    @property
    def ok(self) -> bool:
        return self.stats is not None

    def to_response(self) -> Response:
        """Envelope for this result, the host name as secondary payload."""
        if self.stats is not None:
            return Response.ok(self.stats.to_dict(), self.host)
        return Response.error(self.error or "unknown error", data2=self.host)
