"""Domain models for request descriptors and dispatch events."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any

OFFLINE_MESSAGE = "Internet connection appears to be offline"
CANCELLED_MESSAGE = "cancelled"
DEFAULT_TIMEOUT_SECONDS = 3.0


class Verb(str, Enum):
    """HTTP verbs supported by the dispatcher."""

    GET = "GET"
    DELETE = "DELETE"
    POST = "POST"
    PUT = "PUT"

    @property
    def is_read_style(self) -> bool:
        """Read-style verbs carry parameters in the query string, not the body."""

        return self in (Verb.GET, Verb.DELETE)


class Priority(str, Enum):
    """Queue level. HIGH work preempts LOW work in flight."""

    HIGH = "high"
    LOW = "low"


class CachePolicy(str, Enum):
    """Caching behaviour requested for a single call."""

    USE_PROTOCOL = "use_protocol"
    IGNORE_LOCAL = "ignore_local"
    IGNORE_LOCAL_AND_REMOTE = "ignore_local_and_remote"


class State(IntEnum):
    """Lifecycle state reported to the completion callback."""

    START = 1001
    RETRY = 1002
    END = 1003


@dataclass(frozen=True, slots=True)
class Target:
    """Logical endpoint name on top of a base location."""

    base_url: str
    endpoint: str = ""

    @property
    def url(self) -> str:
        base = self.base_url.rstrip("/")
        if not self.endpoint:
            return base
        return f"{base}/{self.endpoint.lstrip('/')}"


@dataclass(frozen=True, slots=True)
class Success:
    """Transport returned a response, whatever its status code."""

    data: bytes
    status: int

    def as_dict(self) -> dict[str, Any]:
        return {"data": self.data, "code": str(self.status)}


@dataclass(frozen=True, slots=True)
class Failure:
    """No usable response: offline, transport error, cancellation or bad input."""

    message: str
    status: int = 0
    data: bytes | None = None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"message": self.message, "code": str(self.status)}
        if self.data is not None:
            payload["data"] = self.data
        return payload


Outcome = Success | Failure


@dataclass(frozen=True, slots=True)
class Start:
    state = State.START

    def as_dict(self) -> dict[str, Any]:
        return {"state": self.state}


@dataclass(frozen=True, slots=True)
class Retry:
    response: Failure
    state = State.RETRY

    def as_dict(self) -> dict[str, Any]:
        return {"state": self.state, "response": self.response.as_dict()}


@dataclass(frozen=True, slots=True)
class End:
    outcome: Outcome
    state = State.END

    @property
    def ok(self) -> bool:
        return isinstance(self.outcome, Success)

    def as_dict(self) -> dict[str, Any]:
        return {"state": self.state, "response": self.outcome.as_dict()}


DispatchEvent = Start | Retry | End
Callback = Callable[[DispatchEvent], None]


def _ignore_event(_event: DispatchEvent) -> None:
    return None


@dataclass(frozen=True, slots=True)
class RequestDescriptor:
    """One caller request plus the callback that receives its events."""

    target: Target
    verb: Verb = Verb.GET
    priority: Priority = Priority.LOW
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    max_retries: int = 0
    parameters: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    cache_policy: CachePolicy = CachePolicy.IGNORE_LOCAL_AND_REMOTE
    callback: Callback = _ignore_event

    def describe(self) -> str:
        return f"{self.verb.value} {self.target.url} priority={self.priority.value}"


@dataclass(frozen=True, slots=True)
class WireRequest:
    """Fully built request handed to the transport."""

    method: str
    url: str
    headers: dict[str, str]
    timeout_seconds: float
    body: bytes | None = None
