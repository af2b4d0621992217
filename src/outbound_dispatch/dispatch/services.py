"""Use-case services wiring settings, collaborators and the scheduler."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from outbound_dispatch.config import Settings
from outbound_dispatch.dispatch.context import ExecutionContext
from outbound_dispatch.dispatch.models import (
    CachePolicy,
    Callback,
    Priority,
    RequestDescriptor,
    Target,
    Verb,
)
from outbound_dispatch.dispatch.scheduler import Scheduler
from outbound_dispatch.http.probe import SocketProbe
from outbound_dispatch.http.transport import HttpxTransport


@dataclass(slots=True)
class SubmitRequest:
    """High-level command to dispatch one request."""

    target: str
    endpoint: str = ""
    verb: Verb = Verb.GET
    priority: Priority = Priority.LOW
    parameters: dict[str, Any] | None = None
    headers: dict[str, str] | None = None
    timeout_seconds: float | None = None
    max_retries: int | None = None
    cache_policy: CachePolicy = CachePolicy.IGNORE_LOCAL_AND_REMOTE


def build_scheduler(settings: Settings, *, context: ExecutionContext | None = None) -> Scheduler:
    """Create a scheduler backed by the socket probe and the httpx transport."""

    settings.validate()
    return Scheduler(
        probe=SocketProbe(
            host=settings.probe.host,
            port=settings.probe.port,
            timeout_seconds=settings.probe.timeout_seconds,
        ),
        transport=HttpxTransport(
            user_agent=settings.transport.user_agent,
            max_workers=settings.transport.max_workers,
        ),
        context=context,
        retry_delay_seconds=settings.dispatch.retry_delay_seconds,
        owns_transport=True,
    )


class DispatchService:
    """Fills request defaults from settings and hands descriptors to the scheduler."""

    def __init__(self, *, scheduler: Scheduler, settings: Settings) -> None:
        self.scheduler = scheduler
        self.settings = settings

    def describe(self, command: SubmitRequest, callback: Callback) -> RequestDescriptor:
        dispatch = self.settings.dispatch
        return RequestDescriptor(
            target=Target(
                base_url=self.settings.resolve_target(command.target),
                endpoint=command.endpoint,
            ),
            verb=command.verb,
            priority=command.priority,
            timeout_seconds=(
                dispatch.default_timeout_seconds
                if command.timeout_seconds is None
                else command.timeout_seconds
            ),
            max_retries=max(
                dispatch.default_max_retries
                if command.max_retries is None
                else command.max_retries,
                0,
            ),
            parameters=dict(command.parameters or {}),
            headers=dict(command.headers or {}),
            cache_policy=command.cache_policy,
            callback=callback,
        )

    def submit(self, command: SubmitRequest, callback: Callback) -> RequestDescriptor:
        descriptor = self.describe(command, callback)
        self.scheduler.submit(descriptor)
        return descriptor
