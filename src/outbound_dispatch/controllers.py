"""Controllers for dispatcher CLI commands."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

from outbound_dispatch.config import Settings
from outbound_dispatch.dispatch.models import (
    CachePolicy,
    DispatchEvent,
    End,
    Priority,
    RequestDescriptor,
    Retry,
    Start,
    Success,
    Verb,
)
from outbound_dispatch.dispatch.scheduler import Scheduler
from outbound_dispatch.dispatch.services import DispatchService, SubmitRequest, build_scheduler
from outbound_dispatch.http.probe import SocketProbe

logger = logging.getLogger(__name__)

BODY_PREVIEW_CHARS = 2_000
_WAIT_MARGIN_SECONDS = 5.0


@dataclass(slots=True)
class SendCommand:
    """CLI input for a single dispatched request."""

    target: str
    endpoint: str
    verb: str
    priority: str
    params: tuple[str, ...]
    headers: tuple[str, ...]
    timeout_seconds: float | None
    max_retries: int | None
    cache_policy: str = CachePolicy.IGNORE_LOCAL_AND_REMOTE.value


@dataclass(slots=True)
class ProbeCommand:
    """CLI input for a connectivity check."""

    host: str | None
    port: int | None


@dataclass(slots=True)
class CommandResult:
    """Report to render in CLI."""

    lines: list[str]
    success: bool


class DispatchCliController:
    """Runs dispatcher operations for the CLI."""

    def __init__(
        self,
        scheduler_factory: Callable[[Settings], Scheduler] = build_scheduler,
    ) -> None:
        self.scheduler_factory = scheduler_factory

    def send(self, command: SendCommand) -> CommandResult:
        settings = Settings.from_env()
        request = SubmitRequest(
            target=command.target,
            endpoint=command.endpoint,
            verb=Verb(command.verb.upper()),
            priority=Priority(command.priority.lower()),
            parameters=_parse_pairs(command.params, "--param"),
            headers=_parse_pairs(command.headers, "--header"),
            timeout_seconds=command.timeout_seconds,
            max_retries=command.max_retries,
            cache_policy=CachePolicy(command.cache_policy),
        )

        lines: list[str] = []
        finished = threading.Event()
        outcome: list[End] = []

        def _on_event(event: DispatchEvent) -> None:
            lines.extend(render_event(event))
            if isinstance(event, End):
                outcome.append(event)
                finished.set()

        with self.scheduler_factory(settings) as scheduler:
            service = DispatchService(scheduler=scheduler, settings=settings)
            descriptor = service.submit(request, _on_event)
            wait_seconds = _wait_budget(descriptor, settings)
            if not finished.wait(wait_seconds):
                logger.warning("No terminal event after %.1fs", wait_seconds)
                lines.append("Timed out waiting for response.")
                return CommandResult(lines=list(lines), success=False)

        return CommandResult(lines=lines, success=bool(outcome) and outcome[0].ok)

    def probe(self, command: ProbeCommand) -> CommandResult:
        settings = Settings.from_env()
        probe = SocketProbe(
            host=command.host or settings.probe.host,
            port=command.port or settings.probe.port,
            timeout_seconds=settings.probe.timeout_seconds,
        )
        reachable = probe.is_reachable()
        state = "reachable" if reachable else "unreachable"
        return CommandResult(lines=[f"{probe.host}:{probe.port} {state}"], success=reachable)

    def targets(self) -> list[str]:
        settings = Settings.from_env()
        return [f"{name}: {url}" for name, url in sorted(settings.targets.items())]


def render_event(event: DispatchEvent) -> list[str]:
    """Render one dispatch event as CLI lines."""

    if isinstance(event, Start):
        return ["START"]
    if isinstance(event, Retry):
        return [f"RETRY code={event.response.status} message={event.response.message}"]
    outcome = event.outcome
    if isinstance(outcome, Success):
        body = outcome.data.decode("utf-8", errors="replace")
        if len(body) > BODY_PREVIEW_CHARS:
            body = body[:BODY_PREVIEW_CHARS] + "..."
        lines = [f"END code={outcome.status} bytes={len(outcome.data)}"]
        if body:
            lines.append(body)
        return lines
    return [f"END code={outcome.status} message={outcome.message}"]


def _parse_pairs(values: tuple[str, ...], option: str) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for raw in values:
        if "=" not in raw:
            raise ValueError(f"Invalid {option} value {raw!r}. Expected format 'key=value'.")
        key, value = raw.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError(f"Invalid {option} value {raw!r}. Key must not be empty.")
        pairs[key] = value
    return pairs


def _wait_budget(descriptor: RequestDescriptor, settings: Settings) -> float:
    retries = max(descriptor.max_retries, 0)
    # Every attempt probes; only the final one reaches the transport.
    return (
        (retries + 1) * settings.probe.timeout_seconds
        + retries * settings.dispatch.retry_delay_seconds
        + descriptor.timeout_seconds
        + _WAIT_MARGIN_SECONDS
    )
