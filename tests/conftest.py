"""Shared test fixtures and in-memory collaborators."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

import pytest

from outbound_dispatch.dispatch.context import InlineContext, Step
from outbound_dispatch.dispatch.models import (
    DispatchEvent,
    Outcome,
    Priority,
    RequestDescriptor,
    Success,
    Target,
    WireRequest,
)
from outbound_dispatch.dispatch.scheduler import Scheduler
from outbound_dispatch.http.transport import CompletionHandler, PendingCall


class FakeProbe:
    """Answers from a script, then repeats the last answer."""

    def __init__(self, answers: Iterable[bool] = (True,)) -> None:
        self._answers = list(answers)
        self.checks = 0

    def is_reachable(self) -> bool:
        self.checks += 1
        if len(self._answers) > 1:
            return self._answers.pop(0)
        return self._answers[0]


class FakeTransport:
    """Records calls; tests finish them through ``complete``."""

    def __init__(self, *, auto_outcome: Outcome | None = None) -> None:
        self.auto_outcome = auto_outcome
        self.calls: list[tuple[WireRequest, PendingCall]] = []

    def execute(self, request: WireRequest, on_complete: CompletionHandler) -> PendingCall:
        call = PendingCall(on_complete)
        self.calls.append((request, call))
        if self.auto_outcome is not None:
            call.deliver(self.auto_outcome)
        return call

    def complete(self, index: int = -1, outcome: Outcome | None = None) -> None:
        _, call = self.calls[index]
        call.deliver(outcome or Success(data=b"ok", status=200))

    @property
    def in_flight(self) -> int:
        return sum(1 for _, call in self.calls if not call.done)


class ManualTimer:
    def __init__(self, step: Step) -> None:
        self.step = step
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualContext(InlineContext):
    """Inline context whose timers only fire when the test says so."""

    def __init__(self) -> None:
        super().__init__()
        self.timers: list[ManualTimer] = []

    def post_later(self, delay_seconds: float, step: Step) -> ManualTimer:  # type: ignore[override]
        timer = ManualTimer(step)
        self.timers.append(timer)
        return timer

    @property
    def armed(self) -> list[ManualTimer]:
        return [timer for timer in self.timers if not timer.cancelled and not timer.fired]

    def fire_timers(self) -> None:
        for timer in self.armed:
            timer.fired = True
            self.post(timer.step)


@dataclass
class EventLog:
    """Collects (request name, event) pairs across descriptors."""

    entries: list[tuple[str, DispatchEvent]] = field(default_factory=list)

    def callback(self, name: str):
        def _record(event: DispatchEvent) -> None:
            self.entries.append((name, event))

        return _record

    def states(self, name: str | None = None) -> list[str]:
        return [
            f"{entry_name}:{event.state.name}"
            for entry_name, event in self.entries
            if name is None or entry_name == name
        ]

    def events(self, name: str) -> list[DispatchEvent]:
        return [event for entry_name, event in self.entries if entry_name == name]


@dataclass
class Harness:
    scheduler: Scheduler
    probe: FakeProbe
    transport: FakeTransport
    context: ManualContext
    log: EventLog

    def request(
        self,
        name: str,
        priority: Priority = Priority.LOW,
        **overrides: object,
    ) -> RequestDescriptor:
        overrides.setdefault("target", Target("https://api.example.com", name))
        overrides.setdefault("callback", self.log.callback(name))
        return RequestDescriptor(
            priority=priority,
            **overrides,  # type: ignore[arg-type]
        )

    def submit(self, name: str, priority: Priority = Priority.LOW, **overrides: object) -> None:
        self.scheduler.submit(self.request(name, priority, **overrides))


def make_harness(probe_answers: Iterable[bool] = (True,)) -> Harness:
    probe = FakeProbe(probe_answers)
    transport = FakeTransport()
    context = ManualContext()
    scheduler = Scheduler(probe=probe, transport=transport, context=context)
    return Harness(
        scheduler=scheduler,
        probe=probe,
        transport=transport,
        context=context,
        log=EventLog(),
    )


@pytest.fixture()
def harness() -> Harness:
    return make_harness()


@pytest.fixture()
def offline_harness() -> Harness:
    return make_harness((False,))


@pytest.fixture()
def harness_factory():
    return make_harness
