from __future__ import annotations

import allure
import pytest

from outbound_dispatch.config import DispatchSettings, Settings
from outbound_dispatch.dispatch.models import CachePolicy, Priority, Verb
from outbound_dispatch.dispatch.scheduler import Scheduler, SchedulerClosedError
from outbound_dispatch.dispatch.services import DispatchService, SubmitRequest, build_scheduler

pytestmark = [
    allure.epic("Dispatcher"),
    allure.feature("Service Wiring"),
]


def test_describe_fills_defaults_from_settings(harness) -> None:
    settings = Settings(
        dispatch=DispatchSettings(default_timeout_seconds=7.5, default_max_retries=2),
    )
    service = DispatchService(scheduler=harness.scheduler, settings=settings)

    descriptor = service.describe(
        SubmitRequest(target="apple", endpoint="account", verb=Verb.PUT),
        harness.log.callback("a"),
    )

    assert descriptor.target.url == "http://www.apple.com/account"
    assert descriptor.timeout_seconds == 7.5
    assert descriptor.max_retries == 2
    assert descriptor.priority is Priority.LOW
    assert descriptor.cache_policy is CachePolicy.IGNORE_LOCAL_AND_REMOTE


def test_explicit_values_win_over_settings(harness) -> None:
    settings = Settings(dispatch=DispatchSettings(default_max_retries=2))
    service = DispatchService(scheduler=harness.scheduler, settings=settings)

    descriptor = service.submit(
        SubmitRequest(
            target="https://api.example.com",
            endpoint="ping",
            priority=Priority.HIGH,
            timeout_seconds=1.0,
            max_retries=0,
            parameters={"a": "1"},
        ),
        harness.log.callback("ping"),
    )

    assert descriptor.max_retries == 0
    assert descriptor.timeout_seconds == 1.0
    assert harness.log.states() == ["ping:START"]
    request, _ = harness.transport.calls[0]
    assert request.url == "https://api.example.com/ping?a=1"


def test_build_scheduler_owns_its_transport() -> None:
    scheduler = build_scheduler(Settings())

    assert isinstance(scheduler, Scheduler)
    scheduler.shutdown()
    with pytest.raises(SchedulerClosedError):
        scheduler.submit(
            DispatchService(scheduler=scheduler, settings=Settings()).describe(
                SubmitRequest(target="weather"),
                lambda _event: None,
            ),
        )


def test_build_scheduler_validates_settings() -> None:
    with pytest.raises(ValueError, match="TRANSPORT_WORKERS"):
        settings = Settings()
        settings.transport.max_workers = 0
        build_scheduler(settings)


def test_describe_clamps_negative_retry_limit(harness) -> None:
    service = DispatchService(scheduler=harness.scheduler, settings=Settings())

    descriptor = service.describe(
        SubmitRequest(target="weather", max_retries=-5),
        harness.log.callback("a"),
    )

    assert descriptor.max_retries == 0
