"""Runtime configuration for the dispatcher and its collaborators."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

from outbound_dispatch.dispatch.models import DEFAULT_TIMEOUT_SECONDS
from outbound_dispatch.dispatch.scheduler import DEFAULT_RETRY_DELAY_SECONDS
from outbound_dispatch.http.probe import (
    DEFAULT_PROBE_HOST,
    DEFAULT_PROBE_PORT,
    DEFAULT_PROBE_TIMEOUT_SECONDS,
)
from outbound_dispatch.http.transport import DEFAULT_MAX_WORKERS, DEFAULT_USER_AGENT

TARGET_ENV_PREFIX = "OUTBOUND_DISPATCH_TARGET_"

DEFAULT_TARGETS: dict[str, str] = {
    "weather": "https://api.openweathermap.org/data/2.5",
    "apple": "http://www.apple.com",
}


@dataclass(slots=True)
class DispatchSettings:
    """Scheduler behaviour and request defaults."""

    retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS
    default_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    default_max_retries: int = 0


@dataclass(slots=True)
class ProbeSettings:
    """Connectivity probe endpoint."""

    host: str = DEFAULT_PROBE_HOST
    port: int = DEFAULT_PROBE_PORT
    timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS


@dataclass(slots=True)
class TransportSettings:
    """HTTP transport settings."""

    user_agent: str = DEFAULT_USER_AGENT
    max_workers: int = DEFAULT_MAX_WORKERS


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    dispatch: DispatchSettings = field(default_factory=DispatchSettings)
    probe: ProbeSettings = field(default_factory=ProbeSettings)
    transport: TransportSettings = field(default_factory=TransportSettings)
    targets: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_TARGETS))

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment, falling back to defaults."""

        return cls(
            dispatch=DispatchSettings(
                retry_delay_seconds=float(
                    os.getenv(
                        "OUTBOUND_DISPATCH_RETRY_DELAY_SECONDS",
                        str(DEFAULT_RETRY_DELAY_SECONDS),
                    ),
                ),
                default_timeout_seconds=float(
                    os.getenv(
                        "OUTBOUND_DISPATCH_DEFAULT_TIMEOUT_SECONDS",
                        str(DEFAULT_TIMEOUT_SECONDS),
                    ),
                ),
                default_max_retries=int(os.getenv("OUTBOUND_DISPATCH_DEFAULT_MAX_RETRIES", "0")),
            ),
            probe=ProbeSettings(
                host=os.getenv("OUTBOUND_DISPATCH_PROBE_HOST", DEFAULT_PROBE_HOST),
                port=int(os.getenv("OUTBOUND_DISPATCH_PROBE_PORT", str(DEFAULT_PROBE_PORT))),
                timeout_seconds=float(
                    os.getenv(
                        "OUTBOUND_DISPATCH_PROBE_TIMEOUT_SECONDS",
                        str(DEFAULT_PROBE_TIMEOUT_SECONDS),
                    ),
                ),
            ),
            transport=TransportSettings(
                user_agent=os.getenv("OUTBOUND_DISPATCH_USER_AGENT", DEFAULT_USER_AGENT),
                max_workers=int(
                    os.getenv("OUTBOUND_DISPATCH_TRANSPORT_WORKERS", str(DEFAULT_MAX_WORKERS)),
                ),
            ),
            targets={**DEFAULT_TARGETS, **_collect_targets()},
        )

    def validate(self) -> None:
        """Raise configuration error on out-of-range values."""

        if self.dispatch.retry_delay_seconds < 0:
            raise ValueError("OUTBOUND_DISPATCH_RETRY_DELAY_SECONDS must be >= 0.")
        if self.dispatch.default_timeout_seconds <= 0:
            raise ValueError("OUTBOUND_DISPATCH_DEFAULT_TIMEOUT_SECONDS must be > 0.")
        if not self.probe.host.strip():
            raise ValueError("OUTBOUND_DISPATCH_PROBE_HOST must not be empty.")
        if not 0 < self.probe.port < 65536:  # noqa: PLR2004
            raise ValueError("OUTBOUND_DISPATCH_PROBE_PORT must be between 1 and 65535.")
        if self.probe.timeout_seconds <= 0:
            raise ValueError("OUTBOUND_DISPATCH_PROBE_TIMEOUT_SECONDS must be > 0.")
        if self.transport.max_workers < 1:
            raise ValueError("OUTBOUND_DISPATCH_TRANSPORT_WORKERS must be >= 1.")
        for name, url in self.targets.items():
            _validate_base_url(name, url)

    def resolve_target(self, name_or_url: str) -> str:
        """Return the base URL for a configured target name or an absolute URL."""

        key = name_or_url.strip().lower()
        if key in self.targets:
            return self.targets[key]
        _validate_base_url(name_or_url, name_or_url)
        return name_or_url


def _collect_targets() -> dict[str, str]:
    targets: dict[str, str] = {}
    for name, value in os.environ.items():
        if not name.startswith(TARGET_ENV_PREFIX):
            continue
        target_name = name[len(TARGET_ENV_PREFIX) :].strip().lower()
        url = value.strip()
        if not target_name or not url:
            continue
        _validate_base_url(target_name, url)
        targets[target_name] = url
    return targets


def _validate_base_url(name: str, value: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            f"Invalid target URL for {name!r}: "
            f"{value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )
