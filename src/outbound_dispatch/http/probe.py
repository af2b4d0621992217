"""Connectivity probes."""

from __future__ import annotations

import logging
import socket
from typing import Protocol

logger = logging.getLogger(__name__)

DEFAULT_PROBE_HOST = "www.google.com"
DEFAULT_PROBE_PORT = 443
DEFAULT_PROBE_TIMEOUT_SECONDS = 2.0


class ConnectivityProbe(Protocol):
    def is_reachable(self) -> bool: ...


class SocketProbe:
    """Treats the network as reachable when a TCP connect to a known host succeeds."""

    def __init__(
        self,
        *,
        host: str = DEFAULT_PROBE_HOST,
        port: int = DEFAULT_PROBE_PORT,
        timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
    ) -> None:
        self.host = host
        self.port = port
        self.timeout_seconds = timeout_seconds

    def is_reachable(self) -> bool:
        try:
            with socket.create_connection((self.host, self.port), timeout=self.timeout_seconds):
                return True
        except OSError as exc:
            logger.debug("Probe %s:%s unreachable: %s", self.host, self.port, exc)
            return False
