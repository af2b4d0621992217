"""Asynchronous httpx transport with cooperative cancellation."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Protocol

import httpx

from outbound_dispatch import __version__
from outbound_dispatch.dispatch.models import (
    CANCELLED_MESSAGE,
    Failure,
    Outcome,
    Success,
    WireRequest,
)

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = f"OutboundDispatch/{__version__}"
DEFAULT_MAX_WORKERS = 4

CompletionHandler = Callable[[Outcome], None]


class CancelHandle(Protocol):
    def cancel(self) -> None: ...


class Transport(Protocol):
    """Performs one wire request and reports exactly one terminal outcome."""

    def execute(self, request: WireRequest, on_complete: CompletionHandler) -> CancelHandle: ...


class PendingCall:
    """Cancellation handle that guarantees a single delivered outcome.

    ``cancel()`` reports the cancellation right away. The network result that
    arrives later, if any, is dropped.
    """

    def __init__(self, on_complete: CompletionHandler) -> None:
        self._on_complete = on_complete
        self._lock = threading.Lock()
        self._done = False
        self.future: Future[None] | None = None

    @property
    def done(self) -> bool:
        with self._lock:
            return self._done

    def cancel(self) -> None:
        if self.future is not None:
            self.future.cancel()
        self.deliver(Failure(CANCELLED_MESSAGE))

    def deliver(self, outcome: Outcome) -> bool:
        with self._lock:
            if self._done:
                return False
            self._done = True
        self._on_complete(outcome)
        return True


class HttpxTransport:
    """Runs requests through a shared ``httpx.Client`` on a small worker pool."""

    def __init__(
        self,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        max_workers: int = DEFAULT_MAX_WORKERS,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            headers={"User-Agent": user_agent},
            transport=transport,
            follow_redirects=False,
        )
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="outbound-transport",
        )

    def execute(self, request: WireRequest, on_complete: CompletionHandler) -> PendingCall:
        call = PendingCall(on_complete)
        call.future = self._executor.submit(self._perform, request, call)
        return call

    def _perform(self, request: WireRequest, call: PendingCall) -> None:
        if call.done:
            return
        outcome: Outcome
        try:
            response = self._client.request(
                request.method,
                request.url,
                headers=request.headers,
                content=request.body,
                timeout=httpx.Timeout(request.timeout_seconds),
            )
        except httpx.TimeoutException:
            logger.warning("Timeout on %s %s", request.method, request.url)
            outcome = Failure("timeout")
        except httpx.HTTPError as exc:
            logger.warning("HTTP error on %s %s: %s", request.method, request.url, exc)
            outcome = Failure(str(exc))
        else:
            outcome = Success(data=response.content, status=response.status_code)

        if not call.deliver(outcome):
            logger.debug("Dropping late result of %s %s", request.method, request.url)

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
        self._client.close()

    def __enter__(self) -> HttpxTransport:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
