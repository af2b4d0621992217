"""Two-level priority scheduler for outbound requests.

At most one request runs at a time. HIGH requests run to completion; a LOW
request in flight is cancelled as soon as HIGH work is waiting. While the
network is unreachable the running request is retried at a fixed interval,
up to its ``max_retries``, before it fails.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, replace
from functools import partial

from outbound_dispatch.dispatch.context import ExecutionContext, SerialContext, TimerHandle
from outbound_dispatch.dispatch.models import (
    CANCELLED_MESSAGE,
    OFFLINE_MESSAGE,
    DispatchEvent,
    End,
    Failure,
    Outcome,
    Priority,
    RequestDescriptor,
    Retry,
    Start,
    WireRequest,
)
from outbound_dispatch.http.encoder import EncodingError, build_request
from outbound_dispatch.http.probe import ConnectivityProbe
from outbound_dispatch.http.transport import CancelHandle, Transport

logger = logging.getLogger(__name__)

DEFAULT_RETRY_DELAY_SECONDS = 2.0
SHUTDOWN_MESSAGE = "Dispatcher shut down"


class SchedulerClosedError(RuntimeError):
    """Raised when submitting to a scheduler that has been shut down."""


@dataclass(slots=True)
class _Slot:
    """The single active execution."""

    descriptor: RequestDescriptor
    token: int
    attempt: int = 1
    handle: CancelHandle | None = None
    retry_timer: TimerHandle | None = None


class Scheduler:
    """Serializes outbound requests through a HIGH and a LOW FIFO queue."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        probe: ConnectivityProbe,
        transport: Transport,
        context: ExecutionContext | None = None,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
        request_builder: Callable[[RequestDescriptor], WireRequest] = build_request,
        owns_transport: bool = False,
    ) -> None:
        self._probe = probe
        self._transport = transport
        self._context = context or SerialContext()
        self._retry_delay_seconds = retry_delay_seconds
        self._build_request = request_builder
        self._owns_transport = owns_transport
        self._high: deque[RequestDescriptor] = deque()
        self._low: deque[RequestDescriptor] = deque()
        self._slot: _Slot | None = None
        self._tokens = itertools.count(1)
        self._closed = threading.Event()
        self._submit_lock = threading.RLock()

    def submit(self, descriptor: RequestDescriptor) -> None:
        """Queue ``descriptor``; its events arrive through its callback."""

        if descriptor.max_retries < 0:
            descriptor = replace(descriptor, max_retries=0)
        # Accepted descriptors are posted ahead of the shutdown step.
        with self._submit_lock:
            if self._closed.is_set():
                raise SchedulerClosedError("Scheduler has been shut down")
            self._context.post(partial(self._enqueue, descriptor))

    def pending(self) -> dict[Priority, int]:
        """Queued request counts per priority, the running one included.

        Read outside the serial context, so with a threaded context this is a
        best-effort snapshot that may lag steps still in flight.
        """

        return {Priority.HIGH: len(self._high), Priority.LOW: len(self._low)}

    def shutdown(self) -> None:
        """Cancel in-flight and queued work and stop the execution context.

        Every request that has not finished yet receives a failed ``End``.
        """

        with self._submit_lock:
            if self._closed.is_set():
                return
            self._closed.set()
            self._context.post(self._abandon_all)
        self._context.close()
        if self._owns_transport:
            close = getattr(self._transport, "close", None)
            if close is not None:
                close()

    def __enter__(self) -> Scheduler:
        return self

    def __exit__(self, *_: object) -> None:
        self.shutdown()

    def _enqueue(self, descriptor: RequestDescriptor) -> None:
        if self._closed.is_set():
            self._emit(descriptor, End(Failure(SHUTDOWN_MESSAGE)))
            return
        self._queue_for(descriptor).append(descriptor)
        logger.debug("Queued %s", descriptor.describe())
        self._dispatch()

    def _queue_for(self, descriptor: RequestDescriptor) -> deque[RequestDescriptor]:
        return self._high if descriptor.priority is Priority.HIGH else self._low

    def _dispatch(self) -> None:
        if self._closed.is_set():
            return
        slot = self._slot
        if slot is not None:
            if slot.descriptor.priority is Priority.LOW and self._high:
                self._preempt(slot)
            return

        if self._high:
            descriptor = self._high[0]
        elif self._low:
            descriptor = self._low[0]
        else:
            logger.debug("Queues empty, dispatcher idle")
            return

        slot = _Slot(descriptor=descriptor, token=next(self._tokens))
        self._slot = slot
        logger.info("Starting %s", descriptor.describe())
        self._emit(descriptor, Start())
        self._execute(slot)

    def _preempt(self, slot: _Slot) -> None:
        logger.info("Preempting %s for high priority work", slot.descriptor.describe())
        if slot.handle is not None:
            # Completion arrives as a cancelled outcome and triggers the next selection.
            slot.handle.cancel()
        elif slot.retry_timer is not None:
            slot.retry_timer.cancel()
            slot.retry_timer = None
            self._finish(slot, Failure(CANCELLED_MESSAGE))

    def _execute(self, slot: _Slot) -> None:
        descriptor = slot.descriptor
        if not self._is_reachable():
            if slot.attempt <= descriptor.max_retries:
                logger.warning(
                    "Offline, retry %d of %d for %s in %.1fs",
                    slot.attempt,
                    descriptor.max_retries,
                    descriptor.describe(),
                    self._retry_delay_seconds,
                )
                slot.attempt += 1
                self._emit(descriptor, Retry(Failure(OFFLINE_MESSAGE)))
                slot.retry_timer = self._context.post_later(
                    self._retry_delay_seconds,
                    partial(self._resume, slot.token),
                )
            else:
                self._finish(slot, Failure(OFFLINE_MESSAGE))
            return

        try:
            request = self._build_request(descriptor)
        except EncodingError as exc:
            logger.warning("Cannot encode %s: %s", descriptor.describe(), exc)
            self._finish(slot, Failure(str(exc)))
            return

        slot.handle = self._transport.execute(request, partial(self._on_transport_done, slot.token))

    def _is_reachable(self) -> bool:
        try:
            return self._probe.is_reachable()
        except OSError as exc:
            logger.warning("Connectivity probe failed: %s", exc)
            return False

    def _resume(self, token: int) -> None:
        slot = self._slot
        if slot is None or slot.token != token:
            return
        slot.retry_timer = None
        self._execute(slot)

    def _on_transport_done(self, token: int, outcome: Outcome) -> None:
        # Called from transport threads; hop back into the serial context.
        self._context.post(partial(self._complete, token, outcome))

    def _complete(self, token: int, outcome: Outcome) -> None:
        slot = self._slot
        if slot is None or slot.token != token:
            logger.debug("Ignoring outcome of a finished call: %s", outcome)
            return
        self._finish(slot, outcome)

    def _finish(self, slot: _Slot, outcome: Outcome) -> None:
        descriptor = slot.descriptor
        logger.info("Finished %s: %s", descriptor.describe(), outcome)
        self._emit(descriptor, End(outcome))
        self._queue_for(descriptor).popleft()
        self._slot = None
        self._context.post(self._dispatch)

    def _abandon_all(self) -> None:
        slot, self._slot = self._slot, None
        if slot is not None:
            if slot.retry_timer is not None:
                slot.retry_timer.cancel()
            if slot.handle is not None:
                slot.handle.cancel()
        abandoned = [*self._high, *self._low]
        self._high.clear()
        self._low.clear()
        if abandoned:
            logger.info("Abandoning %d queued request(s) on shutdown", len(abandoned))
        for descriptor in abandoned:
            self._emit(descriptor, End(Failure(SHUTDOWN_MESSAGE)))

    @staticmethod
    def _emit(descriptor: RequestDescriptor, event: DispatchEvent) -> None:
        try:
            descriptor.callback(event)
        except Exception:
            logger.exception("Callback of %s failed on %s", descriptor.describe(), event)
