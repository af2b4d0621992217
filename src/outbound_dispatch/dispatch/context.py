"""Serial execution contexts that own all scheduler state changes.

Every scheduler step is posted to a context and the context guarantees that
steps never overlap. Retry delays are timers registered with the context, so
closing the context cancels them.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Protocol

logger = logging.getLogger(__name__)

Step = Callable[[], None]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class ExecutionContext(Protocol):
    def post(self, step: Step) -> None: ...

    def post_later(self, delay_seconds: float, step: Step) -> TimerHandle: ...

    def close(self) -> None: ...


class ScheduledStep:
    """A step posted back into its context once the delay elapses."""

    def __init__(self, context: _TimerOwner, delay_seconds: float, step: Step) -> None:
        self._context = context
        self.step = step
        self._timer = threading.Timer(delay_seconds, self._fire)
        self._timer.daemon = True

    def start(self) -> None:
        self._timer.start()

    def cancel(self) -> None:
        self._timer.cancel()
        self._context._forget_timer(self)

    def _fire(self) -> None:
        self._context._timer_fired(self)


class _TimerOwner(ABC):
    def __init__(self) -> None:
        self._timers: set[ScheduledStep] = set()
        self._timers_lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @abstractmethod
    def post(self, step: Step) -> None: ...

    @abstractmethod
    def close(self) -> None: ...

    def post_later(self, delay_seconds: float, step: Step) -> ScheduledStep:
        scheduled = ScheduledStep(self, delay_seconds, step)
        with self._timers_lock:
            if self._closed:
                logger.debug("Context closed, timer not started")
                return scheduled
            self._timers.add(scheduled)
        scheduled.start()
        return scheduled

    def _forget_timer(self, scheduled: ScheduledStep) -> None:
        with self._timers_lock:
            self._timers.discard(scheduled)

    def _timer_fired(self, scheduled: ScheduledStep) -> None:
        with self._timers_lock:
            if scheduled not in self._timers:
                return
            self._timers.discard(scheduled)
        self.post(scheduled.step)

    def _cancel_timers(self) -> None:
        with self._timers_lock:
            pending = list(self._timers)
            self._timers.clear()
        for scheduled in pending:
            scheduled.cancel()


def _run_step(step: Step) -> None:
    try:
        step()
    except Exception:
        logger.exception("Dispatch step failed")


class SerialContext(_TimerOwner):
    """Runs posted steps one by one on a dedicated worker thread."""

    def __init__(self, *, name: str = "outbound-dispatch") -> None:
        super().__init__()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)
        self._worker_ident: int | None = None
        self._submit_lock = threading.Lock()

    def post(self, step: Step) -> None:
        with self._submit_lock:
            if self._closed:
                logger.debug("Context closed, dropping step %r", step)
                return
            self._executor.submit(self._run, step)

    def _run(self, step: Step) -> None:
        self._worker_ident = threading.get_ident()
        _run_step(step)

    def close(self) -> None:
        with self._submit_lock:
            if self._closed:
                return
            self._closed = True
        self._cancel_timers()
        on_worker = threading.get_ident() == self._worker_ident
        self._executor.shutdown(wait=not on_worker)


class InlineContext(_TimerOwner):
    """Runs steps on the posting thread.

    A step posted while another one is running, from any thread, is queued and
    executed by the thread that is already draining, right after the current
    step returns.
    """

    def __init__(self) -> None:
        super().__init__()
        self._queue: deque[Step] = deque()
        self._lock = threading.Lock()
        self._draining = False

    def post(self, step: Step) -> None:
        with self._lock:
            if self._closed:
                logger.debug("Context closed, dropping step %r", step)
                return
            self._queue.append(step)
            if self._draining:
                return
            self._draining = True
        self._drain()

    def _drain(self) -> None:
        while True:
            with self._lock:
                if not self._queue:
                    self._draining = False
                    return
                step = self._queue.popleft()
            _run_step(step)

    def close(self) -> None:
        with self._lock:
            self._closed = True
        self._cancel_timers()
