"""Countdown engine — cancellable periodic tick delivery.

Each run gets a :class:`CountdownHandle` and, unless it is zero-length, a
daemon worker thread that samples a monotonic clock and reports the remaining
milliseconds through ``on_tick`` until it reaches 0, then calls ``on_finish``.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from enum import Enum
from typing import Callable, Optional

from tminus.core.errors import InvalidArgumentError

logger = logging.getLogger(__name__)

DEFAULT_TICK_INTERVAL_MS = 10

TickCallback = Callable[[int], None]
FinishCallback = Callable[[], None]
ErrorCallback = Callable[[Exception], None]

_run_ids = itertools.count(1)


class EngineState(Enum):
    """Lifecycle of a single countdown run."""

    CREATED = "created"
    RUNNING = "running"
    FINISHED = "finished"
    CANCELLED = "cancelled"


_TERMINAL_STATES = frozenset({EngineState.FINISHED, EngineState.CANCELLED})


class CountdownHandle:
    """An in-flight countdown run.

    Callbacks are dispatched while holding the handle's lock and only while
    the run is RUNNING.  :meth:`CountdownEngine.cancel` takes the same lock,
    so once it returns no further callback is delivered for this handle.
    The lock is re-entrant so a callback may cancel its own run.
    """

    def __init__(
        self,
        total_ms: int,
        tick_interval_ms: int,
        on_tick: TickCallback,
        on_finish: FinishCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self.run_id: int = next(_run_ids)
        self._total_ms = total_ms
        self._interval_seconds = tick_interval_ms / 1000.0
        self._on_tick = on_tick
        self._on_finish = on_finish
        self._on_error = on_error
        self._state = EngineState.CREATED
        self._lock = threading.RLock()
        self._done = threading.Event()
        self._started_at = 0.0
        self._last_remaining_ms = total_ms

    def __repr__(self) -> str:
        return f"<CountdownHandle #{self.run_id} {self._state.value} {self._last_remaining_ms}ms>"

    # -- public interface ----------------------------------------------------

    def get_state(self) -> EngineState:
        with self._lock:
            return self._state

    def is_active(self) -> bool:
        return self.get_state() not in _TERMINAL_STATES

    def get_total_ms(self) -> int:
        return self._total_ms

    def get_last_remaining_ms(self) -> int:
        """Return the value of the most recently delivered tick."""
        return self._last_remaining_ms

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the run has finished or been cancelled.

        Returns ``True`` if it has, ``False`` if *timeout* elapsed first.
        """
        return self._done.wait(timeout)

    # -- engine-side helpers -------------------------------------------------

    def _begin(self, now: float) -> None:
        with self._lock:
            self._started_at = now
            self._state = EngineState.RUNNING

    def _remaining_at(self, now: float) -> int:
        elapsed_ms = int((now - self._started_at) * 1000)
        remaining = max(self._total_ms - elapsed_ms, 0)
        # A clock that steps backwards must not make the countdown go up.
        return min(remaining, self._last_remaining_ms)

    def _deliver_tick(self, remaining_ms: int) -> bool:
        """Dispatch one tick; return whether the run is still RUNNING afterwards."""
        with self._lock:
            if self._state is not EngineState.RUNNING:
                return False
            self._last_remaining_ms = remaining_ms
            self._on_tick(remaining_ms)
            return self._state is EngineState.RUNNING

    def _deliver_finish(self) -> None:
        with self._lock:
            if self._state is not EngineState.RUNNING:
                return
            self._state = EngineState.FINISHED
            logger.info("Countdown #%d finished", self.run_id)
            try:
                self._on_finish()
            finally:
                self._done.set()

    def _cancel(self) -> bool:
        with self._lock:
            if self._state in _TERMINAL_STATES:
                return False
            self._state = EngineState.CANCELLED
            self._done.set()
            return True

    def _fail(self, exc: Exception) -> bool:
        """Cancel the run after a callback raised and report *exc* to ``on_error``."""
        with self._lock:
            if self._state in _TERMINAL_STATES:
                return False
            self._state = EngineState.CANCELLED
            try:
                if self._on_error is not None:
                    self._on_error(exc)
            finally:
                self._done.set()
            return True

    def _sleep(self) -> None:
        # Wakes early when the run is cancelled.
        self._done.wait(self._interval_seconds)


class CountdownEngine:
    """Starts and cancels countdown runs.

    *clock* must return monotonically increasing seconds; it defaults to
    ``time.monotonic`` and is injectable for deterministic tests.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock

    def start(
        self,
        total_seconds: int,
        tick_interval_ms: int,
        on_tick: TickCallback,
        on_finish: FinishCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> CountdownHandle:
        """Count down from ``total_seconds * 1000`` milliseconds.

        A zero-length countdown is delivered synchronously: one tick of 0 and
        then ``on_finish``, both before this method returns.

        If a callback raises on the worker thread the run is cancelled and
        ``on_error`` receives the exception; ``on_finish`` is never called.
        """
        for name, value in (("total_seconds", total_seconds), ("tick_interval_ms", tick_interval_ms)):
            if not isinstance(value, int) or isinstance(value, bool):
                raise TypeError(f"{name} must be an integer, got {type(value).__name__}")
        if total_seconds < 0:
            raise InvalidArgumentError(f"total_seconds must be non-negative, got {total_seconds}")
        if tick_interval_ms <= 0:
            raise InvalidArgumentError(f"tick_interval_ms must be positive, got {tick_interval_ms}")

        handle = CountdownHandle(
            total_seconds * 1000, tick_interval_ms, on_tick, on_finish, on_error
        )
        handle._begin(self._clock())
        logger.info(
            "Countdown #%d started: %ds, tick every %dms",
            handle.run_id,
            total_seconds,
            tick_interval_ms,
        )

        if total_seconds == 0:
            self._drive(handle)
            return handle

        thread = threading.Thread(
            target=self._run_in_thread,
            args=(handle,),
            daemon=True,
            name=f"countdown-{handle.run_id}",
        )
        thread.start()
        return handle

    def cancel(self, handle: Optional[CountdownHandle]) -> None:
        """Stop delivering callbacks for *handle*.

        Idempotent; a no-op for a run that has already finished.
        """
        if handle is None:
            return
        if handle._cancel():
            logger.info("Countdown #%d cancelled at %dms", handle.run_id, handle.get_last_remaining_ms())

    # -- private helpers -----------------------------------------------------

    def _drive(self, handle: CountdownHandle) -> None:
        while True:
            remaining = handle._remaining_at(self._clock())
            if not handle._deliver_tick(remaining):
                return
            if remaining == 0:
                handle._deliver_finish()
                return
            handle._sleep()

    def _run_in_thread(self, handle: CountdownHandle) -> None:
        try:
            self._drive(handle)
        except Exception as exc:
            logger.exception("Countdown #%d callback failed; cancelling run", handle.run_id)
            try:
                handle._fail(exc)
            except Exception:
                logger.exception("Countdown #%d error handler failed", handle.run_id)
