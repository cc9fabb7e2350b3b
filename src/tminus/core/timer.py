"""Timer controller — routes user intents over an IDLE/RUNNING state machine."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from tminus.core.duration import DurationAccumulator, TimeUnit
from tminus.core.engine import DEFAULT_TICK_INTERVAL_MS, CountdownEngine, CountdownHandle

logger = logging.getLogger(__name__)


class TimerStatus(Enum):
    """Possible states of the timer controller."""

    IDLE = "idle"
    RUNNING = "running"


@dataclass(frozen=True)
class TimerView:
    """Everything a presentation layer needs to render the timer."""

    status: TimerStatus
    display: str
    duration_seconds: int
    remaining_ms: int
    can_add_time: bool
    can_reset: bool
    can_start: bool
    can_stop: bool


Listener = Callable[[TimerView], None]


def _hms(total_seconds: int) -> str:
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def format_display(status: TimerStatus, duration_seconds: int, remaining_ms: int) -> str:
    """Project timer state onto the text shown to the user.

    IDLE shows the configured duration as ``HH:MM:SS``; RUNNING shows the
    remaining time as ``HH:MM:SS.d`` with a single decisecond digit.  Hours
    are never wrapped at 24.
    """
    if status is TimerStatus.RUNNING:
        seconds, millis = divmod(remaining_ms, 1000)
        return f"{_hms(seconds)}.{millis // 100}"
    return _hms(duration_seconds)


class TimerController:
    """Owns the duration, the status and the remaining time of one timer.

    Intents that are not valid in the current status are ignored, so a
    presentation layer that forgets to disable a control cannot corrupt
    state.  Observers registered with :meth:`subscribe` receive a
    :class:`TimerView` after every change, including each countdown tick
    (delivered on the engine's worker thread).
    """

    def __init__(
        self,
        accumulator: Optional[DurationAccumulator] = None,
        engine: Optional[CountdownEngine] = None,
        tick_interval_ms: int = DEFAULT_TICK_INTERVAL_MS,
    ) -> None:
        self._accumulator = accumulator if accumulator is not None else DurationAccumulator()
        self._engine = engine if engine is not None else CountdownEngine()
        self._tick_interval_ms = tick_interval_ms
        self._status: TimerStatus = TimerStatus.IDLE
        self._remaining_ms: int = 0
        self._handle: Optional[CountdownHandle] = None
        self._run_token: int = 0
        self._last_error: Optional[Exception] = None
        self._listeners: List[Listener] = []

    # -- intents -------------------------------------------------------------

    def on_add_time(self, amount: int, unit: TimeUnit) -> None:
        """Add time to the configured duration.  Ignored while RUNNING."""
        if self._ignored_while_running("add_time"):
            return
        self._accumulator.add_time(amount, unit)
        self._notify()

    def on_reset(self) -> None:
        """Clear the configured duration.  Ignored while RUNNING."""
        if self._ignored_while_running("reset"):
            return
        self._accumulator.reset()
        self._remaining_ms = 0
        self._notify()

    def on_start(self) -> None:
        """Start counting down the configured duration.  Ignored while RUNNING."""
        if self._ignored_while_running("start"):
            return

        total_seconds = self._accumulator.get_total_seconds()
        self._run_token += 1
        token = self._run_token

        def on_tick(remaining_ms: int) -> None:
            if token != self._run_token:
                return
            self._remaining_ms = remaining_ms
            self._notify()

        def on_finish() -> None:
            if token != self._run_token:
                return
            self._end_run()
            self._notify()

        def on_error(exc: Exception) -> None:
            if token != self._run_token:
                return
            logger.warning("Countdown aborted at %dms: %s", self._remaining_ms, exc)
            self._last_error = exc
            self._end_run()
            self._notify()

        self._last_error = None
        self._remaining_ms = total_seconds * 1000
        self._status = TimerStatus.RUNNING
        self._accumulator.freeze()
        self._notify()

        try:
            handle = self._engine.start(
                total_seconds, self._tick_interval_ms, on_tick, on_finish, on_error
            )
        except Exception:
            if token == self._run_token:
                self._end_run()
            raise
        self._handle = handle
        if token != self._run_token:
            # Already finished (zero-length run), or stopped by a listener.
            self._handle = None
            self._engine.cancel(handle)

    def on_stop(self) -> None:
        """Cancel the running countdown.  A no-op when already IDLE."""
        if self._status is TimerStatus.IDLE:
            logger.debug("stop ignored: timer is idle")
            return
        # Cancellation is synchronous, so no callback can race the transition below.
        self._engine.cancel(self._handle)
        if self._status is TimerStatus.RUNNING:
            self._end_run()
            self._notify()

    # -- observation ---------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener* and return a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def get_status(self) -> TimerStatus:
        return self._status

    def get_duration_seconds(self) -> int:
        return self._accumulator.get_total_seconds()

    def get_remaining_ms(self) -> int:
        return self._remaining_ms

    def get_handle(self) -> Optional[CountdownHandle]:
        """Return the handle of the active countdown, or ``None`` when IDLE."""
        return self._handle

    def get_last_error(self) -> Optional[Exception]:
        """Return the exception that aborted the most recent run, if any."""
        return self._last_error

    def get_display(self) -> str:
        return format_display(self._status, self.get_duration_seconds(), self._remaining_ms)

    def get_view(self) -> TimerView:
        idle = self._status is TimerStatus.IDLE
        return TimerView(
            status=self._status,
            display=self.get_display(),
            duration_seconds=self.get_duration_seconds(),
            remaining_ms=self._remaining_ms,
            can_add_time=idle,
            can_reset=idle,
            can_start=idle,
            can_stop=not idle,
        )

    # -- private helpers -----------------------------------------------------

    def _ignored_while_running(self, intent: str) -> bool:
        if self._status is TimerStatus.RUNNING:
            logger.debug("%s ignored: countdown is running", intent)
            return True
        return False

    def _end_run(self) -> None:
        self._run_token += 1
        self._status = TimerStatus.IDLE
        self._handle = None
        self._remaining_ms = 0
        self._accumulator.thaw()

    def _notify(self) -> None:
        view = self.get_view()
        for listener in list(self._listeners):
            listener(view)
