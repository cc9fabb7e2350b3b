"""Session — restores and persists timer state between CLI invocations."""

from __future__ import annotations

import fcntl
import json
import logging
from pathlib import Path
from typing import Callable, Optional

from tminus.core.duration import DurationAccumulator, TimeUnit
from tminus.core.engine import DEFAULT_TICK_INTERVAL_MS, CountdownEngine
from tminus.core.errors import CountdownAbortedError
from tminus.core.timer import TimerController, TimerStatus, TimerView, format_display

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG_DIR = Path.home() / ".config" / "tminus"
_STATE_FILE = "timer.json"

# How often the foreground run wakes up to notice Ctrl-C.
_WAIT_SLICE_SECONDS = 0.1


class Session:
    """Wraps a :class:`TimerController` with JSON file persistence.

    Only plain fields are stored: the configured duration, the status and the
    remaining milliseconds.  A countdown cannot outlive the process that ran
    it, so a persisted RUNNING status is restored as IDLE.
    """

    def __init__(
        self,
        config_dir: Path | None = None,
        engine: Optional[CountdownEngine] = None,
        tick_interval_ms: int = DEFAULT_TICK_INTERVAL_MS,
    ) -> None:
        self._config_dir: Path = config_dir if config_dir is not None else _DEFAULT_CONFIG_DIR
        self._remaining_ms: int = 0
        duration_seconds = self._load()
        self._controller = TimerController(
            DurationAccumulator(duration_seconds),
            engine,
            tick_interval_ms=tick_interval_ms,
        )

    # -- public API ----------------------------------------------------------

    @property
    def controller(self) -> TimerController:
        return self._controller

    def add(self, amount: int, unit: TimeUnit) -> str:
        """Add *amount* of *unit* to the configured duration."""
        self._controller.on_add_time(amount, unit)
        self._remaining_ms = 0
        self._save()
        return f"Duration set: {self._controller.get_display()}"

    def reset(self) -> str:
        """Clear the configured duration."""
        self._controller.on_reset()
        self._remaining_ms = 0
        self._save()
        return f"Duration reset: {self._controller.get_display()}"

    def status(self) -> tuple[str, int]:
        """Return ``(message, exit_code)``."""
        display = self._controller.get_display()
        if self._controller.get_duration_seconds() == 0:
            return f"{display} (no duration set)", 1
        if self._remaining_ms:
            stopped_at = format_display(TimerStatus.RUNNING, 0, self._remaining_ms)
            return f"{display} (last stopped at {stopped_at})", 0
        return display, 0

    def run(self, render: Callable[[TimerView], None]) -> str:
        """Run the countdown in the foreground, calling *render* on every change.

        Blocks until the countdown finishes.  ``KeyboardInterrupt`` stops it.
        Raises :class:`CountdownAbortedError` if a callback failed mid-run.
        """
        unsubscribe = self._controller.subscribe(render)
        try:
            self._controller.on_start()
            self._remaining_ms = self._controller.get_remaining_ms()
            self._save()
            handle = self._controller.get_handle()
            try:
                while handle is not None and not handle.wait(_WAIT_SLICE_SECONDS):
                    pass
            except KeyboardInterrupt:
                stopped_at = self._controller.get_display()
                self._remaining_ms = self._controller.get_remaining_ms()
                self._controller.on_stop()
                self._save()
                return f"Timer stopped at {stopped_at}"
        finally:
            unsubscribe()

        self._remaining_ms = 0
        self._save()
        error = self._controller.get_last_error()
        if error is not None:
            raise CountdownAbortedError(f"Countdown aborted: {error}") from error
        return "Time's up!"

    # -- persistence ---------------------------------------------------------

    def _save(self) -> None:
        """Write current state to the JSON file with file locking."""
        self._config_dir.mkdir(parents=True, exist_ok=True)
        data = {
            "status": self._controller.get_status().value,
            "duration_seconds": self._controller.get_duration_seconds(),
            "remaining_ms": self._remaining_ms,
        }
        with open(self._config_dir / _STATE_FILE, "w") as f:
            fcntl.flock(f, fcntl.LOCK_EX)
            json.dump(data, f)

    def _load(self) -> int:
        """Load state from the JSON file if it exists; return the saved duration."""
        path = self._config_dir / _STATE_FILE
        if not path.exists():
            return 0

        try:
            with open(path) as f:
                fcntl.flock(f, fcntl.LOCK_SH)
                data = json.load(f)
            remaining_ms = max(int(data.get("remaining_ms", 0)), 0)
            duration_seconds = max(int(data.get("duration_seconds", 0)), 0)
            status = data.get("status", "idle")
        except (ValueError, TypeError, AttributeError) as exc:
            # JSONDecodeError is a ValueError; a non-object document has no .get().
            logger.warning("Ignoring unreadable state file %s: %s", path, exc)
            return 0

        self._remaining_ms = remaining_ms
        if status == TimerStatus.RUNNING.value:
            logger.info("Previous countdown was interrupted; restoring as idle")
            self._remaining_ms = 0
        return duration_seconds
