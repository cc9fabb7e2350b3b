"""Duration accumulator — builds the configured countdown length."""

from __future__ import annotations

from enum import Enum

from tminus.core.errors import InvalidArgumentError, InvalidStateError


class TimeUnit(Enum):
    """Units a duration can be composed from, valued in seconds."""

    HOURS = 3600
    MINUTES = 60
    SECONDS = 1

    @property
    def suffix(self) -> str:
        return self.name[0].lower()

    @classmethod
    def from_suffix(cls, suffix: str) -> TimeUnit:
        """Return the unit for ``h``, ``m`` or ``s``."""
        for unit in cls:
            if unit.suffix == suffix.lower():
                return unit
        raise InvalidArgumentError(f"unknown time unit {suffix!r}, expected h, m or s")

    def to_seconds(self, amount: int) -> int:
        return amount * self.value


def _require_int(name: str, value: object) -> None:
    # bool is an int subclass but never a meaningful amount of time
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an integer, got {type(value).__name__}")


class DurationAccumulator:
    """Holds the total countdown duration in whole seconds.

    The total only changes through :meth:`add_time` and :meth:`reset`, and
    only while the accumulator is not frozen.  The controller freezes it for
    the lifetime of a countdown.
    """

    def __init__(self, initial_seconds: int = 0) -> None:
        _require_int("initial_seconds", initial_seconds)
        if initial_seconds < 0:
            raise InvalidArgumentError(
                f"initial_seconds must be non-negative, got {initial_seconds}"
            )
        self._total_seconds: int = initial_seconds
        self._frozen: bool = False

    # -- public interface ----------------------------------------------------

    def add_time(self, amount: int, unit: TimeUnit) -> None:
        """Add *amount* of *unit* to the total."""
        self._require_idle("add_time")
        _require_int("amount", amount)
        if amount <= 0:
            raise InvalidArgumentError(f"amount must be positive, got {amount}")
        if not isinstance(unit, TimeUnit):
            raise TypeError(f"unit must be a TimeUnit, got {type(unit).__name__}")
        self._total_seconds += unit.to_seconds(amount)

    def reset(self) -> None:
        """Set the total back to zero."""
        self._require_idle("reset")
        self._total_seconds = 0

    def get_total_seconds(self) -> int:
        return self._total_seconds

    def freeze(self) -> None:
        self._frozen = True

    def thaw(self) -> None:
        self._frozen = False

    def is_frozen(self) -> bool:
        return self._frozen

    # -- private helpers -----------------------------------------------------

    def _require_idle(self, method: str) -> None:
        if self._frozen:
            raise InvalidStateError(f"{method}() is not valid while a countdown is running")
