"""Exceptions raised by the timer core."""


class TimerError(Exception):
    """Base class for timer contract violations."""


class InvalidStateError(TimerError):
    """Raised when an operation is invoked in a state that forbids it."""


class InvalidArgumentError(TimerError, ValueError):
    """Raised when a negative or zero amount, duration or interval is given."""


class CountdownAbortedError(TimerError):
    """Raised when a countdown ends because one of its callbacks failed."""
