"""Shared fixtures: deterministic clocks for the countdown engine."""

from __future__ import annotations

import threading
from typing import Callable, List

import pytest

from tminus.core.engine import CountdownEngine


class SteppingClock:
    """A monotonic clock that advances by *step* seconds on every reading."""

    def __init__(self, step: float, start: float = 1000.0) -> None:
        self._now = start
        self._step = step
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            value = self._now
            self._now += self._step
            return value


class ScriptedClock:
    """Returns the given readings in order, then repeats the last one."""

    def __init__(self, readings: List[float]) -> None:
        self._readings = list(readings)
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            if len(self._readings) > 1:
                return self._readings.pop(0)
            return self._readings[0]


@pytest.fixture()
def frozen_engine() -> CountdownEngine:
    """An engine whose clock never advances, so runs never finish on their own."""
    return CountdownEngine(clock=SteppingClock(step=0.0))


@pytest.fixture()
def stepping_engine() -> Callable[[float], CountdownEngine]:
    """Factory for engines whose clock advances *step* seconds per reading."""

    def make(step: float) -> CountdownEngine:
        return CountdownEngine(clock=SteppingClock(step=step))

    return make


@pytest.fixture()
def scripted_engine() -> Callable[[List[float]], CountdownEngine]:
    """Factory for engines whose clock returns the given readings in order."""

    def make(readings: List[float]) -> CountdownEngine:
        return CountdownEngine(clock=ScriptedClock(readings))

    return make
