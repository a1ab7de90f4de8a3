"""Time and randomness sources injected into the engine.

Nothing in the determination path calls ``datetime.now()`` or ``random``
directly; it asks one of these objects so tests can pin both.
"""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Iterable, Iterator, Optional


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Clock(ABC):
    """Source of the current time."""

    @abstractmethod
    def now(self) -> datetime:
        pass


class SystemClock(Clock):
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, current: datetime) -> None:
        self.current = ensure_utc(current)

    def now(self) -> datetime:
        return self.current

    def set(self, current: datetime) -> None:
        self.current = ensure_utc(current)

    def advance(self, **delta) -> datetime:
        """Move forward by ``timedelta(**delta)`` and return the new time."""
        self.current = self.current + timedelta(**delta)
        return self.current


class RandomSource(ABC):
    """Uniform draws in ``[0, 1)``."""

    @abstractmethod
    def draw(self) -> float:
        pass


class SystemRandomSource(RandomSource):
    """Mersenne Twister draws, optionally seeded for reproducible runs."""

    def __init__(self, seed: Optional[int] = None) -> None:
        self._random = random.Random(seed)

    def draw(self) -> float:
        return self._random.random()


class ScriptedRandomSource(RandomSource):
    """Replays a fixed sequence of draws, then repeats the last one."""

    def __init__(self, draws: Iterable[float]) -> None:
        values = list(draws)
        if not values:
            raise ValueError("ScriptedRandomSource needs at least one draw")
        for value in values:
            if not 0.0 <= value < 1.0:
                raise ValueError(f"draw {value} is outside [0, 1)")
        self._values: Iterator[float] = iter(values)
        self._last = values[-1]

    def draw(self) -> float:
        self._last = next(self._values, self._last)
        return self._last
