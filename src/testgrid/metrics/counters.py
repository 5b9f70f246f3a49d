"""Lock-guarded counter primitives.

These are the only multi-writer state in testgrid. Every update is a
read-modify-write under the primitive's own lock, so callers never need
an outer lock and two primitives never contend with each other.
"""

from __future__ import annotations

import threading
from collections.abc import Hashable
from typing import Literal

__all__ = ["AtomicCounter", "AtomicExtremum", "CounterMap", "DimensionCounters"]


class AtomicCounter:
    """Integer counter with atomic add."""

    def __init__(self, initial: int = 0) -> None:
        self._value = initial
        self._lock = threading.Lock()

    def add(self, delta: int = 1) -> int:
        """Add delta and return the new value."""
        with self._lock:
            self._value += delta
            return self._value

    def increment(self) -> int:
        return self.add(1)

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def reset(self) -> None:
        with self._lock:
            self._value = 0

    def __repr__(self) -> str:
        return f"AtomicCounter({self.value})"


class AtomicExtremum:
    """Running minimum or maximum with compare-and-update.

    ``value`` is None until the first update.

    Example:
        >>> low = AtomicExtremum("min")
        >>> low.update(120)
        True
        >>> low.update(80)
        True
        >>> low.update(95)
        False
        >>> low.value
        80

    """

    def __init__(self, mode: Literal["min", "max"]) -> None:
        if mode not in ("min", "max"):
            raise ValueError(f"mode must be 'min' or 'max', got {mode!r}")
        self._mode = mode
        self._value: int | None = None
        self._lock = threading.Lock()

    def update(self, candidate: int) -> bool:
        """Replace the stored value if candidate is more extreme.

        Returns:
            True if the stored value changed.

        """
        with self._lock:
            current = self._value
            if (
                current is None
                or (self._mode == "min" and candidate < current)
                or (self._mode == "max" and candidate > current)
            ):
                self._value = candidate
                return True
            return False

    @property
    def value(self) -> int | None:
        with self._lock:
            return self._value

    def reset(self) -> None:
        with self._lock:
            self._value = None


class CounterMap:
    """Map of key to count with insert-if-absent increments."""

    def __init__(self) -> None:
        self._counts: dict[Hashable, int] = {}
        self._lock = threading.Lock()

    def increment(self, key: Hashable, delta: int = 1) -> int:
        """Add delta to key's count, creating the key at zero first if absent."""
        with self._lock:
            value = self._counts.setdefault(key, 0) + delta
            self._counts[key] = value
            return value

    def get(self, key: Hashable) -> int:
        with self._lock:
            return self._counts.get(key, 0)

    def as_dict(self) -> dict[Hashable, int]:
        """Copy of the current counts."""
        with self._lock:
            return dict(self._counts)

    def reset(self) -> None:
        with self._lock:
            self._counts.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._counts)


class DimensionCounters:
    """Per-dimension usage counts, e.g. browser -> {chromium: 3, firefox: 1}."""

    def __init__(self) -> None:
        self._maps: dict[str, CounterMap] = {}
        self._lock = threading.Lock()

    def _map_for(self, dimension: str) -> CounterMap:
        with self._lock:
            counter_map = self._maps.get(dimension)
            if counter_map is None:
                counter_map = self._maps[dimension] = CounterMap()
            return counter_map

    def increment(self, dimension: str, value: Hashable, delta: int = 1) -> int:
        return self._map_for(dimension).increment(value, delta)

    def as_dict(self) -> dict[str, dict[Hashable, int]]:
        with self._lock:
            maps = list(self._maps.items())
        return {dimension: counter_map.as_dict() for dimension, counter_map in maps}

    def reset(self) -> None:
        with self._lock:
            self._maps.clear()
