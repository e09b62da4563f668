"""
Metrics sink interface.

The engine reports counters, gauges and timings through a Metrics object
passed in by the host. NullMetrics discards everything; InMemoryMetrics
keeps values for tests and the CLI summary.
"""

import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Dict, List, Tuple


TagKey = Tuple[Tuple[str, str], ...]


def _tag_key(tags: Dict[str, str]) -> TagKey:
    return tuple(sorted((k, str(v)) for k, v in tags.items()))


class Metrics(ABC):
    """Abstract metrics sink."""

    @abstractmethod
    def incr(self, name: str, value: int = 1, **tags: str) -> None:
        """Increment a counter."""
        pass

    @abstractmethod
    def gauge(self, name: str, value: float, **tags: str) -> None:
        """Set a gauge."""
        pass

    @abstractmethod
    def timing(self, name: str, value_ms: float, **tags: str) -> None:
        """Record a duration in milliseconds."""
        pass


class NullMetrics(Metrics):
    """Metrics sink that drops all values."""

    def incr(self, name: str, value: int = 1, **tags: str) -> None:
        pass

    def gauge(self, name: str, value: float, **tags: str) -> None:
        pass

    def timing(self, name: str, value_ms: float, **tags: str) -> None:
        pass


class InMemoryMetrics(Metrics):
    """
    Thread-safe metrics kept in process memory.

    Example:
        >>> metrics = InMemoryMetrics()
        >>> metrics.incr("entities.written", 2, dataset="people")
        >>> metrics.counter("entities.written", dataset="people")
        2
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.counters: Dict[Tuple[str, TagKey], int] = defaultdict(int)
        self.gauges: Dict[Tuple[str, TagKey], float] = {}
        self.timings: Dict[Tuple[str, TagKey], List[float]] = defaultdict(list)

    def incr(self, name: str, value: int = 1, **tags: str) -> None:
        with self._lock:
            self.counters[(name, _tag_key(tags))] += value

    def gauge(self, name: str, value: float, **tags: str) -> None:
        with self._lock:
            self.gauges[(name, _tag_key(tags))] = value

    def timing(self, name: str, value_ms: float, **tags: str) -> None:
        with self._lock:
            self.timings[(name, _tag_key(tags))].append(value_ms)

    def counter(self, name: str, **tags: str) -> int:
        """Current counter value (0 if never incremented)."""
        with self._lock:
            return self.counters.get((name, _tag_key(tags)), 0)

    def summary(self) -> Dict[str, float]:
        """Counters summed over tags, keyed by name."""
        totals: Dict[str, float] = defaultdict(int)
        with self._lock:
            for (name, _), value in self.counters.items():
                totals[name] += value
        return dict(totals)
