"""
In-process counters.

Collaborators that count things (parse failures, duplicate definitions) take a
``MetricsRegistry`` in their constructor instead of reaching for module state.

Usage:
    metrics = MetricsRegistry()
    metrics.increment("credentials.parse.error", type="aws")
    metrics.count("credentials.parse.error", type="aws")  # 1
"""

from __future__ import annotations

import threading
from collections import Counter


def _key(name: str, tags: dict[str, str]) -> tuple[str, tuple[tuple[str, str], ...]]:
    return name, tuple(sorted(tags.items()))


class MetricsRegistry:
    """Thread-safe named counters with optional tags."""

    def __init__(self) -> None:
        self._counters: Counter[tuple[str, tuple[tuple[str, str], ...]]] = Counter()
        self._lock = threading.Lock()

    def increment(self, name: str, amount: int = 1, **tags: str) -> None:
        with self._lock:
            self._counters[_key(name, tags)] += amount

    def count(self, name: str, **tags: str) -> int:
        """Return the counter for an exact tag set, or the total across tags if none given."""
        with self._lock:
            if tags:
                return self._counters[_key(name, tags)]
            return sum(v for (n, _), v in self._counters.items() if n == name)

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            totals: Counter[str] = Counter()
            for (name, _), value in self._counters.items():
                totals[name] += value
            return dict(totals)

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
