"""Per-operation timing and error counters."""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator


@dataclass
class OperationStats:
    count: int = 0
    errors: int = 0
    total_ms: float = 0.0
    min_ms: float = float("inf")
    max_ms: float = 0.0

    @property
    def avg_ms(self) -> float:
        return self.total_ms / self.count if self.count else 0.0

    def record(self, elapsed_ms: float, failed: bool) -> None:
        self.count += 1
        if failed:
            self.errors += 1
        self.total_ms += elapsed_ms
        self.min_ms = min(self.min_ms, elapsed_ms)
        self.max_ms = max(self.max_ms, elapsed_ms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "errors": self.errors,
            "total_ms": round(self.total_ms, 3),
            "min_ms": round(self.min_ms, 3) if self.count else 0.0,
            "max_ms": round(self.max_ms, 3),
            "avg_ms": round(self.avg_ms, 3),
        }


class OperationMetrics:
    """Collects durations keyed by operation name.

    Usage:
        with metrics.timer("fetch"):
            ...
    """

    def __init__(self, clock: Callable[[], float] = time.perf_counter):
        self._clock = clock
        self._ops: dict[str, OperationStats] = {}

    @contextmanager
    def timer(self, name: str) -> Iterator[None]:
        start = self._clock()
        failed = False
        try:
            yield
        except BaseException:
            failed = True
            raise
        finally:
            elapsed_ms = (self._clock() - start) * 1000
            self._ops.setdefault(name, OperationStats()).record(elapsed_ms, failed)

    def get(self, name: str) -> OperationStats | None:
        return self._ops.get(name)

    def snapshot(self) -> dict[str, dict[str, Any]]:
        return {name: stats.to_dict() for name, stats in sorted(self._ops.items())}

    def reset(self) -> None:
        self._ops.clear()
