"""Request metrics tracking.

Tracks call counts, durations, and errors per request kind ("login",
"touchmap", "search", ...). Each client owns its own collector.

Usage:
    metrics = RequestMetrics()

    with metrics.measure("search"):
        response = await http.get(url)

    summary = metrics.get_summary()
"""

import logging
import time
from collections import defaultdict
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from pydantic import BaseModel, PrivateAttr

logger = logging.getLogger(__name__)


class EndpointMetrics(BaseModel):
    """Metrics for a single request kind."""

    call_count: int = 0
    error_count: int = 0
    total_duration_ms: float = 0.0
    min_duration_ms: float = float("inf")
    max_duration_ms: float = 0.0

    @property
    def avg_duration_ms(self) -> float:
        """Average duration per call in milliseconds."""
        if self.call_count == 0:
            return 0.0
        return self.total_duration_ms / self.call_count

    @property
    def error_rate(self) -> float:
        """Fraction of calls that raised."""
        if self.call_count == 0:
            return 0.0
        return self.error_count / self.call_count

    def record_call(self, duration_ms: float, is_error: bool = False) -> None:
        """Record one request."""
        self.call_count += 1
        self.total_duration_ms += duration_ms
        self.min_duration_ms = min(self.min_duration_ms, duration_ms)
        self.max_duration_ms = max(self.max_duration_ms, duration_ms)
        if is_error:
            self.error_count += 1

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "call_count": self.call_count,
            "error_count": self.error_count,
            "error_rate": f"{self.error_rate:.1%}",
            "avg_duration_ms": round(self.avg_duration_ms, 2),
            "min_duration_ms": (
                round(self.min_duration_ms, 2)
                if self.min_duration_ms != float("inf")
                else 0
            ),
            "max_duration_ms": round(self.max_duration_ms, 2),
        }


class RequestMetrics(BaseModel):
    """Collects metrics for every request kind a client issues."""

    _metrics: dict[str, EndpointMetrics] = PrivateAttr(
        default_factory=lambda: defaultdict(EndpointMetrics)
    )

    def record(self, kind: str, duration_ms: float, is_error: bool = False) -> None:
        """Record one request."""
        self._metrics[kind].record_call(duration_ms, is_error)

    def calls(self, kind: str) -> int:
        """Number of requests recorded under ``kind``."""
        metrics = self._metrics.get(kind)
        return metrics.call_count if metrics else 0

    @contextmanager
    def measure(self, kind: str) -> Iterator[None]:
        """Time the enclosed block and record it, counting raised errors."""
        start = time.perf_counter()
        is_error = False
        try:
            yield
        except BaseException:
            is_error = True
            raise
        finally:
            self.record(kind, (time.perf_counter() - start) * 1000, is_error)

    def get_summary(self) -> dict[str, Any]:
        """Get a summary of all metrics."""
        total_calls = sum(m.call_count for m in self._metrics.values())
        total_errors = sum(m.error_count for m in self._metrics.values())
        return {
            "total_requests": total_calls,
            "total_errors": total_errors,
            "overall_error_rate": f"{total_errors / max(1, total_calls):.1%}",
            "by_kind": {kind: m.to_dict() for kind, m in self._metrics.items()},
        }

    def log_summary(self, level: int = logging.INFO) -> None:
        """Log a one-line summary."""
        summary = self.get_summary()
        logger.log(
            level,
            "Request metrics: %d requests, %d errors",
            summary["total_requests"],
            summary["total_errors"],
        )

    def reset(self) -> None:
        """Reset all metrics."""
        self._metrics.clear()
