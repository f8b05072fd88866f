"""
Stats tracker for Health Connect.

Keeps a bounded window of recent requests and summarizes latency, cache
hits, streamed replies and error counts per endpoint.
"""

import time
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Deque, Dict

MAX_RECORDS = 5000


@dataclass
class RequestRecord:
    path: str
    duration: float
    cached: bool = False
    streamed: bool = False
    status: int = 200
    ts: float = field(default_factory=time.time)


class StatsTracker:
    """Track API request statistics."""

    def __init__(self, max_records: int = MAX_RECORDS):
        self._records: Deque[RequestRecord] = deque(maxlen=max_records)
        self._started = time.time()

    def record(
        self,
        path: str,
        duration: float,
        cached: bool = False,
        streamed: bool = False,
        status: int = 200,
    ) -> None:
        """Record a handled request."""
        self._records.append(RequestRecord(path, duration, cached, streamed, status))

    def summary(self) -> Dict:
        """Return aggregated statistics over the retained window."""
        uptime = round(time.time() - self._started)
        if not self._records:
            return {"total_requests": 0, "uptime_seconds": uptime}

        durations = sorted(r.duration for r in self._records)
        return {
            "total_requests": len(self._records),
            "requests_by_path": dict(Counter(r.path for r in self._records)),
            "cached_responses": sum(r.cached for r in self._records),
            "streamed_responses": sum(r.streamed for r in self._records),
            "errors": sum(r.status >= 400 for r in self._records),
            "avg_latency_ms": round(sum(durations) / len(durations) * 1000, 1),
            "p95_latency_ms": round(durations[int(len(durations) * 0.95)] * 1000, 1),
            "uptime_seconds": uptime,
        }
