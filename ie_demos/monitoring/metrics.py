"""
Latency and throughput tracking for the demos.

Every demo measures the wall time of each processed frame (or batch) and
reports the mean latency and frames per second when it finishes.
"""

import statistics
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Dict, Optional


@dataclass
class MetricsSummary:
    """Totals reported at the end of a demo run."""
    latency_ms: float
    fps: float
    frames: int


class LatencyTracker:
    """Tracks per-operation latency measurements."""

    def __init__(self, name: str, max_samples: int = 1000):
        """
        Initialize latency tracker.

        Args:
            name: Tracker name
            max_samples: Maximum number of samples to keep
        """
        self.name = name
        self._latencies: deque = deque(maxlen=max_samples)
        self._lock = threading.Lock()

    def record_latency(self, latency_ms: float):
        """Directly record a latency measurement."""
        with self._lock:
            self._latencies.append(latency_ms)

    def get_average_latency(self) -> float:
        """Get average latency in milliseconds."""
        with self._lock:
            return statistics.mean(self._latencies) if self._latencies else 0.0

    def get_percentile_latency(self, percentile: float) -> float:
        """Get percentile latency in milliseconds."""
        with self._lock:
            return self._percentile(sorted(self._latencies), percentile)

    @staticmethod
    def _percentile(sorted_latencies, percentile: float) -> float:
        if not sorted_latencies:
            return 0.0
        index = int((percentile / 100.0) * len(sorted_latencies))
        return sorted_latencies[min(index, len(sorted_latencies) - 1)]

    def get_latency_stats(self) -> Dict[str, float]:
        """Get latency statistics."""
        with self._lock:
            latencies = sorted(self._latencies)

        if not latencies:
            return {'count': 0, 'average': 0.0, 'min': 0.0, 'max': 0.0, 'p50': 0.0, 'p95': 0.0}

        return {
            'count': len(latencies),
            'average': statistics.mean(latencies),
            'min': latencies[0],
            'max': latencies[-1],
            'p50': self._percentile(latencies, 50),
            'p95': self._percentile(latencies, 95),
        }


class PerformanceMetrics:
    """Frame latency and FPS accounting for a single demo run."""

    def __init__(self, name: str = "demo", max_samples: int = 1000):
        self.name = name
        self._latency = LatencyTracker(name, max_samples)
        self._lock = threading.Lock()
        self._frames = 0
        self._updates = 0
        self._total_latency_ms = 0.0
        self._first_start: Optional[float] = None
        self._last_end: Optional[float] = None

    def update(self, start_time: float, frames: int = 1, end_time: Optional[float] = None) -> float:
        """
        Record one processed unit of work.

        Args:
            start_time: time.perf_counter() value taken before the work started
            frames: Number of frames the work covered (batch size)
            end_time: perf_counter() value after the work; taken now when omitted

        Returns:
            Latency of this unit in milliseconds
        """
        if end_time is None:
            end_time = time.perf_counter()
        latency_ms = (end_time - start_time) * 1000

        with self._lock:
            if self._first_start is None or start_time < self._first_start:
                self._first_start = start_time
            self._last_end = end_time
            self._frames += frames
            self._updates += 1
            self._total_latency_ms += latency_ms

        self._latency.record_latency(latency_ms)
        return latency_ms

    @property
    def frames(self) -> int:
        return self._frames

    def get_total(self) -> MetricsSummary:
        """Mean latency per unit in milliseconds and FPS over the whole run."""
        with self._lock:
            if self._frames == 0 or self._first_start is None:
                return MetricsSummary(latency_ms=0.0, fps=0.0, frames=0)

            elapsed = self._last_end - self._first_start
            fps = self._frames / elapsed if elapsed > 0 else 0.0
            return MetricsSummary(
                latency_ms=self._total_latency_ms / self._updates,
                fps=fps,
                frames=self._frames
            )

    def get_latency_stats(self) -> Dict[str, float]:
        return self._latency.get_latency_stats()

    def reset(self):
        """Reset the counters."""
        with self._lock:
            self._frames = 0
            self._updates = 0
            self._total_latency_ms = 0.0
            self._first_start = None
            self._last_end = None
        self._latency = LatencyTracker(self.name, self._latency._latencies.maxlen)
