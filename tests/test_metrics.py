"""
Tests for latency and FPS accounting.
"""

import pytest

from ie_demos.monitoring import LatencyTracker, PerformanceMetrics


class TestLatencyTracker:
    """Test latency statistics."""

    def test_stats(self):
        tracker = LatencyTracker("test")
        for latency in range(1, 101):
            tracker.record_latency(float(latency))

        stats = tracker.get_latency_stats()

        assert stats['count'] == 100
        assert stats['average'] == pytest.approx(50.5)
        assert stats['min'] == 1.0
        assert stats['max'] == 100.0
        assert stats['p50'] == 51.0
        assert stats['p95'] == 96.0
        assert tracker.get_percentile_latency(95) == 96.0

    def test_empty(self):
        tracker = LatencyTracker("test")
        assert tracker.get_average_latency() == 0.0
        assert tracker.get_latency_stats()['count'] == 0

    def test_max_samples(self):
        tracker = LatencyTracker("test", max_samples=3)
        for latency in (100.0, 1.0, 2.0, 3.0):
            tracker.record_latency(latency)
        assert tracker.get_average_latency() == pytest.approx(2.0)


class TestPerformanceMetrics:
    """Test per-run totals."""

    def test_latency_and_fps(self):
        metrics = PerformanceMetrics("classification")

        assert metrics.update(10.0, end_time=10.02) == pytest.approx(20.0)
        metrics.update(10.02, end_time=10.06)

        total = metrics.get_total()
        assert total.frames == 2
        assert total.latency_ms == pytest.approx(30.0)
        assert total.fps == pytest.approx(2 / 0.06)

    def test_batched_update_counts_frames(self):
        metrics = PerformanceMetrics()
        metrics.update(0.0, frames=4, end_time=0.5)

        total = metrics.get_total()
        assert total.frames == 4
        assert total.latency_ms == pytest.approx(500.0)
        assert total.fps == pytest.approx(8.0)

    def test_empty_and_reset(self):
        metrics = PerformanceMetrics()
        assert metrics.get_total().fps == 0.0

        metrics.update(1.0, end_time=2.0)
        metrics.reset()

        assert metrics.frames == 0
        assert metrics.get_total().latency_ms == 0.0
        assert metrics.get_latency_stats()['count'] == 0
