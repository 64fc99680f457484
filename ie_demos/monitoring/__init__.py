"""
Monitoring package for the inference demos.
"""

from .metrics import LatencyTracker, MetricsSummary, PerformanceMetrics

__all__ = ['LatencyTracker', 'MetricsSummary', 'PerformanceMetrics']
