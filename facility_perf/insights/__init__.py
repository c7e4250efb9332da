"""Insights module - operation timing and performance analytics."""

from .performance import PerformanceMonitor, PerformanceSample

__all__ = [
    "PerformanceMonitor",
    "PerformanceSample",
]
