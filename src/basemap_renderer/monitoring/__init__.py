"""
Monitoring Module

Metrics collection for feature ingestion, classification and tile rendering.
"""

from .metrics import MetricsCollector, MetricValue

__all__ = [
    "MetricsCollector",
    "MetricValue"
]
