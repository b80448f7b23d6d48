"""
Metrics Collection

Collects rendering and ingestion metrics for the basemap renderer. Every
observation is kept in a bounded in-memory buffer for JSON export and
mirrored into a private Prometheus registry that can be scraped or pushed to
a gateway.
"""

import time
import threading
import json
from typing import Dict, Optional, Any, Union, Callable, List, Tuple
from dataclasses import dataclass, field
from collections import deque
from datetime import datetime, timedelta, timezone
from functools import wraps

import structlog
from prometheus_client import (
    Counter, Histogram, Gauge, CollectorRegistry, push_to_gateway, generate_latest
)

Number = Union[int, float]

# name -> (kind, help text, label names)
RENDERER_METRICS: Dict[str, Tuple[str, str, List[str]]] = {
    'features_ingested_total': (
        'counter', 'Raw features read from a source', ['source_type', 'status']
    ),
    'features_classified_total': (
        'counter', 'Features classified, by shape variant', ['variant']
    ),
    'tiles_rendered_total': (
        'counter', 'Tiles rendered', ['status']
    ),
    'tile_render_duration_seconds': (
        'histogram', 'Seconds spent rendering one tile', []
    ),
    'tileset_generation_duration_seconds': (
        'histogram', 'Seconds spent rendering a complete tileset', []
    ),
    'shapes_in_last_tile': (
        'gauge', 'Shapes drawn in the most recently rendered tile', []
    ),
}

_PROMETHEUS_TYPES = {
    'counter': (Counter, 'inc'),
    'histogram': (Histogram, 'observe'),
    'gauge': (Gauge, 'set'),
}


@dataclass
class MetricValue:
    """One buffered observation."""
    name: str
    value: Number
    timestamp: datetime
    labels: Dict[str, str] = field(default_factory=dict)
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'value': self.value,
            'timestamp': self.timestamp.isoformat(),
            'labels': self.labels,
            'description': self.description
        }


class MetricsCollector:
    """
    Metrics collector for the rendering pipeline.

    The renderer's counters, histograms and gauges are registered up front so
    their label sets are known to Prometheus. Names outside that set are only
    buffered and show up in the JSON export.
    """

    def __init__(
        self,
        enable_prometheus: bool = True,
        prometheus_gateway: Optional[str] = None,
        buffer_size: int = 10000
    ):
        """
        Args:
            enable_prometheus: Mirror observations into a Prometheus registry
            prometheus_gateway: Pushgateway address used by push_to_prometheus_gateway
            buffer_size: Number of recent observations kept in memory
        """
        self.enable_prometheus = enable_prometheus
        self.prometheus_gateway = prometheus_gateway

        self.logger = structlog.get_logger(component="MetricsCollector")

        self.metrics_buffer = deque(maxlen=buffer_size)
        self.lock = threading.RLock()

        self.builtin_metrics = {
            'system_start_time': time.time(),
            'total_metrics_collected': 0,
            'metrics_collection_errors': 0,
            'last_metric_timestamp': None
        }

        if self.enable_prometheus:
            self.prometheus_registry = CollectorRegistry()
            self.prometheus_metrics: Dict[str, Tuple[str, Any]] = {}
            for name, (kind, help_text, label_names) in RENDERER_METRICS.items():
                self._register(name, kind, help_text, label_names)

    @classmethod
    def from_config(cls, config) -> "MetricsCollector":
        """Build a collector from the ``metrics`` section of a Config."""
        return cls(
            enable_prometheus=config.metrics.enable_prometheus,
            prometheus_gateway=config.metrics.prometheus_gateway
        )

    def _register(self, name: str, kind: str, help_text: str, label_names: List[str]) -> None:
        metric_class, _ = _PROMETHEUS_TYPES[kind]
        try:
            self.prometheus_metrics[name] = (
                kind,
                metric_class(name, help_text, label_names, registry=self.prometheus_registry)
            )
        except ValueError as e:
            self.logger.error("Failed to register Prometheus metric", metric_name=name, error=str(e))

    def _observe(
        self,
        kind: str,
        name: str,
        value: Number,
        labels: Optional[Dict[str, str]],
        description: str
    ) -> None:
        """Buffer an observation and forward it to the matching Prometheus metric."""
        labels = labels or {}
        try:
            with self.lock:
                self.metrics_buffer.append(MetricValue(
                    name=name,
                    value=value,
                    timestamp=datetime.now(timezone.utc),
                    labels=labels,
                    description=description
                ))
                self.builtin_metrics['total_metrics_collected'] += 1
                self.builtin_metrics['last_metric_timestamp'] = time.time()

                if not self.enable_prometheus or name not in self.prometheus_metrics:
                    return

                registered_kind, metric = self.prometheus_metrics[name]
                if registered_kind != kind:
                    raise TypeError(f"{name} is a {registered_kind}, not a {kind}")

                target = metric.labels(**labels) if labels else metric
                getattr(target, _PROMETHEUS_TYPES[kind][1])(value)

        except (ValueError, TypeError) as e:
            self.builtin_metrics['metrics_collection_errors'] += 1
            self.logger.error("Failed to record metric", metric_name=name, kind=kind, error=str(e))

    def increment_counter(
        self,
        name: str,
        value: Number = 1,
        labels: Dict[str, str] = None,
        description: str = ""
    ) -> None:
        self._observe('counter', name, value, labels, description)

    def record_histogram(
        self,
        name: str,
        value: Number,
        labels: Dict[str, str] = None,
        description: str = ""
    ) -> None:
        self._observe('histogram', name, value, labels, description)

    def set_gauge(
        self,
        name: str,
        value: Number,
        labels: Dict[str, str] = None,
        description: str = ""
    ) -> None:
        self._observe('gauge', name, value, labels, description)

    def record_timing(
        self,
        name: str,
        duration: float,
        labels: Dict[str, str] = None,
        description: str = ""
    ) -> None:
        """Record a duration in seconds as a histogram observation."""
        self.record_histogram(name, duration, labels, description)

    def time_function(self, name: str, labels: Dict[str, str] = None):
        """Decorator recording the wall time of every call, including failing ones."""
        def decorator(func: Callable) -> Callable:
            @wraps(func)
            def wrapper(*args, **kwargs):
                start_time = time.time()
                try:
                    return func(*args, **kwargs)
                finally:
                    self.record_timing(name, time.time() - start_time, labels)
            return wrapper
        return decorator

    def get_system_health(self) -> Dict[str, Any]:
        """Collector status; degraded once more than 10% of observations failed."""
        collected = self.builtin_metrics['total_metrics_collected']
        errors = self.builtin_metrics['metrics_collection_errors']

        return {
            'status': 'degraded' if errors / max(collected, 1) > 0.1 else 'healthy',
            'uptime_seconds': time.time() - self.builtin_metrics['system_start_time'],
            'total_metrics_collected': collected,
            'metrics_collection_errors': errors,
            'last_metric_timestamp': self.builtin_metrics['last_metric_timestamp'],
            'metrics_buffer_size': len(self.metrics_buffer),
            'backends': {
                'prometheus_enabled': self.enable_prometheus
            }
        }

    def push_to_prometheus_gateway(self, job_name: str = "basemap_renderer") -> bool:
        """Push the registry to the configured pushgateway; False when skipped or failed."""
        if not self.enable_prometheus or not self.prometheus_gateway:
            return False

        try:
            push_to_gateway(
                self.prometheus_gateway,
                job=job_name,
                registry=self.prometheus_registry
            )
        except OSError as e:
            self.logger.error(
                "Failed to push metrics to Prometheus gateway",
                gateway=self.prometheus_gateway,
                error=str(e)
            )
            return False

        self.logger.info("Pushed metrics", gateway=self.prometheus_gateway, job=job_name)
        return True

    def export_metrics(self, format: str = "json", hours: int = 1) -> str:
        """
        Export metrics as JSON (buffered values of the last ``hours``) or as
        Prometheus text exposition.

        Raises:
            ValueError: If the format is unsupported or Prometheus is disabled
        """
        format = format.lower()

        if format == "json":
            cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)
            with self.lock:
                recent = [m.to_dict() for m in self.metrics_buffer if m.timestamp >= cutoff]

            return json.dumps({
                'export_timestamp': datetime.now(timezone.utc).isoformat(),
                'metrics_count': len(recent),
                'time_range_hours': hours,
                'metrics': recent
            }, indent=2)

        if format == "prometheus":
            if not self.enable_prometheus:
                raise ValueError("Prometheus export requested but Prometheus is disabled")
            return generate_latest(self.prometheus_registry).decode('utf-8')

        raise ValueError(f"Unsupported export format: {format}")
