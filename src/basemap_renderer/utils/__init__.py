"""
Utilities Module

Configuration and logging helpers shared across the renderer.
"""

from .config import Config, RenderingConfig, IngestionConfig, MetricsConfig, ServerConfig
from .logging_config import configure_logging

__all__ = [
    "Config",
    "RenderingConfig",
    "IngestionConfig",
    "MetricsConfig",
    "ServerConfig",
    "configure_logging"
]
