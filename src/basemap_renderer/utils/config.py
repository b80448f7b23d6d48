"""
Configuration

Dataclass-based configuration for the basemap renderer. Every section has
sensible defaults so the renderer works without any configuration, and
``Config.from_env`` lets deployments override values through ``BASEMAP_*``
environment variables.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional, Tuple


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


@dataclass
class RenderingConfig:
    """Settings for raster tile rendering."""
    tile_size: int = 256
    buffer_size: int = 16  # Buffer in pixels around the tile when selecting features
    background_color: Tuple[int, int, int] = (255, 255, 255)
    render_unknown: bool = False
    max_workers: int = 4
    font_paths: List[str] = field(default_factory=lambda: [
        "DejaVuSans-Bold.ttf",
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        "/usr/share/fonts/TTF/DejaVuSans-Bold.ttf",
        "LiberationSans-Bold.ttf",
        "Arial Bold.ttf",
    ])


@dataclass
class IngestionConfig:
    """Settings for reading raw features."""
    label_column: str = "label"
    chunk_size: int = 10000


@dataclass
class MetricsConfig:
    """Settings for the Prometheus metrics backend."""
    enable_prometheus: bool = True
    prometheus_gateway: Optional[str] = None


@dataclass
class ServerConfig:
    """Settings for the HTTP tile server."""
    host: str = "0.0.0.0"
    port: int = 8000
    data_file: Optional[str] = None
    tile_dir: Optional[str] = None
    cache_tiles: bool = False


@dataclass
class Config:
    """Top-level renderer configuration."""
    environment: str = "development"
    rendering: RenderingConfig = field(default_factory=RenderingConfig)
    ingestion: IngestionConfig = field(default_factory=IngestionConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @classmethod
    def from_env(cls) -> "Config":
        """
        Build a configuration from ``BASEMAP_*`` environment variables.

        Unset variables keep their defaults.
        """
        rendering = RenderingConfig(
            tile_size=_env_int("BASEMAP_TILE_SIZE", 256),
            buffer_size=_env_int("BASEMAP_BUFFER_SIZE", 16),
            render_unknown=_env_bool("BASEMAP_RENDER_UNKNOWN", False),
            max_workers=_env_int("BASEMAP_MAX_WORKERS", 4),
        )
        font_path = os.getenv("BASEMAP_FONT_PATH")
        if font_path:
            rendering.font_paths.insert(0, font_path)

        return cls(
            environment=os.getenv("BASEMAP_ENVIRONMENT", "development"),
            rendering=rendering,
            ingestion=IngestionConfig(
                label_column=os.getenv("BASEMAP_LABEL_COLUMN", "label"),
                chunk_size=_env_int("BASEMAP_CHUNK_SIZE", 10000),
            ),
            metrics=MetricsConfig(
                enable_prometheus=_env_bool("BASEMAP_ENABLE_PROMETHEUS", True),
                prometheus_gateway=os.getenv("BASEMAP_PROMETHEUS_GATEWAY") or None,
            ),
            server=ServerConfig(
                host=os.getenv("HOST", "0.0.0.0"),
                port=_env_int("PORT", 8000),
                data_file=os.getenv("BASEMAP_DATA_FILE") or None,
                tile_dir=os.getenv("TILE_DIR") or None,
                cache_tiles=_env_bool("BASEMAP_CACHE_TILES", False),
            ),
        )
