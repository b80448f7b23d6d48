"""
Basemap Renderer

Renders raster map tiles from OpenStreetMap-style vector features: raw
features are classified into styled shapes (land cover, water, roads,
railways, borders and place labels), projected to Web Mercator and painted
in draw-priority order.
"""

__version__ = "1.0.0"

# Core modules
from . import data_ingestion
from . import tile_rendering
from . import monitoring
from . import utils

__all__ = [
    "data_ingestion",
    "tile_rendering",
    "monitoring",
    "utils"
]
