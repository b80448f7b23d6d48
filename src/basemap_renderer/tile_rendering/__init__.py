"""
Tile Rendering Module

Classifies raw map features into styled shapes and paints them, in draw
priority order, onto raster tiles.
"""

from .projection import project, to_projected_points
from .shapes import (
    BaseShape,
    GenericGeoFeature,
    GeoFeatureType,
    Railway,
    PopulatedPlace,
    Border,
    Waterway,
    Road,
    RenderingError,
    ViewportAlreadyAppliedError,
    apply_viewport,
    sort_by_draw_priority,
)
from .classifier import (
    ClassificationRule,
    DEFAULT_CLASSIFICATION_TABLE,
    classify,
    classify_features,
    should_be_border,
    should_be_populated_place,
)
from .surface import DrawingSurface, PillowSurface
from .compositor import TileCompositor, TileSpec, Viewport

__all__ = [
    "project",
    "to_projected_points",
    "BaseShape",
    "GenericGeoFeature",
    "GeoFeatureType",
    "Railway",
    "PopulatedPlace",
    "Border",
    "Waterway",
    "Road",
    "RenderingError",
    "ViewportAlreadyAppliedError",
    "apply_viewport",
    "sort_by_draw_priority",
    "ClassificationRule",
    "DEFAULT_CLASSIFICATION_TABLE",
    "classify",
    "classify_features",
    "should_be_border",
    "should_be_populated_place",
    "DrawingSurface",
    "PillowSurface",
    "TileCompositor",
    "TileSpec",
    "Viewport"
]
