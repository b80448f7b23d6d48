"""
Map Shapes

Renderable shape variants produced from classified raw features. Every shape
owns its projected points, a draw priority that decides paint order (higher
paints later, on top), a filled-area flag fixed at construction, and a render
routine that styles the shape on a drawing surface.

Points start in projected-plane units and are rewritten into tile pixels by
the viewport transform exactly once before rendering.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Iterable, List, Optional, Sequence

from .projection import ProjectedPoint, ProjectionFunction, project, to_projected_points
from ..data_ingestion.features import Coordinate, GeometryType, RawFeature


class RenderingError(Exception):
    """Base class for rendering errors."""


class ViewportAlreadyAppliedError(RenderingError):
    """Raised when a shape's viewport transform is applied a second time."""


def apply_viewport(
    points: List[ProjectedPoint],
    min_x: float,
    min_y: float,
    scale: float,
    tile_height: float
) -> None:
    """
    Rewrite projected points into tile pixel space, in place.

    Translates by (min_x, min_y), scales, and flips the Y axis so that
    projected "up" becomes raster "up" on an image whose origin is the
    top-left corner. Calling this twice on the same list corrupts it.
    """
    for i, (x, y) in enumerate(points):
        points[i] = ((x - min_x) * scale, tile_height - (y - min_y) * scale)


class BaseShape(ABC):
    """Common behaviour of all shape variants."""

    draw_priority: int = 0

    def __init__(
        self,
        coordinates: Iterable[Coordinate],
        is_filled_area: bool,
        projection: ProjectionFunction = project
    ):
        self.points: List[ProjectedPoint] = to_projected_points(coordinates, projection)
        self._is_filled_area = is_filled_area
        self._viewport_applied = False

    @property
    def is_filled_area(self) -> bool:
        return self._is_filled_area

    @property
    def viewport_applied(self) -> bool:
        return self._viewport_applied

    @property
    def variant(self) -> str:
        return type(self).__name__

    def apply_viewport(self, min_x: float, min_y: float, scale: float, tile_height: float) -> None:
        """
        Move this shape's points into tile pixel space.

        Raises:
            ViewportAlreadyAppliedError: If the transform already ran
        """
        if self._viewport_applied:
            raise ViewportAlreadyAppliedError(
                f"Viewport transform already applied to {self.variant}"
            )
        apply_viewport(self.points, min_x, min_y, scale, tile_height)
        self._viewport_applied = True

    def render(self, surface) -> None:
        """Draw the shape on ``surface``; shapes without points draw nothing."""
        if not self.points:
            return
        self._draw(surface)

    @abstractmethod
    def _draw(self, surface) -> None:
        """Issue the styled drawing calls for a non-empty shape."""

    def __repr__(self) -> str:
        return (
            f"{self.variant}(draw_priority={self.draw_priority}, "
            f"is_filled_area={self.is_filled_area}, points={len(self.points)})"
        )


class GeoFeatureType(Enum):
    PLAIN = 0
    HILLS = 1
    MOUNTAINS = 2
    FOREST = 3
    DESERT = 4
    UNKNOWN = 5
    WATER = 6
    RESIDENTIAL = 7

    @classmethod
    def from_natural(cls, value: Optional[str]) -> "GeoFeatureType":
        """
        Sub-type for a ``natural`` tag value.

        The first matching branch wins; a missing value is UNKNOWN and any
        unrecognised value is PLAIN.
        """
        if value is None:
            return cls.UNKNOWN
        if value == "water":
            return cls.WATER
        if value in ("wood", "tree_row"):
            return cls.FOREST
        if value in ("beach", "sand"):
            return cls.DESERT
        if value in ("bare_rock", "rock", "scree"):
            return cls.MOUNTAINS
        return cls.PLAIN

    @classmethod
    def from_landuse(cls, value: Optional[str]) -> "GeoFeatureType":
        """Sub-type for a ``landuse`` tag value; unmapped values are UNKNOWN."""
        return _LANDUSE_TYPES.get(value, cls.UNKNOWN)


_LANDUSE_TYPES = {
    "residential": GeoFeatureType.RESIDENTIAL,
    "forest": GeoFeatureType.FOREST,
    "orchard": GeoFeatureType.FOREST,
    "reservoir": GeoFeatureType.WATER,
    "basin": GeoFeatureType.WATER,
    "farmland": GeoFeatureType.PLAIN,
    "meadow": GeoFeatureType.PLAIN,
    "grass": GeoFeatureType.PLAIN,
    "allotments": GeoFeatureType.PLAIN,
    "recreation_ground": GeoFeatureType.PLAIN,
    "village_green": GeoFeatureType.PLAIN,
}

GEO_FEATURE_PRIORITIES = {
    GeoFeatureType.DESERT: 9,
    GeoFeatureType.UNKNOWN: 8,
    GeoFeatureType.PLAIN: 10,
    GeoFeatureType.FOREST: 11,
    GeoFeatureType.HILLS: 12,
    GeoFeatureType.MOUNTAINS: 13,
    GeoFeatureType.WATER: 40,
    GeoFeatureType.RESIDENTIAL: 41,
}
DEFAULT_GEO_FEATURE_PRIORITY = 7

GEO_FEATURE_COLORS = {
    GeoFeatureType.PLAIN: "lightgreen",
    GeoFeatureType.HILLS: "darkgreen",
    GeoFeatureType.MOUNTAINS: "lightgray",
    GeoFeatureType.FOREST: "green",
    GeoFeatureType.DESERT: "sandybrown",
    GeoFeatureType.UNKNOWN: "magenta",
    GeoFeatureType.WATER: "lightblue",
    GeoFeatureType.RESIDENTIAL: "lightcoral",
}
DEFAULT_GEO_FEATURE_COLOR = "magenta"

THIN_LINE_WIDTH = 1.2
WIDE_LINE_WIDTH = 2.0
ROAD_CASING_WIDTH = 2.2
RAILWAY_DASH_PATTERN = (2.0, 4.0, 2.0)
LABEL_FONT_SIZE = 12


class GenericGeoFeature(BaseShape):
    """Natural and land-use areas or lines, styled by sub-type."""

    def __init__(
        self,
        coordinates: Iterable[Coordinate],
        feature_type: GeoFeatureType,
        is_filled_area: bool = True,
        projection: ProjectionFunction = project
    ):
        super().__init__(coordinates, is_filled_area, projection)
        self._feature_type = feature_type

    @classmethod
    def from_type(
        cls,
        coordinates: Iterable[Coordinate],
        feature_type: GeoFeatureType,
        projection: ProjectionFunction = project
    ) -> "GenericGeoFeature":
        """Build a filled area of a given sub-type, e.g. for decorative shapes."""
        return cls(coordinates, feature_type, True, projection)

    @classmethod
    def from_feature(
        cls,
        feature: RawFeature,
        projection: ProjectionFunction = project
    ) -> "GenericGeoFeature":
        """Build a shape whose sub-type comes from the ``natural`` tag."""
        return cls(
            feature.coordinates,
            GeoFeatureType.from_natural(feature.get_tag("natural")),
            feature.geometry_type == GeometryType.POLYGON,
            projection
        )

    @classmethod
    def from_landuse(
        cls,
        feature: RawFeature,
        projection: ProjectionFunction = project
    ) -> "GenericGeoFeature":
        """Build a shape whose sub-type comes from the ``landuse`` tag."""
        return cls(
            feature.coordinates,
            GeoFeatureType.from_landuse(feature.get_tag("landuse")),
            feature.geometry_type == GeometryType.POLYGON,
            projection
        )

    @property
    def feature_type(self) -> GeoFeatureType:
        return self._feature_type

    @property
    def draw_priority(self) -> int:
        return GEO_FEATURE_PRIORITIES.get(self._feature_type, DEFAULT_GEO_FEATURE_PRIORITY)

    @property
    def color(self) -> str:
        return GEO_FEATURE_COLORS.get(self._feature_type, DEFAULT_GEO_FEATURE_COLOR)

    def _draw(self, surface) -> None:
        if self.is_filled_area:
            surface.fill_polygon(self.points, self.color)
        else:
            surface.stroke_polyline(self.points, self.color, THIN_LINE_WIDTH)

    def __repr__(self) -> str:
        return (
            f"GenericGeoFeature(feature_type={self._feature_type.name}, "
            f"draw_priority={self.draw_priority}, is_filled_area={self.is_filled_area}, "
            f"points={len(self.points)})"
        )


class Railway(BaseShape):
    """Rail track drawn as a dark line under a light dashed line."""

    draw_priority = 45

    def __init__(self, coordinates: Iterable[Coordinate], projection: ProjectionFunction = project):
        super().__init__(coordinates, False, projection)

    def _draw(self, surface) -> None:
        surface.stroke_polyline(self.points, "darkgray", WIDE_LINE_WIDTH)
        surface.stroke_polyline(
            self.points, "lightgray", THIN_LINE_WIDTH, dash_pattern=RAILWAY_DASH_PATTERN
        )


class PopulatedPlace(BaseShape):
    """Label of a city, town, locality or hamlet."""

    draw_priority = 60

    def __init__(
        self,
        coordinates: Iterable[Coordinate],
        name: str,
        should_render: bool = True,
        projection: ProjectionFunction = project
    ):
        super().__init__(coordinates, False, projection)
        self.name = name
        self.should_render = should_render

    @classmethod
    def from_feature(
        cls,
        feature: RawFeature,
        projection: ProjectionFunction = project
    ) -> "PopulatedPlace":
        # Visibility depends on the label alone; the name tag only picks the text.
        if not feature.label:
            return cls(feature.coordinates, "Unknown", False, projection)

        name = feature.get_tag("name")
        if name is None or not name.strip():
            name = feature.label
        return cls(feature.coordinates, name, True, projection)

    def _draw(self, surface) -> None:
        if not self.should_render:
            return
        surface.draw_text(self.name, self.points[0], LABEL_FONT_SIZE, "black", bold=True)


class Border(BaseShape):
    """National administrative boundary."""

    draw_priority = 30

    def __init__(self, coordinates: Iterable[Coordinate], projection: ProjectionFunction = project):
        super().__init__(coordinates, False, projection)

    def _draw(self, surface) -> None:
        surface.stroke_polyline(self.points, "gray", WIDE_LINE_WIDTH)


class Waterway(BaseShape):
    """Rivers and streams, or water bodies when filled."""

    draw_priority = 40

    def __init__(
        self,
        coordinates: Iterable[Coordinate],
        is_filled_area: bool = False,
        projection: ProjectionFunction = project
    ):
        super().__init__(coordinates, is_filled_area, projection)

    def _draw(self, surface) -> None:
        if self.is_filled_area:
            surface.fill_polygon(self.points, "lightblue")
        else:
            surface.stroke_polyline(self.points, "lightblue", THIN_LINE_WIDTH)


class Road(BaseShape):
    """Road drawn as a wide casing with a narrower inner line on top."""

    draw_priority = 50

    def __init__(
        self,
        coordinates: Iterable[Coordinate],
        is_filled_area: bool = False,
        projection: ProjectionFunction = project
    ):
        super().__init__(coordinates, is_filled_area, projection)

    def _draw(self, surface) -> None:
        if self.is_filled_area:
            return
        surface.stroke_polyline(self.points, "yellow", ROAD_CASING_WIDTH)
        surface.stroke_polyline(self.points, "coral", WIDE_LINE_WIDTH)


def sort_by_draw_priority(shapes: Sequence[BaseShape]) -> List[BaseShape]:
    """Return shapes in paint order; equal priorities keep their input order."""
    return sorted(shapes, key=lambda shape: shape.draw_priority)
