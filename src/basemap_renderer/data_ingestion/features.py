"""
Raw feature model shared by every feature source and by the classifier.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


class GeometryType(Enum):
    """Geometry kinds a raw feature can carry."""
    POINT = "Point"
    LINESTRING = "LineString"
    POLYGON = "Polygon"


@dataclass(frozen=True)
class Coordinate:
    """A WGS84 longitude/latitude pair in degrees."""
    longitude: float
    latitude: float


@dataclass(frozen=True)
class RawFeature:
    """
    A geographic feature as delivered by a feature source.

    Tags are kept as an ordered tuple of ``(key, value)`` pairs so lookups
    scan them in source order and the first match wins.
    """
    geometry_type: GeometryType
    coordinates: Tuple[Coordinate, ...] = field(default_factory=tuple)
    tags: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
    label: str = ""

    def get_tag(self, key: str) -> Optional[str]:
        """Return the value of the first tag named ``key``, or None."""
        for tag_key, tag_value in self.tags:
            if tag_key == key:
                return tag_value
        return None

    def has_tag(self, key: str) -> bool:
        return any(tag_key == key for tag_key, _ in self.tags)

    @property
    def bounds(self) -> Optional[Tuple[float, float, float, float]]:
        """Bounding box as (min_lon, min_lat, max_lon, max_lat)."""
        if not self.coordinates:
            return None
        lons = [c.longitude for c in self.coordinates]
        lats = [c.latitude for c in self.coordinates]
        return (min(lons), min(lats), max(lons), max(lats))

    @classmethod
    def from_lonlat(
        cls,
        geometry_type: GeometryType,
        coordinates,
        tags=None,
        label: str = ""
    ) -> "RawFeature":
        """
        Build a feature from plain ``(lon, lat)`` pairs and a tag mapping.

        Args:
            geometry_type: Geometry kind of the feature
            coordinates: Iterable of (longitude, latitude) pairs
            tags: Mapping or iterable of (key, value) pairs
            label: Optional display label
        """
        if tags is None:
            tags = ()
        elif hasattr(tags, 'items'):
            tags = tags.items()

        return cls(
            geometry_type=geometry_type,
            coordinates=tuple(Coordinate(float(lon), float(lat)) for lon, lat in coordinates),
            tags=tuple((str(k), str(v)) for k, v in tags),
            label=label or ""
        )
