"""
Projection helpers.

Maps WGS84 longitude/latitude coordinates onto the Web Mercator plane.
"""

from typing import Callable, Iterable, List, Tuple

from pyproj import Transformer

from ..data_ingestion.features import Coordinate

ProjectedPoint = Tuple[float, float]
ProjectionFunction = Callable[[float, float], ProjectedPoint]

WGS84_EPSG = 4326
WEB_MERCATOR_EPSG = 3857

_wgs84_to_mercator = Transformer.from_crs(WGS84_EPSG, WEB_MERCATOR_EPSG, always_xy=True)


def project(lon: float, lat: float) -> ProjectedPoint:
    """Project a longitude/latitude pair to Web Mercator metres."""
    x, y = _wgs84_to_mercator.transform(lon, lat)
    return (x, y)


def project_bbox(bbox: Tuple[float, float, float, float]) -> Tuple[float, float, float, float]:
    """Project a (min_lon, min_lat, max_lon, max_lat) box to the plane."""
    min_x, min_y = project(bbox[0], bbox[1])
    max_x, max_y = project(bbox[2], bbox[3])
    return (min_x, min_y, max_x, max_y)


def to_projected_points(
    coordinates: Iterable[Coordinate],
    projection: ProjectionFunction = project
) -> List[ProjectedPoint]:
    """
    Project a coordinate sequence.

    Args:
        coordinates: Geographic coordinates in order
        projection: Function mapping (lon, lat) to a planar point

    Returns:
        New list of projected points, same order and length
    """
    return [projection(c.longitude, c.latitude) for c in coordinates]
