"""
Feature Classifier

Decides which shape variant a raw feature becomes. National borders and
populated places are recognised first by dedicated gates; the remaining
features go through an ordered classification table keyed on OSM tags, and
anything left over becomes a generic geo-feature.

Tag lookups scan the feature's tags in source order. Gates match key
prefixes (``place``, ``boundary``, ``admin_level``) so that namespaced keys
such as ``place:en`` are recognised too.
"""

from dataclasses import dataclass, field
from typing import Callable, FrozenSet, Iterable, List, Optional, Sequence, Tuple
import concurrent.futures

import structlog

from .projection import ProjectionFunction, project
from .shapes import (
    BaseShape, Border, GenericGeoFeature, PopulatedPlace, Railway, Road, Waterway
)
from ..data_ingestion.features import GeometryType, RawFeature

logger = structlog.get_logger(component="FeatureClassifier")

POPULATED_PLACE_PREFIXES = ("city", "town", "locality", "hamlet")

ShapeFactory = Callable[[RawFeature, ProjectionFunction], BaseShape]


def should_be_populated_place(feature: RawFeature) -> bool:
    """True for point features tagged as a city, town, locality or hamlet."""
    if feature.geometry_type != GeometryType.POINT:
        return False

    for key, value in feature.tags:
        if key.startswith("place") and value.startswith(POPULATED_PLACE_PREFIXES):
            return True
    return False


def should_be_border(feature: RawFeature) -> bool:
    """True when the feature is an administrative boundary at admin level 2."""
    found_boundary = False
    found_level = False

    for key, value in feature.tags:
        if key.startswith("boundary") and value.startswith("administrative"):
            found_boundary = True
        if key.startswith("admin_level") and value == "2":
            found_level = True
        if found_boundary and found_level:
            break

    return found_boundary and found_level


def _build_road(feature: RawFeature, projection: ProjectionFunction) -> BaseShape:
    return Road(feature.coordinates, feature.geometry_type == GeometryType.POLYGON, projection)


def _build_railway(feature: RawFeature, projection: ProjectionFunction) -> BaseShape:
    return Railway(feature.coordinates, projection)


def _build_waterway(feature: RawFeature, projection: ProjectionFunction) -> BaseShape:
    return Waterway(feature.coordinates, feature.geometry_type == GeometryType.POLYGON, projection)


def _build_natural(feature: RawFeature, projection: ProjectionFunction) -> BaseShape:
    return GenericGeoFeature.from_feature(feature, projection)


def _build_landuse(feature: RawFeature, projection: ProjectionFunction) -> BaseShape:
    return GenericGeoFeature.from_landuse(feature, projection)


LINE = frozenset({GeometryType.LINESTRING})
LINE_OR_AREA = frozenset({GeometryType.LINESTRING, GeometryType.POLYGON})
AREA = frozenset({GeometryType.POLYGON})


@dataclass(frozen=True)
class ClassificationRule:
    """
    One row of the classification table.

    A rule matches when the feature has a tag named ``key`` (the first such
    tag is used), its value is in ``values`` (any value when ``values`` is
    None) and the feature's geometry is one of ``geometry_types``.
    """
    key: str
    factory: ShapeFactory
    geometry_types: FrozenSet[GeometryType] = field(default=LINE_OR_AREA)
    values: Optional[FrozenSet[str]] = None
    name: str = ""

    def matches(self, feature: RawFeature) -> bool:
        if feature.geometry_type not in self.geometry_types:
            return False
        value = feature.get_tag(self.key)
        if value is None:
            return False
        return self.values is None or value in self.values


ROAD_VALUES = frozenset([
    'motorway', 'trunk', 'primary', 'secondary', 'tertiary',
    'unclassified', 'residential', 'service', 'road', 'motorway_link',
    'trunk_link', 'primary_link', 'secondary_link', 'tertiary_link'
])

DEFAULT_CLASSIFICATION_TABLE: Tuple[ClassificationRule, ...] = (
    ClassificationRule("highway", _build_road, LINE, ROAD_VALUES, name="road"),
    ClassificationRule("railway", _build_railway, LINE, name="railway"),
    ClassificationRule("waterway", _build_waterway, LINE_OR_AREA, name="waterway"),
    ClassificationRule("natural", _build_natural, LINE_OR_AREA, name="natural"),
    ClassificationRule("landuse", _build_landuse, AREA, name="landuse"),
)


def classify(
    feature: RawFeature,
    table: Sequence[ClassificationRule] = DEFAULT_CLASSIFICATION_TABLE,
    projection: ProjectionFunction = project
) -> BaseShape:
    """
    Build the shape for a raw feature.

    Every feature yields exactly one shape: border gate, then populated-place
    gate, then the first matching table rule, and finally a generic
    geo-feature (UNKNOWN unless it carries a ``natural`` tag).
    """
    if should_be_border(feature):
        return Border(feature.coordinates, projection)

    if should_be_populated_place(feature):
        return PopulatedPlace.from_feature(feature, projection)

    for rule in table:
        if rule.matches(feature):
            return rule.factory(feature, projection)

    return GenericGeoFeature.from_feature(feature, projection)


def classify_features(
    features: Iterable[RawFeature],
    table: Sequence[ClassificationRule] = DEFAULT_CLASSIFICATION_TABLE,
    projection: ProjectionFunction = project,
    max_workers: int = 1
) -> List[BaseShape]:
    """
    Classify a batch of features, preserving input order.

    Classification has no shared state, so ``max_workers`` > 1 spreads the
    work over a thread pool.
    """
    features = list(features)

    if max_workers <= 1 or len(features) < 2:
        shapes = [classify(feature, table, projection) for feature in features]
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
            shapes = list(executor.map(lambda f: classify(f, table, projection), features))

    logger.debug("Classified features", features=len(features), shapes=len(shapes))
    return shapes
