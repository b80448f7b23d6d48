"""
Data Ingestion Module

Reads raw map features from OpenStreetMap extracts and GeoPandas-readable
vector files into the RawFeature model consumed by the classifier.
"""

from .features import RawFeature, GeometryType, Coordinate
from .base_ingester import BaseFeatureSource
from .osm_ingestion import OSMFeatureSource
from .geojson_ingestion import GeoJSONFeatureSource
from .loader import feature_source_for, load_features

__all__ = [
    "RawFeature",
    "GeometryType",
    "Coordinate",
    "BaseFeatureSource",
    "OSMFeatureSource",
    "GeoJSONFeatureSource",
    "feature_source_for",
    "load_features"
]
