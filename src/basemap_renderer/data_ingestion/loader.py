"""Pick a feature source from a file name and read it."""

from pathlib import Path
from typing import List, Optional, Union

from .base_ingester import BaseFeatureSource
from .features import RawFeature
from .geojson_ingestion import GeoJSONFeatureSource
from .osm_ingestion import OSMFeatureSource
from ..monitoring.metrics import MetricsCollector
from ..utils.config import Config

OSM_SUFFIXES = ('.osm', '.xml', '.pbf', '.osm.gz', '.xml.gz')


def feature_source_for(
    path: Union[str, Path],
    config: Optional[Config] = None,
    metrics: Optional[MetricsCollector] = None
) -> BaseFeatureSource:
    """Return the OSM source for OSM extracts and the GeoPandas source otherwise."""
    name = Path(path).name.lower()
    if name.endswith(OSM_SUFFIXES):
        return OSMFeatureSource(config, metrics)
    return GeoJSONFeatureSource(config, metrics)


def load_features(
    path: Union[str, Path],
    config: Optional[Config] = None,
    metrics: Optional[MetricsCollector] = None
) -> List[RawFeature]:
    """
    Read all raw features from a file.

    Raises:
        RuntimeError: If ingestion fails
    """
    result = feature_source_for(path, config, metrics).ingest(path)
    if not result['success']:
        raise RuntimeError(result['message'])
    return result['features']
