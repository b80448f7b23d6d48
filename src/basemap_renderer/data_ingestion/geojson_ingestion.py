"""
GeoJSON Feature Source

Reads vector files supported by GeoPandas (GeoJSON, GeoPackage, Shapefile)
or an in-memory GeoDataFrame and turns each row into raw features. Attribute
columns become tags; multi-part geometries are exploded into one feature per
part.
"""

from typing import List, Optional, Any, Union, Tuple
from pathlib import Path

import pandas as pd
import geopandas as gpd
from shapely.geometry.base import BaseGeometry

from .base_ingester import BaseFeatureSource
from .features import RawFeature, GeometryType, Coordinate


class GeoJSONFeatureSource(BaseFeatureSource):
    """Feature source backed by GeoPandas."""

    source_type = "geojson"

    WGS84_EPSG = 4326

    SUPPORTED_SUFFIXES = ['.geojson', '.json', '.gpkg', '.shp']

    FALLBACK_LABEL_COLUMN = 'name'

    GEOMETRY_TYPES = {
        'Point': GeometryType.POINT,
        'LineString': GeometryType.LINESTRING,
        'LinearRing': GeometryType.LINESTRING,
        'Polygon': GeometryType.POLYGON,
    }

    def extract(self, source: Union[str, Path, gpd.GeoDataFrame]) -> gpd.GeoDataFrame:
        """
        Load a GeoDataFrame from a file, or pass an existing one through.

        Args:
            source: File path or GeoDataFrame
        """
        if isinstance(source, gpd.GeoDataFrame):
            gdf = source
        else:
            file_path = Path(source)
            if not file_path.exists():
                raise FileNotFoundError(f"Feature file not found: {file_path}")
            if file_path.suffix.lower() not in self.SUPPORTED_SUFFIXES:
                raise ValueError(f"Unsupported feature file format: {file_path.suffix}")

            self.logger.info("Reading feature file", file_path=str(file_path))
            gdf = gpd.read_file(file_path)

        if gdf.crs is not None and gdf.crs.to_epsg() != self.WGS84_EPSG:
            gdf = gdf.to_crs(epsg=self.WGS84_EPSG)

        return gdf

    def validate(self, data: gpd.GeoDataFrame) -> bool:
        if not isinstance(data, gpd.GeoDataFrame):
            self.logger.error("Feature data must be a GeoDataFrame")
            return False

        if data.empty:
            self.logger.warning("Feature data is empty")

        return True

    def transform(self, data: gpd.GeoDataFrame) -> List[RawFeature]:
        """
        Convert GeoDataFrame rows into raw features.

        Args:
            data: GeoDataFrame in WGS84

        Returns:
            List of raw features in row order
        """
        label_column = self.config.ingestion.label_column
        geometry_column = data.geometry.name
        attribute_columns = [c for c in data.columns if c != geometry_column]

        features = []
        for idx, row in data.iterrows():
            geom = row[geometry_column]
            # Null geometries come back as None or NaN depending on the pandas version
            if not isinstance(geom, BaseGeometry) or geom.is_empty:
                self._record_failure(f"Row {idx} has no geometry")
                continue

            tags = self._row_tags(row, attribute_columns, label_column)
            label = self._row_label(row, label_column)

            for part in self._explode(geom):
                feature = self._geometry_to_feature(part, tags, label)
                if feature is None:
                    self._record_failure(f"Row {idx} has unsupported geometry {part.geom_type}")
                    continue
                if not self._validate_feature(feature):
                    self._record_failure(f"Row {idx} failed validation")
                    continue
                features.append(feature)

        self.logger.info(
            "GeoDataFrame transformation completed",
            rows=len(data),
            total_features=len(features)
        )
        return features

    @staticmethod
    def _row_tags(row, columns: List[str], label_column: str) -> Tuple[Tuple[str, str], ...]:
        tags = []
        for column in columns:
            if column == label_column:
                continue
            value = row[column]
            if isinstance(value, (list, dict)) or pd.isna(value):
                continue
            if hasattr(value, 'item'):
                value = value.item()
            tags.append((str(column), str(value)))
        return tuple(tags)

    @classmethod
    def _row_label(cls, row, label_column: str) -> str:
        """Label from the configured column, falling back to ``name``."""
        for column in (label_column, cls.FALLBACK_LABEL_COLUMN):
            if column not in row.index:
                continue
            value = row[column]
            if value is None or pd.isna(value):
                continue
            return str(value)
        return ""

    @staticmethod
    def _explode(geom: BaseGeometry) -> List[BaseGeometry]:
        if hasattr(geom, 'geoms'):
            parts = []
            for part in geom.geoms:
                parts.extend(GeoJSONFeatureSource._explode(part))
            return parts
        return [geom]

    def _geometry_to_feature(
        self,
        geom: BaseGeometry,
        tags: Tuple[Tuple[str, str], ...],
        label: str
    ) -> Optional[RawFeature]:
        geometry_type = self.GEOMETRY_TYPES.get(geom.geom_type)
        if geometry_type is None:
            return None

        if geometry_type == GeometryType.POLYGON:
            coords = geom.exterior.coords
        else:
            coords = geom.coords

        return RawFeature(
            geometry_type=geometry_type,
            coordinates=tuple(Coordinate(float(c[0]), float(c[1])) for c in coords),
            tags=tags,
            label=label
        )
