"""
Base Feature Source

Provides the common extract / validate / transform workflow for every raw
feature source. Concrete sources only know how to read their format; the
statistics, logging and metrics around the workflow live here.
"""

import time
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Union
from pathlib import Path

import structlog

from .features import RawFeature, GeometryType
from ..utils.config import Config
from ..monitoring.metrics import MetricsCollector


class BaseFeatureSource(ABC):
    """
    Abstract base class for raw feature sources.

    Provides common functionality including:
    - Configuration management
    - Structured logging and metrics collection
    - Workflow error handling
    - Feature-level validation
    """

    source_type = "base"

    def __init__(
        self,
        config: Optional[Config] = None,
        metrics_collector: Optional[MetricsCollector] = None
    ):
        """
        Initialize the feature source.

        Args:
            config: Configuration object; defaults are used when omitted
            metrics_collector: Optional metrics collector for monitoring
        """
        self.config = config or Config()
        self.metrics = metrics_collector

        self.logger = structlog.get_logger(
            ingester_type=self.__class__.__name__,
            config_env=self.config.environment
        )

        self.stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> Dict[str, Any]:
        return {
            'records_processed': 0,
            'records_failed': 0,
            'start_time': None,
            'end_time': None,
            'errors': []
        }

    @abstractmethod
    def extract(self, source: Union[str, Path, Any]) -> Any:
        """
        Extract data from the specified source.

        Args:
            source: Data source specification (path or in-memory object)

        Returns:
            Extracted data in a source-specific format
        """

    @abstractmethod
    def validate(self, data: Any) -> bool:
        """
        Validate the extracted data for completeness.

        Returns:
            True if data is usable, False otherwise
        """

    @abstractmethod
    def transform(self, data: Any) -> List[RawFeature]:
        """
        Turn the extracted data into raw features.

        Args:
            data: Raw extracted data

        Returns:
            List of RawFeature objects
        """

    def read(self, source: Union[str, Path, Any]) -> List[RawFeature]:
        """
        Extract, validate and transform, raising on failure.

        Raises:
            ValueError: If the extracted data fails validation
        """
        data = self.extract(source)
        if data is None:
            raise ValueError("Data extraction returned None")
        if not self.validate(data):
            raise ValueError("Data validation failed")
        return self.transform(data)

    def ingest(
        self,
        source: Union[str, Path, Any],
        validate_data: bool = True
    ) -> Dict[str, Any]:
        """
        Complete ingestion workflow: extract, validate and transform.

        Args:
            source: Data source specification
            validate_data: Whether to perform data validation

        Returns:
            Dictionary with ``success``, ``features``, ``stats`` and ``message``
        """
        self.stats = self._empty_stats()
        self.stats['start_time'] = time.time()

        try:
            self.logger.info("Starting feature ingestion", source=str(source))

            data = self.extract(source)

            if data is None:
                raise ValueError("Data extraction returned None")

            if validate_data and not self.validate(data):
                raise ValueError("Data validation failed")

            features = self.transform(data)

            self.stats['end_time'] = time.time()
            self.stats['records_processed'] = len(features)

            self.logger.info(
                "Feature ingestion completed successfully",
                records_processed=len(features),
                records_failed=self.stats['records_failed'],
                duration_seconds=self.stats['end_time'] - self.stats['start_time']
            )

            if self.metrics:
                self.metrics.increment_counter(
                    'features_ingested_total',
                    value=len(features),
                    labels={'source_type': self.source_type, 'status': 'success'}
                )
                if self.stats['records_failed']:
                    self.metrics.increment_counter(
                        'features_ingested_total',
                        value=self.stats['records_failed'],
                        labels={'source_type': self.source_type, 'status': 'failed'}
                    )

            return {
                'success': True,
                'features': features,
                'stats': self.stats,
                'message': 'Ingestion completed successfully'
            }

        except Exception as e:
            self.stats['end_time'] = time.time()
            self.stats['errors'].append(str(e))

            self.logger.error(
                "Feature ingestion failed",
                error=str(e),
                duration_seconds=self.stats['end_time'] - self.stats['start_time']
            )

            return {
                'success': False,
                'features': [],
                'stats': self.stats,
                'message': f'Ingestion failed: {str(e)}'
            }

    def _record_failure(self, message: str) -> None:
        self.stats['records_failed'] += 1
        self.stats['errors'].append(message)

    def _validate_feature(self, feature: RawFeature) -> bool:
        """Check coordinate ranges and the minimum vertex count of a feature."""
        for coord in feature.coordinates:
            if not (-90 <= coord.latitude <= 90) or not (-180 <= coord.longitude <= 180):
                self.logger.warning(
                    "Invalid coordinates",
                    lat=coord.latitude,
                    lon=coord.longitude
                )
                return False

        minimum = {
            GeometryType.POINT: 1,
            GeometryType.LINESTRING: 2,
            GeometryType.POLYGON: 3,
        }[feature.geometry_type]
        if len(feature.coordinates) < minimum:
            self.logger.warning(
                "Feature has insufficient coordinates",
                geometry_type=feature.geometry_type.value,
                coordinates=len(feature.coordinates)
            )
            return False

        return True
