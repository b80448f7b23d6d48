"""
Tile Compositor

Drives a render pass: selects the raw features touching a tile, classifies
them into shapes, moves the shapes into tile pixel space and paints them in
ascending draw priority on a fresh Pillow surface.

Tiles follow the XYZ (slippy map) scheme in Web Mercator. Shapes of one tile
are painted strictly in sequence on that tile's surface; separate tiles can
be rendered concurrently because each has its own surface.
"""

import math
import time
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Any, Sequence, Tuple
import concurrent.futures

import structlog
from PIL import Image
from shapely.geometry import MultiPoint, box

from .classifier import DEFAULT_CLASSIFICATION_TABLE, ClassificationRule, classify_features
from .projection import project, project_bbox
from .shapes import BaseShape, GenericGeoFeature, GeoFeatureType, sort_by_draw_priority
from .surface import DrawingSurface, PillowSurface
from ..data_ingestion.features import RawFeature
from ..monitoring.metrics import MetricsCollector
from ..utils.config import Config

# Web Mercator is undefined at the poles
MAX_LATITUDE = 85.0511287798

MAX_ZOOM = 22


@dataclass
class TileSpec:
    """Specification for a single tile."""
    x: int
    y: int
    z: int
    bbox: Tuple[float, float, float, float]  # (min_lon, min_lat, max_lon, max_lat)

    @property
    def tile_id(self) -> str:
        return f"{self.z}/{self.x}/{self.y}"

    @classmethod
    def from_xyz(cls, x: int, y: int, z: int) -> "TileSpec":
        return cls(x=x, y=y, z=z, bbox=tile_to_bbox(x, y, z))


@dataclass(frozen=True)
class Viewport:
    """Parameters of the projected-plane to pixel transform."""
    min_x: float
    min_y: float
    scale: float
    tile_height: float

    @classmethod
    def for_bbox(
        cls,
        projected_bbox: Tuple[float, float, float, float],
        width: int,
        height: Optional[int] = None
    ) -> "Viewport":
        """
        Fit a projected bounding box into an image.

        With only ``width`` the height follows from the box's aspect ratio;
        with both, the box is scaled to fit inside the image.
        """
        min_x, min_y, max_x, max_y = projected_bbox
        span_x = max_x - min_x
        span_y = max_y - min_y

        scales = []
        if span_x > 0:
            scales.append(width / span_x)
        if height is not None and span_y > 0:
            scales.append(height / span_y)
        scale = min(scales) if scales else 1.0

        if height is None:
            height = max(1, math.ceil(span_y * scale))

        return cls(min_x=min_x, min_y=min_y, scale=scale, tile_height=height)

    def apply(self, shape: BaseShape) -> None:
        shape.apply_viewport(self.min_x, self.min_y, self.scale, self.tile_height)


def validate_tile(x: int, y: int, zoom: int) -> None:
    """Raise ValueError unless (x, y) is a tile of zoom level ``zoom``."""
    if zoom < 0 or zoom > MAX_ZOOM:
        raise ValueError(f"Invalid zoom level {zoom}; must be between 0 and {MAX_ZOOM}")

    num_tiles = 2 ** zoom
    if not (0 <= x < num_tiles and 0 <= y < num_tiles):
        raise ValueError(f"Tile coordinates {x}/{y} out of range for zoom {zoom}")


def tile_to_bbox(x: int, y: int, zoom: int) -> Tuple[float, float, float, float]:
    """Convert tile coordinates to a bounding box in degrees."""
    n = 2.0 ** zoom

    lon_min = x / n * 360.0 - 180.0
    lon_max = (x + 1) / n * 360.0 - 180.0

    lat_min = math.degrees(math.atan(math.sinh(math.pi * (1 - 2 * (y + 1) / n))))
    lat_max = math.degrees(math.atan(math.sinh(math.pi * (1 - 2 * y / n))))

    return (lon_min, lat_min, lon_max, lat_max)


def deg_to_tile(lon: float, lat: float, zoom: int) -> Tuple[int, int]:
    """Convert longitude/latitude to the tile containing it."""
    n = 2 ** zoom
    lat = max(-MAX_LATITUDE, min(MAX_LATITUDE, lat))

    x = int((lon + 180.0) / 360.0 * n)
    lat_rad = math.radians(lat)
    y = int((1.0 - math.asinh(math.tan(lat_rad)) / math.pi) / 2.0 * n)

    return (min(max(x, 0), n - 1), min(max(y, 0), n - 1))


def get_tile_bounds(
    zoom: int,
    bbox: Optional[Tuple[float, float, float, float]] = None
) -> List[Tuple[int, int]]:
    """List the (x, y) tiles of a zoom level covering ``bbox`` (whole world if None)."""
    if bbox is None:
        num_tiles = 2 ** zoom
        return [(x, y) for x in range(num_tiles) for y in range(num_tiles)]

    min_lon, min_lat, max_lon, max_lat = bbox
    min_tile_x, max_tile_y = deg_to_tile(min_lon, min_lat, zoom)
    max_tile_x, min_tile_y = deg_to_tile(max_lon, max_lat, zoom)

    return [
        (x, y)
        for x in range(min_tile_x, max_tile_x + 1)
        for y in range(min_tile_y, max_tile_y + 1)
    ]


def features_bounds(features: Sequence[RawFeature]) -> Optional[Tuple[float, float, float, float]]:
    """Combined bounds of all features with coordinates."""
    bounds = [f.bounds for f in features if f.bounds is not None]
    if not bounds:
        return None
    return (
        min(b[0] for b in bounds),
        min(b[1] for b in bounds),
        max(b[2] for b in bounds),
        max(b[3] for b in bounds),
    )


class TileCompositor:
    """
    Renders raster tiles from raw features.

    Generates PNG tiles by classifying features into shapes and painting
    them in draw-priority order.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        metrics: Optional[MetricsCollector] = None,
        classification_table: Sequence[ClassificationRule] = DEFAULT_CLASSIFICATION_TABLE
    ):
        """
        Initialize the compositor.

        Args:
            config: Configuration object; defaults are used when omitted
            metrics: Optional metrics collector
            classification_table: Ordered rules used after the border and
                populated-place gates
        """
        self.config = config or Config()
        self.metrics = metrics
        self.classification_table = tuple(classification_table)

        rendering = self.config.rendering
        self.tile_size = rendering.tile_size
        self.buffer_size = rendering.buffer_size
        self.render_unknown = rendering.render_unknown

        self.logger = structlog.get_logger(
            component="TileCompositor",
            tile_size=self.tile_size
        )

        self.stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> Dict[str, Any]:
        return {
            'tiles_generated': 0,
            'total_processing_time': 0.0,
            'errors': []
        }

    def new_surface(self, width: Optional[int] = None, height: Optional[int] = None) -> PillowSurface:
        rendering = self.config.rendering
        return PillowSurface(
            width or self.tile_size,
            height or self.tile_size,
            background=rendering.background_color,
            font_paths=rendering.font_paths
        )

    def classify(self, features: Sequence[RawFeature], max_workers: int = 1) -> List[BaseShape]:
        """Classify features and count the resulting variants."""
        shapes = classify_features(
            features,
            self.classification_table,
            project,
            max_workers=max_workers
        )

        if self.metrics:
            for variant, count in Counter(shape.variant for shape in shapes).items():
                self.metrics.increment_counter(
                    'features_classified_total',
                    value=count,
                    labels={'variant': variant}
                )

        return shapes

    def _is_visible(self, shape: BaseShape) -> bool:
        if self.render_unknown:
            return True
        return not (
            isinstance(shape, GenericGeoFeature)
            and shape.feature_type == GeoFeatureType.UNKNOWN
        )

    def render_shapes(
        self,
        shapes: Sequence[BaseShape],
        viewport: Viewport,
        surface: DrawingSurface
    ) -> int:
        """
        Paint shapes on a surface in ascending draw priority.

        Each shape is moved into pixel space right before it is drawn.

        Returns:
            Number of shapes rendered
        """
        rendered = 0
        for shape in sort_by_draw_priority([s for s in shapes if self._is_visible(s)]):
            viewport.apply(shape)
            shape.render(surface)
            rendered += 1
        return rendered

    def select_features(
        self,
        tile_spec: TileSpec,
        features: Sequence[RawFeature]
    ) -> List[RawFeature]:
        """Features whose bounds intersect the buffered tile bounding box."""
        tile_box = box(*self._create_buffered_bbox(tile_spec))
        selected = []
        for feature in features:
            if not feature.coordinates:
                continue
            # Envelope collapses to a point or line for degenerate extents
            envelope = MultiPoint(
                [(c.longitude, c.latitude) for c in feature.coordinates]
            ).envelope
            if tile_box.intersects(envelope):
                selected.append(feature)
        return selected

    def render_tile(
        self,
        tile_spec: TileSpec,
        features: Sequence[RawFeature]
    ) -> Image.Image:
        """
        Render a single tile.

        Args:
            tile_spec: Tile specification (x, y, z, bbox)
            features: Candidate raw features; those outside the tile are skipped

        Returns:
            The rendered tile image
        """
        start_time = time.time()

        tile_features = self.select_features(tile_spec, features)
        shapes = self.classify(tile_features)

        viewport = Viewport.for_bbox(project_bbox(tile_spec.bbox), self.tile_size, self.tile_size)
        surface = self.new_surface()
        rendered = self.render_shapes(shapes, viewport, surface)

        duration = time.time() - start_time
        if self.metrics:
            self.metrics.record_timing('tile_render_duration_seconds', duration)
            self.metrics.set_gauge('shapes_in_last_tile', rendered)

        self.logger.debug(
            "Tile rendered",
            tile_id=tile_spec.tile_id,
            features=len(tile_features),
            shapes=rendered,
            duration_seconds=duration
        )

        return surface.image

    def render_extent(
        self,
        features: Sequence[RawFeature],
        width: int,
        height: Optional[int] = None
    ) -> Image.Image:
        """
        Render all features into one image fitted to their projected extent.

        Args:
            features: Raw features to draw
            width: Image width in pixels
            height: Image height; derived from the aspect ratio when omitted
        """
        shapes = self.classify(features)

        points = [p for shape in shapes for p in shape.points]
        if points:
            extent = (
                min(p[0] for p in points),
                min(p[1] for p in points),
                max(p[0] for p in points),
                max(p[1] for p in points),
            )
        else:
            extent = (0.0, 0.0, float(width), float(height or width))

        viewport = Viewport.for_bbox(extent, width, height)
        surface = self.new_surface(width, height or int(viewport.tile_height))
        rendered = self.render_shapes(shapes, viewport, surface)

        self.logger.info("Extent rendered", shapes=rendered, width=surface.width, height=surface.height)
        return surface.image

    def generate_tileset(
        self,
        features: Sequence[RawFeature],
        zoom_levels: List[int],
        bbox: Optional[Tuple[float, float, float, float]] = None,
        output_dir: Optional[Path] = None,
        max_workers: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Render every tile of the given zoom levels that covers ``bbox``.

        Args:
            features: Raw features to draw
            zoom_levels: Zoom levels to render
            bbox: Area to cover (min_lon, min_lat, max_lon, max_lat); defaults
                to the extent of the features
            output_dir: Directory receiving ``z/x/y.png`` files
            max_workers: Tile rendering threads; defaults to configuration

        Returns:
            Dictionary containing generation results and statistics
        """
        start_time = time.time()
        if max_workers is None:
            max_workers = self.config.rendering.max_workers

        try:
            self._validate_zoom_levels(zoom_levels)

            if bbox is None:
                bbox = features_bounds(features)
                if bbox is None:
                    raise ValueError("No features with coordinates to render")

            self.logger.info(
                "Starting tileset generation",
                zoom_levels=zoom_levels,
                features=len(features),
                bbox=bbox
            )

            total_tiles = 0
            zoom_results = {}
            for zoom in sorted(zoom_levels):
                zoom_result = self._generate_zoom_level(
                    features,
                    zoom,
                    get_tile_bounds(zoom, bbox),
                    Path(output_dir) if output_dir else None,
                    max_workers
                )
                zoom_results[zoom] = zoom_result
                total_tiles += zoom_result['tiles_generated']

                self.logger.info(
                    "Completed zoom level",
                    zoom=zoom,
                    tiles_generated=zoom_result['tiles_generated'],
                    processing_time=zoom_result['processing_time']
                )

            total_time = time.time() - start_time
            self.stats['total_processing_time'] += total_time

            if self.metrics:
                self.metrics.record_timing('tileset_generation_duration_seconds', total_time)

            self.logger.info(
                "Tileset generation completed",
                total_tiles=total_tiles,
                processing_time=total_time
            )

            return {
                'success': True,
                'total_tiles': total_tiles,
                'zoom_levels': sorted(zoom_levels),
                'processing_time': total_time,
                'zoom_results': zoom_results,
                'output_dir': str(output_dir) if output_dir else None
            }

        except Exception as e:
            error_msg = f"Tileset generation failed: {str(e)}"
            self.logger.error(error_msg)
            self.stats['errors'].append(error_msg)

            return {
                'success': False,
                'error': error_msg,
                'processing_time': time.time() - start_time
            }

    @staticmethod
    def _validate_zoom_levels(zoom_levels: List[int]) -> None:
        if not zoom_levels:
            raise ValueError("No zoom levels specified")
        if min(zoom_levels) < 0 or max(zoom_levels) > MAX_ZOOM:
            raise ValueError(f"Zoom levels must be between 0 and {MAX_ZOOM}")

    def _generate_zoom_level(
        self,
        features: Sequence[RawFeature],
        zoom: int,
        tile_bounds: List[Tuple[int, int]],
        output_dir: Optional[Path],
        max_workers: int
    ) -> Dict[str, Any]:
        """Render all tiles of one zoom level."""
        start_time = time.time()
        tiles_generated = 0

        tile_specs = [TileSpec.from_xyz(x, y, zoom) for x, y in tile_bounds]

        with concurrent.futures.ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
            future_to_tile = {
                executor.submit(self.render_tile, tile_spec, features): tile_spec
                for tile_spec in tile_specs
            }

            for future in concurrent.futures.as_completed(future_to_tile):
                tile_spec = future_to_tile[future]

                try:
                    image = future.result()
                    if output_dir:
                        self._save_tile(image, tile_spec, output_dir)
                    tiles_generated += 1
                    self.stats['tiles_generated'] += 1
                    if self.metrics:
                        self.metrics.increment_counter(
                            'tiles_rendered_total', labels={'status': 'success'}
                        )

                except Exception as e:
                    self.logger.error(
                        "Error rendering tile",
                        tile_id=tile_spec.tile_id,
                        error=str(e)
                    )
                    self.stats['errors'].append(f"Tile {tile_spec.tile_id}: {str(e)}")
                    if self.metrics:
                        self.metrics.increment_counter(
                            'tiles_rendered_total', labels={'status': 'error'}
                        )

        return {
            'tiles_generated': tiles_generated,
            'processing_time': time.time() - start_time,
            'total_tile_specs': len(tile_specs)
        }

    def _create_buffered_bbox(self, tile_spec: TileSpec) -> Tuple[float, float, float, float]:
        """Grow the tile bbox by the configured pixel buffer."""
        minx, miny, maxx, maxy = tile_spec.bbox

        buffer_percent = self.buffer_size / self.tile_size
        buffer_x = (maxx - minx) * buffer_percent
        buffer_y = (maxy - miny) * buffer_percent

        return (minx - buffer_x, miny - buffer_y, maxx + buffer_x, maxy + buffer_y)

    @staticmethod
    def tile_path(output_dir: Path, tile_spec: TileSpec) -> Path:
        return Path(output_dir) / str(tile_spec.z) / str(tile_spec.x) / f"{tile_spec.y}.png"

    def _save_tile(self, image: Image.Image, tile_spec: TileSpec, output_dir: Path) -> None:
        tile_path = self.tile_path(output_dir, tile_spec)
        tile_path.parent.mkdir(parents=True, exist_ok=True)
        image.save(tile_path, format="PNG")

    def get_generation_stats(self) -> Dict[str, Any]:
        return self.stats.copy()

    def reset_stats(self) -> None:
        self.stats = self._empty_stats()
