"""
Unit Tests for the Tile Compositor

Covers tile math, the viewport fit, the sort-then-render loop and tile and
tileset rendering end to end on Pillow surfaces.
"""

import unittest
import tempfile
import shutil
from pathlib import Path
from unittest.mock import Mock

import sys
sys.path.append(str(Path(__file__).parent.parent.parent / "src"))

from basemap_renderer.data_ingestion.features import RawFeature, GeometryType
from basemap_renderer.monitoring.metrics import MetricsCollector
from basemap_renderer.tile_rendering.compositor import (
    MAX_LATITUDE,
    TileCompositor,
    TileSpec,
    Viewport,
    deg_to_tile,
    features_bounds,
    get_tile_bounds,
    tile_to_bbox,
    validate_tile,
)
from basemap_renderer.tile_rendering.shapes import (
    Border, GenericGeoFeature, GeoFeatureType, PopulatedPlace, Road
)
from basemap_renderer.tile_rendering.surface import DrawingSurface
from basemap_renderer.utils.config import Config

LIGHTBLUE = (173, 216, 230)
CORAL = (255, 127, 80)
YELLOW = (255, 255, 0)


def identity(lon, lat):
    return (lon, lat)


def world_lake():
    return RawFeature.from_lonlat(
        GeometryType.POLYGON,
        [(-170, -80), (170, -80), (170, 80), (-170, 80), (-170, -80)],
        {"natural": "water"}
    )


def equator_road():
    return RawFeature.from_lonlat(
        GeometryType.LINESTRING, [(-170, 0), (170, 0)], {"highway": "primary"}
    )


class TestTileMath(unittest.TestCase):

    def test_tile_to_bbox_world(self):
        min_lon, min_lat, max_lon, max_lat = tile_to_bbox(0, 0, 0)

        self.assertAlmostEqual(min_lon, -180.0)
        self.assertAlmostEqual(max_lon, 180.0)
        self.assertAlmostEqual(max_lat, MAX_LATITUDE, places=6)
        self.assertAlmostEqual(min_lat, -MAX_LATITUDE, places=6)

    def test_tile_to_bbox_quadrant(self):
        min_lon, min_lat, max_lon, max_lat = tile_to_bbox(1, 0, 1)

        self.assertAlmostEqual(min_lon, 0.0)
        self.assertAlmostEqual(max_lon, 180.0)
        self.assertAlmostEqual(min_lat, 0.0)

    def test_deg_to_tile(self):
        self.assertEqual(deg_to_tile(0.0, 0.0, 0), (0, 0))
        self.assertEqual(deg_to_tile(8.0, 47.0, 1), (1, 0))
        self.assertEqual(deg_to_tile(-8.0, -47.0, 1), (0, 1))

    def test_deg_to_tile_clamps(self):
        self.assertEqual(deg_to_tile(180.0, 90.0, 2), (3, 0))
        self.assertEqual(deg_to_tile(-180.0, -90.0, 2), (0, 3))

    def test_get_tile_bounds(self):
        self.assertEqual(len(get_tile_bounds(2)), 16)
        self.assertEqual(get_tile_bounds(1, (5.0, 45.0, 10.0, 48.0)), [(1, 0)])
        self.assertEqual(
            sorted(get_tile_bounds(1, (-10.0, -10.0, 10.0, 10.0))),
            [(0, 0), (0, 1), (1, 0), (1, 1)]
        )

    def test_tile_spec(self):
        spec = TileSpec.from_xyz(3, 5, 4)
        self.assertEqual(spec.tile_id, "4/3/5")
        self.assertEqual(spec.bbox, tile_to_bbox(3, 5, 4))

    def test_validate_tile(self):
        validate_tile(0, 0, 0)
        validate_tile(3, 3, 2)
        validate_tile(0, 0, 22)

        for x, y, z in [(0, 0, -1), (0, 0, 23), (1, 0, 0), (0, 4, 2), (-1, 0, 3)]:
            with self.assertRaises(ValueError):
                validate_tile(x, y, z)

    def test_features_bounds(self):
        features = [world_lake(), RawFeature(GeometryType.POINT)]
        self.assertEqual(features_bounds(features), (-170.0, -80.0, 170.0, 80.0))
        self.assertIsNone(features_bounds([RawFeature(GeometryType.POINT)]))


class TestViewport(unittest.TestCase):

    def test_width_only_derives_height(self):
        viewport = Viewport.for_bbox((0.0, 0.0, 100.0, 50.0), 200)

        self.assertEqual(viewport.scale, 2.0)
        self.assertEqual(viewport.tile_height, 100)
        self.assertEqual((viewport.min_x, viewport.min_y), (0.0, 0.0))

    def test_fit_inside(self):
        viewport = Viewport.for_bbox((10.0, 20.0, 110.0, 70.0), 256, 256)

        self.assertEqual(viewport.scale, 2.56)
        self.assertEqual(viewport.tile_height, 256)

    def test_degenerate_box(self):
        viewport = Viewport.for_bbox((5.0, 5.0, 5.0, 5.0), 64)
        self.assertEqual(viewport.scale, 1.0)

    def test_apply(self):
        shape = Border(
            RawFeature.from_lonlat(GeometryType.LINESTRING, [(0, 0), (10, 20)]).coordinates,
            identity
        )
        Viewport(0, 0, 1, 100).apply(shape)
        self.assertEqual(shape.points, [(0.0, 100.0), (10.0, 80.0)])


class TestRenderShapes(unittest.TestCase):

    def setUp(self):
        self.compositor = TileCompositor(Config())
        coords = RawFeature.from_lonlat(
            GeometryType.POLYGON, [(0, 0), (10, 0), (10, 10), (0, 0)]
        ).coordinates
        self.place = PopulatedPlace(coords[:1], "Springfield", projection=identity)
        self.road = Road(coords[:2], projection=identity)
        self.water = GenericGeoFeature.from_type(coords, GeoFeatureType.WATER, identity)
        self.unknown = GenericGeoFeature.from_type(coords, GeoFeatureType.UNKNOWN, identity)

    def test_paints_in_priority_order(self):
        surface = Mock(spec=DrawingSurface)

        rendered = self.compositor.render_shapes(
            [self.place, self.road, self.water], Viewport(0, 0, 1, 100), surface
        )

        self.assertEqual(rendered, 3)
        self.assertEqual(
            [c[0] for c in surface.method_calls],
            ["fill_polygon", "stroke_polyline", "stroke_polyline", "draw_text"]
        )

    def test_viewport_applied_once_per_shape(self):
        self.compositor.render_shapes([self.road], Viewport(0, 0, 1, 100), Mock(spec=DrawingSurface))

        self.assertTrue(self.road.viewport_applied)
        self.assertEqual(self.road.points, [(0.0, 100.0), (10.0, 100.0)])

    def test_unknown_skipped_by_default(self):
        surface = Mock(spec=DrawingSurface)

        rendered = self.compositor.render_shapes([self.unknown], Viewport(0, 0, 1, 100), surface)

        self.assertEqual(rendered, 0)
        self.assertEqual(surface.method_calls, [])
        self.assertFalse(self.unknown.viewport_applied)

    def test_unknown_rendered_when_enabled(self):
        config = Config()
        config.rendering.render_unknown = True
        compositor = TileCompositor(config)
        surface = Mock(spec=DrawingSurface)

        rendered = compositor.render_shapes([self.unknown], Viewport(0, 0, 1, 100), surface)

        self.assertEqual(rendered, 1)
        surface.fill_polygon.assert_called_once_with(self.unknown.points, "magenta")


class TestTileCompositor(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.temp_path = Path(self.temp_dir)
        self.metrics = MetricsCollector()
        self.compositor = TileCompositor(Config(), self.metrics)

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_select_features(self):
        far_away = RawFeature.from_lonlat(GeometryType.POINT, [(-100.0, -40.0)], {"place": "city"})
        near = RawFeature.from_lonlat(GeometryType.POINT, [(8.0, 47.0)], {"place": "city"})

        selected = self.compositor.select_features(TileSpec.from_xyz(1, 0, 1), [far_away, near])

        self.assertEqual(selected, [near])

    def test_classify_counts_variants(self):
        self.compositor.classify([world_lake(), equator_road(), equator_road()])

        registry = self.metrics.prometheus_registry
        self.assertEqual(
            registry.get_sample_value('features_classified_total', {'variant': 'Road'}), 2.0
        )
        self.assertEqual(
            registry.get_sample_value('features_classified_total', {'variant': 'GenericGeoFeature'}),
            1.0
        )

    def test_render_tile(self):
        image = self.compositor.render_tile(TileSpec.from_xyz(0, 0, 0), [world_lake(), equator_road()])

        self.assertEqual(image.size, (256, 256))
        self.assertEqual(image.getpixel((128, 60)), LIGHTBLUE)
        self.assertIn(image.getpixel((100, 128)), (CORAL, YELLOW))
        self.assertEqual(
            self.metrics.prometheus_registry.get_sample_value('shapes_in_last_tile'), 2.0
        )

    def test_render_empty_tile(self):
        image = self.compositor.render_tile(TileSpec.from_xyz(0, 0, 0), [])
        self.assertEqual(image.getcolors(), [(256 * 256, (255, 255, 255))])

    def test_render_extent(self):
        image = self.compositor.render_extent([world_lake()], 128)

        self.assertEqual(image.width, 128)
        self.assertGreater(image.height, 1)
        self.assertEqual(image.getpixel((64, image.height // 2)), LIGHTBLUE)

    def test_generate_tileset(self):
        lake = RawFeature.from_lonlat(
            GeometryType.POLYGON,
            [(8.0, 47.0), (8.2, 47.0), (8.2, 47.2), (8.0, 47.0)],
            {"natural": "water"}
        )

        result = self.compositor.generate_tileset([lake], [0, 1], output_dir=self.temp_path)

        self.assertTrue(result['success'])
        self.assertEqual(result['total_tiles'], 2)
        self.assertEqual(result['zoom_levels'], [0, 1])
        self.assertTrue((self.temp_path / "0" / "0" / "0.png").exists())
        self.assertTrue((self.temp_path / "1" / "1" / "0.png").exists())
        self.assertEqual(self.compositor.get_generation_stats()['tiles_generated'], 2)
        self.assertEqual(
            self.metrics.prometheus_registry.get_sample_value(
                'tiles_rendered_total', {'status': 'success'}
            ),
            2.0
        )

    def test_generate_tileset_with_bbox(self):
        result = self.compositor.generate_tileset(
            [], [1], bbox=(-10.0, -10.0, 10.0, 10.0), max_workers=2
        )

        self.assertTrue(result['success'])
        self.assertEqual(result['total_tiles'], 4)
        self.assertIsNone(result['output_dir'])

    def test_generate_tileset_invalid_zoom(self):
        result = self.compositor.generate_tileset([world_lake()], [23])

        self.assertFalse(result['success'])
        self.assertIn("between 0 and 22", result['error'])

    def test_generate_tileset_without_features(self):
        result = self.compositor.generate_tileset([], [0])

        self.assertFalse(result['success'])
        self.assertEqual(len(self.compositor.stats['errors']), 1)

    def test_reset_stats(self):
        self.compositor.stats['tiles_generated'] = 5
        self.compositor.reset_stats()
        self.assertEqual(self.compositor.stats['tiles_generated'], 0)

    def test_tile_path(self):
        path = TileCompositor.tile_path(Path("out"), TileSpec.from_xyz(2, 3, 4))
        self.assertEqual(path, Path("out") / "4" / "2" / "3.png")


if __name__ == '__main__':
    unittest.main(verbosity=2, buffer=True)
