"""
Unit Tests for Map Shapes

Checks draw priorities, filled-area flags, the viewport transform and the
drawing calls each shape variant issues against a mocked surface.
"""

import unittest
from pathlib import Path
from unittest.mock import Mock, call

import sys
sys.path.append(str(Path(__file__).parent.parent.parent / "src"))

from basemap_renderer.data_ingestion.features import RawFeature, GeometryType
from basemap_renderer.tile_rendering.shapes import (
    BaseShape,
    Border,
    GenericGeoFeature,
    GeoFeatureType,
    PopulatedPlace,
    Railway,
    Road,
    ViewportAlreadyAppliedError,
    Waterway,
    apply_viewport,
    sort_by_draw_priority,
    RAILWAY_DASH_PATTERN,
)
from basemap_renderer.tile_rendering.surface import DrawingSurface


def identity(lon, lat):
    return (lon, lat)


LINE = [(0.0, 0.0), (10.0, 20.0)]
SQUARE = [(0.0, 0.0), (10.0, 0.0), (10.0, 10.0), (0.0, 10.0), (0.0, 0.0)]


def feature(geometry_type, coordinates, tags=None, label=""):
    return RawFeature.from_lonlat(geometry_type, coordinates, tags, label)


LINE_COORDS = feature(GeometryType.LINESTRING, LINE).coordinates
SQUARE_COORDS = feature(GeometryType.POLYGON, SQUARE).coordinates
POINT_COORDS = feature(GeometryType.POINT, [(1.0, 2.0)]).coordinates


class TestApplyViewport(unittest.TestCase):
    """Tests for the projected-plane to pixel transform."""

    def test_flips_y_axis(self):
        points = [(0.0, 0.0), (10.0, 20.0)]
        apply_viewport(points, 0, 0, 1, 100)
        self.assertEqual(points, [(0.0, 100.0), (10.0, 80.0)])

    def test_translates_and_scales(self):
        points = [(110.0, 220.0)]
        apply_viewport(points, 100, 200, 2, 256)
        self.assertEqual(points, [(20.0, 216.0)])

    def test_empty_sequence(self):
        points = []
        apply_viewport(points, 0, 0, 1, 100)
        self.assertEqual(points, [])

    def test_shape_transform_runs_once(self):
        shape = Border(feature(GeometryType.LINESTRING, LINE).coordinates, identity)

        shape.apply_viewport(0, 0, 1, 100)
        self.assertTrue(shape.viewport_applied)
        self.assertEqual(shape.points, [(0.0, 100.0), (10.0, 80.0)])

        with self.assertRaises(ViewportAlreadyAppliedError):
            shape.apply_viewport(0, 0, 1, 100)
        self.assertEqual(shape.points, [(0.0, 100.0), (10.0, 80.0)])

    def test_empty_shape_transform(self):
        shape = Railway((), identity)
        shape.apply_viewport(0, 0, 1, 100)
        self.assertEqual(shape.points, [])


class TestGeoFeatureType(unittest.TestCase):
    """Tests for sub-type selection."""

    def test_natural_values(self):
        cases = {
            None: GeoFeatureType.UNKNOWN,
            "water": GeoFeatureType.WATER,
            "wood": GeoFeatureType.FOREST,
            "tree_row": GeoFeatureType.FOREST,
            "beach": GeoFeatureType.DESERT,
            "sand": GeoFeatureType.DESERT,
            "bare_rock": GeoFeatureType.MOUNTAINS,
            "rock": GeoFeatureType.MOUNTAINS,
            "scree": GeoFeatureType.MOUNTAINS,
            "heath": GeoFeatureType.PLAIN,
            "": GeoFeatureType.PLAIN,
        }
        for value, expected in cases.items():
            self.assertEqual(GeoFeatureType.from_natural(value), expected, value)

    def test_natural_first_tag_wins(self):
        raw = feature(
            GeometryType.POLYGON, SQUARE, [("natural", "water"), ("natural", "rock")]
        )
        shape = GenericGeoFeature.from_feature(raw, identity)
        self.assertEqual(shape.feature_type, GeoFeatureType.WATER)

    def test_landuse_values(self):
        self.assertEqual(GeoFeatureType.from_landuse("residential"), GeoFeatureType.RESIDENTIAL)
        self.assertEqual(GeoFeatureType.from_landuse("forest"), GeoFeatureType.FOREST)
        self.assertEqual(GeoFeatureType.from_landuse("industrial"), GeoFeatureType.UNKNOWN)
        self.assertEqual(GeoFeatureType.from_landuse(None), GeoFeatureType.UNKNOWN)


class TestGenericGeoFeature(unittest.TestCase):

    def test_draw_priorities(self):
        expected = {
            GeoFeatureType.DESERT: 9,
            GeoFeatureType.UNKNOWN: 8,
            GeoFeatureType.PLAIN: 10,
            GeoFeatureType.FOREST: 11,
            GeoFeatureType.HILLS: 12,
            GeoFeatureType.MOUNTAINS: 13,
            GeoFeatureType.WATER: 40,
            GeoFeatureType.RESIDENTIAL: 41,
        }
        for feature_type, priority in expected.items():
            shape = GenericGeoFeature.from_type(SQUARE_COORDS, feature_type, identity)
            self.assertEqual(shape.draw_priority, priority, feature_type)

    def test_polygon_is_filled(self):
        raw = feature(GeometryType.POLYGON, SQUARE, {"natural": "wood"})
        self.assertTrue(GenericGeoFeature.from_feature(raw, identity).is_filled_area)

    def test_line_is_not_filled(self):
        raw = feature(GeometryType.LINESTRING, LINE, {"natural": "tree_row"})
        self.assertFalse(GenericGeoFeature.from_feature(raw, identity).is_filled_area)

    def test_point_is_not_filled(self):
        raw = feature(GeometryType.POINT, [(1.0, 2.0)], {"natural": "peak"})
        self.assertFalse(GenericGeoFeature.from_feature(raw, identity).is_filled_area)

    def test_render_filled(self):
        raw = feature(GeometryType.POLYGON, SQUARE, {"natural": "water"})
        shape = GenericGeoFeature.from_feature(raw, identity)
        surface = Mock(spec=DrawingSurface)

        shape.render(surface)

        surface.fill_polygon.assert_called_once_with(shape.points, "lightblue")
        surface.stroke_polyline.assert_not_called()

    def test_render_line(self):
        raw = feature(GeometryType.LINESTRING, LINE, {"natural": "wood"})
        shape = GenericGeoFeature.from_feature(raw, identity)
        surface = Mock(spec=DrawingSurface)

        shape.render(surface)

        surface.stroke_polyline.assert_called_once_with(shape.points, "green", 1.2)
        surface.fill_polygon.assert_not_called()

    def test_render_does_not_mutate(self):
        raw = feature(GeometryType.POLYGON, SQUARE, {"natural": "sand"})
        shape = GenericGeoFeature.from_feature(raw, identity)
        points_before = list(shape.points)

        shape.render(Mock(spec=DrawingSurface))

        self.assertEqual(shape.points, points_before)
        self.assertEqual(shape.draw_priority, 9)


class TestRailway(unittest.TestCase):

    def test_properties(self):
        shape = Railway(LINE_COORDS, identity)
        self.assertEqual(shape.draw_priority, 45)
        self.assertFalse(shape.is_filled_area)

    def test_solid_stroke_before_dashed(self):
        shape = Railway(LINE_COORDS, identity)
        surface = Mock(spec=DrawingSurface)

        shape.render(surface)

        self.assertEqual(surface.method_calls, [
            call.stroke_polyline(shape.points, "darkgray", 2.0),
            call.stroke_polyline(
                shape.points, "lightgray", 1.2, dash_pattern=RAILWAY_DASH_PATTERN
            ),
        ])


class TestRoad(unittest.TestCase):

    def test_casing_before_inner_line(self):
        shape = Road(LINE_COORDS, projection=identity)
        surface = Mock(spec=DrawingSurface)

        shape.render(surface)

        self.assertEqual(shape.draw_priority, 50)
        self.assertEqual(surface.method_calls, [
            call.stroke_polyline(shape.points, "yellow", 2.2),
            call.stroke_polyline(shape.points, "coral", 2.0),
        ])

    def test_filled_road_draws_nothing(self):
        shape = Road(SQUARE_COORDS, is_filled_area=True, projection=identity)
        surface = Mock(spec=DrawingSurface)

        shape.render(surface)

        self.assertEqual(surface.method_calls, [])


class TestBorderAndWaterway(unittest.TestCase):

    def test_border(self):
        shape = Border(LINE_COORDS, identity)
        surface = Mock(spec=DrawingSurface)

        shape.render(surface)

        self.assertEqual(shape.draw_priority, 30)
        self.assertFalse(shape.is_filled_area)
        surface.stroke_polyline.assert_called_once_with(shape.points, "gray", 2.0)

    def test_linear_waterway(self):
        shape = Waterway(LINE_COORDS, projection=identity)
        surface = Mock(spec=DrawingSurface)

        shape.render(surface)

        self.assertEqual(shape.draw_priority, 40)
        self.assertFalse(shape.is_filled_area)
        surface.stroke_polyline.assert_called_once_with(shape.points, "lightblue", 1.2)

    def test_water_body(self):
        shape = Waterway(SQUARE_COORDS, is_filled_area=True, projection=identity)
        surface = Mock(spec=DrawingSurface)

        shape.render(surface)

        surface.fill_polygon.assert_called_once_with(shape.points, "lightblue")


class TestPopulatedPlace(unittest.TestCase):

    def test_empty_label_hides_place(self):
        raw = feature(
            GeometryType.POINT, [(1.0, 2.0)],
            {"place": "city", "name": "Springfield"}, label=""
        )
        shape = PopulatedPlace.from_feature(raw, identity)

        self.assertFalse(shape.should_render)
        self.assertEqual(shape.name, "Unknown")

    def test_name_tag_preferred(self):
        raw = feature(
            GeometryType.POINT, [(1.0, 2.0)],
            {"place": "town", "name": "Shelbyville"}, label="shelbyville_label"
        )
        shape = PopulatedPlace.from_feature(raw, identity)

        self.assertTrue(shape.should_render)
        self.assertEqual(shape.name, "Shelbyville")

    def test_blank_name_falls_back_to_label(self):
        raw = feature(
            GeometryType.POINT, [(1.0, 2.0)],
            {"place": "hamlet", "name": "   "}, label="Ogdenville"
        )
        self.assertEqual(PopulatedPlace.from_feature(raw, identity).name, "Ogdenville")

    def test_render_text_at_first_point(self):
        shape = PopulatedPlace(POINT_COORDS, "Springfield", projection=identity)
        surface = Mock(spec=DrawingSurface)

        shape.render(surface)

        self.assertEqual(shape.draw_priority, 60)
        surface.draw_text.assert_called_once_with(
            "Springfield", (1.0, 2.0), 12, "black", bold=True
        )

    def test_hidden_place_draws_nothing(self):
        shape = PopulatedPlace(POINT_COORDS, "Unknown", should_render=False, projection=identity)
        surface = Mock(spec=DrawingSurface)

        shape.render(surface)

        self.assertEqual(surface.method_calls, [])


class TestEmptyShapes(unittest.TestCase):
    """Shapes without points must render as no-ops."""

    def test_every_variant(self):
        shapes = [
            GenericGeoFeature.from_type((), GeoFeatureType.PLAIN, identity),
            Railway((), identity),
            PopulatedPlace((), "Springfield", projection=identity),
            Border((), identity),
            Waterway((), projection=identity),
            Road((), projection=identity),
        ]
        for shape in shapes:
            surface = Mock(spec=DrawingSurface)
            shape.render(surface)
            self.assertEqual(surface.method_calls, [], shape.variant)


class TestDrawPriorityOrdering(unittest.TestCase):

    def test_sort_mixed_variants(self):
        place = PopulatedPlace(POINT_COORDS, "Springfield", projection=identity)
        road = Road(LINE_COORDS, projection=identity)
        railway = Railway(LINE_COORDS, identity)
        mountains = GenericGeoFeature.from_type(SQUARE_COORDS, GeoFeatureType.MOUNTAINS, identity)
        forest = GenericGeoFeature.from_type(SQUARE_COORDS, GeoFeatureType.FOREST, identity)
        plain = GenericGeoFeature.from_type(SQUARE_COORDS, GeoFeatureType.PLAIN, identity)

        ordered = sort_by_draw_priority([place, road, railway, mountains, forest, plain])

        self.assertEqual(ordered, [plain, forest, mountains, railway, road, place])

    def test_sort_is_stable(self):
        first = Border(LINE_COORDS, identity)
        second = Border(LINE_COORDS, identity)
        self.assertEqual(sort_by_draw_priority([first, second]), [first, second])

    def test_variant_names(self):
        self.assertEqual(Road(LINE_COORDS, projection=identity).variant, "Road")
        self.assertTrue(issubclass(Waterway, BaseShape))


if __name__ == '__main__':
    unittest.main(verbosity=2, buffer=True)
