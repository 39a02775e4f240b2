"""
Tests for fieldshare.core.geometry: parsing, centroids, predicates and
metric operations on GeoJSON field boundaries.
"""

import copy

import pytest
from pyproj import Geod

from fieldshare.core import geometry
from fieldshare.core.exceptions import GeometryError

from conftest import km_polygon, km_square


class TestParseGeometry:

    def test_accepts_polygon_multipolygon_and_feature(self):
        square = km_square(0, 0)
        multi = {
            "type": "MultiPolygon",
            "coordinates": [km_square(0, 0)["coordinates"], km_square(3, 0)["coordinates"]],
        }
        feature = {"type": "Feature", "geometry": square, "properties": {"name": "North"}}

        assert geometry.parse_geometry(square).geom_type == "Polygon"
        assert geometry.parse_geometry(multi).geom_type == "MultiPolygon"
        assert geometry.parse_geometry(feature).geom_type == "Polygon"

    def test_rejects_point(self):
        with pytest.raises(GeometryError, match="Unsupported geometry type 'Point'"):
            geometry.parse_geometry({"type": "Point", "coordinates": [-93.6, 42.0]})

    def test_rejects_too_few_positions(self):
        ring = [[-93.6, 42.0], [-93.5, 42.0], [-93.6, 42.0]]
        with pytest.raises(GeometryError, match="at least 4 positions"):
            geometry.parse_geometry({"type": "Polygon", "coordinates": [ring]})

    def test_rejects_unclosed_ring(self):
        square = km_square(0, 0)
        square["coordinates"][0][-1] = [-93.0, 41.0]
        with pytest.raises(GeometryError, match="not closed"):
            geometry.parse_geometry(square)

    def test_rejects_degenerate_ring(self):
        ring = [[-93.6, 42.0], [-93.5, 42.0], [-93.5, 42.0], [-93.6, 42.0]]
        with pytest.raises(GeometryError, match="3 distinct points"):
            geometry.parse_geometry({"type": "Polygon", "coordinates": [ring]})

    def test_rejects_self_intersection(self):
        bowtie = km_polygon([(0, 0), (1, 1), (1, 0), (0, 1)])
        with pytest.raises(GeometryError, match="Invalid boundary"):
            geometry.parse_geometry(bowtie)

    def test_rejects_out_of_range_coordinates(self):
        ring = [[200.0, 0.0], [201.0, 0.0], [201.0, 1.0], [200.0, 0.0]]
        with pytest.raises(GeometryError, match="outside lng/lat range"):
            geometry.parse_geometry({"type": "Polygon", "coordinates": [ring]})

    def test_does_not_mutate_input(self):
        square = km_square(0, 0)
        before = copy.deepcopy(square)
        geometry.parse_geometry(square)
        geometry.buffer_meters(square, 10)
        assert square == before

    def test_is_valid_field_geometry(self):
        assert geometry.is_valid_field_geometry(km_square(0, 0))
        assert not geometry.is_valid_field_geometry(None)
        assert not geometry.is_valid_field_geometry({"type": "LineString", "coordinates": []})


class TestCentroid:

    def test_mean_of_outer_ring_vertices(self):
        ring = [[0.0, 0.0], [0.0, 2.0], [4.0, 2.0], [4.0, 0.0], [0.0, 0.0]]
        assert geometry.centroid({"type": "Polygon", "coordinates": [ring]}) == (2.0, 1.0)

    def test_closing_vertex_not_counted_twice(self):
        # Vertex mean, not area centroid: the extra bottom-edge vertex pulls it down
        ring = [[0.0, 0.0], [0.0, 3.0], [3.0, 3.0], [3.0, 0.0], [1.5, 0.0], [0.0, 0.0]]
        lng, lat = geometry.centroid({"type": "Polygon", "coordinates": [ring]})
        assert lng == pytest.approx(7.5 / 5)
        assert lat == pytest.approx(6.0 / 5)


class TestDistances:

    def test_distance_matches_geodesic(self):
        geod = Geod(ellps="WGS84")
        lng, lat, _ = geod.fwd(-93.6, 42.0, 45, 1234.5)
        assert geometry.distance_meters((-93.6, 42.0), (lng, lat)) == pytest.approx(1234.5, abs=1e-6)

    def test_distance_is_symmetric(self):
        a, b = (-93.6, 42.0), (-93.55, 42.03)
        assert geometry.distance_meters(a, b) == pytest.approx(geometry.distance_meters(b, a), abs=1e-9)

    def test_centroid_distance_of_adjacent_km_squares(self):
        assert geometry.centroid_distance_meters(km_square(0, 0), km_square(1, 0)) == pytest.approx(1000, rel=0.01)


class TestPredicates:

    def test_partial_overlap(self):
        assert geometry.overlaps(km_square(0, 0), km_square(0.6, 0))

    def test_containment_both_directions(self):
        outer, inner = km_square(0, 0, 3), km_square(1, 1)
        assert geometry.overlaps(outer, inner)
        assert geometry.overlaps(inner, outer)

    def test_edge_touching_is_not_overlap(self):
        a, b = km_square(0, 0), km_square(1, 0)
        assert not geometry.overlaps(a, b)
        assert geometry.intersects(a, b)

    def test_disjoint(self):
        assert not geometry.intersects(km_square(0, 0), km_square(3, 0))


class TestMetricOperations:

    def test_buffer_reaches_neighbor_within_distance(self):
        a, b = km_square(0, 0), km_square(1.005, 0)  # 5 m gap
        assert not geometry.intersects(a, b)
        assert geometry.intersects(geometry.buffer_meters(a, 10), b)
        assert not geometry.intersects(geometry.buffer_meters(a, 2), b)

    def test_buffer_returns_geojson(self):
        buffered = geometry.buffer_meters(km_square(0, 0), 10)
        assert buffered["type"] == "Polygon"

    def test_perimeter_of_km_square(self):
        assert geometry.perimeter_meters(km_square(0, 0)) == pytest.approx(4000, rel=0.01)

    def test_boundary_intersection_of_shared_edge(self):
        length = geometry.boundary_intersection_length(km_square(0, 0), km_square(1, 0))
        assert length == pytest.approx(1000, rel=0.01)

    def test_boundary_intersection_with_tolerance(self):
        a, b = km_square(0, 0), km_square(1.005, 0)
        assert geometry.boundary_intersection_length(a, b) == 0.0
        assert geometry.boundary_intersection_length(a, b, tolerance_m=10) > 990

    def test_overlap_percentage(self):
        assert geometry.overlap_percentage(km_square(0, 0), km_square(0.6, 0)) == pytest.approx(40, abs=0.5)

    def test_ring_vertices_excludes_closing_vertex(self):
        assert len(geometry.ring_vertices(km_square(0, 0))) == 4
