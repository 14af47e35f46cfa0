"""Tests for planar geometry primitives and the vectorized kernels."""

import math

import numpy as np
import pytest

from spaceplan.geometry.primitives import (
    BoundingBox, Point, bounding_box, centroid, closest_point_on_segment, distance,
    distance_box_to_path, distance_point_to_segment, path_length, point_in_polygon, polygon_area,
    segment_distance, segment_intersects_box, segment_intersects_polygon, segments_intersect,
    simplify_path,
)
from spaceplan.geometry.vectorized import (
    boxes_inside, boxes_overlap, distance_to_segment, points_in_polygon, segments_intersect_boxes,
)

SQUARE = [Point(0, 0), Point(10, 0), Point(10, 10), Point(0, 10)]


class TestPoint:
    """Test the point value type."""

    def test_distance(self):
        """Test Euclidean distance."""
        assert distance(Point(0, 0), Point(3, 4)) == pytest.approx(5.0)
        assert Point(1, 1).distance_to(Point(1, 1)) == 0.0

    def test_from_any(self):
        """Test building points from mappings and pairs."""
        assert Point.from_any({'x': 1, 'y': 2}) == Point(1.0, 2.0)
        assert Point.from_any((3, 4)) == Point(3.0, 4.0)
        assert Point.from_any(Point(5, 6)) == Point(5, 6)

    def test_hashable(self):
        """Points can be used in sets."""
        assert len({Point(1, 2), Point(1, 2), Point(2, 1)}) == 2


class TestBoundingBox:
    """Test axis-aligned box helpers."""

    def test_dimensions(self):
        box = BoundingBox(0, 0, 4, 2)
        assert box.width == 4
        assert box.height == 2
        assert box.area == 8
        assert box.center == Point(2, 1)
        assert box.corners[0] == Point(0, 0)
        assert box.corners[2] == Point(4, 2)

    def test_touching_boxes_do_not_overlap(self):
        a = BoundingBox(0, 0, 10, 10)
        b = BoundingBox(10, 0, 20, 10)
        assert not a.overlaps(b)
        assert a.overlaps(BoundingBox(9, 9, 12, 12))

    def test_contains(self):
        box = BoundingBox(0, 0, 10, 10)
        assert box.contains_point(Point(10, 5))
        assert not box.contains_point(Point(10.5, 5))
        assert box.contains_box(BoundingBox(0, 0, 10, 10))
        assert not box.contains_box(BoundingBox(-1, 0, 5, 5))

    def test_distance_to_box(self):
        a = BoundingBox(0, 0, 10, 10)
        assert a.distance_to_box(BoundingBox(13, 14, 20, 20)) == pytest.approx(5.0)
        assert a.distance_to_box(BoundingBox(5, 5, 20, 20)) == 0.0

    def test_expand_and_from_center(self):
        box = BoundingBox.from_center(Point(0, 0), 4, 2).expand(1)
        assert box == BoundingBox(-3, -2, 3, 2)


class TestSegments:
    """Test segment distance and intersection tests."""

    def test_closest_point_is_clamped(self):
        p = closest_point_on_segment(Point(-5, 3), Point(0, 0), Point(10, 0))
        assert p == Point(0, 0)
        assert distance_point_to_segment(Point(5, 3), Point(0, 0), Point(10, 0)) == pytest.approx(3.0)

    def test_degenerate_segment(self):
        """A zero-length segment behaves like a point."""
        assert distance_point_to_segment(Point(3, 4), Point(0, 0), Point(0, 0)) == pytest.approx(5.0)

    def test_crossing_and_touching(self):
        assert segments_intersect(Point(0, 0), Point(10, 10), Point(0, 10), Point(10, 0))
        # Touching at an endpoint counts
        assert segments_intersect(Point(0, 0), Point(5, 0), Point(5, 0), Point(5, 5))
        assert not segments_intersect(Point(0, 0), Point(1, 0), Point(0, 1), Point(1, 1))

    def test_segment_distance(self):
        assert segment_distance(Point(0, 0), Point(10, 0), Point(0, 3), Point(10, 3)) == pytest.approx(3.0)
        assert segment_distance(Point(0, 0), Point(10, 10), Point(0, 10), Point(10, 0)) == 0.0

    def test_segment_box_intersection(self):
        box = BoundingBox(0, 0, 10, 10)
        assert segment_intersects_box(Point(-5, 5), Point(15, 5), box)
        assert segment_intersects_box(Point(2, 2), Point(3, 3), box)
        # Running along the boundary is not an intersection
        assert not segment_intersects_box(Point(-5, 10), Point(15, 10), box)
        assert not segment_intersects_box(Point(-5, 20), Point(15, 20), box)

    def test_segment_polygon_intersection(self):
        assert segment_intersects_polygon(Point(-5, 5), Point(15, 5), SQUARE)
        assert segment_intersects_polygon(Point(2, 2), Point(3, 3), SQUARE)
        assert not segment_intersects_polygon(Point(20, 0), Point(20, 10), SQUARE)

    def test_segment_through_polygon_vertices(self):
        """A long diagonal entering and leaving through corners still intersects."""
        assert segment_intersects_polygon(Point(-100, -100), Point(15, 15), SQUARE)
        triangle = [Point(0, 0), Point(20, 0), Point(10, 10)]
        assert segment_intersects_polygon(Point(5, -5), Point(15, 5), triangle)
        # Touching a single corner is not an intersection
        assert not segment_intersects_polygon(Point(0, 10), Point(20, 10), triangle)


class TestPolygons:
    """Test polygon helpers."""

    def test_point_in_polygon(self):
        assert point_in_polygon(Point(5, 5), SQUARE)
        assert not point_in_polygon(Point(15, 5), SQUARE)

    def test_area_and_centroid(self):
        assert polygon_area(SQUARE) == pytest.approx(100.0)
        assert polygon_area(list(reversed(SQUARE))) == pytest.approx(100.0)
        assert polygon_area(SQUARE[:2]) == 0.0
        assert centroid(SQUARE) == Point(5, 5)

    def test_bounding_box(self):
        assert bounding_box([Point(3, -1), Point(-2, 4)]) == BoundingBox(-2, -1, 3, 4)
        with pytest.raises(ValueError):
            bounding_box([])


class TestPaths:
    """Test polyline helpers."""

    def test_path_length(self):
        assert path_length([Point(0, 0), Point(3, 4), Point(3, 10)]) == pytest.approx(11.0)

    def test_distance_box_to_path(self):
        box = BoundingBox(0, 0, 10, 10)
        assert distance_box_to_path(box, [Point(20, 0), Point(20, 10)]) == pytest.approx(10.0)
        assert distance_box_to_path(box, [Point(-5, 5), Point(15, 5)]) == 0.0

    def test_simplify_removes_collinear_points(self):
        path = [Point(0, 0), Point(5, 0.5), Point(10, 0)]
        assert simplify_path(path, tolerance=1.0) == [Point(0, 0), Point(10, 0)]
        assert simplify_path(path, tolerance=0.1) == path

    def test_simplify_keeps_endpoints_and_never_lengthens(self):
        rng = np.random.default_rng(7)
        for _ in range(20):
            coords = np.cumsum(rng.uniform(-500, 500, size=(12, 2)), axis=0)
            path = [Point(float(x), float(y)) for x, y in coords]
            simplified = simplify_path(path, tolerance=100.0)
            assert simplified[0] == path[0]
            assert simplified[-1] == path[-1]
            assert path_length(simplified) <= path_length(path) + 1e-9

    def test_simplify_short_paths(self):
        assert simplify_path([Point(0, 0), Point(1, 1)], 10.0) == [Point(0, 0), Point(1, 1)]


class TestVectorized:
    """Test the NumPy kernels against the scalar primitives."""

    def test_distance_to_segment_matches_scalar(self):
        xs = np.array([0.0, 5.0, 12.0])
        ys = np.array([3.0, -2.0, 0.0])
        d = distance_to_segment(xs, ys, Point(0, 0), Point(10, 0))
        expected = [distance_point_to_segment(Point(x, y), Point(0, 0), Point(10, 0)) for x, y in zip(xs, ys)]
        assert np.allclose(d, expected)

    def test_points_in_polygon(self):
        inside = points_in_polygon(np.array([5.0, 15.0]), np.array([5.0, 5.0]), SQUARE)
        assert inside.tolist() == [True, False]

    def test_box_matrices(self):
        a = np.array([[0, 0, 10, 10], [20, 20, 30, 30]], dtype=float)
        b = np.array([[10, 0, 20, 10], [5, 5, 25, 25]], dtype=float)
        assert boxes_overlap(a, b).tolist() == [[False, True], [False, True]]
        assert boxes_inside(a, np.array([[0, 0, 10, 10]], dtype=float)).tolist() == [[True], [False]]

    def test_segments_intersect_boxes_with_margin(self):
        segments = np.array([[0, 15, 10, 15]], dtype=float)
        boxes = np.array([[0, 0, 10, 10]], dtype=float)
        assert not segments_intersect_boxes(segments, boxes)[0, 0]
        assert segments_intersect_boxes(segments, boxes, margins=np.array([6.0]))[0, 0]

    def test_segments_intersect_boxes_empty(self):
        result = segments_intersect_boxes(np.zeros((0, 4)), np.array([[0, 0, 1, 1]], dtype=float))
        assert result.shape == (0, 1)


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
