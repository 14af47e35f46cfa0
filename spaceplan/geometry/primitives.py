"""
Planar Geometry Primitives

This module provides:
- Point and BoundingBox value types (millimetre coordinates)
- Point/segment/polygon distance and intersection tests
- Bounding box, centroid and polygon area helpers
- Polyline length, nearest-point queries and Douglas-Peucker simplification

All functions are pure; nothing here keeps state.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

# Coordinates are millimetres, so anything below a nanometre is "the same".
EPSILON = 1e-9


@dataclass(frozen=True)
class Point:
    """A location on the floor plane in millimetres."""
    x: float
    y: float

    def distance_to(self, other: 'Point') -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def to_dict(self) -> Dict[str, float]:
        return {'x': float(self.x), 'y': float(self.y)}

    @classmethod
    def from_any(cls, value: Any) -> 'Point':
        """Build a point from a Point, an ``{'x', 'y'}`` mapping or an (x, y) pair."""
        if isinstance(value, Point):
            return value
        if isinstance(value, dict):
            return cls(float(value['x']), float(value['y']))
        x, y = value
        return cls(float(x), float(y))


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned rectangle used for blocks, usable areas and obstacles."""
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def center(self) -> Point:
        return Point((self.min_x + self.max_x) / 2, (self.min_y + self.max_y) / 2)

    @property
    def corners(self) -> Tuple[Point, Point, Point, Point]:
        """Corners counter-clockwise from the minimum corner."""
        return (
            Point(self.min_x, self.min_y),
            Point(self.max_x, self.min_y),
            Point(self.max_x, self.max_y),
            Point(self.min_x, self.max_y),
        )

    def expand(self, margin: float) -> 'BoundingBox':
        return BoundingBox(self.min_x - margin, self.min_y - margin,
                           self.max_x + margin, self.max_y + margin)

    def contains_point(self, point: Point, tolerance: float = EPSILON) -> bool:
        """Check if a point is inside this box (boundary included)."""
        return (self.min_x - tolerance <= point.x <= self.max_x + tolerance and
                self.min_y - tolerance <= point.y <= self.max_y + tolerance)

    def contains_box(self, other: 'BoundingBox', tolerance: float = 1e-6) -> bool:
        """Check if another box lies completely inside this one."""
        return (other.min_x >= self.min_x - tolerance and
                other.max_x <= self.max_x + tolerance and
                other.min_y >= self.min_y - tolerance and
                other.max_y <= self.max_y + tolerance)

    def overlaps(self, other: 'BoundingBox', tolerance: float = 1e-6) -> bool:
        """Interior overlap test; boxes that only touch do not overlap."""
        return (self.min_x < other.max_x - tolerance and
                other.min_x < self.max_x - tolerance and
                self.min_y < other.max_y - tolerance and
                other.min_y < self.max_y - tolerance)

    def closest_point(self, point: Point) -> Point:
        """Nearest point of the (filled) box to ``point``."""
        return Point(min(max(point.x, self.min_x), self.max_x),
                     min(max(point.y, self.min_y), self.max_y))

    def distance_to_point(self, point: Point) -> float:
        return self.closest_point(point).distance_to(point)

    def distance_to_box(self, other: 'BoundingBox') -> float:
        dx = max(0.0, other.min_x - self.max_x, self.min_x - other.max_x)
        dy = max(0.0, other.min_y - self.max_y, self.min_y - other.max_y)
        return math.hypot(dx, dy)

    def to_dict(self) -> Dict[str, float]:
        return {
            'min_x': float(self.min_x), 'min_y': float(self.min_y),
            'max_x': float(self.max_x), 'max_y': float(self.max_y),
        }

    @classmethod
    def from_points(cls, points: Iterable[Point]) -> 'BoundingBox':
        return bounding_box(points)

    @classmethod
    def from_center(cls, center: Point, width: float, height: float) -> 'BoundingBox':
        return cls(center.x - width / 2, center.y - height / 2,
                   center.x + width / 2, center.y + height / 2)


def distance(a: Point, b: Point) -> float:
    """Euclidean distance between two points."""
    return math.hypot(a.x - b.x, a.y - b.y)


def closest_point_on_segment(point: Point, start: Point, end: Point) -> Point:
    """Project ``point`` onto the segment, clamped to its endpoints."""
    dx = end.x - start.x
    dy = end.y - start.y
    length_sq = dx * dx + dy * dy
    if length_sq < EPSILON:
        return start
    t = ((point.x - start.x) * dx + (point.y - start.y) * dy) / length_sq
    t = min(1.0, max(0.0, t))
    return Point(start.x + t * dx, start.y + t * dy)


def distance_point_to_segment(point: Point, start: Point, end: Point) -> float:
    return distance(point, closest_point_on_segment(point, start, end))


def _cross(o: Point, a: Point, b: Point) -> float:
    return (a.x - o.x) * (b.y - o.y) - (a.y - o.y) * (b.x - o.x)


def _on_segment(p: Point, start: Point, end: Point) -> bool:
    return (min(start.x, end.x) - EPSILON <= p.x <= max(start.x, end.x) + EPSILON and
            min(start.y, end.y) - EPSILON <= p.y <= max(start.y, end.y) + EPSILON)


def segments_intersect(p1: Point, p2: Point, q1: Point, q2: Point) -> bool:
    """True when the segments share at least one point (touching counts)."""
    d1 = _cross(q1, q2, p1)
    d2 = _cross(q1, q2, p2)
    d3 = _cross(p1, p2, q1)
    d4 = _cross(p1, p2, q2)

    if ((d1 > 0 > d2) or (d1 < 0 < d2)) and ((d3 > 0 > d4) or (d3 < 0 < d4)):
        return True

    if abs(d1) <= EPSILON and _on_segment(p1, q1, q2):
        return True
    if abs(d2) <= EPSILON and _on_segment(p2, q1, q2):
        return True
    if abs(d3) <= EPSILON and _on_segment(q1, p1, p2):
        return True
    if abs(d4) <= EPSILON and _on_segment(q2, p1, p2):
        return True
    return False


def segment_distance(p1: Point, p2: Point, q1: Point, q2: Point) -> float:
    """Minimum distance between two segments (zero when they touch)."""
    if segments_intersect(p1, p2, q1, q2):
        return 0.0
    return min(
        distance_point_to_segment(p1, q1, q2),
        distance_point_to_segment(p2, q1, q2),
        distance_point_to_segment(q1, p1, p2),
        distance_point_to_segment(q2, p1, p2),
    )


def segment_intersects_box(start: Point, end: Point, box: BoundingBox,
                           tolerance: float = 1e-6) -> bool:
    """
    Liang-Barsky clip test of a segment against a box interior.

    The box is shrunk by ``tolerance`` so a segment that only runs along
    or ends on the boundary does not count as intersecting.
    """
    min_x = box.min_x + tolerance
    min_y = box.min_y + tolerance
    max_x = box.max_x - tolerance
    max_y = box.max_y - tolerance
    if min_x > max_x or min_y > max_y:
        return False

    dx = end.x - start.x
    dy = end.y - start.y
    t0, t1 = 0.0, 1.0
    for p, q in ((-dx, start.x - min_x), (dx, max_x - start.x),
                 (-dy, start.y - min_y), (dy, max_y - start.y)):
        if abs(p) < EPSILON:
            if q < 0:
                return False
            continue
        r = q / p
        if p < 0:
            t0 = max(t0, r)
        else:
            t1 = min(t1, r)
        if t0 > t1:
            return False
    return True


def segment_intersects_polygon(start: Point, end: Point, polygon: Sequence[Point]) -> bool:
    """
    True when some stretch of the segment lies inside the polygon.

    The segment is cut wherever it meets the outline and the middle of each
    piece is tested, so a segment entering and leaving through vertices is
    still caught.
    """
    n = len(polygon)
    if n < 3:
        return False
    dx = end.x - start.x
    dy = end.y - start.y
    cuts = {0.0, 1.0}
    for i in range(n):
        a, b = polygon[i], polygon[(i + 1) % n]
        ex = b.x - a.x
        ey = b.y - a.y
        denom = dx * ey - dy * ex
        if abs(denom) < EPSILON:
            continue
        t = ((a.x - start.x) * ey - (a.y - start.y) * ex) / denom
        u = ((a.x - start.x) * dy - (a.y - start.y) * dx) / denom
        if 0.0 < t < 1.0 and -EPSILON <= u <= 1.0 + EPSILON:
            cuts.add(t)
    ts = sorted(cuts)
    for t0, t1 in zip(ts, ts[1:]):
        t = (t0 + t1) / 2
        if point_in_polygon(Point(start.x + dx * t, start.y + dy * t), polygon):
            return True
    return False


def point_in_polygon(point: Point, polygon: Sequence[Point]) -> bool:
    """Ray casting algorithm to check if a point is inside a polygon."""
    inside = False
    n = len(polygon)
    j = n - 1
    for i in range(n):
        xi, yi = polygon[i].x, polygon[i].y
        xj, yj = polygon[j].x, polygon[j].y
        if ((yi > point.y) != (yj > point.y)) and \
                (point.x < (xj - xi) * (point.y - yi) / (yj - yi + 1e-12) + xi):
            inside = not inside
        j = i
    return inside


def bounding_box(points: Iterable[Point]) -> BoundingBox:
    pts = list(points)
    if not pts:
        raise ValueError("Cannot compute the bounding box of an empty point set")
    xs = [p.x for p in pts]
    ys = [p.y for p in pts]
    return BoundingBox(min(xs), min(ys), max(xs), max(ys))


def centroid(points: Iterable[Point]) -> Point:
    """Vertex centroid (mean of the points)."""
    pts = list(points)
    if not pts:
        raise ValueError("Cannot compute the centroid of an empty point set")
    return Point(sum(p.x for p in pts) / len(pts), sum(p.y for p in pts) / len(pts))


def polygon_area(polygon: Sequence[Point]) -> float:
    """Unsigned area via the shoelace formula."""
    n = len(polygon)
    if n < 3:
        return 0.0
    acc = 0.0
    for i in range(n):
        j = (i + 1) % n
        acc += polygon[i].x * polygon[j].y - polygon[j].x * polygon[i].y
    return abs(acc) / 2.0


def path_length(path: Sequence[Point]) -> float:
    """Sum of consecutive point distances along a polyline."""
    return sum(distance(path[i], path[i + 1]) for i in range(len(path) - 1))


def closest_point_on_path(point: Point, path: Sequence[Point]) -> Optional[Point]:
    """Nearest point of a polyline to ``point``; None for an empty path."""
    if not path:
        return None
    if len(path) == 1:
        return path[0]
    best = None
    best_dist = math.inf
    for i in range(len(path) - 1):
        candidate = closest_point_on_segment(point, path[i], path[i + 1])
        d = distance(point, candidate)
        if d < best_dist:
            best, best_dist = candidate, d
    return best


def distance_point_to_path(point: Point, path: Sequence[Point]) -> float:
    nearest = closest_point_on_path(point, path)
    return math.inf if nearest is None else distance(point, nearest)


def distance_box_to_path(box: BoundingBox, path: Sequence[Point]) -> float:
    """Minimum distance between a filled box and a polyline."""
    best = math.inf
    edges = box.corners
    for i in range(len(path) - 1):
        a, b = path[i], path[i + 1]
        if box.contains_point(a) or box.contains_point(b):
            return 0.0
        for k in range(4):
            best = min(best, segment_distance(a, b, edges[k], edges[(k + 1) % 4]))
    if len(path) == 1:
        best = box.distance_to_point(path[0])
    return best


def simplify_path(path: Sequence[Point], tolerance: float) -> List[Point]:
    """
    Douglas-Peucker polyline simplification.

    The first and last points are always kept; an interior point is dropped
    only when it lies within ``tolerance`` of the chord of the span being
    simplified. Because only points are removed, the result is never longer
    than the input.

    Args:
        path: Polyline to simplify
        tolerance: Maximum perpendicular deviation in millimetres

    Returns:
        New list of points
    """
    points = list(path)
    if len(points) <= 2:
        return points

    keep = [False] * len(points)
    keep[0] = keep[-1] = True
    stack = [(0, len(points) - 1)]
    while stack:
        first, last = stack.pop()
        max_dist = -1.0
        index = -1
        for i in range(first + 1, last):
            d = distance_point_to_segment(points[i], points[first], points[last])
            if d > max_dist:
                max_dist, index = d, i
        if index != -1 and max_dist > tolerance:
            keep[index] = True
            stack.append((first, index))
            stack.append((index, last))

    return [p for p, k in zip(points, keep) if k]
