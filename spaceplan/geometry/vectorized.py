"""
Vectorized geometry kernels used by the grid rasterizer and the fitness function.

Shapes follow NumPy broadcasting: boxes are ``(n, 4)`` arrays of
``(min_x, min_y, max_x, max_y)`` and segments are ``(n, 4)`` arrays of
``(x1, y1, x2, y2)``.
"""

from typing import Optional, Sequence

import numpy as np

from spaceplan.geometry.primitives import EPSILON, Point


def distance_to_segment(xs: np.ndarray, ys: np.ndarray, start: Point, end: Point) -> np.ndarray:
    """Distance from every (xs, ys) sample to one segment."""
    dx = end.x - start.x
    dy = end.y - start.y
    length_sq = dx * dx + dy * dy
    if length_sq < EPSILON:
        return np.hypot(xs - start.x, ys - start.y)
    t = ((xs - start.x) * dx + (ys - start.y) * dy) / length_sq
    t = np.clip(t, 0.0, 1.0)
    return np.hypot(xs - (start.x + t * dx), ys - (start.y + t * dy))


def points_in_polygon(xs: np.ndarray, ys: np.ndarray, polygon: Sequence[Point]) -> np.ndarray:
    """Ray casting point-in-polygon test over arrays of sample coordinates."""
    inside = np.zeros(np.broadcast(xs, ys).shape, dtype=bool)
    n = len(polygon)
    j = n - 1
    for i in range(n):
        xi, yi = polygon[i].x, polygon[i].y
        xj, yj = polygon[j].x, polygon[j].y
        crosses = (yi > ys) != (yj > ys)
        x_at = (xj - xi) * (ys - yi) / (yj - yi + 1e-12) + xi
        inside ^= crosses & (xs < x_at)
        j = i
    return inside


def boxes_overlap(boxes_a: np.ndarray, boxes_b: np.ndarray, tolerance: float = 1e-6) -> np.ndarray:
    """Interior-overlap matrix of shape ``(len(a), len(b))``."""
    a = boxes_a[:, np.newaxis, :]
    b = boxes_b[np.newaxis, :, :]
    return ((a[..., 0] < b[..., 2] - tolerance) & (b[..., 0] < a[..., 2] - tolerance) &
            (a[..., 1] < b[..., 3] - tolerance) & (b[..., 1] < a[..., 3] - tolerance))


def boxes_inside(inner: np.ndarray, outer: np.ndarray, tolerance: float = 1e-6) -> np.ndarray:
    """Containment matrix: ``result[i, j]`` is True when inner[i] lies in outer[j]."""
    a = inner[:, np.newaxis, :]
    b = outer[np.newaxis, :, :]
    return ((a[..., 0] >= b[..., 0] - tolerance) & (a[..., 2] <= b[..., 2] + tolerance) &
            (a[..., 1] >= b[..., 1] - tolerance) & (a[..., 3] <= b[..., 3] + tolerance))


def _clip_test(x1, y1, dx, dy, min_x, min_y, max_x, max_y) -> np.ndarray:
    """Broadcasting Liang-Barsky test: does the segment enter the box?"""
    shape = np.broadcast(x1, dx, min_x, max_y).shape
    t0 = np.zeros(shape)
    t1 = np.ones(shape)
    rejected = np.broadcast_to((min_x > max_x) | (min_y > max_y), shape).copy()

    with np.errstate(divide='ignore', invalid='ignore'):
        for p, q in ((-dx, x1 - min_x), (dx, max_x - x1),
                     (-dy, y1 - min_y), (dy, max_y - y1)):
            p = np.broadcast_to(p, shape)
            q = np.broadcast_to(q, shape)
            parallel = np.abs(p) < EPSILON
            rejected |= parallel & (q < 0)
            r = np.where(parallel, 0.0, q / np.where(parallel, 1.0, p))
            t0 = np.where(~parallel & (p < 0), np.maximum(t0, r), t0)
            t1 = np.where(~parallel & (p > 0), np.minimum(t1, r), t1)

    return ~rejected & (t0 <= t1)


def segments_intersect_boxes(segments: np.ndarray, boxes: np.ndarray,
                             margins: Optional[np.ndarray] = None,
                             tolerance: float = 1e-6) -> np.ndarray:
    """
    Clip every segment against every box interior.

    Args:
        segments: ``(s, 4)`` segment endpoints
        boxes: ``(b, 4)`` boxes
        margins: Optional ``(s,)`` per-segment growth applied to every box
            (half a wall thickness, for instance)
        tolerance: Shrink applied to the boxes so touching does not count

    Returns:
        Boolean matrix ``(s, b)``
    """
    if len(segments) == 0 or len(boxes) == 0:
        return np.zeros((len(segments), len(boxes)), dtype=bool)

    grow = np.zeros((len(segments), 1)) if margins is None else np.asarray(margins, dtype=float)[:, np.newaxis]
    grow = grow - tolerance
    return _clip_test(
        segments[:, 0:1], segments[:, 1:2],
        segments[:, 2:3] - segments[:, 0:1], segments[:, 3:4] - segments[:, 1:2],
        boxes[np.newaxis, :, 0] - grow, boxes[np.newaxis, :, 1] - grow,
        boxes[np.newaxis, :, 2] + grow, boxes[np.newaxis, :, 3] + grow,
    )
