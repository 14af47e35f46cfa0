"""
Multi-objective fitness of a block configuration.

A configuration is a ``(n, 2)`` array of block centres plus an ``(n,)`` mask
of active blocks; block sizes and clearances are fixed per gene. Each term
is scored 0-100 and the weighted mean is the fitness.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Dict

import numpy as np
from scipy.spatial.distance import pdist

from spaceplan.config import FitnessWeights, PlacementConfig
from spaceplan.floor_plan import FloorPlan
from spaceplan.geometry.vectorized import boxes_inside, boxes_overlap, segments_intersect_boxes

logger = logging.getLogger(__name__)

PROXIMITY_FALLOFF = 50.0
MIN_CLEAR_SIDES = 2


@dataclass
class FitnessBreakdown:
    """Weighted total and the individual 0-100 scores."""
    total: float
    space_utilization: float
    accessibility: float
    clearance: float
    regularity: float
    proximity: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def alignment_groups(values: np.ndarray, tolerance: float) -> int:
    """Number of greedy groups (first member as anchor) holding more than one value."""
    used = np.zeros(len(values), dtype=bool)
    groups = 0
    for i in range(len(values)):
        if used[i]:
            continue
        members = ~used & (np.abs(values - values[i]) <= tolerance)
        used |= members
        if members.sum() > 1:
            groups += 1
    return groups


class FitnessEvaluator:
    """
    Scores configurations of a fixed set of blocks against one floor plan.
    """

    def __init__(self, floor_plan: FloorPlan, reference_area: float, sizes: np.ndarray,
                 clearances: np.ndarray, config: PlacementConfig):
        self.reference_area = float(reference_area)
        self.sizes = np.asarray(sizes, dtype=float).reshape(-1, 2)
        self.half = self.sizes / 2
        self.areas = self.sizes[:, 0] * self.sizes[:, 1]
        self.clearances = np.asarray(clearances, dtype=float)
        self.config = config
        self.weights: FitnessWeights = config.weights

        box = floor_plan.bounding_box
        self.bounds = np.array([[box.min_x, box.min_y, box.max_x, box.max_y]])
        self.wall_segments = np.array(
            [[w.start.x, w.start.y, w.end.x, w.end.y] for w in floor_plan.walls], dtype=float).reshape(-1, 4)
        self.wall_margins = np.array([w.thickness / 2 for w in floor_plan.walls], dtype=float)
        restricted = [a.bounding_box for a in floor_plan.restricted_areas]
        self.restricted_boxes = np.array(
            [[b.min_x, b.min_y, b.max_x, b.max_y] for b in restricted], dtype=float).reshape(-1, 4)

    def block_boxes(self, centers: np.ndarray) -> np.ndarray:
        return np.hstack([centers - self.half, centers + self.half])

    def side_strips(self, centers: np.ndarray) -> np.ndarray:
        """Access strips ``(n, 4 sides, 4)``: left, right, bottom, top."""
        a = self.config.access_width
        lo = centers - self.half
        hi = centers + self.half
        strips = np.empty((len(centers), 4, 4))
        strips[:, 0] = np.column_stack([lo[:, 0] - a, lo[:, 1], lo[:, 0], hi[:, 1]])
        strips[:, 1] = np.column_stack([hi[:, 0], lo[:, 1], hi[:, 0] + a, hi[:, 1]])
        strips[:, 2] = np.column_stack([lo[:, 0], lo[:, 1] - a, hi[:, 0], lo[:, 1]])
        strips[:, 3] = np.column_stack([lo[:, 0], hi[:, 1], hi[:, 0], hi[:, 1] + a])
        return strips

    def clear_side_counts(self, centers: np.ndarray, active: np.ndarray) -> np.ndarray:
        """Per block, how many sides have an access strip free of obstacles and other blocks."""
        n = len(centers)
        if n == 0:
            return np.zeros(0, dtype=int)
        strips = self.side_strips(centers).reshape(-1, 4)
        owner = np.repeat(np.arange(n), 4)

        clear = boxes_inside(strips, self.bounds)[:, 0]

        hits_blocks = boxes_overlap(strips, self.block_boxes(centers))
        hits_blocks[np.arange(len(strips)), owner] = False
        hits_blocks &= active[np.newaxis, :]
        clear &= ~hits_blocks.any(axis=1)

        if len(self.restricted_boxes):
            clear &= ~boxes_overlap(strips, self.restricted_boxes).any(axis=1)
        if len(self.wall_segments):
            clear &= ~segments_intersect_boxes(self.wall_segments, strips, self.wall_margins).any(axis=0)

        counts = clear.reshape(n, 4).sum(axis=1)
        return np.where(active, counts, 0)

    def space_utilization(self, active: np.ndarray) -> float:
        if self.reference_area <= 0:
            return 0.0
        placed = float(self.areas[active].sum())
        return min(100.0, placed / self.reference_area * 100.0)

    def accessibility(self, centers: np.ndarray, active: np.ndarray) -> float:
        n_active = int(active.sum())
        if n_active == 0:
            return 0.0
        accessible = self.clear_side_counts(centers, active) >= MIN_CLEAR_SIDES
        return float(accessible[active].sum()) / n_active * 100.0

    def clearance(self, centers: np.ndarray, active: np.ndarray) -> float:
        idx = np.flatnonzero(active)
        if len(idx) < 2:
            return 100.0
        d = pdist(centers[idx])
        i, j = np.triu_indices(len(idx), k=1)
        required = (np.maximum(self.clearances[idx][i], self.clearances[idx][j]) +
                    (self.sizes[idx][i, 0] + self.sizes[idx][j, 0]) / 4)
        ratio = np.minimum(2.0, d / np.maximum(required, 1e-9))
        return float(np.mean(np.minimum(100.0, ratio * 50.0)))

    def regularity(self, centers: np.ndarray, active: np.ndarray) -> float:
        idx = np.flatnonzero(active)
        if len(idx) == 0:
            return 0.0
        tol = self.config.alignment_tolerance
        pts = centers[idx]
        alignment = 10.0 * (alignment_groups(pts[:, 1], tol) + alignment_groups(pts[:, 0], tol))
        areas = self.areas[idx]
        cv = float(np.std(areas) / np.mean(areas) * 100.0)
        size_regularity = max(0.0, 100.0 - cv)
        return min(100.0, alignment + size_regularity * 0.5)

    def proximity(self, centers: np.ndarray, active: np.ndarray) -> float:
        idx = np.flatnonzero(active)
        if len(idx) < 2:
            return 100.0
        d = pdist(centers[idx])
        scores = np.maximum(0.0, 100.0 - np.abs(d - self.config.optimal_spacing) / PROXIMITY_FALLOFF)
        return float(np.mean(scores))

    def evaluate(self, centers: np.ndarray, active: np.ndarray) -> FitnessBreakdown:
        active = np.asarray(active, dtype=bool)
        scores = {
            'space_utilization': self.space_utilization(active),
            'accessibility': self.accessibility(centers, active),
            'clearance': self.clearance(centers, active),
            'regularity': self.regularity(centers, active),
            'proximity': self.proximity(centers, active),
        }
        weights = asdict(self.weights)
        total = sum(weights[k] * v for k, v in scores.items()) / sum(weights.values())
        return FitnessBreakdown(total=total, **scores)
