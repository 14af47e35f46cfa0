"""
Usable-Area Extraction

Rasterizes the floor plan obstacles onto a boolean occupancy grid, grows them by
the walkway clearance and reports every 8-connected free region as its
axis-aligned bounding rectangle.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy import ndimage

from spaceplan.config import ExtractionConfig, coerce_config
from spaceplan.floor_plan import DoorSwing, FloorPlan, Opening, OpeningKind, UsableArea
from spaceplan.geometry.primitives import BoundingBox, Point
from spaceplan.geometry.vectorized import distance_to_segment, points_in_polygon
from spaceplan.utils.error_handling import validate_floor_plan

logger = logging.getLogger(__name__)

# Half a cell diagonal, as a fraction of the resolution.
HALF_DIAGONAL = math.sqrt(2.0) / 2.0

SWING_STEP_DEGREES = 5


@dataclass
class OccupancyGrid:
    """Rasterized floor plan; row index grows with y, column index with x."""
    obstacles: np.ndarray
    blocked: np.ndarray
    inside: np.ndarray
    origin_x: float
    origin_y: float
    resolution: float

    @property
    def rows(self) -> int:
        return self.obstacles.shape[0]

    @property
    def cols(self) -> int:
        return self.obstacles.shape[1]

    @property
    def free(self) -> np.ndarray:
        return ~self.blocked & self.inside

    def cell_index(self, point: Point) -> Optional[Tuple[int, int]]:
        col = int(math.floor((point.x - self.origin_x) / self.resolution))
        row = int(math.floor((point.y - self.origin_y) / self.resolution))
        if 0 <= row < self.rows and 0 <= col < self.cols:
            return row, col
        return None

    def is_obstacle(self, point: Point) -> bool:
        index = self.cell_index(point)
        return index is not None and bool(self.obstacles[index])

    def is_free(self, point: Point) -> bool:
        index = self.cell_index(point)
        return index is not None and bool(self.free[index])

    def free_ratio(self) -> float:
        return float(self.free.sum()) / max(1, int(self.inside.sum()))


class UsableAreaExtractor:
    """
    Grid-based free-space decomposition of a floor plan.
    """

    def __init__(self, config: Optional[ExtractionConfig] = None):
        self.config = config or ExtractionConfig()

    def _resolution_for(self, box: BoundingBox) -> float:
        res = self.config.grid_resolution
        cells = math.ceil(box.width / res) * math.ceil(box.height / res)
        if cells > self.config.max_grid_cells:
            coarse = math.sqrt(box.area / self.config.max_grid_cells) * 1.01
            logger.warning(f"Grid of {cells} cells exceeds max_grid_cells={self.config.max_grid_cells}; "
                           f"coarsening resolution from {res:.1f} to {coarse:.1f} mm")
            res = coarse
        return res

    def build_occupancy_grid(self, floor_plan: FloorPlan) -> OccupancyGrid:
        """Rasterize walls, openings and restricted areas, then apply the clearance dilation."""
        box = floor_plan.bounding_box
        res = self._resolution_for(box)
        cols = max(1, math.ceil(box.width / res))
        rows = max(1, math.ceil(box.height / res))

        self._xs = box.min_x + (np.arange(cols) + 0.5) * res
        self._ys = box.min_y + (np.arange(rows) + 0.5) * res
        self._origin = (box.min_x, box.min_y)
        self._res = res

        obstacles = np.zeros((rows, cols), dtype=bool)

        for wall in floor_plan.walls:
            self._mark_segment(obstacles, wall.start, wall.end, wall.thickness / 2 + res * HALF_DIAGONAL)

        for opening in floor_plan.openings:
            self._mark_opening(obstacles, opening)

        for area in floor_plan.restricted_areas:
            self._mark_box(obstacles, area.bounding_box.expand(self.config.restricted_buffer))

        inside = points_in_polygon(self._xs[np.newaxis, :], self._ys[:, np.newaxis], floor_plan.bounds)

        k = int(math.ceil(self.config.accessibility_clearance / res))
        if k > 0:
            # Square window == Chebyshev distance; outside the grid is not an obstacle.
            blocked = ndimage.maximum_filter(obstacles.astype(np.uint8), size=2 * k + 1,
                                             mode='constant', cval=0).astype(bool)
        else:
            blocked = obstacles.copy()

        logger.debug(f"Occupancy grid {rows}x{cols} at {res:.1f} mm: "
                     f"{int(obstacles.sum())} obstacle cells, {int(blocked.sum())} blocked after dilation")
        return OccupancyGrid(obstacles=obstacles, blocked=blocked, inside=inside,
                             origin_x=box.min_x, origin_y=box.min_y, resolution=res)

    def extract(self, floor_plan: FloorPlan) -> List[UsableArea]:
        grid = self.build_occupancy_grid(floor_plan)
        bounds = floor_plan.bounding_box
        res = grid.resolution

        labels, count = ndimage.label(grid.free, structure=np.ones((3, 3), dtype=int))
        areas = []
        for rows, cols in ndimage.find_objects(labels):
            region = BoundingBox(
                min_x=max(bounds.min_x, grid.origin_x + cols.start * res),
                min_y=max(bounds.min_y, grid.origin_y + rows.start * res),
                max_x=min(bounds.max_x, grid.origin_x + cols.stop * res),
                max_y=min(bounds.max_y, grid.origin_y + rows.stop * res),
            )
            if region.area > self.config.min_region_area:
                areas.append(UsableArea.from_box(region))
            else:
                logger.debug(f"Discarding free region of {region.area / 1e6:.2f} m²")

        total = sum(a.area for a in areas)
        logger.info(f"Extracted {len(areas)} usable area(s) from {count} free component(s), "
                    f"{total / 1e6:.1f} m² of {bounds.area / 1e6:.1f} m² gross")
        return areas

    def _window(self, box: BoundingBox) -> Optional[Tuple[slice, slice]]:
        """Index slices of the cells whose centres may fall inside ``box``."""
        ox, oy = self._origin
        c0 = max(0, int(math.floor((box.min_x - ox) / self._res - 0.5)))
        c1 = min(len(self._xs) - 1, int(math.ceil((box.max_x - ox) / self._res - 0.5)))
        r0 = max(0, int(math.floor((box.min_y - oy) / self._res - 0.5)))
        r1 = min(len(self._ys) - 1, int(math.ceil((box.max_y - oy) / self._res - 0.5)))
        if c0 > c1 or r0 > r1:
            return None
        return slice(r0, r1 + 1), slice(c0, c1 + 1)

    def _mark_segment(self, grid: np.ndarray, start: Point, end: Point, reach: float):
        window = self._window(BoundingBox(min(start.x, end.x), min(start.y, end.y),
                                          max(start.x, end.x), max(start.y, end.y)).expand(reach))
        if window is None:
            return
        rs, cs = window
        d = distance_to_segment(self._xs[cs][np.newaxis, :], self._ys[rs][:, np.newaxis], start, end)
        grid[rs, cs] |= d <= reach

    def _mark_polygon(self, grid: np.ndarray, polygon: Sequence[Point]):
        window = self._window(BoundingBox.from_points(polygon))
        if window is None:
            return
        rs, cs = window
        grid[rs, cs] |= points_in_polygon(self._xs[cs][np.newaxis, :], self._ys[rs][:, np.newaxis], polygon)

    def _mark_box(self, grid: np.ndarray, box: BoundingBox):
        window = self._window(box)
        if window is None:
            return
        rs, cs = window
        xs = self._xs[cs]
        ys = self._ys[rs]
        mask = ((ys[:, np.newaxis] >= box.min_y) & (ys[:, np.newaxis] <= box.max_y) &
                (xs[np.newaxis, :] >= box.min_x) & (xs[np.newaxis, :] <= box.max_x))
        grid[rs, cs] |= mask

    def _mark_opening(self, grid: np.ndarray, opening: Opening):
        """Footprint plus swing sector (doors) or the clearance strip in front (windows)."""
        theta = math.radians(opening.angle)
        ux, uy = math.cos(theta), math.sin(theta)
        nx, ny = -uy, ux
        p = opening.position
        half = opening.width / 2
        depth = self.config.door_depth / 2
        # Openings narrower than a cell still block the cell they sit in.
        depth = max(depth, self._res * HALF_DIAGONAL)

        footprint = [
            Point(p.x - ux * half - nx * depth, p.y - uy * half - ny * depth),
            Point(p.x + ux * half - nx * depth, p.y + uy * half - ny * depth),
            Point(p.x + ux * half + nx * depth, p.y + uy * half + ny * depth),
            Point(p.x - ux * half + nx * depth, p.y - uy * half + ny * depth),
        ]
        self._mark_polygon(grid, footprint)

        if opening.kind == OpeningKind.DOOR:
            if opening.swing == DoorSwing.SLIDING:
                return
            side = 1.0 if opening.swing == DoorSwing.IN else -1.0
            hinge = Point(p.x - ux * half, p.y - uy * half)
            sector = [hinge]
            for step in range(0, 90 + SWING_STEP_DEGREES, SWING_STEP_DEGREES):
                a = math.radians(step)
                dx = ux * math.cos(a) + side * nx * math.sin(a)
                dy = uy * math.cos(a) + side * ny * math.sin(a)
                sector.append(Point(hinge.x + dx * opening.width, hinge.y + dy * opening.width))
            self._mark_polygon(grid, sector)
        else:
            reach = self.config.window_clearance
            strip = [
                Point(p.x - ux * half, p.y - uy * half),
                Point(p.x + ux * half, p.y + uy * half),
                Point(p.x + ux * half + nx * reach, p.y + uy * half + ny * reach),
                Point(p.x - ux * half + nx * reach, p.y - uy * half + ny * reach),
            ]
            self._mark_polygon(grid, strip)


def extract_usable_areas(floor_plan: FloorPlan, options=None) -> List[UsableArea]:
    """
    Decompose the free space of a floor plan into usable rectangles.

    Args:
        floor_plan: Validated floor plan (lengths in mm)
        options: ExtractionConfig, a dict of its fields, or None for defaults

    Returns:
        Usable areas in raster order; empty when nothing qualifies
    """
    validate_floor_plan(floor_plan)
    config = coerce_config(ExtractionConfig, options)
    return UsableAreaExtractor(config).extract(floor_plan)
