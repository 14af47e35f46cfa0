"""
Segment validity checks for pathway candidates.
"""

import logging
from typing import Iterable, Optional, Sequence

from spaceplan.config import PathwayConfig
from spaceplan.floor_plan import FloorPlan, PlacementBlock
from spaceplan.geometry.primitives import (
    EPSILON, Point, segment_distance, segment_intersects_box, segment_intersects_polygon,
)

logger = logging.getLogger(__name__)


class SegmentValidator:
    """
    Checks straight pathway segments against walls, restricted areas and blocks.

    A segment is valid when it keeps ``min_clearance`` from every wall
    centreline, does not enter any restricted area and does not enter the
    bounding box (grown by ``block_buffer``) of any block it does not connect.
    Restricted areas given as polygons are tested against the polygon; a
    two-point area is the box spanned by its points.
    """

    def __init__(self, floor_plan: FloorPlan, blocks: Sequence[PlacementBlock],
                 config: Optional[PathwayConfig] = None):
        self.config = config or PathwayConfig()
        self.walls = list(floor_plan.walls)
        self.restricted_polygons = [area.bounds for area in floor_plan.restricted_areas if len(area.bounds) >= 3]
        self.restricted_boxes = [area.bounding_box for area in floor_plan.restricted_areas if len(area.bounds) < 3]
        self.block_boxes = {block.id: block.bounding_box.expand(self.config.block_buffer) for block in blocks}

    def wall_clearance(self, start: Point, end: Point) -> float:
        if not self.walls:
            return float('inf')
        return min(segment_distance(start, end, wall.start, wall.end) for wall in self.walls)

    def enters_restricted_area(self, start: Point, end: Point) -> bool:
        if any(segment_intersects_polygon(start, end, polygon) for polygon in self.restricted_polygons):
            return True
        return any(segment_intersects_box(start, end, box) for box in self.restricted_boxes)

    def is_valid(self, start: Point, end: Point, exclude_ids: Iterable[str] = ()) -> bool:
        if start.distance_to(end) < EPSILON:
            return False

        if self.wall_clearance(start, end) < self.config.min_clearance:
            return False

        if self.enters_restricted_area(start, end):
            return False

        excluded = set(exclude_ids)
        for block_id, box in self.block_boxes.items():
            if block_id in excluded:
                continue
            if segment_intersects_box(start, end, box):
                return False
        return True
