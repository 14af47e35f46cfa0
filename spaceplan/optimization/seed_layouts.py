"""
Deterministic seed layouts for the placement search.

Each usable area gets one starting arrangement picked by its aspect ratio:
rows for wide areas, columns for tall ones and a grid otherwise.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List

from spaceplan.config import PlacementConfig
from spaceplan.floor_plan import SizeClass
from spaceplan.geometry.primitives import BoundingBox, Point

logger = logging.getLogger(__name__)

ASPECT_THRESHOLD = 1.5
MAX_PER_LINE = 6
STANDARD_DEPTH = 2500.0
MAX_BLOCK_WIDTH = 3000.0
MAX_COLUMN_BLOCK_HEIGHT = 3500.0
MIN_BLOCK_SIDE = 1500.0


@dataclass(frozen=True)
class BlockSizeSpec:
    """Nominal footprint and required clearance of a size class."""
    size_class: SizeClass
    width: float
    height: float
    min_clearance: float

    @property
    def area(self) -> float:
        return self.width * self.height


BLOCK_SIZES: Dict[SizeClass, BlockSizeSpec] = {
    SizeClass.SMALL: BlockSizeSpec(SizeClass.SMALL, 2000.0, 2500.0, 800.0),
    SizeClass.MEDIUM: BlockSizeSpec(SizeClass.MEDIUM, 2500.0, 3000.0, 900.0),
    SizeClass.LARGE: BlockSizeSpec(SizeClass.LARGE, 3000.0, 4000.0, 1000.0),
}


class LayoutPattern(Enum):
    """Seed layout heuristics."""
    ROWS = "rows"
    COLUMNS = "columns"
    GRID = "grid"


@dataclass(frozen=True)
class SeedBlock:
    """A block of a seed layout, tied to the usable area it was seeded in."""
    center: Point
    width: float
    height: float
    area_index: int

    @property
    def size_class(self) -> SizeClass:
        return classify_size(self.width * self.height)

    @property
    def clearance(self) -> float:
        return BLOCK_SIZES[self.size_class].min_clearance

    @property
    def bounding_box(self) -> BoundingBox:
        return BoundingBox.from_center(self.center, self.width, self.height)


def classify_size(area: float) -> SizeClass:
    """Size class from a footprint area in mm² (small <= 6 m², medium <= 10 m²)."""
    if area <= 6_000_000:
        return SizeClass.SMALL
    if area <= 10_000_000:
        return SizeClass.MEDIUM
    return SizeClass.LARGE


def choose_pattern(box: BoundingBox) -> LayoutPattern:
    if box.width > ASPECT_THRESHOLD * box.height:
        return LayoutPattern.ROWS
    if box.height > ASPECT_THRESHOLD * box.width:
        return LayoutPattern.COLUMNS
    return LayoutPattern.GRID


def target_block_count(box: BoundingBox, config: PlacementConfig) -> int:
    return int(math.floor(box.area / config.target_block_area))


def _lines(box: BoundingBox, config: PlacementConfig, target: int, transpose: bool, area_index: int) -> List[SeedBlock]:
    """Shared rows/columns tiling; ``transpose`` swaps the roles of x and y."""
    along = box.height if transpose else box.width
    across = box.width if transpose else box.height
    max_block_along = MAX_COLUMN_BLOCK_HEIGHT if transpose else MAX_BLOCK_WIDTH

    gap = config.corridor_width + config.row_clearance
    n_lines = int(math.floor((across + gap) / (STANDARD_DEPTH + gap)))
    if n_lines < 1:
        return []

    per_line = min(MAX_PER_LINE, int(math.ceil(target / n_lines)))
    block_along = 0.0
    while per_line >= 1:
        block_along = min(max_block_along, (along - (per_line - 1) * config.block_spacing) / per_line)
        if block_along >= MIN_BLOCK_SIDE:
            break
        per_line -= 1
    if per_line < 1:
        return []

    used_across = n_lines * STANDARD_DEPTH + (n_lines - 1) * gap
    used_along = per_line * block_along + (per_line - 1) * config.block_spacing
    start_across = (box.min_x if transpose else box.min_y) + (across - used_across) / 2
    start_along = (box.min_y if transpose else box.min_x) + (along - used_along) / 2

    blocks = []
    for line in range(n_lines):
        c_across = start_across + line * (STANDARD_DEPTH + gap) + STANDARD_DEPTH / 2
        for k in range(per_line):
            if len(blocks) >= target:
                return blocks
            c_along = start_along + k * (block_along + config.block_spacing) + block_along / 2
            if transpose:
                blocks.append(SeedBlock(Point(c_across, c_along), STANDARD_DEPTH, block_along, area_index))
            else:
                blocks.append(SeedBlock(Point(c_along, c_across), block_along, STANDARD_DEPTH, area_index))
    return blocks


def seed_rows(box: BoundingBox, config: PlacementConfig, area_index: int = 0) -> List[SeedBlock]:
    """Rows of standard-depth blocks separated by a corridor, up to six per row."""
    return _lines(box, config, target_block_count(box, config), transpose=False, area_index=area_index)


def seed_columns(box: BoundingBox, config: PlacementConfig, area_index: int = 0) -> List[SeedBlock]:
    """Columns of standard-width blocks separated by a corridor, up to six per column."""
    return _lines(box, config, target_block_count(box, config), transpose=True, area_index=area_index)


def seed_grid(box: BoundingBox, config: PlacementConfig, area_index: int = 0) -> List[SeedBlock]:
    """
    Grid of one size class with corridor-wide gaps between cells.

    Every catalogue size is tried in both orientations. The tiling whose
    block count comes closest to the target wins; covered floor breaks ties.
    """
    target = target_block_count(box, config)
    if target < 1:
        return []

    gap = config.corridor_width
    best = None
    for spec in (BLOCK_SIZES[SizeClass.LARGE], BLOCK_SIZES[SizeClass.MEDIUM], BLOCK_SIZES[SizeClass.SMALL]):
        for w, h in ((spec.width, spec.height), (spec.height, spec.width)):
            cols = int(math.floor((box.width + gap) / (w + gap)))
            rows = int(math.floor((box.height + gap) / (h + gap)))
            count = min(target, cols * rows)
            if count < 1:
                continue
            key = (-abs(target - count), count * w * h)
            if best is None or key > best[0]:
                best = (key, w, h, cols, rows, count)

    if best is None:
        return []

    _, w, h, cols, rows, count = best
    x0 = box.min_x + (box.width - (cols * w + (cols - 1) * gap)) / 2
    y0 = box.min_y + (box.height - (rows * h + (rows - 1) * gap)) / 2
    blocks = []
    for r in range(rows):
        for c in range(cols):
            if len(blocks) >= count:
                return blocks
            center = Point(x0 + c * (w + gap) + w / 2, y0 + r * (h + gap) + h / 2)
            blocks.append(SeedBlock(center, w, h, area_index))
    return blocks


def seed_layout(box: BoundingBox, config: PlacementConfig, area_index: int = 0) -> List[SeedBlock]:
    """Seed blocks for one usable area; empty when the area is too small."""
    pattern = choose_pattern(box)
    if pattern == LayoutPattern.ROWS:
        blocks = seed_rows(box, config, area_index)
    elif pattern == LayoutPattern.COLUMNS:
        blocks = seed_columns(box, config, area_index)
    else:
        blocks = seed_grid(box, config, area_index)
    logger.debug(f"Area {area_index} ({box.width:.0f}x{box.height:.0f} mm): "
                 f"{pattern.value} seed with {len(blocks)} block(s)")
    return blocks
