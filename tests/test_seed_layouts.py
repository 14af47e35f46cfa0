"""Tests for the deterministic seed layouts."""

import pytest

from spaceplan.config import PlacementConfig
from spaceplan.floor_plan import SizeClass
from spaceplan.geometry.primitives import BoundingBox
from spaceplan.optimization.seed_layouts import (
    LayoutPattern, choose_pattern, classify_size, seed_grid, seed_layout, target_block_count,
)


def assert_disjoint_and_inside(blocks, box):
    boxes = [b.bounding_box for b in blocks]
    for i, a in enumerate(boxes):
        assert box.contains_box(a)
        for b in boxes[i + 1:]:
            assert not a.overlaps(b)


class TestSizeClasses:
    """Test size classification of footprints."""

    def test_thresholds(self):
        assert classify_size(5_000_000) == SizeClass.SMALL
        assert classify_size(6_000_000) == SizeClass.SMALL
        assert classify_size(7_500_000) == SizeClass.MEDIUM
        assert classify_size(10_000_000) == SizeClass.MEDIUM
        assert classify_size(12_000_000) == SizeClass.LARGE


class TestSeedLayouts:
    """Test the rows, columns and grid heuristics."""

    def test_pattern_by_aspect_ratio(self):
        assert choose_pattern(BoundingBox(0, 0, 20000, 10000)) == LayoutPattern.ROWS
        assert choose_pattern(BoundingBox(0, 0, 6000, 20000)) == LayoutPattern.COLUMNS
        assert choose_pattern(BoundingBox(0, 0, 10000, 10000)) == LayoutPattern.GRID

    def test_target_count(self):
        assert target_block_count(BoundingBox(0, 0, 20000, 10000), PlacementConfig()) == 25

    def test_rows(self):
        """Two rows of six medium blocks separated by a corridor."""
        box = BoundingBox(0, 0, 20000, 10000)
        blocks = seed_layout(box, PlacementConfig())
        assert len(blocks) == 12
        assert {round(b.center.y) for b in blocks} == {2950, 7050}
        assert all(b.height == 2500 for b in blocks)
        assert blocks[0].width == pytest.approx(16000 / 6)
        assert blocks[0].size_class == SizeClass.MEDIUM
        assert blocks[0].bounding_box.min_x == pytest.approx(0.0)
        assert blocks[5].bounding_box.max_x == pytest.approx(20000.0)
        assert_disjoint_and_inside(blocks, box)

    def test_columns(self):
        box = BoundingBox(0, 0, 6000, 20000)
        blocks = seed_layout(box, PlacementConfig())
        assert len(blocks) == 6
        assert all(b.center.x == pytest.approx(3000) for b in blocks)
        assert all(b.width == 2500 for b in blocks)
        assert_disjoint_and_inside(blocks, box)

    def test_grid_prefers_target_count(self):
        """Nine small blocks beat four large ones when the target is twelve."""
        box = BoundingBox(0, 0, 10000, 10000)
        blocks = seed_grid(box, PlacementConfig())
        assert len(blocks) == 9
        assert all(b.size_class == SizeClass.SMALL for b in blocks)
        assert all((b.width, b.height) == (2000, 2500) for b in blocks)
        assert sorted({b.center.x for b in blocks}) == [1800, 5000, 8200]
        assert sorted({b.center.y for b in blocks}) == [1300, 4900, 8500]
        assert_disjoint_and_inside(blocks, box)

    def test_grid_room_gets_two_small_blocks(self):
        """A 6150 x 4650 room (target 3) fits two small blocks rather than one large one."""
        box = BoundingBox(0, 0, 6150, 4650)
        blocks = seed_grid(box, PlacementConfig())
        assert len(blocks) == 2
        assert all((b.width, b.height) == (2000, 2500) for b in blocks)
        gap = blocks[1].bounding_box.min_x - blocks[0].bounding_box.max_x
        assert gap == pytest.approx(PlacementConfig().corridor_width)

    def test_grid_covered_area_breaks_ties(self):
        """When every tiling holds one block, the largest block that fits wins."""
        blocks = seed_grid(BoundingBox(0, 0, 3800, 4650), PlacementConfig())
        assert len(blocks) == 1
        assert (blocks[0].width, blocks[0].height) == (3000, 4000)

    def test_too_small_areas_yield_nothing(self):
        assert seed_layout(BoundingBox(0, 0, 1800, 5000), PlacementConfig()) == []
        assert seed_layout(BoundingBox(0, 0, 2500, 2500), PlacementConfig()) == []

    def test_area_index_is_kept(self):
        blocks = seed_layout(BoundingBox(0, 0, 10000, 10000), PlacementConfig(), area_index=3)
        assert all(b.area_index == 3 for b in blocks)

    def test_deterministic(self):
        box = BoundingBox(100, 200, 14100, 9200)
        assert seed_layout(box, PlacementConfig()) == seed_layout(box, PlacementConfig())


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
