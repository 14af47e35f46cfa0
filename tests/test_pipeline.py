"""End-to-end tests of the analysis pipeline."""

import json

import pytest

from conftest import make_block, rectangle
from spaceplan.floor_plan import FloorPlan, Pathway, PathwayKind, UsableArea, Wall
from spaceplan.geometry.primitives import BoundingBox, Point, segment_distance, segment_intersects_box
from spaceplan.pipeline import (
    analyze_floor_plan, compute_accessibility, compute_clearance_compliance, compute_efficiency,
    compute_space_utilization, save_analysis_result,
)
from spaceplan.preprocessing.floor_plan_generator import create_four_room_floor_plan
from spaceplan.utils.error_handling import ErrorHandler, FloorPlanValidationError

QUICK = {
    'extraction': {'grid_resolution': 100},
    'placement': {'seed': 1, 'genetic': {'population_size': 6, 'generations': 3}},
}


def assert_result_invariants(result):
    plan = result.floor_plan
    boxes = [b.bounding_box for b in result.blocks]
    for i, box in enumerate(boxes):
        assert any(a.bounding_box.contains_box(box) for a in result.usable_areas)
        for other in boxes[i + 1:]:
            assert not box.overlaps(other)

    for pathway in result.pathways:
        assert len(pathway.path) >= 2
        for a, b in zip(pathway.path, pathway.path[1:]):
            for wall in plan.walls:
                assert segment_distance(a, b, wall.start, wall.end) >= 600
            for area in plan.restricted_areas:
                assert not segment_intersects_box(a, b, area.bounding_box)
            for block in result.blocks:
                assert not segment_intersects_box(a, b, block.bounding_box.expand(-1)), \
                    f"{pathway.id} cuts through {block.id}"

    assert 0.0 <= result.space_utilization <= 100.0
    assert 0.0 <= result.accessibility_score <= 100.0
    assert 0.0 <= result.efficiency <= 100.0
    assert result.total_blocks == len(result.blocks)
    assert result.total_pathway_length == pytest.approx(sum(p.length for p in result.pathways))


class TestAnalyzeFloorPlan:
    """Test the orchestrated pipeline."""

    def test_zero_wall_scenario(self, open_plan):
        result = analyze_floor_plan(open_plan, QUICK)
        assert len(result.usable_areas) == 1
        assert result.usable_areas[0].bounding_box == BoundingBox(0, 0, 10000, 8000)
        assert result.total_blocks >= 1
        assert result.space_utilization > 0
        assert_result_invariants(result)

    def test_four_room_scenario(self):
        """The demo plan yields one usable area per room and at least one pathway."""
        result = analyze_floor_plan(create_four_room_floor_plan(), QUICK)
        assert len(result.usable_areas) == 4
        assert result.total_blocks >= 2
        assert len(result.pathways) >= 1
        assert result.total_pathway_length > 0
        assert_result_invariants(result)

    def test_split_plan(self, split_plan):
        result = analyze_floor_plan(split_plan, QUICK)
        assert len(result.usable_areas) == 2
        assert_result_invariants(result)

    def test_nothing_fits(self):
        """A plan too small for any region is a valid, empty result."""
        result = analyze_floor_plan(FloorPlan(bounds=rectangle(1500, 1500)), QUICK)
        assert result.usable_areas == ()
        assert result.blocks == ()
        assert result.pathways == ()
        assert result.space_utilization == 0.0
        assert result.efficiency == 0.0

    def test_deterministic(self, split_plan):
        assert analyze_floor_plan(split_plan, QUICK).to_dict() == analyze_floor_plan(split_plan, QUICK).to_dict()

    def test_invalid_plan(self):
        with pytest.raises(FloorPlanValidationError):
            analyze_floor_plan(FloorPlan(bounds=(Point(0, 0), Point(1, 0), Point(2, 0))))

    def test_stage_timings(self, open_plan):
        handler = ErrorHandler()
        analyze_floor_plan(open_plan, QUICK, error_handler=handler)
        names = [m.operation_name for m in handler.performance_metrics]
        assert names == ['usable_area_extraction', 'placement_optimization', 'pathway_generation']

    def test_save_result(self, open_plan, tmp_path):
        result = analyze_floor_plan(open_plan, QUICK)
        path = tmp_path / "result.json"
        save_analysis_result(result, str(path))
        data = json.loads(path.read_text())
        assert data['metrics']['totalBlocks'] == result.total_blocks
        assert len(data['blocks']) == result.total_blocks


class TestMetrics:
    """Test the aggregate metrics."""

    def test_space_utilization(self, open_plan):
        blocks = [make_block("a", 2000, 2000), make_block("b", 6000, 2000)]
        areas = [UsableArea.from_box(BoundingBox(0, 0, 10000, 8000))]
        assert compute_space_utilization(open_plan, areas, blocks) == pytest.approx(12.5)
        assert compute_space_utilization(open_plan, areas, []) == 0.0
        assert compute_space_utilization(open_plan, [], blocks) == 0.0
        declared = FloorPlan(bounds=rectangle(10000, 8000), usable_area=5_000_000)
        assert compute_space_utilization(declared, [], blocks) == 100.0

    def test_accessibility(self):
        blocks = [make_block("a", 0, 0), make_block("b", 10000, 0)]
        pathway = Pathway("p", (Point(1000, 0), Point(3000, 0)), 1200, PathwayKind.SECONDARY, 2000)
        assert compute_accessibility(blocks, [pathway]) == 1

    def test_clearance_compliance(self, open_plan):
        far = [make_block("a", 2000, 2000), make_block("b", 7000, 2000)]
        assert compute_clearance_compliance(open_plan, far) == 100.0
        near = [make_block("a", 2000, 2000), make_block("b", 4500, 2000)]
        assert compute_clearance_compliance(open_plan, near) == 0.0
        assert compute_clearance_compliance(open_plan, []) == 0.0

    def test_clearance_from_walls(self):
        plan = FloorPlan(walls=(Wall(Point(3500, 0), Point(3500, 8000)),), bounds=rectangle(10000, 8000))
        assert compute_clearance_compliance(plan, [make_block("a", 2000, 2000)]) == 0.0
        assert compute_clearance_compliance(plan, [make_block("a", 6000, 2000)]) == 100.0

    def test_efficiency(self):
        assert compute_efficiency(100.0, 100.0, 100.0) == pytest.approx(100.0)
        assert compute_efficiency(50.0, 0.0, 0.0) == pytest.approx(20.0)


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
