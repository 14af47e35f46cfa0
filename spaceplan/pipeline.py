"""
Pipeline Orchestrator

Runs usable-area extraction, block placement and pathway generation in
sequence and assembles the aggregate metrics of the result.

This module provides:
- analyze_floor_plan, the end-to-end entry point
- Re-exports of the three stage operations
- Aggregate metrics (space utilization, accessibility, clearance compliance, efficiency)
- save_analysis_result for JSON output
"""

import logging
from typing import List, Optional, Sequence

import orjson

from spaceplan.config import PipelineConfig, coerce_config
from spaceplan.extraction.usable_area import extract_usable_areas
from spaceplan.floor_plan import AnalysisResult, FloorPlan, Pathway, PlacementBlock, UsableArea
from spaceplan.geometry.primitives import BoundingBox, distance_point_to_segment, segment_distance
from spaceplan.optimization.placement_optimizer import optimize_placement, reference_usable_area
from spaceplan.pathways.network_generator import generate_pathways, is_block_connected
from spaceplan.utils.error_handling import ErrorHandler

logger = logging.getLogger(__name__)

__all__ = [
    'analyze_floor_plan',
    'extract_usable_areas',
    'optimize_placement',
    'generate_pathways',
    'compute_space_utilization',
    'compute_accessibility',
    'compute_clearance_compliance',
    'compute_efficiency',
    'save_analysis_result',
]

EFFICIENCY_WEIGHTS = {
    'space_utilization': 0.4,
    'accessibility': 0.35,
    'clearance_compliance': 0.25,
}


def compute_space_utilization(floor_plan: FloorPlan, usable_areas: Sequence[UsableArea],
                              blocks: Sequence[PlacementBlock]) -> float:
    """Placed block area as a percentage of the reference usable area, capped at 100."""
    reference = reference_usable_area(floor_plan, usable_areas)
    if reference <= 0 or not blocks:
        return 0.0
    placed = sum(b.area for b in blocks)
    return min(100.0, placed / reference * 100.0)


def compute_accessibility(blocks: Sequence[PlacementBlock], pathways: Sequence[Pathway],
                          touch_tolerance: float = 100.0) -> int:
    """Number of blocks touching the pathway network."""
    return sum(1 for b in blocks if is_block_connected(b, pathways, touch_tolerance))


def _wall_gap(box: BoundingBox, wall) -> float:
    corners = box.corners
    if box.contains_point(wall.start) or box.contains_point(wall.end):
        return 0.0
    edge_distance = min(segment_distance(corners[k], corners[(k + 1) % 4], wall.start, wall.end)
                        for k in range(4))
    return max(0.0, edge_distance - wall.thickness / 2)


def compute_clearance_compliance(floor_plan: FloorPlan, blocks: Sequence[PlacementBlock]) -> float:
    """
    Percentage of blocks keeping their own clearance from every other block and wall.

    Gaps are measured edge to edge; walls count from their face (half the
    thickness off the centreline).
    """
    if not blocks:
        return 0.0
    boxes = [b.bounding_box for b in blocks]
    compliant = 0
    for i, block in enumerate(blocks):
        ok = all(boxes[i].distance_to_box(boxes[j]) >= block.clearance
                 for j in range(len(blocks)) if j != i)
        if ok:
            ok = all(_wall_gap(boxes[i], wall) >= block.clearance for wall in floor_plan.walls)
        if ok:
            compliant += 1
    return compliant / len(blocks) * 100.0


def compute_efficiency(space_utilization: float, accessibility: float, clearance_compliance: float) -> float:
    return (EFFICIENCY_WEIGHTS['space_utilization'] * space_utilization +
            EFFICIENCY_WEIGHTS['accessibility'] * accessibility +
            EFFICIENCY_WEIGHTS['clearance_compliance'] * clearance_compliance)


def analyze_floor_plan(floor_plan: FloorPlan, config=None,
                       error_handler: Optional[ErrorHandler] = None) -> AnalysisResult:
    """
    Run the full analysis of one floor plan.

    Args:
        floor_plan: Floor plan in millimetres
        config: PipelineConfig, a dict of its sections, or None for defaults
        error_handler: Optional handler collecting validation issues and stage timings

    Returns:
        AnalysisResult with blocks, pathways and metrics; the collections are
        empty (and the metrics zero) when nothing could be placed
    """
    config = coerce_config(PipelineConfig, config)
    handler = error_handler or ErrorHandler()
    handler.validate_floor_plan(floor_plan)

    extract = handler.performance_monitor("usable_area_extraction")(extract_usable_areas)
    place = handler.performance_monitor("placement_optimization")(optimize_placement)
    connect = handler.performance_monitor("pathway_generation")(generate_pathways)

    usable_areas: List[UsableArea] = extract(floor_plan, config.extraction)
    blocks = place(floor_plan, usable_areas, config.placement)
    pathways = connect(floor_plan, blocks, config.pathways)

    space = compute_space_utilization(floor_plan, usable_areas, blocks)
    connected = compute_accessibility(blocks, pathways, config.pathways.touch_tolerance)
    accessibility = connected / len(blocks) * 100.0 if blocks else 0.0
    clearance = compute_clearance_compliance(floor_plan, blocks)
    efficiency = compute_efficiency(space, accessibility, clearance) if blocks else 0.0

    result = AnalysisResult(
        floor_plan=floor_plan,
        blocks=tuple(blocks),
        pathways=tuple(pathways),
        space_utilization=space,
        accessibility_score=accessibility,
        total_pathway_length=sum(p.length for p in pathways),
        efficiency=efficiency,
        clearance_compliance=clearance,
        total_blocks=len(blocks),
        connected_blocks=connected,
        usable_areas=tuple(usable_areas),
    )
    logger.info(f"Analysis complete: {len(usable_areas)} usable area(s), {len(blocks)} block(s), "
                f"{len(pathways)} pathway(s); utilization {space:.1f}%, accessibility {accessibility:.1f}%, "
                f"efficiency {efficiency:.1f}%")
    return result


def save_analysis_result(result: AnalysisResult, output_path: str):
    """Write ``result.to_dict()`` as indented JSON."""
    with open(output_path, 'wb') as f:
        f.write(orjson.dumps(result.to_dict(), option=orjson.OPT_INDENT_2))
    logger.info(f"Analysis result saved to {output_path}")
