"""
Pathway Network Generation

Builds the circulation network of a block layout in three independent passes
and then compacts the result.

This module provides:
- Facing-pair corridors between aligned neighbouring blocks
- Main spines through clusters of nearby blocks
- Connections for blocks the first two passes left isolated
- Compaction: redundant secondaries dropped, overlapping pathways merged
"""

import logging
import math
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Sequence, Tuple

import networkx as nx

from spaceplan.config import PathwayConfig, coerce_config
from spaceplan.floor_plan import FloorPlan, Pathway, PathwayKind, PlacementBlock
from spaceplan.geometry.primitives import (
    EPSILON, BoundingBox, Point, centroid, closest_point_on_segment, distance, distance_box_to_path,
    distance_point_to_path, path_length, simplify_path,
)
from spaceplan.pathways.validator import SegmentValidator
from spaceplan.utils.error_handling import validate_floor_plan

logger = logging.getLogger(__name__)


@dataclass
class PathCandidate:
    """A pathway under construction, with the blocks it was built to connect."""
    path: List[Point]
    width: float
    kind: PathwayKind
    accessible: bool = True
    block_ids: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def length(self) -> float:
        return path_length(self.path)


def _interval_closest(lo_a: float, hi_a: float, lo_b: float, hi_b: float) -> Tuple[float, float]:
    """Closest coordinates of two intervals; the middle of the overlap when they overlap."""
    if hi_a < lo_b:
        return hi_a, lo_b
    if hi_b < lo_a:
        return lo_a, hi_b
    mid = (max(lo_a, lo_b) + min(hi_a, hi_b)) / 2
    return mid, mid


def closest_points_between_boxes(a: BoundingBox, b: BoundingBox) -> Tuple[Point, Point]:
    ax, bx = _interval_closest(a.min_x, a.max_x, b.min_x, b.max_x)
    ay, by = _interval_closest(a.min_y, a.max_y, b.min_y, b.max_y)
    return Point(ax, ay), Point(bx, by)


def closest_points_box_to_path(box: BoundingBox, path: Sequence[Point]) -> Tuple[Point, Point]:
    """Closest pair between a box and a polyline (box side first)."""
    best = None
    best_dist = math.inf
    for i in range(len(path) - 1):
        a, b = path[i], path[i + 1]
        pairs = [(box.closest_point(a), a), (box.closest_point(b), b)]
        pairs += [(corner, closest_point_on_segment(corner, a, b)) for corner in box.corners]
        for on_box, on_path in pairs:
            d = distance(on_box, on_path)
            if d < best_dist - EPSILON:
                best, best_dist = (on_box, on_path), d
    return best


def is_block_connected(block: PlacementBlock, pathways: Sequence, touch_tolerance: float = 100.0) -> bool:
    """Whether the block's bounding box lies within half a pathway width (plus tolerance) of one."""
    box = block.bounding_box
    for pathway in pathways:
        reach = pathway.width / 2 + touch_tolerance
        if distance_box_to_path(box, pathway.path) <= reach + EPSILON:
            return True
    return False


def paths_overlap(first: Sequence[Point], second: Sequence[Point], threshold: float) -> bool:
    """True when some pair of path points is closer than ``threshold``."""
    return any(distance(p, q) < threshold for p in first for q in second)


def _components(graph: nx.Graph) -> List[List[int]]:
    """Connected components as sorted node lists, ordered by their smallest node."""
    return sorted((sorted(c) for c in nx.connected_components(graph)), key=lambda c: c[0])


class PathwayNetworkGenerator:
    """
    Derives a validated network of straight pathway segments for a block layout.
    """

    def __init__(self, floor_plan: FloorPlan, blocks: Sequence[PlacementBlock],
                 config: Optional[PathwayConfig] = None):
        self.floor_plan = floor_plan
        self.blocks = list(blocks)
        self.config = config or PathwayConfig()
        self.validator = SegmentValidator(floor_plan, self.blocks, self.config)

    def _candidate(self, start: Point, end: Point, kind: PathwayKind, width: float,
                   block_ids: Sequence[str]) -> PathCandidate:
        return PathCandidate(path=[start, end], width=width, kind=kind,
                             accessible=self.config.accessible, block_ids=frozenset(block_ids))

    # ------------------------------------------------------------------ #
    # Pass 1: facing pairs
    # ------------------------------------------------------------------ #

    def _facing_segment(self, a: PlacementBlock, b: PlacementBlock) -> Optional[Tuple[Point, Point]]:
        cfg = self.config
        dx = b.position.x - a.position.x
        dy = b.position.y - a.position.y
        if abs(dx) < EPSILON and abs(dy) < EPSILON:
            return None

        if abs(dy) < cfg.alignment_tolerance and cfg.min_separation <= abs(dx) <= cfg.max_separation \
                and abs(dx) >= cfg.width + cfg.facing_margin:
            left, right = (a, b) if dx > 0 else (b, a)
            start_x = left.position.x + left.width / 2
            end_x = right.position.x - right.width / 2
            if end_x - start_x >= cfg.width:
                y = (a.position.y + b.position.y) / 2
                return Point(start_x, y), Point(end_x, y)
            return None

        if abs(dx) < cfg.alignment_tolerance and cfg.min_separation <= abs(dy) <= cfg.max_separation \
                and abs(dy) >= cfg.width + cfg.facing_margin:
            low, high = (a, b) if dy > 0 else (b, a)
            start_y = low.position.y + low.height / 2
            end_y = high.position.y - high.height / 2
            if end_y - start_y >= cfg.width:
                x = (a.position.x + b.position.x) / 2
                return Point(x, start_y), Point(x, end_y)
        return None

    def facing_pathways(self) -> List[PathCandidate]:
        candidates = []
        for i, a in enumerate(self.blocks):
            for b in self.blocks[i + 1:]:
                segment = self._facing_segment(a, b)
                if segment is None:
                    continue
                if not self.validator.is_valid(*segment, exclude_ids=(a.id, b.id)):
                    logger.debug(f"Facing segment {a.id} -> {b.id} rejected")
                    continue
                candidates.append(self._candidate(*segment, PathwayKind.SECONDARY, self.config.width, (a.id, b.id)))
        logger.debug(f"Facing pass produced {len(candidates)} pathway(s)")
        return candidates

    # ------------------------------------------------------------------ #
    # Pass 2: main spines
    # ------------------------------------------------------------------ #

    def clusters(self) -> List[List[PlacementBlock]]:
        """Connected groups of blocks whose centres are closer than ``cluster_threshold``."""
        graph = nx.Graph()
        graph.add_nodes_from(range(len(self.blocks)))
        for i, a in enumerate(self.blocks):
            for j in range(i + 1, len(self.blocks)):
                if distance(a.position, self.blocks[j].position) < self.config.cluster_threshold:
                    graph.add_edge(i, j)
        return [[self.blocks[i] for i in members] for members in _components(graph)]

    def spine_pathways(self) -> List[PathCandidate]:
        cfg = self.config
        candidates = []
        for group in self.clusters():
            if len(group) < cfg.min_spine_blocks:
                continue
            center = centroid(b.position for b in group)
            xs = [b.position.x for b in group]
            ys = [b.position.y for b in group]
            ext = cfg.spine_extension
            if max(xs) - min(xs) >= max(ys) - min(ys):
                start, end = Point(min(xs) - ext, center.y), Point(max(xs) + ext, center.y)
            else:
                start, end = Point(center.x, min(ys) - ext), Point(center.x, max(ys) + ext)

            if not self.validator.is_valid(start, end):
                logger.debug(f"Spine through {len(group)} blocks rejected")
                continue
            candidates.append(self._candidate(start, end, PathwayKind.MAIN, cfg.width * cfg.spine_width_factor,
                                              [b.id for b in group]))
        logger.debug(f"Spine pass produced {len(candidates)} pathway(s)")
        return candidates

    # ------------------------------------------------------------------ #
    # Pass 3: isolated blocks
    # ------------------------------------------------------------------ #

    def is_connected(self, block: PlacementBlock, pathways: Sequence) -> bool:
        return is_block_connected(block, pathways, self.config.touch_tolerance)

    def isolated_pathways(self, existing: List[PathCandidate]) -> List[PathCandidate]:
        cfg = self.config
        network = list(existing)
        added = []
        for block in sorted(self.blocks, key=lambda b: b.id):
            if self.is_connected(block, network):
                continue
            box = block.bounding_box

            options = []
            for candidate in network:
                start, end = closest_points_box_to_path(box, candidate.path)
                options.append((distance(start, end), start, end, (block.id,)))
            for other in self.blocks:
                if other.id == block.id or not self.is_connected(other, network):
                    continue
                start, end = closest_points_between_boxes(box, other.bounding_box)
                options.append((distance(start, end), start, end, (block.id, other.id)))

            chosen = None
            for length, start, end, ids in sorted(options, key=lambda o: o[0]):
                if length > cfg.max_length:
                    break
                if length < EPSILON:
                    continue
                if self.validator.is_valid(start, end, exclude_ids=ids):
                    chosen = self._candidate(start, end, PathwayKind.SECONDARY, cfg.width, ids)
                    break

            if chosen is None:
                logger.debug(f"Block {block.id} left unconnected")
                continue
            network.append(chosen)
            added.append(chosen)
        logger.debug(f"Isolated pass produced {len(added)} pathway(s)")
        return added

    # ------------------------------------------------------------------ #
    # Compaction
    # ------------------------------------------------------------------ #

    def _chain(self, group: List[PathCandidate]) -> List[Point]:
        """Greedy end-to-end chaining of contributor paths, reversing where shorter."""
        remaining = [list(c.path) for c in group]
        chain = remaining.pop(0)
        while remaining:
            tail = chain[-1]
            best_index, best_reverse, best_dist = 0, False, math.inf
            for index, path in enumerate(remaining):
                for reverse, head in ((False, path[0]), (True, path[-1])):
                    d = distance(tail, head)
                    if d < best_dist - EPSILON:
                        best_index, best_reverse, best_dist = index, reverse, d
            path = remaining.pop(best_index)
            if best_reverse:
                path.reverse()
            if distance(tail, path[0]) < EPSILON:
                path = path[1:]
            chain.extend(path)
        return chain

    def _merge_groups(self, candidates: List[PathCandidate]) -> List[List[int]]:
        graph = nx.Graph()
        graph.add_nodes_from(range(len(candidates)))
        for i, a in enumerate(candidates):
            for j in range(i + 1, len(candidates)):
                b = candidates[j]
                if paths_overlap(a.path, b.path, (a.width + b.width) / 2):
                    graph.add_edge(i, j)
        return _components(graph)

    def _segment_exemptions(self, start: Point, end: Point, members: List[PathCandidate]) -> FrozenSet[str]:
        """
        Blocks a merged segment may touch: those of the contributors it runs along.

        A segment whose ends both lie on one contributor's path follows that
        contributor and inherits its blocks. Connector segments joining two
        contributors lie on neither and exempt nothing.
        """
        tolerance = max(self.config.simplify_tolerance, EPSILON)
        ids = frozenset()
        for member in members:
            if distance_point_to_path(start, member.path) <= tolerance and \
                    distance_point_to_path(end, member.path) <= tolerance:
                ids = ids | member.block_ids
        return ids

    def _merged_path_valid(self, path: List[Point], members: List[PathCandidate]) -> bool:
        if len(path) < 2:
            return False
        for i in range(len(path) - 1):
            exempt = self._segment_exemptions(path[i], path[i + 1], members)
            if not self.validator.is_valid(path[i], path[i + 1], exclude_ids=exempt):
                return False
        return True

    def compact(self, candidates: List[PathCandidate]) -> List[PathCandidate]:
        cfg = self.config
        if len(candidates) > cfg.max_pathways:
            logger.warning(f"{len(candidates)} pathway candidates exceed max_pathways={cfg.max_pathways}; "
                           f"keeping the first {cfg.max_pathways}")
            candidates = candidates[:cfg.max_pathways]

        mains = [c for c in candidates if c.kind == PathwayKind.MAIN]
        kept = []
        for candidate in candidates:
            if candidate.kind == PathwayKind.SECONDARY and any(
                    paths_overlap(candidate.path, main.path, (candidate.width + main.width) / 2) for main in mains):
                continue
            kept.append(candidate)
        dropped = len(candidates) - len(kept)

        result = []
        for group in self._merge_groups(kept):
            members = [kept[i] for i in group]
            if len(members) == 1:
                result.extend(members)
                continue
            path = simplify_path(self._chain(members), cfg.simplify_tolerance)
            block_ids = frozenset().union(*(m.block_ids for m in members))
            if not self._merged_path_valid(path, members):
                logger.debug(f"Merged path of {len(members)} pathways fails validity; keeping contributors")
                result.extend(members)
                continue
            result.append(PathCandidate(
                path=path,
                width=max(m.width for m in members),
                kind=PathwayKind.MAIN if any(m.kind == PathwayKind.MAIN for m in members) else PathwayKind.SECONDARY,
                accessible=all(m.accessible for m in members),
                block_ids=block_ids,
            ))

        logger.debug(f"Compaction: {dropped} secondary pathway(s) dropped, {len(kept)} -> {len(result)} after merging")
        return result

    def generate(self) -> List[Pathway]:
        if len(self.blocks) == 0:
            logger.info("No blocks to connect; pathway network is empty")
            return []

        candidates = self.facing_pathways()
        candidates += self.spine_pathways()
        candidates += self.isolated_pathways(candidates)
        compacted = self.compact(candidates)

        pathways = [
            Pathway(
                id=f"pathway_{index:03d}",
                path=tuple(c.path),
                width=c.width,
                kind=c.kind,
                length=c.length,
                accessible=c.accessible,
            )
            for index, c in enumerate(compacted, start=1)
        ]
        unconnected = sum(1 for b in self.blocks if not self.is_connected(b, pathways))
        logger.info(f"Generated {len(pathways)} pathway(s), {sum(p.length for p in pathways) / 1000:.1f} m total; "
                    f"{unconnected} of {len(self.blocks)} block(s) unconnected")
        return pathways


def generate_pathways(floor_plan: FloorPlan, blocks: Sequence[PlacementBlock], config=None) -> List[Pathway]:
    """
    Generate the pathway network connecting placed blocks.

    Args:
        floor_plan: Validated floor plan
        blocks: Placed blocks (ids must be unique)
        config: PathwayConfig, a dict of its fields, or None for defaults

    Returns:
        Validated pathways; empty when there are no blocks
    """
    validate_floor_plan(floor_plan)
    config = coerce_config(PathwayConfig, config)
    return PathwayNetworkGenerator(floor_plan, blocks, config).generate()
