"""
Genetic placement optimizer.

The search works on whole configurations: every individual holds a position
for each seeded block plus an active flag. Moves that would break the layout
invariants (overlap, leaving the home usable area, touching an obstacle) are
rejected, so the best individual is always a legal layout.

This module provides:
- Layout, the genome of one configuration
- PlacementOptimizer, seeding, evolution and deterministic post-processing
- optimize_placement, the stage entry point
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np
from tqdm import tqdm

from spaceplan.config import PlacementConfig, coerce_config
from spaceplan.floor_plan import FloorPlan, PlacementBlock, UsableArea
from spaceplan.geometry.primitives import EPSILON, Point
from spaceplan.geometry.vectorized import boxes_overlap, segments_intersect_boxes
from spaceplan.optimization.fitness import MIN_CLEAR_SIDES, FitnessBreakdown, FitnessEvaluator
from spaceplan.optimization.seed_layouts import SeedBlock, seed_layout
from spaceplan.utils.error_handling import validate_floor_plan
from spaceplan.utils.performance_optimizer import PerformanceOptimizer, ProfilerMode

logger = logging.getLogger(__name__)

SPRING_CONSTANT = 0.1
CONTAINMENT_TOLERANCE = 1e-6


@dataclass
class Layout:
    """One candidate configuration."""
    centers: np.ndarray
    active: np.ndarray
    fitness: Optional[float] = None

    def copy(self) -> 'Layout':
        return Layout(self.centers.copy(), self.active.copy(), self.fitness)


@dataclass
class OptimizationStats:
    """Bookkeeping of one optimizer run."""
    generations_run: int = 0
    evaluations: int = 0
    best_fitness: float = 0.0
    best_breakdown: Optional[FitnessBreakdown] = None
    history: List[float] = field(default_factory=list)


def reference_usable_area(floor_plan: FloorPlan, usable_areas: Sequence[UsableArea]) -> float:
    """Denominator of space utilization: the declared usable area, else the extracted total."""
    if floor_plan.usable_area > 0:
        return float(floor_plan.usable_area)
    return float(sum(a.area for a in usable_areas))


class PlacementOptimizer:
    """
    Seeds every usable area, evolves the configuration and post-processes the best one.
    """

    def __init__(self, floor_plan: FloorPlan, usable_areas: Sequence[UsableArea],
                 config: Optional[PlacementConfig] = None, rng: Optional[np.random.Generator] = None):
        self.floor_plan = floor_plan
        self.usable_areas = list(usable_areas)
        self.config = config or PlacementConfig()
        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)
        self.stats = OptimizationStats()
        self.performance = PerformanceOptimizer(ProfilerMode.DISABLED, max_workers=self.config.workers)

        self.area_boxes = np.array([[b.min_x, b.min_y, b.max_x, b.max_y]
                                    for b in (a.bounding_box for a in self.usable_areas)],
                                   dtype=float).reshape(-1, 4)
        self.wall_segments = np.array([[w.start.x, w.start.y, w.end.x, w.end.y] for w in floor_plan.walls],
                                      dtype=float).reshape(-1, 4)
        self.wall_margins = np.array([w.thickness / 2 for w in floor_plan.walls], dtype=float)
        self.restricted_boxes = np.array(
            [[b.min_x, b.min_y, b.max_x, b.max_y]
             for b in (r.bounding_box for r in floor_plan.restricted_areas)], dtype=float).reshape(-1, 4)

        self.seeds: List[SeedBlock] = self._seed_blocks()
        self.sizes = np.array([[s.width, s.height] for s in self.seeds], dtype=float).reshape(-1, 2)
        self.half = self.sizes / 2
        self.home = np.array([s.area_index for s in self.seeds], dtype=int)
        self.seed_centers = np.array([[s.center.x, s.center.y] for s in self.seeds], dtype=float).reshape(-1, 2)

        self.evaluator = FitnessEvaluator(
            floor_plan,
            reference_usable_area(floor_plan, self.usable_areas),
            self.sizes,
            np.array([s.clearance for s in self.seeds], dtype=float),
            self.config,
        )

    def _seed_blocks(self) -> List[SeedBlock]:
        seeds = []
        for index, area in enumerate(self.usable_areas):
            for block in seed_layout(area.bounding_box, self.config, area_index=index):
                box = block.bounding_box
                if self._hits_obstacle(np.array([box.min_x, box.min_y, box.max_x, box.max_y])):
                    logger.debug(f"Skipping seed block at ({block.center.x:.0f}, {block.center.y:.0f}): obstacle")
                    continue
                seeds.append(block)
        logger.info(f"Seeded {len(seeds)} block(s) across {len(self.usable_areas)} usable area(s)")
        return seeds

    # ------------------------------------------------------------------ #
    # Constraint checks
    # ------------------------------------------------------------------ #

    def _hits_obstacle(self, box: np.ndarray) -> bool:
        boxes = box.reshape(1, 4)
        if len(self.restricted_boxes) and boxes_overlap(boxes, self.restricted_boxes).any():
            return True
        if len(self.wall_segments) and segments_intersect_boxes(self.wall_segments, boxes, self.wall_margins).any():
            return True
        return False

    def _box(self, index: int, center: np.ndarray) -> np.ndarray:
        return np.concatenate([center - self.half[index], center + self.half[index]])

    def _inside_home(self, index: int, box: np.ndarray) -> bool:
        area = self.area_boxes[self.home[index]]
        tol = CONTAINMENT_TOLERANCE
        return (box[0] >= area[0] - tol and box[1] >= area[1] - tol and
                box[2] <= area[2] + tol and box[3] <= area[3] + tol)

    def _overlaps_others(self, index: int, box: np.ndarray, centers: np.ndarray, active: np.ndarray) -> bool:
        others = active.copy()
        others[index] = False
        if not others.any():
            return False
        idx = np.flatnonzero(others)
        other_boxes = np.hstack([centers[idx] - self.half[idx], centers[idx] + self.half[idx]])
        return bool(boxes_overlap(box.reshape(1, 4), other_boxes).any())

    def _fits(self, index: int, center: np.ndarray, centers: np.ndarray, active: np.ndarray) -> bool:
        box = self._box(index, center)
        return (self._inside_home(index, box) and
                not self._overlaps_others(index, box, centers, active) and
                not self._hits_obstacle(box))

    def _stable_accept(self, centers: np.ndarray, active: np.ndarray) -> np.ndarray:
        """Keep blocks in gene order, dropping any that overlap an earlier kept one."""
        accepted = np.zeros(len(active), dtype=bool)
        for i in np.flatnonzero(active):
            box = self._box(i, centers[i])
            if self._overlaps_others(i, box, centers, accepted) or not self._inside_home(i, box):
                logger.debug(f"Dropping block {i}: overlaps an accepted block")
                continue
            accepted[i] = True
        return accepted

    def _clamp(self, index: int, center: np.ndarray) -> np.ndarray:
        """Pull a centre back so the block lies inside its home usable area."""
        area = self.area_boxes[self.home[index]]
        half = self.half[index]
        lo = area[:2] + half
        hi = area[2:] - half
        mid = (area[:2] + area[2:]) / 2
        return np.where(lo <= hi, np.clip(center, lo, np.maximum(lo, hi)), mid)

    # ------------------------------------------------------------------ #
    # Genetic operators
    # ------------------------------------------------------------------ #

    def _evaluate(self, layout: Layout) -> float:
        return self.evaluator.evaluate(layout.centers, layout.active).total

    def _evaluate_population(self, population: List[Layout]):
        pending = [layout for layout in population if layout.fitness is None]
        scores = self.performance.parallel_map(self._evaluate, pending)
        for layout, score in zip(pending, scores):
            layout.fitness = score
        self.stats.evaluations += len(pending)

    def _tournament(self, population: List[Layout]) -> Layout:
        size = min(self.config.genetic.tournament_size, len(population))
        picks = self.rng.integers(0, len(population), size=size)
        best = max(picks, key=lambda i: (population[i].fitness, -i))
        return population[best]

    def _crossover(self, first: Layout, second: Layout) -> Layout:
        """Take each block from one parent at random, falling back to the other on overlap."""
        n = len(self.seeds)
        centers = first.centers.copy()
        active = np.zeros(n, dtype=bool)
        for i in range(n):
            a, b = (first, second) if self.rng.random() < 0.5 else (second, first)
            for parent in (a, b):
                if not parent.active[i]:
                    continue
                box = self._box(i, parent.centers[i])
                if not self._overlaps_others(i, box, centers, active):
                    centers[i] = parent.centers[i]
                    active[i] = True
                    break
            else:
                centers[i] = a.centers[i]
        return Layout(centers, active)

    def _mutate(self, layout: Layout, probability: float):
        """Jitter block centres by up to +/- mutation_step, keeping only legal moves."""
        step = self.config.genetic.mutation_step
        for i in range(len(self.seeds)):
            if self.rng.random() >= probability:
                continue
            delta = self.rng.uniform(-step, step, size=2)
            base = layout.centers[i] if layout.active[i] else self.seed_centers[i]
            candidate = self._clamp(i, base + delta)
            if self._fits(i, candidate, layout.centers, layout.active):
                layout.centers[i] = candidate
                layout.active[i] = True
                layout.fitness = None

    # ------------------------------------------------------------------ #
    # Search
    # ------------------------------------------------------------------ #

    def _initial_population(self) -> List[Layout]:
        n = len(self.seeds)
        seed = Layout(self.seed_centers.copy(), self._stable_accept(self.seed_centers, np.ones(n, dtype=bool)))
        population = [seed]
        for _ in range(self.config.genetic.population_size - 1):
            individual = seed.copy()
            self._mutate(individual, probability=1.0)
            individual.fitness = None
            population.append(individual)
        return population

    def evolve(self) -> Layout:
        """Run the genetic search and return the best configuration ever seen."""
        genetic = self.config.genetic
        population = self._initial_population()
        self._evaluate_population(population)

        best = max(population, key=lambda layout: layout.fitness).copy()
        self.stats.history.append(best.fitness)
        elite_count = int(math.floor(genetic.population_size * genetic.elitism_rate))
        stagnant = 0

        progress = tqdm(range(genetic.generations), desc="Optimizing placement",
                        disable=not self.config.show_progress)
        for generation in progress:
            if genetic.max_evaluations is not None and \
                    self.stats.evaluations + genetic.population_size - elite_count > genetic.max_evaluations:
                logger.info(f"Evaluation budget of {genetic.max_evaluations} reached at generation {generation}")
                break

            ranked = sorted(range(len(population)), key=lambda i: -population[i].fitness)
            offspring = [population[i].copy() for i in ranked[:elite_count]]
            while len(offspring) < genetic.population_size:
                first = self._tournament(population)
                second = self._tournament(population)
                if self.rng.random() < genetic.crossover_rate:
                    child = self._crossover(first, second)
                else:
                    child = first.copy()
                    child.fitness = None
                self._mutate(child, genetic.mutation_rate)
                offspring.append(child)

            population = offspring
            self._evaluate_population(population)
            self.stats.generations_run = generation + 1

            leader = max(population, key=lambda layout: layout.fitness)
            if leader.fitness > best.fitness + EPSILON:
                best = leader.copy()
                stagnant = 0
            else:
                stagnant += 1
            self.stats.history.append(best.fitness)
            logger.debug(f"Generation {generation + 1}: best fitness {best.fitness:.3f}")

            if genetic.stagnation_limit is not None and stagnant >= genetic.stagnation_limit:
                logger.info(f"No improvement for {stagnant} generations, stopping at generation {generation + 1}")
                break

        self.stats.best_fitness = float(best.fitness)
        self.stats.best_breakdown = self.evaluator.evaluate(best.centers, best.active)
        return best

    # ------------------------------------------------------------------ #
    # Post-processing
    # ------------------------------------------------------------------ #

    def _snap_candidates(self, center: np.ndarray) -> List[np.ndarray]:
        grid = self.config.snap_grid
        if grid <= 0:
            return []
        xs = sorted({math.floor(center[0] / grid) * grid, math.ceil(center[0] / grid) * grid},
                    key=lambda v: (abs(v - center[0]), v))
        ys = sorted({math.floor(center[1] / grid) * grid, math.ceil(center[1] / grid) * grid},
                    key=lambda v: (abs(v - center[1]), v))
        candidates = [np.array([x, y]) for x in xs for y in ys]
        return sorted(candidates, key=lambda c: float(np.hypot(*(c - center))))

    def post_process(self, layout: Layout) -> Layout:
        """
        Drop overlaps (stable order), snap to the grid, then run damped spring relaxation.

        A relaxation move is kept only when the block still fits and the
        layout's fitness does not drop, so the springs never close the
        corridors the search left between blocks.
        """
        centers = layout.centers.copy()
        active = self._stable_accept(centers, layout.active)

        for i in np.flatnonzero(active):
            for candidate in self._snap_candidates(centers[i]):
                if self._fits(i, candidate, centers, active):
                    centers[i] = candidate
                    break

        optimal = self.config.optimal_spacing
        damping = self.config.relaxation_damping
        max_step = self.config.max_relaxation_step
        fitness = self.evaluator.evaluate(centers, active).total
        for _ in range(self.config.relaxation_passes):
            for i in np.flatnonzero(active):
                others = np.flatnonzero(active)
                others = others[others != i]
                if len(others) == 0:
                    break
                offsets = centers[others] - centers[i]
                dist = np.hypot(offsets[:, 0], offsets[:, 1])
                keep = dist > EPSILON
                if not keep.any():
                    continue
                pull = ((dist[keep] - optimal) / dist[keep])[:, np.newaxis] * offsets[keep]
                move = pull.sum(axis=0) * SPRING_CONSTANT * damping
                norm = float(np.hypot(*move))
                if norm < EPSILON:
                    continue
                if norm > max_step:
                    move *= max_step / norm
                candidate = self._clamp(i, centers[i] + move)
                if not self._fits(i, candidate, centers, active):
                    continue
                trial = centers.copy()
                trial[i] = candidate
                score = self.evaluator.evaluate(trial, active).total
                if score >= fitness - EPSILON:
                    centers, fitness = trial, score

        return Layout(centers, active)

    def to_blocks(self, layout: Layout) -> List[PlacementBlock]:
        counts = self.evaluator.clear_side_counts(layout.centers, layout.active)
        blocks = []
        for i in np.flatnonzero(layout.active):
            seed = self.seeds[i]
            w, h = self.sizes[i]
            blocks.append(PlacementBlock(
                id=f"block_{len(blocks) + 1:03d}",
                position=Point(float(layout.centers[i, 0]), float(layout.centers[i, 1])),
                width=float(w),
                height=float(h),
                area=float(w * h),
                size_class=seed.size_class,
                clearance=seed.clearance,
                accessible=bool(counts[i] >= MIN_CLEAR_SIDES),
            ))
        return blocks

    def optimize(self) -> List[PlacementBlock]:
        if not self.seeds:
            logger.info("No seed blocks fit the usable areas; nothing to optimize")
            return []
        best = self.evolve()
        final = self.post_process(best)
        blocks = self.to_blocks(final)
        logger.info(f"Placed {len(blocks)} block(s) after {self.stats.generations_run} generation(s), "
                    f"{self.stats.evaluations} evaluations, best fitness {self.stats.best_fitness:.2f}")
        return blocks


def optimize_placement(floor_plan: FloorPlan, usable_areas: Sequence[UsableArea], options=None,
                       seed: Optional[int] = None,
                       rng: Optional[np.random.Generator] = None) -> List[PlacementBlock]:
    """
    Place blocks inside the usable areas of a floor plan.

    Args:
        floor_plan: Validated floor plan
        usable_areas: Output of the usable-area extractor
        options: PlacementConfig, a dict of its fields, or None for defaults
        seed: Random seed; overrides ``options.seed``
        rng: Explicit random generator; overrides both seeds

    Returns:
        Disjoint blocks, each inside one usable area; empty when nothing fits
    """
    validate_floor_plan(floor_plan)
    config = coerce_config(PlacementConfig, options)
    if not usable_areas:
        logger.info("No usable areas supplied; returning no blocks")
        return []
    if rng is None:
        rng = np.random.default_rng(seed if seed is not None else config.seed)
    return PlacementOptimizer(floor_plan, usable_areas, config, rng).optimize()
