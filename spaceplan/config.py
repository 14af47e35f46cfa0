"""
Pipeline configuration.

Every tunable threshold of the three stages lives in one of the dataclasses
below; the defaults are the values the stages were calibrated with.
"""

import dataclasses
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Type, TypeVar

from spaceplan.utils.error_handling import ConfigurationError

logger = logging.getLogger(__name__)

VALIDATION_LIMITS = {
    'min_grid_resolution': 10.0,    # Finest grid cell in mm
    'max_grid_resolution': 1000.0,  # Coarsest grid cell in mm
    'max_population_size': 1000,
    'max_generations': 10000,
    'max_workers': 64,
    'max_pathways': 10000,
}

T = TypeVar('T')


def _require(condition: bool, message: str):
    if not condition:
        raise ConfigurationError(message)


@dataclass
class ExtractionConfig:
    """Usable-area extraction settings (lengths in mm, areas in mm²)."""
    grid_resolution: float = 50.0
    accessibility_clearance: float = 1200.0
    restricted_buffer: float = 1000.0
    min_region_area: float = 4_000_000.0
    door_depth: float = 200.0
    window_clearance: float = 600.0
    max_grid_cells: int = 4_000_000

    def validate(self) -> 'ExtractionConfig':
        _require(self.grid_resolution > 0, f"grid_resolution must be positive, got {self.grid_resolution}")
        _require(self.accessibility_clearance >= 0, "accessibility_clearance must be >= 0")
        _require(self.restricted_buffer >= 0, "restricted_buffer must be >= 0")
        _require(self.min_region_area >= 0, "min_region_area must be >= 0")
        _require(self.door_depth >= 0, "door_depth must be >= 0")
        _require(self.window_clearance >= 0, "window_clearance must be >= 0")
        _require(self.max_grid_cells >= 1, "max_grid_cells must be >= 1")
        return self


@dataclass
class GeneticConfig:
    """Genetic search parameters."""
    population_size: int = 50
    generations: int = 100
    mutation_rate: float = 0.1
    crossover_rate: float = 0.7
    elitism_rate: float = 0.2
    tournament_size: int = 3
    mutation_step: float = 250.0
    max_evaluations: Optional[int] = None
    stagnation_limit: Optional[int] = None

    def validate(self) -> 'GeneticConfig':
        _require(self.population_size >= 2, f"population_size must be >= 2, got {self.population_size}")
        _require(self.generations >= 0, "generations must be >= 0")
        _require(0.0 <= self.mutation_rate <= 1.0, f"mutation_rate must be in [0, 1], got {self.mutation_rate}")
        _require(0.0 <= self.crossover_rate <= 1.0, f"crossover_rate must be in [0, 1], got {self.crossover_rate}")
        _require(0.0 <= self.elitism_rate < 1.0, f"elitism_rate must be in [0, 1), got {self.elitism_rate}")
        _require(self.tournament_size >= 1, "tournament_size must be >= 1")
        _require(self.mutation_step >= 0, "mutation_step must be >= 0")
        _require(self.max_evaluations is None or self.max_evaluations >= 1, "max_evaluations must be >= 1")
        _require(self.stagnation_limit is None or self.stagnation_limit >= 1, "stagnation_limit must be >= 1")
        return self


@dataclass
class FitnessWeights:
    """Weights of the five fitness terms; they are normalised by their sum."""
    space_utilization: float = 0.25
    accessibility: float = 0.25
    clearance: float = 0.20
    regularity: float = 0.15
    proximity: float = 0.15

    def validate(self) -> 'FitnessWeights':
        values = dataclasses.astuple(self)
        _require(all(v >= 0 for v in values), "fitness weights must be >= 0")
        _require(sum(values) > 0, "at least one fitness weight must be positive")
        return self


@dataclass
class PlacementConfig:
    """Placement optimizer settings."""
    target_block_area: float = 8_000_000.0
    corridor_width: float = 1200.0
    block_spacing: float = 800.0
    row_clearance: float = 400.0
    access_width: float = 1200.0
    alignment_tolerance: float = 500.0
    optimal_spacing: float = 2000.0
    snap_grid: float = 100.0
    relaxation_passes: int = 10
    relaxation_damping: float = 0.1
    max_relaxation_step: float = 250.0
    seed: Optional[int] = None
    workers: int = 1
    show_progress: bool = False
    genetic: GeneticConfig = field(default_factory=GeneticConfig)
    weights: FitnessWeights = field(default_factory=FitnessWeights)

    def validate(self) -> 'PlacementConfig':
        _require(self.target_block_area > 0, "target_block_area must be positive")
        _require(self.corridor_width >= 0, "corridor_width must be >= 0")
        _require(self.block_spacing >= 0, "block_spacing must be >= 0")
        _require(self.row_clearance >= 0, "row_clearance must be >= 0")
        _require(self.access_width >= 0, "access_width must be >= 0")
        _require(self.alignment_tolerance >= 0, "alignment_tolerance must be >= 0")
        _require(self.optimal_spacing > 0, "optimal_spacing must be positive")
        _require(self.snap_grid >= 0, "snap_grid must be >= 0")
        _require(self.relaxation_passes >= 0, "relaxation_passes must be >= 0")
        _require(0.0 <= self.relaxation_damping <= 1.0, "relaxation_damping must be in [0, 1]")
        _require(self.max_relaxation_step >= 0, "max_relaxation_step must be >= 0")
        _require(self.workers >= 1, "workers must be >= 1")
        self.genetic.validate()
        self.weights.validate()
        return self


@dataclass
class PathwayConfig:
    """Pathway network settings."""
    width: float = 1200.0
    min_clearance: float = 600.0
    max_length: float = 15000.0
    accessible: bool = True
    alignment_tolerance: float = 800.0
    min_separation: float = 1500.0
    max_separation: float = 6000.0
    facing_margin: float = 600.0
    cluster_threshold: float = 6000.0
    spine_extension: float = 1000.0
    spine_width_factor: float = 1.5
    min_spine_blocks: int = 3
    touch_tolerance: float = 100.0
    block_buffer: float = 200.0
    simplify_tolerance: float = 100.0
    max_pathways: int = 500

    def validate(self) -> 'PathwayConfig':
        _require(self.width > 0, f"width must be positive, got {self.width}")
        _require(self.min_clearance >= 0, "min_clearance must be >= 0")
        _require(self.max_length > 0, "max_length must be positive")
        _require(self.alignment_tolerance >= 0, "alignment_tolerance must be >= 0")
        _require(0 <= self.min_separation <= self.max_separation,
                 "min_separation must be >= 0 and <= max_separation")
        _require(self.facing_margin >= 0, "facing_margin must be >= 0")
        _require(self.cluster_threshold >= 0, "cluster_threshold must be >= 0")
        _require(self.spine_extension >= 0, "spine_extension must be >= 0")
        _require(self.spine_width_factor > 0, "spine_width_factor must be positive")
        _require(self.min_spine_blocks >= 1, "min_spine_blocks must be >= 1")
        _require(self.touch_tolerance >= 0, "touch_tolerance must be >= 0")
        _require(self.block_buffer >= 0, "block_buffer must be >= 0")
        _require(self.simplify_tolerance >= 0, "simplify_tolerance must be >= 0")
        _require(self.max_pathways >= 1, "max_pathways must be >= 1")
        return self


@dataclass
class PipelineConfig:
    """Settings for a whole analysis run."""
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    placement: PlacementConfig = field(default_factory=PlacementConfig)
    pathways: PathwayConfig = field(default_factory=PathwayConfig)

    def validate(self) -> 'PipelineConfig':
        self.extraction.validate()
        self.placement.validate()
        self.pathways.validate()
        return self

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PipelineConfig':
        return config_from_dict(cls, data)


def config_from_dict(cls: Type[T], data: Dict[str, Any]) -> T:
    """Build a config dataclass from a mapping, recursing into nested configs."""
    if not isinstance(data, dict):
        raise ConfigurationError(f"{cls.__name__} expects a mapping, got {type(data).__name__}")
    known = {f.name: f for f in dataclasses.fields(cls)}
    unknown = sorted(set(data) - set(known))
    if unknown:
        logger.warning(f"Ignoring unknown {cls.__name__} keys: {unknown}")

    kwargs = {}
    for name, value in data.items():
        if name not in known:
            continue
        default = known[name].default_factory() if known[name].default_factory is not dataclasses.MISSING else None
        if dataclasses.is_dataclass(default) and isinstance(value, dict):
            value = config_from_dict(type(default), value)
        kwargs[name] = value
    try:
        return cls(**kwargs)
    except TypeError as e:
        raise ConfigurationError(f"Invalid {cls.__name__}: {e}") from e


def coerce_config(cls: Type[T], value: Any) -> T:
    """Accept a config instance, a mapping of its fields or None (defaults), validated."""
    if value is None:
        config = cls()
    elif isinstance(value, cls):
        config = value
    elif isinstance(value, dict):
        config = config_from_dict(cls, value)
    else:
        raise ConfigurationError(f"Expected {cls.__name__}, dict or None, got {type(value).__name__}")
    return config.validate()


def _clamp(value, low, high, name):
    clamped = min(max(value, low), high)
    if clamped != value:
        logger.warning(f"{name}={value} is outside [{low}, {high}]. Clamping to {clamped}.")
    return clamped


def load_pipeline_config(config_path: Optional[str]) -> PipelineConfig:
    """Loads a pipeline configuration JSON file, clamping values to VALIDATION_LIMITS."""
    if not config_path:
        logger.info("No pipeline config provided. Using defaults.")
        return PipelineConfig()

    if not os.path.exists(config_path):
        logger.error(f"Configuration file not found: {config_path}. Aborting.")
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Config file {config_path} is not valid JSON: {e}") from e

    config = PipelineConfig.from_dict(data)

    config.extraction.grid_resolution = _clamp(
        config.extraction.grid_resolution, VALIDATION_LIMITS['min_grid_resolution'],
        VALIDATION_LIMITS['max_grid_resolution'], 'grid_resolution')
    genetic = config.placement.genetic
    genetic.population_size = _clamp(genetic.population_size, 2,
                                     VALIDATION_LIMITS['max_population_size'], 'population_size')
    genetic.generations = _clamp(genetic.generations, 0,
                                 VALIDATION_LIMITS['max_generations'], 'generations')
    config.placement.workers = _clamp(config.placement.workers, 1,
                                      VALIDATION_LIMITS['max_workers'], 'workers')
    config.pathways.max_pathways = _clamp(config.pathways.max_pathways, 1,
                                          VALIDATION_LIMITS['max_pathways'], 'max_pathways')

    config.validate()
    logger.info("Configuration loaded and validated successfully.")
    return config
