"""Command-line entry point: analyze a floor plan and write the placement result."""

import argparse
import logging
import os
import sys
import time
from datetime import datetime
from typing import Any, Dict, Optional, Sequence

import orjson

from spaceplan.config import PipelineConfig, load_pipeline_config
from spaceplan.floor_plan import AnalysisResult, FloorPlan, parse_floor_plan_json
from spaceplan.pipeline import analyze_floor_plan, save_analysis_result
from spaceplan.preprocessing.floor_plan_generator import create_four_room_floor_plan, create_open_floor_plan
from spaceplan.utils.error_handling import ErrorHandler, LogLevel, SpacePlanError, configure_logging
from spaceplan.utils.performance_optimizer import PerformanceOptimizer, ProfilerMode

logger = logging.getLogger(__name__)

DEMO_PLANS = {
    'four_room': create_four_room_floor_plan,
    'open': create_open_floor_plan,
}

QUICK_MODE = {
    'grid_resolution': 100.0,
    'population_size': 12,
    'generations': 10,
}

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INVALID_INPUT = 2


def parse_args(argv: Optional[Sequence[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='Block placement and pathway network analysis of a floor plan')

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument('--floor-plan', type=str, default=None,
                        help='Path to a floor plan JSON file')
    source.add_argument('--demo', type=str, choices=sorted(DEMO_PLANS), default=None,
                        help='Analyze a built-in synthetic floor plan')

    parser.add_argument('--config', type=str, default=None,
                        help='Path to a pipeline configuration JSON file (optional)')
    parser.add_argument('--seed', type=int, default=None,
                        help='Random seed for the placement search')
    parser.add_argument('--grid-resolution', type=float, default=None,
                        help='Occupancy grid cell size in mm (default: from config, 50)')
    parser.add_argument('--population', type=int, default=None,
                        help='Genetic search population size')
    parser.add_argument('--generations', type=int, default=None,
                        help='Genetic search generation count')
    parser.add_argument('--workers', type=int, default=None,
                        help='Threads used for fitness evaluation')
    parser.add_argument('--quick-mode', action='store_true',
                        help='Coarser grid and a small search budget for fast runs')
    parser.add_argument('--output-dir', type=str, default=None,
                        help='Output directory (default: runs/run_<timestamp>)')
    parser.add_argument('--log-level', type=str, choices=[level.value for level in LogLevel], default='INFO',
                        help='Logging level (default: INFO)')
    parser.add_argument('--log-file', type=str, default=None,
                        help='Also write the log to this file')
    parser.add_argument('--profile', action='store_true',
                        help='Profile the run with cProfile and write profile.txt')

    return parser.parse_args(argv)


def setup_environment(argv: Optional[Sequence[str]] = None):
    """Parses arguments, sets up logging, and creates the output directory."""
    args = parse_args(argv)
    configure_logging(LogLevel(args.log_level), args.log_file)

    if args.output_dir:
        output_dir = args.output_dir
    else:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        output_dir = os.path.join("runs", f"run_{timestamp}")
    os.makedirs(output_dir, exist_ok=True)

    logger.info(f"Run output will be saved to: {output_dir}")
    return args, output_dir


def build_config(args) -> PipelineConfig:
    """Load the config file and apply command line overrides."""
    config = load_pipeline_config(args.config)
    placement = config.placement

    if args.quick_mode:
        config.extraction.grid_resolution = QUICK_MODE['grid_resolution']
        placement.genetic.population_size = QUICK_MODE['population_size']
        placement.genetic.generations = QUICK_MODE['generations']
        logger.info("Quick mode: coarse grid and reduced search budget")

    if args.grid_resolution is not None:
        config.extraction.grid_resolution = args.grid_resolution
    if args.population is not None:
        placement.genetic.population_size = args.population
    if args.generations is not None:
        placement.genetic.generations = args.generations
    if args.workers is not None:
        placement.workers = args.workers
    if args.seed is not None:
        placement.seed = args.seed
    placement.show_progress = True

    return config.validate()


def load_floor_plan(args) -> FloorPlan:
    if args.demo:
        logger.info(f"Using the built-in '{args.demo}' floor plan")
        return DEMO_PLANS[args.demo]()
    return parse_floor_plan_json(args.floor_plan)


def save_run_info(args, run_dir: str, config: PipelineConfig, result: AnalysisResult,
                  elapsed: float, performance: Optional[Dict[str, Any]] = None):
    """Save run configuration and summary metrics.

    Args:
        args: Command line arguments
        run_dir: Directory to save run information
        config: Effective pipeline configuration
        result: Analysis result of the run
        elapsed: Wall-clock seconds spent in the analysis
        performance: Optional profiler report
    """
    run_info = {
        'timestamp': time.strftime('%Y-%m-%d %H:%M:%S'),
        'source': args.floor_plan or f"demo:{args.demo}",
        'quick_mode': bool(args.quick_mode),
        'elapsed_seconds': elapsed,
        'configuration': config.to_dict(),
        'metrics': result.to_dict()['metrics'],
        'usable_areas': len(result.usable_areas),
        'pathways': len(result.pathways),
    }
    if performance is not None:
        run_info['performance'] = performance

    run_info_path = os.path.join(run_dir, 'run_info.json')
    with open(run_info_path, 'wb') as f:
        f.write(orjson.dumps(run_info, option=orjson.OPT_INDENT_2 | orjson.OPT_SERIALIZE_NUMPY))
    logger.info(f"Run information saved to {run_info_path}")


def log_summary(result: AnalysisResult):
    logger.info("Final Metrics:")
    logger.info(f"  - Usable areas: {len(result.usable_areas)}")
    logger.info(f"  - Blocks placed: {result.total_blocks} ({result.connected_blocks} connected)")
    logger.info(f"  - Pathways: {len(result.pathways)}, {result.total_pathway_length / 1000:.1f} m total")
    logger.info(f"  - Space utilization: {result.space_utilization:.1f}%")
    logger.info(f"  - Accessibility: {result.accessibility_score:.1f}%")
    logger.info(f"  - Clearance compliance: {result.clearance_compliance:.1f}%")
    logger.info(f"  - Efficiency: {result.efficiency:.1f}%")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the analysis described by the command line; returns the process exit code."""
    args, output_dir = setup_environment(argv)

    try:
        config = build_config(args)
        floor_plan = load_floor_plan(args)

        handler = ErrorHandler()
        profiler = PerformanceOptimizer(ProfilerMode.DETAILED if args.profile else ProfilerMode.BASIC)
        profiler.start_profiling()

        start_time = time.time()
        result = profiler.profile_decorator(analyze_floor_plan)(floor_plan, config, handler)
        elapsed = time.time() - start_time

        profile_text = profiler.stop_profiling()
        if profile_text:
            with open(os.path.join(output_dir, 'profile.txt'), 'w') as f:
                f.write(profile_text)

        save_analysis_result(result, os.path.join(output_dir, 'analysis_result.json'))
        save_run_info(args, output_dir, config, result, elapsed,
                      performance={**profiler.get_performance_report(),
                                   'stages': handler.get_validation_report()['performance_metrics']})
        log_summary(result)
    except (SpacePlanError, FileNotFoundError, ValueError) as e:
        logger.error(f"Invalid input: {e}")
        return EXIT_INVALID_INPUT
    except Exception as e:
        logger.exception(f"A critical error occurred: {e}")
        return EXIT_FAILURE

    logger.info("Process completed successfully.")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
