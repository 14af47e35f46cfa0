"""
Error Handling and Logging for the Placement Pipeline

This module provides:
- The exception types raised by the pipeline
- Structural validation of floor plans before any stage runs
- Logging configuration for the command line entry point
- Stage timing through a performance monitoring decorator
"""

import functools
import json
import logging
import math
import sys
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from spaceplan.floor_plan import DoorSwing

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'

# Handlers added by configure_logging, replaced on the next call.
_installed_handlers: List[logging.Handler] = []


class LogLevel(Enum):
    """Console log levels accepted by configure_logging and --log-level."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ErrorSeverity(Enum):
    """Severity of a ValidationIssue; CRITICAL issues abort the run."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SpacePlanError(Exception):
    """Base class for errors raised by the placement pipeline."""


class ConfigurationError(SpacePlanError, ValueError):
    """A configuration value is out of range or of the wrong type."""


class FloorPlanValidationError(SpacePlanError, ValueError):
    """A floor plan violates the structural input contract."""

    def __init__(self, message: str, issues: Optional[List['ValidationIssue']] = None):
        super().__init__(message)
        self.issues = issues or []


@dataclass
class ValidationIssue:
    """One problem found in a floor plan."""
    field_name: str
    value: Any
    constraint: str
    severity: ErrorSeverity
    message: str


@dataclass
class PerformanceMetric:
    """Wall time of one monitored pipeline stage."""
    operation_name: str
    execution_time: float
    succeeded: bool = True
    timestamp: float = field(default_factory=time.time)


def configure_logging(level: LogLevel = LogLevel.INFO, log_file: Optional[str] = None) -> None:
    """Install console (and optional file) handlers on the root logger."""
    formatter = logging.Formatter(LOG_FORMAT)

    root_logger = logging.getLogger()
    for handler in _installed_handlers:
        root_logger.removeHandler(handler)
        handler.close()
    _installed_handlers.clear()
    root_logger.setLevel(getattr(logging, level.value))

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, level.value))
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)
    _installed_handlers.append(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)  # Always log everything to file
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        _installed_handlers.append(file_handler)

    logger.info(f"Logging configured - Level: {level.value}, File: {log_file}")


class ErrorHandler:
    """
    Collects validation issues and stage timings for one pipeline run.
    """

    def __init__(self):
        self.validation_issues: List[ValidationIssue] = []
        self.performance_metrics: List[PerformanceMetric] = []
        self.error_count = 0
        self.warning_count = 0

    def _record(self, issue: ValidationIssue):
        self.validation_issues.append(issue)
        if issue.severity in (ErrorSeverity.CRITICAL, ErrorSeverity.HIGH):
            self.error_count += 1
            logger.error(f"Validation error: {issue.message}")
        else:
            self.warning_count += 1
            logger.warning(f"Validation warning: {issue.message}")

    def validate_floor_plan(self, floor_plan, raise_on_error: bool = True) -> List[ValidationIssue]:
        """
        Check a floor plan against the structural input contract.

        Args:
            floor_plan: FloorPlan to validate
            raise_on_error: Raise FloorPlanValidationError on critical issues

        Returns:
            The issues found for this floor plan (warnings included)
        """
        issues: List[ValidationIssue] = []

        def add(field_name, value, constraint, severity, message):
            issue = ValidationIssue(field_name, value, constraint, severity, message)
            issues.append(issue)
            self._record(issue)

        bounds = floor_plan.bounds
        if len(bounds) < 3:
            add('bounds', len(bounds), 'min_length=3', ErrorSeverity.CRITICAL,
                f"Floor plan bounds need at least 3 points, got {len(bounds)}")
        elif not all(math.isfinite(p.x) and math.isfinite(p.y) for p in bounds):
            add('bounds', bounds, 'finite', ErrorSeverity.CRITICAL,
                "Floor plan bounds contain non-finite coordinates")
        else:
            box = floor_plan.bounding_box
            if box.width <= 0 or box.height <= 0:
                add('bounds', (box.width, box.height), 'area>0', ErrorSeverity.CRITICAL,
                    f"Floor plan bounds have zero area ({box.width} x {box.height} mm)")

        for wall in floor_plan.walls:
            if not all(math.isfinite(v) for v in (wall.start.x, wall.start.y, wall.end.x, wall.end.y)):
                add(f'wall[{wall.id}]', wall, 'finite', ErrorSeverity.CRITICAL,
                    f"Wall {wall.id} has non-finite coordinates")
            elif wall.thickness < 0:
                add(f'wall[{wall.id}].thickness', wall.thickness, 'min=0', ErrorSeverity.CRITICAL,
                    f"Wall {wall.id} has negative thickness {wall.thickness}")

        for opening in floor_plan.openings:
            if opening.width < 0 or not math.isfinite(opening.width):
                add(f'opening[{opening.id}].width', opening.width, 'min=0', ErrorSeverity.CRITICAL,
                    f"Opening {opening.id} has invalid width {opening.width}")
            swing = opening.attributes.get('swing', DoorSwing.IN)
            if not isinstance(swing, DoorSwing) and swing not in [s.value for s in DoorSwing]:
                add(f'opening[{opening.id}].swing', swing, 'one_of=in,out,sliding', ErrorSeverity.CRITICAL,
                    f"Opening {opening.id} has unknown swing {swing!r}")
            raw_angle = opening.attributes.get('angle', 0.0)
            try:
                angle = float(raw_angle)
            except (TypeError, ValueError):
                angle = math.nan
            if not math.isfinite(angle):
                add(f'opening[{opening.id}].angle', raw_angle, 'finite', ErrorSeverity.CRITICAL,
                    f"Opening {opening.id} has invalid angle {raw_angle!r}")

        for area in floor_plan.restricted_areas:
            if len(area.bounds) < 2:
                add(f'restricted_area[{area.id}]', len(area.bounds), 'min_length=2', ErrorSeverity.CRITICAL,
                    f"Restricted area {area.id} needs at least 2 points")

        critical = [i for i in issues if i.severity == ErrorSeverity.CRITICAL]
        if not critical and len(bounds) >= 3:
            box = floor_plan.bounding_box.expand(1.0)
            outside = [w.id for w in floor_plan.walls
                       if not (box.contains_point(w.start) and box.contains_point(w.end))]
            if outside:
                add('walls', outside, 'inside_bounds', ErrorSeverity.LOW,
                    f"{len(outside)} wall(s) extend outside the floor plan bounds: {outside[:5]}")

        if critical and raise_on_error:
            raise FloorPlanValidationError(
                "; ".join(i.message for i in critical), issues=critical)
        return issues

    def performance_monitor(self, operation_name: str = ""):
        """
        Decorator recording the wall time of a stage, failed calls included.

        Usage:
            extract = handler.performance_monitor("usable_area_extraction")(extract_usable_areas)
        """
        def decorator(func: Callable) -> Callable:
            @functools.wraps(func)
            def wrapper(*args, **kwargs):
                name = operation_name or func.__name__
                start_time = time.time()
                logger.debug(f"Starting operation: {name}")
                try:
                    result = func(*args, **kwargs)
                except Exception as e:
                    execution_time = time.time() - start_time
                    self.error_count += 1
                    self.performance_metrics.append(
                        PerformanceMetric(name, execution_time, succeeded=False))
                    logger.error(f"Operation {name} failed after {execution_time:.4f}s: "
                                 f"{type(e).__name__}: {e}")
                    raise
                execution_time = time.time() - start_time
                self.performance_metrics.append(PerformanceMetric(name, execution_time))
                logger.debug(f"Operation {name} completed in {execution_time:.4f}s")
                return result
            return wrapper
        return decorator

    def get_validation_report(self) -> Dict[str, Any]:
        """Summary of the issues and stage timings collected so far."""
        by_severity = {s: [i for i in self.validation_issues if i.severity == s] for s in ErrorSeverity}
        times = [m.execution_time for m in self.performance_metrics]

        return {
            'total_errors': len(self.validation_issues),
            'critical_errors': len(by_severity[ErrorSeverity.CRITICAL]),
            'high_errors': len(by_severity[ErrorSeverity.HIGH]),
            'medium_errors': len(by_severity[ErrorSeverity.MEDIUM]),
            'low_errors': len(by_severity[ErrorSeverity.LOW]),
            'error_count': self.error_count,
            'warning_count': self.warning_count,
            'validation_passed': len(by_severity[ErrorSeverity.CRITICAL]) == 0,
            'performance_metrics': {
                'total_operations': len(self.performance_metrics),
                'avg_execution_time': float(np.mean(times)) if times else 0.0,
                'max_execution_time': max(times) if times else 0.0,
                'min_execution_time': min(times) if times else 0.0,
                'operations': {m.operation_name: m.execution_time for m in self.performance_metrics},
            },
            'detailed_errors': [
                {
                    'field_name': i.field_name,
                    'severity': i.severity.value,
                    'message': i.message
                }
                for i in self.validation_issues
            ]
        }

    def save_error_report(self, filepath: str):
        """Write get_validation_report() to ``filepath`` as JSON."""
        report = self.get_validation_report()
        with open(filepath, 'w') as f:
            json.dump(report, f, indent=2, default=str)
        logger.info(f"Error report saved to {filepath}")

    def clear_errors(self):
        """Forget collected issues and timings."""
        self.validation_issues.clear()
        self.performance_metrics.clear()
        self.error_count = 0
        self.warning_count = 0


def validate_floor_plan(floor_plan) -> List[ValidationIssue]:
    """Validate a floor plan, raising FloorPlanValidationError on contract violations."""
    return ErrorHandler().validate_floor_plan(floor_plan, raise_on_error=True)
