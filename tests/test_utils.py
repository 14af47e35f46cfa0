"""Tests for error handling, logging and performance utilities."""

import json
import logging
import time

import pytest

from conftest import rectangle
from spaceplan.extraction.usable_area import extract_usable_areas
from spaceplan.floor_plan import DoorSwing, FloorPlan, Opening, RestrictedArea, Wall
from spaceplan.geometry.primitives import Point
from spaceplan.utils import error_handling
from spaceplan.utils.error_handling import (
    ErrorHandler, ErrorSeverity, FloorPlanValidationError, LogLevel, configure_logging, validate_floor_plan,
)
from spaceplan.utils.performance_optimizer import MemoryTracker, PerformanceOptimizer, ProfilerMode


@pytest.fixture
def restore_logging():
    """Fixture removing the handlers installed by configure_logging."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in error_handling._installed_handlers:
        root.removeHandler(handler)
        handler.close()
    error_handling._installed_handlers.clear()
    root.setLevel(level)


class TestValidation:
    """Test structural floor plan validation."""

    def test_valid_plan(self, split_plan):
        assert validate_floor_plan(split_plan) == []

    def test_degenerate_bounds(self):
        with pytest.raises(FloorPlanValidationError) as info:
            validate_floor_plan(FloorPlan(bounds=(Point(0, 0), Point(10, 0))))
        assert info.value.issues[0].field_name == 'bounds'

    def test_zero_area_bounds(self):
        with pytest.raises(FloorPlanValidationError) as info:
            validate_floor_plan(FloorPlan(bounds=(Point(0, 0), Point(10, 0), Point(20, 0))))
        assert info.value.issues[0].severity == ErrorSeverity.CRITICAL

    def test_non_finite_bounds(self):
        plan = FloorPlan(bounds=(Point(0, 0), Point(float('nan'), 0), Point(10, 10)))
        with pytest.raises(FloorPlanValidationError):
            validate_floor_plan(plan)

    def test_degenerate_restricted_area(self):
        plan = FloorPlan(restricted_areas=(RestrictedArea(bounds=(Point(1, 1),)),), bounds=rectangle(100, 100))
        with pytest.raises(FloorPlanValidationError):
            validate_floor_plan(plan)

    def test_non_finite_wall(self):
        plan = FloorPlan(walls=(Wall(Point(0, 0), Point(float('nan'), 10), id="w1"),), bounds=rectangle(100, 100))
        with pytest.raises(FloorPlanValidationError):
            validate_floor_plan(plan)

    def test_negative_wall_thickness(self):
        plan = FloorPlan(walls=(Wall(Point(0, 0), Point(10, 0), thickness=-1),), bounds=rectangle(100, 100))
        with pytest.raises(FloorPlanValidationError):
            validate_floor_plan(plan)

    def test_negative_opening_width(self):
        plan = FloorPlan(openings=(Opening(Point(5, 5), -900),), bounds=rectangle(100, 100))
        with pytest.raises(FloorPlanValidationError):
            validate_floor_plan(plan)

    def test_unknown_door_swing(self):
        plan = FloorPlan(openings=(Opening(Point(5, 5), 900, attributes={'swing': 'left'}, id="d1"),),
                         bounds=rectangle(100, 100))
        with pytest.raises(FloorPlanValidationError) as info:
            validate_floor_plan(plan)
        assert info.value.issues[0].field_name == 'opening[d1].swing'

    def test_known_door_swings(self):
        for swing in ('in', 'out', 'sliding', DoorSwing.OUT):
            plan = FloorPlan(openings=(Opening(Point(5, 5), 900, attributes={'swing': swing}),),
                             bounds=rectangle(100, 100))
            assert validate_floor_plan(plan) == []

    def test_invalid_opening_angle(self):
        for angle in ('diagonal', float('inf'), None):
            plan = FloorPlan(openings=(Opening(Point(5, 5), 900, attributes={'angle': angle}, id="d1"),),
                             bounds=rectangle(100, 100))
            with pytest.raises(FloorPlanValidationError) as info:
                validate_floor_plan(plan)
            assert info.value.issues[0].field_name == 'opening[d1].angle'

    def test_numeric_opening_angle(self):
        plan = FloorPlan(openings=(Opening(Point(5, 5), 900, attributes={'angle': '90'}),),
                         bounds=rectangle(100, 100))
        assert validate_floor_plan(plan) == []

    def test_extraction_rejects_bad_swing(self):
        """Stages report bad opening attributes as validation errors, not raw ValueErrors."""
        plan = FloorPlan(openings=(Opening(Point(5000, 0), 900, attributes={'swing': 'left'}),),
                         bounds=rectangle(10000, 8000))
        with pytest.raises(FloorPlanValidationError):
            extract_usable_areas(plan)

    def test_wall_outside_bounds_is_a_warning(self):
        plan = FloorPlan(walls=(Wall(Point(0, 0), Point(500, 0), id="w9"),), bounds=rectangle(100, 100))
        handler = ErrorHandler()
        issues = handler.validate_floor_plan(plan)
        assert len(issues) == 1
        assert issues[0].severity == ErrorSeverity.LOW
        assert handler.warning_count == 1

    def test_collect_without_raising(self):
        handler = ErrorHandler()
        issues = handler.validate_floor_plan(FloorPlan(bounds=()), raise_on_error=False)
        assert issues[0].severity == ErrorSeverity.CRITICAL
        assert handler.error_count == 1
        assert not handler.get_validation_report()['validation_passed']


class TestErrorHandler:
    """Test stage monitoring and reporting."""

    def test_performance_monitor_records_time(self):
        handler = ErrorHandler()

        @handler.performance_monitor("nap")
        def nap():
            time.sleep(0.01)
            return 5

        assert nap() == 5
        assert handler.performance_metrics[0].operation_name == "nap"
        assert handler.performance_metrics[0].execution_time > 0
        assert handler.performance_metrics[0].succeeded

    def test_performance_monitor_reraises(self):
        handler = ErrorHandler()

        @handler.performance_monitor()
        def broken():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            broken()
        assert handler.performance_metrics[0].operation_name == "broken"
        assert not handler.performance_metrics[0].succeeded
        assert handler.error_count == 1

    def test_save_error_report(self, tmp_path):
        handler = ErrorHandler()
        handler.validate_floor_plan(FloorPlan(bounds=()), raise_on_error=False)
        path = tmp_path / "errors.json"
        handler.save_error_report(str(path))
        report = json.loads(path.read_text())
        assert report['critical_errors'] == 1
        assert report['detailed_errors'][0]['field_name'] == 'bounds'

    def test_clear_errors(self):
        handler = ErrorHandler()
        handler.validate_floor_plan(FloorPlan(bounds=()), raise_on_error=False)
        handler.clear_errors()
        assert handler.get_validation_report()['total_errors'] == 0


class TestLogging:
    """Test logging configuration."""

    def test_repeated_configuration_replaces_handlers(self, restore_logging):
        configure_logging(LogLevel.INFO)
        configure_logging(LogLevel.DEBUG)
        root = logging.getLogger()
        installed = [h for h in root.handlers if h in error_handling._installed_handlers]
        assert len(installed) == 1
        assert root.level == logging.DEBUG

    def test_log_file(self, tmp_path, restore_logging):
        log_file = tmp_path / "run.log"
        configure_logging(LogLevel.WARNING, str(log_file))
        logging.getLogger("spaceplan.test").warning("written to file")
        assert "written to file" in log_file.read_text()


class TestPerformanceOptimizer:
    """Test profiling and parallel mapping."""

    def test_profile_function(self):
        optimizer = PerformanceOptimizer(ProfilerMode.BASIC)
        result, profile = optimizer.profile_function(sum, [1, 2, 3])
        assert result == 6
        assert profile.calls == 1
        optimizer.profile_function(sum, [4])
        assert optimizer.profiles['sum'].calls == 2
        assert 'sum' in optimizer.get_performance_report()['function_profiles']

    def test_profile_decorator(self):
        optimizer = PerformanceOptimizer(ProfilerMode.BASIC)

        @optimizer.profile_decorator
        def scale(values, factor=2):
            """Multiply every value."""
            return [v * factor for v in values]

        assert scale([1, 2]) == [2, 4]
        assert scale([3], factor=3) == [9]
        assert scale.__name__ == 'scale'
        assert scale.__doc__ == "Multiply every value."
        assert optimizer.profiles['scale'].calls == 2

    def test_profile_decorator_when_disabled(self):
        optimizer = PerformanceOptimizer(ProfilerMode.DISABLED)
        assert optimizer.profile_decorator(min)(4, 1) == 1
        assert optimizer.profiles == {}

    def test_disabled_profiling(self):
        optimizer = PerformanceOptimizer(ProfilerMode.DISABLED)
        assert optimizer.profile_function(max, 1, 2) == (2, None)
        assert optimizer.profiles == {}

    def test_detailed_profiling_text(self):
        optimizer = PerformanceOptimizer(ProfilerMode.DETAILED)
        optimizer.start_profiling()
        sorted(range(1000), reverse=True)
        text = optimizer.stop_profiling()
        assert "function calls" in text
        assert optimizer.stop_profiling() is None

    @pytest.mark.parametrize("workers", [1, 4])
    def test_parallel_map_keeps_order(self, workers):
        optimizer = PerformanceOptimizer(max_workers=workers)
        assert optimizer.parallel_map(lambda x: x * x, list(range(20))) == [x * x for x in range(20)]

    def test_identify_bottlenecks(self):
        optimizer = PerformanceOptimizer()
        optimizer.profile_function(time.sleep, 0.02)
        bottlenecks = optimizer.identify_bottlenecks(threshold=0.01)
        assert bottlenecks[0]['name'] == 'sleep'

    def test_memory_tracker(self):
        tracker = MemoryTracker()
        assert tracker.get_memory_usage() > 0
        assert tracker.peak_mb > 0


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
