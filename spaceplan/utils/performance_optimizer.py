"""
Run Profiling and Parallel Evaluation

This module provides:
- Timing and resident-memory profiles of the pipeline entry points
- An optional cProfile session for the command line (--profile)
- Ordered thread-pool mapping used to score a generation of layouts
- A slow-call report for run_info.json
"""

import cProfile
import functools
import io
import logging
import pstats
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import psutil

logger = logging.getLogger(__name__)

PROFILE_STATS_LIMIT = 20
MEMORY_WARNING_MB = 1000.0


class ProfilerMode(Enum):
    """How much a PerformanceOptimizer records."""
    DISABLED = "disabled"
    BASIC = "basic"
    DETAILED = "detailed"


@dataclass
class CallProfile:
    """Accumulated timings of one profiled callable."""
    name: str
    calls: int = 0
    total_time: float = 0.0
    min_time: float = float('inf')
    max_time: float = 0.0
    memory_delta_mb: Optional[float] = None

    @property
    def avg_time(self) -> float:
        return self.total_time / self.calls if self.calls else 0.0

    def add(self, elapsed: float, memory_delta_mb: Optional[float]):
        self.calls += 1
        self.total_time += elapsed
        self.min_time = min(self.min_time, elapsed)
        self.max_time = max(self.max_time, elapsed)
        if memory_delta_mb is not None:
            self.memory_delta_mb = memory_delta_mb

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['avg_time'] = self.avg_time
        return data


class PerformanceOptimizer:
    """
    Profiles pipeline calls and maps independent work over a thread pool.

    BASIC mode records wall time and RSS growth per call; DETAILED also runs
    a cProfile session between start_profiling and stop_profiling.
    """

    def __init__(self, profiler_mode: ProfilerMode = ProfilerMode.BASIC, max_workers: int = 1):
        self.profiler_mode = profiler_mode
        self.max_workers = max(1, int(max_workers))
        self.profiles: Dict[str, CallProfile] = {}
        self.memory_tracker = MemoryTracker()
        self._session: Optional[cProfile.Profile] = None
        self._created = time.time()

    def start_profiling(self):
        if self.profiler_mode != ProfilerMode.DETAILED:
            return
        self._session = cProfile.Profile()
        self._session.enable()
        logger.info("cProfile session started")

    def stop_profiling(self) -> Optional[str]:
        """End the cProfile session; returns its cumulative-time table, or None when none ran."""
        session, self._session = self._session, None
        if session is None:
            return None
        session.disable()
        buffer = io.StringIO()
        pstats.Stats(session, stream=buffer).sort_stats('cumulative').print_stats(PROFILE_STATS_LIMIT)
        logger.info("cProfile session stopped")
        return buffer.getvalue()

    def profile_function(self, func: Callable, *args, **kwargs) -> Tuple[Any, Optional[CallProfile]]:
        """Call ``func`` and fold its timing into the profile stored under its name."""
        if self.profiler_mode == ProfilerMode.DISABLED:
            return func(*args, **kwargs), None

        name = getattr(func, '__name__', repr(func))
        memory_before = self.memory_tracker.get_memory_usage()
        started = time.time()
        result = func(*args, **kwargs)
        elapsed = time.time() - started
        memory_after = self.memory_tracker.get_memory_usage()

        delta = None
        if memory_before is not None and memory_after is not None:
            delta = memory_after - memory_before
        profile = self.profiles.setdefault(name, CallProfile(name))
        profile.add(elapsed, delta)
        logger.debug(f"{name} took {elapsed:.3f}s")
        return result, profile

    def profile_decorator(self, func: Callable) -> Callable:
        """Wrap ``func`` so every call is profiled; the wrapper returns just the result."""
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            return self.profile_function(func, *args, **kwargs)[0]
        return wrapper

    def parallel_map(self, func: Callable, items: Sequence[Any]) -> List[Any]:
        """
        Apply ``func`` to every item, on a thread pool when workers > 1.

        Results keep the order of ``items`` so callers reduce them exactly as
        they would a sequential loop.
        """
        if self.max_workers <= 1 or len(items) < 2:
            return [func(item) for item in items]
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            return list(executor.map(func, items))

    def get_performance_report(self) -> Dict[str, Any]:
        return {
            'total_runtime': time.time() - self._created,
            'memory_usage_mb': self.memory_tracker.get_memory_usage(),
            'peak_memory_mb': self.memory_tracker.peak_mb,
            'function_profiles': {name: p.to_dict() for name, p in self.profiles.items()},
            'bottlenecks': self.identify_bottlenecks(),
        }

    def identify_bottlenecks(self, threshold: float = 0.1) -> List[Dict[str, Any]]:
        """Profiled calls averaging more than ``threshold`` seconds (slowest first), plus high memory."""
        slow = sorted((p for p in self.profiles.values() if p.avg_time > threshold),
                      key=lambda p: p.avg_time, reverse=True)
        findings = [{'type': 'function', 'name': p.name, 'avg_time': p.avg_time, 'calls': p.calls}
                    for p in slow]

        current = self.memory_tracker.get_memory_usage()
        if current is not None and current > MEMORY_WARNING_MB:
            findings.append({'type': 'memory', 'usage_mb': current})
        return findings


class MemoryTracker:
    """Resident set size of this process, with the peak seen so far."""

    def __init__(self):
        self.process = psutil.Process()
        self.peak_mb = 0.0

    def get_memory_usage(self) -> Optional[float]:
        """Current RSS in MB, or None when the process cannot be inspected."""
        try:
            rss = self.process.memory_info().rss
        except psutil.Error:
            return None
        usage = rss / (1024 * 1024)
        self.peak_mb = max(self.peak_mb, usage)
        return usage
