"""Pytest configuration and fixtures."""

import pytest
import sys
import os

# Add the repository root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from spaceplan.config import GeneticConfig, PlacementConfig
from spaceplan.floor_plan import FloorPlan, PlacementBlock, SizeClass, Wall
from spaceplan.geometry.primitives import Point


def rectangle(width, height, x=0.0, y=0.0):
    return (Point(x, y), Point(x + width, y), Point(x + width, y + height), Point(x, y + height))


def make_block(block_id, x, y, width=2000.0, height=2500.0, clearance=800.0):
    return PlacementBlock(
        id=block_id,
        position=Point(x, y),
        width=width,
        height=height,
        area=width * height,
        size_class=SizeClass.SMALL,
        clearance=clearance,
        accessible=True,
    )


@pytest.fixture
def open_plan():
    """Fixture for a 10 m x 8 m floor plan without walls."""
    return FloorPlan(bounds=rectangle(10000, 8000))


@pytest.fixture
def split_plan():
    """Fixture for a 10 m x 8 m floor plan split by a wall at x = 5 m."""
    return FloorPlan(
        walls=(Wall(Point(5000, 0), Point(5000, 8000), thickness=200, id="w1"),),
        bounds=rectangle(10000, 8000),
    )


@pytest.fixture
def empty_plan():
    """Fixture for a large plan used by the pathway tests."""
    return FloorPlan(bounds=rectangle(60000, 60000, x=-30000, y=-30000))


@pytest.fixture
def small_search():
    """Fixture for a placement config with a small genetic budget."""
    return PlacementConfig(genetic=GeneticConfig(population_size=8, generations=5))
