"""
Synthetic Floor Plans

Builds rectangular floor plans from rooms, walls, openings and restricted
areas for demos and tests.

This module provides:
- FloorPlanGenerator, a small builder over the floor plan records
- The open and four-room demo plans offered by the command line
"""

import logging
from typing import List, Optional, Tuple

from spaceplan.floor_plan import (
    DoorSwing, FloorPlan, Opening, OpeningKind, RestrictedArea, RestrictedKind, Wall,
)
from spaceplan.geometry.primitives import Point

logger = logging.getLogger(__name__)

DEFAULT_WALL_THICKNESS = 200.0
DEFAULT_DOOR_WIDTH = 900.0
DEFAULT_WINDOW_WIDTH = 1200.0


class FloorPlanGenerator:
    """Builds synthetic rectangular floor plans for demos and tests."""

    def __init__(self, width: float, height: float, wall_thickness: float = DEFAULT_WALL_THICKNESS,
                 plan_id: str = "generated"):
        self.width = width
        self.height = height
        self.wall_thickness = wall_thickness
        self.plan_id = plan_id
        self.walls: List[Wall] = []
        self.openings: List[Opening] = []
        self.restricted_areas: List[RestrictedArea] = []

    def add_room(self, x, y, width, height):
        """Add a room as its four enclosing walls."""
        corners = [(x, y), (x + width, y), (x + width, y + height), (x, y + height)]
        for i in range(4):
            self.add_wall(corners[i], corners[(i + 1) % 4])

    def add_wall(self, start: Tuple[float, float], end: Tuple[float, float],
                 thickness: Optional[float] = None):
        self.walls.append(Wall(
            start=Point(*start),
            end=Point(*end),
            thickness=self.wall_thickness if thickness is None else thickness,
            id=f"wall_{len(self.walls) + 1}",
        ))

    def add_door(self, x, y, width=DEFAULT_DOOR_WIDTH, angle=0.0, swing="in"):
        self.openings.append(Opening(
            position=Point(x, y),
            width=width,
            kind=OpeningKind.DOOR,
            attributes={'swing': DoorSwing(swing).value, 'angle': angle},
            id=f"door_{len(self.openings) + 1}",
        ))

    def add_window(self, x, y, width=DEFAULT_WINDOW_WIDTH, angle=0.0, sill_height=900.0):
        self.openings.append(Opening(
            position=Point(x, y),
            width=width,
            height=1200.0,
            kind=OpeningKind.WINDOW,
            attributes={'angle': angle, 'sill_height': sill_height},
            id=f"window_{len(self.openings) + 1}",
        ))

    def add_restricted_area(self, min_x, min_y, max_x, max_y, kind="no_entry", description=""):
        self.restricted_areas.append(RestrictedArea(
            bounds=(Point(min_x, min_y), Point(max_x, min_y), Point(max_x, max_y), Point(min_x, max_y)),
            kind=RestrictedKind(kind),
            id=f"restricted_{len(self.restricted_areas) + 1}",
            description=description,
        ))

    def build(self, usable_area: float = 0.0) -> FloorPlan:
        """Assemble the FloorPlan; the total area is computed from the outline."""
        plan = FloorPlan(
            walls=self.walls,
            openings=self.openings,
            restricted_areas=self.restricted_areas,
            bounds=(Point(0, 0), Point(self.width, 0), Point(self.width, self.height), Point(0, self.height)),
            usable_area=usable_area,
            id=self.plan_id,
        )
        logger.debug(f"Built floor plan {plan.id}: {len(plan.walls)} walls, {len(plan.openings)} openings, "
                     f"{len(plan.restricted_areas)} restricted areas")
        return plan


def create_four_room_floor_plan() -> FloorPlan:
    """15 m x 12 m plan split into four rooms by a cross of walls with door gaps."""
    generator = FloorPlanGenerator(width=15000, height=12000, plan_id="four_room")

    generator.add_wall((7500, 0), (7500, 5000))
    generator.add_wall((7500, 7000), (7500, 12000))
    generator.add_wall((0, 6000), (6500, 6000))
    generator.add_wall((8500, 6000), (15000, 6000))

    generator.add_door(7000, 6000, angle=0.0, swing="in")
    generator.add_door(7500, 6500, angle=90.0, swing="sliding")

    generator.add_restricted_area(500, 500, 1500, 1500, kind="structural", description="column")
    generator.add_restricted_area(13500, 10500, 14500, 11500, kind="mechanical", description="riser")

    return generator.build(usable_area=153_000_000.0)


def create_open_floor_plan(width: float = 12000, height: float = 8000) -> FloorPlan:
    """A rectangle with no walls, openings or restricted areas."""
    return FloorPlanGenerator(width=width, height=height, plan_id="open").build()
