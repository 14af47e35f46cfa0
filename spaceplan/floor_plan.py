#!/usr/bin/env python3
"""
Floor Plan Data Model
Walls, openings, restricted zones and the records produced by the placement pipeline
(usable areas, placement blocks, pathways and the aggregate analysis result).
"""

import json
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from spaceplan.geometry.primitives import BoundingBox, Point, bounding_box, polygon_area

logger = logging.getLogger(__name__)

UNIT_TO_MM = {
    'mm': 1.0,
    'cm': 10.0,
    'm': 1000.0,
    'in': 25.4,
    'ft': 304.8,
}


class OpeningKind(Enum):
    """Kinds of wall openings."""
    DOOR = "door"
    WINDOW = "window"


class DoorSwing(Enum):
    """How a door leaf moves."""
    IN = "in"
    OUT = "out"
    SLIDING = "sliding"


class RestrictedKind(Enum):
    """Reasons a zone is closed to placement."""
    NO_ENTRY = "no_entry"
    STRUCTURAL = "structural"
    MECHANICAL = "mechanical"
    ELECTRICAL = "electrical"


class SizeClass(Enum):
    """Placement block size categories."""
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


class PathwayKind(Enum):
    """Circulation pathway categories."""
    MAIN = "main"
    SECONDARY = "secondary"
    EMERGENCY = "emergency"


@dataclass(frozen=True)
class Wall:
    """A straight obstacle segment with lateral thickness."""
    start: Point
    end: Point
    thickness: float = 200.0
    id: str = ""
    layer: str = "WALLS"
    material: Optional[str] = None

    @property
    def length(self) -> float:
        return self.start.distance_to(self.end)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'start': self.start.to_dict(),
            'end': self.end.to_dict(),
            'thickness': float(self.thickness),
            'layer': self.layer,
            'material': self.material,
        }


@dataclass(frozen=True)
class Opening:
    """A door or window: a point obstacle with a clearance zone."""
    position: Point
    width: float
    height: float = 2100.0
    kind: OpeningKind = OpeningKind.DOOR
    attributes: Dict[str, Any] = field(default_factory=dict, hash=False, compare=True)
    id: str = ""

    @property
    def swing(self) -> DoorSwing:
        return DoorSwing(self.attributes.get('swing', 'in'))

    @property
    def angle(self) -> float:
        """Orientation of the opening along its wall, in degrees."""
        return float(self.attributes.get('angle', 0.0))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'position': self.position.to_dict(),
            'width': float(self.width),
            'height': float(self.height),
            'kind': self.kind.value,
            'attributes': dict(self.attributes),
        }


@dataclass(frozen=True)
class RestrictedArea:
    """A no-placement zone outlined by its points; two points span a rectangle."""
    bounds: Tuple[Point, ...]
    kind: RestrictedKind = RestrictedKind.NO_ENTRY
    id: str = ""
    description: str = ""

    def __post_init__(self):
        object.__setattr__(self, 'bounds', tuple(self.bounds))

    @property
    def bounding_box(self) -> BoundingBox:
        return bounding_box(self.bounds)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'bounds': [p.to_dict() for p in self.bounds],
            'type': self.kind.value,
            'description': self.description,
        }


@dataclass(frozen=True)
class FloorPlan:
    """The complete, read-only input of the placement pipeline."""
    walls: Tuple[Wall, ...] = ()
    openings: Tuple[Opening, ...] = ()
    restricted_areas: Tuple[RestrictedArea, ...] = ()
    bounds: Tuple[Point, ...] = ()
    total_area: float = 0.0
    usable_area: float = 0.0
    id: str = "floor_plan"
    unit: str = "mm"
    scale: float = 1.0

    def __post_init__(self):
        object.__setattr__(self, 'walls', tuple(self.walls))
        object.__setattr__(self, 'openings', tuple(self.openings))
        object.__setattr__(self, 'restricted_areas', tuple(self.restricted_areas))
        object.__setattr__(self, 'bounds', tuple(self.bounds))
        if not self.total_area and len(self.bounds) >= 3:
            object.__setattr__(self, 'total_area', polygon_area(self.bounds))

    @property
    def bounding_box(self) -> BoundingBox:
        return bounding_box(self.bounds)

    @property
    def doors(self) -> List[Opening]:
        return [o for o in self.openings if o.kind == OpeningKind.DOOR]

    @property
    def windows(self) -> List[Opening]:
        return [o for o in self.openings if o.kind == OpeningKind.WINDOW]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'walls': [w.to_dict() for w in self.walls],
            'openings': [o.to_dict() for o in self.openings],
            'restrictedAreas': [r.to_dict() for r in self.restricted_areas],
            'bounds': [p.to_dict() for p in self.bounds],
            'totalArea': float(self.total_area),
            'usableArea': float(self.usable_area),
            'unit': self.unit,
            'scale': float(self.scale),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FloorPlan':
        """
        Build a floor plan from its JSON form, normalising lengths to millimetres.

        Accepts camelCase or snake_case keys, ``bounds`` as a point list or as a
        ``{minX, minY, maxX, maxY}`` mapping, and openings either in one
        ``openings`` list or split into ``doors``/``windows``.
        """
        unit = str(data.get('unit', 'mm')).lower()
        if unit not in UNIT_TO_MM:
            raise ValueError(f"Unsupported unit '{unit}', expected one of {sorted(UNIT_TO_MM)}")
        factor = UNIT_TO_MM[unit] * float(data.get('scale', 1.0))

        def pt(value: Any) -> Point:
            p = Point.from_any(value)
            return Point(p.x * factor, p.y * factor)

        walls = []
        for i, w in enumerate(data.get('walls', [])):
            walls.append(Wall(
                start=pt(w['start']),
                end=pt(w['end']),
                thickness=float(w.get('thickness', 200.0 / factor)) * factor,
                id=w.get('id', f'wall_{i + 1}'),
                layer=w.get('layer', 'WALLS'),
                material=w.get('material'),
            ))

        raw_openings = [(o, o.get('kind', 'door')) for o in data.get('openings', [])]
        raw_openings += [(o, 'door') for o in data.get('doors', [])]
        raw_openings += [(o, 'window') for o in data.get('windows', [])]
        openings = []
        for i, (o, kind) in enumerate(raw_openings):
            attributes = dict(o.get('attributes', {}))
            for key in ('swing', 'angle'):
                if key in o:
                    attributes[key] = o[key]
            if 'sillHeight' in o or 'sill_height' in o:
                attributes['sill_height'] = float(o.get('sillHeight', o.get('sill_height'))) * factor
            openings.append(Opening(
                position=pt(o['position']),
                width=float(o['width']) * factor,
                height=float(o.get('height', 2100.0 / factor)) * factor,
                kind=OpeningKind(kind),
                attributes=attributes,
                id=o.get('id', f'opening_{i + 1}'),
            ))

        restricted = []
        for i, r in enumerate(data.get('restrictedAreas', data.get('restricted_areas', []))):
            restricted.append(RestrictedArea(
                bounds=tuple(pt(p) for p in r['bounds']),
                kind=RestrictedKind(str(r.get('type', r.get('kind', 'no_entry'))).lower()),
                id=r.get('id', f'restricted_{i + 1}'),
                description=r.get('description', ''),
            ))

        raw_bounds = data.get('bounds', [])
        if isinstance(raw_bounds, dict):
            b = raw_bounds
            min_x = b.get('minX', b.get('min_x'))
            min_y = b.get('minY', b.get('min_y'))
            max_x = b.get('maxX', b.get('max_x'))
            max_y = b.get('maxY', b.get('max_y'))
            raw_bounds = [(min_x, min_y), (max_x, min_y), (max_x, max_y), (min_x, max_y)]
        bounds = tuple(pt(p) for p in raw_bounds)

        area_factor = factor * factor
        return cls(
            walls=tuple(walls),
            openings=tuple(openings),
            restricted_areas=tuple(restricted),
            bounds=bounds,
            total_area=float(data.get('totalArea', data.get('total_area', 0.0))) * area_factor,
            usable_area=float(data.get('usableArea', data.get('usable_area', 0.0))) * area_factor,
            id=data.get('id', 'floor_plan'),
        )


def parse_floor_plan_json(json_path: str) -> FloorPlan:
    """Parse a floor plan JSON file into a FloorPlan (lengths in millimetres)."""
    if not os.path.exists(json_path):
        logger.error(f"Floor plan file not found: {json_path}")
        raise FileNotFoundError(f"Floor plan file not found: {json_path}")
    with open(json_path, 'r') as f:
        data = json.load(f)
    floor_plan = FloorPlan.from_dict(data)
    logger.info(f"Loaded floor plan '{floor_plan.id}' with {len(floor_plan.walls)} walls, "
                f"{len(floor_plan.openings)} openings, {len(floor_plan.restricted_areas)} restricted areas")
    return floor_plan


@dataclass(frozen=True)
class UsableArea:
    """Axis-aligned rectangle covering one flood-filled free region."""
    bounds: Tuple[Point, ...]

    def __post_init__(self):
        object.__setattr__(self, 'bounds', tuple(self.bounds))

    @classmethod
    def from_box(cls, box: BoundingBox) -> 'UsableArea':
        return cls(bounds=box.corners)

    @property
    def bounding_box(self) -> BoundingBox:
        return bounding_box(self.bounds)

    @property
    def area(self) -> float:
        return self.bounding_box.area

    def to_dict(self) -> Dict[str, Any]:
        return {'bounds': [p.to_dict() for p in self.bounds], 'area': float(self.area)}


@dataclass(frozen=True)
class PlacementBlock:
    """A rectangular unit placed in usable floor space, positioned by its centre."""
    id: str
    position: Point
    width: float
    height: float
    area: float
    size_class: SizeClass
    clearance: float
    accessible: bool = False

    @property
    def bounding_box(self) -> BoundingBox:
        return BoundingBox.from_center(self.position, self.width, self.height)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'position': self.position.to_dict(),
            'width': float(self.width),
            'height': float(self.height),
            'area': float(self.area),
            'sizeClass': self.size_class.value,
            'clearance': float(self.clearance),
            'accessible': bool(self.accessible),
        }


@dataclass(frozen=True)
class Pathway:
    """A circulation polyline connecting placement blocks."""
    id: str
    path: Tuple[Point, ...]
    width: float
    kind: PathwayKind
    length: float
    accessible: bool = True

    def __post_init__(self):
        object.__setattr__(self, 'path', tuple(self.path))
        if len(self.path) < 2:
            raise ValueError(f"Pathway {self.id} needs at least two points, got {len(self.path)}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'path': [p.to_dict() for p in self.path],
            'width': float(self.width),
            'type': self.kind.value,
            'length': float(self.length),
            'accessible': bool(self.accessible),
        }


@dataclass
class AnalysisResult:
    """Terminal output of the pipeline: plain, serialisable data."""
    floor_plan: FloorPlan
    blocks: Tuple[PlacementBlock, ...]
    pathways: Tuple[Pathway, ...]
    space_utilization: float
    accessibility_score: float
    total_pathway_length: float
    efficiency: float
    clearance_compliance: float = 0.0
    total_blocks: int = 0
    connected_blocks: int = 0
    usable_areas: Tuple[UsableArea, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'floorPlan': self.floor_plan.to_dict(),
            'usableAreas': [a.to_dict() for a in self.usable_areas],
            'blocks': [b.to_dict() for b in self.blocks],
            'pathways': [p.to_dict() for p in self.pathways],
            'metrics': {
                'spaceUtilization': float(self.space_utilization),
                'accessibilityScore': float(self.accessibility_score),
                'totalPathwayLength': float(self.total_pathway_length),
                'efficiency': float(self.efficiency),
                'clearanceCompliance': float(self.clearance_compliance),
                'totalBlocks': int(self.total_blocks),
                'connectedBlocks': int(self.connected_blocks),
            },
        }
