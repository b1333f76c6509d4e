# SPDX-License-Identifier: Apache-2.0

"""
Perimeter domain logic for the eligibility geofence.

Pure, immutable geometry: polygons are built once at startup and then only
queried, so they can be shared by every session and thread without locking.

Coordinate convention: polygon vertices are (longitude, latitude) pairs, the
order used by KML and GeoJSON. Queries take (latitude, longitude). Inside the
point-in-polygon test x is always longitude and y is always latitude.

Boundary convention: a point lying on an edge or a vertex (within
EDGE_TOLERANCE degrees) is classified as inside the polygon. For holes the
same rule applies in reverse: a point on a hole's edge is still inside the
perimeter, only points strictly inside a hole are excluded.
"""

import math
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple


Vertex = Tuple[float, float]  # (longitude, latitude)

EDGE_TOLERANCE = 1e-12
MIN_POLYGON_VERTICES = 3


class PerimeterConfigurationError(ValueError):
    """Raised when perimeter geometry is missing or malformed."""
    pass


@dataclass(frozen=True)
class Coordinate:
    """A WGS84 point in decimal degrees."""
    latitude: float
    longitude: float

    def is_finite(self) -> bool:
        return math.isfinite(self.latitude) and math.isfinite(self.longitude)


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box used to frame the map, never for eligibility."""
    min_latitude: float
    max_latitude: float
    min_longitude: float
    max_longitude: float

    @property
    def center(self) -> Tuple[float, float]:
        """Center as (latitude, longitude)."""
        return (
            (self.min_latitude + self.max_latitude) / 2,
            (self.min_longitude + self.max_longitude) / 2
        )

    def contains(self, latitude: float, longitude: float) -> bool:
        return (
            self.min_latitude <= latitude <= self.max_latitude
            and self.min_longitude <= longitude <= self.max_longitude
        )


def _normalize_ring(vertices: Iterable[Sequence[float]], label: str) -> Tuple[Vertex, ...]:
    """Validate a ring and drop an explicit closing vertex."""
    ring: List[Vertex] = []
    for raw in vertices:
        if len(raw) < 2:
            raise PerimeterConfigurationError(f"{label}: vertex {raw!r} must have longitude and latitude")
        lon, lat = float(raw[0]), float(raw[1])
        if not (math.isfinite(lon) and math.isfinite(lat)):
            raise PerimeterConfigurationError(f"{label}: vertex ({lon}, {lat}) is not finite")
        if not (-180.0 <= lon <= 180.0) or not (-90.0 <= lat <= 90.0):
            raise PerimeterConfigurationError(
                f"{label}: vertex ({lon}, {lat}) is outside WGS84 range; "
                "vertices must be (longitude, latitude)"
            )
        ring.append((lon, lat))

    if len(ring) > 1 and ring[0] == ring[-1]:
        ring.pop()

    if len(set(ring)) < MIN_POLYGON_VERTICES:
        raise PerimeterConfigurationError(
            f"{label}: polygon must have at least {MIN_POLYGON_VERTICES} distinct vertices, got {len(set(ring))}"
        )
    return tuple(ring)


def _on_segment(x: float, y: float, a: Vertex, b: Vertex) -> bool:
    """Check if (x, y) lies on segment a-b."""
    (xa, ya), (xb, yb) = a, b
    cross = (xb - xa) * (y - ya) - (yb - ya) * (x - xa)
    if abs(cross) > EDGE_TOLERANCE:
        return False
    return (
        min(xa, xb) - EDGE_TOLERANCE <= x <= max(xa, xb) + EDGE_TOLERANCE
        and min(ya, yb) - EDGE_TOLERANCE <= y <= max(ya, yb) + EDGE_TOLERANCE
    )


def _ring_position(ring: Tuple[Vertex, ...], x: float, y: float) -> int:
    """
    Locate a point relative to a ring.

    Returns:
        1 strictly inside, 0 on the boundary, -1 outside
    """
    n = len(ring)
    for i in range(n):
        if _on_segment(x, y, ring[i], ring[(i + 1) % n]):
            return 0

    # Ray casting towards +x; half-open rule on y avoids double-counting vertices
    inside = False
    j = n - 1
    for i in range(n):
        xi, yi = ring[i]
        xj, yj = ring[j]
        if (yi > y) != (yj > y):
            x_cross = (xj - xi) * (y - yi) / (yj - yi) + xi
            if x < x_cross:
                inside = not inside
        j = i

    return 1 if inside else -1


@dataclass(frozen=True)
class Polygon:
    """
    Immutable polygon with optional holes.

    Attributes:
        vertices: outer ring as (longitude, latitude) pairs, closed implicitly
        holes: inner rings, same convention
        name: label from the boundary file, used in logs and errors
    """
    vertices: Tuple[Vertex, ...]
    holes: Tuple[Tuple[Vertex, ...], ...] = field(default_factory=tuple)
    name: Optional[str] = None

    def __post_init__(self):
        label = self.name or "polygon"
        object.__setattr__(self, 'vertices', _normalize_ring(self.vertices, label))
        object.__setattr__(self, 'holes', tuple(
            _normalize_ring(hole, f"{label} hole {index}")
            for index, hole in enumerate(self.holes)
        ))

    def contains(self, latitude: float, longitude: float) -> bool:
        """Point-in-polygon test; boundary points count as inside."""
        x, y = longitude, latitude
        if _ring_position(self.vertices, x, y) < 0:
            return False
        for hole in self.holes:
            if _ring_position(hole, x, y) > 0:
                return False
        return True


class PerimeterEngine:
    """
    Eligibility perimeter made of one or more polygons.

    Design:
    - Polygons validated at construction (fail fast on bad configuration)
    - Bounding box computed once and cached
    - No mutable state after __init__, safe to share across threads
    """

    def __init__(self, polygons: Sequence[Polygon]):
        polygons = tuple(polygons)
        if not polygons:
            raise PerimeterConfigurationError("Perimeter must contain at least one polygon")
        self._polygons = polygons
        self._bounds = self._compute_bounds(polygons)

    @classmethod
    def from_vertices(cls, *rings: Sequence[Sequence[float]]) -> "PerimeterEngine":
        """Build an engine from bare (longitude, latitude) rings."""
        return cls([Polygon(vertices=tuple(tuple(v) for v in ring)) for ring in rings])

    @staticmethod
    def _compute_bounds(polygons: Tuple[Polygon, ...]) -> BoundingBox:
        longitudes = [lon for polygon in polygons for lon, _ in polygon.vertices]
        latitudes = [lat for polygon in polygons for _, lat in polygon.vertices]
        return BoundingBox(
            min_latitude=min(latitudes),
            max_latitude=max(latitudes),
            min_longitude=min(longitudes),
            max_longitude=max(longitudes)
        )

    @property
    def polygons(self) -> Tuple[Polygon, ...]:
        return self._polygons

    def is_within_perimeter(self, latitude: float, longitude: float) -> bool:
        """
        Check whether a coordinate lies inside the eligibility area.

        Args:
            latitude: decimal degrees
            longitude: decimal degrees

        Returns:
            True if inside (or on the boundary of) any polygon. Non-finite
            input is never inside.
        """
        if not (math.isfinite(latitude) and math.isfinite(longitude)):
            return False
        if not self._bounds.contains(latitude, longitude):
            return False
        return any(polygon.contains(latitude, longitude) for polygon in self._polygons)

    def contains(self, coordinate: Coordinate) -> bool:
        return self.is_within_perimeter(coordinate.latitude, coordinate.longitude)

    def get_perimeter_bounds(self) -> BoundingBox:
        """Bounding box over every outer-ring vertex."""
        return self._bounds
