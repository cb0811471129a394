"""
Planar geometry for airspace classification.

Boundaries arrive as GeoJSON (lon, lat order). Rings are converted once,
at load time, into float64 numpy arrays so the per-lookup ray cast is a
handful of vectorized operations over the ring's edges.

Supported geometry types: Polygon, MultiPolygon, GeometryCollection
(recursively). Anything else contributes no polygons.
"""

import math
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional, Tuple

import numpy as np

_EPSILON = np.finfo(np.float64).eps


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned lon/lat bounds, inclusive on every side."""
    west: float
    south: float
    east: float
    north: float

    def contains(self, lon: float, lat: float) -> bool:
        return self.west <= lon <= self.east and self.south <= lat <= self.north

    def union(self, other: 'BoundingBox') -> 'BoundingBox':
        return BoundingBox(
            west=min(self.west, other.west),
            south=min(self.south, other.south),
            east=max(self.east, other.east),
            north=max(self.north, other.north),
        )


@dataclass(frozen=True)
class PolygonRings:
    """One polygon: an outer ring plus zero or more hole rings."""
    outer: np.ndarray
    holes: Tuple[np.ndarray, ...] = ()

    def contains(self, lon: float, lat: float) -> bool:
        if not ring_contains(self.outer, lon, lat):
            return False
        return not any(ring_contains(hole, lon, lat) for hole in self.holes)


def ring_contains(ring: np.ndarray, lon: float, lat: float) -> bool:
    """
    Crossing-number test for one ring.

    A horizontal ray from the point is cast towards +lon; the point is
    inside when the ray crosses an odd number of edges. Rings with fewer
    than 3 vertices never contain anything.
    """
    if ring.shape[0] < 3:
        return False

    xi = ring[:, 0]
    yi = ring[:, 1]
    # Edge i runs from vertex i-1 to vertex i (wrapping at 0)
    xj = np.roll(xi, 1)
    yj = np.roll(yi, 1)

    straddles = (yi > lat) != (yj > lat)
    dy = yj - yi
    dy = np.where(dy == 0, _EPSILON, dy)
    x_cross = (xj - xi) * (lat - yi) / dy + xi

    crossings = np.count_nonzero(straddles & (lon < x_cross))
    return bool(crossings % 2)


def _to_ring(coords: Any) -> Optional[np.ndarray]:
    """Convert a GeoJSON linear ring into an (n, 2) array, or None."""
    if not isinstance(coords, (list, tuple)):
        return None
    try:
        ring = np.array([(float(p[0]), float(p[1])) for p in coords], dtype=np.float64)
    except (TypeError, ValueError, IndexError):
        return None
    if ring.ndim != 2 or ring.shape[0] == 0:
        return None
    if not np.isfinite(ring).all():
        return None
    return ring


def _polygon_from_coords(coords: Any) -> Optional[PolygonRings]:
    if not isinstance(coords, (list, tuple)) or not coords:
        return None
    outer = _to_ring(coords[0])
    if outer is None or outer.shape[0] < 3:
        return None
    holes = []
    for hole_coords in coords[1:]:
        hole = _to_ring(hole_coords)
        if hole is not None and hole.shape[0] >= 3:
            holes.append(hole)
    return PolygonRings(outer=outer, holes=tuple(holes))


def iter_polygons(geometry: Any) -> Iterator[PolygonRings]:
    """Yield every polygon of a geometry, flattening multi/collection types."""
    if not isinstance(geometry, dict):
        return

    geom_type = geometry.get('type')
    if geom_type == 'Polygon':
        polygon = _polygon_from_coords(geometry.get('coordinates'))
        if polygon is not None:
            yield polygon
    elif geom_type == 'MultiPolygon':
        for coords in geometry.get('coordinates') or []:
            polygon = _polygon_from_coords(coords)
            if polygon is not None:
                yield polygon
    elif geom_type == 'GeometryCollection':
        for member in geometry.get('geometries') or []:
            yield from iter_polygons(member)


def _walk_positions(node: Any, lons: List[float], lats: List[float]) -> None:
    if not isinstance(node, (list, tuple)) or not node:
        return
    first = node[0]
    if isinstance(first, (int, float)) and not isinstance(first, bool):
        if len(node) >= 2 and isinstance(node[1], (int, float)):
            lon, lat = float(node[0]), float(node[1])
            if math.isfinite(lon) and math.isfinite(lat):
                lons.append(lon)
                lats.append(lat)
        return
    for child in node:
        _walk_positions(child, lons, lats)


def geometry_bbox(geometry: Any) -> Optional[BoundingBox]:
    """
    Bounding box over every finite position of a geometry.

    For a GeometryCollection the member boxes are unioned. Returns None
    when the geometry has no usable position.
    """
    if not isinstance(geometry, dict):
        return None

    if geometry.get('type') == 'GeometryCollection':
        bbox = None
        for member in geometry.get('geometries') or []:
            member_bbox = geometry_bbox(member)
            if member_bbox is None:
                continue
            bbox = member_bbox if bbox is None else bbox.union(member_bbox)
        return bbox

    lons: List[float] = []
    lats: List[float] = []
    _walk_positions(geometry.get('coordinates'), lons, lats)
    if not lons:
        return None

    lon_arr = np.asarray(lons)
    lat_arr = np.asarray(lats)
    return BoundingBox(
        west=float(lon_arr.min()),
        south=float(lat_arr.min()),
        east=float(lon_arr.max()),
        north=float(lat_arr.max()),
    )
