from __future__ import annotations

import math
from collections.abc import Iterable, Iterator, Sequence

import numpy as np
import shapely
from pydantic import BaseModel
from shapely.errors import ShapelyError
from shapely.geometry import LineString, MultiLineString, Point, shape
from shapely.geometry.base import BaseGeometry
from shapely.ops import substring

from .errors import GeometryInputError
from .settings import settings

Coordinate = tuple[float, float]  # (lon, lat)
Polyline = list[Coordinate]
NodeKey = tuple[int, int]

EARTH_RADIUS_M = 6_371_008.8
METERS_PER_MILE = 1_609.344


def haversine_mi(a: Sequence[float], b: Sequence[float]) -> float:
    """Great-circle distance in miles between two (lon, lat) points."""
    lon1, lat1 = float(a[0]), float(a[1])
    lon2, lat2 = float(b[0]), float(b[1])
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = phi2 - phi1
    dlambda = math.radians(lon2 - lon1)
    h = (
        math.sin(dphi / 2.0) ** 2
        + (math.cos(phi1) * math.cos(phi2) * (math.sin(dlambda / 2.0) ** 2))
    )
    meters = 2.0 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(max(0.0, h))))
    return meters / METERS_PER_MILE


def line_length_mi(coords: Sequence[Sequence[float]]) -> float:
    return sum(haversine_mi(coords[idx - 1], coords[idx]) for idx in range(1, len(coords)))


def node_key(coord: Sequence[float], decimals: int | None = None) -> NodeKey:
    """Quantise a coordinate into the integer key used as graph vertex identity.

    Points that agree to ``decimals`` places collapse onto one key, so a
    crossing computed by two different float paths still lands on one node.
    """
    places = settings.node_key_decimals if decimals is None else int(decimals)
    scale = 10**places
    return (int(round(float(coord[0]) * scale)), int(round(float(coord[1]) * scale)))


def as_coordinate(value: object) -> Coordinate:
    if isinstance(value, Point):
        return (float(value.x), float(value.y))
    if isinstance(value, BaseModel):
        value = value.model_dump()
    if isinstance(value, dict):
        if "lon" in value and "lat" in value:
            value = (value["lon"], value["lat"])
        elif value.get("type") == "Point":
            value = value.get("coordinates") or ()
    try:
        lon, lat = float(value[0]), float(value[1])  # type: ignore[index]
    except (TypeError, ValueError, IndexError, KeyError) as exc:
        raise GeometryInputError(
            reason_code="query_point_invalid",
            message=f"cannot read a (lon, lat) pair from {type(value).__name__}",
        ) from exc
    return (lon, lat)


def _coordinates_to_shape(coords: Sequence[object]) -> BaseGeometry:
    """Bare coordinate lists: pairs make a line, lists of pair lists a multi-line."""
    depth = 0
    inner: object = coords
    while isinstance(inner, (list, tuple)) and inner:
        inner = inner[0]
        depth += 1
    try:
        if depth == 2:
            return LineString(coords)
        if depth == 3:
            return MultiLineString(coords)
    except (ShapelyError, TypeError, ValueError) as exc:
        raise GeometryInputError(
            reason_code="geometry_coordinates_invalid",
            message=f"invalid coordinate list: {exc}",
        ) from exc
    raise GeometryInputError(
        reason_code="geometry_type_unsupported",
        message="coordinate list must hold (lon, lat) pairs or lists of them",
        details={"nesting_depth": depth},
    )


def to_shape(geometry: object) -> BaseGeometry:
    if isinstance(geometry, BaseGeometry):
        return geometry
    if isinstance(geometry, (list, tuple)):
        return _coordinates_to_shape(geometry)
    if isinstance(geometry, BaseModel):
        geometry = geometry.model_dump()
    if isinstance(geometry, dict):
        if geometry.get("type") == "Feature":
            geometry = geometry.get("geometry") or {}
        try:
            return shape(geometry)
        except (ShapelyError, AttributeError, KeyError, TypeError, ValueError) as exc:
            raise GeometryInputError(
                reason_code="geometry_coordinates_invalid",
                message=f"invalid geometry record: {exc}",
                details={"geometry_type": str(geometry.get("type", ""))},
            ) from exc
    raise GeometryInputError(
        reason_code="geometry_type_unsupported",
        message=f"unsupported geometry record {type(geometry).__name__}",
    )


def iter_geometry_records(records: object) -> Iterator[object]:
    if isinstance(records, dict) and records.get("type") == "FeatureCollection":
        yield from records.get("features") or ()
        return
    if isinstance(records, (dict, BaseModel, BaseGeometry)):
        yield records
        return
    if isinstance(records, Iterable):
        yield from records
        return
    raise GeometryInputError(
        reason_code="geometry_type_unsupported",
        message=f"expected a collection of geometries, got {type(records).__name__}",
    )


def _dedupe_consecutive(coords: Iterable[Sequence[float]]) -> Polyline:
    out: Polyline = []
    last_key: NodeKey | None = None
    for raw in coords:
        coord = (float(raw[0]), float(raw[1]))
        key = node_key(coord)
        if key == last_key:
            continue
        out.append(coord)
        last_key = key
    return out


def flatten_geometries(records: object) -> list[Polyline]:
    """Decompose lines and multi-lines into a flat list of simple polylines.

    Part order and vertex order are preserved; consecutive vertices that share
    a node key are collapsed into one.
    """
    polylines: list[Polyline] = []
    for record in iter_geometry_records(records):
        geom = to_shape(record)
        if isinstance(geom, LineString):
            parts: Sequence[LineString] = (geom,)
        elif isinstance(geom, MultiLineString):
            parts = tuple(geom.geoms)
        else:
            raise GeometryInputError(
                reason_code="geometry_type_unsupported",
                message=f"expected LineString or MultiLineString, got {geom.geom_type}",
                details={"geometry_type": geom.geom_type},
            )
        for part in parts:
            polylines.append(_dedupe_consecutive(part.coords))
    return polylines


def nearest_point_on_line(polyline: Sequence[Coordinate], point: Coordinate) -> tuple[Coordinate, float]:
    """Project ``point`` onto the polyline; return the projection and its distance in miles."""
    if not polyline:
        return point, math.inf
    if len(polyline) == 1:
        only = (float(polyline[0][0]), float(polyline[0][1]))
        return only, haversine_mi(point, only)
    line = LineString(polyline)
    projected = line.interpolate(line.project(Point(point)))
    coord = (float(projected.x), float(projected.y))
    return coord, haversine_mi(point, coord)


def segment_distances(polyline: Sequence[Coordinate], point: Coordinate) -> np.ndarray:
    """Planar distance from ``point`` to every segment; zero-length segments read as inf."""
    coords = np.asarray(polyline, dtype=float).reshape(-1, 2)
    if len(coords) < 2:
        return np.empty(0, dtype=float)
    starts = coords[:-1]
    ends = coords[1:]
    segments = shapely.linestrings(np.stack([starts, ends], axis=1))
    distances = np.asarray(shapely.distance(segments, Point(point)), dtype=float)
    degenerate = np.all(starts == ends, axis=1)
    distances[degenerate] = np.inf
    return distances


def crossing_points(a: LineString, b: LineString) -> list[Coordinate]:
    """All points where two lines meet, ordered as shapely reports them.

    Collinear overlaps contribute their two ends.
    """
    if not a.intersects(b):
        return []
    points: list[Coordinate] = []
    seen: set[NodeKey] = set()
    for part in shapely.get_parts(a.intersection(b)):
        if part.is_empty:
            continue
        if isinstance(part, Point):
            candidates = [(float(part.x), float(part.y))]
        elif isinstance(part, LineString):
            first, last = part.coords[0], part.coords[-1]
            candidates = [(float(first[0]), float(first[1])), (float(last[0]), float(last[1]))]
        else:
            continue
        for coord in candidates:
            key = node_key(coord)
            if key in seen:
                continue
            seen.add(key)
            points.append(coord)
    return points


def slice_line(polyline: Sequence[Coordinate], start: Coordinate, end: Coordinate) -> Polyline:
    """Portion of the polyline between the projections of ``start`` and ``end``.

    The result runs from the start projection to the end projection, so it is
    reversed relative to the polyline when ``end`` projects first.
    """
    line = LineString(polyline)
    start_at = line.project(Point(start))
    end_at = line.project(Point(end))
    piece = substring(line, start_at, end_at)
    return [(float(x), float(y)) for x, y, *_ in piece.coords]


def straight_line(start: Coordinate, end: Coordinate) -> tuple[Polyline, float]:
    return [start, end], haversine_mi(start, end)
