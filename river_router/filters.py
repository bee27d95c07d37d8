from __future__ import annotations

import shapely
from shapely.geometry import LineString, MultiLineString, MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry

from .errors import GeometryInputError
from .geometry import iter_geometry_records, to_shape


def _as_filter(geometry: object, *, allowed: tuple[type, ...], label: str) -> BaseGeometry:
    shape = to_shape(geometry)
    if not isinstance(shape, allowed) or shape.is_empty:
        raise GeometryInputError(
            reason_code="geometry_filter_invalid",
            message=f"{label} must be a non-empty {' or '.join(t.__name__ for t in allowed)}",
            details={"filter": label, "geometry_type": shape.geom_type},
        )
    shapely.prepare(shape)
    return shape


def filter_geometries(
    records: object,
    *,
    boundary: object | None = None,
    reference_line: object | None = None,
) -> list[BaseGeometry]:
    """Restrict which geometries take part in a query.

    ``boundary`` keeps geometries that intersect the polygon; ``reference_line``
    keeps geometries that touch the line. Both filters may be combined. The
    surviving geometries are returned in input order.
    """
    shapes = [to_shape(record) for record in iter_geometry_records(records)]
    if boundary is None and reference_line is None:
        return shapes
    boundary_shape = (
        _as_filter(boundary, allowed=(Polygon, MultiPolygon), label="boundary")
        if boundary is not None
        else None
    )
    reference_shape = (
        _as_filter(reference_line, allowed=(LineString, MultiLineString), label="reference_line")
        if reference_line is not None
        else None
    )
    kept: list[BaseGeometry] = []
    for shape in shapes:
        if boundary_shape is not None and not boundary_shape.intersects(shape):
            continue
        if reference_shape is not None and not reference_shape.intersects(shape):
            continue
        kept.append(shape)
    return kept
