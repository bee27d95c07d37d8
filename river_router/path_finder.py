from __future__ import annotations

import math
import time
from collections.abc import Sequence

from pydantic import ValidationError

from .errors import GeometryInputError, RouteErrorKind, normalize_reason_code
from .geometry import (
    Coordinate,
    NodeKey,
    as_coordinate,
    line_length_mi,
    nearest_point_on_line,
    node_key,
    slice_line,
    straight_line,
)
from .logging_utils import log_event
from .models import GeoJSONLineString, LonLat, RiverPathResult
from .network import RiverNetwork, build_river_network
from .settings import settings
from .shortest_path import dijkstra_shortest_path


def _round_distance(distance_mi: float) -> float:
    if not math.isfinite(distance_mi):
        return 0.0
    return round(max(0.0, float(distance_mi)), int(settings.distance_decimals))


def _validated_point(value: object) -> Coordinate:
    lon, lat = as_coordinate(value)
    try:
        return LonLat(lon=lon, lat=lat).as_tuple()
    except ValidationError as exc:
        raise GeometryInputError(
            reason_code="query_point_invalid",
            message=f"query point out of range: ({lon}, {lat})",
            details={"lon": lon, "lat": lat},
        ) from exc


def _failure(kind: RouteErrorKind, start: object, end: object) -> RiverPathResult:
    try:
        start_pt, end_pt = as_coordinate(start), as_coordinate(end)
    except GeometryInputError:
        start_pt = end_pt = None
    if start_pt is None or end_pt is None:
        coords, distance = [], 0.0
    elif not all(math.isfinite(v) for v in (*start_pt, *end_pt)):
        # No great-circle distance exists for a non-finite point.
        coords, distance = [start_pt, end_pt], 0.0
    else:
        coords, distance = straight_line(start_pt, end_pt)
    return RiverPathResult(
        success=False,
        path=GeoJSONLineString(coordinates=coords),
        distance=_round_distance(distance),
        error=kind,
    )


def calibrated_distance(
    route: Sequence[Coordinate],
    start: Coordinate,
    end: Coordinate,
    *,
    start_on_river: bool = False,
    end_on_river: bool = False,
) -> float:
    """Along-river distance between the query points, in miles (unrounded).

    The stub legs are dropped from ``route``; both query points are projected
    onto what remains, the river is sliced between the projections, and each
    projection offset is added back.

    An off-river endpoint always reaches the river through its stub as the
    first or last leg: the stub ends at the nearest river point, so no other
    river can cross it any closer to the endpoint.
    """
    river = list(route)
    if not start_on_river and len(river) > 1:
        river = river[1:]
    if not end_on_river and len(river) > 1:
        river = river[:-1]
    if not river:
        return line_length_mi([start, end])
    if len(river) == 1:
        return line_length_mi([start, river[0], end])

    start_projection, start_offset = nearest_point_on_line(river, start)
    end_projection, end_offset = nearest_point_on_line(river, end)
    along = line_length_mi(slice_line(river, start_projection, end_projection))
    return start_offset + along + end_offset


def _route_coordinates(
    network: RiverNetwork,
    nodes: Sequence[NodeKey],
    start: Coordinate,
    end: Coordinate,
) -> list[Coordinate]:
    route = [network.graph.nodes[key] for key in nodes]
    if len(route) < 2:
        return [start, end]
    route[0] = start
    route[-1] = end
    return route


def find_shortest_path(
    features: object,
    start: object,
    end: object,
    *,
    max_distance_mi: float | None = None,
    time_budget_s: float | None = None,
    boundary: object | None = None,
    reference_line: object | None = None,
) -> RiverPathResult:
    """Shortest along-river route between ``start`` and ``end``.

    Never raises. Failures, in precedence order, are ``timed_out``,
    ``too_far_from_rivers``, ``no_path`` and ``unknown``; each carries the
    straight start-end line and its great-circle distance.
    """
    started = time.monotonic()
    try:
        start_pt = _validated_point(start)
        end_pt = _validated_point(end)
        network = build_river_network(
            features,
            start_pt,
            end_pt,
            max_distance_mi=max_distance_mi,
            time_budget_s=time_budget_s,
            boundary=boundary,
            reference_line=reference_line,
        )
        diagnostics = network.diagnostics
        if diagnostics.timed_out:
            kind = RouteErrorKind.TIMED_OUT
        elif diagnostics.too_far_from_rivers:
            kind = RouteErrorKind.TOO_FAR_FROM_RIVERS
        else:
            kind = None
        if kind is not None:
            log_event(
                "river_path_failed",
                error=kind.value,
                phase=diagnostics.phase,
                start_distance_mi=_round_distance(network.start.projection_distance),
                end_distance_mi=_round_distance(network.end.projection_distance),
            )
            return _failure(kind, start_pt, end_pt)

        shortest = dijkstra_shortest_path(
            adjacency=network.graph.cost_view(),
            source=node_key(start_pt),
            target=node_key(end_pt),
        )
        if not shortest.reachable:
            log_event(
                "river_path_failed",
                error=RouteErrorKind.NO_PATH.value,
                explored_states=shortest.explored_states,
                component_count=diagnostics.component_count,
            )
            return _failure(RouteErrorKind.NO_PATH, start_pt, end_pt)

        route = _route_coordinates(network, shortest.nodes, start_pt, end_pt)
        distance = _round_distance(
            calibrated_distance(
                route,
                start_pt,
                end_pt,
                start_on_river=network.start.on_river,
                end_on_river=network.end.on_river,
            )
        )
        log_event(
            "river_path_found",
            distance_mi=distance,
            graph_distance_mi=_round_distance(shortest.distance),
            vertex_count=len(route),
            explored_states=shortest.explored_states,
            elapsed_ms=round(max(0.0, (time.monotonic() - started) * 1000.0), 2),
        )
        return RiverPathResult(
            success=True,
            path=GeoJSONLineString(coordinates=route),
            distance=distance,
        )
    except Exception as exc:
        log_event(
            "river_path_unexpected_error",
            error=RouteErrorKind.UNKNOWN.value,
            error_type=type(exc).__name__,
            error_message=str(exc).strip() or type(exc).__name__,
            reason_code=(
                normalize_reason_code(exc.reason_code)
                if isinstance(exc, GeometryInputError)
                else None
            ),
        )
        return _failure(RouteErrorKind.UNKNOWN, start, end)
