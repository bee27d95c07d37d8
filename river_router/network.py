from __future__ import annotations

import math
import time
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np
from shapely.geometry import LineString
from shapely.strtree import STRtree

from .filters import filter_geometries
from .geometry import (
    Coordinate,
    NodeKey,
    Polyline,
    crossing_points,
    flatten_geometries,
    haversine_mi,
    nearest_point_on_line,
    node_key,
    segment_distances,
)
from .logging_utils import log_event
from .settings import settings


@dataclass(frozen=True)
class GraphEdge:
    to: NodeKey
    weight: float  # miles


@dataclass(frozen=True)
class RiverGraph:
    nodes: dict[NodeKey, Coordinate]
    adjacency: dict[NodeKey, tuple[GraphEdge, ...]]
    component_by_node: dict[NodeKey, int] = field(default_factory=dict)
    component_sizes: dict[int, int] = field(default_factory=dict)
    component_count: int = 0
    largest_component_nodes: int = 0

    @classmethod
    def empty(cls) -> RiverGraph:
        return cls(nodes={}, adjacency={})

    @property
    def is_empty(self) -> bool:
        return not self.adjacency

    @property
    def edge_count(self) -> int:
        """Undirected edge count (each edge is stored once per direction)."""
        return sum(len(edges) for edges in self.adjacency.values()) // 2

    def cost_view(self) -> dict[NodeKey, tuple[tuple[NodeKey, float], ...]]:
        return {
            node: tuple((edge.to, edge.weight) for edge in edges)
            for node, edges in self.adjacency.items()
        }

    def connected(self, a: NodeKey, b: NodeKey) -> bool:
        comp_a = self.component_by_node.get(a)
        return comp_a is not None and comp_a == self.component_by_node.get(b)


@dataclass(frozen=True)
class EndpointInfo:
    origin: Coordinate
    polyline_index: int
    projected_point: Coordinate
    projection_distance: float  # miles

    @property
    def on_river(self) -> bool:
        return node_key(self.origin) == node_key(self.projected_point)


@dataclass(frozen=True)
class NetworkBuildDiagnostics:
    phase: str
    elapsed_ms: float
    time_budget_s: float
    max_distance_mi: float
    timed_out: bool = False
    too_far_from_rivers: bool = False
    polyline_count: int = 0
    crossing_count: int = 0
    node_count: int = 0
    edge_count: int = 0
    component_count: int = 0
    largest_component_nodes: int = 0

    def as_fields(self) -> dict[str, Any]:
        return {
            "phase": self.phase,
            "elapsed_ms": self.elapsed_ms,
            "time_budget_s": self.time_budget_s,
            "max_distance_mi": self.max_distance_mi,
            "timed_out": self.timed_out,
            "too_far_from_rivers": self.too_far_from_rivers,
            "polyline_count": self.polyline_count,
            "crossing_count": self.crossing_count,
            "node_count": self.node_count,
            "edge_count": self.edge_count,
            "component_count": self.component_count,
            "largest_component_nodes": self.largest_component_nodes,
        }


@dataclass(frozen=True)
class RiverNetwork:
    graph: RiverGraph
    polylines: tuple[tuple[Coordinate, ...], ...]
    start: EndpointInfo
    end: EndpointInfo
    diagnostics: NetworkBuildDiagnostics


def _deadline_exceeded(deadline_monotonic_s: float | None) -> bool:
    if deadline_monotonic_s is None:
        return False
    return time.monotonic() >= float(deadline_monotonic_s)


def locate_endpoint(polylines: Sequence[Sequence[Coordinate]], point: Coordinate) -> EndpointInfo:
    """Closest polyline to ``point`` and the projection onto it.

    Scans left to right and keeps the first polyline reaching the strict
    minimum. With no usable polyline the projection is the point itself at an
    infinite distance.
    """
    best_index = -1
    best_point = point
    best_distance = math.inf
    for idx, polyline in enumerate(polylines):
        if not polyline:
            continue
        projected, distance = nearest_point_on_line(polyline, point)
        if distance < best_distance:
            best_index, best_point, best_distance = idx, projected, distance
    return EndpointInfo(
        origin=point,
        polyline_index=best_index,
        projected_point=best_point,
        projection_distance=best_distance,
    )


def splice_point(polyline: Polyline, point: Coordinate) -> bool:
    """Insert ``point`` after the first vertex of its nearest segment, in place.

    Returns False when there is no segment to splice into. A point that is
    already a vertex is left alone and counts as spliced.
    """
    if len(polyline) < 2:
        return False
    key = node_key(point)
    if any(node_key(vertex) == key for vertex in polyline):
        return True
    distances = segment_distances(polyline, point)
    if distances.size == 0 or not np.isfinite(distances).any():
        return False
    # argmin keeps the first segment among equals.
    segment_idx = int(np.argmin(distances))
    polyline.insert(segment_idx + 1, (float(point[0]), float(point[1])))
    return True


def _candidate_partners(shapes: Sequence[LineString | None]) -> list[list[int]]:
    valid = [idx for idx, shape in enumerate(shapes) if shape is not None]
    partners: list[list[int]] = [[] for _ in shapes]
    if not valid:
        return partners
    if not settings.strtree_pruning_enabled:
        for i in valid:
            partners[i] = [j for j in valid if j > i]
        return partners
    tree = STRtree([shapes[idx] for idx in valid])
    for i in valid:
        hits = tree.query(shapes[i])
        partners[i] = sorted(valid[int(hit)] for hit in hits if valid[int(hit)] > i)
    return partners


def resolve_intersections(
    polylines: Sequence[Polyline],
    *,
    deadline_monotonic_s: float | None = None,
    stats: dict[str, Any] | None = None,
) -> list[Polyline]:
    """Splice every pairwise crossing into both polylines.

    Pairs are visited as ascending ``(i, j)`` with ``i < j``; an STRtree
    bounding-box query only removes pairs that cannot touch. The budget is
    polled every ``settings.intersection_check_interval`` outer iterations and
    an overrun yields an empty list.
    """
    refined: list[Polyline] = [list(polyline) for polyline in polylines]
    shapes: list[LineString | None] = [
        LineString(polyline) if len(polyline) >= 2 else None for polyline in refined
    ]
    partners = _candidate_partners(shapes)
    interval = max(1, int(settings.intersection_check_interval))
    crossings = 0
    failed_splices = 0
    for i, shape_i in enumerate(shapes):
        if i % interval == 0 and _deadline_exceeded(deadline_monotonic_s):
            if stats is not None:
                stats["timed_out"] = True
                stats["crossing_count"] = crossings
            return []
        if shape_i is None:
            continue
        for j in partners[i]:
            shape_j = shapes[j]
            if shape_j is None:
                continue
            for point in crossing_points(shape_i, shape_j):
                crossings += 1
                if not splice_point(refined[i], point):
                    failed_splices += 1
                if not splice_point(refined[j], point):
                    failed_splices += 1
    if stats is not None:
        stats["timed_out"] = False
        stats["crossing_count"] = crossings
        stats["failed_splices"] = failed_splices
    return refined


def _compute_component_index(
    adjacency: dict[NodeKey, tuple[GraphEdge, ...]],
) -> tuple[dict[NodeKey, int], dict[int, int], int, int]:
    component_by_node: dict[NodeKey, int] = {}
    component_sizes: dict[int, int] = {}
    component_idx = 0
    for node_id in adjacency:
        if node_id in component_by_node:
            continue
        component_idx += 1
        q: deque[NodeKey] = deque([node_id])
        size = 0
        while q:
            current = q.popleft()
            if current in component_by_node:
                continue
            component_by_node[current] = component_idx
            size += 1
            for edge in adjacency.get(current, ()):
                if edge.to not in component_by_node:
                    q.append(edge.to)
        component_sizes[component_idx] = size
    largest_component_nodes = max(component_sizes.values(), default=0)
    return component_by_node, component_sizes, int(component_idx), int(largest_component_nodes)


def assemble_graph(
    polylines: Sequence[Sequence[Coordinate]],
    *,
    deadline_monotonic_s: float | None = None,
    stats: dict[str, Any] | None = None,
) -> RiverGraph:
    """Link each vertex to its neighbours along its polyline, in both directions.

    Shared vertices (same node key) are what joins polylines together; the
    first coordinate seen for a key represents that node.
    """
    nodes: dict[NodeKey, Coordinate] = {}
    adjacency_mut: dict[NodeKey, list[GraphEdge]] = {}
    edge_index: set[tuple[NodeKey, NodeKey]] = set()
    interval = max(1, int(settings.graph_check_interval))
    vertices_seen = 0
    for polyline in polylines:
        prev_key: NodeKey | None = None
        for coord in polyline:
            if vertices_seen % interval == 0 and _deadline_exceeded(deadline_monotonic_s):
                if stats is not None:
                    stats["timed_out"] = True
                return RiverGraph.empty()
            vertices_seen += 1
            key = node_key(coord)
            nodes.setdefault(key, (float(coord[0]), float(coord[1])))
            adjacency_mut.setdefault(key, [])
            if prev_key is not None and prev_key != key and (prev_key, key) not in edge_index:
                weight = haversine_mi(nodes[prev_key], nodes[key])
                adjacency_mut[prev_key].append(GraphEdge(to=key, weight=weight))
                adjacency_mut[key].append(GraphEdge(to=prev_key, weight=weight))
                edge_index.add((prev_key, key))
                edge_index.add((key, prev_key))
            prev_key = key
    if stats is not None:
        stats["timed_out"] = False

    adjacency = {key: tuple(edges) for key, edges in adjacency_mut.items()}
    component_by_node, component_sizes, component_count, largest_component_nodes = (
        _compute_component_index(adjacency)
    )
    return RiverGraph(
        nodes=nodes,
        adjacency=adjacency,
        component_by_node=component_by_node,
        component_sizes=component_sizes,
        component_count=component_count,
        largest_component_nodes=largest_component_nodes,
    )


def _splice_endpoint(polylines: list[Polyline], info: EndpointInfo) -> None:
    if info.polyline_index < 0:
        return
    # A refused splice only means the target polyline is degenerate; skip it.
    splice_point(polylines[info.polyline_index], info.projected_point)


def build_river_network(
    features: object,
    start: Coordinate,
    end: Coordinate,
    *,
    max_distance_mi: float | None = None,
    time_budget_s: float | None = None,
    boundary: object | None = None,
    reference_line: object | None = None,
) -> RiverNetwork:
    """Build the query graph for one start/end pair.

    An overrun of the wall-clock budget produces an empty graph flagged
    ``timed_out``; an endpoint beyond ``max_distance_mi`` of every river
    produces an empty graph flagged ``too_far_from_rivers``.
    """
    started = time.monotonic()
    budget_s = settings.build_timeout_s if time_budget_s is None else max(0.0, float(time_budget_s))
    distance_cap = (
        settings.max_distance_from_river_mi if max_distance_mi is None else float(max_distance_mi)
    )
    deadline = started + float(budget_s)

    def _elapsed_ms() -> float:
        return round(max(0.0, (time.monotonic() - started) * 1000.0), 2)

    def _finish(
        phase: str,
        graph: RiverGraph,
        polylines: Sequence[Sequence[Coordinate]],
        start_info: EndpointInfo,
        end_info: EndpointInfo,
        **flags: Any,
    ) -> RiverNetwork:
        diagnostics = NetworkBuildDiagnostics(
            phase=phase,
            elapsed_ms=_elapsed_ms(),
            time_budget_s=float(budget_s),
            max_distance_mi=float(distance_cap),
            polyline_count=len(polylines),
            node_count=len(graph.nodes),
            edge_count=graph.edge_count,
            component_count=graph.component_count,
            largest_component_nodes=graph.largest_component_nodes,
            **flags,
        )
        if diagnostics.timed_out:
            log_event("river_network_build_timeout", **diagnostics.as_fields())
        else:
            log_event("river_network_built", **diagnostics.as_fields())
        return RiverNetwork(
            graph=graph,
            polylines=tuple(tuple(polyline) for polyline in polylines),
            start=start_info,
            end=end_info,
            diagnostics=diagnostics,
        )

    records = filter_geometries(features, boundary=boundary, reference_line=reference_line)
    polylines = flatten_geometries(records)
    unlocated_start = EndpointInfo(start, -1, start, math.inf)
    unlocated_end = EndpointInfo(end, -1, end, math.inf)
    if _deadline_exceeded(deadline):
        return _finish("flattening", RiverGraph.empty(), polylines, unlocated_start, unlocated_end, timed_out=True)

    start_info = locate_endpoint(polylines, start)
    end_info = locate_endpoint(polylines, end)
    if start_info.projection_distance > distance_cap or end_info.projection_distance > distance_cap:
        return _finish(
            "locating_endpoints",
            RiverGraph.empty(),
            polylines,
            start_info,
            end_info,
            too_far_from_rivers=True,
        )

    _splice_endpoint(polylines, start_info)
    _splice_endpoint(polylines, end_info)
    if not start_info.on_river:
        polylines.append([start, start_info.projected_point])
    if not end_info.on_river:
        polylines.append([end_info.projected_point, end])

    stats: dict[str, Any] = {}
    refined = resolve_intersections(polylines, deadline_monotonic_s=deadline, stats=stats)
    crossing_count = int(stats.get("crossing_count", 0))
    if stats.get("timed_out"):
        return _finish(
            "resolving_intersections",
            RiverGraph.empty(),
            polylines,
            start_info,
            end_info,
            timed_out=True,
            crossing_count=crossing_count,
        )

    graph = assemble_graph(refined, deadline_monotonic_s=deadline, stats=stats)
    if stats.get("timed_out"):
        return _finish(
            "assembling_graph",
            RiverGraph.empty(),
            refined,
            start_info,
            end_info,
            timed_out=True,
            crossing_count=crossing_count,
        )
    return _finish("ready", graph, refined, start_info, end_info, crossing_count=crossing_count)
