from __future__ import annotations

import heapq
from collections.abc import Hashable, Iterable, Mapping
from dataclasses import dataclass
from math import inf, isfinite

Adjacency = Mapping[Hashable, Iterable[tuple[Hashable, float]]]


@dataclass(frozen=True)
class ShortestPath:
    nodes: tuple[Hashable, ...]
    distance: float
    explored_states: int = 0

    @property
    def reachable(self) -> bool:
        return isfinite(self.distance)


def _unreachable(explored_states: int = 0) -> ShortestPath:
    return ShortestPath(nodes=(), distance=inf, explored_states=explored_states)


def dijkstra_shortest_path(
    *,
    adjacency: Adjacency,
    source: Hashable,
    target: Hashable,
) -> ShortestPath:
    """Single-source shortest path, stopping once ``target`` is settled.

    Equal tentative distances are popped in insertion order. Nodes missing from
    ``adjacency`` are unreachable, so an empty graph never yields a path.
    """
    if source not in adjacency or target not in adjacency:
        return _unreachable()

    distances: dict[Hashable, float] = {source: 0.0}
    predecessors: dict[Hashable, Hashable | None] = {source: None}
    visited: set[Hashable] = set()
    sequence = 0
    heap: list[tuple[float, int, Hashable]] = [(0.0, sequence, source)]
    explored = 0

    while heap:
        cost, _seq, node = heapq.heappop(heap)
        if node in visited:
            continue
        visited.add(node)
        explored += 1
        if node == target:
            break
        for nxt, weight in adjacency.get(node, ()):
            if nxt in visited:
                continue
            new_cost = cost + max(0.0, float(weight))
            if new_cost < distances.get(nxt, inf):
                distances[nxt] = new_cost
                predecessors[nxt] = node
                sequence += 1
                heapq.heappush(heap, (new_cost, sequence, nxt))

    if target not in predecessors:
        return _unreachable(explored)

    path: list[Hashable] = []
    step: Hashable | None = target
    while step is not None:
        path.append(step)
        step = predecessors.get(step)
    path.reverse()

    # A walk that does not end at the source means the target was never connected.
    if path[0] != source:
        return _unreachable(explored)
    return ShortestPath(nodes=tuple(path), distance=float(distances[target]), explored_states=explored)
