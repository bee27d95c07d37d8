from __future__ import annotations

import math

import pytest

from river_router.geometry import haversine_mi, node_key
from river_router.network import assemble_graph, resolve_intersections
from river_router.shortest_path import ShortestPath, dijkstra_shortest_path


def _graph() -> dict[str, tuple[tuple[str, float], ...]]:
    return {
        "A": (("B", 1.0), ("C", 4.0)),
        "B": (("C", 1.0), ("D", 5.0)),
        "C": (("D", 1.0),),
        "D": (),
    }


def test_dijkstra_prefers_cheaper_multi_hop_route() -> None:
    result = dijkstra_shortest_path(adjacency=_graph(), source="A", target="D")

    assert isinstance(result, ShortestPath)
    assert result.reachable
    assert result.nodes == ("A", "B", "C", "D")
    assert result.distance == pytest.approx(3.0)
    assert result.explored_states > 0


def test_dijkstra_returns_unreachable_for_disconnected_target() -> None:
    disconnected = {"A": (("B", 1.0),), "B": (), "D": ()}

    result = dijkstra_shortest_path(adjacency=disconnected, source="A", target="D")

    assert not result.reachable
    assert result.nodes == ()
    assert math.isinf(result.distance)


def test_dijkstra_handles_missing_nodes_and_empty_graph() -> None:
    assert not dijkstra_shortest_path(adjacency=_graph(), source="Z", target="D").reachable
    assert not dijkstra_shortest_path(adjacency=_graph(), source="A", target="Z").reachable
    assert not dijkstra_shortest_path(adjacency={}, source="A", target="A").reachable


def test_dijkstra_source_equal_to_target_is_zero_length() -> None:
    result = dijkstra_shortest_path(adjacency=_graph(), source="B", target="B")

    assert result.nodes == ("B",)
    assert result.distance == 0.0


def test_dijkstra_is_deterministic_on_ties() -> None:
    tied = {
        "A": (("B", 1.0), ("C", 1.0)),
        "B": (("D", 1.0),),
        "C": (("D", 1.0),),
        "D": (),
    }

    first = dijkstra_shortest_path(adjacency=tied, source="A", target="D")
    second = dijkstra_shortest_path(adjacency=tied, source="A", target="D")

    assert first == second
    assert first.distance == pytest.approx(2.0)
    assert first.nodes == ("A", "B", "D")


def test_route_through_crossing_sums_the_two_half_segments() -> None:
    west_east = [(-0.02, 0.0), (0.01, 0.0), (0.02, 0.0)]
    south_north = [(0.0, -0.02), (0.0, 0.01), (0.0, 0.02)]
    graph = assemble_graph(resolve_intersections([west_east, south_north]))

    result = dijkstra_shortest_path(
        adjacency=graph.cost_view(),
        source=node_key((-0.02, 0.0)),
        target=node_key((0.0, -0.02)),
    )

    expected = haversine_mi((-0.02, 0.0), (0.0, 0.0)) + haversine_mi((0.0, 0.0), (0.0, -0.02))
    assert result.nodes == (node_key((-0.02, 0.0)), node_key((0.0, 0.0)), node_key((0.0, -0.02)))
    assert result.distance == pytest.approx(expected, rel=1e-6)
