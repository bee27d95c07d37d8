from __future__ import annotations

import pytest
from shapely.geometry import LineString, Polygon

from river_router.common_river import common_river_path, connect_multiline_segments
from river_router.errors import GeometryInputError
from river_router.filters import filter_geometries
from river_router.geometry import node_key

WEST = {"type": "LineString", "coordinates": [[0.0, 0.0], [1.0, 0.0]]}
EAST = {"type": "LineString", "coordinates": [[5.0, 0.0], [6.0, 0.0]]}


def test_filter_geometries_without_filters_keeps_everything() -> None:
    kept = filter_geometries([WEST, EAST])

    assert [shape.bounds for shape in kept] == [(0.0, 0.0, 1.0, 0.0), (5.0, 0.0, 6.0, 0.0)]


def test_boundary_filter_keeps_intersecting_geometries() -> None:
    boundary = Polygon([(-1.0, -1.0), (2.0, -1.0), (2.0, 1.0), (-1.0, 1.0)])

    kept = filter_geometries([WEST, EAST], boundary=boundary)

    assert len(kept) == 1
    assert kept[0].bounds == (0.0, 0.0, 1.0, 0.0)


def test_reference_line_filter_keeps_touching_geometries() -> None:
    reference_line = LineString([(5.5, -1.0), (5.5, 1.0)])

    kept = filter_geometries([WEST, EAST], reference_line=reference_line)

    assert len(kept) == 1
    assert kept[0].bounds == (5.0, 0.0, 6.0, 0.0)


def test_combined_filters_must_both_match() -> None:
    boundary = Polygon([(-1.0, -1.0), (2.0, -1.0), (2.0, 1.0), (-1.0, 1.0)])
    reference_line = LineString([(5.5, -1.0), (5.5, 1.0)])

    assert filter_geometries([WEST, EAST], boundary=boundary, reference_line=reference_line) == []


def test_filter_geometries_rejects_wrong_filter_type() -> None:
    with pytest.raises(GeometryInputError) as excinfo:
        filter_geometries([WEST], boundary=LineString([(0.0, 0.0), (1.0, 1.0)]))

    assert excinfo.value.reason_code == "geometry_filter_invalid"
    assert excinfo.value.details == {"filter": "boundary", "geometry_type": "LineString"}


def test_connect_multiline_segments_stitches_in_either_direction() -> None:
    parts = [
        [(1.0, 0.0), (2.0, 0.0)],
        [(0.0, 0.0), (1.0, 0.0)],
        [(3.0, 0.0), (2.0, 0.0)],
    ]

    assert connect_multiline_segments(parts) == [(0.0, 0.0), (1.0, 0.0), (2.0, 0.0), (3.0, 0.0)]


def test_connect_multiline_segments_drops_disconnected_parts() -> None:
    parts = [[(0.0, 0.0), (1.0, 0.0)], [(5.0, 5.0), (6.0, 6.0)]]

    assert connect_multiline_segments(parts) == [(0.0, 0.0), (1.0, 0.0)]
    assert connect_multiline_segments([]) == []


def test_common_river_path_cuts_stitched_river_between_projections() -> None:
    river = {
        "type": "MultiLineString",
        "coordinates": [[[1.0, 0.0], [2.0, 0.0]], [[0.0, 0.0], [1.0, 0.0]], [[3.0, 0.0], [2.0, 0.0]]],
    }

    path = common_river_path((0.5, 0.1), (2.5, -0.1), river)

    assert path[0] == (0.5, 0.1)
    assert path[-1] == (2.5, -0.1)
    assert [node_key(c) for c in path[1:-1]] == [
        node_key(c) for c in [(0.5, 0.0), (1.0, 0.0), (2.0, 0.0), (2.5, 0.0)]
    ]


def test_common_river_path_falls_back_to_straight_line_for_degenerate_river() -> None:
    river = {"type": "MultiLineString", "coordinates": []}

    assert common_river_path((0.0, 0.0), (1.0, 1.0), river) == [(0.0, 0.0), (1.0, 1.0)]
