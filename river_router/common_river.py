from __future__ import annotations

from collections.abc import Sequence

from .geometry import Coordinate, Polyline, as_coordinate, flatten_geometries, slice_line


def connect_multiline_segments(parts: Sequence[Sequence[Coordinate]]) -> Polyline:
    """Stitch the parts of one river into a single polyline.

    Starting from the first part, any remaining part whose end touches the
    chain's start is prepended and any part whose start touches the chain's end
    is appended; parts touching the wrong way round are reversed first. Ends
    match only on exact equality. Parts that never connect are left out.
    """
    remaining = [[(float(x), float(y)) for x, y in part] for part in parts if part]
    if not remaining:
        return []
    chain = remaining.pop(0)
    found = True
    while found and remaining:
        found = False
        for idx, part in enumerate(remaining):
            head, tail = chain[0], chain[-1]
            if part[-1] == head:
                chain = part[:-1] + chain
            elif part[0] == tail:
                chain = chain + part[1:]
            elif part[0] == head:
                chain = part[::-1][:-1] + chain
            elif part[-1] == tail:
                chain = chain + part[::-1][1:]
            else:
                continue
            remaining.pop(idx)
            found = True
            break
    return chain


def common_river_path(start: object, end: object, river: object) -> Polyline:
    """Route between two points that both sit beside the same river.

    Skips graph construction entirely: the river is stitched into one line and
    cut between the projections of ``start`` and ``end``.
    """
    start_pt = as_coordinate(start)
    end_pt = as_coordinate(end)
    line = connect_multiline_segments(flatten_geometries([river]))
    if len(line) < 2:
        return [start_pt, end_pt]
    piece = slice_line(line, start_pt, end_pt)
    if len(piece) == 1:
        return [start_pt, piece[0], end_pt]
    return [start_pt, piece[0], *piece[1:-1], piece[-1], end_pt]
