"""Convex polygon clipping (Sutherland-Hodgman) and polygon area.

Polygons are lists of (x, y) tuples in clockwise order, as produced by
:func:`pillar_encoding.geometry.boxes.corners_of`. A vertex is inside a clip
edge when the cross product of the edge direction and the vertex offset is
strictly negative, i.e. the vertex lies to the right of the edge.
"""

from __future__ import annotations

import math
from typing import Sequence

from .boxes import Point2D, Polygon2D

__all__ = [
    "ieee_divide",
    "line_intersection",
    "clip_polygon_against_edge",
    "intersect_polygons",
    "polygon_area",
]


def ieee_divide(num: float, den: float) -> float:
    """Divide with IEEE-754 semantics instead of raising ZeroDivisionError.

    ``x / 0`` gives a signed infinity and ``0 / 0`` (or NaN / 0) gives NaN,
    so degenerate geometry propagates as non-finite values.
    """
    try:
        return num / den
    except ZeroDivisionError:
        if num == 0.0 or math.isnan(num):
            return math.nan
        return math.copysign(math.inf, num) * math.copysign(1.0, den)


def line_intersection(
    x1: float, y1: float, x2: float, y2: float,
    x3: float, y3: float, x4: float, y4: float,
) -> Point2D:
    """Intersection of the line through (x1, y1), (x2, y2) with the line through (x3, y3), (x4, y4).

    Parallel or zero-length lines are not special-cased: the denominator is
    zero and the coordinates become inf or NaN.
    """
    cross_12 = x1 * y2 - y1 * x2
    cross_34 = x3 * y4 - y3 * x4
    den = (x1 - x2) * (y3 - y4) - (y1 - y2) * (x3 - x4)
    x = ieee_divide(cross_12 * (x3 - x4) - (x1 - x2) * cross_34, den)
    y = ieee_divide(cross_12 * (y3 - y4) - (y1 - y2) * cross_34, den)
    return x, y


def clip_polygon_against_edge(
    polygon: Sequence[Point2D],
    edge_start: Point2D,
    edge_end: Point2D,
) -> Polygon2D:
    """Clip ``polygon`` to the half-plane right of the edge ``edge_start -> edge_end``.

    Args:
        polygon: Input polygon vertices
        edge_start: First point of the clip edge
        edge_end: Second point of the clip edge

    Returns:
        New list of vertices; ``polygon`` is not modified
    """
    x1, y1 = edge_start
    x2, y2 = edge_end
    clipped: Polygon2D = []

    n = len(polygon)
    for i in range(n):
        ix, iy = polygon[i]
        kx, ky = polygon[(i + 1) % n]

        i_pos = (x2 - x1) * (iy - y1) - (y2 - y1) * (ix - x1)
        k_pos = (x2 - x1) * (ky - y1) - (y2 - y1) * (kx - x1)

        if i_pos < 0 and k_pos < 0:
            # Both inside: keep the second vertex
            clipped.append((kx, ky))
        elif i_pos >= 0 and k_pos < 0:
            # Entering: intersection, then the second vertex
            clipped.append(line_intersection(x1, y1, x2, y2, ix, iy, kx, ky))
            clipped.append((kx, ky))
        elif i_pos < 0 and k_pos >= 0:
            # Leaving: intersection only
            clipped.append(line_intersection(x1, y1, x2, y2, ix, iy, kx, ky))
        # Both outside (or NaN positions): nothing

    return clipped


def intersect_polygons(polygon: Sequence[Point2D], clipper: Sequence[Point2D]) -> Polygon2D:
    """Sutherland-Hodgman intersection of ``polygon`` with the convex ``clipper``.

    ``polygon`` is clipped successively against every edge of ``clipper``;
    each step produces a fresh polygon. The result may be empty.
    """
    result: Polygon2D = list(polygon)
    n = len(clipper)
    for i in range(n):
        result = clip_polygon_against_edge(result, clipper[i], clipper[(i + 1) % n])
    return result


def polygon_area(polygon: Sequence[Point2D]) -> float:
    """Absolute area of ``polygon`` using the shoelace formula.

    Returns 0.0 for polygons with fewer than three vertices.
    """
    n = len(polygon)
    if n < 3:
        return 0.0

    area = 0.0
    j = n - 1  # previous vertex
    for i in range(n):
        area += (polygon[j][0] + polygon[i][0]) * (polygon[j][1] - polygon[i][1])
        j = i

    return abs(area / 2.0)
