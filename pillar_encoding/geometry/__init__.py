"""Geometry kernel: oriented boxes, polygon clipping and BEV IOU."""

from .boxes import OrientedBox, Point2D, Polygon2D, corners_of
from .iou import iou
from .polygon import (
    clip_polygon_against_edge,
    ieee_divide,
    intersect_polygons,
    line_intersection,
    polygon_area,
)

__all__ = [
    "OrientedBox",
    "Point2D",
    "Polygon2D",
    "corners_of",
    "clip_polygon_against_edge",
    "ieee_divide",
    "intersect_polygons",
    "line_intersection",
    "polygon_area",
    "iou",
]
