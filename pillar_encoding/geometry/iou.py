"""Bird's-eye-view intersection over union of oriented boxes."""

from __future__ import annotations

from .boxes import OrientedBox, corners_of
from .polygon import ieee_divide, intersect_polygons, polygon_area

__all__ = ["iou"]


def iou(box_a: OrientedBox, box_b: OrientedBox) -> float:
    """Ground-plane IOU of two oriented boxes.

    Heights and z are ignored. The overlap is the Sutherland-Hodgman
    intersection of the two footprints. Division by a zero union is not
    trapped: two degenerate (zero area) boxes yield NaN.

    Coordinates are float32 values widened to Python floats and all arithmetic
    runs in double precision. A single-precision implementation can round an
    IOU that sits exactly on a matching threshold to the other side of it.

    Args:
        box_a: Box whose footprint is clipped
        box_b: Box whose footprint edges clip ``box_a``

    Returns:
        IOU in [0, 1] for non-degenerate boxes
    """
    polygon_a = corners_of(box_a)
    polygon_b = corners_of(box_b)
    overlap = polygon_area(intersect_polygons(polygon_a, polygon_b))

    area_a = polygon_area(polygon_a)
    area_b = polygon_area(polygon_b)
    return ieee_divide(overlap, area_a + area_b - overlap)
