"""Oriented 3D boxes and their ground-plane footprint."""

from __future__ import annotations

import math
from typing import List, NamedTuple, Tuple

__all__ = ["OrientedBox", "Point2D", "Polygon2D", "corners_of"]

Point2D = Tuple[float, float]
Polygon2D = List[Point2D]


class OrientedBox(NamedTuple):
    """3D box rotated around the vertical axis.

    Used for both labels and anchors. ``base_yaw`` is only meaningful for
    anchors: it is the template orientation, while ``yaw`` is the orientation
    the box is evaluated with. ``class_id`` is only meaningful for labels.

    Boxes are immutable; an anchor is placed on a grid cell by deriving a
    working copy with ``box._replace(x=..., y=..., yaw=...)``.
    """

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    length: float = 0.0
    width: float = 0.0
    height: float = 0.0
    yaw: float = 0.0
    base_yaw: float = 0.0
    class_id: float = 0.0

    @property
    def diagonal(self) -> float:
        """Length of the ground-plane diagonal."""
        return math.sqrt(self.width**2 + self.length**2)


def _rotate(x: float, y: float, angle: float) -> Point2D:
    cos_a = math.cos(angle)
    sin_a = math.sin(angle)
    return x * cos_a - y * sin_a, x * sin_a + y * cos_a


def corners_of(box: OrientedBox) -> Polygon2D:
    """Return the four ground-plane corners of ``box`` in clockwise order.

    The half-extent offsets ``(-l/2, +w/2)``, ``(+l/2, +w/2)``, ``(+l/2, -w/2)``
    and ``(-l/2, -w/2)`` are rotated by ``box.yaw`` and translated to the box
    center. Polygon clipping relies on this winding.

    Args:
        box: Box to project onto the ground plane

    Returns:
        List of four (x, y) tuples
    """
    half_length = 0.5 * box.length
    half_width = 0.5 * box.width

    corners = []
    for dx, dy in (
        (-half_length, half_width),
        (half_length, half_width),
        (half_length, -half_width),
        (-half_length, -half_width),
    ):
        rx, ry = _rotate(dx, dy, box.yaw)
        corners.append((rx + box.x, ry + box.y))
    return corners
