"""Anchor templates and labelled boxes for target encoding."""

from __future__ import annotations

import math
from typing import Iterator, List, Sequence, Tuple

import numpy as np
import numpy.typing as npt

from pillar_encoding.errors import InvalidInputError
from pillar_encoding.geometry import OrientedBox

__all__ = ["AnchorSet", "align_anchor", "create_label_boxes"]


class AnchorSet:
    """Ordered, immutable bank of anchor templates.

    Templates sit at the origin with ``yaw == base_yaw``. They are never
    moved; :func:`align_anchor` derives the working copy for a grid cell.

    Args:
        templates: Anchor boxes in anchor-id order
    """

    def __init__(self, templates: Sequence[OrientedBox]):
        self._templates: Tuple[OrientedBox, ...] = tuple(templates)
        self._diagonals: Tuple[float, ...] = tuple(t.diagonal for t in self._templates)

    @classmethod
    def from_arrays(
        cls,
        anchor_dimensions: npt.ArrayLike,
        anchor_z_heights: npt.ArrayLike,
        anchor_yaws: npt.ArrayLike,
    ) -> "AnchorSet":
        """Build the anchor set from its array form.

        Args:
            anchor_dimensions: [A, 3] (length, width, height)
            anchor_z_heights: [A] z of the anchor centers
            anchor_yaws: [A] base yaw of each anchor

        Raises:
            InvalidInputError: if there are no anchors or the arrays disagree in length
        """
        dimensions = np.asarray(anchor_dimensions, dtype=np.float32)
        z_heights = np.asarray(anchor_z_heights, dtype=np.float32).reshape(-1)
        yaws = np.asarray(anchor_yaws, dtype=np.float32).reshape(-1)

        nb_anchors = dimensions.shape[0] if dimensions.ndim > 0 else 0
        if nb_anchors <= 0:
            raise InvalidInputError("Anchor length is zero")
        if dimensions.ndim != 2 or dimensions.shape[1] != 3:
            raise InvalidInputError(
                f"anchor dimensions with shape (n, 3) expected, got {dimensions.shape}"
            )
        if len(z_heights) != nb_anchors or len(yaws) != nb_anchors:
            raise InvalidInputError(
                f"anchor arrays disagree in length: {nb_anchors} dimensions, "
                f"{len(z_heights)} z heights, {len(yaws)} yaws"
            )

        templates = []
        for (length, width, height), z, yaw in zip(
            dimensions.tolist(), z_heights.tolist(), yaws.tolist()
        ):
            templates.append(
                OrientedBox(
                    z=z, length=length, width=width, height=height, yaw=yaw, base_yaw=yaw
                )
            )
        return cls(templates)

    @property
    def diagonals(self) -> Tuple[float, ...]:
        return self._diagonals

    def __len__(self) -> int:
        return len(self._templates)

    def __iter__(self) -> Iterator[OrientedBox]:
        return iter(self._templates)

    def __getitem__(self, anchor_id: int) -> OrientedBox:
        return self._templates[anchor_id]

    def __repr__(self) -> str:
        return f"AnchorSet({list(self._templates)!r})"


def align_anchor(
    template: OrientedBox,
    x: float,
    y: float,
    label_yaw: float,
    angle_threshold: float,
) -> OrientedBox:
    """Working copy of ``template`` centered at (x, y) for matching a label.

    If the unoriented yaw difference between the label and the template is
    within ``angle_threshold`` of 0 or pi, the anchor takes the label's yaw so
    that rotated boxes between two anchor orientations are still covered.
    Otherwise the anchor keeps its base yaw.
    """
    delta_yaw = math.fmod(label_yaw - template.base_yaw, math.pi)
    if abs(delta_yaw) < angle_threshold or (math.pi - abs(delta_yaw)) < angle_threshold:
        yaw = label_yaw
    else:
        yaw = template.base_yaw
    return template._replace(x=x, y=y, yaw=yaw)


def create_label_boxes(
    object_positions: npt.ArrayLike,
    object_dimensions: npt.ArrayLike,
    object_yaws: npt.ArrayLike,
    object_class_ids: npt.ArrayLike,
    x_range: Tuple[float, float],
    y_range: Tuple[float, float],
) -> Tuple[List[OrientedBox], int]:
    """Build label boxes, dropping those whose center lies outside the grid.

    The ranges are half-open: a label exactly on the upper bound is dropped.

    Args:
        object_positions: [M, 3] box centers
        object_dimensions: [M, 3] (length, width, height)
        object_yaws: [M] yaw angles
        object_class_ids: [M] integer class ids
        x_range: (x_min, x_max)
        y_range: (y_min, y_max)

    Returns:
        Tuple of (labels, nb_objects): the in-bounds labels in input order and
        the number of objects before filtering

    Raises:
        InvalidInputError: if there are no objects or the arrays disagree in shape
    """
    positions = np.asarray(object_positions, dtype=np.float32)
    dimensions = np.asarray(object_dimensions, dtype=np.float32)
    yaws = np.asarray(object_yaws, dtype=np.float32).reshape(-1)
    class_ids = np.asarray(object_class_ids).reshape(-1)

    nb_objects = dimensions.shape[0] if dimensions.ndim > 0 else 0
    if nb_objects <= 0:
        raise InvalidInputError("Object length is zero")
    for name, array in (("positions", positions), ("dimensions", dimensions)):
        if array.ndim != 2 or array.shape != (nb_objects, 3):
            raise InvalidInputError(
                f"object {name} with shape ({nb_objects}, 3) expected, got {array.shape}"
            )
    if len(yaws) != nb_objects or len(class_ids) != nb_objects:
        raise InvalidInputError(
            f"object arrays disagree in length: {nb_objects} boxes, "
            f"{len(yaws)} yaws, {len(class_ids)} class ids"
        )

    x_min, x_max = x_range
    y_min, y_max = y_range
    labels = []
    for (x, y, z), (length, width, height), yaw, class_id in zip(
        positions.tolist(), dimensions.tolist(), yaws.tolist(), class_ids.tolist()
    ):
        if x < x_min or x >= x_max or y < y_min or y >= y_max:
            continue
        labels.append(
            OrientedBox(
                x=x, y=y, z=z,
                length=length, width=width, height=height,
                yaw=yaw, class_id=float(class_id),
            )
        )
    return labels, nb_objects
