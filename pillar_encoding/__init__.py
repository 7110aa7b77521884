"""PointPillars input and target encoding.

Turns a LiDAR point cloud into the dense pillar tensor consumed by a
PointPillars network, and a frame's labelled boxes into the per-anchor
ground-truth tensor used to train it.

Components:
- geometry: oriented boxes, polygon clipping and BEV IOU
- point_cloud_encoding: pillar builder
- target_encoding: anchor matching and target encoder
- dataset: KITTI loaders, batch encoding and visualization

:func:`create_pillars` and :func:`create_pillars_target` take the grid range as
separate bounds; the underlying functions take a ``point_cloud_range``.
"""

from typing import Tuple

import numpy as np
import numpy.typing as npt

from .errors import InvalidInputError
from .point_cloud_encoding import PillarBuilder, build_pillars, create_pillar_builder
from .target_encoding import PillarTargetBuilder, build_targets, create_target_builder

__all__ = [
    "InvalidInputError",
    "PillarBuilder",
    "PillarTargetBuilder",
    "build_pillars",
    "build_targets",
    "create_pillar_builder",
    "create_target_builder",
    "create_pillars",
    "create_pillars_target",
]

__version__ = "0.1.0"


def create_pillars(
    points: npt.ArrayLike,
    max_points_per_pillar: int,
    max_pillars: int,
    x_step: float,
    y_step: float,
    x_min: float,
    x_max: float,
    y_min: float,
    y_max: float,
    z_min: float,
    z_max: float,
    print_time: bool = False,
    min_distance: float = -1.0,
) -> Tuple[npt.NDArray[np.float32], npt.NDArray[np.int32]]:
    """Create the pillar tensor and pillar indices for one point cloud.

    See :func:`pillar_encoding.point_cloud_encoding.build_pillars`.

    Returns:
        Tuple of ([1, max_pillars, max_points_per_pillar, 9 or 12] float32,
        [1, max_pillars, 3] int32)
    """
    return build_pillars(
        points,
        max_points_per_pillar=max_points_per_pillar,
        max_pillars=max_pillars,
        x_step=x_step,
        y_step=y_step,
        point_cloud_range=(x_min, y_min, z_min, x_max, y_max, z_max),
        min_distance=min_distance,
        print_time=print_time,
    )


def create_pillars_target(
    object_positions: npt.ArrayLike,
    object_dimensions: npt.ArrayLike,
    object_yaws: npt.ArrayLike,
    object_class_ids: npt.ArrayLike,
    anchor_dimensions: npt.ArrayLike,
    anchor_z_heights: npt.ArrayLike,
    anchor_yaws: npt.ArrayLike,
    positive_threshold: float,
    negative_threshold: float,
    angle_threshold: float,
    nb_classes: int,
    downscaling_factor: int,
    x_step: float,
    y_step: float,
    x_min: float,
    x_max: float,
    y_min: float,
    y_max: float,
    z_min: float,
    z_max: float,
    print_time: bool = False,
) -> npt.NDArray[np.float32]:
    """Create the anchor target tensor for the labelled boxes of one frame.

    See :func:`pillar_encoding.target_encoding.build_targets`.

    Returns:
        [M, x_size, y_size, A, 10] float32 targets
    """
    return build_targets(
        object_positions,
        object_dimensions,
        object_yaws,
        object_class_ids,
        anchor_dimensions,
        anchor_z_heights,
        anchor_yaws,
        positive_threshold=positive_threshold,
        negative_threshold=negative_threshold,
        angle_threshold=angle_threshold,
        nb_classes=nb_classes,
        downscaling_factor=downscaling_factor,
        x_step=x_step,
        y_step=y_step,
        point_cloud_range=(x_min, y_min, z_min, x_max, y_max, z_max),
        print_time=print_time,
    )
