"""Configured target encoder for use in data pipelines."""

from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import numpy.typing as npt
import torch

from .anchors import AnchorSet
from .targets import LabelMatch, encode_targets, target_grid_size

__all__ = ["PillarTargetBuilder", "create_target_builder"]


class PillarTargetBuilder:
    """Encodes the labels of a frame against a fixed anchor bank.

    Args:
        anchor_dimensions: [A, 3] anchor (length, width, height)
        anchor_z_heights: [A] anchor center heights
        anchor_yaws: [A] anchor yaws
        pillar_size: Size of each pillar (x, y) in meters
        point_cloud_range: [x_min, y_min, z_min, x_max, y_max, z_max]
        positive_threshold: IOU above which an anchor is positive
        negative_threshold: IOU below which an anchor is negative
        angle_threshold: Yaw tolerance (radians) for aligning anchors with a label
        nb_classes: Number of object classes
        downscaling_factor: Target cell size in pillars
        print_time: Log timing and match diagnostics on every call

    Example:
        >>> builder = PillarTargetBuilder(
        ...     anchor_dimensions=[[3.9, 1.6, 1.56], [3.9, 1.6, 1.56]],
        ...     anchor_z_heights=[-1.0, -1.0],
        ...     anchor_yaws=[0.0, 1.5708],
        ...     pillar_size=(0.16, 0.16),
        ...     point_cloud_range=(0, -40.32, -3, 80.64, 40.32, 1),
        ... )
        >>> targets = builder(positions, dimensions, yaws, class_ids)  # [M, 252, 252, 2, 10]
    """

    def __init__(
        self,
        anchor_dimensions: npt.ArrayLike,
        anchor_z_heights: npt.ArrayLike,
        anchor_yaws: npt.ArrayLike,
        pillar_size: Tuple[float, float],
        point_cloud_range: Sequence[float],
        positive_threshold: float = 0.6,
        negative_threshold: float = 0.3,
        angle_threshold: float = 0.785,
        nb_classes: int = 4,
        downscaling_factor: int = 2,
        print_time: bool = False,
    ):
        # Validated once, reused by every call
        self.anchors = AnchorSet.from_arrays(anchor_dimensions, anchor_z_heights, anchor_yaws)

        self.pillar_size = tuple(pillar_size)
        self.point_cloud_range = tuple(point_cloud_range)
        self.positive_threshold = positive_threshold
        self.negative_threshold = negative_threshold
        self.angle_threshold = angle_threshold
        self.nb_classes = nb_classes
        self.downscaling_factor = downscaling_factor
        self.print_time = print_time

        self.grid_size = target_grid_size(
            self.pillar_size[0], self.pillar_size[1], self.point_cloud_range, downscaling_factor
        )

    @property
    def nb_anchors(self) -> int:
        return len(self.anchors)

    def __call__(
        self,
        object_positions: npt.ArrayLike,
        object_dimensions: npt.ArrayLike,
        object_yaws: npt.ArrayLike,
        object_class_ids: npt.ArrayLike,
        matches: Optional[List[LabelMatch]] = None,
    ) -> npt.NDArray[np.float32]:
        """Encode one frame.

        Returns:
            [M, x_size, y_size, nb_anchors, 10] float32 targets
        """
        return encode_targets(
            object_positions,
            object_dimensions,
            object_yaws,
            object_class_ids,
            self.anchors,
            positive_threshold=self.positive_threshold,
            negative_threshold=self.negative_threshold,
            angle_threshold=self.angle_threshold,
            nb_classes=self.nb_classes,
            downscaling_factor=self.downscaling_factor,
            x_step=self.pillar_size[0],
            y_step=self.pillar_size[1],
            point_cloud_range=self.point_cloud_range,
            print_time=self.print_time,
            matches=matches,
        )

    def as_tensor(
        self,
        object_positions: npt.ArrayLike,
        object_dimensions: npt.ArrayLike,
        object_yaws: npt.ArrayLike,
        object_class_ids: npt.ArrayLike,
    ) -> torch.Tensor:
        """Same as calling the builder, returned as a torch tensor."""
        return torch.from_numpy(
            self(object_positions, object_dimensions, object_yaws, object_class_ids)
        )

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(nb_anchors={self.nb_anchors}, grid_size={self.grid_size}, "
            f"positive_threshold={self.positive_threshold}, "
            f"negative_threshold={self.negative_threshold})"
        )


def create_target_builder(config: Dict[str, Any], print_time: bool = False) -> PillarTargetBuilder:
    """Create a :class:`PillarTargetBuilder` from a loaded YAML configuration.

    Args:
        config: Configuration with ``grid``, ``targets`` and ``anchors`` sections
        print_time: Log timing diagnostics on every call

    Returns:
        Configured PillarTargetBuilder
    """
    grid = config["grid"]
    targets = config["targets"]
    anchors = config["anchors"]

    return PillarTargetBuilder(
        anchor_dimensions=[anchor["dimensions"] for anchor in anchors],
        anchor_z_heights=[anchor["z_height"] for anchor in anchors],
        anchor_yaws=[anchor.get("yaw", 0.0) for anchor in anchors],
        pillar_size=tuple(grid["pillar_size"]),
        point_cloud_range=tuple(grid["point_cloud_range"]),
        positive_threshold=targets["positive_threshold"],
        negative_threshold=targets["negative_threshold"],
        angle_threshold=targets["angle_threshold"],
        nb_classes=targets["nb_classes"],
        downscaling_factor=targets["downscaling_factor"],
        print_time=print_time,
    )
