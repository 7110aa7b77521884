"""Torch front-end for the pillar builder."""

from typing import Any, Dict, Tuple, Union

import numpy as np
import torch
import torch.nn as nn

from .pillars import build_pillars

__all__ = ["PillarBuilder", "create_pillar_builder"]


class PillarBuilder(nn.Module):
    """Hard pillarization with fixed maximum pillars and points per pillar.

    Wraps :func:`build_pillars` so it can sit in a model or a data pipeline and
    return torch tensors. The builder has no parameters and no state between calls.

    Args:
        pillar_size: Size of each pillar (x, y) in meters
        point_cloud_range: [x_min, y_min, z_min, x_max, y_max, z_max]
        max_points_per_pillar: Maximum number of points kept per pillar
        max_pillars: Maximum number of pillars kept
        min_distance: Drop points closer than this to the origin (disabled when <= 0)
        print_time: Log timing diagnostics on every call

    Example:
        >>> builder = PillarBuilder(
        ...     pillar_size=(0.16, 0.16),
        ...     point_cloud_range=(0, -40.32, -3, 80.64, 40.32, 1),
        ...     max_points_per_pillar=100,
        ...     max_pillars=12000,
        ... )
        >>> points = torch.rand(10000, 4)
        >>> pillars, indices = builder(points)  # [1, 12000, 100, 9], [1, 12000, 3]
    """

    def __init__(
        self,
        pillar_size: Tuple[float, float],
        point_cloud_range: Tuple[float, float, float, float, float, float],
        max_points_per_pillar: int = 100,
        max_pillars: int = 12000,
        min_distance: float = -1.0,
        print_time: bool = False,
    ):
        super().__init__()

        self.pillar_size = tuple(pillar_size)
        self.point_cloud_range = tuple(point_cloud_range)
        self.max_points_per_pillar = max_points_per_pillar
        self.max_pillars = max_pillars
        self.min_distance = min_distance
        self.print_time = print_time

        # Calculate grid size
        self.grid_size = [
            int((point_cloud_range[3] - point_cloud_range[0]) / pillar_size[0]),
            int((point_cloud_range[4] - point_cloud_range[1]) / pillar_size[1]),
        ]

    @torch.no_grad()
    def forward(
        self,
        points: Union[torch.Tensor, np.ndarray],
    ) -> Tuple[torch.Tensor, torch.Tensor]:
        """Pillarize one point cloud.

        Args:
            points: [N, 4] or [N, 7] point cloud

        Returns:
            pillars: [1, max_pillars, max_points_per_pillar, 9 or 12] float32
            indices: [1, max_pillars, 3] int32 (batch, x_index, y_index)
        """
        if isinstance(points, torch.Tensor):
            points = points.detach().cpu().numpy()

        tensor, indices = build_pillars(
            points,
            max_points_per_pillar=self.max_points_per_pillar,
            max_pillars=self.max_pillars,
            x_step=self.pillar_size[0],
            y_step=self.pillar_size[1],
            point_cloud_range=self.point_cloud_range,
            min_distance=self.min_distance,
            print_time=self.print_time,
        )
        return torch.from_numpy(tensor), torch.from_numpy(indices)

    def extra_repr(self) -> str:
        return (
            f"pillar_size={self.pillar_size}, point_cloud_range={self.point_cloud_range}, "
            f"max_points_per_pillar={self.max_points_per_pillar}, max_pillars={self.max_pillars}"
        )


def create_pillar_builder(config: Dict[str, Any], print_time: bool = False) -> PillarBuilder:
    """Create a :class:`PillarBuilder` from a loaded YAML configuration.

    Args:
        config: Configuration with ``grid`` and ``pillars`` sections
        print_time: Log timing diagnostics on every call

    Returns:
        Configured PillarBuilder
    """
    grid = config["grid"]
    pillars = config["pillars"]
    return PillarBuilder(
        pillar_size=tuple(grid["pillar_size"]),
        point_cloud_range=tuple(grid["point_cloud_range"]),
        max_points_per_pillar=pillars["max_points_per_pillar"],
        max_pillars=pillars["max_pillars"],
        min_distance=pillars.get("min_distance", -1.0),
        print_time=print_time,
    )
