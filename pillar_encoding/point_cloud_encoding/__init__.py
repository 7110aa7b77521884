"""Point cloud encoding: binning LiDAR points into PointPillars input tensors.

Components:
- pillars: numpy pillar builder (filtering, bucketing, feature assembly)
- pillar_builder: torch.nn.Module front-end and config factory
"""

from .pillar_builder import PillarBuilder, create_pillar_builder
from .pillars import (
    POINT_CHANNELS,
    PillarKey,
    bucket_points,
    build_pillars,
    filter_points,
    validate_points,
)

__all__ = [
    "PillarBuilder",
    "create_pillar_builder",
    "POINT_CHANNELS",
    "PillarKey",
    "bucket_points",
    "build_pillars",
    "filter_points",
    "validate_points",
]
