"""Point cloud to PointPillars input tensors.

Points are binned into vertical columns ("pillars") on a regular x/y grid. For
every occupied pillar the network input described in chapter 2.1 of the
PointPillars paper (https://arxiv.org/abs/1812.05784) is assembled:

    x, y, z, intensity, xc, yc, zc, xp, yp[, r, g, b]

where the subscript c denotes the offset to the arithmetic mean of all points
in the pillar and the subscript p the offset to the pillar's grid corner.
"""

from __future__ import annotations

import math
from itertools import islice
from typing import Dict, NamedTuple, Sequence, Tuple

import numpy as np
import numpy.typing as npt

from pillar_encoding.errors import InvalidInputError
from pillar_encoding.util import get_logger, log_duration

__all__ = [
    "PillarKey",
    "POINT_CHANNELS",
    "validate_points",
    "filter_points",
    "bucket_points",
    "build_pillars",
]

logger = get_logger(__name__)

# Number of input columns -> number of feature channels per point
POINT_CHANNELS = {
    4: 9,  # x, y, z, intensity
    7: 12,  # x, y, z, intensity, r, g, b
}


class PillarKey(NamedTuple):
    """Integer grid cell of a pillar.

    Hashing and equality are structural over both indices, so two cells never
    collide regardless of how large the indices get.
    """

    x_index: int
    y_index: int


def validate_points(points: npt.ArrayLike) -> npt.NDArray[np.float32]:
    """Return ``points`` as a float32 array, checking its shape.

    Raises:
        InvalidInputError: if the array is not (N, 4) or (N, 7)
    """
    points = np.asarray(points, dtype=np.float32)
    if points.ndim != 2 or points.shape[1] not in POINT_CHANNELS:
        raise InvalidInputError(
            f"numpy array with shape (n, 4) or (n, 7) expected "
            f"(n being the number of points), got {points.shape}"
        )
    return points


def filter_points(
    points: npt.NDArray[np.float32],
    point_cloud_range: Sequence[float],
    min_distance: float = -1.0,
) -> npt.NDArray[np.float32]:
    """Keep points inside the range, optionally outside a disk around the origin.

    Args:
        points: [N, C] points, C >= 3
        point_cloud_range: [x_min, y_min, z_min, x_max, y_max, z_max], upper bounds exclusive
        min_distance: Drop points closer than this to the origin in the x/y plane.
            Disabled when <= 0.

    Returns:
        [M, C] remaining points in input order
    """
    x_min, y_min, z_min, x_max, y_max, z_max = point_cloud_range
    x, y, z = points[:, 0], points[:, 1], points[:, 2]

    mask = (
        (x >= x_min) & (x < x_max) &
        (y >= y_min) & (y < y_max) &
        (z >= z_min) & (z < z_max)
    )
    if min_distance > 0:
        mask &= ~(x**2 + y**2 < min_distance**2)

    return points[mask]


def bucket_points(
    points: npt.NDArray[np.float32],
    x_step: float,
    y_step: float,
    x_min: float,
    y_min: float,
) -> Dict[PillarKey, npt.NDArray[np.intp]]:
    """Group points by the grid cell they fall into.

    Cells are keyed by :class:`PillarKey` and appear in the order in which
    their first point appears in ``points``. Within a cell, point rows keep
    their input order.

    Args:
        points: [N, C] points already filtered to the grid range
        x_step: Cell size along x
        y_step: Cell size along y
        x_min: Grid origin along x
        y_min: Grid origin along y

    Returns:
        Dict mapping each occupied cell to the row indices of its points
    """
    if len(points) == 0:
        return {}

    x_indices = np.floor((points[:, 0] - x_min) / x_step).astype(np.int64)
    y_indices = np.floor((points[:, 1] - y_min) / y_step).astype(np.int64)
    cells = np.stack([x_indices, y_indices], axis=1)

    unique_cells, first_rows, inverse = np.unique(
        cells, axis=0, return_index=True, return_inverse=True
    )
    inverse = inverse.reshape(-1)

    # Rows grouped by cell; a stable sort keeps the input order inside a cell
    grouped_rows = np.argsort(inverse, kind="stable")
    counts = np.bincount(inverse, minlength=len(unique_cells))
    starts = np.concatenate([[0], np.cumsum(counts)[:-1]])

    buckets: Dict[PillarKey, npt.NDArray[np.intp]] = {}
    for cell in np.argsort(first_rows, kind="stable"):
        key = PillarKey(int(unique_cells[cell, 0]), int(unique_cells[cell, 1]))
        buckets[key] = grouped_rows[starts[cell]:starts[cell] + counts[cell]]
    return buckets


def build_pillars(
    points: npt.ArrayLike,
    max_points_per_pillar: int,
    max_pillars: int,
    x_step: float,
    y_step: float,
    point_cloud_range: Sequence[float],
    min_distance: float = -1.0,
    print_time: bool = False,
) -> Tuple[npt.NDArray[np.float32], npt.NDArray[np.int32]]:
    """Create the PointPillars input tensors for one point cloud.

    Occupied pillars are taken in bucket order (first occurrence in the input)
    until ``max_pillars`` is reached; the remaining pillars are dropped without
    any prioritisation. Points beyond ``max_points_per_pillar`` in a pillar are
    dropped as well, but still contribute to the pillar mean.

    The grid index written for a pillar is recomputed from the pillar's mean
    position and can differ from the cell the points were bucketed into when
    the mean sits on a cell border.

    Args:
        points: [N, 4] (x, y, z, intensity) or [N, 7] (x, y, z, intensity, r, g, b)
        max_points_per_pillar: Point slots per pillar (N in the paper)
        max_pillars: Pillar slots (P in the paper)
        x_step: Pillar size along x
        y_step: Pillar size along y
        point_cloud_range: [x_min, y_min, z_min, x_max, y_max, z_max]
        min_distance: Radius of the exclusion disk around the origin, disabled when <= 0
        print_time: Log the elapsed time and pillar counts

    Returns:
        Tuple of (tensor, indices):
            - tensor: [1, max_pillars, max_points_per_pillar, 9 or 12] float32
            - indices: [1, max_pillars, 3] int32 rows of (batch, x_index, y_index).
              Unused rows stay (0, 0, 0) and are indistinguishable from a real
              pillar at cell (0, 0).

    Raises:
        InvalidInputError: if ``points`` is not (N, 4) or (N, 7)
    """
    points = validate_points(points)
    n_channels = POINT_CHANNELS[points.shape[1]]
    has_rgb = n_channels == 12
    x_min, y_min = point_cloud_range[0], point_cloud_range[1]

    with log_duration(logger, "create_pillars", enabled=print_time):
        points = filter_points(points, point_cloud_range, min_distance)
        points[:, 3] = np.clip(points[:, 3], 0.0, 1.0)

        buckets = bucket_points(points, x_step, y_step, x_min, y_min)

        tensor = np.zeros((1, max_pillars, max_points_per_pillar, n_channels), dtype=np.float32)
        indices = np.zeros((1, max_pillars, 3), dtype=np.int32)

        for pillar_id, rows in enumerate(islice(buckets.values(), max_pillars)):
            pillar_points = points[rows]

            # Mean over every point of the pillar, including dropped ones
            xyz_mean = pillar_points[:, :3].sum(axis=0) / np.float32(len(rows))

            x_index = math.floor((xyz_mean[0] - x_min) / x_step)
            y_index = math.floor((xyz_mean[1] - y_min) / y_step)
            indices[0, pillar_id, 1] = x_index
            indices[0, pillar_id, 2] = y_index

            kept = pillar_points[:max_points_per_pillar]
            n_kept = len(kept)
            features = tensor[0, pillar_id, :n_kept]

            features[:, 0:4] = kept[:, 0:4]
            # Offset to the arithmetic mean of the pillar
            features[:, 4:7] = kept[:, 0:3] - xyz_mean
            # Offset to the pillar corner
            features[:, 7] = kept[:, 0] - (x_index * x_step + x_min)
            features[:, 8] = kept[:, 1] - (y_index * y_step + y_min)
            if has_rgb:
                features[:, 9:12] = kept[:, 4:7]

        if print_time:
            logger.info(
                f"{len(points)} points in range, {len(buckets)} occupied pillars, "
                f"{min(len(buckets), max_pillars)} kept"
            )

    return tensor, indices
