"""Dense anchor targets for PointPillars training.

For every labelled box, anchors are evaluated on the grid cells around the box
and each (cell, anchor) pair is classified by its BEV IOU with the box:

    positive  iou >  positive_threshold   full regression record, channel 0 = 1
    negative  iou <  negative_threshold   channel 0 = 0
    ignore    otherwise                   channel 0 = -1

Cells outside the search window are never written and keep their zero
initialisation. If no anchor is positive anywhere, the best anchor is forced
positive at the label's own cell and its 5x5 neighbourhood is set to ignore.

Target channels:
    0     objectness (1 / 0 / -1)
    1-2   x, y offset divided by the anchor diagonal
    3     z offset divided by the anchor height
    4-6   log ratio of length, width, height to the anchor
    7     sine of the unoriented yaw difference, reduced to [-pi/2, pi/2]
    8     heading flip flag
    9     class id
"""

from __future__ import annotations

import math
from typing import List, NamedTuple, Optional, Sequence, Tuple

import numpy as np
import numpy.typing as npt

from pillar_encoding.geometry import OrientedBox, iou
from pillar_encoding.util import get_logger, log_duration

from .anchors import AnchorSet, align_anchor, create_label_boxes

__all__ = [
    "NB_TARGET_CHANNELS",
    "POSITIVE",
    "NEGATIVE",
    "IGNORE",
    "LabelMatch",
    "target_grid_size",
    "encode_box",
    "encode_label",
    "build_targets",
    "encode_targets",
]

logger = get_logger(__name__)

NB_TARGET_CHANNELS = 10

POSITIVE = 1.0
NEGATIVE = 0.0
IGNORE = -1.0

# Half size of the neighbourhood marked as ignore around a forced positive
FALLBACK_RADIUS = 2


class LabelMatch(NamedTuple):
    """Outcome of matching one label against the anchors in its search window."""

    max_iou: float
    best_anchor_id: int
    forced: bool


def _clip(n: int, lower: int, upper: int) -> int:
    return max(lower, min(n, upper))


def target_grid_size(
    x_step: float,
    y_step: float,
    point_cloud_range: Sequence[float],
    downscaling_factor: int,
) -> Tuple[int, int]:
    """Number of target cells along x and y for the downscaled grid."""
    x_min, y_min, _, x_max, y_max, _ = point_cloud_range
    x_size = math.floor((x_max - x_min) / (x_step * downscaling_factor))
    y_size = math.floor((y_max - y_min) / (y_step * downscaling_factor))
    return x_size, y_size


def _heading_flipped(delta_yaw_oriented: float) -> bool:
    # The two bounds never overlap, so channel 8 is always 0
    return abs(delta_yaw_oriented) < math.pi / 2 and abs(delta_yaw_oriented) > 1.5 * math.pi


def encode_box(
    label: OrientedBox,
    anchor: OrientedBox,
    diagonal: float,
) -> npt.NDArray[np.float32]:
    """Regression record of ``label`` relative to a placed anchor.

    Args:
        label: Labelled box
        anchor: Anchor working copy, centered on its grid cell
        diagonal: Ground-plane diagonal of the anchor

    Returns:
        [10] float32 target record with channel 0 set to 1. Zero anchor
        extents give inf or NaN entries.
    """
    delta_yaw = math.fmod(label.yaw - anchor.base_yaw, math.pi)
    delta_yaw_oriented = math.fmod(label.yaw - anchor.base_yaw, 2 * math.pi)

    with np.errstate(divide="ignore", invalid="ignore"):
        offsets = np.array(
            [label.x - anchor.x, label.y - anchor.y, label.z - anchor.z], dtype=np.float64
        ) / np.array([diagonal, diagonal, anchor.height], dtype=np.float64)
        log_sizes = np.log(
            np.array([label.length, label.width, label.height], dtype=np.float64)
            / np.array([anchor.length, anchor.width, anchor.height], dtype=np.float64)
        )

    record = np.empty(NB_TARGET_CHANNELS, dtype=np.float32)
    record[0] = POSITIVE
    record[1:4] = offsets
    record[4:7] = log_sizes
    # The sine is only invertible on [-pi/2, pi/2]
    record[7] = math.sin(-delta_yaw if abs(delta_yaw) > math.pi / 2 else delta_yaw)
    record[8] = 1.0 if _heading_flipped(delta_yaw_oriented) else 0.0
    record[9] = label.class_id
    return record


def encode_label(
    targets: npt.NDArray[np.float32],
    label: OrientedBox,
    anchors: AnchorSet,
    positive_threshold: float,
    negative_threshold: float,
    angle_threshold: float,
    downscaling_factor: int,
    x_step: float,
    y_step: float,
    x_min: float,
    y_min: float,
) -> LabelMatch:
    """Write the targets of one label.

    Args:
        targets: [x_size, y_size, nb_anchors, 10] slice owned by this label,
            written in place
        label: Labelled box inside the grid
        anchors: Anchor templates
        positive_threshold: IOU above which an anchor is positive
        negative_threshold: IOU below which an anchor is negative
        angle_threshold: Yaw tolerance for aligning anchors with the label
        downscaling_factor: Target cell size in pillars
        x_step: Pillar size along x
        y_step: Pillar size along y
        x_min: Grid origin along x
        y_min: Grid origin along y

    Returns:
        LabelMatch with the best IOU, the anchor id it was reached with and
        whether the fallback assignment was used
    """
    x_size, y_size = targets.shape[0], targets.shape[1]
    cell_x = x_step * downscaling_factor
    cell_y = y_step * downscaling_factor

    # Zone in on the cells the box can overlap
    offset = math.ceil(label.diagonal / cell_x)
    x_c = math.floor((label.x - x_min) / cell_x)
    y_c = math.floor((label.y - y_min) / cell_y)
    x_start, x_end = _clip(x_c - offset, 0, x_size), _clip(x_c + offset, 0, x_size)
    y_start, y_end = _clip(y_c - offset, 0, y_size), _clip(y_c + offset, 0, y_size)

    max_iou = 0.0
    best_anchor = OrientedBox()
    best_anchor_id = 0
    for x_id in range(x_start, x_end):
        x = x_id * x_step * downscaling_factor + x_min
        for y_id in range(y_start, y_end):
            y = y_id * y_step * downscaling_factor + y_min
            for anchor_id, template in enumerate(anchors):
                anchor = align_anchor(template, x, y, label.yaw, angle_threshold)
                overlap = iou(anchor, label)

                if max_iou < overlap:
                    max_iou = overlap
                    best_anchor = anchor
                    best_anchor_id = anchor_id

                if overlap > positive_threshold:
                    targets[x_id, y_id, anchor_id] = encode_box(
                        label, anchor, anchors.diagonals[anchor_id]
                    )
                elif overlap < negative_threshold:
                    targets[x_id, y_id, anchor_id, 0] = NEGATIVE
                else:
                    targets[x_id, y_id, anchor_id, 0] = IGNORE

    if not max_iou < positive_threshold:
        return LabelMatch(max_iou, best_anchor_id, forced=False)

    if x_size > 0 and y_size > 0:
        _assign_fallback(
            targets, label, best_anchor, best_anchor_id,
            x_c, y_c, x_step, y_step, x_min, y_min, downscaling_factor,
        )
    return LabelMatch(max_iou, best_anchor_id, forced=True)


def _assign_fallback(
    targets: npt.NDArray[np.float32],
    label: OrientedBox,
    best_anchor: OrientedBox,
    best_anchor_id: int,
    x_c: int,
    y_c: int,
    x_step: float,
    y_step: float,
    x_min: float,
    y_min: float,
    downscaling_factor: int,
) -> None:
    """Force the best anchor positive at the label cell, ignore its neighbours.

    The label cell is clipped into the grid, so for a label in a partial last
    cell one of the ignored neighbours is the positive cell itself. The
    positive is written last and always wins.
    """
    x_size, y_size = targets.shape[0], targets.shape[1]
    for dx in range(-FALLBACK_RADIUS, FALLBACK_RADIUS + 1):
        for dy in range(-FALLBACK_RADIUS, FALLBACK_RADIUS + 1):
            if dx == 0 and dy == 0:
                continue
            # Out-of-bounds neighbours are skipped, not clipped
            if 0 <= x_c + dx < x_size and 0 <= y_c + dy < y_size:
                targets[x_c + dx, y_c + dy, best_anchor_id, 0] = IGNORE

    # A large object can cover several cells completely; the best anchor
    # shape is assumed to be right at the label cell as well
    x_id = _clip(x_c, 0, x_size - 1)
    y_id = _clip(y_c, 0, y_size - 1)
    x = x_id * x_step * downscaling_factor + x_min
    y = y_id * y_step * downscaling_factor + y_min
    targets[x_id, y_id, best_anchor_id] = encode_box(
        label, best_anchor._replace(x=x, y=y), best_anchor.diagonal
    )


def build_targets(
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
    point_cloud_range: Sequence[float],
    print_time: bool = False,
    matches: Optional[List[LabelMatch]] = None,
) -> npt.NDArray[np.float32]:
    """Create the PointPillars ground-truth tensor for one frame.

    Args:
        object_positions: [M, 3] box centers
        object_dimensions: [M, 3] (length, width, height)
        object_yaws: [M] yaw angles
        object_class_ids: [M] class ids
        anchor_dimensions: [A, 3] anchor (length, width, height)
        anchor_z_heights: [A] anchor center heights
        anchor_yaws: [A] anchor yaws
        positive_threshold: IOU above which an anchor is positive
        negative_threshold: IOU below which an anchor is negative
        angle_threshold: Yaw tolerance for aligning anchors with a label
        nb_classes: Number of classes; ids outside [0, nb_classes) are written
            as given but logged as a warning
        downscaling_factor: Target cell size in pillars
        x_step: Pillar size along x
        y_step: Pillar size along y
        point_cloud_range: [x_min, y_min, z_min, x_max, y_max, z_max]
        print_time: Log the elapsed time and per-label match diagnostics
        matches: Optional list that receives one LabelMatch per kept label

    Returns:
        [M, x_size, y_size, A, 10] float32 targets. Slice i belongs to the i-th
        label inside the grid; slices past the number of kept labels stay zero.

    Raises:
        InvalidInputError: if there are no anchors or objects, or the arrays
            have inconsistent shapes
    """
    anchors = AnchorSet.from_arrays(anchor_dimensions, anchor_z_heights, anchor_yaws)
    return encode_targets(
        object_positions,
        object_dimensions,
        object_yaws,
        object_class_ids,
        anchors,
        positive_threshold=positive_threshold,
        negative_threshold=negative_threshold,
        angle_threshold=angle_threshold,
        nb_classes=nb_classes,
        downscaling_factor=downscaling_factor,
        x_step=x_step,
        y_step=y_step,
        point_cloud_range=point_cloud_range,
        print_time=print_time,
        matches=matches,
    )


def encode_targets(
    object_positions: npt.ArrayLike,
    object_dimensions: npt.ArrayLike,
    object_yaws: npt.ArrayLike,
    object_class_ids: npt.ArrayLike,
    anchors: AnchorSet,
    positive_threshold: float,
    negative_threshold: float,
    angle_threshold: float,
    nb_classes: int,
    downscaling_factor: int,
    x_step: float,
    y_step: float,
    point_cloud_range: Sequence[float],
    print_time: bool = False,
    matches: Optional[List[LabelMatch]] = None,
) -> npt.NDArray[np.float32]:
    """Same as :func:`build_targets` with an already validated anchor set."""
    x_min, y_min, _, x_max, y_max, _ = point_cloud_range
    labels, nb_objects = create_label_boxes(
        object_positions,
        object_dimensions,
        object_yaws,
        object_class_ids,
        x_range=(x_min, x_max),
        y_range=(y_min, y_max),
    )

    x_size, y_size = target_grid_size(x_step, y_step, point_cloud_range, downscaling_factor)

    with log_duration(logger, "create_pillars_target", enabled=print_time):
        targets = np.zeros(
            (nb_objects, x_size, y_size, len(anchors), NB_TARGET_CHANNELS), dtype=np.float32
        )

        if print_time:
            logger.info(f"Received {len(labels)} objects")

        for object_index, label in enumerate(labels):
            if not 0 <= label.class_id < nb_classes:
                logger.warning(
                    f"Object {object_index} has class id {label.class_id:g} "
                    f"outside [0, {nb_classes})"
                )

            match = encode_label(
                targets[object_index],
                label,
                anchors,
                positive_threshold=positive_threshold,
                negative_threshold=negative_threshold,
                angle_threshold=angle_threshold,
                downscaling_factor=downscaling_factor,
                x_step=x_step,
                y_step=y_step,
                x_min=x_min,
                y_min=y_min,
            )
            if matches is not None:
                matches.append(match)

            if print_time:
                if match.forced:
                    logger.info(
                        f"There was no sufficiently overlapping anchor anywhere for object "
                        f"{object_index}. Best IOU was {match.max_iou}. "
                        f"Adding the best location regardless of threshold."
                    )
                else:
                    logger.info(
                        f"At least 1 anchor was positively matched for object "
                        f"{object_index}. Best IOU was {match.max_iou}."
                    )

    return targets
