"""KITTI object labels and calibration.

KITTI stores boxes in the rectified camera frame: location is the bottom
center of the box, dimensions are (height, width, length) and ``rotation_y``
is the yaw around the camera y axis. The encoders expect lidar-frame boxes
with the geometric center and (length, width, height).
"""

from __future__ import annotations

import math
from pathlib import Path
from typing import Dict, List, Tuple, Union

import numpy as np
import numpy.typing as npt

from pillar_encoding.util import get_logger

__all__ = [
    "Label3D",
    "read_kitti_labels",
    "read_kitti_calibration",
    "labels_to_lidar",
    "labels_to_arrays",
]

logger = get_logger(__name__)


class Label3D:
    def __init__(
        self,
        classification: str,
        centroid: np.ndarray,
        dimension: np.ndarray,
        yaw: float,
    ) -> None:
        self.classification = classification
        self.centroid = centroid
        self.dimension = dimension
        self.yaw = yaw

    def __str__(self) -> str:
        return (
            f"Label 3D | Cls: {self.classification}, x: {self.centroid[0]:f}, "
            f"y: {self.centroid[1]:f}, l: {self.dimension[0]:f}, "
            f"w: {self.dimension[1]:f}, yaw: {self.yaw:f}"
        )


def read_kitti_labels(label_path: Union[str, Path]) -> List[Label3D]:
    """Read a KITTI label file.

    ``DontCare`` entries are skipped. Centroid, dimension and yaw are returned
    as stored in the file (camera frame, (h, w, l)).
    """
    label_path = Path(label_path)
    if not label_path.exists():
        raise FileNotFoundError(f"Label file not found: {label_path}")

    labels = []
    with label_path.open("r") as f:
        for line in f:
            values = line.split()
            if not values:
                continue
            if len(values) < 15:
                raise ValueError(f"Invalid label line in {label_path}: {line.strip()}")

            label = Label3D(
                str(values[0]),  # class name
                np.array(values[11:14], dtype=np.float32),  # location in camera frame
                np.array(values[8:11], dtype=np.float32),  # height, width, length
                float(values[14]),  # rotation_y
            )
            if label.classification == "DontCare":
                continue
            labels.append(label)

    return labels


def read_kitti_calibration(calib_path: Union[str, Path]) -> npt.NDArray[np.float64]:
    """Read the lidar to rectified-camera transform from a KITTI calib file.

    Returns:
        4x4 matrix ``R0_rect @ Tr_velo_to_cam``. ``R0_rect`` is treated as the
        identity when the file has none.
    """
    calib_path = Path(calib_path)
    if not calib_path.exists():
        raise FileNotFoundError(f"Calibration file not found: {calib_path}")

    entries: Dict[str, npt.NDArray[np.float64]] = {}
    with calib_path.open("r") as f:
        for line in f:
            if ":" not in line:
                continue
            key, values = line.split(":", 1)
            entries[key.strip()] = np.array(values.split(), dtype=np.float64)

    if "Tr_velo_to_cam" not in entries:
        raise KeyError(f"Key 'Tr_velo_to_cam' not found in {calib_path}")

    velo_to_cam = np.eye(4)
    velo_to_cam[:3, :4] = entries["Tr_velo_to_cam"].reshape(3, 4)

    rect = np.eye(4)
    if "R0_rect" in entries:
        rect[:3, :3] = entries["R0_rect"].reshape(3, 3)

    return rect @ velo_to_cam


def _wrap_angle(angle: float) -> float:
    while angle < -math.pi:
        angle += 2 * math.pi
    while angle > math.pi:
        angle -= 2 * math.pi
    return angle


def labels_to_lidar(
    labels: List[Label3D], cam_from_lidar: npt.NDArray[np.float64]
) -> List[Label3D]:
    """Transform camera-frame KITTI labels into the lidar frame.

    Args:
        labels: Labels as read by :func:`read_kitti_labels`
        cam_from_lidar: 4x4 transform from :func:`read_kitti_calibration`

    Returns:
        New labels with the box center in lidar coordinates, dimension
        (length, width, height) and yaw around the lidar z axis in [-pi, pi]
    """
    lidar_from_cam = np.linalg.inv(cam_from_lidar)

    transformed = []
    for label in labels:
        height, width, length = label.dimension.tolist()
        bottom = np.append(label.centroid.astype(np.float64), 1.0)
        center = (lidar_from_cam @ bottom)[:3]
        center[2] += height / 2

        transformed.append(
            Label3D(
                label.classification,
                center.astype(np.float32),
                np.array([length, width, height], dtype=np.float32),
                _wrap_angle(-label.yaw - math.pi / 2),
            )
        )
    return transformed


def labels_to_arrays(
    labels: List[Label3D], class_map: Dict[str, int]
) -> Tuple[
    npt.NDArray[np.float32],
    npt.NDArray[np.float32],
    npt.NDArray[np.float32],
    npt.NDArray[np.int32],
]:
    """Convert lidar-frame labels into the array form used by the target encoder.

    Labels whose class is not in ``class_map`` are skipped.

    Returns:
        Tuple of (positions [M, 3], dimensions [M, 3], yaws [M], class_ids [M])
    """
    kept = []
    for label in labels:
        if label.classification not in class_map:
            logger.debug(f"Skipping label of unknown class {label.classification}")
            continue
        kept.append(label)

    positions = np.array([label.centroid for label in kept], dtype=np.float32).reshape(-1, 3)
    dimensions = np.array([label.dimension for label in kept], dtype=np.float32).reshape(-1, 3)
    yaws = np.array([label.yaw for label in kept], dtype=np.float32)
    class_ids = np.array([class_map[label.classification] for label in kept], dtype=np.int32)
    return positions, dimensions, yaws, class_ids
