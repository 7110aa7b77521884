"""Module for dataset handling: KITTI loaders, batch encoding and visualization."""

from .encode_sequence import encode_frame, get_frame_ids, load_encoded_frame, process_sequence
from .kitti_labels import (
    Label3D,
    labels_to_arrays,
    labels_to_lidar,
    read_kitti_calibration,
    read_kitti_labels,
)
from .util import DEFAULT_CONFIG_PATH, load_config, load_kitti_bin
from .visualization import pillar_occupancy, visualize_pillars_bev, visualize_target_assignment

__all__ = [
    # Loaders and configuration
    "DEFAULT_CONFIG_PATH",
    "load_config",
    "load_kitti_bin",
    # KITTI labels
    "Label3D",
    "read_kitti_labels",
    "read_kitti_calibration",
    "labels_to_lidar",
    "labels_to_arrays",
    # Batch encoding
    "get_frame_ids",
    "encode_frame",
    "process_sequence",
    "load_encoded_frame",
    # Visualization
    "pillar_occupancy",
    "visualize_pillars_bev",
    "visualize_target_assignment",
]
