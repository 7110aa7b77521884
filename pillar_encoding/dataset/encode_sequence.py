"""Encode a KITTI object-detection split into PointPillars tensors.

Expects the usual KITTI layout under the data root:

    velodyne/000000.bin
    label_2/000000.txt   (optional, targets are skipped without it)
    calib/000000.txt     (required when labels are present)

and writes one ``.npz`` per frame with ``pillars``, ``indices`` and, when the
frame has usable labels, ``targets``.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np
import numpy.typing as npt
import yaml
from tqdm import tqdm

from pillar_encoding.errors import InvalidInputError
from pillar_encoding.point_cloud_encoding import PillarBuilder, create_pillar_builder
from pillar_encoding.target_encoding import PillarTargetBuilder, create_target_builder
from pillar_encoding.util import get_logger

from .kitti_labels import (
    labels_to_arrays,
    labels_to_lidar,
    read_kitti_calibration,
    read_kitti_labels,
)
from .util import DEFAULT_CONFIG_PATH, load_config, load_kitti_bin

__all__ = ["get_frame_ids", "encode_frame", "process_sequence", "load_encoded_frame", "main"]

logger = get_logger(__name__)


def get_frame_ids(data_root: Union[str, Path]) -> List[str]:
    """Sorted frame ids (file stems) of all velodyne scans under ``data_root``."""
    velodyne_dir = Path(data_root) / "velodyne"
    if not velodyne_dir.exists():
        raise FileNotFoundError(f"Velodyne directory not found: {velodyne_dir}")
    return sorted(p.stem for p in velodyne_dir.glob("*.bin"))


def encode_frame(
    data_root: Union[str, Path],
    frame_id: str,
    pillar_builder: PillarBuilder,
    target_builder: PillarTargetBuilder,
    class_map: Dict[str, int],
) -> Dict[str, npt.NDArray]:
    """Encode a single frame.

    Args:
        data_root: Directory containing ``velodyne``, ``label_2`` and ``calib``
        frame_id: File stem of the frame, e.g. "000042"
        pillar_builder: Configured pillar builder
        target_builder: Configured target builder
        class_map: KITTI class name -> class id; other classes are ignored

    Returns:
        Dictionary with ``pillars`` and ``indices`` and, if the frame has at
        least one label of a mapped class, ``targets``
    """
    data_root = Path(data_root)

    points = load_kitti_bin(data_root / "velodyne" / f"{frame_id}.bin")
    pillars, indices = pillar_builder(points)
    encoded = {"pillars": pillars.numpy(), "indices": indices.numpy()}

    label_path = data_root / "label_2" / f"{frame_id}.txt"
    if not label_path.exists():
        logger.debug(f"No labels for frame {frame_id}")
        return encoded

    cam_from_lidar = read_kitti_calibration(data_root / "calib" / f"{frame_id}.txt")
    labels = labels_to_lidar(read_kitti_labels(label_path), cam_from_lidar)
    positions, dimensions, yaws, class_ids = labels_to_arrays(labels, class_map)

    try:
        encoded["targets"] = target_builder(positions, dimensions, yaws, class_ids)
    except InvalidInputError as e:
        logger.warning(f"Frame {frame_id}: targets skipped ({e})")

    return encoded


def process_sequence(
    data_root: Union[str, Path],
    config: Dict[str, Any],
    output_dir: Optional[Union[str, Path]] = None,
    frame_ids: Optional[List[str]] = None,
    print_time: bool = False,
) -> Path:
    """Encode every frame of a KITTI split and save the tensors.

    Args:
        data_root: Directory containing ``velodyne``, ``label_2`` and ``calib``
        config: Encoding configuration (see :func:`load_config`)
        output_dir: Where to write the ``.npz`` files (default: data_root/pillars)
        frame_ids: Frames to encode (default: every velodyne scan)
        print_time: Log timing diagnostics for every frame

    Returns:
        The output directory
    """
    data_root = Path(data_root)
    output_dir = Path(output_dir) if output_dir is not None else data_root / "pillars"
    output_dir.mkdir(parents=True, exist_ok=True)

    pillar_builder = create_pillar_builder(config, print_time=print_time)
    target_builder = create_target_builder(config, print_time=print_time)
    class_map = config.get("classes", {})

    frames = frame_ids if frame_ids is not None else get_frame_ids(data_root)
    logger.info(f"Encoding {len(frames)} frames from {data_root}")

    for frame_id in tqdm(frames, desc="Encoding"):
        encoded = encode_frame(data_root, frame_id, pillar_builder, target_builder, class_map)
        np.savez_compressed(output_dir / f"{frame_id}.npz", **encoded)

    # dump the config next to the tensors for reproducibility
    with open(output_dir / "encoding_config.yaml", "w", encoding="utf-8") as f:
        yaml.safe_dump(config, f, sort_keys=False)

    return output_dir


def load_encoded_frame(output_dir: Union[str, Path], frame_id: str) -> Dict[str, npt.NDArray]:
    """Load the tensors written by :func:`process_sequence` for one frame."""
    path = Path(output_dir) / f"{frame_id}.npz"
    if not path.exists():
        raise FileNotFoundError(f"Encoded frame not found: {path}")

    with np.load(path) as data:
        return {key: data[key] for key in data.files}


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        description="Encode KITTI velodyne scans and labels into PointPillars tensors"
    )
    parser.add_argument(
        "--data_root",
        type=str,
        required=True,
        help="KITTI split directory containing velodyne/, label_2/ and calib/",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=str(DEFAULT_CONFIG_PATH),
        help="Encoding configuration YAML (default: bundled KITTI config)",
    )
    parser.add_argument(
        "--output_dir",
        type=str,
        default=None,
        help="Output directory (default: <data_root>/pillars)",
    )
    parser.add_argument(
        "--frames",
        type=str,
        nargs="+",
        default=None,
        help="Frame ids to encode (default: all)",
    )
    parser.add_argument(
        "--print_time",
        action="store_true",
        help="Log timing and anchor matching diagnostics",
    )
    args = parser.parse_args(argv)

    config = load_config(args.config)
    output_dir = process_sequence(
        data_root=args.data_root,
        config=config,
        output_dir=args.output_dir,
        frame_ids=args.frames,
        print_time=args.print_time,
    )
    logger.info(f"Saved encoded frames to {output_dir}")


if __name__ == "__main__":
    main()
