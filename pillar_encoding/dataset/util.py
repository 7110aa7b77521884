import numpy as np
import numpy.typing as npt
from pathlib import Path
from typing import Union, Any
import yaml

CONFIG_DIR = Path(__file__).parent.parent / "config"
DEFAULT_CONFIG_PATH = CONFIG_DIR / "kitti_pointpillars.yaml"

REQUIRED_SECTIONS = ("grid", "pillars", "targets", "anchors")


def load_config(config_path: Union[str, Path] = DEFAULT_CONFIG_PATH) -> dict[str, Any]:
    """Load an encoding configuration from YAML.

    Args:
        config_path: Path to the YAML file (default: the bundled KITTI config)

    Returns:
        Configuration dictionary with ``grid``, ``pillars``, ``targets``,
        ``anchors`` and optionally ``classes`` sections
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f)

    missing = [section for section in REQUIRED_SECTIONS if section not in (config or {})]
    if missing:
        raise KeyError(f"Sections {missing} not found in {config_path}")
    return config


def load_kitti_bin(
    bin_path: Union[str, Path], include_reflectivity: bool = True
) -> npt.NDArray[np.float32]:
    """Load KITTI binary point cloud file.

    Args:
        bin_path: Path to .bin file
        include_reflectivity: Keep the 4th column

    Returns:
        Nx4 array of points (x, y, z, reflectivity), or Nx3 without reflectivity
    """
    bin_path = Path(bin_path)
    if not bin_path.exists():
        raise FileNotFoundError(f"Binary file not found: {bin_path}")

    # KITTI format: Nx4 (x, y, z, reflectivity)
    points = np.fromfile(bin_path, dtype=np.float32).reshape(-1, 4)
    if include_reflectivity:
        return points
    else:
        return points[:, :3]
