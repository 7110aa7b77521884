"""BEV visualization of pillar occupancy and anchor target assignment."""

from __future__ import annotations

from typing import Optional, Sequence, Tuple

import matplotlib.patches as patches
import matplotlib.pyplot as plt
import numpy as np
import numpy.typing as npt
from matplotlib.colors import ListedColormap

from pillar_encoding.geometry import OrientedBox, corners_of

__all__ = ["pillar_occupancy", "visualize_pillars_bev", "visualize_target_assignment"]

# ignore, unwritten/negative, positive
TARGET_STATE_COLORS = ListedColormap(["tab:gray", "white", "tab:red"])


def pillar_occupancy(
    indices: npt.NDArray[np.int32],
    grid_size: Tuple[int, int],
    pillars: Optional[npt.NDArray[np.float32]] = None,
) -> npt.NDArray[np.int32]:
    """Count the used pillar slots per grid cell.

    Unused index rows are (0, 0, 0) and cannot be told apart from a pillar at
    cell (0, 0). When ``pillars`` is given, only slots with at least one
    non-zero feature are counted.

    Args:
        indices: [1, P, 3] or [P, 3] (batch, x_index, y_index)
        grid_size: (x_size, y_size)
        pillars: Optional [1, P, N, C] or [P, N, C] pillar tensor

    Returns:
        [x_size, y_size] int32 counts
    """
    indices = np.asarray(indices).reshape(-1, 3)
    if pillars is not None:
        pillars = np.asarray(pillars)
        pillars = pillars.reshape(len(indices), *pillars.shape[-2:])
        used = np.any(pillars != 0, axis=(1, 2))
        indices = indices[used]

    occupancy = np.zeros(grid_size, dtype=np.int32)
    x_indices, y_indices = indices[:, 1], indices[:, 2]
    inside = (
        (x_indices >= 0) & (x_indices < grid_size[0]) &
        (y_indices >= 0) & (y_indices < grid_size[1])
    )
    np.add.at(occupancy, (x_indices[inside], y_indices[inside]), 1)
    return occupancy


def visualize_pillars_bev(
    indices: npt.NDArray[np.int32],
    grid_size: Tuple[int, int],
    pillars: Optional[npt.NDArray[np.float32]] = None,
    create_new_figure: bool = True,
    show: bool = False,
) -> npt.NDArray[np.int32]:
    """Show which grid cells hold a pillar (top view, x forward, y left).

    Returns:
        The occupancy grid that was drawn, see :func:`pillar_occupancy`
    """
    occupancy = pillar_occupancy(indices, grid_size, pillars)

    if create_new_figure:
        plt.figure()

    # x_index along the vertical axis so that x points forward
    plt.imshow(occupancy > 0, cmap="gray_r", origin="lower", interpolation="nearest")
    plt.title(f"Pillar Occupancy ({int((occupancy > 0).sum())} cells)")
    plt.xlabel("y index")
    plt.ylabel("x index (forward)")
    plt.gca().set_aspect("equal")

    if show:
        plt.show()
    return occupancy


def visualize_target_assignment(
    targets: npt.NDArray[np.float32],
    object_index: int,
    labels: Optional[Sequence[OrientedBox]] = None,
    cell_size: Tuple[float, float] = (1.0, 1.0),
    grid_origin: Tuple[float, float] = (0.0, 0.0),
    anchor_id: Optional[int] = None,
    create_new_figure: bool = True,
    show: bool = False,
) -> npt.NDArray[np.float32]:
    """Plot the objectness channel of one label's target slice.

    A cell is drawn positive if any anchor (or ``anchor_id``) is positive
    there, otherwise ignore if any is ignore, otherwise blank.

    Args:
        targets: [M, x_size, y_size, A, 10] targets
        object_index: Label slice to plot
        labels: Optional label boxes, outlined in grid coordinates
        cell_size: Target cell size (x, y), i.e. pillar size times downscaling factor
        grid_origin: (x_min, y_min) of the grid
        anchor_id: Restrict the plot to one anchor
        create_new_figure: Whether to create a new figure
        show: Whether to display the figure

    Returns:
        [x_size, y_size] state map with 1 (positive), -1 (ignore) or 0
    """
    objectness = np.asarray(targets)[object_index, ..., 0]
    if anchor_id is not None:
        objectness = objectness[..., anchor_id : anchor_id + 1]

    state = np.zeros(objectness.shape[:2], dtype=np.float32)
    state[np.any(objectness == -1.0, axis=-1)] = -1.0
    state[np.any(objectness == 1.0, axis=-1)] = 1.0

    if create_new_figure:
        plt.figure()

    plt.imshow(
        state, cmap=TARGET_STATE_COLORS, vmin=-1, vmax=1, origin="lower", interpolation="nearest"
    )

    for label in labels or []:
        # Anchors of cell (i, j) are centered on grid point (i, j), drawn at column j, row i
        outline = [
            ((y - grid_origin[1]) / cell_size[1], (x - grid_origin[0]) / cell_size[0])
            for x, y in corners_of(label)
        ]
        plt.gca().add_patch(
            patches.Polygon(outline, closed=True, fill=False, edgecolor="tab:blue", linewidth=1.5)
        )

    plt.title(f"Anchor Targets (object {object_index})")
    plt.xlabel("y cell")
    plt.ylabel("x cell (forward)")
    plt.gca().set_aspect("equal")

    if show:
        plt.show()
    return state
