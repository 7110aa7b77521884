# tests/conftest.py

import logging

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import pytest  # noqa: E402


# 10 x 10 target grid of 1 m cells: 0.5 m pillars, downscaled by 2
SMALL_GRID = {
    "x_step": 0.5,
    "y_step": 0.5,
    "point_cloud_range": (0.0, 0.0, -5.0, 10.0, 10.0, 5.0),
    "downscaling_factor": 2,
}


@pytest.fixture
def small_grid():
    return dict(SMALL_GRID)


@pytest.fixture
def square_anchor():
    """A single 2 x 2 x 1 anchor at z = 0, yaw 0."""
    return {
        "anchor_dimensions": [[2.0, 2.0, 1.0]],
        "anchor_z_heights": [0.0],
        "anchor_yaws": [0.0],
    }


@pytest.fixture
def target_kwargs(small_grid, square_anchor):
    """Keyword arguments for build_targets, minus the object arrays."""
    return {
        **square_anchor,
        "positive_threshold": 0.6,
        "negative_threshold": 0.3,
        "angle_threshold": 0.785,
        "nb_classes": 4,
        **small_grid,
    }


@pytest.fixture
def pillar_logs(caplog):
    caplog.set_level(logging.INFO, logger="pillar_encoding")
    return caplog


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")
