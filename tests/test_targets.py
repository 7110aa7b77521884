import math

import numpy as np
import pytest

from pillar_encoding import InvalidInputError, create_pillars_target
from pillar_encoding.geometry import OrientedBox
from pillar_encoding.target_encoding import (
    IGNORE,
    NB_TARGET_CHANNELS,
    POSITIVE,
    AnchorSet,
    align_anchor,
    build_targets,
    create_label_boxes,
    encode_box,
    target_grid_size,
)


def _targets(target_kwargs, positions, dimensions, yaws=None, class_ids=None, **overrides):
    n = len(positions)
    return build_targets(
        np.asarray(positions, dtype=np.float32),
        np.asarray(dimensions, dtype=np.float32),
        np.zeros(n, dtype=np.float32) if yaws is None else np.asarray(yaws, dtype=np.float32),
        np.zeros(n, dtype=np.int32) if class_ids is None else np.asarray(class_ids),
        **{**target_kwargs, **overrides},
    )


def test_target_grid_size_is_downscaled(small_grid):
    assert target_grid_size(0.5, 0.5, small_grid["point_cloud_range"], 2) == (10, 10)
    assert target_grid_size(0.5, 0.25, small_grid["point_cloud_range"], 1) == (20, 40)


def test_output_shape_and_dtype(target_kwargs):
    targets = _targets(target_kwargs, [[3.0, 4.0, 0.0]], [[2.0, 2.0, 1.0]])
    assert targets.shape == (1, 10, 10, 1, NB_TARGET_CHANNELS)
    assert targets.dtype == np.float32


def test_label_matching_an_anchor_exactly(target_kwargs):
    matches = []
    targets = _targets(
        target_kwargs, [[3.0, 4.0, 0.0]], [[2.0, 2.0, 1.0]], class_ids=[2], matches=matches
    )
    objectness = targets[0, :, :, 0, 0]

    np.testing.assert_array_equal(targets[0, 3, 4, 0], [1, 0, 0, 0, 0, 0, 0, 0, 0, 2])
    # Neighbours sharing an edge overlap by a third
    for x_id, y_id in [(2, 4), (4, 4), (3, 3), (3, 5)]:
        assert objectness[x_id, y_id] == IGNORE
    # Diagonal neighbours overlap by a seventh
    for x_id, y_id in [(2, 3), (4, 5)]:
        assert objectness[x_id, y_id] == 0.0
    assert np.count_nonzero(objectness == POSITIVE) == 1

    assert len(matches) == 1
    assert matches[0].max_iou == pytest.approx(1.0)
    assert matches[0].best_anchor_id == 0
    assert not matches[0].forced


def test_cells_outside_the_search_window_are_untouched(target_kwargs):
    targets = _targets(target_kwargs, [[3.0, 4.0, 0.0]], [[2.0, 2.0, 1.0]])
    # window: x in [0, 6), y in [1, 7)
    assert not targets[0, 6:].any()
    assert not targets[0, :, :1].any()
    assert not targets[0, :, 7:].any()


def test_positive_record_encodes_offsets_and_sizes(target_kwargs):
    targets = _targets(target_kwargs, [[3.2, 4.0, 0.5]], [[2.2, 2.0, 1.0]])
    record = targets[0, 3, 4, 0]

    assert record[0] == POSITIVE
    np.testing.assert_allclose(record[1:3], [0.2 / math.sqrt(8.0), 0.0], atol=1e-6)
    assert record[3] == pytest.approx(0.5)
    np.testing.assert_allclose(record[4:7], [math.log(1.1), 0.0, 0.0], atol=1e-6)


def test_fallback_forces_best_anchor_and_ignores_its_neighbourhood(target_kwargs):
    matches = []
    targets = _targets(target_kwargs, [[3.0, 4.0, 0.0]], [[0.5, 0.5, 1.0]], matches=matches)
    objectness = targets[0, :, :, 0, 0]

    assert objectness[3, 4] == POSITIVE
    assert targets[0, 3, 4, 0, 4] == pytest.approx(math.log(0.25))
    assert np.count_nonzero(objectness == POSITIVE) == 1
    assert np.count_nonzero(objectness == IGNORE) == 24
    assert (objectness[1:6, 2:7] != 0).all()

    assert matches[0].forced
    assert matches[0].max_iou == pytest.approx(0.0625)


def test_fallback_at_the_grid_corner_keeps_the_positive(target_kwargs):
    targets = _targets(target_kwargs, [[0.2, 0.3, 0.0]], [[0.5, 0.5, 1.0]])
    objectness = targets[0, :, :, 0, 0]

    assert objectness[0, 0] == POSITIVE
    # Only the in-bounds part of the 5 x 5 neighbourhood is ignored
    assert np.count_nonzero(objectness == IGNORE) == 8
    assert (objectness[:3, :3] != 0).all()


def test_labels_outside_the_grid_leave_zero_slices(target_kwargs):
    targets = _targets(
        target_kwargs,
        [[10.0, 4.0, 0.0], [3.0, 4.0, 0.0]],
        [[2.0, 2.0, 1.0], [2.0, 2.0, 1.0]],
    )
    assert targets.shape[0] == 2
    # The in-bounds label takes the first slice
    assert targets[0, 3, 4, 0, 0] == POSITIVE
    assert not targets[1].any()


def test_every_slice_belongs_to_one_label(target_kwargs):
    targets = _targets(
        target_kwargs,
        [[2.0, 2.0, 0.0], [7.0, 7.0, 0.0]],
        [[2.0, 2.0, 1.0], [2.0, 2.0, 1.0]],
        class_ids=[1, 3],
    )
    assert targets[0, 2, 2, 0, 0] == POSITIVE
    assert targets[0, 2, 2, 0, 9] == 1.0
    assert targets[0, 7, 7, 0, 0] == 0.0
    assert targets[1, 7, 7, 0, 0] == POSITIVE
    assert targets[1, 7, 7, 0, 9] == 3.0
    assert targets[1, 2, 2, 0, 0] == 0.0


def test_objectness_values_are_restricted(target_kwargs):
    targets = _targets(
        target_kwargs,
        [[2.3, 6.1, 0.0], [7.0, 2.5, 0.0]],
        [[1.8, 2.4, 1.0], [3.0, 1.0, 1.0]],
        yaws=[0.3, -1.0],
    )
    assert set(np.unique(targets[..., 0])) <= {-1.0, 0.0, 1.0}


def test_no_objects_raises(target_kwargs):
    with pytest.raises(InvalidInputError, match="Object length is zero"):
        _targets(target_kwargs, np.zeros((0, 3)), np.zeros((0, 3)))


def test_no_anchors_raises(target_kwargs):
    with pytest.raises(InvalidInputError, match="Anchor length is zero"):
        _targets(
            target_kwargs,
            [[3.0, 4.0, 0.0]],
            [[2.0, 2.0, 1.0]],
            anchor_dimensions=np.zeros((0, 3)),
            anchor_z_heights=[],
            anchor_yaws=[],
        )


def test_mismatched_object_arrays_raise(target_kwargs):
    with pytest.raises(InvalidInputError):
        build_targets(
            [[3.0, 4.0, 0.0]],
            [[2.0, 2.0, 1.0]],
            [0.0, 0.0],
            [0],
            **target_kwargs,
        )


def test_out_of_range_class_ids_are_kept_with_a_warning(target_kwargs, pillar_logs):
    targets = _targets(target_kwargs, [[3.0, 4.0, 0.0]], [[2.0, 2.0, 1.0]], class_ids=[7])
    assert targets[0, 3, 4, 0, 9] == 7.0
    assert "class id 7 outside [0, 4)" in pillar_logs.text


def test_print_time_logs_match_diagnostics(target_kwargs, pillar_logs):
    _targets(
        target_kwargs,
        [[3.0, 4.0, 0.0], [7.0, 7.0, 0.0]],
        [[2.0, 2.0, 1.0], [0.5, 0.5, 1.0]],
        print_time=True,
    )
    assert "create_pillars_target took" in pillar_logs.text
    assert "Received 2 objects" in pillar_logs.text
    assert "At least 1 anchor was positively matched for object 0" in pillar_logs.text
    assert "no sufficiently overlapping anchor anywhere for object 1" in pillar_logs.text


def test_anchor_takes_label_yaw_within_the_angle_threshold():
    template = OrientedBox(length=4.0, width=2.0, height=1.0, yaw=0.0, base_yaw=0.0)

    near = align_anchor(template, 1.0, 2.0, label_yaw=0.5, angle_threshold=0.785)
    assert (near.x, near.y, near.yaw, near.base_yaw) == (1.0, 2.0, 0.5, 0.0)

    # Opposite heading counts as aligned too
    flipped = align_anchor(template, 1.0, 2.0, label_yaw=3.0, angle_threshold=0.785)
    assert flipped.yaw == 3.0

    far = align_anchor(template, 1.0, 2.0, label_yaw=1.2, angle_threshold=0.785)
    assert far.yaw == 0.0
    # The template itself is never moved
    assert (template.x, template.y, template.yaw) == (0.0, 0.0, 0.0)


def test_rotated_anchor_aligns_with_labels_near_its_base_yaw():
    template = OrientedBox(length=4.0, width=2.0, yaw=math.pi / 2, base_yaw=math.pi / 2)
    assert align_anchor(template, 0.0, 0.0, 1.2, 0.785).yaw == 1.2
    assert align_anchor(template, 0.0, 0.0, 0.3, 0.785).yaw == math.pi / 2


def test_encode_box_heading_channels():
    anchor = OrientedBox(length=2.0, width=2.0, height=1.0)
    diagonal = anchor.diagonal

    record = encode_box(OrientedBox(length=2.0, width=2.0, height=1.0, yaw=0.5), anchor, diagonal)
    assert record[7] == pytest.approx(math.sin(0.5), abs=1e-6)

    # Differences beyond pi/2 are reflected before the sine
    record = encode_box(OrientedBox(length=2.0, width=2.0, height=1.0, yaw=2.0), anchor, diagonal)
    assert record[7] == pytest.approx(math.sin(-2.0), abs=1e-6)

    for yaw in (0.0, 1.0, math.pi, -2.5, 4.0):
        record = encode_box(OrientedBox(length=2.0, width=2.0, height=1.0, yaw=yaw), anchor, diagonal)
        assert record[8] == 0.0


def test_encode_box_with_flat_anchor_gives_non_finite_values():
    anchor = OrientedBox(length=2.0, width=2.0, height=0.0)
    label = OrientedBox(z=1.0, length=2.0, width=2.0, height=1.0)
    record = encode_box(label, anchor, anchor.diagonal)
    assert np.isinf(record[3])
    assert np.isinf(record[6])


def test_anchor_set_keeps_templates_in_order():
    anchors = AnchorSet.from_arrays([[3.9, 1.6, 1.56], [0.8, 0.6, 1.73]], [-1.0, -0.6], [0.0, 1.5708])

    assert len(anchors) == 2
    assert anchors[1].length == pytest.approx(0.8)
    assert anchors[1].yaw == anchors[1].base_yaw == pytest.approx(1.5708)
    assert anchors.diagonals[0] == pytest.approx(math.hypot(3.9, 1.6), rel=1e-6)


def test_anchor_set_rejects_mismatched_arrays():
    with pytest.raises(InvalidInputError):
        AnchorSet.from_arrays([[3.9, 1.6, 1.56]], [-1.0, -1.0], [0.0])
    with pytest.raises(InvalidInputError):
        AnchorSet.from_arrays([[3.9, 1.6]], [-1.0], [0.0])


def test_create_label_boxes_filters_and_counts():
    labels, nb_objects = create_label_boxes(
        [[1.0, 1.0, 0.0], [10.0, 1.0, 0.0], [1.0, -0.1, 0.0]],
        [[2.0, 1.0, 1.0]] * 3,
        [0.1, 0.2, 0.3],
        [2, 1, 0],
        x_range=(0.0, 10.0),
        y_range=(0.0, 10.0),
    )
    assert nb_objects == 3
    assert len(labels) == 1
    assert labels[0].class_id == 2.0
    assert labels[0].yaw == pytest.approx(0.1)


def test_create_pillars_target_takes_separate_bounds(target_kwargs):
    kwargs = dict(target_kwargs)
    x_min, y_min, z_min, x_max, y_max, z_max = kwargs.pop("point_cloud_range")
    targets = create_pillars_target(
        np.array([[3.0, 4.0, 0.0]], dtype=np.float32),
        np.array([[2.0, 2.0, 1.0]], dtype=np.float32),
        np.array([0.0], dtype=np.float32),
        np.array([1], dtype=np.int32),
        x_min=x_min,
        x_max=x_max,
        y_min=y_min,
        y_max=y_max,
        z_min=z_min,
        z_max=z_max,
        **kwargs,
    )
    assert targets.shape == (1, 10, 10, 1, NB_TARGET_CHANNELS)
    assert targets[0, 3, 4, 0, 0] == POSITIVE


def test_fallback_in_a_partial_last_cell(target_kwargs):
    # x_size is floor(10.5) = 10, the label cell index is 10
    x_range = dict(point_cloud_range=(0.0, 0.0, -5.0, 10.5, 10.0, 5.0))
    matches = []
    targets = _targets(
        target_kwargs, [[10.2, 4.0, 0.0]], [[0.5, 0.5, 1.0]], matches=matches, **x_range
    )
    objectness = targets[0, :, :, 0, 0]

    assert targets.shape == (1, 10, 10, 1, NB_TARGET_CHANNELS)
    assert matches[0].forced
    # The forced positive is clipped into the last full cell and wins over
    # the ignore of its dx = -1 neighbour, which is the same cell
    assert objectness[9, 4] == POSITIVE
    assert targets[0, 9, 4, 0, 1] == pytest.approx(1.2 / math.sqrt(8.0), rel=1e-5)
    assert np.count_nonzero(objectness == POSITIVE) == 1
    # Only the dx = -2 and dx = -1 columns are in bounds
    assert np.count_nonzero(objectness == IGNORE) == 9
    assert (objectness[8:10, 2:7] != 0).all()
    assert not objectness[:8].any()


def test_build_targets_is_deterministic(target_kwargs):
    args = (
        [[2.3, 6.1, 0.0], [7.0, 2.5, 0.0], [4.0, 4.0, 0.0]],
        [[1.8, 2.4, 1.0], [3.0, 1.0, 1.0], [0.5, 0.5, 1.0]],
        [0.3, -1.0, 2.0],
        [0, 1, 2],
    )
    first = _targets(target_kwargs, *args)
    second = _targets(target_kwargs, *args)
    np.testing.assert_array_equal(first, second)
