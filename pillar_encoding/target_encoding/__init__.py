"""Target encoding: matching labelled boxes against an anchor bank.

Components:
- anchors: anchor templates, per-cell working copies, label filtering
- targets: per-label window search, IOU matching and fallback assignment
- target_builder: configured encoder and config factory
"""

from .anchors import AnchorSet, align_anchor, create_label_boxes
from .target_builder import PillarTargetBuilder, create_target_builder
from .targets import (
    IGNORE,
    NB_TARGET_CHANNELS,
    NEGATIVE,
    POSITIVE,
    LabelMatch,
    build_targets,
    encode_box,
    encode_targets,
    encode_label,
    target_grid_size,
)

__all__ = [
    "AnchorSet",
    "align_anchor",
    "create_label_boxes",
    "PillarTargetBuilder",
    "create_target_builder",
    "IGNORE",
    "NB_TARGET_CHANNELS",
    "NEGATIVE",
    "POSITIVE",
    "LabelMatch",
    "build_targets",
    "encode_box",
    "encode_targets",
    "encode_label",
    "target_grid_size",
]
