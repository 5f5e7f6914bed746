"""Keypoint definitions for the supported pose models.

Two layouts are supported: the 17-point COCO layout produced by lightweight
models and the 33-point BlazePose layout produced by full-body models. Both are
addressed by joint *name* everywhere else in the package, so the checks below
(segments, angles, mirror pairs) are written once and resolved per layout.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Tuple

# COCO 17 keypoints
COCO_KEYPOINTS = {
    0: "nose",
    1: "left_eye",
    2: "right_eye",
    3: "left_ear",
    4: "right_ear",
    5: "left_shoulder",
    6: "right_shoulder",
    7: "left_elbow",
    8: "right_elbow",
    9: "left_wrist",
    10: "right_wrist",
    11: "left_hip",
    12: "right_hip",
    13: "left_knee",
    14: "right_knee",
    15: "left_ankle",
    16: "right_ankle",
}

# BlazePose 33 keypoints
BLAZEPOSE_KEYPOINTS = {
    0: "nose",
    1: "left_eye_inner",
    2: "left_eye",
    3: "left_eye_outer",
    4: "right_eye_inner",
    5: "right_eye",
    6: "right_eye_outer",
    7: "left_ear",
    8: "right_ear",
    9: "mouth_left",
    10: "mouth_right",
    11: "left_shoulder",
    12: "right_shoulder",
    13: "left_elbow",
    14: "right_elbow",
    15: "left_wrist",
    16: "right_wrist",
    17: "left_pinky",
    18: "right_pinky",
    19: "left_index",
    20: "right_index",
    21: "left_thumb",
    22: "right_thumb",
    23: "left_hip",
    24: "right_hip",
    25: "left_knee",
    26: "right_knee",
    27: "left_ankle",
    28: "right_ankle",
    29: "left_heel",
    30: "right_heel",
    31: "left_foot_index",
    32: "right_foot_index",
}

# Reverse mapping
KEYPOINT_NAMES = {v: k for k, v in COCO_KEYPOINTS.items()}

# Bones checked for length plausibility, by joint name.
STABILITY_SEGMENTS: Tuple[Tuple[str, str, str], ...] = (
    ("left_upper_arm", "left_shoulder", "left_elbow"),
    ("left_forearm", "left_elbow", "left_wrist"),
    ("right_upper_arm", "right_shoulder", "right_elbow"),
    ("right_forearm", "right_elbow", "right_wrist"),
    ("left_thigh", "left_hip", "left_knee"),
    ("left_shin", "left_knee", "left_ankle"),
    ("right_thigh", "right_hip", "right_knee"),
    ("right_shin", "right_knee", "right_ankle"),
    ("shoulders", "left_shoulder", "right_shoulder"),
    ("hips", "left_hip", "right_hip"),
)

# Joint angles checked for plausibility: (name, joint_a, vertex, joint_c).
STABILITY_ANGLES: Tuple[Tuple[str, str, str, str], ...] = (
    ("left_elbow", "left_shoulder", "left_elbow", "left_wrist"),
    ("right_elbow", "right_shoulder", "right_elbow", "right_wrist"),
    ("left_knee", "left_hip", "left_knee", "left_ankle"),
    ("right_knee", "right_hip", "right_knee", "right_ankle"),
)

# Anthropometric ratios that stay roughly constant for one subject.
ANTHROPOMETRIC_RATIOS: Tuple[Tuple[str, str, str], ...] = (
    ("left_arm", "left_upper_arm", "left_forearm"),
    ("right_arm", "right_upper_arm", "right_forearm"),
    ("left_leg", "left_thigh", "left_shin"),
    ("right_leg", "right_thigh", "right_shin"),
    ("torso_width", "shoulders", "hips"),
)

MIRROR_JOINTS = ("shoulder", "elbow", "wrist", "hip", "knee", "ankle")

CORE_JOINTS = ("left_shoulder", "right_shoulder", "left_hip", "right_hip")

# Skeleton connections for drawing (body only)
SKELETON_BONES: Tuple[Tuple[str, str], ...] = (
    ("left_shoulder", "right_shoulder"),
    ("left_shoulder", "left_elbow"), ("left_elbow", "left_wrist"),
    ("right_shoulder", "right_elbow"), ("right_elbow", "right_wrist"),
    ("left_shoulder", "left_hip"), ("right_shoulder", "right_hip"), ("left_hip", "right_hip"),
    ("left_hip", "left_knee"), ("left_knee", "left_ankle"),
    ("right_hip", "right_knee"), ("right_knee", "right_ankle"),
)

# Colors for different body parts (BGR format for OpenCV)
KEYPOINT_COLORS = {
    "left_arm": (0, 255, 0),      # green
    "right_arm": (0, 165, 255),   # orange
    "torso": (255, 255, 0),       # cyan
    "left_leg": (255, 0, 255),    # magenta
    "right_leg": (0, 255, 255),   # yellow
}


def body_part(joint_name: str) -> str:
    """Body part used to color a joint or a bone ending at it."""
    if joint_name.endswith(("shoulder", "hip")):
        return "torso"
    side = "left" if joint_name.startswith("left") else "right"
    if joint_name.endswith(("elbow", "wrist")):
        return f"{side}_arm"
    return f"{side}_leg"


@dataclass(frozen=True)
class KeypointLayout:
    """Index table for one pose model."""

    name: str
    names: Dict[int, str] = field(repr=False)

    @property
    def num_keypoints(self) -> int:
        return len(self.names)

    @property
    def indices(self) -> Dict[str, int]:
        return {v: k for k, v in self.names.items()}

    def idx(self, joint_name: str) -> int:
        return self.indices[joint_name]

    @property
    def segments(self) -> Tuple[Tuple[str, int, int], ...]:
        ix = self.indices
        return tuple((name, ix[a], ix[b]) for name, a, b in STABILITY_SEGMENTS)

    @property
    def angles(self) -> Tuple[Tuple[str, int, int, int], ...]:
        ix = self.indices
        return tuple((name, ix[a], ix[v], ix[c]) for name, a, v, c in STABILITY_ANGLES)

    @property
    def mirror_pairs(self) -> Tuple[Tuple[int, int], ...]:
        ix = self.indices
        return tuple((ix[f"left_{j}"], ix[f"right_{j}"]) for j in MIRROR_JOINTS)

    def mirror_of(self, idx: int) -> int:
        for left, right in self.mirror_pairs:
            if idx == left:
                return right
            if idx == right:
                return left
        raise KeyError(f"keypoint {idx} has no mirror counterpart in {self.name}")

    @property
    def tracked(self) -> Tuple[int, ...]:
        """Body joints that take part in the plausibility checks."""
        return tuple(sorted(i for pair in self.mirror_pairs for i in pair))

    @property
    def core(self) -> Tuple[int, ...]:
        ix = self.indices
        return tuple(ix[j] for j in CORE_JOINTS)

    @property
    def bones(self) -> Tuple[Tuple[int, int], ...]:
        ix = self.indices
        return tuple((ix[a], ix[b]) for a, b in SKELETON_BONES)


COCO_LAYOUT = KeypointLayout(name="coco17", names=COCO_KEYPOINTS)
BLAZEPOSE_LAYOUT = KeypointLayout(name="blazepose33", names=BLAZEPOSE_KEYPOINTS)

_LAYOUTS_BY_COUNT = {
    COCO_LAYOUT.num_keypoints: COCO_LAYOUT,
    BLAZEPOSE_LAYOUT.num_keypoints: BLAZEPOSE_LAYOUT,
}


def layout_for(num_keypoints: int) -> KeypointLayout:
    """Resolve the layout from the number of keypoints a model produces."""
    try:
        return _LAYOUTS_BY_COUNT[int(num_keypoints)]
    except KeyError:
        raise ValueError(
            f"unsupported keypoint count {num_keypoints}; expected one of {sorted(_LAYOUTS_BY_COUNT)}"
        ) from None
