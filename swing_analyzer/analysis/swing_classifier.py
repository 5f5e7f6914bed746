"""Swing type classification: forehand / backhand / two-handed backhand / serve.

Works on the per-frame kinematic stream around a detected contact frame:

1. **Serve**: either wrist rises well above the shoulder line (trophy
   position), looking back up to ~1.5 s before contact since the arm is high
   during loading, not at contact.
2. **Rotation direction**: mean torso rotation velocity around contact. For a
   right-hander positive rotation is a forehand, negative a backhand; mirrored
   for left-handers.
3. **Orientation fallback**: when rotation is inconclusive (caught late in
   follow-through), the sideways turn of the torso before contact decides.
4. **Two-handed**: a backhand whose wrists come within ``two_handed_ratio``
   shoulder widths of each other.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..config.settings import SwingDetectionConfig
from ..protocols.events import SwingType
from .kinematics import KinematicSeries, wrap_degrees
from .signal_processing import unwrap_degrees


@dataclass(frozen=True)
class SwingClassification:
    swing_type: SwingType
    reasoning: str
    max_height_ratio: float
    mean_rotation_velocity: float
    min_wrist_distance_ratio: Optional[float] = None


def _window_mean(values: np.ndarray, lo: int, hi: int) -> Optional[float]:
    seg = values[max(0, lo): min(len(values), hi + 1)]
    seg = seg[~np.isnan(seg)]
    return float(seg.mean()) if seg.size else None


def _lateral_turn(orientation: np.ndarray, lo: int, hi: int) -> Optional[float]:
    """Mean torso yaw folded onto [-90, 90]: how far the body is turned sideways.

    Facing the camera and facing away both read 0; the sign keeps the turn
    direction (positive = towards the subject's right).
    """
    seg = unwrap_degrees(orientation[max(0, lo): min(len(orientation), hi + 1)])
    if not seg.size:
        return None
    mean = wrap_degrees(float(seg.mean()))
    return float(np.degrees(np.arcsin(np.sin(np.radians(mean)))))


def classify_swing(
    series: KinematicSeries,
    contact_index: int,
    config: Optional[SwingDetectionConfig] = None,
    handedness: str = "right",
) -> SwingClassification:
    """Classify the swing whose contact is at position ``contact_index`` of *series*.

    Args:
        series: kinematic stream of the whole video
        contact_index: list position (not frame index) of the contact frame
        config: detection thresholds
        handedness: "right" or "left"

    Returns:
        SwingClassification
    """
    cfg = config or SwingDetectionConfig()
    window = cfg.classification_window_frames
    sign = 1.0 if handedness != "left" else -1.0

    heights = series.series(lambda f: f.max_wrist_height)
    back = max(window * 4, cfg.serve_window_back_frames)
    seg = heights[max(0, contact_index - back): contact_index + window // 2 + 1]
    seg = seg[~np.isnan(seg)]
    max_height = float(seg.max()) if seg.size else 0.0

    rot_mean = _window_mean(series.series("rotation_velocity"), contact_index - window, contact_index + window)
    rot_mean = rot_mean if rot_mean is not None else 0.0

    if max_height >= cfg.serve_height_ratio:
        return SwingClassification(
            SwingType.SERVE, f"wrist {max_height:.2f} torso heights above shoulders", max_height, rot_mean
        )

    def backhand(reason: str) -> SwingClassification:
        dist = series.series("wrist_distance_ratio")
        seg = dist[max(0, contact_index - window): contact_index + window + 1]
        seg = seg[~np.isnan(seg)]
        min_dist = float(seg.min()) if seg.size else None
        if min_dist is not None and min_dist <= cfg.two_handed_ratio:
            return SwingClassification(
                SwingType.BACKHAND_TWO_HAND, f"{reason}; wrists together ({min_dist:.2f})",
                max_height, rot_mean, min_dist,
            )
        return SwingClassification(SwingType.BACKHAND, reason, max_height, rot_mean, min_dist)

    directed = sign * rot_mean
    if directed > cfg.rotation_direction_threshold:
        return SwingClassification(SwingType.FOREHAND, f"rotation {rot_mean:+.2f} deg/frame", max_height, rot_mean)
    if directed < -cfg.rotation_direction_threshold:
        return backhand(f"rotation {rot_mean:+.2f} deg/frame")

    orientation = _lateral_turn(series.series("body_orientation"), contact_index - 2 * window, contact_index + window)
    if orientation is not None:
        directed = sign * orientation
        if directed > cfg.orientation_threshold:
            return SwingClassification(SwingType.FOREHAND, f"orientation {orientation:+.1f} deg", max_height, rot_mean)
        if directed < -cfg.orientation_threshold:
            return backhand(f"orientation {orientation:+.1f} deg")

    return SwingClassification(SwingType.UNKNOWN, "no clear rotation or orientation", max_height, rot_mean)
