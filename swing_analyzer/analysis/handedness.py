"""Dominant-hand detection from wrist activity over a whole video.

The racket hand moves faster, more often and further from the body than the
free hand, and it is the one that swings across the body on backhands and
follow-throughs. Each signal is turned into a left/right share and the shares
are combined with the configured weights.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..config.keypoints import KeypointLayout
from ..config.settings import HandednessConfig
from ..core.pose import PoseFrame
from ..protocols.events import HandednessMetadata, ProtocolEvent, ProtocolId
from .kinematics import _conf_ok, body_center


@dataclass(frozen=True)
class HandednessResult:
    dominant_hand: str
    confidence: float
    left_score: float
    right_score: float
    frames_analyzed: int
    # frames at or above the high-velocity threshold, (left, right)
    high_velocity_frames: Tuple[int, int] = (0, 0)
    # signal name -> (left share, right share)
    breakdown: Dict[str, Tuple[float, float]] = field(default_factory=dict)


def _share(left: float, right: float) -> Tuple[float, float]:
    total = left + right
    if total == 0:
        return 0.5, 0.5
    return left / total, right / total


def _stats(values: List[float]) -> Tuple[float, float, float]:
    """(mean, peak, std) with zeros for an empty list."""
    if not values:
        return 0.0, 0.0, 0.0
    arr = np.asarray(values, dtype=np.float64)
    return float(arr.mean()), float(arr.max()), float(arr.std())


def detect_handedness(
    frames: Sequence[PoseFrame],
    layout: KeypointLayout,
    config: Optional[HandednessConfig] = None,
) -> HandednessResult:
    """Score both wrists over *frames* (one subject, frame order)."""
    cfg = config or HandednessConfig()
    thr = cfg.min_confidence
    sides = ("left", "right")
    wrist = {s: layout.idx(f"{s}_wrist") for s in sides}
    shoulder = {s: layout.idx(f"{s}_shoulder") for s in sides}

    velocities: Dict[str, List[float]] = {s: [] for s in sides}
    extensions: Dict[str, List[float]] = {s: [] for s in sides}
    crosses = {s: 0 for s in sides}
    high_frames = {s: 0 for s in sides}
    was_crossed: Dict[str, Optional[bool]] = {s: None for s in sides}

    prev: Optional[PoseFrame] = None
    prev_center: Optional[np.ndarray] = None
    analyzed = 0
    for f in sorted(frames, key=lambda p: p.frame_index):
        center = body_center(f.keypoints, f.confidence, layout, thr)
        if center is None:
            continue
        analyzed += 1
        centerline = None
        if all(_conf_ok(f.confidence, shoulder[s], thr) for s in sides):
            centerline = 0.5 * (f.keypoints[shoulder["left"]][0] + f.keypoints[shoulder["right"]][0])

        for s in sides:
            w = wrist[s]
            if not _conf_ok(f.confidence, w, thr):
                continue
            rel = f.keypoints[w] - center
            extensions[s].append(float(np.linalg.norm(rel)))

            if centerline is not None:
                own_side = np.sign(f.keypoints[shoulder[s]][0] - centerline)
                crossed = bool(own_side != 0 and np.sign(f.keypoints[w][0] - centerline) == -own_side)
                if crossed and was_crossed[s] is False:
                    crosses[s] += 1
                was_crossed[s] = crossed

            if prev is not None and prev_center is not None and _conf_ok(prev.confidence, w, thr):
                vel = float(np.linalg.norm(rel - (prev.keypoints[w] - prev_center)))
                velocities[s].append(vel)
                if vel >= cfg.high_velocity_threshold:
                    high_frames[s] += 1
        prev, prev_center = f, center

    (l_avg, l_peak, l_std), (r_avg, r_peak, r_std) = _stats(velocities["left"]), _stats(velocities["right"])
    l_ext, r_ext = _stats(extensions["left"])[1], _stats(extensions["right"])[1]

    breakdown = {
        "avg_velocity": _share(l_avg, r_avg),
        "peak_velocity": _share(l_peak, r_peak),
        "variance": _share(l_std, r_std),
        "extension": _share(l_ext, r_ext),
        "cross_body": _share(crosses["left"], crosses["right"]),
    }
    weights = {
        "avg_velocity": cfg.avg_velocity_weight,
        "peak_velocity": cfg.peak_velocity_weight,
        "variance": cfg.variance_weight,
        "extension": cfg.extension_weight,
        "cross_body": cfg.cross_body_weight,
    }
    total = sum(weights.values()) or 1.0
    left = sum(breakdown[k][0] * w for k, w in weights.items()) / total
    right = sum(breakdown[k][1] * w for k, w in weights.items()) / total

    return HandednessResult(
        dominant_hand="left" if left > right else "right",
        confidence=min(1.0, abs(left - right) * 2 + 0.5),
        left_score=left,
        right_score=right,
        frames_analyzed=analyzed,
        high_velocity_frames=(high_frames["left"], high_frames["right"]),
        breakdown=breakdown,
    )


def handedness_event(result: HandednessResult, start_frame: int, end_frame: int, fps: float) -> ProtocolEvent:
    """Whole-video event carrying the handedness verdict."""
    return ProtocolEvent(
        id="handedness",
        protocol_id=ProtocolId.HANDEDNESS,
        start_frame=start_frame,
        end_frame=end_frame,
        start_time=start_frame / fps,
        end_time=end_frame / fps,
        label=f"{result.dominant_hand.title()}-handed",
        metadata=HandednessMetadata(
            dominant_hand=result.dominant_hand,
            confidence=result.confidence,
            left_score=result.left_score,
            right_score=result.right_score,
        ),
    )
