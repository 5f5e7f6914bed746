"""Kinematics extractor: segment lengths, joint angles, velocities, accelerations.

The low-level functions are pure and operate on single-frame keypoint arrays
(or on an explicit previous/current pair for rates). ``KinematicsExtractor``
builds the per-frame kinematic stream that swing segmentation and scoring read.

A sample that needs a keypoint below the confidence threshold is ``None``:
callers treat it as a gap, never as zero.
"""

from __future__ import annotations

import bisect
import math
from dataclasses import dataclass
from typing import Callable, Iterator, List, Mapping, Optional, Sequence, Union

import numpy as np

from ..config.keypoints import KeypointLayout
from ..config.settings import SwingDetectionConfig
from ..core.pose import PoseFrame


# Fallback torso height (px) when the stream never shows a measurable torso.
DEFAULT_TORSO_PX = 100.0
MIN_TORSO_PX = 20.0
FALLBACK_SHOULDER_WIDTH_PX = 150.0
# Shoulder width of a subject square to the camera, in torso lengths
SQUARE_SHOULDER_RATIO = 0.8
MS_TO_KMH = 3.6


# ── Low-level geometry helpers ────────────────────────────────────────

def _conf_ok(confidence: np.ndarray, idx: int, thr: float = 0.3) -> bool:
    try:
        return float(confidence[idx]) >= thr
    except (IndexError, TypeError):
        return False


def _vec_angle(v1: np.ndarray, v2: np.ndarray) -> Optional[float]:
    """Angle in degrees between two 2-D vectors, or None if degenerate."""
    n1 = float(np.linalg.norm(v1))
    n2 = float(np.linalg.norm(v2))
    if n1 < 1e-6 or n2 < 1e-6:
        return None
    cos_a = float(np.clip(np.dot(v1, v2) / (n1 * n2), -1.0, 1.0))
    return float(np.degrees(np.arccos(cos_a)))


def wrap_degrees(angle: float) -> float:
    """Wrap an angle difference into [-180, 180)."""
    return float((angle + 180.0) % 360.0 - 180.0)


def _mean_of(keypoints: np.ndarray, confidence: np.ndarray, idxs, min_conf: float) -> Optional[np.ndarray]:
    pts = [keypoints[i] for i in idxs if _conf_ok(confidence, i, min_conf)]
    if not pts:
        return None
    return np.mean(np.asarray(pts, dtype=np.float64), axis=0)


# ── Segment lengths ──────────────────────────────────────────────────

def segment_length(
    keypoints: np.ndarray,
    confidence: np.ndarray,
    a_idx: int,
    b_idx: int,
    min_conf: float = 0.3,
) -> Optional[float]:
    """Euclidean pixel distance between two keypoints."""
    if not (_conf_ok(confidence, a_idx, min_conf) and _conf_ok(confidence, b_idx, min_conf)):
        return None
    return float(np.linalg.norm(np.asarray(keypoints[b_idx]) - np.asarray(keypoints[a_idx])))


def shoulder_width(
    keypoints: np.ndarray, confidence: np.ndarray, layout: KeypointLayout, min_conf: float = 0.3
) -> Optional[float]:
    return segment_length(
        keypoints, confidence, layout.idx("left_shoulder"), layout.idx("right_shoulder"), min_conf
    )


def reference_length(
    keypoints: np.ndarray, confidence: np.ndarray, layout: KeypointLayout, min_conf: float = 0.3
) -> Optional[float]:
    """Torso length: shoulder-center to hip-center distance (px)."""
    ls, rs = layout.idx("left_shoulder"), layout.idx("right_shoulder")
    lh, rh = layout.idx("left_hip"), layout.idx("right_hip")
    if not all(_conf_ok(confidence, i, min_conf) for i in (ls, rs, lh, rh)):
        return None
    sh = 0.5 * (np.asarray(keypoints[ls], dtype=np.float64) + np.asarray(keypoints[rs], dtype=np.float64))
    hip = 0.5 * (np.asarray(keypoints[lh], dtype=np.float64) + np.asarray(keypoints[rh], dtype=np.float64))
    return float(np.linalg.norm(sh - hip))


def normalized_segment_length(
    keypoints: np.ndarray,
    confidence: np.ndarray,
    a_idx: int,
    b_idx: int,
    layout: KeypointLayout,
    min_conf: float = 0.3,
) -> Optional[float]:
    """Segment length in torso lengths, so it does not depend on camera distance."""
    length = segment_length(keypoints, confidence, a_idx, b_idx, min_conf)
    torso = reference_length(keypoints, confidence, layout, min_conf)
    if length is None or torso is None or torso < 1e-6:
        return None
    return length / torso


# ── Joint angles ─────────────────────────────────────────────────────

def joint_angle(
    keypoints: np.ndarray,
    confidence: np.ndarray,
    a_idx: int,
    vertex_idx: int,
    b_idx: int,
    min_conf: float = 0.3,
    bend: bool = False,
) -> Optional[float]:
    """Angle at *vertex* formed by segments vertex→a and vertex→b (degrees).

    With ``bend=True`` the complementary bend angle ``180 - angle`` is returned
    (0 = straight limb).
    """
    if not all(_conf_ok(confidence, i, min_conf) for i in (a_idx, vertex_idx, b_idx)):
        return None
    v1 = np.asarray(keypoints[a_idx], dtype=np.float64) - np.asarray(keypoints[vertex_idx], dtype=np.float64)
    v2 = np.asarray(keypoints[b_idx], dtype=np.float64) - np.asarray(keypoints[vertex_idx], dtype=np.float64)
    angle = _vec_angle(v1, v2)
    if angle is None:
        return None
    return 180.0 - angle if bend else angle


def min_knee_angle(
    keypoints: np.ndarray, confidence: np.ndarray, layout: KeypointLayout, min_conf: float = 0.3
) -> Optional[float]:
    """Smaller (more bent) knee angle of both legs."""
    angles = []
    for side in ("left", "right"):
        a = joint_angle(
            keypoints, confidence,
            layout.idx(f"{side}_hip"), layout.idx(f"{side}_knee"), layout.idx(f"{side}_ankle"),
            min_conf,
        )
        if a is not None:
            angles.append(a)
    return min(angles) if angles else None


def line_angle(
    keypoints: np.ndarray,
    confidence: np.ndarray,
    left_idx: int,
    right_idx: int,
    min_conf: float = 0.3,
) -> Optional[float]:
    """Image-plane angle (degrees) of the line from a right joint to its left partner.

    A subject facing the camera has the left side at larger x, so a level
    shoulder line reads 0 degrees.
    """
    if not (_conf_ok(confidence, left_idx, min_conf) and _conf_ok(confidence, right_idx, min_conf)):
        return None
    d = np.asarray(keypoints[left_idx], dtype=np.float64) - np.asarray(keypoints[right_idx], dtype=np.float64)
    if float(np.linalg.norm(d)) < 1e-6:
        return None
    return float(np.degrees(np.arctan2(d[1], d[0])))


def _turn_direction(kps: np.ndarray, conf: np.ndarray, layout: KeypointLayout, min_conf: float) -> float:
    """Signed cue for which way the torso is turned; positive = towards the subject's right.

    The nose leads a turn: turning right moves it towards the subject's right
    shoulder. A bent knee can only fold backwards, so the shin points away from
    the facing direction.
    """
    ls, rs = layout.idx("left_shoulder"), layout.idx("right_shoulder")
    mid_x = 0.5 * (float(kps[ls][0]) + float(kps[rs][0]))
    # Unit vector (in x) from the left towards the right shoulder
    towards_right = 1.0 if kps[rs][0] >= kps[ls][0] else -1.0
    signal = 0.0
    nose = layout.idx("nose")
    if _conf_ok(conf, nose, min_conf):
        signal += 0.3 * towards_right * (float(kps[nose][0]) - mid_x)
    for side in ("left", "right"):
        hip, knee, ankle = (layout.idx(f"{side}_{j}") for j in ("hip", "knee", "ankle"))
        if not all(_conf_ok(conf, i, min_conf) for i in (hip, knee, ankle)):
            continue
        offset = float(kps[ankle][0] - kps[knee][0])
        if abs(offset) > 0.15 * abs(float(kps[knee][1] - kps[hip][1])):
            signal -= 0.2 * towards_right * offset
    return signal


def body_orientation(
    keypoints: np.ndarray, confidence: np.ndarray, layout: KeypointLayout, min_conf: float = 0.3
) -> Optional[float]:
    """Torso yaw in degrees: 0 facing the camera, ±90 side-on, ±180 facing away.

    The size of the turn comes from how much the shoulder line is compressed
    against the torso height (a square-on subject shows a shoulder width of
    ``SQUARE_SHOULDER_RATIO`` torso lengths). The x-order of the shoulders and
    hips tells front from back; when they disagree the torso is read as
    side-on. The sign comes from ``_turn_direction``. Positive angles are turns
    towards the subject's right.
    """
    ls, rs = layout.idx("left_shoulder"), layout.idx("right_shoulder")
    lh, rh = layout.idx("left_hip"), layout.idx("right_hip")
    if not all(_conf_ok(confidence, i, min_conf) for i in (ls, rs, lh, rh)):
        return None
    kps = np.asarray(keypoints, dtype=np.float64)
    shoulder_mid = 0.5 * (kps[ls] + kps[rs])
    torso = float(np.linalg.norm(shoulder_mid - 0.5 * (kps[lh] + kps[rh])))
    width = float(np.linalg.norm(kps[ls] - kps[rs]))
    compression = min(1.0, width / max(torso, 1.0) / SQUARE_SHOULDER_RATIO)
    turn = float(np.degrees(np.arccos(compression)))

    shoulders_front = kps[ls][0] > kps[rs][0]
    hips_front = kps[lh][0] > kps[rh][0]
    if shoulders_front and hips_front:
        yaw = turn
    elif not shoulders_front and not hips_front:
        yaw = 180.0 - turn
    else:
        yaw = 90.0
    # Rounding noise on a centred nose must not flip the sign
    return -yaw if _turn_direction(kps, confidence, layout, min_conf) < -1e-6 else yaw


def x_factor(
    keypoints: np.ndarray, confidence: np.ndarray, layout: KeypointLayout, min_conf: float = 0.3
) -> Optional[float]:
    """Signed shoulder-line minus hip-line angle, wrapped to ±180."""
    sh = line_angle(keypoints, confidence, layout.idx("left_shoulder"), layout.idx("right_shoulder"), min_conf)
    hip = line_angle(keypoints, confidence, layout.idx("left_hip"), layout.idx("right_hip"), min_conf)
    if sh is None or hip is None:
        return None
    return wrap_degrees(sh - hip)


# ── Body centre ──────────────────────────────────────────────────────

def body_center(
    keypoints: np.ndarray, confidence: np.ndarray, layout: KeypointLayout, min_conf: float = 0.3
) -> Optional[np.ndarray]:
    """Mean of the confident shoulder and hip keypoints (at least two needed)."""
    pts = [keypoints[i] for i in layout.core if _conf_ok(confidence, i, min_conf)]
    if len(pts) < 2:
        return None
    return np.mean(np.asarray(pts, dtype=np.float64), axis=0)


# ── Velocity & acceleration ──────────────────────────────────────────

def joint_speed_px(
    prev: PoseFrame,
    curr: PoseFrame,
    idx: int,
    layout: Optional[KeypointLayout] = None,
    min_conf: float = 0.3,
) -> Optional[float]:
    """Pixel displacement of a joint per frame.

    With a layout, positions are taken relative to the body center so that
    whole-body translation (running to the ball) does not count as limb speed.
    """
    if not (_conf_ok(prev.confidence, idx, min_conf) and _conf_ok(curr.confidence, idx, min_conf)):
        return None
    gap = curr.frame_index - prev.frame_index
    if gap <= 0:
        return None
    p0 = np.asarray(prev.keypoints[idx], dtype=np.float64)
    p1 = np.asarray(curr.keypoints[idx], dtype=np.float64)
    if layout is not None:
        c0 = body_center(prev.keypoints, prev.confidence, layout, min_conf)
        c1 = body_center(curr.keypoints, curr.confidence, layout, min_conf)
        if c0 is None or c1 is None:
            return None
        p0 = p0 - c0
        p1 = p1 - c1
    return float(np.linalg.norm(p1 - p0)) / gap


def meters_per_pixel(
    avg_torso_px: Optional[float],
    person_height_m: float = 1.7,
    torso_to_height_ratio: float = 0.30,
) -> float:
    """Scale factor from the average torso height, assuming a person of known height."""
    torso = avg_torso_px if avg_torso_px and avg_torso_px > 0 else DEFAULT_TORSO_PX
    return person_height_m * torso_to_height_ratio / torso


def px_per_frame_to_kmh(speed_px: Optional[float], m_per_px: float, fps: float) -> Optional[float]:
    if speed_px is None:
        return None
    return speed_px * m_per_px * fps * MS_TO_KMH


def acceleration(v_prev: Optional[float], v_curr: Optional[float], fps: float, frame_gap: int = 1) -> Optional[float]:
    """First difference of velocity per second (units of velocity / s)."""
    if v_prev is None or v_curr is None or frame_gap <= 0:
        return None
    return (v_curr - v_prev) * fps / frame_gap


# ── Kinematic samples ────────────────────────────────────────────────

@dataclass(frozen=True)
class KinematicSample:
    """A kinematic value and its change since the previous frame."""

    value: float
    # value delta per frame (0.0 when there is no previous frame)
    rate_of_change: float


def _sample(value_fn: Callable[[PoseFrame], Optional[float]], curr: PoseFrame, prev: Optional[PoseFrame]) -> Optional[KinematicSample]:
    value = value_fn(curr)
    if value is None:
        return None
    if prev is None:
        return KinematicSample(value, 0.0)
    prev_value = value_fn(prev)
    gap = curr.frame_index - prev.frame_index
    if prev_value is None or gap <= 0:
        return None
    return KinematicSample(value, (value - prev_value) / gap)


def sample_segment(
    curr: PoseFrame,
    a_idx: int,
    b_idx: int,
    layout: KeypointLayout,
    prev: Optional[PoseFrame] = None,
    min_conf: float = 0.3,
) -> Optional[KinematicSample]:
    """Normalized segment length with its per-frame rate of change."""
    return _sample(
        lambda f: normalized_segment_length(f.keypoints, f.confidence, a_idx, b_idx, layout, min_conf),
        curr, prev,
    )


def sample_angle(
    curr: PoseFrame,
    a_idx: int,
    vertex_idx: int,
    b_idx: int,
    prev: Optional[PoseFrame] = None,
    min_conf: float = 0.3,
    bend: bool = False,
) -> Optional[KinematicSample]:
    """Joint angle with its per-frame rate of change."""
    return _sample(
        lambda f: joint_angle(f.keypoints, f.confidence, a_idx, vertex_idx, b_idx, min_conf, bend),
        curr, prev,
    )


# =====================================================================
# Per-frame kinematic stream
# =====================================================================

@dataclass(frozen=True)
class FrameKinematics:
    """Kinematic signals for one cleaned frame.

    Velocities are km/h relative to the body center; ``None`` marks a gap.
    """

    frame_index: int
    timestamp: float

    left_wrist_kmh: Optional[float] = None
    right_wrist_kmh: Optional[float] = None
    left_shoulder_kmh: Optional[float] = None
    right_shoulder_kmh: Optional[float] = None
    left_hip_kmh: Optional[float] = None
    right_hip_kmh: Optional[float] = None

    # Signed wrist acceleration (km/h per second) of the faster-changing wrist
    wrist_acceleration: Optional[float] = None

    body_orientation: Optional[float] = None      # torso yaw, degrees
    rotation_velocity: Optional[float] = None     # degrees per frame
    shoulder_angle: Optional[float] = None        # shoulder line, degrees
    hip_angle: Optional[float] = None             # hip line, degrees
    x_factor: Optional[float] = None              # degrees, wrapped

    min_knee_angle: Optional[float] = None        # degrees, smaller = more bend

    # Wrist height above the shoulder line, in torso heights
    left_wrist_height: Optional[float] = None
    right_wrist_height: Optional[float] = None
    # Wrist distance / shoulder width
    wrist_distance_ratio: Optional[float] = None
    left_ankle_y: Optional[float] = None
    right_ankle_y: Optional[float] = None
    torso_height_px: Optional[float] = None

    is_banana: bool = False
    usable: bool = True

    def wrist_kmh(self, mode: str = "both", handedness: str = "right") -> Optional[float]:
        """Driving wrist velocity for a wrist mode."""
        if mode == "left":
            return self.left_wrist_kmh
        if mode == "right":
            return self.right_wrist_kmh
        if mode == "dominant":
            return self.left_wrist_kmh if handedness == "left" else self.right_wrist_kmh
        return _max_present(self.left_wrist_kmh, self.right_wrist_kmh)

    @property
    def max_wrist_kmh(self) -> Optional[float]:
        return _max_present(self.left_wrist_kmh, self.right_wrist_kmh)

    @property
    def max_shoulder_kmh(self) -> Optional[float]:
        return _max_present(self.left_shoulder_kmh, self.right_shoulder_kmh)

    @property
    def max_hip_kmh(self) -> Optional[float]:
        return _max_present(self.left_hip_kmh, self.right_hip_kmh)

    @property
    def max_wrist_height(self) -> Optional[float]:
        return _max_present(self.left_wrist_height, self.right_wrist_height)


def _max_present(*values: Optional[float]) -> Optional[float]:
    present = [v for v in values if v is not None]
    return max(present) if present else None


class KinematicSeries:
    """Ordered per-frame kinematics for one video."""

    def __init__(
        self,
        frames: Sequence[FrameKinematics],
        fps: float,
        meters_per_pixel: Optional[float] = None,
    ):
        self._frames: List[FrameKinematics] = sorted(frames, key=lambda f: f.frame_index)
        self._indices: List[int] = [f.frame_index for f in self._frames]
        self.fps = float(fps)
        self.meters_per_pixel = meters_per_pixel

    def __len__(self) -> int:
        return len(self._frames)

    def __getitem__(self, i: int) -> FrameKinematics:
        return self._frames[i]

    def __iter__(self) -> Iterator[FrameKinematics]:
        return iter(self._frames)

    @property
    def frame_indices(self) -> List[int]:
        return list(self._indices)

    def index_of(self, frame_index: int) -> Optional[int]:
        i = bisect.bisect_left(self._indices, frame_index)
        if i < len(self._indices) and self._indices[i] == frame_index:
            return i
        return None

    def at(self, frame_index: int) -> Optional[FrameKinematics]:
        i = self.index_of(frame_index)
        return None if i is None else self._frames[i]

    def window(self, start_frame: int, end_frame: int) -> List[FrameKinematics]:
        """Frames with ``start_frame <= frame_index <= end_frame``."""
        lo = bisect.bisect_left(self._indices, start_frame)
        hi = bisect.bisect_right(self._indices, end_frame)
        return self._frames[lo:hi]

    def series(self, attr: Union[str, Callable[[FrameKinematics], Optional[float]]]) -> np.ndarray:
        """One signal as a float array with NaN for gaps."""
        getter = attr if callable(attr) else (lambda f: getattr(f, attr))
        out = np.full(len(self._frames), np.nan, dtype=np.float64)
        for i, f in enumerate(self._frames):
            v = getter(f)
            if v is not None:
                out[i] = float(v)
        return out


class KinematicsExtractor:
    """Build a ``KinematicSeries`` from a (cleaned) pose track."""

    def __init__(
        self,
        layout: KeypointLayout,
        fps: float = 30.0,
        config: Optional[SwingDetectionConfig] = None,
    ):
        self.layout = layout
        self.fps = float(fps) if fps and fps > 0 else 30.0
        self.cfg = config or SwingDetectionConfig()

    def average_torso_px(self, frames: Sequence[PoseFrame]) -> Optional[float]:
        heights = []
        for f in frames:
            h = self._torso_height(f)
            if h is not None and h > MIN_TORSO_PX:
                heights.append(h)
        return float(np.mean(heights)) if heights else None

    def extract(
        self,
        frames: Sequence[PoseFrame],
        banana_frames: Optional[Mapping[int, bool]] = None,
    ) -> KinematicSeries:
        """Compute kinematics for every frame.

        The px→m scale is estimated once from the whole track, so the result is a
        pure function of the input frames.
        """
        frames = sorted(frames, key=lambda f: f.frame_index)
        banana_frames = banana_frames or {}
        m_per_px = meters_per_pixel(
            self.average_torso_px(frames), self.cfg.person_height_m, self.cfg.torso_to_height_ratio
        )

        out: List[FrameKinematics] = []
        prev: Optional[PoseFrame] = None
        prev_fk: Optional[FrameKinematics] = None
        for f in frames:
            if prev is not None and not 0 < f.frame_index - prev.frame_index <= self.cfg.max_gap_frames:
                prev, prev_fk = None, None
            fk = self._frame(prev, f, prev_fk, m_per_px, bool(banana_frames.get(f.frame_index, False)))
            out.append(fk)
            prev, prev_fk = f, fk
        return KinematicSeries(out, self.fps, m_per_px)

    # ── internals ─────────────────────────────────────────────────────

    def _torso_height(self, f: PoseFrame) -> Optional[float]:
        lay, thr = self.layout, self.cfg.min_confidence
        sh = _mean_of(f.keypoints, f.confidence, (lay.idx("left_shoulder"), lay.idx("right_shoulder")), thr)
        hip = _mean_of(f.keypoints, f.confidence, (lay.idx("left_hip"), lay.idx("right_hip")), thr)
        if sh is None or hip is None:
            return None
        return abs(float(hip[1] - sh[1]))

    def _frame(
        self,
        prev: Optional[PoseFrame],
        curr: PoseFrame,
        prev_fk: Optional[FrameKinematics],
        m_per_px: float,
        is_banana: bool,
    ) -> FrameKinematics:
        lay, thr, fps = self.layout, self.cfg.min_confidence, self.fps
        kps, conf = curr.keypoints, curr.confidence
        center = body_center(kps, conf, lay, thr)

        def kmh(joint: str) -> Optional[float]:
            if prev is None:
                return None
            return px_per_frame_to_kmh(joint_speed_px(prev, curr, lay.idx(joint), lay, thr), m_per_px, fps)

        orientation = body_orientation(kps, conf, lay, thr)
        rotation_velocity = None
        if prev is not None and orientation is not None:
            prev_orientation = body_orientation(prev.keypoints, prev.confidence, lay, thr)
            if prev_orientation is not None:
                gap = curr.frame_index - prev.frame_index
                rotation_velocity = wrap_degrees(orientation - prev_orientation) / gap

        torso = self._torso_height(curr)
        left_h = right_h = None
        if torso is not None and torso >= 10.0:
            sh = _mean_of(kps, conf, (lay.idx("left_shoulder"), lay.idx("right_shoulder")), thr)
            for side in ("left", "right"):
                w = lay.idx(f"{side}_wrist")
                if _conf_ok(conf, w, thr):
                    ratio = float(sh[1] - kps[w][1]) / torso
                    if side == "left":
                        left_h = ratio
                    else:
                        right_h = ratio

        wrist_dist = segment_length(kps, conf, lay.idx("left_wrist"), lay.idx("right_wrist"), thr)
        sw = shoulder_width(kps, conf, lay, thr)
        if sw is None or sw < 10.0:
            sw = FALLBACK_SHOULDER_WIDTH_PX
        wrist_distance_ratio = None if wrist_dist is None else wrist_dist / sw

        left_wrist = kmh("left_wrist")
        right_wrist = kmh("right_wrist")
        wrist_acc = None
        if prev_fk is not None:
            gap = curr.frame_index - prev_fk.frame_index
            left_acc = acceleration(prev_fk.left_wrist_kmh, left_wrist, fps, gap)
            right_acc = acceleration(prev_fk.right_wrist_kmh, right_wrist, fps, gap)
            candidates = [a for a in (left_acc, right_acc) if a is not None]
            if candidates:
                wrist_acc = max(candidates, key=abs)

        def ankle_y(side: str) -> Optional[float]:
            a = lay.idx(f"{side}_ankle")
            return float(kps[a][1]) if _conf_ok(conf, a, thr) else None

        hip_line = line_angle(kps, conf, lay.idx("left_hip"), lay.idx("right_hip"), thr)
        return FrameKinematics(
            frame_index=curr.frame_index,
            timestamp=curr.frame_index / fps,
            left_wrist_kmh=left_wrist,
            right_wrist_kmh=right_wrist,
            left_shoulder_kmh=kmh("left_shoulder"),
            right_shoulder_kmh=kmh("right_shoulder"),
            left_hip_kmh=kmh("left_hip"),
            right_hip_kmh=kmh("right_hip"),
            wrist_acceleration=wrist_acc,
            body_orientation=orientation,
            rotation_velocity=rotation_velocity,
            shoulder_angle=line_angle(kps, conf, lay.idx("left_shoulder"), lay.idx("right_shoulder"), thr),
            hip_angle=hip_line,
            x_factor=x_factor(kps, conf, lay, thr),
            min_knee_angle=min_knee_angle(kps, conf, lay, thr),
            left_wrist_height=left_h,
            right_wrist_height=right_h,
            wrist_distance_ratio=wrist_distance_ratio,
            left_ankle_y=ankle_y("left"),
            right_ankle_y=ankle_y("right"),
            torso_height_px=torso,
            is_banana=is_banana,
            usable=center is not None,
        )
