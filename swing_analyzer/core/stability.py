"""Pose stability filter: banana-frame detection and recovery.

A "banana frame" is a single detection with an implausible skeleton: a limb
that suddenly doubles in length, an elbow that snaps through 60 degrees in one
frame, left and right arms swapped. Such frames would show up downstream as
enormous velocity spikes, so they are detected here and replaced by an estimate
(mirror of the partner joint, motion simulation, or the last good position).

The filter never raises for bad input. Every emitted frame carries its
provenance (``is_banana``, ``recovery``, ``reasons``); banana frames are kept,
not dropped, so the timeline stays continuous.

State machine (full recovery mode)::

    STABLE --anomaly--> ANOMALOUS --substitute--> RECOVERING
    RECOVERING --recovery_frame_count plausible frames--> STABLE

``ANOMALOUS`` only exists inside the ``update()`` call that detected the
anomaly. Mirror-only mode skips the state machine entirely.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque, Dict, Optional, Set, Tuple

import numpy as np

from ..analysis.kinematics import _conf_ok, body_center, joint_angle
from ..config.keypoints import ANTHROPOMETRIC_RATIOS, KeypointLayout
from ..config.settings import StabilityConfig
from .pose import PoseFrame
from .smoother import PoseSmoother

logger = logging.getLogger(__name__)


class StabilityMode(Enum):
    STABLE = "stable"
    ANOMALOUS = "anomalous"
    RECOVERING = "recovering"


class RecoveryMethod(Enum):
    NONE = "none"
    MIRROR = "mirror"
    HOLD = "hold"
    SIMULATION = "simulation"


@dataclass(frozen=True)
class StabilityState:
    """Snapshot of the filter's carried state."""

    mode: StabilityMode
    consecutive_stable_frames: int
    last_known_good_frame: Optional[int]


@dataclass(frozen=True)
class StabilizedFrame:
    """One cleaned frame with its provenance."""

    pose: PoseFrame
    raw: PoseFrame
    is_banana: bool
    mode: StabilityMode
    recovery: RecoveryMethod = RecoveryMethod.NONE
    reasons: Tuple[str, ...] = ()
    # Joint indices whose position is an estimate rather than a detection
    substituted: Tuple[int, ...] = ()

    @property
    def frame_index(self) -> int:
        return self.pose.frame_index


def pose_similarity(
    kps_a: np.ndarray,
    conf_a: np.ndarray,
    kps_b: np.ndarray,
    conf_b: np.ndarray,
    layout: KeypointLayout,
    min_conf: float = 0.3,
) -> Optional[float]:
    """Cosine similarity of two poses after centering each on its body center.

    Only tracked joints confident in both poses take part. Returns ``None``
    when fewer than three joints are shared.
    """
    ca = body_center(kps_a, conf_a, layout, min_conf)
    cb = body_center(kps_b, conf_b, layout, min_conf)
    if ca is None or cb is None:
        return None
    shared = [i for i in layout.tracked if _conf_ok(conf_a, i, min_conf) and _conf_ok(conf_b, i, min_conf)]
    if len(shared) < 3:
        return None
    va = (np.asarray(kps_a, dtype=np.float64)[shared] - ca).ravel()
    vb = (np.asarray(kps_b, dtype=np.float64)[shared] - cb).ravel()
    na, nb = float(np.linalg.norm(va)), float(np.linalg.norm(vb))
    if na < 1e-6 or nb < 1e-6:
        return None
    return float(np.dot(va, vb) / (na * nb))


class PoseStabilityFilter:
    """Frame-sequential banana-frame filter for one tracked subject."""

    def __init__(self, layout: KeypointLayout, config: Optional[StabilityConfig] = None):
        self.layout = layout
        self.cfg = config or StabilityConfig()
        self._smoother = PoseSmoother(alpha=self.cfg.smoothing_alpha)
        self._core: Set[int] = set(layout.core)
        self._segments: Dict[str, Tuple[int, int]] = {name: (a, b) for name, a, b in layout.segments}
        self.reset()

    # ── state ─────────────────────────────────────────────────────────

    def reset(self):
        """Forget everything; call when a new video or track begins."""
        self._mode = StabilityMode.STABLE
        self._consecutive_stable = 0
        self._prev: Optional[PoseFrame] = None
        self._last_good: Optional[PoseFrame] = None
        self._good_history: Deque[PoseFrame] = deque(maxlen=self.cfg.simulation_history)
        self._ratio_sum: Dict[str, float] = {}
        self._ratio_count: Dict[str, int] = {}
        self._smoother.reset()

    def seed(self, frame: PoseFrame):
        """Start from a known-good pose, e.g. the last frame before a worker's range."""
        self.reset()
        self._accept_good(frame)
        self._prev = frame
        self._smoother.seed(frame.keypoints)

    @property
    def mode(self) -> StabilityMode:
        return self._mode

    @property
    def last_frame(self) -> Optional[int]:
        """Frame index of the last pose the filter emitted (or was seeded with)."""
        return None if self._prev is None else self._prev.frame_index

    @property
    def state(self) -> StabilityState:
        return StabilityState(
            mode=self._mode,
            consecutive_stable_frames=self._consecutive_stable,
            last_known_good_frame=None if self._last_good is None else self._last_good.frame_index,
        )

    # ── main entry ────────────────────────────────────────────────────

    def update(self, frame: PoseFrame) -> StabilizedFrame:
        """Check one raw frame and return its cleaned version."""
        if self._prev is None:
            self._accept_good(frame)
            self._consecutive_stable = 1
            return self._emit(frame, frame.keypoints, frame.confidence, False, RecoveryMethod.NONE, (), ())

        if self.cfg.mirror_only_mode:
            return self._update_mirror_only(frame)

        reference = self._prev if self._mode is StabilityMode.STABLE else self._last_good
        kps = np.array(frame.keypoints, dtype=np.float64)
        conf = np.array(frame.confidence, dtype=np.float64)
        filled = self._fill_lost(kps, conf, reference)

        flagged, reasons = self._check(kps, conf, reference)
        if not flagged:
            accepted = frame.with_keypoints(kps, conf)
            if self._mode is StabilityMode.RECOVERING:
                if not filled:
                    self._consecutive_stable += 1
                if self._consecutive_stable >= self.cfg.recovery_frame_count:
                    logger.debug(
                        f"frame {frame.frame_index}: RECOVERING -> STABLE after "
                        f"{self._consecutive_stable} plausible frames"
                    )
                    self._mode = StabilityMode.STABLE
            else:
                self._consecutive_stable += 1
            self._accept_good(accepted)
            return self._emit(frame, kps, conf, False, RecoveryMethod.NONE, (), tuple(sorted(filled)))

        if self._mode is StabilityMode.STABLE:
            logger.debug(f"frame {frame.frame_index}: STABLE -> ANOMALOUS ({', '.join(reasons)})")
        self._mode = StabilityMode.ANOMALOUS
        kps, method, substituted = self._recover(frame, kps, conf, flagged, reference)
        self._mode = StabilityMode.RECOVERING
        self._consecutive_stable = 0
        logger.debug(f"frame {frame.frame_index}: ANOMALOUS -> RECOVERING via {method.value}")
        return self._emit(
            frame, kps, conf, True, method, tuple(reasons), tuple(sorted(substituted | filled))
        )

    def _update_mirror_only(self, frame: PoseFrame) -> StabilizedFrame:
        kps = np.array(frame.keypoints, dtype=np.float64)
        conf = np.array(frame.confidence, dtype=np.float64)
        filled = self._fill_lost(kps, conf, self._prev)
        flagged, reasons = self._check(kps, conf, self._prev)
        if not flagged:
            self._consecutive_stable += 1
            self._accept_good(frame.with_keypoints(kps, conf))
            return self._emit(frame, kps, conf, False, RecoveryMethod.NONE, (), tuple(sorted(filled)))

        self._consecutive_stable = 0
        mirrored = self._mirror(kps, conf, flagged, self._prev)
        held = flagged - mirrored
        for j in held:
            kps[j] = self._last_good.keypoints[j]
        method = RecoveryMethod.HOLD if held else RecoveryMethod.MIRROR
        return self._emit(frame, kps, conf, True, method, tuple(reasons), tuple(sorted(flagged | filled)))

    # ── plausibility checks ───────────────────────────────────────────

    def _segment_joints(self, a: int, b: int) -> Set[int]:
        # Limb segments blame the distal joint; torso segments blame both ends.
        if a in self._core and b in self._core:
            return {a, b}
        return {b}

    def _check(
        self,
        kps: np.ndarray,
        conf: np.ndarray,
        reference: PoseFrame,
        with_similarity: bool = True,
    ) -> Tuple[Set[int], list]:
        cfg, thr = self.cfg, self.cfg.min_confidence
        ref_kps, ref_conf = reference.keypoints, reference.confidence
        flagged: Set[int] = set()
        reasons = []

        lengths = self._segment_lengths(kps, conf)
        ref_lengths = self._segment_lengths(ref_kps, ref_conf)
        for name, (a, b) in self._segments.items():
            cur, ref = lengths.get(name), ref_lengths.get(name)
            if cur is None or ref is None or ref < cfg.min_segment_length_px:
                continue
            ratio = cur / ref
            if ratio > cfg.max_segment_change or ratio < 1.0 / cfg.max_segment_change:
                reasons.append(f"segment:{name}:{ratio:.2f}")
                flagged |= self._segment_joints(a, b)

        for name, a, v, c in self.layout.angles:
            cur = joint_angle(kps, conf, a, v, c, thr)
            ref = joint_angle(ref_kps, ref_conf, a, v, c, thr)
            if cur is None or ref is None:
                continue
            if abs(cur - ref) > cfg.max_angle_change:
                reasons.append(f"angle:{name}:{abs(cur - ref):.1f}")
                flagged |= {v, c}

        for name, seg1, seg2 in ANTHROPOMETRIC_RATIOS:
            baseline = self._ratio_baseline(name)
            l1, l2 = lengths.get(seg1), lengths.get(seg2)
            if baseline is None or l1 is None or l2 is None or l2 < cfg.min_segment_length_px:
                continue
            deviation = abs(l1 / l2 - baseline) / baseline
            if deviation > cfg.ratio_tolerance:
                reasons.append(f"ratio:{name}:{deviation:.2f}")
                for seg in (seg1, seg2):
                    flagged |= self._segment_joints(*self._segments[seg])

        if with_similarity:
            sim = pose_similarity(kps, conf, ref_kps, ref_conf, self.layout, thr)
            if sim is not None and sim < cfg.similarity_threshold:
                reasons.append(f"similarity:{sim:.2f}")
                if not flagged:
                    flagged |= self._most_displaced(kps, conf, reference)

        return flagged, reasons

    def _segment_lengths(self, kps: np.ndarray, conf: np.ndarray) -> Dict[str, float]:
        thr = self.cfg.min_confidence
        out = {}
        for name, (a, b) in self._segments.items():
            if _conf_ok(conf, a, thr) and _conf_ok(conf, b, thr):
                out[name] = float(np.linalg.norm(kps[b] - kps[a]))
        return out

    def _ratio_baseline(self, name: str) -> Optional[float]:
        count = self._ratio_count.get(name, 0)
        if count < 3:
            return None
        base = self._ratio_sum[name] / count
        return base if base > 1e-6 else None

    def _most_displaced(self, kps: np.ndarray, conf: np.ndarray, reference: PoseFrame) -> Set[int]:
        """Joints that moved more than half a shoulder width relative to the body."""
        thr = self.cfg.min_confidence
        c_cur = body_center(kps, conf, self.layout, thr)
        c_ref = body_center(reference.keypoints, reference.confidence, self.layout, thr)
        if c_cur is None or c_ref is None:
            return set()
        moves = {}
        for j in self.layout.tracked:
            if j in self._core:
                continue
            if _conf_ok(conf, j, thr) and _conf_ok(reference.confidence, j, thr):
                moves[j] = float(np.linalg.norm((kps[j] - c_cur) - (reference.keypoints[j] - c_ref)))
        if not moves:
            return set()
        sw = self._segment_lengths(reference.keypoints, reference.confidence).get("shoulders", 0.0)
        far = {j for j, d in moves.items() if sw > 0 and d > 0.5 * sw}
        return far or {max(moves, key=moves.get)}

    # ── recovery ──────────────────────────────────────────────────────

    def _mirror_position(self, kps: np.ndarray, conf: np.ndarray, joint: int) -> Optional[np.ndarray]:
        thr = self.cfg.min_confidence
        try:
            partner = self.layout.mirror_of(joint)
        except KeyError:
            return None
        center = body_center(kps, conf, self.layout, thr)
        if center is None or not _conf_ok(conf, partner, thr):
            return None
        px, py = kps[partner]
        return np.array([2.0 * center[0] - px, py])

    def _mirror(self, kps: np.ndarray, conf: np.ndarray, flagged: Set[int], reference: PoseFrame) -> Set[int]:
        """Replace flagged joints by their reflected partner where that is plausible.

        Mutates ``kps`` in place and returns the joints that were mirrored.
        """
        attempts: Dict[int, np.ndarray] = {}
        for j in sorted(flagged):
            try:
                partner = self.layout.mirror_of(j)
            except KeyError:
                continue
            if partner in flagged:
                continue
            pos = self._mirror_position(kps, conf, j)
            if pos is not None:
                attempts[j] = pos
        if not attempts:
            return set()

        # Neighbouring joints (elbow + wrist) are usually wrong together, so
        # they are substituted and re-checked as one candidate pose.
        candidate = kps.copy()
        for j, pos in attempts.items():
            candidate[j] = pos
        still_flagged, _ = self._check(candidate, conf, reference, with_similarity=False)
        mirrored = {j for j in attempts if j not in still_flagged}
        for j in mirrored:
            kps[j] = attempts[j]
        return mirrored

    def _simulate(self, joints: Set[int], frame_index: int) -> Optional[Dict[int, np.ndarray]]:
        """Extrapolate joints from the recent good poses with decaying velocity."""
        history = list(self._good_history)
        if len(history) < 2 or self._last_good is None:
            return None
        steps = frame_index - self._last_good.frame_index
        if steps <= 0:
            return None
        decay = self.cfg.simulation_decay
        travel = sum(decay ** k for k in range(1, steps + 1))
        out = {}
        for j in joints:
            vels = []
            for p0, p1 in zip(history, history[1:]):
                gap = p1.frame_index - p0.frame_index
                if gap > 0:
                    vels.append((p1.keypoints[j] - p0.keypoints[j]) / gap)
            if not vels:
                return None
            out[j] = self._last_good.keypoints[j] + np.mean(vels, axis=0) * travel
        return out

    def _recover(
        self,
        frame: PoseFrame,
        kps: np.ndarray,
        conf: np.ndarray,
        flagged: Set[int],
        reference: PoseFrame,
    ) -> Tuple[np.ndarray, RecoveryMethod, Set[int]]:
        cfg = self.cfg
        mirrored = self._mirror(kps, conf, flagged, reference) if cfg.enable_mirror_recovery else set()
        remaining = flagged - mirrored
        if not remaining:
            return kps, RecoveryMethod.MIRROR, flagged

        if cfg.enable_simulation:
            sim = pose_similarity(
                kps, conf, reference.keypoints, reference.confidence, self.layout, cfg.min_confidence
            )
            if sim is None or sim < cfg.similarity_threshold:
                simulated = self._simulate(remaining, frame.frame_index)
                if simulated is not None:
                    for j, pos in simulated.items():
                        kps[j] = pos
                    return kps, RecoveryMethod.SIMULATION, flagged

        for j in remaining:
            kps[j] = self._last_good.keypoints[j]
        return kps, RecoveryMethod.HOLD, flagged

    def _fill_lost(self, kps: np.ndarray, conf: np.ndarray, reference: PoseFrame) -> Set[int]:
        """Fill joints that dropped below confidence since the reference. Mutates in place."""
        thr = self.cfg.min_confidence
        filled: Set[int] = set()
        for j in self.layout.tracked:
            if _conf_ok(conf, j, thr) or not _conf_ok(reference.confidence, j, thr):
                continue
            pos = self._mirror_position(kps, conf, j) if self.cfg.enable_mirror_recovery else None
            if pos is None:
                pos = self._last_good.keypoints[j]
            kps[j] = pos
            conf[j] = self.cfg.lost_joint_confidence
            filled.add(j)
        return filled

    # ── bookkeeping ───────────────────────────────────────────────────

    def _accept_good(self, pose: PoseFrame):
        self._last_good = pose
        self._good_history.append(pose)
        lengths = self._segment_lengths(pose.keypoints, pose.confidence)
        for name, seg1, seg2 in ANTHROPOMETRIC_RATIOS:
            l1, l2 = lengths.get(seg1), lengths.get(seg2)
            if l1 is None or l2 is None or min(l1, l2) < self.cfg.min_segment_length_px:
                continue
            self._ratio_sum[name] = self._ratio_sum.get(name, 0.0) + l1 / l2
            self._ratio_count[name] = self._ratio_count.get(name, 0) + 1

    def _emit(
        self,
        raw: PoseFrame,
        kps: np.ndarray,
        conf: np.ndarray,
        is_banana: bool,
        method: RecoveryMethod,
        reasons: Tuple[str, ...],
        substituted: Tuple[int, ...],
    ) -> StabilizedFrame:
        cleaned = raw.with_keypoints(kps, conf)
        self._prev = cleaned
        smoothed = self._smoother.smooth(cleaned.keypoints, cleaned.confidence, self.cfg.min_confidence)
        return StabilizedFrame(
            pose=cleaned.with_keypoints(smoothed),
            raw=raw,
            is_banana=is_banana,
            mode=self._mode,
            recovery=method,
            reasons=reasons,
            substituted=substituted,
        )
