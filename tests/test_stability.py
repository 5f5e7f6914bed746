"""Tests for banana-frame detection and recovery."""

import numpy as np
import pytest

from swing_analyzer.config.keypoints import COCO_LAYOUT, KEYPOINT_NAMES
from swing_analyzer.config.settings import StabilityConfig
from swing_analyzer.core.smoother import PoseSmoother
from swing_analyzer.core.stability import (
    PoseStabilityFilter,
    RecoveryMethod,
    StabilityMode,
    pose_similarity,
)

from synthetic import STANDING, make_pose

RE, RW = KEYPOINT_NAMES["right_elbow"], KEYPOINT_NAMES["right_wrist"]

# Forearm three times its normal length, pointing straight down
SPIKE = {"right_wrist": (230.0, 270.0 + 3 * 70.71)}


def _filter(**cfg):
    cfg.setdefault("smoothing_alpha", 1.0)
    return PoseStabilityFilter(COCO_LAYOUT, StabilityConfig(**cfg))


def _run(filt, frames):
    return [filt.update(f) for f in frames]


# =====================================================================
# Plausible input
# =====================================================================

class TestPlausibleFrames:
    def test_first_frame_is_accepted(self):
        filt = _filter()
        out = filt.update(make_pose(0))
        assert not out.is_banana
        assert out.mode is StabilityMode.STABLE
        assert filt.state.consecutive_stable_frames == 1
        assert filt.state.last_known_good_frame == 0

    def test_small_motion_passes_through(self):
        filt = _filter()
        frames = [make_pose(i, shift=(2.0 * i, 0.0)) for i in range(6)]
        out = _run(filt, frames)
        assert not any(sf.is_banana for sf in out)
        assert all(sf.mode is StabilityMode.STABLE for sf in out)
        np.testing.assert_allclose(out[-1].pose.keypoints, frames[-1].keypoints)

    def test_raw_frame_is_not_modified(self):
        filt = _filter()
        _run(filt, [make_pose(i) for i in range(4)])
        raw = make_pose(4, SPIKE)
        before = raw.keypoints.copy()
        out = filt.update(raw)
        assert out.raw is raw
        np.testing.assert_array_equal(raw.keypoints, before)


# =====================================================================
# Detection and recovery
# =====================================================================

class TestBananaRecovery:
    def test_stretched_forearm_is_mirrored(self):
        filt = _filter()
        _run(filt, [make_pose(i) for i in range(4)])
        out = filt.update(make_pose(4, SPIKE))
        assert out.is_banana
        assert out.recovery is RecoveryMethod.MIRROR
        assert out.mode is StabilityMode.RECOVERING
        assert RW in out.substituted
        assert any(r.startswith("segment:right_forearm") for r in out.reasons)
        # Mirror of the left wrist about the body center
        assert tuple(out.pose.keypoints[RW]) == pytest.approx(STANDING["right_wrist"])
        assert tuple(out.pose.keypoints[RE]) == pytest.approx(STANDING["right_elbow"])

    def test_hold_when_mirror_disabled(self):
        filt = _filter(enable_mirror_recovery=False)
        _run(filt, [make_pose(i) for i in range(4)])
        out = filt.update(make_pose(4, SPIKE))
        assert out.is_banana
        assert out.recovery is RecoveryMethod.HOLD
        assert tuple(out.pose.keypoints[RW]) == pytest.approx(STANDING["right_wrist"])

    def test_hold_when_both_sides_are_bad(self):
        filt = _filter()
        _run(filt, [make_pose(i) for i in range(4)])
        bad = dict(SPIKE)
        bad["left_wrist"] = (370.0, 270.0 + 3 * 70.71)
        out = filt.update(make_pose(4, bad))
        assert out.is_banana
        assert out.recovery is RecoveryMethod.HOLD
        assert tuple(out.pose.keypoints[RW]) == pytest.approx(STANDING["right_wrist"])

    def test_recovery_needs_consecutive_plausible_frames(self):
        filt = _filter(recovery_frame_count=3)
        _run(filt, [make_pose(i) for i in range(4)])
        assert filt.update(make_pose(4, SPIKE)).mode is StabilityMode.RECOVERING
        modes = [filt.update(make_pose(i)).mode for i in (5, 6, 7)]
        assert modes == [StabilityMode.RECOVERING, StabilityMode.RECOVERING, StabilityMode.STABLE]

    def test_repeated_anomaly_restarts_recovery(self):
        filt = _filter(recovery_frame_count=3)
        _run(filt, [make_pose(i) for i in range(4)])
        filt.update(make_pose(4, SPIKE))
        filt.update(make_pose(5))
        assert filt.state.consecutive_stable_frames == 1
        filt.update(make_pose(6, SPIKE))
        assert filt.state.consecutive_stable_frames == 0
        assert filt.mode is StabilityMode.RECOVERING

    def test_anomalous_compares_against_last_good(self):
        filt = _filter(recovery_frame_count=2)
        _run(filt, [make_pose(i) for i in range(4)])
        filt.update(make_pose(4, SPIKE))
        # Same spike again: still implausible against the last good pose
        assert filt.update(make_pose(5, SPIKE)).is_banana
        assert filt.state.last_known_good_frame == 3

    def test_simulation_extrapolates_motion(self):
        filt = _filter(enable_mirror_recovery=False, enable_simulation=True, similarity_threshold=0.999)
        frames = [make_pose(i, {"right_wrist": (220.0 - 2.0 * i, 340.0)}) for i in range(4)]
        _run(filt, frames)
        out = filt.update(make_pose(4, SPIKE))
        assert out.is_banana
        assert out.recovery is RecoveryMethod.SIMULATION
        # Last good x = 214, velocity -2 px/frame, one step of decay 0.9
        assert out.pose.keypoints[RW][0] == pytest.approx(214.0 - 2.0 * 0.9)

    def test_seed_starts_from_known_pose(self):
        filt = _filter()
        filt.seed(make_pose(9))
        out = filt.update(make_pose(10, SPIKE))
        assert out.is_banana
        assert filt.state.last_known_good_frame == 9

    def test_reset_forgets_history(self):
        filt = _filter()
        _run(filt, [make_pose(i) for i in range(4)])
        filt.reset()
        out = filt.update(make_pose(0, SPIKE))
        assert not out.is_banana


# =====================================================================
# Tracking loss and mirror-only mode
# =====================================================================

class TestLostJointsAndModes:
    def test_lost_joint_is_filled_without_banana(self):
        filt = _filter()
        _run(filt, [make_pose(i) for i in range(3)])
        out = filt.update(make_pose(3, missing=["right_wrist"]))
        assert not out.is_banana
        assert RW in out.substituted
        assert out.pose.confidence[RW] == pytest.approx(0.5)
        assert tuple(out.pose.keypoints[RW]) == pytest.approx(STANDING["right_wrist"])

    def test_mirror_only_mode_keeps_stable_state(self):
        filt = _filter(mirror_only_mode=True)
        _run(filt, [make_pose(i) for i in range(4)])
        out = filt.update(make_pose(4, SPIKE))
        assert out.is_banana
        assert out.recovery is RecoveryMethod.MIRROR
        assert out.mode is StabilityMode.STABLE
        assert filt.update(make_pose(5)).mode is StabilityMode.STABLE

    def test_output_is_smoothed(self):
        filt = PoseStabilityFilter(COCO_LAYOUT, StabilityConfig(smoothing_alpha=0.5))
        filt.update(make_pose(0))
        out = filt.update(make_pose(1, shift=(4.0, 0.0)))
        assert out.pose.keypoints[0][0] == pytest.approx(STANDING["nose"][0] + 2.0)


# =====================================================================
# Helpers
# =====================================================================

class TestSimilarityAndSmoother:
    def test_identical_poses_are_similar(self):
        p = make_pose(0)
        assert pose_similarity(p.keypoints, p.confidence, p.keypoints, p.confidence, COCO_LAYOUT) == pytest.approx(1.0)

    def test_similarity_ignores_translation(self):
        a, b = make_pose(0), make_pose(1, shift=(80.0, -30.0))
        assert pose_similarity(a.keypoints, a.confidence, b.keypoints, b.confidence, COCO_LAYOUT) == pytest.approx(1.0)

    def test_similarity_needs_shared_joints(self):
        a = make_pose(0)
        names = [n for n in STANDING if n not in ("left_shoulder", "right_shoulder")]
        b = make_pose(1, missing=names)
        assert pose_similarity(a.keypoints, a.confidence, b.keypoints, b.confidence, COCO_LAYOUT) is None

    def test_smoother_keeps_low_confidence_joint(self):
        sm = PoseSmoother(alpha=0.5)
        sm.smooth(np.zeros((2, 2)), np.ones(2))
        out = sm.smooth(np.full((2, 2), 10.0), np.array([1.0, 0.0]))
        np.testing.assert_allclose(out, [[5.0, 5.0], [0.0, 0.0]])

    def test_smoother_seed_and_reset(self):
        sm = PoseSmoother(alpha=0.5)
        sm.seed(np.zeros((2, 2)))
        np.testing.assert_allclose(sm.smooth(np.full((2, 2), 4.0), np.ones(2)), np.full((2, 2), 2.0))
        sm.reset()
        assert sm.prev_keypoints is None
        np.testing.assert_allclose(sm.smooth(np.full((2, 2), 4.0), np.ones(2)), np.full((2, 2), 4.0))

    def test_invalid_config_rejected(self):
        with pytest.raises(ValueError):
            StabilityConfig(max_segment_change=0.9)


# =====================================================================
# Convergence
# =====================================================================

class TestConvergence:
    @pytest.mark.parametrize("spike_at", [3, 12, 20])
    @pytest.mark.parametrize("recovery", [1, 4, 6])
    def test_single_spike_flags_one_frame_and_recovers(self, spike_at, recovery):
        frames = [make_pose(i, SPIKE if i == spike_at else None) for i in range(30)]
        out = _run(_filter(recovery_frame_count=recovery), frames)
        assert [sf.frame_index for sf in out if sf.is_banana] == [spike_at]
        assert out[spike_at].reasons
        assert all(sf.mode is StabilityMode.STABLE for sf in out[:spike_at])
        assert all(sf.mode is StabilityMode.STABLE for sf in out[spike_at + recovery:])

    def test_last_frame_follows_updates_and_seed(self):
        filt = _filter()
        assert filt.last_frame is None
        _run(filt, [make_pose(i) for i in range(3)])
        assert filt.last_frame == 2
        filt.seed(make_pose(7))
        assert filt.last_frame == 7
        filt.reset()
        assert filt.last_frame is None
