"""End-to-end tests for PipelineSession."""

import logging

import pytest

from swing_analyzer.config.keypoints import COCO_LAYOUT
from swing_analyzer.config.settings import PipelineConfig, SwingDetectionConfig
from swing_analyzer.core.persistence import PersistenceError
from swing_analyzer.core.preprocess import CancellationToken, RangeMergeError, preprocess_range, split_frame_range
from swing_analyzer.core.session import PipelineSession, UnknownEventError
from swing_analyzer.protocols.events import ProtocolId, SwingType

from synthetic import make_pose, swing_frames


def _config(**changes):
    cfg = PipelineConfig(fps=30.0, sport="tennis", swing=SwingDetectionConfig(min_peak_velocity_kmh=8.0))
    return cfg.with_overrides(**changes) if changes else cfg


def _analysed_session(**changes):
    frames = swing_frames()
    session = PipelineSession(_config(**changes))
    session.preprocess(lambda idx: [frames[idx]], range(len(frames)))
    session.run_detection()
    return session


# Right wrist swung far off the forearm line in a single frame
SPIKE = {"right_wrist": (230.0, 270.0 + 3 * 70.71)}


def _still(idx):
    return [make_pose(idx)]


# =====================================================================
# Detection
# =====================================================================

class TestDetection:
    def test_single_swing_detected(self):
        session = _analysed_session()
        swings = session.swing_events()
        assert len(swings) == 1
        swing = swings[0]
        assert swing.id.startswith("swing-")
        assert swing.protocol_id is ProtocolId.SWING_V3
        # No torso rotation; the narrow shoulder line reads as a body turned
        # about 39 degrees to the right, so the orientation fallback decides
        assert swing.metadata.swing_type is SwingType.FOREHAND
        assert swing.metadata.rotation_range < 1.0
        assert 10 <= swing.metadata.contact_frame <= 35
        assert not any(sf.is_banana for sf in session.cleaned_frames())

    def test_handedness_event(self):
        session = _analysed_session()
        hand = [e for e in session.events if e.protocol_id is ProtocolId.HANDEDNESS]
        assert len(hand) == 1
        assert hand[0].metadata.dominant_hand == "right"
        assert hand[0].label == "Right-handed"
        assert session.handedness.high_velocity_frames[1] > 0

    def test_events_sorted_by_start(self):
        events = _analysed_session().events
        assert [e.start_frame for e in events] == sorted(e.start_frame for e in events)

    def test_auto_handedness(self):
        session = _analysed_session(swing=SwingDetectionConfig(min_peak_velocity_kmh=8.0, handedness="auto"))
        assert session.handedness.dominant_hand == "right"
        assert session.swing_events()[0].metadata.dominant_side == "right"

    def test_metrics_for_swing(self):
        session = _analysed_session()
        swing = session.swing_events()[0]
        score = session.metrics_for(swing.id)
        assert 40 <= score.sai_score <= 99
        assert score.raw["power"] == pytest.approx(swing.metadata.velocity_kmh)

    def test_metrics_for_non_swing(self):
        session = _analysed_session()
        with pytest.raises(ValueError):
            session.metrics_for("handedness")

    def test_unknown_sport_skips_detection(self, caplog):
        with caplog.at_level(logging.WARNING):
            session = _analysed_session(sport="squash")
        assert session.events == []
        assert "squash" in caplog.text

    def test_empty_session(self):
        session = PipelineSession(_config())
        assert session.run_detection() == []
        assert len(session.kinematics()) == 0


# =====================================================================
# Adjustments
# =====================================================================

class TestAdjustments:
    def test_adjust_edge_is_clamped(self):
        session = _analysed_session()
        swing = session.swing_events()[0]
        session.dirty.clear()
        eff = session.adjust_edge(swing.id, "end", swing.start_time + 0.1)
        assert eff.end_time > eff.start_time + 0.25
        assert eff.is_adjusted
        assert session.dirty.protocol_adjustments
        # The detected event is unchanged
        assert session.event(swing.id).end_frame == swing.end_frame

    def test_remove_adjustment_restores_detection(self):
        session = _analysed_session()
        swing = session.swing_events()[0]
        session.adjust_edge(swing.id, "start", 0.0)
        assert session.effective_boundaries(swing.id).start_frame == 0
        assert session.remove_adjustment(swing.id)
        assert session.effective_boundaries(swing.id).start_frame == swing.start_frame
        assert not session.remove_adjustment(swing.id)

    def test_adjustments_survive_redetection(self):
        session = _analysed_session()
        swing = session.swing_events()[0]
        session.adjust_edge(swing.id, "start", 0.0)
        session.run_detection()
        assert session.effective_boundaries(swing.id).start_frame == 0

    def test_unknown_event(self):
        session = _analysed_session()
        with pytest.raises(UnknownEventError):
            session.adjust_edge("swing-9999", "start", 0.0)
        with pytest.raises(KeyError):
            session.event("nope")

    def test_restore(self):
        session = _analysed_session()
        swing = session.swing_events()[0]
        session.adjust_edge(swing.id, "start", 0.0)
        snap = session.snapshot()

        other = PipelineSession(_config())
        other.restore(snap.events, snap.adjustments)
        assert other.event(swing.id) == swing
        assert other.effective_boundaries(swing.id).start_frame == 0


# =====================================================================
# Ingestion
# =====================================================================

class TestIngestion:
    def test_process_frame_caches(self):
        session = PipelineSession(_config())
        first = session.process_frame(0, _still(0))
        assert session.process_frame(0, _still(0)) is first
        assert session.dirty.pose_data

    def test_process_frame_without_subject(self):
        session = PipelineSession(_config())
        assert session.process_frame(0, []) is None
        assert 0 in session.poses

    def test_backward_seek_reseeds(self):
        session = PipelineSession(_config())
        for idx in (0, 1, 2, 5):
            session.process_frame(idx, _still(idx))
        out = session.process_frame(3, _still(3))
        assert out.frame_index == 3
        assert not out.is_banana
        assert [sf.frame_index for sf in session.cleaned_frames()] == [0, 1, 2, 3, 5]
        assert session.seed_pose_before(5).frame_index == 3

    def test_cancel_before_first_frame(self):
        session = PipelineSession(_config())
        token = CancellationToken()
        token.cancel()
        result = session.preprocess(_still, range(10), token)
        assert result.cancelled
        assert session.cleaned_frames() == []

    def test_merge_worker_ranges(self):
        session = PipelineSession(_config())
        session.preprocess(_still, range(0, 5))
        seed = session.seed_pose_before(5)
        session.merge_range(preprocess_range(_still, range(5, 8), COCO_LAYOUT, seed=seed))
        assert len(session.cleaned_frames()) == 8
        with pytest.raises(RangeMergeError):
            session.merge_range(preprocess_range(_still, range(4, 6), COCO_LAYOUT))

    def test_merge_parallel_workers(self):
        parts = split_frame_range(0, 12, 3)
        results = [preprocess_range(_still, r, COCO_LAYOUT) for r in parts]
        session = PipelineSession(_config())
        session.merge_ranges(results)
        assert [sf.frame_index for sf in session.cleaned_frames()] == list(range(12))
        assert session.layout is COCO_LAYOUT
        assert session.dirty.pose_data

    def test_live_frame_after_batch_is_checked(self):
        session = PipelineSession(_config())
        session.preprocess(_still, range(5))
        assert session.process_frame(5, [make_pose(5, SPIKE)]).is_banana

    def test_resume_after_cancel_is_checked(self):
        session = PipelineSession(_config())
        token = CancellationToken()

        def source(idx):
            if idx == 3:
                token.cancel()
            return _still(idx)

        first = session.preprocess(source, range(8), token)
        assert first.cancelled
        assert first.last_frame == 3
        spiked = lambda idx: [make_pose(idx, SPIKE)] if idx == 4 else _still(idx)
        session.preprocess(spiked, range(4, 8))
        cleaned = {sf.frame_index: sf for sf in session.cleaned_frames()}
        assert cleaned[4].is_banana
        assert not cleaned[3].is_banana

    def test_live_frame_after_merged_range_is_checked(self):
        session = PipelineSession(_config())
        session.preprocess(_still, range(0, 5))
        seed = session.seed_pose_before(5)
        session.merge_range(preprocess_range(_still, range(5, 8), COCO_LAYOUT, seed=seed))
        assert session.process_frame(8, [make_pose(8, SPIKE)]).is_banana

    def test_long_forward_jump_starts_a_new_track(self):
        session = PipelineSession(_config())
        for idx in range(10):
            session.process_frame(idx, _still(idx))
        out = session.process_frame(200, [make_pose(200, SPIKE)])
        assert not out.is_banana
        # The next tick continues the new track
        assert not session.process_frame(201, [make_pose(201, SPIKE)]).is_banana

    def test_reset(self):
        session = _analysed_session()
        swing = session.swing_events()[0]
        session.adjust_edge(swing.id, "start", 0.0)
        session.reset()
        assert session.events == []
        assert len(session.poses) == 0
        assert len(session.adjustments) == 0
        assert not session.dirty.any_dirty
        assert session.layout is None


# =====================================================================
# Persistence
# =====================================================================

class TestSave:
    def test_save_clears_flags(self):
        session = _analysed_session()
        saved = []
        snap = session.save(saved.append)
        assert saved == [snap]
        assert "pose_data" in snap.dirty and "swing_boundaries" in snap.dirty
        assert not session.dirty.any_dirty

    def test_failed_save_keeps_flags(self):
        session = _analysed_session()

        def broken(snapshot):
            raise OSError("disk full")

        with pytest.raises(PersistenceError):
            session.save(broken)
        assert session.dirty.pose_data
        assert session.dirty.swing_boundaries
        assert session.events
