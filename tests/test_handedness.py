"""Tests for dominant-hand detection."""

import pytest

from swing_analyzer.analysis.handedness import detect_handedness, handedness_event
from swing_analyzer.config.keypoints import COCO_LAYOUT
from swing_analyzer.protocols.events import ProtocolId

from synthetic import STANDING, make_pose


def _oscillating(side, n=12, amplitude=40.0):
    name = f"{side}_wrist"
    x, y = STANDING[name]
    # Outward from the body: right side is at smaller x
    direction = -1.0 if side == "right" else 1.0
    return [
        make_pose(i, {name: (x + direction * amplitude * (i % 2), y)})
        for i in range(n)
    ]


class TestDetectHandedness:
    def test_active_right_wrist(self):
        result = detect_handedness(_oscillating("right"), COCO_LAYOUT)
        assert result.dominant_hand == "right"
        assert result.right_score > result.left_score
        assert result.frames_analyzed == 12
        assert result.high_velocity_frames == (0, 11)
        assert result.breakdown["peak_velocity"] == pytest.approx((0.0, 1.0))
        assert 0.5 < result.confidence <= 1.0

    def test_active_left_wrist(self):
        result = detect_handedness(_oscillating("left"), COCO_LAYOUT)
        assert result.dominant_hand == "left"
        assert result.high_velocity_frames == (11, 0)

    def test_still_subject_is_a_tie(self):
        result = detect_handedness([make_pose(i) for i in range(5)], COCO_LAYOUT)
        assert result.breakdown["avg_velocity"] == (0.5, 0.5)
        assert result.breakdown["cross_body"] == (0.5, 0.5)

    def test_no_usable_frames(self):
        result = detect_handedness([], COCO_LAYOUT)
        assert result.frames_analyzed == 0
        assert result.confidence == pytest.approx(0.5)

    def test_cross_body_counts_transitions(self):
        frames = []
        for i in range(6):
            wrist = (380.0, 300.0) if i % 2 else (220.0, 340.0)
            frames.append(make_pose(i, {"right_wrist": wrist}))
        result = detect_handedness(frames, COCO_LAYOUT)
        assert result.breakdown["cross_body"] == (0.0, 1.0)


class TestHandednessEvent:
    def test_event_spans_video(self):
        result = detect_handedness(_oscillating("right"), COCO_LAYOUT)
        ev = handedness_event(result, 0, 11, 30.0)
        assert ev.protocol_id is ProtocolId.HANDEDNESS
        assert ev.label == "Right-handed"
        assert ev.end_time == pytest.approx(11 / 30.0)
        assert ev.metadata.dominant_hand == "right"
