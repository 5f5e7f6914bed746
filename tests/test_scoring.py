"""Tests for swing attribute scoring and the SAI composite."""

import pytest

from swing_analyzer.analysis.scoring import (
    ATTRIBUTES,
    SwingMetrics,
    find_peak_in_swing,
    knee_bend_score,
    metrics_from_raw,
    normalize_value,
    rating_tier,
    sai_score,
    score_swing,
)
from swing_analyzer.config.settings import NormalizationRange, ScoringConfig
from swing_analyzer.protocols.adjustments import EffectiveBoundaries
from swing_analyzer.protocols.events import HandednessMetadata, ProtocolEvent, ProtocolId, SwingMetadata, SwingType

from synthetic import velocity_series


def _metrics(*values):
    return SwingMetrics(*values)


def _series():
    accel = [None] * 10
    accel[4] = -100.0
    accel[6] = 80.0
    knees = [170.0] * 10
    knees[5] = 135.0
    return velocity_series(
        [0.0] * 10,
        wrist_acceleration=accel,
        min_knee_angle=knees,
        left_hip_kmh=5.0,
        left_shoulder_kmh=5.0,
    )


def _event(velocity=40.0):
    meta = SwingMetadata(SwingType.FOREHAND, velocity, 20.0, 1.0, contact_frame=5)
    return ProtocolEvent("swing-5", ProtocolId.SWING_V3, 0, 9, 0.0, 0.3, "Forehand 1", meta)


# =====================================================================
# Normalization and composite
# =====================================================================

class TestNormalization:
    def test_linear_mapping(self):
        assert normalize_value(25.0, 0.0, 50.0) == pytest.approx(50.0)
        assert normalize_value(60.0, 50.0, 70.0) == pytest.approx(50.0)

    def test_clamped_to_range(self):
        assert normalize_value(80.0, 0.0, 50.0) == 100.0
        assert normalize_value(-5.0, 0.0, 50.0) == 0.0

    def test_degenerate_range_is_midpoint(self):
        assert normalize_value(123.0, 10.0, 10.0) == 50.0

    def test_knee_bend(self):
        assert knee_bend_score(135.0) == pytest.approx(45.0)
        assert knee_bend_score(None) is None


class TestSai:
    def test_bounds(self):
        assert sai_score(_metrics(100, 100, 100, 100, 100)) == 99
        assert sai_score(_metrics(0, 0, 0, 0, 0)) == 40

    def test_weakest_attribute_pulls_score_down(self):
        # 0.7 * 80 + 0.3 * 0 = 56 -> 40 + 33.04
        assert sai_score(_metrics(100, 100, 100, 100, 0)) == 73
        assert sai_score(_metrics(80, 80, 80, 80, 80)) > 73

    def test_rating_tiers(self):
        assert rating_tier(90) == "Elite"
        assert rating_tier(89) == "Pro"
        assert rating_tier(70) == "Advanced"
        assert rating_tier(60) == "Intermediate"
        assert rating_tier(59) == "Developing"
        assert rating_tier(40) == "Developing"


# =====================================================================
# Per-swing scoring
# =====================================================================

class TestScoreSwing:
    def test_peaks_inside_window(self):
        series = _series()
        assert find_peak_in_swing(series, 0, 9, lambda f: f.wrist_acceleration) == pytest.approx(-100.0)
        assert find_peak_in_swing(series, 0, 3, lambda f: f.wrist_acceleration) == 0.0

    def test_raw_values_and_metrics(self):
        score = score_swing(_event(), _series())
        assert score.raw["power"] == pytest.approx(40.0)
        assert score.raw["agility"] == pytest.approx(100.0)
        assert score.raw["footwork"] == pytest.approx(45.0)
        assert score.raw["hip"] == pytest.approx(5.0)
        assert score.raw["rotation"] == pytest.approx(5.0)
        assert score.metrics.power == pytest.approx(80.0)
        assert score.metrics.agility == pytest.approx(50.0)
        assert score.metrics.footwork == pytest.approx(50.0)
        # mean 56, weakest 50: 40 + 0.59 * 54.2
        assert score.sai_score == 72
        assert score.rating_tier == "Advanced"
        assert score.event_id == "swing-5"

    def test_adjusted_window_changes_body_peaks(self):
        bounds = EffectiveBoundaries(0, 3, 0.0, 0.1, is_adjusted=True)
        score = score_swing(_event(), _series(), boundaries=bounds)
        assert score.raw["agility"] == 0.0
        assert score.raw["footwork"] == pytest.approx(10.0)
        # Power comes from the detected swing velocity
        assert score.raw["power"] == pytest.approx(40.0)

    def test_custom_ranges(self):
        cfg = ScoringConfig(power=NormalizationRange(20.0, 60.0))
        score = score_swing(_event(), _series(), cfg)
        assert score.metrics.power == pytest.approx(50.0)

    def test_non_swing_event_rejected(self):
        meta = HandednessMetadata("right", 0.9, 0.3, 0.7)
        ev = ProtocolEvent("handedness", ProtocolId.HANDEDNESS, 0, 9, 0.0, 0.3, "Right-handed", meta)
        with pytest.raises(ValueError):
            score_swing(ev, _series())

    def test_to_dict(self):
        data = score_swing(_event(), _series()).to_dict()
        assert data["eventId"] == "swing-5"
        assert set(data["metrics"]) == {"power", "agility", "footwork", "hip", "rotation"}
        assert data["ratingTier"] == "Advanced"


# =====================================================================
# Monotonicity
# =====================================================================

BASE_RAW = {"power": 30.0, "agility": 90.0, "footwork": 20.0, "hip": 4.0, "rotation": 6.0}


class TestMonotonicity:
    @pytest.mark.parametrize("attribute", ATTRIBUTES)
    def test_raising_one_peak_never_lowers_scores(self, attribute):
        prev_metric, prev_sai = -1.0, 0
        for bump in (0.0, 0.5, 2.0, 10.0, 40.0, 1000.0):
            raw = dict(BASE_RAW, **{attribute: BASE_RAW[attribute] + bump})
            metrics = metrics_from_raw(raw)
            others = {a: getattr(metrics, a) for a in ATTRIBUTES if a != attribute}
            assert others == {a: getattr(metrics_from_raw(BASE_RAW), a) for a in others}
            assert getattr(metrics, attribute) >= prev_metric
            assert sai_score(metrics) >= prev_sai
            prev_metric, prev_sai = getattr(metrics, attribute), sai_score(metrics)

    @pytest.mark.parametrize("velocities", [(10.0, 25.0, 40.0, 55.0), (49.0, 50.0, 51.0)])
    def test_faster_swing_scores_at_least_as_high(self, velocities):
        scores = [score_swing(_event(v), _series()) for v in velocities]
        powers = [s.metrics.power for s in scores]
        sais = [s.sai_score for s in scores]
        assert powers == sorted(powers)
        assert sais == sorted(sais)
