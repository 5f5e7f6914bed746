"""Tests for the pipeline configuration bundle."""

import pytest

from swing_analyzer.config.settings import (
    MIN_SWING_DURATION,
    ConfigError,
    NormalizationRange,
    PipelineConfig,
    StabilityConfig,
    SwingDetectionConfig,
)


class TestDefaults:
    def test_defaults(self):
        cfg = PipelineConfig()
        assert cfg.fps == 30.0
        assert cfg.sport == "tennis"
        assert cfg.stability.recovery_frame_count == 4
        assert cfg.swing.min_swing_duration == MIN_SWING_DURATION
        assert cfg.scoring.power == NormalizationRange(0.0, 50.0)

    def test_with_overrides_replaces_sections(self):
        cfg = PipelineConfig().with_overrides(sport="padel", swing=SwingDetectionConfig(handedness="left"))
        assert cfg.sport == "padel"
        assert cfg.swing.handedness == "left"
        assert PipelineConfig().swing.handedness == "right"


class TestValidation:
    @pytest.mark.parametrize("kwargs", [
        {"max_segment_change": 1.0},
        {"recovery_frame_count": 0},
        {"smoothing_alpha": 0.0},
        {"similarity_threshold": 1.5},
        {"simulation_history": 1},
        {"max_gap_frames": 0},
    ])
    def test_invalid_stability(self, kwargs):
        with pytest.raises(ConfigError):
            StabilityConfig(**kwargs)

    def test_invalid_swing_modes(self):
        with pytest.raises(ConfigError):
            SwingDetectionConfig(wrist_mode="fastest")
        with pytest.raises(ConfigError):
            SwingDetectionConfig(handedness="both")

    def test_invalid_fps(self):
        with pytest.raises(ConfigError):
            PipelineConfig(fps=0)

    def test_inverted_range(self):
        with pytest.raises(ConfigError):
            NormalizationRange(10.0, 0.0)

    def test_config_error_is_value_error(self):
        assert issubclass(ConfigError, ValueError)


class TestFromDict:
    def test_nested_sections(self):
        cfg = PipelineConfig.from_dict({
            "fps": 60,
            "sport": "pickleball",
            "swing": {"min_peak_velocity_kmh": 12.0, "require_rotation": True},
            "stability": {"enable_simulation": True},
            "scoring": {"power": [10, 80], "hip": {"min": 1, "max": 6}},
        })
        assert cfg.fps == 60
        assert cfg.swing.min_peak_velocity_kmh == 12.0
        assert cfg.swing.require_rotation is True
        assert cfg.swing.activity_threshold_kmh == 3.0
        assert cfg.stability.enable_simulation is True
        assert cfg.scoring.power == NormalizationRange(10.0, 80.0)
        assert cfg.scoring.hip == NormalizationRange(1.0, 6.0)
        assert cfg.scoring.agility == NormalizationRange(0.0, 200.0)

    def test_unknown_keys_rejected(self):
        with pytest.raises(ConfigError):
            PipelineConfig.from_dict({"frame_rate": 30})
        with pytest.raises(ConfigError):
            PipelineConfig.from_dict({"swing": {"peak": 10}})

    def test_section_must_be_mapping(self):
        with pytest.raises(ConfigError):
            PipelineConfig.from_dict({"stability": [1, 2]})

    def test_empty_mapping_is_default(self):
        assert PipelineConfig.from_dict({}) == PipelineConfig()
