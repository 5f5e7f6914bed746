"""Pipeline configuration.

All thresholds for the stability filter, swing detection, handedness detection
and scoring live here so that tuning never requires touching analysis code.
Each concern gets its own frozen dataclass; ``PipelineConfig`` bundles them.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Mapping


# Minimum length of a swing event (seconds). Also the floor enforced on manual
# boundary edits.
MIN_SWING_DURATION = 0.25

WRIST_MODES = ("both", "dominant", "left", "right")
HANDEDNESS_VALUES = ("right", "left", "auto")


class ConfigError(ValueError):
    """Invalid or unknown configuration value."""

    pass


# =====================================================================
# Pose stability filter
# =====================================================================

@dataclass(frozen=True)
class StabilityConfig:
    """Thresholds for banana-frame detection and recovery."""

    # Segment length may change by at most this ratio between frames (both ways)
    max_segment_change: float = 1.25
    # Joint angle may change by at most this many degrees between frames
    max_angle_change: float = 25.0
    # Cosine similarity of the centered pose against the reference pose
    similarity_threshold: float = 0.8
    # Relative deviation allowed on limb/torso proportions
    ratio_tolerance: float = 0.35
    # Plausible frames needed to leave recovery
    recovery_frame_count: int = 4
    # A frame further than this from the filter's last frame starts a new track
    max_gap_frames: int = 3

    enable_mirror_recovery: bool = True
    mirror_only_mode: bool = False
    enable_simulation: bool = False
    simulation_decay: float = 0.9
    simulation_history: int = 5

    min_confidence: float = 0.3
    # Segments shorter than this (px) in the reference are not ratio-checked
    min_segment_length_px: float = 10.0
    # Confidence assigned to joints filled in after a tracking loss
    lost_joint_confidence: float = 0.5
    # EMA weight on the current frame (1.0 disables smoothing)
    smoothing_alpha: float = 0.7

    def __post_init__(self):
        if self.max_segment_change <= 1.0:
            raise ConfigError(f"max_segment_change must be > 1, got {self.max_segment_change}")
        if self.max_angle_change <= 0:
            raise ConfigError(f"max_angle_change must be > 0, got {self.max_angle_change}")
        if not 0.0 < self.similarity_threshold <= 1.0:
            raise ConfigError(f"similarity_threshold must be in (0, 1], got {self.similarity_threshold}")
        if self.recovery_frame_count < 1:
            raise ConfigError(f"recovery_frame_count must be >= 1, got {self.recovery_frame_count}")
        if self.max_gap_frames < 1:
            raise ConfigError(f"max_gap_frames must be >= 1, got {self.max_gap_frames}")
        if not 0.0 < self.smoothing_alpha <= 1.0:
            raise ConfigError(f"smoothing_alpha must be in (0, 1], got {self.smoothing_alpha}")
        if not 0.0 < self.simulation_decay <= 1.0:
            raise ConfigError(f"simulation_decay must be in (0, 1], got {self.simulation_decay}")
        if self.simulation_history < 2:
            raise ConfigError(f"simulation_history must be >= 2, got {self.simulation_history}")


# =====================================================================
# Swing detection
# =====================================================================

@dataclass(frozen=True)
class SwingDetectionConfig:
    """Thresholds for the swing segmentation state machine and its metadata."""

    # Which wrist drives the velocity signal: both (max), dominant, left, right
    wrist_mode: str = "both"
    # right / left / auto (auto runs handedness detection first)
    handedness: str = "right"

    # State machine thresholds (km/h on the smoothed wrist velocity)
    activity_threshold_kmh: float = 3.0
    min_slope_kmh_per_frame: float = 0.5
    min_peak_velocity_kmh: float = 10.0
    min_peak_prominence_kmh: float = 5.0
    decline_frames: int = 2
    idle_hold_frames: int = 3
    smoothing_window: int = 3
    max_gap_frames: int = 3

    # Event filters
    min_swing_duration: float = MIN_SWING_DURATION   # seconds
    min_time_between_swings: float = 0.8             # seconds, contact to contact
    require_rotation: bool = False
    min_rotation_velocity: float = 0.5               # deg/frame

    min_confidence: float = 0.3

    # Swing type classification
    serve_height_ratio: float = 0.4           # wrist above shoulder line, in torso heights
    serve_window_back_frames: int = 45
    two_handed_ratio: float = 0.6             # wrist distance / shoulder width
    rotation_direction_threshold: float = 0.5  # deg/frame
    orientation_threshold: float = 15.0        # degrees
    classification_window_frames: int = 10

    # Clip window used for serve key positions (seconds around the swing end)
    clip_lead_time: float = 2.0
    clip_trail_time: float = 1.0
    trophy_offset_s: float = 0.4

    # Pixel to metric scale
    person_height_m: float = 1.7
    torso_to_height_ratio: float = 0.30

    def __post_init__(self):
        if self.wrist_mode not in WRIST_MODES:
            raise ConfigError(f"wrist_mode must be one of {WRIST_MODES}, got {self.wrist_mode!r}")
        if self.handedness not in HANDEDNESS_VALUES:
            raise ConfigError(f"handedness must be one of {HANDEDNESS_VALUES}, got {self.handedness!r}")
        if self.min_swing_duration < 0:
            raise ConfigError("min_swing_duration must be >= 0")
        if self.smoothing_window < 1:
            raise ConfigError("smoothing_window must be >= 1")
        if self.decline_frames < 1 or self.idle_hold_frames < 1:
            raise ConfigError("decline_frames and idle_hold_frames must be >= 1")


# =====================================================================
# Handedness detection
# =====================================================================

@dataclass(frozen=True)
class HandednessConfig:
    """Weights for the left/right wrist activity comparison."""

    min_confidence: float = 0.3
    high_velocity_threshold: float = 8.0   # px/frame
    avg_velocity_weight: float = 1.0
    peak_velocity_weight: float = 1.5
    variance_weight: float = 0.5
    extension_weight: float = 1.0
    cross_body_weight: float = 0.8


# =====================================================================
# Scoring
# =====================================================================

@dataclass(frozen=True)
class NormalizationRange:
    """Linear raw-value range mapped onto 0-100."""

    min: float
    max: float

    def __post_init__(self):
        if self.max < self.min:
            raise ConfigError(f"normalization range is inverted: {self.min} > {self.max}")


@dataclass(frozen=True)
class ScoringConfig:
    """Normalization ranges per swing attribute."""

    power: NormalizationRange = NormalizationRange(0.0, 50.0)       # km/h wrist velocity
    agility: NormalizationRange = NormalizationRange(0.0, 200.0)    # km/h/s wrist acceleration
    footwork: NormalizationRange = NormalizationRange(0.0, 90.0)    # degrees of knee bend
    hip: NormalizationRange = NormalizationRange(0.0, 10.0)         # km/h hip velocity
    rotation: NormalizationRange = NormalizationRange(0.0, 10.0)    # km/h shoulder velocity


# =====================================================================
# Bundle
# =====================================================================

_SECTIONS = {
    "stability": StabilityConfig,
    "swing": SwingDetectionConfig,
    "handedness": HandednessConfig,
    "scoring": ScoringConfig,
}


@dataclass(frozen=True)
class PipelineConfig:
    """Top-level configuration bundle handed to a ``PipelineSession``."""

    fps: float = 30.0
    sport: str = "tennis"
    person_index: int = 0
    stability: StabilityConfig = field(default_factory=StabilityConfig)
    swing: SwingDetectionConfig = field(default_factory=SwingDetectionConfig)
    handedness: HandednessConfig = field(default_factory=HandednessConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)

    def __post_init__(self):
        if not self.fps or self.fps <= 0:
            raise ConfigError(f"fps must be > 0, got {self.fps}")
        if self.person_index < 0:
            raise ConfigError("person_index must be >= 0")

    def with_overrides(self, **changes: Any) -> "PipelineConfig":
        """Return a copy with top-level fields or whole sections replaced."""
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PipelineConfig":
        """Build a config from a nested plain mapping (e.g. parsed JSON).

        Missing keys keep their defaults; unknown keys raise ``ConfigError``.
        """
        top_level = {f.name for f in fields(cls)} - set(_SECTIONS)
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            if key in _SECTIONS:
                if not isinstance(value, Mapping):
                    raise ConfigError(f"section {key!r} must be a mapping")
                kwargs[key] = _section_from_dict(_SECTIONS[key], value, key)
            elif key in top_level:
                kwargs[key] = value
            else:
                raise ConfigError(f"unknown configuration key {key!r}")
        try:
            return cls(**kwargs)
        except TypeError as exc:
            raise ConfigError(str(exc)) from exc


def _section_from_dict(section_cls, data: Mapping[str, Any], section_name: str):
    known = {f.name for f in fields(section_cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"unknown key(s) in {section_name!r}: {sorted(unknown)}")
    if section_cls is ScoringConfig:
        ranges = {}
        for name, value in data.items():
            if isinstance(value, NormalizationRange):
                ranges[name] = value
            elif isinstance(value, Mapping):
                ranges[name] = NormalizationRange(float(value["min"]), float(value["max"]))
            else:
                lo, hi = value
                ranges[name] = NormalizationRange(float(lo), float(hi))
        return ScoringConfig(**ranges)
    return section_cls(**data)


DEFAULT_CONFIG = PipelineConfig()
