"""Configuration module for swing analysis."""

from .settings import (
    MIN_SWING_DURATION,
    ConfigError,
    HandednessConfig,
    NormalizationRange,
    PipelineConfig,
    ScoringConfig,
    StabilityConfig,
    SwingDetectionConfig,
    DEFAULT_CONFIG,
)
from .keypoints import (
    BLAZEPOSE_LAYOUT,
    COCO_KEYPOINTS,
    COCO_LAYOUT,
    KEYPOINT_NAMES,
    KeypointLayout,
    layout_for,
)
