"""Kinematics, swing segmentation, classification, key positions and scoring."""

from .kinematics import (
    FrameKinematics,
    KinematicSample,
    KinematicSeries,
    KinematicsExtractor,
)
from .swing_classifier import SwingClassification, classify_swing
from .key_positions import find_loading_peak, key_position_events
from .swing_segmentation import SwingCandidate, SwingPhase, SwingSegmenter, detect_swings
from .handedness import HandednessResult, detect_handedness, handedness_event
from .scoring import (
    SwingMetrics,
    SwingScore,
    normalize_value,
    rating_tier,
    sai_score,
    score_swing,
)
