"""Performance scoring: five 0-100 swing attributes and the composite SAI score.

Each attribute is the peak of one kinematic signal inside the swing window,
mapped linearly onto 0-100 with a fixed range and clamped:

    power     <- wrist velocity (km/h)
    agility   <- |wrist acceleration| (km/h per second)
    footwork  <- knee bend, 180 - knee angle (degrees)
    hip       <- hip velocity (km/h)
    rotation  <- shoulder velocity (km/h)

The composite rewards balance: 70% of the mean plus 30% of the weakest
attribute, scaled into 40-99.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Callable, Dict, Optional, Tuple

from ..config.settings import ScoringConfig
from ..protocols.adjustments import EffectiveBoundaries
from ..protocols.events import ProtocolEvent, SwingMetadata
from .kinematics import FrameKinematics, KinematicSeries

# Inclusive lower bounds, checked highest first
RATING_TIERS: Tuple[Tuple[int, str], ...] = (
    (90, "Elite"),
    (80, "Pro"),
    (70, "Advanced"),
    (60, "Intermediate"),
    (0, "Developing"),
)

ATTRIBUTES = ("power", "agility", "footwork", "hip", "rotation")


@dataclass(frozen=True)
class SwingMetrics:
    power: float
    agility: float
    footwork: float
    hip: float
    rotation: float

    def values(self) -> Tuple[float, ...]:
        return tuple(getattr(self, a) for a in ATTRIBUTES)

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class SwingScore:
    event_id: str
    metrics: SwingMetrics
    sai_score: int
    rating_tier: str
    # Raw peaks in physical units, before normalization
    raw: Dict[str, float]

    def to_dict(self) -> Dict:
        return {
            "eventId": self.event_id,
            "metrics": self.metrics.to_dict(),
            "saiScore": self.sai_score,
            "ratingTier": self.rating_tier,
            "raw": dict(self.raw),
        }


def normalize_value(value: float, lo: float, hi: float) -> float:
    """Map *value* from [lo, hi] onto [0, 100], clamped. A degenerate range gives 50."""
    if hi == lo:
        return 50.0
    return max(0.0, min(100.0, (value - lo) / (hi - lo) * 100.0))


def find_peak_in_swing(
    series: KinematicSeries,
    start_frame: int,
    end_frame: int,
    getter: Callable[[FrameKinematics], Optional[float]],
) -> float:
    """Largest-magnitude value in the window, sign preserved; 0.0 without samples."""
    peak = 0.0
    for f in series.window(start_frame, end_frame):
        v = getter(f)
        if v is not None and abs(v) > abs(peak):
            peak = float(v)
    return peak


def knee_bend_score(knee_angle: Optional[float]) -> Optional[float]:
    """More bend (smaller angle) scores higher: 135 degrees -> 45."""
    if knee_angle is None:
        return None
    return 180.0 - knee_angle


def sai_score(metrics: SwingMetrics) -> int:
    values = metrics.values()
    balanced = 0.7 * (sum(values) / len(values)) + 0.3 * min(values)
    # Round half up
    return int(math.floor(40.0 + balanced * 0.59 + 0.5))


def rating_tier(score: float) -> str:
    for threshold, name in RATING_TIERS:
        if score >= threshold:
            return name
    return RATING_TIERS[-1][1]


def metrics_from_raw(raw: Dict[str, float], config: Optional[ScoringConfig] = None) -> SwingMetrics:
    cfg = config or ScoringConfig()
    return SwingMetrics(**{
        name: normalize_value(raw[name], getattr(cfg, name).min, getattr(cfg, name).max)
        for name in ATTRIBUTES
    })


def score_swing(
    event: ProtocolEvent,
    series: KinematicSeries,
    config: Optional[ScoringConfig] = None,
    boundaries: Optional[EffectiveBoundaries] = None,
) -> SwingScore:
    """Score one swing event over its (possibly user-adjusted) window."""
    if not isinstance(event.metadata, SwingMetadata):
        raise ValueError(f"event {event.id!r} is not a swing event")
    start = boundaries.start_frame if boundaries else event.start_frame
    end = boundaries.end_frame if boundaries else event.end_frame

    knee_bend = find_peak_in_swing(series, start, end, lambda f: knee_bend_score(f.min_knee_angle))
    raw = {
        "power": event.metadata.velocity_kmh,
        "agility": abs(find_peak_in_swing(series, start, end, lambda f: f.wrist_acceleration)),
        "footwork": knee_bend,
        "hip": find_peak_in_swing(series, start, end, lambda f: f.max_hip_kmh),
        "rotation": find_peak_in_swing(series, start, end, lambda f: f.max_shoulder_kmh),
    }
    metrics = metrics_from_raw(raw, config)
    score = sai_score(metrics)
    raw["x_factor"] = find_peak_in_swing(series, start, end, lambda f: f.x_factor)
    return SwingScore(event.id, metrics, score, rating_tier(score), raw)
