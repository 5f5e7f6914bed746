"""Swing segmentation: turn the wrist-velocity curve into bounded swing events.

The driving signal is the wrist velocity (km/h, body-relative) chosen by
``SwingDetectionConfig.wrist_mode``. Short detection gaps are interpolated and
the curve is lightly smoothed before a phase machine walks it::

    IDLE -> LOADING -> ACCELERATION -> CONTACT -> FOLLOW_THROUGH -> IDLE

- IDLE -> LOADING: smoothed velocity rises above the activity threshold.
- LOADING -> ACCELERATION: velocity rises by at least ``min_slope`` per frame.
  Falling back below the activity threshold first drops the candidate.
- ACCELERATION -> CONTACT: first frame where velocity declines.
- CONTACT -> FOLLOW_THROUGH: ``decline_frames`` consecutive declines. A renewed
  rise sends the machine back to ACCELERATION; the smaller of the two peaks is
  subsumed by the contact chosen later.
- FOLLOW_THROUGH -> IDLE: ``idle_hold_frames`` quiet frames; the event ends at
  the first quiet frame.

The contact frame is the highest raw (unsmoothed) velocity inside the window.
Candidates that are too short, too slow, not prominent enough or (optionally)
lacking torso rotation are discarded as noise. Detection is a pure function of
(series, config): running it twice gives identical events.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

import numpy as np

from ..config.settings import SwingDetectionConfig
from ..protocols.events import ProtocolEvent, ProtocolId, SwingMetadata
from .key_positions import find_loading_peak
from .kinematics import KinematicSeries
from .signal_processing import fill_gaps, find_peaks, moving_average, unwrap_degrees
from .swing_classifier import classify_swing

logger = logging.getLogger(__name__)


class SwingPhase(Enum):
    IDLE = "idle"
    LOADING = "loading"
    ACCELERATION = "acceleration"
    CONTACT = "contact"
    FOLLOW_THROUGH = "follow_through"


@dataclass(frozen=True)
class SwingCandidate:
    """A closed swing window before it becomes a ``ProtocolEvent``.

    ``*_index`` fields are list positions in the series; ``*_frame`` fields are
    video frame indices.
    """

    start_index: int
    end_index: int
    contact_index: int
    start_frame: int
    end_frame: int
    contact_frame: int
    peak_velocity: float
    prominence: float
    subsumed_peaks: int = 0


class SwingSegmenter:
    """Phase machine over the driving wrist-velocity signal."""

    def __init__(self, config: Optional[SwingDetectionConfig] = None, fps: float = 30.0):
        self.cfg = config or SwingDetectionConfig()
        self.fps = float(fps) if fps and fps > 0 else 30.0

    # ── signals ───────────────────────────────────────────────────────

    def driving_velocity(self, series: KinematicSeries, handedness: str = "right") -> np.ndarray:
        """Gap-filled (unsmoothed) driving velocity."""
        mode = self.cfg.wrist_mode
        raw = series.series(lambda f: f.wrist_kmh(mode, handedness))
        return fill_gaps(raw, self.cfg.max_gap_frames)

    def smoothed_velocity(self, series: KinematicSeries, handedness: str = "right") -> np.ndarray:
        return moving_average(self.driving_velocity(series, handedness), self.cfg.smoothing_window)

    # ── phase machine ─────────────────────────────────────────────────

    def _run(self, smoothed: np.ndarray):
        """Yield per-frame phases and collect raw (start, end) windows."""
        cfg = self.cfg
        activity, slope = cfg.activity_threshold_kmh, cfg.min_slope_kmh_per_frame
        phase = SwingPhase.IDLE
        start: Optional[int] = None
        end: Optional[int] = None
        declines = quiet = 0
        trace: List[SwingPhase] = []
        windows = []

        for i, cur in enumerate(smoothed):
            d = cur - smoothed[i - 1] if i > 0 else 0.0
            if phase is SwingPhase.IDLE:
                if cur > activity:
                    phase, start = SwingPhase.LOADING, i
            elif phase is SwingPhase.LOADING:
                if cur <= activity:
                    logger.debug(f"loading at index {start} fell back to idle without acceleration")
                    phase, start = SwingPhase.IDLE, None
                elif d >= slope:
                    phase = SwingPhase.ACCELERATION
            elif phase is SwingPhase.ACCELERATION:
                if d < 0:
                    phase, declines = SwingPhase.CONTACT, 1
            elif phase is SwingPhase.CONTACT:
                if d < 0:
                    declines += 1
                    if declines >= cfg.decline_frames:
                        phase, quiet, end = SwingPhase.FOLLOW_THROUGH, 0, None
                        if cur <= activity:
                            quiet, end = 1, i
                elif d >= slope and cur > activity:
                    phase = SwingPhase.ACCELERATION
                else:
                    declines = 0
            elif phase is SwingPhase.FOLLOW_THROUGH:
                if cur <= activity:
                    quiet += 1
                    if quiet == 1:
                        end = i
                    if quiet >= cfg.idle_hold_frames:
                        windows.append((start, end))
                        phase, start, end = SwingPhase.IDLE, None, None
                else:
                    quiet, end = 0, None
                    if d >= slope:
                        phase = SwingPhase.ACCELERATION
            trace.append(phase)

        if start is not None and phase in (SwingPhase.ACCELERATION, SwingPhase.CONTACT, SwingPhase.FOLLOW_THROUGH):
            windows.append((start, end if end is not None else len(smoothed) - 1))
        return trace, windows

    def phase_trace(self, series: KinematicSeries, handedness: str = "right") -> List[SwingPhase]:
        """Phase after each frame, mainly for charts and debugging."""
        trace, _ = self._run(self.smoothed_velocity(series, handedness))
        return trace

    def segment(self, series: KinematicSeries, handedness: str = "right") -> List[SwingCandidate]:
        """Closed, filtered and merged swing candidates in time order."""
        cfg = self.cfg
        if len(series) == 0:
            return []
        raw = self.driving_velocity(series, handedness)
        smoothed = moving_average(raw, cfg.smoothing_window)
        _, windows = self._run(smoothed)
        frames = series.frame_indices
        rotation = series.series("rotation_velocity")

        candidates: List[SwingCandidate] = []
        for start, end in windows:
            start_frame, end_frame = frames[start], frames[end]
            # Same arithmetic as the emitted event's start_time / end_time
            duration = end_frame / self.fps - start_frame / self.fps
            if duration < cfg.min_swing_duration:
                logger.debug(f"swing {start_frame}-{end_frame} rejected: {duration:.3f}s too short")
                continue

            contact = start + int(np.argmax(raw[start:end + 1]))
            peak = float(raw[contact])
            if peak < cfg.min_peak_velocity_kmh:
                logger.debug(f"swing {start_frame}-{end_frame} rejected: peak {peak:.1f} km/h")
                continue
            prominence = peak - max(float(smoothed[start]), float(smoothed[end]))
            if prominence < cfg.min_peak_prominence_kmh:
                logger.debug(f"swing {start_frame}-{end_frame} rejected: prominence {prominence:.1f} km/h")
                continue
            if cfg.require_rotation:
                rot = np.abs(rotation[start:end + 1])
                rot = rot[~np.isnan(rot)]
                if not rot.size or float(rot.max()) < cfg.min_rotation_velocity:
                    logger.debug(f"swing {start_frame}-{end_frame} rejected: no torso rotation")
                    continue

            local_peaks = find_peaks(smoothed[start:end + 1], cfg.activity_threshold_kmh)
            candidates.append(SwingCandidate(
                start_index=start,
                end_index=end,
                contact_index=contact,
                start_frame=start_frame,
                end_frame=end_frame,
                contact_frame=frames[contact],
                peak_velocity=peak,
                prominence=prominence,
                subsumed_peaks=max(0, len(local_peaks) - 1),
            ))
        return self._merge_close(candidates)

    def _merge_close(self, candidates: List[SwingCandidate]) -> List[SwingCandidate]:
        """Keep only the stronger of two swings whose contacts are too close."""
        min_gap = self.cfg.min_time_between_swings * self.fps
        merged: List[SwingCandidate] = []
        for cand in candidates:
            if merged and cand.contact_frame - merged[-1].contact_frame < min_gap:
                weaker = cand if cand.peak_velocity <= merged[-1].peak_velocity else merged[-1]
                logger.debug(f"swing at frame {weaker.contact_frame} merged into a stronger neighbour")
                if weaker is merged[-1]:
                    merged[-1] = cand
                continue
            merged.append(cand)
        return merged


# =====================================================================
# Candidates -> protocol events
# =====================================================================

def _label(swing_type_value: str, n: int) -> str:
    return f"{swing_type_value.replace('_', ' ').title()} {n}"


def detect_swings(
    series: KinematicSeries,
    config: Optional[SwingDetectionConfig] = None,
    handedness: str = "right",
    protocol_id: ProtocolId = ProtocolId.SWING_V3,
) -> List[ProtocolEvent]:
    """Detect swings and build ``ProtocolEvent``s with ``SwingMetadata``.

    Args:
        series: per-frame kinematics of the cleaned pose stream
        config: detection thresholds
        handedness: resolved dominant hand ("right" / "left")
        protocol_id: swing protocol tag to stamp on the events

    Returns:
        Events in time order; ids are ``swing-{contact_frame}``.
    """
    cfg = config or SwingDetectionConfig()
    segmenter = SwingSegmenter(cfg, series.fps)
    fps = segmenter.fps
    orientation = series.series("body_orientation")
    rotation = series.series("rotation_velocity")

    events: List[ProtocolEvent] = []
    for n, cand in enumerate(segmenter.segment(series, handedness), start=1):
        lo, hi = cand.start_index, cand.end_index
        classification = classify_swing(series, cand.contact_index, cfg, handedness)

        orient = unwrap_degrees(orientation[lo:hi + 1])
        rotation_range = float(orient.max() - orient.min()) if orient.size else 0.0

        rot = rotation[lo:hi + 1]
        rot = rot[~np.isnan(rot)]
        peak_rot = float(rot[np.argmax(np.abs(rot))]) if rot.size else 0.0

        window = [series[i] for i in range(lo, hi + 1)]
        confidence = sum(1 for f in window if f.usable and not f.is_banana) / len(window)

        loading = find_loading_peak(series, lo, cand.contact_index)
        start_time = cand.start_frame / fps
        end_time = cand.end_frame / fps
        metadata = SwingMetadata(
            swing_type=classification.swing_type,
            velocity_kmh=round(cand.peak_velocity, 2),
            rotation_range=rotation_range,
            confidence=confidence,
            contact_frame=cand.contact_frame,
            peak_rotation_velocity=peak_rot,
            dominant_side=handedness,
            loading_peak_frame=None if loading is None else series[loading].frame_index,
            clip_start_time=max(0.0, end_time - cfg.clip_lead_time),
            clip_end_time=end_time + cfg.clip_trail_time,
        )
        events.append(ProtocolEvent(
            id=f"swing-{cand.contact_frame}",
            protocol_id=protocol_id,
            start_frame=cand.start_frame,
            end_frame=cand.end_frame,
            start_time=start_time,
            end_time=end_time,
            label=_label(classification.swing_type.value, n),
            metadata=metadata,
        ))
    logger.info(f"swing detection: {len(events)} swing(s) over {len(series)} frames")
    return events
