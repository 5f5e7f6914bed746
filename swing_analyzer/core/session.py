"""Pipeline session: all per-video state behind explicit method calls.

A ``PipelineSession`` owns the raw pose stream, the stability filter, the
cleaned frames, the detected events, the user's boundary adjustments and the
dirty flags for the save collaborator. One session per video; ``reset()``
starts over.

Typical use::

    session = PipelineSession(PipelineConfig(fps=30, sport="tennis"))
    session.preprocess(detector, range(n_frames), token)
    events = session.run_detection()
    score = session.metrics_for(events[0].id)
"""

from __future__ import annotations

import bisect
import logging
from collections import Counter
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from ..analysis.handedness import HandednessResult, detect_handedness, handedness_event
from ..analysis.key_positions import key_position_events
from ..analysis.kinematics import KinematicSeries, KinematicsExtractor
from ..analysis.scoring import SwingScore, score_swing
from ..analysis.swing_segmentation import detect_swings
from ..config.keypoints import KeypointLayout, layout_for
from ..config.settings import DEFAULT_CONFIG, PipelineConfig
from ..protocols.adjustments import AdjustmentOverlay, BoundaryAdjustment, EffectiveBoundaries
from ..protocols.events import SWING_PROTOCOLS, ProtocolEvent, ProtocolId
from ..protocols.registry import enabled_protocols_for_sport
from .persistence import DirtyFlags, PersistenceError, SessionSnapshot
from .pose import PoseFrame, PoseStream
from .preprocess import (
    CancellationToken,
    PoseSource,
    PreprocessResult,
    RangeMergeError,
    check_disjoint,
    frame_span,
    preprocess_range,
)
from .stability import PoseStabilityFilter, StabilizedFrame

logger = logging.getLogger(__name__)


class UnknownEventError(KeyError):
    """No event with the given id in the current event list."""

    pass


class PipelineSession:
    """Per-video analysis state."""

    def __init__(self, config: Optional[PipelineConfig] = None, layout: Optional[KeypointLayout] = None):
        self.config = config or DEFAULT_CONFIG
        self._fixed_layout = layout
        self.poses = PoseStream()
        self.adjustments = AdjustmentOverlay()
        self.dirty = DirtyFlags()
        self._init_state()

    def _init_state(self):
        self.layout: Optional[KeypointLayout] = self._fixed_layout
        self._filter: Optional[PoseStabilityFilter] = None
        self._cleaned: Dict[int, StabilizedFrame] = {}
        self._events: List[ProtocolEvent] = []
        self._kinematics: Optional[KinematicSeries] = None
        self.handedness: Optional[HandednessResult] = None

    def reset(self):
        """Discard everything for a new video (adjustments included)."""
        self.poses.clear()
        self.adjustments.clear()
        self.dirty.clear()
        self._init_state()

    # ── pose ingestion ────────────────────────────────────────────────

    @property
    def fps(self) -> float:
        return self.config.fps

    def _ensure_filter(self, pose: PoseFrame) -> PoseStabilityFilter:
        if self.layout is None:
            self.layout = layout_for(pose.num_keypoints)
        if self._filter is None:
            self._filter = PoseStabilityFilter(self.layout, self.config.stability)
        return self._filter

    def _nearest_cleaned_before(self, frame_index: int) -> Optional[StabilizedFrame]:
        keys = sorted(self._cleaned)
        i = bisect.bisect_left(keys, frame_index)
        return self._cleaned[keys[i - 1]] if i > 0 else None

    def _align_filter(self, filt: PoseStabilityFilter, frame_index: int) -> None:
        """Position the filter so that *frame_index* is its next frame.

        A frame shortly after the filter's last one continues the track. Any
        other jump (backwards, or forwards past ``max_gap_frames``) re-seeds
        from the closest cleaned frame before it, or restarts the filter when
        that frame is too far away to be compared against.
        """
        limit = self.config.stability.max_gap_frames
        last = filt.last_frame
        if last is not None and 0 < frame_index - last <= limit:
            return
        anchor = self._nearest_cleaned_before(frame_index)
        if anchor is not None and frame_index - anchor.frame_index <= limit:
            logger.debug(f"frame {frame_index}: filter re-seeded from frame {anchor.frame_index}")
            filt.seed(anchor.pose)
        elif last is not None:
            logger.debug(f"frame {frame_index}: {frame_index - last:+d} frame jump, filter restarted")
            filt.reset()

    def process_frame(self, frame_index: int, poses: Sequence[PoseFrame]) -> Optional[StabilizedFrame]:
        """Live mode: ingest one playback tick.

        Already-cleaned frames are returned from the cache. Seeking (backwards
        or over a long gap) re-aligns the filter first, see ``_align_filter``.
        """
        if frame_index in self._cleaned:
            return self._cleaned[frame_index]
        self.poses.set_poses(frame_index, poses)
        self.dirty.mark("pose_data")
        self._kinematics = None
        if len(poses) <= self.config.person_index:
            return None

        pose = poses[self.config.person_index]
        filt = self._ensure_filter(pose)
        self._align_filter(filt, frame_index)
        cleaned = filt.update(pose)
        self._cleaned[frame_index] = cleaned
        return cleaned

    def preprocess(
        self,
        source: PoseSource,
        frames: Iterable[int],
        token: Optional[CancellationToken] = None,
    ) -> PreprocessResult:
        """Batch mode: clean a whole range, keeping partial results on cancel.

        The pass continues the session's filter, so a later ``process_frame``
        or a resumed ``preprocess`` carries the stability state over.
        """
        frames = list(frames)
        filt = self._filter
        if filt is None and self.layout is not None:
            filt = self._filter = PoseStabilityFilter(self.layout, self.config.stability)
        if filt is not None and frames:
            self._align_filter(filt, frames[0])
        result = preprocess_range(
            source,
            frames,
            layout=self.layout,
            config=self.config.stability,
            token=token,
            person_index=self.config.person_index,
            stability_filter=filt,
        )
        if result.stability_filter is not None:
            self._filter = result.stability_filter
        self._absorb(result)
        return result

    def merge_range(self, result: PreprocessResult) -> None:
        """Merge a parallel worker's output; its frames must all be new."""
        clash = sorted(set(result.raw) & (set(self.poses.frame_indices()) | set(self._cleaned)))
        if clash:
            raise RangeMergeError(f"frames already present: {clash[:5]}{'...' if len(clash) > 5 else ''}")
        self._absorb(result)
        logger.info(f"merged worker range {frame_span(result)} ({result.outcome.value})")

    def merge_ranges(self, results: Sequence[PreprocessResult]) -> None:
        check_disjoint(results)
        for result in results:
            self.merge_range(result)

    def _absorb(self, result: PreprocessResult):
        for idx, poses in result.raw.items():
            self.poses.set_poses(idx, poses)
        self._cleaned.update(result.cleaned)
        if self.layout is None and result.cleaned:
            first = next(iter(result.cleaned.values()))
            self.layout = layout_for(first.raw.num_keypoints)
        if result.raw:
            self.dirty.mark("pose_data")
            self._kinematics = None

    def cleaned_frames(self) -> List[StabilizedFrame]:
        return [self._cleaned[i] for i in sorted(self._cleaned)]

    def seed_pose_before(self, frame_index: int) -> Optional[PoseFrame]:
        """Last cleaned pose before *frame_index*, for seeding a worker range."""
        anchor = self._nearest_cleaned_before(frame_index)
        return None if anchor is None else anchor.pose

    # ── detection ─────────────────────────────────────────────────────

    def kinematics(self) -> KinematicSeries:
        if self._kinematics is None:
            cleaned = self.cleaned_frames()
            if self.layout is None:
                self._kinematics = KinematicSeries([], self.fps)
            else:
                extractor = KinematicsExtractor(self.layout, self.fps, self.config.swing)
                self._kinematics = extractor.extract(
                    [sf.pose for sf in cleaned],
                    {sf.frame_index: sf.is_banana for sf in cleaned},
                )
        return self._kinematics

    def run_detection(self) -> List[ProtocolEvent]:
        """Re-run every enabled protocol, replacing the event list wholesale.

        Stored adjustments are untouched; ones whose event id disappeared stay
        stored but inert.
        """
        cfg = self.config
        enabled = enabled_protocols_for_sport(cfg.sport)
        if not enabled:
            logger.warning(f"sport {cfg.sport!r} has no enabled protocols; detection skipped")
        series = self.kinematics()
        cleaned = self.cleaned_frames()

        handedness = cfg.swing.handedness
        self.handedness = None
        if cleaned and self.layout is not None and (handedness == "auto" or ProtocolId.HANDEDNESS in enabled):
            self.handedness = detect_handedness([sf.pose for sf in cleaned], self.layout, cfg.handedness)
        if handedness == "auto":
            handedness = self.handedness.dominant_hand if self.handedness else "right"

        events: List[ProtocolEvent] = []
        for protocol_id in enabled:
            if protocol_id not in SWING_PROTOCOLS:
                continue
            swings = detect_swings(series, cfg.swing, handedness, protocol_id)
            events.extend(swings)
            for swing in swings:
                events.extend(key_position_events(swing, series, cfg.swing, handedness, enabled))

        if ProtocolId.HANDEDNESS in enabled and self.handedness is not None:
            events.append(handedness_event(self.handedness, cleaned[0].frame_index, cleaned[-1].frame_index, self.fps))

        events.sort(key=lambda e: (e.start_frame, e.id))
        self._events = events
        self.dirty.mark("swing_boundaries")
        counts = Counter(e.protocol_id.value for e in events)
        logger.info(f"detection for {cfg.sport}: {dict(counts) or 'no events'}")
        stale = self.adjustments.stale_ids(events)
        if stale:
            logger.debug(f"{len(stale)} stored adjustment(s) have no matching event")
        return list(events)

    # ── events & adjustments ──────────────────────────────────────────

    @property
    def events(self) -> List[ProtocolEvent]:
        return list(self._events)

    def swing_events(self) -> List[ProtocolEvent]:
        return [e for e in self._events if e.is_swing]

    def event(self, event_id: str) -> ProtocolEvent:
        for e in self._events:
            if e.id == event_id:
                return e
        raise UnknownEventError(event_id)

    def effective_boundaries(self, event_id: str) -> EffectiveBoundaries:
        return self.adjustments.effective(self.event(event_id))

    def adjust_edge(self, event_id: str, edge: str, proposed_time: float) -> EffectiveBoundaries:
        """Apply a dragged boundary, clamped to keep the minimum duration."""
        event = self.event(event_id)
        min_duration = self.config.swing.min_swing_duration if event.is_swing else 0.0
        eff = self.adjustments.apply_edge_edit(event, edge, proposed_time, self.fps, min_duration)
        self.dirty.mark("protocol_adjustments")
        return eff

    def remove_adjustment(self, event_id: str) -> bool:
        """Restore the detector's boundaries; works for stale ids too."""
        removed = self.adjustments.remove(event_id) is not None
        if removed:
            self.dirty.mark("protocol_adjustments")
        return removed

    def metrics_for(self, event_id: str) -> SwingScore:
        """Score a swing over its effective (possibly adjusted) window."""
        event = self.event(event_id)
        if not event.is_swing:
            raise ValueError(f"event {event_id!r} is not a swing")
        return score_swing(event, self.kinematics(), self.config.scoring, self.adjustments.effective(event))

    def restore(
        self,
        events: Sequence[ProtocolEvent],
        adjustments: Optional[Mapping[str, BoundaryAdjustment]] = None,
    ) -> None:
        """Load a previously saved event/adjustment set."""
        self._events = sorted(events, key=lambda e: (e.start_frame, e.id))
        self.adjustments = AdjustmentOverlay(adjustments or {})

    # ── persistence ───────────────────────────────────────────────────

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            fps=self.fps,
            sport=self.config.sport,
            frames=dict(self._cleaned),
            events=tuple(self._events),
            adjustments=self.adjustments.as_mapping(),
            dirty=self.dirty.dirty_fields(),
        )

    def save(self, saver: Callable[[SessionSnapshot], None]) -> SessionSnapshot:
        """Hand a snapshot to the save collaborator and clear the dirty flags.

        A failing saver raises ``PersistenceError``; the flags stay set so the
        next attempt retries.
        """
        snap = self.snapshot()
        try:
            saver(snap)
        except Exception as exc:
            logger.warning(f"save failed, keeping {len(snap.dirty)} dirty flag(s): {exc}")
            raise PersistenceError(str(exc)) from exc
        self.dirty.clear(*snap.dirty)
        return snap
