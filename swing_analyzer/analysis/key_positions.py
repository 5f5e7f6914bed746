"""Single-instant key positions derived from a detected swing.

- Loading position (groundstrokes): the frame between swing start and contact
  where the torso is turned furthest away from its orientation at contact.
- Serve key positions, searched in the clip window around the serve:
    * contact point: racket wrist at its highest
    * preparation (trophy): the frame ``trophy_offset_s`` before contact
    * follow-through (landing): front ankle at its lowest after contact
"""

from __future__ import annotations

from typing import Collection, List, Optional

import numpy as np

from ..config.settings import SwingDetectionConfig
from ..protocols.events import (
    ContactPointMetadata,
    FollowThroughMetadata,
    LoadingPositionMetadata,
    ProtocolEvent,
    ProtocolId,
    ServePreparationMetadata,
    SwingMetadata,
    SwingType,
)
from .kinematics import KinematicSeries, wrap_degrees


def find_loading_peak(series: KinematicSeries, start_index: int, contact_index: int) -> Optional[int]:
    """List position of maximum torso coil before contact, or None."""
    contact_orientation = series[contact_index].body_orientation
    if contact_orientation is None:
        return None
    best, best_delta = None, -1.0
    for i in range(start_index, contact_index):
        o = series[i].body_orientation
        if o is None:
            continue
        delta = abs(wrap_degrees(o - contact_orientation))
        if delta > best_delta:
            best, best_delta = i, delta
    return best


def _instant(
    event_id: str,
    protocol_id: ProtocolId,
    frame_index: int,
    fps: float,
    label: str,
    metadata,
) -> ProtocolEvent:
    t = frame_index / fps
    return ProtocolEvent(event_id, protocol_id, frame_index, frame_index, t, t, label, metadata)


def key_position_events(
    swing: ProtocolEvent,
    series: KinematicSeries,
    config: Optional[SwingDetectionConfig] = None,
    handedness: str = "right",
    enabled: Optional[Collection[ProtocolId]] = None,
) -> List[ProtocolEvent]:
    """Child events of one swing, restricted to the *enabled* protocols."""
    cfg = config or SwingDetectionConfig()
    meta = swing.metadata
    if not isinstance(meta, SwingMetadata) or len(series) == 0:
        return []
    enabled = set(ProtocolId) if enabled is None else set(enabled)
    fps = series.fps
    cf = meta.contact_frame
    out: List[ProtocolEvent] = []

    if meta.swing_type is not SwingType.SERVE:
        if ProtocolId.LOADING_POSITION in enabled and meta.loading_peak_frame is not None:
            loading = series.at(meta.loading_peak_frame)
            contact = series.at(cf)
            delta = 0.0
            if loading and contact and loading.body_orientation is not None and contact.body_orientation is not None:
                delta = abs(wrap_degrees(loading.body_orientation - contact.body_orientation))
            out.append(_instant(
                f"loading-{cf}", ProtocolId.LOADING_POSITION, meta.loading_peak_frame, fps,
                "Loading position", LoadingPositionMetadata(swing.id, meta.swing_type, delta),
            ))
        return out

    clip_start = meta.clip_start_time if meta.clip_start_time is not None else swing.start_time
    clip_end = meta.clip_end_time if meta.clip_end_time is not None else swing.end_time
    clip = series.window(int(np.floor(clip_start * fps)), int(np.ceil(clip_end * fps)))
    if not clip:
        return out

    racket = "left" if handedness == "left" else "right"
    front = "right" if handedness == "left" else "left"

    def arm_height(f) -> Optional[float]:
        return getattr(f, f"{racket}_wrist_height")

    if ProtocolId.TENNIS_CONTACT_POINT in enabled:
        scored = [(arm_height(f), f) for f in clip if arm_height(f) is not None]
        if scored:
            height, best = max(scored, key=lambda p: p[0])
            out.append(_instant(
                f"contact-{cf}", ProtocolId.TENNIS_CONTACT_POINT, best.frame_index, fps,
                "Contact point", ContactPointMetadata(swing.id, height),
            ))

    if ProtocolId.SERVE_PREPARATION in enabled:
        target = cf - cfg.trophy_offset_s * fps
        before = [f for f in clip if f.frame_index <= cf]
        if before:
            trophy = min(before, key=lambda f: abs(f.frame_index - target))
            out.append(_instant(
                f"prep-{cf}", ProtocolId.SERVE_PREPARATION, trophy.frame_index, fps,
                "Trophy position", ServePreparationMetadata(swing.id, arm_height(trophy)),
            ))

    if ProtocolId.SERVE_FOLLOW_THROUGH in enabled:
        after = [(getattr(f, f"{front}_ankle_y"), f) for f in clip if f.frame_index > cf]
        after = [(y, f) for y, f in after if y is not None]
        if after:
            ankle_y, landing = max(after, key=lambda p: p[0])
            out.append(_instant(
                f"followthrough-{cf}", ProtocolId.SERVE_FOLLOW_THROUGH, landing.frame_index, fps,
                "Follow-through", FollowThroughMetadata(swing.id, ankle_y),
            ))

    out.sort(key=lambda e: e.start_frame)
    return out
