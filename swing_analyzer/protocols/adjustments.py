"""User boundary adjustments, stored as a sparse overlay on detected events.

The detector output is never edited. An adjustment only records the fields a
user changed; effective boundaries fall back to the original event for every
field that is not overridden, so removing an adjustment restores the
detection exactly.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

from ..config.settings import MIN_SWING_DURATION
from .events import ProtocolEvent

EDGES = ("start", "end")


class UnknownEdgeError(ValueError):
    """Edge name other than ``"start"`` / ``"end"``."""

    pass


@dataclass(frozen=True)
class BoundaryAdjustment:
    """Optional overrides for an event's window."""

    start_time: Optional[float] = None
    start_frame: Optional[int] = None
    end_time: Optional[float] = None
    end_frame: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def merged(self, other: "BoundaryAdjustment") -> "BoundaryAdjustment":
        """Fields set on *other* win."""
        changes = {f.name: getattr(other, f.name) for f in fields(other) if getattr(other, f.name) is not None}
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startTime": self.start_time,
            "startFrame": self.start_frame,
            "endTime": self.end_time,
            "endFrame": self.end_frame,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BoundaryAdjustment":
        return cls(
            start_time=data.get("startTime"),
            start_frame=data.get("startFrame"),
            end_time=data.get("endTime"),
            end_frame=data.get("endFrame"),
        )


@dataclass(frozen=True)
class EffectiveBoundaries:
    start_frame: int
    end_frame: int
    start_time: float
    end_time: float
    is_adjusted: bool = False

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


def get_effective_boundaries(
    event: ProtocolEvent,
    adjustments: Mapping[str, BoundaryAdjustment],
) -> EffectiveBoundaries:
    """Adjusted fields where present, the original event's fields otherwise."""
    adj = adjustments.get(event.id)
    if adj is None or adj.is_empty:
        return EffectiveBoundaries(event.start_frame, event.end_frame, event.start_time, event.end_time)

    def pick(override, original):
        return original if override is None else override

    return EffectiveBoundaries(
        start_frame=pick(adj.start_frame, event.start_frame),
        end_frame=pick(adj.end_frame, event.end_frame),
        start_time=pick(adj.start_time, event.start_time),
        end_time=pick(adj.end_time, event.end_time),
        is_adjusted=True,
    )


def clamp_boundary_edit(
    edge: str,
    proposed_time: float,
    other_edge_time: float,
    min_duration: float = MIN_SWING_DURATION,
) -> float:
    """Clamp a dragged edge so the window stays longer than ``min_duration``.

    ``"start"`` results are always strictly below ``other_edge_time - min_duration``;
    ``"end"`` results strictly above ``other_edge_time + min_duration``.
    """
    if edge == "start":
        limit = other_edge_time - min_duration
        return proposed_time if proposed_time < limit else math.nextafter(limit, -math.inf)
    if edge == "end":
        limit = other_edge_time + min_duration
        return proposed_time if proposed_time > limit else math.nextafter(limit, math.inf)
    raise UnknownEdgeError(f"edge must be one of {EDGES}, got {edge!r}")


def frame_from_time(t: float, fps: float) -> int:
    # Epsilon absorbs float error such as 0.7 * 30 == 20.999999999999996.
    return int(math.floor(t * fps + 1e-9))


class AdjustmentOverlay:
    """Sparse ``event_id -> BoundaryAdjustment`` map.

    Entries whose event no longer exists (for example after re-running
    detection with another config) are kept but have no effect.
    """

    def __init__(self, adjustments: Optional[Mapping[str, BoundaryAdjustment]] = None):
        self._adjustments: Dict[str, BoundaryAdjustment] = dict(adjustments or {})

    def get(self, event_id: str) -> Optional[BoundaryAdjustment]:
        return self._adjustments.get(event_id)

    def set(self, event_id: str, adjustment: BoundaryAdjustment) -> None:
        self._adjustments[event_id] = adjustment

    def remove(self, event_id: str) -> Optional[BoundaryAdjustment]:
        """Drop the adjustment, restoring the original detection for that id."""
        return self._adjustments.pop(event_id, None)

    def clear(self) -> None:
        self._adjustments.clear()

    def items(self):
        return self._adjustments.items()

    def as_mapping(self) -> Mapping[str, BoundaryAdjustment]:
        return dict(self._adjustments)

    def __contains__(self, event_id: object) -> bool:
        return event_id in self._adjustments

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._adjustments))

    def __len__(self) -> int:
        return len(self._adjustments)

    def effective(self, event: ProtocolEvent) -> EffectiveBoundaries:
        return get_effective_boundaries(event, self._adjustments)

    def apply_edge_edit(
        self,
        event: ProtocolEvent,
        edge: str,
        proposed_time: float,
        fps: float,
        min_duration: float = MIN_SWING_DURATION,
    ) -> EffectiveBoundaries:
        """Clamp a dragged edge against the other effective edge and store it."""
        eff = self.effective(event)
        if edge == "start":
            t = clamp_boundary_edit(edge, proposed_time, eff.end_time, min_duration)
            update = BoundaryAdjustment(start_time=t, start_frame=min(frame_from_time(t, fps), eff.end_frame))
        elif edge == "end":
            t = clamp_boundary_edit(edge, proposed_time, eff.start_time, min_duration)
            update = BoundaryAdjustment(end_time=t, end_frame=max(frame_from_time(t, fps), eff.start_frame))
        else:
            raise UnknownEdgeError(f"edge must be one of {EDGES}, got {edge!r}")

        existing = self._adjustments.get(event.id)
        self._adjustments[event.id] = existing.merged(update) if existing else update
        return self.effective(event)

    def stale_ids(self, events: Iterable[ProtocolEvent]) -> List[str]:
        """Stored ids with no matching event."""
        live = {e.id for e in events}
        return [eid for eid in self._adjustments if eid not in live]

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {eid: adj.to_dict() for eid, adj in self._adjustments.items()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Mapping[str, Any]]) -> "AdjustmentOverlay":
        return cls({eid: BoundaryAdjustment.from_dict(v) for eid, v in data.items()})
