"""Change tracking and snapshots for the external save collaborator.

The core does not own a timer or any storage. It tracks *what* changed since
the last successful save (``DirtyFlags``), offers a clock-agnostic debouncer
the host can poll, and produces a JSON-ready ``SessionSnapshot``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..protocols.adjustments import BoundaryAdjustment
from ..protocols.events import ProtocolEvent
from .stability import StabilizedFrame


class PersistenceError(RuntimeError):
    """The save collaborator failed; in-memory state is unaffected."""

    pass


@dataclass
class DirtyFlags:
    pose_data: bool = False
    swing_boundaries: bool = False
    protocol_adjustments: bool = False
    custom_events: bool = False
    user_preferences: bool = False

    def _check(self, names) -> None:
        known = {f.name for f in fields(self)}
        unknown = [n for n in names if n not in known]
        if unknown:
            raise ValueError(f"unknown dirty flag(s): {unknown}")

    def mark(self, *names: str) -> None:
        self._check(names)
        for n in names:
            setattr(self, n, True)

    def clear(self, *names: str) -> None:
        """Clear the given flags, or all of them."""
        self._check(names)
        for n in names or [f.name for f in fields(self)]:
            setattr(self, n, False)

    @property
    def any_dirty(self) -> bool:
        return any(getattr(self, f.name) for f in fields(self))

    def dirty_fields(self) -> Tuple[str, ...]:
        return tuple(f.name for f in fields(self) if getattr(self, f.name))


class SaveDebouncer:
    """Coalesce rapid edits into one save.

    The caller supplies timestamps (seconds, any monotonic clock). A save is due
    once ``delay_s`` has passed since the most recent change.
    """

    def __init__(self, delay_s: float = 2.0):
        if delay_s < 0:
            raise ValueError("delay_s must be >= 0")
        self.delay_s = delay_s
        self._last_change: Optional[float] = None

    @property
    def pending(self) -> bool:
        return self._last_change is not None

    def note_change(self, now: float) -> None:
        self._last_change = now

    def is_due(self, now: float) -> bool:
        return self._last_change is not None and now - self._last_change >= self.delay_s

    def mark_flushed(self) -> None:
        self._last_change = None


def stabilized_frame_to_dict(sf: StabilizedFrame) -> Dict[str, Any]:
    return {
        "keypoints": sf.pose.to_points(),
        "score": sf.pose.pose_score,
        "isBanana": sf.is_banana,
        "recovery": sf.recovery.value,
    }


@dataclass(frozen=True)
class SessionSnapshot:
    """Everything the save collaborator needs, detached from the live session."""

    fps: float
    sport: str
    frames: Mapping[int, StabilizedFrame] = field(default_factory=dict)
    events: Tuple[ProtocolEvent, ...] = ()
    adjustments: Mapping[str, BoundaryAdjustment] = field(default_factory=dict)
    dirty: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fps": self.fps,
            "sport": self.sport,
            "frames": {str(idx): stabilized_frame_to_dict(sf) for idx, sf in sorted(self.frames.items())},
            "events": [e.to_dict() for e in self.events],
            "adjustments": {eid: adj.to_dict() for eid, adj in self.adjustments.items()},
            "dirty": list(self.dirty),
        }


def events_from_dict(data: Mapping[str, Any]) -> Tuple[List[ProtocolEvent], Dict[str, BoundaryAdjustment]]:
    """Events and adjustments from a previously saved snapshot document."""
    events = [ProtocolEvent.from_dict(e) for e in data.get("events", [])]
    adjustments = {
        eid: BoundaryAdjustment.from_dict(adj) for eid, adj in data.get("adjustments", {}).items()
    }
    return events, adjustments
