"""Protocol event model.

Every protocol (swing detection, single-instant key positions, handedness)
produces the same envelope, ``ProtocolEvent``. Its ``metadata`` is a typed
dataclass chosen by ``protocol_id``; the pairing is checked on construction.
Events are immutable: user edits live in ``adjustments.AdjustmentOverlay``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union


class ProtocolId(str, Enum):
    SWING_V1 = "swing-detection-v1"
    SWING_V2 = "swing-detection-v2"
    SWING_V3 = "swing-detection-v3"
    LOADING_POSITION = "loading-position"
    SERVE_PREPARATION = "serve-preparation"
    SERVE_FOLLOW_THROUGH = "serve-follow-through"
    HANDEDNESS = "handedness-detection"
    TENNIS_CONTACT_POINT = "tennis-contact-point"
    TENNIS_LANDING = "tennis-landing"
    TENNIS_TROPHY = "tennis-trophy"
    WRIST_SPEED = "wrist-speed"


SWING_PROTOCOLS = frozenset({ProtocolId.SWING_V1, ProtocolId.SWING_V2, ProtocolId.SWING_V3})


class SwingType(str, Enum):
    FOREHAND = "forehand"
    BACKHAND = "backhand"
    BACKHAND_TWO_HAND = "backhand_two_hand"
    SERVE = "serve"
    UNKNOWN = "unknown"


class InvalidEventError(ValueError):
    """Malformed protocol event (inverted window or mismatched metadata)."""

    pass


# =====================================================================
# Metadata variants
# =====================================================================

@dataclass(frozen=True)
class SwingMetadata:
    swing_type: SwingType
    velocity_kmh: float
    rotation_range: float        # degrees, max - min body orientation in the window
    confidence: float            # usable, non-banana fraction of the window
    contact_frame: int
    peak_rotation_velocity: float = 0.0   # deg/frame, signed
    dominant_side: str = "right"
    loading_peak_frame: Optional[int] = None
    clip_start_time: Optional[float] = None
    clip_end_time: Optional[float] = None


@dataclass(frozen=True)
class LoadingPositionMetadata:
    parent_id: str
    swing_type: SwingType
    # Orientation difference to the contact frame, degrees
    orientation_delta: float


@dataclass(frozen=True)
class ServePreparationMetadata:
    parent_id: str
    # Racket-arm wrist height above the shoulder line, in torso heights
    arm_height_ratio: Optional[float]


@dataclass(frozen=True)
class ContactPointMetadata:
    parent_id: str
    wrist_height_ratio: float


@dataclass(frozen=True)
class FollowThroughMetadata:
    parent_id: str
    front_ankle_y: float


@dataclass(frozen=True)
class HandednessMetadata:
    dominant_hand: str
    confidence: float
    left_score: float
    right_score: float


EventMetadata = Union[
    SwingMetadata,
    LoadingPositionMetadata,
    ServePreparationMetadata,
    ContactPointMetadata,
    FollowThroughMetadata,
    HandednessMetadata,
]

METADATA_TYPES: Dict[ProtocolId, Optional[type]] = {
    ProtocolId.SWING_V1: SwingMetadata,
    ProtocolId.SWING_V2: SwingMetadata,
    ProtocolId.SWING_V3: SwingMetadata,
    ProtocolId.LOADING_POSITION: LoadingPositionMetadata,
    ProtocolId.SERVE_PREPARATION: ServePreparationMetadata,
    ProtocolId.TENNIS_TROPHY: ServePreparationMetadata,
    ProtocolId.SERVE_FOLLOW_THROUGH: FollowThroughMetadata,
    ProtocolId.TENNIS_LANDING: FollowThroughMetadata,
    ProtocolId.TENNIS_CONTACT_POINT: ContactPointMetadata,
    ProtocolId.HANDEDNESS: HandednessMetadata,
    ProtocolId.WRIST_SPEED: None,
}


# =====================================================================
# Envelope
# =====================================================================

@dataclass(frozen=True)
class ProtocolEvent:
    """One detected event, independent of the protocol that produced it."""

    id: str
    protocol_id: ProtocolId
    start_frame: int
    end_frame: int
    start_time: float
    end_time: float
    label: str
    metadata: Optional[EventMetadata] = None

    def __post_init__(self):
        object.__setattr__(self, "protocol_id", ProtocolId(self.protocol_id))
        if self.start_frame > self.end_frame:
            raise InvalidEventError(
                f"event {self.id!r}: start_frame {self.start_frame} > end_frame {self.end_frame}"
            )
        if self.start_time > self.end_time:
            raise InvalidEventError(
                f"event {self.id!r}: start_time {self.start_time} > end_time {self.end_time}"
            )
        expected = METADATA_TYPES[self.protocol_id]
        if expected is None:
            if self.metadata is not None:
                raise InvalidEventError(f"{self.protocol_id.value} events carry no metadata")
        elif not isinstance(self.metadata, expected):
            raise InvalidEventError(
                f"{self.protocol_id.value} events need {expected.__name__}, "
                f"got {type(self.metadata).__name__}"
            )

    @property
    def is_swing(self) -> bool:
        return self.protocol_id in SWING_PROTOCOLS

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    def contains_frame(self, frame_index: int) -> bool:
        return self.start_frame <= frame_index <= self.end_frame

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "protocolId": self.protocol_id.value,
            "startFrame": self.start_frame,
            "endFrame": self.end_frame,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "label": self.label,
            "metadata": _metadata_to_dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProtocolEvent":
        protocol_id = ProtocolId(data["protocolId"])
        meta_cls = METADATA_TYPES[protocol_id]
        raw_meta = data.get("metadata")
        metadata = None
        if meta_cls is not None and raw_meta is not None:
            known = {f.name for f in fields(meta_cls)}
            kwargs = {k: v for k, v in raw_meta.items() if k in known}
            if "swing_type" in kwargs:
                kwargs["swing_type"] = SwingType(kwargs["swing_type"])
            metadata = meta_cls(**kwargs)
        return cls(
            id=str(data["id"]),
            protocol_id=protocol_id,
            start_frame=int(data["startFrame"]),
            end_frame=int(data["endFrame"]),
            start_time=float(data["startTime"]),
            end_time=float(data["endTime"]),
            label=str(data.get("label", "")),
            metadata=metadata,
        )


def _metadata_to_dict(metadata: Optional[EventMetadata]) -> Optional[Dict[str, Any]]:
    if metadata is None:
        return None
    out = asdict(metadata)
    for key, value in out.items():
        if isinstance(value, Enum):
            out[key] = value.value
    return out
