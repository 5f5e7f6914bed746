"""Sport gating: which protocols run for a given sport tag."""

from __future__ import annotations

from typing import Dict, Tuple

from .events import ProtocolId

SPORT_PROTOCOLS: Dict[str, Tuple[ProtocolId, ...]] = {
    "tennis": (
        ProtocolId.SWING_V3,
        ProtocolId.LOADING_POSITION,
        ProtocolId.SERVE_PREPARATION,
        ProtocolId.TENNIS_CONTACT_POINT,
        ProtocolId.SERVE_FOLLOW_THROUGH,
        ProtocolId.HANDEDNESS,
    ),
    "padel": (
        ProtocolId.SWING_V3,
        ProtocolId.LOADING_POSITION,
        ProtocolId.HANDEDNESS,
    ),
    "pickleball": (
        ProtocolId.SWING_V3,
        ProtocolId.LOADING_POSITION,
        ProtocolId.HANDEDNESS,
    ),
}


def enabled_protocols_for_sport(sport: str) -> Tuple[ProtocolId, ...]:
    """Protocols enabled for *sport* (case-insensitive); empty for unknown sports."""
    return SPORT_PROTOCOLS.get((sport or "").strip().lower(), ())


def is_enabled(protocol_id: ProtocolId, sport: str) -> bool:
    return protocol_id in enabled_protocols_for_sport(sport)
