"""Protocol event model, boundary adjustments and sport gating."""

from .events import (
    ContactPointMetadata,
    FollowThroughMetadata,
    HandednessMetadata,
    InvalidEventError,
    LoadingPositionMetadata,
    ProtocolEvent,
    ProtocolId,
    ServePreparationMetadata,
    SwingMetadata,
    SwingType,
)
from .adjustments import (
    AdjustmentOverlay,
    BoundaryAdjustment,
    EffectiveBoundaries,
    UnknownEdgeError,
    clamp_boundary_edit,
    frame_from_time,
    get_effective_boundaries,
)
from .registry import enabled_protocols_for_sport, is_enabled
