"""Batch preprocessing: run the stability filter over a frame range ahead of playback.

The pass is synchronous and cooperative: a ``CancellationToken`` is checked
before every frame. Frames finished before a cancel stay in the result and are
valid. Parallel hosts split the video with ``split_frame_range`` so that every
worker owns a disjoint range; since the filter is sequential, each worker seeds
its own filter with the last good pose before its range.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from ..config.keypoints import KeypointLayout, layout_for
from ..config.settings import StabilityConfig
from .pose import PoseFrame
from .stability import PoseStabilityFilter, StabilizedFrame

logger = logging.getLogger(__name__)

# External pose detector: frame index -> poses detected in that frame
PoseSource = Callable[[int], Sequence[PoseFrame]]


class RangeMergeError(ValueError):
    """Worker results claim the same frame index."""

    pass


class CancellationToken:
    """Abort flag shared between the caller and a running pass."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class PreprocessOutcome(Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PreprocessResult:
    outcome: PreprocessOutcome
    frames_processed: int
    last_frame: Optional[int]
    raw: Dict[int, List[PoseFrame]] = field(default_factory=dict)
    cleaned: Dict[int, StabilizedFrame] = field(default_factory=dict)
    # Filter as it stood after the last frame, for continuing the pass later
    stability_filter: Optional[PoseStabilityFilter] = field(default=None, repr=False, compare=False)

    @property
    def cancelled(self) -> bool:
        return self.outcome is PreprocessOutcome.CANCELLED


def split_frame_range(start: int, stop: int, workers: int) -> List[range]:
    """Split ``[start, stop)`` into at most *workers* contiguous, disjoint ranges."""
    if workers < 1:
        raise ValueError(f"workers must be >= 1, got {workers}")
    total = max(0, stop - start)
    if total == 0:
        return []
    workers = min(workers, total)
    base, extra = divmod(total, workers)
    out = []
    lo = start
    for w in range(workers):
        hi = lo + base + (1 if w < extra else 0)
        out.append(range(lo, hi))
        lo = hi
    return out


def check_disjoint(results: Iterable[PreprocessResult]) -> None:
    """Raise ``RangeMergeError`` if two results processed the same frame."""
    seen: Dict[int, int] = {}
    for n, result in enumerate(results):
        for idx in result.raw:
            if idx in seen:
                raise RangeMergeError(f"frame {idx} processed by worker {seen[idx]} and worker {n}")
            seen[idx] = n


def preprocess_range(
    source: PoseSource,
    frames: Iterable[int],
    layout: Optional[KeypointLayout] = None,
    config: Optional[StabilityConfig] = None,
    seed: Optional[PoseFrame] = None,
    token: Optional[CancellationToken] = None,
    person_index: int = 0,
    stability_filter: Optional[PoseStabilityFilter] = None,
) -> PreprocessResult:
    """Detect and clean every frame in *frames*, in order.

    Args:
        source: pose detector callback
        frames: frame indices to process (ascending)
        layout: keypoint layout; resolved from the first pose when omitted
        config: stability thresholds for a new filter
        seed: last good pose before this range (parallel workers)
        token: checked before each frame
        person_index: tracked subject
        stability_filter: continue an existing filter instead of creating one

    Returns:
        PreprocessResult; ``CANCELLED`` keeps everything finished so far.
    """
    filt = stability_filter
    if filt is None and layout is not None:
        filt = PoseStabilityFilter(layout, config)
    if filt is not None and seed is not None:
        filt.seed(seed)

    raw: Dict[int, List[PoseFrame]] = {}
    cleaned: Dict[int, StabilizedFrame] = {}
    processed = 0
    last: Optional[int] = None
    outcome = PreprocessOutcome.COMPLETED

    for idx in frames:
        if token is not None and token.cancelled:
            outcome = PreprocessOutcome.CANCELLED
            break
        poses = list(source(idx))
        raw[idx] = poses
        if len(poses) > person_index:
            pose = poses[person_index]
            if filt is None:
                filt = PoseStabilityFilter(layout_for(pose.num_keypoints), config)
                if seed is not None:
                    filt.seed(seed)
            cleaned[idx] = filt.update(pose)
        processed += 1
        last = idx

    banana = sum(1 for sf in cleaned.values() if sf.is_banana)
    logger.info(
        f"preprocess {outcome.value}: {processed} frame(s), {len(cleaned)} with subject, "
        f"{banana} banana frame(s)"
    )
    return PreprocessResult(outcome, processed, last, raw, cleaned, filt)


def frame_span(result: PreprocessResult) -> Optional[Tuple[int, int]]:
    if not result.raw:
        return None
    return min(result.raw), max(result.raw)
