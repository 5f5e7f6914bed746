"""Pose frames and the per-video pose stream."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np


@dataclass(frozen=True, eq=False)
class PoseFrame:
    """One detected person in one video frame.

    Produced by the external pose detector and never modified afterwards: the
    arrays are copied and marked read-only on construction.
    """

    frame_index: int
    # (K, 2) array of x, y image coordinates
    keypoints: np.ndarray
    # (K,) array of per-keypoint confidence
    confidence: np.ndarray
    pose_score: float = 1.0

    def __post_init__(self):
        kps = np.array(self.keypoints, dtype=np.float64).reshape(-1, 2)
        conf = np.array(self.confidence, dtype=np.float64).reshape(-1)
        if len(kps) != len(conf):
            raise ValueError(f"{len(kps)} keypoints but {len(conf)} confidence values")
        kps.flags.writeable = False
        conf.flags.writeable = False
        object.__setattr__(self, "frame_index", int(self.frame_index))
        object.__setattr__(self, "keypoints", kps)
        object.__setattr__(self, "confidence", conf)
        object.__setattr__(self, "pose_score", float(self.pose_score))

    @classmethod
    def from_points(
        cls,
        frame_index: int,
        points: Sequence[Tuple[float, float, float]],
        pose_score: float = 1.0,
    ) -> "PoseFrame":
        """Build a frame from ``(x, y, score)`` tuples."""
        arr = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        return cls(frame_index, arr[:, :2], arr[:, 2], pose_score)

    @property
    def num_keypoints(self) -> int:
        return len(self.confidence)

    def with_keypoints(
        self,
        keypoints: np.ndarray,
        confidence: Optional[np.ndarray] = None,
    ) -> "PoseFrame":
        return PoseFrame(
            self.frame_index,
            keypoints,
            self.confidence if confidence is None else confidence,
            self.pose_score,
        )

    def to_points(self) -> List[List[float]]:
        return [
            [float(x), float(y), float(c)]
            for (x, y), c in zip(self.keypoints, self.confidence)
        ]


class PoseStream:
    """Frame-indexed raw poses for one video.

    Several people may be tracked per frame; swing analysis uses a single
    subject selected by ``person_index``.
    """

    def __init__(self):
        self._frames: Dict[int, List[PoseFrame]] = {}

    def set_poses(self, frame_index: int, poses: Sequence[PoseFrame]) -> None:
        self._frames[int(frame_index)] = list(poses)

    def poses_at(self, frame_index: int) -> List[PoseFrame]:
        return list(self._frames.get(int(frame_index), ()))

    def primary(self, frame_index: int, person_index: int = 0) -> Optional[PoseFrame]:
        poses = self._frames.get(int(frame_index))
        if not poses or person_index >= len(poses):
            return None
        return poses[person_index]

    def frame_indices(self) -> List[int]:
        return sorted(self._frames)

    def track(self, person_index: int = 0) -> List[PoseFrame]:
        """All poses of one subject in frame order (frames without it are skipped)."""
        out = []
        for idx in self.frame_indices():
            pose = self.primary(idx, person_index)
            if pose is not None:
                out.append(pose)
        return out

    def clear(self) -> None:
        self._frames.clear()

    def __contains__(self, frame_index: object) -> bool:
        return frame_index in self._frames

    def __len__(self) -> int:
        return len(self._frames)

    def __iter__(self) -> Iterator[int]:
        return iter(self.frame_indices())
