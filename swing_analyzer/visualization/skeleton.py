"""Skeleton overlay for cleaned pose frames."""

from typing import Optional, Tuple

import cv2
import numpy as np

from ..config.keypoints import KEYPOINT_COLORS, KeypointLayout, body_part, layout_for
from ..core.stability import StabilizedFrame

# BGR
BANANA_COLOR = (0, 0, 255)
SUBSTITUTED_COLOR = (255, 255, 255)


class SkeletonDrawer:
    """Draw a cleaned pose on a video frame.

    Banana frames are drawn entirely in the warning color; joints whose
    position was estimated (mirror, hold, simulation) get a white ring.
    """

    def __init__(
        self,
        line_thickness: int = 2,
        point_radius: int = 4,
        confidence_threshold: float = 0.3,
        layout: Optional[KeypointLayout] = None,
    ):
        self.line_thickness = line_thickness
        self.point_radius = point_radius
        self.confidence_threshold = confidence_threshold
        self.layout = layout

    def draw(self, frame: np.ndarray, stabilized: StabilizedFrame) -> np.ndarray:
        """
        Draw skeleton on a copy of the frame.

        Args:
            frame: BGR image
            stabilized: output of the stability filter for this frame

        Returns:
            Frame with skeleton drawn
        """
        frame = frame.copy()
        pose = stabilized.pose
        layout = self.layout or layout_for(pose.num_keypoints)
        override = BANANA_COLOR if stabilized.is_banana else None

        self._draw_bones(frame, pose.keypoints, pose.confidence, layout, override)
        self._draw_joints(frame, pose.keypoints, pose.confidence, layout, override)
        for idx in stabilized.substituted:
            center = self._point(pose.keypoints[idx])
            if center is not None:
                cv2.circle(frame, center, self.point_radius + 3, SUBSTITUTED_COLOR, 1, cv2.LINE_AA)
        return frame

    @staticmethod
    def _point(xy: np.ndarray) -> Optional[Tuple[int, int]]:
        if not np.all(np.isfinite(xy)):
            return None
        center = (int(xy[0]), int(xy[1]))
        # Undetected points come through at the origin
        return None if center == (0, 0) else center

    def _draw_bones(self, frame, keypoints, confidence, layout, override):
        for a, b in layout.bones:
            if confidence[a] < self.confidence_threshold or confidence[b] < self.confidence_threshold:
                continue
            pa, pb = self._point(keypoints[a]), self._point(keypoints[b])
            if pa is None or pb is None:
                continue
            color = override or KEYPOINT_COLORS[body_part(layout.names[b])]
            cv2.line(frame, pa, pb, color, self.line_thickness, cv2.LINE_AA)

    def _draw_joints(self, frame, keypoints, confidence, layout, override):
        for idx in layout.tracked:
            if confidence[idx] < self.confidence_threshold:
                continue
            center = self._point(keypoints[idx])
            if center is None:
                continue
            color = override or KEYPOINT_COLORS[body_part(layout.names[idx])]
            cv2.circle(frame, center, self.point_radius, color, -1, cv2.LINE_AA)
