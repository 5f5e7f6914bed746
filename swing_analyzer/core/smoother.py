"""Temporal smoothing for cleaned keypoints."""

from __future__ import annotations

from typing import Optional

import numpy as np


class PoseSmoother:
    """
    Smooth keypoints over time using an exponential moving average.

    Reduces residual jitter after the stability filter has removed gross
    errors. ``alpha`` is the weight on the current frame, so ``alpha=1.0``
    passes coordinates through unchanged.
    """

    def __init__(self, alpha: float = 0.7):
        """
        Args:
            alpha: EMA weight on the current value (0-1]. Lower = more smoothing, more lag.
        """
        self.alpha = alpha
        self.prev_keypoints: Optional[np.ndarray] = None

    def smooth(
        self,
        keypoints: np.ndarray,
        confidence: np.ndarray,
        min_confidence: float = 0.3,
    ) -> np.ndarray:
        """
        Apply temporal smoothing to keypoints.

        Args:
            keypoints: (K, 2) array of x, y coordinates
            confidence: (K,) array of confidence scores
            min_confidence: Joints below this keep their previous smoothed position

        Returns:
            Smoothed keypoints (new array)
        """
        keypoints = np.asarray(keypoints, dtype=np.float64)
        if self.prev_keypoints is None or self.prev_keypoints.shape != keypoints.shape:
            self.prev_keypoints = keypoints.copy()
            return keypoints.copy()

        ok = np.asarray(confidence) >= min_confidence
        smoothed = self.prev_keypoints.copy()
        smoothed[ok] = self.alpha * keypoints[ok] + (1.0 - self.alpha) * self.prev_keypoints[ok]

        self.prev_keypoints = smoothed.copy()
        return smoothed

    def seed(self, keypoints: np.ndarray):
        """Start from a known pose (used at a worker range boundary)."""
        self.prev_keypoints = np.asarray(keypoints, dtype=np.float64).copy()

    def reset(self):
        """Reset smoother state."""
        self.prev_keypoints = None
