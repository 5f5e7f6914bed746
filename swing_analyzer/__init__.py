"""Pose-stream analysis: banana-frame filtering, swing segmentation and scoring."""

__version__ = "0.3.0"
