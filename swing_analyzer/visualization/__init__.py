"""Frame overlays."""

from .skeleton import BANANA_COLOR, SkeletonDrawer
