from .pose import PoseFrame, PoseStream
from .smoother import PoseSmoother

# NOTE: stability, preprocess, persistence and session depend on the analysis
# package, which itself imports core.pose. Import them by full module path
# (e.g. ``swing_analyzer.core.session``) so either package can load first.
