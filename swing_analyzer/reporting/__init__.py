"""Chart generation."""

from .charts import attribute_radar_chart, swing_curve_chart
