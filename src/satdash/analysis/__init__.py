"""Derived metrics computed from backend analysis output."""

from satdash.analysis.trends import (
    moving_average,
    percent_change,
    point_change,
    series_change,
    top_residual_anomalies,
    unlit_percentages,
)
from satdash.analysis.vegetation import (
    classify_health,
    distribution_rows,
    high_fraction_above,
    ndvi_range_label,
)

__all__ = [
    "classify_health",
    "distribution_rows",
    "high_fraction_above",
    "moving_average",
    "ndvi_range_label",
    "percent_change",
    "point_change",
    "series_change",
    "top_residual_anomalies",
    "unlit_percentages",
]
