"""Internal shared types for cross-module data contracts.

These types describe derived, per-render records passed between the
analysis helpers, the projector and the dashboards. They are internal
(prefixed ``_``) but the record classes are re-exported from
``satdash.__init__`` for convenience.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

LatLon = tuple[float, float]
"""Geographic point ``(lat, lon)`` in WGS84 degrees."""

PixelOffset = tuple[float, float]
"""Signed raster offset ``(row, column)`` in pixel units."""

RGB = tuple[int, int, int]
"""8-bit colour triple."""


@dataclass
class SeriesPoint:
    """One time-step of a series block.

    Args:
        index: Position of the step in the original arrays.
        date: Date string of the step.
        metrics: Metric name to value at this step.
        is_anomaly: Whether the backend flagged the step as an anomaly.
        is_breakpoint: Whether the backend flagged a change point here.

    Example:
        >>> p = SeriesPoint(index=0, date="2024-05-01", metrics={"mean": 0.42})
        >>> p.is_anomaly
        False
    """

    index: int
    date: str
    metrics: dict[str, Any] = field(default_factory=dict)
    is_anomaly: bool = False
    is_breakpoint: bool = False


@dataclass
class HexCell:
    """A weighted point for a hexagon map layer.

    Args:
        position: ``(lon, lat)``, the order deck.gl layers expect.
        weight: Value driving aggregation.
        elevation: Extrusion height (``weight * 5``).
        color: RGB colour for the weight.
    """

    position: tuple[float, float]
    weight: float
    elevation: float
    color: RGB


@dataclass
class ChartRow:
    """Series chart row with a moving-average trend.

    Args:
        date: Date label.
        value: Observed value at this step.
        trend: Trailing moving average, ``None`` before the window fills.
        is_anomaly: Anomaly flag.
        is_breakpoint: Breakpoint flag.
    """

    date: str
    value: float | None
    trend: float | None = None
    is_anomaly: bool = False
    is_breakpoint: bool = False


@dataclass
class DistributionRow:
    """One histogram bucket prepared for display.

    Args:
        bucket_mean: Bucket centre rounded to two decimals.
        count: Display count (scaled up when all counts are tiny).
        true_count: Unscaled count.
        range_label: Qualitative NDVI range of the bucket.
    """

    bucket_mean: float
    count: float
    true_count: float
    range_label: str
