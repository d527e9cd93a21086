"""NDVI health classification and histogram helpers.

Pure computation module: no storage, no HTTP.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from satdash._types import DistributionRow
from satdash.models import Distribution

# ── Health classes (inclusive lower bounds, checked top-down) ─────
_HEALTH_CLASSES: tuple[tuple[float, str], ...] = (
    (0.7, "Excellent"),
    (0.5, "Good"),
    (0.3, "Moderate"),
    (0.1, "Poor"),
)
_HEALTH_FLOOR = "Very Poor"

# ── Display ranges for histogram buckets (exclusive upper bounds) ──
_RANGE_LABELS: tuple[tuple[float, str], ...] = (
    (0.2, "very-low"),
    (0.4, "low"),
    (0.6, "moderate"),
    (0.8, "high"),
)
_RANGE_CEILING = "very-high"

HIGH_NDVI_THRESHOLD: float = 0.6
_SMALL_COUNT_LIMIT = 10
_SMALL_COUNT_SCALE = 10


def classify_health(value: float) -> str:
    """Return the vegetation health label for an NDVI value.

    Example:
        >>> classify_health(0.7)
        'Excellent'
        >>> classify_health(0.69999)
        'Good'
        >>> classify_health(0.0)
        'Very Poor'
    """
    for lower, label in _HEALTH_CLASSES:
        if value >= lower:
            return label
    return _HEALTH_FLOOR


def ndvi_range_label(mean: float) -> str:
    """Return the qualitative display range of a bucket centre."""
    for upper, label in _RANGE_LABELS:
        if mean < upper:
            return label
    return _RANGE_CEILING


def high_fraction_above(
    threshold: float,
    histogram: Sequence[float] | None,
    bucket_means: Sequence[float] | None,
) -> float | None:
    """Percentage of histogram counts in buckets centred above *threshold*.

    Args:
        threshold: Exclusive lower bound on the bucket mean.
        histogram: Per-bucket pixel counts.
        bucket_means: Per-bucket centre values, aligned with *histogram*.

    Returns:
        Percentage in ``[0, 100]``, or ``None`` if either input is
        missing or the total count is zero.

    Raises:
        ValueError: If the two sequences differ in length.

    Example:
        >>> high_fraction_above(0.6, [10, 20, 30], [0.2, 0.5, 0.8])
        50.0
    """
    if histogram is None or bucket_means is None:
        return None
    if len(histogram) != len(bucket_means):
        msg = (
            f"histogram has {len(histogram)} counts "
            f"but {len(bucket_means)} bucket means"
        )
        raise ValueError(msg)

    counts = np.asarray(histogram, dtype=np.float64)
    means = np.asarray(bucket_means, dtype=np.float64)
    total = float(counts.sum())
    if total == 0:
        return None
    high = float(counts[means > threshold].sum())
    return high / total * 100


def distribution_rows(distribution: Distribution | None) -> list[DistributionRow]:
    """Prepare histogram buckets for a bar chart.

    When every count is below 10 the display counts are multiplied by 10
    so the bars stay visible; ``true_count`` keeps the original value.
    """
    if distribution is None or not distribution.histogram:
        return []
    scale = (
        _SMALL_COUNT_SCALE
        if max(distribution.histogram) < _SMALL_COUNT_LIMIT
        else 1
    )
    return [
        DistributionRow(
            bucket_mean=round(mean, 2),
            count=count * scale,
            true_count=count,
            range_label=ndvi_range_label(mean),
        )
        for mean, count in zip(distribution.bucket_means, distribution.histogram)
    ]
