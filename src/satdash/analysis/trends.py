"""Time-series trend helpers: smoothing, changes, residual anomalies.

All helpers return ``None`` where a value cannot be computed (too few
observations, zero denominators, non-finite input) rather than ``NaN``
or infinity.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view


@dataclass
class ResidualAnomaly:
    """A time-step with a large seasonal-decomposition residual.

    Args:
        date: Date of the step, or ``None`` if the dates are shorter.
        residual: Signed residual value.
        magnitude: ``abs(residual)``.
    """

    date: str | None
    residual: float
    magnitude: float


def _finite_or_none(value: float) -> float | None:
    return value if math.isfinite(value) else None


def moving_average(
    series: Sequence[float | None],
    window_size: int,
) -> list[float | None]:
    """Trailing moving average.

    Index ``i`` holds the mean of ``series[i - window_size + 1 : i + 1]``;
    indices before ``window_size - 1`` hold ``None``.

    Raises:
        ValueError: If *window_size* is less than 1.

    Example:
        >>> moving_average([1, 2, 3, 4, 5], 3)
        [None, None, 2.0, 3.0, 4.0]
    """
    if window_size < 1:
        msg = "window_size must be at least 1"
        raise ValueError(msg)
    values = np.asarray(series, dtype=np.float64)
    if values.size < window_size:
        return [None] * values.size

    means = sliding_window_view(values, window_size).sum(axis=1) / window_size
    lead: list[float | None] = [None] * (window_size - 1)
    return lead + [_finite_or_none(float(m)) for m in means]


def percent_change(
    latest: float | None,
    previous: float | None,
) -> float | None:
    """Return ``(latest - previous) / previous * 100``.

    ``None`` when either value is missing or *previous* is zero.

    Example:
        >>> percent_change(75.0, 50.0)
        50.0
        >>> percent_change(0.5, 0.0) is None
        True
    """
    if latest is None or previous is None or previous == 0:
        return None
    return _finite_or_none((latest - previous) / previous * 100)


def series_change(values: Sequence[float]) -> float | None:
    """Percent change from the first to the last observation."""
    if len(values) < 2:
        return None
    return percent_change(values[-1], values[0])


def point_change(values: Sequence[float]) -> float | None:
    """Absolute change from the first to the last observation.

    Used for metrics that are already percentages.
    """
    if len(values) < 2:
        return None
    return _finite_or_none(values[-1] - values[0])


def top_residual_anomalies(
    residual: Sequence[float],
    dates: Sequence[str],
    n: int = 3,
) -> list[ResidualAnomaly]:
    """Return the *n* steps with the largest absolute residual.

    Ties keep their original order.
    """
    ranked = sorted(
        (
            ResidualAnomaly(
                date=dates[i] if i < len(dates) else None,
                residual=float(r),
                magnitude=abs(float(r)),
            )
            for i, r in enumerate(residual)
        ),
        key=lambda a: a.magnitude,
        reverse=True,
    )
    return ranked[:n]


def unlit_percentages(pct_bright: Sequence[float | None]) -> list[float]:
    """Percentage of unlit area per step (``100 - pct_bright``, floor 0)."""
    result: list[float] = []
    for pct in pct_bright:
        value = pct or 0.0
        result.append(0.0 if value >= 100 else 100 - value)
    return result
