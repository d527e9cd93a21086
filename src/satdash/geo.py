"""Pixel-offset to geographic projection for hexagon map layers.

Pure computation module. Converts ``(row, column)`` pixel offsets around
a known centre into latitude/longitude using a flat local approximation:
pixel offsets become kilometres, kilometres become degrees at
``km_per_degree``, and longitude degrees are widened by
``1 / cos(latitude)``.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import Any

import numpy as np
import numpy.typing as npt

from satdash._types import RGB, HexCell, LatLon, PixelOffset
from satdash.config import KM_PER_DEGREE, PIXEL_SIZE_M
from satdash.exceptions import ProjectionError

# Below this cos(latitude) a column offset would map to an unbounded
# longitude delta (centre within ~0.00006 degrees of a pole).
_MIN_COS_LAT = 1e-9

_LOW_RGB: RGB = (59, 130, 246)
_MID_RGB: RGB = (139, 92, 246)
_HIGH_RGB: RGB = (249, 115, 22)

HEX_VIEWS = ("all", "high", "medium", "low")


def _cos_center_lat(center: LatLon) -> float:
    lat, lon = center
    if not (-90.0 <= lat <= 90.0) or not math.isfinite(lon):
        raise ProjectionError(
            what="Cannot project pixel offsets",
            cause=f"Centre ({lat}, {lon}) is not a valid WGS84 point",
            fix="Pass the dataset centre as (lat, lon) in degrees",
        )
    cos_lat = math.cos((lat * math.pi) / 180)
    if abs(cos_lat) < _MIN_COS_LAT:
        raise ProjectionError(
            what="Cannot project pixel offsets",
            cause=f"Centre latitude {lat} is at a pole",
            fix="Use a centre latitude strictly between -90 and 90",
        )
    return cos_lat


def project_offset(
    offset: PixelOffset,
    center: LatLon,
    pixel_size_m: float = PIXEL_SIZE_M,
    km_per_degree: float = KM_PER_DEGREE,
) -> LatLon:
    """Project one pixel offset to ``(lat, lon)``.

    Args:
        offset: ``(row, column)`` offset in pixels; rows move north.
        center: ``(lat, lon)`` of the raster origin in degrees.
        pixel_size_m: Ground size of one pixel in metres.
        km_per_degree: Kilometres per degree of latitude.

    Returns:
        Projected ``(lat, lon)``.

    Raises:
        ProjectionError: If the centre is invalid or at a pole.

    Example:
        >>> project_offset((0, 0), (30.0, 31.0))
        (30.0, 31.0)
    """
    cos_lat = _cos_center_lat(center)
    y, x = offset
    dy_km = (y * pixel_size_m) / 1000
    dx_km = (x * pixel_size_m) / 1000
    d_lat = dy_km / km_per_degree
    d_lon = dx_km / (km_per_degree * cos_lat)
    return (center[0] + d_lat, center[1] + d_lon)


def project_offsets(
    coords: Sequence[PixelOffset] | npt.NDArray[np.floating[Any]],
    center: LatLon,
    pixel_size_m: float = PIXEL_SIZE_M,
    km_per_degree: float = KM_PER_DEGREE,
) -> npt.NDArray[np.float64]:
    """Project many offsets at once.

    Performs the same float64 operations in the same order as
    ``project_offset``, so every row matches the scalar result exactly.

    Returns:
        Array of shape ``(N, 2)`` with ``lat, lon`` columns.
    """
    cos_lat = _cos_center_lat(center)
    arr = np.asarray(coords, dtype=np.float64).reshape(-1, 2)
    dy_km = (arr[:, 0] * pixel_size_m) / 1000
    dx_km = (arr[:, 1] * pixel_size_m) / 1000
    lat = center[0] + dy_km / km_per_degree
    lon = center[1] + dx_km / (km_per_degree * cos_lat)
    return np.column_stack([lat, lon])


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def color_for_value(value: float, lo: float, hi: float) -> RGB:
    """Map *value* in ``[lo, hi]`` to a blue→purple→orange colour.

    Values outside the range are clamped; a degenerate range maps to the
    low colour.

    Example:
        >>> color_for_value(0.0, 0.0, 10.0)
        (59, 130, 246)
        >>> color_for_value(10.0, 0.0, 10.0)
        (249, 115, 22)
    """
    ratio = 0.0 if hi == lo else (value - lo) / (hi - lo)
    ratio = min(max(ratio, 0.0), 1.0)
    if ratio < 0.5:
        start, end, t = _LOW_RGB, _MID_RGB, ratio * 2
    else:
        start, end, t = _MID_RGB, _HIGH_RGB, (ratio - 0.5) * 2
    r, g, b = (_round_half_up(s + (e - s) * t) for s, e in zip(start, end))
    return (r, g, b)


def _as_weight(value: float | None) -> float:
    if value is None or math.isnan(value):
        return 0.0
    return float(value)


def build_hex_layer(
    coords: Sequence[PixelOffset],
    center: LatLon,
    values: Sequence[float | None],
    index: int,
    pixel_size_m: float = PIXEL_SIZE_M,
    km_per_degree: float = KM_PER_DEGREE,
) -> list[HexCell]:
    """Build hexagon-layer points for one time-step.

    Every PCA pixel is placed on the map and weighted by the series
    value at *index* (clamped into range).

    Args:
        coords: PCA ``(row, column)`` pixel offsets.
        center: Dataset centre ``(lat, lon)``.
        values: Per-step series values (e.g. average radiance).
        index: Time-step to colour by.
        pixel_size_m: Ground size of one pixel in metres.
        km_per_degree: Kilometres per degree of latitude.

    Returns:
        One ``HexCell`` per coordinate, positioned ``(lon, lat)``.
    """
    if not coords:
        return []
    weights = [_as_weight(v) for v in values]
    step = min(max(index, 0), len(weights) - 1) if weights else -1
    weight = weights[step] if step >= 0 else 0.0
    max_value = max(weights) if weights else 0.0
    color = color_for_value(weight, 0.0, max_value or 1.0)

    points = project_offsets(coords, center, pixel_size_m, km_per_degree)
    return [
        HexCell(
            position=(float(lon), float(lat)),
            weight=weight,
            elevation=weight * 5,
            color=color,
        )
        for lat, lon in points
    ]


def filter_hex_cells(
    cells: list[HexCell],
    view: str,
    max_value: float,
) -> list[HexCell]:
    """Filter cells to a brightness band.

    ``high`` keeps weights above 75% of *max_value*, ``medium`` those in
    (30%, 75%], ``low`` those at or below 30%. ``all`` and unknown views
    keep everything.
    """
    high = max_value * 0.75
    low = max_value * 0.3
    if view == "high":
        return [c for c in cells if c.weight > high]
    if view == "medium":
        return [c for c in cells if low < c.weight <= high]
    if view == "low":
        return [c for c in cells if c.weight <= low]
    return list(cells)
