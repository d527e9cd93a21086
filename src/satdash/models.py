"""Data model for backend analysis payloads and persisted records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from satdash._types import SeriesPoint

if TYPE_CHECKING:
    import pandas as pd


class AnalysisType(str, Enum):
    """Analysis kinds the backend knows how to run."""

    AGRICULTURE_HOTSPOT = "agriculture_hotspot"
    NIGHT_LIGHTS = "night_lights"


@dataclass
class IndexStats:
    """Summary statistics of one spectral index.

    Example:
        >>> IndexStats(mean=0.42, min=0.1, max=0.8, std_dev=0.08).mean
        0.42
    """

    mean: float
    min: float | None = None
    max: float | None = None
    std_dev: float | None = None


class Distribution(BaseModel):
    """Histogram of index values.

    ``histogram[i]`` is the pixel count of the bucket centred on
    ``bucket_means[i]``; both lists must have the same length.
    """

    model_config = ConfigDict(populate_by_name=True)

    histogram: list[float] = Field(default_factory=list)
    bucket_means: list[float] = Field(default_factory=list, alias="bucketMeans")

    @model_validator(mode="after")
    def _check_alignment(self) -> Distribution:
        if len(self.histogram) != len(self.bucket_means):
            msg = (
                f"distribution has {len(self.histogram)} counts "
                f"but {len(self.bucket_means)} bucket means"
            )
            raise ValueError(msg)
        return self


class Percentiles(BaseModel):
    p25: float | None = None
    p50: float | None = None
    p75: float | None = None


class PcaBlock(BaseModel):
    """PCA projection of per-pixel temporal behaviour.

    ``coords`` holds the ``[row, column]`` pixel offset of every lit pixel;
    ``x`` and ``y`` are its first two principal components.
    """

    coords: list[tuple[float, float]] = Field(default_factory=list)
    x: list[float] = Field(default_factory=list)
    y: list[float] = Field(default_factory=list)


class Forecast(BaseModel):
    dates: list[str] = Field(default_factory=list)
    avg_radiance: list[float] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_alignment(self) -> Forecast:
        if len(self.dates) != len(self.avg_radiance):
            msg = "forecast dates and values differ in length"
            raise ValueError(msg)
        return self


class Series(BaseModel):
    """Time-series block: ``dates`` plus index-aligned metric arrays.

    Metric arrays are the extra keys of the block (``mean``,
    ``avg_radiance``, ``lit_area_km2`` ...). When ``dates`` is non-empty
    every list-valued metric must have exactly one value per date, and
    integer anomaly/breakpoint positions must fall inside the series.
    A block without dates (single-image payloads) is kept as-is.
    """

    model_config = ConfigDict(extra="allow")

    dates: list[str] = Field(default_factory=list)
    anomalies: list[int | str] = Field(default_factory=list)
    breakpoints: list[int] = Field(default_factory=list)
    pca: PcaBlock | None = None
    forecast: Forecast | None = None

    @model_validator(mode="after")
    def _check_alignment(self) -> Series:
        n = len(self.dates)
        if n == 0:
            return self
        for name, values in (self.model_extra or {}).items():
            if isinstance(values, list) and len(values) != n:
                msg = (
                    f"series metric {name!r} has {len(values)} values "
                    f"for {n} dates"
                )
                raise ValueError(msg)
        positions = [a for a in self.anomalies if isinstance(a, int)]
        for pos in [*positions, *self.breakpoints]:
            if not 0 <= pos < n:
                msg = f"series flag position {pos} outside 0..{n - 1}"
                raise ValueError(msg)
        return self

    def metric_names(self) -> list[str]:
        """Return the names of list-valued metric arrays."""
        return [
            name
            for name, values in (self.model_extra or {}).items()
            if isinstance(values, list)
        ]

    def metric(self, name: str) -> list[Any]:
        """Return metric array *name*, or an empty list if absent."""
        values = (self.model_extra or {}).get(name)
        return list(values) if isinstance(values, list) else []

    def anomaly_indices(self) -> set[int]:
        """Resolve anomalies to positions.

        Agriculture payloads flag anomalies by index, night-lights
        payloads by date string; dates not in the series are ignored.
        """
        lookup = {d: i for i, d in enumerate(self.dates)}
        result: set[int] = set()
        for flag in self.anomalies:
            if isinstance(flag, int):
                result.add(flag)
            elif flag in lookup:
                result.add(lookup[flag])
        return result

    def points(self) -> list[SeriesPoint]:
        """Convert the block into one record per time-step."""
        anomalies = self.anomaly_indices()
        breakpoints = set(self.breakpoints)
        names = self.metric_names()
        arrays = {name: self.metric(name) for name in names}
        return [
            SeriesPoint(
                index=i,
                date=date,
                metrics={name: arrays[name][i] for name in names},
                is_anomaly=i in anomalies,
                is_breakpoint=i in breakpoints,
            )
            for i, date in enumerate(self.dates)
        ]

    def to_dataframe(self) -> pd.DataFrame:
        """Export the scalar metrics to a DataFrame, one row per date.

        Nested per-step values (histograms, cluster size lists) are
        left out.

        Example:
            >>> s = Series(dates=["2024-01-01", "2024-02-01"], mean=[0.3, 0.4])
            >>> s.to_dataframe().columns.tolist()
            ['date', 'mean', 'is_anomaly', 'is_breakpoint']
        """
        import pandas as pd

        rows: list[dict[str, Any]] = []
        for point in self.points():
            row: dict[str, Any] = {"date": point.date}
            for name, value in point.metrics.items():
                if isinstance(value, (int, float)) or value is None:
                    row[name] = value
            row["is_anomaly"] = point.is_anomaly
            row["is_breakpoint"] = point.is_breakpoint
            rows.append(row)
        if not rows:
            return pd.DataFrame(columns=["date", "is_anomaly", "is_breakpoint"])
        return pd.DataFrame(rows)


class AnalysisResult(BaseModel):
    """Backend output for one dataset.

    Unknown backend keys (``metrics``, ``plots``, ``metrics_over_time``,
    ``geometry``) are preserved so a cached result round-trips verbatim.

    Example:
        >>> r = AnalysisResult(
        ...     dataset_id="S2_20240501",
        ...     analysis="agriculture_hotspot",
        ...     timestamp="2024-05-01T10:00:00Z",
        ...     stats={"NDVI_mean": 0.52, "NDVI_min": 0.1, "NDVI_max": 0.9},
        ... )
        >>> r.index_stats().mean
        0.52
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    dataset_id: str
    analysis: str | None = None
    timestamp: str = ""
    stats: dict[str, float | None] = Field(default_factory=dict)
    distribution: Distribution | None = None
    percentiles: Percentiles | None = None
    series: Series | None = None
    assets: dict[str, str | None] = Field(default_factory=dict)
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def index_stats(self, index: str = "NDVI") -> IndexStats | None:
        """Return the ``<index>_*`` statistics, or ``None`` without a mean."""
        mean = self.stats.get(f"{index}_mean")
        if mean is None:
            return None
        return IndexStats(
            mean=mean,
            min=self.stats.get(f"{index}_min"),
            max=self.stats.get(f"{index}_max"),
            std_dev=self.stats.get(f"{index}_stdDev"),
        )

    def parsed_timestamp(self) -> datetime | None:
        """Parse ``timestamp`` as an aware datetime; ``None`` if invalid.

        A ``Z`` suffix is accepted and naive timestamps are taken as UTC.
        """
        if not self.timestamp:
            return None
        try:
            parsed = datetime.fromisoformat(self.timestamp.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize with backend field names, dropping unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class DatasetAssets(BaseModel):
    model_config = ConfigDict(extra="allow")

    data: str | None = None


class Dataset(BaseModel):
    """Dataset descriptor returned by the dataset search."""

    model_config = ConfigDict(extra="allow")

    id: str
    assets: DatasetAssets = Field(default_factory=DatasetAssets)
    lat: float | None = None
    lon: float | None = None


class DateRange(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: str = Field(default="", alias="from")
    to: str = ""


class AgriParams(BaseModel):
    """Location and date range of the current agriculture search."""

    location: str
    date_range: DateRange = Field(default_factory=DateRange)


class AgriSeriesPayload(BaseModel):
    """Batch agriculture response: per-image results plus a shared series.

    Anomalies and breakpoints are sent at the top level, next to the
    series rather than inside it.
    """

    model_config = ConfigDict(extra="allow")

    results: list[AnalysisResult] = Field(default_factory=list)
    summary: dict[str, float] = Field(default_factory=dict)
    series: Series | None = None
    anomalies: list[int] = Field(default_factory=list)
    breakpoints: list[int] = Field(default_factory=list)

    def chart_series(self) -> Series | None:
        """Return the series with the top-level flags folded in."""
        if self.series is None:
            return None
        data = self.series.model_dump()
        data["anomalies"] = list(self.anomalies) or data.get("anomalies", [])
        data["breakpoints"] = list(self.breakpoints) or data.get("breakpoints", [])
        return Series.model_validate(data)


class NaturalResourcesResult(BaseModel):
    """Natural-resources segmentation summary for one location."""

    model_config = ConfigDict(extra="allow")

    location: str
    latitude: float
    longitude: float
    timestamp: str

    forest_area_percentage: float
    water_body_percentage: float
    mineral_richness_index: float
    soil_moisture_index: float
    enhanced_water_body_percentage: float

    forest_segmentation_percentage: float
    water_segmentation_percentage: float
    builtup_segmentation_percentage: float
    soil_segmentation_percentage: float

    preview_png: str
    mask_tif: str
    summary_csv: str
    raw_png: str | None = None


class HistoryEntry(BaseModel):
    """One point of a per-location measurement history.

    Args:
        t: Measurement time in epoch milliseconds.
        v: Measured value.
    """

    t: int
    v: float
