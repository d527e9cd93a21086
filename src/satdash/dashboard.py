"""Dashboard orchestration: run analyses, cache them, derive views.

Each dashboard reads what it needs from the result cache and the typed
store, calls the backend only when asked to (or when nothing is cached),
and turns raw backend output into display-ready records.

Example:
    >>> from satdash import AnalysisClient, DashboardStore, ResultCache
    >>> store = DashboardStore.from_config()
    >>> cache = ResultCache(store)
    >>> nl = NightLightsDashboard(store, cache, AnalysisClient())
    >>> nl.ensure_results()  # doctest: +SKIP
    >>> nl.overview(hex_index=0, view="high")  # doctest: +SKIP
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from satdash._types import ChartRow, DistributionRow, HexCell, LatLon
from satdash.analysis.trends import (
    ResidualAnomaly,
    moving_average,
    percent_change,
    point_change,
    series_change,
    top_residual_anomalies,
    unlit_percentages,
)
from satdash.analysis.vegetation import (
    HIGH_NDVI_THRESHOLD,
    classify_health,
    distribution_rows,
    high_fraction_above,
)
from satdash.cache import PersistOutcome, ResultCache
from satdash.client import AnalysisClient, build_job
from satdash.exceptions import BackendError, ProjectionError, StorageError
from satdash.geo import build_hex_layer, filter_hex_cells
from satdash.models import (
    AgriParams,
    AgriSeriesPayload,
    AnalysisResult,
    AnalysisType,
    Dataset,
    DateRange,
    IndexStats,
    NaturalResourcesResult,
    Series,
)
from satdash.store import ClearScope, DashboardStore, StoreKey

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)
_NIGHT_LIGHTS_PREFIX = "night_lights"
_TREND_WINDOW = 3


# ── Session lifecycle ─────────────────────────────────────────────────


def start_exploration(store: DashboardStore) -> list[str]:
    """Drop state from the previous search when exploration (re)starts."""
    return store.clear(ClearScope.EXPLORATION)


def logout(store: DashboardStore) -> list[str]:
    """Drop every key the dashboards own, auth token included."""
    return store.clear(ClearScope.SESSION)


def explore(
    client: AnalysisClient,
    store: DashboardStore,
    location: str,
    category: str,
    date_from: str,
    date_to: str,
) -> list[Dataset]:
    """Start a new exploration: search datasets and store them.

    Clears the previous search first, then stores the found datasets and
    the agriculture parameters (location and date range) the dashboards
    read.

    Raises:
        BackendError: If the search fails. The store has already been
            cleared by then.
    """
    start_exploration(store)
    datasets = client.search_datasets(location, category, date_from, date_to)
    store.set_datasets(datasets)
    store.set_agri_params(
        AgriParams(location=location, date_range=DateRange(from_=date_from, to=date_to))
    )
    logger.info("Found %d datasets for %r (%s)", len(datasets), location, category)
    return datasets


# ── Running analyses ──────────────────────────────────────────────────


def run_analysis(
    client: AnalysisClient,
    cache: ResultCache,
    dataset: Dataset,
    analysis: str,
) -> tuple[AnalysisResult, PersistOutcome]:
    """Analyse one dataset and cache the result.

    Raises:
        ValueError: If the dataset has no data asset URL.
        BackendError: If the backend request fails.
    """
    result = client.analyse(dataset, analysis)
    outcome = cache.upsert(result)
    if not outcome.ok:
        logger.warning("Result for %s not cached: %s", result.dataset_id, outcome.error)
    return result, outcome


def run_all(
    client: AnalysisClient,
    cache: ResultCache,
    datasets: list[Dataset],
    selections: Mapping[str, str] | None = None,
    default_analysis: str = AnalysisType.NIGHT_LIGHTS.value,
) -> tuple[list[AnalysisResult], PersistOutcome]:
    """Batch-analyse *datasets* and cache every successful result.

    Args:
        client: Backend client.
        cache: Result cache to upsert into.
        datasets: Datasets to analyse.
        selections: Dataset id to analysis type; unlisted datasets use
            *default_analysis*.
        default_analysis: Analysis for datasets without a selection.

    Returns:
        Successful results in backend order, and the cache outcome.

    Raises:
        ValueError: If *datasets* is empty or one lacks a data URL.
        BackendError: If the backend request fails.
    """
    if not datasets:
        msg = "No datasets to analyse."
        raise ValueError(msg)
    chosen = selections or {}
    jobs = [build_job(ds, chosen.get(ds.id, default_analysis)) for ds in datasets]

    results = client.analyse_all_nights(jobs)
    succeeded = [r for r in results if r.succeeded]
    for failed in results:
        if not failed.succeeded:
            logger.warning(
                "Backend could not analyse %s: %s", failed.dataset_id, failed.error
            )
    outcome = cache.upsert_batch(succeeded)
    return succeeded, outcome


def run_agri_series(
    client: AnalysisClient,
    store: DashboardStore,
    cache: ResultCache,
    datasets: list[Dataset],
) -> AgriSeriesPayload:
    """Run the agriculture time-series batch and persist its output.

    The per-image results go into the result cache and the whole payload
    is kept under ``seriesResults``.
    """
    if not datasets:
        msg = "No datasets to analyse."
        raise ValueError(msg)
    jobs = [build_job(ds, AnalysisType.AGRICULTURE_HOTSPOT.value) for ds in datasets]
    payload = client.analyse_all_agri(jobs)
    cache.upsert_batch([r for r in payload.results if r.succeeded])
    try:
        store.set_series_results(payload)
    except StorageError as exc:
        logger.warning("Agriculture series not saved: %s", exc)
    return payload


def _store_report(store: DashboardStore, key: StoreKey, report: dict[str, Any]) -> None:
    try:
        store.set_report(key, report)
    except StorageError as exc:
        logger.warning("Report %s not saved: %s", key.value, exc)


# ── Night-time lights ─────────────────────────────────────────────────


@dataclass
class NightLightsKpis:
    """First-to-last changes shown on the KPI cards.

    ``avg_radiance_change`` and ``lit_area_change`` are percentages;
    ``pct_bright_change`` is in percentage points.
    """

    avg_radiance_change: float | None = None
    lit_area_change: float | None = None
    pct_bright_change: float | None = None


@dataclass
class NightLightsOverview:
    """Everything the night-lights overview renders."""

    dataset_id: str
    dates: list[str]
    avg_radiance: list[float]
    kpis: NightLightsKpis
    unlit: list[float]
    anomalies: list[ResidualAnomaly]
    hex_cells: list[HexCell] = field(default_factory=list)
    forecast_dates: list[str] = field(default_factory=list)
    forecast_values: list[float] = field(default_factory=list)


class NightLightsDashboard:
    """Night-time lights dashboard built on the first cached result.

    Args:
        store: Typed dashboard store (datasets, reports).
        cache: Analysis result cache.
        client: Backend client.
    """

    def __init__(
        self,
        store: DashboardStore,
        cache: ResultCache,
        client: AnalysisClient,
    ) -> None:
        self._store = store
        self._cache = cache
        self._client = client

    def ensure_results(self) -> list[AnalysisResult]:
        """Return cached results, running the batch analysis if none exist.

        Backend failures are logged and leave the dashboard empty.
        """
        cached = self._cache.load_all()
        if cached:
            return cached
        datasets = self._store.datasets()
        if not datasets:
            return []
        try:
            results, outcome = run_all(self._client, self._cache, datasets)
        except (ValueError, BackendError) as exc:
            logger.warning("Night-lights analysis not started: %s", exc)
            return []
        return self._cache.load_all() if outcome.ok else results

    def _center(self) -> LatLon:
        datasets = self._store.datasets()
        if not datasets:
            return (0.0, 0.0)
        first = datasets[0]
        return (first.lat or 0.0, first.lon or 0.0)

    def overview(self, hex_index: int = 0, view: str = "all") -> NightLightsOverview | None:
        """Derive KPI, chart and map data from the first cached result.

        Args:
            hex_index: Time-step whose radiance weights the hex layer.
            view: Hex brightness band (``all``, ``high``, ``medium``, ``low``).

        Returns:
            The overview, or ``None`` when nothing is cached.
        """
        results = self._cache.load_all()
        if not results:
            return None
        first = results[0]
        series = first.series or Series()

        avg = [float(v or 0.0) for v in series.metric("avg_radiance")]
        kpis = NightLightsKpis(
            avg_radiance_change=series_change(avg),
            lit_area_change=series_change(series.metric("lit_area_km2")),
            pct_bright_change=point_change(series.metric("pct_bright")),
        )

        cells: list[HexCell] = []
        coords = series.pca.coords if series.pca else []
        if coords:
            cfg = self._store.config
            try:
                cells = build_hex_layer(
                    coords,
                    self._center(),
                    avg,
                    hex_index,
                    pixel_size_m=cfg.pixel_size_m,
                    km_per_degree=cfg.km_per_degree,
                )
            except ProjectionError as exc:
                logger.warning("Hex layer skipped for %s: %s", first.dataset_id, exc)
            cells = filter_hex_cells(cells, view, max(avg) if avg else 0.0)

        forecast = series.forecast
        return NightLightsOverview(
            dataset_id=first.dataset_id,
            dates=list(series.dates),
            avg_radiance=avg,
            kpis=kpis,
            unlit=unlit_percentages(series.metric("pct_bright")),
            anomalies=top_residual_anomalies(series.metric("residual"), series.dates),
            hex_cells=cells,
            forecast_dates=list(forecast.dates) if forecast else [],
            forecast_values=list(forecast.avg_radiance) if forecast else [],
        )

    def generate_report(self) -> dict[str, Any]:
        """Request the night-lights report and keep it in the store.

        Raises:
            ValueError: If no datasets or night-lights results exist.
            BackendError: If the report request fails.
        """
        datasets = self._store.datasets()
        results = [
            r
            for r in self._cache.load_all()
            if r.dataset_id.startswith(_NIGHT_LIGHTS_PREFIX)
        ]
        if not datasets or not results:
            msg = "No night-lights data available. Run the analysis first."
            raise ValueError(msg)
        report = self._client.report_night_lights(datasets, results)
        _store_report(self._store, StoreKey.NIGHT_LIGHTS_REPORT, report)
        return report


# ── Agriculture ───────────────────────────────────────────────────────


@dataclass
class AgriImageResult:
    """A single-image agriculture result with derived fields."""

    result: AnalysisResult
    ndvi: IndexStats
    health: str
    high_ndvi_percentage: float | None
    observed_at: datetime | None


@dataclass
class AgriSummary:
    """Headline figures for the latest image."""

    current_ndvi: float
    health: str
    ndvi_min: float | None
    ndvi_max: float | None
    ndvi_change: float | None
    analysis_count: int
    last_updated: datetime | None


@dataclass
class ComparisonRow:
    observed_at: datetime | None
    mean: float
    min: float | None
    max: float | None
    range: float | None
    std_dev: float | None


class AgricultureDashboard:
    """NDVI hotspot dashboard over cached agriculture results.

    Args:
        store: Typed dashboard store (series payload, parameters, reports).
        cache: Analysis result cache.
        client: Backend client.
        trend_window: Moving-average window for the series chart.
    """

    def __init__(
        self,
        store: DashboardStore,
        cache: ResultCache,
        client: AnalysisClient,
        trend_window: int = _TREND_WINDOW,
    ) -> None:
        self._store = store
        self._cache = cache
        self._client = client
        self._trend_window = trend_window

    def single_results(self) -> list[AgriImageResult]:
        """Agriculture results that carry an NDVI mean, oldest first."""
        rows: list[AgriImageResult] = []
        for result in self._cache.by_analysis(AnalysisType.AGRICULTURE_HOTSPOT.value):
            ndvi = result.index_stats("NDVI")
            if ndvi is None:
                continue
            dist = result.distribution
            rows.append(
                AgriImageResult(
                    result=result,
                    ndvi=ndvi,
                    health=classify_health(ndvi.mean),
                    high_ndvi_percentage=(
                        high_fraction_above(
                            HIGH_NDVI_THRESHOLD, dist.histogram, dist.bucket_means
                        )
                        if dist is not None
                        else None
                    ),
                    observed_at=result.parsed_timestamp(),
                )
            )
        rows.sort(key=lambda r: r.observed_at or _EPOCH)
        return rows

    def summary(self) -> AgriSummary | None:
        """Latest NDVI, its health and change against the previous image."""
        singles = self.single_results()
        if not singles:
            return None
        latest = singles[-1]
        previous = singles[-2] if len(singles) > 1 else None
        return AgriSummary(
            current_ndvi=latest.ndvi.mean,
            health=latest.health,
            ndvi_min=latest.ndvi.min,
            ndvi_max=latest.ndvi.max,
            ndvi_change=(
                percent_change(latest.ndvi.mean, previous.ndvi.mean)
                if previous is not None
                else None
            ),
            analysis_count=len(singles),
            last_updated=latest.observed_at,
        )

    def series_chart(self) -> list[ChartRow]:
        """Mean NDVI per date with trend line and flags."""
        payload = self._store.series_results()
        series = payload.chart_series() if payload is not None else None
        if series is None:
            return []
        values = series.metric("mean")
        if not values or len(values) != len(series.dates):
            logger.warning(
                "Series has %d mean values for %d dates; no chart",
                len(values),
                len(series.dates),
            )
            return []
        trend = moving_average(values, self._trend_window)
        return [
            ChartRow(
                date=point.date,
                value=values[point.index],
                trend=trend[point.index],
                is_anomaly=point.is_anomaly,
                is_breakpoint=point.is_breakpoint,
            )
            for point in series.points()
        ]

    def distribution(self, result: AnalysisResult) -> list[DistributionRow]:
        return distribution_rows(result.distribution)

    def comparison_rows(self) -> list[ComparisonRow]:
        rows: list[ComparisonRow] = []
        for single in self.single_results():
            s = single.ndvi
            rows.append(
                ComparisonRow(
                    observed_at=single.observed_at,
                    mean=s.mean,
                    min=s.min,
                    max=s.max,
                    range=(s.max - s.min) if s.max is not None and s.min is not None else None,
                    std_dev=s.std_dev,
                )
            )
        return rows

    def generate_report(self) -> dict[str, Any]:
        """Request the agriculture report and keep it in the store.

        Raises:
            ValueError: If single-image or time-series results are missing.
            BackendError: If the report request fails.
        """
        singles = self.single_results()
        payload = self._store.series_results()
        if not singles or payload is None or payload.series is None:
            msg = "Please run both single-image and time-series analyses first"
            raise ValueError(msg)

        params = self._store.agri_params()
        body: dict[str, Any] = {
            "datasets": [
                d.model_dump(mode="json", exclude_none=True)
                for d in self._store.datasets()
            ],
            "location": params.location if params else "",
            "date_range": (
                params.date_range.model_dump(by_alias=True)
                if params
                else {"from": "", "to": ""}
            ),
            "singleResults": [s.result.to_json_dict() for s in singles],
            "series": payload.series.model_dump(mode="json", exclude_none=True),
            "anomalies": list(payload.anomalies),
            "breakpoints": list(payload.breakpoints),
        }
        report = self._client.report_agri(body)
        _store_report(self._store, StoreKey.AGRI_REPORT, report)
        return report


# ── Natural resources ─────────────────────────────────────────────────


@dataclass
class TrendPoint:
    label: str
    t: int
    value: float


def record_natural_resources(
    store: DashboardStore,
    result: NaturalResourcesResult,
    t: int | None = None,
) -> list[TrendPoint]:
    """Keep *result* and append its forest share to the location history.

    Returns:
        The bounded history as trend points labelled ``Day N`` down to
        ``Today`` for the newest point.
    """
    try:
        store.set_natural_resources_result(result)
    except StorageError as exc:
        logger.warning("Natural resources result not saved: %s", exc)

    history = store.append_history(
        result.location, result.forest_segmentation_percentage, t=t
    )
    last = len(history) - 1
    return [
        TrendPoint(
            label="Today" if i == last else f"Day {last - i}",
            t=entry.t,
            value=entry.v,
        )
        for i, entry in enumerate(history)
    ]
