"""Tests for backend payload models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pandas as pd
import pytest
from pydantic import ValidationError

from satdash.models import (
    AgriSeriesPayload,
    AnalysisResult,
    Dataset,
    DateRange,
    Distribution,
    Forecast,
    NaturalResourcesResult,
    Series,
)


def _night_series() -> dict[str, Any]:
    return {
        "dates": ["2024-01-01", "2024-02-01", "2024-03-01"],
        "avg_radiance": [5.0, 6.0, 7.5],
        "lit_area_km2": [100.0, 110.0, 120.0],
        "pct_bright": [10.0, 12.0, 15.0],
        "residual": [0.1, -0.9, 0.3],
        "anomalies": ["2024-02-01", "2030-01-01"],
        "pca": {"coords": [[0, 0], [1, -2]], "x": [0.1, 0.2], "y": [0.3, 0.4]},
        "forecast": {"dates": ["2024-04-01"], "avg_radiance": [7.9]},
    }


@pytest.mark.unit
class TestDistribution:
    def test_alias(self) -> None:
        dist = Distribution.model_validate(
            {"histogram": [1, 2], "bucketMeans": [0.1, 0.2]}
        )
        assert dist.bucket_means == [0.1, 0.2]

    def test_misaligned_rejected(self) -> None:
        with pytest.raises(ValidationError, match="bucket means"):
            Distribution(histogram=[1, 2], bucket_means=[0.1])


@pytest.mark.unit
class TestSeries:
    def test_metrics(self) -> None:
        series = Series.model_validate(_night_series())
        assert set(series.metric_names()) == {
            "avg_radiance",
            "lit_area_km2",
            "pct_bright",
            "residual",
        }
        assert series.metric("avg_radiance") == [5.0, 6.0, 7.5]
        assert series.metric("missing") == []

    def test_misaligned_metric_rejected(self) -> None:
        with pytest.raises(ValidationError, match="mean"):
            Series(dates=["a", "b"], mean=[0.1])

    def test_out_of_range_flag_rejected(self) -> None:
        with pytest.raises(ValidationError, match="outside"):
            Series(dates=["a", "b"], mean=[0.1, 0.2], breakpoints=[2])

    def test_no_dates_skips_alignment(self) -> None:
        """Single-image blocks carry arrays without dates."""
        series = Series(histogram=[1, 2, 3])
        assert series.metric("histogram") == [1, 2, 3]

    def test_date_anomalies_resolved(self) -> None:
        series = Series.model_validate(_night_series())
        assert series.anomaly_indices() == {1}

    def test_points(self) -> None:
        series = Series(
            dates=["a", "b", "c"],
            mean=[0.1, 0.2, 0.3],
            anomalies=[2],
            breakpoints=[1],
        )
        points = series.points()
        assert [p.date for p in points] == ["a", "b", "c"]
        assert points[1].metrics == {"mean": 0.2}
        assert [p.is_anomaly for p in points] == [False, False, True]
        assert [p.is_breakpoint for p in points] == [False, True, False]

    def test_pca_coords_tuples(self) -> None:
        series = Series.model_validate(_night_series())
        assert series.pca is not None
        assert series.pca.coords == [(0.0, 0.0), (1.0, -2.0)]

    def test_to_dataframe(self) -> None:
        series = Series(
            dates=["a", "b"],
            mean=[0.3, 0.4],
            histograms=[[1, 2], [3, 4]],
            anomalies=[1],
        )
        df = series.to_dataframe()
        assert isinstance(df, pd.DataFrame)
        assert df.columns.tolist() == ["date", "mean", "is_anomaly", "is_breakpoint"]
        assert df["is_anomaly"].tolist() == [False, True]

    def test_to_dataframe_empty(self) -> None:
        df = Series().to_dataframe()
        assert df.empty
        assert "date" in df.columns


@pytest.mark.unit
class TestForecast:
    def test_misaligned_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Forecast(dates=["a"], avg_radiance=[])


@pytest.mark.unit
class TestAnalysisResult:
    def test_index_stats(self) -> None:
        result = AnalysisResult(
            dataset_id="S2_1",
            stats={"NDVI_mean": 0.5, "NDVI_min": 0.1, "NDVI_stdDev": 0.05},
        )
        stats = result.index_stats()
        assert stats is not None
        assert stats.mean == 0.5
        assert stats.min == 0.1
        assert stats.max is None
        assert stats.std_dev == 0.05

    def test_index_stats_without_mean(self) -> None:
        assert AnalysisResult(dataset_id="x").index_stats() is None

    def test_succeeded(self) -> None:
        assert AnalysisResult(dataset_id="x").succeeded
        assert not AnalysisResult(dataset_id="x", error="boom").succeeded

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (
                "2024-05-01T10:00:00Z",
                datetime(2024, 5, 1, 10, tzinfo=timezone.utc),
            ),
            (
                "2024-05-01T10:00:00",
                datetime(2024, 5, 1, 10, tzinfo=timezone.utc),
            ),
            ("not a date", None),
            ("", None),
        ],
    )
    def test_parsed_timestamp(self, raw: str, expected: datetime | None) -> None:
        assert AnalysisResult(dataset_id="x", timestamp=raw).parsed_timestamp() == (
            expected
        )

    def test_to_json_dict_round_trip(self) -> None:
        payload = {
            "dataset_id": "viirs_1",
            "analysis": "night_lights",
            "timestamp": "2024-05-01T10:00:00Z",
            "distribution": {"histogram": [1], "bucketMeans": [0.5]},
            "series": _night_series(),
            "plots": {"map": "https://x/map.png"},
        }
        result = AnalysisResult.model_validate(payload)
        dumped = result.to_json_dict()
        assert dumped["distribution"]["bucketMeans"] == [0.5]
        assert dumped["plots"] == {"map": "https://x/map.png"}
        assert "error" not in dumped
        assert AnalysisResult.model_validate(dumped) == result

    def test_dataset_id_required(self) -> None:
        with pytest.raises(ValidationError):
            AnalysisResult.model_validate({"analysis": "night_lights"})


@pytest.mark.unit
class TestPayloads:
    def test_dataset_defaults(self) -> None:
        ds = Dataset(id="d1")
        assert ds.assets.data is None
        assert ds.lat is None

    def test_date_range_alias(self) -> None:
        rng = DateRange.model_validate({"from": "2024-01-01", "to": "2024-02-01"})
        assert rng.from_ == "2024-01-01"
        assert rng.model_dump(by_alias=True) == {
            "from": "2024-01-01",
            "to": "2024-02-01",
        }

    def test_agri_chart_series_folds_flags(self) -> None:
        payload = AgriSeriesPayload.model_validate(
            {
                "series": {"dates": ["a", "b", "c"], "mean": [0.2, 0.3, 0.4]},
                "anomalies": [0],
                "breakpoints": [2],
            }
        )
        series = payload.chart_series()
        assert series is not None
        assert series.anomalies == [0]
        assert series.breakpoints == [2]
        assert series.metric("mean") == [0.2, 0.3, 0.4]

    def test_agri_chart_series_without_series(self) -> None:
        assert AgriSeriesPayload().chart_series() is None

    def test_natural_resources_requires_fields(self) -> None:
        with pytest.raises(ValidationError):
            NaturalResourcesResult.model_validate({"location": "Cairo"})
