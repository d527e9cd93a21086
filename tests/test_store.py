"""Tests for the typed, schema-versioned dashboard store."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from satdash.config import Config
from satdash.exceptions import StorageQuotaError
from satdash.models import AgriParams, AgriSeriesPayload, Dataset, DateRange
from satdash.storage import LocalStore
from satdash.store import (
    HISTORY_PREFIX,
    SCHEMA_VERSION,
    ClearScope,
    DashboardStore,
    StoreKey,
    history_key,
)


@pytest.fixture
def populated(dash_store: DashboardStore) -> DashboardStore:
    """Store with every owned key plus a history and a foreign key."""
    for key in StoreKey:
        dash_store.write(key, f"value-{key.value}")
    dash_store.append_history("Cairo", 41.0, t=1)
    dash_store.backend.set_item("otherApp", "keep me")
    return dash_store


@pytest.mark.unit
class TestEnvelope:
    def test_write_wraps_value(self, dash_store: DashboardStore) -> None:
        dash_store.write(StoreKey.OUTPUT_FORMAT, "GeoTIFF")
        raw = json.loads(dash_store.backend.get_item("outputFormat") or "")
        assert raw == {"schema_version": SCHEMA_VERSION, "value": "GeoTIFF"}

    def test_read_unwraps(self, dash_store: DashboardStore) -> None:
        dash_store.write("custom", {"a": 1})
        assert dash_store.read("custom") == {"a": 1}

    def test_legacy_value_read_as_is(self, dash_store: DashboardStore) -> None:
        dash_store.backend.set_item("outputFormat", '"PNG"')
        assert dash_store.output_format() == "PNG"

    def test_newer_schema_rejected(self, dash_store: DashboardStore) -> None:
        dash_store.backend.set_item(
            "outputFormat", json.dumps({"schema_version": 99, "value": "PNG"})
        )
        assert dash_store.read(StoreKey.OUTPUT_FORMAT, "default") == "default"

    def test_invalid_json_returns_default(
        self, dash_store: DashboardStore, caplog: pytest.LogCaptureFixture
    ) -> None:
        dash_store.backend.set_item("datasets", "{not json")
        with caplog.at_level("WARNING"):
            assert dash_store.read(StoreKey.DATASETS, []) == []
        assert "not valid JSON" in caplog.text

    def test_missing_returns_default(self, dash_store: DashboardStore) -> None:
        assert dash_store.read(StoreKey.TOKEN, "none") == "none"

    def test_write_quota_error_propagates(self, tmp_path: Path) -> None:
        cfg = Config(store_path=tmp_path / "s.db", quota_bytes=40)
        store = DashboardStore(LocalStore(cfg), cfg)
        with pytest.raises(StorageQuotaError):
            store.write(StoreKey.DATASETS, ["x" * 100])

    def test_unavailable_store_reads_default(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        cfg = Config(store_path=blocker / "s.db")
        store = DashboardStore.from_config(cfg)
        assert store.read(StoreKey.DATASETS, []) == []
        assert store.datasets() == []
        assert store.clear(ClearScope.SESSION) == []


@pytest.mark.unit
class TestTypedAccessors:
    def test_datasets_round_trip(self, dash_store: DashboardStore) -> None:
        ds = Dataset(id="viirs_2024_01", assets={"data": "https://x/a.tif"}, lat=30.0)
        dash_store.set_datasets([ds])
        loaded = dash_store.datasets()
        assert loaded[0].id == "viirs_2024_01"
        assert loaded[0].assets.data == "https://x/a.tif"
        assert loaded[0].lat == 30.0

    def test_malformed_datasets_empty(self, dash_store: DashboardStore) -> None:
        dash_store.write(StoreKey.DATASETS, [{"no_id": True}])
        assert dash_store.datasets() == []

    def test_agri_params_keeps_from_alias(self, dash_store: DashboardStore) -> None:
        params = AgriParams(
            location="Giza", date_range=DateRange(from_="2024-01-01", to="2024-06-30")
        )
        dash_store.set_agri_params(params)
        assert dash_store.read(StoreKey.AGRI_PARAMS)["date_range"]["from"] == (
            "2024-01-01"
        )
        loaded = dash_store.agri_params()
        assert loaded is not None
        assert loaded.date_range.from_ == "2024-01-01"

    def test_series_results_round_trip(self, dash_store: DashboardStore) -> None:
        payload = AgriSeriesPayload.model_validate(
            {
                "series": {"dates": ["d1", "d2"], "mean": [0.3, 0.4]},
                "anomalies": [1],
            }
        )
        dash_store.set_series_results(payload)
        loaded = dash_store.series_results()
        assert loaded is not None
        assert loaded.series is not None
        assert loaded.series.metric("mean") == [0.3, 0.4]
        assert loaded.anomalies == [1]

    def test_wrong_shape_model_is_none(self, dash_store: DashboardStore) -> None:
        dash_store.write(StoreKey.AGRI_PARAMS, {"date_range": "bad"})
        assert dash_store.agri_params() is None

    def test_report_requires_object(self, dash_store: DashboardStore) -> None:
        dash_store.write(StoreKey.AGRI_REPORT, [1, 2])
        assert dash_store.report(StoreKey.AGRI_REPORT) is None
        dash_store.set_report(StoreKey.AGRI_REPORT, {"title": "r"})
        assert dash_store.report(StoreKey.AGRI_REPORT) == {"title": "r"}

    def test_output_format_empty_is_none(self, dash_store: DashboardStore) -> None:
        dash_store.set_output_format("")
        assert dash_store.output_format() is None


@pytest.mark.unit
class TestHistory:
    def test_key_prefix(self) -> None:
        assert history_key("Cairo") == f"{HISTORY_PREFIX}Cairo"

    def test_append_and_read(self, dash_store: DashboardStore) -> None:
        dash_store.append_history("Cairo", 41.5, t=1000)
        entries = dash_store.history("Cairo")
        assert [(e.t, e.v) for e in entries] == [(1000, 41.5)]

    def test_default_timestamp_is_epoch_ms(self, dash_store: DashboardStore) -> None:
        entry = dash_store.append_history("Cairo", 1.0)[-1]
        assert entry.t > 1_600_000_000_000

    def test_bounded(self, tmp_path: Path) -> None:
        cfg = Config(store_path=tmp_path / "s.db", history_limit=3)
        store = DashboardStore.from_config(cfg)
        for i in range(5):
            store.append_history("Aswan", float(i), t=i)
        assert [e.v for e in store.history("Aswan")] == [2.0, 3.0, 4.0]

    def test_locations_independent(self, dash_store: DashboardStore) -> None:
        dash_store.append_history("A", 1.0, t=1)
        dash_store.append_history("B", 2.0, t=1)
        assert [e.v for e in dash_store.history("A")] == [1.0]


@pytest.mark.unit
class TestClearScopes:
    def test_exploration_keeps_token_and_history(
        self, populated: DashboardStore
    ) -> None:
        removed = populated.clear(ClearScope.EXPLORATION)
        assert "token" not in removed
        assert "analysisResults" in removed
        remaining = populated.backend.keys()
        assert sorted(remaining) == sorted(
            ["token", history_key("Cairo"), "otherApp"]
        )

    def test_session_removes_owned_keys(self, populated: DashboardStore) -> None:
        removed = populated.clear(ClearScope.SESSION)
        assert "token" in removed
        assert history_key("Cairo") in removed
        assert populated.backend.keys() == ["otherApp"]

    def test_remove_single_key(self, populated: DashboardStore) -> None:
        populated.remove(StoreKey.TOKEN)
        assert populated.read(StoreKey.TOKEN) is None
