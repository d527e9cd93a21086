"""Tests for the capped, deduplicating analysis result cache."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any

import pytest

from satdash.cache import PersistOutcome, ResultCache
from satdash.config import Config
from satdash.exceptions import CacheError, StorageError, StorageQuotaError
from satdash.models import AnalysisResult
from satdash.store import DashboardStore, StoreKey


def make_result(dataset_id: str, **fields: Any) -> AnalysisResult:
    data: dict[str, Any] = {
        "dataset_id": dataset_id,
        "analysis": "night_lights",
        "timestamp": "2024-05-01T10:00:00Z",
    }
    data.update(fields)
    return AnalysisResult.model_validate(data)


def _ids(cache: ResultCache) -> list[str]:
    return [r.dataset_id for r in cache.load_all()]


class _FailingWrites:
    """Replaces ``DashboardStore.write`` and fails the first *n* calls."""

    def __init__(self, store: DashboardStore, errors: list[Exception]) -> None:
        self._real = store.write
        self._errors = list(errors)
        self.calls: list[list[str]] = []

    def __call__(self, key: Any, value: Any) -> None:
        self.calls.append([item["dataset_id"] for item in value])
        if self._errors:
            raise self._errors.pop(0)
        self._real(key, value)


@pytest.mark.unit
class TestLoad:
    def test_empty(self, result_cache: ResultCache) -> None:
        assert result_cache.load_all() == []

    def test_malformed_value_is_empty(
        self, result_cache: ResultCache, dash_store: DashboardStore
    ) -> None:
        dash_store.write(StoreKey.ANALYSIS_RESULTS, {"not": "a list"})
        assert result_cache.load_all() == []

    def test_get_and_by_analysis(self, result_cache: ResultCache) -> None:
        result_cache.upsert(make_result("a", analysis="night_lights"))
        result_cache.upsert(make_result("b", analysis="agriculture_hotspot"))
        assert result_cache.get("b") is not None
        assert result_cache.get("zzz") is None
        agri = result_cache.by_analysis("agriculture_hotspot")
        assert [r.dataset_id for r in agri] == ["b"]

    def test_extra_backend_keys_preserved(self, result_cache: ResultCache) -> None:
        result_cache.upsert(make_result("a", metrics={"lit_pixels": 12}))
        loaded = result_cache.get("a")
        assert loaded is not None
        assert loaded.model_extra == {"metrics": {"lit_pixels": 12}}


@pytest.mark.unit
class TestUpsert:
    def test_append_order(self, result_cache: ResultCache) -> None:
        for name in ("a", "b", "c"):
            assert result_cache.upsert(make_result(name)).ok
        assert _ids(result_cache) == ["a", "b", "c"]

    def test_replacement_moves_to_end(self, result_cache: ResultCache) -> None:
        for name in ("a", "b", "c"):
            result_cache.upsert(make_result(name))
        result_cache.upsert(make_result("a", timestamp="2024-06-01T00:00:00Z"))
        assert _ids(result_cache) == ["b", "c", "a"]
        latest = result_cache.get("a")
        assert latest is not None
        assert latest.timestamp == "2024-06-01T00:00:00Z"

    def test_cap_keeps_newest_twenty(self, result_cache: ResultCache) -> None:
        for i in range(1, 26):
            result_cache.upsert(make_result(f"r{i}"))
        assert _ids(result_cache) == [f"r{i}" for i in range(6, 26)]

    def test_cap_reported_in_outcome(self, dash_store: DashboardStore) -> None:
        cache = ResultCache(dash_store, max_results=2)
        cache.upsert(make_result("a"))
        cache.upsert(make_result("b"))
        outcome = cache.upsert(make_result("c"))
        assert outcome == PersistOutcome(ok=True, stored=2, evicted=1)

    def test_batch_matches_sequential(self, tmp_path: Path) -> None:
        names = ["a", "b", "a", "c", "d", "b", "e"]
        seq_cfg = Config(store_path=tmp_path / "seq.db", max_results=3)
        seq = ResultCache(DashboardStore.from_config(seq_cfg))
        for name in names:
            seq.upsert(make_result(name))

        batch_cfg = Config(store_path=tmp_path / "batch.db", max_results=3)
        batch = ResultCache(DashboardStore.from_config(batch_cfg))
        batch.upsert_batch([make_result(n) for n in names])

        assert _ids(batch) == _ids(seq) == ["d", "b", "e"]

    def test_max_results_from_config(self, tmp_path: Path) -> None:
        cfg = Config(store_path=tmp_path / "s.db", max_results=4)
        assert ResultCache(DashboardStore.from_config(cfg)).max_results == 4

    def test_clear_only_removes_results(
        self, result_cache: ResultCache, dash_store: DashboardStore
    ) -> None:
        dash_store.set_output_format("PNG")
        result_cache.upsert(make_result("a"))
        result_cache.clear()
        assert result_cache.load_all() == []
        assert dash_store.output_format() == "PNG"


@pytest.mark.unit
class TestQuotaHandling:
    def test_quota_error_evicts_oldest_and_retries(
        self,
        result_cache: ResultCache,
        dash_store: DashboardStore,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        for name in ("a", "b"):
            result_cache.upsert(make_result(name))
        writer = _FailingWrites(dash_store, [StorageQuotaError(what="full")])
        monkeypatch.setattr(dash_store, "write", writer)

        outcome = result_cache.upsert(make_result("c"))

        assert outcome.ok
        assert outcome.stored == 2
        assert outcome.evicted == 1
        assert writer.calls == [["a", "b", "c"], ["b", "c"]]
        monkeypatch.undo()
        assert _ids(result_cache) == ["b", "c"]

    def test_sqlite_full_counts_as_quota(
        self,
        result_cache: ResultCache,
        dash_store: DashboardStore,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        writer = _FailingWrites(
            dash_store, [sqlite3.OperationalError("database or disk is full")]
        )
        monkeypatch.setattr(dash_store, "write", writer)
        outcome = result_cache.upsert_batch([make_result("a"), make_result("b")])
        assert outcome.ok
        assert writer.calls[-1] == ["b"]

    def test_second_quota_failure_leaves_store_unchanged(
        self,
        result_cache: ResultCache,
        dash_store: DashboardStore,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        for name in ("a", "b"):
            result_cache.upsert(make_result(name))
        writer = _FailingWrites(
            dash_store,
            [StorageQuotaError(what="full"), StorageQuotaError(what="still full")],
        )
        monkeypatch.setattr(dash_store, "write", writer)

        outcome = result_cache.upsert(make_result("c"))

        assert not outcome.ok
        assert isinstance(outcome.error, CacheError)
        assert len(writer.calls) == 2
        monkeypatch.undo()
        assert _ids(result_cache) == ["a", "b"]

    def test_non_quota_error_not_retried(
        self,
        result_cache: ResultCache,
        dash_store: DashboardStore,
        monkeypatch: pytest.MonkeyPatch,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        writer = _FailingWrites(dash_store, [StorageError(what="disk I/O error")])
        monkeypatch.setattr(dash_store, "write", writer)
        with caplog.at_level("WARNING", logger="satdash"):
            outcome = result_cache.upsert(make_result("a"))
        assert not outcome.ok
        assert len(writer.calls) == 1
        assert "write failed" in caplog.text

    def test_real_quota_triggers_eviction(self, tmp_path: Path) -> None:
        cfg = Config(store_path=tmp_path / "s.db")
        store = DashboardStore.from_config(cfg)
        cache = ResultCache(store)
        cache.upsert(make_result("a", notes="x" * 400))
        used = store.backend.usage_bytes()

        tight = Config(store_path=tmp_path / "s.db", quota_bytes=used)
        cache = ResultCache(DashboardStore.from_config(tight))
        outcome = cache.upsert(make_result("b"))

        assert outcome.ok
        assert outcome.evicted == 1
        assert _ids(cache) == ["b"]

    def test_eviction_logged_at_info(
        self, dash_store: DashboardStore, caplog: pytest.LogCaptureFixture
    ) -> None:
        cache = ResultCache(dash_store, max_results=1)
        cache.upsert(make_result("a"))
        with caplog.at_level("INFO", logger="satdash"):
            cache.upsert(make_result("b"))
        assert "eviction" in caplog.text


@pytest.mark.unit
class TestUnavailableStore:
    def test_upsert_never_raises(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        cache = ResultCache(
            DashboardStore.from_config(Config(store_path=blocker / "s.db"))
        )
        outcome = cache.upsert(make_result("a"))
        assert not outcome.ok
        assert isinstance(outcome.error, CacheError)
        assert "unavailable" in str(outcome.error)
        assert cache.load_all() == []
