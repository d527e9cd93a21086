"""Shared test fixtures for satdash test suite."""

from __future__ import annotations

from pathlib import Path

import pytest

from satdash.cache import ResultCache
from satdash.config import Config
from satdash.storage import LocalStore
from satdash.store import DashboardStore


@pytest.fixture(autouse=True)
def _reset_config(monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset module-level config and backend env var before each test."""
    import satdash.config as _cfg

    monkeypatch.setattr(_cfg, "_default_config", Config())
    monkeypatch.delenv("SATDASH_API_BASE_URL", raising=False)


@pytest.fixture
def test_config(tmp_path: Path) -> Config:
    """Return a Config whose store lives in an isolated temp directory."""
    return Config(
        store_path=tmp_path / "store.db",
        api_base_url="http://backend.test",
    )


@pytest.fixture
def local_store(test_config: Config) -> LocalStore:
    return LocalStore(test_config)


@pytest.fixture
def dash_store(local_store: LocalStore, test_config: Config) -> DashboardStore:
    return DashboardStore(local_store, test_config)


@pytest.fixture
def result_cache(dash_store: DashboardStore) -> ResultCache:
    return ResultCache(dash_store)

