"""Capped, deduplicating cache of analysis results.

Results live under the ``analysisResults`` key of the dashboard store as
an ordered list, oldest first. Each dataset appears at most once; a new
result for a dataset replaces the old one and becomes the most recent.
The list never holds more than ``Config.max_results`` entries.

Cache methods **never raise** to callers. Read failures degrade to an
empty list and write failures are reported through ``PersistOutcome``.
Both are logged as warnings.

The cache performs read-modify-write without locking. Two processes
sharing one store file can lose each other's updates.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable
from dataclasses import dataclass

from pydantic import TypeAdapter, ValidationError

from satdash.exceptions import CacheError, StorageError, StorageUnavailableError
from satdash.models import AnalysisResult
from satdash.storage import is_quota_error
from satdash.store import DashboardStore, StoreKey

logger = logging.getLogger("satdash")

_RESULT_LIST = TypeAdapter(list[AnalysisResult])


@dataclass
class PersistOutcome:
    """Result of writing the cached list.

    Args:
        ok: ``True`` if a list was written.
        stored: Number of results written.
        evicted: Results dropped by the cap or by quota eviction.
        error: Why the write failed, when ``ok`` is ``False``.

    Example:
        >>> PersistOutcome(ok=True, stored=3)
        PersistOutcome(ok=True, stored=3, evicted=0, error=None)
    """

    ok: bool
    stored: int = 0
    evicted: int = 0
    error: CacheError | None = None


class ResultCache:
    """Persisted store of the most recent analysis result per dataset.

    Args:
        store: Typed dashboard store to persist into.
        max_results: Entry cap; defaults to ``store.config.max_results``.

    Example:
        >>> cache = ResultCache(DashboardStore.from_config())
        >>> cache.upsert(AnalysisResult(dataset_id="viirs_2024_01")).ok
        True
        >>> [r.dataset_id for r in cache.load_all()]
        ['viirs_2024_01']
    """

    def __init__(self, store: DashboardStore, max_results: int | None = None) -> None:
        self._store = store
        self._max_results = (
            max_results if max_results is not None else store.config.max_results
        )

    @property
    def max_results(self) -> int:
        return self._max_results

    def load_all(self) -> list[AnalysisResult]:
        """Return cached results, oldest first.

        Returns an empty list if nothing is stored, the store is
        unavailable, or the stored value is not a list of results.
        """
        value = self._store.read(StoreKey.ANALYSIS_RESULTS)
        if value is None:
            return []
        try:
            return _RESULT_LIST.validate_python(value)
        except ValidationError as exc:
            logger.warning("Cached analysis results are malformed, ignoring: %s", exc)
            return []

    def get(self, dataset_id: str) -> AnalysisResult | None:
        for result in self.load_all():
            if result.dataset_id == dataset_id:
                return result
        return None

    def by_analysis(self, analysis: str) -> list[AnalysisResult]:
        """Return cached results of one analysis type, oldest first."""
        return [r for r in self.load_all() if r.analysis == analysis]

    @staticmethod
    def _merge(
        existing: list[AnalysisResult],
        incoming: Iterable[AnalysisResult],
    ) -> list[AnalysisResult]:
        merged = list(existing)
        for result in incoming:
            merged = [r for r in merged if r.dataset_id != result.dataset_id]
            merged.append(result)
        return merged

    def upsert(self, result: AnalysisResult) -> PersistOutcome:
        """Insert or replace *result* as the most recent entry."""
        return self.upsert_batch([result])

    def upsert_batch(self, results: Iterable[AnalysisResult]) -> PersistOutcome:
        """Upsert each result in order, then persist once.

        Capping once at the end keeps the same entries, in the same order,
        as capping after every single upsert.
        """
        merged = self._merge(self.load_all(), results)
        return self.persist(merged)

    def persist(self, results: list[AnalysisResult]) -> PersistOutcome:
        """Write the newest ``max_results`` of *results*.

        On a quota error the oldest remaining entry is dropped and the
        write retried once. If that also fails the stored list is left
        as it was and the outcome carries the error.
        """
        capped = results[-self._max_results :] if results else []
        cap_evicted = len(results) - len(capped)

        try:
            self._write(capped)
        except StorageUnavailableError as exc:
            logger.warning("Result cache write skipped, store unavailable: %s", exc)
            return PersistOutcome(
                ok=False,
                evicted=cap_evicted,
                error=CacheError(
                    what="Result cache not saved",
                    cause="Local store is unavailable",
                    fix="Check that the store directory is writable",
                ),
            )
        except (StorageError, sqlite3.Error, OSError) as exc:
            if not is_quota_error(exc):
                logger.warning("Result cache write failed: %s", exc)
                return PersistOutcome(
                    ok=False,
                    evicted=cap_evicted,
                    error=CacheError(what="Result cache not saved", cause=str(exc)),
                )
            return self._retry_after_eviction(capped, cap_evicted, exc)

        if cap_evicted:
            logger.info(
                "Result cache eviction: dropped %d oldest entries to stay within %d",
                cap_evicted,
                self._max_results,
            )
        return PersistOutcome(ok=True, stored=len(capped), evicted=cap_evicted)

    def _retry_after_eviction(
        self,
        capped: list[AnalysisResult],
        cap_evicted: int,
        first_exc: Exception,
    ) -> PersistOutcome:
        trimmed = capped[1:]
        logger.info(
            "Storage quota exceeded, evicting oldest cached result and retrying: %s",
            first_exc,
        )
        try:
            self._write(trimmed)
        except (StorageError, sqlite3.Error, OSError) as exc:
            logger.warning("Result cache write failed after eviction: %s", exc)
            return PersistOutcome(
                ok=False,
                evicted=cap_evicted,
                error=CacheError(
                    what="Result cache not saved",
                    cause=f"Storage quota exceeded after evicting one entry: {exc}",
                    fix="Clear cached results or raise Config.quota_bytes",
                ),
            )
        return PersistOutcome(ok=True, stored=len(trimmed), evicted=cap_evicted + 1)

    def _write(self, results: list[AnalysisResult]) -> None:
        self._store.write(
            StoreKey.ANALYSIS_RESULTS, [r.to_json_dict() for r in results]
        )

    def clear(self) -> None:
        """Remove the cached results; other store keys are untouched."""
        self._store.remove(StoreKey.ANALYSIS_RESULTS)
        logger.debug("Result cache cleared")
