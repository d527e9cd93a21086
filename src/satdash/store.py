"""Typed, schema-versioned access to the dashboard's persisted keys.

Every value is JSON wrapped in an envelope::

    {"schema_version": 1, "value": <payload>}

Values without the envelope are treated as unversioned legacy data and
returned as-is. Reads never raise: a missing key, unreadable JSON, a
payload of the wrong shape, or an unavailable store all degrade to the
caller's default and are logged.
"""

from __future__ import annotations

import json
import logging
import time
from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from satdash.config import Config, get_default_config
from satdash.exceptions import StorageError
from satdash.models import (
    AgriParams,
    AgriSeriesPayload,
    Dataset,
    HistoryEntry,
    NaturalResourcesResult,
)
from satdash.storage import LocalStore

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

_ModelT = TypeVar("_ModelT", bound=BaseModel)

_DATASETS = TypeAdapter(list[Dataset])
_HISTORY = TypeAdapter(list[HistoryEntry])


class StoreKey(str, Enum):
    """Fixed keys persisted by the dashboards."""

    ANALYSIS_RESULTS = "analysisResults"
    DATASETS = "datasets"
    OUTPUT_FORMAT = "outputFormat"
    AGRI_PARAMS = "agriParams"
    SERIES_RESULTS = "seriesResults"
    AGRI_REPORT = "agriReportJSON"
    NIGHT_LIGHTS_REPORT = "nightLightsReport"
    NATURAL_RESOURCES_RESULT = "naturalResourcesResult"
    TOKEN = "token"


HISTORY_PREFIX = "nr_hist_"


class ClearScope(str, Enum):
    """Named sets of keys removed together.

    ``EXPLORATION`` drops everything tied to the current search (datasets,
    parameters, results, reports) but keeps the auth token and the
    per-location history. ``SESSION`` drops every key this package owns.
    """

    EXPLORATION = "exploration"
    SESSION = "session"


_EXPLORATION_KEYS: frozenset[StoreKey] = frozenset(StoreKey) - {StoreKey.TOKEN}


def history_key(location: str) -> str:
    """Return the history key for *location* (``nr_hist_<location>``)."""
    return f"{HISTORY_PREFIX}{location}"


def _key_name(key: StoreKey | str) -> str:
    return key.value if isinstance(key, StoreKey) else key


class DashboardStore:
    """Schema-aware facade over a ``LocalStore``.

    Args:
        backend: Raw string key/value store.
        config: Configuration providing ``history_limit``.

    Example:
        >>> store = DashboardStore.from_config(Config(store_path="/tmp/d.db"))
        >>> store.set_output_format("GeoTIFF")
        >>> store.output_format()
        'GeoTIFF'
    """

    def __init__(self, backend: LocalStore, config: Config | None = None) -> None:
        self._backend = backend
        self._config = config if config is not None else get_default_config()

    @classmethod
    def from_config(cls, config: Config | None = None) -> DashboardStore:
        """Open the store described by *config* (default config if omitted)."""
        cfg = config if config is not None else get_default_config()
        return cls(LocalStore(cfg), cfg)

    @property
    def backend(self) -> LocalStore:
        return self._backend

    @property
    def config(self) -> Config:
        return self._config

    # ── raw JSON access ────────────────────────────────────────────

    def read(self, key: StoreKey | str, default: Any = None) -> Any:
        """Return the unwrapped JSON value stored under *key*.

        Never raises; returns *default* on any failure.
        """
        name = _key_name(key)
        try:
            raw = self._backend.get_item(name)
        except StorageError as exc:
            logger.warning("Reading %r from local store failed: %s", name, exc)
            return default
        if raw is None:
            return default
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Stored value for %r is not valid JSON: %s", name, exc)
            return default

        if isinstance(parsed, dict) and set(parsed) == {"schema_version", "value"}:
            version = parsed["schema_version"]
            if not isinstance(version, int) or version > SCHEMA_VERSION:
                logger.warning(
                    "Stored value for %r has unsupported schema version %r",
                    name,
                    version,
                )
                return default
            return parsed["value"]
        return parsed

    def write(self, key: StoreKey | str, value: Any) -> None:
        """Serialize *value* into a versioned envelope under *key*.

        Raises:
            StorageError: If the backend rejects the write (including
                ``StorageQuotaError``).
        """
        name = _key_name(key)
        payload = json.dumps(
            {"schema_version": SCHEMA_VERSION, "value": value},
            separators=(",", ":"),
        )
        self._backend.set_item(name, payload)

    def remove(self, key: StoreKey | str) -> None:
        """Delete *key*. Failures are logged, never raised."""
        name = _key_name(key)
        try:
            self._backend.remove_item(name)
        except StorageError as exc:
            logger.warning("Removing %r from local store failed: %s", name, exc)

    def clear(self, scope: ClearScope) -> list[str]:
        """Remove every key in *scope* and return the removed key names.

        Never raises; an unavailable store removes nothing.
        """
        try:
            present = self._backend.keys()
        except StorageError as exc:
            logger.warning("Clearing %s scope failed: %s", scope.value, exc)
            return []

        owned = {k.value for k in StoreKey}
        if scope is ClearScope.EXPLORATION:
            targets = {k.value for k in _EXPLORATION_KEYS}
            doomed = [k for k in present if k in targets]
        else:
            doomed = [
                k for k in present if k in owned or k.startswith(HISTORY_PREFIX)
            ]

        removed: list[str] = []
        for name in doomed:
            try:
                self._backend.remove_item(name)
                removed.append(name)
            except StorageError as exc:
                logger.warning("Removing %r failed: %s", name, exc)
        logger.debug("Cleared %s scope: %d keys", scope.value, len(removed))
        return removed

    def _read_model(
        self, key: StoreKey | str, model: type[_ModelT]
    ) -> _ModelT | None:
        value = self.read(key)
        if value is None:
            return None
        try:
            return model.model_validate(value)
        except ValidationError as exc:
            logger.warning(
                "Stored %r does not match %s: %s", _key_name(key), model.__name__, exc
            )
            return None

    # ── typed accessors ────────────────────────────────────────────

    def datasets(self) -> list[Dataset]:
        value = self.read(StoreKey.DATASETS, [])
        try:
            return _DATASETS.validate_python(value)
        except ValidationError as exc:
            logger.warning("Stored datasets are malformed: %s", exc)
            return []

    def set_datasets(self, datasets: list[Dataset]) -> None:
        self.write(
            StoreKey.DATASETS,
            [d.model_dump(mode="json", exclude_none=True) for d in datasets],
        )

    def output_format(self) -> str | None:
        value = self.read(StoreKey.OUTPUT_FORMAT)
        return value if isinstance(value, str) and value else None

    def set_output_format(self, fmt: str) -> None:
        self.write(StoreKey.OUTPUT_FORMAT, fmt)

    def agri_params(self) -> AgriParams | None:
        return self._read_model(StoreKey.AGRI_PARAMS, AgriParams)

    def set_agri_params(self, params: AgriParams) -> None:
        self.write(StoreKey.AGRI_PARAMS, params.model_dump(mode="json", by_alias=True))

    def series_results(self) -> AgriSeriesPayload | None:
        return self._read_model(StoreKey.SERIES_RESULTS, AgriSeriesPayload)

    def set_series_results(self, payload: AgriSeriesPayload) -> None:
        self.write(
            StoreKey.SERIES_RESULTS,
            payload.model_dump(mode="json", by_alias=True, exclude_none=True),
        )

    def report(self, key: StoreKey) -> dict[str, Any] | None:
        """Return a stored report object (``agriReportJSON`` etc.)."""
        value = self.read(key)
        return value if isinstance(value, dict) else None

    def set_report(self, key: StoreKey, report: dict[str, Any]) -> None:
        self.write(key, report)

    def natural_resources_result(self) -> NaturalResourcesResult | None:
        return self._read_model(
            StoreKey.NATURAL_RESOURCES_RESULT, NaturalResourcesResult
        )

    def set_natural_resources_result(self, result: NaturalResourcesResult) -> None:
        self.write(
            StoreKey.NATURAL_RESOURCES_RESULT,
            result.model_dump(mode="json", exclude_none=True),
        )

    def history(self, location: str) -> list[HistoryEntry]:
        value = self.read(history_key(location), [])
        try:
            return _HISTORY.validate_python(value)
        except ValidationError as exc:
            logger.warning("History for %r is malformed: %s", location, exc)
            return []

    def append_history(
        self,
        location: str,
        value: float,
        t: int | None = None,
    ) -> list[HistoryEntry]:
        """Append a measurement and keep only the newest ``history_limit``.

        Args:
            location: Location name the history belongs to.
            value: Measured value.
            t: Epoch milliseconds; defaults to now.

        Returns:
            The bounded history, oldest first. The history is still
            returned when persisting it fails.
        """
        stamp = t if t is not None else int(time.time() * 1000)
        entries = [*self.history(location), HistoryEntry(t=stamp, v=value)]
        entries = entries[-self._config.history_limit :]
        try:
            self.write(
                history_key(location), [e.model_dump(mode="json") for e in entries]
            )
        except StorageError as exc:
            logger.warning("Saving history for %r failed: %s", location, exc)
        return entries
