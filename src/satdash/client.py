"""HTTP client for the analysis and report backend."""

from __future__ import annotations

import logging
from typing import Any

import requests
from pydantic import ValidationError

from satdash.config import Config, get_default_config, resolve_api_base_url
from satdash.exceptions import BackendError
from satdash.models import (
    AgriSeriesPayload,
    AnalysisResult,
    AnalysisType,
    Dataset,
    NaturalResourcesResult,
    Series,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

_ANALYSE_PATH = "/api/analyse"
_ANALYSE_AGRI_PATH = "/api/agri/analyse"
_ANALYSE_ALL_NIGHTS_PATH = "/api/analyse-all-nights"
_ANALYSE_ALL_AGRI_PATH = "/api/agri/analyse-all"
_SEARCH_DATASETS_PATH = "/api/agri/datasets"
_NATURAL_RESOURCES_PATH = "/natural-resources/info"
_REPORT_AGRI_PATH = "/report/agri"
_REPORT_NIGHT_LIGHTS_PATH = "/report/night-lights"

_RETRY_FIX = "Check that the analysis backend is running, then retry"


def build_job(dataset: Dataset, analysis: str) -> dict[str, Any]:
    """Return the request body describing one dataset analysis.

    Raises:
        ValueError: If the dataset has no data asset URL.

    Example:
        >>> ds = Dataset(id="viirs_2024_01", assets={"data": "https://x/tif"})
        >>> build_job(ds, "night_lights")["assets"]
        {'data': 'https://x/tif'}
    """
    if not dataset.assets.data:
        msg = f"dataset {dataset.id!r} has no data asset URL"
        raise ValueError(msg)
    return {
        "dataset_id": dataset.id,
        "analysis": analysis,
        "assets": {"data": dataset.assets.data},
    }


class AnalysisClient:
    """Blocking client for the analysis backend.

    Every request carries ``Config.request_timeout``. Failures raise
    ``BackendError``; nothing is retried automatically, but transport
    errors and 5xx responses are marked ``retryable``.

    Args:
        config: Configuration providing ``api_base_url`` and
            ``request_timeout``.
        session: Optional pre-configured ``requests.Session``.

    Example:
        >>> client = AnalysisClient(Config(api_base_url="http://localhost:5000"))
        >>> client.base_url
        'http://localhost:5000'
    """

    def __init__(
        self,
        config: Config | None = None,
        session: requests.Session | None = None,
    ) -> None:
        cfg = config if config is not None else get_default_config()
        self._base_url = resolve_api_base_url(cfg.api_base_url)
        self._timeout = cfg.request_timeout
        self._session: requests.Session = (
            session if session is not None else requests.Session()
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def close(self) -> None:
        self._session.close()

    def _post(self, path: str, body: dict[str, Any], what: str) -> Any:
        url = f"{self._base_url}{path}"
        try:
            resp = self._session.post(url, json=body, timeout=self._timeout)
        except requests.Timeout as exc:
            raise BackendError(
                what=what,
                cause=f"No response from {url} within {self._timeout:g}s",
                fix=_RETRY_FIX,
                retryable=True,
            ) from exc
        except requests.RequestException as exc:
            raise BackendError(
                what=what,
                cause=f"{type(exc).__name__}: {exc}",
                fix=_RETRY_FIX,
                retryable=True,
            ) from exc

        if not 200 <= resp.status_code < 300:
            raise BackendError(
                what=what,
                cause=self._error_message(resp),
                status_code=resp.status_code,
                retryable=resp.status_code >= 500,
            )

        try:
            return resp.json()
        except ValueError as exc:
            raise BackendError(
                what=what,
                cause=f"Response from {url} is not valid JSON",
                status_code=resp.status_code,
            ) from exc

    @staticmethod
    def _error_message(resp: requests.Response) -> str:
        """Extract ``error`` or ``message`` from a failed JSON response."""
        try:
            data = resp.json()
        except ValueError:
            data = None
        if isinstance(data, dict):
            message = data.get("error") or data.get("message")
            if message:
                return str(message)
        return f"Request failed with status {resp.status_code}"

    def analyse(self, dataset: Dataset, analysis: str) -> AnalysisResult:
        """Run one analysis on one dataset.

        Agriculture analyses go to ``POST /api/agri/analyse``; everything
        else goes to ``POST /api/analyse``.

        Raises:
            ValueError: If the dataset has no data asset URL.
            BackendError: If the request fails or the response is not an
                analysis result.
        """
        what = "Analyse request failed"
        path = (
            _ANALYSE_AGRI_PATH
            if analysis == AnalysisType.AGRICULTURE_HOTSPOT.value
            else _ANALYSE_PATH
        )
        payload = self._post(path, build_job(dataset, analysis), what)
        try:
            return AnalysisResult.model_validate(payload)
        except ValidationError as exc:
            raise BackendError(
                what=what,
                cause=f"Unexpected response shape: {exc}",
            ) from exc

    def analyse_all_nights(self, jobs: list[dict[str, Any]]) -> list[AnalysisResult]:
        """Run a batch night-lights analysis (``POST /api/analyse-all-nights``).

        Accepts either ``{"results": [...]}`` or a bare list in response.
        Entries that do not parse as results are logged and dropped.
        """
        what = "Batch analyse failed"
        payload = self._post(_ANALYSE_ALL_NIGHTS_PATH, {"jobs": jobs}, what)
        if isinstance(payload, dict) and isinstance(payload.get("results"), list):
            items: list[Any] = payload["results"]
        elif isinstance(payload, list):
            items = payload
        else:
            items = []

        results: list[AnalysisResult] = []
        for item in items:
            try:
                results.append(AnalysisResult.model_validate(item))
            except ValidationError as exc:
                logger.warning("Dropping malformed batch result: %s", exc)
        logger.debug("Batch analysis returned %d results", len(results))
        return results

    def analyse_all_agri(self, jobs: list[dict[str, Any]]) -> AgriSeriesPayload:
        """Run a batch agriculture analysis (``POST /api/agri/analyse-all``).

        Per-image results are validated one by one, like the night-lights
        batch. A series block that does not validate (a tile with no valid
        pixels adds a date but no metric values) is logged and dropped;
        the results are still returned.

        Raises:
            BackendError: If the request fails or the response is not a
                JSON object.
        """
        what = "Batch agriculture analyse failed"
        payload = self._post(_ANALYSE_ALL_AGRI_PATH, {"jobs": jobs}, what)
        if not isinstance(payload, dict):
            raise BackendError(
                what=what,
                cause="Unexpected response shape: not a JSON object",
            )

        results: list[AnalysisResult] = []
        for item in payload.get("results") or []:
            try:
                results.append(AnalysisResult.model_validate(item))
            except ValidationError as exc:
                logger.warning("Dropping malformed batch result: %s", exc)

        series: Series | None = None
        if payload.get("series") is not None:
            try:
                series = Series.model_validate(payload["series"])
            except ValidationError as exc:
                logger.warning("Dropping misaligned agriculture series: %s", exc)

        try:
            return AgriSeriesPayload(
                results=results,
                summary=payload.get("summary") or {},
                series=series,
                anomalies=payload.get("anomalies") or [],
                breakpoints=payload.get("breakpoints") or [],
            )
        except ValidationError as exc:
            raise BackendError(
                what=what,
                cause=f"Unexpected response shape: {exc}",
            ) from exc

    def search_datasets(
        self,
        location: str,
        category: str,
        date_from: str,
        date_to: str,
    ) -> list[Dataset]:
        """Search datasets for a place and date range (``POST /api/agri/datasets``).

        Args:
            location: Place name the backend geocodes.
            category: ``"Agriculture Hotspot"`` or ``"Night Time Light Data"``.
            date_from: Start date, ``YYYY-MM-DD``.
            date_to: End date, ``YYYY-MM-DD``.

        Raises:
            BackendError: If the request fails (missing fields, unknown
                location, bad date range) or the reply has no dataset list.
        """
        what = "Dataset search failed"
        body = {
            "location": location,
            "category": category,
            "date_from": date_from,
            "date_to": date_to,
        }
        payload = self._post(_SEARCH_DATASETS_PATH, body, what)
        if isinstance(payload, dict) and isinstance(payload.get("datasets"), list):
            items: list[Any] = payload["datasets"]
        elif isinstance(payload, list):
            items = payload
        else:
            raise BackendError(
                what=what,
                cause="Unexpected response shape: no 'datasets' list",
            )

        datasets: list[Dataset] = []
        for item in items:
            try:
                datasets.append(Dataset.model_validate(item))
            except ValidationError as exc:
                logger.warning("Dropping malformed dataset entry: %s", exc)
        logger.debug("Dataset search for %r returned %d datasets", location, len(datasets))
        return datasets

    def natural_resources(self, location: str) -> NaturalResourcesResult:
        """Fetch the natural-resources summary for *location*."""
        what = "Natural resources fetch failed"
        payload = self._post(_NATURAL_RESOURCES_PATH, {"location": location}, what)
        try:
            return NaturalResourcesResult.model_validate(payload)
        except ValidationError as exc:
            raise BackendError(
                what=what,
                cause=f"Unexpected response shape: {exc}",
            ) from exc

    def report_agri(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Request an agriculture report (``POST /report/agri``)."""
        return self._report(_REPORT_AGRI_PATH, payload, "Report generation failed")

    def report_night_lights(
        self,
        datasets: list[Dataset],
        results: list[AnalysisResult],
    ) -> dict[str, Any]:
        """Request a night-lights report (``POST /report/night-lights``)."""
        body = {
            "datasets": [d.model_dump(mode="json", exclude_none=True) for d in datasets],
            "analysisResults": [r.to_json_dict() for r in results],
        }
        return self._report(
            _REPORT_NIGHT_LIGHTS_PATH, body, "Failed to generate full report"
        )

    def _report(self, path: str, body: dict[str, Any], what: str) -> dict[str, Any]:
        report = self._post(path, body, what)
        if not isinstance(report, dict):
            raise BackendError(what=what, cause="Report response is not a JSON object")
        return report
