"""satdash: satellite-imagery dashboard toolkit.

Runs backend analyses over satellite datasets, keeps the most recent
results in a capped local cache, and derives what the night-lights and
agriculture dashboards display.

Example:
    >>> import satdash as sd
    >>>
    >>> store = sd.DashboardStore.from_config()
    >>> cache = sd.ResultCache(store)
    >>> agri = sd.AgricultureDashboard(store, cache, sd.AnalysisClient())
    >>> summary = agri.summary()
"""

from satdash.__about__ import __version__
from satdash._types import ChartRow, DistributionRow, HexCell, SeriesPoint
from satdash.cache import PersistOutcome, ResultCache
from satdash.client import AnalysisClient
from satdash.config import Config, configure
from satdash.dashboard import (
    AgricultureDashboard,
    NightLightsDashboard,
    explore,
    logout,
    record_natural_resources,
    run_agri_series,
    run_all,
    run_analysis,
    start_exploration,
)
from satdash.exceptions import (
    BackendError,
    CacheError,
    ConfigurationError,
    ProjectionError,
    SatDashError,
    StorageError,
    StorageQuotaError,
)
from satdash.geo import build_hex_layer, project_offset, project_offsets
from satdash.models import (
    AgriSeriesPayload,
    AnalysisResult,
    AnalysisType,
    Dataset,
    NaturalResourcesResult,
    Series,
)
from satdash.storage import LocalStore
from satdash.store import ClearScope, DashboardStore, StoreKey

__all__ = [
    # Version
    "__version__",
    # Dashboards
    "AgricultureDashboard",
    "NightLightsDashboard",
    "explore",
    "logout",
    "record_natural_resources",
    "run_agri_series",
    "run_all",
    "run_analysis",
    "start_exploration",
    # Backend
    "AnalysisClient",
    # Storage
    "ClearScope",
    "DashboardStore",
    "LocalStore",
    "PersistOutcome",
    "ResultCache",
    "StoreKey",
    # Configuration
    "Config",
    "configure",
    # Geo
    "build_hex_layer",
    "project_offset",
    "project_offsets",
    # Models
    "AgriSeriesPayload",
    "AnalysisResult",
    "AnalysisType",
    "ChartRow",
    "Dataset",
    "DistributionRow",
    "HexCell",
    "NaturalResourcesResult",
    "Series",
    "SeriesPoint",
    # Exceptions
    "BackendError",
    "CacheError",
    "ConfigurationError",
    "ProjectionError",
    "SatDashError",
    "StorageError",
    "StorageQuotaError",
]
