"""Configuration for satdash.

A frozen pydantic model holds storage, backend and projection settings.
Components receive a ``Config`` snapshot at construction so later
``configure()`` calls never affect existing instances.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from satdash.exceptions import ConfigurationError

logger = logging.getLogger("satdash")

_API_BASE_ENV_VAR = "SATDASH_API_BASE_URL"
_DEFAULT_API_BASE_URL = "http://localhost:5000"

# Browsers give each origin roughly 5 MiB of local storage.
_DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024

# VIIRS day/night band pixel size and the spherical 1 degree ~ 111 km rule.
PIXEL_SIZE_M: float = 463.83
KM_PER_DEGREE: float = 111.0


class Config(BaseModel):
    """Package configuration model.

    Args:
        store_path: SQLite file backing the persistent key/value store.
        quota_bytes: Maximum combined size of stored keys and values.
        max_results: Number of analysis results the cache keeps.
        history_limit: Number of natural-resources history points kept
            per location.
        api_base_url: Base URL of the analysis backend. ``None`` resolves
            through ``SATDASH_API_BASE_URL`` and then the local default.
        request_timeout: Seconds to wait for any backend response.
        pixel_size_m: Sensor pixel size in metres for geo projection.
        km_per_degree: Kilometres per degree of latitude.

    Example:
        >>> cfg = Config(store_path="~/dash/store.db", max_results=10)
        >>> cfg.quota_bytes
        5242880
    """

    model_config = ConfigDict(frozen=True, validate_default=True, extra="forbid")

    store_path: Path = Path("~/.satdash/store.db")
    quota_bytes: int = _DEFAULT_QUOTA_BYTES
    max_results: int = 20
    history_limit: int = 12
    api_base_url: str | None = None
    request_timeout: float = 60.0
    pixel_size_m: float = PIXEL_SIZE_M
    km_per_degree: float = KM_PER_DEGREE

    @field_validator("store_path", mode="before")
    @classmethod
    def _expand_store_path(cls, v: str | Path) -> Path:
        """Expand ``~`` in the store path."""
        return Path(v).expanduser()

    @field_validator("quota_bytes", "max_results", "history_limit")
    @classmethod
    def _validate_positive_int(cls, v: int) -> int:
        """Ensure sizes and limits are positive."""
        if v <= 0:
            msg = "value must be greater than 0"
            raise ValueError(msg)
        return v

    @field_validator("request_timeout", "pixel_size_m", "km_per_degree")
    @classmethod
    def _validate_positive_float(cls, v: float) -> float:
        """Ensure timeouts and physical constants are positive."""
        if v <= 0:
            msg = "value must be greater than 0"
            raise ValueError(msg)
        return v

    @field_validator("api_base_url")
    @classmethod
    def _validate_url(cls, v: str | None) -> str | None:
        """Ensure the backend URL uses http or https."""
        if v is None:
            return None
        if not v.startswith(("http://", "https://")):
            msg = "api_base_url must start with 'http://' or 'https://'"
            raise ValueError(msg)
        return v.rstrip("/")


_default_config = Config()


def configure(**kwargs: Any) -> None:
    """Set module-level default configuration.

    Args:
        **kwargs: Any ``Config`` field (e.g. ``store_path``, ``max_results``).

    Raises:
        ValidationError: If a provided value fails pydantic validation.

    Example:
        >>> configure(max_results=10, api_base_url="https://api.example.org")
    """
    global _default_config  # noqa: PLW0603
    current = _default_config.model_dump()
    current.update(kwargs)
    _default_config = Config(**current)


def get_default_config() -> Config:
    """Return the current module-level default configuration."""
    return _default_config


def resolve_api_base_url(explicit: str | None = None) -> str:
    """Resolve the analysis backend base URL.

    Resolution order:
        1. *explicit* argument (highest priority)
        2. ``SATDASH_API_BASE_URL`` environment variable
        3. ``http://localhost:5000``

    Args:
        explicit: A URL passed via ``Config.api_base_url``.

    Returns:
        Base URL without a trailing slash.

    Raises:
        ConfigurationError: If the environment variable holds a
            non-http(s) URL.
    """
    if explicit is not None:
        return explicit.rstrip("/")

    env_value = os.environ.get(_API_BASE_ENV_VAR, "").strip()
    if not env_value:
        return _DEFAULT_API_BASE_URL

    if not env_value.startswith(("http://", "https://")):
        raise ConfigurationError(
            what="Invalid analysis backend URL",
            cause=f"{_API_BASE_ENV_VAR}={env_value!r} is not an http(s) URL",
            fix=f"Set {_API_BASE_ENV_VAR} to e.g. https://backend.example.org",
        )
    logger.debug("Using backend URL from %s", _API_BASE_ENV_VAR)
    return env_value.rstrip("/")
