"""Test that satdash package imports correctly."""

import re

import pytest

import satdash


@pytest.mark.unit
def test_package_version_exists() -> None:
    """Verify package exposes a valid semver version string."""
    assert hasattr(satdash, "__version__")
    assert isinstance(satdash.__version__, str)
    assert re.match(r"^\d+\.\d+\.\d+", satdash.__version__)


@pytest.mark.unit
def test_public_api_exports() -> None:
    """Verify public API symbols are accessible."""
    for name in satdash.__all__:
        assert hasattr(satdash, name), name


@pytest.mark.unit
def test_exception_hierarchy() -> None:
    """Verify exception inheritance chain."""
    assert issubclass(satdash.ConfigurationError, satdash.SatDashError)
    assert issubclass(satdash.StorageError, satdash.SatDashError)
    assert issubclass(satdash.StorageQuotaError, satdash.StorageError)
    assert issubclass(satdash.BackendError, satdash.SatDashError)
    assert issubclass(satdash.CacheError, satdash.SatDashError)
    assert issubclass(satdash.ProjectionError, satdash.SatDashError)
    assert issubclass(satdash.SatDashError, Exception)
