"""satdash exception hierarchy.

All exceptions follow a three-part message pattern: what failed,
likely cause, and suggested fix.
"""

from __future__ import annotations


class SatDashError(Exception):
    """Base exception for all satdash errors.

    Args:
        what: Description of what failed.
        cause: Likely cause of the failure.
        fix: Suggested action to resolve the issue.

    Example:
        >>> raise SatDashError(
        ...     what="Operation failed",
        ...     cause="Unexpected internal state",
        ...     fix="Please report this issue",
        ... )
    """

    def __init__(
        self,
        what: str,
        cause: str = "",
        fix: str = "",
    ) -> None:
        """Initialize with structured error context.

        Args:
            what: Description of what failed.
            cause: Likely cause of the failure.
            fix: Suggested action to resolve the issue.
        """
        self.what = what
        self.cause = cause
        self.fix = fix
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Build the multi-line error message from parts.

        Returns:
            Formatted message with optional Cause and Fix lines.
        """
        parts = [self.what]
        if self.cause:
            parts.append(f"Cause: {self.cause}")
        if self.fix:
            parts.append(f"Fix: {self.fix}")
        return "\n".join(parts)


class ConfigurationError(SatDashError):
    """Raised for invalid configuration values.

    Example:
        >>> raise ConfigurationError(
        ...     what="Invalid API base URL",
        ...     cause="SATDASH_API_BASE_URL='ftp://host' is not http(s)",
        ...     fix="Use an http:// or https:// URL",
        ... )
    """


class StorageError(SatDashError):
    """Raised by the key/value store when a read or write fails."""


class StorageQuotaError(StorageError):
    """Raised when a write would exceed the store's byte quota.

    Example:
        >>> raise StorageQuotaError(
        ...     what="Storage quota exceeded",
        ...     cause="Writing 'analysisResults' needs 6000000 bytes, quota is 5242880",
        ...     fix="Clear cached results or raise Config.quota_bytes",
        ... )
    """


class StorageUnavailableError(StorageError):
    """Raised when the backing store cannot be opened at all."""


class CacheError(SatDashError):
    """Describes a failed result-cache write.

    The cache never raises this; it is returned inside a
    ``PersistOutcome`` so callers can decide whether to surface it.
    """


class BackendError(SatDashError):
    """Raised when the analysis backend rejects or fails a request.

    Args:
        what: Description of what failed.
        cause: Likely cause of the failure.
        fix: Suggested action to resolve the issue.
        status_code: HTTP status, or ``None`` for transport failures.
        retryable: Whether resending the same request may succeed.

    Example:
        >>> raise BackendError(
        ...     what="Analyse request failed",
        ...     cause="analysis 'foo' not supported",
        ...     status_code=400,
        ... )
    """

    def __init__(
        self,
        what: str,
        cause: str = "",
        fix: str = "",
        status_code: int | None = None,
        retryable: bool = False,
    ) -> None:
        self.status_code = status_code
        self.retryable = retryable
        super().__init__(what=what, cause=cause, fix=fix)


class ProjectionError(SatDashError):
    """Raised when pixel offsets cannot be projected around a centre.

    Example:
        >>> raise ProjectionError(
        ...     what="Cannot project pixel offsets",
        ...     cause="Centre latitude 90.0 is at a pole",
        ...     fix="Use a centre latitude strictly between -90 and 90",
        ... )
    """
