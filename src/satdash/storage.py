"""Persistent string key/value store with a byte quota.

Plays the role browser local storage plays for a dashboard: string keys,
string values, one flat namespace, and a hard size quota that rejects
writes instead of evicting. Values live in a single SQLite table.
"""

from __future__ import annotations

import errno
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from satdash.exceptions import (
    StorageError,
    StorageQuotaError,
    StorageUnavailableError,
)

if TYPE_CHECKING:
    from satdash.config import Config

logger = logging.getLogger("satdash")

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS items (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    size_bytes INTEGER NOT NULL,
    updated_at TEXT NOT NULL
);
"""

_SQLITE_FULL = getattr(sqlite3, "SQLITE_FULL", 13)
_QUOTA_ERRNOS = frozenset({errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)})


def is_quota_error(exc: BaseException) -> bool:
    """Return ``True`` if *exc* means "storage quota exceeded".

    Recognised encodings:
        * ``StorageQuotaError`` raised by ``LocalStore``
        * SQLite ``SQLITE_FULL`` ("database or disk is full")
        * ``OSError`` with ``ENOSPC`` or ``EDQUOT``

    Example:
        >>> is_quota_error(OSError(errno.ENOSPC, "No space left on device"))
        True
    """
    if isinstance(exc, StorageQuotaError):
        return True
    if isinstance(exc, sqlite3.Error):
        if getattr(exc, "sqlite_errorcode", None) == _SQLITE_FULL:
            return True
        return "database or disk is full" in str(exc)
    if isinstance(exc, OSError):
        return exc.errno in _QUOTA_ERRNOS
    return False


def _entry_size(key: str, value: str) -> int:
    return len(key.encode("utf-8")) + len(value.encode("utf-8"))


class LocalStore:
    """String key/value store persisted to an SQLite file.

    Writes that would push the combined size of all keys and values past
    ``Config.quota_bytes`` raise ``StorageQuotaError`` and leave the
    store unchanged. If the database cannot be created the store is
    marked unavailable and every operation raises
    ``StorageUnavailableError``.

    Args:
        config: Configuration providing ``store_path`` and ``quota_bytes``.

    Example:
        >>> from satdash.config import Config
        >>> store = LocalStore(Config(store_path="/tmp/dash.db"))
        >>> store.set_item("outputFormat", '"GeoTIFF"')
        >>> store.get_item("outputFormat")
        '"GeoTIFF"'
    """

    def __init__(self, config: Config) -> None:
        self._db_path = Path(config.store_path)
        self._quota_bytes = config.quota_bytes
        self._available = self._init_db()

    @property
    def available(self) -> bool:
        """Whether the backing database could be opened."""
        return self._available

    @property
    def quota_bytes(self) -> int:
        return self._quota_bytes

    def _init_db(self) -> bool:
        """Create the database file and schema if needed."""
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self._db_path))
            try:
                conn.executescript(_CREATE_TABLE_SQL)
            finally:
                conn.close()
        except (sqlite3.Error, OSError) as exc:
            logger.warning(
                "Local store initialization failed at %s: %s", self._db_path, exc
            )
            return False
        return True

    def _get_connection(self) -> sqlite3.Connection:
        if not self._available:
            raise StorageUnavailableError(
                what="Local store is unavailable",
                cause=f"Could not open {self._db_path}",
                fix="Check that the store directory is writable",
            )
        return sqlite3.connect(str(self._db_path))

    def _wrap(self, action: str, key: str, exc: Exception) -> StorageError:
        if is_quota_error(exc):
            return StorageQuotaError(
                what=f"Storage quota exceeded while {action} {key!r}",
                cause=str(exc),
                fix="Free disk space or clear cached results",
            )
        return StorageError(
            what=f"Local store failed while {action} {key!r}",
            cause=str(exc),
        )

    def get_item(self, key: str) -> str | None:
        """Return the stored value for *key*, or ``None`` if absent."""
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT value FROM items WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as exc:
            raise self._wrap("reading", key, exc) from exc
        finally:
            conn.close()
        return None if row is None else str(row[0])

    def set_item(self, key: str, value: str) -> None:
        """Store *value* under *key*, replacing any previous value.

        Raises:
            StorageQuotaError: If the write would exceed the quota.
            StorageError: If the database rejects the write.
        """
        new_size = _entry_size(key, value)
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT COALESCE(SUM(size_bytes), 0), "
                "COALESCE(SUM(CASE WHEN key = ? THEN size_bytes END), 0) "
                "FROM items",
                (key,),
            ).fetchone()
            total, existing = (row[0], row[1]) if row else (0, 0)
            projected = total - existing + new_size
            if projected > self._quota_bytes:
                raise StorageQuotaError(
                    what="Storage quota exceeded",
                    cause=(
                        f"Writing {key!r} needs {projected} bytes, "
                        f"quota is {self._quota_bytes}"
                    ),
                    fix="Clear cached results or raise Config.quota_bytes",
                )
            conn.execute(
                "INSERT OR REPLACE INTO items (key, value, size_bytes, updated_at) "
                "VALUES (?, ?, ?, ?)",
                (key, value, new_size, datetime.now(timezone.utc).isoformat()),
            )
            conn.commit()
        except (sqlite3.Error, OSError) as exc:
            raise self._wrap("writing", key, exc) from exc
        finally:
            conn.close()

    def remove_item(self, key: str) -> None:
        """Delete *key*; missing keys are ignored."""
        conn = self._get_connection()
        try:
            conn.execute("DELETE FROM items WHERE key = ?", (key,))
            conn.commit()
        except sqlite3.Error as exc:
            raise self._wrap("removing", key, exc) from exc
        finally:
            conn.close()

    def keys(self) -> list[str]:
        """Return all stored keys in sorted order."""
        conn = self._get_connection()
        try:
            rows = conn.execute("SELECT key FROM items ORDER BY key").fetchall()
        except sqlite3.Error as exc:
            raise self._wrap("listing", "*", exc) from exc
        finally:
            conn.close()
        return [str(r[0]) for r in rows]

    def usage_bytes(self) -> int:
        """Return the combined size of all stored keys and values."""
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT COALESCE(SUM(size_bytes), 0) FROM items"
            ).fetchone()
        except sqlite3.Error as exc:
            raise self._wrap("measuring", "*", exc) from exc
        finally:
            conn.close()
        return int(row[0]) if row else 0

    def clear(self) -> None:
        """Remove every key in the store."""
        conn = self._get_connection()
        try:
            conn.execute("DELETE FROM items")
            conn.commit()
        except sqlite3.Error as exc:
            raise self._wrap("clearing", "*", exc) from exc
        finally:
            conn.close()
        logger.debug("Local store cleared")
