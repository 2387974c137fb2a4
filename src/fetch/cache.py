"""Cache metadata persistence for conditional requests.

Each cache key owns one sidecar record ``<key>.meta`` in the cache directory
holding four pipe-delimited fields followed by a trailing delimiter::

    resolved_file_name|etag|last_modified|cache_control|

A literal ``%`` or ``|`` inside a field is stored as ``%25`` or ``%7C``.

No locking is done on the record; the last writer wins.
"""

from pathlib import Path
from urllib.parse import unquote

import structlog

from src.fetch.constants import META_DELIMITER, META_FIELD_COUNT, META_SUFFIX
from src.fetch.models import CacheEntry


logger = structlog.get_logger()


def format_record(entry: CacheEntry) -> str:
    """Serialize a cache entry to its on-disk record.

    Args:
        entry: Entry to serialize.

    Returns:
        Record text with a trailing delimiter.
    """
    fields = (
        entry.resolved_file_name,
        entry.etag,
        entry.last_modified,
        entry.cache_control,
    )
    return "".join(f"{_escape_field(value)}{META_DELIMITER}" for value in fields)


def parse_record(text: str) -> CacheEntry | None:
    """Parse an on-disk record.

    Args:
        text: Record text.

    Returns:
        Parsed entry, or None if the record does not have exactly four fields.
    """
    parts = [unquote(part.strip()) for part in text.strip().split(META_DELIMITER)]

    # A well-formed record ends with the delimiter, leaving an empty tail
    if parts and parts[-1] == "":
        parts.pop()
    if len(parts) != META_FIELD_COUNT:
        return None

    resolved_file_name, etag, last_modified, cache_control = parts
    return CacheEntry(
        resolved_file_name=resolved_file_name,
        etag=etag,
        last_modified=last_modified,
        cache_control=cache_control,
    )


def _escape_field(value: str) -> str:
    return value.replace("%", "%25").replace(META_DELIMITER, "%7C")


class CacheMetadataStore:
    """Reads and writes per-key validator records.

    Encapsulates the logic for:
    - Locating the sidecar record of a cache key
    - Loading prior validators, treating missing or corrupt records as empty
    - Best-effort overwriting of the record after a fetch reaches the server
    """

    def __init__(self, base_dir: Path) -> None:
        """Initialize the metadata store.

        Args:
            base_dir: Cache directory holding the records.
        """
        self._base_dir = base_dir
        self._log = logger.bind(component="cache")

    @property
    def base_dir(self) -> Path:
        """Get the cache directory."""
        return self._base_dir

    def meta_path(self, key: str) -> Path:
        """Get the record path for a cache key."""
        return self._base_dir / f"{key}{META_SUFFIX}"

    def load(self, key: str) -> CacheEntry:
        """Load the validator record for a cache key.

        Args:
            key: Cache key.

        Returns:
            Stored entry, or an empty entry if none is usable.
        """
        path = self.meta_path(key)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return CacheEntry()
        except (OSError, UnicodeDecodeError) as e:
            self._log.debug("cache_record_unreadable", cache_key=key, error=str(e))
            return CacheEntry()

        entry = parse_record(text)
        if entry is None:
            self._log.debug("cache_record_corrupt", cache_key=key)
            return CacheEntry()

        self._log.debug(
            "cache_lookup",
            cache_key=key,
            has_etag=bool(entry.etag),
            has_last_modified=bool(entry.last_modified),
        )
        return entry

    def save(self, entry: CacheEntry, key: str) -> bool:
        """Overwrite the validator record for a cache key.

        Failures are logged and swallowed; the next fetch then revalidates
        unconditionally.

        Args:
            entry: Entry to store.
            key: Cache key.

        Returns:
            True if the record was written.
        """
        path = self.meta_path(key)
        try:
            path.write_text(format_record(entry), encoding="utf-8")
        except OSError as e:
            self._log.warning("cache_update_failed", cache_key=key, error=str(e))
            return False

        self._log.debug(
            "cache_update",
            cache_key=key,
            resolved_file_name=entry.resolved_file_name,
            etag=bool(entry.etag),
            last_modified=bool(entry.last_modified),
        )
        return True

    def remove(self, key: str) -> None:
        """Delete the validator record for a cache key, if present."""
        try:
            self.meta_path(key).unlink(missing_ok=True)
        except OSError as e:
            self._log.warning("cache_remove_failed", cache_key=key, error=str(e))
