"""Staging files for in-flight response bodies.

A response body is always written to a private, uniquely named staging file
first. When the fetch completes the staging file is either promoted to its
cache slot or discarded.
"""

import os
import tempfile
from pathlib import Path
from types import TracebackType
from typing import BinaryIO, Protocol

import structlog

from src.fetch.constants import (
    CACHE_DIR_MODE,
    HTTP_STATUS_OK,
    STAGING_PREFIX,
    STAGING_SUFFIX,
)


logger = structlog.get_logger()


class BodySink(Protocol):
    """Receives response body chunks as they arrive."""

    def write(self, chunk: bytes) -> int:
        """Write one chunk and return the number of bytes written."""
        ...


class StagingHandle:
    """Writable staging file owned by one in-flight fetch."""

    def __init__(self, path: Path, file: BinaryIO) -> None:
        """Initialize the handle.

        Args:
            path: Path of the staging file.
            file: Open binary file object for the path.
        """
        self._path = path
        self._file: BinaryIO | None = file
        self._bytes_written = 0

    @property
    def path(self) -> Path:
        """Get the staging file path."""
        return self._path

    @property
    def bytes_written(self) -> int:
        """Get the number of body bytes written so far."""
        return self._bytes_written

    @property
    def closed(self) -> bool:
        """Check if the file handle has been closed."""
        return self._file is None

    def write(self, chunk: bytes) -> int:
        """Append a body chunk to the staging file.

        Raises:
            ValueError: If the handle is already closed.
        """
        if self._file is None:
            msg = f"Staging file already closed: {self._path}"
            raise ValueError(msg)
        written = self._file.write(chunk)
        self._bytes_written += written
        return written

    def close(self) -> None:
        """Flush and close the file handle. Safe to call more than once."""
        if self._file is None:
            return
        try:
            self._file.flush()
        finally:
            self._file.close()
            self._file = None

    def __enter__(self) -> "StagingHandle":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


class StagingFileManager:
    """Creates, promotes and discards staging files in the cache directory."""

    def __init__(self, base_dir: Path) -> None:
        """Initialize the manager.

        Args:
            base_dir: Cache directory; created on demand.
        """
        self._base_dir = base_dir
        self._log = logger.bind(component="staging")

    @property
    def base_dir(self) -> Path:
        """Get the cache directory."""
        return self._base_dir

    def ensure_base_dir(self) -> None:
        """Create the cache directory (owner-only access) if missing.

        Raises:
            OSError: If the directory cannot be created.
        """
        self._base_dir.mkdir(mode=CACHE_DIR_MODE, parents=True, exist_ok=True)

    def open_staging(self) -> StagingHandle:
        """Create a new exclusively-created staging file.

        Returns:
            Writable handle for the new file.

        Raises:
            OSError: If the directory or file cannot be created.
        """
        self.ensure_base_dir()
        fd, name = tempfile.mkstemp(
            prefix=STAGING_PREFIX, suffix=STAGING_SUFFIX, dir=self._base_dir
        )
        try:
            file = os.fdopen(fd, "wb")
        except OSError:
            os.close(fd)
            Path(name).unlink(missing_ok=True)
            raise

        path = Path(name)
        self._log.debug("staging_opened", path=str(path))
        return StagingHandle(path, file)

    def resolve_final_path(self, basename: str | None, key: str) -> Path:
        """Get the cache slot for a request.

        Args:
            basename: URL basename to name the slot by, or None.
            key: Cache key, used when there is no basename.

        Returns:
            Path of the cache slot inside the cache directory.
        """
        return self._base_dir / (basename or key)

    def finalize(
        self,
        handle: StagingHandle,
        final_path: Path,
        status_code: int,
    ) -> Path | None:
        """Promote or discard a completed staging file.

        On 200 the staging file atomically replaces whatever is at
        final_path. Any other status leaves final_path untouched.

        Args:
            handle: Staging handle of the completed fetch.
            final_path: Cache slot for the content.
            status_code: HTTP status of the response.

        Returns:
            final_path when promoted, None when discarded.

        Raises:
            OSError: If promotion fails; the staging file is removed first.
        """
        handle.close()

        if status_code != HTTP_STATUS_OK:
            self.discard(handle)
            return None

        try:
            os.replace(handle.path, final_path)
        except OSError:
            self.discard(handle)
            raise

        self._log.debug(
            "staging_promoted",
            path=str(final_path),
            bytes=handle.bytes_written,
        )
        return final_path

    def discard(self, handle: StagingHandle) -> None:
        """Close and delete a staging file. A missing file is not an error."""
        handle.close()
        try:
            handle.path.unlink(missing_ok=True)
        except OSError as e:
            self._log.warning(
                "staging_discard_failed", path=str(handle.path), error=str(e)
            )
            return
        self._log.debug("staging_discarded", path=str(handle.path))
