"""Data models for the fetch-and-cache layer."""

from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Literal

import structlog
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from src.fetch.constants import HTTP_STATUS_NOT_MODIFIED, HTTP_STATUS_OK
from src.fetch.state_machine import FetchState, FetchStateMachine


logger = structlog.get_logger()


class FetchErrorClass(str, Enum):
    """Classification of fetch failures.

    - NOT_A_URL: Input did not match the supported URL grammar
    - NETWORK_TIMEOUT: Request timed out
    - CONNECTION_ERROR: Could not establish connection (DNS, refused)
    - SSL_ERROR: TLS certificate or handshake error
    - TOO_MANY_REDIRECTS: Redirect chain exceeded the configured cap
    - HTTP_STATUS: Server answered with a status other than 200/304
    - CONTENT_TYPE_MISMATCH: 200 response with a rejected content type
    - LOCAL_IO: Cache directory, staging file or promotion failed
    - UNKNOWN: Unclassified error
    """

    NOT_A_URL = "NOT_A_URL"
    NETWORK_TIMEOUT = "NETWORK_TIMEOUT"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    SSL_ERROR = "SSL_ERROR"
    TOO_MANY_REDIRECTS = "TOO_MANY_REDIRECTS"
    HTTP_STATUS = "HTTP_STATUS"
    CONTENT_TYPE_MISMATCH = "CONTENT_TYPE_MISMATCH"
    LOCAL_IO = "LOCAL_IO"
    UNKNOWN = "UNKNOWN"


class FetchError(BaseModel):
    """Typed error from a fetch operation."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    error_class: FetchErrorClass = Field(description="Classification of the error")
    message: Annotated[str, Field(min_length=1, description="Human-readable message")]
    status_code: int | None = Field(
        default=None, description="HTTP status code if a response was received"
    )

    @property
    def reached_server(self) -> bool:
        """Check if the server answered before the failure."""
        return self.status_code is not None


class CacheEntry(BaseModel):
    """Persisted validator record for one cache key.

    Absent values are empty strings, never None.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    resolved_file_name: str = ""
    etag: str = ""
    last_modified: str = ""
    cache_control: str = ""

    @property
    def has_validators(self) -> bool:
        """Check if the entry can seed a conditional request."""
        return bool(self.etag or self.last_modified)

    @property
    def is_empty(self) -> bool:
        """Check if nothing is known for this key."""
        return not (
            self.resolved_file_name
            or self.etag
            or self.last_modified
            or self.cache_control
        )


class FetchResultBase(BaseModel):
    """Common shape of every fetch outcome.

    A result is released exactly once through release(); further calls are
    no-ops.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    url: str = Field(description="Requested URL")
    cache_key: str = Field(default="", description="Cache key of the request")
    status_code: int = Field(
        default=0, ge=0, le=599, description="HTTP status code, 0 if none"
    )
    content_type: str | None = Field(default=None, description="Response type")
    duration_ms: float = Field(default=0.0, ge=0.0, description="Elapsed time")
    local_path: Path | None = Field(default=None, description="Readable file")
    needs_unlink: bool = Field(
        default=False, description="Whether release() deletes local_path"
    )

    _lifecycle: FetchStateMachine = PrivateAttr()

    def model_post_init(self, context: Any, /) -> None:
        """Settle the lifecycle into its post-fetch state."""
        self._lifecycle = FetchStateMachine(cache_key=self.cache_key)
        self._lifecycle.transition(
            FetchState.FETCH_SUCCEEDED if self.succeeded else FetchState.FETCH_FAILED
        )

    @property
    def succeeded(self) -> bool:
        """Check if a readable local file is available."""
        return False

    @property
    def state(self) -> FetchState:
        """Get the lifecycle state."""
        return self._lifecycle.state

    @property
    def released(self) -> bool:
        """Check if release() has been called."""
        return self._lifecycle.is_released()

    def release(self) -> None:
        """Release the result, deleting a throwaway local file.

        Safe to call more than once.
        """
        if self._lifecycle.is_released():
            return

        if self.needs_unlink and self.local_path is not None:
            try:
                self.local_path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(
                    "release_unlink_failed",
                    component="fetch",
                    cache_key=self.cache_key,
                    path=str(self.local_path),
                    error=str(e),
                )

        self._lifecycle.transition(FetchState.FETCH_RELEASED)


class FetchSuccess(FetchResultBase):
    """Fresh content was fetched (HTTP 200)."""

    kind: Literal["success"] = "success"
    status_code: int = HTTP_STATUS_OK
    local_path: Path

    @property
    def succeeded(self) -> bool:
        """Check if a readable local file is available."""
        return True


class FetchCacheHit(FetchResultBase):
    """The server confirmed the cached copy is current (HTTP 304)."""

    kind: Literal["cache_hit"] = "cache_hit"
    status_code: int = HTTP_STATUS_NOT_MODIFIED
    local_path: Path
    needs_unlink: Literal[False] = False

    @property
    def succeeded(self) -> bool:
        """Check if a readable local file is available."""
        return True


class FetchFailure(FetchResultBase):
    """No usable file was produced."""

    kind: Literal["failure"] = "failure"
    error: FetchError
    local_path: None = None
    needs_unlink: Literal[False] = False

    @property
    def reason(self) -> str:
        """Human-readable failure reason."""
        return self.error.message


FetchResult = Annotated[
    FetchSuccess | FetchCacheHit | FetchFailure,
    Field(discriminator="kind"),
]
