"""HTTP fetch client with on-disk caching and conditional revalidation."""

import ssl
import time
from dataclasses import dataclass, field
from pathlib import Path

import httpx
import structlog

from src.fetch.cache import CacheMetadataStore
from src.fetch.config import CacheNaming, FetchConfig
from src.fetch.constants import (
    DEFAULT_CHUNK_SIZE,
    FORM_CONTENT_TYPE,
    HTTP_REDIRECT_STATUSES,
    HTTP_STATUS_NOT_MODIFIED,
    HTTP_STATUS_OK,
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
)
from src.fetch.encoding import encode_post_data
from src.fetch.hashing import compute_cache_key
from src.fetch.locks import KeyedLockRegistry
from src.fetch.metrics import FetchMetrics
from src.fetch.models import (
    CacheEntry,
    FetchCacheHit,
    FetchError,
    FetchErrorClass,
    FetchFailure,
    FetchResult,
    FetchResultBase,
    FetchSuccess,
)
from src.fetch.staging import BodySink, StagingFileManager, StagingHandle
from src.fetch.url import UrlShape, recognize_url


# Response headers persisted as validators, keyed by CacheEntry field
VALIDATOR_HEADERS: dict[str, str] = {
    "etag": "ETag",
    "last_modified": "Last-Modified",
    "cache_control": "Cache-Control",
}


def capture_validators(headers: httpx.Headers) -> dict[str, str]:
    """Capture validator headers from a response.

    The first occurrence of each header wins; later duplicates are ignored.

    Args:
        headers: Response headers.

    Returns:
        Mapping of CacheEntry field name to trimmed value ("" if absent).
    """
    captured: dict[str, str] = {}
    for field_name, header_name in VALIDATOR_HEADERS.items():
        values = headers.get_list(header_name)
        captured[field_name] = values[0].strip() if values else ""
    return captured


@dataclass
class ResponseInfo:
    """What the client keeps from a completed response."""

    status_code: int
    final_url: str
    redirect_count: int
    content_type: str | None
    validators: dict[str, str] = field(default_factory=dict)
    bytes_received: int = 0


class HttpFetcher:
    """Fetch-and-cache engine.

    Turns a URL (plus optional POST payload) into a local readable file:
    - Content-addressed cache keys over URL and payload
    - If-None-Match / If-Modified-Since revalidation from stored validators
    - Streaming of the body into a private staging file
    - Atomic promotion of 200 responses into the cache directory
    - Failures reported as FetchFailure values, never raised
    """

    def __init__(
        self,
        config: FetchConfig | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            config: Fetch configuration; defaults are used when omitted.
            logger: Logger to report through; structlog default when omitted.
            transport: Optional httpx transport (used by tests).
        """
        self._config = config or FetchConfig()
        self._transport = transport
        self._metadata = CacheMetadataStore(self._config.base_dir)
        self._staging = StagingFileManager(self._config.base_dir)
        self._locks = KeyedLockRegistry()
        self._metrics = FetchMetrics.get_instance()
        base_logger = logger if logger is not None else structlog.get_logger()
        self._log = base_logger.bind(component="fetch")

    @property
    def config(self) -> FetchConfig:
        """Get the fetch configuration."""
        return self._config

    @property
    def metadata(self) -> CacheMetadataStore:
        """Get the cache metadata store."""
        return self._metadata

    def fetch(self, url: str, payload: str | None = None) -> FetchResult:
        """Fetch a URL into the local cache.

        Args:
            url: URL to fetch; surrounding whitespace is ignored.
            payload: Optional pre-formatted POST payload (key=value&...).

        Returns:
            FetchSuccess, FetchCacheHit or FetchFailure.

        Raises:
            TypeError: If url is not a string or payload is not a string/None.
        """
        if not isinstance(url, str):
            msg = f"url must be a string, got {type(url).__name__}"
            raise TypeError(msg)
        if payload is not None and not isinstance(payload, str):
            msg = f"payload must be a string or None, got {type(payload).__name__}"
            raise TypeError(msg)

        url = url.strip()
        start_time_ns = time.perf_counter_ns()
        log = self._log.bind(url=url, method="POST" if payload else "GET")

        shape = recognize_url(url)
        if shape is None:
            log.debug("not_a_url")
            result: FetchResult = self._failure(
                url=url,
                cache_key="",
                error_class=FetchErrorClass.NOT_A_URL,
                message=f"Not a fetchable URL: {url}",
                start_time_ns=start_time_ns,
            )
            return result

        cache_key = compute_cache_key(url, payload)
        log = log.bind(cache_key=cache_key)

        with self._locks.hold(cache_key):
            result = self._fetch_locked(
                url=url,
                payload=payload,
                shape=shape,
                cache_key=cache_key,
                start_time_ns=start_time_ns,
                log=log,
            )

        self._metrics.record_duration(result.duration_ms)
        if isinstance(result, FetchFailure):
            self._metrics.record_failure(result.error.error_class)

        log.info(
            "fetch_complete",
            kind=result.kind,
            status_code=result.status_code,
            content_type=result.content_type,
            local_path=str(result.local_path) if result.local_path else None,
            needs_unlink=result.needs_unlink,
            duration_ms=round(result.duration_ms, 2),
            error_class=(
                result.error.error_class.value
                if isinstance(result, FetchFailure)
                else None
            ),
        )
        return result

    def release(self, result: FetchResultBase) -> None:
        """Release a fetch result, deleting its file if it is a throwaway.

        Args:
            result: Result returned by fetch().
        """
        result.release()

    def put_document(
        self,
        url: str,
        body: str | bytes,
        content_type: str = "application/json",
    ) -> bool:
        """PUT a document to a remote endpoint.

        Args:
            url: Target URL.
            body: Document to send.
            content_type: Content-Type of the document.

        Returns:
            True if the server answered with a 2xx status.
        """
        url = url.strip()
        log = self._log.bind(url=url, method="PUT")
        if recognize_url(url) is None:
            log.warning("put_rejected", reason="not_a_url")
            return False

        content = body.encode("utf-8") if isinstance(body, str) else body
        headers = {
            "User-Agent": self._config.user_agent,
            "Content-Type": content_type,
        }
        try:
            with self._client() as client:
                response = client.put(url, content=content, headers=headers)
        except httpx.HTTPError as e:
            log.warning("put_failed", error=str(e), error_type=type(e).__name__)
            return False

        ok = HTTP_STATUS_OK_MIN <= response.status_code < HTTP_STATUS_OK_MAX
        log.info("put_complete", status_code=response.status_code, ok=ok)
        return ok

    def _fetch_locked(
        self,
        url: str,
        payload: str | None,
        shape: UrlShape,
        cache_key: str,
        start_time_ns: int,
        log: structlog.stdlib.BoundLogger,
    ) -> FetchResult:
        """Run one fetch while holding the lock for its cache key."""
        caching = self._config.cache_enabled
        entry = self._metadata.load(cache_key) if caching else CacheEntry()

        basename = None
        if self._config.naming == CacheNaming.URL_BASENAME:
            basename = shape.basename
        final_path = self._staging.resolve_final_path(basename, cache_key)
        cached_path = self._cached_path(entry, final_path)

        try:
            handle = self._staging.open_staging()
        except OSError as e:
            log.warning("staging_open_failed", error=str(e))
            return self._failure(
                url=url,
                cache_key=cache_key,
                error_class=FetchErrorClass.LOCAL_IO,
                message=f"Cannot create staging file: {e}",
                start_time_ns=start_time_ns,
            )

        settled = False
        try:
            headers = self._conditional_headers(entry, cached_path) if caching else {}
            outcome = self._transfer(url, payload, headers, handle, log)
            handle.close()

            if isinstance(outcome, FetchError):
                return self._failure(
                    url=url,
                    cache_key=cache_key,
                    error_class=outcome.error_class,
                    message=outcome.message,
                    start_time_ns=start_time_ns,
                    status_code=outcome.status_code,
                )

            if outcome.redirect_count:
                log.info(
                    "fetch_redirected",
                    final_url=outcome.final_url,
                    redirects=outcome.redirect_count,
                )
            self._metrics.record_response(outcome.status_code, outcome.bytes_received)

            if outcome.status_code == HTTP_STATUS_OK:
                result, settled = self._complete_ok(
                    url, cache_key, entry, outcome, handle, final_path, start_time_ns, log
                )
                return result

            if outcome.status_code == HTTP_STATUS_NOT_MODIFIED:
                return self._complete_not_modified(
                    url, cache_key, entry, outcome, cached_path, start_time_ns
                )

            if caching:
                self._metadata.save(
                    CacheEntry(resolved_file_name=entry.resolved_file_name), cache_key
                )
            return self._failure(
                url=url,
                cache_key=cache_key,
                error_class=FetchErrorClass.HTTP_STATUS,
                message=f"Unexpected HTTP status {outcome.status_code}",
                start_time_ns=start_time_ns,
                status_code=outcome.status_code,
                content_type=outcome.content_type,
            )
        finally:
            if not settled:
                self._staging.discard(handle)

    def _complete_ok(
        self,
        url: str,
        cache_key: str,
        entry: CacheEntry,
        outcome: ResponseInfo,
        handle: StagingHandle,
        final_path: Path,
        start_time_ns: int,
        log: structlog.stdlib.BoundLogger,
    ) -> tuple[FetchResult, bool]:
        """Handle a 200 response.

        Returns:
            The result, and whether the staging file was consumed.
        """
        caching = self._config.cache_enabled

        if not self._config.content_types.accepts(outcome.content_type):
            if caching:
                self._metadata.save(
                    CacheEntry(resolved_file_name=entry.resolved_file_name), cache_key
                )
            failure = self._failure(
                url=url,
                cache_key=cache_key,
                error_class=FetchErrorClass.CONTENT_TYPE_MISMATCH,
                message=f"Rejected content type: {outcome.content_type}",
                start_time_ns=start_time_ns,
                status_code=outcome.status_code,
                content_type=outcome.content_type,
            )
            return failure, False

        if not caching:
            # The staging file itself is handed to the caller
            success = FetchSuccess(
                url=url,
                cache_key=cache_key,
                content_type=outcome.content_type,
                duration_ms=_elapsed_ms(start_time_ns),
                local_path=handle.path,
                needs_unlink=True,
            )
            return success, True

        try:
            self._staging.finalize(handle, final_path, outcome.status_code)
        except OSError as e:
            log.warning("staging_promote_failed", error=str(e))
            failure = self._failure(
                url=url,
                cache_key=cache_key,
                error_class=FetchErrorClass.LOCAL_IO,
                message=f"Cannot promote staging file: {e}",
                start_time_ns=start_time_ns,
                status_code=outcome.status_code,
                content_type=outcome.content_type,
            )
            return failure, True

        self._metadata.save(
            CacheEntry(resolved_file_name=final_path.name, **outcome.validators),
            cache_key,
        )
        self._metrics.record_promotion()

        success = FetchSuccess(
            url=url,
            cache_key=cache_key,
            content_type=outcome.content_type,
            duration_ms=_elapsed_ms(start_time_ns),
            local_path=final_path,
            needs_unlink=False,
        )
        return success, True

    def _complete_not_modified(
        self,
        url: str,
        cache_key: str,
        entry: CacheEntry,
        outcome: ResponseInfo,
        cached_path: Path,
        start_time_ns: int,
    ) -> FetchResult:
        """Handle a 304 response by reusing the cached file."""
        if not self._config.cache_enabled or not cached_path.is_file():
            if self._config.cache_enabled:
                self._metadata.remove(cache_key)
            return self._failure(
                url=url,
                cache_key=cache_key,
                error_class=FetchErrorClass.LOCAL_IO,
                message="Not Modified, but no cached copy is available",
                start_time_ns=start_time_ns,
                status_code=outcome.status_code,
                content_type=outcome.content_type,
            )

        validators = outcome.validators
        self._metadata.save(
            CacheEntry(
                resolved_file_name=cached_path.name,
                etag=validators.get("etag") or entry.etag,
                last_modified=validators.get("last_modified") or entry.last_modified,
                cache_control=validators.get("cache_control") or entry.cache_control,
            ),
            cache_key,
        )
        self._metrics.record_cache_hit()

        return FetchCacheHit(
            url=url,
            cache_key=cache_key,
            content_type=outcome.content_type,
            duration_ms=_elapsed_ms(start_time_ns),
            local_path=cached_path,
        )

    def _cached_path(self, entry: CacheEntry, final_path: Path) -> Path:
        """Locate the previously promoted file for a cache entry.

        Falls back to final_path when the entry has no usable file name.
        """
        name = entry.resolved_file_name
        if name and Path(name).name == name and name not in {".", ".."}:
            return self._config.base_dir / name
        return final_path

    def _conditional_headers(self, entry: CacheEntry, cached_path: Path) -> dict[str, str]:
        """Build conditional request headers from a cache entry.

        Nothing is sent when the cached file is gone; a 304 could not be
        served from it.
        """
        headers: dict[str, str] = {}
        if not entry.has_validators or not cached_path.is_file():
            return headers

        if entry.etag:
            headers["If-None-Match"] = entry.etag
        elif entry.last_modified:
            headers["If-Modified-Since"] = entry.last_modified
        return headers

    def _build_headers(self, conditional: dict[str, str]) -> dict[str, str]:
        """Build request headers."""
        headers: dict[str, str] = {
            "User-Agent": self._config.user_agent,
            "Accept": "*/*",
            "Accept-Encoding": "gzip, deflate",
        }
        headers.update(conditional)
        return headers

    def _client(self) -> httpx.Client:
        return httpx.Client(
            timeout=self._config.timeout_seconds,
            follow_redirects=False,
            transport=self._transport,
        )

    def _transfer(
        self,
        url: str,
        payload: str | None,
        conditional: dict[str, str],
        sink: BodySink,
        log: structlog.stdlib.BoundLogger,
    ) -> ResponseInfo | FetchError:
        """Perform the request, following redirects, streaming into sink.

        Args:
            url: URL to request.
            payload: Raw POST payload, or None for GET.
            conditional: Conditional request headers.
            sink: Receives the response body.
            log: Bound logger.

        Returns:
            ResponseInfo for the final response, or FetchError if no usable
            response was received.
        """
        body = encode_post_data(payload) if payload else None
        method = "POST" if body else "GET"
        headers = self._build_headers(conditional)
        if body is not None:
            headers["Content-Type"] = FORM_CONTENT_TYPE

        current_url = url
        try:
            with self._client() as client:
                for hop in range(self._config.max_redirects + 1):
                    request = client.build_request(
                        method,
                        current_url,
                        headers=headers,
                        content=body.encode("ascii") if body is not None else None,
                    )
                    response = client.send(request, stream=True)
                    try:
                        location = response.headers.get("location")
                        if response.status_code in HTTP_REDIRECT_STATUSES and location:
                            next_url = str(response.url.join(location))
                            log.debug(
                                "redirect",
                                hop=hop + 1,
                                status_code=response.status_code,
                                location=next_url,
                            )
                            headers["Referer"] = current_url
                            current_url = next_url
                            continue

                        received = 0
                        for chunk in response.iter_bytes(chunk_size=DEFAULT_CHUNK_SIZE):
                            received += sink.write(chunk)

                        return ResponseInfo(
                            status_code=response.status_code,
                            final_url=str(response.url),
                            redirect_count=hop,
                            content_type=response.headers.get("content-type"),
                            validators=capture_validators(response.headers),
                            bytes_received=received,
                        )
                    finally:
                        response.close()

        except httpx.TimeoutException as e:
            return FetchError(
                error_class=FetchErrorClass.NETWORK_TIMEOUT,
                message=f"Request timed out: {e}",
            )

        except httpx.ConnectError as e:
            if _is_ssl_error(e):
                return FetchError(
                    error_class=FetchErrorClass.SSL_ERROR,
                    message=f"TLS failure: {e}",
                )
            return FetchError(
                error_class=FetchErrorClass.CONNECTION_ERROR,
                message=f"Connection failed: {e}",
            )

        except httpx.TransportError as e:
            return FetchError(
                error_class=FetchErrorClass.CONNECTION_ERROR,
                message=f"Transport error: {e}",
            )

        except OSError as e:
            return FetchError(
                error_class=FetchErrorClass.LOCAL_IO,
                message=f"Cannot write staging file: {e}",
            )

        except Exception as e:  # noqa: BLE001
            return FetchError(
                error_class=FetchErrorClass.UNKNOWN,
                message=f"Unexpected error: {e}",
            )

        return FetchError(
            error_class=FetchErrorClass.TOO_MANY_REDIRECTS,
            message=f"Exceeded {self._config.max_redirects} redirects",
        )

    def _failure(
        self,
        url: str,
        cache_key: str,
        error_class: FetchErrorClass,
        message: str,
        start_time_ns: int,
        status_code: int | None = None,
        content_type: str | None = None,
    ) -> FetchFailure:
        return FetchFailure(
            url=url,
            cache_key=cache_key,
            status_code=status_code or 0,
            content_type=content_type,
            duration_ms=_elapsed_ms(start_time_ns),
            error=FetchError(
                error_class=error_class,
                message=message,
                status_code=status_code,
            ),
        )


def _elapsed_ms(start_time_ns: int) -> float:
    return (time.perf_counter_ns() - start_time_ns) / 1_000_000


def _is_ssl_error(error: BaseException) -> bool:
    """Check if an exception chain contains a TLS failure."""
    seen: BaseException | None = error
    while seen is not None:
        if isinstance(seen, ssl.SSLError):
            return True
        seen = seen.__cause__ or seen.__context__
    return "SSL" in str(error) or "CERTIFICATE" in str(error).upper()
