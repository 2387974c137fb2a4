"""HTTP fetch-and-cache layer.

This module turns URLs into local readable files with:
- URL recognition and content-addressed cache keys
- ETag/Last-Modified conditional requests for revalidation
- Streaming into private staging files with atomic promotion
- Per-key cache metadata records
- Metrics collection for observability
"""

from src.fetch.cache import CacheMetadataStore, format_record, parse_record
from src.fetch.client import HttpFetcher, capture_validators
from src.fetch.config import CacheNaming, ContentTypePolicy, FetchConfig
from src.fetch.constants import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_TIMEOUT_SECONDS,
    HTTP_STATUS_NOT_MODIFIED,
    HTTP_STATUS_OK,
    META_SUFFIX,
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
from src.fetch.state_machine import FetchState, FetchStateError, FetchStateMachine
from src.fetch.url import UrlShape, is_url, recognize_url, url_basename


__all__ = [
    # Client
    "HttpFetcher",
    "capture_validators",
    # Cache metadata
    "CacheMetadataStore",
    "format_record",
    "parse_record",
    # Staging
    "BodySink",
    "StagingFileManager",
    "StagingHandle",
    # Config
    "CacheNaming",
    "ContentTypePolicy",
    "FetchConfig",
    # Models
    "CacheEntry",
    "FetchCacheHit",
    "FetchError",
    "FetchErrorClass",
    "FetchFailure",
    "FetchResult",
    "FetchResultBase",
    "FetchSuccess",
    # Lifecycle
    "FetchState",
    "FetchStateError",
    "FetchStateMachine",
    "KeyedLockRegistry",
    # Helpers
    "UrlShape",
    "compute_cache_key",
    "encode_post_data",
    "is_url",
    "recognize_url",
    "url_basename",
    # Constants
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_MAX_REDIRECTS",
    "DEFAULT_TIMEOUT_SECONDS",
    "HTTP_STATUS_NOT_MODIFIED",
    "HTTP_STATUS_OK",
    "META_SUFFIX",
    # Metrics
    "FetchMetrics",
]
