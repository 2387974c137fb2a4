"""HTTP and on-disk constants for the fetch layer.

Centralizes all fetch-related constants to avoid duplication across modules.
"""

# HTTP Status Codes
HTTP_STATUS_OK = 200
HTTP_STATUS_OK_MIN = 200
HTTP_STATUS_OK_MAX = 300
HTTP_STATUS_NOT_MODIFIED = 304

# Redirect statuses that carry a Location header
HTTP_REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})

# Request defaults
DEFAULT_USER_AGENT = "json-fetch-cache/1.0"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_REDIRECTS = 5
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

# Chunk size for streaming reads
DEFAULT_CHUNK_SIZE = 8192

# On-disk cache layout
CACHE_DIR_NAME = "json-fetch-cache"
CACHE_DIR_MODE = 0o700
META_SUFFIX = ".meta"
META_DELIMITER = "|"
META_FIELD_COUNT = 4
STAGING_PREFIX = "tmp"
STAGING_SUFFIX = ".part"

# Content types
JSON_CONTENT_TYPE = "application/json"
JAVASCRIPT_CONTENT_TYPES = frozenset(
    {"application/x-javascript", "text/javascript", "text/x-javascript"}
)
TEXT_JSON_CONTENT_TYPES = frozenset({"text/x-json"})
HTML_CONTENT_TYPES = frozenset({"text/html"})
GZIP_CONTENT_TYPES = frozenset({"application/x-gzip", "application/gzip"})
