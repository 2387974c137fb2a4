"""Metrics collection for the fetch-and-cache layer."""

from collections import Counter
from threading import Lock

from src.fetch.models import FetchErrorClass


class FetchMetrics:
    """Collects counters for fetch operations.

    Fetches of different cache keys run concurrently, so every counter is
    updated under one lock:
    - http_requests_total{status_code}
    - http_cache_hits_total, cache_promotions_total
    - fetch_failures_total{error_class}
    - http_bytes_total, fetch duration
    """

    _instance: "FetchMetrics | None" = None
    _lock = Lock()

    def __init__(self) -> None:
        """Initialize the metrics collector."""
        self._requests: Counter[int] = Counter()
        self._failures: Counter[str] = Counter()
        self._cache_hits = 0
        self._promotions = 0
        self._bytes = 0
        self._duration_ms_total = 0.0
        self._fetch_count = 0
        self._lock = Lock()

    @classmethod
    def get_instance(cls) -> "FetchMetrics":
        """Get the singleton metrics instance.

        Returns:
            The shared FetchMetrics instance.
        """
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset the singleton instance (for testing)."""
        with cls._lock:
            cls._instance = None

    def record_response(self, status_code: int, bytes_received: int) -> None:
        """Record a response from the server.

        Args:
            status_code: HTTP status code.
            bytes_received: Number of body bytes received.
        """
        with self._lock:
            self._requests[status_code] += 1
            self._bytes += bytes_received

    def record_cache_hit(self) -> None:
        """Record a 304 served from the cache."""
        with self._lock:
            self._cache_hits += 1

    def record_promotion(self) -> None:
        """Record content promoted into the cache."""
        with self._lock:
            self._promotions += 1

    def record_failure(self, error_class: FetchErrorClass) -> None:
        """Record a fetch failure.

        Args:
            error_class: Classification of the failure.
        """
        with self._lock:
            self._failures[error_class.value] += 1

    def record_duration(self, duration_ms: float) -> None:
        """Record a completed fetch duration in milliseconds."""
        with self._lock:
            self._duration_ms_total += duration_ms
            self._fetch_count += 1

    @property
    def http_requests_total(self) -> dict[int, int]:
        """Responses received, by status code."""
        with self._lock:
            return dict(self._requests)

    @property
    def fetch_failures_total(self) -> dict[str, int]:
        """Failed fetches, by error class."""
        with self._lock:
            return dict(self._failures)

    @property
    def http_cache_hits_total(self) -> int:
        with self._lock:
            return self._cache_hits

    @property
    def cache_promotions_total(self) -> int:
        with self._lock:
            return self._promotions

    @property
    def http_bytes_total(self) -> int:
        with self._lock:
            return self._bytes

    @property
    def fetch_count(self) -> int:
        with self._lock:
            return self._fetch_count

    @property
    def avg_duration_ms(self) -> float:
        """Average duration of completed fetches, 0.0 before the first."""
        with self._lock:
            if self._fetch_count == 0:
                return 0.0
            return self._duration_ms_total / self._fetch_count

    def to_dict(self) -> dict[str, int | float | dict[str, int] | dict[int, int]]:
        """Snapshot all counters."""
        with self._lock:
            return {
                "http_requests_total": dict(self._requests),
                "http_cache_hits_total": self._cache_hits,
                "cache_promotions_total": self._promotions,
                "fetch_failures_total": dict(self._failures),
                "http_bytes_total": self._bytes,
                "fetch_duration_ms_total": self._duration_ms_total,
                "fetch_count": self._fetch_count,
            }
