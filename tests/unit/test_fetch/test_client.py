"""Unit tests for the HTTP fetch client using mock transports."""

from collections.abc import Callable
from pathlib import Path

import httpx
import pytest
from structlog.testing import capture_logs

from src.fetch.client import HttpFetcher, capture_validators
from src.fetch.config import FetchConfig
from src.fetch.metrics import FetchMetrics
from src.fetch.models import FetchErrorClass, FetchFailure, FetchSuccess


URL = "http://example.com/data.json"


def make_fetcher(
    tmp_path: Path,
    handler: Callable[[httpx.Request], httpx.Response],
    **config: object,
) -> HttpFetcher:
    """Build a fetcher whose requests are answered by handler."""
    FetchMetrics.reset()
    return HttpFetcher(
        config=FetchConfig(base_dir=tmp_path, **config),  # type: ignore[arg-type]
        transport=httpx.MockTransport(handler),
    )


def raising(error: Exception) -> Callable[[httpx.Request], httpx.Response]:
    """Build a handler that raises the given transport error."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise error

    return handler


def leftovers(cache_dir: Path) -> list[Path]:
    """List staging files left in the cache directory."""
    return list(cache_dir.glob("tmp*"))


class TestCaptureValidators:
    """Tests for capture_validators."""

    def test_first_value_wins(self) -> None:
        """Test that duplicated headers keep their first occurrence."""
        headers = httpx.Headers(
            [
                ("ETag", ' "first" '),
                ("ETag", '"second"'),
                ("Last-Modified", "Mon, 01 Jan 2024 00:00:00 GMT"),
            ]
        )

        assert capture_validators(headers) == {
            "etag": '"first"',
            "last_modified": "Mon, 01 Jan 2024 00:00:00 GMT",
            "cache_control": "",
        }

    def test_case_insensitive(self) -> None:
        """Test that header names match regardless of case."""
        headers = httpx.Headers({"etag": "x", "cache-control": "no-store"})

        captured = capture_validators(headers)

        assert captured["etag"] == "x"
        assert captured["cache_control"] == "no-store"


class TestFetchInputs:
    """Tests for argument handling."""

    def test_non_string_url_raises(self, tmp_path: Path) -> None:
        """Test that a missing URL is a programming error."""
        fetcher = make_fetcher(tmp_path, raising(AssertionError("no request")))

        with pytest.raises(TypeError):
            fetcher.fetch(None)  # type: ignore[arg-type]

    def test_non_string_payload_raises(self, tmp_path: Path) -> None:
        """Test that a non-string payload is a programming error."""
        fetcher = make_fetcher(tmp_path, raising(AssertionError("no request")))

        with pytest.raises(TypeError):
            fetcher.fetch(URL, {"a": 1})  # type: ignore[arg-type]

    def test_local_path_is_not_fetched(self, tmp_path: Path) -> None:
        """Test that local paths fail without touching the network."""
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200)

        fetcher = make_fetcher(tmp_path, handler)

        result = fetcher.fetch("/etc/hosts")

        assert isinstance(result, FetchFailure)
        assert result.error.error_class == FetchErrorClass.NOT_A_URL
        assert result.cache_key == ""
        assert calls == []
        assert FetchMetrics.get_instance().fetch_failures_total == {"NOT_A_URL": 1}


class TestTransportFailures:
    """Tests for mapping transport exceptions to error classes."""

    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (httpx.ConnectTimeout("timed out"), FetchErrorClass.NETWORK_TIMEOUT),
            (httpx.ReadTimeout("timed out"), FetchErrorClass.NETWORK_TIMEOUT),
            (httpx.ConnectError("Connection refused"), FetchErrorClass.CONNECTION_ERROR),
            (
                httpx.ConnectError("[SSL: CERTIFICATE_VERIFY_FAILED] verify failed"),
                FetchErrorClass.SSL_ERROR,
            ),
            (httpx.RemoteProtocolError("bad framing"), FetchErrorClass.CONNECTION_ERROR),
        ],
    )
    def test_error_mapping(
        self,
        tmp_path: Path,
        error: Exception,
        expected: FetchErrorClass,
    ) -> None:
        """Test each transport failure maps to its error class."""
        fetcher = make_fetcher(tmp_path, raising(error))

        result = fetcher.fetch(URL)

        assert isinstance(result, FetchFailure)
        assert result.error.error_class == expected
        assert result.error.reached_server is False
        assert result.status_code == 0
        assert leftovers(tmp_path) == []

    def test_transport_failure_keeps_metadata(self, tmp_path: Path) -> None:
        """Test that a failed transfer leaves prior validators alone."""
        ok = make_fetcher(
            tmp_path,
            lambda request: httpx.Response(
                200,
                headers={"Content-Type": "application/json", "ETag": '"v1"'},
                content=b"{}",
            ),
        )
        first = ok.fetch(URL)
        failing = make_fetcher(tmp_path, raising(httpx.ConnectError("refused")))

        failing.fetch(URL)

        assert failing.metadata.load(first.cache_key).etag == '"v1"'


class TestResponses:
    """Tests for response handling through a mock transport."""

    def test_conditional_request_prefers_etag(self, tmp_path: Path) -> None:
        """Test that If-None-Match is sent instead of If-Modified-Since."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.headers.get("If-None-Match") == '"v1"':
                return httpx.Response(304)
            return httpx.Response(
                200,
                headers={
                    "Content-Type": "application/json",
                    "ETag": '"v1"',
                    "Last-Modified": "Mon, 01 Jan 2024 00:00:00 GMT",
                },
                content=b"{}",
            )

        fetcher = make_fetcher(tmp_path, handler)

        fetcher.fetch(URL)
        result = fetcher.fetch(URL)

        assert result.kind == "cache_hit"
        assert "If-Modified-Since" not in seen[1].headers
        entry = fetcher.metadata.load(result.cache_key)
        assert entry.last_modified == "Mon, 01 Jan 2024 00:00:00 GMT"

    def test_last_modified_only(self, tmp_path: Path) -> None:
        """Test revalidation with only a Last-Modified validator."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if "If-Modified-Since" in request.headers:
                return httpx.Response(304)
            return httpx.Response(
                200,
                headers={
                    "Content-Type": "application/json",
                    "Last-Modified": "Mon, 01 Jan 2024 00:00:00 GMT",
                },
                content=b"{}",
            )

        fetcher = make_fetcher(tmp_path, handler)

        fetcher.fetch(URL)
        result = fetcher.fetch(URL)

        assert result.kind == "cache_hit"
        assert seen[1].headers["If-Modified-Since"] == "Mon, 01 Jan 2024 00:00:00 GMT"

    def test_duplicate_etag_first_wins(self, tmp_path: Path) -> None:
        """Test that the first of several ETag headers is stored."""
        fetcher = make_fetcher(
            tmp_path,
            lambda request: httpx.Response(
                200,
                headers=[
                    ("Content-Type", "application/json"),
                    ("ETag", '"first"'),
                    ("ETag", '"second"'),
                ],
                content=b"{}",
            ),
        )

        result = fetcher.fetch(URL)

        assert fetcher.metadata.load(result.cache_key).etag == '"first"'

    def test_304_without_cached_copy(self, tmp_path: Path) -> None:
        """Test that an unexpected 304 fails and forgets the record."""
        fetcher = make_fetcher(tmp_path, lambda request: httpx.Response(304))

        result = fetcher.fetch(URL)

        assert isinstance(result, FetchFailure)
        assert result.status_code == 304
        assert result.error.error_class == FetchErrorClass.LOCAL_IO
        assert not fetcher.metadata.meta_path(result.cache_key).exists()
        assert leftovers(tmp_path) == []

    def test_server_error_clears_validators(self, tmp_path: Path) -> None:
        """Test that an error status rewrites the record without validators."""
        responses = iter(
            [
                httpx.Response(
                    200,
                    headers={"Content-Type": "application/json", "ETag": '"v1"'},
                    content=b"{}",
                ),
                httpx.Response(500, content=b"oops"),
            ]
        )
        fetcher = make_fetcher(tmp_path, lambda request: next(responses))

        first = fetcher.fetch(URL)
        second = fetcher.fetch(URL)

        assert second.succeeded is False
        assert second.error.reached_server is True  # type: ignore[union-attr]
        entry = fetcher.metadata.load(first.cache_key)
        assert entry.etag == ""
        assert entry.resolved_file_name == first.local_path.name  # type: ignore[union-attr]

    def test_metrics_recorded(self, tmp_path: Path) -> None:
        """Test that a promotion updates the metrics."""
        fetcher = make_fetcher(
            tmp_path,
            lambda request: httpx.Response(
                200, headers={"Content-Type": "application/json"}, content=b"{}"
            ),
        )

        result = fetcher.fetch(URL)

        assert isinstance(result, FetchSuccess)
        metrics = FetchMetrics.get_instance()
        assert metrics.http_requests_total == {200: 1}
        assert metrics.cache_promotions_total == 1
        assert metrics.http_bytes_total == 2
        assert metrics.fetch_count == 1

    def test_zero_redirects_allowed(self, tmp_path: Path) -> None:
        """Test that max_redirects=0 refuses the first redirect."""
        fetcher = make_fetcher(
            tmp_path,
            lambda request: httpx.Response(301, headers={"Location": "/elsewhere"}),
            max_redirects=0,
        )

        result = fetcher.fetch(URL)

        assert isinstance(result, FetchFailure)
        assert result.error.error_class == FetchErrorClass.TOO_MANY_REDIRECTS

    def test_redirect_target_is_logged(self, tmp_path: Path) -> None:
        """Test that the final URL of a redirected fetch is reported."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/old.json":
                return httpx.Response(302, headers={"Location": "/new.json"})
            return httpx.Response(
                200, headers={"Content-Type": "application/json"}, content=b"{}"
            )

        with capture_logs() as logs:
            fetcher = make_fetcher(tmp_path, handler)
            result = fetcher.fetch("http://example.com/old.json")

        assert result.succeeded is True
        redirected = [log for log in logs if log["event"] == "fetch_redirected"]
        assert len(redirected) == 1
        assert redirected[0]["final_url"] == "http://example.com/new.json"
        assert redirected[0]["redirects"] == 1

    def test_no_redirect_not_logged(self, tmp_path: Path) -> None:
        """Test that a direct answer reports no redirect."""
        with capture_logs() as logs:
            fetcher = make_fetcher(
                tmp_path,
                lambda request: httpx.Response(
                    200, headers={"Content-Type": "application/json"}, content=b"{}"
                ),
            )
            fetcher.fetch(URL)

        assert all(log["event"] != "fetch_redirected" for log in logs)

    def test_put_transport_failure(self, tmp_path: Path) -> None:
        """Test that a PUT transport error reports failure."""
        fetcher = make_fetcher(tmp_path, raising(httpx.ConnectError("refused")))

        assert fetcher.put_document(URL, "{}") is False
