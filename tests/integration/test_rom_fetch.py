"""Integration tests for resolving ROMs served over HTTP."""

import json
from collections.abc import Iterator
from pathlib import Path

import pytest

from src.fetch.client import HttpFetcher
from src.fetch.config import FetchConfig
from src.rom.models import RomAction
from src.rom.resolver import RomResolver
from tests.helpers.http_server import LocalServer, Route, serve


ROM = {
    "romschema": 2,
    "url": "/api/",
    "devicestate": {
        "url": "/",
        "update": {
            "method": "PUT",
            "url": "devices",
            "query": [{"name": "id", "value": 7, "type": "int"}],
        },
    },
}


@pytest.fixture
def server() -> Iterator[LocalServer]:
    """Local server publishing a ROM with an ETag."""
    routes = {
        "/rom.json": Route(
            body=json.dumps(ROM).encode(),
            headers=[("Content-Type", "application/json")],
            etag='"rom-1"',
        ),
    }
    with serve(routes) as local:
        yield local


class TestRomOverHttp:
    """Tests for RomResolver against a live server."""

    def test_resolve_and_revalidate(self, server: LocalServer, tmp_path: Path) -> None:
        """Test that a ROM is resolved and revalidated on the next use."""
        resolver = RomResolver(HttpFetcher(config=FetchConfig(base_dir=tmp_path)))
        rom_url = server.url("/rom.json")

        first = resolver.resolve(rom_url, "devicestate", RomAction.UPDATE)
        second = resolver.resolve(rom_url, "devicestate", RomAction.UPDATE)

        assert first is not None
        assert first == second
        assert first.url == f"{server.url('')}/api/devices?id=7"
        assert first.method == "put"
        assert server.requests_for("/rom.json")[1].headers["If-None-Match"] == '"rom-1"'

    def test_rom_without_cache(self, server: LocalServer, tmp_path: Path) -> None:
        """Test that a cache-disabled ROM fetch leaves no files behind."""
        config = FetchConfig(base_dir=tmp_path, cache_enabled=False)
        resolver = RomResolver(HttpFetcher(config=config))

        context = resolver.resolve(server.url("/rom.json"), "devicestate", RomAction.NONE)

        assert context is not None
        assert context.document["romschema"] == 2
        assert list(tmp_path.iterdir()) == []
