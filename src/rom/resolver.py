"""Remote Operations Map (ROM) resolver.

A ROM is a small JSON document describing how logical table operations map
onto a remote API::

    {
        "romschema": "2",
        "host": "",
        "url": "/api",
        "devicestate": {
            "url": "/devices",
            "select": {
                "method": "get",
                "url": "/",
                "query": [{"name": "st", "value": "2"}]
            }
        }
    }

The ROM itself is fetched through the same fetch-and-cache engine.
"""

import json
from typing import Any

import structlog
from pydantic import ValidationError

from src.fetch.client import HttpFetcher
from src.fetch.url import recognize_url
from src.rom.models import RomAction, RomContext, RomOperation


logger = structlog.get_logger()

SUPPORTED_ROM_SCHEMA = 2


def join_url_segment(base: str, segment: str | None) -> str:
    """Append a path segment, never producing "/blah//" from "/blah/" + "/".

    Args:
        base: URL built so far.
        segment: Segment to append, may be None or empty.

    Returns:
        Combined URL.
    """
    if not segment:
        return base
    if base.endswith("/") and segment == "/":
        return base
    return base + segment


def build_query_string(operation: RomOperation) -> str:
    """Build "?name=value&..." from query entries with a name and a value.

    Returns:
        Query string including the leading '?', or "" when nothing applies.
    """
    pairs = [
        f"{param.name}={param.value}"
        for param in operation.query
        if param.name and param.value
    ]
    if not pairs:
        return ""
    return "?" + "&".join(pairs)


def is_supported_schema(document: Any) -> bool:
    """Check that a parsed ROM is an object declaring schema 2."""
    if not isinstance(document, dict):
        return False
    try:
        return int(str(document.get("romschema")).strip()) == SUPPORTED_ROM_SCHEMA
    except ValueError:
        return False


class RomResolver:
    """Turns a (ROM URL, table path, action) triple into a URL and method."""

    def __init__(self, fetcher: HttpFetcher) -> None:
        """Initialize the resolver.

        Args:
            fetcher: Engine used to fetch the ROM document.
        """
        self._fetcher = fetcher
        self._log = logger.bind(component="rom")

    def resolve(
        self,
        rom_url: str,
        rom_path: str,
        action: RomAction = RomAction.SELECT,
    ) -> RomContext | None:
        """Resolve a table operation through a ROM.

        Args:
            rom_url: URL of the ROM document.
            rom_path: Top-level key of the table inside the ROM.
            action: Operation to resolve.

        Returns:
            RomContext, or None when the ROM is unavailable or invalid.
        """
        if not rom_url or not rom_path:
            return None

        log = self._log.bind(rom_url=rom_url, rom_path=rom_path, action=action.value)
        document = self.fetch_document(rom_url)
        if document is None:
            log.warning("rom_unavailable")
            return None

        if action == RomAction.NONE:
            return RomContext(document=document)

        table = document.get(rom_path)
        if not isinstance(table, dict):
            table = {}

        try:
            operation = RomOperation.model_validate(table.get(action.value) or {})
        except ValidationError as e:
            log.warning("rom_operation_invalid", error=str(e))
            operation = RomOperation()

        url = _as_segment(document.get("host"))
        if not url:
            shape = recognize_url(rom_url)
            if shape is not None:
                url = shape.origin

        url = join_url_segment(url, _as_segment(document.get("url")))
        url = join_url_segment(url, _as_segment(table.get("url")))
        url = join_url_segment(url, operation.url)
        url += build_query_string(operation)

        method = operation.method.strip().lower() or None
        log.debug("rom_resolved", url=url, method=method)
        return RomContext(url=url, method=method, document=document)

    def fetch_document(self, rom_url: str) -> dict[str, Any] | None:
        """Fetch and validate a ROM document.

        Args:
            rom_url: URL of the ROM document.

        Returns:
            Parsed ROM object, or None if it could not be fetched, parsed,
            or does not declare the supported schema.
        """
        result = self._fetcher.fetch(rom_url)
        try:
            if not result.succeeded or result.local_path is None:
                return None
            try:
                document = json.loads(result.local_path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                self._log.warning("rom_parse_failed", rom_url=rom_url, error=str(e))
                return None
        finally:
            self._fetcher.release(result)

        if not is_supported_schema(document):
            self._log.warning("rom_schema_unsupported", rom_url=rom_url)
            return None
        return document


def _as_segment(value: Any) -> str:
    if value is None:
        return ""
    return str(value)
