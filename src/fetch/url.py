"""URL recognition for the fetch layer.

Decides whether a string names a fetchable http(s) resource or a local path,
and extracts the pieces the cache needs from it.
"""

import re
from dataclasses import dataclass


# http[s]://host[:port][/path] where host is a DNS name, localhost or IPv4
URL_PATTERN = re.compile(
    r"^(?P<scheme>https?)://"
    r"(?P<host>"
    r"[a-z0-9][a-z0-9._-]*\.[a-z]{2,}"
    r"|localhost"
    r"|\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}"
    r")"
    r"(?::(?P<port>\d{1,5}))?"
    r"(?P<path>/.*)?$",
    re.IGNORECASE | re.DOTALL,
)

IPV4_PATTERN = re.compile(r"^\d{1,3}(\.\d{1,3}){3}$")
IPV4_OCTET_MAX = 255


@dataclass(frozen=True)
class UrlShape:
    """Parsed form of a recognized URL.

    Attributes:
        scheme: Lower-cased scheme (http or https).
        host: Lower-cased host name or address.
        port: Explicit port, if any.
        path: Path including any query string; empty when absent.
        basename: Last path segment without query/fragment, if non-empty.
    """

    scheme: str
    host: str
    port: int | None
    path: str
    basename: str | None

    @property
    def origin(self) -> str:
        """Return scheme://host[:port] for this URL."""
        if self.port is None:
            return f"{self.scheme}://{self.host}"
        return f"{self.scheme}://{self.host}:{self.port}"


def recognize_url(candidate: str) -> UrlShape | None:
    """Match a string against the supported URL grammar.

    Args:
        candidate: String that may be a URL or a local path.

    Returns:
        UrlShape when the string is a fetchable URL, None otherwise.

    Raises:
        TypeError: If candidate is not a string.
    """
    if not isinstance(candidate, str):
        msg = f"candidate must be a string, got {type(candidate).__name__}"
        raise TypeError(msg)

    match = URL_PATTERN.match(candidate.strip())
    if match is None:
        return None

    host = match.group("host").lower()
    if IPV4_PATTERN.match(host) and not _valid_ipv4(host):
        return None

    port_text = match.group("port")
    port = int(port_text) if port_text else None
    if port is not None and not 0 < port < 65536:  # noqa: PLR2004
        return None

    path = match.group("path") or ""
    return UrlShape(
        scheme=match.group("scheme").lower(),
        host=host,
        port=port,
        path=path,
        basename=url_basename(path),
    )


def is_url(candidate: str) -> bool:
    """Check if a string is a fetchable URL."""
    return recognize_url(candidate) is not None


def url_basename(path: str) -> str | None:
    """Extract the display filename from a URL path.

    Args:
        path: URL path, possibly with a query string or fragment.

    Returns:
        Text after the last '/', or None for an empty or root path.
    """
    bare = path.split("#", 1)[0].split("?", 1)[0]
    name = bare.rsplit("/", 1)[-1]
    return name or None


def _valid_ipv4(host: str) -> bool:
    return all(int(octet) <= IPV4_OCTET_MAX for octet in host.split("."))
