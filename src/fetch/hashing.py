"""Cache key hashing for the fetch layer.

The cache key addresses both the metadata record and, by default, the cached
content file. It depends only on the request identity (URL and POST payload).
"""

import hashlib


def compute_cache_key(url: str, payload: str | None = None) -> str:
    """Compute the cache key for a request.

    MD5 is used for a stable 128-bit key, not for security.

    Args:
        url: Request URL.
        payload: Optional POST payload; participates in the key.

    Returns:
        32-character lowercase hex digest of url followed by payload.
    """
    if not isinstance(url, str):
        msg = f"url must be a string, got {type(url).__name__}"
        raise TypeError(msg)

    digest = hashlib.md5(usedforsecurity=False)
    digest.update(url.encode("utf-8"))
    if payload:
        digest.update(payload.encode("utf-8"))
    return digest.hexdigest()
