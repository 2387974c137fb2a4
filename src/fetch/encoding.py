"""Form encoding for POST payloads.

Payloads arrive pre-formatted as ``key=value&key=value``. The first ``=`` is
taken as the separator of the first pair and kept literal; every later ``=``
is escaped.
"""

# Characters escaped as %XX in addition to every '=' after the first
ESCAPED_CHARACTERS = frozenset('"%-.<>\\^_`{|}~[],:#@?;\r\n')

HEX_DIGITS = "0123456789ABCDEF"


def encode_post_data(payload: str | None) -> str | None:
    """Percent-encode a POST payload.

    Args:
        payload: Raw payload, or None.

    Returns:
        Encoded payload, or None when no payload was given.
    """
    if payload is None:
        return None

    parts: list[str] = []
    seen_separator = False

    for char in payload:
        if char == "=":
            if seen_separator:
                parts.append(_percent(char))
            else:
                seen_separator = True
                parts.append(char)
        elif char == " ":
            parts.append("+")
        elif char in ESCAPED_CHARACTERS or not char.isascii():
            parts.append(_percent(char))
        else:
            parts.append(char)

    return "".join(parts)


def _percent(char: str) -> str:
    return "".join(
        f"%{HEX_DIGITS[byte >> 4]}{HEX_DIGITS[byte & 0x0F]}"
        for byte in char.encode("utf-8")
    )
