"""Reversible encoding of branch names into directory-safe segments."""

from __future__ import annotations

from urllib.parse import quote, unquote

from .constants import NAME_ESCAPE_MARKER

# Characters kept as-is in addition to ASCII letters, digits and "-.~".
# "_" is never kept: it introduces the escape marker.
SAFE_CHARACTERS = "-.~!$&'()*+,;=@"
RESERVED_SEGMENTS = {".", ".."}


def encode(name: str) -> str:
    """Encode a branch name so it can be used as one directory segment.

    Unsafe bytes are percent-encoded with ``_PERCENT_`` standing in for ``%``.
    Literal underscores are always escaped, so encoded output never contains
    an underscore outside a marker and decoding stays unambiguous.
    """
    escaped = quote(name, safe=SAFE_CHARACTERS, encoding="utf-8", errors="surrogatepass")
    escaped = escaped.replace("_", "%5F")
    if escaped in RESERVED_SEGMENTS:
        escaped = escaped.replace(".", "%2E")
    return escaped.replace("%", NAME_ESCAPE_MARKER)


def decode(token: str) -> str:
    """Invert :func:`encode`."""
    escaped = token.replace(NAME_ESCAPE_MARKER, "%")
    return unquote(escaped, encoding="utf-8", errors="surrogatepass")
