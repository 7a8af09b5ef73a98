"""Escaping helpers for URLs, OData string literals and request bodies.

SharePoint needs a different escape per context:

* a full request URL is percent-encoded, including ``[`` and ``]``;
* a string literal inside an OData path segment, such as
  ``GetFileByServerRelativeUrl('...')``, doubles its single quotes;
* a value inside a query string also encodes ``&``, ``=``, ``+``, ``;`` and ``#``;
* a string inside the single-quoted JSON-like metadata body backslash-escapes
  backslashes and single quotes.
"""

from __future__ import annotations

import re
from urllib.parse import quote, unquote, unquote_to_bytes

# Characters left untouched by uri_escape (RFC 2396 reserved and mark characters)
_URI_SAFE = "-_.!~*'();/?:@&=+$,"
# Query-string values keep the quote and comma used by OData and KQL literals
_QUERY_VALUE_SAFE = "-_.!~*'():/?@$,"

FILENAME_INVALID_CHARS = '~"#%&*:<>?/\\{|}'
_FILENAME_INVALID_RE = re.compile(f"[{re.escape(FILENAME_INVALID_CHARS)}]")
FILENAME_REPLACEMENT = "-"
MAX_FILENAME_LENGTH = 128

_SCHEME_RE = re.compile(r"^(https?://)(.*)$", re.DOTALL)
_DOUBLE_SLASH_RE = re.compile(r"/{2,}")

# Escape sequences understood by decode_escape_sequences
_SIMPLE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "f": "\f",
    "v": "\v",
    "a": "\a",
    "b": "\b",
    "e": "\x1b",
    "0": "\0",
    "s": " ",
    "\\": "\\",
    '"': '"',
    "'": "'",
}
_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")


def uri_escape(uri: str) -> str:
    """Percent-encode ``uri``, escaping square brackets as ``%5B``/``%5D``."""
    return quote(uri, safe=_URI_SAFE)


def uri_unescape(uri: str) -> str:
    """Reverse ``uri_escape``."""
    return unquote(uri)


def query_value_escape(value: str) -> str:
    """Percent-encode one query-string value so it cannot split the query."""
    return quote(value, safe=_QUERY_VALUE_SAFE)


def odata_escape_single_quote(value: str) -> str:
    """Double single quotes for an OData string literal inside a URL path segment."""
    return value.replace("'", "''")


def json_escape_single_quote(value: str) -> str:
    """Backslash-escape backslashes and single quotes for the single-quoted metadata body."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def valid_filename(name: str) -> bool:
    """Return True if ``name`` contains none of the characters SharePoint forbids."""
    return _FILENAME_INVALID_RE.search(name) is None


def sanitize_filename(filename: str) -> str:
    """Make ``filename`` acceptable to SharePoint.

    Every forbidden character is replaced with ``-``. Names longer than
    128 characters are truncated, keeping the extension (from the last ``.``)
    intact when there is room for it.

    Args:
        filename: Original file name.

    Returns:
        The sanitized file name.
    """
    sanitized = _FILENAME_INVALID_RE.sub(FILENAME_REPLACEMENT, filename)
    if len(sanitized) <= MAX_FILENAME_LENGTH:
        return sanitized

    dot = sanitized.rfind(".")
    if dot <= 0 or len(sanitized) - dot >= MAX_FILENAME_LENGTH:
        return sanitized[:MAX_FILENAME_LENGTH]
    extension = sanitized[dot:]
    return sanitized[: MAX_FILENAME_LENGTH - len(extension)] + extension


def remove_double_slashes(url: str) -> str:
    """Collapse repeated slashes in ``url``, keeping the ``//`` after the scheme."""
    match = _SCHEME_RE.match(url)
    if match is None:
        return _DOUBLE_SLASH_RE.sub("/", url)
    return match.group(1) + _DOUBLE_SLASH_RE.sub("/", match.group(2))


def decode_escape_sequences(value: str) -> str:
    """Decode backslash escape sequences and percent-encoding in a header value.

    Handles the escapes in ``_SIMPLE_ESCAPES`` plus ``\\xHH`` byte escapes.
    Characters up to U+00FF are treated as raw bytes, so a header that
    ``requests`` decoded as latin-1 is re-read as UTF-8. Unknown escapes are
    kept verbatim. Undecodable bytes become U+FFFD.

    Args:
        value: Raw header value.

    Returns:
        The decoded text.
    """
    buffer = bytearray()
    index = 0
    length = len(value)
    while index < length:
        char = value[index]
        if char == "\\" and index + 1 < length:
            marker = value[index + 1]
            hex_digits = value[index + 2 : index + 4]
            if marker == "x" and len(hex_digits) == 2 and set(hex_digits) <= _HEX_DIGITS:
                buffer.append(int(hex_digits, 16))
                index += 4
                continue
            if marker in _SIMPLE_ESCAPES:
                buffer.extend(_SIMPLE_ESCAPES[marker].encode("utf-8"))
                index += 2
                continue
        if ord(char) <= 0xFF:
            buffer.append(ord(char))
        else:
            buffer.extend(char.encode("utf-8"))
        index += 1
    return unquote_to_bytes(bytes(buffer)).decode("utf-8", errors="replace")
