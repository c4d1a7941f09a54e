"""
Utility functions for request signing

This module provides the canonicalization helpers used by SigV4 signing:
URI encoding, path normalization, query and header canonicalization,
payload hashing, timestamp formatting and URL parsing.
"""

import time
import hashlib
import re
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple, Union
from urllib.parse import quote, unquote, urlsplit, urlunsplit

from ..exceptions import InvalidRequestError, MalformedHeaderValueError, PayloadReadError
from .clock import ensure_utc
from .types import EMPTY_SHA256_HASH, RequestBody

AMZ_DATETIME_FORMAT = "%Y%m%dT%H%M%SZ"
SCOPE_DATE_FORMAT = "%Y%m%d"
PAYLOAD_READ_BLOCK_SIZE = 64 * 1024
DEFAULT_PORTS = {"http": 80, "https": 443}

_PERCENT_ESCAPE = re.compile(r'%[0-9A-Fa-f]{2}')
_MULTIPLE_SLASHES = re.compile(r'/{2,}')
_HEADER_NAME = re.compile(r'^[!#$%&\'*+\-.0-9A-Z^_`a-z|~]+$')
# Control characters other than horizontal tab
_INVALID_HEADER_VALUE_CHARS = re.compile(r'[\x00-\x08\x0a-\x1f\x7f]')
_HEADER_WHITESPACE = re.compile(r'[ \t]+')


def format_amz_datetime(timestamp: datetime) -> str:
    """
    Format a timestamp as a SigV4 request datetime.

    Args:
        timestamp: Signing timestamp (naive values are treated as UTC)

    Returns:
        str: Timestamp in YYYYMMDDTHHMMSSZ form
    """
    return ensure_utc(timestamp).strftime(AMZ_DATETIME_FORMAT)


def format_scope_date(timestamp: datetime) -> str:
    """Format a timestamp as a credential scope date (YYYYMMDD)."""
    return ensure_utc(timestamp).strftime(SCOPE_DATE_FORMAT)


def parse_amz_datetime(value: str) -> datetime:
    """
    Parse a YYYYMMDDTHHMMSSZ timestamp.

    Raises:
        InvalidRequestError: If the value is not in SigV4 datetime form
    """
    try:
        return ensure_utc(datetime.strptime(value, AMZ_DATETIME_FORMAT))
    except (TypeError, ValueError) as e:
        raise InvalidRequestError(
            f"Invalid SigV4 datetime: {value!r}",
            details={"value": value}
        ) from e


def build_scope(scope_date: str, region: str, service: str) -> str:
    """Build the credential scope date/region/service/aws4_request."""
    return f"{scope_date}/{region}/{service}/aws4_request"


def sha256_hex(data: Union[str, bytes]) -> str:
    """Compute the lowercase hex SHA-256 of a string or bytes."""
    if isinstance(data, str):
        data = data.encode('utf-8')
    return hashlib.sha256(data).hexdigest()


def uri_encode(value: str, safe: str = "", preserve_escapes: bool = False) -> str:
    """
    Percent-encode a value with SigV4 rules.

    Unreserved characters (A-Z a-z 0-9 - _ . ~) are left alone and everything
    else is encoded from its UTF-8 bytes with upper-case hex.

    Args:
        value: Value to encode
        safe: Additional characters to leave unencoded (e.g. "/" for paths)
        preserve_escapes: Leave existing %XX sequences as they are so that
            encoding an already-encoded value is idempotent

    Returns:
        str: Encoded value
    """
    if not preserve_escapes:
        return quote(value, safe=safe)

    parts = []
    position = 0
    for match in _PERCENT_ESCAPE.finditer(value):
        parts.append(quote(value[position:match.start()], safe=safe))
        parts.append(match.group(0).upper())
        position = match.end()
    parts.append(quote(value[position:], safe=safe))
    return "".join(parts)


def remove_dot_segments(path: str) -> str:
    """
    Remove "." and ".." segments from a path and collapse repeated slashes.

    Follows RFC 3986 section 5.2.4. The result always starts with "/".

    Args:
        path: Raw request path

    Returns:
        str: Normalized path
    """
    if not path:
        return "/"

    output: List[str] = []
    for segment in path.split("/"):
        if segment == ".":
            continue
        if segment == "..":
            if output and output[-1] != "":
                output.pop()
            continue
        output.append(segment)

    if path.startswith("/") and (not output or output[0] != ""):
        output.insert(0, "")
    if output and path.endswith(("/.", "/..")):
        output.append("")

    result = "/".join(output)
    result = _MULTIPLE_SLASHES.sub("/", result)
    if not result.startswith("/"):
        result = "/" + result
    return result


def canonical_uri(path: str, normalize_path: bool = True, double_uri_encode: bool = True) -> str:
    """
    Build the canonical URI component from the raw request path.

    Args:
        path: Path as it appears in the request URL
        normalize_path: Remove dot segments and duplicate slashes first
        double_uri_encode: Encode the path again even if it is already
            percent-encoded; otherwise existing escapes are kept

    Returns:
        str: Canonical URI
    """
    if not path:
        path = "/"
    if normalize_path:
        path = remove_dot_segments(path)
    elif not path.startswith("/"):
        path = "/" + path
    return uri_encode(path, safe="/", preserve_escapes=not double_uri_encode)


def parse_query_string(query: str) -> List[Tuple[str, str]]:
    """
    Split a raw query string into decoded (name, value) pairs.

    A parameter without "=" gets an empty value. "+" is taken literally.
    """
    params = []
    if not query:
        return params

    for part in query.split("&"):
        if not part:
            continue
        name, _, value = part.partition("=")
        params.append((unquote(name), unquote(value)))
    return params


def canonical_query_string(params: Sequence[Tuple[str, str]]) -> str:
    """
    Encode and sort query parameters.

    Args:
        params: Decoded (name, value) pairs

    Returns:
        str: Canonical query string, pairs sorted by encoded name then value
    """
    encoded = sorted(
        (uri_encode(str(name)), uri_encode(str(value)))
        for name, value in params
    )
    return "&".join(f"{name}={value}" for name, value in encoded)


def normalize_header_name(name: str) -> str:
    """
    Normalize header name to lowercase for canonical processing.

    Raises:
        InvalidRequestError: If the name is not a valid RFC 7230 token
    """
    if isinstance(name, bytes):
        name = name.decode('ascii', errors='replace')
    normalized = str(name).strip().lower()
    if not _HEADER_NAME.match(normalized):
        raise InvalidRequestError(
            f"Invalid header name: {name!r}",
            details={"header": str(name)}
        )
    return normalized


def normalize_header_value(name: str, value: Union[str, bytes, int]) -> str:
    """
    Trim a header value and collapse internal runs of spaces and tabs.

    Args:
        name: Header name, used for error reporting
        value: Raw header value

    Returns:
        str: Canonical header value

    Raises:
        MalformedHeaderValueError: If the value contains line breaks or
            other control characters
    """
    if isinstance(value, bytes):
        value = value.decode('utf-8')
    elif not isinstance(value, str):
        value = str(value)

    if _INVALID_HEADER_VALUE_CHARS.search(value):
        raise MalformedHeaderValueError(
            f"Header '{name}' contains a line break or control character",
            details={"header": name}
        )

    return _HEADER_WHITESPACE.sub(" ", value).strip(" ")


def hash_payload(body: RequestBody) -> str:
    """
    Compute the hex SHA-256 of a request body.

    Seekable streams are read in blocks and rewound to where they started.

    Args:
        body: None, str, bytes-like, or a seekable binary stream

    Returns:
        str: Lowercase hex digest

    Raises:
        InvalidRequestError: If the body is a non-seekable stream or an
            unsupported type
        PayloadReadError: If reading the stream fails
    """
    if body is None:
        return EMPTY_SHA256_HASH
    if isinstance(body, str):
        body = body.encode('utf-8')
    if isinstance(body, (bytes, bytearray, memoryview)):
        return hashlib.sha256(body).hexdigest()
    if hasattr(body, "read"):
        return _hash_stream(body)

    raise InvalidRequestError(
        f"Body must be string, bytes, a seekable stream or None, got {type(body)}",
        details={"body_type": str(type(body))}
    )


def _hash_stream(stream) -> str:
    seekable = getattr(stream, "seekable", None)
    if seekable is None or not seekable():
        raise InvalidRequestError(
            "Cannot hash a non-seekable body; pass a precomputed payload hash "
            "or use UNSIGNED-PAYLOAD or chunked signing",
            details={"body_type": str(type(stream))}
        )

    hasher = hashlib.sha256()
    try:
        start = stream.tell()
        while True:
            block = stream.read(PAYLOAD_READ_BLOCK_SIZE)
            if not block:
                break
            if isinstance(block, str):
                block = block.encode('utf-8')
            hasher.update(block)
        stream.seek(start)
    except OSError as e:
        raise PayloadReadError(
            f"Failed to read request body: {e}",
            details={"original_error": str(e)}
        ) from e

    return hasher.hexdigest()


def parse_url(url: str) -> Dict[str, str]:
    """
    Parse URL to extract components needed for signing.

    Args:
        url: URL string to parse

    Returns:
        dict: Dictionary with parsed URL components:
            - scheme: http or https
            - host: host header value (default ports removed)
            - path: raw path component
            - query: raw query string (without ?)
            - fragment: fragment, never signed

    Raises:
        InvalidRequestError: If URL format is invalid
    """
    try:
        parsed = urlsplit(url)
        port = parsed.port
    except ValueError as e:
        raise InvalidRequestError(
            f"Failed to parse URL: {e}",
            details={"url": url, "original_error": str(e)}
        ) from e

    if not parsed.scheme or not parsed.netloc:
        raise InvalidRequestError(f"Invalid URL format: {url}", details={"url": url})

    scheme = parsed.scheme.lower()
    if scheme not in DEFAULT_PORTS:
        raise InvalidRequestError(
            f"Unsupported URL scheme: {parsed.scheme}",
            details={"url": url, "scheme": parsed.scheme}
        )

    host = parsed.netloc.rpartition("@")[2]
    if port is not None and DEFAULT_PORTS[scheme] == port:
        host = host[:host.rfind(":")]

    return {
        "scheme": scheme,
        "netloc": parsed.netloc,
        "host": host.lower(),
        "path": parsed.path or "/",
        "query": parsed.query,
        "fragment": parsed.fragment,
    }


def replace_query(url: str, query: str) -> str:
    """Return the URL with its query string replaced."""
    parsed = urlsplit(url)
    return urlunsplit((parsed.scheme, parsed.netloc, parsed.path, query, parsed.fragment))


def encode_query_parameters(params: Sequence[Tuple[str, str]]) -> str:
    """Encode (name, value) pairs as a query string, preserving order."""
    return "&".join(f"{uri_encode(str(name))}={uri_encode(str(value))}" for name, value in params)


def find_header(headers: Sequence[Tuple[str, str]], name: str) -> Optional[str]:
    """Case-insensitive lookup of the first header with the given name."""
    wanted = name.lower()
    for header_name, value in headers:
        if str(header_name).lower() == wanted:
            return value
    return None


def merge_headers(
    headers: Sequence[Tuple[str, str]],
    updates: Sequence[Tuple[str, str]]
) -> Dict[str, str]:
    """
    Merge signing headers into request headers.

    Request headers keep their original names. An update replaces any
    request header with the same name regardless of case.
    """
    replaced = {name.lower() for name, _ in updates}
    merged = {
        name: value for name, value in headers
        if str(name).lower() not in replaced
    }
    for name, value in updates:
        merged[name] = value
    return merged


class PerformanceTimer:
    """Simple performance timer for monitoring signing operations."""

    def __init__(self):
        self.start_time = time.perf_counter()

    def elapsed_ms(self) -> float:
        """Get elapsed time in milliseconds."""
        return (time.perf_counter() - self.start_time) * 1000

    def reset(self) -> None:
        """Reset the timer."""
        self.start_time = time.perf_counter()
