"""
Type definitions for request signing functionality

This module provides type definitions and data classes for the AWS Signature
Version 4 implementation: credentials, signing configuration, requests,
canonical requests, derived keys and chunk signing state.
"""

import hashlib
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple, Union, BinaryIO

from ..exceptions import CredentialsUnavailableError, InvalidConfigurationError, InvalidRequestError
from .clock import ClockSource, DEFAULT_CLOCK

# Algorithm identifiers
ALGORITHM = "AWS4-HMAC-SHA256"
CHUNK_ALGORITHM = "AWS4-HMAC-SHA256-PAYLOAD"
TRAILER_ALGORITHM = "AWS4-HMAC-SHA256-TRAILER"
# Event-stream messages are signed with the payload identifier on the wire
EVENT_ALGORITHM = CHUNK_ALGORITHM

# Payload hash values
EMPTY_SHA256_HASH = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
UNSIGNED_PAYLOAD = "UNSIGNED-PAYLOAD"
STREAMING_PAYLOAD = "STREAMING-AWS4-HMAC-SHA256-PAYLOAD"
STREAMING_PAYLOAD_TRAILER = "STREAMING-AWS4-HMAC-SHA256-PAYLOAD-TRAILER"
STREAMING_EVENTS = "STREAMING-AWS4-HMAC-SHA256-EVENTS"
STREAMING_PAYLOAD_HASHES = frozenset({STREAMING_PAYLOAD, STREAMING_PAYLOAD_TRAILER, STREAMING_EVENTS})

# Header names
HOST_HEADER = "host"
AUTHORIZATION_HEADER = "authorization"
DATE_HEADER = "x-amz-date"
SECURITY_TOKEN_HEADER = "x-amz-security-token"
CONTENT_SHA256_HEADER = "x-amz-content-sha256"

# Headers that are never part of the signature
DEFAULT_UNSIGNED_HEADERS: FrozenSet[str] = frozenset({
    "authorization",
    "connection",
    "expect",
    "user-agent",
    "x-amzn-trace-id",
})

# Presigned URL validity bounds (seconds)
DEFAULT_PRESIGN_EXPIRES = 900
MAX_PRESIGN_EXPIRES = 604800


class SignedBodyHeader(str, Enum):
    """Whether the payload hash is also sent as x-amz-content-sha256"""
    NONE = "none"
    SHA256_HEADER = "sha256-header"


class SigningVariant(str, Enum):
    """Where a signature is attached and how the payload participates"""
    HEADER = "header"
    QUERY = "query"
    CHUNKED = "chunked"
    EVENT_STREAM = "event-stream"


class ChunkStreamState(str, Enum):
    """Lifecycle of a chunk signing chain"""
    OPEN = "open"
    FINAL_CHUNK_SIGNED = "final-chunk-signed"
    TRAILER_SIGNED = "trailer-signed"


@dataclass(frozen=True)
class Credentials:
    """
    Credentials supplied by an identity resolver

    Attributes:
        access_key_id: Access key identifier
        secret_access_key: Secret key (str values are UTF-8 encoded)
        session_token: Optional session token for temporary credentials
    """
    access_key_id: str
    secret_access_key: bytes = field(repr=False)
    session_token: Optional[str] = field(default=None, repr=False)
    fingerprint: str = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        """Validate credentials after initialization"""
        if not self.access_key_id or not isinstance(self.access_key_id, str):
            raise CredentialsUnavailableError("Access key ID is required")

        secret = self.secret_access_key
        if isinstance(secret, str):
            secret = secret.encode("utf-8")
        if not isinstance(secret, bytes) or not secret:
            raise CredentialsUnavailableError(
                "Secret access key is required",
                details={"access_key_id": self.access_key_id}
            )

        object.__setattr__(self, "secret_access_key", secret)
        object.__setattr__(self, "fingerprint", hashlib.sha256(secret).hexdigest())


@dataclass(frozen=True)
class SigningConfig:
    """
    Configuration for request signing, shared read-only per client

    Attributes:
        region: Signing region, e.g. "us-east-1"
        service: Signing name of the target service
        clock: Source of the signing timestamp
        double_uri_encode: Percent-encode the (already encoded) path again
        normalize_path: Remove dot segments and duplicate slashes from the path
        signed_body_header: Also send the payload hash as x-amz-content-sha256
        omit_session_token: Attach the session token without signing it
        sign_payload: Hash the body; UNSIGNED-PAYLOAD when False
        unsigned_headers: Lower-case header names excluded from signing
    """
    region: str
    service: str
    clock: ClockSource = field(default=DEFAULT_CLOCK, compare=False)
    double_uri_encode: bool = True
    normalize_path: bool = True
    signed_body_header: SignedBodyHeader = SignedBodyHeader.NONE
    omit_session_token: bool = False
    sign_payload: bool = True
    unsigned_headers: FrozenSet[str] = DEFAULT_UNSIGNED_HEADERS

    def __post_init__(self):
        """Validate signing configuration"""
        if not self.region or not isinstance(self.region, str):
            raise InvalidConfigurationError("Signing region is required")

        if not self.service or not isinstance(self.service, str):
            raise InvalidConfigurationError("Signing service name is required")

        object.__setattr__(self, "signed_body_header", SignedBodyHeader(self.signed_body_header))
        object.__setattr__(
            self,
            "unsigned_headers",
            frozenset(name.lower() for name in self.unsigned_headers)
        )

    def with_overrides(self, **changes) -> "SigningConfig":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)


HeaderInput = Union[Mapping[str, str], Sequence[Tuple[str, str]], None]
RequestBody = Union[str, bytes, bytearray, memoryview, BinaryIO, None]


@dataclass
class SignableRequest:
    """
    Request to be signed

    Attributes:
        method: HTTP method (GET, POST, etc.)
        url: Complete request URL with the path and query as sent on the wire
        headers: Request headers as a mapping or a sequence of pairs
        body: Optional request body (str, bytes or a seekable binary stream)
    """
    method: str
    url: str
    headers: HeaderInput = None
    body: RequestBody = None

    def __post_init__(self):
        """Validate request after initialization"""
        if not self.url:
            raise InvalidRequestError("Request URL cannot be empty")

        if not self.method or not isinstance(self.method, str):
            raise InvalidRequestError("Request method cannot be empty")

        self.method = self.method.upper()

        # Keep headers as ordered pairs so repeated names stay detectable
        if self.headers is None:
            self.headers = []
        elif isinstance(self.headers, Mapping):
            self.headers = list(self.headers.items())
        else:
            self.headers = [(name, value) for name, value in self.headers]

@dataclass(frozen=True)
class CanonicalRequest:
    """
    Canonical form of a request, the input to the string-to-sign

    Attributes:
        method: Upper-case HTTP method
        canonical_uri: Encoded, normalized path
        canonical_query_string: Sorted, encoded query string
        canonical_headers: Ordered (lower-case name, normalized value) pairs
        signed_headers: Sorted lower-case header names
        payload_hash: Hex SHA-256 of the body or a literal sentinel
    """
    method: str
    canonical_uri: str
    canonical_query_string: str
    canonical_headers: Tuple[Tuple[str, str], ...]
    signed_headers: Tuple[str, ...]
    payload_hash: str

    @property
    def signed_headers_string(self) -> str:
        return ";".join(self.signed_headers)

    def header_value(self, name: str) -> Optional[str]:
        for header_name, value in self.canonical_headers:
            if header_name == name:
                return value
        return None

    def to_string(self) -> str:
        header_block = "".join(f"{name}:{value}\n" for name, value in self.canonical_headers)
        return "\n".join([
            self.method,
            self.canonical_uri,
            self.canonical_query_string,
            header_block,
            self.signed_headers_string,
            self.payload_hash,
        ])

    def hash(self) -> str:
        return hashlib.sha256(self.to_string().encode("utf-8")).hexdigest()

    def __str__(self) -> str:
        return self.to_string()


@dataclass(frozen=True)
class SigningKey:
    """
    Derived signing key, immutable once created

    Attributes:
        key_bytes: 32-byte kSigning value
        scope_date: Scope date (YYYYMMDD)
        region: Signing region
        service: Signing service name
    """
    key_bytes: bytes = field(repr=False)
    scope_date: str
    region: str
    service: str

    @property
    def scope(self) -> str:
        return f"{self.scope_date}/{self.region}/{self.service}/aws4_request"


@dataclass(frozen=True)
class HeaderSignature:
    """
    Result of header-based signing

    Attributes:
        authorization: Authorization header value
        x_amz_date: X-Amz-Date header value
        signature: Hex signature
        string_to_sign: The string that was signed
        scope: Credential scope
    """
    authorization: str
    x_amz_date: str
    signature: str
    string_to_sign: str
    scope: str


@dataclass
class SignedRequest:
    """
    A request with its signature attached

    Attributes:
        method: HTTP method
        url: Request URL (presigned URL for the query variant)
        headers: Headers to send, including the added signing headers
        signature: Hex signature of the request
        canonical_request: Canonical request that was signed
        string_to_sign: The string that was signed
        timestamp: Signing timestamp
        variant: How the signature is attached
        body: Request body, untouched
    """
    method: str
    url: str
    headers: Dict[str, str]
    signature: str
    canonical_request: CanonicalRequest
    string_to_sign: str
    timestamp: datetime
    variant: SigningVariant = SigningVariant.HEADER
    body: RequestBody = None


@dataclass
class ChunkSignContext:
    """
    Chain state for one outgoing stream

    Owned by a single writer. Each signed chunk replaces previous_signature.

    Attributes:
        previous_signature: Signature of the prior chunk (seed: request signature)
        signing_key: Key for the stream's scope
        scope: Credential scope
        request_datetime: Timestamp used in every chunk string-to-sign
        variant: CHUNKED or EVENT_STREAM
        sequence: Number of chunks/events signed so far
        state: Position in the chunk stream lifecycle
        credentials: Kept for event streams whose events cross a UTC date
    """
    previous_signature: str
    signing_key: SigningKey
    scope: str
    request_datetime: str
    variant: SigningVariant = SigningVariant.CHUNKED
    sequence: int = 0
    state: ChunkStreamState = ChunkStreamState.OPEN
    credentials: Optional[Credentials] = field(default=None, repr=False)
    _writer: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    @property
    def is_open(self) -> bool:
        return self.state is ChunkStreamState.OPEN


@dataclass(frozen=True)
class EventSignature:
    """
    Signature of one event-stream message

    Attributes:
        headers: Envelope headers: ":date" (datetime) and ":chunk-signature" (bytes)
        signature: Hex signature, the next message's previous signature
        string_to_sign: The string that was signed
    """
    headers: Dict[str, Union[datetime, bytes]]
    signature: str
    string_to_sign: str


# Type aliases for convenience
QueryParameters = List[Tuple[str, str]]
