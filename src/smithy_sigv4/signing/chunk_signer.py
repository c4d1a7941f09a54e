"""
Chunked payload and event-stream signing

Each chunk (or event) signature covers the previous signature, so a stream
is a chain seeded by the request signature. The chain state lives in a
ChunkSignContext owned by exactly one writer.
"""

import asyncio
import calendar
import logging
import re
import struct
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterable, Iterator, Mapping, Optional, Sequence, Tuple, Union

from ..crypto import hmac_sha256
from ..exceptions import (
    ChunkOrderingViolationError,
    CredentialsUnavailableError,
    InvalidConfigurationError,
    InvalidRequestError,
    PayloadReadError,
)
from .clock import ensure_utc
from .sigv4_signer import RequestSigner
from .types import (
    CHUNK_ALGORITHM,
    EMPTY_SHA256_HASH,
    EVENT_ALGORITHM,
    STREAMING_EVENTS,
    STREAMING_PAYLOAD,
    STREAMING_PAYLOAD_TRAILER,
    TRAILER_ALGORITHM,
    ChunkSignContext,
    ChunkStreamState,
    Credentials,
    EventSignature,
    SignableRequest,
    SignedRequest,
    SigningVariant,
)
from .utils import (
    find_header,
    format_amz_datetime,
    format_scope_date,
    normalize_header_name,
    normalize_header_value,
    sha256_hex,
)

logger = logging.getLogger(__name__)

# S3 requires every chunk except the last to be at least 8 KiB
DEFAULT_CHUNK_SIZE = 64 * 1024
SIGNATURE_LENGTH = 64
CRLF = b"\r\n"

CHUNK_SIGNATURE_EXTENSION = ";chunk-signature="
TRAILER_SIGNATURE_HEADER = "x-amz-trailer-signature"
AWS_CHUNKED_ENCODING = "aws-chunked"

# Event-stream header value type for timestamps (int64 milliseconds)
_TIMESTAMP_HEADER_TYPE = 8
_SIGNATURE_PATTERN = re.compile(r'^[0-9a-fA-F]{64}$')

TrailerHeaders = Union[Mapping[str, str], Sequence[Tuple[str, str]]]


def _trailer_items(trailers: TrailerHeaders) -> Sequence[Tuple[str, str]]:
    if isinstance(trailers, Mapping):
        return list(trailers.items())
    return list(trailers)


def canonical_trailer_block(trailers: TrailerHeaders) -> str:
    """
    Build the trailer block covered by the trailer signature.

    Returns:
        str: Sorted "name:value\\n" lines with lower-case names
    """
    lines = []
    for name, value in _trailer_items(trailers):
        normalized_name = normalize_header_name(name)
        lines.append((normalized_name, normalize_header_value(normalized_name, value)))
    return "".join(f"{name}:{value}\n" for name, value in sorted(lines))


def encode_date_header(timestamp: datetime) -> bytes:
    """
    Encode the ":date" event-stream header in its wire form.

    Layout: name length (1 byte), name, value type 8, int64 big-endian
    milliseconds since the epoch.
    """
    name = b":date"
    utc = ensure_utc(timestamp)
    millis = calendar.timegm(utc.utctimetuple()) * 1000 + utc.microsecond // 1000
    return struct.pack("!B", len(name)) + name + struct.pack("!Bq", _TIMESTAMP_HEADER_TYPE, millis)


def frame_chunk(data: bytes, signature: str) -> bytes:
    """
    Frame one aws-chunked chunk.

    Returns:
        bytes: "<hex len>;chunk-signature=<sig>\\r\\n<data>\\r\\n"
    """
    header = f"{len(data):x}{CHUNK_SIGNATURE_EXTENSION}{signature}".encode("ascii")
    return header + CRLF + bytes(data) + CRLF


def frame_final_chunk(
    signature: str,
    trailers: Optional[TrailerHeaders] = None,
    trailer_signature: Optional[str] = None
) -> bytes:
    """
    Frame the terminating zero-length chunk, with optional trailers.

    Args:
        signature: Final chunk signature
        trailers: Trailing headers sent after the final chunk
        trailer_signature: Signature over the trailers (required with trailers)

    Returns:
        bytes: Framed final chunk
    """
    framed = f"0{CHUNK_SIGNATURE_EXTENSION}{signature}".encode("ascii") + CRLF
    if trailers:
        if not trailer_signature:
            raise InvalidRequestError("Trailers require a trailer signature")
        for name, value in _trailer_items(trailers):
            framed += f"{name.lower()}:{value}".encode("utf-8") + CRLF
        framed += f"{TRAILER_SIGNATURE_HEADER}:{trailer_signature}".encode("ascii") + CRLF
    return framed + CRLF


def _chunk_frame_length(size: int) -> int:
    return len(f"{size:x}") + len(CHUNK_SIGNATURE_EXTENSION) + SIGNATURE_LENGTH + 2 + size + 2


def chunked_content_length(
    decoded_length: int,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    trailer_headers: Optional[TrailerHeaders] = None
) -> int:
    """
    Compute the Content-Length of an aws-chunked body.

    Args:
        decoded_length: Length of the unframed payload
        chunk_size: Size of every chunk but the last
        trailer_headers: Trailers that will follow the final chunk

    Returns:
        int: Total framed length

    Raises:
        InvalidConfigurationError: If the sizes are invalid
    """
    if decoded_length < 0:
        raise InvalidConfigurationError(
            "Decoded content length must not be negative",
            details={"decoded_length": decoded_length}
        )
    if chunk_size <= 0:
        raise InvalidConfigurationError(
            "Chunk size must be positive",
            details={"chunk_size": chunk_size}
        )

    full_chunks, remainder = divmod(decoded_length, chunk_size)
    length = full_chunks * _chunk_frame_length(chunk_size)
    if remainder:
        length += _chunk_frame_length(remainder)

    # Final chunk without its closing CRLF
    length += _chunk_frame_length(0) - 2
    if trailer_headers:
        for name, value in _trailer_items(trailer_headers):
            length += len(f"{name.lower()}:{value}".encode("utf-8")) + 2
        length += len(TRAILER_SIGNATURE_HEADER) + 1 + SIGNATURE_LENGTH + 2
    return length + 2


def rechunk(chunks: Iterable[bytes], chunk_size: int) -> Iterator[bytes]:
    """Regroup an iterable of byte strings into pieces of exactly chunk_size (last may be shorter)."""
    buffer = bytearray()
    for piece in chunks:
        if isinstance(piece, str):
            piece = piece.encode("utf-8")
        buffer.extend(piece)
        while len(buffer) >= chunk_size:
            yield bytes(buffer[:chunk_size])
            del buffer[:chunk_size]
    if buffer:
        yield bytes(buffer)


def iter_stream(stream, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
    """
    Read a binary stream in chunk_size blocks.

    Raises:
        PayloadReadError: If reading fails
    """
    while True:
        try:
            block = stream.read(chunk_size)
        except OSError as e:
            raise PayloadReadError(
                f"Failed to read upload stream: {e}",
                details={"original_error": str(e)}
            ) from e
        if not block:
            return
        yield block


class ChunkSigner:
    """
    Signer for aws-chunked uploads and event streams

    Shares the request signer's configuration and signing key cache.
    """

    def __init__(self, request_signer: RequestSigner):
        self.request_signer = request_signer
        self.config = request_signer.config

    def start(
        self,
        initial_signature: str,
        credentials: Optional[Credentials],
        timestamp: datetime,
        variant: SigningVariant = SigningVariant.CHUNKED
    ) -> ChunkSignContext:
        """
        Start a signature chain from a request's seed signature.

        Args:
            initial_signature: Hex signature of the request headers
            credentials: Credentials used for the request
            timestamp: Request signing timestamp
            variant: CHUNKED or EVENT_STREAM

        Returns:
            ChunkSignContext: Chain state for the stream

        Raises:
            InvalidConfigurationError: If the variant is not a streaming variant
            CredentialsUnavailableError: If credentials are missing
        """
        if variant not in (SigningVariant.CHUNKED, SigningVariant.EVENT_STREAM):
            raise InvalidConfigurationError(
                f"Signing variant {variant.value} has no chunk chain",
                details={"variant": variant.value}
            )
        if credentials is None:
            raise CredentialsUnavailableError("No credentials available for signing")
        if not isinstance(initial_signature, str) or not _SIGNATURE_PATTERN.match(initial_signature):
            raise InvalidRequestError("Seed signature must be 64 hex characters")

        signing_key = self.request_signer.signing_key(credentials, timestamp)
        return ChunkSignContext(
            previous_signature=initial_signature.lower(),
            signing_key=signing_key,
            scope=signing_key.scope,
            request_datetime=format_amz_datetime(timestamp),
            variant=variant,
            credentials=credentials if variant is SigningVariant.EVENT_STREAM else None,
        )

    def sign_chunk(self, context: ChunkSignContext, chunk: bytes, sequence: Optional[int] = None) -> str:
        """
        Sign the next chunk of a stream.

        Args:
            context: Chain state, advanced on success
            chunk: Chunk data (must not be empty)
            sequence: Expected position of the chunk, checked when given

        Returns:
            str: Hex chunk signature

        Raises:
            ChunkOrderingViolationError: On out-of-order, empty, late or
                concurrent signing
        """
        self._require_variant(context, SigningVariant.CHUNKED)
        if not chunk:
            raise ChunkOrderingViolationError(
                "Empty chunk before end of stream; use sign_final_chunk",
                details={"sequence": context.sequence}
            )

        with _exclusive(context):
            self._check_open(context, sequence)
            return self._advance(context, chunk)

    def sign_final_chunk(self, context: ChunkSignContext, sequence: Optional[int] = None) -> str:
        """
        Sign the terminating zero-length chunk.

        Returns:
            str: Hex signature of the final chunk
        """
        self._require_variant(context, SigningVariant.CHUNKED)
        with _exclusive(context):
            self._check_open(context, sequence)
            signature = self._advance(context, b"")
            context.state = ChunkStreamState.FINAL_CHUNK_SIGNED
        return signature

    def sign_trailer(self, context: ChunkSignContext, trailer_headers: TrailerHeaders) -> str:
        """
        Sign the trailing headers that follow the final chunk.

        Returns:
            str: Hex trailer signature

        Raises:
            ChunkOrderingViolationError: If the final chunk has not been
                signed or the trailer was already signed
        """
        self._require_variant(context, SigningVariant.CHUNKED)
        with _exclusive(context):
            if context.state is not ChunkStreamState.FINAL_CHUNK_SIGNED:
                raise ChunkOrderingViolationError(
                    "Trailer must be signed exactly once, after the final chunk",
                    details={"state": context.state.value}
                )

            string_to_sign = "\n".join([
                TRAILER_ALGORITHM,
                context.request_datetime,
                context.scope,
                context.previous_signature,
                sha256_hex(canonical_trailer_block(trailer_headers)),
            ])
            signature = hmac_sha256(context.signing_key.key_bytes, string_to_sign).hex()
            context.previous_signature = signature
            context.state = ChunkStreamState.TRAILER_SIGNED
        return signature

    def sign_event(
        self,
        context: ChunkSignContext,
        payload: bytes,
        timestamp: Optional[datetime] = None
    ) -> EventSignature:
        """
        Sign one event-stream message.

        An empty payload signs the end-of-stream message and closes the chain.

        Args:
            context: Event-stream chain state
            payload: Encoded event message
            timestamp: Event time (read from the clock when omitted)

        Returns:
            EventSignature: ":date" and ":chunk-signature" headers

        Raises:
            ChunkOrderingViolationError: If the stream is closed or shared
        """
        self._require_variant(context, SigningVariant.EVENT_STREAM)
        event_time = ensure_utc(timestamp or self.config.clock.now()).replace(microsecond=0)

        with _exclusive(context):
            self._check_open(context, None)
            signing_key = context.signing_key
            if signing_key.scope_date != format_scope_date(event_time):
                signing_key = self.request_signer.signing_key(context.credentials, event_time)
                context.signing_key = signing_key
                context.scope = signing_key.scope

            string_to_sign = "\n".join([
                EVENT_ALGORITHM,
                format_amz_datetime(event_time),
                signing_key.scope,
                context.previous_signature,
                sha256_hex(encode_date_header(event_time)),
                sha256_hex(bytes(payload)),
            ])
            signature = hmac_sha256(signing_key.key_bytes, string_to_sign)
            context.previous_signature = signature.hex()
            context.sequence += 1
            if not payload:
                context.state = ChunkStreamState.FINAL_CHUNK_SIGNED

        return EventSignature(
            headers={":date": event_time, ":chunk-signature": signature},
            signature=signature.hex(),
            string_to_sign=string_to_sign,
        )

    def begin_chunked_upload(
        self,
        request: SignableRequest,
        credentials: Optional[Credentials],
        decoded_length: int,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        trailer_names: Optional[Sequence[str]] = None
    ) -> Tuple[SignedRequest, ChunkSignContext]:
        """
        Sign the headers of an aws-chunked upload and start its chain.

        Adds content-encoding, x-amz-decoded-content-length and, when there
        are no trailers, the framed content-length.

        Args:
            request: Upload request (its body is ignored)
            credentials: Signing credentials
            decoded_length: Length of the unframed payload
            chunk_size: Chunk size used for framing
            trailer_names: Names of trailing headers announced in x-amz-trailer

        Returns:
            tuple: (SignedRequest, ChunkSignContext)
        """
        trailer_names = [name.lower() for name in trailer_names or ()]
        payload_hash = STREAMING_PAYLOAD_TRAILER if trailer_names else STREAMING_PAYLOAD

        content_encoding = find_header(request.headers, "content-encoding")
        if content_encoding and AWS_CHUNKED_ENCODING not in content_encoding:
            content_encoding = f"{AWS_CHUNKED_ENCODING},{content_encoding}"
        elif not content_encoding:
            content_encoding = AWS_CHUNKED_ENCODING

        extra_headers = [
            ("content-encoding", content_encoding),
            ("x-amz-decoded-content-length", str(decoded_length)),
        ]
        if trailer_names:
            extra_headers.append(("x-amz-trailer", ",".join(trailer_names)))
        else:
            extra_headers.append(("content-length", str(chunked_content_length(decoded_length, chunk_size))))

        signed = self.request_signer.sign_request(
            request,
            credentials,
            payload_hash=payload_hash,
            extra_headers=extra_headers,
        )
        signed.variant = SigningVariant.CHUNKED
        context = self.start(signed.signature, credentials, signed.timestamp, SigningVariant.CHUNKED)
        logger.debug("Started chunked upload chain for scope %s", context.scope)
        return signed, context

    def begin_event_stream(
        self,
        request: SignableRequest,
        credentials: Optional[Credentials]
    ) -> Tuple[SignedRequest, ChunkSignContext]:
        """
        Sign the headers of an event-stream request and start its chain.

        Returns:
            tuple: (SignedRequest, ChunkSignContext)
        """
        signed = self.request_signer.sign_request(request, credentials, payload_hash=STREAMING_EVENTS)
        signed.variant = SigningVariant.EVENT_STREAM
        context = self.start(signed.signature, credentials, signed.timestamp, SigningVariant.EVENT_STREAM)
        return signed, context

    def encode_chunked_body(
        self,
        context: ChunkSignContext,
        chunks: Iterable[bytes],
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        trailers: Optional[Union[TrailerHeaders, Callable[[], TrailerHeaders]]] = None
    ) -> Iterator[bytes]:
        """
        Yield the framed aws-chunked body for a stream of data.

        Args:
            context: Chain state from begin_chunked_upload
            chunks: Payload pieces of any size
            chunk_size: Size of each framed chunk
            trailers: Trailing headers, or a callable producing them once the
                payload has been consumed (e.g. a running checksum)

        Yields:
            bytes: Framed chunks, ending with the final chunk
        """
        for piece in rechunk(chunks, chunk_size):
            yield frame_chunk(piece, self.sign_chunk(context, piece))

        final_signature = self.sign_final_chunk(context)
        trailer_headers = trailers() if callable(trailers) else trailers
        if trailer_headers:
            trailer_signature = self.sign_trailer(context, trailer_headers)
            yield frame_final_chunk(final_signature, trailer_headers, trailer_signature)
        else:
            yield frame_final_chunk(final_signature)

    def _advance(self, context: ChunkSignContext, chunk: bytes) -> str:
        string_to_sign = "\n".join([
            CHUNK_ALGORITHM,
            context.request_datetime,
            context.scope,
            context.previous_signature,
            EMPTY_SHA256_HASH,
            sha256_hex(bytes(chunk)),
        ])
        signature = hmac_sha256(context.signing_key.key_bytes, string_to_sign).hex()
        context.previous_signature = signature
        context.sequence += 1
        return signature

    @staticmethod
    def _check_open(context: ChunkSignContext, sequence: Optional[int]) -> None:
        if not context.is_open:
            raise ChunkOrderingViolationError(
                "Stream already ended; no further chunks can be signed",
                details={"state": context.state.value}
            )
        if sequence is not None and sequence != context.sequence:
            raise ChunkOrderingViolationError(
                f"Chunk {sequence} signed out of order, expected {context.sequence}",
                details={"expected": context.sequence, "received": sequence}
            )

    @staticmethod
    def _require_variant(context: ChunkSignContext, variant: SigningVariant) -> None:
        if context.variant is not variant:
            raise InvalidConfigurationError(
                f"Context belongs to a {context.variant.value} stream, not {variant.value}",
                details={"variant": context.variant.value}
            )


@contextmanager
def _exclusive(context: ChunkSignContext):
    if not context._writer.acquire(blocking=False):
        raise ChunkOrderingViolationError(
            "Chunk signing context is in use by another writer",
            details={"sequence": context.sequence}
        )
    try:
        yield
    finally:
        context._writer.release()


class AsyncChunkWriter:
    """
    Serializes chunk and event signing for one stream across asyncio tasks

    Calls are signed in the order tasks acquire the lock.
    """

    def __init__(self, signer: ChunkSigner, context: ChunkSignContext):
        self.signer = signer
        self.context = context
        self._lock: Optional[asyncio.Lock] = None

    def _get_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def sign_chunk(self, chunk: bytes) -> str:
        async with self._get_lock():
            return self.signer.sign_chunk(self.context, chunk)

    async def write_chunk(self, chunk: bytes) -> bytes:
        """Sign a chunk and return it framed."""
        async with self._get_lock():
            return frame_chunk(chunk, self.signer.sign_chunk(self.context, chunk))

    async def finish(self, trailers: Optional[TrailerHeaders] = None) -> bytes:
        """Sign the final chunk (and trailers) and return the framed end of the body."""
        async with self._get_lock():
            final_signature = self.signer.sign_final_chunk(self.context)
            if not trailers:
                return frame_final_chunk(final_signature)
            trailer_signature = self.signer.sign_trailer(self.context, trailers)
            return frame_final_chunk(final_signature, trailers, trailer_signature)

    async def sign_event(self, payload: bytes, timestamp: Optional[datetime] = None) -> EventSignature:
        async with self._get_lock():
            return self.signer.sign_event(self.context, payload, timestamp)
