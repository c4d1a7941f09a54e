"""
SigV4 Signing SDK - Request Signing Module

AWS Signature Version 4 implementation: canonical requests, signing key
derivation and caching, header and query (presigned URL) signing, and
chunked payload and event-stream signature chains.
"""

from .types import (
    Credentials,
    SigningConfig,
    SignedBodyHeader,
    SigningVariant,
    SignableRequest,
    CanonicalRequest,
    SigningKey,
    HeaderSignature,
    SignedRequest,
    ChunkSignContext,
    ChunkStreamState,
    EventSignature,
    ALGORITHM,
    UNSIGNED_PAYLOAD,
    STREAMING_PAYLOAD,
    STREAMING_PAYLOAD_TRAILER,
    STREAMING_EVENTS,
    EMPTY_SHA256_HASH,
)

from .clock import (
    ClockSource,
    SystemClock,
    FixedClock,
    SkewedClock,
)

from .canonical_request import (
    CanonicalRequestBuilder,
    build_canonical_request,
)

from .key_cache import SigningKeyCache

from .sigv4_signer import (
    RequestSigner,
    create_signer,
    sign_request,
    presign_url,
)

from .chunk_signer import (
    ChunkSigner,
    AsyncChunkWriter,
    DEFAULT_CHUNK_SIZE,
    frame_chunk,
    frame_final_chunk,
    chunked_content_length,
)

from .signing_config import (
    SigningConfigBuilder,
    SigningProfile,
    SIGNING_PROFILES,
    create_signing_config,
    create_from_profile,
    validate_signing_config,
)

from .utils import (
    format_amz_datetime,
    hash_payload,
    parse_url,
    uri_encode,
)

from .integration import (
    SigV4Auth,
    create_signing_session,
    sign_prepared_request,
    prepare_chunked_upload,
)

# Public API exports
__all__ = [
    # Core signing functionality
    'RequestSigner',
    'ChunkSigner',
    'AsyncChunkWriter',
    'CanonicalRequestBuilder',
    'SigningKeyCache',
    'create_signer',
    'sign_request',
    'presign_url',
    'build_canonical_request',
    # Types
    'Credentials',
    'SigningConfig',
    'SignedBodyHeader',
    'SigningVariant',
    'SignableRequest',
    'CanonicalRequest',
    'SigningKey',
    'HeaderSignature',
    'SignedRequest',
    'ChunkSignContext',
    'ChunkStreamState',
    'EventSignature',
    'ALGORITHM',
    'UNSIGNED_PAYLOAD',
    'STREAMING_PAYLOAD',
    'STREAMING_PAYLOAD_TRAILER',
    'STREAMING_EVENTS',
    'EMPTY_SHA256_HASH',
    # Clocks
    'ClockSource',
    'SystemClock',
    'FixedClock',
    'SkewedClock',
    # Configuration
    'SigningConfigBuilder',
    'SigningProfile',
    'SIGNING_PROFILES',
    'create_signing_config',
    'create_from_profile',
    'validate_signing_config',
    # Chunk framing
    'DEFAULT_CHUNK_SIZE',
    'frame_chunk',
    'frame_final_chunk',
    'chunked_content_length',
    # Utilities
    'format_amz_datetime',
    'hash_payload',
    'parse_url',
    'uri_encode',
    # HTTP integration
    'SigV4Auth',
    'create_signing_session',
    'sign_prepared_request',
    'prepare_chunked_upload',
]
